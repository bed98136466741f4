from zope.interface import Attribute, Interface


class IWebShim(Interface):
    pass


class ISessionSerializer(Interface):
    """Turns a session dict into a cookie-safe string and back."""

    def dumps(appstruct):
        pass

    def loads(bstruct):
        pass


class IAdminTokenStore(Interface):
    """Durable storage for admin access tokens, keyed by shop host."""

    def store_token(shop, access_token, scope=None):
        pass

    def load_token(shop):
        pass

    def remove_token(shop):
        pass


class IStorefrontAPI(Interface):
    pass


class IAdminAPI(Interface):
    config = Attribute("The dashboard config.")
