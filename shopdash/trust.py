import enum


class TrustPath(enum.Enum):
    """The ways an inbound request can claim an identity."""

    # Email/password login, later requests ride on the session cookie.
    DIRECT_LOGIN = "direct_login"
    # Merchant install, signed with `hmac` and carrying a grant `code`.
    OAUTH_INSTALL = "oauth_install"
    # Storefront request forwarded by the app proxy, signed with `signature`.
    APP_PROXY = "app_proxy"


def classify_trust_path(params):
    """Pick the trust path from which params are present.

    Does not verify anything, that is up to whoever consumes the result.
    """
    if "signature" in params:
        return TrustPath.APP_PROXY
    if "hmac" in params and "code" in params:
        return TrustPath.OAUTH_INSTALL
    return TrustPath.DIRECT_LOGIN
