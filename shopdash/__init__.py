"""
@NOTE: Resolution for shop name overloading.

shop_name: The name of the shop, used as a subdomain of myshopify.com
shop_host: The shopname and the correct top level domain: "{shop_name}.myshopify.com".
    This is what shopify sends in the `shop` param.
encoded_host: Base64 encoded admin host, ie. "admin.shopify.com/store/{shop_name}",
    sent by shopify as `host` and round tripped by us through oauth `state`.

@NOTE: Resolution for token overloading.

customer access token: storefront token for one customer, obtained with email and
    password, lives only inside the encrypted session cookie.
admin access token: offline token for the whole shop, obtained on install, is
    operator managed configuration and never goes in the cookie.
"""
import logging
from dataclasses import dataclass

from .config import DashboardConfig
from .exceptions import (
    AuthenticationError,
    ExpiryError,
    ShopDashError,
    UpstreamError,
    ValidationError,
)
from .identity import IdentityResolver, IdentityResult
from .interfaces import IWebShim
from .session import SessionStore
from .trust import TrustPath, classify_trust_path
from .util import is_valid_shop_host
from .verify import SignatureVerifier

logger = logging.getLogger(__name__)


UNEXPECTED_ERROR = "An unexpected error occurred"


@dataclass
class DashboardAuthService:
    """
    Answer "is this request authenticated, and as whom" for each route.

    Every public method returns a response made by the web shim.
    """

    config: DashboardConfig
    web_shim: IWebShim
    session_store: SessionStore
    resolver: IdentityResolver
    verifier: SignatureVerifier

    def error_response(self, error):
        """Map our errors to json, 4xx say why, 5xx only say that it broke."""
        if isinstance(error, (ValidationError, AuthenticationError)):
            return self.web_shim.response_json(
                {"error": error.get_public_message()}, status=error.status_code
            )
        if isinstance(error, ShopDashError):
            logger.error("%s: %s", type(error).__name__, error.message)
            return self.web_shim.response_json(
                {"error": error.get_public_message()}, status=error.status_code
            )
        logger.error("Unexpected %s: %s", type(error).__name__, error)
        return self.web_shim.response_json({"error": UNEXPECTED_ERROR}, status=500)

    #
    # Merchant install.
    #

    def install(self):
        params = self.web_shim.get_params()
        shop_host = params.get("shop")
        if not shop_host:
            return self.error_response(
                ValidationError("Missing shop parameter. Please install from the Shopify Admin.")
            )
        if not is_valid_shop_host(shop_host):
            return self.error_response(ValidationError("Shop is not properly formatted"))
        if params.get("hmac") and not self.verifier.verify_oauth(params):
            return self.error_response(AuthenticationError("Invalid HMAC"))
        try:
            authorize_url = self.resolver.admin_api.build_authorize_url(
                shop_host, params.get("host")
            )
        except ShopDashError as e:
            return self.error_response(e)
        return self.web_shim.redirect_302_url(authorize_url)

    def oauth_callback(self):
        params = self.web_shim.get_params()
        if classify_trust_path(params) != TrustPath.OAUTH_INSTALL or not params.get(
            "shop"
        ):
            return self.error_response(ValidationError("Missing required parameters"))
        shop_host = params["shop"]
        if not is_valid_shop_host(shop_host):
            return self.error_response(ValidationError("Shop is not properly formatted"))
        if not self.verifier.verify_oauth(params):
            return self.error_response(AuthenticationError("Invalid HMAC"))
        try:
            redirect_url = self.resolver.complete_oauth_install(
                shop_host, params["code"], params.get("state")
            )
        except ShopDashError as e:
            if isinstance(e, UpstreamError):
                e.public_message = "Failed to get access token"
            return self.error_response(e)
        return self.web_shim.redirect_302_url(redirect_url)

    #
    # Customer session.
    #

    def login(self):
        try:
            body = self.web_shim.get_request_json_body()
            token = self.resolver.login(body.get("email"), body.get("password"))
            session = self.session_store.load()
            session.populate(token.access_token, token.expires_at)
            self.session_store.save(session)
        except ShopDashError as e:
            return self.error_response(e)
        except Exception as e:
            logger.exception("Login error")
            return self.error_response(e)
        return self.web_shim.response_json(
            {"success": True, "message": "Logged in successfully"}
        )

    def logout(self):
        session = self.session_store.load()
        self.resolver.logout(session)
        self.session_store.save(session)
        return self.web_shim.response_json(
            {"success": True, "message": "Logged out successfully"}
        )

    def session_status(self):
        session = self.session_store.load()
        was_logged_in = session.is_logged_in
        try:
            result = self.resolver.resolve_session(session)
        except ShopDashError as e:
            logger.error("Session check error: %s", e.message)
            return self.web_shim.response_json(
                IdentityResult.logged_out(
                    error="An error occurred checking session"
                ).to_json(),
                status=500,
            )
        if was_logged_in and not session.is_logged_in:
            # The resolver cleared it, make the client forget too.
            self.session_store.save(session)
        return self.web_shim.response_json(result.to_json())

    def renew(self):
        session = self.session_store.load()
        try:
            renewed = self.resolver.renew_session(session)
        except ExpiryError as e:
            session.clear()
            self.session_store.save(session)
            return self.web_shim.response_json(
                {"success": False, "error": e.get_public_message()}, status=401
            )
        self.session_store.save(session)
        if not renewed:
            return self.web_shim.response_json(
                {"success": False, "error": "Could not renew session"}, status=401
            )
        return self.web_shim.response_json(
            {"success": True, "expiresAt": session.expires_at}
        )

    def orders(self):
        session = self.session_store.load()
        try:
            orders = self.resolver.recent_orders(session)
        except ExpiryError:
            self.session_store.save(session)
            return self.web_shim.response_json({"isLoggedIn": False, "orders": []})
        except ShopDashError as e:
            return self.error_response(e)
        if orders is None:
            return self.web_shim.response_json({"isLoggedIn": False, "orders": []})
        return self.web_shim.response_json({"isLoggedIn": True, "orders": orders})

    #
    # App proxy.
    #

    def proxy_customer(self):
        params = self.web_shim.get_params()
        if self.config.proxy_verification_enabled:
            if classify_trust_path(params) != TrustPath.APP_PROXY or not (
                self.verifier.verify_proxy(params)
            ):
                return self.error_response(AuthenticationError("Invalid signature"))
        result = self.resolver.resolve_app_proxy(params)
        return self.web_shim.response_json(result.to_json())
