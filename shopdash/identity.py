"""
Resolve who the customer is, whichever way they reached us.

direct login: email/password traded for a storefront token kept in the session.
oauth install: merchant grant code traded for an admin token, never kept in
    the session.
app proxy: shopify vouches for `logged_in_customer_id`, we look the customer
    up with the admin token when we have one.

Every path ends with a `CustomerIdentity` or a structured absence in an
`IdentityResult`, never something in between.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Optional

from .admin_api import AdminAPIService
from .config import DashboardConfig
from .exceptions import AuthenticationError, ExpiryError, UpstreamError, ValidationError
from .interfaces import IAdminTokenStore
from .session import is_expired, is_utcstamp_expired, utcnow
from .storefront import StorefrontAPIService
from .util import decode_host, fallback_admin_host, is_admin_host, mask_token

logger = logging.getLogger(__name__)


NOT_LOGGED_IN_ON_STOREFRONT = "Customer not logged in on storefront"


LIMITED_DATA_NO_TOKEN = "Admin API token not configured - limited data available"


LIMITED_DATA_LOOKUP_FAILED = "Could not fetch customer details"


SESSION_EXPIRED = "Session expired"


_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


@dataclass
class CustomerIdentity:
    id: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    display_name: Optional[str] = None
    email: Optional[str] = None
    number_of_orders: Optional[str] = None
    # Only the id is known, ie. app proxy without an admin token.
    limited: bool = False

    @classmethod
    def from_storefront(cls, customer):
        return cls(
            id=customer["id"],
            first_name=customer.get("firstName"),
            last_name=customer.get("lastName"),
            display_name=customer.get("displayName"),
            email=customer.get("email"),
            number_of_orders=customer.get("numberOfOrders"),
        )

    @classmethod
    def from_admin(cls, customer):
        # The admin api calls it ordersCount.
        return cls(
            id=customer["id"],
            first_name=customer.get("firstName"),
            last_name=customer.get("lastName"),
            display_name=customer.get("displayName"),
            email=customer.get("email"),
            number_of_orders=customer.get("ordersCount"),
        )

    @classmethod
    def limited_to_id(cls, customer_id):
        return cls(id=customer_id, limited=True)

    def to_json(self):
        if self.limited:
            return {"id": self.id}
        return {
            "id": self.id,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "displayName": self.display_name,
            "email": self.email,
            "numberOfOrders": self.number_of_orders,
        }


@dataclass
class IdentityResult:
    is_logged_in: bool
    customer: Optional[CustomerIdentity] = None
    message: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def logged_out(cls, message=None, error=None):
        return cls(is_logged_in=False, message=message, error=error)

    @classmethod
    def logged_in(cls, customer, message=None):
        return cls(is_logged_in=True, customer=customer, message=message)

    def to_json(self):
        payload = {
            "isLoggedIn": self.is_logged_in,
            "customer": self.customer.to_json() if self.customer else None,
        }
        if self.message:
            payload["message"] = self.message
        if self.error:
            payload["error"] = self.error
        return payload


def validate_credentials(email, password):
    """Raise `ValidationError` for the first problem found."""
    if not isinstance(email, str) or not _EMAIL_RE.match(email):
        raise ValidationError("Invalid email address")
    if not isinstance(password, str) or len(password) < 1:
        raise ValidationError("Password is required")


def admin_redirect_url(shop_host, state=None):
    """
    Turn the base64 host we round tripped through `state` back into a url.

    Falls back to the shop's admin page when state is missing, garbage or
    points somewhere other than shopify.
    """
    host = decode_host(state) if state else None
    if not host or not is_admin_host(host):
        if state:
            logger.info("Ignoring unusable host state %r", state)
        host = fallback_admin_host(shop_host)
    return f"https://{host}"


@dataclass
class IdentityResolver:
    config: DashboardConfig
    storefront_api: StorefrontAPIService
    admin_api: AdminAPIService
    # Optional durable home for admin tokens, keyed by shop.
    admin_token_store: IAdminTokenStore = None
    utcnow: Callable = field(default=utcnow)

    def is_session_expired(self, session):
        return is_expired(session, now=self.utcnow())

    def is_token_fresh(self, token):
        """A token is only worth keeping if it carries an expiry still ahead of us."""
        if not token.expires_at:
            logger.warning("Storefront returned a token without an expiry")
            return False
        return not is_utcstamp_expired(token.expires_at, self.utcnow())

    def check_session(self, session):
        """
        Make sure a session is usable before trusting its token.

        raise:
            ExpiryError if the session is logged in but its token is stale,
            the session is cleared first.
        """
        if not session.is_logged_in or not session.access_token:
            if session.is_logged_in:
                session.clear()
            return False
        if self.is_session_expired(session):
            logger.info("Customer access token expired, clearing session.")
            session.clear()
            raise ExpiryError(SESSION_EXPIRED)
        return True

    #
    # Direct login.
    #

    def login(self, email, password):
        validate_credentials(email, password)
        token, errors = self.storefront_api.create_customer_access_token(
            email, password
        )
        if errors:
            # Shopify's message is meant for the customer, pass it on as is.
            raise AuthenticationError(errors[0].get("message") or "Authentication failed")
        if not token or not self.is_token_fresh(token):
            raise AuthenticationError("Authentication failed")
        return token

    def resolve_session(self, session):
        try:
            if not self.check_session(session):
                return IdentityResult.logged_out()
        except ExpiryError as e:
            return IdentityResult.logged_out(error=e.get_public_message())

        customer = self.storefront_api.get_customer(session.access_token)
        if not customer:
            logger.info("Token no longer resolves to a customer, clearing session.")
            session.clear()
            return IdentityResult.logged_out()
        return IdentityResult.logged_in(CustomerIdentity.from_storefront(customer))

    def renew_session(self, session):
        """
        Explicitly swap the session's token for a fresh one.

        Returns True if the session now holds a renewed token.

        raise:
            ExpiryError if there is nothing left to renew.
        """
        if not self.check_session(session):
            raise ExpiryError("Not logged in")
        try:
            token = self.storefront_api.renew_customer_access_token(
                session.access_token
            )
        except UpstreamError:
            logger.exception("Token renewal failed")
            token = None
        if not token or not self.is_token_fresh(token):
            session.clear()
            return False
        session.populate(token.access_token, token.expires_at)
        return True

    def logout(self, session):
        """Revoke upstream if we can, always clear locally."""
        if session.access_token:
            try:
                self.storefront_api.delete_customer_access_token(session.access_token)
            except UpstreamError:
                logger.exception("Logout error, clearing session anyway")
        session.clear()

    def recent_orders(self, session, first=10):
        if not self.check_session(session):
            return None
        return self.storefront_api.get_customer_orders(session.access_token, first=first)

    #
    # App proxy.
    #

    def get_admin_access_token(self, shop_host):
        if self.config.admin_access_token:
            return self.config.admin_access_token
        if self.admin_token_store is not None and shop_host:
            return self.admin_token_store.load_token(shop_host)
        return None

    def resolve_app_proxy(self, params):
        """Params must already have been verified by the caller."""
        customer_id = params.get("logged_in_customer_id")
        if not customer_id:
            return IdentityResult.logged_out(message=NOT_LOGGED_IN_ON_STOREFRONT)

        shop_host = params.get("shop")
        access_token = self.get_admin_access_token(shop_host)
        if not access_token:
            # The proxy only hands us the id, we need the admin api for the rest.
            return IdentityResult.logged_in(
                CustomerIdentity.limited_to_id(customer_id),
                message=LIMITED_DATA_NO_TOKEN,
            )
        try:
            customer = self.admin_api.get_customer_by_id(
                shop_host, access_token, customer_id
            )
        except UpstreamError:
            logger.exception("Failed to fetch customer %s", customer_id)
            customer = None
        if not customer:
            return IdentityResult.logged_in(
                CustomerIdentity.limited_to_id(customer_id),
                message=LIMITED_DATA_LOOKUP_FAILED,
            )
        return IdentityResult.logged_in(CustomerIdentity.from_admin(customer))

    #
    # OAuth install.
    #

    def complete_oauth_install(self, shop_host, code, state=None):
        """
        Trade the grant code for the admin token and say where to go next.

        The token is operator managed configuration, not per request state,
        so it goes to the admin token store and never into the session.
        """
        admin_token = self.admin_api.request_access_token(shop_host, code)
        if self.admin_token_store is not None:
            self.admin_token_store.store_token(
                shop_host, admin_token.access_token, admin_token.scope
            )
            logger.info("Stored admin access token for shop %s", shop_host)
        else:
            logger.warning(
                "Admin access token received for shop %s (%s), no token store "
                "configured: set SHOPIFY_ADMIN_ACCESS_TOKEN or DATABASE_URL",
                shop_host,
                mask_token(admin_token.access_token),
            )
        return admin_redirect_url(shop_host, state)
