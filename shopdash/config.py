import logging
import os
from dataclasses import dataclass, fields

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


DAY_IN_SECONDS = 24 * 60 * 60


SESSION_MAX_AGE_IN_SECONDS = 7 * DAY_IN_SECONDS


MIN_SESSION_SECRET_BYTES = 32


PRODUCTION = "production"


# Only ever used outside production when SESSION_SECRET is unset.
DEVELOPMENT_SESSION_SECRET = "development_session_secret_at_least_32_bytes"


# Environment variable each field is read from.
ENVIRON_KEYS = {
    "api_key": "SHOPIFY_API_KEY",
    "api_secret": "SHOPIFY_API_SECRET",
    "scopes": "SHOPIFY_SCOPES",
    "admin_access_token": "SHOPIFY_ADMIN_ACCESS_TOKEN",
    "app_url": "APP_URL",
    "store_domain": "SHOPIFY_STORE_DOMAIN",
    "storefront_access_token": "SHOPIFY_STOREFRONT_ACCESS_TOKEN",
    "storefront_api_version": "SHOPIFY_API_VERSION",
    "admin_api_version": "SHOPIFY_API_VERSION",
    "session_secret": "SESSION_SECRET",
    "session_cookie_name": "SESSION_COOKIE_NAME",
    "environment": "APP_ENV",
    "verify_proxy_requests": "VERIFY_PROXY_REQUESTS",
    "database_url": "DATABASE_URL",
    "http_timeout_in_seconds": "HTTP_TIMEOUT",
}


SETTINGS_PREFIX = "shopdash."


def asbool(value):
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class DashboardConfig:
    """
    Process wide configuration, built once at start up and never mutated.
    """

    # The app's client id and shared secret from the partner dashboard.
    api_key: str = ""
    api_secret: str = ""
    # Comma separated scopes requested on install.
    scopes: str = "read_customers"
    # Privileged token used to look up app proxy customers by id.
    admin_access_token: str = ""
    # Public base url of this app, the oauth callback hangs off of it.
    app_url: str = "http://localhost:6543"
    # The storefront the customer dashboard logs customers into.
    store_domain: str = ""
    storefront_access_token: str = ""
    storefront_api_version: str = "2024-01"
    admin_api_version: str = "2024-01"
    # Used to encrypt the session cookie, at least 32 bytes.
    session_secret: str = ""
    session_cookie_name: str = "shopify_customer_session"
    session_max_age: int = SESSION_MAX_AGE_IN_SECONDS
    environment: str = "development"
    # None means follow `production`.
    verify_proxy_requests: bool = None
    # Where admin tokens are persisted, keyed by shop.
    database_url: str = None
    http_timeout_in_seconds: float = 10.0

    @property
    def production(self):
        return self.environment == PRODUCTION

    @property
    def proxy_verification_enabled(self):
        if self.verify_proxy_requests is None:
            return self.production
        return self.verify_proxy_requests

    @property
    def access_scopes(self):
        return [scope.strip() for scope in self.scopes.split(",") if scope.strip()]

    @property
    def auth_callback_url(self):
        return f"{self.app_url.rstrip('/')}/auth/callback"

    def get_session_secret(self):
        """Return the secret for the session cookie or raise if it is unusable."""
        secret = self.session_secret
        if not secret:
            if self.production:
                raise ConfigurationError("SESSION_SECRET must be set in production.")
            logger.warning("SESSION_SECRET not set - using the development secret")
            secret = DEVELOPMENT_SESSION_SECRET
        if len(secret.encode("utf8")) < MIN_SESSION_SECRET_BYTES:
            raise ConfigurationError(
                f"SESSION_SECRET must be at least {MIN_SESSION_SECRET_BYTES} bytes."
            )
        return secret

    def check(self):
        """Fail fast on configuration that can never work."""
        self.get_session_secret()
        if not self.api_secret:
            logger.warning(
                "SHOPIFY_API_SECRET not set - signature checks are bypassed"
            )
        return self

    @classmethod
    def from_environ(cls, environ=None):
        return cls.from_settings({}, environ)

    @classmethod
    def from_settings(cls, settings, environ=None):
        """
        Build config from pyramid settings, falling back on the environment.

        Settings use the `shopdash.` prefix, ie. `shopdash.api_key`.
        """
        environ = os.environ if environ is None else environ
        values = {}
        for f in fields(cls):
            if f.name == "session_max_age":
                continue
            value = settings.get(SETTINGS_PREFIX + f.name)
            if value is None and f.name in ENVIRON_KEYS:
                value = environ.get(ENVIRON_KEYS[f.name])
            if value is None or value == "":
                continue
            if f.name == "verify_proxy_requests":
                value = asbool(value)
            elif f.name == "http_timeout_in_seconds":
                value = float(value)
            values[f.name] = value
        return cls(**values)
