"""
Customer session held entirely in an encrypted cookie.

There is no server side session table, the cookie is the session.  Callers
mutate the session and then explicitly `save` it, nothing is saved for them.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

from .config import SESSION_MAX_AGE_IN_SECONDS
from .interfaces import ISessionSerializer, IWebShim

logger = logging.getLogger(__name__)


@dataclass
class CustomerSession:
    """
    Holds the customer access token between requests.
    """

    access_token: Optional[str] = None
    # When the access token expires, utc iso format stamp from shopify.
    expires_at: Optional[str] = None
    is_logged_in: bool = False

    def populate(self, access_token, expires_at):
        self.access_token = access_token
        self.expires_at = expires_at
        self.is_logged_in = True

    def clear(self):
        self.access_token = None
        self.expires_at = None
        self.is_logged_in = False

    def to_dict(self):
        # Same keys the storefront client code has always used.
        return {
            "customerAccessToken": self.access_token,
            "tokenExpiresAt": self.expires_at,
            "isLoggedIn": self.is_logged_in,
        }

    @classmethod
    def from_dict(cls, session_dict):
        if not isinstance(session_dict, dict):
            raise ValueError("Session payload is not an object.")
        return cls(
            access_token=session_dict.get("customerAccessToken") or None,
            expires_at=session_dict.get("tokenExpiresAt") or None,
            is_logged_in=bool(session_dict.get("isLoggedIn", False)),
        )


def utcnow():
    return datetime.now(timezone.utc)


def read_utcstamp(utcstamp):
    """Parse an iso stamp, accepting a trailing Z and assuming utc if naive."""
    if utcstamp.endswith("Z"):
        utcstamp = utcstamp[:-1] + "+00:00"
    parsed = datetime.fromisoformat(utcstamp)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def is_utcstamp_expired(utcstamp, now):
    try:
        expires_at = read_utcstamp(utcstamp)
    except (TypeError, ValueError):
        logger.debug("Unreadable expiry stamp %r, treating as expired", utcstamp)
        return True
    return not expires_at > now


def is_expired(session, now=None):
    """Expired unless we have a stamp strictly later than now."""
    if not session.expires_at:
        return True
    return is_utcstamp_expired(session.expires_at, now if now else utcnow())


@dataclass
class SessionStore:
    """
    Load and save the `CustomerSession` through the web shim's cookies.
    """

    web_shim: IWebShim
    serializer: ISessionSerializer
    cookie_name: str = "shopify_customer_session"
    max_age: int = SESSION_MAX_AGE_IN_SECONDS
    secure: bool = True
    utcnow: Callable = field(default=utcnow)

    def load(self):
        """Never fails, anything unusable gives a fresh logged out session."""
        value = self.web_shim.get_cookie(self.cookie_name)
        if not value:
            return CustomerSession()
        try:
            return CustomerSession.from_dict(self.serializer.loads(value))
        except ValueError:
            logger.info("Discarding unreadable session cookie.")
            return CustomerSession()

    def save(self, session):
        self.web_shim.set_cookie(
            self.cookie_name,
            self.serializer.dumps(session.to_dict()),
            httponly=True,
            samesite="lax",
            secure=self.secure,
            max_age=self.max_age,
        )

    def is_expired(self, session):
        return is_expired(session, now=self.utcnow())
