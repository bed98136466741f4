import base64
import hashlib
import json

import zope.interface
from cryptography.fernet import Fernet, InvalidToken

from .exceptions import ConfigurationError
from .interfaces import ISessionSerializer

MIN_SECRET_BYTES = 32


@zope.interface.implementer(ISessionSerializer)
class EncryptedCookieSerializer:
    """
    Encrypt and authenticate cookie values, same interface as
    `webob.cookies.SignedSerializer` but the payload is unreadable to the client.

    Fernet does the encrypt-then-MAC, its key is derived from `secret`.
    The trailing base64 padding is stripped so the value never needs quoting.
    """

    def __init__(self, secret, serializer=None):
        if not secret or len(secret.encode("utf8")) < MIN_SECRET_BYTES:
            raise ConfigurationError(
                f"Session secret must be at least {MIN_SECRET_BYTES} bytes."
            )
        key = base64.urlsafe_b64encode(hashlib.sha256(secret.encode("utf8")).digest())
        self.fernet = Fernet(key)
        self.serializer = serializer if serializer is not None else json

    def dumps(self, appstruct):
        plaintext = self.serializer.dumps(appstruct).encode("utf8")
        return self.fernet.encrypt(plaintext).decode("ascii").rstrip("=")

    def loads(self, bstruct):
        """Raise ValueError for anything we didn't produce ourselves."""
        if isinstance(bstruct, bytes):
            bstruct = bstruct.decode("ascii", "replace")
        padded = bstruct + "=" * (-len(bstruct) % 4)
        try:
            plaintext = self.fernet.decrypt(padded.encode("ascii"))
        except (InvalidToken, UnicodeEncodeError) as e:
            raise ValueError("Invalid session cookie.") from e
        return self.serializer.loads(plaintext.decode("utf8"))


def get_default_session_serializer(secret, serializer=None):
    return EncryptedCookieSerializer(secret, serializer=serializer)
