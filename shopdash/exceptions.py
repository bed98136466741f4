class ShopDashError(Exception):
    """Base class for errors the dashboard reports to its callers."""

    status_code = 500
    # Message safe to hand back to the client, None means use str(exc).
    public_message = None

    def __init__(self, message=""):
        super().__init__(message)
        self.message = message

    def get_public_message(self):
        if self.public_message is not None:
            return self.public_message
        return self.message


class ValidationError(ShopDashError):
    """The request was malformed, ie. bad email or missing params."""

    status_code = 400


class AuthenticationError(ShopDashError):
    """Bad credentials or a bad signature."""

    status_code = 401


class UpstreamError(ShopDashError):
    """Shopify did not answer or answered with an error.

    Details are logged, only the generic message goes back to the client.
    """

    status_code = 500
    public_message = "An unexpected error occurred"

    def __init__(self, message="", status=None):
        super().__init__(message)
        self.status = status


class ConfigurationError(ShopDashError):
    """A required secret or token is not configured."""

    status_code = 500
    public_message = "App not configured"


class ExpiryError(ShopDashError):
    """The session token is stale.

    Never rendered as an error, the session is cleared and reported as
    logged out instead.
    """

    status_code = 200
    public_message = "Session expired"
