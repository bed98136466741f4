"""
Verify that query parameters were signed by Shopify.

Shopify uses two schemes that only differ in how the params are joined
before signing:

oauth: install and oauth callback requests, signature in `hmac`,
    pairs joined with "&".
proxy: app proxy requests, signature in `signature`, pairs joined
    with nothing at all.

Both are HMAC-SHA256 hex digests keyed by the app's api secret.
"""
import hashlib
import hmac
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


OAUTH_SIGNATURE_PARAM = "hmac"


PROXY_SIGNATURE_PARAM = "signature"


OAUTH_SEPARATOR = "&"


PROXY_SEPARATOR = ""


def encode_params_for_hmac(params, exclude, separator):
    """Sort params by key and join them as `key=value` with `separator`."""
    return separator.join(
        f"{k}={v}" for (k, v) in sorted(params.items()) if k != exclude
    )


def calculate_hmac(secret, message):
    return hmac.new(
        secret.encode("utf8"), message.encode("utf8"), hashlib.sha256
    ).hexdigest()


def check_hmac_matches(our_hmac, hmac_to_check):
    """Constant time compare that never raises for odd input.

    Comparing bytes avoids the TypeError `compare_digest` raises for
    non-ascii strings, differing lengths just compare unequal.
    """
    if not hmac_to_check or not isinstance(hmac_to_check, str):
        return False
    try:
        claimed = hmac_to_check.encode("utf8")
    except UnicodeEncodeError:
        return False
    return hmac.compare_digest(our_hmac.encode("utf8"), claimed)


def signature_checks_bypassed(secret):
    return not secret


def verify_oauth_signature(params, claimed_hmac, secret):
    """Verify an install or oauth callback request."""
    if signature_checks_bypassed(secret):
        logger.warning("SHOPIFY_API_SECRET not set - skipping HMAC verification")
        return True
    message = encode_params_for_hmac(params, OAUTH_SIGNATURE_PARAM, OAUTH_SEPARATOR)
    verified = check_hmac_matches(calculate_hmac(secret, message), claimed_hmac)
    if not verified:
        logger.info("OAuth HMAC does not match for shop %s", params.get("shop"))
    return verified


def verify_proxy_signature(params, secret):
    """Verify an app proxy request, the signature travels in the params."""
    if signature_checks_bypassed(secret):
        logger.warning(
            "SHOPIFY_API_SECRET not set - skipping app proxy signature verification"
        )
        return True
    claimed = params.get(PROXY_SIGNATURE_PARAM)
    if not claimed:
        logger.info("App proxy request has no signature")
        return False
    message = encode_params_for_hmac(params, PROXY_SIGNATURE_PARAM, PROXY_SEPARATOR)
    verified = check_hmac_matches(calculate_hmac(secret, message), claimed)
    if not verified:
        logger.info("App proxy signature does not match for shop %s", params.get("shop"))
    return verified


@dataclass(frozen=True)
class SignatureVerifier:
    """Binds the verification functions to the configured secret."""

    secret: str

    @property
    def bypassed(self):
        return signature_checks_bypassed(self.secret)

    def verify_oauth(self, params):
        return verify_oauth_signature(
            params, params.get(OAUTH_SIGNATURE_PARAM), self.secret
        )

    def verify_proxy(self, params):
        return verify_proxy_signature(params, self.secret)
