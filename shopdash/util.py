import base64
import binascii
import re
from urllib.parse import urlsplit

MYSHOPIFY_DOMAIN = "myshopify.com"

ADMIN_HOST = "admin.shopify.com"

_SHOP_HOST_RE = re.compile(r"^[a-z0-9][a-z0-9-]*\.myshopify\.com$")

_UNSAFE_HOST_CHARS_RE = re.compile(r"[?#@\\\s]")


def extract_shop_name(shop_host, myshopify_domain=MYSHOPIFY_DOMAIN):
    suffix = "." + myshopify_domain
    if shop_host.endswith(suffix):
        return shop_host[: -len(suffix)]
    return None


def is_valid_shop_host(shop_host):
    return bool(shop_host) and bool(_SHOP_HOST_RE.fullmatch(shop_host))


def decode_host(encoded_host):
    """Decode the base64 `host` param shopify hands us.

    Shopify sometimes drops the padding so we put it back.  Returns None if
    the value can't be decoded.
    """
    if not encoded_host:
        return None
    padded = encoded_host + "=" * (-len(encoded_host) % 4)
    try:
        return base64.b64decode(padded, validate=True).decode("utf8")
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return None


def is_admin_host(host):
    """Only redirect back into the admin or a shop's own domain.

    Judged on the hostname a browser would actually use, anything that could
    move the host boundary (query, fragment, userinfo, backslash, whitespace)
    is refused outright.
    """
    if _UNSAFE_HOST_CHARS_RE.search(host):
        return False
    try:
        hostname = urlsplit("https://" + host).hostname
    except ValueError:
        return False
    if not hostname:
        return False
    return hostname == ADMIN_HOST or hostname.endswith("." + MYSHOPIFY_DOMAIN)


def fallback_admin_host(shop_host):
    shop_name = extract_shop_name(shop_host) or shop_host
    return f"{ADMIN_HOST}/store/{shop_name}"


def mask_token(token, visible=4):
    if not token:
        return ""
    return "*" * max(len(token) - visible, 0) + token[-visible:]
