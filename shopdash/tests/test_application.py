"""API tests for the dashboard app."""

import base64
import hashlib
import hmac
import json
from unittest import TestCase, mock
from urllib.parse import parse_qs, urlencode, urlparse

from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from webob import Request

from ..app import make_app
from ..config import DashboardConfig
from ..cookieserializer import EncryptedCookieSerializer
from ..exceptions import UpstreamError

API_SECRET = "shpss_test_secret"

SESSION_SECRET = "a_session_secret_that_is_32_bytes_or_more"

COOKIE_NAME = "shopify_customer_session"

FUTURE = "2999-01-01T00:00:00Z"

PAST = "2000-01-01T00:00:00Z"

SHOP = "some-shop.myshopify.com"


def make_config(**kwargs):
    values = dict(
        api_key="key",
        api_secret=API_SECRET,
        app_url="https://dash.example.com",
        store_domain=SHOP,
        storefront_access_token="sf_token",
        session_secret=SESSION_SECRET,
    )
    values.update(kwargs)
    return DashboardConfig(**values)


def json_response(body, status_code=200):
    response = mock.MagicMock()
    response.status_code = status_code
    response.json.return_value = body
    response.text = json.dumps(body)
    return response


def get_cookie_value(response, name=COOKIE_NAME):
    for header in response.headers.getall("Set-Cookie"):
        cookie_name, _, rest = header.partition("=")
        if cookie_name == name:
            return rest.split(";", 1)[0]
    return None


def read_cookie(response, name=COOKIE_NAME):
    return EncryptedCookieSerializer(SESSION_SECRET).loads(get_cookie_value(response, name))


def session_cookie(access_token="tok", expires_at=FUTURE, is_logged_in=True):
    return EncryptedCookieSerializer(SESSION_SECRET).dumps(
        {
            "customerAccessToken": access_token,
            "tokenExpiresAt": expires_at,
            "isLoggedIn": is_logged_in,
        }
    )


def oauth_hmac(params):
    message = "&".join(f"{k}={v}" for k, v in sorted(params.items()) if k != "hmac")
    return hmac.new(API_SECRET.encode(), message.encode(), hashlib.sha256).hexdigest()


def proxy_signature(params):
    message = "".join(
        f"{k}={v}" for k, v in sorted(params.items()) if k != "signature"
    )
    return hmac.new(API_SECRET.encode(), message.encode(), hashlib.sha256).hexdigest()


class AppTestCase(TestCase):
    config = None

    def setUp(self):
        self.app = make_app(self.config or make_config())

    def get(self, path, params=None, cookie=None):
        if params:
            path = f"{path}?{urlencode(params)}"
        request = Request.blank(path)
        if cookie:
            request.headers["Cookie"] = f"{COOKIE_NAME}={cookie}"
        return request.get_response(self.app)

    def post(self, path, body=None, cookie=None, raw_body=None):
        request = Request.blank(path, method="POST")
        request.content_type = "application/json"
        if raw_body is not None:
            request.body = raw_body
        else:
            request.body = json.dumps(body or {}).encode("utf8")
        if cookie:
            request.headers["Cookie"] = f"{COOKIE_NAME}={cookie}"
        return request.get_response(self.app)


class TestHealth(AppTestCase):
    def test_healthz(self):
        response = self.get("/healthz")
        self.assertEqual(response.status_int, 200)
        self.assertEqual(response.json_body, {"status": "ok"})


@mock.patch("shopdash.storefront.requests.post")
class TestLogin(AppTestCase):
    def test_valid_credentials(self, mock_post):
        mock_post.return_value = json_response(
            {
                "data": {
                    "customerAccessTokenCreate": {
                        "customerAccessToken": {"accessToken": "tok", "expiresAt": FUTURE},
                        "customerUserErrors": [],
                    }
                }
            }
        )
        response = self.post(
            "/auth/login", {"email": "ada@example.com", "password": "pw"}
        )
        self.assertEqual(response.status_int, 200)
        self.assertTrue(response.json_body["success"])

        payload = read_cookie(response)
        self.assertTrue(payload["isLoggedIn"])
        self.assertEqual(payload["customerAccessToken"], "tok")
        self.assertEqual(payload["tokenExpiresAt"], FUTURE)

        header = [
            h for h in response.headers.getall("Set-Cookie") if h.startswith(COOKIE_NAME)
        ][0].lower()
        self.assertIn("httponly", header)
        self.assertIn("samesite=lax", header)
        self.assertIn("max-age=604800", header)

    def test_invalid_email(self, mock_post):
        response = self.post("/auth/login", {"email": "nope", "password": "pw"})
        self.assertEqual(response.status_int, 400)
        self.assertEqual(response.json_body, {"error": "Invalid email address"})
        mock_post.assert_not_called()

    def test_body_not_json(self, mock_post):
        response = self.post("/auth/login", raw_body=b"email=ada")
        self.assertEqual(response.status_int, 400)

    def test_bad_credentials(self, mock_post):
        mock_post.return_value = json_response(
            {
                "data": {
                    "customerAccessTokenCreate": {
                        "customerAccessToken": None,
                        "customerUserErrors": [
                            {"code": "UNIDENTIFIED_CUSTOMER", "message": "Unidentified customer"}
                        ],
                    }
                }
            }
        )
        response = self.post(
            "/auth/login", {"email": "ada@example.com", "password": "wrong"}
        )
        self.assertEqual(response.status_int, 401)
        self.assertEqual(response.json_body, {"error": "Unidentified customer"})
        self.assertIsNone(get_cookie_value(response))

    def test_token_without_expiry(self, mock_post):
        mock_post.return_value = json_response(
            {
                "data": {
                    "customerAccessTokenCreate": {
                        "customerAccessToken": {"accessToken": "tok", "expiresAt": None},
                        "customerUserErrors": [],
                    }
                }
            }
        )
        response = self.post(
            "/auth/login", {"email": "ada@example.com", "password": "pw"}
        )
        self.assertEqual(response.status_int, 401)
        self.assertEqual(response.json_body, {"error": "Authentication failed"})
        self.assertIsNone(get_cookie_value(response))

    def test_upstream_failure(self, mock_post):
        mock_post.return_value = json_response({}, status_code=502)
        response = self.post(
            "/auth/login", {"email": "ada@example.com", "password": "pw"}
        )
        self.assertEqual(response.status_int, 500)
        self.assertEqual(response.json_body, {"error": "An unexpected error occurred"})


@mock.patch("shopdash.storefront.requests.post")
class TestSession(AppTestCase):
    def test_no_cookie(self, mock_post):
        response = self.get("/auth/session")
        self.assertEqual(response.status_int, 200)
        self.assertEqual(response.json_body, {"isLoggedIn": False, "customer": None})
        mock_post.assert_not_called()

    def test_expired_token(self, mock_post):
        response = self.get("/auth/session", cookie=session_cookie(expires_at=PAST))
        self.assertEqual(response.status_int, 200)
        self.assertFalse(response.json_body["isLoggedIn"])
        self.assertIsNone(response.json_body["customer"])
        self.assertFalse(read_cookie(response)["isLoggedIn"])
        self.assertIsNone(read_cookie(response)["customerAccessToken"])
        mock_post.assert_not_called()

    def test_valid_session(self, mock_post):
        mock_post.return_value = json_response(
            {
                "data": {
                    "customer": {
                        "id": "gid://shopify/Customer/1",
                        "firstName": "Ada",
                        "lastName": "Lovelace",
                        "displayName": "Ada Lovelace",
                        "email": "ada@example.com",
                        "numberOfOrders": "2",
                    }
                }
            }
        )
        response = self.get("/auth/session", cookie=session_cookie())
        self.assertEqual(response.status_int, 200)
        self.assertTrue(response.json_body["isLoggedIn"])
        self.assertEqual(response.json_body["customer"]["displayName"], "Ada Lovelace")

    def test_tampered_cookie_is_logged_out(self, mock_post):
        response = self.get("/auth/session", cookie="forged" + session_cookie()[6:])
        self.assertEqual(response.json_body, {"isLoggedIn": False, "customer": None})

    def test_upstream_failure(self, mock_post):
        mock_post.side_effect = UpstreamError("down")
        response = self.get("/auth/session", cookie=session_cookie())
        self.assertEqual(response.status_int, 500)
        self.assertFalse(response.json_body["isLoggedIn"])
        self.assertIn("error", response.json_body)

    def test_unexpected_upstream_body(self, mock_post):
        mock_post.return_value = json_response([])
        response = self.get("/auth/session", cookie=session_cookie())
        self.assertEqual(response.status_int, 500)
        self.assertFalse(response.json_body["isLoggedIn"])
        self.assertIsNone(response.json_body["customer"])


@mock.patch("shopdash.storefront.requests.post")
class TestLogout(AppTestCase):
    def test_logout_twice(self, mock_post):
        mock_post.return_value = json_response({"data": {}})
        first = self.post("/auth/logout", cookie=session_cookie())
        self.assertEqual(first.status_int, 200)
        self.assertFalse(read_cookie(first)["isLoggedIn"])

        second = self.post("/auth/logout", cookie=get_cookie_value(first))
        self.assertEqual(second.status_int, 200)
        self.assertEqual(
            read_cookie(second),
            {"customerAccessToken": None, "tokenExpiresAt": None, "isLoggedIn": False},
        )
        # Only the first call had a token to revoke.
        self.assertEqual(mock_post.call_count, 1)

    def test_logout_when_revoke_fails(self, mock_post):
        mock_post.return_value = json_response({}, status_code=500)
        response = self.post("/auth/logout", cookie=session_cookie())
        self.assertEqual(response.status_int, 200)
        self.assertFalse(read_cookie(response)["isLoggedIn"])


@mock.patch("shopdash.storefront.requests.post")
class TestRenew(AppTestCase):
    def test_renew(self, mock_post):
        mock_post.return_value = json_response(
            {
                "data": {
                    "customerAccessTokenRenew": {
                        "customerAccessToken": {
                            "accessToken": "tok2",
                            "expiresAt": "2999-06-01T00:00:00Z",
                        },
                        "userErrors": [],
                    }
                }
            }
        )
        response = self.post("/auth/renew", cookie=session_cookie())
        self.assertEqual(response.status_int, 200)
        self.assertEqual(response.json_body["expiresAt"], "2999-06-01T00:00:00Z")
        self.assertEqual(read_cookie(response)["customerAccessToken"], "tok2")

    def test_renew_expired(self, mock_post):
        response = self.post("/auth/renew", cookie=session_cookie(expires_at=PAST))
        self.assertEqual(response.status_int, 401)
        self.assertFalse(read_cookie(response)["isLoggedIn"])
        mock_post.assert_not_called()


@mock.patch("shopdash.storefront.requests.post")
class TestOrders(AppTestCase):
    def test_orders(self, mock_post):
        order = {"id": "gid://shopify/Order/1", "orderNumber": 1001}
        mock_post.return_value = json_response(
            {"data": {"customer": {"orders": {"edges": [{"node": order}]}}}}
        )
        response = self.get("/customer/orders", cookie=session_cookie())
        self.assertEqual(response.status_int, 200)
        self.assertEqual(response.json_body, {"isLoggedIn": True, "orders": [order]})

    def test_not_logged_in(self, mock_post):
        response = self.get("/customer/orders")
        self.assertEqual(response.json_body, {"isLoggedIn": False, "orders": []})
        mock_post.assert_not_called()

    def test_expired(self, mock_post):
        response = self.get("/customer/orders", cookie=session_cookie(expires_at=PAST))
        self.assertEqual(response.json_body, {"isLoggedIn": False, "orders": []})
        self.assertFalse(read_cookie(response)["isLoggedIn"])
        mock_post.assert_not_called()


@mock.patch("shopdash.admin_api.requests.post")
class TestProxyCustomer(AppTestCase):
    def test_no_privileged_token(self, mock_post):
        response = self.get(
            "/proxy/customer", {"logged_in_customer_id": "123", "shop": SHOP}
        )
        self.assertEqual(response.status_int, 200)
        self.assertTrue(response.json_body["isLoggedIn"])
        self.assertEqual(response.json_body["customer"], {"id": "123"})
        self.assertIn("limited data", response.json_body["message"])
        mock_post.assert_not_called()

    def test_not_logged_in_on_storefront(self, mock_post):
        response = self.get("/proxy/customer", {"shop": SHOP})
        self.assertEqual(response.status_int, 200)
        self.assertFalse(response.json_body["isLoggedIn"])
        self.assertIsNone(response.json_body["customer"])


@mock.patch("shopdash.admin_api.requests.post")
class TestProxyCustomerInProduction(AppTestCase):
    config = make_config(environment="production", admin_access_token="shpat_x")

    def signed_params(self):
        params = {
            "logged_in_customer_id": "123",
            "path_prefix": "/apps/dashboard",
            "shop": SHOP,
            "timestamp": "1317327555",
        }
        params["signature"] = proxy_signature(params)
        return params

    def test_bad_signature(self, mock_post):
        params = self.signed_params()
        params["logged_in_customer_id"] = "999"
        response = self.get("/proxy/customer", params)
        self.assertEqual(response.status_int, 401)
        self.assertEqual(response.json_body, {"error": "Invalid signature"})
        mock_post.assert_not_called()

    def test_unsigned(self, mock_post):
        response = self.get(
            "/proxy/customer", {"logged_in_customer_id": "123", "shop": SHOP}
        )
        self.assertEqual(response.status_int, 401)

    def test_full_identity(self, mock_post):
        mock_post.return_value = json_response(
            {
                "data": {
                    "customer": {
                        "id": "gid://shopify/Customer/123",
                        "email": "ada@example.com",
                        "firstName": "Ada",
                        "lastName": "Lovelace",
                        "displayName": "Ada Lovelace",
                        "ordersCount": "4",
                    }
                }
            }
        )
        response = self.get("/proxy/customer", self.signed_params())
        self.assertEqual(response.status_int, 200)
        self.assertEqual(response.json_body["customer"]["numberOfOrders"], "4")
        self.assertNotIn("message", response.json_body)


@mock.patch("shopdash.admin_api.requests.post")
class TestOAuthCallback(AppTestCase):
    def signed_params(self, **extra):
        params = {
            "code": "0907a61c0c8d55e99db179b68161bc00",
            "shop": SHOP,
            "timestamp": "1337178173",
        }
        params.update(extra)
        params["hmac"] = oauth_hmac(params)
        return params

    def test_bad_hmac_does_not_exchange(self, mock_post):
        params = self.signed_params()
        params["hmac"] = "0" * 64
        response = self.get("/auth/callback", params)
        self.assertEqual(response.status_int, 401)
        mock_post.assert_not_called()

    def test_missing_params(self, mock_post):
        response = self.get("/auth/callback", {"shop": SHOP})
        self.assertEqual(response.status_int, 400)
        mock_post.assert_not_called()

    def test_exchange_and_redirect(self, mock_post):
        mock_post.return_value = json_response(
            {"access_token": "shpat_new", "scope": "read_customers"}
        )
        state = base64.b64encode(b"admin.shopify.com/store/some-shop").decode()
        response = self.get("/auth/callback", self.signed_params(state=state))
        self.assertEqual(response.status_int, 302)
        self.assertEqual(response.location, "https://admin.shopify.com/store/some-shop")
        args, kwargs = mock_post.call_args
        self.assertEqual(args[0], f"https://{SHOP}/admin/oauth/access_token")
        self.assertEqual(kwargs["json"]["code"], "0907a61c0c8d55e99db179b68161bc00")

    def test_oauth_alias_route(self, mock_post):
        mock_post.return_value = json_response({"access_token": "shpat_new"})
        response = self.get("/oauth/callback", self.signed_params())
        self.assertEqual(response.status_int, 302)
        self.assertEqual(response.location, "https://admin.shopify.com/store/some-shop")

    def test_exchange_failure(self, mock_post):
        mock_post.return_value = json_response({"error": "bad"}, status_code=400)
        response = self.get("/auth/callback", self.signed_params())
        self.assertEqual(response.status_int, 500)
        self.assertEqual(response.json_body, {"error": "Failed to get access token"})


@mock.patch("shopdash.admin_api.requests.post")
class TestOAuthCallbackWithTokenStore(TestCase):
    def setUp(self):
        self.engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        self.app = make_app(make_config(), engine=self.engine)

    def tearDown(self):
        self.engine.dispose()

    def test_token_is_stored_and_used_by_proxy(self, mock_post):
        params = {"code": "c0de", "shop": SHOP, "timestamp": "1337178173"}
        params["hmac"] = oauth_hmac(params)
        mock_post.return_value = json_response({"access_token": "shpat_stored"})
        response = Request.blank(f"/auth/callback?{urlencode(params)}").get_response(
            self.app
        )
        self.assertEqual(response.status_int, 302)

        mock_post.return_value = json_response(
            {"data": {"customer": {"id": "gid://shopify/Customer/123"}}}
        )
        query = urlencode({"logged_in_customer_id": "123", "shop": SHOP})
        response = Request.blank(f"/proxy/customer?{query}").get_response(self.app)
        self.assertEqual(response.status_int, 200)
        _, kwargs = mock_post.call_args
        self.assertEqual(kwargs["headers"]["X-Shopify-Access-Token"], "shpat_stored")


class TestInstall(AppTestCase):
    def test_redirects_to_authorize(self):
        response = self.get("/install", {"shop": SHOP, "host": "aG9zdA"})
        self.assertEqual(response.status_int, 302)
        parsed = urlparse(response.location)
        self.assertEqual(parsed.netloc, SHOP)
        query = parse_qs(parsed.query)
        self.assertEqual(query["client_id"], ["key"])
        self.assertEqual(query["state"], ["aG9zdA"])
        self.assertEqual(
            query["redirect_uri"], ["https://dash.example.com/auth/callback"]
        )

    def test_missing_shop(self):
        self.assertEqual(self.get("/install").status_int, 400)

    def test_malformed_shop(self):
        self.assertEqual(
            self.get("/install", {"shop": "evil.example.com"}).status_int, 400
        )

    def test_bad_hmac(self):
        response = self.get("/install", {"shop": SHOP, "hmac": "0" * 64})
        self.assertEqual(response.status_int, 401)

    def test_signed_install(self):
        params = {"shop": SHOP, "timestamp": "1337178173"}
        params["hmac"] = oauth_hmac(params)
        self.assertEqual(self.get("/install", params).status_int, 302)


class TestInstallUnconfigured(AppTestCase):
    config = make_config(api_key="")

    def test_missing_api_key(self):
        response = self.get("/install", {"shop": SHOP})
        self.assertEqual(response.status_int, 500)
        self.assertEqual(response.json_body, {"error": "App not configured"})
