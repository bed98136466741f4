import logging
from dataclasses import dataclass
from urllib.parse import urlencode

import requests
import zope.interface

from . import graphql
from .config import DashboardConfig
from .exceptions import ConfigurationError, UpstreamError
from .interfaces import IAdminAPI

logger = logging.getLogger(__name__)


@dataclass
class AdminAccessToken:
    access_token: str
    scope: str = ""


@zope.interface.implementer(IAdminAPI)
@dataclass
class AdminAPIService:
    """
    Merchant side calls: the oauth handshake and privileged customer lookups.
    """

    config: DashboardConfig

    def build_authorize_url(self, shop_host, host=None):
        """Where to send the merchant to approve our scopes on install."""
        if not self.config.api_key:
            raise ConfigurationError("SHOPIFY_API_KEY is not set.")
        query_string = urlencode(
            {
                "client_id": self.config.api_key,
                "scope": self.config.scopes,
                # This tells shopify where to send the callback with our grant code.
                "redirect_uri": self.config.auth_callback_url,
                # Round trip the admin host so the callback knows where to go back to.
                "state": host or "",
            }
        )
        return f"https://{shop_host}/admin/oauth/authorize?{query_string}"

    def request_access_token(self, shop_host, grant_code):
        """
        Use grant code from shopify to fetch the offline access token.
        """
        if not self.config.api_key or not self.config.api_secret:
            raise ConfigurationError("SHOPIFY_API_KEY and SHOPIFY_API_SECRET must be set.")
        try:
            response = requests.post(
                f"https://{shop_host}/admin/oauth/access_token",
                json={
                    "client_id": self.config.api_key,
                    "client_secret": self.config.api_secret,
                    "code": grant_code,
                },
                timeout=self.config.http_timeout_in_seconds,
            )
        except requests.RequestException as e:
            raise UpstreamError(f"Token exchange failed: {e}") from e
        if response.status_code != requests.codes.ok:
            logger.error("Token exchange failed: %s", response.text)
            raise UpstreamError(
                f"Token exchange failed: {response.status_code}",
                status=response.status_code,
            )
        try:
            json_payload = response.json()
        except ValueError as e:
            raise UpstreamError("Token exchange returned invalid json") from e
        if not isinstance(json_payload, dict) or not json_payload.get("access_token"):
            raise UpstreamError("Token exchange returned no access token")
        return AdminAccessToken(
            access_token=json_payload["access_token"],
            scope=json_payload.get("scope", ""),
        )

    def execute_graphql(self, shop_host, access_token, query, variables=None):
        url = f"https://{shop_host}/admin/api/{self.config.admin_api_version}/graphql.json"
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "X-Shopify-Access-Token": access_token,
        }
        payload = {"query": query}
        if variables:
            payload["variables"] = variables
        try:
            response = requests.post(
                url,
                json=payload,
                headers=headers,
                timeout=self.config.http_timeout_in_seconds,
            )
        except requests.RequestException as e:
            raise UpstreamError(f"Admin API request failed: {e}") from e
        if response.status_code != requests.codes.ok:
            raise UpstreamError(
                f"Admin API request failed: {response.status_code}",
                status=response.status_code,
            )
        try:
            body = response.json()
        except ValueError as e:
            raise UpstreamError("Admin API returned invalid json") from e
        if not isinstance(body, dict):
            raise UpstreamError("Admin API returned an unexpected body")
        if body.get("errors"):
            logger.error("GraphQL errors: %s", body["errors"])
            raise UpstreamError("Admin API graphql errors")
        return body.get("data") or {}

    def get_customer_by_id(self, shop_host, access_token, customer_id):
        """Look up a customer by its numeric id, None if shopify has no such customer."""
        data = self.execute_graphql(
            shop_host,
            access_token,
            graphql.ADMIN_CUSTOMER_BY_ID_QUERY,
            {"id": f"gid://shopify/Customer/{customer_id}"},
        )
        return data.get("customer")
