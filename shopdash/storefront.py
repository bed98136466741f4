import logging
from dataclasses import dataclass
from typing import Optional

import requests
import zope.interface

from . import graphql
from .config import DashboardConfig
from .exceptions import UpstreamError
from .interfaces import IStorefrontAPI

logger = logging.getLogger(__name__)


@dataclass
class CustomerAccessToken:
    access_token: str
    # utc iso stamp
    expires_at: Optional[str]

    @classmethod
    def from_node(cls, node):
        if not node or not node.get("accessToken"):
            return None
        return cls(access_token=node["accessToken"], expires_at=node.get("expiresAt"))


@zope.interface.implementer(IStorefrontAPI)
@dataclass
class StorefrontAPIService:
    """
    Customer facing calls against the Storefront API.

    One attempt per call, no retries.  Anything other than a 200 with no
    top level graphql errors raises `UpstreamError`.
    """

    config: DashboardConfig

    api_url: str = "https://{store_domain}/api/{api_version}/graphql.json"

    def get_api_url(self):
        return self.api_url.format(
            store_domain=self.config.store_domain,
            api_version=self.config.storefront_api_version,
        )

    def get_headers(self, customer_access_token=None):
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "X-Shopify-Storefront-Access-Token": self.config.storefront_access_token,
        }
        if customer_access_token:
            headers["X-Shopify-Customer-Access-Token"] = customer_access_token
        return headers

    def execute_graphql(self, query, variables=None, customer_access_token=None):
        """
        Post `query` and return the `data` member of the response body.

        raise:
            UpstreamError on transport failure, non-200 or graphql errors.
        """
        payload = {"query": query, "variables": variables or {}}
        try:
            response = requests.post(
                self.get_api_url(),
                json=payload,
                headers=self.get_headers(customer_access_token),
                timeout=self.config.http_timeout_in_seconds,
            )
        except requests.RequestException as e:
            raise UpstreamError(f"Storefront API request failed: {e}") from e
        if response.status_code != requests.codes.ok:
            raise UpstreamError(
                f"Storefront API request failed: {response.status_code}",
                status=response.status_code,
            )
        try:
            body = response.json()
        except ValueError as e:
            raise UpstreamError("Storefront API returned invalid json") from e
        if not isinstance(body, dict):
            raise UpstreamError("Storefront API returned an unexpected body")
        errors = body.get("errors")
        if errors:
            logger.error("GraphQL errors: %s", errors)
            message = errors[0].get("message") if isinstance(errors, list) else None
            raise UpstreamError(message or "GraphQL request failed")
        return body.get("data") or {}

    def create_customer_access_token(self, email, password):
        """Exchange credentials for a token.

        Returns a 2-tuple of (CustomerAccessToken or None, customer user errors).
        """
        data = self.execute_graphql(
            graphql.CUSTOMER_ACCESS_TOKEN_CREATE,
            {"input": {"email": email, "password": password}},
        )
        result = data.get("customerAccessTokenCreate") or {}
        return (
            CustomerAccessToken.from_node(result.get("customerAccessToken")),
            result.get("customerUserErrors") or [],
        )

    def delete_customer_access_token(self, access_token):
        self.execute_graphql(
            graphql.CUSTOMER_ACCESS_TOKEN_DELETE,
            {"customerAccessToken": access_token},
        )
        return True

    def renew_customer_access_token(self, access_token):
        data = self.execute_graphql(
            graphql.CUSTOMER_ACCESS_TOKEN_RENEW,
            {"customerAccessToken": access_token},
        )
        result = data.get("customerAccessTokenRenew") or {}
        if result.get("userErrors"):
            logger.info("Token renewal refused: %s", result["userErrors"][0].get("message"))
        return CustomerAccessToken.from_node(result.get("customerAccessToken"))

    def get_customer(self, access_token):
        data = self.execute_graphql(
            graphql.CUSTOMER_QUERY,
            {"customerAccessToken": access_token},
            customer_access_token=access_token,
        )
        return data.get("customer")

    def get_customer_orders(self, access_token, first=10):
        data = self.execute_graphql(
            graphql.CUSTOMER_ORDERS_QUERY,
            {"customerAccessToken": access_token, "first": first},
            customer_access_token=access_token,
        )
        customer = data.get("customer")
        if not customer:
            return []
        edges = (customer.get("orders") or {}).get("edges") or []
        return [edge["node"] for edge in edges if edge and edge.get("node")]
