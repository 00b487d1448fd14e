# Shopify Admin API lookups mapping an order (or product ids) to the care guide
# articles referenced by each product's custom.care_guide metafield.
#
# NOTE:
# * Shopify sometimes returns HTTP 200 with GraphQL errors and sometimes a
#   non-200 for auth issues, so both are checked.
# * Failures are returned as Failure values, never as an empty list, so that
#   "no guides" and "Shopify is down" stay distinguishable.

import enum
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Union

import requests

from care_guides.guides import article_url

LOG = logging.getLogger()

X_SHOPIFY_ACCESS_TOKEN = "X-Shopify-Access-Token"

FIND_ORDER_QUERY = """
  query FindOrder($q: String!) {
    orders(first: 1, query: $q, sortKey: PROCESSED_AT, reverse: true) {
      edges {
        node {
          name
          lineItems(first: 100) {
            edges {
              node {
                product { id }
              }
            }
          }
        }
      }
    }
  }
"""

# the metafield is a "Blog post" reference (Article); the storefront URL is built
# from the stable handles rather than trusting any stored URL
PRODUCT_CARE_GUIDE_REFERENCE_QUERY = """
  query ProductCareGuideRefs($ids: [ID!]!) {
    nodes(ids: $ids) {
      ... on Product {
        id
        metafield(namespace: "custom", key: "care_guide") {
          reference {
            ... on Article {
              handle
              blog { handle }
              title
            }
          }
        }
      }
    }
  }
"""


class FailureKind(enum.Enum):
    NOT_FOUND = "not_found"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    UPSTREAM_DATA_ERROR = "upstream_data_error"


@dataclass(frozen=True)
class Failure:
    kind: FailureKind
    detail: str = ""


@dataclass(frozen=True)
class GuideLookup:
    urls: List[str] = field(default_factory=list)
    order_name: Optional[str] = None


LookupResult = Union[GuideLookup, Failure]


class UpstreamError(Exception):
    def __init__(self, kind: FailureKind, detail: str):
        super().__init__(detail)
        self.kind = kind
        self.detail = detail


class ShopifyClient:
    """
    Minimal Admin GraphQL client (no retries or pagination).
    """

    def __init__(self, shop_domain, token, api_version, timeout=10.0, session=None):
        self._url = f"https://{shop_domain}/admin/api/{api_version}/graphql.json"
        self._token = token
        self._timeout = timeout
        self._session = session or requests.Session()

    @property
    def url(self) -> str:
        return self._url

    def graphql(self, query: str, variables: dict = None) -> dict:
        headers = {
            "Content-Type": "application/json",
            X_SHOPIFY_ACCESS_TOKEN: self._token,
        }
        try:
            response = self._session.post(
                self._url,
                json={"query": query, "variables": variables or {}},
                headers=headers,
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            raise UpstreamError(
                FailureKind.UPSTREAM_UNAVAILABLE, f"Shopify request failed: {e}"
            ) from e

        if response.status_code >= 500 or response.status_code == 429:
            raise UpstreamError(
                FailureKind.UPSTREAM_UNAVAILABLE, f"Shopify HTTP {response.status_code}"
            )

        try:
            body = response.json()
        except ValueError as e:
            raise UpstreamError(
                FailureKind.UPSTREAM_DATA_ERROR,
                f"Shopify returned non-JSON: HTTP {response.status_code} {response.text[:500]}",
            ) from e

        if not response.ok:
            detail = body.get("errors", body) if isinstance(body, dict) else body
            raise UpstreamError(
                FailureKind.UPSTREAM_DATA_ERROR,
                f"Shopify HTTP {response.status_code}: {detail}",
            )

        if not isinstance(body, dict):
            raise UpstreamError(FailureKind.UPSTREAM_DATA_ERROR, "Shopify returned a non-object body")
        if body.get("errors"):
            raise UpstreamError(
                FailureKind.UPSTREAM_DATA_ERROR, f"Shopify GraphQL error: {body['errors']}"
            )
        data = body.get("data")
        if not isinstance(data, dict):
            raise UpstreamError(FailureKind.UPSTREAM_DATA_ERROR, "Shopify response has no data")
        return data


def _edges(container, key: str) -> list:
    """
    Return container[key]["edges"], raising ValueError when the shape is wrong.
    """
    if not isinstance(container, dict):
        raise ValueError(f"expected an object holding '{key}'")
    connection = container.get(key)
    if connection is None:
        return []
    if not isinstance(connection, dict) or not isinstance(connection.get("edges", []), list):
        raise ValueError(f"'{key}' is not a connection")
    return connection.get("edges", [])


class ShopifyGuideResolver:
    def __init__(self, client: ShopifyClient, storefront_base: str):
        self._client = client
        self._storefront_base = storefront_base

    def resolve_order(self, order: str) -> LookupResult:
        order_number = order.strip().lstrip("#")
        if not order_number:
            return Failure(FailureKind.NOT_FOUND, "empty order number")

        try:
            data = self._client.graphql(FIND_ORDER_QUERY, {"q": f"name:#{order_number}"})
            edges = _edges(data, "orders")
            if not edges:
                LOG.info(f"Order #{order_number} not found")
                return Failure(FailureKind.NOT_FOUND, f"order #{order_number} not found")

            node = edges[0].get("node") if isinstance(edges[0], dict) else None
            if not isinstance(node, dict):
                raise ValueError("order edge has no node")
            order_name = node.get("name") or f"#{order_number}"

            product_ids = []
            for item in _edges(node, "lineItems"):
                product = ((item or {}).get("node") or {}).get("product") or {}
                pid = product.get("id")
                if pid and pid not in product_ids:
                    product_ids.append(pid)
        except UpstreamError as e:
            return Failure(e.kind, e.detail)
        except (ValueError, AttributeError) as e:
            return Failure(FailureKind.UPSTREAM_DATA_ERROR, f"Unexpected order payload: {e}")

        if not product_ids:
            return GuideLookup([], order_name)

        result = self.resolve_products(product_ids)
        if isinstance(result, Failure):
            return result
        return GuideLookup(result.urls, order_name)

    def resolve_products(self, product_ids: List[str]) -> LookupResult:
        if not product_ids:
            return GuideLookup([])

        try:
            data = self._client.graphql(
                PRODUCT_CARE_GUIDE_REFERENCE_QUERY, {"ids": list(product_ids)}
            )
            nodes = data.get("nodes") or []
            if not isinstance(nodes, list):
                raise ValueError("'nodes' is not a list")

            urls = []
            for node in nodes:
                # deleted products come back as null nodes
                reference = ((node or {}).get("metafield") or {}).get("reference") or {}
                blog = reference.get("blog") or {}
                url = article_url(
                    self._storefront_base, blog.get("handle"), reference.get("handle")
                )
                if url:
                    urls.append(url)
        except UpstreamError as e:
            return Failure(e.kind, e.detail)
        except (ValueError, AttributeError) as e:
            return Failure(FailureKind.UPSTREAM_DATA_ERROR, f"Unexpected product payload: {e}")

        return GuideLookup(urls)


def resolver_from_config(config) -> Optional[ShopifyGuideResolver]:
    if not config.order_lookup_enabled:
        LOG.warning(
            "Order lookups are disabled (set SHOPIFY_SHOP_DOMAIN and SHOPIFY_ADMIN_API_TOKEN)"
        )
        return None

    client = ShopifyClient(
        config.shop_domain,
        config.admin_api_token,
        config.api_version,
        timeout=config.upstream_timeout,
    )
    LOG.info(f"Using Shopify Admin API {client.url}")
    return ShopifyGuideResolver(client, config.storefront_base)
