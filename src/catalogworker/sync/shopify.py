"""
Shopify Admin GraphQL client.

Implements both the CatalogSource (paginated product reads) and the
CatalogMutations (price, inventory, cost, status writes) contracts on one
httpx.AsyncClient. All values travel as GraphQL variables.

Failure mapping:
- HTTP 401/403 or an auth-looking error message -> AuthExpired
- HTTP 429 or a THROTTLED error code -> ThrottledError
- other top-level GraphQL errors -> MutationFailure
- userErrors are returned as plain messages to the caller
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

import httpx

from ..errors import AuthExpired, MutationFailure, ThrottledError, is_auth_message
from .models import CatalogPage, InternalProduct, InternalVariant, ProductStatus

logger = logging.getLogger(__name__)


# =============================================================================
# GraphQL documents
# =============================================================================

PRODUCTS_QUERY = """
query Products($first: Int!, $after: String) {
  products(first: $first, after: $after) {
    pageInfo { hasNextPage endCursor }
    nodes {
      id
      title
      status
      variants(first: 250) {
        nodes {
          id
          sku
          barcode
          inventoryItem { id tracked }
        }
      }
    }
  }
}
"""

LOCATIONS_QUERY = """
query Locations {
  locations(first: 10) {
    nodes { id name isActive }
  }
}
"""

SET_PRICE_MUTATION = """
mutation SetPrice($productId: ID!, $variants: [ProductVariantsBulkInput!]!) {
  productVariantsBulkUpdate(productId: $productId, variants: $variants) {
    userErrors { field message }
  }
}
"""

INVENTORY_ITEM_MUTATION = """
mutation UpdateInventoryItem($id: ID!, $input: InventoryItemInput!) {
  inventoryItemUpdate(id: $id, input: $input) {
    userErrors { field message }
  }
}
"""

SET_ON_HAND_MUTATION = """
mutation SetOnHand($input: InventorySetOnHandQuantitiesInput!) {
  inventorySetOnHandQuantities(input: $input) {
    userErrors { field message }
  }
}
"""

SET_METAFIELD_MUTATION = """
mutation SetCost($metafields: [MetafieldsSetInput!]!) {
  metafieldsSet(metafields: $metafields) {
    userErrors { field message }
  }
}
"""

PRODUCT_STATUS_MUTATION = """
mutation SetStatus($input: ProductInput!) {
  productUpdate(input: $input) {
    userErrors { field message }
  }
}
"""


def _user_errors(data: Dict[str, Any], root: str) -> List[str]:
    payload = data.get(root) or {}
    return [e.get("message", "") for e in payload.get("userErrors") or []]


def _parse_status(value: Optional[str]) -> Optional[ProductStatus]:
    try:
        return ProductStatus(value) if value else None
    except ValueError:
        return None


def parse_product(node: Dict[str, Any]) -> InternalProduct:
    """Convert one GraphQL product node."""
    variants = []
    for v in (node.get("variants") or {}).get("nodes") or []:
        item = v.get("inventoryItem") or {}
        variants.append(
            InternalVariant(
                id=v["id"],
                product_id=node["id"],
                sku=v.get("sku") or "",
                barcode=v.get("barcode") or "",
                inventory_item_id=item.get("id") or "",
                tracked=bool(item.get("tracked")),
            )
        )
    return InternalProduct(
        id=node["id"],
        title=node.get("title") or "",
        status=_parse_status(node.get("status")),
        variants=variants,
    )


class ShopifyAdminClient:
    """Admin API client for one shop."""

    def __init__(
        self,
        shop_domain: str,
        access_token: str,
        api_version: str = "2024-10",
        timeout: float = 30.0,
        cost_namespace: str = "custom",
        cost_key: str = "cost",
        client: Optional[httpx.AsyncClient] = None,
    ):
        if not shop_domain:
            raise ValueError("SHOP_DOMAIN not configured")
        self.shop_domain = shop_domain
        self.api_version = api_version
        self.cost_namespace = cost_namespace
        self.cost_key = cost_key
        self.url = f"https://{shop_domain}/admin/api/{api_version}/graphql.json"
        self._headers = {
            "X-Shopify-Access-Token": access_token,
            "Content-Type": "application/json",
        }
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "ShopifyAdminClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    async def execute(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Run one GraphQL document and return its `data`."""
        response = await self._client.post(
            self.url,
            json={"query": query, "variables": variables or {}},
            headers=self._headers,
        )

        if response.status_code in (401, 403):
            raise AuthExpired("request", [f"HTTP {response.status_code}: {response.text[:200]}"])
        if response.status_code == 429:
            raise ThrottledError("request", ["HTTP 429: rate limited"])
        response.raise_for_status()

        body = response.json()
        errors = body.get("errors")
        if errors:
            if isinstance(errors, str):
                errors = [{"message": errors}]
            messages = [e.get("message", "") for e in errors]
            codes = {(e.get("extensions") or {}).get("code") for e in errors}
            if "THROTTLED" in codes:
                raise ThrottledError("request", messages)
            if any(is_auth_message(m) for m in messages):
                raise AuthExpired("request", messages)
            raise MutationFailure("request", messages)

        return body.get("data") or {}

    # -------------------------------------------------------------------------
    # CatalogSource
    # -------------------------------------------------------------------------

    async def fetch_products(self, cursor: Optional[str], page_size: int) -> CatalogPage:
        data = await self.execute(PRODUCTS_QUERY, {"first": page_size, "after": cursor})
        products = data.get("products") or {}
        page_info = products.get("pageInfo") or {}
        return CatalogPage(
            items=[parse_product(node) for node in products.get("nodes") or []],
            next_cursor=page_info.get("endCursor"),
            has_more=bool(page_info.get("hasNextPage")),
        )

    # -------------------------------------------------------------------------
    # CatalogMutations
    # -------------------------------------------------------------------------

    async def primary_location_id(self) -> Optional[str]:
        """First active location, else the first location."""
        data = await self.execute(LOCATIONS_QUERY)
        nodes = (data.get("locations") or {}).get("nodes") or []
        if not nodes:
            return None
        location = next((n for n in nodes if n.get("isActive")), nodes[0])
        logger.info(f"Primary location: {location.get('name')} ({location['id']})")
        return location["id"]

    async def set_price(self, product_id: str, variant_id: str, amount: Decimal) -> List[str]:
        data = await self.execute(
            SET_PRICE_MUTATION,
            {
                "productId": product_id,
                "variants": [{"id": variant_id, "price": f"{amount:.2f}", "compareAtPrice": None}],
            },
        )
        return _user_errors(data, "productVariantsBulkUpdate")

    async def set_tracked(self, inventory_item_id: str, tracked: bool) -> List[str]:
        data = await self.execute(
            INVENTORY_ITEM_MUTATION,
            {"id": inventory_item_id, "input": {"tracked": tracked}},
        )
        return _user_errors(data, "inventoryItemUpdate")

    async def set_on_hand(self, inventory_item_id: str, location_id: str, quantity: int) -> List[str]:
        data = await self.execute(
            SET_ON_HAND_MUTATION,
            {
                "input": {
                    "reason": "correction",
                    "setQuantities": [
                        {
                            "inventoryItemId": inventory_item_id,
                            "locationId": location_id,
                            "quantity": quantity,
                        }
                    ],
                }
            },
        )
        return _user_errors(data, "inventorySetOnHandQuantities")

    async def set_cost(self, variant_id: str, amount: Decimal) -> List[str]:
        data = await self.execute(
            SET_METAFIELD_MUTATION,
            {
                "metafields": [
                    {
                        "ownerId": variant_id,
                        "namespace": self.cost_namespace,
                        "key": self.cost_key,
                        "type": "number_decimal",
                        "value": f"{amount:.2f}",
                    }
                ]
            },
        )
        return _user_errors(data, "metafieldsSet")

    async def set_item_cost(self, inventory_item_id: str, amount: Decimal) -> List[str]:
        data = await self.execute(
            INVENTORY_ITEM_MUTATION,
            {"id": inventory_item_id, "input": {"cost": f"{amount:.2f}"}},
        )
        return _user_errors(data, "inventoryItemUpdate")

    async def set_product_status(self, product_id: str, status: ProductStatus) -> List[str]:
        data = await self.execute(
            PRODUCT_STATUS_MUTATION,
            {"input": {"id": product_id, "status": ProductStatus(status).value}},
        )
        return _user_errors(data, "productUpdate")
