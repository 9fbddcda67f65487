from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Protocol, Sequence

from pydantic import ValidationError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from repricer.db import settings
from repricer.domain.catalog.filters import TargetFilter, search_query
from repricer.domain.core.enums import FilterType
from repricer.schemas import TargetProduct, VariantUpdate
from repricer.services.shop_admin import ShopAdminClient, ShopAdminError, ShopThrottledError, is_throttled_payload

logger = logging.getLogger(__name__)

PAGE_SIZE = 50
MAX_RETRIES_MESSAGE = "Shop API throttled: max retries reached"


@dataclass
class MutationResult:
    success: bool
    errors: list[str] = field(default_factory=list)


class CatalogGateway(Protocol):
    async def fetch_targets(self, target: TargetFilter) -> list[TargetProduct]: ...

    async def update_variants(self, product_id: str, variants: Sequence[VariantUpdate]) -> MutationResult: ...


_PRODUCT_NODE = """
          id
          title
          variants(first: 50) {
            edges { node { id title price compareAtPrice } }
          }
"""

GET_ALL_PRODUCTS = (
    """
  query GetAllProducts($first: Int!, $cursor: String) {
    products(first: $first, after: $cursor) {
      edges { node {"""
    + _PRODUCT_NODE
    + """      } }
      pageInfo { hasNextPage endCursor }
    }
  }
"""
)

GET_PRODUCTS_BY_QUERY = (
    """
  query GetProductsByQuery($first: Int!, $query: String!, $cursor: String) {
    products(first: $first, after: $cursor, query: $query) {
      edges { node {"""
    + _PRODUCT_NODE
    + """      } }
      pageInfo { hasNextPage endCursor }
    }
  }
"""
)

GET_PRODUCTS_BY_COLLECTION = (
    """
  query GetProductsByCollection($first: Int!, $collectionId: ID!, $cursor: String) {
    collection(id: $collectionId) {
      products(first: $first, after: $cursor) {
        edges { node {"""
    + _PRODUCT_NODE
    + """        } }
        pageInfo { hasNextPage endCursor }
      }
    }
  }
"""
)

GET_COLLECTIONS = """
  query GetCollections($first: Int!, $cursor: String) {
    collections(first: $first, after: $cursor) {
      edges { node { id title } }
      pageInfo { hasNextPage endCursor }
    }
  }
"""

GET_VENDORS_AND_TYPES = """
  query GetVendorsAndTypes {
    shop {
      productVendors(first: 250) { edges { node } }
      productTypes(first: 250) { edges { node } }
    }
  }
"""

BULK_UPDATE_VARIANTS = """
  mutation ProductVariantsBulkUpdate($productId: ID!, $variants: [ProductVariantsBulkInput!]!) {
    productVariantsBulkUpdate(productId: $productId, variants: $variants) {
      productVariants { id price compareAtPrice }
      userErrors { field message }
    }
  }
"""


def _dig(payload: Any, path: Sequence[str]) -> Any:
    current = payload
    for key in path:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def _product_from_node(node: dict) -> TargetProduct:
    variants = [(edge or {}).get("node") for edge in _dig(node, ("variants", "edges")) or []]
    return TargetProduct.model_validate(
        {"id": node.get("id"), "title": node.get("title") or "", "variants": [v for v in variants if v]}
    )


class ShopCatalogGateway:
    def __init__(
        self,
        client: ShopAdminClient,
        *,
        max_attempts: int | None = None,
        retry_base_seconds: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self._max_attempts = max_attempts or settings.mutation_max_attempts
        self._retry_base = retry_base_seconds if retry_base_seconds is not None else settings.mutation_retry_base_seconds
        self._sleep = sleep

    async def _paginate(self, query: str, variables: dict, path: Sequence[str]) -> list[dict]:
        nodes: list[dict] = []
        cursor: str | None = None
        while True:
            payload = await self._client.graphql(query, {**variables, "first": PAGE_SIZE, "cursor": cursor})
            if payload.get("errors"):
                messages = ", ".join(str((e or {}).get("message")) for e in payload["errors"])
                raise ShopAdminError(f"Shop API query failed: {messages}")
            connection = _dig(payload, ("data", *path))
            if not isinstance(connection, dict):
                break
            nodes.extend((edge or {}).get("node") or {} for edge in connection.get("edges") or [])
            page_info = connection.get("pageInfo") or {}
            cursor = page_info.get("endCursor")
            if not page_info.get("hasNextPage") or not cursor:
                break
        return nodes

    async def _fetch_products(self, query: str, variables: dict, path: Sequence[str]) -> list[TargetProduct]:
        nodes = await self._paginate(query, variables, path)
        try:
            return [_product_from_node(node) for node in nodes if node.get("id")]
        except ValidationError as exc:
            raise ShopAdminError(f"Unexpected product payload: {exc}") from exc

    async def fetch_all_products(self) -> list[TargetProduct]:
        return await self._fetch_products(GET_ALL_PRODUCTS, {}, ("products",))

    async def fetch_products_by_collection(self, collection_id: str) -> list[TargetProduct]:
        return await self._fetch_products(
            GET_PRODUCTS_BY_COLLECTION, {"collectionId": collection_id}, ("collection", "products")
        )

    async def fetch_products_by_filter(self, kind: FilterType, value: str) -> list[TargetProduct]:
        query = search_query(kind, value)
        if query is None:
            return []
        return await self._fetch_products(GET_PRODUCTS_BY_QUERY, {"query": query}, ("products",))

    async def fetch_targets(self, target: TargetFilter) -> list[TargetProduct]:
        if target.kind is None:
            logger.warning("Unknown filter type for value %r, no products targeted", target.value)
            return []
        if target.kind is FilterType.all or not target.value:
            return await self.fetch_all_products()
        if target.kind is FilterType.collection:
            return await self.fetch_products_by_collection(target.value)
        return await self.fetch_products_by_filter(target.kind, target.value)

    async def fetch_collections(self) -> list[dict]:
        nodes = await self._paginate(GET_COLLECTIONS, {}, ("collections",))
        return [{"id": n.get("id"), "title": n.get("title")} for n in nodes if n.get("id")]

    async def _fetch_shop_values(self, key: str) -> list[str]:
        try:
            payload = await self._client.graphql(GET_VENDORS_AND_TYPES)
        except ShopAdminError:
            logger.exception("Failed to load %s", key)
            return []
        edges = _dig(payload, ("data", "shop", key, "edges")) or []
        return sorted(str(e.get("node")) for e in edges if e and e.get("node"))

    async def fetch_product_vendors(self) -> list[str]:
        return await self._fetch_shop_values("productVendors")

    async def fetch_product_types(self) -> list[str]:
        return await self._fetch_shop_values("productTypes")

    async def _attempt_update(self, product_id: str, variants: Sequence[VariantUpdate]) -> MutationResult:
        try:
            payload = await self._client.graphql(
                BULK_UPDATE_VARIANTS,
                {"productId": product_id, "variants": [v.to_input() for v in variants]},
            )
        except ShopThrottledError:
            raise
        except ShopAdminError as exc:
            return MutationResult(False, [str(exc)])

        if is_throttled_payload(payload):
            raise ShopThrottledError(f"Shop API throttled on {product_id}")

        update = _dig(payload, ("data", "productVariantsBulkUpdate"))
        if not isinstance(update, dict):
            return MutationResult(False, ["No response data"])
        user_errors = update.get("userErrors") or []
        if user_errors:
            return MutationResult(False, [str((e or {}).get("message")) for e in user_errors])
        return MutationResult(True)

    def _log_retry(self, product_id: str):
        def before_sleep(retry_state) -> None:
            logger.warning(
                "Throttled on %s, retrying in %.1fs (%s/%s)",
                product_id,
                retry_state.next_action.sleep if retry_state.next_action else 0,
                retry_state.attempt_number,
                self._max_attempts,
            )

        return before_sleep

    async def update_variants(self, product_id: str, variants: Sequence[VariantUpdate]) -> MutationResult:
        """Bulk-update one product's variants.

        Throttling (HTTP 429 or an embedded THROTTLED code) is retried with
        exponential backoff; any other error is returned at once.
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(multiplier=self._retry_base, min=self._retry_base),
            retry=retry_if_exception_type(ShopThrottledError),
            before_sleep=self._log_retry(product_id),
            sleep=self._sleep,
            reraise=True,
        )
        result = MutationResult(False, ["Max retries exceeded"])
        try:
            async for attempt in retrying:
                with attempt:
                    result = await self._attempt_update(product_id, variants)
        except ShopThrottledError:
            logger.error("Giving up on %s after %s throttled attempts", product_id, self._max_attempts)
            return MutationResult(False, [MAX_RETRIES_MESSAGE])
        return result
