from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, AsyncIterator

import httpx

from repricer import models
from repricer.db import settings

if TYPE_CHECKING:
    from repricer.services.billing import ShopBillingOracle
    from repricer.services.catalog import ShopCatalogGateway

logger = logging.getLogger(__name__)

THROTTLED_CODE = "THROTTLED"


class ShopAdminError(Exception):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ShopThrottledError(ShopAdminError):
    pass


def is_throttled_payload(payload: dict) -> bool:
    errors = payload.get("errors")
    if not isinstance(errors, list):
        return False
    for error in errors:
        extensions = (error or {}).get("extensions") or {}
        if extensions.get("code") == THROTTLED_CODE:
            return True
    return False


class ShopAdminClient:
    """Admin GraphQL transport for one shop."""

    def __init__(
        self,
        shop_domain: str,
        access_token: str,
        *,
        api_version: str | None = None,
        timeout: float | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.shop_domain = shop_domain
        version = api_version or settings.shop_api_version
        self.endpoint = f"https://{shop_domain}/admin/api/{version}/graphql.json"
        self._headers = {"X-Shopify-Access-Token": access_token, "Content-Type": "application/json"}
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout or settings.shop_api_timeout_seconds)

    async def graphql(self, query: str, variables: dict[str, Any] | None = None) -> dict:
        body: dict[str, Any] = {"query": query}
        if variables:
            body["variables"] = variables
        try:
            resp = await self._client.post(self.endpoint, json=body, headers=self._headers)
        except httpx.HTTPError as exc:
            raise ShopAdminError(f"Shop API request failed: {exc}") from exc
        if resp.status_code == 429:
            raise ShopThrottledError("Shop API throttled (HTTP 429)", status_code=429)
        if resp.status_code >= 400:
            raise ShopAdminError(f"Shop API returned HTTP {resp.status_code}", status_code=resp.status_code)
        try:
            payload = resp.json()
        except ValueError as exc:
            raise ShopAdminError("Shop API returned invalid JSON", status_code=resp.status_code) from exc
        if not isinstance(payload, dict):
            raise ShopAdminError("Shop API returned an unexpected payload", status_code=resp.status_code)
        return payload

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


@dataclass
class ShopAdmin:
    client: ShopAdminClient
    catalog: "ShopCatalogGateway"
    billing: "ShopBillingOracle"


def build_shop_admin(client: ShopAdminClient) -> ShopAdmin:
    from repricer.services.billing import ShopBillingOracle
    from repricer.services.catalog import ShopCatalogGateway

    return ShopAdmin(client=client, catalog=ShopCatalogGateway(client), billing=ShopBillingOracle(client))


@asynccontextmanager
async def open_shop_admin(tenant: models.Tenant) -> AsyncIterator[ShopAdmin]:
    if tenant.status is not models.TenantStatus.active:
        raise ShopAdminError(f"Shop {tenant.shop_domain} is not active")
    client = ShopAdminClient(tenant.shop_domain, tenant.access_token)
    try:
        yield build_shop_admin(client)
    finally:
        await client.aclose()
