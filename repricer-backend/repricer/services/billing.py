from __future__ import annotations

import logging

from repricer.services.shop_admin import ShopAdminClient, ShopAdminError

logger = logging.getLogger(__name__)

PLAN_BASIC = "BASIC"
PLAN_PREMIUM = "PREMIUM"

ACTIVE_SUBSCRIPTIONS_QUERY = """
  query {
    appInstallation {
      activeSubscriptions { id name status }
    }
  }
"""


class ShopBillingOracle:
    def __init__(self, client: ShopAdminClient) -> None:
        self._client = client

    async def get_active_subscription(self) -> tuple[str | None, str | None]:
        """Return ``(plan, subscription_id)`` for the shop, ``(None, None)`` when nothing is active."""
        try:
            payload = await self._client.graphql(ACTIVE_SUBSCRIPTIONS_QUERY)
        except ShopAdminError:
            logger.exception("Failed to load subscriptions for %s", self._client.shop_domain)
            return None, None
        installation = (payload.get("data") or {}).get("appInstallation") or {}
        subscriptions = installation.get("activeSubscriptions") or []
        active = next((s for s in subscriptions if (s or {}).get("status") == "ACTIVE"), None)
        if not active:
            return None, None
        name = (active.get("name") or "").lower()
        plan = PLAN_PREMIUM if "premium" in name else PLAN_BASIC
        return plan, active.get("id")

    async def has_active_subscription(self) -> bool:
        plan, _ = await self.get_active_subscription()
        return plan is not None
