from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import AsyncContextManager, Awaitable, Callable

from sqlalchemy.orm import Session

from repricer import models
from repricer.db import SessionLocal, settings
from repricer.domain.campaign.results import OUTCOME_FAILED
from repricer.domain.core.enums import CampaignStatus
from repricer.observability import log_event
from repricer.services.campaign_store import CampaignStore, utcnow
from repricer.services.campaigns import CampaignExecutor
from repricer.services.shop_admin import ShopAdmin, ShopAdminError, open_shop_admin

logger = logging.getLogger(__name__)

NO_SUBSCRIPTION_REASON = "No active subscription. Please upgrade to run scheduled price changes."

AdminOpener = Callable[[models.Tenant], AsyncContextManager[ShopAdmin]]
IntervalWait = Callable[[asyncio.Event, float], Awaitable[bool]]


async def wait_for_stop(stop_event: asyncio.Event, timeout: float) -> bool:
    """True once ``stop_event`` is set, False when ``timeout`` elapses first."""
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=timeout)
    except asyncio.TimeoutError:
        return False
    return True


class CampaignScheduler:
    """Background runner for scheduled and auto-revert campaigns.

    One instance per process. ``start`` resets campaigns a previous process left
    in ``processing``, runs one tick right away, then ticks every
    ``interval_seconds`` until ``stop`` is called. Due campaigns are handled one
    at a time.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        *,
        open_admin: AdminOpener = open_shop_admin,
        interval_seconds: float | None = None,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        wait: IntervalWait = wait_for_stop,
    ) -> None:
        self._session_factory = session_factory
        self._open_admin = open_admin
        self.interval_seconds = interval_seconds or settings.scheduler_interval_seconds
        self._clock = clock
        self._sleep = sleep
        self._wait = wait
        self._stop_event: asyncio.Event | None = None
        self._task: asyncio.Task | None = None
        self.running = False

    async def start(self) -> None:
        if self.running:
            return
        self.running = True
        self._stop_event = asyncio.Event()
        logger.info("Campaign scheduler starting (interval=%ss)", self.interval_seconds)
        self.recover()
        await self.run_tick()
        self._task = asyncio.create_task(self._loop(self._stop_event), name="campaign-scheduler")

    async def stop(self) -> None:
        if not self.running:
            return
        if self._stop_event is not None:
            self._stop_event.set()
        if self._task is not None:
            await self._task
            self._task = None
        self.running = False
        logger.info("Campaign scheduler stopped")

    async def _loop(self, stop_event: asyncio.Event) -> None:
        while not await self._wait(stop_event, self.interval_seconds):
            await self.run_tick()

    def recover(self) -> int:
        try:
            db = self._session_factory()
            try:
                count = CampaignStore(db).reset_processing(now=self._clock())
            finally:
                db.close()
        except Exception:
            logger.exception("Failed to reset campaigns stuck in processing")
            return 0
        if count:
            log_event(logger, "scheduler_recovered", reset=count)
        return count

    async def run_tick(self, now: datetime | None = None) -> int:
        """Execute every due scheduled campaign. Returns how many were picked up."""
        now = now or self._clock()
        try:
            db = self._session_factory()
            try:
                store = CampaignStore(db)
                due_ids = [c.id for c in store.find_many(status=CampaignStatus.scheduled, scheduled_before=now)]
                if not due_ids:
                    return 0
                log_event(logger, "scheduler_tick", due=len(due_ids))
                for campaign_id in due_ids:
                    await self._run_campaign(store, campaign_id)
                return len(due_ids)
            finally:
                db.close()
        except Exception:
            logger.exception("Scheduler tick failed")
            return 0

    async def _run_campaign(self, store: CampaignStore, campaign_id: str) -> None:
        campaign = store.get(campaign_id)
        if campaign is None or campaign.status is not CampaignStatus.scheduled:
            return
        try:
            tenant = store.db.get(models.Tenant, campaign.tenant_id)
            if tenant is None:
                raise ShopAdminError(f"Shop for tenant {campaign.tenant_id} not found")
            async with self._open_admin(tenant) as admin:
                if not await admin.billing.has_active_subscription():
                    store.update(campaign_id, status=CampaignStatus.failed, failure_reason=NO_SUBSCRIPTION_REASON)
                    log_event(
                        logger,
                        "campaign_skipped_billing",
                        level=logging.WARNING,
                        campaign_id=campaign_id,
                        shop=tenant.shop_domain,
                    )
                    return
                executor = CampaignExecutor(store, admin.catalog, sleep=self._sleep)
                result = await executor.execute(campaign_id)
            if result.outcome == OUTCOME_FAILED:
                logger.warning("Campaign %s failed: %s", campaign_id, result.failure_reason)
            else:
                logger.info("Campaign %s %s", campaign_id, result.outcome)
        except Exception as exc:
            logger.exception("Campaign %s failed", campaign_id)
            self._record_failure(store, campaign_id, str(exc) or exc.__class__.__name__)

    @staticmethod
    def _record_failure(store: CampaignStore, campaign_id: str, reason: str) -> None:
        try:
            store.db.rollback()
            store.update(campaign_id, status=CampaignStatus.failed, failure_reason=reason)
        except Exception:
            logger.exception("Could not record failure for campaign %s", campaign_id)
