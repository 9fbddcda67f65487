import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from repricer.domain.core.enums import CampaignStatus, CampaignType
from repricer.services.campaigns import CampaignExecutor
from repricer.services.scheduler import NO_SUBSCRIPTION_REASON, CampaignScheduler, wait_for_stop

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class ManualInterval:
    """Interval wait that only elapses when the test calls ``fire``."""

    def __init__(self):
        self.timeouts: list[float] = []
        self.waiting = asyncio.Event()
        self._fired = asyncio.Event()

    async def __call__(self, stop_event: asyncio.Event, timeout: float) -> bool:
        self.timeouts.append(timeout)
        self.waiting.set()
        stop = asyncio.ensure_future(stop_event.wait())
        fired = asyncio.ensure_future(self._fired.wait())
        await asyncio.wait({stop, fired}, return_when=asyncio.FIRST_COMPLETED)
        stop.cancel()
        fired.cancel()
        self._fired.clear()
        return stop_event.is_set()

    async def next_wait(self):
        await asyncio.wait_for(self.waiting.wait(), timeout=5)
        self.waiting.clear()

    def fire(self):
        self._fired.set()


@pytest.fixture
def scheduler(session_factory, admin_opener, sleep):
    return CampaignScheduler(
        session_factory,
        open_admin=admin_opener,
        interval_seconds=30,
        clock=lambda: NOW,
        sleep=sleep,
    )


@pytest.mark.asyncio
async def test_start_recovers_then_runs_a_tick(scheduler, db, store, catalog, campaign_factory):
    stuck = campaign_factory(status=CampaignStatus.processing)

    await scheduler.start()
    try:
        assert scheduler.running
    finally:
        await scheduler.stop()

    assert not scheduler.running
    db.expire_all()
    assert store.get(stuck.id).status is CampaignStatus.completed
    assert catalog.price_of("v1") == 110.0


@pytest.mark.asyncio
async def test_start_and_stop_are_idempotent(scheduler):
    await scheduler.start()
    await scheduler.start()
    await scheduler.stop()
    await scheduler.stop()
    assert not scheduler.running


@pytest.mark.asyncio
async def test_tick_runs_only_due_campaigns(scheduler, db, store, catalog, admin, campaign_factory):
    due = campaign_factory(status=CampaignStatus.scheduled, scheduled_at=NOW - timedelta(minutes=1))
    later = campaign_factory(status=CampaignStatus.scheduled, scheduled_at=NOW + timedelta(hours=1))

    assert await scheduler.run_tick() == 1

    db.expire_all()
    assert store.get(due.id).status is CampaignStatus.completed
    assert store.get(later.id).status is CampaignStatus.scheduled
    assert len(admin.opened) == 1


@pytest.mark.asyncio
async def test_billing_gate_fails_campaign_without_touching_prices(
    scheduler, db, store, catalog, billing, campaign_factory
):
    billing.active = False
    due = campaign_factory(status=CampaignStatus.scheduled, scheduled_at=NOW)

    await scheduler.run_tick()

    db.expire_all()
    saved = store.get(due.id)
    assert saved.status is CampaignStatus.failed
    assert saved.failure_reason == NO_SUBSCRIPTION_REASON
    assert catalog.calls == []


@pytest.mark.asyncio
async def test_one_failing_campaign_does_not_stop_the_tick(scheduler, db, store, catalog, campaign_factory):
    orphan = campaign_factory(
        tenant_id="missing-tenant", status=CampaignStatus.scheduled, scheduled_at=NOW - timedelta(minutes=2)
    )
    healthy = campaign_factory(status=CampaignStatus.scheduled, scheduled_at=NOW - timedelta(minutes=1))

    assert await scheduler.run_tick() == 2

    db.expire_all()
    failed = store.get(orphan.id)
    assert failed.status is CampaignStatus.failed
    assert "missing-tenant" in failed.failure_reason
    assert store.get(healthy.id).status is CampaignStatus.completed


@pytest.mark.asyncio
async def test_unexpected_executor_error_is_recorded(scheduler, db, store, catalog, campaign_factory):
    catalog.fetch_error = RuntimeError("catalog exploded")
    due = campaign_factory(status=CampaignStatus.scheduled, scheduled_at=NOW)

    await scheduler.run_tick()

    db.expire_all()
    saved = store.get(due.id)
    assert saved.status is CampaignStatus.failed
    assert saved.failure_reason == "catalog exploded"


@pytest.mark.asyncio
async def test_tick_errors_are_swallowed(admin_opener):
    def broken_factory():
        raise RuntimeError("database unavailable")

    scheduler = CampaignScheduler(broken_factory, open_admin=admin_opener, interval_seconds=30, clock=lambda: NOW)

    assert await scheduler.run_tick() == 0
    assert scheduler.recover() == 0


@pytest.mark.asyncio
async def test_due_auto_revert_restores_prices(scheduler, db, store, catalog, sleep, campaign_factory):
    source = campaign_factory(revert_at=NOW - timedelta(minutes=1))
    await CampaignExecutor(store, catalog, sleep=sleep).execute(source.id)
    assert catalog.price_of("v1") == 110.0

    assert await scheduler.run_tick() == 1

    db.expire_all()
    assert catalog.price_of("v1") == 100.0
    auto_revert = store.find_first(linked_campaign_id=source.id, campaign_type=CampaignType.auto_revert)
    assert auto_revert.status is CampaignStatus.completed
    assert store.get(source.id).revert_campaign_id == auto_revert.id


@pytest.mark.asyncio
async def test_loop_picks_up_campaigns_that_become_due(
    session_factory, admin_opener, sleep, db, store, campaign_factory
):
    now = [NOW]
    interval = ManualInterval()
    scheduler = CampaignScheduler(
        session_factory,
        open_admin=admin_opener,
        interval_seconds=30,
        clock=lambda: now[0],
        sleep=sleep,
        wait=interval,
    )
    soon = campaign_factory(status=CampaignStatus.scheduled, scheduled_at=NOW + timedelta(minutes=1))

    await scheduler.start()
    try:
        await interval.next_wait()
        db.expire_all()
        assert store.get(soon.id).status is CampaignStatus.scheduled

        now[0] = NOW + timedelta(minutes=2)
        interval.fire()
        await interval.next_wait()
        db.expire_all()
        assert store.get(soon.id).status is CampaignStatus.completed

        later = campaign_factory(status=CampaignStatus.scheduled, scheduled_at=NOW + timedelta(minutes=2))
    finally:
        await scheduler.stop()

    db.expire_all()
    assert store.get(later.id).status is CampaignStatus.scheduled
    assert interval.timeouts == [30, 30]
    assert not scheduler.running


@pytest.mark.asyncio
async def test_wait_for_stop_reports_timeout_and_stop():
    stop_event = asyncio.Event()
    assert await wait_for_stop(stop_event, 0.01) is False

    stop_event.set()
    assert await wait_for_stop(stop_event, 5) is True
