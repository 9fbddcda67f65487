from datetime import datetime, timedelta, timezone

import pytest

from repricer import models
from repricer.domain.core.enums import CampaignStatus, CampaignType
from repricer.services.campaign_store import CampaignNotFoundError, LogRow

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _log(variant_id: str, product_id: str | None = "p1") -> LogRow:
    return LogRow(
        variant_id=variant_id,
        product_id=product_id,
        product_title="Sneaker",
        variant_title="Default",
        old_price=10.0,
        new_price=11.0,
    )


def test_create_assigns_uuid_and_defaults(store, campaign_factory):
    campaign = campaign_factory()
    assert len(campaign.id) == 36
    assert store.get(campaign.id).status is CampaignStatus.processing
    assert campaign.reverted_at is None


def test_get_is_scoped_to_tenant(store, campaign_factory):
    campaign = campaign_factory()
    assert store.get(campaign.id, tenant_id="someone-else") is None
    with pytest.raises(CampaignNotFoundError):
        store.require("missing")


def test_update_rejects_unknown_fields(store, campaign_factory):
    campaign = campaign_factory()
    store.update(campaign.id, failure_reason="boom")
    assert store.get(campaign.id).failure_reason == "boom"
    with pytest.raises(AttributeError):
        store.update(campaign.id, not_a_column=1)


def test_due_query_filters_by_status_and_time(store, campaign_factory):
    due = campaign_factory(status=CampaignStatus.scheduled, scheduled_at=NOW - timedelta(minutes=5))
    campaign_factory(status=CampaignStatus.scheduled, scheduled_at=NOW + timedelta(minutes=5))
    campaign_factory(status=CampaignStatus.completed, scheduled_at=NOW - timedelta(minutes=5))
    campaign_factory(status=CampaignStatus.scheduled, scheduled_at=None)

    found = store.find_many(status=CampaignStatus.scheduled, scheduled_before=NOW)
    assert [c.id for c in found] == [due.id]


def test_logs_and_processed_ids(store, campaign_factory):
    campaign = campaign_factory()
    assert store.append_logs(campaign.id, []) == 0
    assert store.append_logs(campaign.id, [_log("v1"), _log("v2")]) == 2

    logs = store.find_logs(campaign.id)
    assert [log.variant_id for log in logs] == ["v1", "v2"]
    assert store.processed_variant_ids(campaign.id) == {"v1", "v2"}


def test_reset_processing_requeues_and_backfills_schedule(store, campaign_factory):
    immediate = campaign_factory(status=CampaignStatus.processing)
    planned = campaign_factory(status=CampaignStatus.processing, scheduled_at=NOW - timedelta(hours=1))
    done = campaign_factory(status=CampaignStatus.completed)

    assert store.reset_processing(now=NOW) == 2

    assert store.get(immediate.id).status is CampaignStatus.scheduled
    assert store.get(immediate.id).scheduled_at is not None
    assert store.get(planned.id).status is CampaignStatus.scheduled
    assert store.get(done.id).status is CampaignStatus.completed
    due_ids = {c.id for c in store.find_many(status=CampaignStatus.scheduled, scheduled_before=NOW)}
    assert due_ids == {immediate.id, planned.id}


def test_cancel_scheduled_cascades_to_auto_revert(store, tenant, campaign_factory):
    parent = campaign_factory(status=CampaignStatus.scheduled, scheduled_at=NOW)
    auto_revert = campaign_factory(
        status=CampaignStatus.scheduled,
        type=CampaignType.auto_revert,
        linked_campaign_id=parent.id,
        scheduled_at=NOW + timedelta(days=1),
    )

    canceled = store.cancel_scheduled(parent.id, tenant_id=tenant.id)

    assert set(canceled) == {parent.id, auto_revert.id}
    assert store.get(parent.id).status is CampaignStatus.canceled
    assert store.get(auto_revert.id).status is CampaignStatus.canceled


def test_cancel_pending_auto_reverts_leaves_finished_ones(store, campaign_factory):
    source = campaign_factory(status=CampaignStatus.completed)
    pending = campaign_factory(
        status=CampaignStatus.scheduled, type=CampaignType.auto_revert, linked_campaign_id=source.id
    )
    finished = campaign_factory(
        status=CampaignStatus.completed, type=CampaignType.auto_revert, linked_campaign_id=source.id
    )

    assert store.cancel_pending_auto_reverts(source.id) == [pending.id]
    assert store.get(finished.id).status is CampaignStatus.completed


def test_purge_tenant_removes_logs_then_campaigns(store, db, tenant, campaign_factory):
    first = campaign_factory()
    second = campaign_factory()
    store.append_logs(first.id, [_log("v1")])
    store.append_logs(second.id, [_log("v2")])

    assert store.purge_tenant(tenant.id) == 2
    assert db.query(models.AdjustmentCampaign).count() == 0
    assert db.query(models.AdjustmentLog).count() == 0


def test_history_is_newest_first_and_paged(store, campaign_factory):
    older = campaign_factory(created_at=NOW - timedelta(days=2))
    newer = campaign_factory(created_at=NOW - timedelta(days=1))
    newest = campaign_factory(created_at=NOW)

    page = store.find_many(tenant_id=older.tenant_id, newest_first=True, limit=2)
    assert [c.id for c in page] == [newest.id, newer.id]
    rest = store.find_many(tenant_id=older.tenant_id, newest_first=True, limit=2, offset=2)
    assert [c.id for c in rest] == [older.id]
