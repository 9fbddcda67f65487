from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable

from sqlalchemy.orm import Session

from repricer import models
from repricer.domain.core.enums import CampaignStatus, CampaignType


class CampaignNotFoundError(Exception):
    def __init__(self, campaign_id: str) -> None:
        super().__init__(f"Campaign not found: {campaign_id}")
        self.campaign_id = campaign_id


class UnloggedChangeError(Exception):
    """Products were updated upstream but their change logs could not be written."""

    def __init__(self, product_ids: list[str], cause: Exception) -> None:
        super().__init__(f"Price change applied to {', '.join(product_ids)} but its log could not be saved: {cause}")
        self.product_ids = list(product_ids)


@dataclass(frozen=True)
class LogRow:
    variant_id: str
    product_id: str | None
    product_title: str
    variant_title: str
    old_price: float
    new_price: float


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CampaignStore:
    """Campaign and change-log persistence. Every write commits on its own."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def create(self, **fields) -> models.AdjustmentCampaign:
        campaign = models.AdjustmentCampaign(id=fields.pop("id", None) or str(uuid.uuid4()), **fields)
        self.db.add(campaign)
        self.db.commit()
        self.db.refresh(campaign)
        return campaign

    def get(self, campaign_id: str, tenant_id: str | None = None) -> models.AdjustmentCampaign | None:
        query = self.db.query(models.AdjustmentCampaign).filter(models.AdjustmentCampaign.id == campaign_id)
        if tenant_id is not None:
            query = query.filter(models.AdjustmentCampaign.tenant_id == tenant_id)
        return query.first()

    def require(self, campaign_id: str) -> models.AdjustmentCampaign:
        campaign = self.get(campaign_id)
        if campaign is None:
            raise CampaignNotFoundError(campaign_id)
        return campaign

    def _query(
        self,
        *,
        status: CampaignStatus | None = None,
        scheduled_before: datetime | None = None,
        tenant_id: str | None = None,
        linked_campaign_id: str | None = None,
        campaign_type: CampaignType | None = None,
    ):
        query = self.db.query(models.AdjustmentCampaign)
        if status is not None:
            query = query.filter(models.AdjustmentCampaign.status == status)
        if scheduled_before is not None:
            query = query.filter(
                models.AdjustmentCampaign.scheduled_at.isnot(None),
                models.AdjustmentCampaign.scheduled_at <= scheduled_before,
            )
        if tenant_id is not None:
            query = query.filter(models.AdjustmentCampaign.tenant_id == tenant_id)
        if linked_campaign_id is not None:
            query = query.filter(models.AdjustmentCampaign.linked_campaign_id == linked_campaign_id)
        if campaign_type is not None:
            query = query.filter(models.AdjustmentCampaign.type == campaign_type)
        return query

    def find_many(
        self,
        *,
        limit: int | None = None,
        offset: int = 0,
        newest_first: bool = False,
        **filters,
    ) -> list[models.AdjustmentCampaign]:
        query = self._query(**filters)
        if newest_first:
            query = query.order_by(models.AdjustmentCampaign.created_at.desc(), models.AdjustmentCampaign.id)
        else:
            query = query.order_by(models.AdjustmentCampaign.scheduled_at.asc(), models.AdjustmentCampaign.created_at)
        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def find_first(self, **filters) -> models.AdjustmentCampaign | None:
        return self._query(**filters).first()

    def update(self, campaign_id: str, **patch) -> models.AdjustmentCampaign:
        campaign = self.require(campaign_id)
        for key, value in patch.items():
            if not hasattr(models.AdjustmentCampaign, key):
                raise AttributeError(f"Unknown campaign field: {key}")
            setattr(campaign, key, value)
        self.db.commit()
        return campaign

    def append_logs(self, campaign_id: str, rows: Iterable[LogRow]) -> int:
        entries = [
            models.AdjustmentLog(
                campaign_id=campaign_id,
                variant_id=row.variant_id,
                product_id=row.product_id,
                product_title=row.product_title,
                variant_title=row.variant_title,
                old_price=row.old_price,
                new_price=row.new_price,
            )
            for row in rows
        ]
        if not entries:
            return 0
        self.db.add_all(entries)
        self.db.commit()
        return len(entries)

    def find_logs(self, campaign_id: str) -> list[models.AdjustmentLog]:
        return (
            self.db.query(models.AdjustmentLog)
            .filter(models.AdjustmentLog.campaign_id == campaign_id)
            .order_by(models.AdjustmentLog.id.asc())
            .all()
        )

    def processed_variant_ids(self, campaign_id: str) -> set[str]:
        rows = (
            self.db.query(models.AdjustmentLog.variant_id)
            .filter(models.AdjustmentLog.campaign_id == campaign_id)
            .all()
        )
        return {r[0] for r in rows}

    def reset_processing(self, now: datetime | None = None) -> int:
        """Move campaigns left in processing back to scheduled.

        Rows that were started immediately have no scheduled_at; they get ``now``
        so the next tick picks them up again.
        """
        now = now or utcnow()
        stuck = (
            self.db.query(models.AdjustmentCampaign)
            .filter(models.AdjustmentCampaign.status == CampaignStatus.processing)
            .all()
        )
        for row in stuck:
            row.status = CampaignStatus.scheduled
            if row.scheduled_at is None:
                row.scheduled_at = now
        self.db.commit()
        return len(stuck)

    def cancel_scheduled(self, campaign_id: str, tenant_id: str | None = None) -> list[str]:
        """Cancel a scheduled campaign and any still-scheduled auto-revert linked to it."""
        campaign = self.get(campaign_id, tenant_id=tenant_id)
        if campaign is None:
            raise CampaignNotFoundError(campaign_id)
        canceled: list[str] = []
        if campaign.status is CampaignStatus.scheduled:
            campaign.status = CampaignStatus.canceled
            canceled.append(campaign.id)
        canceled.extend(self._cancel_linked_auto_reverts(campaign.id))
        self.db.commit()
        return canceled

    def cancel_pending_auto_reverts(self, source_campaign_id: str) -> list[str]:
        canceled = self._cancel_linked_auto_reverts(source_campaign_id)
        if canceled:
            self.db.commit()
        return canceled

    def _cancel_linked_auto_reverts(self, source_campaign_id: str) -> list[str]:
        linked = self.find_many(
            linked_campaign_id=source_campaign_id,
            campaign_type=CampaignType.auto_revert,
            status=CampaignStatus.scheduled,
        )
        for row in linked:
            row.status = CampaignStatus.canceled
        return [row.id for row in linked]

    def purge_tenant(self, tenant_id: str) -> int:
        campaign_ids = [
            r[0]
            for r in self.db.query(models.AdjustmentCampaign.id)
            .filter(models.AdjustmentCampaign.tenant_id == tenant_id)
            .all()
        ]
        if campaign_ids:
            (
                self.db.query(models.AdjustmentLog)
                .filter(models.AdjustmentLog.campaign_id.in_(campaign_ids))
                .delete(synchronize_session=False)
            )
            (
                self.db.query(models.AdjustmentCampaign)
                .filter(models.AdjustmentCampaign.id.in_(campaign_ids))
                .delete(synchronize_session=False)
            )
        self.db.commit()
        return len(campaign_ids)
