"""Undo a completed campaign by replaying its change log backwards.

Both the user-triggered revert and the scheduled auto-revert go through
``RevertEngine._replay_inverse``: prices are restored straight from the
source campaign's logs, nothing is recomputed.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Sequence

from sqlalchemy.exc import SQLAlchemyError

from repricer import models
from repricer.db import settings
from repricer.domain.campaign.results import (
    OUTCOME_COMPLETED,
    ExecutionResult,
    ItemFailure,
    PriceChange,
)
from repricer.domain.core.enums import CampaignStatus, CampaignType
from repricer.observability import log_event
from repricer.schemas import VariantUpdate
from repricer.services.batching import process_in_batches
from repricer.services.campaign_store import CampaignStore, LogRow, UnloggedChangeError, utcnow
from repricer.services.catalog import CatalogGateway, MutationResult
from repricer.services.pricing import format_price

logger = logging.getLogger(__name__)


class RevertError(Exception):
    def __init__(self, reason: str, status_code: int = 400) -> None:
        super().__init__(reason)
        self.reason = reason
        self.status_code = status_code


@dataclass
class InverseBatch:
    product_id: str
    logs: list[models.AdjustmentLog]
    variants: list[VariantUpdate]


def usable_logs(logs: Sequence[models.AdjustmentLog]) -> list[models.AdjustmentLog]:
    return [log for log in logs if log.product_id]


def build_inverse_batches(logs: Sequence[models.AdjustmentLog], *, clear_compare_at: bool) -> list[InverseBatch]:
    batches: dict[str, InverseBatch] = {}
    for log in logs:
        batch = batches.setdefault(log.product_id, InverseBatch(product_id=log.product_id, logs=[], variants=[]))
        batch.logs.append(log)
        batch.variants.append(
            VariantUpdate(id=log.variant_id, price=format_price(log.old_price), clear_compare_at=clear_compare_at)
        )
    return list(batches.values())


def check_revertible(campaign: models.AdjustmentCampaign | None, logs: Sequence[models.AdjustmentLog]) -> list[models.AdjustmentLog]:
    if campaign is None or campaign.status is not CampaignStatus.completed:
        raise RevertError("Campaign not found or not eligible", status_code=404)
    if campaign.reverted_at is not None:
        raise RevertError("This campaign has already been reverted")
    if not logs:
        raise RevertError("No log entries found for this campaign")
    usable = usable_logs(logs)
    if not usable:
        raise RevertError("This campaign is too old to revert (no product IDs stored)")
    return usable


class RevertEngine:
    def __init__(
        self,
        store: CampaignStore,
        catalog: CatalogGateway,
        *,
        wave_size: int | None = None,
        wave_delay_seconds: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.store = store
        self.catalog = catalog
        self.wave_size = wave_size or settings.apply_wave_size
        self.wave_delay_seconds = (
            wave_delay_seconds if wave_delay_seconds is not None else settings.APPLY_WAVE_DELAY_SECONDS
        )
        self._sleep = sleep

    async def revert(self, campaign_id: str, tenant_id: str | None = None) -> ExecutionResult:
        """Revert a completed campaign now. Raises ``RevertError`` when it is not eligible."""
        source = self.store.get(campaign_id, tenant_id=tenant_id)
        logs = [] if source is None else self.store.find_logs(source.id)
        pending = check_revertible(source, logs)

        revert_campaign = self.store.create(
            tenant_id=source.tenant_id,
            collection_id=source.collection_id,
            filter_type=source.filter_type,
            filter_value=source.filter_value,
            type=source.type,
            value=source.value,
            strategy=source.strategy.inverse(),
            rounding=source.rounding,
            compare_at_price=False,
            status=CampaignStatus.processing,
            linked_campaign_id=source.id,
            title=f"Revert of #{source.id}",
        )
        try:
            return await self._replay_inverse(source, pending, revert_campaign.id)
        except Exception as exc:
            self.store.update(revert_campaign.id, status=CampaignStatus.failed, failure_reason=str(exc) or repr(exc))
            raise

    async def run_linked(self, campaign: models.AdjustmentCampaign) -> ExecutionResult:
        """Execute a scheduled auto-revert (or a revert resumed after a crash)."""
        if not campaign.linked_campaign_id:
            reason = "Auto-revert campaign missing linked campaign"
            self.store.update(campaign.id, status=CampaignStatus.failed, failure_reason=reason)
            return ExecutionResult.failed(campaign.id, reason)

        self.store.update(campaign.id, status=CampaignStatus.processing)
        try:
            source = self.store.get(campaign.linked_campaign_id)
            if source is None:
                raise RevertError(f"Source campaign {campaign.linked_campaign_id} not found", status_code=404)
            if source.reverted_at is not None and source.revert_campaign_id != campaign.id:
                self.store.update(
                    campaign.id,
                    status=CampaignStatus.canceled,
                    failure_reason="Source campaign was already reverted",
                )
                logger.info("Auto-revert %s skipped, %s already reverted", campaign.id, source.id)
                return ExecutionResult.noop(campaign.id, "Source campaign was already reverted")

            done = self.store.processed_variant_ids(campaign.id)
            pending = [log for log in usable_logs(self.store.find_logs(source.id)) if log.variant_id not in done]
            return await self._replay_inverse(source, pending, campaign.id)
        except Exception as exc:
            self.store.update(campaign.id, status=CampaignStatus.failed, failure_reason=str(exc) or repr(exc))
            raise

    async def _replay_inverse(
        self,
        source: models.AdjustmentCampaign,
        logs: list[models.AdjustmentLog],
        target_campaign_id: str,
    ) -> ExecutionResult:
        batches = build_inverse_batches(logs, clear_compare_at=source.compare_at_price)
        unlogged: list[tuple[str, SQLAlchemyError]] = []

        async def apply_batch(batch: InverseBatch) -> tuple[InverseBatch, MutationResult]:
            try:
                mutation = await self.catalog.update_variants(batch.product_id, batch.variants)
            except Exception as exc:
                logger.exception("Revert update failed for product %s", batch.product_id)
                mutation = MutationResult(False, [str(exc) or "Update failed"])
            if mutation.success:
                rows = [
                    LogRow(
                        variant_id=log.variant_id,
                        product_id=log.product_id,
                        product_title=log.product_title,
                        variant_title=log.variant_title,
                        old_price=log.new_price,
                        new_price=log.old_price,
                    )
                    for log in batch.logs
                ]
                try:
                    self.store.append_logs(target_campaign_id, rows)
                except SQLAlchemyError as exc:
                    self.store.db.rollback()
                    logger.error("Revert log for product %s could not be saved", batch.product_id)
                    unlogged.append((batch.product_id, exc))
            return batch, mutation

        outcomes = await process_in_batches(
            batches,
            self.wave_size,
            apply_batch,
            self.wave_delay_seconds,
            sleep=self._sleep,
            stop_when=lambda: bool(unlogged),
        )
        if unlogged:
            cause = unlogged[0][1]
            raise UnloggedChangeError([product_id for product_id, _ in unlogged], cause) from cause

        result = ExecutionResult(campaign_id=target_campaign_id, outcome=OUTCOME_COMPLETED, total=len(logs))
        for batch, mutation in outcomes:
            for log in batch.logs:
                if mutation.success:
                    result.updates.append(
                        PriceChange(
                            variant_id=log.variant_id,
                            product_title=log.product_title,
                            variant_title=log.variant_title,
                            old_price=log.new_price,
                            new_price=log.old_price,
                        )
                    )
                else:
                    result.failures.append(
                        ItemFailure(
                            variant_id=log.variant_id,
                            product_title=log.product_title,
                            variant_title=log.variant_title,
                            error=", ".join(mutation.errors) or "Unknown error",
                        )
                    )

        now = utcnow()
        self.store.update(target_campaign_id, status=CampaignStatus.completed, executed_at=now, failure_reason=None)
        self.store.update(source.id, reverted_at=now, revert_campaign_id=target_campaign_id)
        canceled = self.store.cancel_pending_auto_reverts(source.id)
        log_event(
            logger,
            "campaign_reverted",
            campaign_id=source.id,
            revert_campaign_id=target_campaign_id,
            total=result.total,
            success=result.success_count,
            failed=result.failure_count,
            canceled_auto_reverts=canceled,
        )
        return result


def is_inverse_campaign(campaign: models.AdjustmentCampaign) -> bool:
    return campaign.type is CampaignType.auto_revert or bool(campaign.linked_campaign_id)
