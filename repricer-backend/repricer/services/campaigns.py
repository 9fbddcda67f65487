from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Iterable

import httpx
from sqlalchemy.exc import SQLAlchemyError

from repricer import models, schemas
from repricer.db import settings
from repricer.domain.campaign.results import (
    OUTCOME_COMPLETED,
    ExecutionResult,
    ItemFailure,
    PriceChange,
)
from repricer.domain.catalog.filters import TargetFilter, resolve_target_filter
from repricer.domain.core.enums import AdjustmentType, CampaignStatus, CampaignType, FilterType
from repricer.observability import log_event
from repricer.schemas import TargetProduct, VariantUpdate
from repricer.services.batching import process_in_batches
from repricer.services.campaign_store import CampaignStore, LogRow, UnloggedChangeError, utcnow
from repricer.services.catalog import CatalogGateway, MutationResult
from repricer.services.pricing import AdjustmentConfig, calculate_new_price, format_price
from repricer.services.revert import RevertEngine, is_inverse_campaign
from repricer.services.shop_admin import ShopAdminError

logger = logging.getLogger(__name__)


@dataclass
class PlannedVariant:
    variant_id: str
    variant_title: str
    old_price: float
    new_price: float


@dataclass
class ProductBatch:
    product_id: str
    product_title: str
    variants: list[PlannedVariant]

    def updates(self, set_compare_at: bool) -> list[VariantUpdate]:
        return [
            VariantUpdate(
                id=v.variant_id,
                price=format_price(v.new_price),
                compare_at_price=format_price(v.old_price) if set_compare_at else None,
            )
            for v in self.variants
        ]


def campaign_config(campaign: models.AdjustmentCampaign) -> AdjustmentConfig:
    return AdjustmentConfig(
        adjustment_type=AdjustmentType.from_campaign(campaign.type, campaign.strategy),
        value=campaign.value,
        rounding=campaign.rounding,
    )


def plan_batches(
    products: Iterable[TargetProduct],
    config: AdjustmentConfig,
    processed_variant_ids: set[str],
) -> list[ProductBatch]:
    """Group the valid, not yet applied price changes by product."""
    batches: dict[str, ProductBatch] = {}
    for product in products:
        planned: list[PlannedVariant] = []
        for variant in product.variants:
            if variant.id in processed_variant_ids:
                continue
            calc = calculate_new_price(variant.price, config)
            if not calc.valid:
                continue
            planned.append(
                PlannedVariant(
                    variant_id=variant.id,
                    variant_title=variant.title,
                    old_price=calc.old_price,
                    new_price=calc.new_price,
                )
            )
        if planned:
            batches[product.id] = ProductBatch(product_id=product.id, product_title=product.title, variants=planned)
    return list(batches.values())


def preview_adjustment(products: Iterable[TargetProduct], config: AdjustmentConfig) -> list[schemas.PreviewRow]:
    rows: list[schemas.PreviewRow] = []
    for product in products:
        for variant in product.variants:
            calc = calculate_new_price(variant.price, config)
            rows.append(
                schemas.PreviewRow(
                    product_id=product.id,
                    product_title=product.title,
                    variant_id=variant.id,
                    variant_title=variant.title,
                    old_price=calc.old_price,
                    new_price=calc.new_price,
                    valid=calc.valid,
                    error_message=calc.error_message,
                )
            )
    return rows


def request_filter(request: schemas.AdjustmentRequest) -> TargetFilter:
    """Filter of an incoming request; a bare ``collectionId`` is the legacy form."""
    kind = request.filter_type
    if kind is None:
        kind = FilterType.all if request.collection_id == "all" else FilterType.collection
    value = request.filter_value or request.collection_id or None
    if kind is FilterType.all:
        value = None
    return TargetFilter(kind, value)


def create_campaign_from_request(
    store: CampaignStore,
    tenant_id: str,
    request: schemas.AdjustmentRequest,
    *,
    now: datetime | None = None,
) -> tuple[models.AdjustmentCampaign, bool]:
    """Persist an adjustment request. Returns the campaign and whether it waits for a future run."""
    now = now or utcnow()
    config = request.config
    target = request_filter(request)
    adjustment = config.adjustment_type
    collection_id = target.value if target.kind is FilterType.collection else None
    filter_value = target.value if target.kind not in (FilterType.collection, FilterType.all) else None
    common = dict(
        tenant_id=tenant_id,
        collection_id=collection_id,
        filter_type=target.kind.value,
        filter_value=filter_value,
        value=config.value,
        rounding=config.rounding,
        compare_at_price=config.set_compare_at_price,
    )

    campaign = store.create(
        **common,
        type=CampaignType.percentage if adjustment.is_percent else CampaignType.fixed_amount,
        strategy=adjustment.strategy,
        status=CampaignStatus.scheduled if config.scheduled_at else CampaignStatus.processing,
        scheduled_at=config.scheduled_at,
        revert_at=config.revert_at,
    )

    deferred = config.scheduled_at is not None and config.scheduled_at > now
    if deferred and config.revert_at is not None:
        store.create(
            **common,
            type=CampaignType.auto_revert,
            strategy=adjustment.strategy.inverse(),
            status=CampaignStatus.scheduled,
            scheduled_at=config.revert_at,
            linked_campaign_id=campaign.id,
            title=f"Auto-revert of #{campaign.id}",
        )
    return campaign, deferred


class CampaignExecutor:
    """Runs one campaign against the remote catalog and records what changed."""

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
        self.reverter = RevertEngine(
            store,
            catalog,
            wave_size=self.wave_size,
            wave_delay_seconds=self.wave_delay_seconds,
            sleep=sleep,
        )

    async def execute(self, campaign_id: str) -> ExecutionResult:
        campaign = self.store.require(campaign_id)
        if campaign.status in (CampaignStatus.completed, CampaignStatus.canceled):
            return ExecutionResult.noop(campaign.id)
        if is_inverse_campaign(campaign):
            return await self.reverter.run_linked(campaign)

        processed = self.store.processed_variant_ids(campaign.id)
        if processed:
            logger.info("Resuming campaign %s, %s variants already applied", campaign.id, len(processed))
        self.store.update(campaign.id, status=CampaignStatus.processing)
        log_event(logger, "campaign_started", campaign_id=campaign.id, tenant_id=campaign.tenant_id, resumed=len(processed))

        try:
            return await self._apply(campaign, processed)
        except (ShopAdminError, httpx.HTTPError) as exc:
            reason = str(exc) or exc.__class__.__name__
            self._mark_failed(campaign.id, reason)
            return ExecutionResult.failed(campaign.id, reason)
        except Exception as exc:
            self._mark_failed(campaign.id, str(exc) or exc.__class__.__name__)
            raise

    def _mark_failed(self, campaign_id: str, reason: str) -> None:
        self.store.update(campaign_id, status=CampaignStatus.failed, failure_reason=reason)
        log_event(logger, "campaign_failed", level=logging.ERROR, campaign_id=campaign_id, reason=reason)

    async def _apply(self, campaign: models.AdjustmentCampaign, processed: set[str]) -> ExecutionResult:
        target = resolve_target_filter(campaign.filter_type, campaign.filter_value, campaign.collection_id)
        products = await self.catalog.fetch_targets(target)
        batches = plan_batches(products, campaign_config(campaign), processed)
        set_compare_at = campaign.compare_at_price
        campaign_id = campaign.id
        unlogged: list[tuple[str, SQLAlchemyError]] = []

        async def apply_batch(batch: ProductBatch) -> tuple[ProductBatch, MutationResult]:
            try:
                mutation = await self.catalog.update_variants(batch.product_id, batch.updates(set_compare_at))
            except Exception as exc:
                logger.exception("Price update failed for product %s", batch.product_id)
                mutation = MutationResult(False, [str(exc) or "Update failed"])
            if mutation.success:
                rows = [
                    LogRow(
                        variant_id=v.variant_id,
                        product_id=batch.product_id,
                        product_title=batch.product_title,
                        variant_title=v.variant_title,
                        old_price=v.old_price,
                        new_price=v.new_price,
                    )
                    for v in batch.variants
                ]
                try:
                    self.store.append_logs(campaign_id, rows)
                except SQLAlchemyError as exc:
                    self.store.db.rollback()
                    logger.error("Change log for product %s could not be saved", batch.product_id)
                    unlogged.append((batch.product_id, exc))
            return batch, mutation

        # The wave in flight finishes and keeps its logs; later waves are not started.
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

        result = ExecutionResult(
            campaign_id=campaign_id,
            outcome=OUTCOME_COMPLETED,
            total=sum(len(b.variants) for b in batches),
        )
        for batch, mutation in outcomes:
            for v in batch.variants:
                if mutation.success:
                    result.updates.append(
                        PriceChange(
                            variant_id=v.variant_id,
                            product_title=batch.product_title,
                            variant_title=v.variant_title,
                            old_price=v.old_price,
                            new_price=v.new_price,
                        )
                    )
                else:
                    result.failures.append(
                        ItemFailure(
                            variant_id=v.variant_id,
                            product_title=batch.product_title,
                            variant_title=v.variant_title,
                            error=", ".join(mutation.errors) or "Unknown error",
                        )
                    )

        self.store.update(campaign_id, status=CampaignStatus.completed, executed_at=utcnow(), failure_reason=None)
        self._arm_auto_revert(self.store.require(campaign_id))
        log_event(
            logger,
            "campaign_completed",
            campaign_id=campaign_id,
            total=result.total,
            success=result.success_count,
            failed=result.failure_count,
        )
        return result

    def _arm_auto_revert(self, campaign: models.AdjustmentCampaign) -> models.AdjustmentCampaign | None:
        if campaign.revert_at is None:
            return None
        existing = self.store.find_first(linked_campaign_id=campaign.id, campaign_type=CampaignType.auto_revert)
        if existing is not None:
            return existing
        auto_revert = self.store.create(
            tenant_id=campaign.tenant_id,
            collection_id=campaign.collection_id,
            filter_type=campaign.filter_type,
            filter_value=campaign.filter_value,
            type=CampaignType.auto_revert,
            value=campaign.value,
            strategy=campaign.strategy.inverse(),
            rounding=campaign.rounding,
            compare_at_price=campaign.compare_at_price,
            status=CampaignStatus.scheduled,
            scheduled_at=campaign.revert_at,
            linked_campaign_id=campaign.id,
            title=f"Auto-revert of #{campaign.id}",
        )
        log_event(
            logger,
            "auto_revert_armed",
            campaign_id=campaign.id,
            auto_revert_id=auto_revert.id,
            scheduled_at=campaign.revert_at,
        )
        return auto_revert
