import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from repricer import schemas
from repricer.db import get_db
from repricer.domain.catalog.filters import TargetFilter
from repricer.domain.core.enums import FilterType
from repricer.services.campaign_store import CampaignStore
from repricer.services.campaigns import (
    CampaignExecutor,
    create_campaign_from_request,
    preview_adjustment,
    request_filter,
)
from repricer.services.pricing import AdjustmentConfig, validate_adjustment_config
from repricer.services.revert import RevertEngine, RevertError
from repricer.services.shop_admin import ShopAdmin, ShopAdminError
from repricer.tenancy import TenantContext, get_shop_admin, get_tenant_context

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["adjustments"])


def _validated_config(config: schemas.AdjustmentConfigIn) -> AdjustmentConfig:
    adjustment = AdjustmentConfig(
        adjustment_type=config.adjustment_type,
        value=config.value,
        rounding=config.rounding,
    )
    valid, error = validate_adjustment_config(adjustment)
    if not valid:
        raise HTTPException(400, error)
    return adjustment


def _validated_target(payload: schemas.AdjustmentRequest) -> TargetFilter:
    target = request_filter(payload)
    if target.kind is not FilterType.all and not target.value:
        raise HTTPException(400, "filterValue is required for this filter type")
    return target


def _validate_schedule(config: schemas.AdjustmentConfigIn) -> None:
    if config.revert_at and config.scheduled_at and config.revert_at <= config.scheduled_at:
        raise HTTPException(400, "revertAt must be after scheduledAt")


@router.post("/preview", response_model=schemas.PreviewOut)
async def preview_prices(
    payload: schemas.AdjustmentRequest,
    _: TenantContext = Depends(get_tenant_context),
    admin: ShopAdmin = Depends(get_shop_admin),
):
    config = _validated_config(payload.config)
    target = _validated_target(payload)
    try:
        products = await admin.catalog.fetch_targets(target)
    except ShopAdminError as exc:
        raise HTTPException(502, str(exc))
    return {"preview": preview_adjustment(products, config)}


@router.post("/apply", response_model=schemas.ApplyOut)
async def apply_prices(
    payload: schemas.AdjustmentRequest,
    db: Session = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant_context),
    admin: ShopAdmin = Depends(get_shop_admin),
):
    _validated_config(payload.config)
    _validated_target(payload)
    _validate_schedule(payload.config)
    if not await admin.billing.has_active_subscription():
        raise HTTPException(402, "Active subscription required")

    store = CampaignStore(db)
    campaign, deferred = create_campaign_from_request(store, tenant.id, payload)
    if deferred:
        return {
            "campaign_id": campaign.id,
            "scheduled": True,
            "message": f"Price change scheduled for {campaign.scheduled_at.isoformat()}",
        }

    result = await CampaignExecutor(store, admin.catalog).execute(campaign.id)
    return {
        "campaign_id": campaign.id,
        "scheduled": False,
        "message": result.failure_reason,
        "result": result.to_payload(),
    }


@router.post("/revert", response_model=schemas.RevertOut)
async def revert_campaign(
    payload: schemas.RevertIn,
    db: Session = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant_context),
    admin: ShopAdmin = Depends(get_shop_admin),
):
    engine = RevertEngine(CampaignStore(db), admin.catalog)
    try:
        result = await engine.revert(payload.campaign_id, tenant_id=tenant.id)
    except RevertError as exc:
        raise HTTPException(exc.status_code, exc.reason)
    return {
        "success": result.ok,
        "revert_campaign_id": result.campaign_id,
        "result": result.to_payload(),
    }


@router.get("/filters", response_model=schemas.FilterOptionsOut)
async def list_filter_options(
    _: TenantContext = Depends(get_tenant_context),
    admin: ShopAdmin = Depends(get_shop_admin),
):
    try:
        collections = await admin.catalog.fetch_collections()
    except ShopAdminError:
        logger.exception("Failed to load collections")
        collections = []
    return {
        "collections": collections,
        "vendors": await admin.catalog.fetch_product_vendors(),
        "product_types": await admin.catalog.fetch_product_types(),
    }
