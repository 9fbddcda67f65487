from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from repricer import models, schemas
from repricer.db import get_db
from repricer.services.campaign_store import CampaignNotFoundError, CampaignStore
from repricer.tenancy import TenantContext, get_tenant_context

router = APIRouter(prefix="/api/campaigns", tags=["campaigns"])


def _enum_value(value) -> str:
    return value.value if hasattr(value, "value") else str(value)


def _campaign_out_payload(campaign: models.AdjustmentCampaign) -> dict:
    return {
        "id": campaign.id,
        "title": campaign.title,
        "type": _enum_value(campaign.type),
        "strategy": _enum_value(campaign.strategy),
        "value": campaign.value,
        "rounding": _enum_value(campaign.rounding),
        "compare_at_price": campaign.compare_at_price,
        "status": _enum_value(campaign.status),
        "filter_type": campaign.filter_type,
        "filter_value": campaign.filter_value,
        "collection_id": campaign.collection_id,
        "scheduled_at": campaign.scheduled_at,
        "revert_at": campaign.revert_at,
        "executed_at": campaign.executed_at,
        "reverted_at": campaign.reverted_at,
        "revert_campaign_id": campaign.revert_campaign_id,
        "linked_campaign_id": campaign.linked_campaign_id,
        "failure_reason": campaign.failure_reason,
        "created_at": campaign.created_at,
    }


@router.get("", response_model=list[schemas.CampaignOut])
def list_campaigns(
    page: int = Query(1, ge=1),
    limit: int = Query(30, ge=1, le=100),
    db: Session = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant_context),
):
    campaigns = CampaignStore(db).find_many(
        tenant_id=tenant.id,
        newest_first=True,
        offset=(page - 1) * limit,
        limit=limit,
    )
    return [_campaign_out_payload(c) for c in campaigns]


@router.get("/scheduled", response_model=list[schemas.CampaignOut])
def list_scheduled_campaigns(
    db: Session = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant_context),
):
    campaigns = CampaignStore(db).find_many(tenant_id=tenant.id, status=models.CampaignStatus.scheduled)
    return [_campaign_out_payload(c) for c in campaigns]


@router.get("/{campaign_id}", response_model=schemas.CampaignDetailOut)
def get_campaign(
    campaign_id: str,
    db: Session = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant_context),
):
    store = CampaignStore(db)
    campaign = store.get(campaign_id, tenant_id=tenant.id)
    if campaign is None:
        raise HTTPException(404, "Campaign not found")
    logs = [schemas.AdjustmentLogOut.model_validate(log) for log in store.find_logs(campaign.id)]
    return {"campaign": _campaign_out_payload(campaign), "logs": logs}


@router.post("/{campaign_id}/cancel", response_model=schemas.CancelOut)
def cancel_campaign(
    campaign_id: str,
    db: Session = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant_context),
):
    store = CampaignStore(db)
    campaign = store.get(campaign_id, tenant_id=tenant.id)
    if campaign is None:
        raise HTTPException(404, "Campaign not found")
    if campaign.status is not models.CampaignStatus.scheduled:
        raise HTTPException(409, "Only scheduled campaigns can be canceled")
    try:
        canceled = store.cancel_scheduled(campaign_id, tenant_id=tenant.id)
    except CampaignNotFoundError:
        raise HTTPException(404, "Campaign not found")
    return {"canceled": canceled}
