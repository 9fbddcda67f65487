from repricer.domain.core.enums import (
    AdjustmentType,
    CampaignStatus,
    CampaignType,
    FilterType,
    Rounding,
    Strategy,
    TenantStatus,
)
from repricer.domain.campaign.models import AdjustmentCampaign, AdjustmentLog
from repricer.domain.tenancy.models import Tenant

__all__ = [
    "AdjustmentType",
    "CampaignStatus",
    "CampaignType",
    "FilterType",
    "Rounding",
    "Strategy",
    "TenantStatus",
    "Tenant",
    "AdjustmentCampaign",
    "AdjustmentLog",
]
