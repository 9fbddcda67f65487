from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from repricer.domain.core.enums import AdjustmentType, FilterType, Rounding


# Remote catalog


class TargetVariant(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str = ""
    price: float
    compare_at_price: Optional[float] = Field(default=None, alias="compareAtPrice")


class TargetProduct(BaseModel):
    id: str
    title: str = ""
    variants: List[TargetVariant] = Field(default_factory=list)


class VariantUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    price: str
    compare_at_price: Optional[str] = Field(default=None, alias="compareAtPrice")
    clear_compare_at: bool = Field(default=False, exclude=True)

    def to_input(self) -> dict:
        payload: dict = {"id": self.id, "price": self.price}
        if self.compare_at_price is not None:
            payload["compareAtPrice"] = self.compare_at_price
        elif self.clear_compare_at:
            payload["compareAtPrice"] = None
        return payload


# Adjustments


class AdjustmentConfigIn(BaseModel):
    adjustment_type: AdjustmentType = Field(alias="adjustmentType")
    value: float
    rounding: Rounding = Rounding.NONE
    scheduled_at: Optional[datetime] = Field(default=None, alias="scheduledAt")
    revert_at: Optional[datetime] = Field(default=None, alias="revertAt")
    set_compare_at_price: bool = Field(default=False, alias="setCompareAtPrice")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("scheduled_at", "revert_at")
    @classmethod
    def validate_timezone(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            raise ValueError("datetime must be timezone-aware")
        return value


class AdjustmentRequest(BaseModel):
    filter_type: Optional[FilterType] = Field(default=None, alias="filterType")
    filter_value: Optional[str] = Field(default=None, alias="filterValue")
    collection_id: Optional[str] = Field(default=None, alias="collectionId")
    config: AdjustmentConfigIn

    model_config = ConfigDict(populate_by_name=True)


class PreviewRow(BaseModel):
    product_id: str
    product_title: str
    variant_id: str
    variant_title: str
    old_price: float
    new_price: float
    valid: bool
    error_message: Optional[str] = None


class PreviewOut(BaseModel):
    preview: List[PreviewRow]


class FailureOut(BaseModel):
    variant_id: str
    product_title: str
    variant_title: str
    error: str


class PriceChangeOut(BaseModel):
    product_title: str
    variant_title: str
    old_price: float
    new_price: float


class ExecutionOut(BaseModel):
    campaign_id: str
    outcome: str
    total: int
    success_count: int
    failure_count: int
    failures: List[FailureOut] = []
    updates: List[PriceChangeOut] = []
    failure_reason: Optional[str] = None


class ApplyOut(BaseModel):
    campaign_id: str
    scheduled: bool
    message: Optional[str] = None
    result: Optional[ExecutionOut] = None


class RevertIn(BaseModel):
    campaign_id: str = Field(alias="campaignId")

    model_config = ConfigDict(populate_by_name=True)


class RevertOut(BaseModel):
    success: bool
    revert_campaign_id: str
    result: ExecutionOut


# History


class CampaignOut(BaseModel):
    id: str
    title: Optional[str] = None
    type: str
    strategy: str
    value: float
    rounding: str
    compare_at_price: bool
    status: str
    filter_type: Optional[str] = None
    filter_value: Optional[str] = None
    collection_id: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    revert_at: Optional[datetime] = None
    executed_at: Optional[datetime] = None
    reverted_at: Optional[datetime] = None
    revert_campaign_id: Optional[str] = None
    linked_campaign_id: Optional[str] = None
    failure_reason: Optional[str] = None
    created_at: datetime


class AdjustmentLogOut(BaseModel):
    variant_id: str
    product_id: Optional[str] = None
    product_title: str
    variant_title: str
    old_price: float
    new_price: float

    class Config:
        from_attributes = True


class CampaignDetailOut(BaseModel):
    campaign: CampaignOut
    logs: List[AdjustmentLogOut]


class CancelOut(BaseModel):
    canceled: List[str]


# Filter pickers


class CollectionOut(BaseModel):
    id: str
    title: Optional[str] = None


class FilterOptionsOut(BaseModel):
    collections: List[CollectionOut]
    vendors: List[str]
    product_types: List[str]
