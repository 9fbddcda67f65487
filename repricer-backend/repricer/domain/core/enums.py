import enum


class TenantStatus(enum.Enum):
    active = "active"
    uninstalled = "uninstalled"


class CampaignStatus(enum.Enum):
    scheduled = "scheduled"
    processing = "processing"
    completed = "completed"
    failed = "failed"
    canceled = "canceled"


class CampaignType(enum.Enum):
    percentage = "percentage"
    fixed_amount = "fixed_amount"
    auto_revert = "auto_revert"


class Strategy(enum.Enum):
    increase = "increase"
    decrease = "decrease"

    def inverse(self) -> "Strategy":
        return Strategy.decrease if self is Strategy.increase else Strategy.increase


class Rounding(enum.Enum):
    NONE = "NONE"
    ROUND_99 = "ROUND_99"
    ROUND_95 = "ROUND_95"


class FilterType(enum.Enum):
    all = "all"
    collection = "collection"
    vendor = "vendor"
    product_type = "productType"
    tag = "tag"


class AdjustmentType(enum.Enum):
    PERCENT_INCREASE = "PERCENT_INCREASE"
    PERCENT_DECREASE = "PERCENT_DECREASE"
    FIXED_INCREASE = "FIXED_INCREASE"
    FIXED_DECREASE = "FIXED_DECREASE"

    @property
    def is_percent(self) -> bool:
        return self in (AdjustmentType.PERCENT_INCREASE, AdjustmentType.PERCENT_DECREASE)

    @property
    def strategy(self) -> Strategy:
        if self in (AdjustmentType.PERCENT_INCREASE, AdjustmentType.FIXED_INCREASE):
            return Strategy.increase
        return Strategy.decrease

    @classmethod
    def from_campaign(cls, campaign_type: CampaignType, strategy: Strategy) -> "AdjustmentType":
        prefix = "PERCENT" if campaign_type is CampaignType.percentage else "FIXED"
        return cls(f"{prefix}_{strategy.value.upper()}")
