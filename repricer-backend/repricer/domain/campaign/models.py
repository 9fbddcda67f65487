from sqlalchemy import Boolean, DateTime, Enum, Float, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from repricer.db import Base
from repricer.domain.core.enums import CampaignStatus, CampaignType, Rounding, Strategy


class AdjustmentCampaign(Base):
    __tablename__ = "adjustment_campaigns"
    __table_args__ = (
        Index("ix_adjustment_campaigns_status_scheduled", "status", "scheduled_at"),
        Index("ix_adjustment_campaigns_tenant_created", "tenant_id", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: Mapped[str | None] = mapped_column(String)
    # legacy targeting, kept as fallback when filter_type is collection
    collection_id: Mapped[str | None] = mapped_column(String)
    filter_type: Mapped[str | None] = mapped_column(String(32))
    filter_value: Mapped[str | None] = mapped_column(String)
    type: Mapped[CampaignType] = mapped_column(Enum(CampaignType), nullable=False)
    value: Mapped[float] = mapped_column(Float, nullable=False)
    strategy: Mapped[Strategy] = mapped_column(Enum(Strategy), nullable=False)
    rounding: Mapped[Rounding] = mapped_column(Enum(Rounding), default=Rounding.NONE, nullable=False)
    compare_at_price: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    status: Mapped[CampaignStatus] = mapped_column(Enum(CampaignStatus), nullable=False)
    scheduled_at: Mapped["DateTime | None"] = mapped_column(DateTime(timezone=True))
    revert_at: Mapped["DateTime | None"] = mapped_column(DateTime(timezone=True))
    executed_at: Mapped["DateTime | None"] = mapped_column(DateTime(timezone=True))
    reverted_at: Mapped["DateTime | None"] = mapped_column(DateTime(timezone=True))
    revert_campaign_id: Mapped[str | None] = mapped_column(String(36))
    linked_campaign_id: Mapped[str | None] = mapped_column(String(36), index=True)
    failure_reason: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped["DateTime"] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped["DateTime"] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class AdjustmentLog(Base):
    __tablename__ = "adjustment_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    campaign_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("adjustment_campaigns.id", ondelete="CASCADE"), nullable=False, index=True
    )
    variant_id: Mapped[str] = mapped_column(String, nullable=False)
    # empty on rows written before product ids were recorded; such rows cannot be reverted
    product_id: Mapped[str | None] = mapped_column(String)
    product_title: Mapped[str] = mapped_column(String, nullable=False)
    variant_title: Mapped[str] = mapped_column(String, nullable=False)
    old_price: Mapped[float] = mapped_column(Float, nullable=False)
    new_price: Mapped[float] = mapped_column(Float, nullable=False)
    created_at: Mapped["DateTime"] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
