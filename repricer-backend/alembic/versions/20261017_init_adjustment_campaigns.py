"""tenants, adjustment campaigns and adjustment logs

Revision ID: 20261017_init_adjustment_campaigns
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261017_init_adjustment_campaigns"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "tenants",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("shop_domain", sa.String(), nullable=False),
        sa.Column("access_token", sa.Text(), nullable=False),
        sa.Column("status", sa.Enum("active", "uninstalled", name="tenantstatus"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("shop_domain", name="uq_tenants_shop_domain"),
    )

    op.create_table(
        "adjustment_campaigns",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("tenant_id", sa.String(length=36), nullable=False),
        sa.Column("title", sa.String(), nullable=True),
        sa.Column("collection_id", sa.String(), nullable=True),
        sa.Column("filter_type", sa.String(length=32), nullable=True),
        sa.Column("filter_value", sa.String(), nullable=True),
        sa.Column("type", sa.Enum("percentage", "fixed_amount", "auto_revert", name="campaigntype"), nullable=False),
        sa.Column("value", sa.Float(), nullable=False),
        sa.Column("strategy", sa.Enum("increase", "decrease", name="strategy"), nullable=False),
        sa.Column("rounding", sa.Enum("NONE", "ROUND_99", "ROUND_95", name="rounding"), nullable=False),
        sa.Column("compare_at_price", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column(
            "status",
            sa.Enum("scheduled", "processing", "completed", "failed", "canceled", name="campaignstatus"),
            nullable=False,
        ),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revert_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("executed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reverted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revert_campaign_id", sa.String(length=36), nullable=True),
        sa.Column("linked_campaign_id", sa.String(length=36), nullable=True),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], name="fk_adjustment_campaign_tenant", ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_adjustment_campaigns_tenant_id", "adjustment_campaigns", ["tenant_id"])
    op.create_index("ix_adjustment_campaigns_status_scheduled", "adjustment_campaigns", ["status", "scheduled_at"])
    op.create_index("ix_adjustment_campaigns_tenant_created", "adjustment_campaigns", ["tenant_id", "created_at"])
    op.create_index("ix_adjustment_campaigns_linked_campaign_id", "adjustment_campaigns", ["linked_campaign_id"])

    op.create_table(
        "adjustment_logs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("campaign_id", sa.String(length=36), nullable=False),
        sa.Column("variant_id", sa.String(), nullable=False),
        sa.Column("product_id", sa.String(), nullable=True),
        sa.Column("product_title", sa.String(), nullable=False),
        sa.Column("variant_title", sa.String(), nullable=False),
        sa.Column("old_price", sa.Float(), nullable=False),
        sa.Column("new_price", sa.Float(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(
            ["campaign_id"], ["adjustment_campaigns.id"], name="fk_adjustment_log_campaign", ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_adjustment_logs_campaign_id", "adjustment_logs", ["campaign_id"])


def downgrade() -> None:
    op.drop_index("ix_adjustment_logs_campaign_id", table_name="adjustment_logs")
    op.drop_table("adjustment_logs")
    op.drop_index("ix_adjustment_campaigns_linked_campaign_id", table_name="adjustment_campaigns")
    op.drop_index("ix_adjustment_campaigns_tenant_created", table_name="adjustment_campaigns")
    op.drop_index("ix_adjustment_campaigns_status_scheduled", table_name="adjustment_campaigns")
    op.drop_index("ix_adjustment_campaigns_tenant_id", table_name="adjustment_campaigns")
    op.drop_table("adjustment_campaigns")
    op.drop_table("tenants")
    sa.Enum(name="campaignstatus").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="rounding").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="strategy").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="campaigntype").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="tenantstatus").drop(op.get_bind(), checkfirst=True)
