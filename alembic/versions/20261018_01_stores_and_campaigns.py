"""Stores, campaigns, discount grants and popup events.

Revision ID: 20261018_01
Revises: 
Create Date: 2026-10-18
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "20261018_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


campaign_status = sa.Enum("DRAFT", "ACTIVE", "PAUSED", name="campaign_status")
popup_event_type = sa.Enum("IMPRESSION", "SUBMIT", "COUPON_ISSUED", "CLOSE", name="popup_event_type")


def upgrade() -> None:
    op.create_table(
        "stores",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("shop_domain", sa.String(), nullable=False),
        sa.Column("access_token", sa.String(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_stores_shop_domain", "stores", ["shop_domain"], unique=True)

    op.create_table(
        "campaigns",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column(
            "store_id",
            sa.dialects.postgresql.UUID(as_uuid=True),
            sa.ForeignKey("stores.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("template_type", sa.String(), nullable=True),
        sa.Column("status", campaign_status, nullable=False, server_default="DRAFT"),
        sa.Column("discount_config", sa.JSON(), nullable=True),
        sa.Column("content_config", sa.JSON(), nullable=True),
        sa.Column("discount_version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_campaigns_store_id", "campaigns", ["store_id"])

    op.create_table(
        "campaign_discount_grants",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "campaign_id",
            sa.String(),
            sa.ForeignKey("campaigns.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("identity_key", sa.String(), nullable=False),
        sa.Column("tier_slot", sa.Integer(), nullable=False, server_default="-1"),
        sa.Column("code", sa.String(), nullable=False),
        sa.Column("discount_id", sa.String(), nullable=True),
        sa.Column("authorized_email", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint(
            "campaign_id",
            "identity_key",
            "tier_slot",
            name="uq_campaign_discount_grants_identity",
        ),
    )
    op.create_index("ix_campaign_discount_grants_campaign_id", "campaign_discount_grants", ["campaign_id"])

    op.create_table(
        "popup_events",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("store_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("campaign_id", sa.String(), nullable=False),
        sa.Column("session_id", sa.String(), nullable=False),
        sa.Column("event_type", popup_event_type, nullable=False),
        sa.Column("user_agent", sa.String(), nullable=True),
        sa.Column("ip_address", sa.String(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_popup_events_store_id", "popup_events", ["store_id"])
    op.create_index("ix_popup_events_campaign_id", "popup_events", ["campaign_id"])


def downgrade() -> None:
    op.drop_index("ix_popup_events_campaign_id", table_name="popup_events")
    op.drop_index("ix_popup_events_store_id", table_name="popup_events")
    op.drop_table("popup_events")
    op.drop_index("ix_campaign_discount_grants_campaign_id", table_name="campaign_discount_grants")
    op.drop_table("campaign_discount_grants")
    op.drop_index("ix_campaigns_store_id", table_name="campaigns")
    op.drop_table("campaigns")
    op.drop_index("ix_stores_shop_domain", table_name="stores")
    op.drop_table("stores")
    popup_event_type.drop(op.get_bind(), checkfirst=True)
    campaign_status.drop(op.get_bind(), checkfirst=True)
