"""Popup campaign persistence models."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from popboost_api.db.base import Base


def _campaign_id() -> str:
    return f"c{uuid4().hex}"


class CampaignStatus(str, Enum):
    """Lifecycle states a merchant can put a campaign in."""

    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"


class Campaign(Base):
    """Configured marketing popup with its discount settings."""

    __tablename__ = "campaigns"

    id = Column(String, primary_key=True, default=_campaign_id)
    store_id = Column(UUID(as_uuid=True), ForeignKey("stores.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    template_type = Column(String, nullable=True)
    status = Column(
        SqlEnum(CampaignStatus, name="campaign_status"),
        nullable=False,
        default=CampaignStatus.DRAFT,
        server_default=CampaignStatus.DRAFT.value,
    )
    discount_config = Column(JSON, nullable=True)
    content_config = Column(JSON, nullable=True)
    # Bumped on every cached-code write; guards compare-and-swap updates.
    discount_version = Column(Integer, nullable=False, default=0, server_default="0")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    store = relationship("Store", back_populates="campaigns")
    discount_grants = relationship(
        "CampaignDiscountGrant", back_populates="campaign", cascade="all, delete-orphan"
    )


class CampaignDiscountGrant(Base):
    """Discount code issued to one shopper identity (email or session)."""

    __tablename__ = "campaign_discount_grants"
    __table_args__ = (
        UniqueConstraint(
            "campaign_id",
            "identity_key",
            "tier_slot",
            name="uq_campaign_discount_grants_identity",
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    campaign_id = Column(String, ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False, index=True)
    identity_key = Column(String, nullable=False)
    tier_slot = Column(Integer, nullable=False, default=-1, server_default="-1")
    code = Column(String, nullable=False)
    discount_id = Column(String, nullable=True)
    authorized_email = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    campaign = relationship("Campaign", back_populates="discount_grants")
