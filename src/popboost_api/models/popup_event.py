"""Storefront popup analytics events."""

from enum import Enum
from uuid import uuid4

from sqlalchemy import JSON, Column, DateTime, Enum as SqlEnum, String, func
from sqlalchemy.dialects.postgresql import UUID

from popboost_api.db.base import Base


class PopupEventType(str, Enum):
    IMPRESSION = "IMPRESSION"
    SUBMIT = "SUBMIT"
    COUPON_ISSUED = "COUPON_ISSUED"
    CLOSE = "CLOSE"


class PopupEvent(Base):
    __tablename__ = "popup_events"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    store_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    campaign_id = Column(String, nullable=False, index=True)
    session_id = Column(String, nullable=False)
    event_type = Column(SqlEnum(PopupEventType, name="popup_event_type"), nullable=False)
    user_agent = Column(String, nullable=True)
    ip_address = Column(String, nullable=True)
    metadata_json = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
