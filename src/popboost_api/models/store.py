"""Shop installations that own campaigns."""

from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from popboost_api.db.base import Base


class Store(Base):
    """A Shopify shop that installed the app."""

    __tablename__ = "stores"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    shop_domain = Column(String, nullable=False, unique=True, index=True)
    access_token = Column(String, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    campaigns = relationship("Campaign", back_populates="store", cascade="all, delete-orphan")
