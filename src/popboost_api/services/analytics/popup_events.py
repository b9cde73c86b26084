from __future__ import annotations

from typing import Any, Mapping, Protocol
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from popboost_api.models.popup_event import PopupEvent, PopupEventType


class PopupEventRecorder(Protocol):
    async def record_coupon_issued(
        self,
        *,
        store_id: UUID,
        campaign_id: str,
        session_id: str,
        metadata: Mapping[str, Any] | None = None,
    ) -> None:
        """Persist a ``COUPON_ISSUED`` event."""


class PopupEventService:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def record(
        self,
        event_type: PopupEventType,
        *,
        store_id: UUID,
        campaign_id: str,
        session_id: str,
        user_agent: str | None = None,
        ip_address: str | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> PopupEvent:
        event = PopupEvent(
            store_id=store_id,
            campaign_id=campaign_id,
            session_id=session_id,
            event_type=event_type,
            user_agent=user_agent,
            ip_address=ip_address,
            metadata_json=dict(metadata or {}),
        )
        self._session.add(event)
        try:
            await self._session.commit()
        except SQLAlchemyError:
            await self._session.rollback()
            raise
        return event

    async def record_coupon_issued(
        self,
        *,
        store_id: UUID,
        campaign_id: str,
        session_id: str,
        metadata: Mapping[str, Any] | None = None,
    ) -> None:
        await self.record(
            PopupEventType.COUPON_ISSUED,
            store_id=store_id,
            campaign_id=campaign_id,
            session_id=session_id,
            metadata=metadata,
        )


__all__ = ["PopupEventRecorder", "PopupEventService"]
