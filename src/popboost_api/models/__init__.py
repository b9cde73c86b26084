"""SQLAlchemy models package."""

from .campaign import Campaign, CampaignDiscountGrant, CampaignStatus  # noqa: F401
from .popup_event import PopupEvent, PopupEventType  # noqa: F401
from .store import Store  # noqa: F401
