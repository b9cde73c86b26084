"""Storefront analytics services."""

from .popup_events import PopupEventRecorder, PopupEventService  # noqa: F401
