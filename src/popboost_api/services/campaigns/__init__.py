"""Campaign persistence services."""

from .store import CampaignStore, SqlCampaignStore  # noqa: F401
