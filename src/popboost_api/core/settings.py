from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    log_level: str = "INFO"
    database_url: str = "sqlite+aiosqlite:///./popboost.db"
    redis_url: str = "redis://localhost:6379/0"
    secret_key: str = "change-me"

    # Shopify app credentials
    shopify_api_secret: str = ""
    shopify_api_version: str = "2025-01"
    shopify_request_timeout_seconds: float = 10.0

    # Internal API security
    admin_api_key: str = ""

    # Storefront challenge tokens
    challenge_token_ttl_seconds: int = 600
    challenge_min_interaction_ms: int = 1500
    challenge_max_interaction_ms: int = 30 * 60 * 1000

    # Discount issuance guardrails
    discount_rate_limit: int = 5
    discount_rate_limit_window_seconds: int = 60 * 60
    rate_limit_bypass: bool = False
    rate_limit_bypass_shops: list[str] = Field(default_factory=list)
    discount_cas_max_attempts: int = 3
    discount_default_expiry_days: int | None = None

    @field_validator("rate_limit_bypass_shops", mode="before")
    @classmethod
    def _parse_shop_list(cls, value: object) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        if isinstance(value, (list, tuple, set)):
            return [str(item).strip() for item in value if str(item).strip()]
        return []


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
