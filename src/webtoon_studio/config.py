"""Service configuration loaded from the environment."""
from __future__ import annotations

import re
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_QUOTE_CHARS = re.compile(r"[\"'“”‘’]")

DEFAULT_TEXT_MODEL = "gemini-2.5-flash"
DEFAULT_IMAGE_MODEL = "gemini-2.5-flash-image-preview"


def sanitize_secret(value: str | None) -> str:
    """Strip quotes (including smart quotes) and whitespace pasted around a key."""
    if not value:
        return ""
    return _QUOTE_CHARS.sub("", value).strip()


class WebtoonConfig(BaseSettings):
    """Runtime configuration for the webtoon studio service."""

    model_config = SettingsConfigDict(
        env_prefix="WEBTOON_",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"
    environment: Literal["development", "production", "test"] = "development"
    site_url: str = Field(
        default="http://localhost:3000",
        validation_alias=AliasChoices("WEBTOON_SITE_URL", "SITE_URL"),
    )

    database_url: str = Field(
        default="sqlite:///./webtoon_studio.db",
        validation_alias=AliasChoices("WEBTOON_DATABASE_URL", "DATABASE_URL"),
    )

    storage_backend: Literal["supabase", "local"] = "local"
    storage_bucket: str = "webtoon"
    media_dir: str = "./media"

    gemini_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("WEBTOON_GEMINI_API_KEY", "GEMINI_API_KEY", "GOOGLE_API_KEY"),
    )
    text_model: str = DEFAULT_TEXT_MODEL
    image_model: str = DEFAULT_IMAGE_MODEL
    image_max_attempts: int = 3
    image_retry_base_delay: float = 2.0
    reference_image_budget_bytes: int = 3_500_000

    supabase_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("WEBTOON_SUPABASE_URL", "SUPABASE_URL"),
    )
    supabase_anon_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("WEBTOON_SUPABASE_ANON_KEY", "SUPABASE_ANON_KEY"),
    )
    supabase_service_role_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("WEBTOON_SUPABASE_SERVICE_ROLE_KEY", "SUPABASE_SERVICE_ROLE_KEY"),
    )
    access_token_cookie: str = "sb-access-token"
    auth_storage_key: str | None = None

    stripe_secret_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("WEBTOON_STRIPE_SECRET_KEY", "STRIPE_SECRET_KEY"),
    )
    stripe_webhook_secret: str | None = Field(
        default=None,
        validation_alias=AliasChoices("WEBTOON_STRIPE_WEBHOOK_SECRET", "STRIPE_WEBHOOK_SECRET"),
    )
    stripe_price_ids: dict[str, str] = Field(
        default_factory=lambda: {
            "starter": "price_starter",
            "creator": "price_creator",
            "professional": "price_professional",
            "studio": "price_studio",
            "enterprise": "price_enterprise",
        }
    )
    cron_secret: str | None = Field(
        default=None,
        validation_alias=AliasChoices("WEBTOON_CRON_SECRET", "CRON_SECRET"),
    )

    free_monthly_credits: int = 50


_config: WebtoonConfig | None = None


def set_config(config: WebtoonConfig) -> None:
    global _config
    _config = config


def get_config() -> WebtoonConfig:
    """FastAPI dependency returning the process-wide configuration."""
    global _config
    if _config is None:
        _config = WebtoonConfig()
    return _config
