"""Runtime configuration loaded from environment variables using Pydantic v2."""

from __future__ import annotations

from typing import Literal

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .keys import DEFAULT_SCOPE, SEPARATOR

SourceName = Literal["auto", "simulator", "massive", "tradingview"]


class StreamConfig(BaseSettings):
    """Timing and source settings for the subscription engine.

    Every field is read from PRICESTREAM_<FIELD> (MASSIVE_API_KEY for the API
    key). Defaults match the observed behavior of slow-hydrating sources: up to
    30s to open, ~3s to settle before the first valid read, then a 500ms poll.
    Invalid values fail loudly at startup.
    """

    open_timeout: float = Field(default=30.0, gt=0, allow_inf_nan=False)
    settle_delay: float = Field(default=3.0, ge=0, allow_inf_nan=False)
    poll_interval: float = Field(default=0.5, gt=0, allow_inf_nan=False)
    read_timeout: float = Field(default=5.0, gt=0, allow_inf_nan=False)
    close_timeout: float = Field(default=10.0, gt=0, allow_inf_nan=False)
    delivery_timeout: float = Field(default=5.0, gt=0, allow_inf_nan=False)
    default_scope: str = DEFAULT_SCOPE

    source: SourceName = "auto"
    # Free tier allows 5 requests/min, so Massive polls far slower than a scraper
    massive_poll_interval: float = Field(default=15.0, gt=0, allow_inf_nan=False)
    massive_api_key: str = Field(default="", validation_alias=AliasChoices("massive_api_key", "MASSIVE_API_KEY"))
    scraper_headless: bool = True

    model_config = SettingsConfigDict(
        env_prefix="PRICESTREAM_",
        env_ignore_empty=True,
        extra="ignore",
        frozen=True,
    )

    @field_validator("default_scope")
    @classmethod
    def validate_scope(cls, value: str) -> str:
        value = value.strip().upper()
        if SEPARATOR in value:
            raise ValueError(f"PRICESTREAM_DEFAULT_SCOPE must not contain '{SEPARATOR}'")
        return value or DEFAULT_SCOPE

    @field_validator("source", mode="before")
    @classmethod
    def normalize_source(cls, value: object) -> object:
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("massive_api_key")
    @classmethod
    def strip_api_key(cls, value: str) -> str:
        return value.strip()
