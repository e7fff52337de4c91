"""Configuration settings for the driver sync client."""

from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ApiSettings(BaseSettings):
    """Backend endpoints."""

    base_url: str = "https://admin.tadhem.com/api"
    chat_base_url: str = "https://api.tadhem.com/api"
    timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Per-request timeout applied by the HTTP client",
    )

    model_config = SettingsConfigDict(env_prefix="DRIVER_API_")


class PollingSettings(BaseSettings):
    """Refresh periods for the three live views."""

    orders_interval_seconds: float = Field(
        default=10.0,
        ge=1.0,
        description="Seconds between order list refreshes",
    )
    chat_interval_seconds: float = Field(
        default=3.0,
        ge=1.0,
        description="Seconds between chat history refreshes for an open chat",
    )
    notifications_interval_seconds: float = Field(
        default=3.0,
        ge=1.0,
        description="Seconds between notification refreshes",
    )

    model_config = SettingsConfigDict(env_prefix="POLLING_")


class Settings(BaseSettings):
    """Root settings container."""

    api: ApiSettings = Field(default_factory=ApiSettings)
    polling: PollingSettings = Field(default_factory=PollingSettings)

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["text", "json"] = "text"
    environment: str = Field(default="development", description="Deployment label for logs")

    model_config = SettingsConfigDict(
        env_nested_delimiter="__",
        extra="ignore",
    )

    @model_validator(mode="after")
    def validate_urls(self) -> "Settings":
        for name, url in (
            ("api.base_url", self.api.base_url),
            ("api.chat_base_url", self.api.chat_base_url),
        ):
            if not url.startswith(("http://", "https://")):
                raise ValueError(f"{name} must be an http(s) URL, got {url!r}")
        return self


def get_settings() -> Settings:
    """Get settings instance."""
    return Settings()
