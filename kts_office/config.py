from functools import lru_cache
from typing import List

from pydantic import AnyHttpUrl, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    app_name: str = Field(default="Krishna Tech Solutions Back Office")
    cors_origins: List[AnyHttpUrl] = Field(
        default_factory=lambda: [
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:8080",
        ]
    )
    backend_url: AnyHttpUrl | None = Field(
        default=None
    )
    backend_api_key: str | None = Field(
        default=None
    )
    backend_timeout: float = Field(
        default=10.0
    )
    use_mock_data: bool = Field(
        default=True
    )
    timezone: str = Field(
        default="Asia/Kolkata"
    )
    booking_slots: List[str] = Field(
        default_factory=lambda: ["09:00", "12:00", "14:00", "17:00"]
    )
    invoice_tax_rate: float = Field(
        default=18.0
    )
    invoice_due_days: int = Field(
        default=7
    )
    invoice_number_attempts: int = Field(
        default=5, ge=1
    )
    coupon_redeem_attempts: int = Field(
        default=5, ge=1
    )
    notification_page_size: int = Field(
        default=50, ge=1
    )
    subscribe_poll_interval: float = Field(
        default=2.0
    )
    wizard_max_sessions: int = Field(
        default=500, ge=1
    )

    model_config = SettingsConfigDict(env_prefix="KTS_", case_sensitive=False)

    @field_validator("cors_origins", "booking_slots", mode="before")
    def _split_csv(cls, value):
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached application settings."""

    return Settings()
