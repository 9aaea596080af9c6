"""Configuration settings for the daily closing ledger."""

from decimal import Decimal
from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_TERMINAL_IDS = [
    "63427603",
    "63427604",
    "63427605",
    "64073724",
    "64073994",
    "64102585",
]
DEFAULT_CARD_NETWORKS = ["mada", "visa", "master", "amex", "gcci"]
DEFAULT_DENOMINATIONS = [500, 200, 100, 50, 20, 10, 5, 1]


class Settings(BaseSettings):
    """Flat settings read from the environment or a .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Reconciliation
    vat_rate: Decimal = Field(default=Decimal("0.15"), validation_alias="CLOSING_VAT_RATE")
    terminal_ids: list[str] = Field(
        default_factory=lambda: list(DEFAULT_TERMINAL_IDS),
        validation_alias="CLOSING_TERMINAL_IDS",
        description="Ordered hardware IDs of the card terminals",
    )
    card_networks: list[str] = Field(
        default_factory=lambda: list(DEFAULT_CARD_NETWORKS),
        validation_alias="CLOSING_CARD_NETWORKS",
        description="Ordered card-network keys reported per terminal",
    )
    denominations: list[int] = Field(
        default_factory=lambda: list(DEFAULT_DENOMINATIONS),
        validation_alias="CLOSING_DENOMINATIONS",
        description="Banknote/coin denominations counted in the drawer",
    )
    edit_secret: SecretStr = Field(
        ..., validation_alias="CLOSING_EDIT_SECRET", description="Shared code guarding edit/delete"
    )
    edit_grant_ttl: float = Field(
        default=900.0,
        validation_alias="CLOSING_EDIT_GRANT_TTL",
        description="Seconds an opened edit may be saved without re-entering the code",
    )

    # Row store
    store_url: str = Field(default="http://localhost:54321", validation_alias="STORE_URL")
    store_api_key: SecretStr | None = Field(default=None, validation_alias="STORE_API_KEY")
    store_timeout: float = Field(default=30.0, validation_alias="STORE_TIMEOUT")
    closings_collection: str = Field(
        default="dailyClosings", validation_alias="STORE_CLOSINGS_COLLECTION"
    )
    audit_collection: str = Field(default="audit_logs", validation_alias="STORE_AUDIT_COLLECTION")

    # Change notifications
    ws_host: str = Field(default="0.0.0.0", validation_alias="WS_HOST")
    ws_port: int = Field(default=8765, validation_alias="WS_PORT")

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", validation_alias="LOG_LEVEL"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", validation_alias="LOG_FORMAT"
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
