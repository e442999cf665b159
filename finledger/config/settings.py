"""
Configuration Management for finledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Names of the distinguished categories, iteration caps and the storage
backend are all visible in one place and validated at startup.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StorageSettings(BaseSettings):
    """Key-value persistence configuration."""

    model_config = SettingsConfigDict(
        env_prefix="FINLEDGER_STORAGE_",
        extra="ignore"
    )

    backend: str = Field(
        default="memory",
        pattern="^(memory|json)$",
        description="Storage backend to use"
    )
    data_dir: Path = Field(
        default=Path("data"),
        description="Directory for the JSON file backend"
    )
    key_prefix: str = Field(
        default="finledger_",
        description="Prefix prepended to every logical key"
    )
    retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts for transient file I/O in the JSON backend"
    )


class LedgerSettings(BaseSettings):
    """
    Main ledger engine settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="FINLEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Distinguished categories
    available_funds_category_name: str = Field(
        default="Available Funds",
        min_length=1,
        description="Name of the singleton income envelope"
    )
    reconciliation_category_name: str = Field(
        default="Ausgleichskorrekturen",
        min_length=1,
        description="Category used for reconciliation bookings"
    )

    # Recurrence
    recurrence_max_iterations: int = Field(
        default=10000,
        ge=10,
        description="Hard cap on date-walk steps per template"
    )
    forecast_horizon_days: int = Field(
        default=365,
        ge=1,
        le=3660,
        description="Look-ahead used when projecting planned transactions"
    )

    # Diagnostics
    debug_mode: bool = Field(
        default=False,
        description="Emit debug-level ledger events"
    )
    log_level: str = Field(
        default="INFO",
        description="Log level for structured output"
    )

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        """Accept any casing, reject unknown levels."""
        level = v.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()

    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    try:
        _ = settings.ledger
        results["ledger"] = True
    except Exception as e:
        results["ledger"] = False
        results["ledger_error"] = str(e)

    try:
        _ = settings.storage
        results["storage"] = True
    except Exception as e:
        results["storage"] = False
        results["storage_error"] = str(e)

    return results
