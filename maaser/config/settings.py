"""
Configuration Management for the Maaser Ledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see which knobs the ledger has and ensures
all required configuration is validated at startup.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LedgerSettings(BaseSettings):
    """Obligation and currency rules for the ledger engine."""

    model_config = SettingsConfigDict(
        env_prefix="MAASER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    default_obligation_rate: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Percentage applied to new income when none is given"
    )

    # Currency (single currency, integer minor units)
    currency_code: str = Field(
        default="ILS",
        min_length=3,
        max_length=3,
        description="ISO currency code used for display"
    )
    currency_symbol: str = Field(
        default="₪",
        description="Symbol prefixed to formatted amounts"
    )
    minor_units_per_major: int = Field(
        default=100,
        ge=1,
        description="Minor units (agorot, cents) in one major unit"
    )

    # Sanity thresholds - exceeding these is a warning, never an error
    unusual_rate_threshold: int = Field(
        default=20,
        ge=1,
        le=100,
        description="Rates above this are flagged for review"
    )
    max_income_amount: int = Field(
        default=100_000_000,
        ge=1,
        description="Income above this (minor units) is flagged for review"
    )
    future_period_tolerance_months: int = Field(
        default=1,
        ge=0,
        description="How many months ahead of today income may be recorded without a warning"
    )

    max_label_length: int = Field(
        default=200,
        ge=1,
        le=1000,
        description="Maximum length of income labels and charity names"
    )


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the Google Sheets spreadsheet to use"
    )

    # Sheet names within the spreadsheet
    income_sheet_name: str = Field(
        default="Income",
        description="Name of the sheet for income records"
    )
    charities_sheet_name: str = Field(
        default="FixedCharities",
        description="Name of the sheet for fixed charity commitments"
    )
    snapshots_sheet_name: str = Field(
        default="PaymentSnapshots",
        description="Name of the sheet for payment snapshots"
    )
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for audit logs"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Minimum level for local structured logs"
    )


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

    # Note: These are loaded lazily to allow partial configuration

    @property
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
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
        _ = settings.google_sheets
        results["google_sheets"] = True
    except Exception as e:
        results["google_sheets"] = False
        results["google_sheets_error"] = str(e)

    try:
        _ = settings.app
        results["app"] = True
    except Exception as e:
        results["app"] = False
        results["app_error"] = str(e)

    return results
