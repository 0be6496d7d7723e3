"""
Configuration Management for the Bakery Ledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here. External services
(Gemini, Google Sheets) are optional; each section is loaded lazily so the
ledger runs with in-memory storage when they are not configured.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LedgerSettings(BaseSettings):
    """Core ledger settings."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    currency: str = Field(
        default="AED",
        description="Fixed display currency"
    )
    app_id: str = Field(
        default="baking-app-default",
        description="Namespace for this ledger's data in shared storage"
    )
    export_dir: Path = Field(
        default=Path("exports"),
        description="Directory the spreadsheet exporter writes into"
    )
    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR)"
    )
    log_format: str = Field(
        default="json",
        pattern="^(json|console)$",
        description="Log renderer"
    )

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return v.upper()


class GeminiSettings(BaseSettings):
    """Gemini receipt recognition configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        min_length=1,
        description="Gemini API key"
    )
    model_name: str = Field(
        default="gemini-1.5-flash",
        description="Gemini model to use"
    )
    max_tokens: int = Field(
        default=1024,
        ge=100,
        le=8192,
        description="Maximum tokens in response"
    )
    temperature: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Model temperature (lower = more deterministic)"
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
        description="ID of the spreadsheet holding the ledger"
    )
    records_sheet_name: str = Field(
        default="Records",
        description="Worksheet for ledger records"
    )
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Worksheet for audit events"
    )

    @field_validator("credentials_path")
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (it might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before connecting to Google Sheets."
            )
        return v


class Settings:
    """
    Root settings container.

    Sub-settings are loaded on access so a missing optional service does not
    prevent the rest of the application from starting.
    """

    @property
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Check which settings sections are properly configured.

    Returns a dict of {section_name: is_valid}, plus "<section>_error"
    entries carrying the validation message for failed sections.
    """
    results = {}
    settings = get_settings()

    for section in ("ledger", "gemini", "google_sheets"):
        try:
            getattr(settings, section)
            results[section] = True
        except ValidationError as e:
            results[section] = False
            results[f"{section}_error"] = str(e)

    return results
