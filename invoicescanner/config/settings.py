"""
Configuration Management for Invoice Scanner

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Tariff rates and tolerances are NOT configuration - they are domain
constants of the consistency checker and live next to its formulas.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from invoicescanner.models.document import DocumentVariant


class GeminiSettings(BaseSettings):
    """Gemini extraction service configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        description="Gemini API key"
    )
    model_name: str = Field(
        default="gemini-2.5-flash",
        description="Gemini model to use"
    )
    max_tokens: int = Field(
        default=2048,
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


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Which document shape this instance scans
    document_variant: DocumentVariant = Field(
        default=DocumentVariant.INVOICE,
        description="Active document variant (invoice or utility_bill)"
    )

    # Local storage
    storage_dir: Path = Field(
        default=Path.home() / ".invoicescanner",
        description="Directory holding the persisted collections"
    )
    export_dir: Path = Field(
        default=Path("exports"),
        description="Directory CSV exports are written to"
    )

    # Extraction
    extraction_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Extraction calls taking longer than this are treated as failed"
    )

    # Image encoding
    max_image_width: int = Field(
        default=1024,
        ge=256,
        le=4096,
        description="Images wider than this are downscaled before extraction"
    )
    jpeg_quality: int = Field(
        default=80,
        ge=10,
        le=100,
        description="JPEG quality used when re-encoding images"
    )

    @field_validator('storage_dir', 'export_dir')
    @classmethod
    def expand_user(cls, v: Path) -> Path:
        """Allow ~ in configured paths."""
        return v.expanduser()


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

    # Sub-settings are loaded lazily so the app can run without a Gemini key
    # (e.g. dashboard and export only).

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


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

    Returns a dict of {setting_name: is_valid}, plus a
    {setting_name}_error entry for each section that failed to load.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    try:
        _ = settings.gemini
        results["gemini"] = True
    except Exception as e:
        results["gemini"] = False
        results["gemini_error"] = str(e)

    try:
        _ = settings.app
        results["app"] = True
    except Exception as e:
        results["app"] = False
        results["app_error"] = str(e)

    return results
