"""
Configuration Management for Account Manager

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see where data lives on disk and how import
behaves, and ensures configuration is validated at startup.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_data_dir() -> Path:
    return Path.home() / ".account_manager"


class StorageSettings(BaseSettings):
    """Local JSON storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="ACCOUNT_MANAGER_STORAGE_",
        extra="ignore"
    )

    data_dir: Path = Field(
        default_factory=_default_data_dir,
        description="Directory holding the data file and the audit log"
    )
    data_file_name: str = Field(
        default="account_manager_data.json",
        description="File name of the store snapshot"
    )
    audit_file_name: str = Field(
        default="audit_log.jsonl",
        description="File name of the append-only audit log"
    )
    max_write_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts for a snapshot write before giving up"
    )

    @field_validator("data_file_name", "audit_file_name")
    @classmethod
    def validate_file_name(cls, v: str) -> str:
        """File names must not smuggle in directories."""
        v = v.strip()
        if not v or Path(v).name != v:
            raise ValueError(f"Invalid file name: {v!r}")
        return v

    @property
    def data_file_path(self) -> Path:
        return self.data_dir / self.data_file_name

    @property
    def audit_file_path(self) -> Path:
        return self.data_dir / self.audit_file_name


class ImportSettings(BaseSettings):
    """Bulk text import configuration."""

    model_config = SettingsConfigDict(
        env_prefix="ACCOUNT_MANAGER_IMPORT_",
        extra="ignore"
    )

    default_authenticator_url: str = Field(
        default="",
        description=(
            "Authenticator URL given to imported records that carry a token "
            "but no URL. Empty disables the fallback."
        )
    )
    max_input_chars: int = Field(
        default=1_000_000,
        ge=1,
        description="Largest paste accepted by a single import"
    )


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
        description="Minimum level for local structured logs"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
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
    def storage(self) -> StorageSettings:
        return StorageSettings()

    @property
    def imports(self) -> ImportSettings:
        return ImportSettings()

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

    Returns a dict of {setting_name: is_valid}, plus ``<name>_error``
    entries for the sections that failed. Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("storage", "imports", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except ValueError as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
