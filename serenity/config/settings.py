"""
Configuration Management for Serenity Budget

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Budget constants (rounding tolerance, provisioning defaults, status
thresholds) live next to the storage settings so tests and the
application read them from one place.
"""

from decimal import Decimal
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Local SQLite database configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SERENITY_DB_",
        extra="ignore"
    )

    path: str = Field(
        default="serenite_budget.db",
        description="Path to the SQLite database file (':memory:' for a throwaway database)"
    )
    echo: bool = Field(
        default=False,
        description="Log every SQL statement emitted by SQLAlchemy"
    )

    @property
    def url(self) -> str:
        """SQLAlchemy URL for the configured path."""
        if self.path == ":memory:":
            return "sqlite://"
        return f"sqlite:///{Path(self.path).expanduser()}"


class BudgetSettings(BaseSettings):
    """Budget engine constants."""

    model_config = SettingsConfigDict(
        env_prefix="SERENITY_BUDGET_",
        extra="ignore"
    )

    rounding_tolerance: Decimal = Field(
        default=Decimal("0.01"),
        ge=0,
        description="Maximum accepted gap between allocations and the monthly budget"
    )
    default_category_allocation: Decimal = Field(
        default=Decimal("200"),
        ge=0,
        description="Allocation given to automatically created categories"
    )
    default_category_color: str = Field(
        default="#64748b",
        description="Display color of automatically created categories"
    )
    income_category_names: str = Field(
        default="Revenus,Income,Salaire",
        description="Comma-separated names treated as income buckets"
    )
    catch_all_category_names: str = Field(
        default="Autres,Other",
        description="Comma-separated names treated as catch-all buckets"
    )
    warning_threshold_percent: int = Field(
        default=80,
        ge=0,
        description="Spent/allocated percentage from which a category is in warning"
    )
    danger_threshold_percent: int = Field(
        default=100,
        ge=0,
        description="Spent/allocated percentage from which a category is in danger"
    )
    overflow_tolerance: Decimal = Field(
        default=Decimal("0.009"),
        ge=0,
        description="Tolerance used when flagging allocations above the monthly budget"
    )

    @field_validator("default_category_color")
    @classmethod
    def validate_color(cls, v: str) -> str:
        if not v.startswith("#"):
            raise ValueError("Color must be a hex string such as #64748b")
        return v

    @property
    def income_names(self) -> set[str]:
        """Income bucket names, lowercased."""
        return {n.strip().lower() for n in self.income_category_names.split(",") if n.strip()}

    @property
    def catch_all_names(self) -> set[str]:
        """Catch-all bucket names, lowercased."""
        return {n.strip().lower() for n in self.catch_all_category_names.split(",") if n.strip()}


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
        description="Standard library log level used by structlog"
    )
    default_currency: str = Field(
        default="EUR",
        min_length=3,
        max_length=3,
        description="Currency stored in fresh user settings"
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

    @property
    def database(self) -> DatabaseSettings:
        return DatabaseSettings()

    @property
    def budget(self) -> BudgetSettings:
        return BudgetSettings()

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

    Returns a dict of {setting_name: is_valid}, with an extra
    "<name>_error" entry for every group that failed to load.
    """
    results = {}
    settings = get_settings()

    for name in ("database", "budget", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except ValueError as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
