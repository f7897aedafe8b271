"""
Configuration Management for Budget Desk

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BackendSettings(BaseSettings):
    """Hosted Postgres (REST gateway) configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SUPABASE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    url: str = Field(
        ...,
        description="Project URL of the hosted backend (https://<ref>.supabase.co)"
    )
    anon_key: str = Field(
        ...,
        description="Public anon key, sent as the apikey header"
    )
    schema_name: str = Field(
        default="public",
        description="Database schema exposed through the REST gateway"
    )
    timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        le=120,
        description="HTTP timeout for a single REST call"
    )

    @field_validator('url')
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Backend URL must be absolute; trailing slashes are dropped."""
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Backend URL must start with http:// or https://, got {v!r}")
        return v.rstrip("/")


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

    # Organization bootstrap
    default_organization_name: str = Field(
        default="My organization",
        min_length=1,
        description="Name given to the organization created for a brand new user"
    )
    default_category_names: str = Field(
        default="Materials,Labor,Transport,Tools,Other",
        description="Comma-separated list of categories seeded into a new organization"
    )

    # Invitations
    invitation_expiry_days: int = Field(
        default=7,
        ge=1,
        le=90,
        description="How many days an invitation stays valid"
    )

    # Analytics
    analytics_month_window: int = Field(
        default=6,
        ge=1,
        le=36,
        description="How many most recent months the monthly series keeps"
    )
    budget_alert_threshold: float = Field(
        default=0.9,
        gt=0.0,
        le=1.0,
        description="Share of a project budget that triggers an overspend warning"
    )
    recent_activity_limit: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Number of budgets shown in the dashboard activity feed"
    )
    upcoming_project_window_days: int = Field(
        default=30,
        ge=1,
        description="Projects starting within this many days count as upcoming"
    )
    uncategorized_label: str = Field(
        default="Uncategorized",
        description="Label for budget items whose category is unknown"
    )
    other_expenses_label: str = Field(
        default="Other",
        description="Label for expenses without a category"
    )

    # Audit trail
    persist_audit_events: bool = Field(
        default=False,
        description="Also write audit events to the backend"
    )
    audit_table_name: str = Field(
        default="audit_events",
        description="Backend table that receives audit events"
    )

    @property
    def default_categories_list(self) -> list[str]:
        """Get default categories as a list."""
        return [
            name.strip()
            for name in self.default_category_names.split(",")
            if name.strip()
        ]


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
    def backend(self) -> BackendSettings:
        return BackendSettings()

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

    Returns a dict of {setting_name: is_valid}, plus an
    ``<name>_error`` entry for every group that failed to load.
    """
    results = {}

    settings = get_settings()

    for name in ("backend", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
