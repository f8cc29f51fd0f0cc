"""
Application Configuration - Pydantic Settings for type-safe config.

NO DICTIONARIES - All configuration is strongly typed.
FAIL FAST - Critical config is validated at startup.
"""

import sys

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when critical configuration is missing or invalid."""

    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database Configuration - NO DEFAULT for production safety
    database_url: str = ""
    database_read_url: str | None = None  # Optional read replica
    database_pool_size: int = 25
    database_max_overflow: int = 10
    database_pool_timeout: int = 30
    database_pool_recycle: int = 3600
    auto_migrate: bool = False  # Apply pending Alembic migrations at startup

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_title: str = "Points Ledger API"
    api_version: str = "0.1.0"
    api_description: str = "Prepaid point ledger for metered company actions"

    # Security - shared secret for service-to-service and scheduler calls
    internal_api_key: str = ""

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    # Observability - Metrics
    metrics_enabled: bool = True

    # Observability - Tracing
    tracing_enabled: bool = True
    otlp_endpoint: str = "http://otel-collector:4317"
    otlp_insecure: bool = True
    service_name: str = "points-ledger-api"

    # Ledger policy
    point_expiration_months: int = 3
    carryover_cap_ratio: float = 0.5
    min_purchase_points: int = 10

    # Billable action costs (points)
    cost_conversation: int = 1
    cost_interest: int = 0
    cost_contact_disclosure: int = 10
    cost_message_send: int = 3

    # Plan allotments (points per month)
    light_points_included: int = 100
    standard_points_included: int = 300
    enterprise_points_included: int = 1000

    # Additional point prices (yen per point)
    light_additional_point_price: int = 350
    standard_additional_point_price: int = 300
    enterprise_additional_point_price: int = 250

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_critical_config(self) -> "Settings":
        """
        FAIL FAST: Validate critical configuration at startup.

        The app MUST NOT start if critical config is missing.
        """
        errors: list[str] = []

        if not self.database_url:
            errors.append("DATABASE_URL is required but empty or missing")
        elif not self.database_url.startswith(("postgresql", "postgres")):
            errors.append(
                f"DATABASE_URL must be a PostgreSQL URL, got: {self.database_url[:20]}..."
            )

        if not self.internal_api_key:
            errors.append("INTERNAL_API_KEY is required but empty or missing")

        if not 0 <= self.carryover_cap_ratio <= 1:
            errors.append(
                f"CARRYOVER_CAP_RATIO must be between 0 and 1, got: {self.carryover_cap_ratio}"
            )

        for name in (
            "cost_conversation",
            "cost_interest",
            "cost_contact_disclosure",
            "cost_message_send",
        ):
            if getattr(self, name) < 0:
                errors.append(f"{name.upper()} cannot be negative")

        if self.point_expiration_months < 1:
            errors.append("POINT_EXPIRATION_MONTHS must be at least 1")

        if self.min_purchase_points < 1:
            errors.append("MIN_PURCHASE_POINTS must be at least 1")

        for plan in ("light", "standard", "enterprise"):
            if getattr(self, f"{plan}_points_included") < 0:
                errors.append(f"{plan.upper()}_POINTS_INCLUDED cannot be negative")
            if getattr(self, f"{plan}_additional_point_price") <= 0:
                errors.append(f"{plan.upper()}_ADDITIONAL_POINT_PRICE must be positive")

        if errors:
            error_msg = "\n".join(
                [
                    "",
                    "=" * 60,
                    "CRITICAL CONFIGURATION ERROR - APPLICATION CANNOT START",
                    "=" * 60,
                    *[f"  ✗ {e}" for e in errors],
                    "=" * 60,
                    "",
                ]
            )
            print(error_msg, file=sys.stderr)
            raise ConfigurationError(error_msg)

        return self

    @property
    def read_database_url(self) -> str:
        """Get read database URL (fallback to primary if no replica)."""
        return self.database_read_url or self.database_url


# Global settings instance - validates at import time
settings = Settings()


def get_settings() -> Settings:
    """Get application settings instance."""
    return settings
