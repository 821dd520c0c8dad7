"""
Core configuration module using pydantic-settings.
All settings are loaded from environment variables with sensible defaults.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

VALID_PRECISIONS = ("ns", "us", "ms", "s")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Logging
    # ==========================================================================
    log_level: str = Field(default="INFO", description="Root log level")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize and validate the log level name."""
        level = v.strip().upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log level: {v}")
        return level

    # ==========================================================================
    # InfluxDB
    # ==========================================================================
    influx_url: str = Field(
        default="http://localhost:8086",
        description="InfluxDB URL",
    )
    influx_token: str = Field(
        default="",
        description="InfluxDB API token",
    )
    influx_org: str = Field(
        default="wildfly_domain",
        description="InfluxDB organization",
    )
    influx_timeout_ms: int = Field(
        default=10000,
        description="InfluxDB client timeout in milliseconds",
    )

    # ==========================================================================
    # Export
    # ==========================================================================
    influx_export_enabled: bool = Field(
        default=False,
        description="Master switch for bucket exports",
    )
    export_folder: str = Field(
        default="exports",
        description="Folder receiving NDJSON export files",
    )
    system_metrics_host: str = Field(
        default="home-server",
        description="Host tag used by the system metrics queries",
    )

    @field_validator("export_folder")
    @classmethod
    def validate_export_folder(cls, v: str) -> str:
        """Export folder must not be blank."""
        folder = v.strip()
        if not folder:
            raise ValueError("Export folder must not be blank")
        return folder

    # ==========================================================================
    # Write-back
    # ==========================================================================
    sensor_write_bucket: str = Field(
        default="sensors",
        description="Bucket receiving sensor write-back",
    )
    sensor_write_precision: str = Field(
        default="s",
        description="Write precision for sensor write-back (ns, us, ms, s)",
    )
    cost_write_bucket: str = Field(
        default="costs",
        description="Bucket receiving cost write-back",
    )
    cost_write_precision: str = Field(
        default="ns",
        description="Write precision for cost write-back (ns, us, ms, s)",
    )
    write_max_retries: int = Field(
        default=3,
        ge=1,
        description="Attempts per write before giving up",
    )

    @field_validator("sensor_write_precision", "cost_write_precision")
    @classmethod
    def validate_precision(cls, v: str) -> str:
        """Validate write precision names."""
        precision = v.strip().lower()
        if precision not in VALID_PRECISIONS:
            raise ValueError(f"Invalid write precision: {v} (expected one of {VALID_PRECISIONS})")
        return precision


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def validate_export_settings(settings: Settings) -> list[str]:
    """
    Validate that an export can run with these settings.

    Returns:
        List of problems (empty if valid)
    """
    problems = []

    if not settings.influx_url or not settings.influx_url.strip():
        problems.append("INFLUX_URL is required for exports")
    if not settings.influx_token or not settings.influx_token.strip():
        problems.append("INFLUX_TOKEN is required for exports")
    if not settings.influx_org or not settings.influx_org.strip():
        problems.append("INFLUX_ORG is required for exports")
    if not settings.influx_export_enabled:
        problems.append("INFLUX_EXPORT_ENABLED is false")

    return problems
