# ==== APPLICATION SETTINGS CONFIGURATION ==== #

"""
Application settings configuration for ManagerOS.

This module provides centralized configuration management using Pydantic Settings
with environment variable loading and validation for all application components.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


# ==== MAIN SETTINGS CLASS ==== #


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Provides configuration for database connections, authentication,
    observability, scheduling and tolerance policy defaults.
    """

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=True,
        extra='ignore'
    )

    # --► CORE APPLICATION SETTINGS
    APP_ENV: str = "dev"
    SERVICE_NAME: str = "manageros-tolerance"
    LOG_LEVEL: str = "INFO"
    LOG_TO_FILES: bool = False

    # --► DATABASE CONFIGURATION
    DATABASE_URL: str = "sqlite+aiosqlite:///./manageros.db"
    DB_ECHO: bool = False

    # --► AUTHENTICATION SETTINGS
    JWT_SECRET: str = "change-me-please-and-keep-long-random"
    JWT_ALGORITHM: str = "HS256"

    # --► OBSERVABILITY CONFIGURATION
    OTEL_EXPORTER_OTLP_ENDPOINT: str | None = None
    OTEL_EXPORTER_OTLP_HEADERS: str | None = None
    OTEL_SERVICE_NAME: str | None = None
    OTEL_RESOURCE_ATTRIBUTES: str | None = None

    # --► METRICS CONFIGURATION
    PROMETHEUS_SCRAPE_PATH: str = "/metrics"

    # --► PREFECT WORKFLOW ORCHESTRATION
    PREFECT_FLOW_NAME: str = "tolerance_check"
    PREFECT_DEPLOYMENT_NAME: str = "nightly"
    PREFECT_SCHEDULE_CRON: str = "0 6 * * *"

    # --► TOLERANCE POLICY CONFIGURATION
    TOLERANCE_POLICY_PATH: str | None = None


# ==== GLOBAL SETTINGS INSTANCE ==== #


# Global settings instance for application-wide access
settings = Settings()


def get_settings() -> Settings:
    """
    Get global settings instance.

    Returns:
        Settings: Global application settings instance
    """
    return settings
