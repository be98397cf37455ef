"""
Application Settings - Main Layer

Use Pydantic Settings for configuration management.
This module handles configuration settings provided using
environment variables, .env files and default values.
"""

from typing import List, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from retail_forecast.domain.entities.model_artifact import ModelType
from retail_forecast.shared import (
    EnumDispatchMode,
    EnumEnvironment,
    EnumLogLevel,
    EnumStorageBackend,
)
from retail_forecast.shared.env import load_secret_file_variables  # noqa: F401


class DatabaseSettings(BaseSettings):
    """Database configuration settings."""

    mongo_uri: str = Field(
        default="mongodb://localhost:27017/retail_forecast",
        description="MongoDB connection URI",
    )
    database_name: str = Field(
        default="retail_forecast", description="Name of the MongoDB database"
    )
    storage_backend: EnumStorageBackend = Field(
        default=EnumStorageBackend.MONGO,
        description="mongo for durable storage, memory for tests and demos",
    )
    server_selection_timeout_ms: int = Field(default=5000, gt=0)

    model_config = SettingsConfigDict(
        env_prefix="DB_", case_sensitive=False, extra="ignore"
    )


class ServiceSettings(BaseSettings):
    """Service configuration settings."""

    title: str = Field(default="Retail Forecast Pipeline", description="API title")
    description: str = Field(
        default="Climate-aware demand forecasting with drift-driven retraining",
        description="API description",
    )
    version: str = Field(default="0.1.0", description="Service version")
    git_commit: str = Field(
        default="unknown",
        description="Git commit hash",
        validation_alias=AliasChoices("SERVICE_GIT_COMMIT", "GIT_COMMIT"),
    )
    debug: bool = Field(default=False, description="Enable debug mode")
    host: str = Field(default="0.0.0.0", description="Interface to bind")
    port: int = Field(default=8000, description="Port to bind the server")
    reload: bool = Field(
        default=False, description="Enable auto-reload for development"
    )

    model_config = SettingsConfigDict(
        env_prefix="SERVICE_", case_sensitive=False, extra="ignore"
    )


class CelerySettings(BaseSettings):
    """Celery configuration settings."""

    broker_url: str = Field(
        default="redis://redis:6379/0",
        description="Message broker URL",
        alias="CELERY_BROKER_URL",
    )
    result_backend_url: str = Field(
        default="redis://redis:6379/1",
        description="Result backend URL",
        alias="CELERY_RESULT_BACKEND",
    )
    retraining_queue: str = Field(default="retraining")
    scheduling_queue: str = Field(default="retraining_scheduling")

    model_config = SettingsConfigDict(
        env_prefix="CELERY_", case_sensitive=False, extra="ignore"
    )


class ForecastSettings(BaseSettings):
    """Forecast engine configuration settings."""

    min_samples: int = Field(
        default=30, gt=0, description="Usable rows required before fitting a scope"
    )
    target_feature: str = Field(default="sales")
    regressors: List[str] = Field(
        default_factory=lambda: ["temperature", "precipitation"],
        description="Exogenous climate regressors of new models",
    )
    default_model_type: ModelType = Field(default=ModelType.CLIMATE_REGRESSION)
    default_coverage: float = Field(default=0.8, gt=0.0, lt=1.0)
    random_seed: int = Field(default=42)
    model_cache_size: int = Field(default=32, gt=0)

    model_config = SettingsConfigDict(
        env_prefix="FORECAST_", case_sensitive=False, extra="ignore"
    )


class DriftSettings(BaseSettings):
    """Drift monitor configuration settings."""

    window_size: int = Field(default=30, gt=0)
    threshold_low: float = Field(default=0.10, gt=0.0)
    threshold_high: float = Field(default=0.20, gt=0.0)
    consecutive_windows: int = Field(default=3, gt=0)
    min_observations: Optional[int] = Field(
        default=None, description="Pairs needed before status changes (window size)"
    )
    denominator_floor: float = Field(
        default=1.0,
        gt=0.0,
        description="Smallest percentage-error denominator, in target units",
    )
    error_cap: float = Field(
        default=1.0, gt=0.0, description="Upper bound of one pair's percentage error"
    )

    model_config = SettingsConfigDict(
        env_prefix="DRIFT_", case_sensitive=False, extra="ignore"
    )


class SchedulerSettings(BaseSettings):
    """Retraining scheduler configuration settings."""

    interval_seconds: float = Field(default=86400.0, gt=0.0)
    min_margin: float = Field(default=0.05, ge=0.0, lt=1.0)
    training_days: int = Field(default=365, gt=1)
    holdout_days: int = Field(default=14, gt=0)
    max_attempts: int = Field(default=3, gt=0)
    max_model_age_seconds: float = Field(default=90 * 86400.0, gt=0.0)
    job_timeout_seconds: float = Field(default=3600.0, gt=0.0)
    dispatch_mode: EnumDispatchMode = Field(default=EnumDispatchMode.LOCAL)

    model_config = SettingsConfigDict(
        env_prefix="SCHEDULER_", case_sensitive=False, extra="ignore"
    )


class AlertSettings(BaseSettings):
    """Alert sink configuration settings."""

    webhook_url: Optional[str] = Field(
        default=None, description="Webhook receiving alert events, logs only if unset"
    )
    timeout_seconds: float = Field(default=5.0, gt=0.0)
    max_retries: int = Field(default=3, ge=0)
    backoff_base_seconds: float = Field(default=0.5, ge=0.0)
    backoff_max_seconds: float = Field(default=10.0, ge=0.0)

    model_config = SettingsConfigDict(
        env_prefix="ALERT_", case_sensitive=False, extra="ignore"
    )


class IngestSettings(BaseSettings):
    """Ingestion retry configuration settings."""

    max_retries: int = Field(default=3, ge=0)
    backoff_base_seconds: float = Field(default=0.1, ge=0.0)
    backoff_max_seconds: float = Field(default=2.0, ge=0.0)

    model_config = SettingsConfigDict(
        env_prefix="INGEST_", case_sensitive=False, extra="ignore"
    )


class LoggingSettings(BaseSettings):
    """Logging configuration settings."""

    level: EnumLogLevel = Field(default=EnumLogLevel.INFO, description="Logging level")
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Logging format",
    )
    file_path: Optional[str] = Field(
        default=None, description="Log file path (if None, logs to console)"
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_", case_sensitive=False, extra="ignore"
    )


class AppSettings(BaseSettings):
    """Main application settings, aggregating all sub-settings."""

    environment: EnumEnvironment = Field(
        default=EnumEnvironment.DEVELOPMENT, description="Application environment"
    )

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    service: ServiceSettings = Field(default_factory=ServiceSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    celery: CelerySettings = Field(default_factory=CelerySettings)
    forecast: ForecastSettings = Field(default_factory=ForecastSettings)
    drift: DriftSettings = Field(default_factory=DriftSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    alert: AlertSettings = Field(default_factory=AlertSettings)
    ingest: IngestSettings = Field(default_factory=IngestSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_nested_delimiter="__",
        extra="ignore",
    )


def get_settings() -> AppSettings:
    """
    Get application settings instance Factory.

    Used to be mocked in tests, allowing different settings per environment.
    """
    return AppSettings()
