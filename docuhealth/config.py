"""Typed settings configuration - single source of truth."""

from dataclasses import dataclass
from datetime import timedelta
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from docuhealth.errors import ConfigurationError


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    database_url: str | None = None

    # Document AI processor
    doc_ai_project_id: str | None = None
    doc_ai_location: str | None = None
    doc_ai_processor_id: str | None = None
    doc_ai_endpoint: str | None = None
    gcp_access_token: SecretStr | None = None

    # Cloud Storage
    doc_ai_gcs_bucket: str | None = None
    doc_ai_gcs_upload_prefix: str = "document-ai-uploads"
    storage_api_base: str = "https://storage.googleapis.com"

    # Dispatch policy (no silent defaults - see DispatchConfig.from_settings)
    sync_threshold_bytes: int | None = None
    inline_ceiling_bytes: int = 20 * 1024 * 1024
    validation_threshold: float | None = None
    high_priority_threshold: float | None = None
    normal_sla_minutes: int | None = None
    high_sla_minutes: int | None = None
    reporting_timezone: str | None = None
    output_prefix: str | None = None
    validation_assignee: str = "quality-review"

    # Timeouts (seconds)
    inline_timeout_seconds: float = 60.0
    batch_timeout_seconds: float = 900.0
    batch_poll_interval_seconds: float = 5.0


@dataclass(frozen=True)
class DispatchConfig:
    """Dispatcher policy, validated once at construction."""

    sync_threshold_bytes: int
    validation_threshold: float
    high_priority_threshold: float
    normal_sla: timedelta
    high_sla: timedelta
    reporting_timezone: str
    output_prefix: str
    bucket: str
    validation_assignee: str = "quality-review"
    batch_timeout_seconds: float = 900.0

    def __post_init__(self) -> None:
        if self.sync_threshold_bytes <= 0:
            raise ConfigurationError("sync_threshold_bytes must be a positive integer")
        if not 0.0 <= self.high_priority_threshold <= self.validation_threshold <= 1.0:
            raise ConfigurationError(
                "thresholds must satisfy 0 <= high_priority_threshold "
                "<= validation_threshold <= 1"
            )
        if self.high_sla >= self.normal_sla:
            raise ConfigurationError("high_sla_minutes must be shorter than normal_sla_minutes")
        if not self.output_prefix.strip("/"):
            raise ConfigurationError("output_prefix must not be empty")
        try:
            ZoneInfo(self.reporting_timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ConfigurationError(
                f"Unknown reporting_timezone: {self.reporting_timezone}"
            ) from e

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.reporting_timezone)

    @classmethod
    def from_settings(cls, settings: Settings) -> "DispatchConfig":
        """Build the dispatch policy, failing fast on any missing value.

        Raises:
            ConfigurationError: If a required setting is unset or inconsistent.
        """
        required = {
            "SYNC_THRESHOLD_BYTES": settings.sync_threshold_bytes,
            "VALIDATION_THRESHOLD": settings.validation_threshold,
            "HIGH_PRIORITY_THRESHOLD": settings.high_priority_threshold,
            "NORMAL_SLA_MINUTES": settings.normal_sla_minutes,
            "HIGH_SLA_MINUTES": settings.high_sla_minutes,
            "REPORTING_TIMEZONE": settings.reporting_timezone,
            "OUTPUT_PREFIX": settings.output_prefix,
            "DOC_AI_GCS_BUCKET": settings.doc_ai_gcs_bucket,
        }
        missing = [key for key, value in required.items() if value is None or value == ""]
        if missing:
            raise ConfigurationError(f"Dispatch configuration missing: {', '.join(missing)}")

        return cls(
            sync_threshold_bytes=settings.sync_threshold_bytes,  # type: ignore[arg-type]
            validation_threshold=settings.validation_threshold,  # type: ignore[arg-type]
            high_priority_threshold=settings.high_priority_threshold,  # type: ignore[arg-type]
            normal_sla=timedelta(minutes=settings.normal_sla_minutes),  # type: ignore[arg-type]
            high_sla=timedelta(minutes=settings.high_sla_minutes),  # type: ignore[arg-type]
            reporting_timezone=settings.reporting_timezone,  # type: ignore[arg-type]
            output_prefix=settings.output_prefix.strip("/"),  # type: ignore[union-attr]
            bucket=settings.doc_ai_gcs_bucket,  # type: ignore[arg-type]
            validation_assignee=settings.validation_assignee,
            batch_timeout_seconds=settings.batch_timeout_seconds,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
