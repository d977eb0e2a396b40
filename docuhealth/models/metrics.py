"""Dashboard metrics models - derived, never persisted."""

from datetime import date
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

HisSyncStatus = Literal["Yes", "Partial", "No"]


class TrendBucket(BaseModel):
    """One calendar day of volume in the reporting timezone."""

    model_config = ConfigDict(frozen=True)

    day: date
    day_label: str
    volume: int = Field(..., ge=0)


class MetricsSnapshot(BaseModel):
    """Point-in-time dashboard figures."""

    model_config = ConfigDict(frozen=True)

    documents_today: int
    failed_today: int
    pending_validations: int
    avg_accuracy: float | None
    his_sync_ratio: float | None
    his_sync_status: HisSyncStatus
    trend: list[TrendBucket] = Field(..., min_length=7, max_length=7)
    volume_by_declared_type: dict[str, int]
