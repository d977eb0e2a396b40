"""Processing models - outcome of one dispatch attempt."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from docuhealth.errors import UpstreamTimeout


class ProcessingMode(str, Enum):
    """Which provider path produced the result."""

    inline = "Inline"
    batch = "Batch"


class ProcessingStatus(str, Enum):
    """Lifecycle state of a processing record."""

    completed = "Completed"
    queued = "Queued"
    failed = "Failed"


class OcrResult(BaseModel):
    """Normalized provider output.

    ``confidence_score`` is None when the provider returned no usable score.
    """

    text: str = ""
    confidence_score: float | None = Field(None, ge=0.0, le=1.0)
    page_count: int = 0
    shard_count: int = 1


class OperationHandle(BaseModel):
    """Reference to a long-running batch operation."""

    name: str
    output_locator: str


class ProcessingRecord(BaseModel):
    """One processing outcome per document (1:1)."""

    model_config = ConfigDict(frozen=True)

    document_id: UUID
    mode: ProcessingMode
    status: ProcessingStatus
    confidence_score: float | None = Field(None, ge=0.0, le=1.0)
    extracted_text: str | None = None
    his_synced: bool = False
    started_at: datetime
    completed_at: datetime | None = None
    operation_locator: str | None = None
    output_locator: str | None = None
    error_kind: str | None = None
    error_message: str | None = None

    @model_validator(mode="after")
    def check_invariants(self) -> "ProcessingRecord":
        """Enforce status/mode field requirements."""
        if self.status == ProcessingStatus.completed and self.completed_at is None:
            raise ValueError("Completed records require completed_at")
        if (
            self.mode == ProcessingMode.batch
            and self.status == ProcessingStatus.queued
            and not self.operation_locator
        ):
            raise ValueError("Queued batch records require operation_locator")
        if self.mode == ProcessingMode.inline and self.status == ProcessingStatus.queued:
            raise ValueError("Inline records are never queued")
        if self.mode == ProcessingMode.inline and self.operation_locator is not None:
            raise ValueError("operation_locator is only valid for batch records")
        if self.status == ProcessingStatus.failed and self.confidence_score is not None:
            raise ValueError("Failed records carry no confidence score")
        if self.status != ProcessingStatus.completed and self.his_synced:
            raise ValueError("Only completed records can be synced to HIS")
        return self

    @property
    def awaiting_result(self) -> bool:
        """Batch job still to be reconciled: Queued, or Failed because the wait timed out."""
        if self.mode != ProcessingMode.batch or not self.operation_locator:
            return False
        return self.status == ProcessingStatus.queued or (
            self.status == ProcessingStatus.failed and self.error_kind == UpstreamTimeout.kind
        )

    def audit_payload(self) -> dict[str, Any]:
        """Compact payload for audit events."""
        return {
            "document_id": str(self.document_id),
            "mode": self.mode.value,
            "status": self.status.value,
            "confidence_score": self.confidence_score,
            "his_synced": self.his_synced,
            "operation_locator": self.operation_locator,
        }
