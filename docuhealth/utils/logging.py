"""Structured logging for dispatch outcomes."""

import logging
from typing import Any

from docuhealth.dispatch.dispatcher import DispatchLogger
from docuhealth.errors import DispatchError
from docuhealth.models.processing import ProcessingRecord, ProcessingStatus
from docuhealth.models.validation import ValidationTicket

logger = logging.getLogger(__name__)


class StructuredDispatchLogger(DispatchLogger):
    """Structured logger for dispatch outcomes."""

    def log_outcome(
        self,
        record: ProcessingRecord,
        route: str,
        latency_ms: float,
        ticket: ValidationTicket | None = None,
        error: DispatchError | None = None,
    ) -> None:
        """Log dispatch outcome with structured data."""
        log_data: dict[str, Any] = {
            "document_id": str(record.document_id),
            "route": route,
            "mode": record.mode.value,
            "status": record.status.value,
            "latency_ms": round(latency_ms, 2),
            "confidence_score": record.confidence_score,
            "his_synced": record.his_synced,
        }

        if record.operation_locator:
            log_data["operation"] = record.operation_locator
        if ticket is not None:
            log_data["ticket_priority"] = ticket.priority.value
            log_data["ticket_due_at"] = ticket.due_at.isoformat()
        if error is not None:
            log_data["error_kind"] = error.kind
            log_data["error_message"] = error.message

        log_msg = f"Dispatch: {record.document_id} - {record.status.value}"

        if record.status == ProcessingStatus.failed:
            logger.warning(log_msg, extra={"structured": log_data})
        else:
            logger.info(log_msg, extra={"structured": log_data})
