"""Models package - re-exports for convenience."""

from docuhealth.models.audit import AuditEvent, EventType
from docuhealth.models.documents import (
    DeclaredType,
    Document,
    DocumentSummary,
    IngestionChannel,
)
from docuhealth.models.metrics import HisSyncStatus, MetricsSnapshot, TrendBucket
from docuhealth.models.processing import (
    OcrResult,
    OperationHandle,
    ProcessingMode,
    ProcessingRecord,
    ProcessingStatus,
)
from docuhealth.models.validation import (
    TICKET_TRANSITIONS,
    TicketPriority,
    TicketStatus,
    ValidationQueueItem,
    ValidationTicket,
)

__all__ = [
    "AuditEvent",
    "DeclaredType",
    "Document",
    "DocumentSummary",
    "EventType",
    "HisSyncStatus",
    "IngestionChannel",
    "MetricsSnapshot",
    "OcrResult",
    "OperationHandle",
    "ProcessingMode",
    "ProcessingRecord",
    "ProcessingStatus",
    "TICKET_TRANSITIONS",
    "TicketPriority",
    "TicketStatus",
    "TrendBucket",
    "ValidationQueueItem",
    "ValidationTicket",
]
