"""Record store protocol and read-side data records."""

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol
from uuid import UUID

from docuhealth.models.audit import AuditEvent
from docuhealth.models.documents import Document
from docuhealth.models.processing import ProcessingRecord, ProcessingStatus
from docuhealth.models.validation import TicketStatus, ValidationQueueItem, ValidationTicket


@dataclass(frozen=True)
class RecordFacts:
    """Fields of one processing record needed for aggregation."""

    document_id: UUID
    declared_type: str
    status: ProcessingStatus
    confidence_score: float | None
    his_synced: bool
    started_at: datetime


@dataclass(frozen=True)
class MetricsSource:
    """Consistent read of everything a snapshot needs."""

    records: list[RecordFacts]
    open_tickets: int


class RecordStore(Protocol):
    """Durable store for documents, processing records, tickets and audit events."""

    async def record_outcome(
        self,
        document: Document,
        record: ProcessingRecord,
        audit: AuditEvent,
        ticket: ValidationTicket | None = None,
    ) -> None:
        """Atomically persist a document with its first processing outcome.

        Args:
            document: Ingested document (inserted if not already stored)
            record: Processing record for that document
            audit: The one audit event describing the outcome
            ticket: Optional validation ticket

        Raises:
            DuplicateRecord: A record already exists for the document
            UnknownDocument: Record or ticket references another document
        """
        ...

    async def finalize_record(
        self,
        record: ProcessingRecord,
        audit: AuditEvent,
        ticket: ValidationTicket | None = None,
    ) -> None:
        """Atomically replace a record awaiting its batch result with the terminal outcome.

        Raises:
            UnknownDocument: No record exists for the document
            DuplicateRecord: The record no longer awaits a result
        """
        ...

    async def get_document(self, document_id: UUID) -> Document | None:
        """Get document by ID."""
        ...

    async def get_record(self, document_id: UUID) -> ProcessingRecord | None:
        """Get processing record by document ID."""
        ...

    async def tickets_for_document(self, document_id: UUID) -> list[ValidationTicket]:
        """List tickets raised for a document."""
        ...

    async def list_awaiting_results(self, limit: int = 50) -> list[ProcessingRecord]:
        """Oldest batch records still awaiting their job first (reconciliation sweep input).

        Covers Queued records and batch records whose earlier wait timed out.
        """
        ...

    async def list_audit_events(self, limit: int = 50) -> list[AuditEvent]:
        """Most recent audit events first."""
        ...

    async def validation_queue(self, limit: int | None = None) -> list[ValidationQueueItem]:
        """Open tickets, High before Normal, then earliest due first."""
        ...

    async def transition_ticket(
        self, ticket_id: UUID, new_status: TicketStatus, actor: str, now: datetime
    ) -> ValidationTicket:
        """Apply a human review transition and append one audit event.

        Raises:
            UnknownDocument: Ticket does not exist
            InvalidTransition: Transition not allowed from the current status
        """
        ...

    async def load_metrics_source(self, since: datetime) -> MetricsSource:
        """Records started at or after ``since`` plus the open ticket count, read together."""
        ...
