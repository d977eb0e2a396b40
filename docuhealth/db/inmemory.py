"""In-memory implementation of the record store.

Safe for use from a single event loop: no method awaits inside its critical
section, so every write is observed whole or not at all.
"""

import uuid
from datetime import datetime

from docuhealth.db.queries import as_utc, queue_sort_key
from docuhealth.db.repositories import MetricsSource, RecordFacts
from docuhealth.errors import DuplicateRecord, InvalidTransition, UnknownDocument
from docuhealth.models.audit import AuditEvent
from docuhealth.models.documents import Document, DocumentSummary
from docuhealth.models.processing import ProcessingRecord
from docuhealth.models.validation import (
    TICKET_TRANSITIONS,
    TicketStatus,
    ValidationQueueItem,
    ValidationTicket,
)


class InMemoryRecordStore:
    """In-memory implementation of RecordStore."""

    def __init__(self) -> None:
        self._documents: dict[uuid.UUID, Document] = {}
        self._records: dict[uuid.UUID, ProcessingRecord] = {}
        self._tickets: dict[uuid.UUID, ValidationTicket] = {}
        self._audit: list[AuditEvent] = []

    async def record_outcome(
        self,
        document: Document,
        record: ProcessingRecord,
        audit: AuditEvent,
        ticket: ValidationTicket | None = None,
    ) -> None:
        """Insert document, record, ticket and audit event together."""
        if record.document_id != document.id or (
            ticket is not None and ticket.document_id != document.id
        ):
            raise UnknownDocument("Record and ticket must reference the stored document")
        if document.id in self._records:
            raise DuplicateRecord(
                f"Document {document.id} already has a processing record",
                document_id=str(document.id),
            )

        self._documents.setdefault(document.id, document)
        self._records[document.id] = record
        if ticket is not None:
            self._tickets[ticket.id] = ticket
        self._audit.append(audit)

    async def finalize_record(
        self,
        record: ProcessingRecord,
        audit: AuditEvent,
        ticket: ValidationTicket | None = None,
    ) -> None:
        """Swap a record awaiting its batch result for the terminal outcome."""
        current = self._records.get(record.document_id)
        if current is None:
            raise UnknownDocument(
                f"No processing record for document {record.document_id}",
                document_id=str(record.document_id),
            )
        if not current.awaiting_result:
            raise DuplicateRecord(
                f"Document {record.document_id} already reached {current.status.value}",
                document_id=str(record.document_id),
            )
        if ticket is not None and ticket.document_id != record.document_id:
            raise UnknownDocument("Ticket must reference the finalized document")

        self._records[record.document_id] = record
        if ticket is not None:
            self._tickets[ticket.id] = ticket
        self._audit.append(audit)

    async def get_document(self, document_id: uuid.UUID) -> Document | None:
        return self._documents.get(document_id)

    async def get_record(self, document_id: uuid.UUID) -> ProcessingRecord | None:
        return self._records.get(document_id)

    async def tickets_for_document(self, document_id: uuid.UUID) -> list[ValidationTicket]:
        tickets = [t for t in self._tickets.values() if t.document_id == document_id]
        tickets.sort(key=lambda t: t.created_at)
        return tickets

    async def list_awaiting_results(self, limit: int = 50) -> list[ProcessingRecord]:
        awaiting = [r for r in self._records.values() if r.awaiting_result]
        awaiting.sort(key=lambda r: r.started_at)
        return awaiting[:limit]

    async def list_audit_events(self, limit: int = 50) -> list[AuditEvent]:
        events = sorted(self._audit, key=lambda e: e.created_at, reverse=True)
        return events[:limit]

    async def validation_queue(self, limit: int | None = None) -> list[ValidationQueueItem]:
        """Open tickets in queue order joined with document summaries."""
        open_tickets = [t for t in self._tickets.values() if t.status != TicketStatus.resolved]
        open_tickets.sort(key=lambda t: (*queue_sort_key(t), str(t.id)))
        if limit is not None:
            open_tickets = open_tickets[:limit]

        items: list[ValidationQueueItem] = []
        for ticket in open_tickets:
            document = self._documents[ticket.document_id]
            items.append(
                ValidationQueueItem(
                    ticket=ticket,
                    document=DocumentSummary(
                        id=document.id,
                        filename=document.filename,
                        declared_type=document.declared_type,
                        department=document.department,
                        uploaded_by=document.uploaded_by,
                        created_at=document.created_at,
                    ),
                )
            )
        return items

    async def transition_ticket(
        self, ticket_id: uuid.UUID, new_status: TicketStatus, actor: str, now: datetime
    ) -> ValidationTicket:
        """Move a ticket forward in its review lifecycle."""
        ticket = self._tickets.get(ticket_id)
        if ticket is None:
            raise UnknownDocument(f"Validation ticket {ticket_id} not found")
        if new_status not in TICKET_TRANSITIONS[ticket.status]:
            raise InvalidTransition(
                f"Cannot move ticket from {ticket.status.value} to {new_status.value}",
                ticket_id=str(ticket_id),
            )

        updated = ticket.model_copy(update={"status": new_status})
        self._tickets[ticket_id] = updated
        self._audit.append(
            AuditEvent.new(
                "ticket.transitioned",
                actor=actor,
                summary=f"Ticket moved from {ticket.status.value} to {new_status.value}",
                created_at=now,
                payload={
                    "ticket_id": str(ticket_id),
                    "document_id": str(ticket.document_id),
                    "from": ticket.status.value,
                    "to": new_status.value,
                },
            )
        )
        return updated

    async def load_metrics_source(self, since: datetime) -> MetricsSource:
        """Snapshot of records in the window and the open ticket count."""
        since = as_utc(since)
        facts = [
            RecordFacts(
                document_id=record.document_id,
                declared_type=self._documents[record.document_id].declared_type.value,
                status=record.status,
                confidence_score=record.confidence_score,
                his_synced=record.his_synced,
                started_at=as_utc(record.started_at),
            )
            for record in self._records.values()
            if as_utc(record.started_at) >= since
        ]
        facts.sort(key=lambda f: f.started_at)
        open_tickets = sum(1 for t in self._tickets.values() if t.status != TicketStatus.resolved)
        return MetricsSource(records=facts, open_tickets=open_tickets)
