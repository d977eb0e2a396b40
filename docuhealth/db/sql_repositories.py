"""SQL implementation of the record store."""

import uuid
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from docuhealth.db.models import (
    AuditEventRow,
    DocumentRow,
    ProcessingRecordRow,
    ValidationTicketRow,
)
from docuhealth.db.queries import (
    as_utc,
    awaiting_result_clause,
    select_open_ticket_count,
    select_records_since,
    select_validation_queue,
)
from docuhealth.db.repositories import MetricsSource, RecordFacts
from docuhealth.errors import DuplicateRecord, InvalidTransition, UnknownDocument
from docuhealth.models.audit import AuditEvent
from docuhealth.models.documents import Document, DocumentSummary
from docuhealth.models.processing import ProcessingRecord, ProcessingStatus
from docuhealth.models.validation import (
    TICKET_TRANSITIONS,
    TicketStatus,
    ValidationQueueItem,
    ValidationTicket,
)


class SqlRecordStore:
    """SQL implementation of RecordStore.

    Each write method runs in its own transaction. The primary key on
    ``processing_record.document_id`` decides concurrent writers: the first commit
    wins and the loser gets DuplicateRecord.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def record_outcome(
        self,
        document: Document,
        record: ProcessingRecord,
        audit: AuditEvent,
        ticket: ValidationTicket | None = None,
    ) -> None:
        """Insert document, record, ticket and audit event in one transaction."""
        if record.document_id != document.id or (
            ticket is not None and ticket.document_id != document.id
        ):
            raise UnknownDocument("Record and ticket must reference the stored document")

        async with self._session_factory() as session:
            try:
                async with session.begin():
                    if await session.get(ProcessingRecordRow, document.id) is not None:
                        raise DuplicateRecord(
                            f"Document {document.id} already has a processing record",
                            document_id=str(document.id),
                        )
                    if await session.get(DocumentRow, document.id) is None:
                        session.add(_document_row(document))
                    session.add(_record_row(record))
                    if ticket is not None:
                        session.add(_ticket_row(ticket))
                    session.add(_audit_row(audit))
            except IntegrityError as e:
                # Only a concurrent insert of the same record is a duplicate
                if await self.get_record(document.id) is None:
                    raise
                raise DuplicateRecord(
                    f"Document {document.id} already has a processing record",
                    document_id=str(document.id),
                ) from e

    async def finalize_record(
        self,
        record: ProcessingRecord,
        audit: AuditEvent,
        ticket: ValidationTicket | None = None,
    ) -> None:
        """Conditionally swap a record awaiting its batch result for the terminal outcome."""
        if ticket is not None and ticket.document_id != record.document_id:
            raise UnknownDocument("Ticket must reference the finalized document")

        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    update(ProcessingRecordRow)
                    .where(
                        ProcessingRecordRow.document_id == record.document_id,
                        awaiting_result_clause(),
                    )
                    .values(
                        status=record.status.value,
                        confidence_score=record.confidence_score,
                        extracted_text=record.extracted_text,
                        his_synced=record.his_synced,
                        completed_at=as_utc(record.completed_at) if record.completed_at else None,
                        error_kind=record.error_kind,
                        error_message=record.error_message,
                    )
                )
                if result.rowcount == 0:
                    current = await session.get(ProcessingRecordRow, record.document_id)
                    if current is None:
                        raise UnknownDocument(
                            f"No processing record for document {record.document_id}",
                            document_id=str(record.document_id),
                        )
                    raise DuplicateRecord(
                        f"Document {record.document_id} already reached {current.status}",
                        document_id=str(record.document_id),
                    )

                if ticket is not None:
                    session.add(_ticket_row(ticket))
                session.add(_audit_row(audit))

    async def get_document(self, document_id: uuid.UUID) -> Document | None:
        async with self._session_factory() as session:
            row = await session.get(DocumentRow, document_id)
            return _document_from_row(row) if row is not None else None

    async def get_record(self, document_id: uuid.UUID) -> ProcessingRecord | None:
        async with self._session_factory() as session:
            row = await session.get(ProcessingRecordRow, document_id)
            return _record_from_row(row) if row is not None else None

    async def tickets_for_document(self, document_id: uuid.UUID) -> list[ValidationTicket]:
        async with self._session_factory() as session:
            rows = await session.scalars(
                select(ValidationTicketRow)
                .where(ValidationTicketRow.document_id == document_id)
                .order_by(ValidationTicketRow.created_at)
            )
            return [_ticket_from_row(row) for row in rows]

    async def list_awaiting_results(self, limit: int = 50) -> list[ProcessingRecord]:
        async with self._session_factory() as session:
            rows = await session.scalars(
                select(ProcessingRecordRow)
                .where(awaiting_result_clause())
                .order_by(ProcessingRecordRow.started_at)
                .limit(limit)
            )
            return [_record_from_row(row) for row in rows]

    async def list_audit_events(self, limit: int = 50) -> list[AuditEvent]:
        async with self._session_factory() as session:
            rows = await session.scalars(
                select(AuditEventRow).order_by(AuditEventRow.created_at.desc()).limit(limit)
            )
            return [
                AuditEvent(
                    id=row.id,
                    event_type=row.event_type,  # type: ignore[arg-type]
                    actor=row.actor,
                    summary=row.summary,
                    payload=row.payload or {},
                    created_at=as_utc(row.created_at),
                )
                for row in rows
            ]

    async def validation_queue(self, limit: int | None = None) -> list[ValidationQueueItem]:
        """Open tickets in queue order joined with document summaries."""
        async with self._session_factory() as session:
            result = await session.execute(select_validation_queue(limit))
            return [
                ValidationQueueItem(
                    ticket=_ticket_from_row(ticket_row),
                    document=DocumentSummary(
                        id=document_row.id,
                        filename=document_row.filename,
                        declared_type=document_row.declared_type,
                        department=document_row.department,
                        uploaded_by=document_row.uploaded_by,
                        created_at=as_utc(document_row.created_at),
                    ),
                )
                for ticket_row, document_row in result.all()
            ]

    async def transition_ticket(
        self, ticket_id: uuid.UUID, new_status: TicketStatus, actor: str, now: datetime
    ) -> ValidationTicket:
        """Move a ticket forward, guarded on its current status."""
        async with self._session_factory() as session:
            async with session.begin():
                row = await session.get(ValidationTicketRow, ticket_id)
                if row is None:
                    raise UnknownDocument(f"Validation ticket {ticket_id} not found")

                current = TicketStatus(row.status)
                if new_status not in TICKET_TRANSITIONS[current]:
                    raise InvalidTransition(
                        f"Cannot move ticket from {current.value} to {new_status.value}",
                        ticket_id=str(ticket_id),
                    )

                result = await session.execute(
                    update(ValidationTicketRow)
                    .where(
                        ValidationTicketRow.id == ticket_id,
                        ValidationTicketRow.status == current.value,
                    )
                    .values(status=new_status.value)
                )
                if result.rowcount == 0:
                    raise InvalidTransition(
                        f"Ticket {ticket_id} changed concurrently",
                        ticket_id=str(ticket_id),
                    )

                session.add(
                    _audit_row(
                        AuditEvent.new(
                            "ticket.transitioned",
                            actor=actor,
                            summary=(
                                f"Ticket moved from {current.value} to {new_status.value}"
                            ),
                            created_at=now,
                            payload={
                                "ticket_id": str(ticket_id),
                                "document_id": str(row.document_id),
                                "from": current.value,
                                "to": new_status.value,
                            },
                        )
                    )
                )
                await session.refresh(row)
                return _ticket_from_row(row)

    async def load_metrics_source(self, since: datetime) -> MetricsSource:
        """Read window records and open ticket count inside one transaction."""
        async with self._session_factory() as session, session.begin():
            if session.bind.dialect.name == "postgresql":
                await session.connection(
                    execution_options={"isolation_level": "REPEATABLE READ"}
                )
            result = await session.execute(select_records_since(as_utc(since)))
            facts = [
                RecordFacts(
                    document_id=row.document_id,
                    declared_type=declared_type,
                    status=ProcessingStatus(row.status),
                    confidence_score=row.confidence_score,
                    his_synced=row.his_synced,
                    started_at=as_utc(row.started_at),
                )
                for row, declared_type in result.all()
            ]
            open_tickets = (await session.execute(select_open_ticket_count())).scalar_one()
        return MetricsSource(records=facts, open_tickets=open_tickets)


def _document_row(document: Document) -> DocumentRow:
    return DocumentRow(
        id=document.id,
        filename=document.filename,
        mime_type=document.mime_type,
        size_bytes=document.size_bytes,
        declared_type=document.declared_type.value,
        department=document.department,
        ingestion_channel=document.ingestion_channel.value,
        uploaded_by=document.uploaded_by,
        source_locator=document.source_locator,
        created_at=as_utc(document.created_at),
    )


def _document_from_row(row: DocumentRow) -> Document:
    return Document(
        id=row.id,
        filename=row.filename,
        mime_type=row.mime_type,
        size_bytes=row.size_bytes,
        declared_type=row.declared_type,
        department=row.department,
        ingestion_channel=row.ingestion_channel,
        uploaded_by=row.uploaded_by,
        source_locator=row.source_locator,
        created_at=as_utc(row.created_at),
    )


def _record_row(record: ProcessingRecord) -> ProcessingRecordRow:
    return ProcessingRecordRow(
        document_id=record.document_id,
        mode=record.mode.value,
        status=record.status.value,
        confidence_score=record.confidence_score,
        extracted_text=record.extracted_text,
        his_synced=record.his_synced,
        started_at=as_utc(record.started_at),
        completed_at=as_utc(record.completed_at) if record.completed_at else None,
        operation_locator=record.operation_locator,
        output_locator=record.output_locator,
        error_kind=record.error_kind,
        error_message=record.error_message,
    )


def _record_from_row(row: ProcessingRecordRow) -> ProcessingRecord:
    return ProcessingRecord(
        document_id=row.document_id,
        mode=row.mode,
        status=row.status,
        confidence_score=row.confidence_score,
        extracted_text=row.extracted_text,
        his_synced=row.his_synced,
        started_at=as_utc(row.started_at),
        completed_at=as_utc(row.completed_at) if row.completed_at else None,
        operation_locator=row.operation_locator,
        output_locator=row.output_locator,
        error_kind=row.error_kind,
        error_message=row.error_message,
    )


def _ticket_row(ticket: ValidationTicket) -> ValidationTicketRow:
    return ValidationTicketRow(
        id=ticket.id,
        document_id=ticket.document_id,
        priority=ticket.priority.value,
        assigned_to=ticket.assigned_to,
        due_at=as_utc(ticket.due_at),
        status=ticket.status.value,
        created_at=as_utc(ticket.created_at),
    )


def _ticket_from_row(row: ValidationTicketRow) -> ValidationTicket:
    return ValidationTicket(
        id=row.id,
        document_id=row.document_id,
        priority=row.priority,
        assigned_to=row.assigned_to,
        due_at=as_utc(row.due_at),
        status=row.status,
        created_at=as_utc(row.created_at),
    )


def _audit_row(event: AuditEvent) -> AuditEventRow:
    return AuditEventRow(
        id=event.id,
        event_type=event.event_type,
        actor=event.actor,
        summary=event.summary,
        payload=event.payload,
        created_at=as_utc(event.created_at),
    )
