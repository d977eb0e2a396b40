"""Shared query helpers for record store implementations."""

from datetime import datetime, timezone

from sqlalchemy import ColumnElement, Select, and_, case, func, or_, select

from docuhealth.db.models import DocumentRow, ProcessingRecordRow, ValidationTicketRow
from docuhealth.errors import UpstreamTimeout
from docuhealth.models.processing import ProcessingMode, ProcessingStatus
from docuhealth.models.validation import TicketPriority, TicketStatus, ValidationTicket

PRIORITY_RANK = {TicketPriority.high: 0, TicketPriority.normal: 1}


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on read)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def queue_sort_key(ticket: ValidationTicket) -> tuple[int, datetime]:
    """High priority first, then earliest due."""
    return (PRIORITY_RANK[ticket.priority], as_utc(ticket.due_at))


def select_validation_queue(limit: int | None = None) -> Select:
    """Open tickets joined with their documents in queue order."""
    priority_rank = case(
        (ValidationTicketRow.priority == TicketPriority.high.value, 0),
        else_=1,
    )
    query = (
        select(ValidationTicketRow, DocumentRow)
        .join(DocumentRow, DocumentRow.id == ValidationTicketRow.document_id)
        .where(ValidationTicketRow.status != TicketStatus.resolved.value)
        .order_by(priority_rank, ValidationTicketRow.due_at.asc(), ValidationTicketRow.id)
    )
    if limit is not None:
        query = query.limit(limit)
    return query


def select_records_since(since: datetime) -> Select:
    """Processing records in the window with their document's declared type."""
    return (
        select(ProcessingRecordRow, DocumentRow.declared_type)
        .join(DocumentRow, DocumentRow.id == ProcessingRecordRow.document_id)
        .where(ProcessingRecordRow.started_at >= since)
        .order_by(ProcessingRecordRow.started_at)
    )


def select_open_ticket_count() -> Select:
    return (
        select(func.count())
        .select_from(ValidationTicketRow)
        .where(ValidationTicketRow.status != TicketStatus.resolved.value)
    )


def awaiting_result_clause() -> ColumnElement[bool]:
    """Batch records still awaiting their job: Queued, or Failed on a timed-out wait."""
    return and_(
        ProcessingRecordRow.mode == ProcessingMode.batch.value,
        ProcessingRecordRow.operation_locator.is_not(None),
        or_(
            ProcessingRecordRow.status == ProcessingStatus.queued.value,
            and_(
                ProcessingRecordRow.status == ProcessingStatus.failed.value,
                ProcessingRecordRow.error_kind == UpstreamTimeout.kind,
            ),
        ),
    )
