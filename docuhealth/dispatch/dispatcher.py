"""Document dispatcher - routes each document to inline or batch processing.

Pipeline per request:
- Route selection (see ``routing.choose_route``)
- Staging and provider calls, never retried here
- Confidence assessment and optional validation ticket
- One atomic write: document, processing record, ticket, audit event

Failures from the stager or provider are persisted as a Failed record and then
re-raised to the caller. Side effects already performed upstream (staged objects,
started batch jobs) are left in place for out-of-band cleanup.
"""

import time
import uuid
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field, model_validator

from docuhealth.config import DispatchConfig
from docuhealth.db.repositories import RecordStore
from docuhealth.dispatch.routing import Route, choose_route
from docuhealth.dispatch.validation import assess_confidence
from docuhealth.errors import (
    DispatchError,
    DuplicateRecord,
    PayloadTooLargeForSync,
    UnknownDocument,
    UpstreamTimeout,
)
from docuhealth.intelligence.client import DocumentIntelligenceClient
from docuhealth.models.audit import AuditEvent
from docuhealth.models.documents import DeclaredType, Document, IngestionChannel
from docuhealth.models.processing import (
    OcrResult,
    OperationHandle,
    ProcessingMode,
    ProcessingRecord,
    ProcessingStatus,
)
from docuhealth.models.validation import ValidationTicket
from docuhealth.storage.stager import ObjectStager, make_locator, parse_locator, unique_suffix

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class IngestRequest(BaseModel):
    """One document submitted for processing: bytes or an existing locator."""

    content: bytes | None = None
    locator: str | None = None
    mime_type: str = Field(..., min_length=1)
    filename: str = Field(..., min_length=1)
    declared_type: DeclaredType = DeclaredType.general
    department: str = "General"
    uploaded_by: str = Field(..., min_length=1)
    sync_hint: bool = False
    ingestion_channel: IngestionChannel = IngestionChannel.upload
    document_id: uuid.UUID | None = None
    await_result: bool = True

    @model_validator(mode="after")
    def check_source(self) -> "IngestRequest":
        """Exactly one of content or locator."""
        if (self.content is None) == (self.locator is None):
            raise ValueError("Provide exactly one of content or locator")
        if self.locator is not None:
            parse_locator(self.locator)
        return self

    @property
    def size_bytes(self) -> int | None:
        return len(self.content) if self.content is not None else None


# Metrics interface (implemented by utils.metrics)
class DispatchMetrics:
    """Interface for dispatch metrics."""

    def record_dispatch(self, mode: str, status: str, latency_ms: float) -> None:
        """Record one terminal or queued dispatch outcome."""
        pass

    def inc_error(self, kind: str) -> None:
        """Increment error counter."""
        pass

    def inc_ticket(self, priority: str) -> None:
        """Increment validation ticket counter."""
        pass


# Logging interface
class DispatchLogger:
    """Interface for structured logging."""

    def log_outcome(
        self,
        record: ProcessingRecord,
        route: str,
        latency_ms: float,
        ticket: ValidationTicket | None = None,
        error: DispatchError | None = None,
    ) -> None:
        """Log a dispatch outcome."""
        pass


class Dispatcher:
    """Routes documents through the stager and intelligence client into the store."""

    def __init__(
        self,
        *,
        stager: ObjectStager,
        intelligence: DocumentIntelligenceClient,
        store: RecordStore,
        config: DispatchConfig,
        clock: Clock | None = None,
        metrics: DispatchMetrics | None = None,
        logger: DispatchLogger | None = None,
    ) -> None:
        """Initialize dispatcher.

        Args:
            stager: Object stager for uploads and locator fetches
            intelligence: Document-intelligence provider client
            store: Record store receiving every outcome
            config: Validated dispatch policy
            clock: Injectable clock returning aware UTC datetimes
            metrics: Metrics recorder (optional, defaults to no-op)
            logger: Structured logger (optional, defaults to no-op)
        """
        self._stager = stager
        self._intelligence = intelligence
        self._store = store
        self._config = config
        self._now = clock or utc_now
        self._metrics = metrics or DispatchMetrics()
        self._logger = logger or DispatchLogger()

    def new_output_locator(self) -> str:
        """Fresh batch output prefix; never reused across calls."""
        return make_locator(
            self._config.bucket,
            f"{self._config.output_prefix}/{unique_suffix(self._now())}/",
        )

    async def dispatch(self, request: IngestRequest) -> ProcessingRecord:
        """Process one document and persist its outcome.

        Args:
            request: Document bytes or locator plus metadata

        Returns:
            The persisted ProcessingRecord (Queued when ``await_result`` is False
            and the request took a batch route)

        Raises:
            PayloadTooLargeForSync: Synchronous locator fetch above the inline ceiling
            StorageUnavailable, QuotaExceeded, NotFound: Stager failures
            UpstreamError, OperationFailed, UpstreamTimeout: Provider failures
            DuplicateRecord: The document already has a processing record
        """
        start = time.monotonic()
        started_at = self._now()
        document_id = request.document_id or uuid.uuid4()

        if request.document_id is not None and await self._store.get_record(document_id):
            raise DuplicateRecord(
                f"Document {document_id} already has a processing record",
                document_id=str(document_id),
            )

        route = choose_route(
            has_locator=request.locator is not None,
            size_bytes=request.size_bytes,
            sync_hint=request.sync_hint,
            threshold_bytes=self._config.sync_threshold_bytes,
        )
        mode = ProcessingMode.batch if route.is_batch else ProcessingMode.inline
        document = Document(
            id=document_id,
            filename=request.filename,
            mime_type=request.mime_type,
            size_bytes=request.size_bytes,
            declared_type=request.declared_type,
            department=request.department,
            ingestion_channel=request.ingestion_channel,
            uploaded_by=request.uploaded_by,
            created_at=started_at,
            source_locator=request.locator,
        )

        handle: OperationHandle | None = None
        try:
            if route == Route.fetch_inline:
                stored = await self._stager.fetch(request.locator)  # type: ignore[arg-type]
                document = document.model_copy(update={"size_bytes": stored.size_bytes})
                if stored.size_bytes > self._intelligence.max_inline_bytes:
                    raise PayloadTooLargeForSync(
                        f"Object of {stored.size_bytes} bytes exceeds inline ceiling of "
                        f"{self._intelligence.max_inline_bytes}",
                        locator=request.locator,
                        size_bytes=stored.size_bytes,
                    )
                result = await self._intelligence.process_inline(
                    stored.content, request.mime_type
                )
            elif route == Route.inline:
                result = await self._intelligence.process_inline(
                    request.content, request.mime_type  # type: ignore[arg-type]
                )
            else:
                input_locator = request.locator or await self._stager.stage(
                    request.content,  # type: ignore[arg-type]
                    request.filename,
                    request.mime_type,
                )
                handle = await self._intelligence.start_batch(
                    input_locator, self.new_output_locator(), request.mime_type
                )
                if not request.await_result:
                    return await self._record_queued(document, handle, route, started_at, start)
                result = await self._intelligence.await_batch(
                    handle, timeout_seconds=self._config.batch_timeout_seconds
                )
        except DispatchError as e:
            await self._record_failure(document, mode, route, started_at, start, e, handle)
            raise

        return await self._record_completed(
            document, mode, route, started_at, start, result, handle
        )

    async def resolve(
        self,
        document_id: uuid.UUID,
        timeout_seconds: float | None = None,
        *,
        actor: str = "dispatcher",
    ) -> ProcessingRecord:
        """Await a batch job and finalize its record.

        Accepts Queued records and batch records that failed only because an
        earlier wait timed out (the upstream job was left running). A timeout
        here leaves the record unchanged so a later call can try again.

        Raises:
            UnknownDocument: No record exists for the document
            DuplicateRecord: The record is terminal and has no job left to await
            OperationFailed, UpstreamError, StorageUnavailable: Job or output read failed
            UpstreamTimeout: The job did not finish within the wait
        """
        start = time.monotonic()
        pending = await self._store.get_record(document_id)
        if pending is None:
            raise UnknownDocument(
                f"No processing record for document {document_id}",
                document_id=str(document_id),
            )
        if not pending.awaiting_result:
            raise DuplicateRecord(
                f"Document {document_id} already reached {pending.status.value}",
                document_id=str(document_id),
            )

        handle = OperationHandle(
            name=pending.operation_locator,  # type: ignore[arg-type]
            output_locator=pending.output_locator or "",
        )
        if timeout_seconds is None:
            timeout_seconds = self._config.batch_timeout_seconds
        try:
            result = await self._intelligence.await_batch(handle, timeout_seconds=timeout_seconds)
        except UpstreamTimeout:
            self._metrics.inc_error(UpstreamTimeout.kind)
            raise
        except DispatchError as e:
            record = self._failed_record(pending.model_dump(), e)
            audit = self._failure_audit(record, e, actor)
            await self._store.finalize_record(record, audit)
            self._observe(record, "resolve", start, error=e)
            raise

        record, ticket = self._completed_record(pending.model_dump(), result)
        audit = self._processed_audit(record, ticket, actor)
        await self._store.finalize_record(record, audit, ticket)
        self._observe(record, "resolve", start, ticket=ticket)
        return record

    async def _record_completed(
        self,
        document: Document,
        mode: ProcessingMode,
        route: Route,
        started_at: datetime,
        start: float,
        result: OcrResult,
        handle: OperationHandle | None,
    ) -> ProcessingRecord:
        base = self._base_fields(document.id, mode, started_at, handle)
        record, ticket = self._completed_record(base, result)
        audit = self._processed_audit(record, ticket, document.uploaded_by)
        await self._store.record_outcome(document, record, audit, ticket)
        self._observe(record, route.value, start, ticket=ticket)
        return record

    async def _record_queued(
        self,
        document: Document,
        handle: OperationHandle,
        route: Route,
        started_at: datetime,
        start: float,
    ) -> ProcessingRecord:
        record = ProcessingRecord(
            **self._base_fields(document.id, ProcessingMode.batch, started_at, handle),
            status=ProcessingStatus.queued,
        )
        audit = AuditEvent.new(
            "document.queued",
            actor=document.uploaded_by,
            summary=f"Batch job {handle.name} started for {document.filename}",
            created_at=self._now(),
            payload=record.audit_payload(),
        )
        await self._store.record_outcome(document, record, audit)
        self._observe(record, route.value, start)
        return record

    async def _record_failure(
        self,
        document: Document,
        mode: ProcessingMode,
        route: Route,
        started_at: datetime,
        start: float,
        error: DispatchError,
        handle: OperationHandle | None,
    ) -> None:
        base = self._base_fields(document.id, mode, started_at, handle)
        record = self._failed_record(base, error)
        audit = self._failure_audit(record, error, document.uploaded_by)
        await self._store.record_outcome(document, record, audit)
        self._observe(record, route.value, start, error=error)

    @staticmethod
    def _base_fields(
        document_id: uuid.UUID,
        mode: ProcessingMode,
        started_at: datetime,
        handle: OperationHandle | None,
    ) -> dict[str, Any]:
        """Fields shared by every record produced for one dispatch."""
        return {
            "document_id": document_id,
            "mode": mode,
            "started_at": started_at,
            "operation_locator": handle.name if handle else None,
            "output_locator": handle.output_locator if handle else None,
        }

    def _completed_record(
        self, base: dict[str, Any], result: OcrResult
    ) -> tuple[ProcessingRecord, ValidationTicket | None]:
        completed_at = self._now()
        ticket = assess_confidence(
            result.confidence_score, self._config, base["document_id"], completed_at
        )
        record = ProcessingRecord.model_validate(
            {
                **base,
                "status": ProcessingStatus.completed,
                "confidence_score": result.confidence_score,
                "extracted_text": result.text,
                "his_synced": ticket is None,
                "completed_at": completed_at,
                "error_kind": None,
                "error_message": None,
            }
        )
        return record, ticket

    def _failed_record(self, base: dict[str, Any], error: DispatchError) -> ProcessingRecord:
        return ProcessingRecord.model_validate(
            {
                **base,
                "status": ProcessingStatus.failed,
                "confidence_score": None,
                "his_synced": False,
                "completed_at": self._now(),
                "error_kind": error.kind,
                "error_message": error.message,
            }
        )

    def _processed_audit(
        self, record: ProcessingRecord, ticket: ValidationTicket | None, actor: str
    ) -> AuditEvent:
        payload = record.audit_payload()
        if ticket is not None:
            payload.update(
                ticket_id=str(ticket.id),
                ticket_priority=ticket.priority.value,
                ticket_due_at=ticket.due_at.isoformat(),
            )
        summary = f"{record.mode.value} processing completed"
        if ticket is not None:
            summary += f"; {ticket.priority.value} validation ticket raised"
        return AuditEvent.new(
            "document.processed",
            actor=actor,
            summary=summary,
            created_at=self._now(),
            payload=payload,
        )

    def _failure_audit(
        self, record: ProcessingRecord, error: DispatchError, actor: str
    ) -> AuditEvent:
        return AuditEvent.new(
            "document.failed",
            actor=actor,
            summary=f"{record.mode.value} processing failed: {error.kind}",
            created_at=self._now(),
            payload={**record.audit_payload(), **error.to_payload()},
        )

    def _observe(
        self,
        record: ProcessingRecord,
        route: str,
        start: float,
        ticket: ValidationTicket | None = None,
        error: DispatchError | None = None,
    ) -> None:
        latency_ms = (time.monotonic() - start) * 1000
        self._metrics.record_dispatch(record.mode.value, record.status.value, latency_ms)
        if error is not None:
            self._metrics.inc_error(error.kind)
        if ticket is not None:
            self._metrics.inc_ticket(ticket.priority.value)
        self._logger.log_outcome(record, route, latency_ms, ticket=ticket, error=error)
