"""Document ingest endpoints - POST /documents, POST /documents/reference."""

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile, status
from pydantic import BaseModel, Field

from docuhealth.api.deps import Services, get_services, http_error
from docuhealth.dispatch.dispatcher import IngestRequest
from docuhealth.errors import DispatchError, UnknownDocument
from docuhealth.models.documents import DeclaredType, Document, IngestionChannel
from docuhealth.models.processing import ProcessingRecord, ProcessingStatus
from docuhealth.models.validation import ValidationTicket

router = APIRouter(prefix="/documents", tags=["documents"])


class ReferenceRequest(BaseModel):
    """Request body for POST /documents/reference."""

    locator: str = Field(..., pattern=r"^gs://[^/]+/.+$", description="gs:// object locator")
    mime_type: str = Field(..., min_length=1)
    filename: str = Field(..., min_length=1)
    declared_type: DeclaredType = DeclaredType.general
    department: str = "General"
    uploaded_by: str = Field(..., min_length=1)
    sync_hint: bool = Field(False, description="Process inline against the fetched object")
    await_result: bool = True


class DocumentDetailResponse(BaseModel):
    """Response for GET /documents/{document_id}."""

    document: Document
    record: ProcessingRecord | None
    tickets: list[ValidationTicket]


async def _dispatch(
    services: Services, request: IngestRequest, response: Response
) -> ProcessingRecord:
    try:
        record = await services.dispatcher.dispatch(request)
    except DispatchError as e:
        raise http_error(e) from e

    if record.status == ProcessingStatus.queued:
        response.status_code = status.HTTP_202_ACCEPTED
    return record


@router.post("", response_model=ProcessingRecord, status_code=status.HTTP_201_CREATED)
async def upload_document(
    response: Response,
    services: Annotated[Services, Depends(get_services)],
    file: Annotated[UploadFile, File(description="Document to process")],
    uploaded_by: Annotated[str, Form(min_length=1)],
    declared_type: Annotated[DeclaredType, Form()] = DeclaredType.general,
    department: Annotated[str, Form()] = "General",
    ingestion_channel: Annotated[IngestionChannel, Form()] = IngestionChannel.upload,
    sync_hint: Annotated[bool, Form()] = False,
    await_result: Annotated[bool, Form()] = True,
) -> ProcessingRecord:
    """Process an uploaded file.

    Returns:
        201 with the terminal record, or 202 with a Queued record

    Raises:
        HTTPException: Mapped from the dispatch error kind
    """
    content = await file.read()
    request = IngestRequest(
        content=content,
        mime_type=file.content_type or "application/octet-stream",
        filename=file.filename or "upload",
        declared_type=declared_type,
        department=department,
        uploaded_by=uploaded_by,
        ingestion_channel=ingestion_channel,
        sync_hint=sync_hint,
        await_result=await_result,
    )
    return await _dispatch(services, request, response)


@router.post("/reference", response_model=ProcessingRecord, status_code=status.HTTP_201_CREATED)
async def reference_document(
    body: ReferenceRequest,
    response: Response,
    services: Annotated[Services, Depends(get_services)],
) -> ProcessingRecord:
    """Process an object that is already in storage."""
    request = IngestRequest(
        locator=body.locator,
        mime_type=body.mime_type,
        filename=body.filename,
        declared_type=body.declared_type,
        department=body.department,
        uploaded_by=body.uploaded_by,
        sync_hint=body.sync_hint,
        ingestion_channel=IngestionChannel.gcs_reference,
        await_result=body.await_result,
    )
    return await _dispatch(services, request, response)


@router.post("/{document_id}/resolve", response_model=ProcessingRecord)
async def resolve_document(
    document_id: uuid.UUID,
    services: Annotated[Services, Depends(get_services)],
    timeout_seconds: Annotated[float | None, Query(gt=0)] = None,
) -> ProcessingRecord:
    """Wait for a queued batch job and finalize its record."""
    try:
        return await services.dispatcher.resolve(document_id, timeout_seconds)
    except DispatchError as e:
        raise http_error(e) from e


@router.get("/{document_id}", response_model=DocumentDetailResponse)
async def get_document(
    document_id: uuid.UUID,
    services: Annotated[Services, Depends(get_services)],
) -> DocumentDetailResponse:
    """Document with its processing record and validation tickets."""
    document = await services.store.get_document(document_id)
    if document is None:
        raise http_error(UnknownDocument(f"Document {document_id} not found"))

    return DocumentDetailResponse(
        document=document,
        record=await services.store.get_record(document_id),
        tickets=await services.store.tickets_for_document(document_id),
    )
