"""Validation queue endpoints - GET /validations, POST /validations/{id}/transition."""

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from docuhealth.api.deps import Services, get_services, http_error
from docuhealth.dispatch.dispatcher import utc_now
from docuhealth.errors import DispatchError
from docuhealth.models.validation import TicketStatus, ValidationQueueItem, ValidationTicket

router = APIRouter(prefix="/validations", tags=["validations"])


class TransitionRequest(BaseModel):
    """Request body for POST /validations/{ticket_id}/transition."""

    status: TicketStatus
    actor: str = Field(..., min_length=1, description="Reviewer performing the change")


@router.get("", response_model=list[ValidationQueueItem])
async def validation_queue(
    services: Annotated[Services, Depends(get_services)],
    limit: Annotated[int | None, Query(ge=1, le=500)] = None,
) -> list[ValidationQueueItem]:
    """Open tickets, High before Normal, then earliest due."""
    return await services.store.validation_queue(limit)


@router.post("/{ticket_id}/transition", response_model=ValidationTicket)
async def transition_ticket(
    ticket_id: uuid.UUID,
    body: TransitionRequest,
    services: Annotated[Services, Depends(get_services)],
) -> ValidationTicket:
    """Move a ticket forward (Pending -> InReview -> Resolved).

    Raises:
        HTTPException: 404 for unknown tickets, 409 for disallowed transitions
    """
    try:
        return await services.store.transition_ticket(
            ticket_id, body.status, body.actor, utc_now()
        )
    except DispatchError as e:
        raise http_error(e) from e
