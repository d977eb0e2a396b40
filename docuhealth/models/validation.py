"""Validation ticket models - human review queue."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from docuhealth.models.documents import DocumentSummary


class TicketPriority(str, Enum):
    """Review urgency."""

    normal = "Normal"
    high = "High"


class TicketStatus(str, Enum):
    """Review lifecycle. Transitions are human actions only."""

    pending = "Pending"
    in_review = "InReview"
    resolved = "Resolved"


# Allowed forward transitions
TICKET_TRANSITIONS: dict[TicketStatus, frozenset[TicketStatus]] = {
    TicketStatus.pending: frozenset({TicketStatus.in_review}),
    TicketStatus.in_review: frozenset({TicketStatus.resolved}),
    TicketStatus.resolved: frozenset(),
}


class ValidationTicket(BaseModel):
    """Review task for a low-confidence result."""

    model_config = ConfigDict(frozen=True)

    id: UUID
    document_id: UUID
    priority: TicketPriority
    assigned_to: str
    due_at: datetime
    status: TicketStatus = TicketStatus.pending
    created_at: datetime


class ValidationQueueItem(BaseModel):
    """Ticket joined with its document summary."""

    ticket: ValidationTicket
    document: DocumentSummary
