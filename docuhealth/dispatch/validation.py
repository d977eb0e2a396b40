"""Validation ticket policy for completed results."""

import uuid
from datetime import datetime

from docuhealth.config import DispatchConfig
from docuhealth.models.validation import TicketPriority, TicketStatus, ValidationTicket


def needs_validation(score: float | None, config: DispatchConfig) -> bool:
    """Unscored results always go to review."""
    return score is None or score < config.validation_threshold


def ticket_priority(score: float | None, config: DispatchConfig) -> TicketPriority:
    if score is not None and score < config.high_priority_threshold:
        return TicketPriority.high
    return TicketPriority.normal


def assess_confidence(
    score: float | None,
    config: DispatchConfig,
    document_id: uuid.UUID,
    now: datetime,
) -> ValidationTicket | None:
    """Build the review ticket a result requires, if any.

    Args:
        score: Normalized confidence (None when the provider gave no score)
        config: Thresholds, SLA windows and assignee
        document_id: Document the ticket follows from
        now: Creation time; ``due_at`` is offset from it by the SLA window

    Returns:
        A Pending ticket, or None when the result is accepted as-is
    """
    if not needs_validation(score, config):
        return None

    priority = ticket_priority(score, config)
    window = config.high_sla if priority == TicketPriority.high else config.normal_sla
    return ValidationTicket(
        id=uuid.uuid4(),
        document_id=document_id,
        priority=priority,
        assigned_to=config.validation_assignee,
        due_at=now + window,
        status=TicketStatus.pending,
        created_at=now,
    )
