"""Audit event models - append-only trail."""

from datetime import datetime
from typing import Any, Literal
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

EventType = Literal[
    "document.processed",
    "document.queued",
    "document.failed",
    "ticket.transitioned",
]


class AuditEvent(BaseModel):
    """Immutable record of a state-changing action."""

    model_config = ConfigDict(frozen=True)

    id: UUID
    event_type: EventType
    actor: str
    summary: str
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime

    @classmethod
    def new(
        cls,
        event_type: EventType,
        *,
        actor: str,
        summary: str,
        created_at: datetime,
        payload: dict[str, Any] | None = None,
    ) -> "AuditEvent":
        """Create an event with a fresh ID."""
        return cls(
            id=uuid4(),
            event_type=event_type,
            actor=actor,
            summary=summary,
            payload=payload or {},
            created_at=created_at,
        )
