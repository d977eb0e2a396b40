"""Error kinds raised across the dispatcher, stager, intelligence client and store.

Every error carries a stable ``kind`` string used in audit payloads and HTTP mapping.
"""

from typing import Any


class DispatchError(Exception):
    """Base class for all domain errors."""

    kind = "DispatchError"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_payload(self) -> dict[str, Any]:
        """Audit-friendly representation."""
        payload: dict[str, Any] = {"error_kind": self.kind, "error_message": self.message}
        payload.update({k: v for k, v in self.details.items() if v is not None})
        return payload


class ConfigurationError(DispatchError):
    """Required configuration is missing or inconsistent."""

    kind = "ConfigurationError"


# Object Stager
class StorageUnavailable(DispatchError):
    """Backing object store unreachable or failing transiently."""

    kind = "StorageUnavailable"


class QuotaExceeded(DispatchError):
    """Write rejected for size or quota reasons."""

    kind = "QuotaExceeded"


class NotFound(DispatchError):
    """Locator does not resolve to an object."""

    kind = "NotFound"


# Document Intelligence Client
class UpstreamError(DispatchError):
    """Provider returned an error response."""

    kind = "UpstreamError"

    def __init__(self, message: str, *, status_code: int | None = None, **details: Any) -> None:
        super().__init__(message, status_code=status_code, **details)
        self.status_code = status_code


class OperationFailed(DispatchError):
    """Long-running batch operation reported failure."""

    kind = "OperationFailed"


class UpstreamTimeout(DispatchError):
    """Call or wait exceeded its ceiling. Batch jobs are left running upstream."""

    kind = "Timeout"


# Dispatcher
class PayloadTooLargeForSync(DispatchError):
    """Synchronous handling requested for an object above the inline ceiling."""

    kind = "PayloadTooLargeForSync"


# Record Store
class DuplicateRecord(DispatchError):
    """A processing record already exists for this document."""

    kind = "DuplicateRecord"


class UnknownDocument(DispatchError):
    """Referenced document does not exist."""

    kind = "UnknownDocument"


class InvalidTransition(DispatchError):
    """Ticket status change not allowed by the review lifecycle."""

    kind = "InvalidTransition"
