"""Routing decision for incoming documents.

The table is evaluated top to bottom and the first matching row wins:

    locator + sync_hint  -> fetch, then inline (fail fast above the inline ceiling)
    locator              -> batch against the existing object
    bytes <= threshold   -> inline, no staging
    bytes >  threshold   -> stage, then batch
"""

from enum import Enum


class Route(str, Enum):
    """Processing path chosen for one request."""

    fetch_inline = "fetch_inline"
    locator_batch = "locator_batch"
    inline = "inline"
    stage_batch = "stage_batch"

    @property
    def is_batch(self) -> bool:
        return self in (Route.locator_batch, Route.stage_batch)


def choose_route(
    *,
    has_locator: bool,
    size_bytes: int | None,
    sync_hint: bool,
    threshold_bytes: int,
) -> Route:
    """Pick the processing path.

    Args:
        has_locator: Request references an already-stored object
        size_bytes: Byte length of inline content (ignored for locators)
        sync_hint: Caller explicitly asked for synchronous handling
        threshold_bytes: Inline/batch boundary for byte payloads

    Returns:
        The first matching route
    """
    if has_locator:
        return Route.fetch_inline if sync_hint else Route.locator_batch
    if size_bytes is None:
        raise ValueError("size_bytes is required for byte payloads")
    if size_bytes <= threshold_bytes:
        return Route.inline
    return Route.stage_batch
