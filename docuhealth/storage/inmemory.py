"""In-memory implementation of the object stager."""

from docuhealth.errors import NotFound, QuotaExceeded
from docuhealth.storage.stager import (
    DEFAULT_CONTENT_TYPE,
    StoredObject,
    build_object_name,
    make_locator,
    parse_locator,
)


class InMemoryObjectStager:
    """In-memory implementation of ObjectStager."""

    def __init__(
        self,
        bucket: str = "docuhealth-dev",
        *,
        upload_prefix: str = "document-ai-uploads",
        max_object_bytes: int | None = None,
    ) -> None:
        """Initialize stager.

        Args:
            bucket: Bucket name used in generated locators
            upload_prefix: Object name prefix for staged uploads
            max_object_bytes: Optional per-object size cap (QuotaExceeded above it)
        """
        self._bucket = bucket
        self._upload_prefix = upload_prefix
        self.max_object_bytes = max_object_bytes
        self._objects: dict[str, StoredObject] = {}
        self.stage_calls = 0
        self.fetch_calls = 0

    def put(self, locator: str, content: bytes, mime_type: str = DEFAULT_CONTENT_TYPE) -> None:
        """Seed an object directly (outputs written by the provider, fixtures)."""
        parse_locator(locator)
        self._objects[locator] = StoredObject(locator=locator, content=content, mime_type=mime_type)

    async def stage(self, content: bytes, filename: str, mime_type: str) -> str:
        """Store bytes under a fresh name."""
        self.stage_calls += 1
        if self.max_object_bytes is not None and len(content) > self.max_object_bytes:
            raise QuotaExceeded(
                f"Object of {len(content)} bytes exceeds cap of {self.max_object_bytes}"
            )

        locator = make_locator(self._bucket, build_object_name(self._upload_prefix, filename))
        self.put(locator, content, mime_type)
        return locator

    async def fetch(self, locator: str) -> StoredObject:
        """Return stored object or raise NotFound."""
        self.fetch_calls += 1
        stored = self._objects.get(locator)
        if stored is None:
            raise NotFound(f"Object not found: {locator}", locator=locator)
        return stored

    async def list_objects(self, prefix_locator: str) -> list[str]:
        """List locators sharing the prefix."""
        parse_locator(prefix_locator)
        return sorted(loc for loc in self._objects if loc.startswith(prefix_locator))
