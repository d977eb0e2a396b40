"""Object stager - durable bucket store for batch inputs and outputs.

Objects are addressed by ``gs://<bucket>/<object>`` locators. Staged names carry a
timestamp and a fresh random suffix per write attempt, so a retried write never
collides with (or overwrites) an earlier attempt.
"""

import logging
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Protocol
from urllib.parse import quote

import httpx

from docuhealth.config import Settings
from docuhealth.errors import ConfigurationError, NotFound, QuotaExceeded, StorageUnavailable

logger = logging.getLogger(__name__)

_LOCATOR_RE = re.compile(r"^gs://([^/]+)/(.+)$")
_UNSAFE_CHARS_RE = re.compile(r"[^a-zA-Z0-9._-]")

DEFAULT_CONTENT_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class StoredObject:
    """Downloaded object contents."""

    locator: str
    content: bytes
    mime_type: str

    @property
    def size_bytes(self) -> int:
        return len(self.content)


class ObjectStager(Protocol):
    """Durable object store used for staging and batch output."""

    async def stage(self, content: bytes, filename: str, mime_type: str) -> str:
        """Write bytes under the upload prefix.

        Args:
            content: Object bytes
            filename: Original filename (sanitized into the object name)
            mime_type: Declared content type

        Returns:
            Locator of the new object

        Raises:
            StorageUnavailable: Store unreachable
            QuotaExceeded: Write rejected for size/quota reasons
        """
        ...

    async def fetch(self, locator: str) -> StoredObject:
        """Download an object.

        Raises:
            NotFound: Locator does not resolve
            StorageUnavailable: Transient backend failure
        """
        ...

    async def list_objects(self, prefix_locator: str) -> list[str]:
        """List locators under a prefix, ordered by name.

        Raises:
            StorageUnavailable: Transient backend failure
        """
        ...


def parse_locator(locator: str) -> tuple[str, str]:
    """Split a ``gs://`` locator into (bucket, object name).

    Raises:
        ValueError: If the locator is malformed.
    """
    match = _LOCATOR_RE.match(locator)
    if not match:
        raise ValueError(f"Invalid object locator: {locator}")
    return match.group(1), match.group(2)


def make_locator(bucket: str, object_name: str) -> str:
    return f"gs://{bucket}/{object_name}"


def sanitize_filename(filename: str) -> str:
    """Replace characters outside [a-zA-Z0-9._-] with underscores."""
    cleaned = _UNSAFE_CHARS_RE.sub("_", filename)
    return cleaned or "document"


def unique_suffix(now: datetime | None = None) -> str:
    """Millisecond timestamp plus random hex, unique per call."""
    now = now or datetime.now(timezone.utc)
    return f"{int(now.timestamp() * 1000)}-{uuid.uuid4().hex}"


def build_object_name(prefix: str, filename: str, now: datetime | None = None) -> str:
    """Time-prefixed object name under ``prefix``."""
    return f"{prefix.strip('/')}/{unique_suffix(now)}-{sanitize_filename(filename)}"


class GcsObjectStager:
    """Cloud Storage JSON API stager over httpx."""

    def __init__(
        self,
        bucket: str,
        *,
        upload_prefix: str,
        access_token: str,
        api_base: str = "https://storage.googleapis.com",
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize stager.

        Args:
            bucket: Target bucket for staged uploads
            upload_prefix: Object name prefix for staged uploads
            access_token: OAuth2 bearer token
            api_base: Storage API base URL
            timeout: Per-request timeout in seconds
            client: Optional httpx client (for testing with mocks)
        """
        self._bucket = bucket
        self._upload_prefix = upload_prefix
        self._api_base = api_base.rstrip("/")
        self._headers = {"Authorization": f"Bearer {access_token}"}
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def stage(self, content: bytes, filename: str, mime_type: str) -> str:
        """Upload bytes with a create-only precondition."""
        object_name = build_object_name(self._upload_prefix, filename)
        locator = make_locator(self._bucket, object_name)
        url = f"{self._api_base}/upload/storage/v1/b/{self._bucket}/o"
        params = {"uploadType": "media", "name": object_name, "ifGenerationMatch": "0"}

        try:
            response = await self._client.post(
                url,
                params=params,
                content=content,
                headers={**self._headers, "Content-Type": mime_type},
            )
        except httpx.HTTPError as e:
            raise StorageUnavailable(
                f"Object store unreachable while staging {filename}", locator=locator
            ) from e

        self._raise_for_status(response, locator)
        logger.info(
            "Staged object", extra={"structured": {"locator": locator, "bytes": len(content)}}
        )
        return locator

    async def fetch(self, locator: str) -> StoredObject:
        """Download object media; content type comes from the response header."""
        bucket, object_name = parse_locator(locator)
        url = f"{self._api_base}/storage/v1/b/{bucket}/o/{quote(object_name, safe='')}"

        try:
            response = await self._client.get(url, params={"alt": "media"}, headers=self._headers)
        except httpx.HTTPError as e:
            raise StorageUnavailable(
                f"Object store unreachable while fetching {locator}", locator=locator
            ) from e

        self._raise_for_status(response, locator)
        mime_type = response.headers.get("content-type", DEFAULT_CONTENT_TYPE).split(";")[0]
        return StoredObject(locator=locator, content=response.content, mime_type=mime_type)

    async def list_objects(self, prefix_locator: str) -> list[str]:
        """Page through object listings under a prefix."""
        bucket, prefix = parse_locator(prefix_locator)
        url = f"{self._api_base}/storage/v1/b/{bucket}/o"
        params: dict[str, str] = {"prefix": prefix}
        names: list[str] = []

        while True:
            try:
                response = await self._client.get(url, params=params, headers=self._headers)
            except httpx.HTTPError as e:
                raise StorageUnavailable(
                    f"Object store unreachable while listing {prefix_locator}",
                    locator=prefix_locator,
                ) from e

            self._raise_for_status(response, prefix_locator)
            data = _json_object(response)
            items = data.get("items", []) if data is not None else None
            if data is None or not isinstance(items, list):
                raise StorageUnavailable(
                    f"Malformed object listing for {prefix_locator}", locator=prefix_locator
                )
            names.extend(
                item["name"] for item in items if isinstance(item, dict) and item.get("name")
            )

            page_token = data.get("nextPageToken")
            if not page_token:
                break
            params["pageToken"] = page_token

        return [make_locator(bucket, name) for name in sorted(names)]

    @staticmethod
    def _raise_for_status(response: httpx.Response, locator: str) -> None:
        """Map storage HTTP failures onto stager error kinds."""
        status = response.status_code
        if status < 400:
            return

        message = _error_message(response)
        if status == 404:
            raise NotFound(f"Object not found: {locator}", locator=locator)
        if status == 413 or (status in (403, 429) and "quota" in message.lower()):
            raise QuotaExceeded(message or "Write rejected by quota", locator=locator)
        raise StorageUnavailable(
            message or f"Object store returned HTTP {status}",
            locator=locator,
            status_code=status,
        )


def _json_object(response: httpx.Response) -> dict[str, Any] | None:
    """Decoded body when it is a JSON object, else None."""
    try:
        data = response.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:200]
    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict):
        return str(error.get("message", ""))
    return str(error or "")


def build_object_stager(
    settings: Settings, client: httpx.AsyncClient | None = None
) -> GcsObjectStager:
    """Factory for the configured Cloud Storage stager.

    Raises:
        ConfigurationError: If the bucket or access token is missing
    """
    token = settings.gcp_access_token.get_secret_value() if settings.gcp_access_token else ""
    missing = [
        key
        for key, value in (
            ("DOC_AI_GCS_BUCKET", settings.doc_ai_gcs_bucket),
            ("GCP_ACCESS_TOKEN", token),
        )
        if not value
    ]
    if missing:
        raise ConfigurationError(f"Object storage configuration missing: {', '.join(missing)}")

    return GcsObjectStager(
        settings.doc_ai_gcs_bucket,  # type: ignore[arg-type]
        upload_prefix=settings.doc_ai_gcs_upload_prefix,
        access_token=token,
        api_base=settings.storage_api_base,
        client=client,
    )
