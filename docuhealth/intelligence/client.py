"""Document AI client - inline and batch processing over the v1 REST API.

Security: the bearer token is read from settings only, never hardcoded.
There is no demo fallback: missing configuration is a ConfigurationError.
"""

import asyncio
import base64
import json
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

import httpx

from docuhealth.config import Settings
from docuhealth.errors import (
    ConfigurationError,
    OperationFailed,
    UpstreamError,
    UpstreamTimeout,
)
from docuhealth.intelligence.normalize import merge_results, normalize_document
from docuhealth.models.processing import OcrResult, OperationHandle
from docuhealth.storage.stager import ObjectStager

logger = logging.getLogger(__name__)


class DocumentIntelligenceClient(Protocol):
    """Protocol for document-intelligence provider implementations."""

    max_inline_bytes: int

    async def process_inline(self, content: bytes, mime_type: str) -> OcrResult:
        """Process a document synchronously.

        Raises:
            UpstreamError: Provider returned an error
            UpstreamTimeout: Request exceeded the inline timeout
        """
        ...

    async def start_batch(
        self, input_locator: str, output_locator: str, mime_type: str
    ) -> OperationHandle:
        """Start a long-running batch job and return immediately.

        Raises:
            UpstreamError: Provider rejected the request
        """
        ...

    async def await_batch(
        self, handle: OperationHandle, *, timeout_seconds: float | None = None
    ) -> OcrResult:
        """Wait for a batch job, then read and merge its output shards.

        Raises:
            OperationFailed: Provider reported job failure
            UpstreamTimeout: Wait exceeded ``timeout_seconds`` (job keeps running)
        """
        ...


class DocumentAIClient:
    """Google Document AI processor client."""

    def __init__(
        self,
        *,
        project_id: str,
        location: str,
        processor_id: str,
        access_token: str,
        stager: ObjectStager,
        max_inline_bytes: int,
        endpoint: str | None = None,
        inline_timeout_seconds: float = 60.0,
        poll_interval_seconds: float = 5.0,
        client: httpx.AsyncClient | None = None,
        sleep_fn: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        """Initialize client.

        Args:
            project_id: GCP project
            location: Processor location (e.g. "us", "eu")
            processor_id: Processor ID
            access_token: OAuth2 bearer token
            stager: Object stager used to read batch output shards
            max_inline_bytes: Largest payload accepted by process_inline
            endpoint: API base URL (default derived from location)
            inline_timeout_seconds: Timeout for inline requests
            poll_interval_seconds: Delay between operation polls
            client: Optional httpx client (for testing with mocks)
            sleep_fn: Injectable sleep function (default: asyncio.sleep)
        """
        self.max_inline_bytes = max_inline_bytes
        self._endpoint = (endpoint or f"https://{location}-documentai.googleapis.com").rstrip("/")
        self._processor_name = (
            f"projects/{project_id}/locations/{location}/processors/{processor_id}"
        )
        self._headers = {"Authorization": f"Bearer {access_token}"}
        self._stager = stager
        self._inline_timeout = inline_timeout_seconds
        self._poll_interval = poll_interval_seconds
        self._client = client or httpx.AsyncClient(timeout=inline_timeout_seconds)
        self._owns_client = client is None
        self._sleep = sleep_fn or asyncio.sleep

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def process_inline(self, content: bytes, mime_type: str) -> OcrResult:
        """Send raw bytes to the processor's :process method."""
        body = {
            "rawDocument": {
                "content": base64.b64encode(content).decode("ascii"),
                "mimeType": mime_type,
            }
        }
        start = time.monotonic()
        data = await self._post(f"{self._processor_name}:process", body, self._inline_timeout)
        result = normalize_document(data)

        logger.info(
            "Processed inline document",
            extra={
                "structured": {
                    "elapsed_ms": round((time.monotonic() - start) * 1000, 2),
                    "bytes": len(content),
                    "pages": result.page_count,
                }
            },
        )
        return result

    async def start_batch(
        self, input_locator: str, output_locator: str, mime_type: str
    ) -> OperationHandle:
        """Submit a :batchProcess request."""
        body = {
            "inputDocuments": {
                "gcsDocuments": {"documents": [{"gcsUri": input_locator, "mimeType": mime_type}]}
            },
            "documentOutputConfig": {"gcsOutputConfig": {"gcsUri": output_locator}},
        }
        data = await self._post(f"{self._processor_name}:batchProcess", body, self._inline_timeout)

        name = data.get("name")
        if not isinstance(name, str) or not name:
            raise UpstreamError("batchProcess response missing operation name")

        logger.info("Started batch operation", extra={"structured": {"operation": name}})
        return OperationHandle(name=name, output_locator=output_locator)

    async def get_operation(self, name: str) -> dict[str, Any]:
        """Fetch operation status once (non-blocking check)."""
        try:
            response = await self._client.get(
                f"{self._endpoint}/v1/{name}", headers=self._headers, timeout=self._inline_timeout
            )
        except httpx.TimeoutException as e:
            raise UpstreamTimeout(f"Timed out polling operation {name}", operation=name) from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"Document AI unreachable: {e}", operation=name) from e

        _raise_for_upstream_status(response)
        return _json_body(response)

    async def await_batch(
        self, handle: OperationHandle, *, timeout_seconds: float | None = None
    ) -> OcrResult:
        """Poll until done within ``timeout_seconds``; the upstream job is never cancelled."""
        try:
            async with asyncio.timeout(timeout_seconds):
                operation = await self._poll_until_done(handle.name)
        except TimeoutError as e:
            logger.warning(
                "Batch wait exceeded ceiling; operation left running",
                extra={"structured": {"operation": handle.name, "timeout_s": timeout_seconds}},
            )
            raise UpstreamTimeout(
                f"Batch operation {handle.name} did not finish within {timeout_seconds}s",
                operation=handle.name,
            ) from e

        error = operation.get("error")
        if error:
            details = error if isinstance(error, dict) else {}
            raise OperationFailed(
                details.get("message") or "Batch operation failed",
                operation=handle.name,
                code=details.get("code"),
            )

        return await self._read_output(handle.output_locator)

    async def _poll_until_done(self, name: str) -> dict[str, Any]:
        while True:
            operation = await self.get_operation(name)
            if operation.get("done"):
                return operation
            await self._sleep(self._poll_interval)

    async def _read_output(self, output_locator: str) -> OcrResult:
        """Merge every JSON shard written under the output prefix."""
        shard_locators = [
            loc for loc in await self._stager.list_objects(output_locator) if loc.endswith(".json")
        ]

        shards: list[OcrResult] = []
        for locator in shard_locators:
            stored = await self._stager.fetch(locator)
            try:
                payload = json.loads(stored.content)
            except ValueError as e:
                raise UpstreamError(f"Malformed batch output shard: {locator}") from e
            shards.append(normalize_document(payload))

        if not shards:
            logger.warning(
                "Batch operation produced no output shards",
                extra={"structured": {"output_locator": output_locator}},
            )
        return merge_results(shards)

    async def _post(self, path: str, body: dict[str, Any], timeout: float) -> dict[str, Any]:
        try:
            response = await self._client.post(
                f"{self._endpoint}/v1/{path}", json=body, headers=self._headers, timeout=timeout
            )
        except httpx.TimeoutException as e:
            raise UpstreamTimeout(f"Document AI request timed out after {timeout}s") from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"Document AI unreachable: {e}") from e

        _raise_for_upstream_status(response)
        return _json_body(response)


def _json_body(response: httpx.Response) -> dict[str, Any]:
    """Decoded 2xx body; anything but a JSON object is an upstream error."""
    try:
        data = response.json()
    except ValueError as e:
        raise UpstreamError(
            f"Document AI returned a non-JSON body (HTTP {response.status_code})",
            status_code=response.status_code,
            upstream_message=response.text[:200],
        ) from e
    if not isinstance(data, dict):
        raise UpstreamError(
            "Document AI returned an unexpected response shape",
            status_code=response.status_code,
        )
    return data


def _raise_for_upstream_status(response: httpx.Response) -> None:
    if response.status_code < 400:
        return

    message = response.text[:500]
    try:
        data = response.json()
        if isinstance(data, dict) and isinstance(data.get("error"), dict):
            message = data["error"].get("message") or message
    except ValueError:
        pass

    raise UpstreamError(
        f"Document AI returned HTTP {response.status_code}: {message}",
        status_code=response.status_code,
        upstream_message=message,
    )


def build_intelligence_client(
    settings: Settings,
    stager: ObjectStager,
    client: httpx.AsyncClient | None = None,
) -> DocumentAIClient:
    """Factory for the configured Document AI client.

    Raises:
        ConfigurationError: If any processor setting or the access token is missing
    """
    required = {
        "DOC_AI_PROJECT_ID": settings.doc_ai_project_id,
        "DOC_AI_LOCATION": settings.doc_ai_location,
        "DOC_AI_PROCESSOR_ID": settings.doc_ai_processor_id,
        "GCP_ACCESS_TOKEN": (
            settings.gcp_access_token.get_secret_value() if settings.gcp_access_token else None
        ),
    }
    missing = [key for key, value in required.items() if not value]
    if missing:
        raise ConfigurationError(f"Document AI configuration missing: {', '.join(missing)}")

    return DocumentAIClient(
        project_id=required["DOC_AI_PROJECT_ID"],  # type: ignore[arg-type]
        location=required["DOC_AI_LOCATION"],  # type: ignore[arg-type]
        processor_id=required["DOC_AI_PROCESSOR_ID"],  # type: ignore[arg-type]
        access_token=required["GCP_ACCESS_TOKEN"],  # type: ignore[arg-type]
        stager=stager,
        max_inline_bytes=settings.inline_ceiling_bytes,
        endpoint=settings.doc_ai_endpoint,
        inline_timeout_seconds=settings.inline_timeout_seconds,
        poll_interval_seconds=settings.batch_poll_interval_seconds,
        client=client,
    )
