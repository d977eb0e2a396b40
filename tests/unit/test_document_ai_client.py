"""Tests for the Document AI client."""

import asyncio
import base64
import json
import uuid

import httpx
import pytest

from docuhealth.config import Settings
from docuhealth.dispatch.dispatcher import Dispatcher, IngestRequest
from docuhealth.errors import ConfigurationError, OperationFailed, UpstreamError, UpstreamTimeout
from docuhealth.intelligence.client import DocumentAIClient, build_intelligence_client
from docuhealth.models.processing import OperationHandle, ProcessingStatus
from docuhealth.storage.inmemory import InMemoryObjectStager

PROCESSOR = "projects/proj-1/locations/us/processors/proc-9"


def make_client(
    handler,  # type: ignore[no-untyped-def]
    stager: InMemoryObjectStager | None = None,
    sleeps: list[float] | None = None,
) -> DocumentAIClient:
    async def fake_sleep(seconds: float) -> None:
        if sleeps is not None:
            sleeps.append(seconds)
        await asyncio.sleep(0)

    return DocumentAIClient(
        project_id="proj-1",
        location="us",
        processor_id="proc-9",
        access_token="token-abc",
        stager=stager or InMemoryObjectStager(bucket="docuhealth-test"),
        max_inline_bytes=20 * 1024 * 1024,
        poll_interval_seconds=2.0,
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        sleep_fn=fake_sleep,
    )


class TestProcessInline:
    """Test :process calls."""

    @pytest.mark.asyncio
    async def test_sends_base64_document_and_normalizes(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "document": {
                        "text": "Medicine: Paracetamol 500mg\n",
                        "pages": [{"layout": {"confidence": 0.94}}],
                    }
                },
            )

        result = await make_client(handler).process_inline(b"%PDF", "application/pdf")

        request = seen[0]
        assert request.url.host == "us-documentai.googleapis.com"
        assert request.url.path == f"/v1/{PROCESSOR}:process"
        assert request.headers["authorization"] == "Bearer token-abc"
        body = json.loads(request.content)
        assert base64.b64decode(body["rawDocument"]["content"]) == b"%PDF"
        assert body["rawDocument"]["mimeType"] == "application/pdf"
        assert result.text == "Medicine: Paracetamol 500mg\n"
        assert result.confidence_score == 0.94

    @pytest.mark.asyncio
    async def test_http_error_becomes_upstream_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                400, json={"error": {"code": 400, "message": "Unsupported input file format."}}
            )

        with pytest.raises(UpstreamError) as exc_info:
            await make_client(handler).process_inline(b"x", "text/plain")

        assert exc_info.value.status_code == 400
        assert exc_info.value.details["upstream_message"] == "Unsupported input file format."

    @pytest.mark.asyncio
    async def test_request_timeout_becomes_upstream_timeout(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(UpstreamTimeout):
            await make_client(handler).process_inline(b"x", "application/pdf")


class TestBatch:
    """Test :batchProcess, polling and shard reading."""

    @pytest.mark.asyncio
    async def test_start_batch_returns_operation_handle(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == f"/v1/{PROCESSOR}:batchProcess"
            body = json.loads(request.content)
            documents = body["inputDocuments"]["gcsDocuments"]["documents"]
            assert documents == [{"gcsUri": "gs://b/in.pdf", "mimeType": "application/pdf"}]
            assert body["documentOutputConfig"]["gcsOutputConfig"]["gcsUri"] == "gs://b/out/1/"
            return httpx.Response(200, json={"name": "projects/proj-1/locations/us/operations/42"})

        handle = await make_client(handler).start_batch(
            "gs://b/in.pdf", "gs://b/out/1/", "application/pdf"
        )

        assert handle == OperationHandle(
            name="projects/proj-1/locations/us/operations/42", output_locator="gs://b/out/1/"
        )

    @pytest.mark.asyncio
    async def test_missing_operation_name_is_upstream_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={})

        with pytest.raises(UpstreamError, match="operation name"):
            await make_client(handler).start_batch("gs://b/in.pdf", "gs://b/out/", "image/tiff")

    @pytest.mark.asyncio
    async def test_await_batch_polls_then_merges_shards_in_name_order(self) -> None:
        polls = iter([{"done": False}, {"done": False}, {"done": True, "response": {}}])
        sleeps: list[float] = []

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "GET"
            assert request.url.path == "/v1/projects/proj-1/locations/us/operations/7"
            return httpx.Response(200, json=next(polls))

        stager = InMemoryObjectStager(bucket="docuhealth-test")
        out = "gs://docuhealth-test/output/run-1/"
        stager.put(
            out + "7/0/doc-1.json",
            json.dumps({"text": "second ", "pages": [{"layout": {"confidence": 0.8}}]}).encode(),
        )
        stager.put(
            out + "7/0/doc-0.json",
            json.dumps({"text": "first ", "pages": [{"layout": {"confidence": 0.9}}]}).encode(),
        )
        stager.put(out + "7/0/manifest.txt", b"ignored")

        client = make_client(handler, stager=stager, sleeps=sleeps)
        handle = OperationHandle(
            name="projects/proj-1/locations/us/operations/7", output_locator=out
        )
        result = await client.await_batch(handle, timeout_seconds=60)

        assert sleeps == [2.0, 2.0]
        assert result.text == "first second "
        assert result.confidence_score == 0.85
        assert result.shard_count == 2

    @pytest.mark.asyncio
    async def test_operation_error_becomes_operation_failed(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, json={"done": True, "error": {"code": 3, "message": "Invalid document"}}
            )

        handle = OperationHandle(name="operations/1", output_locator="gs://b/out/")
        with pytest.raises(OperationFailed, match="Invalid document") as exc_info:
            await make_client(handler).await_batch(handle, timeout_seconds=5)

        assert exc_info.value.details["code"] == 3

    @pytest.mark.asyncio
    async def test_wait_ceiling_raises_timeout(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"done": False})

        handle = OperationHandle(name="operations/slow", output_locator="gs://b/out/")
        with pytest.raises(UpstreamTimeout):
            await make_client(handler).await_batch(handle, timeout_seconds=0.05)


class TestBuildIntelligenceClient:
    """Test the factory refuses to run unconfigured."""

    def test_missing_settings_raise_configuration_error(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            build_intelligence_client(Settings(_env_file=None), InMemoryObjectStager())

        message = str(exc_info.value)
        assert "DOC_AI_PROJECT_ID" in message
        assert "GCP_ACCESS_TOKEN" in message

    def test_builds_from_settings(self) -> None:
        settings = Settings(
            _env_file=None,
            doc_ai_project_id="proj-1",
            doc_ai_location="eu",
            doc_ai_processor_id="proc-9",
            gcp_access_token="token",
            inline_ceiling_bytes=1024,
        )
        client = build_intelligence_client(settings, InMemoryObjectStager())

        assert client.max_inline_bytes == 1024


class TestMalformedResponses:
    """Test 2xx bodies that are not JSON objects."""

    @pytest.mark.asyncio
    async def test_html_body_is_upstream_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>gateway</html>")

        with pytest.raises(UpstreamError, match="non-JSON"):
            await make_client(handler).process_inline(b"abc", "application/pdf")

    @pytest.mark.asyncio
    async def test_list_body_on_batch_start_is_upstream_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=["projects/p/operations/1"])

        with pytest.raises(UpstreamError, match="unexpected response shape"):
            await make_client(handler).start_batch("gs://b/in.pdf", "gs://b/out/", "image/tiff")

    @pytest.mark.asyncio
    async def test_non_json_operation_poll_is_upstream_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>maintenance</html>")

        handle = OperationHandle(name="operations/1", output_locator="gs://b/out/")
        with pytest.raises(UpstreamError):
            await make_client(handler).await_batch(handle, timeout_seconds=5)

    @pytest.mark.asyncio
    async def test_dispatch_records_failure_for_html_body(
        self, store, dispatch_config, clock
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, text="<html>gateway</html>", headers={"content-type": "text/html"}
            )

        dispatcher = Dispatcher(
            stager=InMemoryObjectStager(bucket="docuhealth-test"),
            intelligence=make_client(handler),
            store=store,
            config=dispatch_config,
            clock=clock,
        )
        request = IngestRequest(
            content=b"abc",
            mime_type="application/pdf",
            filename="opd.pdf",
            uploaded_by="clerk.iyer",
        )

        with pytest.raises(UpstreamError):
            await dispatcher.dispatch(request)

        events = await store.list_audit_events()
        assert len(events) == 1
        assert events[0].event_type == "document.failed"
        assert events[0].payload["error_kind"] == "UpstreamError"
        record = await store.get_record(uuid.UUID(events[0].payload["document_id"]))
        assert record is not None
        assert record.status == ProcessingStatus.failed
