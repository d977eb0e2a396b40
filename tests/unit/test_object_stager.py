"""Tests for the Cloud Storage object stager."""

import json
from datetime import datetime, timezone

import httpx
import pytest

from docuhealth.config import Settings
from docuhealth.errors import ConfigurationError, NotFound, QuotaExceeded, StorageUnavailable
from docuhealth.storage.inmemory import InMemoryObjectStager
from docuhealth.storage.stager import (
    GcsObjectStager,
    build_object_name,
    build_object_stager,
    parse_locator,
    sanitize_filename,
)


def make_stager(handler) -> GcsObjectStager:  # type: ignore[no-untyped-def]
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GcsObjectStager(
        "docuhealth-test",
        upload_prefix="uploads",
        access_token="test-token",
        client=client,
    )


class TestLocators:
    """Test locator helpers."""

    def test_parse_locator(self) -> None:
        assert parse_locator("gs://bucket/a/b/c.pdf") == ("bucket", "a/b/c.pdf")

    @pytest.mark.parametrize("bad", ["bucket/a.pdf", "gs://bucket", "gs:///a.pdf", "s3://b/a"])
    def test_parse_locator_rejects_malformed(self, bad: str) -> None:
        with pytest.raises(ValueError):
            parse_locator(bad)

    def test_sanitize_filename(self) -> None:
        assert sanitize_filename("OPD form (1).pdf") == "OPD_form__1_.pdf"
        assert sanitize_filename("") == "document"

    def test_object_names_are_unique_even_at_same_instant(self) -> None:
        now = datetime(2026, 10, 13, 6, 30, tzinfo=timezone.utc)
        first = build_object_name("uploads/", "scan.pdf", now)
        second = build_object_name("uploads/", "scan.pdf", now)

        assert first != second
        assert first.startswith(f"uploads/{int(now.timestamp() * 1000)}-")
        assert first.endswith("-scan.pdf")


class TestGcsObjectStager:
    """Test the JSON API calls and error mapping."""

    @pytest.mark.asyncio
    async def test_stage_uploads_with_create_only_precondition(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"name": request.url.params["name"]})

        stager = make_stager(handler)
        locator = await stager.stage(b"%PDF-1.7", "lab report.pdf", "application/pdf")

        request = seen[0]
        assert request.method == "POST"
        assert request.url.path == "/upload/storage/v1/b/docuhealth-test/o"
        assert request.url.params["uploadType"] == "media"
        assert request.url.params["ifGenerationMatch"] == "0"
        assert request.headers["authorization"] == "Bearer test-token"
        assert request.headers["content-type"] == "application/pdf"
        assert request.content == b"%PDF-1.7"
        assert locator == f"gs://docuhealth-test/{request.url.params['name']}"
        assert locator.endswith("-lab_report.pdf")

    @pytest.mark.asyncio
    async def test_fetch_returns_bytes_and_content_type(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["alt"] == "media"
            assert request.url.raw_path.startswith(
                b"/storage/v1/b/docuhealth-test/o/incoming%2Fscan.png"
            )
            return httpx.Response(
                200, content=b"\x89PNG", headers={"content-type": "image/png; charset=binary"}
            )

        stored = await make_stager(handler).fetch("gs://docuhealth-test/incoming/scan.png")

        assert stored.content == b"\x89PNG"
        assert stored.mime_type == "image/png"
        assert stored.size_bytes == 4

    @pytest.mark.asyncio
    async def test_fetch_missing_object_is_not_found(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, json={"error": {"message": "No such object"}})

        with pytest.raises(NotFound):
            await make_stager(handler).fetch("gs://docuhealth-test/missing.pdf")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("status", "message"),
        [(413, "Payload too large"), (429, "Quota exceeded for uploads"), (403, "quota limit")],
    )
    async def test_quota_rejections(self, status: int, message: str) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(status, json={"error": {"message": message}})

        with pytest.raises(QuotaExceeded):
            await make_stager(handler).stage(b"data", "a.pdf", "application/pdf")

    @pytest.mark.asyncio
    async def test_server_error_is_storage_unavailable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, text="backend error")

        with pytest.raises(StorageUnavailable) as exc_info:
            await make_stager(handler).stage(b"data", "a.pdf", "application/pdf")

        assert exc_info.value.details["status_code"] == 503

    @pytest.mark.asyncio
    async def test_transport_error_is_storage_unavailable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(StorageUnavailable):
            await make_stager(handler).fetch("gs://docuhealth-test/a.pdf")

    @pytest.mark.asyncio
    async def test_list_objects_pages_and_sorts(self) -> None:
        pages = {
            None: {"items": [{"name": "out/1/b.json"}], "nextPageToken": "p2"},
            "p2": {"items": [{"name": "out/1/a.json"}]},
        }

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["prefix"] == "out/1/"
            page = pages[request.url.params.get("pageToken")]
            return httpx.Response(200, content=json.dumps(page))

        locators = await make_stager(handler).list_objects("gs://docuhealth-test/out/1/")

        assert locators == [
            "gs://docuhealth-test/out/1/a.json",
            "gs://docuhealth-test/out/1/b.json",
        ]

    @pytest.mark.asyncio
    async def test_malformed_listing_is_storage_unavailable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>proxy error</html>")

        with pytest.raises(StorageUnavailable, match="Malformed object listing"):
            await make_stager(handler).list_objects("gs://docuhealth-test/out/1/")

    @pytest.mark.asyncio
    async def test_listing_skips_items_without_names(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"items": [{"size": "3"}, {"name": "out/1/a.json"}]})

        locators = await make_stager(handler).list_objects("gs://docuhealth-test/out/1/")

        assert locators == ["gs://docuhealth-test/out/1/a.json"]


class TestInMemoryObjectStager:
    """Test the in-memory stager."""

    @pytest.mark.asyncio
    async def test_stage_then_fetch(self) -> None:
        stager = InMemoryObjectStager(bucket="dev")
        locator = await stager.stage(b"abc", "a.pdf", "application/pdf")

        stored = await stager.fetch(locator)
        assert stored.content == b"abc"
        assert stored.mime_type == "application/pdf"
        assert await stager.list_objects("gs://dev/document-ai-uploads/") == [locator]

    @pytest.mark.asyncio
    async def test_size_cap_raises_quota_exceeded(self) -> None:
        stager = InMemoryObjectStager(max_object_bytes=2)
        with pytest.raises(QuotaExceeded):
            await stager.stage(b"abc", "a.pdf", "application/pdf")


class TestBuildObjectStager:
    """Test factory configuration checks."""

    def test_missing_bucket_and_token(self) -> None:
        with pytest.raises(ConfigurationError, match="DOC_AI_GCS_BUCKET.*GCP_ACCESS_TOKEN"):
            build_object_stager(Settings(_env_file=None))

    def test_builds_with_settings(self) -> None:
        settings = Settings(
            _env_file=None, doc_ai_gcs_bucket="docuhealth-prod", gcp_access_token="secret"
        )
        assert isinstance(build_object_stager(settings), GcsObjectStager)
