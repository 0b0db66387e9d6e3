"""Tests for the archive store adapters and their resolution by scheme."""

import httpx
import pytest
from tenacity import wait_none

from history_server.application.exceptions import (
    ConfigurationError,
    FetchError,
    StoreError,
)
from history_server.infrastructure.http_store import HttpArchiveStore
from history_server.infrastructure.local_store import LocalArchiveStore
from history_server.infrastructure.resolver import SchemeStoreResolver

from helpers import archive_payload

_BASE_URL = "https://archives.example.com/completed-jobs"


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def no_retry_wait(monkeypatch):
    """Removes the backoff between retries of HTTP requests."""
    monkeypatch.setattr(HttpArchiveStore._get.retry, "wait", wait_none())


# =============================================================================
# Test: Local Directory Store
# =============================================================================


@pytest.mark.unit
class TestLocalArchiveStore:

    @pytest.mark.asyncio
    async def test_lists_regular_visible_files(self, tmp_path):
        (tmp_path / "job-A").write_bytes(b"a")
        (tmp_path / "job-B.zst").write_bytes(b"b")
        (tmp_path / ".job-C.inprogress").write_bytes(b"c")
        (tmp_path / "nested").mkdir()

        archives = await LocalArchiveStore(tmp_path).list_archives()

        assert sorted(archives) == ["job-A", "job-B"]

    @pytest.mark.asyncio
    async def test_reads_plain_and_compressed_archives(self, tmp_path):
        (tmp_path / "job-A").write_bytes(b"plain")
        (tmp_path / "job-B.zst").write_bytes(b"compressed")
        store = LocalArchiveStore(tmp_path)

        assert await store.read_archive("job-A") == b"plain"
        assert await store.read_archive("job-B") == b"compressed"

    @pytest.mark.asyncio
    async def test_missing_directory_raises_store_error(self, tmp_path):
        with pytest.raises(StoreError):
            await LocalArchiveStore(tmp_path / "missing").list_archives()

    @pytest.mark.asyncio
    async def test_missing_archive_raises_fetch_error(self, tmp_path):
        with pytest.raises(FetchError):
            await LocalArchiveStore(tmp_path).read_archive("job-A")


# =============================================================================
# Test: HTTP Store
# =============================================================================


@pytest.mark.unit
class TestHttpArchiveStore:

    @pytest.mark.asyncio
    async def test_lists_archives(self):
        def handler(request):
            assert str(request.url) == _BASE_URL + "/"
            return httpx.Response(200, json={"archives": ["job-A", "job-B"]})

        async with _client(handler) as client:
            store = HttpArchiveStore(client, _BASE_URL + "/")
            assert await store.list_archives() == ["job-A", "job-B"]

    @pytest.mark.asyncio
    async def test_malformed_listing_raises_store_error(self):
        def handler(request):
            return httpx.Response(200, json={"jobs": "nope"})

        async with _client(handler) as client:
            with pytest.raises(StoreError):
                await HttpArchiveStore(client, _BASE_URL).list_archives()

    @pytest.mark.asyncio
    async def test_reads_archive_payload(self):
        payload = archive_payload("job A")

        def handler(request):
            assert request.url.raw_path.endswith(b"/job%20A")
            return httpx.Response(200, content=payload)

        async with _client(handler) as client:
            store = HttpArchiveStore(client, _BASE_URL)
            assert await store.read_archive("job A") == payload

    @pytest.mark.asyncio
    async def test_client_errors_are_not_retried(self, no_retry_wait):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(404)

        async with _client(handler) as client:
            with pytest.raises(FetchError):
                await HttpArchiveStore(client, _BASE_URL).read_archive("job-A")

        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_server_errors_are_retried(self, no_retry_wait):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) < 3:
                return httpx.Response(503)
            return httpx.Response(200, json={"archives": ["job-A"]})

        async with _client(handler) as client:
            archives = await HttpArchiveStore(client, _BASE_URL).list_archives()

        assert archives == ["job-A"]
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_connection_failures_surface_after_retries(self, no_retry_wait):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        async with _client(handler) as client:
            with pytest.raises(StoreError):
                await HttpArchiveStore(client, _BASE_URL).list_archives()

        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_bearer_token_is_sent(self):
        def handler(request):
            assert request.headers["Authorization"] == "Bearer s3cret"
            return httpx.Response(200, json={"archives": []})

        async with _client(handler) as client:
            store = HttpArchiveStore(client, _BASE_URL, token="s3cret")
            assert await store.list_archives() == []

    @pytest.mark.asyncio
    async def test_anonymous_requests_have_no_authorization(self):
        def handler(request):
            assert "Authorization" not in request.headers
            return httpx.Response(200, json={"archives": []})

        async with _client(handler) as client:
            await HttpArchiveStore(client, _BASE_URL, token="").list_archives()

    def test_placeholder_token_is_rejected(self):
        with pytest.raises(ConfigurationError, match="placeholder"):
            HttpArchiveStore(httpx.AsyncClient(), _BASE_URL, token="YOUR_TOKEN")


# =============================================================================
# Test: Resolution by Scheme
# =============================================================================


@pytest.mark.unit
class TestSchemeStoreResolver:

    @pytest.fixture
    def resolver(self):
        return SchemeStoreResolver(httpx.AsyncClient(), token="t", timeout=5)

    def test_file_uri_resolves_to_directory_store(self, resolver, tmp_path):
        store = resolver.resolve(tmp_path.as_uri())

        assert isinstance(store, LocalArchiveStore)
        assert store.directory == tmp_path

    def test_http_uri_resolves_to_http_store(self, resolver):
        store = resolver.resolve(_BASE_URL)

        assert isinstance(store, HttpArchiveStore)
        assert store.base_url == _BASE_URL
        assert store.token == "t"
        assert store.timeout == 5

    def test_unknown_scheme_is_a_configuration_error(self, resolver):
        with pytest.raises(ConfigurationError, match="s3"):
            resolver.resolve("s3://bucket/archives")
