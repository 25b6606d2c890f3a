"""Tests for HTTP artifact byte retrieval."""

from __future__ import annotations

import httpx
import pytest

from sentinel_pipeline.core.exceptions import ContractError
from sentinel_pipeline.models.results import ArtifactReference
from sentinel_pipeline.providers.artifact_fetch import HttpArtifactFetcher
from sentinel_pipeline.providers.base import ProviderDownloadError

REFERENCE = ArtifactReference(
    url="https://earthengine.test/v1/projects/ee-orchard/thumbnails/abc:getPixels",
    filename="FARM_20240105_T50HMK0.tif",
)


def _fetcher(handler: object) -> HttpArtifactFetcher:
    return HttpArtifactFetcher(timeout_s=5.0, transport=httpx.MockTransport(handler))  # type: ignore[arg-type]


class TestHttpArtifactFetcher:
    @pytest.mark.asyncio()
    async def test_returns_body(self) -> None:
        requested: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requested.append(str(request.url))
            return httpx.Response(200, content=b"II*\x00" + b"\x01" * 64)

        data = await _fetcher(handler).fetch(REFERENCE)

        assert data.startswith(b"II*\x00")
        assert len(data) == 68
        assert requested == [REFERENCE.url]

    @pytest.mark.asyncio()
    async def test_follows_redirects(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith(":getPixels"):
                return httpx.Response(302, headers={"Location": "https://storage.test/blob.tif"})
            return httpx.Response(200, content=b"tiff")

        assert await _fetcher(handler).fetch(REFERENCE) == b"tiff"

    @pytest.mark.asyncio()
    @pytest.mark.parametrize(("status", "retryable"), [(404, False), (500, True), (503, True)])
    async def test_http_status_errors(self, status: int, retryable: bool) -> None:
        with pytest.raises(ProviderDownloadError) as exc_info:
            await _fetcher(lambda request: httpx.Response(status)).fetch(REFERENCE)
        assert exc_info.value.retryable is retryable
        assert f"HTTP {status}" in exc_info.value.message
        assert exc_info.value.provider == "artifact_http"

    @pytest.mark.asyncio()
    async def test_transport_error_is_retryable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(ProviderDownloadError) as exc_info:
            await _fetcher(handler).fetch(REFERENCE)
        assert exc_info.value.retryable is True

    @pytest.mark.asyncio()
    async def test_empty_body(self) -> None:
        with pytest.raises(ProviderDownloadError, match="empty"):
            await _fetcher(lambda request: httpx.Response(200, content=b"")).fetch(REFERENCE)


class TestArtifactReference:
    def test_requires_url_and_filename(self) -> None:
        with pytest.raises(ContractError):
            ArtifactReference(url="", filename="x.tif")
        with pytest.raises(ContractError):
            ArtifactReference(url="https://x", filename="")
