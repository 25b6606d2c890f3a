"""Artifact byte retrieval over HTTP.

Streams the bytes behind an ``ArtifactReference`` (an Earth Engine
``getDownloadURL`` link) into memory with ``httpx``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx

from sentinel_pipeline.providers.base import ArtifactFetcher, ProviderDownloadError

if TYPE_CHECKING:
    from sentinel_pipeline.models.results import ArtifactReference

logger = logging.getLogger(__name__)

PROVIDER_NAME = "artifact_http"


class HttpArtifactFetcher(ArtifactFetcher):
    def __init__(
        self,
        *,
        timeout_s: float = 300.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._timeout_s = timeout_s
        self._transport = transport

    async def fetch(self, reference: ArtifactReference) -> bytes:
        """Download *reference* and return its bytes.

        Raises:
            ProviderDownloadError: On HTTP errors or an empty body.
        """
        chunks: list[bytes] = []
        try:
            async with (
                httpx.AsyncClient(
                    timeout=self._timeout_s,
                    follow_redirects=True,
                    transport=self._transport,
                ) as client,
                client.stream("GET", reference.url) as response,
            ):
                response.raise_for_status()
                async for chunk in response.aiter_bytes():
                    chunks.append(chunk)
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            msg = f"Artifact download failed for {reference.filename}: HTTP {status}"
            raise ProviderDownloadError(PROVIDER_NAME, msg, retryable=status >= 500) from exc
        except httpx.HTTPError as exc:
            msg = f"Artifact download failed for {reference.filename}: {exc}"
            raise ProviderDownloadError(PROVIDER_NAME, msg, retryable=True) from exc

        data = b"".join(chunks)
        if not data:
            msg = f"Artifact {reference.filename} is empty"
            raise ProviderDownloadError(PROVIDER_NAME, msg)

        logger.debug("Fetched artifact | file=%s | bytes=%d", reference.filename, len(data))
        return data
