from __future__ import annotations

import logging

import httpx

from docsign.core.config import settings
from docsign.core.errors import StorageError, UpstreamFetchError
from docsign.services.storage import StorageBackend, get_storage

logger = logging.getLogger("docsign.source")


class DocumentFetcher:
    """Loads the original document bytes from an http(s) URL or from storage."""

    def __init__(
        self,
        storage: StorageBackend | None = None,
        *,
        timeout_seconds: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.storage = storage or get_storage()
        self._timeout = timeout_seconds or settings.document_fetch_timeout_seconds
        self._transport = transport

    def fetch(self, url: str) -> bytes:
        if url.startswith(("http://", "https://")):
            data = self._fetch_http(url)
        else:
            try:
                data = self.storage.load_bytes(url)
            except (OSError, ValueError, StorageError) as exc:
                raise UpstreamFetchError(f"Failed to load original document: {exc}") from exc

        if not data.startswith(b"%PDF"):
            raise UpstreamFetchError("Original document is not a PDF.")
        return data

    def _fetch_http(self, url: str) -> bytes:
        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport, follow_redirects=True) as client:
                response = client.get(url)
        except httpx.HTTPError as exc:
            raise UpstreamFetchError(f"Failed to fetch original document: {exc}") from exc

        if response.status_code >= 400:
            logger.warning("Original document fetch returned %s for %s", response.status_code, url)
            raise UpstreamFetchError(
                f"Failed to fetch original document: HTTP {response.status_code}",
                details={"status_code": response.status_code},
            )
        return response.content
