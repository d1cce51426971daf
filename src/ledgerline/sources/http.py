"""HTTP artifact fetcher.

Maps HTTP outcomes onto the skip taxonomy so the ledger records whether a
later run is worth it:

- 2xx: the artifact
- pending statuses (425, 429, 503 by default): ArtifactNotYetAvailable
- gone statuses (404, 410 by default): ArtifactUnavailable
- other non-success statuses, timeouts, connection errors: TransportFailure

Feeds that answer 404 until an item is released should pass 404 in
pending_statuses instead.
"""

from __future__ import annotations

from collections.abc import Mapping

import httpx

from ledgerline.contracts import ArtifactNotYetAvailable, ArtifactUnavailable, RawArtifact, TransportFailure
from ledgerline.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_PENDING_STATUSES = frozenset({425, 429, 503})
DEFAULT_GONE_STATUSES = frozenset({404, 410})


class HttpArtifactFetcher:
    """Fetches an item's source document by URL template.

    Example:
        fetcher = HttpArtifactFetcher("https://export.arxiv.org/abs/{item_key}")
        artifact = fetcher.fetch("2401.00001")
    """

    def __init__(
        self,
        url_template: str,
        *,
        timeout: float = 30.0,
        headers: Mapping[str, str] | None = None,
        pending_statuses: frozenset[int] = DEFAULT_PENDING_STATUSES,
        gone_statuses: frozenset[int] = DEFAULT_GONE_STATUSES,
        client: httpx.Client | None = None,
    ) -> None:
        """Initialize fetcher.

        Args:
            url_template: URL with an {item_key} placeholder
            timeout: Request timeout in seconds
            headers: Default headers for every request
            pending_statuses: Statuses meaning "not published yet"
            gone_statuses: Statuses meaning "will never be available"
            client: Pre-built httpx.Client (tests, custom transports)
        """
        if "{item_key}" not in url_template:
            raise ValueError(f"url_template must contain '{{item_key}}', got {url_template!r}")
        overlap = pending_statuses & gone_statuses
        if overlap:
            raise ValueError(f"Statuses cannot be both pending and gone: {sorted(overlap)}")
        self._url_template = url_template
        self._pending_statuses = pending_statuses
        self._gone_statuses = gone_statuses
        self._owns_client = client is None
        # httpx.Client for connection pooling across items
        if client is None:
            client = httpx.Client(timeout=timeout, headers=dict(headers or {}), follow_redirects=True)
        self._client = client

    def url_for(self, item_key: str) -> str:
        return self._url_template.format(item_key=item_key)

    def fetch(self, item_key: str) -> RawArtifact:
        """Fetch one artifact.

        Raises:
            ArtifactNotYetAvailable: Pending status
            ArtifactUnavailable: Gone status
            TransportFailure: Any other failure
        """
        url = self.url_for(item_key)
        try:
            response = self._client.get(url)
        except httpx.TimeoutException as e:
            raise TransportFailure(f"Timed out fetching {url}: {e}", reason="timeout") from e
        except httpx.HTTPError as e:
            raise TransportFailure(f"{type(e).__name__} fetching {url}: {e}", reason="network") from e

        status = response.status_code
        if status in self._pending_statuses:
            raise ArtifactNotYetAvailable(item_key, f"HTTP {status} from {url}")
        if status in self._gone_statuses:
            raise ArtifactUnavailable(item_key, f"HTTP {status} from {url}")
        if not response.is_success:
            raise TransportFailure(f"HTTP {status} from {url}", retryable=status >= 500, reason=f"http_{status}")

        content_type = response.headers.get("content-type", "text/plain").split(";")[0].strip()
        logger.debug("artifact_fetched", item_key=item_key, url=url, status=status, bytes=len(response.content))
        return RawArtifact(item_key=item_key, content=response.text, content_type=content_type, source_url=url)

    def close(self) -> None:
        """Close the underlying client if this fetcher created it."""
        if self._owns_client:
            self._client.close()
