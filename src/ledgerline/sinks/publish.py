"""Publishers.

DryRunPublisher logs instead of posting and is the default
(publish.dry_run: true). WebhookPublisher POSTs the payload as JSON with an
Idempotency-Key header derived from the item and payload, so a channel
that honors the header closes the at-least-once window on replay.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import httpx

from ledgerline.contracts import PublishFailure
from ledgerline.core.canonical import stable_hash
from ledgerline.core.logging import get_logger

logger = get_logger(__name__)


def idempotency_key(item_key: str, payload: Mapping[str, Any]) -> str:
    """Same item and payload always map to the same key."""
    return stable_hash({"item_key": item_key, "payload": dict(payload)})


class DryRunPublisher:
    """Logs what would be published and returns a synthetic id."""

    def __init__(self) -> None:
        self.published: list[tuple[str, dict[str, Any]]] = []

    def publish(self, item_key: str, payload: Mapping[str, Any], credentials: Mapping[str, str]) -> str:
        published_id = f"dry-run-{idempotency_key(item_key, payload)[:16]}"
        self.published.append((item_key, dict(payload)))
        logger.info("dry_run_publish", item_key=item_key, published_id=published_id, payload=dict(payload))
        return published_id


class WebhookPublisher:
    """POSTs each payload to an HTTP endpoint.

    Credentials are sent as a bearer token when they contain "token".
    The published id is the response JSON's "id", falling back to the
    idempotency key.

    Example:
        publisher = WebhookPublisher("https://hooks.example.com/post")
        published_id = publisher.publish("paper-1", {"tweet": "..."}, {"token": "..."})
    """

    def __init__(self, url: str, *, timeout: float = 30.0, client: httpx.Client | None = None) -> None:
        self._url = url
        self._owns_client = client is None
        self._client = client if client is not None else httpx.Client(timeout=timeout)

    def publish(self, item_key: str, payload: Mapping[str, Any], credentials: Mapping[str, str]) -> str:
        key = idempotency_key(item_key, payload)
        headers = {"Idempotency-Key": key}
        if "token" in credentials:
            headers["Authorization"] = f"Bearer {credentials['token']}"

        try:
            response = self._client.post(self._url, json={"item_key": item_key, "payload": dict(payload)}, headers=headers)
        except httpx.HTTPError as e:
            raise PublishFailure(f"{type(e).__name__} posting to {self._url}: {e}", reason="network") from e

        if not response.is_success:
            raise PublishFailure(
                f"HTTP {response.status_code} from {self._url}",
                retryable=response.status_code >= 500 or response.status_code == 429,
                reason=f"http_{response.status_code}",
            )

        published_id = key
        if response.headers.get("content-type", "").startswith("application/json"):
            body = response.json()
            if isinstance(body, dict) and isinstance(body.get("id"), str | int):
                published_id = str(body["id"])
        logger.info("payload_published", item_key=item_key, published_id=published_id)
        return published_id

    def close(self) -> None:
        if self._owns_client:
            self._client.close()
