"""Tests for DryRunPublisher and WebhookPublisher."""

import json

import httpx
import pytest
import respx

from ledgerline.contracts import PublishFailure
from ledgerline.sinks.publish import DryRunPublisher, WebhookPublisher, idempotency_key

HOOK = "https://hooks.example/post"


class TestIdempotencyKey:
    def test_stable_for_same_item_and_payload(self) -> None:
        assert idempotency_key("p1", {"tweet": "a"}) == idempotency_key("p1", {"tweet": "a"})

    def test_differs_by_item_or_payload(self) -> None:
        base = idempotency_key("p1", {"tweet": "a"})

        assert idempotency_key("p2", {"tweet": "a"}) != base
        assert idempotency_key("p1", {"tweet": "b"}) != base


class TestDryRunPublisher:
    def test_records_and_returns_synthetic_id(self) -> None:
        publisher = DryRunPublisher()

        published_id = publisher.publish("p1", {"tweet": "hello"}, {"token": "secret"})

        assert published_id == f"dry-run-{idempotency_key('p1', {'tweet': 'hello'})[:16]}"
        assert publisher.published == [("p1", {"tweet": "hello"})]


class TestWebhookPublisher:
    @respx.mock
    def test_posts_payload_with_headers(self) -> None:
        route = respx.post(HOOK).mock(return_value=httpx.Response(201, json={"id": 12345}))

        published_id = WebhookPublisher(HOOK).publish("p1", {"tweet": "hello"}, {"token": "t0k"})

        assert published_id == "12345"
        request = route.calls.last.request
        assert json.loads(request.content) == {"item_key": "p1", "payload": {"tweet": "hello"}}
        assert request.headers["Authorization"] == "Bearer t0k"
        assert request.headers["Idempotency-Key"] == idempotency_key("p1", {"tweet": "hello"})

    @respx.mock
    def test_no_auth_header_without_token(self) -> None:
        route = respx.post(HOOK).mock(return_value=httpx.Response(204))

        published_id = WebhookPublisher(HOOK).publish("p1", {"tweet": "hello"}, {})

        assert "Authorization" not in route.calls.last.request.headers
        assert published_id == idempotency_key("p1", {"tweet": "hello"})

    @pytest.mark.parametrize(("status", "retryable"), [(500, True), (429, True), (400, False), (401, False)])
    @respx.mock
    def test_error_status_is_publish_failure(self, status: int, retryable: bool) -> None:
        respx.post(HOOK).mock(return_value=httpx.Response(status))

        with pytest.raises(PublishFailure) as exc_info:
            WebhookPublisher(HOOK).publish("p1", {"tweet": "hello"}, {})

        assert exc_info.value.retryable is retryable
        assert exc_info.value.reason == f"http_{status}"

    @respx.mock
    def test_network_error_is_publish_failure(self) -> None:
        respx.post(HOOK).mock(side_effect=httpx.ConnectError("refused"))

        with pytest.raises(PublishFailure) as exc_info:
            WebhookPublisher(HOOK).publish("p1", {"tweet": "hello"}, {})

        assert exc_info.value.reason == "network"
