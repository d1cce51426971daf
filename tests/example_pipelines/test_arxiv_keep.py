"""Tests for the arXiv keep-filter example pipeline (respx-mocked arXiv)."""

import dataclasses
from datetime import date

import httpx
import pytest
import respx

from examples.arxiv_keep import (
    KEEP_CONTRACT,
    AbstractExtractor,
    ArxivListingDiscoverer,
    build,
    listing_ids_for_date,
)
from ledgerline.cli_helpers import build_definition
from ledgerline.contracts import ItemState, RawArtifact, RunParams, TransportFailure
from ledgerline.core.clock import MockClock
from ledgerline.core.config import LedgerlineSettings
from ledgerline.core.ledger import LedgerRecorder
from ledgerline.engine import BatchOrchestrator
from ledgerline.llm.generator import StructuredGenerator
from ledgerline.sinks.publish import DryRunPublisher
from tests.fixtures import FakeChatClient, RecordingPublisher

LISTING_URL = "https://arxiv.org/list/cs.AI/recent?skip=0&show=2000"

LISTING_HTML = """
<html><body>
<dl id="articles">
  <h3>Fri, 30 Aug 2025 (showing 3 of 3 entries)</h3>
  <dt><a href="/abs/2508.00001" title="Abstract">arXiv:2508.00001</a></dt>
  <dd>Sparse-Quant</dd>
  <dt><a href="/abs/2508.00002" title="Abstract">arXiv:2508.00002</a></dt>
  <dd>LLM logistics</dd>
  <dt><a href="/abs/2508.00003" title="Abstract">arXiv:2508.00003</a></dt>
  <dd>Faster attention</dd>
  <h3>Thu, 29 Aug 2025 (showing 1 of 1 entries)</h3>
  <dt><a href="/abs/2508.00000" title="Abstract">arXiv:2508.00000</a></dt>
</dl>
</body></html>
"""


def abstract_page(text: str) -> str:
    return f'<html><body><blockquote class="abstract mathjax"><span>Abstract:</span>  {text}\n</blockquote></body></html>'


def settings_for(**overrides: object) -> LedgerlineSettings:
    config: dict[str, object] = {
        "pipeline": "examples.arxiv_keep:build",
        "window": {"date": "2025-08-30"},
        "llm": {"model": "test-model", "api_key": "sk-test"},
    }
    config.update(overrides)
    return LedgerlineSettings.model_validate(config)


class TestListing:
    def test_ids_for_day_in_page_order(self) -> None:
        assert listing_ids_for_date(LISTING_HTML, date(2025, 8, 30)) == ["2508.00001", "2508.00002", "2508.00003"]

    def test_stops_at_next_day(self) -> None:
        assert listing_ids_for_date(LISTING_HTML, date(2025, 8, 29)) == ["2508.00000"]

    def test_day_without_announcements_is_empty(self) -> None:
        assert listing_ids_for_date(LISTING_HTML, date(2025, 8, 31)) == []

    @respx.mock
    def test_discover_reads_window_date(self) -> None:
        respx.get(LISTING_URL).mock(return_value=httpx.Response(200, text=LISTING_HTML))

        assert ArxivListingDiscoverer().discover({"date": "2025-08-29"}) == ["2508.00000"]

    def test_discover_needs_a_date(self) -> None:
        with pytest.raises(ValueError, match="'date'"):
            ArxivListingDiscoverer().discover({})

    @respx.mock
    def test_listing_error_is_transport_failure(self) -> None:
        respx.get(LISTING_URL).mock(return_value=httpx.Response(502))

        with pytest.raises(TransportFailure, match="HTTP 502"):
            ArxivListingDiscoverer().discover({"date": "2025-08-30"})


class TestAbstractExtractor:
    def test_strips_prefix_and_whitespace(self) -> None:
        artifact = RawArtifact("2508.00001", abstract_page("We   introduce\n Sparse-Quant."), "text/html")

        assert AbstractExtractor().extract(artifact) == "We introduce Sparse-Quant."

    def test_missing_abstract_raises(self) -> None:
        with pytest.raises(ValueError, match="No abstract"):
            AbstractExtractor().extract(RawArtifact("2508.00001", "<html></html>", "text/html"))


class TestFactory:
    def test_resolved_from_settings(self) -> None:
        definition = build_definition(settings_for())

        assert definition.name == "arxiv-keep"
        assert definition.contract == KEEP_CONTRACT
        assert definition.model == "test-model"

    def test_dry_run_without_webhook(self) -> None:
        assert isinstance(build(settings_for()).publisher, DryRunPublisher)

    @respx.mock
    def test_keeps_only_selected_papers(self, recorder: LedgerRecorder, mock_clock: MockClock) -> None:
        respx.get(LISTING_URL).mock(return_value=httpx.Response(200, text=LISTING_HTML))
        for paper_id, text in [
            ("2508.00001", "A post-training quantization algorithm."),
            ("2508.00002", "An LLM that plans shipping routes."),
            ("2508.00003", "A faster attention kernel."),
        ]:
            respx.get(f"https://arxiv.org/abs/{paper_id}").mock(
                return_value=httpx.Response(200, text=abstract_page(text), headers={"content-type": "text/html"})
            )
        # The user prompt opens with "Paper <id>", which routes the fake replies
        client = FakeChatClient(
            {"Paper 2508.00002": '{"keep": false, "reason": "Applies AI to logistics."}'},
            default_reply='{"keep": true}',
        )
        publisher = RecordingPublisher()
        definition = dataclasses.replace(
            build(settings_for()), generator=StructuredGenerator(client), publisher=publisher
        )

        result = BatchOrchestrator(definition, recorder, clock=mock_clock).execute(RunParams(window={"date": "2025-08-30"}))

        assert [o.item_key for o in result.outputs] == ["2508.00001", "2508.00003"]
        assert [key for key, _ in publisher.published] == ["2508.00001", "2508.00003"]
        states = {o.item_key: o.state for o in result.outcomes}
        assert states["2508.00002"] == ItemState.FILTERED
        assert "A post-training quantization algorithm." in client.requests[0]["messages"][1]["content"]
