"""Paper filter: keep arXiv papers that make AI training or inference cheaper.

Discovers the day's cs.AI listings, reads each abstract, asks the model for
a {keep, reason} verdict and publishes only the papers it keeps.

    # settings.yaml
    pipeline: examples.arxiv_keep:build
    window:
      date: "2025-08-30"
    options:
      category: cs.AI
      webhook_url: https://hooks.example/papers
    llm:
      model: gpt-4o-mini
      api_key: ${OPENAI_API_KEY}
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from datetime import date
from typing import Any

import httpx
from bs4 import BeautifulSoup

from ledgerline.cli_helpers import build_generator
from ledgerline.contracts import FieldConstraint, RawArtifact, SchemaContract, TransportFailure
from ledgerline.core.config import LedgerlineSettings
from ledgerline.core.logging import get_logger
from ledgerline.engine import PipelineDefinition
from ledgerline.llm import TemplatePromptBuilder
from ledgerline.sinks.publish import DryRunPublisher, WebhookPublisher
from ledgerline.sources.http import HttpArtifactFetcher

logger = get_logger(__name__)

ARXIV_BASE_URL = "https://arxiv.org"

_WHITESPACE = re.compile(r"\s+")

KEEP_CONTRACT = SchemaContract(
    name="keeper",
    fields=(
        FieldConstraint("keep", "boolean", description="Whether the paper should be kept"),
        FieldConstraint("reason", "string", description="One sentence on why", max_length=300),
    ),
    required=("keep",),
)

SYSTEM_PROMPT = "You are an expert AI research analyst. Answer with a JSON object only."

USER_PROMPT = """\
Paper {{ item_key }}:

Keep the paper (keep=true) only if it introduces a new method, algorithm,
architecture or hardware/software co-design that improves the
performance-per-dollar of ML or LLM training or inference itself.

Reject it (keep=false) if it applies an existing model to save money in
another field, discusses AI costs without a technical contribution, or
only changes data pipelines or MLOps processes.

Abstract: {{ text }}
"""


class ArxivListingDiscoverer:
    """Lists the paper ids announced on one day in a category's "recent" page.

    The window must carry a "date" (ISO format). A day with no
    announcements yields no items.
    """

    def __init__(self, category: str = "cs.AI", *, client: httpx.Client | None = None, timeout: float = 15.0) -> None:
        self._url = f"{ARXIV_BASE_URL}/list/{category}/recent?skip=0&show=2000"
        self._client = client if client is not None else httpx.Client(timeout=timeout)

    def discover(self, window: Mapping[str, Any]) -> list[str]:
        if "date" not in window:
            raise ValueError("arXiv discovery needs a 'date' in the run window")
        day = date.fromisoformat(str(window["date"]))

        try:
            response = self._client.get(self._url)
        except httpx.HTTPError as e:
            raise TransportFailure(f"{type(e).__name__} fetching {self._url}: {e}", reason="network") from e
        if not response.is_success:
            raise TransportFailure(f"HTTP {response.status_code} from {self._url}", reason=f"http_{response.status_code}")

        ids = listing_ids_for_date(response.text, day)
        logger.info("arxiv_listing_parsed", date=day.isoformat(), papers=len(ids))
        return ids


def listing_ids_for_date(html: str, day: date) -> list[str]:
    """Paper ids under the listing header for a day, in page order."""
    soup = BeautifulSoup(html, "html.parser")
    # Headers read like "Fri, 30 Aug 2025 (showing 120 of 120 entries)"
    label = f"{day.day} {day:%b %Y}"
    pattern = re.compile(rf"\b{re.escape(label)}\b")
    header = next((h3 for h3 in soup.select("dl#articles h3") if pattern.search(h3.get_text())), None)
    if header is None:
        return []

    ids: list[str] = []
    for sibling in header.find_next_siblings():
        if sibling.name == "h3":
            break
        if sibling.name != "dt":
            continue
        link = sibling.select_one('a[href^="/abs/"]')
        if link is not None:
            paper_id = str(link["href"]).removeprefix("/abs/")
            if paper_id:
                ids.append(paper_id)
    return ids


class AbstractExtractor:
    """Pulls the abstract text out of an arXiv abstract page."""

    def extract(self, artifact: RawArtifact) -> str:
        soup = BeautifulSoup(artifact.content, "html.parser")
        block = soup.select_one("blockquote.abstract")
        if block is None:
            raise ValueError(f"No abstract found on the page for {artifact.item_key}")
        text = block.get_text(separator=" ", strip=True).removeprefix("Abstract:")
        return _WHITESPACE.sub(" ", text).strip()


def keep_selected(payload: Mapping[str, Any]) -> bool:
    return bool(payload["keep"])


def build(settings: LedgerlineSettings) -> PipelineDefinition:
    """Pipeline factory for `ledgerline run`."""
    options = settings.options
    webhook_url = options.get("webhook_url")
    publisher = WebhookPublisher(webhook_url) if webhook_url else DryRunPublisher()
    return PipelineDefinition(
        name="arxiv-keep",
        discoverer=ArxivListingDiscoverer(options.get("category", "cs.AI")),
        fetcher=HttpArtifactFetcher(f"{ARXIV_BASE_URL}/abs/{{item_key}}"),
        extractor=AbstractExtractor(),
        prompt_builder=TemplatePromptBuilder(system=SYSTEM_PROMPT, user=USER_PROMPT),
        contract=KEEP_CONTRACT,
        model=settings.llm.model,
        generator=build_generator(settings),
        publisher=publisher,
        select=keep_selected,
    )
