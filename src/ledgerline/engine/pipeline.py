"""ItemPipeline - drives one candidate item through its stages.

Stage order:
    fetch -> extract -> generate -> validate -> [select] -> publish

Each transition is one StageExecutor call. The first failed stage turns
the item into Skipped and stops it; nothing is retried within the run.
The publish stage is preceded by a RateLimiter wait on the pipeline's
publish resource, unless publish was already recorded (replay).
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from ledgerline.contracts import (
    ArtifactFetcher,
    CandidateItem,
    ContentExtractor,
    Discoverer,
    FailureKind,
    ItemOutcome,
    ItemState,
    OrchestrationInvariantError,
    Output,
    Prompt,
    PromptBuilder,
    Publisher,
    RawArtifact,
    SchemaContract,
    StageError,
    StageName,
    StageResult,
)
from ledgerline.core.canonical import stable_hash
from ledgerline.core.config import DEFAULT_PUBLISH_RESOURCE, StageTimeoutSettings
from ledgerline.core.logging import get_logger
from ledgerline.core.rate_limit import RateLimiter
from ledgerline.engine.executor import StageExecutor
from ledgerline.llm.generator import StructuredGenerator

logger = get_logger(__name__)

# State an item reaches when each stage succeeds
_STATE_AFTER: dict[StageName, ItemState] = {
    StageName.FETCH: ItemState.FETCHED,
    StageName.EXTRACT: ItemState.EXTRACTED,
    StageName.GENERATE: ItemState.GENERATED,
    StageName.VALIDATE: ItemState.VALIDATED,
    StageName.PUBLISH: ItemState.PUBLISHED,
}


@dataclass(frozen=True)
class PipelineDefinition:
    """Everything needed to run one kind of pipeline.

    Attributes:
        name: Pipeline name recorded on every run
        discoverer..publisher: Collaborators for each stage
        contract: Contract every generated payload must satisfy
        model: Model identifier for generation
        select: Optional keep/drop decision on a validated payload
        publish_resource: RateLimiter resource paced before each publish
        timeouts: Per-stage timeouts
    """

    name: str
    discoverer: Discoverer
    fetcher: ArtifactFetcher
    extractor: ContentExtractor
    prompt_builder: PromptBuilder
    contract: SchemaContract
    model: str
    generator: StructuredGenerator
    publisher: Publisher
    select: Callable[[Mapping[str, Any]], bool] | None = None
    publish_resource: str = DEFAULT_PUBLISH_RESOURCE
    timeouts: StageTimeoutSettings = field(default_factory=StageTimeoutSettings)

    @property
    def contract_hash(self) -> str:
        return stable_hash(self.contract.to_dict())


class ItemPipeline:
    """Processes candidate items for one run, one at a time.

    The pipeline holds no per-item state between calls to process(); each
    CandidateItem carries its own artifacts.

    Example:
        pipeline = ItemPipeline(definition, executor, limiter, run_id=run_id)
        outcome = pipeline.process(CandidateItem(key="paper-1", sequence=0, discovered_at=now))
        if outcome.published:
            ...
    """

    def __init__(
        self,
        definition: PipelineDefinition,
        executor: StageExecutor,
        limiter: RateLimiter,
        *,
        run_id: str,
        credentials: Mapping[str, str] | None = None,
    ) -> None:
        self._definition = definition
        self._executor = executor
        self._limiter = limiter
        self._run_id = run_id
        self._credentials: Mapping[str, str] = credentials if credentials is not None else {}
        self._contract_hash = definition.contract_hash

    def process(self, item: CandidateItem) -> ItemOutcome:
        """Run every stage for an item until it is Published or Skipped."""
        if item.state != ItemState.DISCOVERED:
            raise OrchestrationInvariantError(f"Item '{item.key}' already processed (state={item.state})")

        d = self._definition

        result = self._run_stage(item, StageName.FETCH, lambda: d.fetcher.fetch(item.key).to_dict(), {"item_key": item.key})
        if result is None:
            return self._outcome(item)
        item.artifact = RawArtifact.from_dict(result.value)

        artifact = item.artifact
        result = self._run_stage(
            item,
            StageName.EXTRACT,
            lambda: d.extractor.extract(artifact),
            {"artifact_hash": stable_hash(artifact.to_dict())},
        )
        if result is None:
            return self._outcome(item)
        item.text = result.value

        text = item.text
        result = self._run_stage(
            item,
            StageName.GENERATE,
            lambda: self._generate(item.key, text),
            {"text_hash": stable_hash(text), "contract_hash": self._contract_hash, "model": d.model},
        )
        if result is None:
            return self._outcome(item)
        item.reply = result.value

        reply = item.reply
        result = self._run_stage(
            item,
            StageName.VALIDATE,
            lambda: d.generator.validate(reply, d.contract),
            {"reply_hash": stable_hash(reply), "contract_hash": self._contract_hash},
        )
        if result is None:
            return self._outcome(item)
        item.payload = result.value

        payload = item.payload
        if d.select is not None and not d.select(payload):
            self._skip(
                item,
                StageName.VALIDATE,
                StageError(
                    kind=FailureKind.FILTERED,
                    type="NotSelected",
                    message=f"Payload for '{item.key}' was not selected for publishing",
                    retryable=False,
                    reason="not_selected",
                ),
            )
            return self._outcome(item)

        publish_inputs = {"payload_hash": stable_hash(payload), "contract_hash": self._contract_hash}
        # Only pace a publish that will actually happen
        if self._executor.lookup(self._run_id, item.key, StageName.PUBLISH, publish_inputs) is None:
            self._limiter.wait(d.publish_resource)

        result = self._run_stage(
            item,
            StageName.PUBLISH,
            lambda: d.publisher.publish(item.key, payload, self._credentials),
            publish_inputs,
        )
        if result is None:
            return self._outcome(item)

        item.output = Output(
            run_id=self._run_id,
            item_key=item.key,
            sequence=item.sequence,
            payload=payload,
            contract_hash=self._contract_hash,
            published_id=str(result.value),
        )
        logger.info(
            "item_published",
            run_id=self._run_id,
            item_key=item.key,
            published_id=item.output.published_id,
            replayed=result.replayed,
        )
        return self._outcome(item)

    def _generate(self, item_key: str, text: str) -> str:
        d = self._definition
        prompt: Prompt = d.prompt_builder.build(item_key, text)
        return d.generator.complete(prompt.system, prompt.user, d.contract, d.model)

    def _run_stage(
        self,
        item: CandidateItem,
        stage_name: StageName,
        operation: Callable[[], Any],
        inputs: Mapping[str, Any],
    ) -> StageResult | None:
        """Execute one stage; None means the item was skipped."""
        result = self._executor.execute(
            self._run_id,
            item.key,
            stage_name,
            self._definition.timeouts.for_stage(stage_name),
            operation,
            inputs=inputs,
        )
        if not result.ok:
            if result.error is None:
                raise OrchestrationInvariantError(f"Failed stage result without error for '{item.key}' at {stage_name}")
            self._skip(item, stage_name, result.error)
            return None
        item.state = _STATE_AFTER[stage_name]
        return result

    def _skip(self, item: CandidateItem, stage_name: StageName, error: StageError) -> None:
        item.state = ItemState.SKIPPED
        item.failed_stage = stage_name
        item.failure = error
        log = logger.info if error.kind == FailureKind.FILTERED else logger.warning
        log(
            "item_skipped",
            run_id=self._run_id,
            item_key=item.key,
            stage=stage_name.value,
            kind=error.kind.value,
            reason=error.reason,
            retryable=error.retryable,
            error=error.message,
        )

    @staticmethod
    def _outcome(item: CandidateItem) -> ItemOutcome:
        if not item.state.is_terminal:
            raise OrchestrationInvariantError(f"Item '{item.key}' left the pipeline in non-terminal state {item.state}")
        return ItemOutcome(
            item_key=item.key,
            sequence=item.sequence,
            state=item.state,
            failed_stage=item.failed_stage,
            failure=item.failure,
        )
