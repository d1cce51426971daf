"""StructuredGenerator - schema-constrained generation with reply validation.

One generate() call makes exactly one outbound request. The contract is
sent twice: as an OpenAI ``response_format`` json_schema, and inside the
system prompt between ``<schema>`` tags for services that ignore
response_format. Either way the reply is validated here; nothing the
service says is trusted.

Failures come back as values, not exceptions:
- GenerationError(kind=TRANSPORT): the call failed (timeout, transport
  error, non-success status, empty reply). Retryable per classification.
- GenerationError(kind=SCHEMA): the reply was not valid JSON, missed a
  required field, or broke a constraint. Never retried within a run.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any

from ledgerline.contracts import (
    FailureKind,
    SchemaContract,
    SchemaViolation,
    StageFailure,
    TransportFailure,
)
from ledgerline.core.logging import get_logger
from ledgerline.llm.client import to_transport_failure
from ledgerline.llm.validation import ValidationError, validate_reply

logger = get_logger(__name__)

_SCHEMA_INSTRUCTION = "Reply with a single JSON object that adheres to this JSON schema: <schema>{schema}</schema>"


@dataclass(frozen=True)
class GenerationSuccess:
    """A reply that satisfied its contract.

    Attributes:
        payload: Declared fields only (undeclared keys dropped)
        content: Raw reply text as received
    """

    payload: dict[str, Any]
    content: str


@dataclass(frozen=True)
class GenerationError:
    """Why generation did not produce a payload."""

    kind: FailureKind
    reason: str
    detail: str
    retryable: bool

    def to_failure(self) -> StageFailure:
        if self.kind == FailureKind.SCHEMA:
            return SchemaViolation(self.detail, reason=self.reason)
        return TransportFailure(self.detail, retryable=self.retryable, reason=self.reason)


GenerationResult = GenerationSuccess | GenerationError


def render_system_prompt(system: str, contract: SchemaContract) -> str:
    """Append the contract schema to a system prompt."""
    schema = json.dumps(contract.to_json_schema(), sort_keys=True)
    instruction = _SCHEMA_INSTRUCTION.format(schema=schema)
    if not system:
        return instruction
    return f"{system}\n\n{instruction}"


class StructuredGenerator:
    """Issues schema-constrained requests to an OpenAI-compatible service.

    Example:
        generator = StructuredGenerator(openai.OpenAI(api_key="..."))
        result = generator.generate(system, user, TWEET_CONTRACT, "gpt-4o-mini")
        match result:
            case GenerationSuccess(payload=payload):
                post(payload["tweet"])
            case GenerationError(kind=kind, detail=detail):
                log_skip(kind, detail)
    """

    def __init__(self, client: Any, *, temperature: float = 0.0, provider: str = "openai") -> None:
        """Initialize generator.

        Args:
            client: openai.OpenAI (or any object exposing chat.completions.create)
            temperature: Sampling temperature for every request
            provider: Provider name for log context
        """
        self._client = client
        self._temperature = temperature
        self._provider = provider

    def build_request(self, system: str, user: str, contract: SchemaContract, model: str) -> dict[str, Any]:
        """Build the chat completion kwargs for one call."""
        schema = contract.to_json_schema()
        return {
            "model": model,
            "temperature": self._temperature,
            "messages": [
                {"role": "system", "content": render_system_prompt(system, contract)},
                {"role": "user", "content": user},
            ],
            "response_format": {
                "type": "json_schema",
                "json_schema": {
                    "name": contract.name,
                    "schema": schema,
                    # Strict structured outputs require every property to be required
                    "strict": contract.required_fields == frozenset(contract.field_names),
                },
            },
        }

    def complete(self, system: str, user: str, contract: SchemaContract, model: str) -> str:
        """Make exactly one call and return the raw reply text.

        Raises:
            TransportFailure: If the call failed or returned no content
        """
        request = self.build_request(system, user, contract, model)
        start = time.perf_counter()
        try:
            response = self._client.chat.completions.create(**request)
        except Exception as e:
            failure = to_transport_failure(e)
            logger.warning(
                "generation_call_failed",
                provider=self._provider,
                model=model,
                error_class=failure.reason,
                retryable=failure.retryable,
                error=str(e),
            )
            raise failure from e
        latency_ms = (time.perf_counter() - start) * 1000

        if not response.choices:
            raise TransportFailure("Generation service returned no choices", retryable=True, reason="empty_reply")
        content = response.choices[0].message.content
        if not content:
            raise TransportFailure("Generation service returned an empty reply", retryable=True, reason="empty_reply")

        logger.debug("generation_call_completed", provider=self._provider, model=model, latency_ms=latency_ms)
        return str(content)

    def validate(self, content: str, contract: SchemaContract) -> dict[str, Any]:
        """Check a raw reply against the contract.

        Returns:
            The accepted payload (declared fields only)

        Raises:
            SchemaViolation: If the reply does not satisfy the contract
        """
        result = validate_reply(content, contract)
        if isinstance(result, ValidationError):
            detail = result.detail or result.reason
            if result.actual is not None:
                detail = f"expected {result.expected}, got {result.actual}"
            raise SchemaViolation(f"Reply violates contract '{contract.name}': {detail}", reason=result.reason)
        return result.data

    def generate(self, system: str, user: str, contract: SchemaContract, model: str) -> GenerationResult:
        """Generate and validate one payload.

        Returns:
            GenerationSuccess, or GenerationError classified as transport
            or schema failure
        """
        try:
            content = self.complete(system, user, contract, model)
        except TransportFailure as e:
            return GenerationError(
                kind=FailureKind.TRANSPORT,
                reason=e.reason or "transport",
                detail=str(e),
                retryable=e.retryable,
            )
        try:
            payload = self.validate(content, contract)
        except SchemaViolation as e:
            return GenerationError(
                kind=FailureKind.SCHEMA,
                reason=e.reason or "schema",
                detail=str(e),
                retryable=False,
            )
        return GenerationSuccess(payload=payload, content=content)
