"""OpenAI-compatible client construction and error classification."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any

from ledgerline.contracts import TransportFailure

if TYPE_CHECKING:
    from ledgerline.core.config import LLMSettings

_RATE_LIMIT_PATTERNS = (
    re.compile(r"\brate[\s_-]*limit(?:ed|ing)?\b"),
    re.compile(r"\brate(?:\s+has\s+been)?\s+exceeded\b"),
    re.compile(r"\btoo many requests\b"),
    re.compile(r"\bthrottl(?:e|ed|ing)\b"),
)
_SERVER_ERROR_CODE_PATTERN = re.compile(r"\b(?:500|502|503|504|529)\b")
_CLIENT_ERROR_CODE_PATTERN = re.compile(r"\b(?:400|401|403|404|422)\b")
_NETWORK_ERROR_PATTERNS = (
    "timeout",
    "timed out",
    "connection refused",
    "connection reset",
    "connection aborted",
    "connection error",
    "network unreachable",
    "host unreachable",
    "dns",
    "getaddrinfo failed",
)
_CONTENT_POLICY_PATTERNS = (
    "content_policy_violation",
    "content policy",
    "safety system",
)
_CONTEXT_LENGTH_PATTERNS = (
    "context_length_exceeded",
    "context length",
    "maximum context",
)

RETRYABLE_ERROR_CLASSES = frozenset({"rate_limit", "server", "network"})


def classify_llm_error(exception: Exception) -> str:
    """Classify a generation-service error into a canonical category.

    Returns one of: content_policy, context_length, rate_limit, server,
    network, client, unknown.
    """
    error_str = f"{type(exception).__name__}: {exception}".lower()

    if any(pattern in error_str for pattern in _CONTENT_POLICY_PATTERNS):
        return "content_policy"
    if any(pattern in error_str for pattern in _CONTEXT_LENGTH_PATTERNS):
        return "context_length"

    # Match explicit rate-limit indicators only; do not match arbitrary "rate" substrings.
    if re.search(r"\b429\b", error_str) or any(pattern.search(error_str) for pattern in _RATE_LIMIT_PATTERNS):
        return "rate_limit"

    if _SERVER_ERROR_CODE_PATTERN.search(error_str):
        return "server"
    if any(pattern in error_str for pattern in _NETWORK_ERROR_PATTERNS):
        return "network"
    if _CLIENT_ERROR_CODE_PATTERN.search(error_str):
        return "client"
    return "unknown"


def to_transport_failure(exception: Exception) -> TransportFailure:
    """Wrap a failed generation call, carrying its retry classification.

    Rate limits, server errors and network errors are retryable on a later
    run. Client errors, policy rejections and oversized prompts are not.
    """
    error_class = classify_llm_error(exception)
    failure = TransportFailure(
        f"{type(exception).__name__}: {exception}",
        retryable=error_class in RETRYABLE_ERROR_CLASSES,
        reason=error_class,
    )
    failure.__cause__ = exception
    return failure


def create_openai_client(settings: LLMSettings, *, timeout: float | None = None) -> Any:
    """Build an openai.OpenAI client from settings.

    SDK-level retries are disabled: a failed call is recorded and the item
    skipped; retries happen on a later scheduled run.
    """
    from openai import OpenAI

    kwargs: dict[str, Any] = {"max_retries": 0}
    if settings.api_key is not None:
        kwargs["api_key"] = settings.api_key
    if settings.base_url is not None:
        kwargs["base_url"] = settings.base_url
    if timeout is not None:
        kwargs["timeout"] = timeout
    return OpenAI(**kwargs)
