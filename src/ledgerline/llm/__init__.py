"""Structured text generation against OpenAI-compatible services."""

from ledgerline.llm.client import classify_llm_error, create_openai_client
from ledgerline.llm.generator import (
    GenerationError,
    GenerationResult,
    GenerationSuccess,
    StructuredGenerator,
    render_system_prompt,
)
from ledgerline.llm.templates import TemplateError, TemplatePromptBuilder
from ledgerline.llm.validation import (
    ValidationError,
    ValidationResult,
    ValidationSuccess,
    build_reply_model,
    validate_json_object_response,
    validate_reply,
)

__all__ = [
    "GenerationError",
    "GenerationResult",
    "GenerationSuccess",
    "StructuredGenerator",
    "TemplateError",
    "TemplatePromptBuilder",
    "ValidationError",
    "ValidationResult",
    "ValidationSuccess",
    "build_reply_model",
    "classify_llm_error",
    "create_openai_client",
    "render_system_prompt",
    "validate_json_object_response",
    "validate_reply",
]
