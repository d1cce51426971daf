"""Reply validation against a SchemaContract.

Generated replies are external data: zero trust. Validation happens at the
boundary, immediately after the call, and a reply that does not satisfy
the contract is rejected rather than coerced.

Two steps:
1. Parse the reply as a JSON object (validate_json_object_response)
2. Check it against a pydantic model built from the contract
   (build_reply_model), strict types, no coercion

Undeclared keys are dropped from the accepted payload.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from functools import lru_cache
from typing import Annotated, Any

import pydantic
from pydantic import AfterValidator, BaseModel, ConfigDict, Field, create_model

from ledgerline.contracts.schema_contract import FieldConstraint, SchemaContract


@dataclass(frozen=True)
class ValidationSuccess:
    """Successful validation result containing parsed data."""

    data: dict[str, Any]


@dataclass(frozen=True)
class ValidationError:
    """Failed validation result with error details."""

    reason: str
    detail: str | None = None
    expected: str | None = None
    actual: str | None = None


ValidationResult = ValidationSuccess | ValidationError

_PYTHON_TYPES: dict[str, type] = {
    "string": str,
    "integer": int,
    "number": float,
    "boolean": bool,
}


def validate_json_object_response(content: str) -> ValidationResult:
    """Validate reply content is a JSON object.

    Returns:
        ValidationSuccess with parsed dict, or ValidationError with details
    """
    try:
        parsed = json.loads(content)
    except json.JSONDecodeError as e:
        return ValidationError(reason="invalid_json", detail=str(e))

    if not isinstance(parsed, dict):
        return ValidationError(
            reason="invalid_json_type",
            expected="object",
            actual=type(parsed).__name__,
        )

    return ValidationSuccess(data=parsed)


def _one_of(name: str, allowed: tuple[Any, ...]) -> AfterValidator:
    def check(value: Any) -> Any:
        if value not in allowed:
            raise ValueError(f"{value!r} is not one of {list(allowed)} for '{name}'")
        return value

    return AfterValidator(check)


def _field_annotation(constraint: FieldConstraint) -> Any:
    base = _PYTHON_TYPES[constraint.field_type]
    field_kwargs: dict[str, Any] = {"strict": True}
    if constraint.min_length is not None:
        field_kwargs["min_length"] = constraint.min_length
    if constraint.max_length is not None:
        field_kwargs["max_length"] = constraint.max_length
    if constraint.minimum is not None:
        field_kwargs["ge"] = constraint.minimum
    if constraint.maximum is not None:
        field_kwargs["le"] = constraint.maximum
    if constraint.field_type == "number":
        field_kwargs["allow_inf_nan"] = False
    if constraint.enum is not None:
        # Type is checked strictly first, membership second
        return Annotated[base, Field(**field_kwargs), _one_of(constraint.name, constraint.enum)]
    return Annotated[base, Field(**field_kwargs)]


@lru_cache(maxsize=128)
def build_reply_model(contract: SchemaContract) -> type[BaseModel]:
    """Create a pydantic model class enforcing the contract.

    Required fields have no default. Optional ones keep the strict type and
    get an unvalidated None default, so an explicit null is rejected and an
    absent field is left out of the dumped payload.
    """
    required = contract.required_fields
    field_definitions: dict[str, Any] = {}
    for constraint in contract.fields:
        annotation = _field_annotation(constraint)
        if constraint.name in required:
            field_definitions[constraint.name] = (annotation, ...)
        else:
            field_definitions[constraint.name] = (annotation, None)

    model_name = "".join(part.capitalize() for part in contract.name.replace("-", "_").split("_")) or "Reply"
    return create_model(
        f"{model_name}Reply",
        __module__=__name__,
        __config__=ConfigDict(extra="ignore", strict=True),
        **field_definitions,
    )


def _describe(exc: pydantic.ValidationError) -> tuple[str, str]:
    """Pick a reason code and a short detail from pydantic's error list."""
    errors = exc.errors(include_url=False)
    reason = "missing_field" if any(e["type"] == "missing" for e in errors) else "constraint_violation"
    detail = "; ".join(f"{'.'.join(str(p) for p in e['loc']) or '<root>'}: {e['msg']}" for e in errors)
    return reason, detail


def validate_reply(content: str, contract: SchemaContract) -> ValidationResult:
    """Validate a raw reply against a contract.

    Returns:
        ValidationSuccess with only the declared fields, or ValidationError
        with reason invalid_json / invalid_json_type / missing_field /
        constraint_violation
    """
    parsed = validate_json_object_response(content)
    if isinstance(parsed, ValidationError):
        return parsed

    model = build_reply_model(contract)
    try:
        instance = model.model_validate(parsed.data)
    except pydantic.ValidationError as e:
        reason, detail = _describe(e)
        return ValidationError(reason=reason, detail=detail, expected=contract.name)

    return ValidationSuccess(data=instance.model_dump(exclude_unset=True))
