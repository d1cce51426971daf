"""Schema contracts for generated replies.

A SchemaContract describes the JSON object a text-generation service must
return: named fields, the required subset, and per-field constraints
(numeric bounds, string length, enums).

Strictness policy: when a contract does not list an explicit required set,
EVERY declared field is required. Optional fields must be opted into by
listing a required set that leaves them out.

Example (code):
    TWEET = SchemaContract(
        name="tweet",
        fields=(FieldConstraint("tweet", "string", min_length=1, max_length=280),),
    )

Example (settings YAML, JSON-schema shaped):
    contract:
      name: keeper
      properties:
        keep: {type: boolean, description: Whether the paper should be kept}
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

FieldType = Literal["string", "integer", "number", "boolean"]

SUPPORTED_TYPES: frozenset[str] = frozenset({"string", "integer", "number", "boolean"})


def _matches_type(value: Any, field_type: str) -> bool:
    # bool is an int subclass but never a JSON integer or number
    if field_type == "boolean":
        return isinstance(value, bool)
    if isinstance(value, bool):
        return False
    if field_type == "integer":
        return isinstance(value, int)
    if field_type == "number":
        return isinstance(value, int | float)
    return isinstance(value, str)


@dataclass(frozen=True)
class FieldConstraint:
    """One declared field of a contract.

    Attributes:
        name: JSON key (must be a valid Python identifier)
        field_type: JSON schema type name
        description: Shown to the model inside the schema
        min_length / max_length: String length bounds (characters)
        minimum / maximum: Inclusive numeric bounds
        enum: Allowed values, if restricted
    """

    name: str
    field_type: FieldType
    description: str | None = None
    min_length: int | None = None
    max_length: int | None = None
    minimum: float | None = None
    maximum: float | None = None
    enum: tuple[Any, ...] | None = None

    def __post_init__(self) -> None:
        if not self.name.isidentifier():
            raise ValueError(f"Invalid field name '{self.name}'. Field names must be valid Python identifiers.")
        if self.field_type not in SUPPORTED_TYPES:
            raise ValueError(
                f"Unknown type '{self.field_type}' for field '{self.name}'. Supported types: {', '.join(sorted(SUPPORTED_TYPES))}"
            )
        if (self.min_length is not None or self.max_length is not None) and self.field_type != "string":
            raise ValueError(f"Length bounds only apply to string fields, not '{self.field_type}' ({self.name})")
        if (self.minimum is not None or self.maximum is not None) and self.field_type not in ("integer", "number"):
            raise ValueError(f"Numeric bounds only apply to integer/number fields, not '{self.field_type}' ({self.name})")
        if self.min_length is not None and self.max_length is not None and self.min_length > self.max_length:
            raise ValueError(f"min_length > max_length for field '{self.name}'")
        if self.minimum is not None and self.maximum is not None and self.minimum > self.maximum:
            raise ValueError(f"minimum > maximum for field '{self.name}'")
        if self.enum is not None and len(self.enum) == 0:
            raise ValueError(f"enum for field '{self.name}' must not be empty")
        if self.enum is not None:
            mismatched = [v for v in self.enum if not _matches_type(v, self.field_type)]
            if mismatched:
                raise ValueError(f"enum values {mismatched} for field '{self.name}' are not of type '{self.field_type}'")

    def to_json_schema(self) -> dict[str, Any]:
        """Render this field as a JSON schema property."""
        prop: dict[str, Any] = {"type": self.field_type}
        if self.description is not None:
            prop["description"] = self.description
        if self.min_length is not None:
            prop["minLength"] = self.min_length
        if self.max_length is not None:
            prop["maxLength"] = self.max_length
        if self.minimum is not None:
            prop["minimum"] = self.minimum
        if self.maximum is not None:
            prop["maximum"] = self.maximum
        if self.enum is not None:
            prop["enum"] = list(self.enum)
        return prop

    @classmethod
    def from_json_schema(cls, name: str, prop: Mapping[str, Any]) -> FieldConstraint:
        """Build a field from a JSON schema property dict."""
        if "type" not in prop:
            raise ValueError(f"Property '{name}' is missing 'type'")
        enum = prop.get("enum")
        return cls(
            name=name,
            field_type=prop["type"],
            description=prop.get("description"),
            min_length=prop.get("minLength"),
            max_length=prop.get("maxLength"),
            minimum=prop.get("minimum"),
            maximum=prop.get("maximum"),
            enum=tuple(enum) if enum is not None else None,
        )


@dataclass(frozen=True)
class SchemaContract:
    """Structural description a generated reply must satisfy.

    Attributes:
        name: Contract name (used as the response_format schema name)
        fields: Declared fields in declaration order
        required: Explicit required subset, or None meaning "all fields"
    """

    name: str
    fields: tuple[FieldConstraint, ...]
    required: tuple[str, ...] | None = None
    _by_name: dict[str, FieldConstraint] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not self.fields:
            raise ValueError(f"Contract '{self.name}' must declare at least one field")
        by_name: dict[str, FieldConstraint] = {}
        for f in self.fields:
            if f.name in by_name:
                raise ValueError(f"Duplicate field '{f.name}' in contract '{self.name}'")
            by_name[f.name] = f
        if self.required is not None:
            unknown = [r for r in self.required if r not in by_name]
            if unknown:
                raise ValueError(f"Required field(s) {unknown} not declared in contract '{self.name}'")
        object.__setattr__(self, "_by_name", by_name)

    @property
    def field_names(self) -> tuple[str, ...]:
        return tuple(f.name for f in self.fields)

    @property
    def required_fields(self) -> frozenset[str]:
        """Fields a reply must contain.

        No explicit required set means every declared field is required.
        """
        if self.required is None:
            return frozenset(self.field_names)
        return frozenset(self.required)

    def get_field(self, name: str) -> FieldConstraint:
        return self._by_name[name]

    def to_json_schema(self) -> dict[str, Any]:
        """Render the contract as a JSON schema object."""
        return {
            "type": "object",
            "properties": {f.name: f.to_json_schema() for f in self.fields},
            "required": [name for name in self.field_names if name in self.required_fields],
            "additionalProperties": False,
        }

    def to_dict(self) -> dict[str, Any]:
        """Stable representation used for fingerprinting."""
        return {"name": self.name, "schema": self.to_json_schema()}

    @classmethod
    def from_json_schema(cls, name: str, schema: Mapping[str, Any]) -> SchemaContract:
        """Build a contract from a JSON-schema-shaped mapping.

        An absent "required" key means every property is required.
        """
        properties = schema.get("properties")
        if not isinstance(properties, Mapping) or not properties:
            raise ValueError(f"Contract '{name}' needs a non-empty 'properties' mapping")
        fields = tuple(FieldConstraint.from_json_schema(key, prop) for key, prop in properties.items())
        required = schema.get("required")
        return cls(
            name=name,
            fields=fields,
            required=tuple(required) if required is not None else None,
        )
