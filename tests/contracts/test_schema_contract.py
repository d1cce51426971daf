"""Tests for SchemaContract and FieldConstraint."""

import pytest

from ledgerline.contracts import FieldConstraint, SchemaContract


class TestFieldConstraint:
    def test_rejects_non_identifier_name(self) -> None:
        with pytest.raises(ValueError, match="Invalid field name"):
            FieldConstraint("bad-name", "string")

    def test_rejects_unknown_type(self) -> None:
        with pytest.raises(ValueError, match="Unknown type 'array'"):
            FieldConstraint("items", "array")  # type: ignore[arg-type]

    def test_length_bounds_only_on_strings(self) -> None:
        with pytest.raises(ValueError, match="Length bounds only apply to string"):
            FieldConstraint("count", "integer", max_length=3)

    def test_numeric_bounds_only_on_numbers(self) -> None:
        with pytest.raises(ValueError, match="Numeric bounds only apply"):
            FieldConstraint("title", "string", minimum=0)

    def test_rejects_inverted_bounds(self) -> None:
        with pytest.raises(ValueError, match="min_length > max_length"):
            FieldConstraint("tweet", "string", min_length=10, max_length=5)
        with pytest.raises(ValueError, match="minimum > maximum"):
            FieldConstraint("score", "number", minimum=1.0, maximum=0.0)

    def test_rejects_empty_enum(self) -> None:
        with pytest.raises(ValueError, match="must not be empty"):
            FieldConstraint("label", "string", enum=())

    @pytest.mark.parametrize(
        ("field_type", "enum"),
        [
            ("integer", (1, True)),
            ("integer", (1, 2.5)),
            ("number", (0.5, "high")),
            ("string", ("talk", 3)),
            ("boolean", (True, 0)),
        ],
    )
    def test_rejects_enum_values_of_another_type(self, field_type: str, enum: tuple[object, ...]) -> None:
        with pytest.raises(ValueError, match="are not of type"):
            FieldConstraint("level", field_type, enum=enum)  # type: ignore[arg-type]

    def test_accepts_integers_in_number_enum(self) -> None:
        assert FieldConstraint("score", "number", enum=(0, 0.5, 1)).enum == (0, 0.5, 1)

    def test_json_schema_rendering(self) -> None:
        field = FieldConstraint("tweet", "string", description="Post text", min_length=1, max_length=280)

        assert field.to_json_schema() == {
            "type": "string",
            "description": "Post text",
            "minLength": 1,
            "maxLength": 280,
        }


class TestSchemaContract:
    def test_no_required_set_means_every_field_required(self) -> None:
        contract = SchemaContract(
            name="paper",
            fields=(FieldConstraint("keep", "boolean"), FieldConstraint("reason", "string")),
        )

        assert contract.required_fields == frozenset({"keep", "reason"})

    def test_explicit_required_subset(self) -> None:
        contract = SchemaContract(
            name="paper",
            fields=(FieldConstraint("keep", "boolean"), FieldConstraint("reason", "string")),
            required=("keep",),
        )

        assert contract.required_fields == frozenset({"keep"})
        assert contract.to_json_schema()["required"] == ["keep"]

    def test_rejects_unknown_required_field(self) -> None:
        with pytest.raises(ValueError, match="not declared"):
            SchemaContract(name="c", fields=(FieldConstraint("a", "string"),), required=("b",))

    def test_rejects_duplicate_fields(self) -> None:
        with pytest.raises(ValueError, match="Duplicate field 'a'"):
            SchemaContract(name="c", fields=(FieldConstraint("a", "string"), FieldConstraint("a", "integer")))

    def test_rejects_empty_contract(self) -> None:
        with pytest.raises(ValueError, match="at least one field"):
            SchemaContract(name="c", fields=())

    def test_json_schema_forbids_additional_properties(self) -> None:
        contract = SchemaContract(name="tweet", fields=(FieldConstraint("tweet", "string"),))

        schema = contract.to_json_schema()

        assert schema["type"] == "object"
        assert schema["additionalProperties"] is False
        assert schema["required"] == ["tweet"]

    def test_from_json_schema_without_required_key_requires_all(self) -> None:
        contract = SchemaContract.from_json_schema(
            "event",
            {
                "properties": {
                    "title": {"type": "string", "maxLength": 100},
                    "priority": {"type": "integer", "minimum": 1, "maximum": 5},
                    "kind": {"type": "string", "enum": ["talk", "workshop"]},
                }
            },
        )

        assert contract.field_names == ("title", "priority", "kind")
        assert contract.required_fields == frozenset({"title", "priority", "kind"})
        assert contract.get_field("priority").maximum == 5
        assert contract.get_field("kind").enum == ("talk", "workshop")

    def test_from_json_schema_requires_properties(self) -> None:
        with pytest.raises(ValueError, match="non-empty 'properties'"):
            SchemaContract.from_json_schema("event", {"type": "object"})

    def test_from_json_schema_requires_type(self) -> None:
        with pytest.raises(ValueError, match="missing 'type'"):
            SchemaContract.from_json_schema("event", {"properties": {"title": {}}})

    def test_contracts_are_hashable_and_compare_by_value(self) -> None:
        a = SchemaContract(name="tweet", fields=(FieldConstraint("tweet", "string"),))
        b = SchemaContract(name="tweet", fields=(FieldConstraint("tweet", "string"),))

        assert a == b
        assert hash(a) == hash(b)
