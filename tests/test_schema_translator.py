from __future__ import annotations

import pytest

from toolhub.core.errors import ConfigurationError, ValidationError
from toolhub.core.schema_translator import SchemaTranslator


SEARCH_SCHEMA = {
    "type": "object",
    "properties": {
        "query": {"type": "string"},
        "limit": {"type": "integer"},
        "threshold": {"type": "number"},
        "exact": {"type": "boolean"},
        "tags": {"type": "array", "items": {"type": "string"}},
        "filters": {"type": "object"},
    },
    "required": ["query"],
}


@pytest.fixture
def validator():
    return SchemaTranslator().translate(SEARCH_SCHEMA, tool_name="search_docs")


def test_valid_arguments_are_returned_unchanged(validator):
    args = {"query": "pydantic", "limit": 5, "threshold": 0.5, "exact": False, "tags": [1, "a"], "filters": {"a": {"b": 1}}}
    assert validator.validate(args) == args


def test_missing_required_field_is_reported(validator):
    with pytest.raises(ValidationError) as exc:
        validator.validate({"limit": 3})
    assert exc.value.missing_fields == ["query"]
    assert "query" in str(exc.value)


def test_extra_fields_pass_through(validator):
    args = {"query": "x", "page_token": "abc"}
    assert validator.validate(args) == args


def test_types_are_checked_without_coercion(validator):
    with pytest.raises(ValidationError) as exc:
        validator.validate({"query": "x", "limit": "5"})
    assert "limit" in exc.value.invalid_fields

    with pytest.raises(ValidationError) as exc:
        validator.validate({"query": 42})
    assert "query" in exc.value.invalid_fields


def test_boolean_is_not_an_integer(validator):
    with pytest.raises(ValidationError) as exc:
        validator.validate({"query": "x", "limit": True})
    assert "limit" in exc.value.invalid_fields


def test_number_accepts_integers_and_floats(validator):
    validator.validate({"query": "x", "threshold": 1})
    validator.validate({"query": "x", "threshold": 0.25})
    with pytest.raises(ValidationError):
        validator.validate({"query": "x", "threshold": "0.25"})


def test_array_and_object_shapes(validator):
    with pytest.raises(ValidationError) as exc:
        validator.validate({"query": "x", "tags": "a,b", "filters": ["a"]})
    assert set(exc.value.invalid_fields) == {"tags", "filters"}


def test_missing_and_invalid_reported_together(validator):
    with pytest.raises(ValidationError) as exc:
        validator.validate({"limit": 1.5})
    assert exc.value.missing_fields == ["query"]
    assert "limit" in exc.value.invalid_fields


def test_non_mapping_arguments_are_rejected(validator):
    with pytest.raises(ValidationError):
        validator.validate(["query"])


def test_schema_without_properties_accepts_any_mapping():
    validator = SchemaTranslator().translate({"type": "object"})
    assert validator.validate({"anything": [1, 2]}) == {"anything": [1, 2]}
    assert validator.validate({}) == {}


def test_non_object_schema_accepts_any_mapping():
    validator = SchemaTranslator().translate({"type": "string"})
    assert validator.validate({"a": 1}) == {"a": 1}


def test_missing_schema_accepts_any_mapping():
    assert SchemaTranslator().translate(None).validate({"a": 1}) == {"a": 1}


def test_required_without_properties_still_enforced():
    validator = SchemaTranslator().translate({"type": "object", "required": ["id"]})
    with pytest.raises(ValidationError) as exc:
        validator.validate({})
    assert exc.value.missing_fields == ["id"]
    assert validator.validate({"id": 7}) == {"id": 7}


def test_unknown_declared_type_is_permissive_by_default():
    schema = {"type": "object", "properties": {"when": {"type": "datetime"}}, "required": ["when"]}
    validator = SchemaTranslator().translate(schema)
    assert validator.validate({"when": 12345}) == {"when": 12345}
    with pytest.raises(ValidationError):
        validator.validate({})


def test_unknown_declared_type_rejected_when_strict():
    schema = {"type": "object", "properties": {"when": {"type": "datetime"}}}
    with pytest.raises(ConfigurationError):
        SchemaTranslator(strict=True).translate(schema, tool_name="schedule")


def test_property_names_that_are_not_identifiers():
    schema = {
        "type": "object",
        "properties": {"file-path": {"type": "string"}, "_private": {"type": "integer"}, "model_config": {"type": "string"}},
        "required": ["file-path"],
    }
    validator = SchemaTranslator().translate(schema, tool_name="read-file")
    args = {"file-path": "/tmp/a", "_private": 1, "model_config": "x"}
    assert validator.validate(args) == args
    with pytest.raises(ValidationError) as exc:
        validator.validate({"_private": 1})
    assert exc.value.missing_fields == ["file-path"]


def test_nullable_union_type():
    schema = {"type": "object", "properties": {"cursor": {"type": ["string", "null"]}}, "required": ["cursor"]}
    validator = SchemaTranslator().translate(schema)
    assert validator.validate({"cursor": None}) == {"cursor": None}
    with pytest.raises(ValidationError):
        validator.validate({"cursor": 3})
