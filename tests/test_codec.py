"""Tests for the registry file format."""

import pytest

from genet_registry.storage import MalformedRegistryFileError, parse_records, serialize_records


def test_two_space_indent_without_trailing_newline():
    content = serialize_records([{"id": "crf", "name": "Coral Restoration Foundation"}])
    assert content == '[\n  {\n    "id": "crf",\n    "name": "Coral Restoration Foundation"\n  }\n]'


def test_key_order_preserved():
    content = serialize_records([{"z": 1, "a": 2, "_schemaVersion": "1.0.0"}])
    assert list(parse_records(content)[0]) == ["z", "a", "_schemaVersion"]


def test_non_ascii_written_verbatim():
    content = serialize_records([{"name": "Fundación Corales"}])
    assert "Fundación" in content


def test_empty_registry():
    assert serialize_records([]) == "[]"
    assert parse_records("[]") == []


@pytest.mark.parametrize("content", ["{}", "not json", '[{"id": "a"}, 3]'])
def test_malformed_content(content):
    with pytest.raises(MalformedRegistryFileError):
        parse_records(content)
