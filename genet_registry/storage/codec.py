"""
Registry File Codec

Each registry file is a UTF-8 JSON array of flat record objects, indented
with two spaces, with no trailing newline. Key order is the record's
insertion order. External tooling (the CSV export among others) reads these
files as-is, so the shape must not change.
"""

import json
from typing import Any

from genet_registry.registry.models import Record


class MalformedRegistryFileError(ValueError):
    """Registry file content is not a JSON array of objects."""
    pass


def serialize_records(records: list[Record]) -> str:
    return json.dumps(records, indent=2, ensure_ascii=False)


def parse_records(content: str) -> list[Record]:
    """
    Decode registry file content.

    Raises:
        MalformedRegistryFileError: If the content is not an array of objects
    """
    try:
        data: Any = json.loads(content)
    except json.JSONDecodeError as e:
        raise MalformedRegistryFileError(f"Invalid JSON: {e}") from e

    if not isinstance(data, list):
        raise MalformedRegistryFileError("Registry data is not an array")
    if not all(isinstance(item, dict) for item in data):
        raise MalformedRegistryFileError("Registry data contains non-object entries")
    return data
