"""
Schema Loader

Fetches the JSON-Schema document for a registry and compiles it into a
structural validator plus the document's declared version string.

Schema Format:
- A JSON Schema object with `properties` (field name -> declaration) and
  `required` (list of field names)
- An optional top-level `version` string; documents without one are still
  usable and report the version "unknown"

Schemas are produced outside this project and only consumed here. They are
fetched fresh for every editor session and never cached beyond it.
"""

from __future__ import annotations

import copy
import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import httpx
from jsonschema import Draft202012Validator
from jsonschema.exceptions import SchemaError
from jsonschema.validators import validator_for
from pydantic import BaseModel, Field

from genet_registry.registry.models import Record, RegistryError, SCHEMA_VERSION_FIELD

logger = logging.getLogger(__name__)

UNKNOWN_VERSION = "unknown"


# =============================================================================
# Exceptions
# =============================================================================

class SchemaUnavailableError(RegistryError):
    """The schema could not be fetched or is not a usable structural schema."""

    def __init__(self, registry_name: str, reason: str):
        self.registry_name = registry_name
        self.reason = reason
        super().__init__(f"Failed to load schema for {registry_name}: {reason}")


class FieldError(BaseModel):
    """One failing field of a record."""
    field: str = Field(..., description="Field name, or <record> for record-level failures")
    reason: str = Field(..., description="Human-readable reason")

    def __str__(self) -> str:
        return f"{self.field}: {self.reason}"


class SchemaValidationError(RegistryError):
    """A record does not match its registry's schema."""

    def __init__(self, field_errors: list[FieldError]):
        self.field_errors = field_errors
        details = "; ".join(str(error) for error in field_errors)
        super().__init__(f"Record failed schema validation: {details}")

    @property
    def fields(self) -> list[str]:
        return [error.field for error in self.field_errors]


# =============================================================================
# Compiled Schema
# =============================================================================

class FieldSpec(BaseModel):
    """A field declared by a registry schema."""
    name: str = Field(..., description="Field name")
    type: str = Field(default="string", description="Primitive JSON type")
    required: bool = Field(default=False, description="Whether the field must be present")
    description: str | None = Field(default=None, description="Schema description, if any")


_JSON_TYPE_NAMES = {
    bool: "boolean",
    int: "integer",
    float: "number",
    str: "string",
    list: "array",
    dict: "object",
    type(None): "null",
}


def _json_type_name(value: Any) -> str:
    return _JSON_TYPE_NAMES.get(type(value), type(value).__name__)


def _primitive_type(declaration: dict[str, Any]) -> str:
    declared = declaration.get("type", "string")
    if isinstance(declared, list):
        non_null = [name for name in declared if name != "null"]
        return non_null[0] if non_null else "null"
    return str(declared)


class CompiledSchema:
    """
    Structural validator for one registry.

    All field access goes through `fields`; nothing here assumes a fixed
    record shape, so new registries or fields only need a new document.
    """

    def __init__(self, registry_name: str, document: dict[str, Any], version: str):
        self.registry_name = registry_name
        self.version = version
        self._document = document

        properties: dict[str, Any] = document.get("properties", {})
        required = set(document.get("required", []))
        self._fields = [
            FieldSpec(
                name=name,
                type=_primitive_type(declaration) if isinstance(declaration, dict) else "string",
                required=name in required,
                description=declaration.get("description") if isinstance(declaration, dict) else None,
            )
            for name, declaration in properties.items()
        ]

        validator_cls = validator_for(document, default=Draft202012Validator)
        self._validator = validator_cls(document)

    @property
    def document(self) -> dict[str, Any]:
        return copy.deepcopy(self._document)

    @property
    def fields(self) -> list[FieldSpec]:
        return list(self._fields)

    @property
    def form_fields(self) -> list[FieldSpec]:
        """Fields a person fills in (the version stamp is added automatically)."""
        return [spec for spec in self._fields if spec.name != SCHEMA_VERSION_FIELD]

    @property
    def field_names(self) -> list[str]:
        return [spec.name for spec in self._fields]

    def validate(self, record: Record) -> Record:
        """
        Validate a record against this schema.

        Returns:
            The record, unchanged

        Raises:
            SchemaValidationError: Listing every failing field
        """
        field_errors: list[FieldError] = []
        reported_missing: set[str] = set()

        for error in self._validator.iter_errors(record):
            if error.validator == "required" and not error.path:
                for name in error.validator_value:
                    if name not in record and name not in reported_missing:
                        reported_missing.add(name)
                        field_errors.append(FieldError(field=name, reason="missing required field"))
                continue

            field = str(error.path[0]) if error.path else "<record>"
            if error.validator == "type":
                expected = error.validator_value
                if isinstance(expected, list):
                    expected = " or ".join(expected)
                reason = f"expected {expected}, got {_json_type_name(error.instance)}"
            else:
                reason = error.message
            field_errors.append(FieldError(field=field, reason=reason))

        if field_errors:
            raise SchemaValidationError(field_errors)
        return record


# =============================================================================
# Schema Sources
# =============================================================================

class SchemaSource(ABC):
    """Where schema documents come from."""

    @abstractmethod
    async def fetch(self, registry_name: str) -> Any:
        """
        Fetch and decode the schema document for a registry.

        Raises:
            Exception: Any fetch or decode failure; the loader wraps it
        """
        ...

    async def close(self) -> None:
        pass


class FileSchemaSource(SchemaSource):
    """Reads `<directory>/<registry>.json` from the local filesystem."""

    def __init__(self, directory: str | Path):
        self._directory = Path(directory)

    async def fetch(self, registry_name: str) -> Any:
        path = self._directory / f"{registry_name}.json"
        return json.loads(path.read_text(encoding="utf-8"))


class HttpSchemaSource(SchemaSource):
    """Fetches `<base_url>/schemas/<registry>.json` from a static site."""

    def __init__(
        self,
        base_url: str,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ):
        self._base_url = base_url if base_url.endswith("/") else f"{base_url}/"
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None

    async def fetch(self, registry_name: str) -> Any:
        response = await self._client.get(f"{self._base_url}schemas/{registry_name}.json")
        response.raise_for_status()
        return response.json()

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def create_schema_source_from_env() -> SchemaSource:
    """
    Create a schema source from environment variables.

    Environment variables:
        GENET_REGISTRY_SCHEMA_URL: Base URL of the static site serving schemas
        GENET_REGISTRY_SCHEMA_DIR: Local schema directory (default: "schemas")
        GENET_REGISTRY_HTTP_TIMEOUT: HTTP timeout in seconds
    """
    url = os.getenv("GENET_REGISTRY_SCHEMA_URL")
    if url:
        return HttpSchemaSource(
            url,
            timeout=float(os.getenv("GENET_REGISTRY_HTTP_TIMEOUT", "30")),
        )
    return FileSchemaSource(os.getenv("GENET_REGISTRY_SCHEMA_DIR", "schemas"))


# =============================================================================
# Loader
# =============================================================================

class SchemaLoader:
    """Turns schema documents into compiled validators."""

    def __init__(self, source: SchemaSource):
        self._source = source

    async def load(self, registry_name: str) -> CompiledSchema:
        """
        Load and compile the schema for a registry.

        Raises:
            SchemaUnavailableError: If the document cannot be fetched or is not
                a structural JSON Schema
        """
        try:
            document = await self._source.fetch(registry_name)
        except Exception as e:
            logger.error(f"Error loading schema for {registry_name}: {e}")
            raise SchemaUnavailableError(registry_name, str(e)) from e

        return compile_schema(registry_name, document)


def compile_schema(registry_name: str, document: Any) -> CompiledSchema:
    """
    Compile a decoded schema document.

    Raises:
        SchemaUnavailableError: If the document is not a structural schema
    """
    if not isinstance(document, dict):
        raise SchemaUnavailableError(registry_name, "schema document is not an object")

    properties = document.get("properties")
    if not isinstance(properties, dict):
        raise SchemaUnavailableError(registry_name, "schema declares no properties")

    validator_cls = validator_for(document, default=Draft202012Validator)
    try:
        validator_cls.check_schema(document)
    except SchemaError as e:
        raise SchemaUnavailableError(registry_name, f"invalid schema: {e.message}") from e

    version = document.get("version") or UNKNOWN_VERSION

    # The version stamp is part of the validated shape
    document = copy.deepcopy(document)
    if SCHEMA_VERSION_FIELD not in document["properties"]:
        document["properties"][SCHEMA_VERSION_FIELD] = {"type": "string"}

    logger.info(
        f"Loaded schema for {registry_name} (version {version}, "
        f"{len(document['properties'])} fields)"
    )
    return CompiledSchema(registry_name, document, str(version))
