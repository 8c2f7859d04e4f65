"""
Validation Engine

Validates a candidate record in two passes:
1. Structural - the registry's compiled schema, with the version stamp applied
2. Referential - foreign-key existence against related registry snapshots

The passes are kept separate so that a schema able to express foreign keys
itself can take over the second pass without touching the first.

Referential checks are skipped for any related snapshot that is empty (it
failed to load, or was never loaded). Availability wins over consistency here.
"""

import logging
from typing import Any

from genet_registry.registry.cache import RegistryCache
from genet_registry.registry.models import (
    Record,
    RegistryError,
    RegistryName,
    SCHEMA_VERSION_FIELD,
    get_definition,
)
from genet_registry.schema.loader import CompiledSchema

logger = logging.getLogger(__name__)


class ReferentialIntegrityError(RegistryError):
    """A foreign-key value does not exist in the referenced registry."""

    def __init__(self, field: str, value: Any, registry: RegistryName):
        self.field = field
        self.value = value
        self.registry = registry
        super().__init__(
            f"{field} \"{value}\" not found in {registry.value} registry."
        )


def stamp_version(candidate: Record, schema_version: str) -> Record:
    """Copy of the candidate with `_schemaVersion` as its last field."""
    stamped = {key: value for key, value in candidate.items() if key != SCHEMA_VERSION_FIELD}
    stamped[SCHEMA_VERSION_FIELD] = schema_version
    return stamped


class ValidationEngine:
    """Validates candidate records for one registry schema."""

    def __init__(self, schema: CompiledSchema):
        self._schema = schema

    @property
    def schema(self) -> CompiledSchema:
        return self._schema

    def validate(
        self,
        candidate: Record,
        schema_version: str | None,
        registry_name: "RegistryName | str",
        cache: RegistryCache,
    ) -> Record:
        """
        Validate and stamp a candidate record.

        Args:
            candidate: Field values as entered
            schema_version: Version to stamp (defaults to the schema's own)
            registry_name: Registry the record belongs to
            cache: Working set holding the related snapshots

        Returns:
            The stamped, validated record

        Raises:
            SchemaValidationError: Structural failure, with every failing field
            ReferentialIntegrityError: A foreign key points at nothing
        """
        version = schema_version if schema_version is not None else self._schema.version
        record = stamp_version(candidate, version)

        self._schema.validate(record)
        self.check_references(record, registry_name, cache)
        return record

    def check_references(
        self,
        record: Record,
        registry_name: "RegistryName | str",
        cache: RegistryCache,
    ) -> None:
        definition = get_definition(registry_name)

        for rule in definition.foreign_keys:
            snapshot = cache.related(rule.target)
            if not snapshot:
                logger.warning(
                    f"Skipping {rule.field} check for {definition.name.value}: "
                    f"{rule.target.value} snapshot unavailable"
                )
                continue

            value = record.get(rule.field)
            if not any(item.get(rule.target_field) == value for item in snapshot):
                raise ReferentialIntegrityError(rule.field, value, rule.target)
