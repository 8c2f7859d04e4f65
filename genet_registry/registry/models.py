"""
Registry Catalogue

The fixed set of registries the editor knows about, their identifier fields,
backing files and cross-registry foreign-key rules.

Records themselves are schema-free at this layer: a record is an
insertion-ordered dict whose shape is decided by the registry's schema
document at runtime.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


Record = dict[str, Any]

# Reserved field recording which schema version validated a record
SCHEMA_VERSION_FIELD = "_schemaVersion"


class RegistryName(str, Enum):
    """Registries maintained in the remote repository."""
    ORGANIZATIONS = "organizations"
    SPECIES = "species"
    GENETS = "genets"


@dataclass(frozen=True)
class ForeignKeyRule:
    """
    A cross-registry existence check.

    `field` on the candidate must equal `target_field` of some record in
    the `target` registry's snapshot.
    """
    field: str
    target: RegistryName
    target_field: str


@dataclass(frozen=True)
class RegistryDefinition:
    """Static description of one registry."""
    name: RegistryName
    id_field: str
    foreign_keys: tuple[ForeignKeyRule, ...] = field(default_factory=tuple)

    def data_path(self, data_dir: str = "data") -> str:
        """Path of the backing JSON file inside the remote repository."""
        prefix = data_dir.strip("/")
        if not prefix:
            return f"{self.name.value}.json"
        return f"{prefix}/{self.name.value}.json"

    @property
    def related(self) -> tuple[RegistryName, ...]:
        """Registries whose snapshots are needed for foreign-key checks."""
        return tuple(dict.fromkeys(rule.target for rule in self.foreign_keys))


REGISTRIES: dict[RegistryName, RegistryDefinition] = {
    RegistryName.ORGANIZATIONS: RegistryDefinition(
        name=RegistryName.ORGANIZATIONS,
        id_field="id",
    ),
    RegistryName.SPECIES: RegistryDefinition(
        name=RegistryName.SPECIES,
        id_field="code",
    ),
    RegistryName.GENETS: RegistryDefinition(
        name=RegistryName.GENETS,
        id_field="id",
        foreign_keys=(
            ForeignKeyRule("orgId", RegistryName.ORGANIZATIONS, "id"),
            ForeignKeyRule("speciesCode", RegistryName.SPECIES, "code"),
        ),
    ),
}


def get_definition(name: "RegistryName | str") -> RegistryDefinition:
    """
    Look up a registry definition by name.

    Raises:
        UnknownRegistryError: If the name is not one of the known registries
    """
    try:
        return REGISTRIES[RegistryName(name)]
    except ValueError:
        raise UnknownRegistryError(str(name)) from None


# =============================================================================
# Exceptions
# =============================================================================

class RegistryError(Exception):
    """Base exception for registry editing errors."""
    pass


class UnknownRegistryError(RegistryError):
    """Registry name is not part of the catalogue."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown registry: {name}")
