# Registry Catalogue & Working Set
# Known registries, their identifier fields and foreign keys, and the in-memory cache

from genet_registry.registry.models import (
    Record,
    SCHEMA_VERSION_FIELD,
    RegistryName,
    RegistryDefinition,
    ForeignKeyRule,
    REGISTRIES,
    get_definition,
    RegistryError,
    UnknownRegistryError,
)
from genet_registry.registry.cache import RegistryCache, DuplicateIdentifierError

__all__ = [
    "Record",
    "SCHEMA_VERSION_FIELD",
    "RegistryName",
    "RegistryDefinition",
    "ForeignKeyRule",
    "REGISTRIES",
    "get_definition",
    "RegistryError",
    "UnknownRegistryError",
    "RegistryCache",
    "DuplicateIdentifierError",
]
