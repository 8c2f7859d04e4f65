# Genet Registry - schema-validated editing of git-hosted reference registries
# Organizations, species and genets kept as JSON files in a remote repository

__version__ = "0.1.0"

# Re-export commonly used components for convenience
from genet_registry.registry import (
    RegistryName,
    RegistryCache,
    RegistryError,
    get_definition,
)
from genet_registry.schema import SchemaLoader, CompiledSchema
from genet_registry.validation import ValidationEngine
from genet_registry.storage import (
    SyncGateway,
    InMemorySyncGateway,
    GitHubSyncGateway,
)
from genet_registry.auth import AuthSession
from genet_registry.editor import RegistryEditor, SaveOutcome

__all__ = [
    "__version__",
    # Registries
    "RegistryName",
    "RegistryCache",
    "RegistryError",
    "get_definition",
    # Schema & validation
    "SchemaLoader",
    "CompiledSchema",
    "ValidationEngine",
    # Storage
    "SyncGateway",
    "InMemorySyncGateway",
    "GitHubSyncGateway",
    # Editing
    "AuthSession",
    "RegistryEditor",
    "SaveOutcome",
]
