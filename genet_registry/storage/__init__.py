# Storage Layer
# Remote registry files behind the SyncGateway port
#
# This module provides:
# - Port interface (ABC) defining the read / conditioned write / propose contract
# - In-memory implementation for development/testing
# - GitHub implementation for production
# - The registry file codec and bundled local snapshots
# - Factory for configuration-based adapter selection

from genet_registry.storage.ports import (
    SyncGateway,
    FileSnapshot,
    PullRequestHandle,
    RemoteStoreError,
    NotFoundError,
    RevisionConflictError,
    RemoteUnavailableError,
)
from genet_registry.storage.codec import (
    MalformedRegistryFileError,
    serialize_records,
    parse_records,
)
from genet_registry.storage.bundled import BundledRegistryData
from genet_registry.storage.memory import InMemorySyncGateway
from genet_registry.storage.github import GitHubSyncGateway
from genet_registry.storage.factory import (
    GatewayBackend,
    GatewayFactory,
    GatewaySettings,
    create_gateway_factory,
    create_memory_gateway,
    settings_from_env,
)

__all__ = [
    # Ports
    "SyncGateway",
    "FileSnapshot",
    "PullRequestHandle",
    "RemoteStoreError",
    "NotFoundError",
    "RevisionConflictError",
    "RemoteUnavailableError",
    # Codec
    "MalformedRegistryFileError",
    "serialize_records",
    "parse_records",
    # Adapters
    "BundledRegistryData",
    "InMemorySyncGateway",
    "GitHubSyncGateway",
    # Factory
    "GatewayBackend",
    "GatewayFactory",
    "GatewaySettings",
    "create_gateway_factory",
    "create_memory_gateway",
    "settings_from_env",
]
