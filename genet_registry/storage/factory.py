"""
Gateway Factory

Environment-based configuration and factory for sync gateways.

Supported backends:
- github: GitHub repository via the REST API (production)
- memory: In-memory repository seeded from the bundled snapshots (development/testing)

Usage:
    # From environment
    settings = settings_from_env()
    factory = create_gateway_factory(settings)

    # One gateway per access token
    gateway = factory(token)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from genet_registry.registry.models import REGISTRIES
from genet_registry.storage.bundled import BundledRegistryData
from genet_registry.storage.codec import serialize_records
from genet_registry.storage.github import DEFAULT_API_URL, GitHubSyncGateway
from genet_registry.storage.memory import InMemorySyncGateway
from genet_registry.storage.ports import SyncGateway

logger = logging.getLogger(__name__)

GatewayFactory = Callable[[str], SyncGateway]


class GatewayBackend(str, Enum):
    """Supported remote store backends."""
    GITHUB = "github"
    MEMORY = "memory"


@dataclass
class GatewaySettings:
    """
    Configuration for the remote store.

    Attributes:
        backend: Remote store backend type
        owner: GitHub repository owner
        repo: GitHub repository name
        branch: Default branch direct writes go to
        api_url: GitHub API root
        http_timeout: Transport timeout in seconds
        data_dir: Directory of the registry files inside the repository
        bundled_dir: Local directory holding the bundled snapshots
    """
    backend: GatewayBackend = GatewayBackend.MEMORY
    owner: str | None = None
    repo: str | None = None
    branch: str = "main"
    api_url: str = DEFAULT_API_URL
    http_timeout: float = 30.0
    data_dir: str = "data"
    bundled_dir: str = "data"


def settings_from_env() -> GatewaySettings:
    """
    Create GatewaySettings from environment variables.

    Environment variables:
        GENET_REGISTRY_BACKEND: "github" or "memory"
        GENET_REGISTRY_GITHUB_OWNER: Repository owner
        GENET_REGISTRY_GITHUB_REPO: Repository name
        GENET_REGISTRY_GITHUB_BRANCH: Default branch (default: "main")
        GENET_REGISTRY_GITHUB_API_URL: API root
        GENET_REGISTRY_HTTP_TIMEOUT: Timeout in seconds
        GENET_REGISTRY_DATA_DIR: Registry directory inside the repository
        GENET_REGISTRY_BUNDLED_DIR: Local snapshot directory
    """
    owner = os.getenv("GENET_REGISTRY_GITHUB_OWNER")
    repo = os.getenv("GENET_REGISTRY_GITHUB_REPO")
    default_backend = "github" if owner and repo else "memory"

    return GatewaySettings(
        backend=GatewayBackend(os.getenv("GENET_REGISTRY_BACKEND", default_backend)),
        owner=owner,
        repo=repo,
        branch=os.getenv("GENET_REGISTRY_GITHUB_BRANCH", "main"),
        api_url=os.getenv("GENET_REGISTRY_GITHUB_API_URL", DEFAULT_API_URL),
        http_timeout=float(os.getenv("GENET_REGISTRY_HTTP_TIMEOUT", "30")),
        data_dir=os.getenv("GENET_REGISTRY_DATA_DIR", "data"),
        bundled_dir=os.getenv("GENET_REGISTRY_BUNDLED_DIR", "data"),
    )


def create_memory_gateway(settings: GatewaySettings) -> InMemorySyncGateway:
    """In-memory repository holding the bundled snapshots."""
    bundled = BundledRegistryData(settings.bundled_dir)
    files = {}
    for definition in REGISTRIES.values():
        if bundled.path_for(definition.name).exists():
            files[definition.data_path(settings.data_dir)] = serialize_records(
                bundled.load(definition.name)
            )
    return InMemorySyncGateway(files=files, default_branch=settings.branch)


def create_gateway_factory(settings: GatewaySettings) -> GatewayFactory:
    """
    Create a token -> gateway factory from settings.

    The memory backend shares one repository across tokens.

    Raises:
        ValueError: If settings are invalid
    """
    if settings.backend == GatewayBackend.MEMORY:
        shared = create_memory_gateway(settings)
        logger.info("Using in-memory registry store")
        return lambda token: shared

    if not settings.owner or not settings.repo:
        raise ValueError("owner and repo required for the github backend")

    def factory(token: str) -> SyncGateway:
        return GitHubSyncGateway(
            token=token,
            owner=settings.owner,
            repo=settings.repo,
            branch=settings.branch,
            api_url=settings.api_url,
            timeout=settings.http_timeout,
        )

    logger.info(f"Using GitHub registry store {settings.owner}/{settings.repo}@{settings.branch}")
    return factory
