"""
Sync Gateway Port

Abstract interface to the remote file store holding the registry files.
All operations are async.

These ports follow the hexagonal architecture pattern:
- Editor code depends only on this interface
- Adapters (in-memory, GitHub) implement it
- The gateway is injected into the editor

Concurrency: direct writes are optimistic. Every write presents the revision
token the writer last saw; the store rejects the write if the file has moved
on since. There is no locking.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from genet_registry.registry.models import RegistryError


@dataclass(frozen=True)
class FileSnapshot:
    """
    File content together with the revision it was read or written at.

    `revision` is opaque to callers.
    """
    content: str
    revision: str


@dataclass(frozen=True)
class PullRequestHandle:
    """A review request opened against the default branch."""
    number: int
    url: str
    branch: str


class SyncGateway(ABC):
    """
    Storage interface for registry files.

    `revision=None` on a write means "the file does not exist yet".
    """

    @abstractmethod
    async def read_file(self, path: str) -> FileSnapshot:
        """
        Read the current content and revision of a file.

        Raises:
            NotFoundError: The file does not exist (an empty registry)
            RemoteUnavailableError: Network, auth or server failure
        """
        ...

    @abstractmethod
    async def write_file(
        self,
        path: str,
        content: str,
        commit_message: str,
        revision: str | None,
    ) -> FileSnapshot:
        """
        Write a file, conditioned on its current revision.

        Args:
            path: File path in the repository
            content: Full new content
            commit_message: Commit message
            revision: Revision the writer last saw, or None to create the file

        Returns:
            The persisted content and its new revision

        Raises:
            RevisionConflictError: `revision` is not the store's current revision
            RemoteUnavailableError: Network, auth or server failure
        """
        ...

    @abstractmethod
    async def propose_change(
        self,
        path: str,
        content: str,
        commit_message: str,
        title: str,
        description: str,
    ) -> PullRequestHandle:
        """
        Write the file on a new branch and open a pull request.

        Meant for contributors without direct write access. The branch is cut
        from the default branch's current tip.

        Raises:
            RemoteUnavailableError: Network, auth or server failure
        """
        ...

    async def close(self) -> None:
        """Release transport resources."""
        pass


# =============================================================================
# Exceptions
# =============================================================================

class RemoteStoreError(RegistryError):
    """Base exception for remote store errors."""
    pass


class NotFoundError(RemoteStoreError):
    """File not found."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"File not found: {path}")


class RevisionConflictError(RemoteStoreError):
    """Another writer committed first; reload and retry."""

    def __init__(self, path: str, detail: str | None = None):
        self.path = path
        self.detail = detail
        message = f"{path} was changed by someone else; reload and try again"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class RemoteUnavailableError(RemoteStoreError):
    """The remote store could not be reached or refused the request."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)
