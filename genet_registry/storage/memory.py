"""
In-Memory Sync Gateway

Dict-backed stand-in for the remote repository.
Uses an asyncio lock so read-compare-write is atomic for concurrent tasks.

Use for:
- Local development without a GitHub repository
- Unit/integration testing
"""

import asyncio
import hashlib
import logging
from dataclasses import dataclass, field

from genet_registry.storage.ports import (
    FileSnapshot,
    NotFoundError,
    PullRequestHandle,
    RevisionConflictError,
    SyncGateway,
)

logger = logging.getLogger(__name__)


def content_revision(content: str) -> str:
    return hashlib.sha1(content.encode("utf-8")).hexdigest()


@dataclass
class CommitRecord:
    """One accepted write."""
    branch: str
    path: str
    message: str
    revision: str


@dataclass
class PullRequestRecord:
    number: int
    branch: str
    base: str
    title: str
    description: str
    files: dict[str, str] = field(default_factory=dict)


class InMemorySyncGateway(SyncGateway):
    """
    In-memory repository with branches.

    Revisions are content hashes, like git blob ids.
    """

    def __init__(
        self,
        files: dict[str, str] | None = None,
        default_branch: str = "main",
    ):
        self._default_branch = default_branch
        self._branches: dict[str, dict[str, str]] = {default_branch: dict(files or {})}
        self._commits: list[CommitRecord] = []
        self._pull_requests: list[PullRequestRecord] = []
        self._lock = asyncio.Lock()

    @property
    def commits(self) -> list[CommitRecord]:
        return list(self._commits)

    @property
    def pull_requests(self) -> list[PullRequestRecord]:
        return list(self._pull_requests)

    def file_content(self, path: str, branch: str | None = None) -> str | None:
        """Current content of a file, for inspection."""
        return self._branches[branch or self._default_branch].get(path)

    async def read_file(self, path: str) -> FileSnapshot:
        async with self._lock:
            content = self._branches[self._default_branch].get(path)
            if content is None:
                raise NotFoundError(path)
            return FileSnapshot(content=content, revision=content_revision(content))

    async def write_file(
        self,
        path: str,
        content: str,
        commit_message: str,
        revision: str | None,
    ) -> FileSnapshot:
        async with self._lock:
            return self._commit(self._default_branch, path, content, commit_message, revision)

    async def propose_change(
        self,
        path: str,
        content: str,
        commit_message: str,
        title: str,
        description: str,
    ) -> PullRequestHandle:
        async with self._lock:
            number = len(self._pull_requests) + 1
            branch = f"update-{number}"
            self._branches[branch] = dict(self._branches[self._default_branch])

            current = self._branches[branch].get(path)
            base_revision = content_revision(current) if current is not None else None
            self._commit(branch, path, content, commit_message, base_revision)

            self._pull_requests.append(PullRequestRecord(
                number=number,
                branch=branch,
                base=self._default_branch,
                title=title,
                description=description,
                files={path: content},
            ))
            logger.info(f"Opened pull request #{number} from {branch}")
            return PullRequestHandle(
                number=number,
                url=f"memory://pulls/{number}",
                branch=branch,
            )

    def _commit(
        self,
        branch: str,
        path: str,
        content: str,
        message: str,
        revision: str | None,
    ) -> FileSnapshot:
        files = self._branches[branch]
        current = files.get(path)
        current_revision = content_revision(current) if current is not None else None

        if revision != current_revision:
            raise RevisionConflictError(
                path,
                f"expected {current_revision or 'no file'}, got {revision or 'no file'}",
            )

        files[path] = content
        new_revision = content_revision(content)
        self._commits.append(CommitRecord(branch, path, message, new_revision))
        return FileSnapshot(content=content, revision=new_revision)
