"""Tests for the in-memory sync gateway."""

import asyncio

import pytest

from genet_registry.storage import (
    InMemorySyncGateway,
    NotFoundError,
    RevisionConflictError,
)
from genet_registry.storage.memory import content_revision

PATH = "data/genets.json"


def test_read_returns_content_and_revision():
    async def run():
        gateway = InMemorySyncGateway({PATH: "[]"})
        return await gateway.read_file(PATH)

    snapshot = asyncio.run(run())
    assert snapshot.content == "[]"
    assert snapshot.revision == content_revision("[]")


def test_read_missing_file():
    async def run():
        await InMemorySyncGateway().read_file(PATH)

    with pytest.raises(NotFoundError):
        asyncio.run(run())


def test_write_with_current_revision():
    async def run():
        gateway = InMemorySyncGateway({PATH: "[]"})
        snapshot = await gateway.read_file(PATH)
        written = await gateway.write_file(PATH, '[{"id": "g1"}]', "Add g1", snapshot.revision)
        return gateway, snapshot, written

    gateway, before, after = asyncio.run(run())
    assert after.revision != before.revision
    assert gateway.file_content(PATH) == '[{"id": "g1"}]'
    assert [commit.message for commit in gateway.commits] == ["Add g1"]


def test_same_revision_token_wins_once():
    async def run():
        gateway = InMemorySyncGateway({PATH: "[]"})
        snapshot = await gateway.read_file(PATH)
        results = await asyncio.gather(
            gateway.write_file(PATH, '["a"]', "A", snapshot.revision),
            gateway.write_file(PATH, '["b"]', "B", snapshot.revision),
            return_exceptions=True,
        )
        return gateway, results

    gateway, results = asyncio.run(run())
    conflicts = [result for result in results if isinstance(result, RevisionConflictError)]
    assert len(conflicts) == 1
    assert len(gateway.commits) == 1
    assert gateway.file_content(PATH) in ('["a"]', '["b"]')


def test_create_requires_absent_file():
    async def run():
        gateway = InMemorySyncGateway()
        await gateway.write_file(PATH, "[]", "Create", None)
        await gateway.write_file(PATH, "[1]", "Create again", None)

    with pytest.raises(RevisionConflictError):
        asyncio.run(run())


def test_propose_change_leaves_default_branch():
    async def run():
        gateway = InMemorySyncGateway({PATH: "[]"})
        handle = await gateway.propose_change(PATH, '["new"]', "Add new", "Add new", "please review")
        return gateway, handle

    gateway, handle = asyncio.run(run())
    assert handle.number == 1
    assert gateway.file_content(PATH) == "[]"
    assert gateway.file_content(PATH, branch=handle.branch) == '["new"]'
    assert gateway.pull_requests[0].description == "please review"
    assert gateway.pull_requests[0].base == "main"
