"""Pytest configuration and shared helpers for registry editor tests."""

import asyncio
import copy
import sys
from pathlib import Path

# Import the local package rather than any installed copy
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

import pytest

from genet_registry.auth import AuthSession, User
from genet_registry.editor import RegistryEditor
from genet_registry.schema import SchemaLoader, SchemaSource
from genet_registry.storage import (
    BundledRegistryData,
    InMemorySyncGateway,
    RemoteUnavailableError,
    serialize_records,
)


ORGANIZATIONS_SCHEMA = {
    "version": "1.0.0",
    "type": "object",
    "properties": {
        "id": {"type": "string"},
        "name": {"type": "string"},
        "contact": {"type": "string"},
        "website": {"type": "string"},
    },
    "required": ["id", "name"],
}

SPECIES_SCHEMA = {
    "version": "2.1.0",
    "type": "object",
    "properties": {
        "code": {"type": "string"},
        "genus": {"type": "string"},
        "specificEpithet": {"type": "string"},
        "commonName": {"type": "string"},
    },
    "required": ["code", "genus"],
}

GENETS_SCHEMA = {
    "version": "1.0.0",
    "type": "object",
    "properties": {
        "id": {"type": "string"},
        "orgId": {"type": "string"},
        "speciesCode": {"type": "string"},
        "notes": {"type": "string"},
    },
    "required": ["id", "orgId", "speciesCode"],
}

SCHEMAS = {
    "organizations": ORGANIZATIONS_SCHEMA,
    "species": SPECIES_SCHEMA,
    "genets": GENETS_SCHEMA,
}

ORGANIZATIONS = [{"id": "org1", "name": "Reef Lab", "_schemaVersion": "1.0.0"}]
SPECIES = [
    {"code": "ACER", "genus": "Acropora", "specificEpithet": "cervicornis", "_schemaVersion": "2.1.0"},
]
GENETS = [{"id": "g1", "orgId": "org1", "speciesCode": "ACER", "_schemaVersion": "1.0.0"}]


class DictSchemaSource(SchemaSource):
    """Serves schema documents from a dict."""

    def __init__(self, documents: dict):
        self._documents = documents

    async def fetch(self, registry_name: str):
        if registry_name not in self._documents:
            raise FileNotFoundError(f"no schema for {registry_name}")
        return copy.deepcopy(self._documents[registry_name])


class FlakyGateway(InMemorySyncGateway):
    """In-memory gateway whose reads fail for selected paths, and writes on demand."""

    def __init__(self, files=None, failing_reads=(), broken_reads=()):
        super().__init__(files)
        self.failing_reads = set(failing_reads)
        self.broken_reads = set(broken_reads)
        self.fail_writes = False

    async def read_file(self, path):
        if path in self.failing_reads:
            raise RemoteUnavailableError("network unreachable")
        if path in self.broken_reads:
            raise KeyError("sha")
        return await super().read_file(path)

    async def write_file(self, path, content, commit_message, revision):
        if self.fail_writes:
            raise RemoteUnavailableError("GitHub returned 502: Bad Gateway", status_code=502)
        return await super().write_file(path, content, commit_message, revision)


class BlockingGateway(InMemorySyncGateway):
    """In-memory gateway that holds reads or writes until released."""

    def __init__(self, files=None, block_reads_of=None):
        super().__init__(files)
        self.block_reads_of = block_reads_of
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def read_file(self, path):
        if path == self.block_reads_of:
            self.started.set()
            await self.release.wait()
        return await super().read_file(path)

    async def write_file(self, path, content, commit_message, revision):
        if self.block_reads_of is None:
            self.started.set()
            await self.release.wait()
        return await super().write_file(path, content, commit_message, revision)


class StaleReadGateway(InMemorySyncGateway):
    """
    In-memory gateway that can hold writes, and hold a read's result back
    after taking it, so that a reload can finish after a commit.
    """

    def __init__(self, files=None):
        super().__init__(files)
        self.hold_reads_of = None
        self.hold_writes = False
        self.read_started = asyncio.Event()
        self.read_release = asyncio.Event()
        self.write_started = asyncio.Event()
        self.write_release = asyncio.Event()

    async def read_file(self, path):
        snapshot = await super().read_file(path)
        if path == self.hold_reads_of:
            self.read_started.set()
            await self.read_release.wait()
        return snapshot

    async def write_file(self, path, content, commit_message, revision):
        if self.hold_writes:
            self.write_started.set()
            await self.write_release.wait()
        return await super().write_file(path, content, commit_message, revision)


async def accept_any_token(token: str) -> User:
    return User(login="tester", display_name="Test Maintainer")


def registry_files(
    organizations=ORGANIZATIONS,
    species=SPECIES,
    genets=GENETS,
) -> dict[str, str]:
    """Remote repository contents keyed by path."""
    files = {}
    for name, records in (("organizations", organizations), ("species", species), ("genets", genets)):
        if records is not None:
            files[f"data/{name}.json"] = serialize_records(records)
    return files


async def signed_in_auth(token: str | None = "secret") -> AuthSession:
    auth = AuthSession(accept_any_token)
    if token:
        await auth.sign_in(token)
    return auth


async def make_editor(
    registry: str,
    gateway: InMemorySyncGateway,
    bundled_dir: Path,
    auth: AuthSession | None = None,
    schemas: dict | None = None,
    load: bool = True,
) -> RegistryEditor:
    """Build (and by default load) an editor over an in-memory gateway."""
    if auth is None:
        auth = await signed_in_auth()
    editor = RegistryEditor(
        registry,
        schema_loader=SchemaLoader(DictSchemaSource(SCHEMAS if schemas is None else schemas)),
        gateway_factory=lambda token: gateway,
        auth=auth,
        bundled=BundledRegistryData(bundled_dir),
    )
    if load:
        await editor.load()
    return editor


@pytest.fixture
def bundled_dir(tmp_path):
    """Directory with a bundled snapshot of each registry."""
    directory = tmp_path / "bundled"
    directory.mkdir()
    (directory / "organizations.json").write_text(
        serialize_records([{"id": "local-org", "name": "Bundled Org"}]), encoding="utf-8"
    )
    (directory / "species.json").write_text(serialize_records(SPECIES), encoding="utf-8")
    (directory / "genets.json").write_text(
        serialize_records([{"id": "local-g", "orgId": "local-org", "speciesCode": "ACER"}]),
        encoding="utf-8",
    )
    return directory
