#!/usr/bin/env python3
"""
Registry Editing Example

Walks through an editing session against an in-memory repository seeded
from the bundled snapshots in data/.

Workflow:
1. Maintainer signs in
2. Editor loads the genets schema, the genets file and its related registries
3. A new genet is validated and committed
4. An invalid genet is rejected before anything is written
5. A second maintainer with a stale copy hits a conflict, reloads and retries

Usage:
    python scripts/example_registry_edit.py
"""

import asyncio
import logging
import sys

# Add project root to path
sys.path.insert(0, ".")

from genet_registry.auth import AuthSession, User
from genet_registry.editor import RegistryEditor
from genet_registry.registry import RegistryError, RegistryName
from genet_registry.schema import FileSchemaSource, SchemaLoader
from genet_registry.storage import (
    BundledRegistryData,
    GatewaySettings,
    RevisionConflictError,
    create_gateway_factory,
)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


async def verify_token(token: str) -> User:
    """Accepts any token; the in-memory store has no accounts."""
    return User(login=token, display_name=token.title())


async def build_editor(factory, token: str) -> RegistryEditor:
    auth = AuthSession(verify_token)
    await auth.sign_in(token)
    editor = RegistryEditor(
        RegistryName.GENETS,
        schema_loader=SchemaLoader(FileSchemaSource("schemas")),
        gateway_factory=factory,
        auth=auth,
        bundled=BundledRegistryData("data"),
    )
    await editor.load()
    return editor


# =============================================================================
# Example 1: Commit and rejection
# =============================================================================

async def example_commit(factory):
    logger.info("=" * 60)
    logger.info("Example 1: Commit and rejection")
    logger.info("=" * 60)

    editor = await build_editor(factory, "alice")
    logger.info(f"Loaded {len(editor.records)} genets (schema {editor.schema_version})")

    outcome = await editor.save({"id": "MOTE-APAL-001", "orgId": "mote", "speciesCode": "APAL"})
    logger.info(f"{outcome.state.value}: {outcome.message} (revision {outcome.revision})")

    try:
        await editor.save({"id": "MOTE-APAL-002", "orgId": "nobody", "speciesCode": "APAL"})
    except RegistryError as e:
        logger.info(f"Rejected as expected: {e}")

    await editor.close()


# =============================================================================
# Example 2: Conflict and retry
# =============================================================================

async def example_conflict(factory):
    logger.info("=" * 60)
    logger.info("Example 2: Conflict and retry")
    logger.info("=" * 60)

    alice = await build_editor(factory, "alice")
    bob = await build_editor(factory, "bob")

    await alice.save({"id": "CRF-APAL-001", "orgId": "crf", "speciesCode": "APAL"})

    try:
        await bob.save({"id": "CRF-ACER-002", "orgId": "crf", "speciesCode": "ACER"})
    except RevisionConflictError as e:
        logger.info(f"Bob's copy was stale: {e}")
        outcome = await bob.retry()
        logger.info(f"After reload: {outcome.state.value}")

    logger.info(f"Registry now holds {[record['id'] for record in bob.records]}")

    await alice.close()
    await bob.close()


# =============================================================================
# Main
# =============================================================================

async def main():
    """Run all examples."""
    factory = create_gateway_factory(GatewaySettings())

    await example_commit(factory)
    print()
    await example_conflict(factory)

    logger.info("")
    logger.info("Examples complete!")


if __name__ == "__main__":
    asyncio.run(main())
