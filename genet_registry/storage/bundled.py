"""
Bundled Registry Snapshots

Local copies of the registry files shipped with the deployment. The editor
serves these read-only when the remote store cannot be used (no token, or the
store is unreachable).
"""

import logging
from pathlib import Path

from genet_registry.registry.models import Record, RegistryName
from genet_registry.storage.codec import MalformedRegistryFileError, parse_records

logger = logging.getLogger(__name__)


class BundledRegistryData:
    """Reads `<directory>/<registry>.json`."""

    def __init__(self, directory: str | Path):
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def path_for(self, registry: RegistryName) -> Path:
        return self._directory / f"{registry.value}.json"

    def load(self, registry: RegistryName) -> list[Record]:
        """Bundled records for a registry; empty if none are bundled."""
        path = self.path_for(registry)
        if not path.exists():
            logger.warning(f"No bundled snapshot for {registry.value} at {path}")
            return []

        try:
            return parse_records(path.read_text(encoding="utf-8"))
        except MalformedRegistryFileError as e:
            logger.warning(f"Ignoring bundled snapshot {path}: {e}")
            return []
