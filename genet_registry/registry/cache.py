"""
Registry Cache

In-memory working copy of one registry's records, plus snapshots of the
related registries needed for foreign-key checks.

The cache also remembers the revision token the records were loaded (or
last committed) at, which is the token presented on the next write.
"""

import logging
from typing import Any

from genet_registry.registry.models import Record, RegistryError, RegistryName

logger = logging.getLogger(__name__)


class DuplicateIdentifierError(RegistryError):
    """A record with the same identifier value already exists."""

    def __init__(self, field: str, value: Any):
        self.field = field
        self.value = value
        super().__init__(f"Item with {field} \"{value}\" already exists.")


class RegistryCache:
    """
    Working set for a registry session.

    Related snapshots are best effort: an empty snapshot means "unknown",
    not "nothing exists".
    """

    def __init__(
        self,
        records: list[Record] | None = None,
        revision: str | None = None,
    ):
        self._records: list[Record] = list(records or [])
        self._revision = revision
        self._related: dict[RegistryName, list[Record]] = {}

    @property
    def records(self) -> list[Record]:
        return list(self._records)

    @property
    def revision(self) -> str | None:
        """Revision token of the remote file these records came from."""
        return self._revision

    @property
    def related_organizations(self) -> list[Record]:
        return self.related(RegistryName.ORGANIZATIONS)

    @property
    def related_species(self) -> list[Record]:
        return self.related(RegistryName.SPECIES)

    def __len__(self) -> int:
        return len(self._records)

    def replace_all(self, records: list[Record], revision: str | None = None) -> None:
        """Swap the whole working collection in one step."""
        self._records = list(records)
        self._revision = revision

    def related(self, registry: RegistryName) -> list[Record]:
        return list(self._related.get(registry, []))

    def set_related(self, registry: RegistryName, records: list[Record]) -> None:
        self._related[registry] = list(records)

    def clear_related(self) -> None:
        self._related.clear()

    def find(self, identifier_field: str, value: Any) -> Record | None:
        for record in self._records:
            if record.get(identifier_field) == value:
                return record
        return None

    def upsert(
        self,
        record: Record,
        identifier_field: str,
        is_edit: bool,
        previous_id: Any = None,
    ) -> None:
        """
        Merge a validated record into the working set.

        Args:
            record: Validated record
            identifier_field: Field that identifies records in this registry
            is_edit: Replace an existing record instead of adding a new one
            previous_id: Identifier the edited record had before the edit
                (defaults to the record's own identifier)

        Raises:
            DuplicateIdentifierError: On create, when the identifier is taken;
                on edit, when the new identifier belongs to another record
        """
        value = record.get(identifier_field)

        if not is_edit:
            if self.find(identifier_field, value) is not None:
                raise DuplicateIdentifierError(identifier_field, value)
            self._records.append(record)
            return

        match = value if previous_id is None else previous_id
        if match != value and self.find(identifier_field, value) is not None:
            raise DuplicateIdentifierError(identifier_field, value)

        for index, existing in enumerate(self._records):
            if existing.get(identifier_field) == match:
                self._records[index] = record
                return

        # Removed by someone else since it was opened for editing
        logger.info(
            f"Edited record {identifier_field}={match!r} not found in working set, appending"
        )
        self._records.append(record)

    def copy(self) -> "RegistryCache":
        """Independent copy, used to stage a merge without touching this cache."""
        clone = RegistryCache(self._records, self._revision)
        clone._related = {name: list(records) for name, records in self._related.items()}
        return clone
