"""
Registry Editor

Orchestrates one registry editing session:
load schema + load data -> accept a create/edit -> validate -> merge ->
persist -> reconcile the working set with what was persisted.

Concurrency model (single event loop, no threads):
- Schema and data loads run as concurrent tasks, awaited independently.
  Editing stays disabled until both have resolved.
- At most one save is in flight per editor. A second attempt is rejected,
  since two read-token/write pairs against the same file would race.
- close() abandons in-flight loads without mutating state, but never an
  in-flight save: once the write has been issued its result must stay
  observable.

Conflicts are not retried automatically. The candidate is kept so that
retry() can reload and resubmit it when the user asks.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Coroutine

from genet_registry.auth.session import AuthSession, UnauthenticatedError, User
from genet_registry.editor.states import (
    DataState,
    FormField,
    SaveOutcome,
    SaveState,
    SchemaState,
    SelectOption,
)
from genet_registry.registry.cache import DuplicateIdentifierError, RegistryCache
from genet_registry.registry.models import (
    Record,
    RegistryError,
    RegistryName,
    get_definition,
)
from genet_registry.schema.loader import (
    CompiledSchema,
    SchemaLoader,
    SchemaUnavailableError,
    SchemaValidationError,
)
from genet_registry.storage.bundled import BundledRegistryData
from genet_registry.storage.codec import (
    MalformedRegistryFileError,
    parse_records,
    serialize_records,
)
from genet_registry.storage.factory import GatewayFactory
from genet_registry.storage.ports import (
    NotFoundError,
    RemoteUnavailableError,
    RevisionConflictError,
    SyncGateway,
)
from genet_registry.validation.engine import ReferentialIntegrityError, ValidationEngine

logger = logging.getLogger(__name__)

REMOTE_FALLBACK_MESSAGE = "Failed to fetch latest data from the remote store. Showing local data."


# =============================================================================
# Exceptions
# =============================================================================

class EditorNotReadyError(RegistryError):
    """Schema or data is still loading."""

    def __init__(self, registry: RegistryName):
        self.registry = registry
        super().__init__(f"{registry.value} registry is still loading")


class SaveInProgressError(RegistryError):
    """Another save for this registry has not finished yet."""

    def __init__(self, registry: RegistryName):
        self.registry = registry
        super().__init__(f"A save to the {registry.value} registry is already in progress")


class NoPendingSaveError(RegistryError):
    """retry() was called with nothing to resubmit."""

    def __init__(self, registry: RegistryName):
        self.registry = registry
        super().__init__(f"No failed save to retry for the {registry.value} registry")


@dataclass(frozen=True)
class PendingSave:
    """A submitted candidate, kept until it is committed."""
    candidate: Record
    is_edit: bool
    previous_id: Any = None


@dataclass(frozen=True)
class _Proposal:
    title: str
    description: str


# =============================================================================
# Editor
# =============================================================================

class RegistryEditor:
    """
    Editing session for one registry.

    Reads the auth session but never changes it; a token change reloads data.
    """

    def __init__(
        self,
        registry: "RegistryName | str",
        schema_loader: SchemaLoader,
        gateway_factory: GatewayFactory,
        auth: AuthSession,
        bundled: BundledRegistryData,
        data_dir: str = "data",
    ):
        """
        Initialize the editor.

        Args:
            registry: Registry to edit
            schema_loader: Loader for the registry's schema document
            gateway_factory: Builds a remote store gateway for an access token
            auth: Process-wide auth session (read-only here)
            bundled: Local snapshots served when the remote store is unusable
            data_dir: Directory of the registry files in the remote repository
        """
        self._definition = get_definition(registry)
        self._schema_loader = schema_loader
        self._gateway_factory = gateway_factory
        self._auth = auth
        self._bundled = bundled
        self._data_dir = data_dir
        self._path = self._definition.data_path(data_dir)

        self._cache = RegistryCache(bundled.load(self._definition.name))
        self._schema: CompiledSchema | None = None
        self._engine: ValidationEngine | None = None

        self._schema_state = SchemaState.IDLE
        self._data_state = DataState.IDLE
        self._save_state = SaveState.IDLE
        self._schema_error: str | None = None
        self._data_error: str | None = None
        self._last_outcome: SaveOutcome | None = None
        self._pending: PendingSave | None = None

        self._load_tasks: set[asyncio.Task] = set()
        self._save_task: asyncio.Task | None = None
        # Bumped on every commit; loads that started before a commit are stale
        self._commit_count = 0
        self._closed = False

        self._unsubscribe = auth.subscribe(self._on_auth_change)

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def registry(self) -> RegistryName:
        return self._definition.name

    @property
    def id_field(self) -> str:
        return self._definition.id_field

    @property
    def path(self) -> str:
        return self._path

    @property
    def schema(self) -> CompiledSchema | None:
        return self._schema

    @property
    def schema_version(self) -> str | None:
        return self._schema.version if self._schema else None

    @property
    def schema_state(self) -> SchemaState:
        return self._schema_state

    @property
    def data_state(self) -> DataState:
        return self._data_state

    @property
    def save_state(self) -> SaveState:
        return self._save_state

    @property
    def cache(self) -> RegistryCache:
        return self._cache

    @property
    def records(self) -> list[Record]:
        return self._cache.records

    @property
    def error(self) -> str | None:
        """The most relevant load error, if any."""
        return self._schema_error or self._data_error

    @property
    def last_outcome(self) -> SaveOutcome | None:
        return self._last_outcome

    @property
    def pending_candidate(self) -> Record | None:
        """Candidate of a save that has not been committed yet."""
        return dict(self._pending.candidate) if self._pending else None

    @property
    def is_ready(self) -> bool:
        """Both loads have resolved and the schema is usable."""
        return self._schema_state == SchemaState.READY and self._data_state in (
            DataState.READY, DataState.LOCAL, DataState.FAILED
        )

    @property
    def is_saving(self) -> bool:
        return self._save_task is not None and not self._save_task.done()

    @property
    def current_user(self) -> User | None:
        return self._auth.current_user()

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    def _spawn_load(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._load_tasks.add(task)
        task.add_done_callback(self._load_tasks.discard)
        return task

    async def load(self) -> None:
        """
        Load schema and data concurrently.

        Raises:
            Exception: Whatever either load raised unexpectedly, once both
                have finished
        """
        tasks = [self._spawn_load(self.load_schema()), self._spawn_load(self.load_data())]
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for result in results:
            # Cancellation by close() is not an error
            if isinstance(result, Exception):
                raise result

    async def load_schema(self) -> None:
        self._schema_state = SchemaState.LOADING
        try:
            schema = await self._schema_loader.load(self.registry.value)
        except Exception as e:
            if self._closed:
                return
            if isinstance(e, SchemaUnavailableError):
                logger.error(f"Schema for {self.registry.value} unavailable: {e}")
            else:
                logger.exception(f"Unexpected error loading schema for {self.registry.value}")
            self._schema_state = SchemaState.FAILED
            self._schema_error = "Failed to load validation schema."
            return

        if self._closed:
            return
        self._schema = schema
        self._engine = ValidationEngine(schema)
        self._schema_error = None
        self._schema_state = SchemaState.READY

    async def load_data(self) -> None:
        """
        Load the registry file and, where needed, its related registries.

        Without a token the bundled snapshot is served. A missing file is an
        empty registry. Any other failure falls back to the bundled snapshot.
        A load overtaken by a commit is discarded.
        """
        self._data_state = DataState.LOADING
        token = self._auth.current_token()
        if token is None:
            self._use_bundled(DataState.LOCAL, None)
            return

        commits_seen = self._commit_count
        gateway = self._gateway_factory(token)
        try:
            try:
                snapshot = await gateway.read_file(self._path)
                records = parse_records(snapshot.content)
                revision: str | None = snapshot.revision
            except NotFoundError:
                logger.info(f"{self._path} not found in the remote store, starting empty")
                records, revision = [], None
            except Exception as e:
                if self._closed or self._overtaken(commits_seen):
                    return
                if isinstance(e, (RemoteUnavailableError, MalformedRegistryFileError)):
                    logger.warning(f"Failed to load {self._path}: {e}")
                else:
                    logger.exception(f"Unexpected error loading {self._path}")
                self._use_bundled(DataState.FAILED, REMOTE_FALLBACK_MESSAGE)
                return

            related = await self._load_related(gateway)
        finally:
            await gateway.close()

        if self._closed or self._overtaken(commits_seen):
            return
        self._cache.replace_all(records, revision)
        self._cache.clear_related()
        for name, related_records in related.items():
            self._cache.set_related(name, related_records)
        self._data_error = None
        self._data_state = DataState.READY
        logger.info(f"Loaded {len(records)} {self.registry.value} records")

    def _overtaken(self, commits_seen: int) -> bool:
        """True if a commit landed while a load was in flight."""
        if self._commit_count == commits_seen:
            return False
        # The commit left the working set current
        logger.info(f"Discarding {self.registry.value} load started before the last commit")
        self._data_error = None
        self._data_state = DataState.READY
        return True

    async def _load_related(self, gateway: SyncGateway) -> dict[RegistryName, list[Record]]:
        names = self._definition.related
        results = await asyncio.gather(*(self._read_related(gateway, name) for name in names))
        return dict(zip(names, results))

    async def _read_related(self, gateway: SyncGateway, name: RegistryName) -> list[Record]:
        """Best effort: any failure leaves the snapshot empty."""
        path = get_definition(name).data_path(self._data_dir)
        try:
            snapshot = await gateway.read_file(path)
            return parse_records(snapshot.content)
        except NotFoundError:
            return []
        except Exception as e:
            logger.warning(f"Failed to load related data for validation ({name.value}): {e}")
            return []

    def _use_bundled(self, state: DataState, error: str | None) -> None:
        self._cache.replace_all(self._bundled.load(self.registry), None)
        self._cache.clear_related()
        self._data_error = error
        self._data_state = state

    def _on_auth_change(self, token: str | None, user: User | None) -> None:
        if self._closed:
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return
        self._spawn_load(self.load_data())

    # -------------------------------------------------------------------------
    # Saving
    # -------------------------------------------------------------------------

    async def save(
        self,
        candidate: Record,
        is_edit: bool = False,
        previous_id: Any = None,
    ) -> SaveOutcome:
        """
        Validate a record and commit the registry to the default branch.

        Args:
            candidate: Field values as entered
            is_edit: Replace an existing record rather than add one
            previous_id: Identifier of the edited record before the edit

        Returns:
            The committed outcome

        Raises:
            SaveInProgressError: Another save is still running
            UnauthenticatedError: No token
            SchemaUnavailableError: The schema failed to load
            EditorNotReadyError: Schema or data still loading
            SchemaValidationError, ReferentialIntegrityError,
            DuplicateIdentifierError: The record was rejected
            RevisionConflictError: Someone else committed first
            RemoteUnavailableError: The write could not be made
        """
        pending = PendingSave(dict(candidate), is_edit, previous_id)
        return await self._submit(pending, None)

    async def propose(
        self,
        candidate: Record,
        title: str | None = None,
        description: str = "",
        is_edit: bool = False,
        previous_id: Any = None,
    ) -> SaveOutcome:
        """
        Validate a record and open a pull request with the updated registry.

        The local working set is left untouched; the change lands only when
        the pull request is merged.
        """
        pending = PendingSave(dict(candidate), is_edit, previous_id)
        return await self._submit(pending, _Proposal(title or "", description))

    async def retry(self) -> SaveOutcome:
        """Reload the registry and resubmit the last uncommitted candidate."""
        if self.is_saving:
            raise SaveInProgressError(self.registry)
        if self._pending is None:
            raise NoPendingSaveError(self.registry)
        pending = self._pending
        await self.load_data()
        return await self._submit(pending, None)

    async def wait_for_save(self) -> SaveOutcome | None:
        """Wait for an in-flight save, if any, and return the latest outcome."""
        if self._save_task is not None:
            await asyncio.wait({self._save_task})
        return self._last_outcome

    async def _submit(self, pending: PendingSave, proposal: _Proposal | None) -> SaveOutcome:
        if self.is_saving:
            raise SaveInProgressError(self.registry)

        token = self._auth.current_token()
        if token is None:
            raise UnauthenticatedError()
        if self._schema_state == SchemaState.FAILED:
            raise SchemaUnavailableError(self.registry.value, self._schema_error or "not loaded")
        if not self.is_ready:
            raise EditorNotReadyError(self.registry)

        self._pending = pending
        if self._data_state == DataState.FAILED:
            # The bundled fallback has no revision to write against
            message = self._data_error or REMOTE_FALLBACK_MESSAGE
            self._finish(SaveState.FAILED, message=message, retryable=True)
            raise RemoteUnavailableError(message)

        self._save_state = SaveState.VALIDATING
        self._save_task = asyncio.create_task(self._run_save(pending, token, proposal))
        self._save_task.add_done_callback(_retrieve_exception)
        # Shielded: cancelling the caller must not abandon a write in progress
        return await asyncio.shield(self._save_task)

    def _stage(self, pending: PendingSave) -> tuple[Record, RegistryCache]:
        """Validate the candidate and merge it into a copy of the working set."""
        assert self._engine is not None and self._schema is not None
        record = self._engine.validate(
            pending.candidate, self._schema.version, self.registry, self._cache
        )
        working = self._cache.copy()
        working.upsert(record, self.id_field, pending.is_edit, pending.previous_id)
        return record, working

    async def _run_save(
        self,
        pending: PendingSave,
        token: str,
        proposal: _Proposal | None,
    ) -> SaveOutcome:
        try:
            record, working = self._stage(pending)
        except (SchemaValidationError, ReferentialIntegrityError, DuplicateIdentifierError) as e:
            self._finish(
                SaveState.REJECTED,
                message=str(e),
                field_errors=getattr(e, "field_errors", []),
            )
            raise

        identifier = record.get(self.id_field)
        action = "Edit" if pending.is_edit else "Add"
        commit_message = f"Update {self.registry.value} registry: {action} {identifier}"
        content = serialize_records(working.records)

        self._save_state = SaveState.PERSISTING
        gateway = self._gateway_factory(token)
        try:
            if proposal is not None:
                handle = await gateway.propose_change(
                    self._path,
                    content,
                    commit_message,
                    proposal.title or commit_message,
                    proposal.description,
                )
            else:
                persisted = await gateway.write_file(
                    self._path, content, commit_message, working.revision
                )
        except RevisionConflictError as e:
            logger.warning(f"Revision conflict saving {self._path}: {e}")
            self._finish(SaveState.CONFLICT, record=record, message=str(e), retryable=True)
            raise
        except RemoteUnavailableError as e:
            logger.error(f"Failed to save {self._path}: {e}")
            self._finish(SaveState.FAILED, record=record, message=str(e), retryable=True)
            raise
        finally:
            await gateway.close()

        self._pending = None

        if proposal is not None:
            logger.info(f"Proposed {commit_message} as pull request #{handle.number}")
            return self._finish(
                SaveState.PROPOSED,
                record=record,
                message=f"Pull request #{handle.number} opened",
                pull_request_number=handle.number,
                pull_request_url=handle.url,
            )

        # What the store persisted is authoritative
        try:
            records = parse_records(persisted.content)
        except MalformedRegistryFileError:
            records = working.records
        self._cache.replace_all(records, persisted.revision)
        self._commit_count += 1
        stored = self._cache.find(self.id_field, identifier) or record

        logger.info(f"Committed {commit_message} ({persisted.revision})")
        return self._finish(
            SaveState.COMMITTED,
            record=stored,
            revision=persisted.revision,
            message="Changes saved successfully!",
        )

    def _finish(self, state: SaveState, **fields: Any) -> SaveOutcome:
        outcome = SaveOutcome(registry=self.registry.value, state=state, **fields)
        self._save_state = state
        self._last_outcome = outcome
        return outcome

    # -------------------------------------------------------------------------
    # Form description
    # -------------------------------------------------------------------------

    def form_fields(self) -> list[FormField]:
        """
        Schema fields for data entry.

        Foreign-key fields get select options once every related snapshot
        has loaded.
        """
        if self._schema is None:
            return []

        options: dict[str, list[SelectOption]] = {}
        rules = self._definition.foreign_keys
        if rules and all(self._cache.related(rule.target) for rule in rules):
            for rule in rules:
                options[rule.field] = [
                    SelectOption(label=_option_label(rule.target, item, rule.target_field),
                                 value=item.get(rule.target_field))
                    for item in self._cache.related(rule.target)
                ]

        return [
            FormField(**spec.model_dump(), options=options.get(spec.name))
            for spec in self._schema.form_fields
        ]

    # -------------------------------------------------------------------------
    # Teardown
    # -------------------------------------------------------------------------

    async def close(self) -> None:
        """Abandon in-flight loads. An in-flight save keeps running."""
        self._closed = True
        self._unsubscribe()
        tasks = list(self._load_tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


def _option_label(registry: RegistryName, item: Record, key_field: str) -> str:
    key = item.get(key_field)
    if registry == RegistryName.ORGANIZATIONS:
        return f"{item.get('name', key)} ({key})"
    if registry == RegistryName.SPECIES:
        if item.get("commonName"):
            return f"{item['commonName']} ({key})"
        return f"{item.get('genus', '')} {item.get('specificEpithet', '')} ({key})".strip()
    return str(key)


def _retrieve_exception(task: asyncio.Task) -> None:
    # A save whose caller was cancelled still has its failure recorded in last_outcome
    if not task.cancelled():
        task.exception()
