"""
Registry Editor Application

FastAPI application exposing the registry editors over HTTP. A browser UI
(not part of this package) drives it.

Configuration is read from environment variables:
- GENET_REGISTRY_BACKEND: "github" or "memory"
- GENET_REGISTRY_GITHUB_OWNER / GENET_REGISTRY_GITHUB_REPO / GENET_REGISTRY_GITHUB_BRANCH
- GENET_REGISTRY_DATA_DIR: Registry directory inside the repository
- GENET_REGISTRY_BUNDLED_DIR: Local snapshot directory
- GENET_REGISTRY_SCHEMA_URL / GENET_REGISTRY_SCHEMA_DIR: Schema documents
- GENET_REGISTRY_TOKEN: Optional token to sign in with at startup

Environment variables can be loaded from a .env file in the project root.
"""

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from typing import Any

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

# Load environment variables from .env file
load_dotenv()

from genet_registry.auth import AuthSession, UnauthenticatedError, create_token_verifier
from genet_registry.editor import (
    DataState,
    EditorNotReadyError,
    NoPendingSaveError,
    RegistryEditor,
    SaveInProgressError,
)
from genet_registry.registry import (
    DuplicateIdentifierError,
    RegistryError,
    RegistryName,
    UnknownRegistryError,
    get_definition,
)
from genet_registry.schema import (
    SchemaLoader,
    SchemaSource,
    SchemaUnavailableError,
    SchemaValidationError,
    create_schema_source_from_env,
)
from genet_registry.storage import (
    BundledRegistryData,
    RemoteUnavailableError,
    RevisionConflictError,
    create_gateway_factory,
    settings_from_env,
)
from genet_registry.validation import ReferentialIntegrityError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Global instances (created at startup)
auth: AuthSession | None = None
schema_source: SchemaSource | None = None
editors: dict[RegistryName, RegistryEditor] = {}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Builds one editor per registry and loads them all.
    """
    global auth, schema_source

    logger.info("Starting registry editor...")
    settings = settings_from_env()
    gateway_factory = create_gateway_factory(settings)

    auth = AuthSession(create_token_verifier(settings))
    token = os.getenv("GENET_REGISTRY_TOKEN")
    if token:
        await auth.sign_in(token)

    schema_source = create_schema_source_from_env()
    schema_loader = SchemaLoader(schema_source)
    bundled = BundledRegistryData(settings.bundled_dir)

    for name in RegistryName:
        editors[name] = RegistryEditor(
            name,
            schema_loader=schema_loader,
            gateway_factory=gateway_factory,
            auth=auth,
            bundled=bundled,
            data_dir=settings.data_dir,
        )
    await asyncio.gather(*(editor.load() for editor in editors.values()))
    logger.info("Registry editor started")

    yield

    # Shutdown: loads are abandoned, saves are allowed to finish
    logger.info("Shutting down registry editor...")
    for editor in editors.values():
        await editor.close()
        await editor.wait_for_save()
    editors.clear()
    await schema_source.close()
    logger.info("Registry editor stopped")


app = FastAPI(
    title="Genet Registry Editor",
    description="Schema-validated editing of registry files kept in a git repository",
    version="0.1.0",
    lifespan=lifespan
)


# =============================================================================
# Request Models
# =============================================================================

class TokenRequest(BaseModel):
    token: str = Field(..., min_length=1, description="GitHub access token")


class RecordSubmission(BaseModel):
    record: dict[str, Any] = Field(..., description="Field values as entered")


class ProposalSubmission(RecordSubmission):
    title: str | None = Field(default=None, description="Pull request title")
    description: str = Field(default="", description="Pull request body")
    is_edit: bool = Field(default=False)
    previous_id: Any = Field(default=None, description="Identifier before the edit")


# =============================================================================
# Error Mapping
# =============================================================================

_ERROR_STATUS: list[tuple[type[RegistryError], int]] = [
    (UnknownRegistryError, 404),
    (SchemaValidationError, 422),
    (ReferentialIntegrityError, 422),
    (DuplicateIdentifierError, 409),
    (RevisionConflictError, 409),
    (UnauthenticatedError, 401),
    (SaveInProgressError, 429),
    (NoPendingSaveError, 409),
    (SchemaUnavailableError, 503),
    (EditorNotReadyError, 503),
    (RemoteUnavailableError, 502),
]


@app.exception_handler(RegistryError)
async def registry_error_handler(request: Request, exc: RegistryError) -> JSONResponse:
    status = next((code for cls, code in _ERROR_STATUS if isinstance(exc, cls)), 400)
    body: dict[str, Any] = {
        "error": type(exc).__name__,
        "message": str(exc),
        "retryable": isinstance(exc, (RevisionConflictError, RemoteUnavailableError)),
    }
    if isinstance(exc, SchemaValidationError):
        body["field_errors"] = [error.model_dump() for error in exc.field_errors]
    if isinstance(exc, (ReferentialIntegrityError, DuplicateIdentifierError)):
        body["field"] = exc.field
        body["value"] = exc.value
    return JSONResponse(status_code=status, content=body)


def _editor(name: str) -> RegistryEditor:
    definition = get_definition(name)
    return editors[definition.name]


def _editor_view(editor: RegistryEditor) -> dict[str, Any]:
    outcome = editor.last_outcome
    return {
        "registry": editor.registry.value,
        "id_field": editor.id_field,
        "schema_version": editor.schema_version,
        "schema_state": editor.schema_state.value,
        "data_state": editor.data_state.value,
        "save_state": editor.save_state.value,
        "error": editor.error,
        "editable": (
            editor.is_ready
            and editor.data_state != DataState.FAILED
            and auth is not None
            and auth.is_authenticated
        ),
        "records": editor.records,
        "last_outcome": outcome.model_dump(mode="json") if outcome else None,
    }


# =============================================================================
# Endpoints
# =============================================================================

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "authenticated": auth.is_authenticated if auth else False,
        "registries": {
            name.value: {
                "schema": editor.schema_state.value,
                "data": editor.data_state.value,
                "save": editor.save_state.value,
            }
            for name, editor in editors.items()
        },
    }


@app.post("/auth/token")
async def sign_in(request: TokenRequest):
    user = await auth.sign_in(request.token)
    if user is None:
        raise UnauthenticatedError("Invalid token")
    return user.model_dump()


@app.delete("/auth/token")
async def sign_out():
    auth.sign_out()
    return {"authenticated": False}


@app.get("/auth/user")
async def current_user():
    user = auth.current_user()
    return user.model_dump() if user else None


@app.get("/registries/{name}")
async def get_registry(name: str):
    return _editor_view(_editor(name))


@app.get("/registries/{name}/fields")
async def get_fields(name: str):
    editor = _editor(name)
    return [field.model_dump() for field in editor.form_fields()]


@app.post("/registries/{name}/reload")
async def reload_registry(name: str):
    editor = _editor(name)
    await editor.load()
    return _editor_view(editor)


@app.post("/registries/{name}/records", status_code=201)
async def create_record(name: str, submission: RecordSubmission):
    outcome = await _editor(name).save(submission.record, is_edit=False)
    return outcome.model_dump(mode="json")


@app.put("/registries/{name}/records/{record_id}")
async def update_record(name: str, record_id: str, submission: RecordSubmission):
    outcome = await _editor(name).save(submission.record, is_edit=True, previous_id=record_id)
    return outcome.model_dump(mode="json")


@app.post("/registries/{name}/proposals", status_code=201)
async def propose_record(name: str, submission: ProposalSubmission):
    outcome = await _editor(name).propose(
        submission.record,
        title=submission.title,
        description=submission.description,
        is_edit=submission.is_edit,
        previous_id=submission.previous_id,
    )
    return outcome.model_dump(mode="json")


@app.post("/registries/{name}/retry")
async def retry_save(name: str):
    outcome = await _editor(name).retry()
    return outcome.model_dump(mode="json")
