"""
Editor State Models

Lifecycle states of a registry editing session and the result of a save.

Load lifecycle (schema and data progress independently):
    IDLE -> LOADING -> READY | FAILED

Save lifecycle:
    VALIDATING -> REJECTED
               -> PERSISTING -> COMMITTED | PROPOSED | CONFLICT | FAILED
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from genet_registry.schema.loader import FieldError, FieldSpec


class SchemaState(str, Enum):
    """Schema load states. FAILED disables editing."""
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


class DataState(str, Enum):
    """Registry data load states."""
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"      # Loaded from the remote store
    LOCAL = "local"      # No token; serving the bundled snapshot
    FAILED = "failed"    # Remote load failed; serving the bundled snapshot


class SaveState(str, Enum):
    """Save states for the most recent save attempt."""
    IDLE = "idle"
    VALIDATING = "validating"
    PERSISTING = "persisting"
    COMMITTED = "committed"    # Written to the default branch
    PROPOSED = "proposed"      # Pull request opened
    REJECTED = "rejected"      # Validation failed; nothing was written
    CONFLICT = "conflict"      # Stale revision; reload and retry
    FAILED = "failed"          # Remote store unavailable


class SaveOutcome(BaseModel):
    """Observable result of a save attempt."""
    registry: str = Field(..., description="Registry name")
    state: SaveState = Field(..., description="Final save state")
    record: dict[str, Any] | None = Field(
        default=None,
        description="The record as persisted (or as proposed)"
    )
    revision: str | None = Field(
        default=None,
        description="Revision of the registry file after the commit"
    )
    pull_request_number: int | None = Field(default=None)
    pull_request_url: str | None = Field(default=None)
    message: str | None = Field(default=None, description="Human-readable status or error")
    field_errors: list[FieldError] = Field(default_factory=list)
    retryable: bool = Field(
        default=False,
        description="Whether resubmitting after a reload can succeed"
    )
    finished_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class SelectOption(BaseModel):
    label: str
    value: Any


class FormField(FieldSpec):
    """A schema field as presented for data entry."""
    options: list[SelectOption] | None = Field(
        default=None,
        description="Allowed values, for foreign-key fields with a loaded target registry"
    )
