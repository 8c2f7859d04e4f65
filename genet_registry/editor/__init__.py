# Registry Editor
# Orchestrates schema load, data load, validation and synchronized writes

from genet_registry.editor.states import (
    SchemaState,
    DataState,
    SaveState,
    SaveOutcome,
    FormField,
    SelectOption,
)
from genet_registry.editor.editor import (
    RegistryEditor,
    PendingSave,
    EditorNotReadyError,
    SaveInProgressError,
    NoPendingSaveError,
)

__all__ = [
    "SchemaState",
    "DataState",
    "SaveState",
    "SaveOutcome",
    "FormField",
    "SelectOption",
    "RegistryEditor",
    "PendingSave",
    "EditorNotReadyError",
    "SaveInProgressError",
    "NoPendingSaveError",
]
