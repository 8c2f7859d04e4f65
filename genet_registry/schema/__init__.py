# Schema Loading & Structural Validation
# Runtime-supplied, versioned JSON Schema documents per registry

from genet_registry.schema.loader import (
    UNKNOWN_VERSION,
    CompiledSchema,
    FieldSpec,
    FieldError,
    SchemaLoader,
    SchemaSource,
    FileSchemaSource,
    HttpSchemaSource,
    SchemaUnavailableError,
    SchemaValidationError,
    compile_schema,
    create_schema_source_from_env,
)

__all__ = [
    "UNKNOWN_VERSION",
    "CompiledSchema",
    "FieldSpec",
    "FieldError",
    "SchemaLoader",
    "SchemaSource",
    "FileSchemaSource",
    "HttpSchemaSource",
    "SchemaUnavailableError",
    "SchemaValidationError",
    "compile_schema",
    "create_schema_source_from_env",
]
