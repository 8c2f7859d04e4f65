# Record Validation
# Structural (schema) and referential (foreign key) checks

from genet_registry.validation.engine import (
    ValidationEngine,
    ReferentialIntegrityError,
    stamp_version,
)

__all__ = [
    "ValidationEngine",
    "ReferentialIntegrityError",
    "stamp_version",
]
