"""Shared data model and error taxonomy."""

from propbind.core.errors import (
    InvalidInterface,
    MissingProperty,
    PropbindError,
    ReloadFailed,
    SourceUnreachable,
    TypeMismatch,
)
from propbind.core.models import ReloadEvent, ValueSnapshot

__all__ = [
    "InvalidInterface",
    "MissingProperty",
    "PropbindError",
    "ReloadEvent",
    "ReloadFailed",
    "SourceUnreachable",
    "TypeMismatch",
    "ValueSnapshot",
]
