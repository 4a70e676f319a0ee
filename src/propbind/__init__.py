"""Typed config interfaces bound to property sources, with explicit reload."""

from propbind.binding import (
    Accessible,
    Config,
    Reloadable,
    converter_class,
    default_value,
    disable_expansion,
    key,
    load_policy,
    separator,
    sources,
)
from propbind.coercion import CoercionRules, Converter
from propbind.config import BindingOptions
from propbind.core import (
    InvalidInterface,
    MissingProperty,
    PropbindError,
    ReloadEvent,
    ReloadFailed,
    SourceUnreachable,
    TypeMismatch,
    ValueSnapshot,
)
from propbind.factory import ConfigFactory, bind
from propbind.reload import ReloadListener

__all__ = [
    "Accessible",
    "BindingOptions",
    "CoercionRules",
    "Config",
    "ConfigFactory",
    "Converter",
    "InvalidInterface",
    "MissingProperty",
    "PropbindError",
    "ReloadEvent",
    "ReloadFailed",
    "ReloadListener",
    "Reloadable",
    "SourceUnreachable",
    "TypeMismatch",
    "ValueSnapshot",
    "bind",
    "converter_class",
    "default_value",
    "disable_expansion",
    "key",
    "load_policy",
    "separator",
    "sources",
]
