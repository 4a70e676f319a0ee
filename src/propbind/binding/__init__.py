"""Config interface declaration and proxy generation."""

from propbind.binding.annotations import (
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
from propbind.binding.models import AccessorSpec, Binding
from propbind.binding.proxy import BoundConfig, build_proxy_class

__all__ = [
    "Accessible",
    "AccessorSpec",
    "Binding",
    "BoundConfig",
    "Config",
    "Reloadable",
    "build_proxy_class",
    "converter_class",
    "default_value",
    "disable_expansion",
    "key",
    "load_policy",
    "separator",
    "sources",
]
