from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional

from propbind.coercion.converters import CoercionRules, ConverterLike
from propbind.config.models import BindingOptions


@dataclass(frozen=True, slots=True)
class AccessorSpec:
    name: str
    key: str
    return_type: Any
    default: Optional[str] = None
    separator: Optional[str] = None
    converter: Optional[ConverterLike] = None
    expand: bool = True


@dataclass(frozen=True, slots=True)
class Binding:
    """
    The fixed association of one interface with its sources and conversion rules.

    overrides is the caller's mapping itself, not a copy: it is re-read on every load.
    """

    interface: type
    sources: tuple[str, ...]
    accessors: tuple[AccessorSpec, ...]
    options: BindingOptions
    rules: CoercionRules
    overrides: Optional[Mapping[str, object]] = None
