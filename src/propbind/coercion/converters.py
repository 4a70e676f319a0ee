from __future__ import annotations

import collections.abc
import enum
import functools
import types
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional, Protocol, Union, get_args, get_origin

from pydantic import TypeAdapter, ValidationError
from pydantic.errors import PydanticSchemaGenerationError

from propbind.core.errors import TypeMismatch


class Converter(Protocol):
    def convert(self, accessor: str, text: str) -> Any:
        """Convert one raw token for the named accessor; raise on invalid input."""


ConverterLike = Union[Converter, Callable[[str], Any]]


@dataclass(frozen=True, slots=True)
class CoercionRules:
    """Converters for custom types, keyed by the exact target type."""

    converters: Mapping[type, ConverterLike] = field(default_factory=dict)

    def converter_for(self, target: Any) -> Optional[ConverterLike]:
        try:
            return self.converters.get(target)
        except TypeError:
            return None


DEFAULT_RULES = CoercionRules()

_COLLECTION_FACTORIES: dict[Any, Callable[[list], Any]] = {
    list: list,
    tuple: tuple,
    set: set,
    frozenset: frozenset,
    collections.abc.Sequence: tuple,
    collections.abc.MutableSequence: list,
    collections.abc.Set: frozenset,
    collections.abc.MutableSet: set,
    collections.abc.Collection: tuple,
    collections.abc.Iterable: tuple,
}

_UNION_TYPES: tuple[Any, ...] = (Union, types.UnionType)


def _non_none_args(target: Any) -> tuple[Any, ...]:
    return tuple(a for a in get_args(target) if a is not type(None))


def is_optional(target: Any) -> bool:
    return get_origin(target) in _UNION_TYPES and type(None) in get_args(target)


def unwrap_optional(target: Any) -> Any:
    if not is_optional(target):
        return target
    remaining = _non_none_args(target)
    if len(remaining) == 1:
        return remaining[0]
    return Union[remaining]  # type: ignore[return-value]


@functools.lru_cache(maxsize=256)
def _adapter_for(target: Any) -> TypeAdapter:
    return TypeAdapter(target)


def _apply_converter(converter: ConverterLike, accessor: str, text: str) -> Any:
    convert = getattr(converter, "convert", None)
    if callable(convert):
        return convert(accessor, text)
    return converter(text)  # type: ignore[operator]


def _coerce_scalar(
    raw: str,
    target: Any,
    *,
    key: str,
    accessor: str,
    rules: CoercionRules,
    converter: Optional[ConverterLike],
) -> Any:
    chosen = converter if converter is not None else rules.converter_for(target)
    if chosen is not None:
        try:
            return _apply_converter(chosen, accessor, raw)
        except Exception as exc:
            raise TypeMismatch(key, raw, target, f"converter failed: {exc}") from exc

    if target is str or target is Any:
        return raw

    if isinstance(target, type) and issubclass(target, enum.Enum):
        name = raw.strip()
        try:
            return target[name]
        except KeyError:
            names = ", ".join(target.__members__)
            raise TypeMismatch(key, raw, target, f"expected one of: {names}") from None

    try:
        adapter = _adapter_for(target)
    except (PydanticSchemaGenerationError, TypeError):
        adapter = None

    if adapter is None:
        if not callable(target):
            raise TypeMismatch(key, raw, target, "unsupported target type")
        try:
            return target(raw)
        except Exception as exc:
            raise TypeMismatch(key, raw, target, str(exc)) from exc

    try:
        return adapter.validate_python(raw.strip())
    except ValidationError as exc:
        reason = exc.errors()[0]["msg"] if exc.errors() else str(exc)
        raise TypeMismatch(key, raw, target, reason) from exc


def coerce(
    raw: str,
    target: Any,
    *,
    key: str,
    separator: str = ",",
    rules: CoercionRules = DEFAULT_RULES,
    converter: Optional[ConverterLike] = None,
    accessor: str = "",
) -> Any:
    """
    Convert a raw property string into target.

    Collections (list, tuple, set, frozenset and their abstract counterparts) are
    split on separator, each token is trimmed and converted to the element type.
    An empty or blank raw value gives an empty collection. Any failure raises
    TypeMismatch naming key and the raw value.
    """
    target = unwrap_optional(target)
    options = dict(key=key, accessor=accessor or key, rules=rules, converter=converter)

    origin = get_origin(target)
    if target in _COLLECTION_FACTORIES:
        origin, args = target, ()
    else:
        args = get_args(target)
    if origin not in _COLLECTION_FACTORIES:
        return _coerce_scalar(raw, target, **options)

    tokens = [t.strip() for t in raw.split(separator)] if raw.strip() else []
    factory = _COLLECTION_FACTORIES[origin]

    if origin is tuple and args and not (len(args) == 2 and args[1] is Ellipsis):
        if len(tokens) != len(args):
            raise TypeMismatch(key, raw, target, f"expected {len(args)} items, got {len(tokens)}")
        return tuple(_coerce_scalar(t, a, **options) for t, a in zip(tokens, args))

    element = args[0] if args else str
    try:
        return factory([_coerce_scalar(t, element, **options) for t in tokens])
    except TypeError as exc:
        # unhashable elements for a set target
        raise TypeMismatch(key, raw, target, str(exc)) from exc
