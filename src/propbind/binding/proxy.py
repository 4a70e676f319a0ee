from __future__ import annotations

import functools
import inspect
import logging
import types
import typing
from typing import TYPE_CHECKING, Any, Callable, MutableMapping, Optional

from propbind.binding.annotations import ACCESSOR_META, Accessible, Config, Reloadable
from propbind.binding.models import AccessorSpec, Binding
from propbind.coercion.converters import coerce, is_optional
from propbind.coercion.expansion import expand_variables
from propbind.core.errors import InvalidInterface, MissingProperty

if TYPE_CHECKING:
    from propbind.core.models import ValueSnapshot
    from propbind.reload.coordinator import ReloadCoordinator
    from propbind.reload.listeners import ListenerLike

logger = logging.getLogger(__name__)

_CAPABILITY_CLASSES = (Config, Reloadable, Accessible, object)
_RESERVED_NAMES = frozenset(
    name
    for capability in (Reloadable, Accessible)
    for name in vars(capability)
    if not name.startswith("_")
)


def _collect_accessor_functions(interface: type) -> dict[str, Callable[..., Any]]:
    functions: dict[str, Callable[..., Any]] = {}
    # Base classes first so a subclass redefinition replaces the inherited accessor
    for klass in reversed(interface.__mro__):
        if klass in _CAPABILITY_CLASSES:
            continue
        for name, attr in vars(klass).items():
            if name.startswith("_") or not inspect.isfunction(attr):
                continue
            if name in _RESERVED_NAMES:
                raise InvalidInterface(interface, f"accessor name '{name}' is reserved")
            functions[name] = attr
    return functions


def _build_spec(interface: type, name: str, func: Callable[..., Any]) -> AccessorSpec:
    params = list(inspect.signature(func).parameters.values())
    if len(params) != 1:
        raise InvalidInterface(interface, f"accessor '{name}' must take only self")

    try:
        hints = typing.get_type_hints(func)
    except (NameError, TypeError) as exc:
        raise InvalidInterface(interface, f"cannot resolve annotations of '{name}': {exc}") from exc
    if "return" not in hints:
        raise InvalidInterface(interface, f"accessor '{name}' has no return annotation")
    return_type = hints["return"]
    if return_type is type(None):
        raise InvalidInterface(interface, f"accessor '{name}' must not return None")

    meta = getattr(func, ACCESSOR_META, {})
    return AccessorSpec(
        name=name,
        key=meta.get("key", name),
        return_type=return_type,
        default=meta.get("default"),
        separator=meta.get("separator"),
        converter=meta.get("converter"),
        expand=meta.get("expand", True),
    )


def scan_accessors(interface: type) -> tuple[AccessorSpec, ...]:
    if not (isinstance(interface, type) and issubclass(interface, Config)):
        raise InvalidInterface(interface if isinstance(interface, type) else type(interface), "interface must subclass Config")
    functions = _collect_accessor_functions(interface)
    return tuple(_build_spec(interface, name, func) for name, func in functions.items())


class BoundConfig:
    """Base of generated proxies: resolves accessors against the coordinator's current snapshot."""

    def __init__(self, binding: Binding, coordinator: ReloadCoordinator) -> None:
        self._binding = binding
        self._coordinator = coordinator

    def _resolve(self, spec: AccessorSpec) -> Any:
        # One read of the reference; everything below uses this snapshot only
        snapshot = self._coordinator.snapshot
        options = self._binding.options

        raw = snapshot.get(spec.key)
        if raw is None:
            if spec.default is not None:
                raw = spec.default
            elif is_optional(spec.return_type):
                return None
            else:
                raise MissingProperty(spec.key)

        if spec.expand and options.expand_variables:
            raw = expand_variables(raw, snapshot.values)

        return coerce(
            raw,
            spec.return_type,
            key=spec.key,
            separator=spec.separator or options.list_separator,
            rules=self._binding.rules,
            converter=spec.converter,
            accessor=spec.name,
        )

    def __repr__(self) -> str:
        snapshot: ValueSnapshot = self._coordinator.snapshot
        return (
            f"<{self._binding.interface.__qualname__} bound "
            f"sources={list(self._binding.sources)} generation={snapshot.generation}>"
        )


async def _reload(self: BoundConfig) -> None:
    await self._coordinator.perform_reload(source=self)


def _add_reload_listener(self: BoundConfig, listener: ListenerLike) -> None:
    self._coordinator.listeners.add(listener)


def _remove_reload_listener(self: BoundConfig, listener: ListenerLike) -> None:
    self._coordinator.listeners.remove(listener)


def _get_property(self: BoundConfig, key: str, default: Optional[str] = None) -> Optional[str]:
    return self._coordinator.snapshot.get(key, default)


def _property_names(self: BoundConfig) -> frozenset[str]:
    return frozenset(self._coordinator.snapshot.values)


def _as_dict(self: BoundConfig) -> dict[str, str]:
    return dict(self._coordinator.snapshot.values)


def _fill(self: BoundConfig, target: MutableMapping[str, str]) -> None:
    target.update(self._coordinator.snapshot.values)


_RELOADABLE_METHODS = {
    "reload": _reload,
    "add_reload_listener": _add_reload_listener,
    "remove_reload_listener": _remove_reload_listener,
}

_ACCESSIBLE_METHODS = {
    "get_property": _get_property,
    "property_names": _property_names,
    "as_dict": _as_dict,
    "fill": _fill,
}


def _make_accessor(interface: type, spec: AccessorSpec) -> Callable[[BoundConfig], Any]:
    def accessor(self: BoundConfig) -> Any:
        return self._resolve(spec)

    accessor.__name__ = spec.name
    accessor.__qualname__ = f"{interface.__qualname__}.{spec.name}"
    accessor.__doc__ = f"Return property '{spec.key}' as {getattr(spec.return_type, '__name__', spec.return_type)}."
    return accessor


@functools.lru_cache(maxsize=None)
def build_proxy_class(interface: type) -> type:
    """
    Generate the concrete proxy class of interface.

    The class dispatches each accessor to its AccessorSpec. Reload and listener
    methods exist only when the interface subclasses Reloadable.
    """
    specs = scan_accessors(interface)

    namespace: dict[str, Any] = {spec.name: _make_accessor(interface, spec) for spec in specs}
    namespace["__propbind_accessors__"] = specs
    namespace["__module__"] = interface.__module__
    if issubclass(interface, Reloadable):
        namespace.update(_RELOADABLE_METHODS)
    if issubclass(interface, Accessible):
        namespace.update(_ACCESSIBLE_METHODS)

    proxy_class = types.new_class(
        f"{interface.__name__}Proxy",
        (BoundConfig, interface),
        exec_body=lambda ns: ns.update(namespace),
    )
    logger.debug("Generated proxy class. interface=%s accessors=%s", interface.__qualname__, len(specs))
    return proxy_class
