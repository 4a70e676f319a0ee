from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, MutableMapping, Optional, TypeVar

from propbind.config.models import LoadType

if TYPE_CHECKING:
    from propbind.reload.listeners import ReloadListener

F = TypeVar("F", bound=Callable[..., Any])
C = TypeVar("C", bound=type)

ACCESSOR_META = "__propbind_accessor__"
SOURCES_ATTR = "__propbind_sources__"
LOAD_TYPE_ATTR = "__propbind_load_type__"


def _accessor_meta(func: Callable[..., Any]) -> dict[str, Any]:
    meta = getattr(func, ACCESSOR_META, None)
    if meta is None:
        meta = {}
        setattr(func, ACCESSOR_META, meta)
    return meta


def key(name: str) -> Callable[[F], F]:
    """Read the accessor from property name instead of the method name."""

    def decorate(func: F) -> F:
        _accessor_meta(func)["key"] = name
        return func

    return decorate


def default_value(value: str) -> Callable[[F], F]:
    """
    Raw fallback used only when the key is absent from every source.

    The value is converted like a loaded one, so it must be valid for the return type.
    """

    def decorate(func: F) -> F:
        _accessor_meta(func)["default"] = value
        return func

    return decorate


def separator(value: str) -> Callable[[F], F]:
    if not value:
        raise ValueError("Separator must not be empty.")

    def decorate(func: F) -> F:
        _accessor_meta(func)["separator"] = value
        return func

    return decorate


def converter_class(converter: Any) -> Callable[[F], F]:
    """Use a custom converter; a class is instantiated once with no arguments."""

    def decorate(func: F) -> F:
        _accessor_meta(func)["converter"] = converter() if isinstance(converter, type) else converter
        return func

    return decorate


def disable_expansion(func: F) -> F:
    _accessor_meta(func)["expand"] = False
    return func


def sources(*uris: str) -> Callable[[C], C]:
    """Declare the default source URIs of a config interface, highest priority first."""

    def decorate(cls: C) -> C:
        setattr(cls, SOURCES_ATTR, tuple(uris))
        return cls

    return decorate


def load_policy(load_type: LoadType) -> Callable[[C], C]:
    if load_type not in ("merge", "first"):
        raise ValueError(f"Unsupported load type: {load_type}")

    def decorate(cls: C) -> C:
        setattr(cls, LOAD_TYPE_ATTR, load_type)
        return cls

    return decorate


def declared_sources(interface: type) -> tuple[str, ...]:
    return tuple(getattr(interface, SOURCES_ATTR, ()))


def declared_load_type(interface: type) -> Optional[LoadType]:
    return getattr(interface, LOAD_TYPE_ATTR, None)


class Config:
    """
    Base class of config interfaces.

    Every public method with a return annotation is an accessor; its body is never run.

        @sources("file:conf/server.properties")
        class ServerConfig(Config):
            @key("server.port")
            @default_value("80")
            def port(self) -> int: ...
    """


class Reloadable:
    """Mixin that gives a bound config explicit reload and reload listeners."""

    async def reload(self) -> None:
        """Re-read every source and publish the result; raises ReloadFailed if a source cannot be read."""

    def add_reload_listener(self, listener: ReloadListener) -> None:
        """Register a listener notified after each successful reload."""

    def remove_reload_listener(self, listener: ReloadListener) -> None:
        """Drop the earliest registration of the listener, if any."""


class Accessible:
    """Mixin exposing the raw properties of the current snapshot."""

    def get_property(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """Return the raw, unexpanded value of key, or default."""

    def property_names(self) -> frozenset[str]: ...

    def as_dict(self) -> dict[str, str]: ...

    def fill(self, target: MutableMapping[str, str]) -> None:
        """Copy every property of the current snapshot into target."""
