from __future__ import annotations

import logging
from typing import Mapping, Optional, Sequence, TypeVar

from propbind.binding.annotations import declared_load_type, declared_sources
from propbind.binding.models import Binding
from propbind.binding.proxy import build_proxy_class
from propbind.coercion.converters import DEFAULT_RULES, CoercionRules
from propbind.config.models import BindingOptions
from propbind.reload.coordinator import ReloadCoordinator
from propbind.loaders.interfaces import SourceFetcher
from propbind.loaders.loader import MergingSourceLoader

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ConfigFactory:
    """
    Creates bound config objects.

    Options and conversion rules given here apply to every object the factory
    creates unless create() receives its own. fetchers maps a URI scheme to a
    custom SourceFetcher, taking precedence over the built-in ones.
    """

    def __init__(
        self,
        *,
        options: BindingOptions = BindingOptions(),
        rules: CoercionRules = DEFAULT_RULES,
        fetchers: Optional[Mapping[str, SourceFetcher]] = None,
    ) -> None:
        self._options = options
        self._rules = rules
        self._fetchers = dict(fetchers or {})

    async def create(
        self,
        interface: type[T],
        sources: Optional[Sequence[str]] = None,
        overrides: Optional[Mapping[str, object]] = None,
        *,
        options: Optional[BindingOptions] = None,
    ) -> T:
        """
        Bind interface to its sources and return the live object.

        sources defaults to the URIs declared with @sources. Raises InvalidInterface
        for a malformed interface and SourceUnreachable when the sources cannot be
        loaded; no object is returned in either case.
        """
        proxy_class = build_proxy_class(interface)

        effective = options or self._options
        load_type = declared_load_type(interface)
        if load_type is not None and load_type != effective.load_type:
            effective = effective.model_copy(update={"load_type": load_type})

        binding = Binding(
            interface=interface,
            sources=tuple(sources) if sources is not None else declared_sources(interface),
            accessors=proxy_class.__propbind_accessors__,
            options=effective,
            rules=self._rules,
            overrides=overrides,
        )
        coordinator = ReloadCoordinator(
            binding=binding,
            loader=MergingSourceLoader(options=effective, fetchers=self._fetchers),
        )
        snapshot = await coordinator.initialize()
        logger.info(
            "Bound config. interface=%s sources=%s keys=%s",
            interface.__qualname__,
            len(binding.sources),
            len(snapshot),
        )
        return proxy_class(binding, coordinator)


async def bind(
    interface: type[T],
    sources: Optional[Sequence[str]] = None,
    overrides: Optional[Mapping[str, object]] = None,
    *,
    options: BindingOptions = BindingOptions(),
    rules: CoercionRules = DEFAULT_RULES,
) -> T:
    return await ConfigFactory(options=options, rules=rules).create(interface, sources, overrides)
