from __future__ import annotations

import logging
from typing import Mapping, Optional, Sequence

from propbind.config.models import BindingOptions
from propbind.core.errors import PropbindError, SourceUnreachable
from propbind.core.models import ValueSnapshot
from propbind.loaders.fetchers import get_fetcher, uri_scheme
from propbind.loaders.interfaces import SourceFetcher

logger = logging.getLogger(__name__)


def _stringify_overrides(overrides: Optional[Mapping[str, object]]) -> dict[str, str]:
    if not overrides:
        return {}
    out: dict[str, str] = {}
    for k, v in overrides.items():
        if isinstance(v, bool):
            out[str(k)] = "true" if v else "false"
        else:
            out[str(k)] = "" if v is None else str(v)
    return out


class MergingSourceLoader:
    """
    Builds one ValueSnapshot from an ordered list of source URIs.

    The override mapping is consulted first, then each source in declared order;
    the first one defining a key wins. The override mapping is read on every load,
    so changes the caller makes to it become visible on the next reload.
    """

    def __init__(
        self,
        *,
        options: BindingOptions = BindingOptions(),
        fetchers: Optional[Mapping[str, SourceFetcher]] = None,
    ) -> None:
        self._options = options
        self._fetchers = dict(fetchers or {})

    @property
    def options(self) -> BindingOptions:
        return self._options

    def _fetcher_for(self, uri: str) -> SourceFetcher:
        scheme = uri_scheme(uri)
        if scheme in self._fetchers:
            return self._fetchers[scheme]
        return get_fetcher(uri, self._options)

    async def _fetch(self, uri: str) -> Mapping[str, str]:
        try:
            return await self._fetcher_for(uri).fetch(uri)
        except PropbindError:
            raise
        except Exception as exc:
            raise SourceUnreachable(uri, f"{type(exc).__name__}: {exc}") from exc

    async def load(
        self,
        sources: Sequence[str],
        overrides: Optional[Mapping[str, object]] = None,
    ) -> ValueSnapshot:
        merged = _stringify_overrides(overrides)

        if self._options.load_type == "first":
            layer = await self._load_first(sources)
            for k, v in layer.items():
                merged.setdefault(k, v)
        else:
            for uri in sources:
                try:
                    layer = await self._fetch(uri)
                except SourceUnreachable as exc:
                    if self._options.on_unreachable == "fail":
                        raise
                    logger.warning("Skipping unreachable source. source=%s reason=%s", uri, exc.reason)
                    continue
                for k, v in layer.items():
                    merged.setdefault(k, v)

        logger.debug("Loaded sources. sources=%s keys=%s", len(sources), len(merged))
        return ValueSnapshot(values=merged)

    async def _load_first(self, sources: Sequence[str]) -> Mapping[str, str]:
        last_error: SourceUnreachable | None = None
        for uri in sources:
            try:
                layer = await self._fetch(uri)
            except SourceUnreachable as exc:
                last_error = exc
                logger.info("Source unavailable; trying next. source=%s reason=%s", uri, exc.reason)
                continue
            logger.debug("Using first available source. source=%s", uri)
            return layer
        if last_error is not None and self._options.on_unreachable == "fail":
            raise last_error
        return {}
