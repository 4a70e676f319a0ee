from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
import threading
from typing import Any, AsyncIterator, Optional

from propbind.binding.models import Binding
from propbind.core.errors import ReloadFailed, SourceUnreachable
from propbind.core.models import ReloadEvent, ValueSnapshot
from propbind.reload.listeners import ListenerRegistry
from propbind.loaders.interfaces import SourceLoader

logger = logging.getLogger(__name__)


class ReloadState(enum.Enum):
    STABLE = "stable"
    RELOADING = "reloading"


class ReloadCoordinator:
    """
    Owns the active ValueSnapshot of one bound config.

    Readers take the snapshot property without locking; publishing replaces the
    reference in one assignment, so a reader sees either the old or the new
    snapshot as a whole. Loads and reloads hold a threading.Lock for the entire
    load, publish and notify sequence, so concurrent reloads run one after the
    other, each re-reading its sources, whichever thread or event loop they
    are awaited on.
    """

    def __init__(
        self,
        *,
        binding: Binding,
        loader: SourceLoader,
        listeners: Optional[ListenerRegistry] = None,
    ) -> None:
        self._binding = binding
        self._loader = loader
        self._listeners = listeners if listeners is not None else ListenerRegistry()
        self._snapshot: Optional[ValueSnapshot] = None
        self._generation = 0
        self._state = ReloadState.STABLE
        self._lock = threading.Lock()

    @property
    def binding(self) -> Binding:
        return self._binding

    @property
    def listeners(self) -> ListenerRegistry:
        return self._listeners

    @property
    def state(self) -> ReloadState:
        return self._state

    @property
    def snapshot(self) -> ValueSnapshot:
        snapshot = self._snapshot
        if snapshot is None:
            raise RuntimeError("No snapshot published yet; call initialize() first.")
        return snapshot

    def _publish(self, snapshot: ValueSnapshot) -> ValueSnapshot:
        self._generation += 1
        published = snapshot.with_generation(self._generation)
        self._snapshot = published
        return published

    @contextlib.asynccontextmanager
    async def _exclusive(self) -> AsyncIterator[None]:
        # The lock is shared by every thread and event loop using this config;
        # a contended acquire waits in a worker thread so the caller's loop keeps running.
        if not self._lock.acquire(blocking=False):
            waiter = asyncio.ensure_future(asyncio.to_thread(self._lock.acquire))
            try:
                await asyncio.shield(waiter)
            except asyncio.CancelledError:
                waiter.add_done_callback(self._release_abandoned)
                raise
        try:
            yield
        finally:
            self._lock.release()

    def _release_abandoned(self, waiter: asyncio.Future) -> None:
        if not waiter.cancelled() and waiter.exception() is None:
            self._lock.release()

    async def _load(self) -> ValueSnapshot:
        return await self._loader.load(self._binding.sources, self._binding.overrides)

    async def initialize(self) -> ValueSnapshot:
        """Load and publish the first snapshot; SourceUnreachable propagates unchanged."""
        async with self._exclusive():
            return self._publish(await self._load())

    async def perform_reload(self, *, source: Any) -> None:
        interface = self._binding.interface.__qualname__
        async with self._exclusive():
            self._state = ReloadState.RELOADING
            try:
                try:
                    snapshot = await self._load()
                except SourceUnreachable as exc:
                    logger.warning(
                        "Reload failed; keeping previous values. interface=%s generation=%s source=%s reason=%s",
                        interface,
                        self._generation,
                        exc.source,
                        exc.reason,
                    )
                    raise ReloadFailed(exc.source, exc.reason) from exc

                published = self._publish(snapshot)
                logger.info(
                    "Reload completed. interface=%s generation=%s keys=%s",
                    interface,
                    published.generation,
                    len(published),
                )

                failures = self._listeners.notify_all(ReloadEvent(source=source))
                if failures:
                    logger.warning(
                        "Some reload listeners failed. interface=%s failed=%s generation=%s",
                        interface,
                        len(failures),
                        published.generation,
                    )
            finally:
                self._state = ReloadState.STABLE
