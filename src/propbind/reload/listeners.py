from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Protocol, Union

from propbind.core.models import ReloadEvent

logger = logging.getLogger(__name__)


class ReloadListener(Protocol):
    def reload_performed(self, event: ReloadEvent) -> None:
        """Called synchronously after each successful reload."""


ListenerLike = Union[ReloadListener, Callable[[ReloadEvent], object]]


@dataclass(frozen=True, slots=True)
class ListenerFailure:
    listener: ListenerLike
    error: Exception


def _invoke(listener: ListenerLike, event: ReloadEvent) -> None:
    method = getattr(listener, "reload_performed", None)
    if method is not None:
        method(event)
    else:
        listener(event)  # type: ignore[operator]


class ListenerRegistry:
    """
    Ordered reload listeners.

    Every add() is a separate registration: a listener added twice is notified
    twice per reload, and each remove() drops its earliest registration.
    Listeners are matched by identity.
    """

    def __init__(self) -> None:
        self._listeners: list[ListenerLike] = []
        self._lock = threading.Lock()

    def add(self, listener: ListenerLike) -> None:
        if not callable(getattr(listener, "reload_performed", None)) and not callable(listener):
            raise TypeError(f"Reload listener must define reload_performed(event) or be callable, got: {type(listener).__name__}")
        with self._lock:
            self._listeners.append(listener)

    def remove(self, listener: ListenerLike) -> bool:
        with self._lock:
            for index, registered in enumerate(self._listeners):
                if registered is listener:
                    del self._listeners[index]
                    return True
        logger.debug("Reload listener was not registered. listener=%r", listener)
        return False

    def snapshot(self) -> tuple[ListenerLike, ...]:
        with self._lock:
            return tuple(self._listeners)

    def __len__(self) -> int:
        with self._lock:
            return len(self._listeners)

    def notify_all(self, event: ReloadEvent) -> list[ListenerFailure]:
        """
        Notify every listener registered when the pass starts, in order.

        A failing listener is logged and collected; the remaining listeners still run.
        """
        failures: list[ListenerFailure] = []
        for listener in self.snapshot():
            try:
                _invoke(listener, event)
            except Exception as exc:
                logger.exception("Reload listener failed. listener=%r", listener)
                failures.append(ListenerFailure(listener=listener, error=exc))
        return failures
