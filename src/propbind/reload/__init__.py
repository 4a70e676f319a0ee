"""Snapshot publication, explicit reload and reload listeners."""

from propbind.reload.coordinator import ReloadCoordinator, ReloadState
from propbind.reload.listeners import ListenerFailure, ListenerRegistry, ReloadListener

__all__ = ["ListenerFailure", "ListenerRegistry", "ReloadCoordinator", "ReloadListener", "ReloadState"]
