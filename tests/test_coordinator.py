import asyncio
import unittest
from typing import Mapping, Optional, Sequence

from propbind.binding.models import Binding
from propbind.binding.annotations import Config
from propbind.coercion.converters import DEFAULT_RULES
from propbind.config import BindingOptions
from propbind.core.errors import ReloadFailed, SourceUnreachable
from propbind.core.models import ValueSnapshot
from propbind.reload import ReloadCoordinator, ReloadState


class EmptyConfig(Config):
    pass


class ScriptedLoader:
    """Returns queued snapshots or raises queued errors, one per load."""

    def __init__(self, *results) -> None:
        self.results = list(results)
        self.calls: list = []
        self.gate: Optional[asyncio.Event] = None

    async def load(self, sources: Sequence[str], overrides: Optional[Mapping[str, object]] = None) -> ValueSnapshot:
        self.calls.append((tuple(sources), overrides))
        if self.gate is not None:
            await self.gate.wait()
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return ValueSnapshot(values=result)


def _binding(overrides=None) -> Binding:
    return Binding(
        interface=EmptyConfig,
        sources=("mem:a",),
        accessors=(),
        options=BindingOptions(),
        rules=DEFAULT_RULES,
        overrides=overrides,
    )


class ReloadCoordinatorTests(unittest.IsolatedAsyncioTestCase):
    async def test_snapshot_requires_initialize(self) -> None:
        coordinator = ReloadCoordinator(binding=_binding(), loader=ScriptedLoader())
        with self.assertRaises(RuntimeError):
            coordinator.snapshot

    async def test_initialize_publishes_first_generation(self) -> None:
        overrides = {"x": "1"}
        loader = ScriptedLoader({"x": "1"})
        coordinator = ReloadCoordinator(binding=_binding(overrides), loader=loader)

        snapshot = await coordinator.initialize()

        self.assertIs(coordinator.snapshot, snapshot)
        self.assertEqual(snapshot.generation, 1)
        self.assertEqual(loader.calls, [(("mem:a",), overrides)])
        self.assertIs(loader.calls[0][1], overrides)

    async def test_initial_failure_propagates_unwrapped(self) -> None:
        loader = ScriptedLoader(SourceUnreachable("mem:a", "gone"))
        coordinator = ReloadCoordinator(binding=_binding(), loader=loader)
        with self.assertRaises(SourceUnreachable):
            await coordinator.initialize()

    async def test_reload_publishes_new_generation_and_notifies(self) -> None:
        loader = ScriptedLoader({"x": "1"}, {"x": "2"})
        coordinator = ReloadCoordinator(binding=_binding(), loader=loader)
        await coordinator.initialize()
        source = object()
        events = []
        coordinator.listeners.add(events.append)

        with self.assertLogs("propbind.reload.coordinator", level="INFO"):
            await coordinator.perform_reload(source=source)

        self.assertEqual(coordinator.snapshot.generation, 2)
        self.assertEqual(coordinator.snapshot.get("x"), "2")
        self.assertEqual(len(events), 1)
        self.assertIs(events[0].source, source)
        self.assertIs(coordinator.state, ReloadState.STABLE)

    async def test_failed_reload_keeps_snapshot_and_returns_to_stable(self) -> None:
        loader = ScriptedLoader({"x": "1"}, SourceUnreachable("mem:a", "gone"))
        coordinator = ReloadCoordinator(binding=_binding(), loader=loader)
        previous = await coordinator.initialize()
        events = []
        coordinator.listeners.add(events.append)

        with self.assertRaises(ReloadFailed) as ctx:
            await coordinator.perform_reload(source=object())

        self.assertEqual(ctx.exception.reason, "gone")
        self.assertIs(coordinator.snapshot, previous)
        self.assertEqual(events, [])
        self.assertIs(coordinator.state, ReloadState.STABLE)

    async def test_state_is_reloading_while_in_flight(self) -> None:
        loader = ScriptedLoader({"x": "1"}, {"x": "2"})
        coordinator = ReloadCoordinator(binding=_binding(), loader=loader)
        await coordinator.initialize()
        loader.gate = asyncio.Event()

        task = asyncio.create_task(coordinator.perform_reload(source=object()))
        await asyncio.sleep(0)
        self.assertIs(coordinator.state, ReloadState.RELOADING)
        self.assertEqual(coordinator.snapshot.get("x"), "1")

        loader.gate.set()
        await task
        self.assertIs(coordinator.state, ReloadState.STABLE)
        self.assertEqual(coordinator.snapshot.get("x"), "2")

    async def test_listener_runs_inside_the_reload(self) -> None:
        loader = ScriptedLoader({"x": "1"}, {"x": "2"})
        coordinator = ReloadCoordinator(binding=_binding(), loader=loader)
        await coordinator.initialize()
        states = []
        coordinator.listeners.add(lambda event: states.append(coordinator.state))

        await coordinator.perform_reload(source=object())

        self.assertEqual(states, [ReloadState.RELOADING])

    async def test_cancelled_reload_has_no_visible_effect(self) -> None:
        loader = ScriptedLoader({"x": "1"}, {"x": "2"})
        coordinator = ReloadCoordinator(binding=_binding(), loader=loader)
        previous = await coordinator.initialize()
        loader.gate = asyncio.Event()
        events = []
        coordinator.listeners.add(events.append)

        task = asyncio.create_task(coordinator.perform_reload(source=object()))
        await asyncio.sleep(0)
        task.cancel()
        with self.assertRaises(asyncio.CancelledError):
            await task

        self.assertIs(coordinator.snapshot, previous)
        self.assertEqual(events, [])
        self.assertIs(coordinator.state, ReloadState.STABLE)

    async def test_cancelled_waiter_does_not_keep_the_lock(self) -> None:
        loader = ScriptedLoader({"x": "1"}, {"x": "2"}, {"x": "3"})
        coordinator = ReloadCoordinator(binding=_binding(), loader=loader)
        await coordinator.initialize()
        loader.gate = asyncio.Event()

        holder = asyncio.create_task(coordinator.perform_reload(source=object()))
        await asyncio.sleep(0)
        waiter = asyncio.create_task(coordinator.perform_reload(source=object()))
        await asyncio.sleep(0.05)
        waiter.cancel()
        with self.assertRaises(asyncio.CancelledError):
            await waiter

        loader.gate.set()
        await holder
        await asyncio.wait_for(coordinator.perform_reload(source=object()), 5)

        self.assertEqual(coordinator.snapshot.get("x"), "3")
        self.assertEqual(coordinator.snapshot.generation, 3)
        self.assertEqual(len(loader.calls), 3)


if __name__ == "__main__":
    unittest.main()
