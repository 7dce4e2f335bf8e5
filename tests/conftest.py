"""Shared test fixtures and fake collaborators."""

from __future__ import annotations

import os
from typing import Any, Callable, Iterable, Optional

import pytest

os.environ.setdefault("WARDEN_ENV", "test")
os.environ.setdefault("WARDEN_LOG_LEVEL", "WARNING")

from warden.supervisor.actions import ActionInterface
from warden.supervisor.controller import RecoveryController
from warden.supervisor.probes import HealthProbe
from warden.supervisor.state import StatsRecord
from warden.supervisor.stats_store import PersistentStatStore

START_TIME = 1_700_000_000.0


class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self, now: float = START_TIME) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeProbe(HealthProbe):
    """Returns queued results first, then ``default``. Exceptions are raised."""

    def __init__(self, default: bool = True) -> None:
        self.results: list[Any] = []
        self.default = default
        self.calls = 0
        self.on_probe: Optional[Callable[[], None]] = None

    def probe(self) -> bool:
        self.calls += 1
        if self.on_probe is not None:
            self.on_probe()
        result = self.results.pop(0) if self.results else self.default
        if isinstance(result, Exception):
            raise result
        return result


class FakeActions(ActionInterface):
    """Records every call; methods named in ``fail_on`` raise."""

    def __init__(self, fail_on: Iterable[str] = ()) -> None:
        self.calls: list[tuple[Any, ...]] = []
        self.fail_on = set(fail_on)
        self.on_call: Optional[Callable[[str], None]] = None

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, *args))
        if self.on_call is not None:
            self.on_call(name)
        if name in self.fail_on:
            raise RuntimeError(f"{name} failed")

    @property
    def names(self) -> list[str]:
        return [call[0] for call in self.calls]

    def request_graceful_restart(self) -> None:
        self._record("request_graceful_restart")

    def request_resource_reclamation(self) -> None:
        self._record("request_resource_reclamation")

    def force_stop(self, component_id: str) -> None:
        self._record("force_stop", component_id)

    def start_component(self, component_id: str, privileged: bool = False) -> None:
        self._record("start_component", component_id, privileged)

    def broadcast_system_restart(self) -> None:
        self._record("broadcast_system_restart")

    def schedule_deferred_wake(self, delay: float) -> Optional[int]:
        self._record("schedule_deferred_wake", delay)
        return 4242


class MemoryStatStore(PersistentStatStore):
    """In-memory store that can be told to fail."""

    def __init__(self, record: Optional[StatsRecord] = None) -> None:
        self.record = record
        self.saves: list[StatsRecord] = []
        self.extra: dict[str, Any] = {}
        self.fail_load = False
        self.fail_save = False

    def load(self) -> StatsRecord:
        if self.fail_load:
            raise OSError("disk on fire")
        if self.record is None:
            return StatsRecord(last_healthy_at=START_TIME)
        return StatsRecord(
            total_attempts=self.record.total_attempts,
            successful_recoveries=self.record.successful_recoveries,
            last_healthy_at=self.record.last_healthy_at,
        )

    def save(self, record: StatsRecord) -> None:
        if self.fail_save:
            raise OSError("read-only filesystem")
        self.saves.append(record)
        self.record = record

    def update_extra(self, values: dict[str, Any]) -> None:
        self.extra.update(values)

    def read_extra(self) -> dict[str, Any]:
        return dict(self.extra)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def probe() -> FakeProbe:
    return FakeProbe()


@pytest.fixture
def actions() -> FakeActions:
    return FakeActions()


@pytest.fixture
def store() -> MemoryStatStore:
    return MemoryStatStore()


@pytest.fixture
def make_controller(clock, probe, actions, store):
    """Build controllers wired to the fakes; tier waits are skipped."""
    created: list[RecoveryController] = []

    def _make(**kwargs: Any) -> RecoveryController:
        kwargs.setdefault("wait_scale", 0.0)
        kwargs.setdefault("clock", clock)
        kwargs.setdefault("monotonic", clock)
        controller = RecoveryController(
            kwargs.pop("probe", probe),
            kwargs.pop("actions", actions),
            kwargs.pop("store", store),
            **kwargs,
        )
        created.append(controller)
        return controller

    yield _make

    for controller in created:
        controller.deactivate()
        controller.shutdown()
