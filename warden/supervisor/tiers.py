"""Per-tier remediation sequences and the runner that executes them.

Each tier is an ordered list of steps (an action followed by a fixed wait),
finished by a verifying re-probe whose result is the tier's outcome:

    GENTLE      graceful restart, wait 2s
    MODERATE    reclaim, stop host, wait 1s, privileged start, wait 3s
    AGGRESSIVE  stop host+capability (best-effort), reclaim x2, wait 2s,
                broadcast restart, wait 5s
    NUCLEAR     3x (stop host+capability, wait 0.5s), reclaim, wait 5s,
                deferred wake (best-effort), wait 10s

Waits are the only cancellation checkpoints.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional

from warden.logging_config import get_logger
from warden.supervisor.actions import ActionInterface
from warden.supervisor.probes import HealthProbe
from warden.supervisor.state import RecoveryTier

logger = get_logger(__name__)


class RecoveryAborted(Exception):
    """Raised at a checkpoint when the supervisor is stopping."""


@dataclass(frozen=True)
class Step:
    """One action of a tier sequence followed by a wait in seconds."""

    name: str
    action: Optional[Callable[[ActionInterface], Any]] = None
    wait: float = 0.0
    best_effort: bool = False


def build_sequences(
    host: str,
    capability: str,
    deferred_wake_delay: float = 3.0,
) -> dict[RecoveryTier, list[Step]]:
    """Build the step lists for every tier."""
    nuclear: list[Step] = []
    for i in range(1, 4):
        nuclear += [
            Step(f"stop_host_{i}", lambda a: a.force_stop(host), best_effort=True),
            Step(f"stop_capability_{i}", lambda a: a.force_stop(capability),
                 wait=0.5, best_effort=True),
        ]
    nuclear += [
        Step("reclaim", lambda a: a.request_resource_reclamation(), wait=5.0),
        Step("deferred_wake", lambda a: a.schedule_deferred_wake(deferred_wake_delay),
             wait=10.0, best_effort=True),
    ]

    return {
        RecoveryTier.GENTLE: [
            Step("graceful_restart", lambda a: a.request_graceful_restart(), wait=2.0),
        ],
        RecoveryTier.MODERATE: [
            Step("reclaim", lambda a: a.request_resource_reclamation()),
            Step("stop_host", lambda a: a.force_stop(host), wait=1.0),
            Step("start_host", lambda a: a.start_component(host, privileged=True), wait=3.0),
        ],
        RecoveryTier.AGGRESSIVE: [
            Step("stop_host", lambda a: a.force_stop(host), best_effort=True),
            Step("stop_capability", lambda a: a.force_stop(capability), best_effort=True),
            Step("reclaim_1", lambda a: a.request_resource_reclamation()),
            Step("reclaim_2", lambda a: a.request_resource_reclamation(), wait=2.0),
            Step("broadcast_restart", lambda a: a.broadcast_system_restart(), wait=5.0),
        ],
        RecoveryTier.NUCLEAR: nuclear,
    }


def total_wait(steps: list[Step]) -> float:
    """Wall-clock budget of a sequence, excluding action and probe time."""
    return sum(step.wait for step in steps)


class TierRunner:
    """Executes tier sequences on the recovery worker thread."""

    def __init__(
        self,
        actions: ActionInterface,
        probe: HealthProbe,
        sequences: dict[RecoveryTier, list[Step]],
        cancel_event: threading.Event,
        wait_scale: float = 1.0,
    ) -> None:
        self._actions = actions
        self._probe = probe
        self._sequences = sequences
        self._cancel = cancel_event
        self._wait_scale = wait_scale

    def _checkpoint(self) -> None:
        if self._cancel.is_set():
            raise RecoveryAborted()

    def _wait(self, seconds: float) -> None:
        if self._cancel.wait(seconds * self._wait_scale):
            raise RecoveryAborted()

    def run(self, tier: RecoveryTier) -> bool:
        """Run the tier's steps and re-probe. Errors propagate."""
        for step in self._sequences[tier]:
            self._checkpoint()
            if step.action is not None:
                try:
                    step.action(self._actions)
                except Exception as exc:
                    if not step.best_effort:
                        raise
                    logger.warning("best_effort_step_failed", tier=str(tier),
                                 step=step.name, error=str(exc))
            if step.wait:
                self._wait(step.wait)
        self._checkpoint()
        return bool(self._probe.probe())

    def execute(self, tier: RecoveryTier) -> bool:
        """Run a tier; any failure inside the sequence means not recovered."""
        try:
            return self.run(tier)
        except RecoveryAborted:
            logger.info("recovery_aborted", tier=str(tier))
            return False
        except Exception as exc:
            logger.error("recovery_execution_failed", tier=str(tier), error=str(exc))
            return False
