"""Recovery Controller: owns the recovery state and drives remediation.

The controller is the single writer of RecoveryState. Its coroutines are only
ever awaited from the supervisor's worker, one message at a time, so state
transitions never interleave. Blocking work (probes, tier sequences) is
pushed onto a dedicated single-thread executor so the event loop keeps
serving timers while a tier runs.

State machine:
    GENTLE → MODERATE → AGGRESSIVE → NUCLEAR   (escalate after N failures)
    NUCLEAR → AGGRESSIVE → MODERATE → GENTLE   (de-escalate on health)
"""

from __future__ import annotations

import asyncio
import math
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Optional

from warden.logging_config import get_logger
from warden.supervisor.actions import ActionInterface
from warden.supervisor.audit import AuditLog
from warden.supervisor.policy import (
    MAX_ATTEMPTS_PER_TIER,
    BackoffPolicy,
    deescalate,
    escalate,
    tier_for_success_rate,
)
from warden.supervisor.probes import HealthProbe, ResourceMonitor
from warden.supervisor.state import RecoveryState, RecoveryTier, success_rate
from warden.supervisor.stats_store import PersistentStatStore
from warden.supervisor.tiers import Step, TierRunner, build_sequences

logger = get_logger(__name__)

# Thresholds (seconds unless noted)
UNHEALTHY_GRACE_PERIOD = 30.0        # tolerate blips shorter than this
DEEP_UNHEALTHY_THRESHOLD = 300.0     # deep check recovers after this long
MEMORY_PRESSURE_THRESHOLD = 0.85     # usage ratio

REASON_PROBE_EXCEPTION = "health_check_exception"
REASON_PROLONGED_UNHEALTHY = "prolonged_unhealthy_state"
REASON_DEEP_CHECK = "deep_check_prolonged_unhealthy"


class RecoveryController:
    """Escalating, self-tuning recovery for one monitored capability."""

    def __init__(
        self,
        probe: HealthProbe,
        actions: ActionInterface,
        store: PersistentStatStore,
        *,
        sequences: Optional[dict[RecoveryTier, list[Step]]] = None,
        backoff: Optional[BackoffPolicy] = None,
        resource_monitor: Optional[ResourceMonitor] = None,
        audit: Optional[AuditLog] = None,
        max_attempts_per_tier: int = MAX_ATTEMPTS_PER_TIER,
        unhealthy_grace_period: float = UNHEALTHY_GRACE_PERIOD,
        deep_unhealthy_threshold: float = DEEP_UNHEALTHY_THRESHOLD,
        memory_pressure_threshold: float = MEMORY_PRESSURE_THRESHOLD,
        wait_scale: float = 1.0,
        clock: Callable[[], float] = time.time,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._probe = probe
        self._actions = actions
        self._store = store
        self._backoff = backoff or BackoffPolicy()
        self._resource_monitor = resource_monitor
        self._audit = audit
        self._max_attempts = max_attempts_per_tier
        self._grace_period = unhealthy_grace_period
        self._deep_threshold = deep_unhealthy_threshold
        self._pressure_threshold = memory_pressure_threshold
        self._clock = clock
        self._monotonic = monotonic
        # Monotonic reading matching state.last_healthy_at; elapsed checks use this.
        self._healthy_mark = monotonic()
        self._cancel = threading.Event()
        self._runner = TierRunner(
            actions,
            probe,
            sequences or build_sequences("host", "capability"),
            self._cancel,
            wait_scale=wait_scale,
        )
        self._executor: Optional[ThreadPoolExecutor] = None
        self.state = RecoveryState(current_interval=self._backoff.base_interval)
        # Set by the supervisor; called with the delay before the next check.
        self.on_rearm: Optional[Callable[[float], None]] = None

    # ── Lifecycle ─────────────────────────────────────────────────────

    def load_state(self) -> None:
        """Seed counters and the starting tier from the persisted record."""
        try:
            record = self._store.load()
        except Exception as exc:
            logger.warning("stats_load_failed", error=str(exc))
            record = None

        state = self.state
        now = self._clock()
        if record is not None:
            state.total_attempts = record.total_attempts
            state.successful_recoveries = record.successful_recoveries
            state.last_healthy_at = record.last_healthy_at
        else:
            state.total_attempts = 0
            state.successful_recoveries = 0
            state.last_healthy_at = now
        if not math.isfinite(state.last_healthy_at) or state.last_healthy_at > now:
            logger.warning("last_healthy_reset", stored=str(state.last_healthy_at))
            state.last_healthy_at = now
        self._healthy_mark = self._monotonic() - (now - state.last_healthy_at)

        rate = success_rate(state.total_attempts, state.successful_recoveries)
        state.current_tier = tier_for_success_rate(rate)
        state.tier_attempts = 0
        state.current_interval = self._backoff.base_interval
        state.deep_recovery_in_progress = False

        if state.total_attempts > 0:
            logger.info(
                "recovery_history_loaded",
                successful=state.successful_recoveries,
                total=state.total_attempts,
                success_rate=round(rate, 3),
                tier=str(state.current_tier),
            )

    def activate(self) -> None:
        """Seed state and open the gate for triggered recovery."""
        self.load_state()
        self._cancel.clear()
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="warden-recovery")
        self.state.active = True

    def deactivate(self) -> None:
        """Close the gate and abort any in-flight tier at its next checkpoint."""
        self.state.active = False
        self._cancel.set()

    def shutdown(self) -> None:
        """Persist final state and release the recovery worker thread."""
        self.persist()
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None

    def persist(self) -> None:
        """Best-effort save; failures only degrade future tier seeding."""
        try:
            self._store.save(self.state.to_record())
        except Exception as exc:
            logger.error("stats_save_failed", error=str(exc))

    def _mark_healthy(self) -> None:
        self.state.last_healthy_at = self._clock()
        self._healthy_mark = self._monotonic()

    def unhealthy_for(self) -> float:
        """Seconds since the last confirmed healthy observation."""
        return self._monotonic() - self._healthy_mark

    async def _run_blocking(self, func: Callable[..., Any], *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, func, *args)

    # ── Health classification ─────────────────────────────────────────

    async def check_health(self) -> bool:
        """One fast-loop tick: probe and react. Returns the health verdict."""
        if not self.state.active:
            return False
        try:
            healthy = bool(await self._run_blocking(self._probe.probe))
        except Exception as exc:
            logger.warning("health_check_exception", error=str(exc))
            await self.trigger_recovery(REASON_PROBE_EXCEPTION)
            return False

        if healthy:
            self.on_healthy()
        else:
            await self.on_unhealthy()
        return healthy

    def on_healthy(self) -> None:
        state = self.state
        self._mark_healthy()
        state.current_interval = self._backoff.shrink(state.current_interval)

        if state.tier_attempts > 0:
            state.tier_attempts = 0
            previous = state.current_tier
            state.current_tier = deescalate(previous)
            if state.current_tier != previous:
                logger.info("tier_deescalated", old=str(previous), new=str(state.current_tier))
                self._record("tier_deescalated", {"old": str(previous), "new": str(state.current_tier)})

    async def on_unhealthy(self) -> None:
        unhealthy_for = self.unhealthy_for()
        if unhealthy_for > self._grace_period:
            await self.trigger_recovery(REASON_PROLONGED_UNHEALTHY)
        else:
            logger.debug("unhealthy_within_grace", unhealthy_for=round(unhealthy_for, 1))

    # ── Recovery ──────────────────────────────────────────────────────

    async def trigger_recovery(self, reason: str) -> Optional[bool]:
        """Run the current tier once and update counters, tier and backoff.

        Returns None when the supervisor is inactive (nothing is touched),
        otherwise whether the capability recovered.
        """
        state = self.state
        if not state.active:
            return None

        state.total_attempts += 1
        state.tier_attempts += 1
        tier = state.current_tier
        logger.warning(
            "recovery_triggered",
            reason=reason,
            tier=str(tier),
            attempt=state.tier_attempts,
        )

        if tier is RecoveryTier.NUCLEAR:
            state.deep_recovery_in_progress = True
        try:
            recovered = bool(await self._run_blocking(self._runner.execute, tier))
        finally:
            state.deep_recovery_in_progress = False

        if recovered:
            self.on_recovery_success()
        else:
            self.on_recovery_failure()

        self._record("recovery_attempt", {
            "reason": reason,
            "tier": str(tier),
            "recovered": recovered,
            "total_attempts": state.total_attempts,
            "successful_recoveries": state.successful_recoveries,
        })
        self.persist()

        if self.on_rearm is not None and state.active:
            self.on_rearm(state.current_interval)
        return recovered

    def on_recovery_success(self) -> None:
        state = self.state
        state.successful_recoveries += 1
        state.tier_attempts = 0
        state.current_interval = self._backoff.base_interval
        self._mark_healthy()
        logger.info(
            "recovery_succeeded",
            successful=state.successful_recoveries,
            total=state.total_attempts,
        )

    def on_recovery_failure(self) -> None:
        state = self.state
        if state.tier_attempts >= self._max_attempts:
            previous = state.current_tier
            state.current_tier = escalate(previous)
            state.tier_attempts = 0
            if state.current_tier != previous:
                logger.warning("tier_escalated", old=str(previous), new=str(state.current_tier))
                self._record("tier_escalated", {"old": str(previous), "new": str(state.current_tier)})

        state.current_interval = self._backoff.grow(state.current_interval)
        logger.warning("recovery_failed", next_check_in=round(state.current_interval, 3))

    # ── Deep check ────────────────────────────────────────────────────

    async def deep_check(self) -> None:
        """Slow audit: relieve resource pressure, catch prolonged unhealthiness."""
        if not self.state.active:
            return

        if self._resource_monitor is not None:
            try:
                ratio = float(await self._run_blocking(self._resource_monitor.usage_ratio))
                if ratio > self._pressure_threshold:
                    logger.warning("high_resource_usage", usage=round(ratio, 3))
                    await self._run_blocking(self._actions.request_resource_reclamation)
            except Exception as exc:
                logger.error("deep_check_failed", error=str(exc))

        unhealthy_for = self.unhealthy_for()
        if unhealthy_for > self._deep_threshold:
            logger.warning("prolonged_unhealthy_detected", unhealthy_for=round(unhealthy_for, 1))
            await self.trigger_recovery(REASON_DEEP_CHECK)

    def _record(self, action: str, details: dict[str, Any]) -> None:
        if self._audit is not None:
            self._audit.audit(action, details)
