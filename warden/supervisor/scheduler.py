"""Supervisor: timer sources feeding a single recovery worker.

Three independent timers run on an APScheduler AsyncIOScheduler:

    health_check  one-shot, re-armed after every tick (fixed cadence,
                  or the backoff interval after a triggered recovery)
    deep_check    fixed interval
    uptime        fixed interval, bookkeeping only

Timers never touch recovery state. They enqueue messages which one worker
coroutine consumes in order, so the controller always has a single writer.
The backoff re-arm reuses the health_check job slot, so there is only ever
one pending health check.

    ┌──────────────┐
    │ health_check ├──┐
    ├──────────────┤  │   ┌───────┐   ┌────────┐   ┌────────────────────┐
    │ deep_check   ├──┼──►│ queue ├──►│ worker ├──►│ RecoveryController │
    ├──────────────┤  │   └───────┘   └────────┘   └─────────┬──────────┘
    │ request_...  ├──┘                                      │ tier thread
    └──────────────┘                                         ▼
                                                     ActionInterface / probe
"""

from __future__ import annotations

import asyncio
import datetime as dt
from dataclasses import dataclass
from enum import StrEnum
from typing import Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_MISSED
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from warden.config import Settings, get_settings
from warden.logging_config import get_logger
from warden.supervisor.actions import CommandActions
from warden.supervisor.audit import AuditLog
from warden.supervisor.controller import RecoveryController
from warden.supervisor.policy import BackoffPolicy
from warden.supervisor.probes import (
    CommandHealthProbe,
    HealthProbe,
    HttpHealthProbe,
    MemoryPressureMonitor,
)
from warden.supervisor.state import RecoveryState
from warden.supervisor.stats_store import JsonStatStore
from warden.supervisor.tiers import build_sequences
from warden.supervisor.uptime import UptimeTracker

logger = get_logger(__name__)

HEALTH_CHECK_JOB = "health_check"
DEEP_CHECK_JOB = "deep_check"
UPTIME_JOB = "uptime"

HEALTH_CHECK_INTERVAL = 3.0    # seconds between fast checks while nothing is failing
DEEP_CHECK_INTERVAL = 60.0
UPTIME_CHECK_INTERVAL = 30.0
STOP_TIMEOUT = 5.0


class MessageKind(StrEnum):
    CHECK = "check"
    DEEP_CHECK = "deep_check"
    RECOVERY = "recovery"


@dataclass(frozen=True)
class Message:
    kind: MessageKind
    reason: str = ""


class Supervisor:
    """Starts and stops the recovery loops around one controller."""

    def __init__(
        self,
        controller: RecoveryController,
        *,
        health_check_interval: float = HEALTH_CHECK_INTERVAL,
        deep_check_interval: float = DEEP_CHECK_INTERVAL,
        uptime_tracker: Optional[UptimeTracker] = None,
        uptime_check_interval: float = UPTIME_CHECK_INTERVAL,
        audit: Optional[AuditLog] = None,
        stop_timeout: float = STOP_TIMEOUT,
    ) -> None:
        self._controller = controller
        self._health_interval = health_check_interval
        self._deep_interval = deep_check_interval
        self._uptime = uptime_tracker
        self._uptime_interval = uptime_check_interval
        self._audit = audit
        self._stop_timeout = stop_timeout
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._queue: Optional[asyncio.Queue[Optional[Message]]] = None
        self._pending: set[MessageKind] = set()
        self._worker: Optional[asyncio.Task] = None
        self._rearmed = False
        controller.on_rearm = self._on_rearm

    @property
    def is_running(self) -> bool:
        return self._worker is not None

    @property
    def state(self) -> RecoveryState:
        return self._controller.state

    def scheduled_jobs(self) -> list[str]:
        """IDs of the timers currently armed."""
        if self._scheduler is None:
            return []
        return sorted(job.id for job in self._scheduler.get_jobs())

    # ── Lifecycle ─────────────────────────────────────────────────────

    async def start(self) -> None:
        """Seed state and arm the loops (idempotent)."""
        if self._worker is not None:
            return

        self._controller.activate()
        self._queue = asyncio.Queue()
        self._pending.clear()
        self._worker = asyncio.create_task(self._worker_loop())

        self._scheduler = AsyncIOScheduler(
            job_defaults={
                "misfire_grace_time": 30,
                "coalesce": True,
                "max_instances": 1,
            },
        )
        self._scheduler.add_listener(self._on_job_event, EVENT_JOB_ERROR | EVENT_JOB_MISSED)
        self._scheduler.start()

        self._arm_health_check(0)
        self._scheduler.add_job(
            self._enqueue_deep_check,
            trigger=IntervalTrigger(seconds=self._deep_interval),
            id=DEEP_CHECK_JOB,
            name="deep check",
            replace_existing=True,
        )
        if self._uptime is not None:
            self._uptime.begin()
            self._scheduler.add_job(
                self._uptime_tick,
                trigger=IntervalTrigger(seconds=self._uptime_interval),
                id=UPTIME_JOB,
                name="uptime",
                replace_existing=True,
            )

        logger.info("supervisor_started", **self.state.snapshot())
        if self._audit is not None:
            self._audit.audit("supervisor_start", self.state.snapshot())

    async def stop(self) -> None:
        """Halt the loops and persist final state (idempotent)."""
        if self._worker is None:
            return
        worker = self._worker
        self._worker = None

        self._controller.deactivate()
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None

        if self._queue is not None:
            self._queue.put_nowait(None)
        try:
            await asyncio.wait_for(worker, timeout=self._stop_timeout)
        except asyncio.TimeoutError:
            logger.warning("supervisor_worker_stop_timeout", timeout=self._stop_timeout)
        except Exception as exc:
            logger.error("supervisor_worker_failed", error=str(exc))
        self._queue = None

        uptime = self._uptime.finish() if self._uptime is not None else 0.0
        self._controller.shutdown()
        logger.info("supervisor_stopped", uptime=round(uptime, 1))
        if self._audit is not None:
            self._audit.audit("supervisor_stop", self.state.snapshot())

    def request_recovery(self, reason: str) -> None:
        """Ask the worker to run a recovery attempt out of band."""
        self._enqueue(Message(MessageKind.RECOVERY, reason))

    # ── Timers ────────────────────────────────────────────────────────

    def _arm_health_check(self, delay: float) -> None:
        if self._scheduler is None or not self.state.active:
            return
        run_at = dt.datetime.now(dt.timezone.utc) + dt.timedelta(seconds=delay)
        self._scheduler.add_job(
            self._enqueue_check,
            trigger=DateTrigger(run_date=run_at),
            id=HEALTH_CHECK_JOB,
            name="health check",
            replace_existing=True,
        )

    def _on_rearm(self, delay: float) -> None:
        """Backoff-driven re-arm; takes precedence over the fixed cadence."""
        self._rearmed = True
        self._arm_health_check(delay)

    async def _enqueue_check(self) -> None:
        self._enqueue(Message(MessageKind.CHECK))

    async def _enqueue_deep_check(self) -> None:
        self._enqueue(Message(MessageKind.DEEP_CHECK))

    async def _uptime_tick(self) -> None:
        if self._uptime is not None:
            self._uptime.tick()

    @staticmethod
    def _on_job_event(event) -> None:
        job_id = getattr(event, "job_id", "?")
        if event.code == EVENT_JOB_ERROR:
            logger.error("supervisor_job_error", job_id=job_id, error=str(getattr(event, "exception", "")))
        elif event.code == EVENT_JOB_MISSED:
            logger.warning("supervisor_job_missed", job_id=job_id)

    # ── Worker ────────────────────────────────────────────────────────

    def _enqueue(self, message: Message) -> None:
        if self._queue is None or not self.state.active:
            return
        if message.kind in self._pending:
            logger.debug("supervisor_message_coalesced", kind=str(message.kind))
            return
        self._pending.add(message.kind)
        self._queue.put_nowait(message)

    async def _worker_loop(self) -> None:
        queue = self._queue
        if queue is None:
            return
        while True:
            message = await queue.get()
            if message is None:
                break
            self._pending.discard(message.kind)
            try:
                await self._handle(message)
            except Exception as exc:
                logger.error("supervisor_message_failed", kind=str(message.kind), error=str(exc))

    async def _handle(self, message: Message) -> None:
        if message.kind is MessageKind.CHECK:
            self._rearmed = False
            try:
                await self._controller.check_health()
            finally:
                if not self._rearmed:
                    self._arm_health_check(self._health_interval)
        elif message.kind is MessageKind.DEEP_CHECK:
            await self._controller.deep_check()
        elif message.kind is MessageKind.RECOVERY:
            await self._controller.trigger_recovery(message.reason)


def build_probe(settings: Settings) -> HealthProbe:
    if settings.health_command:
        return CommandHealthProbe(settings.health_command, timeout=settings.health_timeout)
    return HttpHealthProbe(settings.health_url, timeout=settings.health_timeout)


def build_supervisor(settings: Optional[Settings] = None) -> Supervisor:
    """Wire the default collaborators from settings."""
    settings = settings or get_settings()
    store = JsonStatStore(settings.state_file)
    audit = AuditLog(settings.audit_file)
    controller = RecoveryController(
        build_probe(settings),
        CommandActions(settings),
        store,
        sequences=build_sequences(
            settings.host_component,
            settings.capability_component,
            deferred_wake_delay=settings.deferred_wake_delay,
        ),
        backoff=BackoffPolicy(
            base_interval=settings.base_interval,
            max_interval=settings.max_interval,
            multiplier=settings.backoff_multiplier,
        ),
        resource_monitor=MemoryPressureMonitor(),
        audit=audit,
        max_attempts_per_tier=settings.max_attempts_per_tier,
        unhealthy_grace_period=settings.unhealthy_grace_period,
        deep_unhealthy_threshold=settings.deep_unhealthy_threshold,
        memory_pressure_threshold=settings.memory_pressure_threshold,
        wait_scale=settings.recovery_wait_scale,
    )
    return Supervisor(
        controller,
        health_check_interval=settings.health_check_interval,
        deep_check_interval=settings.deep_check_interval,
        uptime_tracker=UptimeTracker(store),
        uptime_check_interval=settings.uptime_check_interval,
        audit=audit,
        stop_timeout=settings.stop_timeout,
    )
