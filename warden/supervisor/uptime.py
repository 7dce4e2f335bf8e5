"""Lightweight uptime bookkeeping for the supervisor session."""

from __future__ import annotations

import time
from typing import Callable

from warden.logging_config import get_logger
from warden.supervisor.stats_store import PersistentStatStore

logger = get_logger(__name__)

UPTIME_LOG_EVERY = 600.0  # seconds


class UptimeTracker:
    """Periodically persists session uptime next to the recovery stats."""

    def __init__(self, store: PersistentStatStore, clock: Callable[[], float] = time.time) -> None:
        self._store = store
        self._clock = clock
        self._started_at: float = 0.0
        self._last_logged: float = 0.0

    @property
    def uptime(self) -> float:
        if not self._started_at:
            return 0.0
        return self._clock() - self._started_at

    def begin(self) -> None:
        self._started_at = self._clock()
        self._last_logged = self._started_at

    def tick(self) -> None:
        """Light check: persist the running uptime."""
        if not self._started_at:
            return
        now = self._clock()
        try:
            self._store.update_extra({"total_uptime": self.uptime, "last_update": now})
        except Exception as exc:
            logger.debug("uptime_save_failed", error=str(exc))
        if now - self._last_logged >= UPTIME_LOG_EVERY:
            self._last_logged = now
            logger.info("supervisor_uptime", minutes=int(self.uptime // 60))

    def finish(self) -> float:
        """Record the final session length. Returns it in seconds."""
        if not self._started_at:
            return 0.0
        final = self.uptime
        try:
            self._store.update_extra({
                "last_session_uptime": final,
                "session_end_time": self._clock(),
            })
        except Exception as exc:
            logger.debug("uptime_save_failed", error=str(exc))
        self._started_at = 0.0
        return final
