"""Durable key/value storage for recovery statistics.

The stored record outlives the supervisor process; the controller seeds its
starting tier from it on every start.
"""

from __future__ import annotations

import datetime as dt
import json
import math
import os
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable

from warden.logging_config import get_logger
from warden.supervisor.state import StatsRecord

logger = get_logger(__name__)

# Keys of the persisted record
TOTAL_ATTEMPTS_KEY = "total_attempts"
SUCCESSFUL_RECOVERIES_KEY = "successful_recoveries"
LAST_HEALTHY_KEY = "last_healthy_time"

# Tolerated clock skew for a stored last-healthy time ahead of now (seconds)
MAX_CLOCK_SKEW = 60.0


class PersistentStatStore(ABC):
    """Key/value contract the controller persists its counters through."""

    @abstractmethod
    def load(self) -> StatsRecord:
        """Return the stored record; missing or corrupt data yields defaults."""

    @abstractmethod
    def save(self, record: StatsRecord) -> None:
        """Persist the record. May raise; callers treat saving as best-effort."""

    def update_extra(self, values: dict[str, Any]) -> None:
        """Merge auxiliary keys (uptime stats) into the store."""

    def read_extra(self) -> dict[str, Any]:
        return {}


class JsonStatStore(PersistentStatStore):
    """Stores the record as a small JSON document, written atomically."""

    def __init__(self, path: Path, clock: Callable[[], float] = time.time) -> None:
        self._path = Path(path)
        self._clock = clock

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        data = json.loads(self._path.read_text())
        if not isinstance(data, dict):
            raise ValueError("state file does not hold an object")
        return data

    def _write(self, data: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, indent=2))
        os.replace(tmp, self._path)

    def load(self) -> StatsRecord:
        try:
            data = self._read()
        except Exception as exc:
            logger.warning("stats_load_failed", path=str(self._path), error=str(exc))
            return StatsRecord(last_healthy_at=self._clock())

        try:
            total = int(data.get(TOTAL_ATTEMPTS_KEY, 0))
            successful = int(data.get(SUCCESSFUL_RECOVERIES_KEY, 0))
            last_healthy = float(data.get(LAST_HEALTHY_KEY, self._clock()))
        except (TypeError, ValueError) as exc:
            logger.warning("stats_corrupt", path=str(self._path), error=str(exc))
            return StatsRecord(last_healthy_at=self._clock())

        if total < 0 or successful < 0 or successful > total:
            logger.warning("stats_inconsistent", total=total, successful=successful)
            return StatsRecord(last_healthy_at=self._clock())

        now = self._clock()
        if not math.isfinite(last_healthy) or last_healthy > now + MAX_CLOCK_SKEW:
            logger.warning("stats_bad_timestamp", last_healthy=str(last_healthy), now=now)
            return StatsRecord(last_healthy_at=now)

        return StatsRecord(
            total_attempts=total,
            successful_recoveries=successful,
            last_healthy_at=last_healthy,
        )

    def save(self, record: StatsRecord) -> None:
        try:
            data = self._read()
        except Exception:
            data = {}
        data.update({
            TOTAL_ATTEMPTS_KEY: record.total_attempts,
            SUCCESSFUL_RECOVERIES_KEY: record.successful_recoveries,
            LAST_HEALTHY_KEY: record.last_healthy_at,
            "updated_at": dt.datetime.now().isoformat(),
        })
        self._write(data)

    def update_extra(self, values: dict[str, Any]) -> None:
        try:
            data = self._read()
        except Exception:
            data = {}
        data.update(values)
        self._write(data)

    def read_extra(self) -> dict[str, Any]:
        try:
            data = self._read()
        except Exception:
            return {}
        for key in (TOTAL_ATTEMPTS_KEY, SUCCESSFUL_RECOVERIES_KEY, LAST_HEALTHY_KEY):
            data.pop(key, None)
        return data

    def clear(self) -> bool:
        """Delete the stored record. Returns True if a file was removed."""
        if self._path.exists():
            self._path.unlink()
            return True
        return False
