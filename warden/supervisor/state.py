"""Recovery state owned by the controller."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

# Bounds of the backoff interval (seconds)
BASE_INTERVAL = 5.0
MAX_INTERVAL = 300.0


class RecoveryTier(StrEnum):
    """Escalating remediation strategies, least invasive first."""

    GENTLE = "gentle"          # graceful restart request
    MODERATE = "moderate"      # reclaim resources + stop/start host
    AGGRESSIVE = "aggressive"  # kill everything + broadcast restart
    NUCLEAR = "nuclear"        # repeated kills + durable deferred wake

    @property
    def rank(self) -> int:
        return _LADDER.index(self)


_LADDER = [
    RecoveryTier.GENTLE,
    RecoveryTier.MODERATE,
    RecoveryTier.AGGRESSIVE,
    RecoveryTier.NUCLEAR,
]


def success_rate(total_attempts: int, successful_recoveries: int) -> float:
    """Recovery success ratio, defined as 1.0 when nothing was attempted yet."""
    if total_attempts <= 0:
        return 1.0
    return successful_recoveries / total_attempts


@dataclass
class StatsRecord:
    """The persisted subset of the recovery state."""

    total_attempts: int = 0
    successful_recoveries: int = 0
    last_healthy_at: float = field(default_factory=time.time)


@dataclass
class RecoveryState:
    """Mutable recovery record for one monitored capability.

    Only the RecoveryController writes to this object, and only from the
    supervisor's worker coroutine.
    """

    current_tier: RecoveryTier = RecoveryTier.GENTLE
    tier_attempts: int = 0
    total_attempts: int = 0
    successful_recoveries: int = 0
    last_healthy_at: float = field(default_factory=time.time)
    current_interval: float = BASE_INTERVAL
    active: bool = False
    deep_recovery_in_progress: bool = False

    @property
    def success_rate(self) -> float:
        return success_rate(self.total_attempts, self.successful_recoveries)

    def to_record(self) -> StatsRecord:
        return StatsRecord(
            total_attempts=self.total_attempts,
            successful_recoveries=self.successful_recoveries,
            last_healthy_at=self.last_healthy_at,
        )

    def snapshot(self) -> dict[str, Any]:
        """Plain-dict view for logs, audit entries and the CLI."""
        return {
            "tier": str(self.current_tier),
            "tier_attempts": self.tier_attempts,
            "total_attempts": self.total_attempts,
            "successful_recoveries": self.successful_recoveries,
            "success_rate": round(self.success_rate, 3),
            "last_healthy_at": self.last_healthy_at,
            "current_interval": round(self.current_interval, 3),
            "active": self.active,
            "deep_recovery_in_progress": self.deep_recovery_in_progress,
        }
