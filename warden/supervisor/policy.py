"""Pure backoff and escalation policies.

Nothing in this module touches the clock, the store or any collaborator,
so every rule can be tested in isolation from timing.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from warden.supervisor.state import BASE_INTERVAL, MAX_INTERVAL, RecoveryTier

# Defaults
BACKOFF_MULTIPLIER = 1.5
MAX_ATTEMPTS_PER_TIER = 3

# Historical success rate → starting tier, checked top to bottom (strictly greater).
SEED_THRESHOLDS: list[tuple[float, RecoveryTier]] = [
    (0.8, RecoveryTier.GENTLE),
    (0.5, RecoveryTier.MODERATE),
    (0.2, RecoveryTier.AGGRESSIVE),
]


@dataclass(frozen=True)
class BackoffPolicy:
    """Deterministic multiplicative backoff, no jitter."""

    base_interval: float = BASE_INTERVAL
    max_interval: float = MAX_INTERVAL
    multiplier: float = BACKOFF_MULTIPLIER

    def grow(self, interval: float) -> float:
        return min(interval * self.multiplier, self.max_interval)

    def shrink(self, interval: float) -> float:
        return max(interval / self.multiplier, self.base_interval)

    def clamp(self, interval: float) -> float:
        return min(max(interval, self.base_interval), self.max_interval)


class TierEvent(StrEnum):
    ESCALATE = "escalate"
    DEESCALATE = "deescalate"


TRANSITIONS: dict[tuple[RecoveryTier, TierEvent], RecoveryTier] = {
    (RecoveryTier.GENTLE, TierEvent.ESCALATE): RecoveryTier.MODERATE,
    (RecoveryTier.MODERATE, TierEvent.ESCALATE): RecoveryTier.AGGRESSIVE,
    (RecoveryTier.AGGRESSIVE, TierEvent.ESCALATE): RecoveryTier.NUCLEAR,
    (RecoveryTier.NUCLEAR, TierEvent.ESCALATE): RecoveryTier.NUCLEAR,
    (RecoveryTier.NUCLEAR, TierEvent.DEESCALATE): RecoveryTier.AGGRESSIVE,
    (RecoveryTier.AGGRESSIVE, TierEvent.DEESCALATE): RecoveryTier.MODERATE,
    (RecoveryTier.MODERATE, TierEvent.DEESCALATE): RecoveryTier.GENTLE,
    (RecoveryTier.GENTLE, TierEvent.DEESCALATE): RecoveryTier.GENTLE,
}


def transition(tier: RecoveryTier, event: TierEvent) -> RecoveryTier:
    return TRANSITIONS[(tier, event)]


def escalate(tier: RecoveryTier) -> RecoveryTier:
    return transition(tier, TierEvent.ESCALATE)


def deescalate(tier: RecoveryTier) -> RecoveryTier:
    return transition(tier, TierEvent.DEESCALATE)


def tier_for_success_rate(rate: float) -> RecoveryTier:
    """Pick the starting tier from the historical recovery success rate."""
    for threshold, tier in SEED_THRESHOLDS:
        if rate > threshold:
            return tier
    return RecoveryTier.NUCLEAR

