"""Tests for the backoff policy and tier transition table."""

from __future__ import annotations

import pytest

from warden.supervisor.policy import (
    TRANSITIONS,
    BackoffPolicy,
    TierEvent,
    deescalate,
    escalate,
    tier_for_success_rate,
)
from warden.supervisor.state import BASE_INTERVAL, RecoveryState, RecoveryTier, success_rate


class TestBackoffPolicy:
    """Tests for interval growth and shrinkage."""

    def test_grow_multiplies(self) -> None:
        """Failure multiplies the interval."""
        assert BackoffPolicy().grow(5.0) == pytest.approx(7.5)

    def test_fresh_state_starts_at_base_interval(self) -> None:
        """A new RecoveryState shares the policy's floor."""
        assert RecoveryState().current_interval == BackoffPolicy().base_interval == BASE_INTERVAL

    def test_grow_caps_at_max(self) -> None:
        assert BackoffPolicy().grow(250.0) == 300.0
        assert BackoffPolicy().grow(300.0) == 300.0

    def test_shrink_divides(self) -> None:
        """Success divides the interval."""
        assert BackoffPolicy().shrink(15.0) == pytest.approx(10.0)

    def test_shrink_floors_at_base(self) -> None:
        assert BackoffPolicy().shrink(6.0) == 5.0
        assert BackoffPolicy().shrink(5.0) == 5.0

    def test_three_growths_from_base(self) -> None:
        policy = BackoffPolicy()
        interval = policy.base_interval
        for _ in range(3):
            interval = policy.grow(interval)
        assert interval == pytest.approx(16.875)

    def test_clamp(self) -> None:
        policy = BackoffPolicy()
        assert policy.clamp(1.0) == 5.0
        assert policy.clamp(1000.0) == 300.0
        assert policy.clamp(42.0) == 42.0

    def test_custom_bounds(self) -> None:
        policy = BackoffPolicy(base_interval=1.0, max_interval=2.0, multiplier=3.0)
        assert policy.grow(1.0) == 2.0
        assert policy.shrink(2.0) == 1.0


class TestEscalation:
    """Tests for the tier transition table."""

    def test_table_is_total(self) -> None:
        for tier in RecoveryTier:
            for event in TierEvent:
                assert (tier, event) in TRANSITIONS

    @pytest.mark.parametrize("tier,expected", [
        (RecoveryTier.GENTLE, RecoveryTier.MODERATE),
        (RecoveryTier.MODERATE, RecoveryTier.AGGRESSIVE),
        (RecoveryTier.AGGRESSIVE, RecoveryTier.NUCLEAR),
        (RecoveryTier.NUCLEAR, RecoveryTier.NUCLEAR),
    ])
    def test_escalate(self, tier: RecoveryTier, expected: RecoveryTier) -> None:
        assert escalate(tier) is expected

    @pytest.mark.parametrize("tier,expected", [
        (RecoveryTier.NUCLEAR, RecoveryTier.AGGRESSIVE),
        (RecoveryTier.AGGRESSIVE, RecoveryTier.MODERATE),
        (RecoveryTier.MODERATE, RecoveryTier.GENTLE),
        (RecoveryTier.GENTLE, RecoveryTier.GENTLE),
    ])
    def test_deescalate(self, tier: RecoveryTier, expected: RecoveryTier) -> None:
        assert deescalate(tier) is expected

    def test_escalation_moves_one_rung(self) -> None:
        for tier in RecoveryTier:
            assert escalate(tier).rank - tier.rank in (0, 1)
            assert tier.rank - deescalate(tier).rank in (0, 1)


class TestSeeding:
    """Tests for picking the starting tier from history."""

    @pytest.mark.parametrize("rate,expected", [
        (1.0, RecoveryTier.GENTLE),
        (0.9, RecoveryTier.GENTLE),
        (0.8, RecoveryTier.MODERATE),
        (0.6, RecoveryTier.MODERATE),
        (0.5, RecoveryTier.AGGRESSIVE),
        (0.3, RecoveryTier.AGGRESSIVE),
        (0.2, RecoveryTier.NUCLEAR),
        (0.1, RecoveryTier.NUCLEAR),
        (0.0, RecoveryTier.NUCLEAR),
    ])
    def test_thresholds(self, rate: float, expected: RecoveryTier) -> None:
        assert tier_for_success_rate(rate) is expected

    def test_success_rate_without_history(self) -> None:
        assert success_rate(0, 0) == 1.0

    def test_success_rate(self) -> None:
        assert success_rate(10, 9) == pytest.approx(0.9)
