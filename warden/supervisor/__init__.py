"""Warden Self-Healing Supervisor.

Components:
- RecoveryController: owns recovery state, escalates remediation tiers
- Supervisor: fast/deep check timers feeding a single recovery worker
- BackoffPolicy / escalate / deescalate: pure backoff and tier transitions
- TierRunner: executes per-tier remediation sequences with cancellable waits
- JsonStatStore: recovery statistics that survive restarts
- AuditLog: JSONL trail of supervisor decisions
"""

from warden.supervisor.audit import AuditLog
from warden.supervisor.controller import RecoveryController
from warden.supervisor.policy import BackoffPolicy, deescalate, escalate
from warden.supervisor.scheduler import Supervisor, build_supervisor
from warden.supervisor.state import RecoveryState, RecoveryTier, StatsRecord
from warden.supervisor.stats_store import JsonStatStore, PersistentStatStore
from warden.supervisor.tiers import TierRunner

__all__ = [
    "AuditLog",
    "BackoffPolicy",
    "JsonStatStore",
    "PersistentStatStore",
    "RecoveryController",
    "RecoveryState",
    "RecoveryTier",
    "StatsRecord",
    "Supervisor",
    "TierRunner",
    "build_supervisor",
    "deescalate",
    "escalate",
]
