"""Append-only JSONL audit trail of supervisor decisions."""

from __future__ import annotations

import datetime as dt
import json
from pathlib import Path
from typing import Any

from warden.logging_config import get_logger

logger = get_logger(__name__)


class AuditLog:
    """Writes one JSON object per line; failures never propagate."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def audit(self, action: str, details: dict[str, Any] | None = None) -> None:
        """Append an entry to the audit log."""
        entry = {
            "timestamp": dt.datetime.now().isoformat(),
            "action": action,
            **(details or {}),
        }
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._path, "a") as f:
                f.write(json.dumps(entry, ensure_ascii=False) + "\n")
        except Exception as exc:
            logger.error("audit_log_write_failed", error=str(exc))
        logger.info("supervisor_audit", action=action, details=details)

    def recent(self, limit: int = 10) -> list[dict[str, Any]]:
        """Return the last ``limit`` parseable entries, oldest first."""
        if not self._path.exists():
            return []
        entries: list[dict[str, Any]] = []
        for line in self._path.read_text().strip().splitlines()[-limit:]:
            try:
                entries.append(json.loads(line))
            except json.JSONDecodeError:
                continue
        return entries
