"""Health and resource probes for the monitored capability.

Probes run on the supervisor's recovery worker thread, never on the event
loop, so they are written as plain blocking calls.
"""

from __future__ import annotations

import subprocess
from abc import ABC, abstractmethod

import httpx
import psutil

from warden.logging_config import get_logger

logger = get_logger(__name__)


class HealthProbe(ABC):
    """Answers "is the capability alive and responsive"."""

    @abstractmethod
    def probe(self) -> bool:
        """Return True when healthy. Must not mutate anything; may raise."""


class HttpHealthProbe(HealthProbe):
    """Healthy iff the health endpoint answers 200."""

    def __init__(self, url: str, timeout: float = 10.0) -> None:
        self._url = url
        self._timeout = timeout

    def probe(self) -> bool:
        with httpx.Client(timeout=self._timeout) as client:
            resp = client.get(self._url)
            return resp.status_code == 200


class CommandHealthProbe(HealthProbe):
    """Healthy iff the shell command exits 0."""

    def __init__(self, command: str, timeout: float = 10.0) -> None:
        self._command = command
        self._timeout = timeout

    def probe(self) -> bool:
        result = subprocess.run(
            self._command,
            shell=True,
            capture_output=True,
            text=True,
            timeout=self._timeout,
        )
        if result.returncode != 0:
            logger.debug("health_command_failed", returncode=result.returncode,
                         stderr=result.stderr[:200])
        return result.returncode == 0


class ResourceMonitor(ABC):
    """Reports resource pressure as a usage ratio in [0, 1]."""

    @abstractmethod
    def usage_ratio(self) -> float:
        """Current usage ratio."""


class MemoryPressureMonitor(ResourceMonitor):
    """System memory usage via psutil."""

    def usage_ratio(self) -> float:
        return psutil.virtual_memory().percent / 100.0
