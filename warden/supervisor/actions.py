"""Remediation primitives invoked by the recovery tiers.

The default implementation maps each primitive onto a configured shell
command. Primitives left unconfigured are logged and skipped.
"""

from __future__ import annotations

import gc
import shlex
import subprocess
from abc import ABC, abstractmethod
from typing import Optional

from warden.config import Settings
from warden.logging_config import get_logger

logger = get_logger(__name__)


class ActionError(RuntimeError):
    """A remediation command could not be run or exited non-zero."""


class ActionInterface(ABC):
    """Fallible remediation primitives for the monitored capability."""

    @abstractmethod
    def request_graceful_restart(self) -> None:
        """Ask the capability's host to restart itself (fire-and-forget)."""

    @abstractmethod
    def request_resource_reclamation(self) -> None:
        """Ask the platform to free memory and other resources (fire-and-forget)."""

    @abstractmethod
    def force_stop(self, component_id: str) -> None:
        """Stop a component. Callers treat failures as best-effort."""

    @abstractmethod
    def start_component(self, component_id: str, privileged: bool = False) -> None:
        """Start a component, through the privileged path if asked and available."""

    @abstractmethod
    def broadcast_system_restart(self) -> None:
        """Emit the system-wide restart signal. Idempotent."""

    @abstractmethod
    def schedule_deferred_wake(self, delay: float) -> Optional[int]:
        """Arm a timer that re-issues the restart broadcast after ``delay`` seconds.

        The timer must survive the death of the calling process. Returns an
        opaque handle.
        """


class CommandActions(ActionInterface):
    """Runs configured shell commands for each primitive."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def _run(self, name: str, command: str, **fmt: str) -> None:
        if not command:
            logger.debug("action_not_configured", action=name)
            return
        rendered = command.format(**fmt) if fmt else command
        try:
            result = subprocess.run(
                rendered,
                shell=True,
                capture_output=True,
                text=True,
                timeout=self._settings.command_timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise ActionError(f"{name} timed out after {exc.timeout}s") from exc
        if result.returncode != 0:
            raise ActionError(f"{name} exited {result.returncode}: {result.stderr[:200]}")
        logger.info("action_executed", action=name)

    def request_graceful_restart(self) -> None:
        self._run("graceful_restart", self._settings.restart_command)

    def request_resource_reclamation(self) -> None:
        collected = gc.collect()
        logger.debug("gc_collected", objects=collected)
        self._run("resource_reclamation", self._settings.reclaim_command)

    def force_stop(self, component_id: str) -> None:
        self._run("force_stop", self._settings.stop_command, component=component_id)

    def start_component(self, component_id: str, privileged: bool = False) -> None:
        command = self._settings.start_command
        if privileged and self._settings.privileged_start_command:
            command = self._settings.privileged_start_command
        self._run("start_component", command, component=component_id)

    def broadcast_system_restart(self) -> None:
        self._run("broadcast_restart", self._settings.broadcast_command)

    def schedule_deferred_wake(self, delay: float) -> Optional[int]:
        command = self._settings.broadcast_command
        if not command:
            logger.debug("action_not_configured", action="deferred_wake")
            return None
        # Own session so the timer outlives the supervisor.
        proc = subprocess.Popen(
            ["sh", "-c", f"sleep {shlex.quote(str(delay))}; {command}"],
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
        )
        logger.info("deferred_wake_scheduled", delay=delay, pid=proc.pid)
        return proc.pid
