"""Tests for the shell-command remediation primitives."""

from __future__ import annotations

import subprocess
from unittest.mock import MagicMock, patch

import pytest

from warden.config import Settings
from warden.supervisor.actions import ActionError, CommandActions


def make_settings(**overrides) -> Settings:
    return Settings(_env_file=None, warden_env="test", **overrides)


def completed(returncode: int = 0, stderr: str = "") -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess(args="", returncode=returncode, stdout="", stderr=stderr)


class TestCommandActions:
    """Tests for mapping primitives onto configured commands."""

    @patch("warden.supervisor.actions.subprocess.run")
    def test_unconfigured_primitive_is_skipped(self, mock_run: MagicMock) -> None:
        """Nothing runs when no command is configured."""
        CommandActions(make_settings()).request_graceful_restart()
        mock_run.assert_not_called()

    @patch("warden.supervisor.actions.subprocess.run")
    def test_restart_runs_command(self, mock_run: MagicMock) -> None:
        mock_run.return_value = completed()
        CommandActions(make_settings(restart_command="systemctl restart app")).request_graceful_restart()
        assert mock_run.call_args.args[0] == "systemctl restart app"
        assert mock_run.call_args.kwargs["shell"] is True
        assert mock_run.call_args.kwargs["timeout"] == 30.0

    @patch("warden.supervisor.actions.subprocess.run")
    def test_component_is_substituted(self, mock_run: MagicMock) -> None:
        """{component} is filled in for stop commands."""
        mock_run.return_value = completed()
        actions = CommandActions(make_settings(stop_command="pkill -f {component}"))
        actions.force_stop("speechd")
        assert mock_run.call_args.args[0] == "pkill -f speechd"

    @patch("warden.supervisor.actions.subprocess.run")
    def test_privileged_start_prefers_privileged_command(self, mock_run: MagicMock) -> None:
        mock_run.return_value = completed()
        actions = CommandActions(make_settings(
            start_command="start {component}",
            privileged_start_command="sudo start {component}",
        ))
        actions.start_component("host", privileged=True)
        assert mock_run.call_args.args[0] == "sudo start host"
        actions.start_component("host")
        assert mock_run.call_args.args[0] == "start host"

    @patch("warden.supervisor.actions.subprocess.run")
    def test_privileged_start_falls_back(self, mock_run: MagicMock) -> None:
        """Without a privileged command the plain start command is used."""
        mock_run.return_value = completed()
        CommandActions(make_settings(start_command="start {component}")).start_component("host", privileged=True)
        assert mock_run.call_args.args[0] == "start host"

    @patch("warden.supervisor.actions.subprocess.run")
    def test_non_zero_exit_raises(self, mock_run: MagicMock) -> None:
        mock_run.return_value = completed(returncode=2, stderr="permission denied")
        actions = CommandActions(make_settings(broadcast_command="notify-restart"))
        with pytest.raises(ActionError, match="exited 2"):
            actions.broadcast_system_restart()

    @patch("warden.supervisor.actions.subprocess.run")
    def test_timeout_raises(self, mock_run: MagicMock) -> None:
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="x", timeout=30.0)
        actions = CommandActions(make_settings(reclaim_command="purge"))
        with pytest.raises(ActionError, match="timed out"):
            actions.request_resource_reclamation()

    @patch("warden.supervisor.actions.gc.collect", return_value=0)
    @patch("warden.supervisor.actions.subprocess.run")
    def test_reclamation_collects_garbage(self, mock_run: MagicMock, mock_gc: MagicMock) -> None:
        """Reclamation always frees our own memory first."""
        CommandActions(make_settings()).request_resource_reclamation()
        mock_gc.assert_called_once()
        mock_run.assert_not_called()


class TestDeferredWake:
    """Tests for the detached restart timer."""

    @patch("warden.supervisor.actions.subprocess.Popen")
    def test_spawns_detached_timer(self, mock_popen: MagicMock) -> None:
        """The timer runs in its own session and returns its pid."""
        mock_popen.return_value.pid = 777
        actions = CommandActions(make_settings(broadcast_command="notify-restart"))

        assert actions.schedule_deferred_wake(3.0) == 777

        argv = mock_popen.call_args.args[0]
        assert argv[:2] == ["sh", "-c"]
        assert argv[2] == "sleep 3.0; notify-restart"
        assert mock_popen.call_args.kwargs["start_new_session"] is True

    @patch("warden.supervisor.actions.subprocess.Popen")
    def test_unconfigured_returns_none(self, mock_popen: MagicMock) -> None:
        assert CommandActions(make_settings()).schedule_deferred_wake(3.0) is None
        mock_popen.assert_not_called()
