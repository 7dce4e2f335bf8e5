"""Tests for health and resource probes."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import httpx
import pytest

from warden.supervisor.probes import CommandHealthProbe, HttpHealthProbe, MemoryPressureMonitor


class TestCommandHealthProbe:
    """Tests for the shell-command probe."""

    def test_zero_exit_is_healthy(self) -> None:
        assert CommandHealthProbe("true").probe() is True

    def test_non_zero_exit_is_unhealthy(self) -> None:
        assert CommandHealthProbe("false").probe() is False


class TestHttpHealthProbe:
    """Tests for the HTTP endpoint probe."""

    @patch("warden.supervisor.probes.httpx.Client")
    def test_200_is_healthy(self, mock_client_cls: MagicMock) -> None:
        """Only a 200 answer counts as healthy."""
        client = mock_client_cls.return_value.__enter__.return_value
        client.get.return_value = MagicMock(status_code=200)
        assert HttpHealthProbe("http://localhost:8000/api/health").probe() is True
        client.get.assert_called_once_with("http://localhost:8000/api/health")

    @patch("warden.supervisor.probes.httpx.Client")
    def test_error_status_is_unhealthy(self, mock_client_cls: MagicMock) -> None:
        client = mock_client_cls.return_value.__enter__.return_value
        client.get.return_value = MagicMock(status_code=503)
        assert HttpHealthProbe("http://localhost:8000/api/health").probe() is False

    @patch("warden.supervisor.probes.httpx.Client")
    def test_connection_error_propagates(self, mock_client_cls: MagicMock) -> None:
        """Transport errors are raised for the controller to classify."""
        client = mock_client_cls.return_value.__enter__.return_value
        client.get.side_effect = httpx.ConnectError("refused")
        with pytest.raises(httpx.ConnectError):
            HttpHealthProbe("http://localhost:1/health").probe()


class TestMemoryPressureMonitor:
    """Tests for the psutil-backed monitor."""

    @patch("warden.supervisor.probes.psutil.virtual_memory")
    def test_ratio_from_percent(self, mock_vm: MagicMock) -> None:
        mock_vm.return_value = MagicMock(percent=87.5)
        assert MemoryPressureMonitor().usage_ratio() == pytest.approx(0.875)
