"""Warden: autonomous self-healing supervisor for a single monitored capability."""

__version__ = "0.3.0"
