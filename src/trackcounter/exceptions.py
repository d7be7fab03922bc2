"""Custom exception hierarchy for trackcounter."""

from __future__ import annotations


class TrackCounterError(Exception):
    """Base exception for all trackcounter errors."""


class ConfigError(TrackCounterError):
    """Invalid or missing configuration."""


class StoreError(TrackCounterError):
    """Key-value store operation failed (unreachable, protocol error, bad value)."""

    def __init__(
        self,
        message: str,
        *,
        operation: str = "",
        key: str = "",
    ) -> None:
        self.operation = operation
        self.key = key
        super().__init__(message)


class AuditSinkError(TrackCounterError):
    """Audit file could not be opened or written."""


class ListenerError(TrackCounterError):
    """HTTP listener could not be started (already running, bind failure)."""


class LifecycleError(TrackCounterError):
    """Lifecycle operation requested in a state that does not allow it."""


class StartupError(LifecycleError):
    """A startup step failed; the service never reached the running state.

    ``step`` names the failing step (``open_sink``, ``connect_store``,
    ``reset_counter`` or ``start_listener``).
    """

    def __init__(self, message: str, *, step: str = "") -> None:
        self.step = step
        super().__init__(message)
