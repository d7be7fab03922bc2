"""trackcounter - Async counter service with a Redis-backed aggregate and a JSON-lines audit trail."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("trackcounter")
except PackageNotFoundError:
    __version__ = "0+local"
from trackcounter.audit import AuditSink
from trackcounter.config import CounterConfig
from trackcounter.exceptions import (
    AuditSinkError,
    ConfigError,
    LifecycleError,
    ListenerError,
    StartupError,
    StoreError,
    TrackCounterError,
)
from trackcounter.handler import CounterBackend, RequestHandler, TrackListener
from trackcounter.lifecycle import CounterService, LifecycleState, StoreBackend
from trackcounter.models import TrackRequest, parse_count
from trackcounter.store import ConnectivityState, StoreClient

__all__ = [
    "__version__",
    "AuditSink",
    "AuditSinkError",
    "ConfigError",
    "ConnectivityState",
    "CounterBackend",
    "CounterConfig",
    "CounterService",
    "LifecycleError",
    "LifecycleState",
    "ListenerError",
    "RequestHandler",
    "StartupError",
    "StoreBackend",
    "StoreClient",
    "StoreError",
    "TrackCounterError",
    "TrackListener",
    "TrackRequest",
    "parse_count",
]
