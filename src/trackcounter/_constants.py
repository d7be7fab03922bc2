"""Internal constants shared across the package."""

#: Store key holding the aggregate counter.
COUNTER_KEY = "count"

DEFAULT_HTTP_HOST = "0.0.0.0"
DEFAULT_HTTP_PORT = 8000
DEFAULT_REDIS_HOST = "localhost"
DEFAULT_REDIS_PORT = 6379
DEFAULT_DUMP_FILE = "trackdata.txt"

#: Seconds to wait for graceful shutdown before giving up.
DEFAULT_SHUTDOWN_TIMEOUT = 2.0
#: Seconds between store connection attempts.
DEFAULT_RECONNECT_INTERVAL = 3.0

# Process exit codes
EXIT_SUCCESS = 0
EXIT_ERROR = 1

COUNT_ERROR_BODY = "Oops... Try again later!"

SHUTDOWN_SIGNALS: tuple[str, ...] = ("SIGINT", "SIGHUP", "SIGTERM")
