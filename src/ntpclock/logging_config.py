"""
Logging configuration for ntpclock.

Library modules log through logging.getLogger(__name__) under the "ntpclock"
namespace and never install handlers themselves; applications (and the CLI)
call setup_logging() or configure_logging().

Failures are counted by ErrorTracker. A sync routinely loses some exchanges,
so those are kept at debug level while the counts stay available for
reporting.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

LOGGER_NAME = "ntpclock"
DEFAULT_LOG_PATH = Path.home() / ".ntpclock" / "logs" / "ntpclock.log"


class ContextFormatter(logging.Formatter):
    """Formatter that appends the record's context mapping as key=value pairs."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        context = getattr(record, "context", None)
        if context:
            pairs = " ".join(f"{key}={value}" for key, value in context.items())
            message = f"{message} [{pairs}]"
        return message


def setup_logging(
    level: str = "INFO",
    log_file: str | Path | None = None,
    max_bytes: int = 5 * 1024 * 1024,
    backup_count: int = 3,
    enable_console: bool = True,
    enable_file: bool = False,
) -> logging.Logger:
    """
    Set up handlers for the ntpclock logger.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Log file path (defaults to ~/.ntpclock/logs/ntpclock.log)
        max_bytes: Maximum log file size before rotation
        backup_count: Number of rotated files to keep
        enable_console: Log to stderr
        enable_file: Log to the rotating file

    Returns:
        The configured "ntpclock" logger
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper()))
    logger.handlers.clear()

    if enable_console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logger.level)
        console_handler.setFormatter(ContextFormatter(
            fmt='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
            datefmt='%H:%M:%S',
        ))
        logger.addHandler(console_handler)

    if enable_file:
        log_path = Path(log_file) if log_file else DEFAULT_LOG_PATH
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding='utf-8',
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(ContextFormatter(
            fmt='%(asctime)s | %(levelname)-8s | %(name)-24s | %(funcName)-18s | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S',
        ))
        logger.addHandler(file_handler)

    # Handlers are ours; keep records out of the application's root logger
    logger.propagate = False

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger below the ntpclock namespace (e.g. 'ntpclock.ntp.client')."""
    return logging.getLogger(name)


def configure_logging(debug: bool = False, log_to_file: bool = False) -> None:
    """
    Quick logging configuration for command line use.

    Args:
        debug: Log every exchange instead of warnings only
        log_to_file: Also write the rotating log file
    """
    setup_logging(
        level="DEBUG" if debug else "WARNING",
        enable_console=True,
        enable_file=log_to_file,
    )


class ErrorTracker:
    """
    Count failures by type and by server.

    Per-exchange failures (timeouts, bad packets, rejected responses) are
    expected during a sync and are logged at debug level; everything else
    is logged as an error.
    """

    EXPECTED_ERRORS = frozenset({
        "exchange_timeout",
        "exchange_socket_error",
        "invalid_packet",
        "invalid_response",
        "dns_failure",
    })

    def __init__(self):
        self.errors: dict[str, int] = {}
        self.servers: dict[str, int] = {}
        self.logger = get_logger(__name__)

    def log_error(
        self,
        error_type: str,
        message: str,
        exception: Exception | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        """
        Count and log a failure.

        Args:
            error_type: Failure kind (e.g. 'exchange_timeout', 'invalid_packet')
            message: Human readable description
            exception: Exception to attach to the log record
            context: Extra fields; a "server" entry is also counted per server
        """
        self.errors[error_type] = self.errors.get(error_type, 0) + 1
        server = (context or {}).get("server")
        if server is not None:
            self.servers[server] = self.servers.get(server, 0) + 1

        level = logging.DEBUG if error_type in self.EXPECTED_ERRORS else logging.ERROR
        self.logger.log(
            level,
            "%s: %s", error_type, message,
            exc_info=exception,
            extra={"context": context or {}},
        )

    def get_error_counts(self) -> dict[str, int]:
        return self.errors.copy()

    def get_server_counts(self) -> dict[str, int]:
        return self.servers.copy()

    def reset_counts(self) -> None:
        self.errors.clear()
        self.servers.clear()


# Global error tracker instance
_error_tracker = ErrorTracker()


def track_error(
    error_type: str,
    message: str,
    exception: Exception | None = None,
    context: dict[str, Any] | None = None,
) -> None:
    """Track an error globally."""
    _error_tracker.log_error(error_type, message, exception, context)


def get_error_stats() -> dict[str, int]:
    """Failure counts by type since the last reset."""
    return _error_tracker.get_error_counts()


def get_server_error_stats() -> dict[str, int]:
    """Failure counts by server address since the last reset."""
    return _error_tracker.get_server_counts()


def reset_error_stats() -> None:
    """Clear global error statistics."""
    _error_tracker.reset_counts()
