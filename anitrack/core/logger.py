"""
Logging configuration for anitrack.

This module sets up the logging system with multiple outputs:
    - Console: colored, tqdm-compatible output for interactive hosts
    - log_full_<ts>.log: Complete log of all events (DEBUG and above)
    - log_errors_<ts>.log: Only ERROR and CRITICAL level messages
    - sync_failures_<ts>.log: Queued operations that failed to reach AniList

The library never configures logging on import. A host application calls
setup_logging() once; until then every module logger is silent.

Usage:
    from anitrack.core.logger import setup_logging, get_logger

    setup_logging(config.storage.log_directory)  # Call once at startup
    logger = get_logger(__name__)

    logger.info("Draining sync queue")
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import TextIO

from tqdm import tqdm


LOG_FULL_FILENAME = "log_full"
LOG_ERRORS_FILENAME = "log_errors"
SYNC_FAILURES_FILENAME = "sync_failures"

# Log format for file output (detailed with timestamp)
FILE_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class Colors:
    """ANSI color codes for terminal output."""
    RESET = "\033[0m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    WHITE = "\033[37m"
    BOLD = "\033[1m"


class ColoredConsoleFormatter(logging.Formatter):
    """
    Formatter that prefixes the level name with an ANSI color.

    Colors:
        - DEBUG: Blue
        - INFO: Green
        - WARNING: Yellow
        - ERROR: Red
        - CRITICAL: Bold Red
    """

    LEVEL_COLORS = {
        logging.DEBUG: Colors.BLUE,
        logging.INFO: Colors.GREEN,
        logging.WARNING: Colors.YELLOW,
        logging.ERROR: Colors.RED,
        logging.CRITICAL: Colors.BOLD + Colors.RED,
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, Colors.WHITE)
        return f"{color}{record.levelname}{Colors.RESET}: {record.getMessage()}"


class TqdmLoggingHandler(logging.Handler):
    """
    Console handler that writes through tqdm.write().

    Hosts that render tqdm progress bars (for example around sync_all())
    keep their bars intact because messages are printed above them.
    """

    def __init__(self, stream: TextIO = sys.stderr) -> None:
        super().__init__()
        self.stream = stream

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            tqdm.write(msg, file=self.stream)
        except Exception:
            self.handleError(record)


class SyncFailureHandler(logging.Handler):
    """
    Handler that records failed queue operations in a report file.

    Only records carrying the 'sync_failed_operation' extra field are
    written; everything else is ignored. The format is one block per
    failure:

        updateProgress media=21 attempts=2
        Network error: Cannot connect to host graphql.anilist.co

    Use log_sync_failure() to emit records with the right extra fields.

    Attributes:
        report_path: Path to the sync_failures log file.
        report_file: Open file handle, set by open().
    """

    def __init__(self, report_path: Path) -> None:
        super().__init__()
        self.report_path = report_path
        self.report_file: TextIO | None = None

    def open(self) -> None:
        """Open the report file for writing (overwrites existing content)."""
        self.report_file = open(self.report_path, "w", encoding="utf-8")

    def emit(self, record: logging.LogRecord) -> None:
        if not hasattr(record, "sync_failed_operation"):
            return

        if self.report_file is None:
            return

        try:
            operation = getattr(record, "sync_failed_operation", "unknown")
            media_id = getattr(record, "sync_failed_media_id", "?")
            attempts = getattr(record, "sync_failed_attempts", 0)
            reason = getattr(record, "sync_failed_reason", "")

            self.report_file.write(f"{operation} media={media_id} attempts={attempts}\n")
            self.report_file.write(f"{reason}\n\n")
            self.report_file.flush()
        except Exception:
            self.handleError(record)

    def close(self) -> None:
        """Close the report file handle. Safe to call multiple times."""
        if self.report_file is not None:
            try:
                self.report_file.close()
            except OSError:
                pass
            self.report_file = None
        super().close()


class ErrorOnlyFilter(logging.Filter):
    """Filter that only allows ERROR and CRITICAL level records."""

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= logging.ERROR


def setup_logging(log_dir: Path, level: int | str = logging.INFO, console: bool = True) -> None:
    """
    Configure the 'anitrack' logger hierarchy.

    Call ONCE at application startup, after the configuration is loaded.
    Handlers are attached to the 'anitrack' package logger rather than the
    root logger so a host application's own logging is left alone.

    Args:
        log_dir: Directory where log files are created. Created if missing.
        level: Console level. File logs always capture DEBUG.
        console: Attach the colored tqdm-compatible console handler.

    Behavior:
        1. Create log_dir if it doesn't exist
        2. Generate a timestamp shared by this run's log files
        3. Replace any handlers previously installed by setup_logging()
        4. Add console, full, error-only and sync failure handlers
    """
    log_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")

    package_logger = logging.getLogger("anitrack")
    package_logger.setLevel(logging.DEBUG)
    _close_handlers(package_logger)

    if console:
        console_handler = TqdmLoggingHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(ColoredConsoleFormatter())
        package_logger.addHandler(console_handler)

    full_handler = logging.FileHandler(
        log_dir / f"{LOG_FULL_FILENAME}_{timestamp}.log", mode="w", encoding="utf-8"
    )
    full_handler.setLevel(logging.DEBUG)
    full_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT, FILE_DATE_FORMAT))
    package_logger.addHandler(full_handler)

    error_handler = logging.FileHandler(
        log_dir / f"{LOG_ERRORS_FILENAME}_{timestamp}.log", mode="w", encoding="utf-8"
    )
    error_handler.setLevel(logging.DEBUG)  # Filter handles the level restriction
    error_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT, FILE_DATE_FORMAT))
    error_handler.addFilter(ErrorOnlyFilter())
    package_logger.addHandler(error_handler)

    failures_handler = SyncFailureHandler(log_dir / f"{SYNC_FAILURES_FILENAME}_{timestamp}.log")
    failures_handler.open()
    package_logger.addHandler(failures_handler)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a module.

    Args:
        name: The logger name, typically __name__ of the calling module,
              which places it under the 'anitrack' hierarchy.
    """
    return logging.getLogger(name)


def log_sync_failure(
    logger: logging.Logger,
    operation: str,
    media_id: int,
    attempts: int,
    reason: str,
    surfaced: bool = False
) -> None:
    """
    Log a queued operation that failed to apply remotely.

    Attaches the extra fields SyncFailureHandler writes to the
    sync_failures report. Failures still inside their retry budget are
    WARNING; failures surfaced to the caller are ERROR.

    Example:
        log_sync_failure(
            logger,
            operation="updateProgress",
            media_id=21,
            attempts=3,
            reason="Network error: timed out",
            surfaced=True
        )
    """
    level = logging.ERROR if surfaced else logging.WARNING
    logger.log(
        level,
        f"Sync failed: {operation} for media {media_id} (attempt {attempts}): {reason}",
        extra={
            "sync_failed_operation": operation,
            "sync_failed_media_id": media_id,
            "sync_failed_attempts": attempts,
            "sync_failed_reason": reason,
        }
    )


def _close_handlers(target: logging.Logger) -> None:
    for handler in target.handlers[:]:
        try:
            handler.flush()
            handler.close()
        except OSError:
            pass
        target.removeHandler(handler)


def shutdown_logging() -> None:
    """
    Flush, close and remove every handler installed by setup_logging().

    Typically called from a finally block or atexit handler.
    """
    _close_handlers(logging.getLogger("anitrack"))
