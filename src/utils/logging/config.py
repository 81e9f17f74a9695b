"""
Application-wide logging setup.

Supports console output, size-based file rotation and JSON formatting.
"""

import logging
import logging.handlers
import os
import sys

from .formatters import ConsoleFormatter, JSONFormatter

PLAIN_FORMAT = "%(asctime)s [%(levelname)s] %(threadName)s %(name)s: %(message)s"

# Third-party loggers that are chatty at INFO
NOISY_LOGGERS = ("urllib3", "requests", "apscheduler", "opentelemetry")


def _truthy(value: str) -> bool:
    return value.strip().lower() in ("true", "1", "yes")


def setup_logging(
    level: str = "INFO",
    log_file: str | None = None,
    console_output: bool = True,
    json_format: bool = False,
    app_name: str = "data-verification",
    max_bytes: int = 50 * 1024 * 1024,  # 50MB
    backup_count: int = 5,
) -> None:
    """
    Configure the root logger

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Path to log file (if None, file logging is disabled)
        console_output: Whether to log to stderr
        json_format: Use JSON format for every handler
        app_name: Application name stamped on JSON records
        max_bytes: Maximum log file size before rotation
        backup_count: Number of rotated log files to keep
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    def build_formatter(for_console: bool) -> logging.Formatter:
        if json_format:
            return JSONFormatter(app_name=app_name)
        if for_console:
            return ConsoleFormatter(use_colors=True)
        return logging.Formatter(fmt=PLAIN_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(numeric_level)
        console_handler.setFormatter(build_formatter(for_console=True))
        root_logger.addHandler(console_handler)

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            filename=log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(build_formatter(for_console=False))
        root_logger.addHandler(file_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).debug(
        f"Logging initialized: level={level}, file={log_file or 'none'}, "
        f"console={console_output}, json={json_format}"
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def shutdown_logging() -> None:
    """
    Close and detach every root handler.

    Releases the rotating file handle; register with atexit in long-running
    processes such as the scheduler.
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        try:
            handler.flush()
            handler.close()
        except (OSError, ValueError) as e:
            sys.stderr.write(f"Failed to close log handler {handler!r}: {e}\n")
        root_logger.removeHandler(handler)


def configure_from_env(default_level: str = "INFO", level: str | None = None) -> None:
    """
    Configure logging from environment variables

    An explicit level (e.g. from a --log-level flag) wins over LOG_LEVEL.

    Environment variables:
        LOG_LEVEL: Log level (default: INFO)
        LOG_FILE: Log file path (default: none)
        LOG_JSON: Use JSON format (default: false)
        LOG_CONSOLE: Enable console output (default: true)
    """
    setup_logging(
        level=level or os.getenv("LOG_LEVEL", default_level),
        log_file=os.getenv("LOG_FILE") or None,
        console_output=_truthy(os.getenv("LOG_CONSOLE", "true")),
        json_format=_truthy(os.getenv("LOG_JSON", "false")),
    )
