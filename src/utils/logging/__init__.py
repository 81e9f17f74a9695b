"""
Logging setup for the verification engine

Usage:
    from utils.logging import configure_from_env, ContextLogger

    configure_from_env()
    log = ContextLogger(__name__, table="orders", odate="20250101", mid="run-7")
    log.info("Verification started", mode="FAST")
"""

from .config import configure_from_env, get_logger, setup_logging, shutdown_logging
from .formatters import ConsoleFormatter, JSONFormatter
from .handlers import ContextLogger

__all__ = [
    "setup_logging",
    "shutdown_logging",
    "get_logger",
    "configure_from_env",
    "JSONFormatter",
    "ConsoleFormatter",
    "ContextLogger",
]
