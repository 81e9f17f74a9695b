"""
Logger wrapper carrying verification run context.
"""

import logging
from typing import Any


class ContextLogger:
    """
    Logger wrapper that attaches run context to every message

    Usage:
        log = ContextLogger(__name__, table="orders", odate="20250101", mid="run-7")
        log.info("Partition verified", partition="year=2025", status="MATCH")
        partition_log = log.bind(partition="year=2025")
    """

    def __init__(self, name: str, **context):
        self.logger = logging.getLogger(name)
        self.context = context

    def _log(self, level: int, msg: str, *args, exc_info=None, **kwargs) -> None:
        if not self.logger.isEnabledFor(level):
            return
        self.logger.log(
            level,
            msg,
            *args,
            exc_info=exc_info,
            extra={**self.context, **kwargs},
        )

    def debug(self, msg: str, *args, **kwargs) -> None:
        self._log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, *args, **kwargs) -> None:
        self._log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs) -> None:
        self._log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, *args, exc_info=None, **kwargs) -> None:
        self._log(logging.ERROR, msg, *args, exc_info=exc_info, **kwargs)

    def exception(self, msg: str, *args, **kwargs) -> None:
        self._log(logging.ERROR, msg, *args, exc_info=True, **kwargs)

    def bind(self, **context) -> "ContextLogger":
        """
        Return a child logger with additional context

        The parent's context is left untouched, so a coordinator can hand
        each partition task its own bound logger.
        """
        return ContextLogger(self.logger.name, **{**self.context, **context})

    def get_context(self) -> dict[str, Any]:
        """Return a copy of the current context."""
        return self.context.copy()
