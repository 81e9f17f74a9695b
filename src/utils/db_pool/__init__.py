"""
Database connection pooling for the SQL engine and the result sink.

The pools are owned by a PoolManager created at application start and
passed by handle to whatever needs connections; there is no module-level
pool registry.
"""

import logging
import re
from typing import Any

from .base import (
    BaseConnectionPool,
    ConnectionPoolError,
    PoolClosedError,
    PooledConnection,
    PoolExhaustedError,
)
from .engine import EngineConnectionPool
from .sink import SinkConnectionPool

logger = logging.getLogger(__name__)

_SECRET_PATTERNS = (
    # key=value pairs in ODBC strings and libpq DSNs
    re.compile(r"(?i)\b(pwd|password)=([^;\s]*)"),
    # user:password@host in URLs
    re.compile(r"(//[^:/@\s]+:)([^@\s]+)(@)"),
)


def mask_connection_string(connection_string: str | None) -> str:
    """
    Mask passwords in a connection string or URL for logging.

    >>> mask_connection_string("DSN=spark;UID=etl;PWD=s3cret")
    'DSN=spark;UID=etl;PWD=****'
    >>> mask_connection_string("postgresql://etl:s3cret@db:5432/results")
    'postgresql://etl:****@db:5432/results'
    """
    if not connection_string:
        return ""
    masked = _SECRET_PATTERNS[0].sub(lambda m: f"{m.group(1)}=****", connection_string)
    return _SECRET_PATTERNS[1].sub(lambda m: f"{m.group(1)}****{m.group(3)}", masked)


class PoolManager:
    """
    Owns the engine and sink pools for one application run.

    Usage:
        with PoolManager.create(engine_config, sink_config) as pools:
            with pools.engine_connection() as conn:
                ...
    """

    def __init__(
        self,
        engine_pool: EngineConnectionPool,
        sink_pool: SinkConnectionPool | None = None,
    ):
        self.engine_pool = engine_pool
        self.sink_pool = sink_pool

    @classmethod
    def create(
        cls,
        engine_config: dict[str, Any],
        sink_config: dict[str, Any] | None = None,
        **pool_kwargs: Any,
    ) -> "PoolManager":
        """
        Build both pools from plain configuration dictionaries.

        Args:
            engine_config: EngineConnectionPool arguments (connection_string or dsn,
                username, password, min_size, max_size...)
            sink_config: SinkConnectionPool arguments; None disables persistence
            **pool_kwargs: Defaults applied to both pools (acquire_timeout...)
        """
        logger.info(
            "Initializing engine connection pool: "
            f"{mask_connection_string(engine_config.get('connection_string') or engine_config.get('dsn'))}"
        )
        engine_pool = EngineConnectionPool(**{**pool_kwargs, **engine_config})

        sink_pool = None
        if sink_config:
            logger.info(
                f"Initializing sink connection pool: {sink_config.get('host')}:"
                f"{sink_config.get('port')}/{sink_config.get('database')}"
            )
            try:
                sink_pool = SinkConnectionPool(**{**pool_kwargs, **sink_config})
            except Exception:
                engine_pool.close()
                raise

        return cls(engine_pool, sink_pool)

    def engine_connection(self):
        """Check out an engine connection (context manager)."""
        return self.engine_pool.acquire()

    def sink_connection(self):
        """Check out a sink connection (context manager)."""
        if self.sink_pool is None:
            raise ConnectionPoolError("No sink pool configured")
        return self.sink_pool.acquire()

    def get_stats(self) -> dict[str, Any]:
        stats = {"engine": self.engine_pool.get_stats()}
        if self.sink_pool is not None:
            stats["sink"] = self.sink_pool.get_stats()
        return stats

    def close(self) -> None:
        """Close both pools; safe to call more than once."""
        self.engine_pool.close()
        if self.sink_pool is not None:
            self.sink_pool.close()
        logger.info("All connection pools closed")

    def __enter__(self) -> "PoolManager":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


__all__ = [
    "BaseConnectionPool",
    "EngineConnectionPool",
    "SinkConnectionPool",
    "PooledConnection",
    "PoolManager",
    "ConnectionPoolError",
    "PoolExhaustedError",
    "PoolClosedError",
    "mask_connection_string",
]
