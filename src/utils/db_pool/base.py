"""
Base classes for thread-safe database connection pooling.

Idle connections sit in a Queue; the bookkeeping list of every live
connection is guarded by an RLock. Connections are health-checked on
checkout and recycled when they exceed their idle time or lifetime, or
when the caller's block raised and the connection no longer answers.
"""

import logging
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from queue import Empty, Full, Queue
from typing import Any

from opentelemetry import trace
from prometheus_client import Counter, Gauge, Histogram

from utils.metrics import get_or_create_metric
from utils.tracing import trace_operation

logger = logging.getLogger(__name__)

POOL_LABELS = ["database_type", "pool_name"]

CONNECTION_POOL_SIZE = get_or_create_metric(
    lambda: Gauge("db_connection_pool_size", "Connections owned by the pool", POOL_LABELS),
    "db_connection_pool_size",
)

CONNECTION_POOL_ACTIVE = get_or_create_metric(
    lambda: Gauge("db_connection_pool_active", "Connections checked out", POOL_LABELS),
    "db_connection_pool_active",
)

CONNECTION_POOL_WAITS = get_or_create_metric(
    lambda: Counter(
        "db_connection_pool_waits_total",
        "Checkouts that had to wait for a connection to be returned",
        POOL_LABELS,
    ),
    "db_connection_pool_waits",
)

CONNECTION_POOL_ERRORS = get_or_create_metric(
    lambda: Counter(
        "db_connection_pool_errors_total",
        "Connection pool errors",
        POOL_LABELS + ["error_type"],
    ),
    "db_connection_pool_errors",
)

CONNECTION_ACQUIRE_TIME = get_or_create_metric(
    lambda: Histogram(
        "db_connection_acquire_seconds",
        "Time to acquire a connection from the pool",
        POOL_LABELS,
        buckets=[0.001, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 15.0, 30.0],
    ),
    "db_connection_acquire_seconds",
)


def _now() -> datetime:
    return datetime.now(UTC)


@dataclass
class PooledConnection:
    """A pooled connection plus the timestamps used to recycle it."""

    connection: Any
    created_at: datetime = field(default_factory=_now)
    last_used: datetime = field(default_factory=_now)
    use_count: int = 0

    def mark_used(self) -> None:
        self.last_used = _now()
        self.use_count += 1


class ConnectionPoolError(Exception):
    """Base exception for connection pool errors."""

    pass


class PoolExhaustedError(ConnectionPoolError):
    """Raised when no connection becomes available within the acquire timeout."""

    pass


class PoolClosedError(ConnectionPoolError):
    """Raised when attempting to use a closed pool."""

    pass


class BaseConnectionPool:
    """
    Base class for database connection pools.

    Subclasses implement _create_connection, _is_connection_healthy,
    _close_connection and _get_db_type.
    """

    def __init__(
        self,
        min_size: int = 1,
        max_size: int = 10,
        max_idle_time: int = 300,
        max_lifetime: int = 3600,
        health_check_interval: int = 60,
        acquire_timeout: float = 30.0,
        pool_name: str = "default",
    ):
        """
        Args:
            min_size: Connections opened eagerly and kept alive
            max_size: Hard cap on connections owned by the pool
            max_idle_time: Idle seconds before a connection is recycled
            max_lifetime: Seconds before a connection is recycled regardless of use
            health_check_interval: Seconds between background sweeps (0 disables)
            acquire_timeout: Seconds a checkout may wait before PoolExhaustedError
            pool_name: Pool name for metrics and logs
        """
        if max_size < 1:
            raise ValueError(f"max_size must be >= 1, got {max_size}")
        if min_size > max_size:
            raise ValueError(f"min_size ({min_size}) cannot exceed max_size ({max_size})")

        self.min_size = min_size
        self.max_size = max_size
        self.max_idle_time = timedelta(seconds=max_idle_time)
        self.max_lifetime = timedelta(seconds=max_lifetime)
        self.health_check_interval = health_check_interval
        self.acquire_timeout = acquire_timeout
        self.pool_name = pool_name

        self._pool: Queue[PooledConnection] = Queue(maxsize=max_size)
        self._all_connections: list[PooledConnection] = []
        self._lock = threading.RLock()
        self._closed = threading.Event()

        self._fill_to_min_size("initialization")

        self._health_check_thread: threading.Thread | None = None
        if health_check_interval > 0:
            self._health_check_thread = threading.Thread(
                target=self._health_check_worker,
                name=f"{pool_name}-health",
                daemon=True,
            )
            self._health_check_thread.start()

        logger.info(
            f"Initialized {self.__class__.__name__} '{pool_name}' "
            f"(min={min_size}, max={max_size})"
        )

    def _create_connection(self) -> Any:
        raise NotImplementedError

    def _is_connection_healthy(self, conn: Any) -> bool:
        raise NotImplementedError

    def _close_connection(self, conn: Any) -> None:
        raise NotImplementedError

    def _get_db_type(self) -> str:
        raise NotImplementedError

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def _labels(self) -> dict[str, str]:
        return {"database_type": self._get_db_type(), "pool_name": self.pool_name}

    def _record_error(self, error_type: str) -> None:
        CONNECTION_POOL_ERRORS.labels(**self._labels(), error_type=error_type).inc()

    def _open_new(self, error_type: str, propagate: bool = False) -> PooledConnection | None:
        """Open and register a connection; must be called with the lock held."""
        try:
            pooled_conn = PooledConnection(connection=self._create_connection())
        except Exception as e:
            logger.error(f"Failed to open connection for pool '{self.pool_name}': {e}")
            self._record_error(error_type)
            if propagate:
                raise
            return None
        self._all_connections.append(pooled_conn)
        return pooled_conn

    def _fill_to_min_size(self, error_type: str) -> None:
        with self._lock:
            needed = self.min_size - len(self._all_connections)
            for _ in range(max(needed, 0)):
                pooled_conn = self._open_new(error_type)
                if pooled_conn is not None:
                    self._pool.put_nowait(pooled_conn)
            self._update_metrics()

    def _is_reusable(self, pooled_conn: PooledConnection) -> bool:
        now = _now()
        if now - pooled_conn.created_at > self.max_lifetime:
            logger.debug("Connection exceeded max lifetime, recycling")
            return False
        if now - pooled_conn.last_used > self.max_idle_time:
            logger.debug("Connection exceeded max idle time, recycling")
            return False
        try:
            return self._is_connection_healthy(pooled_conn.connection)
        except Exception as e:
            logger.warning(f"Health check failed: {e}")
            self._record_error("health_check")
            return False

    def _recycle_connection(self, pooled_conn: PooledConnection) -> None:
        try:
            self._close_connection(pooled_conn.connection)
        except Exception as e:
            logger.warning(f"Error closing connection: {e}")
        finally:
            with self._lock:
                if pooled_conn in self._all_connections:
                    self._all_connections.remove(pooled_conn)
                self._update_metrics()

    def _health_check_worker(self) -> None:
        while not self._closed.wait(self.health_check_interval):
            try:
                self._perform_health_checks()
            except Exception as e:
                logger.error(f"Health check worker error: {e}")

    def _perform_health_checks(self) -> None:
        """Recycle stale idle connections, then top the pool back up to min_size."""
        if self.closed:
            return

        idle: list[PooledConnection] = []
        while True:
            try:
                idle.append(self._pool.get_nowait())
            except Empty:
                break

        for pooled_conn in idle:
            if self._is_reusable(pooled_conn):
                self._pool.put_nowait(pooled_conn)
            else:
                self._recycle_connection(pooled_conn)
                logger.info(f"Recycled stale connection in pool '{self.pool_name}'")

        self._fill_to_min_size("replenishment")

    def _update_metrics(self) -> None:
        with self._lock:
            total_size = len(self._all_connections)
            active_size = total_size - self._pool.qsize()
        CONNECTION_POOL_SIZE.labels(**self._labels()).set(total_size)
        CONNECTION_POOL_ACTIVE.labels(**self._labels()).set(max(active_size, 0))

    def _checkout(self) -> PooledConnection:
        deadline = time.monotonic() + self.acquire_timeout
        waited = False

        while True:
            if self.closed:
                raise PoolClosedError(f"Connection pool '{self.pool_name}' is closed")

            pooled_conn: PooledConnection | None = None
            try:
                pooled_conn = self._pool.get_nowait()
            except Empty:
                with self._lock:
                    if len(self._all_connections) < self.max_size:
                        pooled_conn = self._open_new("creation", propagate=True)
                # Freshly opened
                if pooled_conn is not None:
                    return pooled_conn

            if pooled_conn is None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise PoolExhaustedError(
                        f"No connection available in '{self.pool_name}' "
                        f"within {self.acquire_timeout}s"
                    )
                if not waited:
                    CONNECTION_POOL_WAITS.labels(**self._labels()).inc()
                    waited = True
                try:
                    pooled_conn = self._pool.get(timeout=min(remaining, 1.0))
                except Empty:
                    continue

            if self._is_reusable(pooled_conn):
                return pooled_conn

            logger.info("Connection unhealthy, recycling and retrying")
            self._recycle_connection(pooled_conn)

    @contextmanager
    def acquire(self) -> Iterator[Any]:
        """
        Check a connection out for the duration of the block.

        The connection goes back to the pool afterwards. If the block raised
        and the connection fails its health check, it is closed instead.

        Raises:
            PoolClosedError: If the pool is closed
            PoolExhaustedError: If no connection is available within the timeout
        """
        start_time = time.monotonic()

        with trace_operation(
            "db_pool.acquire",
            kind=trace.SpanKind.CLIENT,
            database_type=self._get_db_type(),
            pool_name=self.pool_name,
        ):
            pooled_conn = self._checkout()

        pooled_conn.mark_used()
        self._update_metrics()
        CONNECTION_ACQUIRE_TIME.labels(**self._labels()).observe(
            time.monotonic() - start_time
        )

        failed = False
        try:
            yield pooled_conn.connection
        except BaseException:
            failed = True
            raise
        finally:
            self._release(pooled_conn, failed)

    def _release(self, pooled_conn: PooledConnection, failed: bool) -> None:
        if self.closed or (failed and not self._is_reusable(pooled_conn)):
            self._recycle_connection(pooled_conn)
            return
        try:
            self._pool.put_nowait(pooled_conn)
        except Full:
            logger.error(f"Pool '{self.pool_name}' overfull on release, closing connection")
            self._recycle_connection(pooled_conn)
            return
        self._update_metrics()

    def close(self) -> None:
        """Close every connection and stop the health check thread."""
        if self.closed:
            return

        logger.info(f"Closing connection pool '{self.pool_name}'")
        self._closed.set()

        with self._lock:
            for pooled_conn in self._all_connections:
                try:
                    self._close_connection(pooled_conn.connection)
                except Exception as e:
                    logger.warning(f"Error closing connection: {e}")
            self._all_connections.clear()

            while True:
                try:
                    self._pool.get_nowait()
                except Empty:
                    break

        self._update_metrics()
        logger.info(f"Connection pool '{self.pool_name}' closed")

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            total_size = len(self._all_connections)
            idle_size = self._pool.qsize()

            return {
                "pool_name": self.pool_name,
                "total_connections": total_size,
                "idle_connections": idle_size,
                "active_connections": total_size - idle_size,
                "min_size": self.min_size,
                "max_size": self.max_size,
                "closed": self.closed,
            }
