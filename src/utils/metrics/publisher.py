"""
Prometheus /metrics endpoint for the long-running scheduler.

One-shot ``verify`` and ``batch`` runs exit before a scrape could happen,
so only ``schedule`` starts a publisher.
"""

import logging
import threading
from typing import Optional

from prometheus_client import (
    start_http_server,
    CollectorRegistry,
    REGISTRY,
)

logger = logging.getLogger(__name__)


class MetricsPublisher:
    """
    Owns the HTTP server exposing a registry on /metrics.

    The server runs on a daemon thread; stop() shuts it down so a scheduler
    can be restarted on the same port within one process.
    """

    def __init__(
        self,
        port: int = 9091,
        addr: str = "0.0.0.0",
        registry: Optional[CollectorRegistry] = None,
    ):
        """
        Args:
            port: Port to expose metrics on (default: 9091)
            addr: Bind address (default: all interfaces)
            registry: Custom Prometheus registry (default: global REGISTRY)
        """
        self.port = port
        self.addr = addr
        self.registry = registry or REGISTRY
        self._server = None
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    def start(self) -> None:
        """Start serving; a second call while running only logs a warning."""
        with self._lock:
            if self._server is not None:
                logger.warning(f"Metrics server already running on {self.addr}:{self.port}")
                return

            try:
                self._server, self._thread = start_http_server(
                    self.port, addr=self.addr, registry=self.registry
                )
            except OSError as e:
                if "Address already in use" in str(e):
                    logger.error(f"Port {self.port} already in use, metrics will not be exposed")
                    raise RuntimeError(
                        f"Metrics server port {self.port} is already in use"
                    ) from e
                raise

            logger.info(f"Metrics server listening on {self.addr}:{self.port}")

    def stop(self) -> None:
        """Shut the server down and wait for its thread to exit."""
        with self._lock:
            if self._server is None:
                return
            self._server.shutdown()
            self._server.server_close()
            if self._thread is not None:
                self._thread.join(timeout=5)
            self._server = None
            self._thread = None
            logger.info(f"Metrics server on port {self.port} stopped")

    def is_started(self) -> bool:
        return self._server is not None

    def __enter__(self) -> "MetricsPublisher":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()
