"""ODBC connection pool for the SQL engine (Spark Thrift / Hive)."""

from typing import Any

import pyodbc
from opentelemetry import trace

from utils.tracing import trace_operation

from .base import BaseConnectionPool


class EngineConnectionPool(BaseConnectionPool):
    """
    Connection pool for the query engine.

    Both logical databases under comparison live behind the same engine and
    are addressed as ``db.table``, so a single pool serves every query.
    """

    def __init__(
        self,
        connection_string: str | None = None,
        dsn: str | None = None,
        username: str | None = None,
        password: str | None = None,
        login_timeout: int = 30,
        **kwargs: Any,
    ):
        """
        Args:
            connection_string: Complete ODBC connection string
            dsn: ODBC data source name (alternative to connection_string)
            username: Engine user, appended as UID when given
            password: Engine password, appended as PWD when given
            login_timeout: Seconds pyodbc waits for the login to complete
            **kwargs: Additional arguments for BaseConnectionPool
        """
        if not connection_string and not dsn:
            raise ValueError("Either connection_string or dsn must be provided")

        parts = [connection_string.rstrip(";")] if connection_string else [f"DSN={dsn}"]
        if username:
            parts.append(f"UID={username}")
        if password:
            parts.append(f"PWD={password}")
        self._connection_string = ";".join(parts) + ";"
        self.login_timeout = login_timeout

        kwargs.setdefault("pool_name", "engine")
        super().__init__(**kwargs)

    def _create_connection(self) -> pyodbc.Connection:
        with trace_operation(
            "engine.connect",
            kind=trace.SpanKind.CLIENT,
            pool_name=self.pool_name,
        ):
            conn = pyodbc.connect(
                self._connection_string,
                autocommit=True,
                timeout=self.login_timeout,
            )
            return conn

    def _is_connection_healthy(self, conn: pyodbc.Connection) -> bool:
        if conn is None:
            return False
        try:
            cursor = conn.cursor()
            try:
                cursor.execute("SELECT 1")
                cursor.fetchone()
            finally:
                cursor.close()
            return True
        except pyodbc.Error:
            return False

    def _close_connection(self, conn: pyodbc.Connection) -> None:
        if conn is not None:
            conn.close()

    def _get_db_type(self) -> str:
        return "engine"
