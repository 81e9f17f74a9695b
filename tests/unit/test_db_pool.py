"""
Unit tests for database connection pooling.

Tests pool checkout and return, recycling, exhaustion, closing, the
engine and sink pool drivers, and the PoolManager.
"""

import threading
import time
from datetime import timedelta
from unittest.mock import MagicMock, Mock, patch

import psycopg2
import pyodbc
import pytest

from utils.db_pool import (
    BaseConnectionPool,
    ConnectionPoolError,
    EngineConnectionPool,
    PoolClosedError,
    PooledConnection,
    PoolExhaustedError,
    PoolManager,
    SinkConnectionPool,
    mask_connection_string,
)


class MockConnectionPool(BaseConnectionPool):
    """Pool over Mock connections with a switchable health flag."""

    def __init__(self, **kwargs):
        self.created = 0
        self.closed_connections = []
        self.healthy = True
        self.fail_creation = False
        kwargs.setdefault("health_check_interval", 0)
        kwargs.setdefault("pool_name", "test")
        super().__init__(**kwargs)

    def _create_connection(self):
        if self.fail_creation:
            raise ConnectionError("database unreachable")
        self.created += 1
        return Mock(name=f"conn-{self.created}")

    def _is_connection_healthy(self, conn):
        return self.healthy

    def _close_connection(self, conn):
        self.closed_connections.append(conn)

    def _get_db_type(self):
        return "mock"


class TestPooledConnection:

    def test_mark_used_updates_timestamp_and_count(self):
        pooled = PooledConnection(connection=Mock())
        pooled.last_used -= timedelta(minutes=5)
        before = pooled.last_used

        pooled.mark_used()

        assert pooled.last_used > before
        assert pooled.use_count == 1


class TestBaseConnectionPool:

    def test_min_size_connections_are_opened_eagerly(self):
        pool = MockConnectionPool(min_size=2, max_size=4)

        assert pool.created == 2
        assert pool.get_stats()["idle_connections"] == 2
        pool.close()

    @pytest.mark.parametrize("min_size,max_size", [(0, 0), (3, 2)])
    def test_invalid_sizes(self, min_size, max_size):
        with pytest.raises(ValueError):
            MockConnectionPool(min_size=min_size, max_size=max_size)

    def test_connection_is_returned_after_block(self):
        pool = MockConnectionPool(min_size=1, max_size=2)

        with pool.acquire() as conn:
            assert pool.get_stats()["active_connections"] == 1
            first = conn

        with pool.acquire() as conn:
            assert conn is first

        assert pool.get_stats()["active_connections"] == 0
        pool.close()

    def test_pool_grows_up_to_max_size(self):
        pool = MockConnectionPool(min_size=0, max_size=2)

        with pool.acquire() as a, pool.acquire() as b:
            assert a is not b
            assert pool.get_stats()["total_connections"] == 2

        pool.close()

    def test_exhausted_pool_times_out(self):
        pool = MockConnectionPool(min_size=1, max_size=1, acquire_timeout=0.2)

        with pool.acquire():
            started = time.monotonic()
            with pytest.raises(PoolExhaustedError):
                with pool.acquire():
                    pass
            assert time.monotonic() - started >= 0.2

        pool.close()

    def test_waiting_checkout_gets_released_connection(self):
        pool = MockConnectionPool(min_size=1, max_size=1, acquire_timeout=5)
        acquired = threading.Event()
        release = threading.Event()

        def holder():
            with pool.acquire():
                acquired.set()
                release.wait(5)

        thread = threading.Thread(target=holder)
        thread.start()
        acquired.wait(5)
        threading.Timer(0.1, release.set).start()

        with pool.acquire() as conn:
            assert conn is not None

        thread.join()
        assert pool.created == 1
        pool.close()

    def test_creation_error_reaches_caller(self):
        pool = MockConnectionPool(min_size=0, max_size=1, acquire_timeout=30)
        pool.fail_creation = True

        started = time.monotonic()
        with pytest.raises(ConnectionError, match="unreachable"):
            with pool.acquire():
                pass
        assert time.monotonic() - started < 5

        pool.close()

    def test_failed_block_recycles_unhealthy_connection(self):
        pool = MockConnectionPool(min_size=1, max_size=1)

        with pytest.raises(RuntimeError):
            with pool.acquire() as conn:
                pool.healthy = False
                raise RuntimeError("query failed")

        assert conn in pool.closed_connections
        assert pool.get_stats()["total_connections"] == 0
        pool.close()

    def test_failed_block_keeps_healthy_connection(self):
        pool = MockConnectionPool(min_size=1, max_size=1)

        with pytest.raises(RuntimeError):
            with pool.acquire():
                raise RuntimeError("bad SQL")

        assert pool.closed_connections == []
        assert pool.get_stats()["idle_connections"] == 1
        pool.close()

    def test_expired_connection_is_replaced_on_checkout(self):
        pool = MockConnectionPool(min_size=1, max_size=1, max_lifetime=0)
        time.sleep(0.01)

        with pool.acquire():
            pass

        assert pool.created == 2
        assert len(pool.closed_connections) == 1
        pool.close()

    def test_health_sweep_recycles_and_replenishes(self):
        pool = MockConnectionPool(min_size=2, max_size=2)
        pool.healthy = False

        pool._perform_health_checks()

        assert len(pool.closed_connections) == 2
        assert pool.created == 4
        pool.close()

    def test_closed_pool_rejects_checkout(self):
        pool = MockConnectionPool(min_size=1, max_size=1)
        pool.close()

        assert pool.closed
        with pytest.raises(PoolClosedError):
            with pool.acquire():
                pass

    def test_close_is_idempotent(self):
        pool = MockConnectionPool(min_size=2, max_size=2)

        pool.close()
        pool.close()

        assert len(pool.closed_connections) == 2

    def test_health_check_thread_stops_on_close(self):
        pool = MockConnectionPool(min_size=0, max_size=1, health_check_interval=1)

        assert pool._health_check_thread.is_alive()
        pool.close()
        pool._health_check_thread.join(2)

        assert not pool._health_check_thread.is_alive()


class TestEngineConnectionPool:

    @patch("utils.db_pool.engine.pyodbc.connect")
    def test_connection_string_gets_credentials(self, mock_connect):
        pool = EngineConnectionPool(
            connection_string="DSN=spark;",
            username="etl",
            password="secret",
            login_timeout=15,
            health_check_interval=0,
        )

        mock_connect.assert_called_once_with(
            "DSN=spark;UID=etl;PWD=secret;", autocommit=True, timeout=15
        )
        assert pool.pool_name == "engine"
        pool.close()

    @patch("utils.db_pool.engine.pyodbc.connect")
    def test_dsn_only(self, mock_connect):
        pool = EngineConnectionPool(dsn="spark-thrift", health_check_interval=0)

        assert mock_connect.call_args[0][0] == "DSN=spark-thrift;"
        pool.close()

    def test_requires_connection_target(self):
        with pytest.raises(ValueError):
            EngineConnectionPool()

    @patch("utils.db_pool.engine.pyodbc.connect")
    def test_health_check_failure(self, mock_connect):
        pool = EngineConnectionPool(dsn="spark", min_size=0, health_check_interval=0)
        conn = MagicMock()
        conn.cursor.return_value.execute.side_effect = pyodbc.Error("gone")

        assert pool._is_connection_healthy(conn) is False
        assert pool._is_connection_healthy(None) is False
        pool.close()


class TestSinkConnectionPool:

    @patch("utils.db_pool.sink.psycopg2.connect")
    def test_connects_with_autocommit(self, mock_connect):
        pool = SinkConnectionPool(
            host="db", port=5432, database="verification", user="u", password="p",
            health_check_interval=0,
        )

        kwargs = mock_connect.call_args.kwargs
        assert kwargs["dbname"] == "verification"
        assert kwargs["application_name"] == "data-verification"
        mock_connect.return_value.set_session.assert_called_once_with(autocommit=True)
        pool.close()

    @patch("utils.db_pool.sink.psycopg2.connect")
    def test_closed_connection_is_unhealthy(self, mock_connect):
        pool = SinkConnectionPool(
            host="db", port=5432, database="v", user="u", password="p",
            min_size=0, health_check_interval=0,
        )
        conn = MagicMock(closed=1)

        assert pool._is_connection_healthy(conn) is False
        pool.close()

    @patch("utils.db_pool.sink.psycopg2.connect")
    def test_failed_health_query_is_unhealthy(self, mock_connect):
        pool = SinkConnectionPool(
            host="db", port=5432, database="v", user="u", password="p",
            min_size=0, health_check_interval=0,
        )
        conn = MagicMock(closed=0)
        conn.cursor.return_value.__enter__.return_value.execute.side_effect = (
            psycopg2.OperationalError("terminated")
        )

        assert pool._is_connection_healthy(conn) is False
        pool.close()


class TestPoolManager:

    @patch("utils.db_pool.SinkConnectionPool")
    @patch("utils.db_pool.EngineConnectionPool")
    def test_create_merges_defaults(self, mock_engine, mock_sink):
        manager = PoolManager.create(
            {"dsn": "spark", "max_size": 8},
            {"host": "db", "port": 5432, "database": "v"},
            acquire_timeout=12,
        )

        mock_engine.assert_called_once_with(dsn="spark", max_size=8, acquire_timeout=12)
        mock_sink.assert_called_once_with(host="db", port=5432, database="v", acquire_timeout=12)
        assert manager.sink_pool is mock_sink.return_value

    @patch("utils.db_pool.SinkConnectionPool", side_effect=psycopg2.OperationalError("down"))
    @patch("utils.db_pool.EngineConnectionPool")
    def test_sink_failure_closes_engine_pool(self, mock_engine, mock_sink):
        with pytest.raises(psycopg2.OperationalError):
            PoolManager.create({"dsn": "spark"}, {"host": "db"})

        mock_engine.return_value.close.assert_called_once()

    def test_sink_connection_without_sink_pool(self):
        manager = PoolManager(engine_pool=Mock())

        with pytest.raises(ConnectionPoolError):
            manager.sink_connection()

    def test_context_manager_closes_both_pools(self):
        engine, sink = Mock(), Mock()

        with PoolManager(engine, sink) as manager:
            manager.engine_connection()

        engine.acquire.assert_called_once()
        engine.close.assert_called_once()
        sink.close.assert_called_once()

    def test_stats(self):
        engine = Mock()
        engine.get_stats.return_value = {"pool_name": "engine"}

        assert PoolManager(engine).get_stats() == {"engine": {"pool_name": "engine"}}


class TestMaskConnectionString:

    @pytest.mark.parametrize(
        "raw,masked",
        [
            ("DSN=spark;UID=etl;PWD=s3cret;", "DSN=spark;UID=etl;PWD=****;"),
            ("host=db password=abc user=x", "host=db password=**** user=x"),
            ("postgresql://etl:s3cret@db:5432/r", "postgresql://etl:****@db:5432/r"),
            (None, ""),
        ],
    )
    def test_masking(self, raw, masked):
        assert mask_connection_string(raw) == masked
