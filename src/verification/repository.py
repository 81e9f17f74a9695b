"""
Durable store for comparison outcomes (PostgreSQL).

One row per outcome in ``verification_result``. A failed write is logged
and swallowed so that a sink outage never fails a verification run.
"""

import logging
from typing import Any

import psycopg2
import psycopg2.extras

from utils.db_pool import ConnectionPoolError, SinkConnectionPool

from .models import NO_PARTITION, ComparisonOutcome

logger = logging.getLogger(__name__)

MAX_STORED_SAMPLES = 10

CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS verification_result (
    id BIGSERIAL PRIMARY KEY,
    table_name VARCHAR(255) NOT NULL,
    base_database_name VARCHAR(255) NOT NULL,
    target_database_name VARCHAR(255) NOT NULL,
    partition_key VARCHAR(500),
    execution_status VARCHAR(50) NOT NULL,
    sample_data TEXT,
    start_time TIMESTAMPTZ NOT NULL,
    end_time TIMESTAMPTZ,
    processing_time_ms BIGINT,
    base_row_count BIGINT,
    target_row_count BIGINT,
    differences_found BIGINT,
    where_condition TEXT,
    verification_mode VARCHAR(50),
    odate VARCHAR(50),
    mid VARCHAR(100),
    created_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP
)
"""

CREATE_INDEX_SQL = (
    "CREATE INDEX IF NOT EXISTS idx_verification_result_table_odate "
    "ON verification_result (table_name, odate)",
    "CREATE INDEX IF NOT EXISTS idx_verification_result_status "
    "ON verification_result (execution_status)",
    "CREATE INDEX IF NOT EXISTS idx_verification_result_created "
    "ON verification_result (created_at)",
)

INSERT_SQL = """
INSERT INTO verification_result (
    table_name, base_database_name, target_database_name, partition_key,
    execution_status, sample_data, start_time, end_time, processing_time_ms,
    base_row_count, target_row_count, differences_found, where_condition,
    verification_mode, odate, mid
) VALUES (
    %(table_name)s, %(base_database_name)s, %(target_database_name)s, %(partition_key)s,
    %(execution_status)s, %(sample_data)s, %(start_time)s, %(end_time)s, %(processing_time_ms)s,
    %(base_row_count)s, %(target_row_count)s, %(differences_found)s, %(where_condition)s,
    %(verification_mode)s, %(odate)s, %(mid)s
)
"""

SUMMARY_SQL = """
SELECT execution_status,
       COUNT(*) AS count,
       ROUND(AVG(processing_time_ms) / 1000.0, 2) AS avg_time_sec
FROM verification_result
WHERE odate = %s
GROUP BY execution_status
ORDER BY execution_status
"""

MISMATCHES_SQL = """
SELECT table_name, partition_key, base_row_count, target_row_count,
       differences_found, LEFT(sample_data, 100) AS sample, mid
FROM verification_result
WHERE odate = %s AND execution_status = 'MISMATCH'
ORDER BY created_at DESC
LIMIT %s
"""

# Errors that mean "the sink is unavailable", as opposed to programming errors
SINK_ERRORS = (psycopg2.Error, ConnectionPoolError)


def format_sample_data(outcome: ComparisonOutcome) -> str:
    """
    Render the message plus up to ten sample differences for storage.

    Layout: message, blank line, "Sample differences:", one sample per
    line, then "... (truncated)" when more than ten were collected.
    """
    if not outcome.sample_differences:
        return outcome.message

    lines = [outcome.message, "", "Sample differences:"]
    lines.extend(outcome.sample_differences[:MAX_STORED_SAMPLES])
    text = "\n".join(lines) + "\n"
    if len(outcome.sample_differences) > MAX_STORED_SAMPLES:
        text += "... (truncated)"
    return text


class ResultRepository:
    """Writes and reads verification results through the sink pool."""

    def __init__(self, pool: SinkConnectionPool):
        self.pool = pool

    def ensure_schema(self) -> bool:
        """Create the result table and its indexes if missing; returns success."""
        try:
            with self.pool.acquire() as conn:
                with conn.cursor() as cursor:
                    cursor.execute(CREATE_TABLE_SQL)
                    for statement in CREATE_INDEX_SQL:
                        cursor.execute(statement)
            logger.info("Verified verification_result table exists")
            return True
        except SINK_ERRORS as e:
            logger.warning(f"Could not create verification_result table: {e}")
            return False

    @staticmethod
    def build_record(outcome: ComparisonOutcome, odate: str, mid: str) -> dict[str, Any]:
        return {
            "table_name": outcome.table_name,
            "base_database_name": outcome.base_database,
            "target_database_name": outcome.target_database,
            "partition_key": outcome.partition or NO_PARTITION,
            "execution_status": outcome.status.value,
            "sample_data": format_sample_data(outcome),
            "start_time": outcome.start_time,
            "end_time": outcome.end_time,
            "processing_time_ms": outcome.duration_ms,
            "base_row_count": outcome.base_count,
            "target_row_count": outcome.target_count,
            "differences_found": outcome.differences_found,
            "where_condition": outcome.where_condition,
            "verification_mode": outcome.mode.value,
            "odate": odate,
            "mid": mid,
        }

    def save(self, outcome: ComparisonOutcome, odate: str, mid: str) -> bool:
        """
        Persist one outcome.

        Returns:
            True when the row was written, False when the write failed
            (the failure is logged, never raised)
        """
        record = self.build_record(outcome, odate, mid)
        try:
            with self.pool.acquire() as conn:
                with conn.cursor() as cursor:
                    cursor.execute(INSERT_SQL, record)
            logger.debug(
                f"Saved result for {outcome.table_name} [{record['partition_key']}]: "
                f"{record['execution_status']}"
            )
            return True
        except SINK_ERRORS as e:
            logger.error(
                f"Failed to save verification result for {outcome.table_name} "
                f"[{record['partition_key']}]: {e}",
                exc_info=True,
            )
            return False

    def summarize(self, odate: str) -> list[dict[str, Any]]:
        """Status counts and average duration in seconds for one odate."""
        with self.pool.acquire() as conn:
            with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cursor:
                cursor.execute(SUMMARY_SQL, (odate,))
                return [dict(row) for row in cursor.fetchall()]

    def find_mismatches(self, odate: str, limit: int = 10) -> list[dict[str, Any]]:
        """Most recent MISMATCH rows for one odate."""
        with self.pool.acquire() as conn:
            with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cursor:
                cursor.execute(MISMATCHES_SQL, (odate, limit))
                return [dict(row) for row in cursor.fetchall()]
