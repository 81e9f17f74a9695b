"""
Shared pieces of the comparison strategies: the phase-1 count check and
row rendering for sample differences.
"""

import logging
from dataclasses import dataclass
from typing import Any

from utils.sql_safety import qualified_table, quote_identifier, validate_integer_param
from utils.tracing import trace_engine_query

from ..models import ComparisonOutcome, VerificationMode, VerificationStatus
from ..queries import fetch_all, fetch_one

logger = logging.getLogger(__name__)

NULL_MARKER = "[NULL]"
BINARY_MARKER = "[BLOB]"
BASE_ONLY = "[BASE ONLY]"
TARGET_ONLY = "[TARGET ONLY]"


@dataclass(frozen=True)
class CountCheck:
    base_count: int
    target_count: int

    @property
    def counts_match(self) -> bool:
        return self.base_count == self.target_count

    @property
    def both_empty(self) -> bool:
        return self.base_count == 0 and self.target_count == 0


def build_count_query(base_db: str, target_db: str, table: str, where_condition: str) -> str:
    """One round trip returning both sides' row counts."""
    where = where_condition or "1=1"
    return (
        f"SELECT "
        f"(SELECT COUNT(*) FROM {qualified_table(base_db, table)} WHERE {where}) AS base_count, "
        f"(SELECT COUNT(*) FROM {qualified_table(target_db, table)} WHERE {where}) AS target_count"
    )


def run_count_check(
    connection: Any,
    base_db: str,
    target_db: str,
    table: str,
    where_condition: str,
) -> CountCheck:
    """Execute the count query and return both counts."""
    with trace_engine_query("COUNT", table, base_db):
        row = fetch_one(connection, build_count_query(base_db, target_db, table, where_condition))
    if row is None:
        raise RuntimeError(f"Count query for {table} returned no rows")
    check = CountCheck(base_count=int(row[0] or 0), target_count=int(row[1] or 0))
    logger.info(f"Row counts - Base: {check.base_count}, Target: {check.target_count}")
    return check


def apply_count_check(outcome: ComparisonOutcome, check: CountCheck) -> bool:
    """
    Record counts on the outcome and settle it when phase 2 is unnecessary.

    Returns True when the outcome is final (counts differ, or both sides
    are empty); the caller must then skip the differencing query.
    """
    outcome.base_count = check.base_count
    outcome.target_count = check.target_count

    if not check.counts_match:
        outcome.status = VerificationStatus.MISMATCH
        outcome.message = "Row count mismatch"
        outcome.differences_found = abs(check.base_count - check.target_count)
        return True

    if check.both_empty:
        outcome.status = VerificationStatus.MATCH
        outcome.message = "Both tables are empty"
        outcome.differences_found = 0
        return True

    return False


def format_value(value: Any) -> str:
    if value is None:
        return NULL_MARKER
    if isinstance(value, (bytes, bytearray, memoryview)):
        return BINARY_MARKER
    return str(value)


def format_row(row: tuple | list) -> str:
    """Render a result row as tab-separated text."""
    return "\t".join(format_value(value) for value in row)


def fetch_rows(connection: Any, sql: str, query_type: str, table: str, database: str) -> list[tuple]:
    with trace_engine_query(query_type, table, database):
        return fetch_all(connection, sql)


def column_projection(columns: list[str] | tuple[str, ...], alias: str | None = None) -> str:
    prefix = f"{alias}." if alias else ""
    return ", ".join(f"{prefix}{quote_identifier(c)}" for c in columns)


def check_inputs(columns: list[str] | tuple[str, ...], sample_limit: int) -> None:
    if not columns:
        raise ValueError("At least one column is required for comparison")
    validate_integer_param(sample_limit, "sample_limit", min_value=1)


def new_outcome(
    table: str,
    base_db: str,
    target_db: str,
    where_condition: str,
    mode: VerificationMode,
) -> ComparisonOutcome:
    return ComparisonOutcome(
        table_name=table,
        base_database=base_db,
        target_database=target_db,
        where_condition=where_condition,
        mode=mode,
    )
