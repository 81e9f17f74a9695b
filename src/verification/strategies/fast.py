"""
FAST strategy: fingerprint every row with SHA-1 and FULL OUTER JOIN the
two sides on the fingerprint. Rows without a partner on the other side
are the differences. Only a sample is fetched, so the reported count is
bounded by the sample limit.
"""

import logging
from typing import Any

from utils.sql_safety import qualified_table, quote_identifier

from ..models import ComparisonOutcome, VerificationMode, VerificationStatus
from .base import (
    BASE_ONLY,
    TARGET_ONLY,
    apply_count_check,
    check_inputs,
    fetch_rows,
    format_row,
    new_outcome,
    run_count_check,
)

logger = logging.getLogger(__name__)

# Separator and NULL sentinel inside the fingerprint input, so that
# ("a", NULL) and (NULL, "a") hash differently. The sentinel is the SQL
# literal '\\N', which the engine reads as Hive's \N null text.
FINGERPRINT_SEPARATOR = "|"
FINGERPRINT_NULL = "\\\\N"


def fingerprint_expression(columns: list[str] | tuple[str, ...]) -> str:
    parts = ", ".join(
        f"coalesce(cast({quote_identifier(c)} AS STRING), '{FINGERPRINT_NULL}')"
        for c in columns
    )
    return f"sha1(concat_ws('{FINGERPRINT_SEPARATOR}', {parts}))"


def build_fingerprint_join_query(
    base_db: str,
    target_db: str,
    table: str,
    columns: list[str] | tuple[str, ...],
    where_condition: str,
    sample_limit: int,
) -> str:
    """
    Build the FULL OUTER JOIN query returning unmatched rows.

    Output columns: side label, then each compared column taken from
    whichever side is present.
    """
    where = where_condition or "1=1"
    projection = ", ".join(quote_identifier(c) for c in columns)
    fingerprint = fingerprint_expression(columns)
    merged = ", ".join(
        f"coalesce(a.{quote_identifier(c)}, b.{quote_identifier(c)}) AS {quote_identifier(c)}"
        for c in columns
    )
    return (
        f"SELECT CASE WHEN b.row_fingerprint IS NULL THEN '{BASE_ONLY}' "
        f"ELSE '{TARGET_ONLY}' END AS side, {merged} "
        f"FROM (SELECT {projection}, {fingerprint} AS row_fingerprint "
        f"FROM {qualified_table(base_db, table)} WHERE {where}) a "
        f"FULL OUTER JOIN (SELECT {projection}, {fingerprint} AS row_fingerprint "
        f"FROM {qualified_table(target_db, table)} WHERE {where}) b "
        f"ON a.row_fingerprint = b.row_fingerprint "
        f"WHERE a.row_fingerprint IS NULL OR b.row_fingerprint IS NULL "
        f"LIMIT {sample_limit}"
    )


def verify_fast(
    connection: Any,
    base_db: str,
    target_db: str,
    table: str,
    columns: list[str] | tuple[str, ...],
    where_condition: str,
    sample_limit: int,
) -> ComparisonOutcome:
    """
    Compare two tables with SHA-1 row fingerprints.

    Returns:
        ComparisonOutcome with MATCH or MISMATCH; query failures propagate
    """
    check_inputs(columns, sample_limit)
    logger.info(f"Starting FAST verification (SHA + FULL OUTER JOIN) for {base_db}.{table}")

    outcome = new_outcome(table, base_db, target_db, where_condition, VerificationMode.FAST)

    check = run_count_check(connection, base_db, target_db, table, where_condition)
    if apply_count_check(outcome, check):
        return outcome.complete()

    sql = build_fingerprint_join_query(
        base_db, target_db, table, columns, where_condition, sample_limit
    )
    rows = fetch_rows(connection, sql, "FINGERPRINT_JOIN", table, base_db)

    if not rows:
        outcome.status = VerificationStatus.MATCH
        outcome.message = "All rows match (SHA comparison)"
        outcome.differences_found = 0
    else:
        outcome.status = VerificationStatus.MISMATCH
        outcome.message = f"Found {len(rows)} sample differences"
        outcome.differences_found = len(rows)
        outcome.sample_differences = [f"{row[0]} {format_row(row[1:])}" for row in rows]

    outcome.complete()
    logger.info(
        f"FAST verification completed - Status: {outcome.status.value}, "
        f"Differences: {outcome.differences_found}"
    )
    return outcome
