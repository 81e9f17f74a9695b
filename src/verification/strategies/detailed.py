"""
DETAILED strategy: run ``base EXCEPT target`` and ``target EXCEPT base``
over the compared columns and report the rows from each side.
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
    column_projection,
    fetch_rows,
    format_row,
    new_outcome,
    run_count_check,
)

logger = logging.getLogger(__name__)


def build_except_query(
    left_db: str,
    right_db: str,
    table: str,
    columns: list[str] | tuple[str, ...],
    where_condition: str,
    sample_limit: int,
) -> str:
    """Rows of left_db.table missing from right_db.table, ordered by the first column."""
    where = where_condition or "1=1"
    projection = column_projection(columns)
    return (
        f"SELECT {projection} FROM {qualified_table(left_db, table)} WHERE {where} "
        f"EXCEPT "
        f"SELECT {projection} FROM {qualified_table(right_db, table)} WHERE {where} "
        f"ORDER BY {quote_identifier(columns[0])} "
        f"LIMIT {sample_limit}"
    )


def verify_detailed(
    connection: Any,
    base_db: str,
    target_db: str,
    table: str,
    columns: list[str] | tuple[str, ...],
    where_condition: str,
    sample_limit: int,
) -> ComparisonOutcome:
    """
    Compare two tables with EXCEPT in both directions.

    Returns:
        ComparisonOutcome with MATCH or MISMATCH; query failures propagate
    """
    check_inputs(columns, sample_limit)
    logger.info(f"Starting DETAILED verification (EXCEPT) for {base_db}.{table}")

    outcome = new_outcome(table, base_db, target_db, where_condition, VerificationMode.DETAILED)

    check = run_count_check(connection, base_db, target_db, table, where_condition)
    if apply_count_check(outcome, check):
        return outcome.complete()

    base_only = fetch_rows(
        connection,
        build_except_query(base_db, target_db, table, columns, where_condition, sample_limit),
        "EXCEPT", table, base_db,
    )
    target_only = fetch_rows(
        connection,
        build_except_query(target_db, base_db, table, columns, where_condition, sample_limit),
        "EXCEPT", table, target_db,
    )

    if not base_only and not target_only:
        outcome.status = VerificationStatus.MATCH
        outcome.message = "All rows are identical"
        outcome.differences_found = 0
    else:
        total = len(base_only) + len(target_only)
        outcome.status = VerificationStatus.MISMATCH
        outcome.message = (
            f"Found {total} differences "
            f"({len(base_only)} in base, {len(target_only)} in target)"
        )
        outcome.differences_found = total
        outcome.sample_differences = (
            [f"{BASE_ONLY} {format_row(row)}" for row in base_only]
            + [f"{TARGET_ONLY} {format_row(row)}" for row in target_only]
        )

    outcome.complete()
    logger.info(
        f"DETAILED verification completed - Status: {outcome.status.value}, "
        f"Differences: {outcome.differences_found}"
    )
    return outcome
