"""
Multi-table verification with FAST-to-DETAILED escalation.

Each table is verified in FAST mode first. Tables with differences are
re-verified in DETAILED mode under the run id ``<mid>_detailed`` so the
stored samples show the differing rows from each side.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from .models import VerificationMetrics, VerificationMode
from .report import (
    EXIT_DIFFERENCES,
    EXIT_ERROR,
    EXIT_OK,
    build_table_report,
    determine_exit_code,
)

logger = logging.getLogger(__name__)

DETAILED_MID_SUFFIX = "_detailed"


@dataclass
class BatchResult:
    passed: list[str] = field(default_factory=list)
    with_differences: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    table_reports: list[dict[str, Any]] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.passed) + len(self.with_differences) + len(self.failed)

    @property
    def exit_code(self) -> int:
        if self.failed:
            return EXIT_ERROR
        if self.with_differences:
            return EXIT_DIFFERENCES
        return EXIT_OK


def load_table_list(tables: str | None = None, tables_file: str | None = None) -> list[str]:
    """
    Read table names from a comma-separated string and/or a file.

    The file holds one table per line; blank lines and ``#`` comments are
    skipped. Duplicates are dropped, first occurrence wins.
    """
    names: list[str] = []
    if tables:
        names.extend(t.strip() for t in tables.split(","))
    if tables_file:
        with open(tables_file, encoding="utf-8") as f:
            for line in f:
                line = line.split("#", 1)[0].strip()
                if line:
                    names.append(line)
    return list(dict.fromkeys(n for n in names if n))


def run_batch(
    verifier: Any,
    tables: Iterable[str],
    base_database: str,
    target_database: str,
    odate: str,
    mid: str,
    where_condition: str = "1=1",
    exclude_columns: str | Iterable[str] | None = None,
    escalate: bool = True,
) -> BatchResult:
    """
    Verify tables one after another; a failing table never stops the batch.

    Args:
        verifier: TableVerifier (anything with a compatible verify_table)
        escalate: Re-run tables with differences in DETAILED mode

    Returns:
        BatchResult with the table names grouped by outcome
    """
    result = BatchResult()
    tables = list(tables)

    logger.info(
        f"Batch verification of {len(tables)} table(s): {base_database} vs "
        f"{target_database} (odate={odate}, mid={mid})"
    )

    for table in tables:
        metrics = _verify_one(
            verifier, table, base_database, target_database, odate, mid,
            where_condition, exclude_columns, VerificationMode.FAST, result,
        )
        if metrics is None:
            continue

        exit_code = determine_exit_code(metrics)
        if exit_code == EXIT_OK:
            logger.info(f"✓ {table} verification passed (FAST mode)")
            result.passed.append(table)
        elif exit_code == EXIT_ERROR:
            logger.error(f"✗ {table} verification recorded errors")
            result.failed.append(table)
        elif not escalate:
            logger.warning(f"⚠ {table} has differences")
            result.with_differences.append(table)
        else:
            logger.warning(f"⚠ {table} has differences - running DETAILED mode...")
            detailed = _verify_one(
                verifier, table, base_database, target_database, odate,
                f"{mid}{DETAILED_MID_SUFFIX}", where_condition, exclude_columns,
                VerificationMode.DETAILED, result,
            )
            if detailed is not None:
                result.with_differences.append(table)

    logger.info(
        f"Batch complete: {len(result.passed)} passed, "
        f"{len(result.with_differences)} with differences, "
        f"{len(result.failed)} failed (of {result.total})"
    )
    return result


def _verify_one(
    verifier: Any,
    table: str,
    base_database: str,
    target_database: str,
    odate: str,
    mid: str,
    where_condition: str,
    exclude_columns: str | Iterable[str] | None,
    mode: VerificationMode,
    result: BatchResult,
) -> VerificationMetrics | None:
    """Run one table; on failure record it in result and return None."""
    try:
        metrics = verifier.verify_table(
            table=table,
            base_database=base_database,
            target_database=target_database,
            odate=odate,
            mid=mid,
            where_condition=where_condition,
            exclude_columns=exclude_columns,
            mode=mode,
        )
    except Exception as e:
        logger.error(f"✗ {table} {mode.value} verification failed: {e}", exc_info=True)
        result.failed.append(table)
        result.table_reports.append(build_table_report(table, mode.value, None, str(e)))
        return None

    result.table_reports.append(build_table_report(table, mode.value, metrics))
    return metrics
