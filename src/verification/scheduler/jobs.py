"""
Scheduled job bodies.
"""

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from ..batch import BatchResult, run_batch
from ..report import export_report_json, generate_report

logger = logging.getLogger(__name__)


def verification_batch_job(
    verifier: Any,
    tables: list[str],
    base_database: str,
    target_database: str,
    where_condition: str = "1=1",
    exclude_columns: str | None = None,
    mid_prefix: str = "scheduled",
    output_dir: str | None = None,
    now: Callable[[], datetime] = lambda: datetime.now(UTC),
) -> BatchResult:
    """
    Verify a batch of tables for today's operation date.

    The odate is the current UTC date (YYYYMMDD) and the run id is
    ``<mid_prefix>_<odate>_<HHMMSS>``. When output_dir is set the run
    report is written there as JSON.
    """
    started = now()
    odate = started.strftime("%Y%m%d")
    mid = f"{mid_prefix}_{odate}_{started.strftime('%H%M%S')}"

    logger.info(f"Starting scheduled verification run {mid}")

    result = run_batch(
        verifier,
        tables,
        base_database,
        target_database,
        odate=odate,
        mid=mid,
        where_condition=where_condition,
        exclude_columns=exclude_columns,
    )

    if output_dir:
        output_path = Path(output_dir) / f"verification_{mid}.json"
        output_path.parent.mkdir(parents=True, exist_ok=True)
        export_report_json(generate_report(result.table_reports, odate=odate), str(output_path))
        logger.info(f"Report saved to {output_path}")

    return result
