"""
Run reports for verification results.

Turns VerificationMetrics into report dictionaries and renders them for
the console, JSON or CSV. Exit codes for callers are derived here too.
"""

import csv
import json
from datetime import UTC, datetime
from typing import Any

from .models import VerificationMetrics

EXIT_OK = 0
EXIT_DIFFERENCES = 1
EXIT_ERROR = 2

STATUS_PASS = "PASS"
STATUS_DIFFERENCES = "DIFFERENCES"
STATUS_ERROR = "ERROR"

_STATUS_BY_EXIT_CODE = {
    EXIT_OK: STATUS_PASS,
    EXIT_DIFFERENCES: STATUS_DIFFERENCES,
    EXIT_ERROR: STATUS_ERROR,
}


def determine_exit_code(metrics: VerificationMetrics | None) -> int:
    """
    Map run metrics to a process exit code.

    Returns:
        0 when clean, 1 when differences were found, 2 when any error was
        recorded or the run produced no metrics at all
    """
    if metrics is None or metrics.has_errors:
        return EXIT_ERROR
    if metrics.differences_found > 0:
        return EXIT_DIFFERENCES
    return EXIT_OK


def build_table_report(
    table: str,
    mode: str,
    metrics: VerificationMetrics | None,
    error: str | None = None,
) -> dict[str, Any]:
    """
    Summarize one table run.

    Args:
        table: Table name
        mode: Verification mode used
        metrics: Metrics returned by the verifier, None if the run raised
        error: Message of the exception that aborted the run, if any
    """
    if metrics is None:
        return {
            "table": table,
            "mode": mode,
            "status": STATUS_ERROR,
            "rows_processed": 0,
            "differences_found": 0,
            "partitions_processed": 0,
            "errors": [error or "Verification did not complete"],
            "partition_durations_ms": {},
            "elapsed_ms": 0,
        }

    snapshot = metrics.snapshot()
    return {
        "table": table,
        "mode": mode,
        "status": _STATUS_BY_EXIT_CODE[determine_exit_code(metrics)],
        "rows_processed": snapshot["rows_processed"],
        "differences_found": snapshot["differences_found"],
        "partitions_processed": snapshot["partitions_processed"],
        "errors": snapshot["errors"],
        "partition_durations_ms": snapshot["partition_durations"],
        "elapsed_ms": metrics.elapsed_ms,
    }


def generate_report(table_reports: list[dict[str, Any]], odate: str | None = None) -> dict[str, Any]:
    """
    Aggregate table reports into one run report.

    The overall status is the worst table status (ERROR > DIFFERENCES > PASS).
    """
    passed = [r for r in table_reports if r["status"] == STATUS_PASS]
    differing = [r for r in table_reports if r["status"] == STATUS_DIFFERENCES]
    failed = [r for r in table_reports if r["status"] == STATUS_ERROR]

    if not table_reports:
        status = "NO_DATA"
    elif failed:
        status = STATUS_ERROR
    elif differing:
        status = STATUS_DIFFERENCES
    else:
        status = STATUS_PASS

    return {
        "status": status,
        "odate": odate,
        "timestamp": datetime.now(UTC).isoformat(),
        "total_tables": len(table_reports),
        "tables_passed": len(passed),
        "tables_with_differences": len(differing),
        "tables_failed": len(failed),
        "rows_processed": sum(r["rows_processed"] for r in table_reports),
        "differences_found": sum(r["differences_found"] for r in table_reports),
        "tables": table_reports,
    }


def format_report_console(report: dict[str, Any], show_partitions: bool = False) -> str:
    """Render a run report as plain text."""
    lines = [
        "=" * 80,
        "VERIFICATION REPORT",
        "=" * 80,
        f"Status: {report['status']}",
        f"Timestamp: {report['timestamp']}",
    ]
    if report.get("odate"):
        lines.append(f"Odate: {report['odate']}")
    lines.extend([
        f"Tables: {report['total_tables']} "
        f"(passed {report['tables_passed']}, "
        f"differences {report['tables_with_differences']}, "
        f"failed {report['tables_failed']})",
        f"Rows processed: {report['rows_processed']:,}",
        f"Differences found: {report['differences_found']:,}",
        "-" * 80,
    ])

    for table in report["tables"]:
        lines.append(
            f"{table['status']:<12} {table['table']} [{table['mode']}] "
            f"rows={table['rows_processed']:,} differences={table['differences_found']:,} "
            f"partitions={table['partitions_processed']} ({table['elapsed_ms']}ms)"
        )
        for error in table["errors"]:
            lines.append(f"    ! {error}")
        if show_partitions:
            durations = sorted(
                table["partition_durations_ms"].items(), key=lambda item: item[1], reverse=True
            )
            for partition, duration_ms in durations:
                lines.append(f"    {partition}: {duration_ms}ms")

    lines.append("=" * 80)
    return "\n".join(lines)


def export_report_json(report: dict[str, Any], output_path: str) -> None:
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(report, f, indent=2, default=str)


def export_report_csv(report: dict[str, Any], output_path: str) -> None:
    """One CSV row per table."""
    with open(output_path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow([
            "Table", "Mode", "Status", "Rows Processed",
            "Differences Found", "Partitions Processed", "Errors",
        ])
        for table in report["tables"]:
            writer.writerow([
                table["table"],
                table["mode"],
                table["status"],
                table["rows_processed"],
                table["differences_found"],
                table["partitions_processed"],
                "; ".join(table["errors"]),
            ])
