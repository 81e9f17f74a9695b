"""
Command-line argument parser configuration.

Defines the verify, batch, schedule and results commands of the
``verify-data`` tool.
"""

import argparse

from ..models import VerificationMode


def _add_connection_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--use-vault",
        action="store_true",
        help="Fetch engine and sink credentials from HashiCorp Vault",
    )


def _add_scope_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-w", "--where",
        dest="where_condition",
        default="1=1",
        help="WHERE condition applied to both sides (default: 1=1)",
    )
    parser.add_argument(
        "-e", "--exclude-columns",
        default="",
        help="Comma-separated columns left out of the comparison",
    )


def _add_database_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-d", "--base-db",
        required=True,
        help="Base (source) database name",
    )
    parser.add_argument(
        "-a", "--target-db",
        required=True,
        help="Target (destination) database name",
    )


def _add_table_list_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--tables",
        help="Comma-separated list of tables to verify",
    )
    parser.add_argument(
        "--tables-file",
        help="File containing tables to verify (one per line, # comments allowed)",
    )


def create_parser() -> argparse.ArgumentParser:
    """
    Create and configure the argument parser for the CLI.
    """
    parser = argparse.ArgumentParser(
        prog="verify-data",
        description="Partition-aware data verification between two databases on one SQL engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Verify one table (exit code 0 = clean, 1 = differences, 2 = errors)
  verify-data verify -t orders -d prod_db -a migrated_db -o 20250101 -m run_001

  # Restrict to recent partitions and skip audit columns, detailed differences
  verify-data verify -t orders -d prod_db -a migrated_db -o 20250101 -m run_001 \\
      -w "year >= 2024" -e updated_at,etl_ts --mode DETAILED

  # Verify many tables, escalating tables with differences to DETAILED
  verify-data batch -d prod_db -a migrated_db --tables-file tables.txt

  # Nightly batch at 02:00 with JSON reports
  verify-data schedule -d prod_db -a migrated_db --tables-file tables.txt \\
      --cron "0 2 * * *" --output-dir ./verification_reports

  # Summarize stored results for an operation date
  verify-data results -o 20250101
        """,
    )

    parser.add_argument(
        "--config",
        help="YAML configuration file (default: $VERIFICATION_CONFIG)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: $LOG_LEVEL or INFO)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # ========== Verify command ==========
    verify_parser = subparsers.add_parser("verify", help="Verify a single table")
    verify_parser.add_argument("-t", "--table", required=True, help="Table name to verify")
    _add_database_options(verify_parser)
    verify_parser.add_argument("-o", "--odate", required=True, help="Operation date (YYYYMMDD)")
    verify_parser.add_argument("-m", "--mid", required=True, help="Migration ID or batch identifier")
    _add_scope_options(verify_parser)
    verify_parser.add_argument(
        "--mode",
        type=str.upper,
        choices=[m.value for m in VerificationMode],
        default=VerificationMode.FAST.value,
        help="FAST (SHA fingerprints, default) or DETAILED (EXCEPT both ways)",
    )
    verify_parser.add_argument("--output", help="Write the run report to this file")
    verify_parser.add_argument(
        "--format",
        choices=["console", "json"],
        default="console",
        help="Report format (default: console)",
    )
    verify_parser.add_argument(
        "--show-partitions",
        action="store_true",
        help="List per-partition timings in the console report",
    )
    _add_connection_options(verify_parser)

    # ========== Batch command ==========
    batch_parser = subparsers.add_parser(
        "batch", help="Verify several tables, escalating differences to DETAILED"
    )
    _add_database_options(batch_parser)
    _add_table_list_options(batch_parser)
    batch_parser.add_argument("-o", "--odate", help="Operation date (default: today, YYYYMMDD)")
    batch_parser.add_argument("-m", "--mid", help="Batch identifier (default: migration_<odate>)")
    _add_scope_options(batch_parser)
    batch_parser.add_argument(
        "--no-escalate",
        action="store_true",
        help="Do not re-run tables with differences in DETAILED mode",
    )
    batch_parser.add_argument("--output", help="Write the run report to this file")
    batch_parser.add_argument(
        "--format",
        choices=["console", "json", "csv"],
        default="console",
        help="Report format (default: console)",
    )
    _add_connection_options(batch_parser)

    # ========== Schedule command ==========
    schedule_parser = subparsers.add_parser("schedule", help="Run batches periodically")
    _add_database_options(schedule_parser)
    _add_table_list_options(schedule_parser)
    _add_scope_options(schedule_parser)
    schedule_parser.add_argument(
        "--cron",
        help='Cron expression (e.g., "0 2 * * *" for daily at 02:00)',
    )
    schedule_parser.add_argument(
        "--interval",
        type=int,
        default=86400,
        help="Interval in seconds when no cron is given (default: 86400)",
    )
    schedule_parser.add_argument(
        "--mid-prefix",
        default="scheduled",
        help="Prefix of generated batch identifiers (default: scheduled)",
    )
    schedule_parser.add_argument("--output-dir", help="Directory for JSON run reports")
    schedule_parser.add_argument(
        "--metrics-port",
        type=int,
        default=None,
        help="Expose Prometheus metrics on this port while scheduling",
    )
    _add_connection_options(schedule_parser)

    # ========== Results command ==========
    results_parser = subparsers.add_parser("results", help="Summarize stored results")
    results_parser.add_argument("-o", "--odate", help="Operation date (default: today, YYYYMMDD)")
    results_parser.add_argument(
        "--limit",
        type=int,
        default=10,
        help="Maximum mismatching rows to list (default: 10)",
    )
    _add_connection_options(results_parser)

    return parser
