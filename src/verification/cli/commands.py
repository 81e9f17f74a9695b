"""
CLI command implementations.

Each command returns the process exit code:
- 0: every compared row matched
- 1: differences were found
- 2: errors (configuration, connectivity, failed partitions)
"""

import argparse
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime

from utils.db_pool import PoolManager, SinkConnectionPool
from utils.metrics import MetricsPublisher

from ..batch import load_table_list, run_batch
from ..config import ApplicationConfig
from ..errors import ConfigurationError
from ..orchestrator import TableVerifier
from ..report import (
    EXIT_ERROR,
    EXIT_OK,
    build_table_report,
    determine_exit_code,
    export_report_csv,
    export_report_json,
    format_report_console,
    generate_report,
)
from ..repository import ResultRepository
from ..scheduler import VerificationScheduler, verification_batch_job
from .credentials import resolve_config

logger = logging.getLogger(__name__)


def _today() -> str:
    return datetime.now(UTC).strftime("%Y%m%d")


@contextmanager
def open_pools(config: ApplicationConfig) -> Iterator[PoolManager]:
    """Create engine and sink pools from configuration and close them afterwards."""
    if not config.sink.configured:
        raise ConfigurationError(
            "Result sink not configured: set sink.host and sink.user, "
            "SINK_HOST and SINK_USER, or use --use-vault"
        )
    pools = PoolManager.create(
        config.engine.pool_kwargs(config.verification.max_parallel_partitions),
        config.sink.pool_kwargs(),
    )
    try:
        yield pools
    finally:
        pools.close()


def build_verifier(config: ApplicationConfig, pools: PoolManager) -> TableVerifier:
    repository = ResultRepository(pools.sink_pool)
    repository.ensure_schema()
    return TableVerifier(pools, repository, config.verification)


def _write_report(report: dict, output: str | None, fmt: str, show_partitions: bool = False) -> None:
    if fmt == "json" and output:
        export_report_json(report, output)
        logger.info(f"Report saved to {output}")
    elif fmt == "csv" and output:
        export_report_csv(report, output)
        logger.info(f"Report saved to {output}")
    else:
        text = format_report_console(report, show_partitions=show_partitions)
        if output:
            with open(output, "w", encoding="utf-8") as f:
                f.write(text + "\n")
            logger.info(f"Report saved to {output}")
        else:
            print(text)


def cmd_verify(args: argparse.Namespace) -> int:
    """Verify one table and report the outcome."""
    metrics = None
    error = None
    try:
        config = resolve_config(args)
        with open_pools(config) as pools:
            verifier = build_verifier(config, pools)
            metrics = verifier.verify_table(
                table=args.table,
                base_database=args.base_db,
                target_database=args.target_db,
                odate=args.odate,
                mid=args.mid,
                where_condition=args.where_condition,
                exclude_columns=args.exclude_columns,
                mode=args.mode,
            )
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        error = str(e)
    except Exception as e:
        logger.error(f"Verification failed: {e}", exc_info=True)
        error = str(e)

    report = generate_report(
        [build_table_report(args.table, args.mode, metrics, error)], odate=args.odate
    )
    _write_report(report, args.output, args.format, args.show_partitions)

    exit_code = determine_exit_code(metrics)
    logger.info(f"Verification finished with exit code {exit_code}")
    return exit_code


def cmd_batch(args: argparse.Namespace) -> int:
    """Verify a list of tables, escalating differences to DETAILED."""
    tables = load_table_list(args.tables, args.tables_file)
    if not tables:
        logger.error("No tables to verify")
        return EXIT_ERROR

    odate = args.odate or _today()
    mid = args.mid or f"migration_{odate}"

    try:
        config = resolve_config(args)
        with open_pools(config) as pools:
            result = run_batch(
                build_verifier(config, pools),
                tables,
                args.base_db,
                args.target_db,
                odate=odate,
                mid=mid,
                where_condition=args.where_condition,
                exclude_columns=args.exclude_columns,
                escalate=not args.no_escalate,
            )
    except Exception as e:
        logger.error(f"Batch verification failed: {e}", exc_info=True)
        return EXIT_ERROR

    _write_report(generate_report(result.table_reports, odate=odate), args.output, args.format)
    return result.exit_code


def cmd_schedule(args: argparse.Namespace) -> int:
    """Run batch verification on a cron or interval schedule until interrupted."""
    tables = load_table_list(args.tables, args.tables_file)
    if not tables:
        logger.error("No tables to verify")
        return EXIT_ERROR

    publisher = MetricsPublisher(port=args.metrics_port) if args.metrics_port else None
    try:
        config = resolve_config(args)
        with open_pools(config) as pools:
            if publisher is not None:
                publisher.start()

            job_kwargs = {
                "verifier": build_verifier(config, pools),
                "tables": tables,
                "base_database": args.base_db,
                "target_database": args.target_db,
                "where_condition": args.where_condition,
                "exclude_columns": args.exclude_columns,
                "mid_prefix": args.mid_prefix,
                "output_dir": args.output_dir,
            }

            scheduler = VerificationScheduler()
            if args.cron:
                scheduler.add_cron_job(
                    verification_batch_job, args.cron, job_id="verification_job", **job_kwargs
                )
            else:
                scheduler.add_interval_job(
                    verification_batch_job, args.interval, job_id="verification_job", **job_kwargs
                )

            logger.info(f"Scheduled verification of {len(tables)} table(s); press Ctrl+C to stop")
            scheduler.start()
    except Exception as e:
        logger.error(f"Scheduler failed: {e}", exc_info=True)
        return EXIT_ERROR
    finally:
        if publisher is not None:
            publisher.stop()

    return EXIT_OK


def cmd_results(args: argparse.Namespace) -> int:
    """Print the stored status summary and latest mismatches for an odate."""
    odate = args.odate or _today()
    try:
        config = resolve_config(args)
        if not config.sink.configured:
            raise ConfigurationError("Result sink not configured")
        pool = SinkConnectionPool(**config.sink.pool_kwargs(), health_check_interval=0)
        try:
            repository = ResultRepository(pool)
            summary = repository.summarize(odate)
            mismatches = repository.find_mismatches(odate, limit=args.limit)
        finally:
            pool.close()
    except Exception as e:
        logger.error(f"Failed to read results: {e}", exc_info=True)
        return EXIT_ERROR

    print(f"Verification results for {odate}")
    print("-" * 60)
    if not summary:
        print("No results stored")
    for row in summary:
        avg = float(row["avg_time_sec"] or 0)
        print(f"{row['execution_status']:<10} {row['count']:>8} outcomes  avg {avg:.2f}s")

    if mismatches:
        print()
        print(f"Latest mismatches (up to {args.limit}):")
        for row in mismatches:
            print(
                f"  {row['table_name']} [{row['partition_key']}] "
                f"base={row['base_row_count']} target={row['target_row_count']} "
                f"differences={row['differences_found']} mid={row['mid']}"
            )
    return EXIT_OK
