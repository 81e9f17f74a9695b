"""
Table verification orchestrator.

TableVerifier analyzes a table, then compares it either as a whole or
partition by partition on a thread pool, persisting every outcome and
folding it into a VerificationMetrics aggregate.
"""

import logging
import threading
import time
from collections.abc import Callable, Iterable
from concurrent.futures import Future, ThreadPoolExecutor, as_completed, wait
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass
from typing import Any

from opentelemetry import trace

from utils.logging import ContextLogger
from utils.retry import execute_with_retry
from utils.tracing import add_span_attributes, add_span_event, trace_operation

from .. import strategies
from ..config import VerificationConfig
from ..metadata import analyze_table, build_partition_filter, get_partitions, parse_column_list
from ..models import (
    NO_PARTITION,
    ComparisonOutcome,
    TableMetadata,
    VerificationMetrics,
    VerificationMode,
    VerificationStatus,
)
from .metrics import (
    ACTIVE_WORKERS,
    DIFFERENCES_FOUND,
    FANOUT_TIMEOUTS,
    PARTITION_VERIFICATION_TIME,
    PARTITIONS_VERIFIED,
    QUEUE_SIZE,
    TABLE_VERIFICATION_TIME,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VerificationRequest:
    """Everything a caller specifies for one table run."""

    table: str
    base_database: str
    target_database: str
    odate: str
    mid: str
    where_condition: str = "1=1"
    exclude_columns: tuple[str, ...] = ()
    mode: VerificationMode = VerificationMode.FAST


class TableVerifier:
    """
    Verifies tables between a base and a target database.

    Args:
        pools: Object exposing ``engine_connection()`` as a context manager
            (normally a PoolManager)
        repository: Result sink with ``save(outcome, odate, mid)``
        config: Tuning values (parallelism, sample limit, retries, timeouts)
        sleep: Backoff sleep override, used by tests to avoid real waits
    """

    def __init__(
        self,
        pools: Any,
        repository: Any,
        config: VerificationConfig | None = None,
        sleep: Callable[[float], None] | None = None,
    ):
        self.pools = pools
        self.repository = repository
        self.config = config or VerificationConfig()
        self.sleep = sleep
        # Guards the worker/queue gauges shared by concurrent fan-outs
        self._gauge_lock = threading.Lock()

    def verify_table(
        self,
        table: str,
        base_database: str,
        target_database: str,
        odate: str,
        mid: str,
        where_condition: str = "1=1",
        exclude_columns: str | Iterable[str] | None = None,
        mode: VerificationMode | str = VerificationMode.FAST,
    ) -> VerificationMetrics:
        """
        Verify one table and return the aggregated metrics.

        Raises:
            ConfigurationError: If no columns remain after exclusion
            RetryExhaustedError: If a non-partitioned comparison fails on every attempt
        """
        request = VerificationRequest(
            table=table,
            base_database=base_database,
            target_database=target_database,
            odate=odate,
            mid=mid,
            where_condition=where_condition or "1=1",
            exclude_columns=tuple(parse_column_list(exclude_columns)),
            mode=VerificationMode.parse(mode),
        )
        return self.run(request)

    def run(self, request: VerificationRequest) -> VerificationMetrics:
        metrics = VerificationMetrics()

        logger.info(
            f"=== Starting data verification: {request.base_database}.{request.table} "
            f"vs {request.target_database}.{request.table} "
            f"(mode={request.mode.value}, where={request.where_condition}, "
            f"odate={request.odate}, mid={request.mid}) ==="
        )

        with trace_operation(
            "verify_table",
            kind=trace.SpanKind.INTERNAL,
            table=request.table,
            base_database=request.base_database,
            target_database=request.target_database,
            mode=request.mode.value,
        ) as span:
            with TABLE_VERIFICATION_TIME.labels(
                table=request.table, mode=request.mode.value
            ).time():
                try:
                    metadata, partitions = self._analyze(request)
                    if metadata.partitioned:
                        self._verify_partitions(request, metadata, partitions, metrics)
                    else:
                        self._verify_whole_table(request, metadata, metrics)
                except Exception as e:
                    logger.error(f"Verification of {request.table} failed: {e}")
                    metrics.add_error(str(e))
                    raise

            span.set_attribute("partitions_processed", metrics.partitions_processed)
            span.set_attribute("differences_found", metrics.differences_found)

        self._log_summary(request, metrics)
        return metrics

    def _analyze(self, request: VerificationRequest) -> tuple[TableMetadata, list[str]]:
        with self.pools.engine_connection() as conn:
            metadata = analyze_table(
                conn, request.base_database, request.table, request.exclude_columns
            )
            partitions: list[str] = []
            if metadata.partitioned:
                partitions = get_partitions(
                    conn,
                    request.base_database,
                    request.table,
                    request.where_condition,
                    metadata.partition_keys,
                )
        return metadata, partitions

    def _compare(
        self,
        request: VerificationRequest,
        columns: tuple[str, ...],
        where_condition: str,
    ) -> ComparisonOutcome:
        # A fresh pooled connection per attempt
        with self.pools.engine_connection() as conn:
            return strategies.verify(
                request.mode,
                conn,
                request.base_database,
                request.target_database,
                request.table,
                columns,
                where_condition,
                self.config.sample_limit,
            )

    def _record(self, request: VerificationRequest, outcome: ComparisonOutcome, metrics: VerificationMetrics) -> None:
        metrics.record_outcome(outcome)
        PARTITIONS_VERIFIED.labels(
            table=request.table, mode=request.mode.value, status=outcome.status.value
        ).inc()
        if outcome.status != VerificationStatus.ERROR:
            DIFFERENCES_FOUND.labels(table=request.table, mode=request.mode.value).inc(
                outcome.differences_found
            )

    def _verify_whole_table(
        self,
        request: VerificationRequest,
        metadata: TableMetadata,
        metrics: VerificationMetrics,
    ) -> None:
        logger.info("Processing non-partitioned table")

        outcome = execute_with_retry(
            lambda: self._compare(request, metadata.columns, request.where_condition),
            max_attempts=self.config.retry_attempts,
            base_delay_ms=self.config.retry_delay_ms,
            operation_name=f"Verify table: {request.table}",
            sleep=self.sleep,
        )
        outcome.partition = NO_PARTITION

        self.repository.save(outcome, request.odate, request.mid)
        self._record(request, outcome, metrics)

        logger.info(
            f"Table verification completed: {outcome.status.value} ({outcome.duration_ms}ms)"
        )

    @staticmethod
    def _error_outcome(
        request: VerificationRequest,
        partition: str,
        where_condition: str,
        error: BaseException,
    ) -> ComparisonOutcome:
        outcome = ComparisonOutcome(
            table_name=request.table,
            base_database=request.base_database,
            target_database=request.target_database,
            partition=partition,
            status=VerificationStatus.ERROR,
            message=f"Error: {error}",
            mode=request.mode,
            where_condition=where_condition,
        )
        return outcome.complete()

    def _verify_partition(
        self,
        request: VerificationRequest,
        columns: tuple[str, ...],
        partition: str,
        cancellation_token: threading.Event,
    ) -> ComparisonOutcome:
        """
        Compare one partition. Never raises: failures become ERROR outcomes.
        """
        where_condition = request.where_condition
        started = time.monotonic()
        log = ContextLogger(
            __name__, table=request.table, partition=partition, odate=request.odate, mid=request.mid
        )

        with self._gauge_lock:
            ACTIVE_WORKERS.inc()
        try:
            with trace_operation(
                "verify_partition",
                kind=trace.SpanKind.INTERNAL,
                table=request.table,
                partition=partition,
            ):
                try:
                    where_condition = build_partition_filter(partition, request.where_condition)
                    outcome = execute_with_retry(
                        lambda: self._compare(request, columns, where_condition),
                        max_attempts=self.config.retry_attempts,
                        base_delay_ms=self.config.retry_delay_ms,
                        operation_name=f"Verify partition: {partition}",
                        sleep=self.sleep,
                        cancellation_token=cancellation_token,
                    )
                except Exception as e:
                    log.error(f"Failed to verify partition {partition}: {e}")
                    outcome = self._error_outcome(request, partition, where_condition, e)

                outcome.partition = partition
                add_span_attributes(
                    status=outcome.status.value, differences_found=outcome.differences_found
                )
                self.repository.save(outcome, request.odate, request.mid)
                return outcome
        finally:
            PARTITION_VERIFICATION_TIME.labels(mode=request.mode.value).observe(
                time.monotonic() - started
            )
            with self._gauge_lock:
                ACTIVE_WORKERS.dec()

    def _verify_partitions(
        self,
        request: VerificationRequest,
        metadata: TableMetadata,
        partitions: list[str],
        metrics: VerificationMetrics,
    ) -> None:
        if not partitions:
            logger.warning(
                f"{request.base_database}.{request.table} is partitioned but no partition "
                f"matches '{request.where_condition}'; nothing to compare"
            )
            return

        pool_size = min(self.config.max_parallel_partitions, len(partitions))
        logger.info(f"Found {len(partitions)} partitions to process, using {pool_size} workers")

        # One cancellation token per partition task
        tokens = {partition: threading.Event() for partition in partitions}

        executor = ThreadPoolExecutor(
            max_workers=pool_size,
            thread_name_prefix=f"verify-{request.table}",
        )
        future_to_partition: dict[Future, str] = {}
        timed_out = False
        try:
            for partition in partitions:
                future = executor.submit(
                    self._verify_partition,
                    request,
                    metadata.columns,
                    partition,
                    tokens[partition],
                )
                future_to_partition[future] = partition

            with self._gauge_lock:
                QUEUE_SIZE.set(len(partitions))

            completed = 0
            try:
                for future in as_completed(
                    future_to_partition, timeout=self.config.fanout_timeout_seconds
                ):
                    partition = future_to_partition[future]
                    completed += 1
                    with self._gauge_lock:
                        QUEUE_SIZE.set(len(partitions) - completed)

                    try:
                        outcome = future.result()
                    except Exception as e:
                        # Raised outside the comparison, e.g. by the repository
                        logger.error(f"Partition task {partition} failed: {e}", exc_info=True)
                        outcome = self._error_outcome(
                            request, partition, request.where_condition, e
                        )
                        try:
                            self.repository.save(outcome, request.odate, request.mid)
                        except Exception as save_error:
                            logger.error(
                                f"Could not store error outcome for partition {partition}: "
                                f"{save_error}"
                            )
                    self._record(request, outcome, metrics)

                    if outcome.status == VerificationStatus.MATCH:
                        logger.info(
                            f"Partition {partition} verification: MATCH "
                            f"({outcome.duration_ms}ms) ({completed}/{len(partitions)})"
                        )
                    else:
                        logger.warning(
                            f"Partition {partition} verification: {outcome.status.value} - "
                            f"{outcome.message} ({completed}/{len(partitions)})"
                        )
            except FuturesTimeoutError:
                timed_out = True
                pending = [p for f, p in future_to_partition.items() if not f.done()]
                logger.error(
                    f"Partition fan-out for {request.table} timed out after "
                    f"{self.config.fanout_timeout_seconds}s; "
                    f"{len(pending)} of {len(partitions)} partitions unfinished"
                )
                FANOUT_TIMEOUTS.labels(table=request.table).inc()
                add_span_event("fanout_timeout", pending=len(pending), total=len(partitions))
                metrics.add_error(
                    f"Timeout after {self.config.fanout_timeout_seconds}s: "
                    f"{len(pending)} partitions not verified"
                )
                for partition in pending:
                    tokens[partition].set()
                for future in future_to_partition:
                    future.cancel()
        finally:
            executor.shutdown(wait=not timed_out, cancel_futures=True)
            if timed_out:
                running = [f for f in future_to_partition if not f.done()]
                _, still_running = wait(running, timeout=self.config.shutdown_grace_seconds)
                if still_running:
                    logger.warning(
                        f"{len(still_running)} partition tasks still running after "
                        f"{self.config.shutdown_grace_seconds}s grace period; abandoning them"
                    )
            with self._gauge_lock:
                QUEUE_SIZE.set(0)

    def _log_summary(self, request: VerificationRequest, metrics: VerificationMetrics) -> None:
        snapshot = metrics.snapshot()
        logger.info(
            f"=== Verification summary for {request.table} ({request.mode.value}) ===\n"
            f"  Partitions processed: {snapshot['partitions_processed']}\n"
            f"  Rows processed:       {snapshot['rows_processed']}\n"
            f"  Differences found:    {snapshot['differences_found']}\n"
            f"  Errors:               {len(snapshot['errors'])}\n"
            f"  Elapsed:              {metrics.elapsed_ms}ms"
        )
        for error in snapshot["errors"]:
            logger.warning(f"  - {error}")
