"""
Unit tests for the table verification orchestrator

Tests verify:
- Non-partitioned tables are compared once and stored as NO_PARTITION
- Every discovered partition produces exactly one stored outcome
- Partition failures become ERROR outcomes without stopping the run
- Retries use a fresh connection checkout per attempt
- Fan-out timeout records an error and cancels pending partitions
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import patch

import pytest

from conftest import ConnectionPerCheckoutPools, FakePools, RecordingRepository, engine_handler
from utils.retry import RetryExhaustedError
from verification.config import VerificationConfig
from verification.errors import ConfigurationError
from verification.models import NO_PARTITION, VerificationMode, VerificationStatus
from verification.orchestrator import TableVerifier, VerificationRequest
from verification.report import determine_exit_code
from verification.strategies.base import BASE_ONLY, TARGET_ONLY


def no_sleep(seconds: float) -> None:
    pass


def make_verifier(connection, repository, **config_overrides) -> TableVerifier:
    config = VerificationConfig(retry_delay_ms=0, **config_overrides)
    return TableVerifier(FakePools(connection), repository, config, sleep=no_sleep)


def run(verifier: TableVerifier, **kwargs):
    params = {
        "table": "orders",
        "base_database": "prod_db",
        "target_database": "migrated_db",
        "odate": "20250101",
        "mid": "run_001",
    }
    params.update(kwargs)
    return verifier.verify_table(**params)


class TestNonPartitionedTable:
    """Whole-table comparison"""

    def test_match_is_saved_once_as_no_partition(self, make_engine, repository):
        engine = make_engine(partitions=None)

        metrics = run(make_verifier(engine, repository))

        assert len(repository.saved) == 1
        outcome, odate, mid = repository.saved[0]
        assert outcome.partition == NO_PARTITION
        assert outcome.status == VerificationStatus.MATCH
        assert (odate, mid) == ("20250101", "run_001")
        assert metrics.partitions_processed == 1
        assert metrics.rows_processed == 10
        assert determine_exit_code(metrics) == 0

    def test_count_mismatch_reports_differences(self, make_engine, repository):
        engine = make_engine(partitions=None, counts=(10, 7))

        metrics = run(make_verifier(engine, repository))

        assert metrics.differences_found == 3
        assert determine_exit_code(metrics) == 1

    def test_exhausted_retries_propagate(self, make_engine, repository):
        base = engine_handler(partitions=None)

        def handler(sql):
            if "COUNT(*)" in sql:
                return ConnectionError("engine unavailable")
            return base(sql)

        engine = make_engine(handler)
        verifier = make_verifier(engine, repository, retry_attempts=3)

        with pytest.raises(RetryExhaustedError) as exc_info:
            run(verifier)

        assert exc_info.value.attempts == 3
        assert len(engine.queries_containing("COUNT(*)")) == 3
        assert repository.saved == []

    def test_retry_recovers_from_transient_failure(self, make_engine, repository):
        base = engine_handler(partitions=None)
        failures = {"left": 1}

        def handler(sql):
            if "COUNT(*)" in sql and failures["left"]:
                failures["left"] -= 1
                return ConnectionError("connection reset")
            return base(sql)

        engine = make_engine(handler)
        pools = FakePools(engine)
        verifier = TableVerifier(
            pools, repository, VerificationConfig(retry_delay_ms=0), sleep=no_sleep
        )

        metrics = run(verifier)

        assert metrics.partitions_processed == 1
        assert not metrics.has_errors
        # One checkout for analysis, one per comparison attempt
        assert pools.checkouts == 3


class TestAnalysisFailures:
    """Failures before any comparison starts"""

    def test_all_columns_excluded_raises_configuration_error(self, make_engine, repository):
        engine = make_engine(columns=("id", "name"), partitions=None)

        with pytest.raises(ConfigurationError):
            run(make_verifier(engine, repository), exclude_columns="ID, Name")

        assert repository.saved == []

    def test_partitioned_table_without_matching_partitions(self, make_engine, repository):
        def handler(sql):
            if sql.startswith("SELECT DISTINCT"):
                return []
            return engine_handler(partitions=["year=2024"])(sql)

        metrics = run(make_verifier(make_engine(handler), repository), where_condition="year > 2030")

        assert metrics.partitions_processed == 0
        assert repository.saved == []
        assert determine_exit_code(metrics) == 0


class TestPartitionedTable:
    """Partition fan-out"""

    PARTITIONS = ["year=2023", "year=2024", "year=2025"]

    def test_every_partition_is_saved(self, make_engine, repository):
        engine = make_engine(partitions=self.PARTITIONS)

        metrics = run(make_verifier(engine, repository, max_parallel_partitions=2))

        assert repository.partitions == self.PARTITIONS
        assert metrics.partitions_processed == len(self.PARTITIONS)
        assert set(metrics.partition_durations) == set(self.PARTITIONS)
        assert metrics.rows_processed == 30

    def test_partition_filter_is_combined_with_where(self, make_engine, repository):
        engine = make_engine(partitions=["year=2025"])

        run(make_verifier(engine, repository), where_condition="status='A'")

        counts = engine.queries_containing("COUNT(*)")
        assert counts
        assert all("WHERE year='2025' AND status='A'" in sql for sql in counts)
        outcome = repository.saved[0][0]
        assert outcome.where_condition == "year='2025' AND status='A'"

    def test_failing_partition_becomes_error_outcome(self, make_engine, repository):
        base = engine_handler(partitions=self.PARTITIONS)

        def handler(sql):
            if "COUNT(*)" in sql and "year='2024'" in sql:
                return RuntimeError("executor lost")
            return base(sql)

        engine = make_engine(handler)
        metrics = run(make_verifier(engine, repository, retry_attempts=2))

        assert repository.partitions == self.PARTITIONS
        assert metrics.partitions_processed == 3
        assert len(metrics.errors) == 1
        assert metrics.errors[0].startswith("year=2024: Error:")
        assert len([q for q in engine.queries_containing("year='2024'") if "COUNT(*)" in q]) == 2

        failed = [o for o, _, _ in repository.saved if o.partition == "year=2024"][0]
        assert failed.status == VerificationStatus.ERROR
        assert failed.end_time is not None
        assert determine_exit_code(metrics) == 2

    def test_sink_failure_stores_an_error_outcome(self, make_engine):
        repository = RecordingRepository(
            fail_on=lambda o: o.partition == "year=2025" and o.status != VerificationStatus.ERROR
        )
        engine = make_engine(partitions=self.PARTITIONS)

        metrics = run(make_verifier(engine, repository))

        assert metrics.partitions_processed == 3
        assert any("sink rejected" in error for error in metrics.errors)
        assert repository.partitions == self.PARTITIONS
        stored = [o for o, _, _ in repository.saved if o.partition == "year=2025"][0]
        assert stored.status == VerificationStatus.ERROR
        assert "sink rejected" in stored.message

    def test_sink_down_for_a_partition_is_still_counted(self, make_engine):
        repository = RecordingRepository(fail_on=lambda o: o.partition == "year=2025")
        engine = make_engine(partitions=self.PARTITIONS)

        metrics = run(make_verifier(engine, repository))

        assert metrics.partitions_processed == 3
        assert repository.partitions == ["year=2023", "year=2024"]
        assert determine_exit_code(metrics) == 2

    def test_detailed_mode_runs_except_queries(self, make_engine, repository):
        engine = make_engine(
            partitions=["year=2025"],
            diff_rows=[(1, "a", "2025")],
        )

        metrics = run(make_verifier(engine, repository), mode="detailed")

        assert len(engine.queries_containing(" EXCEPT ")) == 2
        outcome = repository.saved[0][0]
        assert outcome.mode == VerificationMode.DETAILED
        assert outcome.status == VerificationStatus.MISMATCH
        assert metrics.differences_found == 2

    @pytest.mark.slow
    def test_fanout_timeout_records_error_and_returns(self, make_engine, repository):
        release = threading.Event()
        base = engine_handler(partitions=self.PARTITIONS)

        def handler(sql):
            if "COUNT(*)" in sql and "year='2025'" in sql:
                release.wait(10)
            return base(sql)

        engine = make_engine(handler)
        verifier = make_verifier(
            engine,
            repository,
            fanout_timeout_seconds=1,
            shutdown_grace_seconds=0,
        )

        try:
            metrics = run(verifier)
        finally:
            release.set()

        assert metrics.partitions_processed == 2
        assert any(error.startswith("Timeout after 1s: 1 partitions") for error in metrics.errors)
        assert determine_exit_code(metrics) == 2


class TestVerificationRequest:
    def test_request_is_immutable(self):
        request = VerificationRequest(
            table="orders",
            base_database="a",
            target_database="b",
            odate="20250101",
            mid="m",
        )

        with pytest.raises(AttributeError):
            request.table = "other"

    def test_run_accepts_request(self, make_engine, repository):
        verifier = make_verifier(make_engine(partitions=None), repository)
        request = VerificationRequest(
            table="orders",
            base_database="prod_db",
            target_database="migrated_db",
            odate="20250101",
            mid="m1",
            mode=VerificationMode.DETAILED,
        )

        metrics = verifier.run(request)

        assert metrics.partitions_processed == 1
        assert repository.saved[0][0].mode == VerificationMode.DETAILED


class TestFanoutResources:
    """Worker sizing and connection ownership"""

    PARTITIONS = ["year=2023", "year=2024", "year=2025"]

    @pytest.mark.parametrize("max_parallel,expected_workers", [(100, 3), (2, 2)])
    def test_pool_is_sized_to_the_smaller_of_limit_and_partitions(
        self, make_engine, repository, max_parallel, expected_workers
    ):
        engine = make_engine(partitions=self.PARTITIONS)
        verifier = make_verifier(engine, repository, max_parallel_partitions=max_parallel)

        with patch(
            "verification.orchestrator.verifier.ThreadPoolExecutor", wraps=ThreadPoolExecutor
        ) as executor_cls:
            metrics = run(verifier)

        assert executor_cls.call_args.kwargs["max_workers"] == expected_workers
        assert metrics.partitions_processed == 3

    def test_concurrent_partitions_never_share_a_connection(self, repository):
        base = engine_handler(partitions=self.PARTITIONS)

        def handler(sql):
            if "COUNT(*)" in sql:
                time.sleep(0.05)
            return base(sql)

        pools = ConnectionPerCheckoutPools(handler)
        verifier = TableVerifier(
            pools,
            repository,
            VerificationConfig(retry_delay_ms=0, max_parallel_partitions=3),
            sleep=no_sleep,
        )

        metrics = run(verifier)

        assert metrics.partitions_processed == 3
        assert pools.max_lent > 1
        assert all(c.max_in_flight == 1 for c in pools.connections)
        # Analysis plus one checkout per partition attempt
        assert pools.checkouts == 1 + len(self.PARTITIONS)


class TestPartitionValues:

    def test_value_containing_a_slash_is_verified(self, make_engine, repository):
        base = engine_handler(partitions=None)

        def handler(sql):
            if sql.startswith("SHOW PARTITIONS"):
                return [("dt=2025%2F01",)]
            if sql.startswith("SELECT DISTINCT"):
                return [("2025/01",)]
            return base(sql)

        engine = make_engine(handler)

        metrics = run(make_verifier(engine, repository))

        outcome = repository.saved[0][0]
        assert outcome.partition == "dt=2025%2F01"
        assert outcome.status == VerificationStatus.MATCH
        assert outcome.where_condition == "dt='2025/01' AND 1=1"
        assert not metrics.has_errors


class TestRepeatability:
    """Unchanged data gives the same verdict every run"""

    PARTITIONS = ["year=2024", "year=2025"]

    @pytest.mark.parametrize(
        "mode,diff_rows",
        [
            (VerificationMode.FAST, [(BASE_ONLY, 1, "alice", "2025"), (TARGET_ONLY, 1, "alicia", "2025")]),
            (VerificationMode.DETAILED, [(1, "alice", "2025")]),
        ],
    )
    def test_rerun_on_unchanged_data_repeats_outcomes(self, make_engine, mode, diff_rows):
        def verify_once():
            repository = RecordingRepository()
            engine = make_engine(partitions=self.PARTITIONS, diff_rows=diff_rows)
            metrics = run(make_verifier(engine, repository), mode=mode)
            saved = sorted(
                (o.partition, o.status, o.differences_found) for o, _, _ in repository.saved
            )
            return saved, metrics.differences_found

        first_saved, first_differences = verify_once()
        second_saved, second_differences = verify_once()

        assert first_saved == second_saved
        assert first_differences == second_differences
        assert all(status == VerificationStatus.MISMATCH for _, status, _ in first_saved)
        assert first_differences == 2 * len(self.PARTITIONS)
