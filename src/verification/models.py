"""
Data model for table verification runs.

TableMetadata describes what is compared, ComparisonOutcome records one
comparison (a partition, or the whole table), and VerificationMetrics
aggregates outcomes across a run under a lock.
"""

import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from urllib.parse import unquote

# Partition descriptor used for tables without partitioning
NO_PARTITION = "NO_PARTITION"

# Value the engine uses for rows whose partition column is NULL
HIVE_DEFAULT_PARTITION = "__HIVE_DEFAULT_PARTITION__"

# Characters percent-encoded inside descriptor values, as SHOW PARTITIONS does
PARTITION_VALUE_ESCAPES = {"%": "%25", "/": "%2F", "=": "%3D"}


class VerificationStatus(str, Enum):
    MATCH = "MATCH"
    MISMATCH = "MISMATCH"
    ERROR = "ERROR"


class VerificationMode(str, Enum):
    """Differencing algorithm used after the count check."""

    FAST = "FAST"
    DETAILED = "DETAILED"

    @classmethod
    def parse(cls, value: "str | VerificationMode") -> "VerificationMode":
        """Case-insensitive lookup; raises ValueError for unknown modes."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            valid = ", ".join(m.value for m in cls)
            raise ValueError(f"Unknown verification mode {value!r} (expected one of: {valid})") from None


@dataclass(frozen=True)
class TableMetadata:
    """Schema facts resolved before any comparison runs."""

    database: str
    table_name: str
    partitioned: bool
    columns: tuple[str, ...]
    partition_keys: tuple[str, ...] = ()

    @property
    def qualified_name(self) -> str:
        return f"{self.database}.{self.table_name}"


def escape_partition_value(value: Any) -> str:
    return "".join(PARTITION_VALUE_ESCAPES.get(ch, ch) for ch in str(value))


def build_partition_descriptor(keys: tuple[str, ...] | list[str], values: tuple | list) -> str:
    """
    Render partition values as a canonical ``k1=v1/k2=v2`` descriptor.

    NULL values become the engine's default-partition marker. ``/``, ``=``
    and ``%`` in values are percent-encoded so the descriptor parses back.
    """
    if len(keys) != len(values):
        raise ValueError(f"Got {len(values)} values for partition keys {list(keys)}")
    return "/".join(
        f"{key}={HIVE_DEFAULT_PARTITION if value is None else escape_partition_value(value)}"
        for key, value in zip(keys, values)
    )


def parse_partition_descriptor(descriptor: str) -> list[tuple[str, str]]:
    """
    Split a descriptor into ordered (key, value) pairs.

    >>> parse_partition_descriptor("year=2025/month=01")
    [('year', '2025'), ('month', '01')]
    >>> parse_partition_descriptor("dt=2025%2F01")
    [('dt', '2025/01')]
    """
    if not descriptor or descriptor == NO_PARTITION:
        return []
    pairs = []
    for segment in descriptor.split("/"):
        key, sep, value = segment.partition("=")
        if not sep or not key:
            raise ValueError(f"Malformed partition segment {segment!r} in {descriptor!r}")
        pairs.append((key, unquote(value)))
    return pairs


@dataclass
class ComparisonOutcome:
    """Result of comparing one partition (or a whole table) between base and target."""

    table_name: str
    base_database: str
    target_database: str
    partition: str = NO_PARTITION
    status: VerificationStatus = VerificationStatus.ERROR
    message: str = ""
    base_count: int = 0
    target_count: int = 0
    differences_found: int = 0
    sample_differences: list[str] = field(default_factory=list)
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None
    duration_ms: int = 0
    mode: VerificationMode = VerificationMode.FAST
    where_condition: str = ""

    def complete(self) -> "ComparisonOutcome":
        """Stamp the end time and duration; returns self for chaining."""
        self.end_time = datetime.now(UTC)
        self.duration_ms = int((self.end_time - self.start_time).total_seconds() * 1000)
        return self

    @property
    def is_match(self) -> bool:
        return self.status == VerificationStatus.MATCH

    def to_dict(self) -> dict[str, Any]:
        return {
            "table": self.table_name,
            "base_database": self.base_database,
            "target_database": self.target_database,
            "partition": self.partition,
            "status": self.status.value,
            "message": self.message,
            "base_count": self.base_count,
            "target_count": self.target_count,
            "differences_found": self.differences_found,
            "sample_differences": list(self.sample_differences),
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration_ms": self.duration_ms,
            "mode": self.mode.value,
            "where_condition": self.where_condition,
        }


class VerificationMetrics:
    """
    Run-level aggregate of comparison outcomes.

    Partition tasks finish on worker threads while the coordinator folds
    them in, so every mutation happens under one lock and readers receive
    copies.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._rows_processed = 0
        self._differences_found = 0
        self._partitions_processed = 0
        self._errors: list[str] = []
        self._partition_durations: dict[str, int] = {}
        self.start_time = datetime.now(UTC)

    def record_outcome(self, outcome: ComparisonOutcome) -> None:
        """
        Fold one outcome into the totals.

        Differences are only counted for outcomes that actually compared
        data; an ERROR outcome contributes its message instead.
        """
        with self._lock:
            self._rows_processed += outcome.base_count
            if outcome.status != VerificationStatus.ERROR:
                self._differences_found += outcome.differences_found
            self._partitions_processed += 1
            self._partition_durations[outcome.partition] = outcome.duration_ms
            if outcome.status == VerificationStatus.ERROR:
                self._errors.append(f"{outcome.partition}: {outcome.message}")

    def add_error(self, message: str) -> None:
        with self._lock:
            self._errors.append(message)

    @property
    def rows_processed(self) -> int:
        with self._lock:
            return self._rows_processed

    @property
    def differences_found(self) -> int:
        with self._lock:
            return self._differences_found

    @property
    def partitions_processed(self) -> int:
        with self._lock:
            return self._partitions_processed

    @property
    def errors(self) -> list[str]:
        with self._lock:
            return list(self._errors)

    @property
    def partition_durations(self) -> dict[str, int]:
        with self._lock:
            return dict(self._partition_durations)

    @property
    def has_errors(self) -> bool:
        with self._lock:
            return bool(self._errors)

    @property
    def elapsed_ms(self) -> int:
        return int((datetime.now(UTC) - self.start_time).total_seconds() * 1000)

    def snapshot(self) -> dict[str, Any]:
        """Consistent copy of every counter, taken under the lock."""
        with self._lock:
            return {
                "rows_processed": self._rows_processed,
                "differences_found": self._differences_found,
                "partitions_processed": self._partitions_processed,
                "errors": list(self._errors),
                "partition_durations": dict(self._partition_durations),
                "start_time": self.start_time.isoformat(),
            }

    def __repr__(self) -> str:
        snap = self.snapshot()
        return (
            f"VerificationMetrics(rows={snap['rows_processed']}, "
            f"differences={snap['differences_found']}, "
            f"partitions={snap['partitions_processed']}, errors={len(snap['errors'])})"
        )
