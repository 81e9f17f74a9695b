"""
Prometheus metrics for table verification runs.
"""

from prometheus_client import Counter, Gauge, Histogram

from utils.metrics import get_or_create_metric

PARTITIONS_VERIFIED = get_or_create_metric(
    lambda: Counter(
        "verification_partitions_total",
        "Partitions (or whole tables) compared, by outcome status",
        ["table", "mode", "status"],
    ),
    "verification_partitions",
)

TABLE_VERIFICATION_TIME = get_or_create_metric(
    lambda: Histogram(
        "verification_table_seconds",
        "Wall-clock time to verify one table",
        ["table", "mode"],
        buckets=[1, 5, 10, 30, 60, 120, 300, 600, 1800, 3600],
    ),
    "verification_table_seconds",
)

PARTITION_VERIFICATION_TIME = get_or_create_metric(
    lambda: Histogram(
        "verification_partition_seconds",
        "Time to verify one partition, retries included",
        ["mode"],
        buckets=[0.5, 1, 5, 10, 30, 60, 120, 300, 600],
    ),
    "verification_partition_seconds",
)

DIFFERENCES_FOUND = get_or_create_metric(
    lambda: Counter(
        "verification_differences_total",
        "Differences reported by comparisons (sample-bounded in FAST mode)",
        ["table", "mode"],
    ),
    "verification_differences",
)

ACTIVE_WORKERS = get_or_create_metric(
    lambda: Gauge(
        "verification_active_workers",
        "Partition tasks currently running",
    ),
    "verification_active_workers",
)

QUEUE_SIZE = get_or_create_metric(
    lambda: Gauge(
        "verification_queue_size",
        "Partitions waiting for a result",
    ),
    "verification_queue_size",
)

FANOUT_TIMEOUTS = get_or_create_metric(
    lambda: Counter(
        "verification_fanout_timeouts_total",
        "Table runs whose partition fan-out hit the timeout",
        ["table"],
    ),
    "verification_fanout_timeouts",
)
