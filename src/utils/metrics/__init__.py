"""
Prometheus metrics helpers

This module provides utilities for registering and publishing application
metrics to Prometheus for monitoring and alerting.

Usage:
    from utils.metrics import MetricsPublisher, get_or_create_metric

    # Expose /metrics while a long-running scheduler is active
    publisher = MetricsPublisher(port=9091)
    publisher.start()

    PARTITIONS = get_or_create_metric(
        lambda: Counter("partitions_total", "Partitions verified", ["status"]),
        "partitions_total",
    )
"""

import logging
from typing import Callable, TypeVar

from prometheus_client import CollectorRegistry, REGISTRY

from .publisher import MetricsPublisher

logger = logging.getLogger(__name__)

# Type variable for metric types
T = TypeVar("T")


def get_or_create_metric(
    metric_factory: Callable[[], T],
    metric_name: str,
    registry: CollectorRegistry = REGISTRY,
) -> T:
    """
    Create a new metric or return the existing one if already registered.

    Module reloads (tests, schedulers re-importing jobs) would otherwise fail
    with a duplicate registration ValueError.

    Args:
        metric_factory: Callable that creates the metric (e.g., lambda: Counter(...))
        metric_name: Name of the metric for lookup if already registered
        registry: Prometheus registry to use (default: global REGISTRY)

    Returns:
        The metric instance (either newly created or existing)
    """
    try:
        return metric_factory()
    except ValueError:
        # Metric already registered, get existing one
        existing = registry._names_to_collectors.get(metric_name)
        if existing is not None:
            return existing
        raise


__all__ = [
    "MetricsPublisher",
    "get_or_create_metric",
]
