"""
Distributed tracing using OpenTelemetry.

Instruments:
- Table verification runs and per-partition tasks
- Connection pool checkouts
- Queries sent to the SQL engine
"""

from .context import add_span_attributes, add_span_event, trace_operation
from .database import trace_engine_query
from .tracer import get_tracer, initialize_tracing, shutdown_tracing

__all__ = [
    "initialize_tracing",
    "get_tracer",
    "shutdown_tracing",
    "trace_operation",
    "add_span_attributes",
    "add_span_event",
    "trace_engine_query",
]
