"""
Engine query tracing utilities.
"""

from typing import Any

from opentelemetry import trace

from .context import trace_operation


def trace_engine_query(query_type: str, table: str, database: str) -> Any:
    """
    Context manager for tracing a query sent to the SQL engine.

    Args:
        query_type: Logical query kind (COUNT, FINGERPRINT_JOIN, EXCEPT, ...)
        table: Table name
        database: Logical database the query is qualified with

    Example:
        >>> with trace_engine_query("COUNT", "orders", "prod_db"):
        ...     cursor.execute(count_sql)
    """
    return trace_operation(
        f"engine.{query_type.lower()}",
        kind=trace.SpanKind.CLIENT,
        **{
            "db.operation": query_type,
            "db.table": table,
            "db.name": database,
            "component": "engine",
        }
    )
