"""
Table metadata analysis and partition discovery.

Resolves which columns take part in a comparison, whether the table is
partitioned and by which keys, enumerates the partitions selected by a
filter, and turns a partition descriptor back into a WHERE clause.
"""

import logging
from collections.abc import Iterable
from typing import Any

from utils.sql_safety import escape_literal, qualified_table, quote_identifier

from .errors import ConfigurationError
from .models import (
    HIVE_DEFAULT_PARTITION,
    NO_PARTITION,
    TableMetadata,
    build_partition_descriptor,
    parse_partition_descriptor,
)
from .queries import fetch_all

logger = logging.getLogger(__name__)

# Deeper layouts are compared at this many levels
MAX_PARTITION_DEPTH = 2

# Engine error fragments meaning "this table has no partitions"
NOT_PARTITIONED_MARKERS = ("not partitioned", "not a partitioned table")


def parse_column_list(columns: str | Iterable[str] | None) -> list[str]:
    """Normalize "a, b,c" or an iterable of names into a clean list."""
    if columns is None:
        return []
    if isinstance(columns, str):
        columns = columns.split(",")
    return [c.strip() for c in columns if c and c.strip()]


def get_columns(
    connection: Any,
    database: str,
    table: str,
    exclude_columns: str | Iterable[str] | None = None,
) -> list[str]:
    """
    List the table's columns in catalog order minus the excluded ones.

    Exclusion is case-insensitive.

    Raises:
        ConfigurationError: If no column is left to compare
    """
    rows = fetch_all(connection, f"SHOW COLUMNS FROM {qualified_table(database, table)}")
    all_columns = [str(row[0]).strip() for row in rows if row and row[0] is not None]

    excluded = {c.lower() for c in parse_column_list(exclude_columns)}
    columns = []
    for column in all_columns:
        if column.lower() in excluded:
            logger.debug(f"Excluding column: {column}")
        else:
            columns.append(column)

    if not columns:
        raise ConfigurationError(
            f"No columns to compare for {database}.{table} after exclusions "
            f"({len(all_columns)} columns, excluded: {sorted(excluded) or 'none'})"
        )

    return columns


def _show_partitions(connection: Any, database: str, table: str) -> list[str] | None:
    """Return SHOW PARTITIONS rows, or None when the engine says the table is unpartitioned."""
    try:
        rows = fetch_all(connection, f"SHOW PARTITIONS {qualified_table(database, table)}")
    except Exception as e:
        message = str(e).lower()
        if any(marker in message for marker in NOT_PARTITIONED_MARKERS):
            logger.debug(f"{database}.{table} is not partitioned: {e}")
            return None
        raise
    return [str(row[0]) for row in rows if row and row[0] is not None]


def is_partitioned(connection: Any, database: str, table: str) -> bool:
    """True when SHOW PARTITIONS lists at least one partition."""
    return bool(_show_partitions(connection, database, table))


def _keys_from_partition(partition_spec: str, database: str, table: str) -> tuple[str, ...]:
    keys = tuple(key for key, _ in parse_partition_descriptor(partition_spec))
    if len(keys) > MAX_PARTITION_DEPTH:
        logger.warning(
            f"{database}.{table} has {len(keys)} partition levels {list(keys)}; "
            f"comparing at the first {MAX_PARTITION_DEPTH}"
        )
        keys = keys[:MAX_PARTITION_DEPTH]
    return keys


def get_partition_keys(connection: Any, database: str, table: str) -> tuple[str, ...]:
    """
    Parse the first listed partition (``k1=v1/k2=v2``) into ordered key names.

    Returns an empty tuple for unpartitioned tables.
    """
    partitions = _show_partitions(connection, database, table)
    if not partitions:
        return ()
    return _keys_from_partition(partitions[0], database, table)


def get_partitions(
    connection: Any,
    database: str,
    table: str,
    where_condition: str,
    partition_keys: tuple[str, ...] | None = None,
) -> list[str]:
    """
    Enumerate partition descriptors containing rows that match the filter.

    Args:
        connection: Engine connection
        database: Database holding the table (the base side)
        table: Table name
        where_condition: Base filter; partitions without matching rows are skipped
        partition_keys: Keys from analyze_table; looked up when omitted

    Returns:
        Descriptors such as ``year=2025/month=01`` in key order
    """
    if partition_keys is None:
        partition_keys = get_partition_keys(connection, database, table)
    if not partition_keys:
        return []

    keys = tuple(partition_keys[:MAX_PARTITION_DEPTH])
    projection = ", ".join(quote_identifier(k) for k in keys)
    sql = (
        f"SELECT DISTINCT {projection} FROM {qualified_table(database, table)} "
        f"WHERE {where_condition or '1=1'} ORDER BY {projection}"
    )
    logger.debug(f"Fetching {len(keys)}-level partitions: {sql}")

    partitions = [
        build_partition_descriptor(keys, row[:len(keys)])
        for row in fetch_all(connection, sql)
    ]

    logger.info(f"Found {len(partitions)} partitions for {database}.{table}")
    return partitions


def build_partition_filter(partition: str | None, base_filter: str) -> str:
    """
    Turn a partition descriptor into a WHERE clause and AND it with the base filter.

    >>> build_partition_filter("year=2025/month=01", "active=1")
    "year='2025' AND month='01' AND active=1"
    >>> build_partition_filter("NO_PARTITION", "active=1")
    'active=1'
    """
    if partition is None or partition == NO_PARTITION:
        return base_filter

    conditions = []
    for key, value in parse_partition_descriptor(partition):
        if value == HIVE_DEFAULT_PARTITION:
            conditions.append(f"{key} IS NULL")
        else:
            conditions.append(f"{key}='{escape_literal(value)}'")

    partition_filter = " AND ".join(conditions)
    if base_filter and base_filter.strip():
        return f"{partition_filter} AND {base_filter}"
    return partition_filter


def analyze_table(
    connection: Any,
    database: str,
    table: str,
    exclude_columns: str | Iterable[str] | None = None,
) -> TableMetadata:
    """
    Resolve compared columns and partition layout of a table.

    Raises:
        ConfigurationError: If every column is excluded
    """
    logger.info(f"Analyzing table: {database}.{table}")

    columns = get_columns(connection, database, table, exclude_columns)
    logger.info(f"Found {len(columns)} columns to compare")

    partitions = _show_partitions(connection, database, table)
    partition_keys: tuple[str, ...] = ()
    if partitions:
        partition_keys = _keys_from_partition(partitions[0], database, table)
        logger.info(f"Table is partitioned by {list(partition_keys)}")
    else:
        logger.info("Table is not partitioned")

    return TableMetadata(
        database=database,
        table_name=table,
        partitioned=bool(partition_keys),
        columns=tuple(columns),
        partition_keys=partition_keys,
    )
