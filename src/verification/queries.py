"""
Thin helpers for running SQL on a DB-API connection.

Each helper opens its own cursor and closes it before returning, so a
connection can be shared by sequential calls without leaking cursors.
"""

import logging
from typing import Any

logger = logging.getLogger(__name__)


def fetch_all(connection: Any, sql: str) -> list[tuple]:
    """Execute a query and return every row as a tuple."""
    logger.debug(f"Executing: {sql}")
    cursor = connection.cursor()
    try:
        cursor.execute(sql)
        return [tuple(row) for row in cursor.fetchall()]
    finally:
        cursor.close()


def fetch_one(connection: Any, sql: str) -> tuple | None:
    """Execute a query and return the first row, or None when empty."""
    logger.debug(f"Executing: {sql}")
    cursor = connection.cursor()
    try:
        cursor.execute(sql)
        row = cursor.fetchone()
        return tuple(row) if row is not None else None
    finally:
        cursor.close()
