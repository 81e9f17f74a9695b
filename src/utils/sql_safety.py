"""
SQL safety utilities for building engine queries.

Database and table names arrive from the command line and are validated
strictly; column names come from the engine's own catalog and are quoted
with backticks (embedded backticks doubled). Literal values are escaped
for single-quoted Spark SQL strings.
"""

import re

# Strict ASCII-only pattern for database and table names
VALID_IDENTIFIER = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")


def validate_identifier(identifier: str) -> None:
    """
    Validate a database or table name.

    Raises:
        ValueError: If the identifier is empty or contains invalid characters
    """
    if not identifier:
        raise ValueError("SQL identifier cannot be empty")

    if not VALID_IDENTIFIER.match(identifier):
        raise ValueError(
            f"Invalid SQL identifier: {identifier!r}. "
            "Only ASCII letters, digits, and underscores are allowed, "
            "and must start with a letter or underscore."
        )


def quote_identifier(identifier: str) -> str:
    """
    Quote a column name with backticks.

    Args:
        identifier: Column name as reported by the engine

    Returns:
        Backtick-quoted identifier safe to splice into Spark SQL

    Raises:
        ValueError: If the identifier is empty
    """
    if not identifier:
        raise ValueError("SQL identifier cannot be empty")
    return "`" + identifier.replace("`", "``") + "`"


def qualified_table(database: str, table: str) -> str:
    """
    Build a validated `database.table` reference.

    >>> qualified_table("prod_db", "orders")
    'prod_db.orders'
    """
    validate_identifier(database)
    validate_identifier(table)
    return f"{database}.{table}"


def escape_literal(value: str) -> str:
    """Escape a value for use inside single quotes (backslash first)."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


def validate_integer_param(value: int, param_name: str, min_value: int = 0) -> None:
    """
    Validate an integer parameter spliced into SQL (e.g. LIMIT).

    Raises:
        ValueError: If the value is not an integer or below min_value
    """
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValueError(
            f"Invalid {param_name}: {value!r}. Must be an integer."
        )

    if value < min_value:
        raise ValueError(
            f"Invalid {param_name}: {value}. Must be >= {min_value}."
        )
