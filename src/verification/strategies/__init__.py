"""
Comparison strategies.

Every strategy first compares row counts and stops early when they differ
or both sides are empty; only then does it run its differencing query.
Strategies are stateless functions and never retry: failures propagate
to the orchestrator, which owns the retry policy.
"""

from collections.abc import Callable
from typing import Any

from ..models import ComparisonOutcome, VerificationMode
from .base import CountCheck, format_row, run_count_check
from .detailed import verify_detailed
from .fast import verify_fast

StrategyFunc = Callable[..., ComparisonOutcome]

STRATEGIES: dict[VerificationMode, StrategyFunc] = {
    VerificationMode.FAST: verify_fast,
    VerificationMode.DETAILED: verify_detailed,
}


def verify(
    mode: VerificationMode | str,
    connection: Any,
    base_db: str,
    target_db: str,
    table: str,
    columns: list[str] | tuple[str, ...],
    where_condition: str,
    sample_limit: int,
) -> ComparisonOutcome:
    """Run the comparison strategy selected by mode."""
    strategy = STRATEGIES[VerificationMode.parse(mode)]
    return strategy(
        connection, base_db, target_db, table, columns, where_condition, sample_limit
    )


__all__ = [
    "STRATEGIES",
    "CountCheck",
    "format_row",
    "run_count_check",
    "verify",
    "verify_detailed",
    "verify_fast",
]
