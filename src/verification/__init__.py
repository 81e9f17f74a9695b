"""
Partition-aware data verification.

Compares a table in a base database against the same table in a target
database on one SQL engine. Partitioned tables are compared partition by
partition in parallel; each outcome is stored in the result database and
folded into run metrics.

Modules:
- metadata: column and partition discovery
- strategies: FAST (SHA fingerprints) and DETAILED (EXCEPT) comparison
- orchestrator: partition fan-out with retries, timeouts and cancellation
- repository: PostgreSQL result store
- batch, scheduler, cli: multi-table runs and entry points
"""

from .errors import ConfigurationError, VerificationError
from .models import (
    ComparisonOutcome,
    TableMetadata,
    VerificationMetrics,
    VerificationMode,
    VerificationStatus,
)
from .orchestrator import TableVerifier

__version__ = "1.0.0"

__all__ = [
    "ComparisonOutcome",
    "ConfigurationError",
    "TableMetadata",
    "TableVerifier",
    "VerificationError",
    "VerificationMetrics",
    "VerificationMode",
    "VerificationStatus",
]
