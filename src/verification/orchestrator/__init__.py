"""
Partition fan-out orchestration.

Features:
- Bounded thread pool per table run, sized to the partition count
- Per-partition retry with a fresh engine connection per attempt
- Failure isolation: a failing partition becomes an ERROR outcome
- Fan-out timeout with cancellation tokens and bounded shutdown
- Prometheus metrics and tracing spans for every run and partition
"""

from .verifier import TableVerifier, VerificationRequest

__all__ = ["TableVerifier", "VerificationRequest"]
