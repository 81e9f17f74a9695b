"""
Recurring verification runs using APScheduler.
"""

from .jobs import verification_batch_job
from .scheduler import VerificationScheduler

__all__ = [
    "VerificationScheduler",
    "verification_batch_job",
]
