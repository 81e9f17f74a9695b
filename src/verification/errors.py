"""Exceptions raised by the verification engine."""


class VerificationError(Exception):
    """Base exception for verification failures."""

    pass


class ConfigurationError(VerificationError):
    """
    Raised for invalid setup that no retry can fix: no columns left to
    compare after exclusion, malformed configuration values, unknown mode.
    """

    pass
