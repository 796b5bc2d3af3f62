"""
Exception classes for rvsharing.

All errors raised for invalid caller input derive from SharingError so that
the CLI and embedding code can catch a single type. InputError and ShapeError
additionally subclass ValueError, which keeps ``except ValueError`` handlers in
calling code working.
"""

from typing import Dict, Optional


class SharingError(Exception):
    """Base exception for all rvsharing errors."""

    def __init__(self, message: str, details: Optional[Dict] = None):
        """Initialize sharing error.

        Parameters
        ----------
        message : str
            Error message
        details : dict, optional
            Additional error details (offending values, expected sizes)
        """
        super().__init__(message)
        self.details = details or {}


class InputError(SharingError, ValueError):
    """Raised when a probability, threshold or vector length is invalid."""

    def __init__(self, message: str, field: Optional[str] = None, details: Optional[Dict] = None):
        """Initialize input error."""
        merged = dict(details or {})
        if field is not None:
            merged["field"] = field
        super().__init__(message, merged)
        self.field = field


class ShapeError(SharingError, ValueError):
    """Raised when a genotype matrix does not match its row or column labels."""

    def __init__(self, message: str, expected: Optional[int] = None, actual: Optional[int] = None):
        """Initialize shape error."""
        super().__init__(message, {"expected": expected, "actual": actual})
        self.expected = expected
        self.actual = actual
