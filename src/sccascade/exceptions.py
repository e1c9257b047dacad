"""
Error taxonomy for gene cascade processing.

Configuration and data errors are fatal at the stage that detects them.
Per-gene fit failures are not raised; they are recorded as FAILED fits.
"""


class CascadeError(Exception):
    """Base class for all gene cascade errors."""


class InvalidParameter(CascadeError, ValueError):
    """Window or cell-count configuration that cannot produce any window."""


class EmptyWindow(CascadeError, ValueError):
    """A pseudotime window contains no cells."""


class InsufficientData(CascadeError, ValueError):
    """Too few values to estimate a quantity (e.g. background noise)."""
