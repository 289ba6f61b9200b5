# ephemcore/core/errors.py
# -----------------------------------------------------------------------------
# Exception hierarchy shared by every engine layer.
#
# Internal layers raise; the public Engine converts an EphemerisError into an
# error envelope. Anything that is not an EphemerisError is a bug and
# propagates unchanged.
# -----------------------------------------------------------------------------

from __future__ import annotations

from enum import Enum

__all__ = [
    "ErrorClass",
    "EphemerisError",
    "UsageError",
    "DataUnavailable",
    "NumericNonconvergence",
    "PolarDegeneracyError",
]

class ErrorClass(Enum):
    USAGE = "usage"
    DATA_UNAVAILABLE = "data_unavailable"
    NUMERIC_NONCONVERGENCE = "numeric_nonconvergence"
    GEOMETRIC_DEGENERACY = "geometric_degeneracy"

class EphemerisError(Exception):
    """Base exception for ephemeris computations."""
    def __init__(self, message: str, error_class: ErrorClass, **context):
        super().__init__(message)
        self.error_class = error_class
        self.context = context

class UsageError(EphemerisError):
    """Invalid body, conflicting options, or missing configuration."""
    def __init__(self, message: str, **context):
        super().__init__(message, ErrorClass.USAGE, **context)

class DataUnavailable(EphemerisError):
    """Ephemeris file missing, corrupt, or epoch outside coverage."""
    def __init__(self, message: str, **context):
        super().__init__(message, ErrorClass.DATA_UNAVAILABLE, **context)

class NumericNonconvergence(EphemerisError):
    """An iterative solver exceeded its iteration bound."""
    def __init__(self, message: str, **context):
        super().__init__(message, ErrorClass.NUMERIC_NONCONVERGENCE, **context)

class PolarDegeneracyError(UsageError):
    """House system undefined at the requested latitude."""
    def __init__(self, message: str, **context):
        EphemerisError.__init__(self, message, ErrorClass.GEOMETRIC_DEGENERACY, **context)
