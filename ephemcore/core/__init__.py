"""
Core ephemeris computation modules.

The Engine facade is the public entry point; the submodules (time scales,
data store, state calculator, transform pipeline, ayanamsa, orbital elements,
houses) can also be used directly.
"""

from .constants import (
    OK,
    ERR,
    GREG_CAL,
    JUL_CAL,
    Body,
    CalcFlag,
    EphemerisSource,
    OrbitalElementsFlag,
    SiderealBit,
    SiderealMode,
)
from .context import EngineConfig, EngineContext
from .engine import Engine, ResultEnvelope
from .errors import DataUnavailable, EphemerisError, NumericNonconvergence, PolarDegeneracyError, UsageError

__all__ = [
    "OK",
    "ERR",
    "GREG_CAL",
    "JUL_CAL",
    "Body",
    "CalcFlag",
    "EphemerisSource",
    "OrbitalElementsFlag",
    "SiderealMode",
    "SiderealBit",
    "EngineConfig",
    "EngineContext",
    "Engine",
    "ResultEnvelope",
    "EphemerisError",
    "UsageError",
    "DataUnavailable",
    "NumericNonconvergence",
    "PolarDegeneracyError",
]
