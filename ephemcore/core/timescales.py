# ephemcore/core/timescales.py
# -----------------------------------------------------------------------------
# Calendar and Time Scale Conversions
#
# Standards:
#   • Proleptic Julian and Gregorian calendars, astronomical year numbering
#     (year 0 = 1 BCE), valid for any integer year
#   • IAU SOFA/ERFA chain UTC→TAI→TT for dates from 1972 on (leap seconds)
#   • Delta-T from the Espenak & Meeus (2006) era polynomials, adjusted for
#     the lunar tidal acceleration of the ephemeris in use
#
# Public API:
#   julday / revjul / date_conversion           calendar ↔ Julian Day
#   utc_to_jd / jdet_to_utc / jdut1_to_utc      civil time ↔ ET/UT
#   delta_t                                     ET − UT in days
# -----------------------------------------------------------------------------

from __future__ import annotations

import math
import logging
import warnings as py_warnings
from enum import Enum
from typing import NamedTuple, Optional, Tuple

import erfa  # pyERFA - SOFA/ERFA gold standard

from .constants import (
    DELTAT_AUTOMATIC,
    GREG_CAL,
    JUL_CAL,
    TIDAL_26,
    TIDAL_DEFAULT,
)
from .errors import UsageError

__all__ = [
    "TimeScale",
    "Epoch",
    "split_jd",
    "julday",
    "revjul",
    "date_conversion",
    "days_in_month",
    "delta_t",
    "utc_to_jd",
    "jdet_to_utc",
    "jdut1_to_utc",
]

log = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400.0
DAYS_PER_TROPICAL_YEAR = 365.2425
JD_1972 = 2441317.5          # 1972-01-01 00:00 UTC, start of the leap-second era
JD_Y2000_0 = 2451544.5       # 2000-01-01 00:00

# ───────────────────────────── Epoch Tagging ─────────────────────────────

class TimeScale(Enum):
    UT = "ut"
    ET = "et"

class Epoch(NamedTuple):
    """Julian Day tagged with the time scale it is expressed in."""
    jd: float
    scale: TimeScale

    @classmethod
    def ut(cls, jd: float) -> "Epoch":
        return cls(float(jd), TimeScale.UT)

    @classmethod
    def et(cls, jd: float) -> "Epoch":
        return cls(float(jd), TimeScale.ET)

    def require_et(self) -> float:
        """Return the ET Julian Day; a UT epoch here is a programming error."""
        if self.scale is not TimeScale.ET:
            raise UsageError("epoch must be converted to Ephemeris Time first", jd=self.jd)
        return self.jd

def split_jd(jd: float) -> Tuple[float, float]:
    """Split JD into two parts for ERFA precision."""
    jd_int = math.floor(jd + 0.5) - 0.5
    return jd_int, jd - jd_int

# ───────────────────────────── Calendar ↔ Julian Day ─────────────────────────────

def _check_calendar(calendar: int) -> None:
    if calendar not in (JUL_CAL, GREG_CAL):
        raise UsageError(f"unknown calendar flag {calendar}", calendar=calendar)

def _is_leap_year(year: int, calendar: int) -> bool:
    if calendar == JUL_CAL:
        return year % 4 == 0
    return year % 4 == 0 and (year % 100 != 0 or year % 400 == 0)

def days_in_month(year: int, month: int, calendar: int = GREG_CAL) -> int:
    if month == 2:
        return 29 if _is_leap_year(year, calendar) else 28
    if month in (4, 6, 9, 11):
        return 30
    return 31

def _day_number(year: int, month: int, day: int, calendar: int) -> int:
    # Fliegel & Van Flandern with floor division, so negative years work too
    a = (14 - month) // 12
    y = year + 4800 - a
    m = month + 12 * a - 3
    jdn = day + (153 * m + 2) // 5 + 365 * y + y // 4
    if calendar == GREG_CAL:
        return jdn - y // 100 + y // 400 - 32045
    return jdn - 32083

def julday(year: int, month: int, day: int, hour: float = 0.0, calendar: int = GREG_CAL) -> float:
    """Julian Day for a calendar date; no validation, out-of-range days roll over."""
    _check_calendar(calendar)
    return _day_number(int(year), int(month), int(day), calendar) - 0.5 + hour / 24.0

def revjul(jd: float, calendar: int = GREG_CAL) -> Tuple[int, int, int, float]:
    """Calendar date (year, month, day, hour) for a Julian Day."""
    _check_calendar(calendar)
    jdn = math.floor(jd + 0.5)
    hour = (jd + 0.5 - jdn) * 24.0

    if calendar == GREG_CAL:
        a = jdn + 32044
        b = (4 * a + 3) // 146097
        c = a - (146097 * b) // 4
    else:
        b = 0
        c = jdn + 32082
    d = (4 * c + 3) // 1461
    e = c - (1461 * d) // 4
    m = (5 * e + 2) // 153

    day = e - (153 * m + 2) // 5 + 1
    month = m + 3 - 12 * (m // 10)
    year = 100 * b + d - 4800 + m // 10
    return int(year), int(month), int(day), hour

def date_conversion(year: int, month: int, day: int, hour: float = 0.0, calendar: int = GREG_CAL) -> float:
    """
    Validated calendar → Julian Day conversion.

    Raises UsageError for impossible dates (month 13, day 32, February 30 in
    a common year, ...) instead of rolling them over like julday does.
    """
    _check_calendar(calendar)
    if not 1 <= month <= 12:
        raise UsageError(f"invalid month {month}", year=year, month=month, day=day)
    if not 1 <= day <= days_in_month(year, month, calendar):
        raise UsageError(
            f"invalid day {day} for {year:d}-{month:02d}", year=year, month=month, day=day
        )
    if not 0.0 <= hour < 24.0:
        raise UsageError(f"invalid hour {hour}", hour=hour)
    return julday(year, month, day, hour, calendar)

# ───────────────────────────── Delta-T ─────────────────────────────

def _decimal_year(jd: float) -> float:
    return 2000.0 + (jd - JD_Y2000_0) / DAYS_PER_TROPICAL_YEAR

def _long_term_parabola(y: float) -> float:
    u = (y - 1820.0) / 100.0
    return -20.0 + 32.0 * u * u

def _espenak_meeus_seconds(y: float) -> float:
    """Delta-T in seconds for decimal year y (tidal acceleration -26"/cy²)."""
    if y < -500.0:
        return _long_term_parabola(y)
    if y < 500.0:
        u = y / 100.0
        return (10583.6 - 1014.41 * u + 33.78311 * u**2 - 5.952053 * u**3
                - 0.1798452 * u**4 + 0.022174192 * u**5 + 0.0090316521 * u**6)
    if y < 1600.0:
        u = (y - 1000.0) / 100.0
        return (1574.2 - 556.01 * u + 71.23472 * u**2 + 0.319781 * u**3
                - 0.8503463 * u**4 - 0.005050998 * u**5 + 0.0083572073 * u**6)
    if y < 1700.0:
        t = y - 1600.0
        return 120.0 - 0.9808 * t - 0.01532 * t**2 + t**3 / 7129.0
    if y < 1800.0:
        t = y - 1700.0
        return (8.83 + 0.1603 * t - 0.0059285 * t**2 + 0.00013336 * t**3
                - t**4 / 1174000.0)
    if y < 1860.0:
        t = y - 1800.0
        return (13.72 - 0.332447 * t + 0.0068612 * t**2 + 0.0041116 * t**3
                - 0.00037436 * t**4 + 0.0000121272 * t**5 - 0.0000001699 * t**6
                + 0.000000000875 * t**7)
    if y < 1900.0:
        t = y - 1860.0
        return (7.62 + 0.5737 * t - 0.251754 * t**2 + 0.01680668 * t**3
                - 0.0004473624 * t**4 + t**5 / 233174.0)
    if y < 1920.0:
        t = y - 1900.0
        return -2.79 + 1.494119 * t - 0.0598939 * t**2 + 0.0061966 * t**3 - 0.000197 * t**4
    if y < 1941.0:
        t = y - 1920.0
        return 21.20 + 0.84493 * t - 0.076100 * t**2 + 0.0020936 * t**3
    if y < 1961.0:
        t = y - 1950.0
        return 29.07 + 0.407 * t - t**2 / 233.0 + t**3 / 2547.0
    if y < 1986.0:
        t = y - 1975.0
        return 45.45 + 1.067 * t - t**2 / 260.0 - t**3 / 718.0
    if y < 2005.0:
        t = y - 2000.0
        return (63.86 + 0.3345 * t - 0.060374 * t**2 + 0.0017275 * t**3
                + 0.000651814 * t**4 + 0.00002373599 * t**5)
    if y < 2050.0:
        t = y - 2000.0
        return 62.92 + 0.32217 * t + 0.005589 * t**2
    if y < 2150.0:
        return _long_term_parabola(y) - 0.5628 * (2150.0 - y)
    return _long_term_parabola(y)

def delta_t(jd_ut: float, tidal_acc: float = TIDAL_DEFAULT, override: Optional[float] = None) -> float:
    """
    ET − UT in days at the given UT Julian Day.

    A non-automatic override (in days) short-circuits the model. The model
    values assume a lunar tidal acceleration of -26"/cy²; before 1955, where
    Delta-T is derived from lunar observations, they are rescaled to the
    tidal acceleration of the ephemeris actually used.
    """
    if override is not None and override != DELTAT_AUTOMATIC:
        return override

    y = _decimal_year(jd_ut)
    seconds = _espenak_meeus_seconds(y)
    if y < 1955.0 and tidal_acc != TIDAL_26:
        seconds += -0.000091 * (tidal_acc - TIDAL_26) * (y - 1955.0) ** 2
    return seconds / SECONDS_PER_DAY

def _ut_from_et(jd_et: float, tidal_acc: float, override: Optional[float]) -> float:
    jd_ut = jd_et - delta_t(jd_et, tidal_acc, override)
    # one refinement step; Delta-T changes by < 1 s per year
    return jd_et - delta_t(jd_ut, tidal_acc, override)

# ───────────────────────────── Civil Time ↔ ET/UT ─────────────────────────────

def _validate_clock(hour: int, minute: int, second: float) -> None:
    if not 0 <= hour <= 23:
        raise UsageError(f"invalid hour {hour}", hour=hour)
    if not 0 <= minute <= 59:
        raise UsageError(f"invalid minute {minute}", minute=minute)
    if not 0.0 <= second < 61.0:
        raise UsageError(f"invalid second {second}", second=second)

def utc_to_jd(
    year: int,
    month: int,
    day: int,
    hour: int,
    minute: int,
    second: float,
    calendar: int = GREG_CAL,
    *,
    tidal_acc: float = TIDAL_DEFAULT,
    delta_t_override: Optional[float] = None,
) -> Tuple[float, float]:
    """
    Convert a civil UTC date/time to (jd_et, jd_ut).

    From 1972 on the ERFA leap-second chain gives ET exactly and UT follows
    from Delta-T. Earlier dates have no UTC in the modern sense: the input is
    taken as UT and ET is derived from Delta-T.
    """
    _validate_clock(hour, minute, second)
    jd_day = date_conversion(year, month, day, 0.0, calendar)
    if calendar == JUL_CAL:
        year, month, day, _ = revjul(jd_day, GREG_CAL)

    if jd_day < JD_1972:
        if second >= 60.0:
            raise UsageError("leap seconds do not exist before 1972", second=second)
        jd_ut = jd_day + (hour + minute / 60.0 + second / 3600.0) / 24.0
        return jd_ut + delta_t(jd_ut, tidal_acc, delta_t_override), jd_ut

    with py_warnings.catch_warnings():
        # ERFA flags years beyond its leap-second table as "dubious"
        py_warnings.simplefilter("ignore", erfa.ErfaWarning)
        try:
            utc1, utc2 = erfa.dtf2d("UTC", year, month, day, hour, minute, second)
            tai1, tai2 = erfa.utctai(utc1, utc2)
            tt1, tt2 = erfa.taitt(tai1, tai2)
        except erfa.ErfaError as e:
            raise UsageError(f"invalid UTC time: {e}", second=second)

    jd_et = float(tt1) + float(tt2)
    jd_ut = _ut_from_et(jd_et, tidal_acc, delta_t_override)
    return jd_et, jd_ut

def _split_hours(year: int, month: int, day: int, hour: float) -> Tuple[int, int, int, int, int, float]:
    h = int(hour)
    minutes = (hour - h) * 60.0
    mi = int(minutes)
    sec = (minutes - mi) * 60.0
    return year, month, day, h, mi, sec

def jdet_to_utc(
    jd_et: float,
    calendar: int = GREG_CAL,
    *,
    tidal_acc: float = TIDAL_DEFAULT,
    delta_t_override: Optional[float] = None,
) -> Tuple[int, int, int, int, int, float]:
    """Civil UTC (year, month, day, hour, minute, second) for an ET Julian Day."""
    _check_calendar(calendar)
    jd_ut = _ut_from_et(jd_et, tidal_acc, delta_t_override)

    if jd_ut < JD_1972:
        return _split_hours(*revjul(jd_ut, calendar))

    with py_warnings.catch_warnings():
        py_warnings.simplefilter("ignore", erfa.ErfaWarning)
        tt1, tt2 = split_jd(jd_et)
        tai1, tai2 = erfa.tttai(tt1, tt2)
        utc1, utc2 = erfa.taiutc(tai1, tai2)
        iy, im, iday, ihmsf = erfa.d2dtf("UTC", 6, utc1, utc2)

    year, month, day = int(iy), int(im), int(iday)
    second = int(ihmsf["s"]) + int(ihmsf["f"]) / 1e6
    if calendar == JUL_CAL:
        year, month, day, _ = revjul(julday(year, month, day, 0.0, GREG_CAL), JUL_CAL)
    return year, month, day, int(ihmsf["h"]), int(ihmsf["m"]), second

def jdut1_to_utc(
    jd_ut: float,
    calendar: int = GREG_CAL,
    *,
    tidal_acc: float = TIDAL_DEFAULT,
    delta_t_override: Optional[float] = None,
) -> Tuple[int, int, int, int, int, float]:
    """Civil UTC for a UT Julian Day."""
    _check_calendar(calendar)
    if jd_ut < JD_1972:
        return _split_hours(*revjul(jd_ut, calendar))
    jd_et = jd_ut + delta_t(jd_ut, tidal_acc, delta_t_override)
    return jdet_to_utc(jd_et, calendar, tidal_acc=tidal_acc, delta_t_override=delta_t_override)
