# ephemcore/core/engine.py
# -----------------------------------------------------------------------------
# Public engine operations
#
# Every fallible operation returns a ResultEnvelope:
#   flag   ERR (-1) on failure; otherwise OK or, for position calls, the
#          option bitmask actually honoured (source bits show fallbacks)
#   data   the payload
#   error  diagnostic text; set on failure, and on success only when an
#          explicitly requested source had to be substituted
#
# EphemerisError subclasses become error envelopes here and nowhere else.
# Any other exception is a bug and propagates.
# -----------------------------------------------------------------------------

from __future__ import annotations

import functools
import logging
import math
import os
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

import erfa

from .ayanamsa import SiderealConfig, ayanamsa_name, definition_for, mean_ayanamsa, true_ayanamsa
from .constants import (
    ERR,
    GREG_CAL,
    OK,
    SIDM_USER,
    SOURCE_MASK,
    CalcFlag,
    EphemerisSource,
    HouseAngle,
    SiderealBit,
)
from .context import EngineConfig, EngineContext
from .errors import EphemerisError, UsageError
from .houses import HouseCusps, house_speeds, houses_armc, normalize_hsys
from .houses import house_name as _house_name
from .orbital_elements import ElementsCalculator
from .state import planet_name
from .timescales import (
    date_conversion,
    jdet_to_utc,
    jdut1_to_utc,
    julday,
    revjul,
    utc_to_jd,
)
from .transforms import Pipeline, parse_flags

log = logging.getLogger(__name__)

__all__ = ["Engine", "ResultEnvelope"]

_SIDEREAL_ANGLES = (
    HouseAngle.ASC, HouseAngle.MC, HouseAngle.VERTEX, HouseAngle.EQUASC,
    HouseAngle.COASC1, HouseAngle.COASC2, HouseAngle.POLASC,
)
_MODE_MASK = 0xFF
_SUPPORTED_SID_BITS = int(SiderealBit.ECL_T0 | SiderealBit.USER_UT)

@dataclass(frozen=True)
class ResultEnvelope:
    flag: int
    data: Any = ()
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.flag != ERR

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

def _guarded(operation):
    """Turn an EphemerisError raised by `operation` into an error envelope."""
    @functools.wraps(operation)
    def wrapper(self, *args, **kwargs):
        try:
            return operation(self, *args, **kwargs)
        except EphemerisError as e:
            log.error(f"{operation.__name__} failed ({e.error_class.value}): {e}")
            return ResultEnvelope(ERR, (), str(e))
    return wrapper

def _houses_payload(cusps: HouseCusps, speeds: Optional[HouseCusps] = None) -> Dict[str, tuple]:
    payload = {"houses": cusps.cusps, "points": cusps.angles}
    if speeds is not None:
        payload["houses_speed"] = speeds.cusps
        payload["points_speed"] = speeds.angles
    return payload

class Engine:
    """
    Ephemeris engine bound to one EngineContext.

    Engines built without a context get their own; two engines share
    configuration only when handed the same context.
    """

    def __init__(self, context: Optional[EngineContext] = None, config: Optional[EngineConfig] = None):
        self.context = context or EngineContext(config)
        self._pipeline = Pipeline(self.context)
        self._elements = ElementsCalculator(self.context)

    # ───────────── Time ─────────────

    @_guarded
    def utc_to_jd(self, year: int, month: int, day: int, hour: int, minute: int, second: float,
                  calendar: int = GREG_CAL) -> ResultEnvelope:
        """(jd_et, jd_ut) for a civil UTC date and time."""
        ctx = self.context
        approx = julday(year, month, day, hour + minute / 60.0 + second / 3600.0, calendar)
        with ctx.lock:
            jd = utc_to_jd(year, month, day, hour, minute, second, calendar,
                           tidal_acc=ctx.effective_tidal_acc(jd=approx), delta_t_override=ctx.delta_t_override)
        return ResultEnvelope(OK, jd)

    @_guarded
    def jdet_to_utc(self, jd_et: float, calendar: int = GREG_CAL) -> ResultEnvelope:
        ctx = self.context
        with ctx.lock:
            utc = jdet_to_utc(jd_et, calendar, tidal_acc=ctx.effective_tidal_acc(jd=jd_et),
                              delta_t_override=ctx.delta_t_override)
        return ResultEnvelope(OK, utc)

    @_guarded
    def jdut1_to_utc(self, jd_ut: float, calendar: int = GREG_CAL) -> ResultEnvelope:
        ctx = self.context
        with ctx.lock:
            utc = jdut1_to_utc(jd_ut, calendar, tidal_acc=ctx.effective_tidal_acc(jd=jd_ut),
                               delta_t_override=ctx.delta_t_override)
        return ResultEnvelope(OK, utc)

    @staticmethod
    def julday(year: int, month: int, day: int, hour: float = 0.0, calendar: int = GREG_CAL) -> float:
        return julday(year, month, day, hour, calendar)

    @staticmethod
    def revjul(jd: float, calendar: int = GREG_CAL):
        return revjul(jd, calendar)

    @_guarded
    def date_conversion(self, year: int, month: int, day: int, hour: float = 0.0,
                        calendar: int = GREG_CAL) -> ResultEnvelope:
        """Julian Day of a validated calendar date."""
        return ResultEnvelope(OK, date_conversion(year, month, day, hour, calendar))

    def deltat(self, jd_ut: float) -> float:
        """Delta-T in days for the default source."""
        with self.context.lock:
            return self.context.delta_t(jd_ut)

    @_guarded
    def deltat_ex(self, jd_ut: float, flags: int = CalcFlag.SWIEPH) -> ResultEnvelope:
        request = parse_flags(flags & SOURCE_MASK)
        with self.context.lock:
            value = self.context.delta_t(jd_ut, request.source)
        return ResultEnvelope(int(request.source), value)

    # ───────────── Positions ─────────────

    @_guarded
    def calc(self, jd_et: float, ipl: int, flags: int = CalcFlag.SWIEPH | CalcFlag.SPEED) -> ResultEnvelope:
        """
        Position of `ipl` at `jd_et`.

        data is (lon, lat, dist, dlon, dlat, ddist), or (x, y, z, dx, dy, dz)
        with XYZ. The returned flag is the honoured option set; compare its
        source bits with the request to detect a fallback.
        """
        with self.context.lock:
            result = self._pipeline.compute(jd_et, ipl, flags)
        explicit = bool(int(flags) & SOURCE_MASK)
        error = result.resolution.reason if explicit and result.resolution.substituted else ""
        return ResultEnvelope(result.flag, result.values, error)

    @_guarded
    def calc_ut(self, jd_ut: float, ipl: int, flags: int = CalcFlag.SWIEPH | CalcFlag.SPEED) -> ResultEnvelope:
        request = parse_flags(flags)
        with self.context.lock:
            jd_et = self.context.ut_to_et(jd_ut, request.source)
        return self.calc(jd_et, ipl, flags)

    # ───────────── Orbital elements ─────────────

    @_guarded
    def get_orbital_elements(self, jd_et: float, ipl: int, flags: int = CalcFlag.SWIEPH) -> ResultEnvelope:
        """17 osculating elements; see orbital_elements.ELEMENT_NAMES for the order."""
        with self.context.lock:
            result = self._elements.compute(jd_et, ipl, flags)
        explicit = bool(int(flags) & SOURCE_MASK)
        error = result.resolution.reason if explicit and result.resolution.substituted else ""
        return ResultEnvelope(OK, tuple(result.elements), error)

    # ───────────── Ayanamsa ─────────────

    def _delta_t_fn(self, source: EphemerisSource = EphemerisSource.SWIEPH):
        return lambda jd: self.context.delta_t(jd, source)

    def get_ayanamsa(self, jd_et: float) -> float:
        """Mean ayanamsa (no nutation) in degrees."""
        with self.context.lock:
            value, _ = mean_ayanamsa(jd_et, self.context.sidereal, self._delta_t_fn())
        return value

    def get_ayanamsa_ut(self, jd_ut: float) -> float:
        with self.context.lock:
            return self.get_ayanamsa(self.context.ut_to_et(jd_ut))

    @_guarded
    def get_ayanamsa_ex(self, jd_et: float, flags: int = CalcFlag.SWIEPH) -> ResultEnvelope:
        """Ayanamsa including nutation unless NONUT is set."""
        request = parse_flags(flags)
        ctx = self.context
        with ctx.lock:
            variant = mean_ayanamsa if request.flags & CalcFlag.NONUT else true_ayanamsa
            value, _ = variant(jd_et, ctx.sidereal, self._delta_t_fn(request.source))
        honoured = int(request.source) | (request.flags & CalcFlag.NONUT)
        return ResultEnvelope(honoured, value)

    @_guarded
    def get_ayanamsa_ex_ut(self, jd_ut: float, flags: int = CalcFlag.SWIEPH) -> ResultEnvelope:
        request = parse_flags(flags)
        with self.context.lock:
            jd_et = self.context.ut_to_et(jd_ut, request.source)
        return self.get_ayanamsa_ex(jd_et, flags)

    @staticmethod
    def get_ayanamsa_name(mode: int) -> Optional[str]:
        try:
            return ayanamsa_name(int(mode) & _MODE_MASK)
        except UsageError:
            return None

    # ───────────── Houses ─────────────

    def _sidereal_time(self, jd_ut: float, lon: float):
        """(ARMC deg, true obliquity deg, jd_et) for a UT epoch and east longitude."""
        jd_et = self.context.ut_to_et(jd_ut)
        gast = erfa.gst06a(jd_ut, 0.0, jd_et, 0.0)
        _, deps = erfa.nut06a(jd_et, 0.0)
        eps = math.degrees(erfa.obl06(jd_et, 0.0) + deps)
        return (math.degrees(gast) + lon) % 360.0, eps, jd_et

    def _house_set(self, jd_ut: float, flags: int, lat: float, lon: float, hsys, with_speed: bool):
        flags = int(flags)
        code = normalize_hsys(hsys)
        max_iter = self.context.config.placidus_max_iterations
        with self.context.lock:
            armc, eps, jd_et = self._sidereal_time(jd_ut, lon)
            cusps = houses_armc(armc, lat, eps, code, max_iter=max_iter)
            speeds = house_speeds(armc, lat, eps, code, max_iter=max_iter) if with_speed else None
            if flags & CalcFlag.SIDEREAL:
                ayanamsa, rate = true_ayanamsa(jd_et, self.context.sidereal, self._delta_t_fn())
                cusps = self._sidereal_cusps(cusps, ayanamsa)
                if speeds is not None:
                    speeds = self._sidereal_cusps(speeds, rate, wrap=False)
        return _houses_payload(cusps, speeds)

    @staticmethod
    def _sidereal_cusps(tropical: HouseCusps, offset: float, wrap: bool = True) -> HouseCusps:
        def shift(value: float) -> float:
            return (value - offset) % 360.0 if wrap else value - offset
        cusps = tuple(shift(c) for c in tropical.cusps)
        angles = list(tropical.angles)
        for index in _SIDEREAL_ANGLES:
            angles[index] = shift(angles[index])
        return HouseCusps(cusps, tuple(angles))

    @_guarded
    def houses(self, jd_ut: float, lat: float, lon: float, hsys="P") -> ResultEnvelope:
        """Tropical cusps[12] and angles[10] for a UT epoch and geographic position."""
        return ResultEnvelope(OK, self._house_set(jd_ut, 0, lat, lon, hsys, with_speed=False))

    @_guarded
    def houses_ex(self, jd_ut: float, flags: int, lat: float, lon: float, hsys="P") -> ResultEnvelope:
        return ResultEnvelope(OK, self._house_set(jd_ut, flags, lat, lon, hsys, with_speed=False))

    @_guarded
    def houses_ex2(self, jd_ut: float, flags: int, lat: float, lon: float, hsys="P") -> ResultEnvelope:
        """Like houses_ex, plus cusp and angle speeds in degrees per day."""
        return ResultEnvelope(OK, self._house_set(jd_ut, flags, lat, lon, hsys, with_speed=True))

    @_guarded
    def houses_armc(self, armc: float, lat: float, eps: float, hsys="P") -> ResultEnvelope:
        cusps = houses_armc(armc, lat, eps, hsys, max_iter=self.context.config.placidus_max_iterations)
        return ResultEnvelope(OK, _houses_payload(cusps))

    @staticmethod
    def house_name(hsys) -> Optional[str]:
        try:
            return _house_name(hsys)
        except UsageError:
            return None

    # ───────────── Configuration ─────────────

    def set_ephe_path(self, path: Optional[str]) -> None:
        self.context.set_ephe_path(path)

    @_guarded
    def set_jpl_file(self, fname: str) -> ResultEnvelope:
        self.context.set_jpl_file(fname)
        return ResultEnvelope(OK)

    @_guarded
    def set_sid_mode(self, sid_mode: int, t0: float = 0.0, ayan_t0: float = 0.0) -> ResultEnvelope:
        """
        Select the sidereal mode. Option bits (SiderealBit) are OR-ed into the
        mode; only ECL_T0 and USER_UT are honoured, any other bit is refused.
        """
        sid_mode = int(sid_mode)
        mode, bits = sid_mode & _MODE_MASK, sid_mode & ~_MODE_MASK
        if mode != SIDM_USER:
            definition_for(mode)
        if bits & SiderealBit.SSY_PLANE:
            raise UsageError("Projection onto the solar-system plane is not supported", mode=sid_mode)
        if bits & ~_SUPPORTED_SID_BITS:
            raise UsageError(f"Unsupported sidereal option bits {bits & ~_SUPPORTED_SID_BITS:#x}", mode=sid_mode)
        self.context.set_sidereal(SiderealConfig(mode, bits, t0, ayan_t0))
        return ResultEnvelope(OK)

    def set_delta_t_userdef(self, days: Optional[float]) -> None:
        """Fix Delta-T (days); DELTAT_AUTOMATIC restores the model."""
        self.context.set_delta_t_override(days)

    def set_tid_acc(self, value: float) -> None:
        self.context.set_tidal_acc(value)

    def get_tid_acc(self) -> float:
        with self.context.lock:
            return self.context.effective_tidal_acc()

    @_guarded
    def set_topo(self, lon: float, lat: float, elevation: float = 0.0) -> ResultEnvelope:
        self.context.set_topo(lon, lat, elevation)
        return ResultEnvelope(OK)

    # ───────────── Information ─────────────

    @staticmethod
    def version() -> str:
        from .. import __version__
        return __version__

    @staticmethod
    def get_library_path() -> str:
        return os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

    @_guarded
    def get_current_file_data(self, ifno: int) -> ResultEnvelope:
        meta = self.context.store.current_file_data(ifno)
        return ResultEnvelope(OK, meta._asdict())

    @staticmethod
    def get_planet_name(ipl: int) -> Optional[str]:
        try:
            return planet_name(ipl)
        except UsageError:
            return None

    def close(self) -> None:
        """Release cached files and restore default configuration."""
        self.context.close()
