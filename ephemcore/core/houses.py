# ephemcore/core/houses.py
# -----------------------------------------------------------------------------
# House cusps and angles from ARMC, geographic latitude and obliquity
#
# Every quadrant system reduces to one primitive: the ecliptic longitude where
# a great circle through the north and south points of the horizon, with pole
# height `f`, cuts the ecliptic at oblique ascension `x` (`_asc1`). The systems
# differ only in how they pick (x, f) for cusps 11, 12, 2 and 3.
#
# Cusps are returned 1-based in a 13-slot list (slot 0 unused) internally and
# exposed as a 12-tuple; the angle array has the 10 wire slots.
# -----------------------------------------------------------------------------

from __future__ import annotations

import logging
import math
from typing import Callable, Dict, List, NamedTuple, Tuple

from .constants import HouseAngle
from .errors import NumericNonconvergence, PolarDegeneracyError, UsageError

log = logging.getLogger(__name__)

__all__ = [
    "HouseCusps",
    "HOUSE_SYSTEMS",
    "houses_armc",
    "house_name",
    "normalize_hsys",
]

EPS = 1e-12
MILLIARCSEC = 1.0 / 3_600_000.0
SIDEREAL_RATE = 360.98564736629  # deg of ARMC per day of UT

# ───────────────────────────── Result Type ─────────────────────────────

class HouseCusps(NamedTuple):
    cusps: Tuple[float, ...]        # 12 cusps, house 1 first
    angles: Tuple[float, ...]       # 10 slots, indexed by HouseAngle

# ───────────────────────────── Angle helpers ─────────────────────────────

def _norm(x: float) -> float:
    v = math.fmod(x, 360.0)
    if v < 0.0:
        v += 360.0
    return 0.0 if abs(v - 360.0) < 1e-13 else v

def _sind(x: float) -> float:
    return math.sin(math.radians(x))

def _cosd(x: float) -> float:
    return math.cos(math.radians(x))

def _tand(x: float) -> float:
    return math.tan(math.radians(x))

def _atand(x: float) -> float:
    return math.degrees(math.atan(x))

def _asind(x: float) -> float:
    if x > 1.0 + 1e-12 or x < -1.0 - 1e-12:
        raise PolarDegeneracyError(f"asin argument out of domain: {x}")
    return math.degrees(math.asin(max(-1.0, min(1.0, x))))

def _acosd(x: float) -> float:
    if x > 1.0 + 1e-12 or x < -1.0 - 1e-12:
        raise PolarDegeneracyError(f"acos argument out of domain: {x}")
    return math.degrees(math.acos(max(-1.0, min(1.0, x))))

def _diff(a: float, b: float) -> float:
    """Signed difference a - b folded into (-180, 180]."""
    d = _norm(a - b)
    return d - 360.0 if d > 180.0 else d

def _asc1(x: float, f: float, eps: float) -> float:
    """Ecliptic longitude cut by the house circle of pole height f at oblique ascension x."""
    sx, cx = _sind(x), _cosd(x)
    return _norm(math.degrees(math.atan2(sx, cx * _cosd(eps) - _tand(f) * _sind(eps))))

def _ra_to_lon(ra: float, eps: float) -> float:
    """Ecliptic longitude of the ecliptic point with right ascension `ra`."""
    return _asc1(ra, 0.0, eps)

# ───────────────────────────── Angles ─────────────────────────────

def _angles(armc: float, lat: float, eps: float) -> List[float]:
    asc = _asc1(armc + 90.0, lat, eps)
    mc = _ra_to_lon(armc, eps)
    pole = 90.0 - lat if lat >= 0.0 else -90.0 - lat
    ascmc = [0.0] * 10
    ascmc[HouseAngle.ASC] = asc
    ascmc[HouseAngle.MC] = mc
    ascmc[HouseAngle.ARMC] = _norm(armc)
    vertex = _asc1(armc - 90.0, pole, eps)
    if abs(lat) <= eps and _diff(vertex, mc) > 0.0:
        # between the polar circles of the ecliptic the vertex stays west of the MC
        vertex = _norm(vertex + 180.0)
    ascmc[HouseAngle.VERTEX] = vertex
    ascmc[HouseAngle.EQUASC] = _asc1(armc + 90.0, 0.0, eps)
    ascmc[HouseAngle.COASC1] = _norm(_asc1(armc - 90.0, lat, eps) + 180.0)
    ascmc[HouseAngle.COASC2] = _asc1(armc + 90.0, pole, eps)
    ascmc[HouseAngle.POLASC] = _asc1(armc - 90.0, lat, eps)
    return ascmc

# ───────────────────────────── Cusp engines ─────────────────────────────
#
# Each engine fills cusps[1..12] given (armc, lat, eps, asc, mc).

CuspEngine = Callable[[float, float, float, float, float, int], List[float]]

def _blank() -> List[float]:
    return [0.0] * 13

def _fill_opposites(c: List[float]) -> List[float]:
    for i in (10, 11, 12, 1, 2, 3):
        c[(i + 5) % 12 + 1] = _norm(c[i] + 180.0)
    return c

def _equal_from(start: float) -> List[float]:
    c = _blank()
    for i in range(1, 13):
        c[i] = _norm(start + 30.0 * (i - 1))
    return c

def _equal(armc, lat, eps, asc, mc, max_iter):
    return _equal_from(asc)

def _equal_mc(armc, lat, eps, asc, mc, max_iter):
    return _equal_from(mc - 270.0)

def _vehlow(armc, lat, eps, asc, mc, max_iter):
    return _equal_from(asc - 15.0)

def _whole_sign(armc, lat, eps, asc, mc, max_iter):
    return _equal_from(math.floor(asc / 30.0) * 30.0)

def _aries(armc, lat, eps, asc, mc, max_iter):
    return _equal_from(0.0)

def _porphyry(armc, lat, eps, asc, mc, max_iter):
    c = _blank()
    c[1], c[10] = asc, mc
    q = _norm(asc - mc)
    c[11] = _norm(mc + q / 3.0)
    c[12] = _norm(mc + 2.0 * q / 3.0)
    q = 180.0 - q
    c[2] = _norm(asc + q / 3.0)
    c[3] = _norm(asc + 2.0 * q / 3.0)
    return _fill_opposites(c)

def _regiomontanus(armc, lat, eps, asc, mc, max_iter):
    c = _blank()
    tanfi = _tand(lat)
    fh1 = _atand(tanfi * 0.5)
    fh2 = _atand(tanfi * _cosd(30.0))
    c[1], c[10] = asc, mc
    c[11] = _asc1(armc + 30.0, fh1, eps)
    c[12] = _asc1(armc + 60.0, fh2, eps)
    c[2] = _asc1(armc + 120.0, fh2, eps)
    c[3] = _asc1(armc + 150.0, fh1, eps)
    return _fill_opposites(c)

def _campanus(armc, lat, eps, asc, mc, max_iter):
    c = _blank()
    fh1 = _asind(_sind(lat) / 2.0)
    fh2 = _asind(math.sqrt(3.0) / 2.0 * _sind(lat))
    cosfi = _cosd(lat)
    xh1 = _atand(math.sqrt(3.0) / cosfi)
    xh2 = _atand(1.0 / math.sqrt(3.0) / cosfi)
    c[1], c[10] = asc, mc
    c[11] = _asc1(armc + 90.0 - xh1, fh1, eps)
    c[12] = _asc1(armc + 90.0 - xh2, fh2, eps)
    c[2] = _asc1(armc + 90.0 + xh2, fh2, eps)
    c[3] = _asc1(armc + 90.0 + xh1, fh1, eps)
    return _fill_opposites(c)

def _polich_page(armc, lat, eps, asc, mc, max_iter):
    c = _blank()
    tanfi = _tand(lat)
    fh1 = _atand(tanfi / 3.0)
    fh2 = _atand(tanfi * 2.0 / 3.0)
    c[1], c[10] = asc, mc
    c[11] = _asc1(armc + 30.0, fh1, eps)
    c[12] = _asc1(armc + 60.0, fh2, eps)
    c[2] = _asc1(armc + 120.0, fh2, eps)
    c[3] = _asc1(armc + 150.0, fh1, eps)
    return _fill_opposites(c)

def _koch(armc, lat, eps, asc, mc, max_iter):
    # Trisect the diurnal semi-arc of the MC degree.
    c = _blank()
    dec_mc = _asind(_sind(eps) * _sind(mc))
    ad3 = _asind(_tand(dec_mc) * _tand(lat)) / 3.0
    c[1], c[10] = asc, mc
    c[11] = _asc1(armc + 30.0 - 2.0 * ad3, lat, eps)
    c[12] = _asc1(armc + 60.0 - ad3, lat, eps)
    c[2] = _asc1(armc + 120.0 + ad3, lat, eps)
    c[3] = _asc1(armc + 150.0 + 2.0 * ad3, lat, eps)
    return _fill_opposites(c)

def _placidus_cusp(rectasc: float, fraction: float, lat: float, eps: float, max_iter: int) -> float:
    """Iterate the pole height until the cusp divides its semi-arc by `fraction`."""
    tanfi = _tand(lat)
    sine = _sind(eps)
    a = _asind(tanfi * _tand(eps))
    f = _atand(_sind(a * fraction) / _tand(eps))
    cusp = _asc1(rectasc, f, eps)
    for _ in range(max_iter):
        tant = _tand(_asind(sine * _sind(cusp)))
        if abs(tant) < EPS:
            return _norm(rectasc)
        f = _atand(_sind(_asind(tanfi * tant) * fraction) / tant)
        previous = cusp
        cusp = _asc1(rectasc, f, eps)
        if abs(_diff(cusp, previous)) < MILLIARCSEC:
            return cusp
    raise NumericNonconvergence(
        f"Placidus cusp did not converge in {max_iter} iterations",
        rectasc=rectasc, lat=lat,
    )

def _placidus(armc, lat, eps, asc, mc, max_iter):
    c = _blank()
    c[1], c[10] = asc, mc
    c[11] = _placidus_cusp(armc + 30.0, 1.0 / 3.0, lat, eps, max_iter)
    c[12] = _placidus_cusp(armc + 60.0, 2.0 / 3.0, lat, eps, max_iter)
    c[2] = _placidus_cusp(armc + 120.0, 2.0 / 3.0, lat, eps, max_iter)
    c[3] = _placidus_cusp(armc + 150.0, 1.0 / 3.0, lat, eps, max_iter)
    return _fill_opposites(c)

def _alcabitius(armc, lat, eps, asc, mc, max_iter):
    # Trisect the diurnal and nocturnal semi-arcs of the ascendant on the equator.
    c = _blank()
    dek = _asind(_sind(asc) * _sind(eps))
    sda = _acosd(-_tand(lat) * _tand(dek))
    sna = 180.0 - sda
    c[1], c[10] = asc, mc
    c[11] = _ra_to_lon(armc + sda / 3.0, eps)
    c[12] = _ra_to_lon(armc + 2.0 * sda / 3.0, eps)
    c[2] = _ra_to_lon(armc + 180.0 - 2.0 * sna / 3.0, eps)
    c[3] = _ra_to_lon(armc + 180.0 - sna / 3.0, eps)
    return _fill_opposites(c)

def _axial_rotation(armc, lat, eps, asc, mc, max_iter):
    c = _blank()
    for i in range(1, 13):
        c[(i + 9) % 12 + 1] = _ra_to_lon(armc + 30.0 * i, eps)
    return c

def _morinus(armc, lat, eps, asc, mc, max_iter):
    c = _blank()
    for i in range(1, 13):
        a = armc + 30.0 * i
        c[(i + 9) % 12 + 1] = _norm(math.degrees(math.atan2(_sind(a) * _cosd(eps), _cosd(a))))
    return c

# ───────────────────────────── Registry ─────────────────────────────

class _HouseSystem(NamedTuple):
    name: str
    engine: CuspEngine
    polar_safe: bool

HOUSE_SYSTEMS: Dict[str, _HouseSystem] = {
    "P": _HouseSystem("Placidus", _placidus, False),
    "K": _HouseSystem("Koch", _koch, False),
    "O": _HouseSystem("Porphyry", _porphyry, True),
    "R": _HouseSystem("Regiomontanus", _regiomontanus, True),
    "C": _HouseSystem("Campanus", _campanus, True),
    "A": _HouseSystem("equal", _equal, True),
    "E": _HouseSystem("equal", _equal, True),
    "D": _HouseSystem("equal (MC)", _equal_mc, True),
    "W": _HouseSystem("equal/ whole sign", _whole_sign, True),
    "B": _HouseSystem("Alcabitius", _alcabitius, True),
    "M": _HouseSystem("Morinus", _morinus, True),
    "T": _HouseSystem("Polich/Page", _polich_page, True),
    "V": _HouseSystem("equal/Vehlow", _vehlow, True),
    "X": _HouseSystem("axial rotation system/Meridian houses", _axial_rotation, True),
    "N": _HouseSystem("equal/1=Aries", _aries, True),
}

def normalize_hsys(hsys) -> str:
    """Accept a one-character string or its integer code point."""
    if isinstance(hsys, int):
        hsys = chr(hsys)
    if not isinstance(hsys, str) or len(hsys) != 1:
        raise UsageError(f"House system must be a single character, got {hsys!r}")
    code = hsys.upper()
    if code not in HOUSE_SYSTEMS:
        raise UsageError(f"Unknown house system {hsys!r}", hsys=hsys)
    return code

def house_name(hsys) -> str:
    return HOUSE_SYSTEMS[normalize_hsys(hsys)].name

# ───────────────────────────── Public API ─────────────────────────────

def houses_armc(armc: float, lat: float, eps: float, hsys="P", *, max_iter: int = 30) -> HouseCusps:
    """
    Cusps and angles for a sidereal time expressed as ARMC (degrees).

    Raises PolarDegeneracyError at the geographic poles, and inside the polar
    circle for systems that divide diurnal semi-arcs (Placidus, Koch).
    """
    code = normalize_hsys(hsys)
    system = HOUSE_SYSTEMS[code]
    armc = _norm(armc)

    if not -90.0 <= lat <= 90.0:
        raise UsageError(f"Latitude out of range: {lat}", lat=lat)
    if abs(lat) >= 90.0 - 1e-9:
        raise PolarDegeneracyError(f"Houses undefined at the geographic pole (lat={lat})", lat=lat, hsys=code)
    if not system.polar_safe and abs(lat) + eps >= 90.0:
        raise PolarDegeneracyError(
            f"{system.name} houses undefined inside the polar circle (lat={lat})",
            lat=lat, hsys=code,
        )

    ascmc = _angles(armc, lat, eps)
    cusps = system.engine(armc, lat, eps, ascmc[HouseAngle.ASC], ascmc[HouseAngle.MC], max_iter)
    log.debug(f"houses_armc: hsys={code} armc={armc:.6f} lat={lat:.4f} eps={eps:.6f}")
    return HouseCusps(tuple(cusps[1:]), tuple(ascmc))

def house_speeds(armc: float, lat: float, eps: float, hsys="P", *, max_iter: int = 30,
                 step: float = 0.05) -> HouseCusps:
    """Cusp and angle speeds in degrees per day of UT, by symmetric ARMC steps."""
    before = houses_armc(armc - step, lat, eps, hsys, max_iter=max_iter)
    after = houses_armc(armc + step, lat, eps, hsys, max_iter=max_iter)
    scale = SIDEREAL_RATE / (2.0 * step)
    cusp_speeds = tuple(_diff(a, b) * scale for a, b in zip(after.cusps, before.cusps))
    angle_speeds = tuple(_diff(a, b) * scale for a, b in zip(after.angles, before.angles))
    return HouseCusps(cusp_speeds, angle_speeds)
