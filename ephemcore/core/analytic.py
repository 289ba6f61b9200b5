# ephemcore/core/analytic.py
# -----------------------------------------------------------------------------
# Built-in analytic ephemeris (no data files)
#
# - Planets: JPL approximate mean elements (Standish, 1800-2050 fit) propagated
#   as two-body orbits with secular element rates.
# - Sun: barycentric offset from the planetary masses.
# - Moon: principal ELP-2000/82 terms (Meeus, Astronomical Algorithms ch. 47).
# - Fictitious bodies: heliocentric osculating elements.
# - Lunar mean node and mean apogee: polynomial arguments.
#
# All states are ICRF equatorial in AU and AU/day with analytic derivatives.
# Code numbering follows the packed-file convention: 10 Sun, 1..9 planet
# barycentres (3 = Earth-Moon barycentre), 399 Earth, 301 Moon.
# -----------------------------------------------------------------------------

from __future__ import annotations

import logging
import math
from functools import lru_cache
from typing import Dict, NamedTuple, Tuple

import erfa
import numpy as np

from .constants import AUNIT_TO_KM, DAYS_PER_CENTURY, J1900, J2000
from .errors import DataUnavailable, NumericNonconvergence
from .kepler import GAUSS_K, OrbitalRates, rotation_x, two_body_state

log = logging.getLogger(__name__)

__all__ = [
    "AnalyticModel",
    "EMRAT",
    "PLANET_MASS_RATIOS",
    "FICTITIOUS_ELEMENTS",
    "ecliptic_to_icrf",
    "mean_lunar_node",
    "mean_lunar_apogee",
    "lunar_apsis",
]

State = Tuple[np.ndarray, np.ndarray]

EMRAT = 81.30056                      # Earth/Moon mass ratio
MOON_MEAN_DISTANCE_KM = 385000.56
LUNAR_INCLINATION = 5.1453964         # deg
LUNAR_ECCENTRICITY = 0.054900489
LUNAR_SEMI_MAJOR_KM = 384400.0

# Sun mass / body mass
PLANET_MASS_RATIOS: Dict[int, float] = {
    1: 6023600.0,
    2: 408523.71,
    3: 328900.56,
    4: 3098708.0,
    5: 1047.3486,
    6: 3497.898,
    7: 22902.98,
    8: 19412.24,
    9: 1.35e8,
}

# ───────────────────────────── Frames ─────────────────────────────

@lru_cache(maxsize=256)
def _ecliptic_to_icrf_cached(jd: float) -> np.ndarray:
    rbp = erfa.pmat06(jd, 0.0)
    eps = erfa.obl06(jd, 0.0)
    return rbp.T @ rotation_x(eps)

def ecliptic_to_icrf(jd: float) -> np.ndarray:
    """Rotation from the mean ecliptic and equinox of `jd` to ICRF."""
    return _ecliptic_to_icrf_cached(float(jd))

# ───────────────────────────── Planets ─────────────────────────────

class MeanElements(NamedTuple):
    """J2000 value and rate per Julian century: a (AU), e, I, L, varpi, node (deg)."""
    a: Tuple[float, float]
    e: Tuple[float, float]
    inc: Tuple[float, float]
    mean_lon: Tuple[float, float]
    peri_lon: Tuple[float, float]
    node: Tuple[float, float]

PLANET_ELEMENTS: Dict[int, MeanElements] = {
    1: MeanElements((0.38709927, 0.00000037), (0.20563593, 0.00001906), (7.00497902, -0.00594749),
                    (252.25032350, 149472.67411175), (77.45779628, 0.16047689), (48.33076593, -0.12534081)),
    2: MeanElements((0.72333566, 0.00000390), (0.00677672, -0.00004107), (3.39467605, -0.00078890),
                    (181.97909950, 58517.81538729), (131.60246718, 0.00268329), (76.67984255, -0.27769418)),
    3: MeanElements((1.00000261, 0.00000562), (0.01671123, -0.00004392), (-0.00001531, -0.01294668),
                    (100.46457166, 35999.37244981), (102.93768193, 0.32327364), (0.0, 0.0)),
    4: MeanElements((1.52371034, 0.00001847), (0.09339410, 0.00007882), (1.84969142, -0.00813131),
                    (-4.55343205, 19140.30268499), (-23.94362959, 0.44441088), (49.55953891, -0.29257343)),
    5: MeanElements((5.20288700, -0.00011607), (0.04838624, -0.00013253), (1.30439695, -0.00183714),
                    (34.39644051, 3034.74612775), (14.72847983, 0.21252668), (100.47390909, 0.20469106)),
    6: MeanElements((9.53667594, -0.00125060), (0.05386179, -0.00050991), (2.48599187, 0.00193609),
                    (49.95424423, 1222.49362201), (92.59887831, -0.41897216), (113.66242448, -0.28867794)),
    7: MeanElements((19.18916464, -0.00196176), (0.04725744, -0.00004397), (0.77263783, -0.00242939),
                    (313.23810451, 428.48202785), (170.95427630, 0.40805281), (74.01692503, 0.04240589)),
    8: MeanElements((30.06992276, 0.00026291), (0.00859048, 0.00005105), (1.77004347, 0.00035372),
                    (-55.12002969, 218.45945325), (44.96476227, -0.32241464), (131.78422574, -0.00508664)),
    9: MeanElements((39.48211675, -0.00031596), (0.24882730, 0.00005170), (17.14001206, 0.00004818),
                    (238.92903833, 145.20780515), (224.06891629, -0.04062942), (110.30393684, -0.01183482)),
}

# ───────────────────────────── Fictitious bodies ─────────────────────────────

class FictitiousElements(NamedTuple):
    name: str
    epoch: float          # JD of the mean anomaly
    equinox: float        # JD of the reference ecliptic
    mean_anomaly: float   # deg
    a: float              # AU
    e: float
    argp: float           # deg
    node: float           # deg
    inc: float            # deg

FICTITIOUS_ELEMENTS: Dict[int, FictitiousElements] = {
    40: FictitiousElements("Cupido", J1900, J1900, 163.7409, 40.99837, 0.00460, 171.4333, 129.8325, 1.0833),
    41: FictitiousElements("Hades", J1900, J1900, 27.6496, 50.66744, 0.00245, 148.1796, 161.3339, 1.0500),
    42: FictitiousElements("Zeus", J1900, J1900, 165.1232, 59.21436, 0.00120, 299.0440, 0.0, 0.0),
    43: FictitiousElements("Kronos", J1900, J1900, 169.0193, 64.81960, 0.00305, 208.8801, 0.0, 0.0),
    44: FictitiousElements("Apollon", J1900, J1900, 138.0533, 70.29949, 0.0, 0.0, 0.0, 0.0),
    45: FictitiousElements("Admetos", J1900, J1900, 351.3350, 73.62765, 0.0, 0.0, 0.0, 0.0),
    46: FictitiousElements("Vulkanus", J1900, J1900, 55.8983, 77.25568, 0.0, 0.0, 0.0, 0.0),
    47: FictitiousElements("Poseidon", J1900, J1900, 165.5163, 83.66907, 0.0, 0.0, 0.0, 0.0),
    48: FictitiousElements("Isis-Transpluto", 2368547.66, 2431456.5, 0.0, 77.775, 0.3, 0.7, 0.0, 0.0),
    49: FictitiousElements("Nibiru", 1856113.380954, 1856113.380954, 0.0, 234.8921, 0.981092,
                           103.966, -44.567, 158.708),
    50: FictitiousElements("Harrington", 2374696.5, J2000, 0.0, 101.2, 0.411, 208.5, 275.4, 32.4),
    51: FictitiousElements("Leverrier", 2395662.5, 2395662.5, 34.05, 36.15, 0.10761, 284.75, 0.0, 0.0),
    52: FictitiousElements("Adams", 2395662.5, 2395662.5, 24.28, 37.25, 0.12062, 299.11, 0.0, 0.0),
    53: FictitiousElements("Lowell", 2425977.5, 2425977.5, 281.0, 43.0, 0.202, 204.9, 0.0, 0.0),
    54: FictitiousElements("Pickering", 2425977.5, 2425977.5, 48.95, 55.1, 0.31, 280.1, 100.0, 15.0),
}

# ───────────────────────────── Moon series ─────────────────────────────

# D, M, M', F, sigma-l (1e-6 deg), sigma-r (1e-3 km)
_MOON_LR = (
    (0, 0, 1, 0, 6288774, -20905355),
    (2, 0, -1, 0, 1274027, -3699111),
    (2, 0, 0, 0, 658314, -2955968),
    (0, 0, 2, 0, 213618, -569925),
    (0, 1, 0, 0, -185116, 48888),
    (0, 0, 0, 2, -114332, -3149),
    (2, 0, -2, 0, 58793, 246158),
    (2, -1, -1, 0, 57066, -152138),
    (2, 0, 1, 0, 53322, -170733),
    (2, -1, 0, 0, 45758, -204586),
    (0, 1, -1, 0, -40923, -129620),
    (1, 0, 0, 0, -34720, 108743),
    (0, 1, 1, 0, -30383, 104755),
    (2, 0, 0, -2, 15327, 10321),
    (0, 0, 1, 2, -12528, 0),
    (0, 0, 1, -2, 10980, 79661),
    (4, 0, -1, 0, 10675, -34782),
    (0, 0, 3, 0, 10034, -23210),
    (4, 0, -2, 0, 8548, -21636),
    (2, 1, -1, 0, -7888, 24208),
    (2, 1, 0, 0, -6766, 30824),
    (1, 0, -1, 0, -5163, -8379),
    (1, 1, 0, 0, 4987, -16675),
    (2, -1, 1, 0, 4036, -12831),
    (2, 0, 2, 0, 3994, -10445),
    (4, 0, 0, 0, 3861, -11650),
    (2, 0, -3, 0, 3665, 14403),
    (0, 1, -2, 0, -2689, -7003),
    (2, 0, -1, 2, -2602, 0),
    (2, -1, -2, 0, 2390, 10056),
    (1, 0, 1, 0, -2348, 6322),
    (2, -2, 0, 0, 2236, -9884),
)

# D, M, M', F, sigma-b (1e-6 deg)
_MOON_B = (
    (0, 0, 0, 1, 5128122),
    (0, 0, 1, 1, 280602),
    (0, 0, 1, -1, 277693),
    (2, 0, 0, -1, 173237),
    (2, 0, -1, 1, 55413),
    (2, 0, -1, -1, 46271),
    (2, 0, 0, 1, 32573),
    (0, 0, 2, 1, 17198),
    (2, 0, 1, -1, 9266),
    (0, 0, 2, -1, 8822),
    (2, -1, 0, -1, 8216),
    (2, 0, -2, -1, 4324),
    (2, 0, 1, 1, 4200),
    (2, 1, 0, -1, -3359),
    (2, -1, -1, 1, 2463),
    (2, -1, 0, 1, 2211),
    (2, -1, -1, -1, 2065),
    (0, 1, -1, -1, -1870),
    (4, 0, -1, -1, 1828),
    (0, 1, 0, 1, -1794),
)

def _poly(coeffs: Tuple[float, ...], t: float) -> Tuple[float, float]:
    """Value and first derivative of c0 + c1 t + c2 t² + ..."""
    value = 0.0
    rate = 0.0
    for power in range(len(coeffs) - 1, -1, -1):
        rate = rate * t + value
        value = value * t + coeffs[power]
    return value, rate

_L_PRIME = (218.3164477, 481267.88123421, -0.0015786, 1.0 / 538841.0, -1.0 / 65194000.0)
_ELONG = (297.8501921, 445267.1114034, -0.0018819, 1.0 / 545868.0, -1.0 / 113065000.0)
_SUN_ANOM = (357.5291092, 35999.0502909, -0.0001536, 1.0 / 24490000.0)
_MOON_ANOM = (134.9633964, 477198.8675055, 0.0087414, 1.0 / 69699.0, -1.0 / 14712000.0)
_ARG_LAT = (93.2720950, 483202.0175233, -0.0036539, -1.0 / 3526000.0, 1.0 / 863310000.0)
_ECC_FACTOR = (1.0, -0.002516, -0.0000074)

_NODE = (125.0445479, -1934.1362891, 0.0020754, 1.0 / 467441.0, -1.0 / 60616000.0)
_PERIGEE = (83.3532465, 4069.0137287, -0.0103200, -1.0 / 80053.0, 1.0 / 18999000.0)

def _moon_spherical(t: float, shift: float = 0.0) -> Tuple[Tuple[float, float, float], Tuple[float, float, float]]:
    """
    Geocentric (lon deg, lat deg, dist km) referred to the mean ecliptic of date,
    with derivatives per Julian century.

    `shift` (deg) advances the Moon along its orbit: L', D, M' and F move
    together while the Sun, node and perigee stay where they are at `t`.
    """
    lp, dlp = _poly(_L_PRIME, t)
    d, dd = _poly(_ELONG, t)
    m, dm = _poly(_SUN_ANOM, t)
    mp, dmp = _poly(_MOON_ANOM, t)
    f, df = _poly(_ARG_LAT, t)
    lp, d, mp, f = lp + shift, d + shift, mp + shift, f + shift
    ecc, decc = _poly(_ECC_FACTOR, t)

    sl = dsl = sr = dsr = 0.0
    for cd, cm, cmp_, cf, coef_l, coef_r in _MOON_LR:
        arg = math.radians(cd * d + cm * m + cmp_ * mp + cf * f)
        darg = math.radians(cd * dd + cm * dm + cmp_ * dmp + cf * df)
        power = abs(cm)
        scale = ecc ** power
        dscale = power * ecc ** (power - 1) * decc if power else 0.0
        s, c = math.sin(arg), math.cos(arg)
        sl += coef_l * scale * s
        dsl += coef_l * (dscale * s + scale * c * darg)
        sr += coef_r * scale * c
        dsr += coef_r * (dscale * c - scale * s * darg)

    sb = dsb = 0.0
    for cd, cm, cmp_, cf, coef_b in _MOON_B:
        arg = math.radians(cd * d + cm * m + cmp_ * mp + cf * f)
        darg = math.radians(cd * dd + cm * dm + cmp_ * dmp + cf * df)
        power = abs(cm)
        scale = ecc ** power
        dscale = power * ecc ** (power - 1) * decc if power else 0.0
        s, c = math.sin(arg), math.cos(arg)
        sb += coef_b * scale * s
        dsb += coef_b * (dscale * s + scale * c * darg)

    # Venus, Jupiter and flattening terms
    a1, da1 = math.radians(119.75 + 131.849 * t), math.radians(131.849)
    a2, da2 = math.radians(53.09 + 479264.290 * t), math.radians(479264.290)
    a3, da3 = math.radians(313.45 + 481266.484 * t), math.radians(481266.484)
    lpr, dlpr = math.radians(lp), math.radians(dlp)
    fr, dfr = math.radians(f), math.radians(df)
    mpr, dmpr = math.radians(mp), math.radians(dmp)

    sl += 3958 * math.sin(a1) + 1962 * math.sin(lpr - fr) + 318 * math.sin(a2)
    dsl += (3958 * math.cos(a1) * da1 + 1962 * math.cos(lpr - fr) * (dlpr - dfr)
            + 318 * math.cos(a2) * da2)
    sb += (-2235 * math.sin(lpr) + 382 * math.sin(a3) + 175 * math.sin(a1 - fr)
           + 175 * math.sin(a1 + fr) + 127 * math.sin(lpr - mpr) - 115 * math.sin(lpr + mpr))
    dsb += (-2235 * math.cos(lpr) * dlpr + 382 * math.cos(a3) * da3
            + 175 * math.cos(a1 - fr) * (da1 - dfr) + 175 * math.cos(a1 + fr) * (da1 + dfr)
            + 127 * math.cos(lpr - mpr) * (dlpr - dmpr) - 115 * math.cos(lpr + mpr) * (dlpr + dmpr))

    lon = lp + sl * 1e-6
    lat = sb * 1e-6
    dist = MOON_MEAN_DISTANCE_KM + sr * 1e-3
    return (lon, lat, dist), (dlp + dsl * 1e-6, dsb * 1e-6, dsr * 1e-3)

def spherical_to_cartesian(lon: float, lat: float, dist: float,
                           dlon: float, dlat: float, ddist: float) -> State:
    """Angles in radians, rates in radians (or distance units) per unit time."""
    cl, sl = math.cos(lon), math.sin(lon)
    cb, sb = math.cos(lat), math.sin(lat)
    pos = np.array([dist * cb * cl, dist * cb * sl, dist * sb])
    vel = np.array([
        ddist * cb * cl - dist * sb * cl * dlat - dist * cb * sl * dlon,
        ddist * cb * sl - dist * sb * sl * dlat + dist * cb * cl * dlon,
        ddist * sb + dist * cb * dlat,
    ])
    return pos, vel

# ───────────────────────────── Lunar mean points ─────────────────────────────

def mean_lunar_node(jd: float) -> Tuple[Tuple[float, float, float], Tuple[float, float, float]]:
    """Mean ascending node on the ecliptic of date: (lon, lat, dist AU) and rates per day."""
    t = (jd - J2000) / DAYS_PER_CENTURY
    lon, rate = _poly(_NODE, t)
    dist = LUNAR_SEMI_MAJOR_KM / AUNIT_TO_KM
    return (lon % 360.0, 0.0, dist), (rate / DAYS_PER_CENTURY, 0.0, 0.0)

def mean_lunar_apogee(jd: float) -> Tuple[Tuple[float, float, float], Tuple[float, float, float]]:
    """Mean apogee of the lunar orbit: (lon, lat, dist AU) and rates per day."""
    t = (jd - J2000) / DAYS_PER_CENTURY
    perigee, dperigee = _poly(_PERIGEE, t)
    node, dnode = _poly(_NODE, t)
    lon = perigee + 180.0
    inc = math.radians(LUNAR_INCLINATION)
    u = math.radians(lon - node)
    du = math.radians(dperigee - dnode)
    lat = math.asin(math.sin(inc) * math.sin(u))
    dlat = math.sin(inc) * math.cos(u) * du / math.cos(lat)
    dist = LUNAR_SEMI_MAJOR_KM * (1.0 + LUNAR_ECCENTRICITY) / AUNIT_TO_KM
    return ((lon % 360.0, math.degrees(lat), dist),
            (dperigee / DAYS_PER_CENTURY, math.degrees(dlat) / DAYS_PER_CENTURY, 0.0))

def _apsis_shift(t: float, apogee: bool, max_iter: int) -> float:
    """
    Orbit shift (deg) that puts the Moon at the distance extremum of its
    perturbed orbit at `t`. Newton iteration on dr/dshift, started from mean
    anomaly 180 deg (apogee) or 0 deg (perigee).
    """
    d, _ = _poly(_ELONG, t)
    m, _ = _poly(_SUN_ANOM, t)
    mp, _ = _poly(_MOON_ANOM, t)
    f, _ = _poly(_ARG_LAT, t)
    ecc, _ = _poly(_ECC_FACTOR, t)
    shift = math.radians(((180.0 if apogee else 0.0) - mp) % 360.0)

    for _ in range(max_iter):
        slope = curvature = 0.0
        for cd, cm, cmp_, cf, _coef_l, coef_r in _MOON_LR:
            k = cd + cmp_ + cf
            if k == 0 or coef_r == 0:
                continue
            arg = math.radians(cd * d + cm * m + cmp_ * mp + cf * f) + k * shift
            scale = coef_r * ecc ** abs(cm)
            slope -= scale * k * math.sin(arg)
            curvature -= scale * k * k * math.cos(arg)
        step = slope / curvature
        shift -= step
        if abs(step) < 1e-12:
            return math.degrees(shift)
    raise NumericNonconvergence(
        f"Lunar {'apogee' if apogee else 'perigee'} did not converge in {max_iter} iterations",
        t=t,
    )

def lunar_apsis(jd: float, apogee: bool, max_iter: int = 60) -> Tuple[float, float, float]:
    """
    Interpolated lunar apogee or perigee: (lon deg, lat deg, dist AU) on the
    mean ecliptic of date.

    The apsis is where the Moon would reach its distance extremum if it moved
    along the orbit with the perturbing arguments frozen at `jd`, which smooths
    out the short-period jumps of the osculating apsis.
    """
    t = (jd - J2000) / DAYS_PER_CENTURY
    shift = _apsis_shift(t, apogee, max_iter)
    (lon, lat, dist), _ = _moon_spherical(t, shift)
    return lon % 360.0, lat, dist / AUNIT_TO_KM

# ───────────────────────────── Model ─────────────────────────────

class AnalyticModel:
    """
    File-free ephemeris for the major bodies.

    Valid between 3000 BC and 3000 AD; epochs outside raise DataUnavailable
    rather than extrapolating.
    """

    START_JD = 625000.5
    END_JD = 2818000.5
    DENUM = 0

    def __init__(self, kepler_tol: float = 1e-15, kepler_max_iter: int = 60):
        self.kepler_tol = kepler_tol
        self.kepler_max_iter = kepler_max_iter
        self._ecl_j2000 = ecliptic_to_icrf(J2000)

    def covers(self, jd: float) -> bool:
        return self.START_JD <= jd <= self.END_JD

    def _require(self, jd: float) -> None:
        if not self.covers(jd):
            raise DataUnavailable(
                f"JD {jd} outside analytic model range {self.START_JD}..{self.END_JD}",
                jd=jd,
            )

    def heliocentric_planet(self, code: int, jd: float) -> State:
        try:
            el = PLANET_ELEMENTS[code]
        except KeyError:
            raise DataUnavailable(f"No analytic elements for body code {code}", code=code) from None
        self._require(jd)

        t = (jd - J2000) / DAYS_PER_CENTURY
        a = el.a[0] + el.a[1] * t
        e = el.e[0] + el.e[1] * t
        inc = el.inc[0] + el.inc[1] * t
        mean_lon = el.mean_lon[0] + el.mean_lon[1] * t
        peri = el.peri_lon[0] + el.peri_lon[1] * t
        node = el.node[0] + el.node[1] * t

        per_day = 1.0 / DAYS_PER_CENTURY
        rad_per_day = math.radians(per_day)
        rates = OrbitalRates(
            a=el.a[1] * per_day,
            e=el.e[1] * per_day,
            inc=el.inc[1] * rad_per_day,
            node=el.node[1] * rad_per_day,
            argp=(el.peri_lon[1] - el.node[1]) * rad_per_day,
        )
        pos, vel = two_body_state(
            a, e, math.radians(inc), math.radians(node), math.radians(peri - node),
            math.radians(mean_lon - peri), (el.mean_lon[1] - el.peri_lon[1]) * rad_per_day, rates,
            tol=self.kepler_tol, max_iter=self.kepler_max_iter,
        )
        return self._ecl_j2000 @ pos, self._ecl_j2000 @ vel

    def sun_barycentric(self, jd: float) -> State:
        pos = np.zeros(3)
        vel = np.zeros(3)
        total = 1.0
        for code, ratio in PLANET_MASS_RATIOS.items():
            mu = 1.0 / ratio
            p, v = self.heliocentric_planet(code, jd)
            pos -= mu * p
            vel -= mu * v
            total += mu
        return pos / total, vel / total

    def moon_geocentric(self, jd: float) -> State:
        self._require(jd)
        t = (jd - J2000) / DAYS_PER_CENTURY
        (lon, lat, dist), (dlon, dlat, ddist) = _moon_spherical(t)
        pos, vel = spherical_to_cartesian(
            math.radians(lon), math.radians(lat), dist / AUNIT_TO_KM,
            math.radians(dlon) / DAYS_PER_CENTURY, math.radians(dlat) / DAYS_PER_CENTURY,
            ddist / AUNIT_TO_KM / DAYS_PER_CENTURY,
        )
        rot = ecliptic_to_icrf(jd)
        return rot @ pos, rot @ vel

    def heliocentric_fictitious(self, ipl: int, jd: float) -> State:
        try:
            el = FICTITIOUS_ELEMENTS[ipl]
        except KeyError:
            raise DataUnavailable(f"No orbital elements for fictitious body {ipl}", body=ipl) from None
        self._require(jd)
        n = GAUSS_K / el.a ** 1.5
        mean_anomaly = math.radians(el.mean_anomaly) + n * (jd - el.epoch)
        pos, vel = two_body_state(
            el.a, el.e, math.radians(el.inc), math.radians(el.node), math.radians(el.argp),
            mean_anomaly, n, tol=self.kepler_tol, max_iter=self.kepler_max_iter,
        )
        rot = ecliptic_to_icrf(el.equinox)
        return rot @ pos, rot @ vel

    def barycentric(self, code: int, jd: float) -> State:
        """Barycentric ICRF state for a packed-file body code."""
        sun_pos, sun_vel = self.sun_barycentric(jd)
        if code == 10:
            return sun_pos, sun_vel
        if code in (399, 301):
            emb_pos, emb_vel = self.heliocentric_planet(3, jd)
            moon_pos, moon_vel = self.moon_geocentric(jd)
            earth_pos = sun_pos + emb_pos - moon_pos / (1.0 + EMRAT)
            earth_vel = sun_vel + emb_vel - moon_vel / (1.0 + EMRAT)
            if code == 399:
                return earth_pos, earth_vel
            return earth_pos + moon_pos, earth_vel + moon_vel
        if code in PLANET_ELEMENTS:
            pos, vel = self.heliocentric_planet(code, jd)
            return sun_pos + pos, sun_vel + vel
        if code in FICTITIOUS_ELEMENTS:
            pos, vel = self.heliocentric_fictitious(code, jd)
            return sun_pos + pos, sun_vel + vel
        raise DataUnavailable(f"Body code {code} not available from the analytic model", code=code)
