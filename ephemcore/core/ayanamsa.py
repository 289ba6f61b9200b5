# ephemcore/core/ayanamsa.py
# -----------------------------------------------------------------------------
# Sidereal offsets (ayanamsa)
#
# Families of modes:
#   epoch-anchored  value at a reference epoch t0, carried forward by the IAU
#                   2006 general precession in longitude
#   star-anchored   mean ecliptic longitude of date of a reference star or of
#                   the galactic centre, minus a fixed sidereal longitude
#   galactic        node of the galactic equator on the ecliptic (IAU 1958
#                   pole, or the pole of the plane through the galactic
#                   centre), the Mardyks midpoint between that node and the
#                   centre, or the centre projected along its hour circle
#   user            caller-supplied (t0, ayan_t0), optionally with t0 in UT
#
# Star and galactic values lie in [0, 360).
#
# The mean value excludes nutation; the "true" value adds nutation in
# longitude and is what apparent positions are reduced by.
# -----------------------------------------------------------------------------

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, NamedTuple, Optional, Tuple

import erfa
import numpy as np

from .constants import B1950, DAYS_PER_CENTURY, J1900, J2000, SIDM_USER, SiderealBit, SiderealMode
from .errors import UsageError

log = logging.getLogger(__name__)

__all__ = [
    "AyanamsaKind",
    "AyanamsaDefinition",
    "SiderealConfig",
    "PREDEFINED",
    "general_precession",
    "ayanamsa_name",
    "definition_for",
    "mean_ayanamsa",
    "true_ayanamsa",
    "reference_epoch",
]

class AyanamsaKind(Enum):
    EPOCH = "epoch"
    STAR = "star"
    GALACTIC_NODE = "galactic_node"
    GALACTIC_ALIGNMENT = "galactic_alignment"
    POLAR = "polar"

@dataclass(frozen=True)
class AyanamsaDefinition:
    name: str
    kind: AyanamsaKind
    t0: float = J2000
    ayan_t0: float = 0.0
    star: Optional[str] = None
    offset: float = 0.0

class SiderealConfig(NamedTuple):
    mode: int = SiderealMode.FAGAN_BRADLEY
    bits: int = 0
    t0: float = 0.0
    ayan_t0: float = 0.0

    @property
    def full_mode(self) -> int:
        return self.mode | self.bits

class _ReferenceStar(NamedTuple):
    ra: float        # deg, ICRS J2000
    dec: float       # deg
    pm_ra: float     # arcsec/yr, mu_alpha * cos(delta)
    pm_dec: float    # arcsec/yr

_REFERENCE_STARS: Dict[str, _ReferenceStar] = {
    "spica": _ReferenceStar(201.298247, -11.161319, -0.04235, -0.03067),
    "revati": _ReferenceStar(18.438229, 7.575354, 0.145, -0.05569),
    "pushya": _ReferenceStar(131.17125, 18.154306, -0.01844, -0.22781),
    "mula": _ReferenceStar(263.402167, -37.103822, -0.0089, -0.02995),
    "galactic_center": _ReferenceStar(266.4168, -29.0078, 0.0, 0.0),
    "galactic_pole": _ReferenceStar(192.85948, 27.12825, 0.0, 0.0),
}

def _epoch(name: str, ayan_j2000: float, t0: float = J2000) -> AyanamsaDefinition:
    return AyanamsaDefinition(name, AyanamsaKind.EPOCH, t0=t0, ayan_t0=ayan_j2000)

def _star(name: str, star: str, offset: float) -> AyanamsaDefinition:
    return AyanamsaDefinition(name, AyanamsaKind.STAR, star=star, offset=offset)

def _galactic(name: str, offset: float, pole: str = "galactic_pole_true",
              kind: AyanamsaKind = AyanamsaKind.GALACTIC_NODE) -> AyanamsaDefinition:
    return AyanamsaDefinition(name, kind, star=pole, offset=offset)

PREDEFINED: Dict[int, AyanamsaDefinition] = {
    SiderealMode.FAGAN_BRADLEY: _epoch("Fagan/Bradley", 24.740300),
    SiderealMode.LAHIRI: _epoch("Lahiri", 23.857092),
    SiderealMode.DELUCE: _epoch("De Luce", 27.815753),
    SiderealMode.RAMAN: _epoch("Raman", 22.410791),
    SiderealMode.USHASHASHI: _epoch("Usha/Shashi", 20.057541),
    SiderealMode.KRISHNAMURTI: _epoch("Krishnamurti", 23.760240),
    SiderealMode.DJWHAL_KHUL: _epoch("Djwhal Khul", 28.359679),
    SiderealMode.YUKTESHWAR: _epoch("Yukteshwar", 22.478803),
    SiderealMode.JN_BHASIN: _epoch("J.N. Bhasin", 22.762137),
    SiderealMode.BABYL_KUGLER1: _epoch("Babylonian/Kugler 1", 23.533640),
    SiderealMode.BABYL_KUGLER2: _epoch("Babylonian/Kugler 2", 24.933640),
    SiderealMode.BABYL_KUGLER3: _epoch("Babylonian/Kugler 3", 25.783640),
    SiderealMode.BABYL_HUBER: _epoch("Babylonian/Huber", 24.733640),
    SiderealMode.BABYL_ETPSC: _epoch("Babylonian/Eta Piscium", 24.522528),
    SiderealMode.ALDEBARAN_15TAU: _epoch("Babylonian/Aldebaran = 15 Tau", 24.758924),
    SiderealMode.HIPPARCHOS: _epoch("Hipparchos", 20.247788),
    SiderealMode.SASSANIAN: _epoch("Sassanian", 19.992959),
    SiderealMode.GALCENT_0SAG: _star("Galact. Center = 0 Sag", "galactic_center", 240.0),
    SiderealMode.J2000: _epoch("J2000", 0.0, t0=J2000),
    SiderealMode.J1900: _epoch("J1900", 0.0, t0=J1900),
    SiderealMode.B1950: _epoch("B1950", 0.0, t0=B1950),
    SiderealMode.SURYASIDDHANTA: _epoch("Suryasiddhanta", 20.895059),
    SiderealMode.SURYASIDDHANTA_MSUN: _epoch("Suryasiddhanta, mean Sun", 20.680425),
    SiderealMode.ARYABHATA: _epoch("Aryabhata", 20.895060),
    SiderealMode.ARYABHATA_MSUN: _epoch("Aryabhata, mean Sun", 20.657427),
    SiderealMode.SS_REVATI: _epoch("SS Revati", 20.103388),
    SiderealMode.SS_CITRA: _epoch("SS Citra", 23.005763),
    SiderealMode.TRUE_CITRA: _star("True Citra", "spica", 180.0),
    SiderealMode.TRUE_REVATI: _star("True Revati", "revati", 359.8333333),
    SiderealMode.TRUE_PUSHYA: _star("True Pushya (PVRN Rao)", "pushya", 106.0),
    SiderealMode.GALCENT_RGILBRAND: _star("Galactic Center (Gil Brand)", "galactic_center", 244.3826),
    SiderealMode.GALEQU_IAU1958: _galactic("Galactic Equator (IAU1958)", 240.0, pole="galactic_pole"),
    SiderealMode.GALEQU_TRUE: _galactic("Galactic Equator", 240.0),
    SiderealMode.GALEQU_MULA: _galactic("Galactic Equator mid-Mula", 246.6666667),
    SiderealMode.GALALIGN_MARDYKS: _galactic("Skydram (Mardyks)", 240.0, kind=AyanamsaKind.GALACTIC_ALIGNMENT),
    SiderealMode.TRUE_MULA: _star("True Mula (Chandra Hari)", "mula", 240.0),
    SiderealMode.GALCENT_MULA_WILHELM: AyanamsaDefinition(
        "Dhruva/Gal.Center/Mula (Wilhelm)", AyanamsaKind.POLAR, star="galactic_center", offset=246.6666667,
    ),
    SiderealMode.ARYABHATA_522: _epoch("Aryabhata 522", 20.575847),
    SiderealMode.BABYL_BRITTON: _epoch("Babylonian/Britton", 24.615753),
    SiderealMode.TRUE_SHEORAN: _star("\"Vedic\"/Sheoran", "spica", 178.607),
    SiderealMode.GALCENT_COCHRANE: _star("Cochrane (Gal.Center = 0 Cap)", "galactic_center", 270.0),
    SiderealMode.GALEQU_FIORENZA: _epoch("Galactic Equator (Fiorenza)", 25.000019),
    SiderealMode.VALENS_MOON: _star("Vettius Valens", "spica", 181.0458),
    SiderealMode.LAHIRI_1940: _epoch("Lahiri 1940", 22.44597222, t0=J1900),
    SiderealMode.LAHIRI_VP285: _epoch("Lahiri VP285", 0.0, t0=1825235.2458513028),
    SiderealMode.KRISHNAMURTI_VP291: _epoch("Krishnamurti-Senthilathiban", 0.0, t0=1827424.752255678),
    SiderealMode.LAHIRI_ICRC: _epoch("Lahiri ICRC", 0.0, t0=1825182.87233115),
}

# ───────────────────────────── Precession ─────────────────────────────

_P_A = (0.0, 5028.796195, 1.1054348, 0.00007964, -0.000023857, -0.0000000383)  # arcsec, Capitaine et al. 2003

def general_precession(jd: float) -> Tuple[float, float]:
    """Accumulated general precession in longitude since J2000 (deg) and its rate (deg/day)."""
    t = (jd - J2000) / DAYS_PER_CENTURY
    value = 0.0
    rate = 0.0
    for power in range(len(_P_A) - 1, -1, -1):
        rate = rate * t + value
        value = value * t + _P_A[power]
    return value / 3600.0, rate / 3600.0 / DAYS_PER_CENTURY

# ───────────────────────────── Lookup ─────────────────────────────

def definition_for(mode: int) -> AyanamsaDefinition:
    try:
        return PREDEFINED[mode]
    except KeyError:
        raise UsageError(f"Unknown sidereal mode {mode}", mode=mode) from None

def ayanamsa_name(mode: int) -> str:
    if mode == SIDM_USER:
        return "User-defined"
    return definition_for(mode).name

# ───────────────────────────── Reference points ─────────────────────────────

def _star_vector(star: _ReferenceStar, jd: float) -> np.ndarray:
    years = (jd - J2000) / 365.25
    dec = math.radians(star.dec + star.pm_dec * years / 3600.0)
    cos_dec0 = math.cos(math.radians(star.dec))
    ra = math.radians(star.ra + star.pm_ra * years / 3600.0 / cos_dec0)
    return np.array([math.cos(dec) * math.cos(ra), math.cos(dec) * math.sin(ra), math.sin(dec)])

def _reference_vector(name: str, jd: float) -> np.ndarray:
    if name == "galactic_pole_true":
        # pole of the galactic equator through the galactic centre
        pole = _star_vector(_REFERENCE_STARS["galactic_pole"], jd)
        centre = _star_vector(_REFERENCE_STARS["galactic_center"], jd)
        pole = pole - (pole @ centre) * centre
        return pole / np.linalg.norm(pole)
    return _star_vector(_REFERENCE_STARS[name], jd)

def _mean_ecliptic_longitude(vec_icrs: np.ndarray, jd: float) -> float:
    """Longitude on the mean ecliptic and equinox of date of an ICRS direction."""
    rbp = erfa.pmat06(jd, 0.0)
    eps = erfa.obl06(jd, 0.0)
    x, y, z = rbp @ vec_icrs
    ce, se = math.cos(eps), math.sin(eps)
    return math.degrees(math.atan2(y * ce + z * se, x)) % 360.0

def _polar_longitude(vec_icrs: np.ndarray, jd: float) -> float:
    """Longitude of the ecliptic point on the same hour circle of date as an ICRS direction."""
    rbp = erfa.pmat06(jd, 0.0)
    eps = erfa.obl06(jd, 0.0)
    x, y, _ = rbp @ vec_icrs
    ra = math.atan2(y, x)
    return math.degrees(math.atan2(math.sin(ra), math.cos(ra) * math.cos(eps))) % 360.0

def _galactic_node(pole: str, jd: float) -> float:
    return (_mean_ecliptic_longitude(_reference_vector(pole, jd), jd) + 90.0) % 360.0

def _star_ayanamsa(defn: AyanamsaDefinition, jd: float) -> float:
    if defn.kind is AyanamsaKind.GALACTIC_NODE:
        lon = _galactic_node(defn.star, jd)
    elif defn.kind is AyanamsaKind.GALACTIC_ALIGNMENT:
        node = _galactic_node(defn.star, jd)
        centre = _mean_ecliptic_longitude(_reference_vector("galactic_center", jd), jd)
        lon = node + 0.5 * ((centre - node + 180.0) % 360.0 - 180.0)
    elif defn.kind is AyanamsaKind.POLAR:
        lon = _polar_longitude(_reference_vector(defn.star, jd), jd)
    else:
        lon = _mean_ecliptic_longitude(_reference_vector(defn.star, jd), jd)
    return (lon - defn.offset) % 360.0

def reference_epoch(config: SiderealConfig, delta_t) -> Tuple[float, float]:
    """(t0 as ET, ayanamsa at t0) for the configured mode."""
    if config.mode == SIDM_USER:
        t0 = config.t0
        if config.bits & SiderealBit.USER_UT:
            t0 += delta_t(t0)
        return t0, config.ayan_t0
    defn = definition_for(config.mode)
    if defn.kind is AyanamsaKind.EPOCH:
        return defn.t0, defn.ayan_t0
    return J2000, _star_ayanamsa(defn, J2000)

# ───────────────────────────── Public ─────────────────────────────

def mean_ayanamsa(jd_et: float, config: SiderealConfig, delta_t=lambda jd: 0.0) -> Tuple[float, float]:
    """
    Mean ayanamsa (deg) and its rate (deg/day) at `jd_et`.

    `delta_t(jd_ut) -> days` is only consulted for user modes with t0 in UT.
    """
    p_now, rate = general_precession(jd_et)
    if config.mode != SIDM_USER:
        defn = definition_for(config.mode)
        if defn.kind is not AyanamsaKind.EPOCH:
            return _star_ayanamsa(defn, jd_et), rate

    t0, ayan_t0 = reference_epoch(config, delta_t)
    p_t0, _ = general_precession(t0)
    return ayan_t0 + (p_now - p_t0), rate

def true_ayanamsa(jd_et: float, config: SiderealConfig, delta_t=lambda jd: 0.0) -> Tuple[float, float]:
    """Ayanamsa including nutation in longitude."""
    value, rate = mean_ayanamsa(jd_et, config, delta_t)
    dpsi, _ = erfa.nut06a(jd_et, 0.0)
    return value + math.degrees(dpsi), rate
