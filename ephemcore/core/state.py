# ephemcore/core/state.py
# -----------------------------------------------------------------------------
# Orbital state calculator
#
# Produces the raw geometric state of a body in the engine's base frame (ICRF
# equatorial, AU, AU/day, ET epoch) and resolves which data source serves the
# request. Bodies come back barycentric; lunar points (nodes and apsides) come
# back geocentric since they are defined only relative to the Earth.
#
# Lunar point derivations:
#   MEAN_NODE / MEAN_APOG   polynomial arguments with analytic rates
#   TRUE_NODE               node of the osculating plane h = r x v
#   OSCU_APOG               apogee of the osculating ellipse (eccentricity vector)
#   INTP_APOG / INTP_PERG   distance extremum of the perturbed orbit from the
#                           lunar series, whatever the data source
# Mean points carry analytic rates. The other points are nonlinear in the lunar
# state, so their speeds are central differences of the positions they return.
# -----------------------------------------------------------------------------

from __future__ import annotations

import logging
import math
from typing import Callable, Dict, List, NamedTuple, Tuple, TypeVar

import numpy as np

from .analytic import (
    PLANET_MASS_RATIOS,
    AnalyticModel,
    FICTITIOUS_ELEMENTS,
    ecliptic_to_icrf,
    lunar_apsis,
    mean_lunar_apogee,
    mean_lunar_node,
    spherical_to_cartesian,
)
from .constants import AST_OFFSET, COMET_OFFSET, FICT_MAX, FICT_OFFSET, PLMOON_OFFSET, Body, EphemerisSource
from .ephemeris_store import (
    ASTEROID_BASE,
    AnalyticSource,
    EphemerisStore,
    JplSource,
    PackedSource,
    SourceResolution,
    DataSource,
    fallback_chain,
)
from .errors import DataUnavailable, UsageError
from .kepler import GM_SUN

log = logging.getLogger(__name__)

__all__ = [
    "RawState",
    "StateCalculator",
    "BODY_CODES",
    "LUNAR_POINTS",
    "body_code",
    "planet_name",
    "validate_body",
]

State = Tuple[np.ndarray, np.ndarray]
T = TypeVar("T")

GM_EARTH_MOON = GM_SUN / PLANET_MASS_RATIOS[3]
LUNAR_SPEED_STEP_DAYS = 0.001
FRAME_RATE_STEP_DAYS = 0.05

BODY_CODES: Dict[int, int] = {
    Body.SUN: 10,
    Body.MOON: 301,
    Body.MERCURY: 1,
    Body.VENUS: 2,
    Body.MARS: 4,
    Body.JUPITER: 5,
    Body.SATURN: 6,
    Body.URANUS: 7,
    Body.NEPTUNE: 8,
    Body.PLUTO: 9,
    Body.EARTH: 399,
    Body.CHIRON: ASTEROID_BASE + 2060,
    Body.PHOLUS: ASTEROID_BASE + 5145,
    Body.CERES: ASTEROID_BASE + 1,
    Body.PALLAS: ASTEROID_BASE + 2,
    Body.JUNO: ASTEROID_BASE + 3,
    Body.VESTA: ASTEROID_BASE + 4,
}

LUNAR_POINTS = frozenset({
    Body.MEAN_NODE, Body.TRUE_NODE, Body.MEAN_APOG, Body.OSCU_APOG, Body.INTP_APOG, Body.INTP_PERG,
})

_NAMES: Dict[int, str] = {
    Body.SUN: "Sun",
    Body.MOON: "Moon",
    Body.MERCURY: "Mercury",
    Body.VENUS: "Venus",
    Body.MARS: "Mars",
    Body.JUPITER: "Jupiter",
    Body.SATURN: "Saturn",
    Body.URANUS: "Uranus",
    Body.NEPTUNE: "Neptune",
    Body.PLUTO: "Pluto",
    Body.MEAN_NODE: "mean Node",
    Body.TRUE_NODE: "true Node",
    Body.MEAN_APOG: "mean Apogee",
    Body.OSCU_APOG: "osc. Apogee",
    Body.EARTH: "Earth",
    Body.CHIRON: "Chiron",
    Body.PHOLUS: "Pholus",
    Body.CERES: "Ceres",
    Body.PALLAS: "Pallas",
    Body.JUNO: "Juno",
    Body.VESTA: "Vesta",
    Body.INTP_APOG: "intp. Apogee",
    Body.INTP_PERG: "intp. Perigee",
    Body.VULCAN: "Vulcan",
    Body.WHITE_MOON: "White Moon",
    Body.PROSERPINA: "Proserpina",
    Body.WALDEMATH: "Waldemath",
}

# ───────────────────────────── Body identifiers ─────────────────────────────

def validate_body(ipl: int) -> int:
    """Return `ipl` unchanged if it names a computable body; raise UsageError otherwise."""
    if isinstance(ipl, bool) or not isinstance(ipl, int):
        raise UsageError(f"Body id must be an integer, got {ipl!r}")
    if 0 <= ipl < Body.NPLANETS or FICT_OFFSET <= ipl <= FICT_MAX:
        return ipl
    if ipl > AST_OFFSET:
        return ipl
    if COMET_OFFSET <= ipl < PLMOON_OFFSET:
        raise UsageError(f"Comets are not supported (body {ipl})", body=ipl)
    if PLMOON_OFFSET <= ipl < AST_OFFSET:
        raise UsageError(f"Planetary moons are not supported (body {ipl})", body=ipl)
    raise UsageError(f"Unknown body id {ipl}", body=ipl)

def body_code(ipl: int) -> int:
    """Data-source code for a body id (lunar points have none)."""
    validate_body(ipl)
    if ipl in BODY_CODES:
        return BODY_CODES[ipl]
    if FICT_OFFSET <= ipl <= FICT_MAX:
        return ipl
    if ipl > AST_OFFSET:
        return ASTEROID_BASE + (ipl - AST_OFFSET)
    raise UsageError(f"Body {ipl} has no ephemeris code", body=ipl)

def planet_name(ipl: int) -> str:
    validate_body(ipl)
    if ipl in _NAMES:
        return _NAMES[ipl]
    if ipl in FICTITIOUS_ELEMENTS:
        return FICTITIOUS_ELEMENTS[ipl].name
    return str(ipl - AST_OFFSET)

# ───────────────────────────── Raw state ─────────────────────────────

class RawState(NamedTuple):
    pos: np.ndarray
    vel: np.ndarray
    geocentric: bool = False

# ───────────────────────────── Helpers ─────────────────────────────

def _ecliptic_rate(jd: float) -> np.ndarray:
    h = FRAME_RATE_STEP_DAYS
    return (ecliptic_to_icrf(jd + h) - ecliptic_to_icrf(jd - h)) / (2.0 * h)

def _eccentricity_vector(r: np.ndarray, v: np.ndarray, mu: float) -> np.ndarray:
    h = np.cross(r, v)
    return np.cross(v, h) / mu - r / np.linalg.norm(r)

def _true_node_vector(r: np.ndarray, v: np.ndarray) -> np.ndarray:
    h = np.cross(r, v)
    node = np.array([-h[1], h[0], 0.0])
    node /= np.linalg.norm(node)
    e_vec = _eccentricity_vector(r, v, GM_EARTH_MOON)
    p = float(h @ h) / GM_EARTH_MOON
    return node * (p / (1.0 + float(e_vec @ node)))

def _osculating_apogee_vector(r: np.ndarray, v: np.ndarray) -> np.ndarray:
    e_vec = _eccentricity_vector(r, v, GM_EARTH_MOON)
    ecc = np.linalg.norm(e_vec)
    a = 1.0 / (2.0 / np.linalg.norm(r) - float(v @ v) / GM_EARTH_MOON)
    return -e_vec / ecc * a * (1.0 + ecc)

# ───────────────────────────── Calculator ─────────────────────────────

class StateCalculator:
    """Raw states plus data-source resolution with fallback."""

    def __init__(self, store: EphemerisStore, *, kepler_tol: float = 1e-15, kepler_max_iter: int = 60,
                 apsis_max_iter: int = 60):
        self.store = store
        self.analytic = AnalyticModel(kepler_tol, kepler_max_iter)
        self.apsis_max_iter = apsis_max_iter
        self.sources: Dict[EphemerisSource, DataSource] = {
            EphemerisSource.JPLEPH: JplSource(self.analytic, store),
            EphemerisSource.SWIEPH: PackedSource(self.analytic, store),
            EphemerisSource.MOSEPH: AnalyticSource(self.analytic),
        }

    # ---------- source resolution ----------

    def resolve(self, requested: EphemerisSource, compute: Callable[[DataSource], T]) -> Tuple[T, SourceResolution]:
        """
        Run `compute` against the requested source, stepping down the fallback
        chain on DataUnavailable. The resolution records the source that
        actually produced the result and why any substitution happened.
        """
        failures: List[str] = []
        first_error = None
        for which in fallback_chain(requested):
            try:
                result = compute(self.sources[which])
            except DataUnavailable as e:
                first_error = first_error or e
                failures.append(f"{which.name}: {e}")
                log.debug(f"Source {which.name} unavailable: {e}")
                continue
            reason = ""
            if which != requested:
                reason = f"using {which.name} instead of {requested.name} ({'; '.join(failures)})"
                log.warning(reason)
            return result, SourceResolution(requested, which, reason)
        raise DataUnavailable("; ".join(failures), **first_error.context)

    # ---------- bodies ----------

    def barycentric(self, source: DataSource, ipl: int, jd: float) -> RawState:
        if ipl in LUNAR_POINTS:
            pos, vel = self.lunar_point(source, ipl, jd)
            return RawState(pos, vel, geocentric=True)
        pos, vel = source.barycentric(body_code(ipl), jd)
        return RawState(pos, vel)

    def moon_geocentric(self, source: DataSource, jd: float) -> State:
        moon_pos, moon_vel = source.barycentric(301, jd)
        earth_pos, earth_vel = source.barycentric(399, jd)
        return moon_pos - earth_pos, moon_vel - earth_vel

    # ---------- lunar points ----------

    def lunar_point(self, source: DataSource, ipl: int, jd: float) -> State:
        """Geocentric ICRF state of a lunar node or apsis."""
        if ipl == Body.MEAN_NODE:
            return self._mean_point(mean_lunar_node, jd)
        if ipl == Body.MEAN_APOG:
            return self._mean_point(mean_lunar_apogee, jd)
        if ipl == Body.TRUE_NODE:
            return self._differenced(lambda t: self._osculating_point(source, _true_node_vector, t), jd)
        if ipl == Body.OSCU_APOG:
            return self._differenced(lambda t: self._osculating_point(source, _osculating_apogee_vector, t), jd)
        if ipl in (Body.INTP_APOG, Body.INTP_PERG):
            apogee = ipl == Body.INTP_APOG
            return self._differenced(lambda t: self._apsis_point(t, apogee), jd)
        raise UsageError(f"Body {ipl} is not a lunar point", body=ipl)

    @staticmethod
    def _mean_point(series, jd: float) -> State:
        (lon, lat, dist), (dlon, dlat, ddist) = series(jd)
        pos, vel = spherical_to_cartesian(
            math.radians(lon), math.radians(lat), dist, math.radians(dlon), math.radians(dlat), ddist,
        )
        rot = ecliptic_to_icrf(jd)
        return rot @ pos, rot @ vel + _ecliptic_rate(jd) @ pos

    @staticmethod
    def _differenced(position: Callable[[float], np.ndarray], jd: float) -> State:
        """Position at `jd` and its rate from the same function at jd ± h."""
        h = LUNAR_SPEED_STEP_DAYS
        return position(jd), (position(jd + h) - position(jd - h)) / (2.0 * h)

    def _osculating_point(self, source: DataSource, fn, jd: float) -> np.ndarray:
        rot = ecliptic_to_icrf(jd)
        r, v = self.moon_geocentric(source, jd)
        return rot @ fn(rot.T @ r, rot.T @ v)

    def _apsis_point(self, jd: float, apogee: bool) -> np.ndarray:
        if not self.analytic.covers(jd):
            raise DataUnavailable(f"JD {jd} outside the lunar series range", jd=jd)
        lon, lat, dist = lunar_apsis(jd, apogee, self.apsis_max_iter)
        pos, _ = spherical_to_cartesian(math.radians(lon), math.radians(lat), dist, 0.0, 0.0, 0.0)
        return ecliptic_to_icrf(jd) @ pos
