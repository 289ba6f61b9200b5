# ephemcore/core/orbital_elements.py
# -----------------------------------------------------------------------------
# Osculating Keplerian elements
#
# The body's geometric state relative to its central body is rotated onto the
# mean ecliptic and equinox of date (or of J2000) and reduced with two-body
# formulas: vis-viva for a, h = r x v for i and node, the eccentricity vector
# for e and the periapsis. The eccentric anomaly is recovered from the mean
# anomaly by the same Kepler solver the analytic model propagates with.
#
# Central bodies:
#   Moon                      Earth, GM of the Earth-Moon system
#   planets                   Sun, GM of Sun + planet
#   Jupiter..Pluto, ORBEL_AA  solar-system barycentre, GM of the whole system
#   asteroids, fictitious     Sun
# -----------------------------------------------------------------------------

from __future__ import annotations

import logging
import math
from typing import NamedTuple, Tuple

import erfa
import numpy as np

from .analytic import PLANET_MASS_RATIOS
from .ayanamsa import general_precession
from .constants import (
    J2000,
    SOURCE_MASK,
    Body,
    EphemerisSource,
    OrbitalElementsFlag,
)
from .ephemeris_store import DataSource, SourceResolution
from .errors import UsageError
from .kepler import GM_SUN, rotation_x, solve_kepler
from .state import LUNAR_POINTS, body_code, validate_body

log = logging.getLogger(__name__)

__all__ = [
    "ELEMENT_NAMES",
    "OrbitalElements",
    "ElementsResult",
    "ElementsCalculator",
    "elements_from_state",
]

TROPICAL_YEAR_DAYS = 365.242189
EARTH_MEAN_MOTION = 360.0 / 365.256363004      # deg/day, sidereal
GM_EARTH_MOON = GM_SUN / PLANET_MASS_RATIOS[3]
GM_SOLAR_SYSTEM = GM_SUN * (1.0 + sum(1.0 / ratio for ratio in PLANET_MASS_RATIOS.values()))
NEAR_ZERO = 1e-12

_OUTER_PLANETS = frozenset({Body.JUPITER, Body.SATURN, Body.URANUS, Body.NEPTUNE, Body.PLUTO})
_NO_ELEMENTS = frozenset({Body.SUN, Body.EARTH}) | LUNAR_POINTS

ELEMENT_NAMES = (
    "a", "e", "i", "node", "argp", "peri_lon", "mean_anomaly", "true_anomaly", "eccentric_anomaly",
    "mean_lon", "sidereal_period", "daily_motion", "tropical_period", "synodic_period",
    "perihelion_passage", "perihelion_distance", "aphelion_distance",
)

class OrbitalElements(NamedTuple):
    a: float                    # AU
    e: float
    i: float                    # deg
    node: float                 # deg
    argp: float                 # deg
    peri_lon: float             # deg
    mean_anomaly: float         # deg
    true_anomaly: float         # deg
    eccentric_anomaly: float    # deg
    mean_lon: float             # deg
    sidereal_period: float      # tropical years
    daily_motion: float         # deg/day
    tropical_period: float      # tropical years
    synodic_period: float       # days
    perihelion_passage: float   # JD (ET)
    perihelion_distance: float  # AU
    aphelion_distance: float    # AU

class ElementsResult(NamedTuple):
    elements: OrbitalElements
    resolution: SourceResolution

# ───────────────────────────── Two-body reduction ─────────────────────────────

def _deg(x: float) -> float:
    return math.degrees(x) % 360.0

def elements_from_state(pos: np.ndarray, vel: np.ndarray, mu: float, jd: float, *,
                        kepler_tol: float = 1e-15, kepler_max_iter: int = 60) -> OrbitalElements:
    """
    Osculating elements of an ecliptic state (AU, AU/day) about a centre with
    gravitational parameter `mu` (AU³/day²). Unbound states raise UsageError.
    """
    r = float(np.linalg.norm(pos))
    v2 = float(vel @ vel)
    if r == 0.0:
        raise UsageError("Orbital elements undefined for a zero position vector")

    energy = 2.0 / r - v2 / mu
    h = np.cross(pos, vel)
    h_norm = float(np.linalg.norm(h))
    e_vec = ((v2 - mu / r) * pos - float(pos @ vel) * vel) / mu
    e = float(np.linalg.norm(e_vec))
    if energy <= 0.0 or e >= 1.0 or h_norm == 0.0:
        raise UsageError(f"Orbit is not bound (e={e:.6f}); elements undefined", e=e)
    a = 1.0 / energy

    inc = math.atan2(math.hypot(h[0], h[1]), h[2])
    if math.hypot(h[0], h[1]) < NEAR_ZERO * h_norm:
        node = 0.0
    else:
        node = math.atan2(h[0], -h[1])

    n_dir = np.array([math.cos(node), math.sin(node), 0.0])
    m_dir = np.cross(h / h_norm, n_dir)

    # argument of latitude of the body and of the periapsis
    arg_lat = math.atan2(float(pos @ m_dir), float(pos @ n_dir))
    argp = math.atan2(float(e_vec @ m_dir), float(e_vec @ n_dir)) if e > NEAR_ZERO else 0.0

    sqrt_mu_a = math.sqrt(mu * a)
    ecc_anom = math.atan2(float(pos @ vel) / sqrt_mu_a, 1.0 - r / a) if e > NEAR_ZERO else arg_lat - argp
    mean_anom = (ecc_anom - e * math.sin(ecc_anom)) % (2.0 * math.pi)
    ecc_anom = solve_kepler(mean_anom, e, tol=kepler_tol, max_iter=kepler_max_iter)
    true_anom = math.atan2(math.sqrt(1.0 - e * e) * math.sin(ecc_anom), math.cos(ecc_anom) - e)

    n = math.sqrt(mu / a ** 3)                      # rad/day
    daily_motion = math.degrees(n)
    period_days = 2.0 * math.pi / n
    _, precession_rate = general_precession(jd)
    tropical_days = 360.0 / (daily_motion + precession_rate)
    synodic = 360.0 / (EARTH_MEAN_MOTION - daily_motion)

    return OrbitalElements(
        a=a,
        e=e,
        i=math.degrees(inc),
        node=_deg(node),
        argp=_deg(argp),
        peri_lon=_deg(node + argp),
        mean_anomaly=_deg(mean_anom),
        true_anomaly=_deg(true_anom),
        eccentric_anomaly=_deg(ecc_anom),
        mean_lon=_deg(node + argp + mean_anom),
        sidereal_period=period_days / TROPICAL_YEAR_DAYS,
        daily_motion=daily_motion,
        tropical_period=tropical_days / TROPICAL_YEAR_DAYS,
        synodic_period=synodic,
        perihelion_passage=jd - mean_anom / n,
        perihelion_distance=a * (1.0 - e),
        aphelion_distance=a * (1.0 + e),
    )

# ───────────────────────────── Calculator ─────────────────────────────

class ElementsCalculator:
    """Orbital elements for one engine context."""

    def __init__(self, context):
        self.context = context

    def compute(self, jd_et: float, ipl: int, flags: int) -> ElementsResult:
        validate_body(ipl)
        if ipl in _NO_ELEMENTS:
            raise UsageError(f"No orbital elements for body {ipl}", body=ipl)
        flags = int(flags)
        source_bits = flags & SOURCE_MASK
        if source_bits & (source_bits - 1):
            raise UsageError(f"More than one ephemeris source requested (flags={flags})", flags=flags)
        requested = EphemerisSource(source_bits) if source_bits else EphemerisSource.SWIEPH

        frame = self._ecliptic_frame(jd_et, bool(flags & OrbitalElementsFlag.J2000))
        config = self.context.config

        def run(source: DataSource) -> OrbitalElements:
            pos, vel, mu = self._relative_state(source, ipl, jd_et, flags)
            return elements_from_state(
                frame @ pos, frame @ vel, mu, jd_et,
                kepler_tol=config.kepler_tolerance, kepler_max_iter=config.kepler_max_iterations,
            )

        elements, resolution = self.context.states.resolve(requested, run)
        return ElementsResult(elements, resolution)

    @staticmethod
    def _ecliptic_frame(jd: float, j2000: bool) -> np.ndarray:
        if j2000:
            rb, _, _ = erfa.bp06(J2000, 0.0)
            return rotation_x(erfa.obl06(J2000, 0.0)).T @ rb
        return rotation_x(erfa.obl06(jd, 0.0)).T @ erfa.pmat06(jd, 0.0)

    def _relative_state(self, source: DataSource, ipl: int, jd: float, flags: int) -> Tuple[np.ndarray, np.ndarray, float]:
        states = self.context.states
        if ipl == Body.MOON:
            pos, vel = states.moon_geocentric(source, jd)
            return pos, vel, GM_EARTH_MOON

        code = body_code(ipl)
        pos, vel = source.barycentric(code, jd)
        if ipl in _OUTER_PLANETS and flags & OrbitalElementsFlag.ORBEL_AA:
            return pos, vel, GM_SOLAR_SYSTEM

        sun_pos, sun_vel = source.barycentric(10, jd)
        mu = GM_SUN
        if code in PLANET_MASS_RATIOS:
            mu *= 1.0 + 1.0 / PLANET_MASS_RATIOS[code]
        return pos - sun_pos, vel - sun_vel, mu
