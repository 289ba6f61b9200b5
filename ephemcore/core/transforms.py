# ephemcore/core/transforms.py
# -----------------------------------------------------------------------------
# Coordinate transform pipeline
#
# Raw ICRF barycentric state → requested output, applying exactly the
# requested subset of corrections in this fixed order:
#
#   1. centre shift           (Sun / SSB / geocentre)
#   2. light-time, aberration (erfa.ab)
#   3. light deflection       (erfa.ld, Sun)
#   4. bias + precession      (erfa.bp06)
#   5. nutation               (erfa.num06a)
#   6. topocentric parallax   (erfa.gd2gc + erfa.gst06a)
#   7. sidereal offset        (ayanamsa, or ecliptic of t0)
#   8. representation         (ecliptic/equatorial, polar/cartesian, deg/rad)
#
# Steps 4, 5 and 7 are rotations; they are composed into one frame matrix so
# the velocity picks up the frame-rotation term exactly once. The observer
# offset of step 6 is a pure translation and commutes with those rotations.
# -----------------------------------------------------------------------------

from __future__ import annotations

import logging
import math
from typing import NamedTuple, Tuple

import erfa
import numpy as np

from .ayanamsa import mean_ayanamsa, reference_epoch, true_ayanamsa
from .constants import (
    AUNIT_TO_KM,
    CENTER_MASK,
    J2000,
    SOURCE_MASK,
    SPEED_OF_LIGHT_AU_DAY,
    Body,
    CalcFlag,
    EphemerisSource,
    SiderealBit,
)
from .ephemeris_store import DataSource, SourceResolution
from .errors import NumericNonconvergence, UsageError
from .kepler import rotation_x, rotation_z
from .state import LUNAR_POINTS, validate_body

log = logging.getLogger(__name__)

__all__ = [
    "CalcRequest",
    "CalcResult",
    "Pipeline",
    "parse_flags",
    "UNSUPPORTED_FLAGS",
]

UNSUPPORTED_FLAGS = CalcFlag.JPLHOR | CalcFlag.JPLHOR_APPROX | CalcFlag.CENTER_BODY
EARTH_ROTATION_RAD_PER_DAY = 2.0 * math.pi * 1.00273781191135448
FRAME_RATE_STEP_DAYS = 0.05
APPARENT_RATE_STEP_DAYS = 0.05
SOLAR_DEFLECTION_LIMIT = 1e-9

State = Tuple[np.ndarray, np.ndarray]

# ───────────────────────────── Flag parsing ─────────────────────────────

class CalcRequest(NamedTuple):
    flags: int
    source: EphemerisSource
    explicit_source: bool
    speed: bool

class CalcResult(NamedTuple):
    values: Tuple[float, float, float, float, float, float]
    flag: int
    resolution: SourceResolution

def _bit_count(value: int) -> int:
    return bin(value).count("1")

def parse_flags(flags: int) -> CalcRequest:
    """Validate an option bitmask and pick the requested data source."""
    flags = int(flags)
    if flags < 0:
        raise UsageError(f"Option flags must be non-negative, got {flags}")
    source_bits = flags & SOURCE_MASK
    if _bit_count(source_bits) > 1:
        raise UsageError(f"More than one ephemeris source requested (flags={flags})", flags=flags)
    if _bit_count(flags & CENTER_MASK) > 1:
        raise UsageError(f"Conflicting centre options (flags={flags})", flags=flags)
    if flags & CalcFlag.SPEED and flags & CalcFlag.SPEED3:
        raise UsageError(f"SPEED and SPEED3 are mutually exclusive (flags={flags})", flags=flags)

    explicit = bool(source_bits)
    source = EphemerisSource(source_bits) if explicit else EphemerisSource.SWIEPH
    speed = bool(flags & (CalcFlag.SPEED | CalcFlag.SPEED3))
    return CalcRequest(flags, source, explicit, speed)

# ───────────────────────────── Pipeline ─────────────────────────────

class Pipeline:
    """Apparent, astrometric or geometric positions for one engine context."""

    def __init__(self, context):
        self.context = context

    # ---------- public ----------

    def compute(self, jd_et: float, ipl: int, flags: int) -> CalcResult:
        validate_body(ipl)
        request = parse_flags(flags)
        if request.flags & CalcFlag.TOPOCTR and self.context.observer is None:
            raise UsageError("Topocentric positions need an observer location (set_topo)")

        honoured = self._honoured_flags(request, ipl)
        states = self.context.states

        def run(source: DataSource) -> State:
            return self._geocentric_icrf(source, jd_et, ipl, honoured, request.speed)

        (pos, vel), resolution = states.resolve(request.source, run)
        honoured = (honoured & ~SOURCE_MASK) | int(resolution.actual)

        if honoured & CalcFlag.TOPOCTR:
            obs_pos, obs_vel = self._observer_icrf(jd_et, resolution.actual)
            pos, vel = pos - obs_pos, vel - obs_vel

        values = self._represent(jd_et, pos, vel, honoured, request.speed, resolution.actual)
        return CalcResult(values, honoured, resolution)

    # ---------- flags ----------

    @staticmethod
    def _honoured_flags(request: CalcRequest, ipl: int) -> int:
        honoured = request.flags & ~int(UNSUPPORTED_FLAGS)
        if honoured & CalcFlag.SPEED3:
            honoured = (honoured & ~int(CalcFlag.SPEED3)) | CalcFlag.SPEED
        if ipl in LUNAR_POINTS:
            honoured &= ~int(CENTER_MASK)
        if honoured & CalcFlag.EQUATORIAL and honoured & CalcFlag.SIDEREAL:
            honoured &= ~int(CalcFlag.SIDEREAL)
        return int(honoured)

    # ---------- steps 1-3 ----------

    def _geocentric_icrf(self, source: DataSource, jd: float, ipl: int, flags: int,
                         speed: bool = True) -> State:
        """Centre shift, light-time, aberration and deflection in ICRF."""
        states = self.context.states
        raw = states.barycentric(source, ipl, jd)
        if raw.geocentric:
            return raw.pos, raw.vel

        if flags & CalcFlag.HELCTR:
            if ipl == Body.SUN:
                return np.zeros(3), np.zeros(3)
            obs_pos, obs_vel = source.barycentric(10, jd)
        elif flags & CalcFlag.BARYCTR:
            obs_pos, obs_vel = np.zeros(3), np.zeros(3)
        else:
            if ipl == Body.EARTH:
                return np.zeros(3), np.zeros(3)
            obs_pos, obs_vel = source.barycentric(399, jd)

        if flags & CalcFlag.TRUEPOS:
            return raw.pos - obs_pos, raw.vel - obs_vel

        body_pos, body_vel, tau = self._light_time(source, ipl, jd, raw.pos, obs_pos)
        rel = body_pos - obs_pos
        u = rel / np.linalg.norm(rel)
        tau_dot = float(u @ (body_vel - obs_vel)) / (SPEED_OF_LIGHT_AU_DAY + float(u @ body_vel))
        rel_vel = body_vel * (1.0 - tau_dot) - obs_vel

        geocentric = not flags & (CalcFlag.HELCTR | CalcFlag.BARYCTR)
        aberration = geocentric and not flags & CalcFlag.NOABERR
        deflection = geocentric and not flags & CalcFlag.NOGDEFL and ipl != Body.SUN
        if not (aberration or deflection):
            return rel, rel_vel

        offset = self._apparent_offset(source, jd, body_pos, obs_pos, obs_vel, tau, aberration, deflection)
        if speed:
            # rate of the offset by central difference over the full geometry
            h = APPARENT_RATE_STEP_DAYS
            ahead = self._apparent_offset_at(source, jd + h, ipl, aberration, deflection)
            behind = self._apparent_offset_at(source, jd - h, ipl, aberration, deflection)
            rel_vel = rel_vel + (ahead - behind) / (2.0 * h)
        return rel + offset, rel_vel

    def _apparent_offset_at(self, source: DataSource, jd: float, ipl: int,
                            aberration: bool, deflection: bool) -> np.ndarray:
        raw = self.context.states.barycentric(source, ipl, jd)
        obs_pos, obs_vel = source.barycentric(399, jd)
        body_pos, _, tau = self._light_time(source, ipl, jd, raw.pos, obs_pos)
        return self._apparent_offset(source, jd, body_pos, obs_pos, obs_vel, tau, aberration, deflection)

    @staticmethod
    def _apparent_offset(source: DataSource, jd: float, body_pos: np.ndarray, obs_pos: np.ndarray,
                         obs_vel: np.ndarray, tau: float, aberration: bool, deflection: bool) -> np.ndarray:
        """Displacement of the light-time corrected geocentric vector by aberration and deflection."""
        rel = body_pos - obs_pos
        dist = float(np.linalg.norm(rel))
        geometric = rel / dist
        u = geometric
        sun_now, _ = source.barycentric(10, jd)

        if aberration:
            v = obs_vel / SPEED_OF_LIGHT_AU_DAY
            bm1 = math.sqrt(1.0 - float(v @ v))
            sun_dist = float(np.linalg.norm(obs_pos - sun_now))
            u = erfa.ab(u, v, sun_dist, bm1)

        if deflection:
            sun_then, _ = source.barycentric(10, jd - tau)
            q = body_pos - sun_then
            e = obs_pos - sun_now
            em = float(np.linalg.norm(e))
            u = erfa.ld(1.0, u, q / np.linalg.norm(q), e / em, em, SOLAR_DEFLECTION_LIMIT)

        return (u - geometric) * dist

    def _light_time(self, source: DataSource, ipl: int, jd: float,
                    pos: np.ndarray, obs_pos: np.ndarray) -> Tuple[np.ndarray, np.ndarray, float]:
        config = self.context.config
        states = self.context.states
        tau = float(np.linalg.norm(pos - obs_pos)) / SPEED_OF_LIGHT_AU_DAY
        for _ in range(config.lighttime_max_iterations):
            raw = states.barycentric(source, ipl, jd - tau)
            new_tau = float(np.linalg.norm(raw.pos - obs_pos)) / SPEED_OF_LIGHT_AU_DAY
            if abs(new_tau - tau) <= config.lighttime_tolerance_days:
                return raw.pos, raw.vel, new_tau
            tau = new_tau
        raise NumericNonconvergence(
            f"Light-time iteration did not converge in {config.lighttime_max_iterations} steps",
            body=ipl, jd=jd,
        )

    # ---------- steps 4, 5, 7 ----------

    def _frame(self, jd: float, flags: int, source: EphemerisSource) -> np.ndarray:
        """Rotation from ICRF to the requested output frame at `jd`."""
        rb, rp, rbp = erfa.bp06(jd, 0.0)
        if flags & CalcFlag.J2000:
            matrix = np.identity(3) if flags & CalcFlag.ICRS else rb
        else:
            matrix = rp if flags & CalcFlag.ICRS else rbp

        nutate = not flags & (CalcFlag.NONUT | CalcFlag.J2000)
        deps = 0.0
        if nutate:
            matrix = erfa.num06a(jd, 0.0) @ matrix
            _, deps = erfa.nut06a(jd, 0.0)

        sidereal = bool(flags & CalcFlag.SIDEREAL)
        if flags & CalcFlag.EQUATORIAL and not sidereal:
            return matrix

        sid = self.context.sidereal
        if sidereal and sid.bits & SiderealBit.ECL_T0:
            t0, ayan_t0 = reference_epoch(sid, lambda t: self.context.delta_t(t, source))
            ecl_t0 = rotation_x(erfa.obl06(t0, 0.0)).T @ erfa.pmat06(t0, 0.0)
            return rotation_z(-math.radians(ayan_t0)) @ ecl_t0

        eps = erfa.obl06(J2000, 0.0) if flags & CalcFlag.J2000 else erfa.obl06(jd, 0.0) + deps
        matrix = rotation_x(eps).T @ matrix
        if sidereal:
            ayanamsa = true_ayanamsa if nutate else mean_ayanamsa
            value, _ = ayanamsa(jd, sid, lambda t: self.context.delta_t(t, source))
            matrix = rotation_z(-math.radians(value)) @ matrix
        return matrix

    # ---------- step 6 ----------

    def _observer_icrf(self, jd_et: float, source: EphemerisSource) -> State:
        """Geocentric observer position and velocity, rotated into ICRF."""
        obs = self.context.observer
        jd_ut = self.context.et_to_ut(jd_et, source)
        gast = erfa.gst06a(jd_ut, 0.0, jd_et, 0.0)
        itrs = np.asarray(erfa.gd2gc(1, math.radians(obs.lon), math.radians(obs.lat), obs.elevation))
        itrs = itrs / 1000.0 / AUNIT_TO_KM

        r_tod = rotation_z(gast) @ itrs
        omega = np.array([0.0, 0.0, EARTH_ROTATION_RAD_PER_DAY])
        v_tod = np.cross(omega, r_tod)

        to_icrf = (erfa.num06a(jd_et, 0.0) @ erfa.pmat06(jd_et, 0.0)).T
        return to_icrf @ r_tod, to_icrf @ v_tod

    # ---------- step 8 ----------

    def _represent(self, jd: float, pos: np.ndarray, vel: np.ndarray, flags: int,
                   speed: bool, source: EphemerisSource) -> Tuple[float, ...]:
        frame = self._frame(jd, flags, source)
        out_pos = frame @ pos
        out_vel = np.zeros(3)
        if speed:
            h = FRAME_RATE_STEP_DAYS
            frame_rate = (self._frame(jd + h, flags, source) - self._frame(jd - h, flags, source)) / (2.0 * h)
            out_vel = frame @ vel + frame_rate @ pos

        if flags & CalcFlag.XYZ:
            return tuple(float(v) for v in (*out_pos, *out_vel))

        x, y, z = out_pos
        rho2 = x * x + y * y
        r = math.sqrt(rho2 + z * z)
        if r == 0.0:
            return (0.0,) * 6
        rho = math.sqrt(rho2)
        lon = math.atan2(y, x) % (2.0 * math.pi)
        lat = math.atan2(z, rho)

        dlon = dlat = dr = 0.0
        if speed:
            vx, vy, vz = out_vel
            dr = (x * vx + y * vy + z * vz) / r
            if rho2 > 0.0:
                dlon = (x * vy - y * vx) / rho2
                dlat = (vz * rho2 - z * (x * vx + y * vy)) / (r * r * rho)

        if not flags & CalcFlag.RADIANS:
            lon, lat, dlon, dlat = (math.degrees(v) for v in (lon, lat, dlon, dlat))
        return (lon, lat, r, dlon, dlat, dr)
