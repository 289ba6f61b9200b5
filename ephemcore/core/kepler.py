# ephemcore/core/kepler.py
# -----------------------------------------------------------------------------
# Two-body propagation with analytic time derivatives
#
# State vectors are produced together with their exact time derivative,
# including the contribution of secularly varying elements, so callers never
# need finite differences for speeds.
# -----------------------------------------------------------------------------

from __future__ import annotations

import math
from typing import NamedTuple, Tuple

import numpy as np

from .errors import NumericNonconvergence

__all__ = [
    "GAUSS_K",
    "GM_SUN",
    "OrbitalRates",
    "solve_kepler",
    "two_body_state",
    "rotation_x",
    "rotation_z",
]

GAUSS_K = 0.01720209895                  # rad/day, Gaussian gravitational constant
GM_SUN = GAUSS_K * GAUSS_K               # AU³/day²

class OrbitalRates(NamedTuple):
    """Element rates per day; angles in radians."""
    a: float = 0.0
    e: float = 0.0
    inc: float = 0.0
    node: float = 0.0
    argp: float = 0.0

def solve_kepler(mean_anomaly: float, ecc: float, *, tol: float = 1e-15, max_iter: int = 60) -> float:
    """
    Eccentric anomaly for an elliptic orbit by Newton iteration.

    Raises NumericNonconvergence when the correction is still above `tol`
    after `max_iter` steps.
    """
    if not 0.0 <= ecc < 1.0:
        raise NumericNonconvergence(f"Kepler solver needs 0 <= e < 1, got {ecc}", ecc=ecc)

    m = math.remainder(mean_anomaly, 2.0 * math.pi)
    ea = m if ecc < 0.8 else math.copysign(math.pi, m)
    last = math.inf
    for _ in range(max_iter):
        delta = (ea - ecc * math.sin(ea) - m) / (1.0 - ecc * math.cos(ea))
        ea -= delta
        # below tol, or stalled at the rounding floor
        if abs(delta) <= tol or (abs(delta) < 1e-10 and abs(delta) >= last):
            return ea + (mean_anomaly - m)
        last = abs(delta)
    raise NumericNonconvergence(
        f"Kepler equation did not converge in {max_iter} iterations",
        mean_anomaly=mean_anomaly, ecc=ecc,
    )

def rotation_x(angle: float) -> np.ndarray:
    c, s = math.cos(angle), math.sin(angle)
    return np.array([[1.0, 0.0, 0.0], [0.0, c, -s], [0.0, s, c]])

def rotation_z(angle: float) -> np.ndarray:
    c, s = math.cos(angle), math.sin(angle)
    return np.array([[c, -s, 0.0], [s, c, 0.0], [0.0, 0.0, 1.0]])

def _d_rotation_x(angle: float) -> np.ndarray:
    c, s = math.cos(angle), math.sin(angle)
    return np.array([[0.0, 0.0, 0.0], [0.0, -s, -c], [0.0, c, -s]])

def _d_rotation_z(angle: float) -> np.ndarray:
    c, s = math.cos(angle), math.sin(angle)
    return np.array([[-s, -c, 0.0], [c, -s, 0.0], [0.0, 0.0, 0.0]])

def two_body_state(
    a: float,
    ecc: float,
    inc: float,
    node: float,
    argp: float,
    mean_anomaly: float,
    mean_motion: float,
    rates: OrbitalRates = OrbitalRates(),
    *,
    tol: float = 1e-15,
    max_iter: int = 60,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Position and velocity in the reference plane of the elements.

    `mean_motion` is dM/dt in rad/day; `rates` carries the secular drift of
    the remaining elements. The velocity is the exact derivative of the
    returned position.
    """
    ea = solve_kepler(mean_anomaly, ecc, tol=tol, max_iter=max_iter)
    cos_e, sin_e = math.cos(ea), math.sin(ea)
    root = math.sqrt(1.0 - ecc * ecc)

    ea_dot = (mean_motion + rates.e * sin_e) / (1.0 - ecc * cos_e)

    x = a * (cos_e - ecc)
    y = a * root * sin_e
    x_dot = rates.a * (cos_e - ecc) + a * (-sin_e * ea_dot - rates.e)
    y_dot = (rates.a * root * sin_e
             + a * (-ecc * rates.e / root * sin_e + root * cos_e * ea_dot))

    rz_node = rotation_z(node)
    rx_inc = rotation_x(inc)
    rz_argp = rotation_z(argp)
    rot = rz_node @ rx_inc @ rz_argp
    rot_dot = (
        rates.node * _d_rotation_z(node) @ rx_inc @ rz_argp
        + rates.inc * rz_node @ _d_rotation_x(inc) @ rz_argp
        + rates.argp * rz_node @ rx_inc @ _d_rotation_z(argp)
    )

    plane = np.array([x, y, 0.0])
    plane_dot = np.array([x_dot, y_dot, 0.0])
    return rot @ plane, rot @ plane_dot + rot_dot @ plane
