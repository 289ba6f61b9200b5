"""
Packed ephemeris fixtures.

Writes small files in the packed Chebyshev format by fitting the analytic
model over a short span, so the file-backed source can be exercised without
downloaded data. Fits use Chebyshev nodes per segment.
"""

import math
import os

import numpy as np
from numpy.polynomial import chebyshev

from ephemcore.core.analytic import EMRAT, AnalyticModel, ecliptic_to_icrf
from ephemcore.core.ephemeris_store import ASTEROID_BASE, ENTRY, FORMAT_VERSION, HEADER, MAGIC
from ephemcore.core.kepler import GAUSS_K, two_body_state
from ephemcore.core.constants import J2000

FIXTURE_START = 2458700.5   # 2019-08-04
FIXTURE_END = 2459100.5     # 2020-09-07

# Test-only osculating elements for Ceres near J2000 (a AU, e, i, node, argp, M deg)
CERES_ELEMENTS = (2.7675, 0.0758, 10.594, 80.305, 73.597, 77.372)

def _fit_segments(fn, start, end, seg_days, ncoeff):
    nseg = int(math.ceil((end - start) / seg_days))
    k = np.arange(ncoeff)
    nodes = np.cos(math.pi * (k + 0.5) / ncoeff)
    blocks = []
    for s in range(nseg):
        t0 = start + s * seg_days
        samples = np.array([fn(t0 + (x + 1.0) * 0.5 * seg_days) for x in nodes])
        coeffs = chebyshev.chebfit(nodes, samples, ncoeff - 1)       # (ncoeff, 3)
        blocks.append(np.ascontiguousarray(coeffs.T, dtype="<f8").tobytes())
    return nseg, blocks

def write_packed_file(path, bodies, start, end, *, denum=431, emrat=EMRAT):
    """
    bodies: list of (code, center, fn(jd) -> position, seg_days, ncoeff).
    """
    count = len(bodies)
    offset = HEADER.size + ENTRY.size * count
    directory = []
    payload = []
    for code, center, fn, seg_days, ncoeff in bodies:
        nseg, blocks = _fit_segments(fn, start, end, seg_days, ncoeff)
        directory.append(ENTRY.pack(code, center, ncoeff, 3, nseg, start, seg_days, offset))
        payload.extend(blocks)
        offset += sum(len(b) for b in blocks)

    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, "wb") as fh:
        fh.write(HEADER.pack(MAGIC, FORMAT_VERSION, denum, count, 0, start, end, emrat, 0.0))
        for entry in directory:
            fh.write(entry)
        for block in payload:
            fh.write(block)
    return path

def _ceres_heliocentric(jd):
    a, e, inc, node, argp, m0 = CERES_ELEMENTS
    n = GAUSS_K / a ** 1.5
    pos, _ = two_body_state(
        a, e, math.radians(inc), math.radians(node), math.radians(argp),
        math.radians(m0) + n * (jd - J2000), n,
    )
    return ecliptic_to_icrf(J2000) @ pos

def write_fixture_set(directory, start=FIXTURE_START, end=FIXTURE_END, *, denum=431):
    """Planet, moon and main-asteroid files covering [start, end]."""
    model = AnalyticModel()
    planets = [(10, 0, lambda jd: model.barycentric(10, jd)[0], 32.0, 14)]
    for code in range(1, 10):
        planets.append((code, 0, lambda jd, c=code: model.barycentric(c, jd)[0], 32.0, 14))
    write_packed_file(os.path.join(directory, "sepl_18.se1"), planets, start, end, denum=denum)

    moon = [(301, 399, lambda jd: model.moon_geocentric(jd)[0], 4.0, 14)]
    write_packed_file(os.path.join(directory, "semo_18.se1"), moon, start, end, denum=denum)

    asteroids = [(ASTEROID_BASE + 1, 10, _ceres_heliocentric, 32.0, 14)]
    write_packed_file(os.path.join(directory, "seas_18.se1"), asteroids, start, end, denum=denum)
    return directory
