"""
ephemcore

High-precision planetary ephemeris engine: calendar and time-scale
conversion, apparent and astrometric positions, sidereal offsets, osculating
orbital elements and astrological house cusps.
"""

__version__ = "2.10.3"
__author__ = "ephemcore developers"

# Version information
VERSION_INFO = {
    "major": 2,
    "minor": 10,
    "patch": 3,
    "status": "stable"
}
