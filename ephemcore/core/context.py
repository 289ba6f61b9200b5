# ephemcore/core/context.py
# -----------------------------------------------------------------------------
# Engine configuration and per-session state
#
# EngineConfig holds immutable tunables (cache size, iteration limits, file
# names). EngineContext is the one mutable object a session owns: ephemeris
# path, JPL file, observer, sidereal mode, delta-T override and tidal
# acceleration, plus the ephemeris store with its open files. Nothing here is
# process-global; two contexts never share state.
# -----------------------------------------------------------------------------

from __future__ import annotations

import logging
import os
import re
import threading
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .ayanamsa import SiderealConfig
from .constants import (
    DELTAT_AUTOMATIC,
    TIDAL_AUTOMATIC,
    TIDAL_BY_DENUM,
    TIDAL_DEFAULT,
    TIDAL_MOSEPH,
    EphemerisSource,
)
from .ephemeris_store import EphemerisStore
from .errors import UsageError
from .state import StateCalculator
from .timescales import delta_t

log = logging.getLogger(__name__)

__all__ = [
    "EngineConfig",
    "ObserverLocation",
    "EngineContext",
    "default_ephe_path",
    "split_path_list",
]

ENV_EPHE_PATH = "SE_EPHE_PATH"

def _default_search_dirs() -> Tuple[str, ...]:
    return (
        os.path.join(os.getcwd(), "ephe"),
        os.path.join(os.getcwd(), "data"),
        os.path.expanduser("~/ephemeris"),
        "/usr/local/share/ephemeris",
    )

# ───────────────────────────── Configuration ─────────────────────────────

@dataclass(frozen=True)
class EngineConfig:
    """Immutable engine tunables."""

    # File cache
    cache_capacity: int = 8

    # Light-time iteration
    lighttime_max_iterations: int = 10
    lighttime_tolerance_days: float = 1e-12

    # Kepler equation
    kepler_max_iterations: int = 60
    kepler_tolerance: float = 1e-15

    # House cusps
    placidus_max_iterations: int = 30

    # Interpolated lunar apsides
    apsis_max_iterations: int = 60

    # Files
    default_jpl_file: str = "de440s.bsp"
    search_dirs: Tuple[str, ...] = field(default_factory=_default_search_dirs)

@dataclass(frozen=True)
class ObserverLocation:
    lon: float          # deg east
    lat: float          # deg north
    elevation: float    # metres above the ellipsoid

# ───────────────────────────── Path discovery ─────────────────────────────

def split_path_list(path: str) -> List[str]:
    """Split a directory list on os.pathsep or ';' and drop empty entries."""
    parts = re.split(rf"[;{re.escape(os.pathsep)}]", path)
    return [p.strip() for p in parts if p.strip()]

def default_ephe_path(config: EngineConfig) -> List[str]:
    dirs: List[str] = []
    if env_path := os.getenv(ENV_EPHE_PATH):
        dirs.extend(split_path_list(env_path))
    dirs.extend(config.search_dirs)
    return dirs

# ───────────────────────────── Context ─────────────────────────────

class EngineContext:
    """Mutable per-session state shared by every engine operation."""

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()
        self.lock = threading.RLock()
        self.store: Optional[EphemerisStore] = None
        self.reset()

    def reset(self) -> None:
        """Close every cached file and restore defaults."""
        with self.lock:
            if self.store is not None:
                self.store.close()
            self.user_ephe_path: Optional[List[str]] = None
            self.store = EphemerisStore(
                default_ephe_path(self.config), self.config.default_jpl_file, self.config.cache_capacity,
            )
            self.states = StateCalculator(
                self.store,
                kepler_tol=self.config.kepler_tolerance,
                kepler_max_iter=self.config.kepler_max_iterations,
                apsis_max_iter=self.config.apsis_max_iterations,
            )
            self.observer: Optional[ObserverLocation] = None
            self.sidereal = SiderealConfig()
            self.delta_t_override: Optional[float] = None
            self.tidal_acc: float = TIDAL_AUTOMATIC
            log.debug("Engine context reset to defaults")

    # ---------- files ----------

    def set_ephe_path(self, path: Optional[str]) -> None:
        with self.lock:
            if path:
                self.user_ephe_path = split_path_list(path)
                dirs = self.user_ephe_path
            else:
                self.user_ephe_path = None
                dirs = default_ephe_path(self.config)
            self.store.set_ephe_path(dirs)
            log.debug(f"Ephemeris path set to {dirs}")

    @property
    def ephe_path(self) -> List[str]:
        return list(self.store.ephe_path)

    def set_jpl_file(self, fname: str) -> None:
        if not fname:
            raise UsageError("JPL file name must not be empty")
        with self.lock:
            self.store.set_jpl_file(fname)

    @property
    def jpl_file(self) -> str:
        return self.store.jpl_file

    # ---------- observer ----------

    def set_topo(self, lon: float, lat: float, elevation: float = 0.0) -> None:
        if not -90.0 <= lat <= 90.0:
            raise UsageError(f"Observer latitude out of range: {lat}", lat=lat)
        if not -180.0 <= lon <= 360.0:
            raise UsageError(f"Observer longitude out of range: {lon}", lon=lon)
        with self.lock:
            self.observer = ObserverLocation(lon, lat, elevation)

    # ---------- sidereal ----------

    def set_sidereal(self, config: SiderealConfig) -> None:
        with self.lock:
            self.sidereal = config

    # ---------- delta-T ----------

    def set_delta_t_override(self, days: Optional[float]) -> None:
        """Override in days; DELTAT_AUTOMATIC or None clears it."""
        with self.lock:
            if days is None or days == DELTAT_AUTOMATIC:
                self.delta_t_override = None
            else:
                self.delta_t_override = float(days)

    def set_tidal_acc(self, value: float) -> None:
        with self.lock:
            self.tidal_acc = value

    def effective_tidal_acc(self, source: EphemerisSource = EphemerisSource.SWIEPH,
                            jd: Optional[float] = None) -> float:
        """
        Tidal acceleration in use. In automatic mode it follows the DE number
        of the file serving `jd`, or of the file last opened when no epoch is
        given.
        """
        if self.tidal_acc != TIDAL_AUTOMATIC:
            return self.tidal_acc
        if source == EphemerisSource.MOSEPH:
            return TIDAL_MOSEPH
        data = self.states.sources[source]
        denum = data.denum if jd is None else data.denum_at(jd)
        return TIDAL_BY_DENUM.get(denum, TIDAL_DEFAULT)

    def delta_t(self, jd_ut: float, source: EphemerisSource = EphemerisSource.SWIEPH) -> float:
        """Delta-T in days, honouring the override."""
        return delta_t(jd_ut, tidal_acc=self.effective_tidal_acc(source, jd_ut), override=self.delta_t_override)

    def ut_to_et(self, jd_ut: float, source: EphemerisSource = EphemerisSource.SWIEPH) -> float:
        return jd_ut + self.delta_t(jd_ut, source)

    def et_to_ut(self, jd_et: float, source: EphemerisSource = EphemerisSource.SWIEPH) -> float:
        jd_ut = jd_et - self.delta_t(jd_et, source)
        return jd_et - self.delta_t(jd_ut, source)

    def close(self) -> None:
        self.reset()
