"""Shared fixtures: packed ephemeris files and engines bound to fresh contexts."""

import pytest

from ephemcore.core.context import EngineConfig, EngineContext
from ephemcore.core.engine import Engine

from packed_writer import write_fixture_set

# Scenario epoch: 2020-01-25 15:35 UTC
SCENARIO_JD_ET = 2458874.150106296
SCENARIO_JD_UT = 2458874.149305556

@pytest.fixture(scope="session")
def ephe_dir(tmp_path_factory):
    """Directory holding sepl_18.se1, semo_18.se1 and seas_18.se1."""
    return str(write_fixture_set(str(tmp_path_factory.mktemp("ephe"))))

@pytest.fixture
def isolated_config(monkeypatch):
    monkeypatch.delenv("SE_EPHE_PATH", raising=False)
    return EngineConfig(search_dirs=())

@pytest.fixture
def engine(isolated_config, ephe_dir):
    """Engine whose packed files come from the fixture directory."""
    eng = Engine(EngineContext(isolated_config))
    eng.set_ephe_path(ephe_dir)
    yield eng
    eng.close()

@pytest.fixture
def bare_engine(isolated_config):
    """Engine with no ephemeris files at all; only the analytic model answers."""
    eng = Engine(EngineContext(isolated_config))
    yield eng
    eng.close()
