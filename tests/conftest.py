"""Shared fixtures for ScriptLoop tests."""

import pytest

from scriptloop.bridge import BridgeManager, ScriptBridge
from scriptloop.config import ScriptLoopConfig, clear_config_cache
from scriptloop.engine import EngineFunction


class ScriptTable:
    """Test compiler: maps source text to a prepared script function.

    Each entry is a ``native(this)`` callable run as top-level code.
    """

    def __init__(self):
        self.scripts = {}
        self.compiled = []

    def add(self, source, native):
        self.scripts[source] = native

    def __call__(self, source, filename):
        self.compiled.append((source, filename))
        return EngineFunction(self.scripts[source], "script")


@pytest.fixture
def scripts():
    return ScriptTable()


@pytest.fixture
def bridge(scripts):
    return ScriptBridge(config=ScriptLoopConfig(), compiler=scripts)


@pytest.fixture(autouse=True)
def isolated_state(tmp_path, monkeypatch):
    """Keep tests away from the user's config and the shared bridge."""
    monkeypatch.setenv("SCRIPTLOOP_CONFIG_DIR", str(tmp_path / "config"))
    clear_config_cache()
    BridgeManager.reset_instance()
    yield
    clear_config_cache()
    BridgeManager.reset_instance()
