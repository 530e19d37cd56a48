"""Tests for settings and logging setup."""

import logging
from pathlib import Path

from swarmcore.config import SwarmSettings, configure_logging


def test_defaults():
    s = SwarmSettings()
    assert s.router_history_limit == 1000
    assert s.mood_history_limit == 100
    assert s.db_path == Path(".swarmcore/state.db")


def test_env_prefix(monkeypatch):
    monkeypatch.setenv("SWARMCORE_ROUTER_HISTORY_LIMIT", "25")
    monkeypatch.setenv("SWARMCORE_DEFAULT_MODEL", "claude-test")

    s = SwarmSettings()

    assert s.router_history_limit == 25
    assert s.default_model == "claude-test"


def test_configure_logging_sets_package_level():
    configure_logging("debug")
    assert logging.getLogger("swarmcore").level == logging.DEBUG
    configure_logging("WARNING")
    assert logging.getLogger("swarmcore").level == logging.WARNING
