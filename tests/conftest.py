"""
Pytest configuration for the carwings MQTT bridge tests.

- Ensures the repository root is on sys.path so imports like
  `from carwings_mqtt import ...` and `from tests.helpers.fakes import ...`
  resolve without an editable install.
"""
from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest


def _ensure_repo_root_on_syspath() -> None:
    repo_root = str(Path(__file__).resolve().parent.parent)
    if repo_root not in sys.path:
        sys.path.insert(0, repo_root)


_ensure_repo_root_on_syspath()


def pytest_configure(config):  # noqa: D401
    """Keep tests away from a real add-on options file."""
    os.environ.setdefault("OPTIONS_PATH", "/nonexistent/options.json")


@pytest.fixture
def bridge_caplog(caplog):
    """caplog that also sees the package logger (which does not propagate)."""
    from carwings_mqtt.logging_setup import logger

    logger.addHandler(caplog.handler)
    caplog.set_level("DEBUG", logger="carwings_mqtt")
    try:
        yield caplog
    finally:
        logger.removeHandler(caplog.handler)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """No config files and no override variables."""
    from carwings_mqtt.addon_config import ENV_OVERRIDES

    for key in ENV_OVERRIDES:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("OPTIONS_PATH", str(tmp_path / "options.json"))
    monkeypatch.setenv("CONFIG_PATH", str(tmp_path / "config.yaml"))
    return tmp_path
