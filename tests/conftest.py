"""Shared test fixtures."""

import shutil
import tempfile

import pytest

from MatScope.config import EngineConfig


@pytest.fixture
def tmp_dir():
    d = tempfile.mkdtemp()
    yield d
    shutil.rmtree(d, ignore_errors=True)


@pytest.fixture
def default_config():
    return EngineConfig()


@pytest.fixture(autouse=True)
def _isolate_plugin_env(monkeypatch, tmp_path):
    """Keep the developer's real plugin directories out of every test."""
    monkeypatch.delenv("MATSCOPE_PLUGINS", raising=False)
    monkeypatch.delenv("MATSCOPE_PLUGINS_STRICT", raising=False)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
