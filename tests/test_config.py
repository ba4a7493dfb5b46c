import os
import pytest
from unittest.mock import patch
from projectdash.config import Config, get_config

@pytest.fixture
def mock_env_vars(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite:////tmp/dash.db")
    monkeypatch.setenv("GITHUB_USER", "alice")
    monkeypatch.setenv("SCAN_ROOT", "/srv/code")
    monkeypatch.setenv("CUTOFF_DAYS", "90")
    monkeypatch.setenv("COMMIT_WINDOW_DAYS", "120")
    monkeypatch.setenv("GIT_TIMEOUT", "5")
    monkeypatch.setenv("SCAN_WORKERS", "4")

def test_config_loads_from_env(mock_env_vars):
    config = get_config(load_env=False)
    assert config.database_url == "sqlite:////tmp/dash.db"
    assert config.github_user == "alice"
    assert config.scan_root == "/srv/code"
    assert config.cutoff_days == 90
    assert config.commit_window_days == 120
    assert config.git_timeout == 5.0
    assert config.scan_workers == 4

@patch.dict(os.environ, {}, clear=True)
def test_config_default_values():
    config = get_config(load_env=False)
    assert config.database_url == "sqlite:///projects.db"
    assert config.github_user is None
    assert config.scan_root == "~/Code"
    assert config.cutoff_days == 240
    assert config.max_depth == 10
    assert config.commit_window_days == 240
    assert config.git_timeout == 30.0
    assert config.scan_workers == 1
    assert config.log_level == "INFO"
    assert config.log_dir == "logs"

@patch.dict(os.environ, {"GITHUB_USER": "", "SCAN_WORKERS": "0"}, clear=True)
def test_config_blank_user_and_minimum_workers():
    config = Config(load_env=False)
    assert config.github_user is None
    assert config.scan_workers == 1
