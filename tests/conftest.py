"""Shared test fixtures."""
import logging
import os
import shutil
import subprocess
from datetime import datetime, timedelta, timezone

import pytest

from common.logging import APP_LOGGER_NAME
from projectdash.config import Config
from projectdash.db.store import ProjectStore
from projectdash.helpers import canonical_timestamp
from projectdash.schemas import ProjectMetadata, ScannedProject

CONFIG_VARS = (
    "DATABASE_URL", "GITHUB_USER", "SCAN_ROOT", "CUTOFF_DAYS", "MAX_DEPTH",
    "COMMIT_WINDOW_DAYS", "GIT_TIMEOUT", "SCAN_WORKERS", "LOG_LEVEL", "LOG_DIR",
)

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")

NOW = datetime(2026, 10, 16, 12, 0, 0, tzinfo=timezone.utc)


def git(cwd, *args, when=None):
    env = {
        **os.environ,
        "GIT_AUTHOR_NAME": "Alice Example",
        "GIT_AUTHOR_EMAIL": "alice@example.com",
        "GIT_COMMITTER_NAME": "Alice Example",
        "GIT_COMMITTER_EMAIL": "alice@example.com",
        "GIT_CONFIG_NOSYSTEM": "1",
        "HOME": str(cwd),
    }
    if when is not None:
        stamp = f"@{int(when.timestamp())} +0000"
        env["GIT_AUTHOR_DATE"] = stamp
        env["GIT_COMMITTER_DATE"] = stamp
    subprocess.run(["git", "-c", "commit.gpgsign=false", *args], cwd=cwd, env=env,
                   check=True, capture_output=True)


@pytest.fixture
def make_repo(tmp_path):
    """Create a real git repository under ``tmp_path/code``.

    ``commits`` is a list of (message, datetime) pairs, oldest first.
    ``files`` maps relative paths to contents and is committed with the first commit.
    """
    def _make(rel, commits=None, files=None, remote=None, author=None):
        path = tmp_path / "code" / rel
        path.mkdir(parents=True, exist_ok=True)
        git(path, "init", "-q")
        for name, content in (files or {}).items():
            target = path / name
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content)
        for message, when in (commits or []):
            git(path, "add", "-A")
            git(path, "commit", "-q", "--allow-empty", "-m", message, when=when)
        if remote:
            git(path, "remote", "add", "origin", remote)
        return str(path)
    return _make


@pytest.fixture
def config(tmp_path, monkeypatch):
    for name in CONFIG_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'projects.db'}")
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))
    return Config(load_env=False)


@pytest.fixture
def store(tmp_path):
    store = ProjectStore(f"sqlite:///{tmp_path / 'store.db'}")
    yield store
    store.dispose()


@pytest.fixture
def add_project(store):
    """Insert a project whose last commit was ``days_ago`` days before NOW."""
    counter = {"n": 0}

    def _add(name=None, days_ago=1, message="update readme", is_fork=False, now=NOW, **metadata):
        counter["n"] += 1
        name = name or f"project-{counter['n']:03d}"
        project = ScannedProject(
            path=f"/code/{name}",
            name=name,
            last_commit_date=canonical_timestamp(now - timedelta(days=days_ago)),
            last_commit_message=message,
            is_fork=is_fork,
            metadata=ProjectMetadata(**metadata),
        )
        store.upsert(project, now=now)
        return store.get_by_path(project.path)
    return _add


@pytest.fixture
def reset_app_logger():
    yield
    logger = logging.getLogger(APP_LOGGER_NAME)
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)
