import subprocess
from datetime import timedelta
from unittest.mock import patch

import pytest

from conftest import NOW, requires_git
from projectdash.errors import GitCommandError
from projectdash.scanner import git


@requires_git
def test_read_log_returns_newest_first(make_repo):
    path = make_repo("app", commits=[
        ("first | with a pipe", NOW - timedelta(days=3)),
        ("second", NOW - timedelta(days=1)),
    ])

    commits = git.read_log(path)

    assert [c["message"] for c in commits] == ["second", "first | with a pipe"]
    assert commits[0]["author"] == "Alice Example"
    assert commits[0]["date"] == "2026-10-15T12:00:00Z"


@requires_git
def test_read_log_respects_limit(make_repo):
    path = make_repo("app", commits=[(f"commit {i}", NOW - timedelta(hours=20 - i)) for i in range(12)])

    assert len(git.read_log(path)) == git.RECENT_COMMIT_LIMIT
    assert len(git.read_log(path, limit=3)) == 3


@requires_git
def test_read_log_on_empty_repository_raises(make_repo):
    path = make_repo("empty")

    with pytest.raises(GitCommandError):
        git.read_log(path)


@requires_git
def test_count_commits_in_window(make_repo):
    path = make_repo("app", commits=[
        ("ancient", NOW - timedelta(days=270)),
        ("old", NOW - timedelta(days=100)),
        ("new", NOW - timedelta(days=1)),
    ])

    assert git.count_commits_in_window(path, NOW, 240) == 2
    assert git.count_commits_in_window(path, NOW, 30) == 1


@requires_git
def test_origin_url(make_repo):
    with_remote = make_repo("a", commits=[("init", NOW)], remote="git@github.com:alice/a.git")
    without_remote = make_repo("b", commits=[("init", NOW)])

    assert git.origin_url(with_remote) == "git@github.com:alice/a.git"
    assert git.origin_url(without_remote) is None


def test_run_git_timeout_raises_git_command_error(tmp_path):
    with patch("projectdash.scanner.git.subprocess.run",
               side_effect=subprocess.TimeoutExpired(cmd=["git", "log"], timeout=1)):
        with pytest.raises(GitCommandError) as excinfo:
            git.run_git(str(tmp_path), ["log"], timeout=1)
    assert "timed out" in str(excinfo.value)


def test_run_git_nonzero_exit_carries_returncode(tmp_path):
    failed = subprocess.CompletedProcess(args=["git", "status"], returncode=128, stdout="", stderr="fatal: not a git repository")
    with patch("projectdash.scanner.git.subprocess.run", return_value=failed):
        with pytest.raises(GitCommandError) as excinfo:
            git.run_git(str(tmp_path), ["status"])
    assert excinfo.value.returncode == 128
    assert "not a git repository" in str(excinfo.value)
