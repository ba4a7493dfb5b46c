"""
Git access through subprocess.

Every call carries a timeout so one hung repository (a credential prompt, a
network filesystem) cannot stall a scan.
"""
import os
import subprocess
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from common.logging import LoggingManager
from projectdash.errors import GitCommandError
from projectdash.helpers import canonical_timestamp

logger = LoggingManager.get_logger('projectdash.git')

DEFAULT_TIMEOUT = 30.0
RECENT_COMMIT_LIMIT = 10

# Unit/record separators keep commit subjects with "|" or newlines intact.
FIELD_SEP = "\x1f"
RECORD_SEP = "\x1e"
LOG_FORMAT = f"%aI{FIELD_SEP}%an{FIELD_SEP}%s{RECORD_SEP}"

# Never block on a credential or editor prompt.
GIT_ENV = {"GIT_TERMINAL_PROMPT": "0", "GIT_PAGER": "cat", "LC_ALL": "C"}


def run_git(repo_path: str, args: List[str], timeout: float = DEFAULT_TIMEOUT) -> str:
    """Run ``git <args>`` inside ``repo_path`` and return stripped stdout."""
    command = ["git"] + args
    try:
        result = subprocess.run(
            command,
            cwd=repo_path,
            capture_output=True,
            text=True,
            errors="replace",
            timeout=timeout,
            env={**os.environ, **GIT_ENV},
        )
    except subprocess.TimeoutExpired as e:
        raise GitCommandError(command, f"git {' '.join(args)} timed out after {timeout:.0f}s") from e
    except OSError as e:
        raise GitCommandError(command, f"could not run git: {e}") from e

    if result.returncode != 0:
        stderr = result.stderr.strip() or f"exit code {result.returncode}"
        raise GitCommandError(command, stderr, returncode=result.returncode)
    return result.stdout.strip()


def read_log(repo_path: str, limit: int = RECENT_COMMIT_LIMIT,
             timeout: float = DEFAULT_TIMEOUT) -> List[Dict[str, str]]:
    """Most recent ``limit`` commits, newest first.

    Each entry has ``date`` (canonical UTC), ``author`` and ``message`` (the
    subject line). An empty list means the repository has no commits.
    Raises GitCommandError when git itself fails, which includes running
    ``git log`` on a freshly initialised repository.
    """
    output = run_git(repo_path, ["log", f"-n{limit}", f"--format={LOG_FORMAT}"], timeout=timeout)
    commits = []
    for record in output.split(RECORD_SEP):
        record = record.strip("\n")
        if not record:
            continue
        date, author, message = (record.split(FIELD_SEP) + ["", ""])[:3]
        commits.append({
            "date": canonical_timestamp(date),
            "author": author,
            "message": message,
        })
    return commits


def _git_date(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S +0000")


def count_commits_since(repo_path: str, since: datetime,
                        timeout: float = DEFAULT_TIMEOUT) -> int:
    output = run_git(
        repo_path,
        ["rev-list", "--count", f"--since={_git_date(since)}", "HEAD"],
        timeout=timeout,
    )
    return int(output or 0)


def count_commits_in_window(repo_path: str, now: datetime, window_days: int,
                            timeout: float = DEFAULT_TIMEOUT) -> int:
    """Commits in the ``window_days`` before ``now`` (the scan start time)."""
    return count_commits_since(repo_path, now - timedelta(days=window_days), timeout=timeout)


def origin_url(repo_path: str, timeout: float = DEFAULT_TIMEOUT) -> Optional[str]:
    """The ``origin`` fetch URL, or None when the repository has no origin."""
    try:
        return run_git(repo_path, ["config", "--get", "remote.origin.url"], timeout=timeout) or None
    except GitCommandError as e:
        # `git config --get` exits 1 when the key is simply absent.
        if e.returncode == 1:
            logger.debug(f"No origin remote for {repo_path}")
            return None
        raise
