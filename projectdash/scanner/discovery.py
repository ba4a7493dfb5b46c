"""Find git repositories below a root directory."""
import fnmatch
import os
from typing import Iterable, List

from common.logging import LoggingManager

logger = LoggingManager.get_logger('projectdash.discovery')

DEFAULT_IGNORE = ("node_modules", "vendor")
DEFAULT_MAX_DEPTH = 10
GIT_DIR = ".git"


def _ignored(name: str, patterns: Iterable[str]) -> bool:
    return any(fnmatch.fnmatch(name, pattern) for pattern in patterns)


def discover_repos(root: str, max_depth: int = DEFAULT_MAX_DEPTH,
                   ignore: Iterable[str] = DEFAULT_IGNORE) -> List[str]:
    """Return the sorted absolute paths of every repository under ``root``.

    A repository is a directory holding a ``.git`` directory. ``root`` is level
    0; repositories deeper than ``max_depth`` levels are not reported. Symlinks
    are never followed and unreadable directories are skipped.
    """
    root = os.path.abspath(os.path.expanduser(root))
    if not os.path.isdir(root):
        logger.warning(f"Scan root {root} is not a directory")
        return []

    ignore = tuple(ignore)
    root_depth = root.rstrip(os.sep).count(os.sep)
    repos = []

    def on_error(err: OSError) -> None:
        logger.debug(f"Skipping unreadable directory {err.filename}: {err.strerror}")

    for dirpath, dirnames, _ in os.walk(root, topdown=True, onerror=on_error, followlinks=False):
        depth = dirpath.rstrip(os.sep).count(os.sep) - root_depth
        git_dir = os.path.join(dirpath, GIT_DIR)
        if GIT_DIR in dirnames and not os.path.islink(git_dir):
            repos.append(dirpath)

        if depth >= max_depth:
            dirnames[:] = []
            continue
        dirnames[:] = [d for d in dirnames if d != GIT_DIR and not _ignored(d, ignore)]

    repos.sort()
    logger.debug(f"Discovered {len(repos)} repositories under {root}")
    return repos
