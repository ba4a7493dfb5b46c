"""Ownership detection from a repository's origin remote."""
import re
from typing import Optional, Tuple

from projectdash.helpers import GITHUB_HTTPS_RE, GITHUB_SSH_RE

# Remote URL shapes we can read an owner from. Group 1 is the owner segment.
# Any remote that matches none of these is treated as owned.
OWNER_PATTERNS: Tuple[re.Pattern, ...] = (
    GITHUB_SSH_RE,
    GITHUB_HTTPS_RE,
)


def remote_owner(remote_url: Optional[str]) -> Optional[str]:
    if not remote_url:
        return None
    remote_url = remote_url.strip()
    for pattern in OWNER_PATTERNS:
        match = pattern.match(remote_url)
        if match:
            return match.group(1)
    return None


def detect_is_fork(remote_url: Optional[str], github_user: Optional[str]) -> bool:
    """True when the remote lives under an owner other than ``github_user``.

    Missing inputs and unrecognized hosts read as "not a fork".
    """
    if not (remote_url and github_user):
        return False
    owner = remote_owner(remote_url)
    if owner is None:
        return False
    return owner.lower() != github_user.strip().lower()
