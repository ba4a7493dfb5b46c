"""Small formatting helpers shared by the scanner and the query layer."""
import re
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Optional

# Every stored commit timestamp uses this one UTC form, so text order is time order.
CANONICAL_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

GITHUB_SSH_RE = re.compile(r"^git@github\.com:([^/]+)/(.+?)(?:\.git)?/?$")
GITHUB_HTTPS_RE = re.compile(r"^(?:https?|ssh|git)://(?:[^@/]+@)?github\.com/([^/]+)/(.+?)(?:\.git)?/?$")


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def canonical_timestamp(value) -> str:
    """Render a datetime (or ISO string) in the canonical stored form."""
    if isinstance(value, str):
        value = parse_timestamp(value)
    elif value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(CANONICAL_FORMAT)


def days_before(now: datetime, days: int) -> str:
    """Canonical timestamp ``days`` whole days before ``now``."""
    return canonical_timestamp(now - timedelta(days=days))


def days_since(value: str, now: Optional[datetime] = None) -> int:
    now = now or utcnow()
    return int((now - parse_timestamp(value)).total_seconds() // 86400)


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'s' if count != 1 else ''} ago"


def relative_date(value: str, now: Optional[datetime] = None) -> str:
    """Human label such as "today", "yesterday", "3 weeks ago"."""
    diff_days = days_since(value, now)
    if diff_days < 1:
        return "today"
    if diff_days == 1:
        return "yesterday"
    if diff_days < 7:
        return f"{diff_days} days ago"
    if diff_days < 30:
        return _plural(diff_days // 7, "week")
    if diff_days < 365:
        return _plural(diff_days // 30, "month")
    return _plural(diff_days // 365, "year")


def github_url(remote: Optional[str]) -> Optional[str]:
    """Browser URL for a GitHub remote, or None for any other host."""
    if not remote:
        return None
    remote = remote.strip()
    match = GITHUB_SSH_RE.match(remote) or GITHUB_HTTPS_RE.match(remote)
    if not match:
        return None
    owner, repo = match.groups()
    return f"https://github.com/{owner}/{repo}"


@lru_cache(maxsize=64)
def _compiled(pattern: str) -> "re.Pattern":
    return re.compile(pattern)


def regexp_search(pattern: str, value: Optional[str]) -> bool:
    """True when ``pattern`` matches anywhere in ``value``. Also backs SQLite's REGEXP."""
    if value is None:
        return False
    return _compiled(pattern).search(value) is not None


def humanize_name(name: str) -> str:
    """``my-cool_app`` -> ``My Cool App``."""
    words = re.sub(r"[-_]", " ", name).split(" ")
    return " ".join(w[:1].upper() + w[1:] for w in words)
