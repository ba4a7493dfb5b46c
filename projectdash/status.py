"""
Derived project status.

Status is never stored. It is defined once, as an ordered table of
(label, predicate) rules where the first matching rule wins, and that table
is consumed two ways:

* ``evaluate`` checks a predicate against a loaded ``Project`` in memory;
* ``compile_predicate`` turns the same predicate into a SQLAlchemy clause so
  the database can filter without loading every row.

The clause for a status is "this rule matches and no earlier rule does",
which is exactly what first-match evaluation computes in memory.

Recency compares the canonical ``last_commit_date`` text against canonical
thresholds derived from a single ``now``. Canonical timestamps sort
lexicographically in time order, so both sides agree to the second.
"""
import re
import string
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional, Tuple, Union

from sqlalchemy import String, and_, func, not_, or_, true
from sqlalchemy.sql.elements import ColumnElement

from projectdash.db.models import Project
from projectdash.helpers import days_before, regexp_search, utcnow

WIP_MARKERS = ("wip", "todo", "fixme", "in progress")
# Markers match as whole words only.
WIP_PATTERN = r"\b(?:" + "|".join(re.escape(marker) for marker in WIP_MARKERS) + r")\b"
WORK_IN_PROGRESS = "work in progress"
LIKELY_DEPLOYED = "likely deployed"

ACTIVE_DAYS = 7
RECENT_DAYS = 30
STALLED_FROM_DAYS = 14
STALLED_TO_DAYS = 60

UNKNOWN = "unknown"

# SQLite folds case for ASCII letters only; match that in memory.
ASCII_LOWER = str.maketrans(string.ascii_uppercase, string.ascii_lowercase)

# Fields read from the row itself; anything else lives in the metadata blob.
COLUMN_FIELDS = ("last_commit_message", "last_commit_date")


@dataclass(frozen=True)
class Contains:
    """Case-insensitive substring match of any needle in a text field."""
    field: str
    needles: Tuple[str, ...]


@dataclass(frozen=True)
class Matches:
    """Regular expression search over the ASCII-lowercased text of a field."""
    field: str
    pattern: str


@dataclass(frozen=True)
class AnyOf:
    options: Tuple["Predicate", ...]


@dataclass(frozen=True)
class CommitAge:
    """Age of the last commit in days: ``min_days <= age < max_days``.

    With ``max_inclusive`` the upper bound becomes ``age <= max_days``.
    Either bound may be omitted.
    """
    min_days: Optional[int] = None
    max_days: Optional[int] = None
    max_inclusive: bool = False


Predicate = Union[Contains, Matches, AnyOf, CommitAge]


@dataclass(frozen=True)
class StatusRule:
    label: str
    predicate: Predicate


STATUS_RULES: Tuple[StatusRule, ...] = (
    StatusRule("wip", AnyOf((
        Matches("last_commit_message", WIP_PATTERN),
        Contains("current_state", (WORK_IN_PROGRESS,)),
    ))),
    StatusRule("deployed", Contains("deployment_status", (LIKELY_DEPLOYED,))),
    StatusRule("active", CommitAge(max_days=ACTIVE_DAYS)),
    StatusRule("recent", CommitAge(min_days=ACTIVE_DAYS, max_days=RECENT_DAYS)),
    StatusRule("paused", CommitAge(min_days=RECENT_DAYS)),
)

STATUSES = tuple(rule.label for rule in STATUS_RULES) + (UNKNOWN,)

# Filter-only keys. An alias reuses a status's full rule; a band is a plain
# recency window that ignores the wip/deployed rules.
STATUS_ALIASES: Dict[str, str] = {"active_this_week": "active"}
RECENCY_BANDS: Dict[str, CommitAge] = {
    "stalled": CommitAge(min_days=STALLED_FROM_DAYS, max_days=STALLED_TO_DAYS, max_inclusive=True),
}

FILTER_KEYS = tuple(rule.label for rule in STATUS_RULES) + tuple(STATUS_ALIASES) + tuple(RECENCY_BANDS)


# -- In-memory evaluation --

def _field_text(project: Project, field: str) -> str:
    if field in COLUMN_FIELDS:
        value = getattr(project, field)
    else:
        value = (project.metadata_json or {}).get(field)
    return "" if value is None else str(value)


def evaluate(predicate: Predicate, project: Project, now: datetime) -> bool:
    if isinstance(predicate, Contains):
        text = _field_text(project, predicate.field).translate(ASCII_LOWER)
        return any(needle in text for needle in predicate.needles)
    if isinstance(predicate, Matches):
        return regexp_search(predicate.pattern, _field_text(project, predicate.field).translate(ASCII_LOWER))
    if isinstance(predicate, AnyOf):
        return any(evaluate(option, project, now) for option in predicate.options)
    if isinstance(predicate, CommitAge):
        committed = _field_text(project, "last_commit_date")
        if predicate.min_days is not None and not committed <= days_before(now, predicate.min_days):
            return False
        if predicate.max_days is not None:
            bound = days_before(now, predicate.max_days)
            if predicate.max_inclusive and not committed >= bound:
                return False
            if not predicate.max_inclusive and not committed > bound:
                return False
        return True
    raise TypeError(f"Unknown predicate {predicate!r}")


def compute_status(project: Project, now: Optional[datetime] = None) -> str:
    """Status of one loaded project; the first matching rule wins."""
    now = now or utcnow()
    for rule in STATUS_RULES:
        if evaluate(rule.predicate, project, now):
            return rule.label
    return UNKNOWN


def matches_status(project: Project, key: str, now: Optional[datetime] = None) -> bool:
    """In-memory counterpart of ``status_condition``."""
    now = now or utcnow()
    if key in RECENCY_BANDS:
        return evaluate(RECENCY_BANDS[key], project, now)
    return compute_status(project, now) == STATUS_ALIASES.get(key, key)


# -- SQL compilation --

def _field_column(field: str):
    if field in COLUMN_FIELDS:
        column = getattr(Project, field)
    else:
        column = Project.metadata_json[field].as_string()
    return func.coalesce(column, "")


def compile_predicate(predicate: Predicate, now: datetime) -> ColumnElement:
    if isinstance(predicate, Contains):
        text = func.lower(_field_column(predicate.field), type_=String)
        return or_(*[text.contains(needle, autoescape=True) for needle in predicate.needles])
    if isinstance(predicate, Matches):
        # REGEXP is the regexp_search function the store registers on connect.
        return func.lower(_field_column(predicate.field), type_=String).regexp_match(predicate.pattern)
    if isinstance(predicate, AnyOf):
        return or_(*[compile_predicate(option, now) for option in predicate.options])
    if isinstance(predicate, CommitAge):
        committed = _field_column("last_commit_date")
        clauses = []
        if predicate.min_days is not None:
            clauses.append(committed <= days_before(now, predicate.min_days))
        if predicate.max_days is not None:
            bound = days_before(now, predicate.max_days)
            clauses.append(committed >= bound if predicate.max_inclusive else committed > bound)
        return and_(true(), *clauses)
    raise TypeError(f"Unknown predicate {predicate!r}")


def _rule_condition(label: str, now: datetime) -> ColumnElement:
    earlier = []
    for rule in STATUS_RULES:
        if rule.label == label:
            return and_(compile_predicate(rule.predicate, now),
                        *[not_(compile_predicate(p, now)) for p in earlier])
        earlier.append(rule.predicate)
    raise KeyError(label)


def status_condition(key: Optional[str], now: Optional[datetime] = None) -> Optional[ColumnElement]:
    """SQL clause selecting projects whose status (or alias) is ``key``.

    Returns None for a missing or unrecognized key, which callers treat as
    "no constraint".
    """
    if not key or key not in FILTER_KEYS:
        return None
    now = now or utcnow()
    if key in RECENCY_BANDS:
        return compile_predicate(RECENCY_BANDS[key], now)
    return _rule_condition(STATUS_ALIASES.get(key, key), now)
