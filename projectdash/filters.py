"""
Listing queries over stored projects.

Every filter dimension is optional. The active ones are combined with AND
into a single predicate that the page query and the count query both use,
so ``total_count`` always describes the rows being paged through.
"""
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import and_, exists, func, or_, select, true
from sqlalchemy.sql.elements import ColumnElement

from common.logging import LoggingManager
from projectdash.db.models import Project
from projectdash.db.store import ProjectStore
from projectdash.helpers import utcnow
from projectdash.schemas import FilterParams
from projectdash.status import status_condition

logger = LoggingManager.get_logger('projectdash.filters')

PER_PAGE = 25
SIDEBAR_PINNED_LIMIT = 15
SIDEBAR_RECENT_LIMIT = 10
DEFAULT_SORT = "last_commit_date"


@dataclass
class ProjectPage:
    results: List[Project]
    total_count: int
    page: int
    per_page: int = PER_PAGE

    @property
    def total_pages(self) -> int:
        return max(1, -(-self.total_count // self.per_page))


@dataclass
class SidebarData:
    pinned: List[Project] = field(default_factory=list)
    recently_viewed: List[Project] = field(default_factory=list)
    active_this_week_count: int = 0
    stalled_count: int = 0


def _meta_text(key: str):
    return Project.metadata_json[key].as_string()


def _has_tech(tag: str) -> ColumnElement:
    tags = func.json_each(Project.metadata_json, "$.tech_stack").table_valued("value")
    return exists(select(1).select_from(tags).where(tags.c.value == tag))


def build_conditions(params: FilterParams, now: Optional[datetime] = None) -> List[ColumnElement]:
    """One clause per active filter dimension."""
    conditions: List[ColumnElement] = []
    if params.search:
        conditions.append(or_(
            Project.name.icontains(params.search, autoescape=True),
            Project.path.icontains(params.search, autoescape=True),
            Project.last_commit_message.icontains(params.search, autoescape=True),
            _meta_text("description").icontains(params.search, autoescape=True),
        ))
    if params.status:
        condition = status_condition(params.status, now)
        if condition is not None:
            conditions.append(condition)
    if params.tech_stack:
        conditions.append(_has_tech(params.tech_stack))
    if params.type:
        conditions.append(_meta_text("inferred_type") == params.type)
    if params.ownership == "own":
        conditions.append(Project.is_fork.is_(False))
    elif params.ownership == "forks":
        conditions.append(Project.is_fork.is_(True))
    return conditions


def resolve_sort(sort: Optional[str], direction: Optional[str]) -> Tuple[str, str]:
    sort = sort or DEFAULT_SORT
    if direction not in ("asc", "desc"):
        direction = "asc" if sort == "name" else "desc"
    return sort, direction


def _sort_column(sort: str):
    if sort == "name":
        return Project.name
    if sort == "commit_count":
        return func.coalesce(Project.metadata_json["commit_count_window"].as_integer(), 0)
    return Project.last_commit_date


def order_by(sort: Optional[str], direction: Optional[str]) -> list:
    """ORDER BY terms for a sort key, with ``id`` as the final tiebreaker."""
    sort, direction = resolve_sort(sort, direction)
    column = _sort_column(sort)
    if direction == "asc":
        return [column.asc(), Project.id.asc()]
    return [column.desc(), Project.id.desc()]


def query_projects(store: ProjectStore, params: FilterParams, now: Optional[datetime] = None) -> ProjectPage:
    """One page of matching projects plus the total match count."""
    now = now or utcnow()
    where = and_(true(), *build_conditions(params, now))
    offset = (params.page - 1) * PER_PAGE

    def fetch_page() -> List[Project]:
        with store.session() as session:
            return (session.query(Project)
                    .filter(where)
                    .order_by(*order_by(params.sort, params.direction))
                    .offset(offset)
                    .limit(PER_PAGE)
                    .all())

    def fetch_count() -> int:
        with store.session() as session:
            return session.query(func.count(Project.id)).filter(where).scalar() or 0

    if store.concurrent_reads:
        with ThreadPoolExecutor(max_workers=2) as executor:
            page_future = executor.submit(fetch_page)
            count_future = executor.submit(fetch_count)
            results, total = page_future.result(), count_future.result()
    else:
        results, total = fetch_page(), fetch_count()

    logger.debug(f"query_projects page={params.page} returned {len(results)} of {total}")
    return ProjectPage(results=results, total_count=total, page=params.page)


def load_sidebar_data(store: ProjectStore, now: Optional[datetime] = None) -> SidebarData:
    now = now or utcnow()
    active_week = status_condition("active_this_week", now)
    stalled = status_condition("stalled", now)
    with store.session() as session:
        pinned = (session.query(Project)
                  .filter(Project.pinned.is_(True))
                  .order_by(Project.name.asc(), Project.id.asc())
                  .limit(SIDEBAR_PINNED_LIMIT)
                  .all())
        recently_viewed = (session.query(Project)
                           .filter(Project.last_viewed_at.isnot(None))
                           .order_by(Project.last_viewed_at.desc(), Project.id.desc())
                           .limit(SIDEBAR_RECENT_LIMIT)
                           .all())
        active_count = session.query(func.count(Project.id)).filter(active_week).scalar() or 0
        stalled_count = session.query(func.count(Project.id)).filter(stalled).scalar() or 0
    return SidebarData(
        pinned=pinned,
        recently_viewed=recently_viewed,
        active_this_week_count=active_count,
        stalled_count=stalled_count,
    )


def distinct_tech_stacks(store: ProjectStore) -> List[str]:
    tags = func.json_each(Project.metadata_json, "$.tech_stack").table_valued("value")
    with store.session() as session:
        rows = session.execute(
            select(tags.c.value).select_from(Project).join(tags, true())
            .where(tags.c.value.isnot(None)).distinct()
        ).scalars().all()
    return sorted(str(value) for value in rows)


def distinct_project_types(store: ProjectStore) -> List[str]:
    inferred = _meta_text("inferred_type")
    with store.session() as session:
        rows = session.query(inferred).filter(inferred.isnot(None)).distinct().all()
    return sorted(row[0] for row in rows)


def find_adjacent_projects(store: ProjectStore, project: Project, sort: Optional[str] = None,
                           direction: Optional[str] = None) -> Tuple[Optional[Project], Optional[Project]]:
    """Neighbours of ``project`` in the full listing order, as (previous, next)."""
    with store.session() as session:
        ordered_ids = [row[0] for row in session.query(Project.id).order_by(*order_by(sort, direction)).all()]
        if project.id not in ordered_ids:
            return None, None
        index = ordered_ids.index(project.id)
        prev_id = ordered_ids[index - 1] if index > 0 else None
        next_id = ordered_ids[index + 1] if index + 1 < len(ordered_ids) else None
        return (
            session.get(Project, prev_id) if prev_id is not None else None,
            session.get(Project, next_id) if next_id is not None else None,
        )
