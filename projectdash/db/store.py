"""Persistence for scanned projects."""
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from common.logging import LoggingManager
from projectdash.db.models import Base, Project
from projectdash.helpers import regexp_search
from projectdash.schemas import ScannedProject

logger = LoggingManager.get_logger('projectdash.store')

# Columns a rescan refreshes. pinned / last_viewed_at belong to the user.
SCANNED_COLUMNS = ("name", "last_commit_date", "last_commit_message", "metadata_json", "is_fork")


def _naive_utc(value: Optional[datetime]) -> datetime:
    value = value or datetime.now(timezone.utc)
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _set_sqlite_pragmas(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys = ON")
    cursor.execute("PRAGMA journal_mode = WAL")
    cursor.execute("PRAGMA synchronous = NORMAL")
    cursor.close()
    # Word-bounded status markers compile to REGEXP; use Python's re for it.
    dbapi_connection.create_function("regexp", 2, regexp_search, deterministic=True)


class ProjectStore:
    """Engine, sessions and write operations for the ``projects`` table."""

    def __init__(self, db_url: str):
        """Connect to ``db_url`` and create the schema if it is missing.

        Args:
            db_url: SQLAlchemy database URL, e.g. ``sqlite:///projects.db``.
        """
        if not db_url:
            raise ValueError("A database URL is required. Set DATABASE_URL or pass db_url.")
        self.db_url = db_url
        url = make_url(db_url)
        if url.get_backend_name() != "sqlite":
            # Status predicates and tag lookups use SQLite's JSON functions.
            raise ValueError(f"Unsupported database backend '{url.get_backend_name()}'; only SQLite is supported.")

        # An in-memory database lives on one connection; every session must share it.
        self.in_memory = url.database in (None, "", ":memory:")
        if self.in_memory:
            self.engine = create_engine(db_url, poolclass=StaticPool,
                                        connect_args={"check_same_thread": False})
        else:
            self.engine = create_engine(db_url)
        event.listen(self.engine, "connect", _set_sqlite_pragmas)

        logger.debug(f"Initializing database schema at {db_url}")
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(bind=self.engine, expire_on_commit=False)

    @property
    def concurrent_reads(self) -> bool:
        """Whether independent sessions may run queries on separate threads."""
        return not self.in_memory

    @contextmanager
    def session(self) -> Iterator[Session]:
        session = self.Session()
        try:
            yield session
        finally:
            session.close()

    def upsert(self, project: ScannedProject, now: Optional[datetime] = None) -> None:
        """Insert or refresh one project in a single statement keyed by path."""
        now = _naive_utc(now)
        row = project.to_row()
        stmt = sqlite_insert(Project).values(**row, created_at=now, updated_at=now)
        update = {column: stmt.excluded[column] for column in SCANNED_COLUMNS}
        update["updated_at"] = now
        stmt = stmt.on_conflict_do_update(index_elements=["path"], set_=update)

        session = self.Session()
        try:
            session.execute(stmt)
            session.commit()
            logger.debug(f"Upserted project {project.path}")
        except Exception as e:
            logger.error(f"Error storing project {project.path}: {e}")
            session.rollback()
            raise
        finally:
            session.close()

    def get(self, project_id: int) -> Optional[Project]:
        with self.session() as session:
            return session.get(Project, project_id)

    def get_by_path(self, path: str) -> Optional[Project]:
        with self.session() as session:
            return session.query(Project).filter(Project.path == path).first()

    def count(self) -> int:
        with self.session() as session:
            return session.query(Project).count()

    def set_pinned(self, project_id: int, pinned: bool) -> bool:
        """Returns False when no project has ``project_id``."""
        with self.session() as session:
            updated = session.query(Project).filter(Project.id == project_id).update({Project.pinned: pinned})
            session.commit()
            return bool(updated)

    def toggle_pinned(self, project_id: int) -> Optional[bool]:
        """Flip the pin flag and return its new value, or None if not found."""
        with self.session() as session:
            project = session.get(Project, project_id)
            if project is None:
                return None
            project.pinned = not project.pinned
            session.commit()
            return project.pinned

    def mark_viewed(self, project_id: int, when: Optional[datetime] = None) -> bool:
        when = _naive_utc(when)
        with self.session() as session:
            updated = session.query(Project).filter(Project.id == project_id).update({Project.last_viewed_at: when})
            session.commit()
            return bool(updated)

    def dispose(self) -> None:
        self.engine.dispose()
