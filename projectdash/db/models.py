"""SQLAlchemy models for scanned projects."""
from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Project(Base):
    __tablename__ = 'projects'
    id = Column(Integer, primary_key=True, autoincrement=True)
    path = Column(String(1024), nullable=False, unique=True)  # Absolute repository root, the upsert key
    name = Column(String(255), nullable=False, index=True)
    last_commit_date = Column(String(32), nullable=False, index=True)  # Canonical UTC text, e.g. 2026-10-16T08:30:00Z
    last_commit_message = Column(Text, nullable=True)
    metadata_json = Column(JSON, nullable=True)
    is_fork = Column(Boolean, nullable=False, default=False, index=True)
    pinned = Column(Boolean, nullable=False, default=False, index=True)
    last_viewed_at = Column(DateTime, nullable=True, index=True)
    created_at = Column(DateTime, nullable=False, default=_utcnow)
    updated_at = Column(DateTime, nullable=False, default=_utcnow)

    @property
    def meta(self) -> Dict[str, Any]:
        """The metadata blob as a plain dict (never None)."""
        return self.metadata_json or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'path': self.path,
            'name': self.name,
            'last_commit_date': self.last_commit_date,
            'last_commit_message': self.last_commit_message,
            'metadata': self.meta,
            'is_fork': self.is_fork,
            'pinned': self.pinned,
            'last_viewed_at': self.last_viewed_at.isoformat() if self.last_viewed_at else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Project(name='{self.name}', path='{self.path}', last_commit_date='{self.last_commit_date}')>"
