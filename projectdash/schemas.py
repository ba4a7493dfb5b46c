"""Pydantic models for scanned metadata, scan options and filter parameters."""
import os
from typing import Any, Dict, List, Literal, Mapping, Optional

from pydantic import (AliasChoices, BaseModel, Field, ValidationError,
                      field_validator)

from projectdash.errors import ScanOptionsError

Status = Literal["active", "recent", "paused", "wip", "deployed", "unknown"]
StatusFilter = Literal["active", "recent", "paused", "wip", "deployed", "active_this_week", "stalled"]
Ownership = Literal["own", "forks"]
SortKey = Literal["name", "last_commit_date", "commit_count"]
Direction = Literal["asc", "desc"]


class CommitEntry(BaseModel):
    date: str
    message: str


class ProjectMetadata(BaseModel):
    """The JSON blob stored alongside each project.

    Known fields are typed. Anything else found in a stored blob lands in
    ``extra`` and is written back untouched, so blobs produced by newer
    scanners survive a round trip through older code.
    """
    last_commit_author: str = ""
    recent_commits: List[CommitEntry] = Field(default_factory=list)
    commit_count_window: int = 0
    contributors: List[str] = Field(default_factory=list)
    git_remote: Optional[str] = None
    reference_files: Optional[Dict[str, List[str]]] = None
    description: Optional[str] = None
    current_state: Optional[str] = None
    tech_stack: List[str] = Field(default_factory=list)
    inferred_type: str = "unknown"
    deployment_status: Optional[str] = None
    nested_repos: Optional[List[str]] = None
    plans_count: int = 0
    ai_docs_count: int = 0
    ai_description: Optional[str] = None
    errors: List[str] = Field(default_factory=list)
    extra: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("tech_stack")
    @classmethod
    def _dedupe_tech_stack(cls, value: List[str]) -> List[str]:
        return list(dict.fromkeys(value))

    @classmethod
    def typed_keys(cls) -> set:
        return set(cls.model_fields) - {"extra"}

    @classmethod
    def from_json_dict(cls, data: Optional[Mapping[str, Any]]) -> "ProjectMetadata":
        data = dict(data or {})
        typed_keys = cls.typed_keys()
        typed = {k: v for k, v in data.items() if k in typed_keys}
        extra = {k: v for k, v in data.items() if k not in typed_keys}
        return cls(**typed, extra=extra)

    def to_json_dict(self) -> Dict[str, Any]:
        payload = dict(self.extra)
        payload.update(self.model_dump(mode="json", exclude={"extra"}))
        return payload


class ScannedProject(BaseModel):
    """One repository as the extractor sees it, before it is stored."""
    path: str
    name: str
    last_commit_date: str
    last_commit_message: Optional[str] = None
    is_fork: bool = False
    metadata: ProjectMetadata

    def to_row(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "name": self.name,
            "last_commit_date": self.last_commit_date,
            "last_commit_message": self.last_commit_message,
            "metadata_json": self.metadata.to_json_dict(),
            "is_fork": self.is_fork,
        }


class ScanOptions(BaseModel):
    root: str
    cutoff_days: int = Field(240, ge=0)
    dry_run: bool = False
    github_user: Optional[str] = None

    @field_validator("root")
    @classmethod
    def _expand_root(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("root must not be empty")
        return os.path.abspath(os.path.expanduser(value))

    @field_validator("github_user")
    @classmethod
    def _blank_user_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        return value.strip()

    @classmethod
    def parse(cls, data: Mapping[str, Any]) -> "ScanOptions":
        """Validate raw options, reporting every bad field at once."""
        try:
            return cls.model_validate(dict(data))
        except ValidationError as e:
            errors = [
                {"field": ".".join(str(part) for part in err["loc"]) or "options", "message": err["msg"]}
                for err in e.errors()
            ]
            raise ScanOptionsError(errors) from e


class FilterParams(BaseModel):
    """Listing filters. Each dimension left as None means "unconstrained".

    Parsing never fails: blank or unrecognized values drop back to None and a
    bad page number to 1, so a stale bookmark still renders a listing.
    """
    search: Optional[str] = None
    status: Optional[StatusFilter] = None
    tech_stack: Optional[str] = Field(None, validation_alias=AliasChoices("tech_stack", "techStack", "tech"))
    type: Optional[str] = None
    ownership: Optional[Ownership] = None
    sort: Optional[SortKey] = None
    direction: Optional[Direction] = None
    page: int = Field(1, ge=1)

    @field_validator("search", "status", "tech_stack", "type", "ownership", "sort", "direction", mode="wrap")
    @classmethod
    def _unconstrained_when_invalid(cls, value, handler):
        if isinstance(value, str):
            value = value.strip()
        if value is None or value == "":
            return None
        try:
            return handler(value)
        except ValidationError:
            return None

    @field_validator("page", mode="wrap")
    @classmethod
    def _first_page_when_invalid(cls, value, handler):
        try:
            return handler(value)
        except ValidationError:
            return 1

    @classmethod
    def from_query(cls, query: Optional[Mapping[str, Any]] = None) -> "FilterParams":
        return cls.model_validate(dict(query or {}))
