"""
Scan pipeline: discover -> extract -> cutoff -> upsert -> summary.
"""
import threading
from collections import Counter
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterator, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from common.logging import LoggingManager
from projectdash.config import Config, get_config
from projectdash.db.store import ProjectStore
from projectdash.helpers import days_before, relative_date, utcnow
from projectdash.schemas import ScannedProject, ScanOptions
from projectdash.scanner.discovery import discover_repos
from projectdash.scanner.extractor import MetadataExtractor

logger = LoggingManager.get_logger('projectdash.pipeline')

SUMMARY_RECENT_LIMIT = 10


@dataclass
class ScanResult:
    """Outcome of one scan run.

    ``saved`` counts repositories that passed the cutoff; in a dry run they
    are counted but not written. ``projects`` holds the same records.
    """
    total: int = 0
    saved: int = 0
    skipped: int = 0
    errored: int = 0
    cancelled: bool = False
    store_error: Optional[str] = None
    projects: List[ScannedProject] = field(default_factory=list)
    summary: str = ""


def render_summary(result: ScanResult, dry_run: bool = False, now: Optional[datetime] = None) -> str:
    verb = "Would save" if dry_run else "Saved"
    lines = [
        f"Scanned {result.total} repositories: {verb.lower()} {result.saved}, "
        f"skipped {result.skipped}, errored {result.errored}"
        + (" (cancelled)" if result.cancelled else ""),
    ]
    if result.store_error:
        lines.append(f"Database unavailable: {result.store_error}")
    if not result.projects:
        return "\n".join(lines)

    forks = sum(1 for p in result.projects if p.is_fork)
    lines.append(f"Ownership: {len(result.projects) - forks} own, {forks} forks")

    types = Counter(p.metadata.inferred_type for p in result.projects)
    lines.append("Types:")
    for project_type, count in sorted(types.items(), key=lambda item: (-item[1], item[0])):
        lines.append(f"  {project_type}: {count}")

    lines.append("Most recent:")
    recent = sorted(result.projects, key=lambda p: p.last_commit_date, reverse=True)[:SUMMARY_RECENT_LIMIT]
    for project in recent:
        lines.append(f"  {project.name} ({relative_date(project.last_commit_date, now)})")
    return "\n".join(lines)


class ScanService:
    """Runs scans against one store with one configuration."""

    def __init__(self, store: Optional[ProjectStore] = None, config: Optional[Config] = None):
        self.config = config or get_config()
        self.store = store
        self.extractor = MetadataExtractor(
            window_days=self.config.commit_window_days,
            git_timeout=self.config.git_timeout,
        )
        logger.debug(
            f"ScanService initialized (max_depth={self.config.max_depth}, "
            f"window={self.config.commit_window_days}d, workers={self.config.scan_workers})"
        )

    def _extractions(self, repos: List[str], github_user: Optional[str], now: datetime,
                     cancel_event: threading.Event) -> Iterator[Tuple[str, Future]]:
        """Yield (path, finished future) pairs in discovery order."""
        workers = self.config.scan_workers
        if workers <= 1:
            for path in repos:
                if cancel_event.is_set():
                    return
                future: Future = Future()
                try:
                    future.set_result(self.extractor.extract(path, github_user=github_user, now=now))
                except Exception as e:
                    future.set_exception(e)
                yield path, future
            return

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="extract") as executor:
            futures = [(path, executor.submit(self.extractor.extract, path, github_user, now)) for path in repos]
            for path, future in futures:
                if cancel_event.is_set():
                    for _, pending in futures:
                        pending.cancel()
                    return
                yield path, future

    def run(self, options: ScanOptions, now: Optional[datetime] = None,
            cancel_event: Optional[threading.Event] = None) -> ScanResult:
        now = now or utcnow()
        cancel_event = cancel_event or threading.Event()
        github_user = options.github_user or self.config.github_user
        cutoff = days_before(now, options.cutoff_days)

        logger.info(f"Scanning {options.root} (cutoff {cutoff}, dry_run={options.dry_run})")
        repos = discover_repos(options.root, max_depth=self.config.max_depth)
        logger.info(f"Found {len(repos)} repositories")

        result = ScanResult(total=len(repos))
        store = None if options.dry_run else self.store
        if not options.dry_run and store is None:
            try:
                store = self.store = ProjectStore(self.config.database_url)
            except (SQLAlchemyError, ValueError) as e:
                # Repositories that pass the cutoff are counted as errored below.
                logger.error(f"Cannot open database {self.config.database_url}: {e}", exc_info=True)
                result.store_error = str(e)

        for path, future in self._extractions(repos, github_user, now, cancel_event):
            try:
                project = future.result()
            except Exception as e:
                logger.error(f"Extraction failed for {path}: {e}", exc_info=True)
                result.errored += 1
                continue

            if project is None:
                logger.info(f"Skipping {path}: no git history")
                result.skipped += 1
                continue
            if project.last_commit_date < cutoff:
                logger.debug(f"Skipping {path}: last commit {project.last_commit_date} is older than cutoff")
                result.skipped += 1
                continue

            if result.store_error:
                result.errored += 1
                continue
            if store is not None:
                try:
                    store.upsert(project, now=now)
                except Exception as e:
                    logger.error(f"Failed to save {path}: {e}", exc_info=True)
                    result.errored += 1
                    continue
            for message in project.metadata.errors:
                logger.warning(f"{project.name}: {message}")
            result.saved += 1
            result.projects.append(project)

        result.cancelled = cancel_event.is_set()
        if result.cancelled:
            logger.warning("Scan cancelled; records saved so far are kept")
        result.summary = render_summary(result, dry_run=options.dry_run, now=now)
        logger.info(result.summary)
        return result


def scan(options: ScanOptions, store: Optional[ProjectStore] = None, now: Optional[datetime] = None,
         cancel_event: Optional[threading.Event] = None, config: Optional[Config] = None) -> ScanResult:
    """Scan ``options.root`` and persist every repository within the cutoff.

    One repository's failure never aborts the others. ``now`` is captured
    once and drives both the cutoff and every commit-count window.
    """
    return ScanService(store=store, config=config).run(options, now=now, cancel_event=cancel_event)
