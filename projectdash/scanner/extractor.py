"""
Per-repository metadata extraction.

Each heuristic ("probe") runs independently. A probe that raises is recorded
in the project's error list and replaced by its default, so one broken signal
never costs the rest of the record. Only a missing ``.git`` directory or an
empty history makes a repository unusable.
"""
import fnmatch
import json
import os
import re
import tomllib
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from common.logging import LoggingManager
from projectdash.errors import GitCommandError
from projectdash.helpers import days_since, humanize_name, utcnow
from projectdash.schemas import CommitEntry, ProjectMetadata, ScannedProject
from projectdash.scanner import git
from projectdash.scanner.discovery import discover_repos
from projectdash.scanner.fork import detect_is_fork
from projectdash.status import WIP_PATTERN

logger = LoggingManager.get_logger('projectdash.extractor')

MAX_FILE_SIZE = 500_000
DEFAULT_MAX_LINES = 1000
MAX_DESCRIPTION_LENGTH = 500
DEFAULT_WINDOW_DAYS = 240
NESTED_REPO_DEPTH = 5
DOC_WALK_DEPTH = 5
ARCHIVE_DIR = "archive"

DESCRIPTION_SECTION_RE = re.compile(r"##\s*(Description|Overview|About|Summary)\s*\n+(.+?)(?=\n##|\Z)", re.S)
H1_CONTENT_RE = re.compile(r"#[^#].+?\n+(.+?)(?=\n##|\Z)", re.S)
GEMSPEC_SUMMARY_RE = re.compile(r"\.summary\s*=\s*[\"']([^\"']+)[\"']")
WIP_RE = re.compile(WIP_PATTERN, re.I)
DONE_RE = re.compile(r"done|complete|finish|ship", re.I)
DEPLOY_RE = re.compile(r"deploy|production|live|hosting", re.I)
OPEN_TASK_RE = re.compile(r"- \[ \]")
CLOSED_TASK_RE = re.compile(r"- \[x\]", re.I)
HEADING_OR_BLANK_RE = re.compile(r"^(#|\s*$)")

DESCRIPTION_CANDIDATES = (
    ".ai/PROJECT_STATUS.md",
    ".ai/README.md",
    ".cursor/PROJECT_STATUS.md",
    ".cursor/README.md",
    "CLAUDE.md",
    "AGENT.md",
    "README.md",
)
TODO_FILES = (".ai/TODO.md", ".cursor/TODO.md", "TODO.md")
ROOT_REFERENCE_FILES = ("README.md", "CLAUDE.md", "AGENT.md", "CHANGELOG.md")
# (directory, recursive, category)
REFERENCE_DIRS = (
    (".ai", True, "ai"),
    (".cursor", True, "cursor"),
    ("tasks", False, "tasks"),
    ("docs", False, "docs"),
)


@dataclass(frozen=True)
class TechRule:
    """Tag ``tag`` when any of ``files`` exists.

    ``content_checks`` are (file, substring, tag) triples tested only once the
    rule itself has matched; substrings compare case-insensitively.
    """
    files: Tuple[str, ...]
    tag: str
    content_checks: Tuple[Tuple[str, str, str], ...] = ()


_PYTHON_FRAMEWORKS = tuple(
    (manifest, needle, needle)
    for manifest in ("requirements.txt", "pyproject.toml")
    for needle in ("django", "flask", "fastapi")
)

TECH_STACK_RULES: Tuple[TechRule, ...] = (
    TechRule(("Gemfile",), "ruby", (("Gemfile", "rails", "rails"),)),
    TechRule(("go.mod",), "go"),
    TechRule(("Cargo.toml",), "rust"),
    TechRule(("mix.exs",), "elixir"),
    TechRule(("requirements.txt", "pyproject.toml"), "python", _PYTHON_FRAMEWORKS),
    TechRule(("pom.xml", "build.gradle"), "java"),
    TechRule(("CMakeLists.txt", "Makefile"), "c-cpp"),
    TechRule(("config/routes.rb",), "rails-app"),
    TechRule(("package.json",), "node", (
        ("package.json", '"next"', "nextjs"),
        ("package.json", '"react"', "react"),
        ("package.json", '"vue"', "vue"),
    )),
)

# First tag present wins.
PROJECT_TYPE_RULES: Tuple[Tuple[str, str], ...] = (
    ("rails", "rails-app"),
    ("rails-app", "rails-app"),
    ("ruby", "ruby-app"),
    ("rust", "rust-app"),
    ("go", "go-app"),
    ("elixir", "elixir-app"),
    ("java", "java-app"),
    ("django", "django-app"),
    ("python", "python-app"),
    ("node", "node-app"),
    ("c-cpp", "c-cpp-app"),
)

# (relative file, reason) pairs that suggest the project is deployed somewhere.
DEPLOY_FILE_INDICATORS: Tuple[Tuple[str, str], ...] = (
    ("Dockerfile", "has Dockerfile"),
    ("docker-compose.yml", "has docker-compose"),
    ("Procfile", "has Procfile"),
    ("fly.toml", "has fly.io config"),
    ("vercel.json", "has Vercel config"),
    ("netlify.toml", "has Netlify config"),
    ("render.yaml", "has Render blueprint"),
)


class RepoFiles:
    """Read-through cache of one repository's files, keyed by relative path.

    Lives for a single extraction so probes that need the same manifest
    share one read.
    """

    def __init__(self, root: str):
        self.root = root
        self._cache: Dict[str, Optional[str]] = {}

    def path(self, rel: str) -> str:
        return os.path.join(self.root, rel)

    def exists(self, rel: str) -> bool:
        return os.path.isfile(self.path(rel))

    def is_dir(self, rel: str) -> bool:
        return os.path.isdir(self.path(rel))

    def read(self, rel: str, max_lines: int = DEFAULT_MAX_LINES) -> Optional[str]:
        """File text limited to ``max_lines``; None if absent, unreadable or too large."""
        if rel not in self._cache:
            self._cache[rel] = self._load(rel)
        text = self._cache[rel]
        if text is None:
            return None
        return "\n".join(text.split("\n")[:max_lines])

    def _load(self, rel: str) -> Optional[str]:
        full_path = self.path(rel)
        try:
            if not os.path.isfile(full_path) or os.path.getsize(full_path) > MAX_FILE_SIZE:
                return None
            with open(full_path, encoding="utf-8", errors="replace") as handle:
                return handle.read()
        except OSError as e:
            logger.debug(f"Cannot read {full_path}: {e}")
            return None

    def markdown_files(self, rel_dir: str, recursive: bool) -> List[str]:
        """``*.md`` paths relative to ``rel_dir``, skipping archive directories."""
        base = self.path(rel_dir)
        if not os.path.isdir(base):
            return []
        found = []
        base_depth = base.rstrip(os.sep).count(os.sep)
        for dirpath, dirnames, filenames in os.walk(base, followlinks=False):
            depth = dirpath.rstrip(os.sep).count(os.sep) - base_depth
            if not recursive or depth >= DOC_WALK_DEPTH:
                dirnames[:] = []
            else:
                dirnames[:] = [d for d in dirnames if d != ARCHIVE_DIR]
            for filename in fnmatch.filter(filenames, "*.md"):
                found.append(os.path.relpath(os.path.join(dirpath, filename), base).replace(os.sep, "/"))
        return sorted(found)

    def root_glob(self, pattern: str) -> List[str]:
        try:
            return sorted(fnmatch.filter(os.listdir(self.root), pattern))
        except OSError:
            return []


class ProbeErrors:
    """Collects probe failures for one extraction."""

    def __init__(self):
        self.messages: List[str] = []

    def run(self, label: str, probe: Callable[..., Any], default: Any, *args, **kwargs) -> Any:
        try:
            return probe(*args, **kwargs)
        except Exception as e:
            logger.debug(f"{label} failed: {e}", exc_info=True)
            self.messages.append(f"{label}: {e}")
            return default


# -- Tech stack / type --

def detect_tech_stack(files: RepoFiles) -> List[str]:
    stack: List[str] = []
    for rule in TECH_STACK_RULES:
        if not any(files.exists(name) for name in rule.files):
            continue
        stack.append(rule.tag)
        for filename, needle, tag in rule.content_checks:
            content = files.read(filename)
            if content and needle.lower() in content.lower():
                stack.append(tag)
    return list(dict.fromkeys(stack))


def infer_project_type(tech_stack: List[str]) -> str:
    for tag, project_type in PROJECT_TYPE_RULES:
        if tag in tech_stack:
            return project_type
    return "unknown"


# -- Description --

def _squash(text: str) -> str:
    return re.sub(r"\n+", " ", text.strip())


def description_from_markdown(content: str) -> Optional[str]:
    """Best description in a markdown document, or None.

    Tries a Description/Overview/About/Summary section, then the first
    paragraph of body text, then whatever follows the title heading.
    """
    section = DESCRIPTION_SECTION_RE.search(content)
    if section:
        return _squash(section.group(2))[:MAX_DESCRIPTION_LENGTH] or None

    body = [line for line in content.split("\n") if line.strip() and not line.startswith("#")]
    first_para = " ".join(body[:3]).strip()
    if len(first_para) > 20:
        return first_para[:MAX_DESCRIPTION_LENGTH]

    heading = H1_CONTENT_RE.match(content)
    if heading:
        return _squash(heading.group(1))[:MAX_DESCRIPTION_LENGTH] or None
    return None


def _manifest_description(files: RepoFiles) -> Optional[str]:
    package_json = files.read("package.json")
    if package_json:
        try:
            description = json.loads(package_json).get("description")
        except (ValueError, AttributeError):
            description = None
        if isinstance(description, str) and description.strip():
            return description.strip()

    pyproject = files.read("pyproject.toml")
    if pyproject:
        try:
            data = tomllib.loads(pyproject)
        except tomllib.TOMLDecodeError:
            data = {}
        description = (data.get("project", {}).get("description")
                       or data.get("tool", {}).get("poetry", {}).get("description"))
        if isinstance(description, str) and description.strip():
            return description.strip()

    for gemspec in files.root_glob("*.gemspec"):
        content = files.read(gemspec)
        match = GEMSPEC_SUMMARY_RE.search(content or "")
        if match:
            return match.group(1)
    return None


def infer_description(files: RepoFiles, name: str) -> str:
    for candidate in DESCRIPTION_CANDIDATES:
        content = files.read(candidate, max_lines=100)
        if not content:
            continue
        description = description_from_markdown(content)
        if description:
            return description
    return _manifest_description(files) or humanize_name(name)


def extract_ai_description(files: RepoFiles) -> Optional[str]:
    """First paragraph of CLAUDE.md, past any front matter and headings."""
    content = files.read("CLAUDE.md", max_lines=100)
    if not content:
        return None
    lines = content.split("\n")
    i = 0
    if lines[0].strip() == "---":
        i = 1
        while i < len(lines) and lines[i].strip() != "---":
            i += 1
        i += 1
    while i < len(lines) and HEADING_OR_BLANK_RE.match(lines[i]):
        i += 1

    paragraph = []
    for line in lines[i:]:
        line = line.strip()
        if not line:
            if paragraph:
                break
            continue
        paragraph.append(line)
    if not paragraph:
        return None
    text = " ".join(paragraph)
    if len(text) > MAX_DESCRIPTION_LENGTH:
        return f"{text[:MAX_DESCRIPTION_LENGTH]}..."
    return text


# -- Work state / deployment --

def _count_label(count: int, noun: str) -> str:
    return f"{count} {noun}{'s' if count > 1 else ''}"


def parse_todo_state(files: RepoFiles) -> List[str]:
    for rel in TODO_FILES:
        content = files.read(rel)
        if not content:
            continue
        parts = []
        open_tasks = len(OPEN_TASK_RE.findall(content))
        closed_tasks = len(CLOSED_TASK_RE.findall(content))
        if open_tasks:
            parts.append(_count_label(open_tasks, "open task"))
        if closed_tasks:
            parts.append(_count_label(closed_tasks, "completed task"))
        if parts:
            return parts
    return []


def commit_recency_label(last_commit_date: str, now: datetime) -> str:
    days = max(0, days_since(last_commit_date, now))
    if days < 7:
        return f"active (committed {days} day{'s' if days != 1 else ''} ago)"
    if days < 30:
        return f"recently active (committed {days} days ago)"
    return f"paused (last commit {days} days ago)"


def infer_current_state(files: RepoFiles, last_commit_date: Optional[str],
                        last_commit_message: Optional[str], now: datetime) -> str:
    parts = parse_todo_state(files)
    if last_commit_message:
        if WIP_RE.search(last_commit_message):
            parts.append("work in progress")
        elif DONE_RE.search(last_commit_message):
            parts.append("recently completed")
    if last_commit_date:
        parts.append(commit_recency_label(last_commit_date, now))
    return ", ".join(parts) or "unknown"


def infer_deployment_status(files: RepoFiles) -> str:
    indicators = []
    if files.exists("bin/deploy"):
        indicators.append("has deploy script")

    package_json = files.read("package.json")
    if package_json:
        if '"deploy"' in package_json:
            indicators.append("has deploy npm script")
        if '"build"' in package_json:
            indicators.append("has build script")

    readme = files.read("README.md", max_lines=50)
    if readme and DEPLOY_RE.search(readme):
        indicators.append("deployment documented")

    for rel, reason in DEPLOY_FILE_INDICATORS:
        if files.exists(rel):
            indicators.append(reason)

    if indicators:
        return f"likely deployed ({', '.join(indicators)})"
    return "unknown"


# -- Reference files / nested repos / doc counts --

def find_reference_files(files: RepoFiles) -> Dict[str, List[str]]:
    found: Dict[str, List[str]] = {}
    root_files = [name for name in ROOT_REFERENCE_FILES if files.exists(name)]
    if root_files:
        found["root"] = root_files
    for rel_dir, recursive, category in REFERENCE_DIRS:
        docs = files.markdown_files(rel_dir, recursive=recursive)
        if docs:
            found[category] = docs
    return found


def find_nested_repos(repo_path: str) -> List[str]:
    nested = discover_repos(repo_path, max_depth=NESTED_REPO_DEPTH)
    root = os.path.abspath(repo_path)
    return [os.path.relpath(path, root).replace(os.sep, "/") for path in nested if path != root]


def count_markdown_files(files: RepoFiles, rel_dir: str) -> int:
    return len(files.markdown_files(rel_dir, recursive=False))


# -- Extraction --

class MetadataExtractor:
    """Builds a ScannedProject for one repository path."""

    def __init__(self, window_days: int = DEFAULT_WINDOW_DAYS, git_timeout: float = git.DEFAULT_TIMEOUT):
        """
        Args:
            window_days: Trailing window, in days before the scan start, for
                ``commit_count_window``.
            git_timeout: Seconds allowed for each git invocation.
        """
        self.window_days = window_days
        self.git_timeout = git_timeout

    def extract(self, repo_path: str, github_user: Optional[str] = None,
                now: Optional[datetime] = None) -> Optional[ScannedProject]:
        """Return the project record, or None if the path has no usable history.

        ``now`` should be the scan start time, shared by every repository in a run.
        """
        now = now or utcnow()
        repo_path = os.path.abspath(repo_path)
        name = os.path.basename(repo_path)

        if not os.path.isdir(os.path.join(repo_path, ".git")):
            logger.debug(f"{repo_path} has no .git directory")
            return None
        try:
            commits = git.read_log(repo_path, timeout=self.git_timeout)
        except GitCommandError as e:
            logger.debug(f"git log failed for {repo_path}: {e}")
            return None
        if not commits:
            return None

        errors = ProbeErrors()
        files = RepoFiles(repo_path)
        latest = commits[0]

        commit_count = errors.run("Commit count error", git.count_commits_in_window, 0,
                                  repo_path, now, self.window_days, timeout=self.git_timeout)
        remote = errors.run("Remote error", git.origin_url, None, repo_path, timeout=self.git_timeout)

        reference_files = errors.run("Reference files error", find_reference_files, {}, files)
        description = errors.run("Description error", infer_description, humanize_name(name), files, name)
        tech_stack = errors.run("Tech stack error", detect_tech_stack, [], files)
        current_state = errors.run("State error", infer_current_state, "unknown",
                                   files, latest["date"], latest["message"], now)
        deployment_status = errors.run("Deployment error", infer_deployment_status, "unknown", files)
        nested_repos = errors.run("Nested repos error", find_nested_repos, [], repo_path)
        plans_count = errors.run("Plans count error", count_markdown_files, 0, files, "plans")
        ai_docs_count = errors.run("AI docs count error", count_markdown_files, 0, files, ".ai")
        ai_description = errors.run("AI description error", extract_ai_description, None, files)

        metadata = ProjectMetadata(
            last_commit_author=latest["author"],
            recent_commits=[CommitEntry(date=c["date"], message=c["message"]) for c in commits],
            commit_count_window=commit_count,
            contributors=list(dict.fromkeys(c["author"] for c in commits)),
            git_remote=remote,
            reference_files=reference_files or None,
            description=description,
            current_state=current_state,
            tech_stack=tech_stack,
            inferred_type=infer_project_type(tech_stack),
            deployment_status=deployment_status,
            nested_repos=nested_repos or None,
            plans_count=plans_count,
            ai_docs_count=ai_docs_count,
            ai_description=ai_description,
            errors=errors.messages,
        )
        return ScannedProject(
            path=repo_path,
            name=name,
            last_commit_date=latest["date"],
            last_commit_message=latest["message"] or None,
            is_fork=detect_is_fork(remote, github_user),
            metadata=metadata,
        )


def extract_project(repo_path: str, github_user: Optional[str] = None,
                    now: Optional[datetime] = None, config=None) -> Optional[ScannedProject]:
    """Extract one repository using the window and timeout from ``config``."""
    if config is None:
        extractor = MetadataExtractor()
    else:
        extractor = MetadataExtractor(window_days=config.commit_window_days, git_timeout=config.git_timeout)
    return extractor.extract(repo_path, github_user=github_user, now=now)
