import sys
from typing import Optional

import click
from sqlalchemy.exc import SQLAlchemyError

from common.logging import LoggingManager
from projectdash.config import get_config
from projectdash.db.store import ProjectStore
from projectdash.errors import ScanOptionsError
from projectdash.filters import query_projects
from projectdash.helpers import relative_date, utcnow
from projectdash.schemas import FilterParams, ScanOptions
from projectdash.scanner.pipeline import scan
from projectdash.status import FILTER_KEYS, compute_status

logger = LoggingManager.get_logger('projectdash.cli')


def open_store(database_url: str) -> ProjectStore:
    """Open the store or exit with an error message."""
    try:
        return ProjectStore(database_url)
    except (SQLAlchemyError, ValueError) as e:
        logger.error(f"Cannot open database {database_url}: {e}")
        click.echo(f"Error: cannot open database {database_url}: {e}", err=True)
        sys.exit(1)


@click.group()
@click.option('--log-level', default=None, help='Override LOG_LEVEL for this run')
@click.option('--quiet', is_flag=True, help='Only write logs to the log file')
@click.pass_context
def cli(ctx: click.Context, log_level: Optional[str], quiet: bool):
    """Local project dashboard: scan repositories and list them."""
    config = get_config()
    LoggingManager.for_run(config.log_dir, log_level=log_level or config.log_level, console_output=not quiet)
    ctx.obj = config


@cli.command('scan')
@click.option('--root', default=None, help='Directory to scan (default: SCAN_ROOT)')
@click.option('--cutoff-days', type=int, default=None, help='Skip repositories idle for longer than this')
@click.option('--dry-run', is_flag=True, help='Scan and report without writing to the database')
@click.option('--github-user', default=None, help='GitHub username used for fork detection')
@click.pass_obj
def scan_command(config, root: Optional[str], cutoff_days: Optional[int], dry_run: bool,
                 github_user: Optional[str]) -> None:
    """Discover repositories and store their metadata."""
    try:
        options = ScanOptions.parse({
            "root": root or config.scan_root,
            "cutoff_days": config.cutoff_days if cutoff_days is None else cutoff_days,
            "dry_run": dry_run,
            "github_user": github_user or config.github_user,
        })
    except ScanOptionsError as e:
        for error in e.errors:
            click.echo(f"Error: {error['field']}: {error['message']}", err=True)
        sys.exit(2)

    store = None if options.dry_run else open_store(config.database_url)
    try:
        result = scan(options, store=store, config=config)
    finally:
        if store is not None:
            store.dispose()
    click.echo(result.summary)
    if result.errored:
        sys.exit(1)


@cli.command('list')
@click.option('--search', default=None, help='Substring of name, path, commit message or description')
@click.option('--status', type=click.Choice(FILTER_KEYS), default=None)
@click.option('--tech', default=None, help='Exact tech stack tag, e.g. python')
@click.option('--type', 'project_type', default=None, help='Inferred project type, e.g. rails-app')
@click.option('--ownership', type=click.Choice(['own', 'forks']), default=None)
@click.option('--sort', type=click.Choice(['name', 'last_commit_date', 'commit_count']), default=None)
@click.option('--direction', type=click.Choice(['asc', 'desc']), default=None)
@click.option('--page', type=int, default=1)
@click.pass_obj
def list_command(config, search, status, tech, project_type, ownership, sort, direction, page) -> None:
    """List stored projects with their derived status."""
    params = FilterParams.from_query({
        "search": search,
        "status": status,
        "tech_stack": tech,
        "type": project_type,
        "ownership": ownership,
        "sort": sort,
        "direction": direction,
        "page": page,
    })
    now = utcnow()
    store = open_store(config.database_url)
    try:
        result = query_projects(store, params, now=now)
    finally:
        store.dispose()

    for project in result.results:
        when = relative_date(project.last_commit_date, now)
        fork = " [fork]" if project.is_fork else ""
        click.echo(f"{compute_status(project, now):8}  {project.name}{fork}  ({when})  {project.path}")
    click.echo(f"Page {result.page} of {result.total_pages} ({result.total_count} projects)")


if __name__ == '__main__':
    cli()
