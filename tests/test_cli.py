from click.testing import CliRunner
from datetime import timedelta
from unittest.mock import patch
import pytest
from conftest import requires_git
from projectdash.cli import cli
from projectdash.db.store import ProjectStore
from projectdash.schemas import ProjectMetadata, ScannedProject
from projectdash.helpers import utcnow, canonical_timestamp
from projectdash.scanner.pipeline import ScanResult

@pytest.fixture
def mock_env_vars(tmp_path, reset_app_logger):
    """Fixture to point the CLI at a temporary database and log directory."""
    with patch.dict('os.environ', {
        'DATABASE_URL': f"sqlite:///{tmp_path / 'cli.db'}",
        'LOG_DIR': str(tmp_path / 'logs'),
        'GITHUB_USER': 'alice',
    }):
        yield tmp_path

@pytest.fixture
def seeded_db(mock_env_vars):
    """Fixture with two stored projects."""
    store = ProjectStore(f"sqlite:///{mock_env_vars / 'cli.db'}")
    now = utcnow()
    for name, days_ago, message in (("dashboard", 1, "WIP charts"), ("archive-tool", 90, "final release")):
        store.upsert(ScannedProject(
            path=f"/code/{name}",
            name=name,
            last_commit_date=canonical_timestamp(now - timedelta(days=days_ago)),
            last_commit_message=message,
            metadata=ProjectMetadata(tech_stack=["python"], inferred_type="python-app"),
        ))
    store.dispose()
    yield mock_env_vars

@requires_git
def test_cli_scan(mock_env_vars, make_repo):
    """Test scanning a directory stores its repositories."""
    make_repo("tool", commits=[("first", utcnow() - timedelta(days=1))])
    runner = CliRunner()
    result = runner.invoke(cli, ['--quiet', 'scan', '--root', str(mock_env_vars / 'code')])
    assert result.exit_code == 0, result.output
    assert "Scanned 1 repositories: saved 1, skipped 0, errored 0" in result.output
    store = ProjectStore(f"sqlite:///{mock_env_vars / 'cli.db'}")
    assert store.count() == 1
    store.dispose()

@requires_git
def test_cli_scan_dry_run(mock_env_vars, make_repo):
    """Test dry run reports but does not create the database rows."""
    make_repo("tool", commits=[("first", utcnow() - timedelta(days=1))])
    runner = CliRunner()
    result = runner.invoke(cli, ['--quiet', 'scan', '--root', str(mock_env_vars / 'code'), '--dry-run'])
    assert result.exit_code == 0, result.output
    assert "would save 1" in result.output
    store = ProjectStore(f"sqlite:///{mock_env_vars / 'cli.db'}")
    assert store.count() == 0
    store.dispose()

def test_cli_scan_invalid_options(mock_env_vars):
    """Test invalid options are reported per field."""
    runner = CliRunner()
    result = runner.invoke(cli, ['--quiet', 'scan', '--root', str(mock_env_vars), '--cutoff-days', '-1'])
    assert result.exit_code == 2
    assert "cutoff_days" in result.output

def test_cli_scan_passes_options(mock_env_vars):
    """Test CLI options are mapped onto the scan entry point."""
    with patch('projectdash.cli.scan', return_value=ScanResult(summary="done")) as mock_scan:
        runner = CliRunner()
        result = runner.invoke(cli, [
            '--quiet', 'scan',
            '--root', str(mock_env_vars),
            '--cutoff-days', '30',
            '--github-user', 'bob',
        ])
    assert result.exit_code == 0, result.output
    options = mock_scan.call_args[0][0]
    assert options.root == str(mock_env_vars)
    assert options.cutoff_days == 30
    assert options.github_user == "bob"
    assert "done" in result.output

def test_cli_scan_errors_set_exit_code(mock_env_vars):
    """Test a scan with errored repositories exits non-zero."""
    with patch('projectdash.cli.scan', return_value=ScanResult(errored=1, summary="1 errored")):
        runner = CliRunner()
        result = runner.invoke(cli, ['--quiet', 'scan', '--root', str(mock_env_vars)])
    assert result.exit_code == 1

def test_cli_list(seeded_db):
    """Test listing prints each project with its derived status."""
    runner = CliRunner()
    result = runner.invoke(cli, ['--quiet', 'list'])
    assert result.exit_code == 0, result.output
    lines = result.output.splitlines()
    assert lines[0].startswith("wip")
    assert "dashboard" in lines[0]
    assert lines[1].startswith("paused")
    assert "archive-tool" in lines[1]
    assert "Page 1 of 1 (2 projects)" in result.output

def test_cli_list_filters(seeded_db):
    """Test list options become filters."""
    runner = CliRunner()
    result = runner.invoke(cli, ['--quiet', 'list', '--status', 'paused', '--tech', 'python'])
    assert result.exit_code == 0, result.output
    assert "archive-tool" in result.output
    assert "dashboard" not in result.output
    assert "(1 projects)" in result.output

def test_cli_list_rejects_unknown_status(seeded_db):
    """Test click validates status choices."""
    runner = CliRunner()
    result = runner.invoke(cli, ['--quiet', 'list', '--status', 'sleeping'])
    assert result.exit_code == 2

def test_cli_writes_log_file(mock_env_vars):
    """Test each run writes a timestamped log file."""
    runner = CliRunner()
    runner.invoke(cli, ['--quiet', 'list'])
    logs = list((mock_env_vars / 'logs').glob('projectdash_*.log'))
    assert len(logs) == 1

@pytest.mark.parametrize('command', [['scan', '--root', '.'], ['list']])
def test_cli_reports_unopenable_database(mock_env_vars, command):
    """Test an unusable DATABASE_URL exits with a message instead of a traceback."""
    db_url = f"sqlite:///{mock_env_vars / 'missing' / 'dir' / 'x.db'}"
    with patch.dict('os.environ', {'DATABASE_URL': db_url}):
        runner = CliRunner()
        result = runner.invoke(cli, ['--quiet', *command])
    assert result.exit_code == 1
    assert isinstance(result.exception, SystemExit)
    assert "Error: cannot open database" in result.output
