import asyncio
import json

import pytest
from alembic import command
from alembic.util import CommandError
from click.testing import CliRunner

from karyalay.cli import DEMO_SUBSCRIPTION_ID, cli
from karyalay.core.config import get_settings
from karyalay.db.session import create_engine_from_dsn, ensure_schema
from karyalay.install import INCOMPLETE_STEP_ERROR, InstallationService
from karyalay.services.postgres import PostgresConnectionTester


@pytest.fixture
def dsn(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}"


@pytest.fixture
def schema_dsn(dsn) -> str:
    async def create() -> None:
        engine = create_engine_from_dsn(dsn)
        try:
            await ensure_schema(engine)
        finally:
            await engine.dispose()

    asyncio.run(create())
    return dsn


@pytest.fixture
def state_dir(tmp_path) -> str:
    return str(tmp_path / "install")


def test_migrate_runs_alembic_upgrade_to_head(monkeypatch, dsn):
    calls = []
    monkeypatch.setattr(command, "upgrade", lambda config, revision: calls.append((config, revision)))

    result = CliRunner().invoke(cli, ["--dsn", dsn, "migrate"])

    assert result.exit_code == 0, result.output
    assert "Schema migrated to head" in result.output
    [(config, revision)] = calls
    assert revision == "head"
    assert config.config_file_name == "alembic.ini"
    assert config.attributes["database_dsn"] == dsn


def test_migrate_reports_alembic_errors(monkeypatch, dsn):
    def fail(config, revision):
        raise CommandError(f"Can't locate revision identified by '{revision}'")

    monkeypatch.setattr(command, "upgrade", fail)

    result = CliRunner().invoke(cli, ["--dsn", dsn, "migrate", "--revision", "abc123"])

    assert result.exit_code == 1
    assert "Migration failed" in result.output
    assert "abc123" in result.output


def test_seed_is_idempotent(schema_dsn):
    runner = CliRunner()

    first = runner.invoke(cli, ["--dsn", schema_dsn, "seed"])
    second = runner.invoke(cli, ["--dsn", schema_dsn, "seed"])

    assert first.exit_code == 0, first.output
    assert "Created user admin@karyalay.local" in first.output
    assert "Created plan Monthly Starter" in first.output
    assert second.exit_code == 0
    assert "Nothing to seed" in second.output


def test_seed_requires_migrated_schema(dsn):
    result = CliRunner().invoke(cli, ["--dsn", dsn, "seed"])

    assert result.exit_code == 1
    assert "Seeding failed" in result.output


def test_expire_subscriptions_reports_ids(schema_dsn):
    runner = CliRunner()
    runner.invoke(cli, ["--dsn", schema_dsn, "seed"])

    not_yet = runner.invoke(cli, ["--dsn", schema_dsn, "expire-subscriptions"])
    later = runner.invoke(cli, ["--dsn", schema_dsn, "expire-subscriptions", "--today", "2999-01-01"])

    assert not_yet.exit_code == 0
    assert "Expired 0 subscription(s)" in not_yet.output
    assert later.exit_code == 0, later.output
    assert "Expired 1 subscription(s)" in later.output
    assert DEMO_SUBSCRIPTION_ID in later.output


def test_expire_subscriptions_exits_nonzero_on_database_error(dsn):
    result = CliRunner().invoke(cli, ["--dsn", dsn, "expire-subscriptions"])

    assert result.exit_code == 1
    assert "Expiration failed" in result.output


def test_check_db(monkeypatch):
    monkeypatch.setattr(PostgresConnectionTester, "test_connection_sync", lambda self, timeout=5.0: True)

    result = CliRunner().invoke(cli, ["--dsn", "postgresql://test/db", "check-db"])

    assert result.exit_code == 0
    assert "Database connection OK" in result.output


def test_check_db_reports_failure(monkeypatch):
    def refuse(self, timeout=5.0):
        raise OSError("connection refused")

    monkeypatch.setattr(PostgresConnectionTester, "test_connection_sync", refuse)

    result = CliRunner().invoke(cli, ["--dsn", "postgresql://test/db", "check-db"])

    assert result.exit_code == 1
    assert "connection refused" in result.output


def test_install_status_on_fresh_state(state_dir):
    result = CliRunner().invoke(cli, ["install", "--state-dir", state_dir, "status"])

    assert result.exit_code == 0, result.output
    assert "Current step: 1 (database)" in result.output
    assert "[ ] 5. brand" in result.output


def test_install_step_refuses_to_skip_ahead(state_dir):
    result = CliRunner().invoke(cli, ["install", "--state-dir", state_dir, "step", "3"])

    assert result.exit_code == 1
    assert INCOMPLETE_STEP_ERROR in result.output


def test_install_step_records_data(state_dir):
    result = CliRunner().invoke(cli, ["install", "--state-dir", state_dir, "step", "1", "--set", "host=db.internal"])

    assert result.exit_code == 0, result.output
    assert "Step 1 (database) completed; next step 2" in result.output
    assert InstallationService(state_dir).get_step_data(1) == {"host": "db.internal"}


def test_install_step_rejects_malformed_data(state_dir):
    result = CliRunner().invoke(cli, ["install", "--state-dir", state_dir, "step", "1", "--set", "no-equals"])

    assert result.exit_code == 2
    assert "expected key=value" in result.output


def test_install_database_step_checks_connectivity(monkeypatch, state_dir):
    async def unreachable(self, dsn):
        return False, "connection refused"

    monkeypatch.setattr(InstallationService, "test_database_connection", unreachable)

    result = CliRunner().invoke(
        cli, ["install", "--state-dir", state_dir, "step", "1", "--set", "dsn=postgresql://db/karyalay"]
    )

    assert result.exit_code == 1
    assert "Database unreachable: connection refused" in result.output
    assert InstallationService(state_dir).get_progress().completed_steps == []


def test_install_complete_writes_lock_with_app_version(state_dir):
    runner = CliRunner()
    for step in range(1, 6):
        assert runner.invoke(cli, ["install", "--state-dir", state_dir, "step", str(step)]).exit_code == 0

    result = runner.invoke(cli, ["install", "--state-dir", state_dir, "complete"])
    status = runner.invoke(cli, ["install", "--state-dir", state_dir, "status"])
    again = runner.invoke(cli, ["install", "--state-dir", state_dir, "step", "1"])

    assert result.exit_code == 0, result.output
    assert f"Installed version {get_settings().app_version}" in result.output
    assert "✓ Installed" in status.output
    assert again.exit_code == 1
    assert "Already installed" in again.output


def test_install_uses_settings_for_state_dir_and_version(monkeypatch, tmp_path):
    state_dir = tmp_path / "from-settings"
    monkeypatch.setenv("INSTALL_STATE_DIR", str(state_dir))
    monkeypatch.setenv("APP_VERSION", "3.4.5")
    get_settings.cache_clear()
    try:
        runner = CliRunner()
        for step in range(1, 6):
            runner.invoke(cli, ["install", "step", str(step)])
        result = runner.invoke(cli, ["install", "complete"])
    finally:
        get_settings.cache_clear()

    assert result.exit_code == 0, result.output
    assert "Installed version 3.4.5" in result.output
    assert json.loads((state_dir / "installed.lock").read_text())["version"] == "3.4.5"


def test_install_complete_refuses_unfinished_wizard(state_dir):
    result = CliRunner().invoke(cli, ["install", "--state-dir", state_dir, "complete"])

    assert result.exit_code == 1
    assert "Installation steps not completed" in result.output
