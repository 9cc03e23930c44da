"""CLI tools for portal maintenance."""

from __future__ import annotations

import asyncio
import sys
from datetime import date, datetime, timedelta
from decimal import Decimal

import asyncpg
import click
from alembic import command
from alembic.config import Config
from alembic.util import CommandError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from karyalay.core.config import get_settings
from karyalay.core.logging import configure_logging
from karyalay.db.models import UserTable
from karyalay.db.session import create_engine_from_dsn, create_session_factory
from karyalay.install import STEPS, InstallationError, InstallationService
from karyalay.services.postgres import PostgresConnectionTester
from karyalay.subscriptions import ExpirationService, SubscriptionRepository

DEMO_USERS = (
    ("admin", "admin@karyalay.local", "Portal Admin", "ADMIN"),
    ("support", "support@karyalay.local", "Support Agent", "SUPPORT"),
    ("customer", "customer@karyalay.local", "Demo Customer", "CUSTOMER"),
)
DEMO_PLAN_ID = "demo-plan-monthly"
DEMO_SUBSCRIPTION_ID = "demo-subscription"


def _engine(dsn: str | None) -> AsyncEngine:
    return create_engine_from_dsn(dsn or get_settings().database_dsn)


def _alembic_config(config_path: str, dsn: str | None) -> Config:
    config = Config(config_path)
    config.attributes["database_dsn"] = dsn or get_settings().database_dsn
    config.attributes["configure_logger"] = False
    return config


async def _run_seed(dsn: str | None) -> list[str]:
    engine = _engine(dsn)
    created: list[str] = []
    try:
        session_factory = create_session_factory(engine)
        async with session_factory() as session:
            async with session.begin():
                for user_id, email, name, role in DEMO_USERS:
                    if await session.get(UserTable, user_id) is None:
                        session.add(UserTable(id=user_id, email=email, name=name, role=role))
                        created.append(f"user {email}")

        repository = SubscriptionRepository(session_factory)
        if await repository.get_plan(DEMO_PLAN_ID) is None:
            await repository.create_plan(
                plan_id=DEMO_PLAN_ID,
                name="Monthly Starter",
                billing_period_months=1,
                mrp=Decimal("999.00"),
                discounted_price=Decimal("799.00"),
            )
            created.append("plan Monthly Starter")
        if await repository.get_subscription(DEMO_SUBSCRIPTION_ID) is None:
            start = date.today()
            await repository.create_subscription(
                subscription_id=DEMO_SUBSCRIPTION_ID,
                customer_id="customer",
                plan_id=DEMO_PLAN_ID,
                start_date=start,
                end_date=start + timedelta(days=30),
            )
            created.append("subscription for customer@karyalay.local")
    finally:
        await engine.dispose()
    return created


async def _run_expiration(dsn: str | None, today: date | None):
    engine = _engine(dsn)
    try:
        service = ExpirationService(SubscriptionRepository(create_session_factory(engine)))
        return await service.process_expired_subscriptions(today)
    finally:
        await engine.dispose()


@click.group()
@click.option("--dsn", default=None, help="Database DSN (defaults to DATABASE_DSN from settings)")
@click.pass_context
def cli(ctx: click.Context, dsn: str | None):
    """Karyalay portal maintenance tools."""
    configure_logging(get_settings())
    ctx.ensure_object(dict)
    ctx.obj["dsn"] = dsn


@cli.command()
@click.option("--config", "config_path", default="alembic.ini", show_default=True, help="Alembic configuration file")
@click.option("--revision", default="head", show_default=True, help="Target revision")
@click.pass_context
def migrate(ctx: click.Context, config_path: str, revision: str):
    """Apply Alembic migrations up to REVISION."""
    try:
        command.upgrade(_alembic_config(config_path, ctx.obj["dsn"]), revision)
    except (CommandError, SQLAlchemyError, OSError) as e:
        click.echo(f"❌ Migration failed: {e}", err=True)
        sys.exit(1)
    click.echo(f"✓ Schema migrated to {revision}")


@cli.command()
@click.pass_context
def seed(ctx: click.Context):
    """
    Insert demo users, a plan and a subscription.

    Run after `migrate`. Rows that already exist are left alone, so the
    command can be re-run.
    """
    try:
        created = asyncio.run(_run_seed(ctx.obj["dsn"]))
    except (SQLAlchemyError, OSError) as e:
        click.echo(f"❌ Seeding failed: {e}", err=True)
        sys.exit(1)
    if not created:
        click.echo("✓ Nothing to seed")
        return
    for item in created:
        click.echo(f"✓ Created {item}")


@cli.command("expire-subscriptions")
@click.option("--today", type=click.DateTime(formats=["%Y-%m-%d"]), default=None, help="Reference date (YYYY-MM-DD)")
@click.pass_context
def expire_subscriptions(ctx: click.Context, today: datetime | None):
    """
    Mark ACTIVE subscriptions past their end date as EXPIRED.

    Intended for a daily cron entry:
        0 1 * * * karyalay expire-subscriptions
    """
    try:
        report = asyncio.run(_run_expiration(ctx.obj["dsn"], today.date() if today else None))
    except (SQLAlchemyError, OSError) as e:
        click.echo(f"❌ Expiration failed: {e}", err=True)
        sys.exit(1)
    if report.error:
        click.echo(f"❌ Expiration failed: {report.error}", err=True)
        sys.exit(1)

    click.echo(f"✓ Expired {report.count} subscription(s)")
    for subscription_id in report.subscription_ids:
        click.echo(f"  - {subscription_id}")


@cli.command("check-db")
@click.option("--timeout", default=5.0, show_default=True, help="Connection timeout in seconds")
@click.pass_context
def check_db(ctx: click.Context, timeout: float):
    """Verify the PostgreSQL server accepts connections."""
    dsn = ctx.obj["dsn"] or get_settings().database_dsn
    tester = PostgresConnectionTester(dsn=dsn)
    try:
        tester.test_connection_sync(timeout=timeout)
    except (OSError, asyncio.TimeoutError, asyncpg.PostgresError, asyncpg.InterfaceError) as e:
        click.echo(f"❌ Database unreachable: {e}", err=True)
        sys.exit(1)
    click.echo("✓ Database connection OK")

def _parse_step_data(items: tuple[str, ...]) -> dict[str, str]:
    data: dict[str, str] = {}
    for item in items:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise click.BadParameter(f"expected key=value, got {item!r}", param_hint="--set")
        data[key.strip()] = value.strip()
    return data


@cli.group()
@click.option("--state-dir", default=None, help="Wizard state directory (defaults to INSTALL_STATE_DIR from settings)")
@click.pass_context
def install(ctx: click.Context, state_dir: str | None):
    """Drive the first-run installation wizard."""
    settings = get_settings()
    ctx.obj["wizard"] = InstallationService(state_dir or settings.install_state_dir, version=settings.app_version)


@install.command("status")
@click.pass_context
def install_status(ctx: click.Context):
    """Show the current wizard step and completed steps."""
    wizard: InstallationService = ctx.obj["wizard"]
    if wizard.is_installed():
        click.echo("✓ Installed")
        return
    progress = wizard.get_progress()
    click.echo(f"Current step: {progress.current_step} ({STEPS[progress.current_step]})")
    for step, name in STEPS.items():
        mark = "✓" if step in progress.completed_steps else " "
        click.echo(f"  [{mark}] {step}. {name}")


@install.command("step")
@click.argument("step", type=click.IntRange(min(STEPS), max(STEPS)))
@click.option("--set", "items", multiple=True, metavar="KEY=VALUE", help="Data recorded for the step")
@click.pass_context
def install_step(ctx: click.Context, step: int, items: tuple[str, ...]):
    """
    Complete wizard STEP, recording any --set values.

    For the database step a `dsn` value is checked for connectivity first.
    """
    wizard: InstallationService = ctx.obj["wizard"]
    if wizard.is_installed():
        click.echo("❌ Already installed", err=True)
        sys.exit(1)
    data = _parse_step_data(items)

    if STEPS[step] == "database" and data.get("dsn"):
        ok, error = asyncio.run(wizard.test_database_connection(data["dsn"]))
        if not ok:
            click.echo(f"❌ Database unreachable: {error}", err=True)
            sys.exit(1)

    try:
        progress = wizard.complete_step(step, data)
    except InstallationError as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(1)
    click.echo(f"✓ Step {step} ({STEPS[step]}) completed; next step {progress.current_step}")


@install.command("complete")
@click.pass_context
def install_complete(ctx: click.Context):
    """Write the installation lock once every step is done."""
    wizard: InstallationService = ctx.obj["wizard"]
    try:
        lock = wizard.complete_installation()
    except InstallationError as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(1)
    click.echo(f"✓ Installed version {lock['version']}")


if __name__ == "__main__":
    cli()
