"""
CLI commands for the database and the application's management commands.

migrate, makemigrations, init-db, fix-migrations, test.
"""

from __future__ import annotations

import click

from stackctl.core.cancellation import cancel_on_interrupt
from stackctl.ui.cli.helpers import echo_output, fail, finish, get_session, readiness_options


@click.command()
@click.argument("app", required=False)
@readiness_options
@click.pass_context
def migrate(ctx: click.Context, app: str | None, wait_attempts: int | None, wait_interval: float | None) -> None:
    """Run database migrations (no fake-initial fallback)."""
    from stackctl.core.use_cases.database import migrate as run_migrate

    session = get_session(ctx)
    click.echo("Running migrations...")
    with cancel_on_interrupt() as cancel:
        outcome = run_migrate(session, app, wait_attempts, wait_interval, cancel)
    echo_output(outcome)
    finish(outcome, "Migrations completed")


@click.command()
@click.argument("app", required=False)
@click.pass_context
def makemigrations(ctx: click.Context, app: str | None) -> None:
    """Create new migration files, for one app or all."""
    session = get_session(ctx)
    click.echo("Creating migrations...")
    outcome = session.migrations.make_migrations(app)
    echo_output(outcome)
    finish(outcome, "Migrations created")


@click.command("init-db")
@readiness_options
@click.pass_context
def init_db(ctx: click.Context, wait_attempts: int | None, wait_interval: float | None) -> None:
    """Probe the database and bring its schema up to date."""
    from stackctl.core.use_cases.database import init_database

    session = get_session(ctx)
    with cancel_on_interrupt() as cancel:
        outcome = init_database(session, wait_attempts, wait_interval, cancel)
    if outcome.failed:
        fail(outcome)

    state = outcome.metadata.get("state")
    steps = outcome.metadata.get("steps", [])
    click.secho("✅ Database ready", fg="green")
    if state is not None:
        click.echo(f"   State: {getattr(state, 'value', state)}")
    if steps:
        click.echo(f"   Steps: {' → '.join(steps)}")


@click.command("fix-migrations")
@readiness_options
@click.pass_context
def fix_migrations(ctx: click.Context, wait_attempts: int | None, wait_interval: float | None) -> None:
    """Mark existing tables as migrated (migrate --fake-initial)."""
    from stackctl.core.use_cases.database import fix_migrations as run_fix

    session = get_session(ctx)
    click.echo("Attempting to fix migrations...")
    with cancel_on_interrupt() as cancel:
        outcome = run_fix(session, wait_attempts, wait_interval, cancel)
    echo_output(outcome)
    finish(outcome, "Migration fix applied")


@click.command("test", context_settings={"ignore_unknown_options": True})
@click.argument("labels", nargs=-1, type=click.UNPROCESSED)
@click.pass_context
def run_tests(ctx: click.Context, labels: tuple[str, ...]) -> None:
    """Run the application's test-suite inside its container."""
    session = get_session(ctx)
    click.echo("Running tests...")
    outcome = session.migrations.run_tests(labels)
    echo_output(outcome)
    finish(outcome, "Tests completed")
