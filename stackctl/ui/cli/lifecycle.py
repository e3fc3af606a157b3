"""
CLI commands for the environment lifecycle.

up, down, restart, status, logs, exec, shell. Thin wrappers over the
runtime client and ``stackctl.core.use_cases``.
"""

from __future__ import annotations

import json
import sys

import click

from stackctl.core.cancellation import cancel_on_interrupt
from stackctl.ui.cli.helpers import (
    aborted,
    build_option,
    confirmation,
    echo_output,
    fail,
    finish,
    force_option,
    get_session,
    readiness_options,
)

_STATE_ICONS = {
    "running": ("🟢", "green"),
    "unhealthy": ("🟡", "yellow"),
    "stopped": ("🔴", "red"),
}


@click.command()
@build_option
@readiness_options
@click.pass_context
def up(
    ctx: click.Context,
    build: bool,
    wait_attempts: int | None,
    wait_interval: float | None,
) -> None:
    """Start the environment, then initialize the database."""
    from stackctl.core.use_cases.up import bring_up

    session = get_session(ctx)
    build = build or bool(ctx.obj.get("build"))
    click.secho(f"🚀 Starting {session.profile.name} environment...", fg="cyan", bold=True)

    with cancel_on_interrupt() as cancel:
        outcome = bring_up(session, build=build, max_attempts=wait_attempts, interval=wait_interval, cancel=cancel)

    if outcome.failed:
        fail(outcome)

    click.secho("✅ Environment started!", fg="green", bold=True)
    database = outcome.metadata.get("database")
    if database and database != "skipped":
        click.echo(f"   Database: {getattr(database, 'value', database)}")
    for label, url in outcome.metadata.get("endpoints", []):
        click.echo(f"{label}: {url}")


@click.command()
@force_option
@click.pass_context
def down(ctx: click.Context, force: bool) -> None:
    """Stop the environment (volumes are kept)."""
    session = get_session(ctx)
    name = session.profile.name
    if confirmation(ctx, f"Are you sure you want to stop the {name} environment?", force).aborted:
        aborted()
        return

    click.echo(f"Stopping {name} environment...")
    finish(session.runtime.down(remove_volumes=False), "Environment stopped")


@click.command()
@click.argument("service", required=False)
@click.pass_context
def restart(ctx: click.Context, service: str | None) -> None:
    """Restart all services, or one."""
    session = get_session(ctx)
    click.echo(f"Restarting {'service ' + service if service else 'all services'}...")
    finish(session.runtime.restart(service), "Restart completed")


@click.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def status(ctx: click.Context, as_json: bool) -> None:
    """Show per-service state: running, stopped or unhealthy."""
    session = get_session(ctx)
    outcome = session.runtime.status()

    if as_json:
        data = {"environment": session.profile.name, **outcome.to_dict()}
        click.echo(json.dumps(data, indent=2))
        if outcome.failed:
            sys.exit(1)
        return

    if outcome.failed:
        fail(outcome)

    services: dict[str, str] = outcome.metadata.get("services", {})
    if not services:
        click.secho("No services declared.", fg="yellow")
        return

    click.secho(f"🐳 {session.profile.name} services ({len(services)}):", fg="cyan", bold=True)
    for name, state in services.items():
        icon, color = _STATE_ICONS.get(state, ("⚪", "white"))
        click.echo(f"   {icon} {name:<25} ", nl=False)
        click.secho(state, fg=color)
    click.echo()


@click.command()
@click.argument("service", required=False)
@click.option("-n", "--tail", "tail", type=int, default=None, help="Start from the last N lines.")
@click.option("--no-follow", is_flag=True, help="Print current logs and exit.")
@click.pass_context
def logs(ctx: click.Context, service: str | None, tail: int | None, no_follow: bool) -> None:
    """Stream logs for one service, or all of them."""
    session = get_session(ctx)

    with cancel_on_interrupt() as cancel:
        outcome = session.runtime.logs(service, follow=not no_follow, tail=tail, cancel=cancel)
        if outcome.failed:
            fail(outcome)
        stream = outcome.stream
        for line in stream:
            click.echo(line)
        if stream.outcome is not None and stream.outcome.failed:
            fail(stream.outcome)


@click.command(
    "exec",
    context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False},
)
@click.argument("service")
@click.argument("command", nargs=-1, required=True, type=click.UNPROCESSED)
@click.pass_context
def exec_(ctx: click.Context, service: str, command: tuple[str, ...]) -> None:
    """Run a command inside a running service container.

    Example:

        stackctl dev exec backend python manage.py shell
    """
    session = get_session(ctx)
    interactive = sys.stdin.isatty()
    outcome = session.runtime.exec(service, list(command), interactive=interactive)

    echo_output(outcome)
    if outcome.failed:
        fail(outcome)


@click.command()
@click.argument("service")
@click.pass_context
def shell(ctx: click.Context, service: str) -> None:
    """Open an interactive shell in a service (bash, falling back to sh)."""
    session = get_session(ctx)
    outcome = session.runtime.shell(service)
    if outcome.failed:
        fail(outcome)
