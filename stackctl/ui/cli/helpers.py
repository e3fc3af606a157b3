"""
Shared CLI helpers — session lookup, confirmation gating, result reporting.

The CLI is the only layer that prints to the user and sets the exit
code: 0 on success or a declined confirmation, 1 on any failure.
"""

from __future__ import annotations

import sys
from collections.abc import Callable
from typing import Any, NoReturn

import click

from stackctl.core.models.outcome import ErrorKind, Outcome
from stackctl.core.use_cases.session import Session


def get_session(ctx: click.Context) -> Session:
    """Open the session for the environment chosen on the command line."""
    from stackctl.core.use_cases.session import open_session

    obj = ctx.obj
    result = open_session(
        obj["environment"],
        config_path=obj.get("config_path"),
        runner=obj.get("runner"),
        mock_mode=obj.get("mock", False),
    )
    if result.session is None:
        fail(result.error or Outcome.fatal_failure("Could not open a session", kind=ErrorKind.INVALID_CONFIG))
    return result.session


def forced(ctx: click.Context, local: bool) -> bool:
    """``-f`` given on the command, or globally before the environment."""
    return local or bool(ctx.obj.get("force"))


def confirmation(ctx: click.Context, prompt: str, force: bool, emphasized: bool = False) -> Outcome:
    """Ask the confirmation provider unless forced.

    A declined prompt comes back as a ``user_aborted`` outcome.
    """
    if forced(ctx, force):
        return Outcome.success()
    confirm = ctx.obj["confirm"]
    if confirm(prompt, emphasized):
        return Outcome.success()
    return Outcome.user_aborted()


def aborted() -> None:
    click.secho("Cancelled, nothing was changed.", fg="yellow")


def fail(outcome: Outcome) -> NoReturn:
    """Print a failure and exit 1."""
    click.secho(f"❌ {outcome.reason or 'Operation failed'}", fg="red")
    detail = outcome.stderr if outcome.stderr and outcome.stderr != outcome.reason else ""
    for line in detail.splitlines()[:20]:
        click.echo(f"   │ {line}")
    sys.exit(1)


def finish(outcome: Outcome, message: str) -> None:
    """Report an outcome: success message, cancellation, or failure + exit 1."""
    if outcome.ok:
        click.secho(f"✅ {message}", fg="green")
        return
    if outcome.aborted:
        aborted()
        return
    fail(outcome)


def echo_output(outcome: Outcome) -> None:
    if outcome.output:
        click.echo(outcome.output)


# ── Reusable options ────────────────────────────────────────────

force_option = click.option(
    "-f", "--force", "force", is_flag=True, help="Skip the confirmation prompt."
)
build_option = click.option(
    "-b", "--build", "build", is_flag=True, help="Build images before starting containers."
)


def readiness_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Per-call overrides of the readiness polling budget."""
    func = click.option(
        "--wait-interval",
        type=click.FloatRange(min=0, min_open=True),
        default=None,
        help="Seconds between health checks (default: from stackctl.yml).",
    )(func)
    func = click.option(
        "--wait-attempts",
        type=click.IntRange(min=1),
        default=None,
        help="Health checks before giving up (default: from stackctl.yml).",
    )(func)
    return func
