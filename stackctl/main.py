"""
stackctl — CLI entrypoint.

Usage:
    stackctl dev up --build
    stackctl dev logs backend
    stackctl prod down --force
    python -m stackctl.main --help
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import click

from stackctl import __version__
from stackctl.core.observability.logging_config import ENV_FILE, ENV_FILE_LEVEL, level_from_flags, setup_logging
from stackctl.ui.cli.prompts import ClickConfirmer


class UsageFailure(click.UsageError):
    """Usage error that prints the help on stdout and exits 1."""

    exit_code = 1

    def show(self, file: Any = None) -> None:
        if self.ctx is not None:
            click.echo(self.ctx.get_help())
            click.echo()
        click.secho(f"❌ {self.format_message()}", fg="red")


class StackGroup(click.Group):
    """Command group whose usage errors exit 1 with the usage on stdout."""

    def make_context(
        self,
        info_name: str | None,
        args: list[str],
        parent: click.Context | None = None,
        **extra: Any,
    ) -> click.Context:
        try:
            return super().make_context(info_name, args, parent=parent, **extra)
        except click.UsageError as e:
            raise _usage_failure(e) from e

    def invoke(self, ctx: click.Context) -> Any:
        try:
            return super().invoke(ctx)
        except UsageFailure:
            raise
        except click.UsageError as e:
            raise _usage_failure(e) from e


def _usage_failure(error: click.UsageError) -> UsageFailure:
    return UsageFailure(error.message, ctx=error.ctx)


@click.group(
    cls=StackGroup,
    no_args_is_help=False,
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.version_option(version=__version__, prog_name="stackctl")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to stackctl.yml (default: auto-detect).",
)
@click.option("--mock", is_flag=True, help="Use the in-memory mock engine (no real containers).")
@click.option("-b", "--build", "build", is_flag=True, help="Build images before starting containers.")
@click.option("-f", "--force", "force", is_flag=True, help="Skip confirmation prompts.")
@click.argument(
    "environment",
    type=click.Choice(["dev", "prod", "development", "production"], case_sensitive=False),
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
    mock: bool,
    build: bool,
    force: bool,
    environment: str,
) -> None:
    """stackctl — run the application stack for ENVIRONMENT (dev or prod).

    Destructive commands (down, clean, reset, nuke) ask for confirmation
    unless -f/--force is given.
    """
    ctx.ensure_object(dict)
    ctx.obj["environment"] = environment.lower()
    ctx.obj["config_path"] = Path(config_path) if config_path else None
    ctx.obj["mock"] = mock
    ctx.obj["build"] = build
    ctx.obj["force"] = force
    ctx.obj["verbose"] = verbose
    ctx.obj.setdefault("confirm", ClickConfirmer())

    # ── Logging setup (once, at process start) ──────────────────
    setup_logging(
        level=level_from_flags(debug=debug, verbose=verbose, quiet=quiet),
        log_file=os.environ.get(ENV_FILE),
        log_file_level=os.environ.get(ENV_FILE_LEVEL),
    )


# ── Register commands from stackctl/ui/cli/ ───────────────────────

from stackctl.ui.cli.database import fix_migrations, init_db, makemigrations, migrate, run_tests
from stackctl.ui.cli.lifecycle import down, exec_, logs, restart, shell, status, up
from stackctl.ui.cli.maintenance import clean, fix_permissions, nuke, reset

for _command in (
    up,
    down,
    logs,
    exec_,
    migrate,
    makemigrations,
    shell,
    restart,
    status,
    clean,
    reset,
    init_db,
    run_tests,
    fix_migrations,
    nuke,
    fix_permissions,
):
    cli.add_command(_command)


if __name__ == "__main__":
    cli()
