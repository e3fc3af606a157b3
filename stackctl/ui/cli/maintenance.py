"""
CLI commands that destroy or repair things.

clean, reset and nuke always ask first unless ``-f`` is given; declining
changes nothing and exits 0. fix-permissions repairs host directories.
"""

from __future__ import annotations

import sys

import click

from stackctl.ui.cli.helpers import aborted, confirmation, fail, finish, force_option, get_session

NUKE_PROMPT = (
    "⚠️  WARNING: This will remove ALL Docker containers, images, and volumes "
    "on your system. Are you absolutely sure?"
)


@click.command()
@force_option
@click.option("--caches", is_flag=True, help="Also delete local build caches (node_modules, __pycache__, ...).")
@click.pass_context
def clean(ctx: click.Context, force: bool, caches: bool) -> None:
    """Stop the environment and prune unused Docker resources."""
    from stackctl.core.services.host_ops import purge_caches

    session = get_session(ctx)
    prompt = "This will remove unused Docker resources. Continue?"
    if caches:
        prompt = "This will remove unused Docker resources and local build caches. Continue?"
    if confirmation(ctx, prompt, force).aborted:
        aborted()
        return

    click.echo("Performing Docker cleanup...")
    stopped = session.runtime.down(remove_volumes=False)
    if stopped.fatal:
        fail(stopped)
    if stopped.failed:
        click.secho(f"⚠️  {stopped.reason}", fg="yellow")

    pruned = session.runtime.prune()
    if pruned.failed:
        fail(pruned)

    if caches:
        settings = session.settings
        purged = purge_caches(session.profile.project_root, settings.cache_paths, settings.cache_globs)
        for path in purged.metadata.get("removed", []):
            click.echo(f"   🗑  {path}")
        if purged.failed:
            fail(purged)

    click.secho("✅ Cleanup completed", fg="green")


@click.command()
@force_option
@click.pass_context
def reset(ctx: click.Context, force: bool) -> None:
    """Stop the environment and delete its volumes (all data)."""
    session = get_session(ctx)
    if confirmation(ctx, "This will remove all data and volumes. Are you sure?", force).aborted:
        aborted()
        return

    click.echo("Resetting environment...")
    finish(session.runtime.down(remove_volumes=True), "Environment reset completed")


@click.command()
@force_option
@click.pass_context
def nuke(ctx: click.Context, force: bool) -> None:
    """Remove every container, image, volume and network on this host."""
    session = get_session(ctx)
    if confirmation(ctx, NUKE_PROMPT, force, emphasized=True).aborted:
        aborted()
        return

    click.echo("Starting complete Docker cleanup...")
    outcome = session.runtime.nuke_host()
    for step in outcome.metadata.get("steps", []):
        icon = "✓" if step["ok"] else "✗"
        click.echo(f"   {icon} {step['step']}")
    finish(outcome, "Docker environment completely reset!")


@click.command("fix-permissions")
@click.pass_context
def fix_permissions(ctx: click.Context) -> None:
    """Create host directories used by containers and hand them to you."""
    from stackctl.core.config.loader import ConfigError
    from stackctl.core.services.host_ops import fix_permissions as run_fix
    from stackctl.core.use_cases.session import resolve_settings

    try:
        settings, root = resolve_settings(ctx.obj.get("config_path"))
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    click.echo("Setting permissions...")
    outcome = run_fix(root, settings.permission_paths)
    for path in outcome.metadata.get("failed", []):
        click.echo(f"   ✗ {path}")
    finish(outcome, "Permissions fixed!")
