"""status command — set the build status on the analyzed commits."""

from __future__ import annotations

import click
from rich.console import Console

from glreview_cli.commands.common import HANDLED_ERRORS, fail, load_command_config
from glreview_core.facade import CommitFacade

console = Console()

STATES = ["pending", "running", "success", "failed", "canceled"]


@click.command("status")
@click.option("--state", type=click.Choice(STATES), required=True, help="Build status to set.")
@click.option("--description", default="glreview analysis in progress", show_default=True)
@click.option("--commit-sha", default=None, help="Commit to update. Overrides config file.")
@click.option(
    "--api-version",
    type=click.Choice(["v3", "v4"]),
    default=None,
    help="GitLab API version. Overrides config file.",
)
@click.pass_context
def status_cmd(ctx, state: str, description: str, commit_sha: str | None, api_version: str | None):
    """Set the GitLab build status, e.g. `pending` before the analysis starts."""
    config = load_command_config(ctx, {"commit_sha": commit_sha, "api_version": api_version})

    try:
        facade = CommitFacade(config)
    except HANDLED_ERRORS as e:
        raise fail("Configuration", e) from e
    try:
        facade.init(".")
        facade.set_build_status(state, description)
    except HANDLED_ERRORS as e:
        raise fail("Setting build status", e) from e
    finally:
        facade.close()

    console.print(f"[green]Status set to {state}.[/green]")
