"""CLI entry point for glreview.

Commands:
  publish  — push analysis issues to a GitLab commit or merge request
  status   — set the build status on the analyzed commits
"""

from __future__ import annotations

import importlib.metadata
import logging

import click

from glreview_cli.commands.publish import publish_cmd
from glreview_cli.commands.status import status_cmd


@click.group()
@click.version_option(
    version=importlib.metadata.version("glreview"),
    prog_name="glreview",
)
@click.option(
    "--config",
    "config_path",
    default=".glreview.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="GLREVIEW_CONFIG",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def main(ctx: click.Context, config_path: str, verbose: bool):
    """Publish static-analysis results to GitLab commits and merge requests."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


main.add_command(publish_cmd)
main.add_command(status_cmd)
