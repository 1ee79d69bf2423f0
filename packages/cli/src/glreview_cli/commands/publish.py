"""publish command — push analysis issues to GitLab."""

from __future__ import annotations

import click
from rich.console import Console

from glreview_cli.commands.common import HANDLED_ERRORS, fail, load_command_config
from glreview_core.publisher import load_issues, run_publish

console = Console()


@click.command("publish")
@click.option(
    "--issues",
    "issues_path",
    required=True,
    type=click.Path(exists=True, dir_okay=False),
    help="JSON file with the issues reported by the analysis.",
)
@click.option(
    "--base-dir",
    default=".",
    show_default=True,
    type=click.Path(exists=True, file_okay=False),
    help="Directory the analysis ran from.",
)
@click.option(
    "--api-version",
    type=click.Choice(["v3", "v4"]),
    default=None,
    help="GitLab API version. Overrides config file.",
)
@click.option("--commit-sha", default=None, help="Analyzed commit(s), comma separated. Overrides config file.")
@click.option("--merge-request", "merge_request_iid", type=int, default=None, help="Merge request IID to comment on.")
@click.option("--prefix-directory", default=None, help="Prefix prepended to every repository path.")
@click.pass_context
def publish_cmd(
    ctx,
    issues_path: str,
    base_dir: str,
    api_version: str | None,
    commit_sha: str | None,
    merge_request_iid: int | None,
    prefix_directory: str | None,
):
    """Publish analysis issues as GitLab comments and a build status.

    \b
    Required environment variables:
      GITLAB_TOKEN         GitLab personal access token (or use glab CLI)
    """
    config = load_command_config(
        ctx,
        {
            "api_version": api_version,
            "commit_sha": commit_sha,
            "merge_request_iid": merge_request_iid,
            "prefix_directory": prefix_directory,
        },
    )

    try:
        issues = load_issues(issues_path)
    except (ValueError, KeyError) as e:
        raise click.ClickException(f"Could not read issues from {issues_path}: {e}") from e

    try:
        summary = run_publish(config, issues, base_dir)
    except HANDLED_ERRORS as e:
        raise fail("Publishing to GitLab", e) from e

    console.print(f"Status: [bold]{summary.status}[/bold] ({summary.status_description})")
    if summary.report_path:
        console.print(f"Report written to {summary.report_path}")

    if config.get("failure_notification_mode") == "exit-code" and summary.status == "failed":
        ctx.exit(1)
