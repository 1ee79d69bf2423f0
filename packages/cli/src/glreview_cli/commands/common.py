"""Config loading and validation shared by every command."""

from __future__ import annotations

import click

from glreview_core.errors import ConfigurationError, GitLabApiError, ReportConflictError

# Errors the core raises on purpose; anything else is a bug and keeps its traceback.
HANDLED_ERRORS = (ConfigurationError, GitLabApiError, ReportConflictError)


def load_command_config(ctx: click.Context, overrides: dict) -> dict:
    from glreview_core.config import load_config
    from glreview_cli.auth import resolve_gitlab_token

    config_path = (ctx.obj or {}).get("config_path", ".glreview.yml")
    config = load_config(config_path, cli_overrides=overrides)

    token = resolve_gitlab_token(config.get("gitlab_url"))
    if not token:
        raise click.UsageError(
            "No GitLab token found. Set GITLAB_TOKEN or run `glab auth login` first."
        )
    config["gitlab_token"] = token

    if not config.get("project_id"):
        raise click.UsageError("No GitLab project configured. Set project_id or CI_PROJECT_ID.")
    if not config.get("commit_sha"):
        raise click.UsageError("No commit configured. Pass --commit-sha or set CI_COMMIT_SHA.")
    return config


def fail(operation: str, error: Exception) -> click.ClickException:
    return click.ClickException(f"{operation} failed: {error}")
