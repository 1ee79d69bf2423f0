import os
from pathlib import Path
from typing import Optional

import yaml

DEFAULT_CONFIG: dict = {
    "gitlab_url": "https://gitlab.com",
    "api_version": "v4",
    "project_id": None,
    "commit_sha": [],
    "ref_name": None,
    "merge_request_iid": None,
    "prefix_directory": None,  # prepended verbatim to every repository path
    "server_url": "",  # analysis server base URL, used for rule links
    "status_name": "glreview",
    "target_url": None,
    "ignore_certificate": False,
    "timeout": 30,
    "max_global_issues": 10,
    "disable_inline_comments": False,
    "disable_global_comment": False,
    "comment_no_issue": False,
    "only_issue_from_commit_file": False,
    "only_issue_from_commit_line": False,
    "unique_issue_per_inline": False,
    "ping_user": False,
    "failure_notification_mode": "commit-status",  # commit-status | exit-code | nothing
    "json_mode": "none",  # none | sast | codeclimate
}

# GitLab CI predefined variables used as defaults when present.
_CI_ENV_DEFAULTS = {
    "gitlab_url": "CI_SERVER_URL",
    "project_id": "CI_PROJECT_ID",
    "commit_sha": "CI_COMMIT_SHA",
    "ref_name": "CI_COMMIT_REF_NAME",
    "merge_request_iid": "CI_MERGE_REQUEST_IID",
    "target_url": "CI_PIPELINE_URL",
}


def load_config(config_path: str = ".glreview.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. GitLab CI environment variables
      3. .glreview.yml in the current directory
      4. CLI argument overrides
    """
    config = {**DEFAULT_CONFIG, "commit_sha": list(DEFAULT_CONFIG["commit_sha"])}

    for key, env_var in _CI_ENV_DEFAULTS.items():
        value = os.environ.get(env_var)
        if value:
            config[key] = value

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        config.update(file_config)

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    config["commit_sha"] = _as_sha_list(config.get("commit_sha"))
    if config.get("api_version") is not None:
        config["api_version"] = str(config["api_version"]).lower()

    # Resolve credentials from environment variables
    config["gitlab_token"] = os.environ.get("GITLAB_TOKEN")

    return config


def _as_sha_list(value) -> list[str]:
    """Accept a single sha, a comma-separated string, or a list."""
    if not value:
        return []
    if isinstance(value, str):
        return [sha.strip() for sha in value.split(",") if sha.strip()]
    return [str(sha) for sha in value]
