"""Facade for all GitLab interaction during a publish run.

Callers hand in analysis components (files, the project) and never see
repository paths or API versions: the facade turns files into paths relative
to the git root and routes each call to the wrapper for the configured API
version.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from urllib.parse import quote_plus

from glreview_core.errors import ConfigurationError, ReportConflictError
from glreview_core.gitlab.base import BaseGitLabWrapper
from glreview_core.gitlab.v3 import GitLabApiV3Wrapper
from glreview_core.gitlab.v4 import GitLabApiV4Wrapper
from glreview_core.models import InputFile, InputPath
from glreview_core.utils.paths import find_git_root, relative_repo_path

logger = logging.getLogger(__name__)

V3_API_VERSION = "v3"
V4_API_VERSION = "v4"

SAST_REPORT_NAME = "gl-sast-report.json"
CODE_QUALITY_REPORT_NAME = "gl-code-quality-report.json"

# Returned by get_revision_for_line when no commit is responsible for a line.
UNKNOWN_REVISION = None


def create_wrapper(config: dict, client=None) -> BaseGitLabWrapper | None:
    """Return the wrapper for ``config["api_version"]``, or None if unsupported."""
    version = config.get("api_version")
    if version == V3_API_VERSION:
        return GitLabApiV3Wrapper(config, client=client)
    if version == V4_API_VERSION:
        return GitLabApiV4Wrapper(config, client=client)
    return None


def encode_for_url(value: str) -> str:
    """Form-encode ``value`` as UTF-8 (spaces become ``+``)."""
    try:
        return quote_plus(value, encoding="utf-8", errors="strict")
    except UnicodeEncodeError as e:
        # Only unpaired surrogates get here, which is a caller bug.
        raise RuntimeError(f"Encoding not supported for {value!r}") from e


class CommitFacade:
    def __init__(self, config: dict, wrapper: BaseGitLabWrapper | None = None):
        self.config = config
        self.rule_url_prefix = _with_trailing_slash(config.get("server_url") or "")
        self.git_base_dir: Path | None = None

        self.gitlab_wrapper = wrapper if wrapper is not None else create_wrapper(config)
        if self.gitlab_wrapper is None:
            raise ConfigurationError(
                f"Unsupported GitLab API version: {config.get('api_version')!r}. "
                f"Choose '{V3_API_VERSION}' or '{V4_API_VERSION}'."
            )

    def init(self, project_base_dir: str | os.PathLike) -> None:
        self._init_git_base_dir(project_base_dir)
        self.gitlab_wrapper.init()

    def close(self) -> None:
        self.gitlab_wrapper.close()

    def _init_git_base_dir(self, project_base_dir: str | os.PathLike) -> None:
        if self.git_base_dir is not None:
            return
        detected = find_git_root(project_base_dir)
        if detected is None:
            logger.debug("Unable to find Git root directory. Is %s part of a Git repository?", project_base_dir)
            self.git_base_dir = Path(os.path.abspath(project_base_dir))
        else:
            self.git_base_dir = detected

    # ------------------------------------------------------------------ #
    # Delegations                                                          #
    # ------------------------------------------------------------------ #

    def has_same_comment_for_file(self, revision: str, input_file: InputFile, line: int | None, body: str) -> bool:
        return self.gitlab_wrapper.has_same_commit_comments_for_file(revision, self.repo_path(input_file), line, body)

    def get_username_for_revision(self, revision: str) -> str | None:
        return self.gitlab_wrapper.get_username_for_revision(revision)

    def set_build_status(self, state: str, description: str) -> None:
        self.gitlab_wrapper.create_or_update_status(state, description)

    def has_file(self, input_file: InputFile) -> bool:
        return self.gitlab_wrapper.has_file(self.repo_path(input_file))

    def is_file_in_commit(self, input_file: InputFile) -> bool:
        return self.gitlab_wrapper.is_file_in_commit(self.repo_path(input_file))

    def get_revision_for_line(self, input_file: InputFile, line: int) -> str | None:
        return self.gitlab_wrapper.get_revision_for_line(input_file, self.repo_path(input_file), line)

    def get_gitlab_url(self, revision: str | None, component, line: int | None = None) -> str | None:
        if isinstance(component, InputPath):
            return self.gitlab_wrapper.get_gitlab_url(revision, self.repo_path(component), line)
        return None

    def repo_path(self, component) -> str | None:
        """Path of ``component`` in the repository, with the configured prefix."""
        if not isinstance(component, InputPath):
            return None
        if self.git_base_dir is None:
            raise RuntimeError("CommitFacade used before init()")
        prefix = self.config.get("prefix_directory") or ""
        return prefix + relative_repo_path(self.git_base_dir, component.path)

    def create_review_comment(self, revision: str, input_file: InputFile, line: int | None, body: str) -> None:
        self.gitlab_wrapper.create_review_comment(revision, self.repo_path(input_file), line, body)

    def add_global_comment(self, body: str) -> None:
        self.gitlab_wrapper.add_global_comment(body)

    # ------------------------------------------------------------------ #
    # Local-only operations                                                #
    # ------------------------------------------------------------------ #

    def get_rule_link(self, rule_key: str) -> str:
        return self.rule_url_prefix + "coding_rules#rule_key=" + encode_for_url(rule_key)

    def write_sast_report(self, sast_json: str) -> Path:
        return self._write_report(SAST_REPORT_NAME, sast_json)

    def write_code_quality_report(self, report_json: str) -> Path:
        return self._write_report(CODE_QUALITY_REPORT_NAME, report_json)

    def _write_report(self, name: str, payload: str) -> Path:
        if self.git_base_dir is None:
            raise RuntimeError("CommitFacade used before init()")
        path = self.git_base_dir / name
        try:
            with open(path, "x", encoding="utf-8") as f:
                f.write(payload)
        except FileExistsError as e:
            raise ReportConflictError(f"Report {path} already exists; refusing to overwrite it.") from e
        logger.debug("Wrote %s", path)
        return path


def _with_trailing_slash(url: str) -> str:
    if url and not url.endswith("/"):
        return url + "/"
    return url
