from __future__ import annotations

import logging
from urllib.parse import quote

from glreview_core.errors import ConfigurationError, GitLabApiError
from glreview_core.gitlab.base import BaseGitLabWrapper

logger = logging.getLogger(__name__)


class GitLabApiV4Wrapper(BaseGitLabWrapper):
    """GitLab API v4.

    With a merge request configured, inline comments become positioned MR
    discussions instead of commit comments, so they show up in the MR diff.
    Discussions are anchored to the MR head, so their dedup ignores the
    revision and matches on (path, line, body) only.
    """

    API_PATH = "/api/v4"

    def has_file(self, path: str) -> bool:
        try:
            self._request("HEAD", self._file_path(path), params={"ref": self._default_ref()})
        except GitLabApiError as e:
            if e.status_code == 404:
                return False
            raise
        return True

    def get_revision_for_line(self, input_file, path: str, line: int) -> str | None:
        if line < 1:
            return None
        try:
            ranges = self._get(self._file_path(path, "blame"), params={"ref": self._default_ref()})
        except GitLabApiError as e:
            if e.status_code != 404:
                raise
            logger.debug("No blame available for %s", path)
            return None

        # Blame is a list of consecutive line ranges, each with its commit.
        current = 0
        for blame_range in ranges:
            current += len(blame_range.get("lines") or [])
            if line <= current:
                return (blame_range.get("commit") or {}).get("id")
        logger.debug("Line %d is past the end of %s", line, path)
        return None

    def has_same_commit_comments_for_file(self, revision: str, path: str, line: int | None, body: str) -> bool:
        if self.merge_request is None:
            return super().has_same_commit_comments_for_file(revision, path, line, body)
        for discussion in self._get_paginated(self._merge_request_path("discussions")):
            for note in discussion.get("notes") or []:
                position = note.get("position") or {}
                if position.get("new_path") == path and position.get("new_line") == line and note.get("body") == body:
                    return True
        return False

    def create_review_comment(self, revision: str, path: str, line: int | None, body: str) -> None:
        if self.merge_request is None:
            super().create_review_comment(revision, path, line, body)
            return
        diff_refs = self.merge_request.get("diff_refs") or {}
        position = {
            "position_type": "text",
            "base_sha": diff_refs.get("base_sha"),
            "start_sha": diff_refs.get("start_sha"),
            "head_sha": diff_refs.get("head_sha"),
            "new_path": path,
            "old_path": path,
        }
        if line is not None:
            position["new_line"] = line
        self._request("POST", self._merge_request_path("discussions"), json={"body": body, "position": position})

    def _resolve_merge_request(self, iid: int) -> dict:
        try:
            return self._get(self._project_path(f"merge_requests/{iid}"))
        except GitLabApiError as e:
            if e.status_code == 404:
                raise ConfigurationError(
                    f"Unable to find merge request !{iid} in project {self.project['id']}."
                ) from e
            raise

    def _merge_request_path(self, suffix: str) -> str:
        return self._project_path(f"merge_requests/{self.merge_request['iid']}/{suffix}")

    def _file_path(self, path: str, suffix: str = "") -> str:
        url = self._project_path(f"repository/files/{quote(path, safe='')}")
        return f"{url}/{suffix}" if suffix else url
