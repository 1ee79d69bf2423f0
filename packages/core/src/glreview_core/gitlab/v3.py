from __future__ import annotations

import logging

from glreview_core.errors import ConfigurationError, GitLabApiError
from glreview_core.gitlab.base import BaseGitLabWrapper
from glreview_core.utils.diff import added_lines

logger = logging.getLogger(__name__)


class GitLabApiV3Wrapper(BaseGitLabWrapper):
    API_PATH = "/api/v3"

    def has_file(self, path: str) -> bool:
        # v3 takes the file path as a query parameter, not a path segment.
        try:
            self._request(
                "GET",
                self._project_path("repository/files"),
                params={"file_path": path, "ref": self._default_ref()},
            )
        except GitLabApiError as e:
            if e.status_code == 404:
                return False
            raise
        return True

    def get_revision_for_line(self, input_file, path: str, line: int) -> str | None:
        # v3 has no blame endpoint: a line belongs to an analyzed commit when
        # that commit's diff adds it.
        for sha in self.commit_shas:
            for diff in self._commit_diffs(sha):
                if diff.get("new_path") != path:
                    continue
                if line in added_lines(diff.get("diff") or ""):
                    return sha
        logger.debug("No analyzed commit adds %s:%d", path, line)
        return None

    def _resolve_merge_request(self, iid: int) -> dict:
        # v3 addresses merge requests by their global id; look it up from the iid.
        found = self._get(self._project_path("merge_requests"), params={"iid": iid})
        if not found:
            raise ConfigurationError(f"Unable to find merge request !{iid} in project {self.project['id']}.")
        return found[0]

    def _merge_request_path(self, suffix: str) -> str:
        return self._project_path(f"merge_requests/{self.merge_request['id']}/{suffix}")
