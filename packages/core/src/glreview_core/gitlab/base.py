"""Base GitLab API wrapper shared by every supported API version.

The facade talks to GitLab only through this contract:

    init()                               ← resolve project (+ merge request)
    has_same_commit_comments_for_file()  ← live dedup query, never cached
    get_username_for_revision()          ← commit email → user search
    create_or_update_status()
    has_file() / is_file_in_commit()
    get_revision_for_line()              ← differs per version
    get_gitlab_url()                     ← string building only
    create_review_comment()              ← trusts the caller's dedup check
    add_global_comment()

Subclasses pin the API prefix and implement the pieces whose endpoints
really differ between v3 and v4: file lookup, line attribution, and how a
merge request is addressed. HTTP plumbing, pagination and error translation
live here so both versions behave identically on failure.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any
from urllib.parse import quote

import httpx

from glreview_core.errors import ConfigurationError, GitLabApiError

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 30.0
_PER_PAGE = 100

# Fields a configured project_id may match when the direct lookup misses.
_PROJECT_IDENTIFIERS = (
    "path_with_namespace",
    "name_with_namespace",
    "web_url",
    "http_url_to_repo",
    "ssh_url_to_repo",
)


class BaseGitLabWrapper(ABC):
    API_PATH: str = ""

    def __init__(self, config: dict, client: httpx.Client | None = None):
        self.config = config
        self.commit_shas: list[str] = list(config.get("commit_sha") or [])
        self.ref_name: str | None = config.get("ref_name")
        self.status_name: str = config.get("status_name") or "glreview"
        self.target_url: str | None = config.get("target_url")
        self.merge_request_iid = config.get("merge_request_iid")
        self.project: dict | None = None
        self.merge_request: dict | None = None

        if client is None:
            client = httpx.Client(
                base_url=config["gitlab_url"].rstrip("/") + self.API_PATH,
                headers={"PRIVATE-TOKEN": config.get("gitlab_token") or ""},
                verify=not config.get("ignore_certificate", False),
                timeout=config.get("timeout") or _DEFAULT_TIMEOUT,
            )
        self._client = client

    # ------------------------------------------------------------------ #
    # Public interface                                                     #
    # ------------------------------------------------------------------ #

    def init(self) -> None:
        """Resolve the configured project and merge request.

        Raises ConfigurationError when either cannot be found; publishing
        against the wrong project must never degrade silently.
        """
        self.project = self._resolve_project(str(self.config.get("project_id") or ""))
        logger.debug("Using GitLab project %s (id %s)", self.project.get("path_with_namespace"), self.project["id"])
        if self.merge_request_iid:
            self.merge_request = self._resolve_merge_request(int(self.merge_request_iid))

    def close(self) -> None:
        self._client.close()

    def has_same_commit_comments_for_file(self, revision: str, path: str, line: int | None, body: str) -> bool:
        """Return True if an identical inline comment already exists on ``revision``."""
        for comment in self._get_paginated(self._project_path(f"repository/commits/{revision}/comments")):
            if comment.get("path") == path and comment.get("line") == line and comment.get("note") == body:
                return True
        return False

    def get_username_for_revision(self, revision: str) -> str | None:
        """Return the GitLab username of the author of ``revision``, or None.

        The commit's author email is searched in the user directory rather
        than read from a user field, because the direct email lookup needs
        admin rights that a CI token usually lacks.
        """
        email = self._find_commit_author_email(revision)
        if not email:
            return None
        return self._search_username(email)

    def create_or_update_status(self, state: str, description: str) -> None:
        """Set the build status on every analyzed commit.

        GitLab keys statuses on (sha, name), so repeated calls update the
        existing status instead of adding another one.
        """
        data = {"state": state, "name": self.status_name, "description": description}
        if self.ref_name:
            data["ref"] = self.ref_name
        if self.target_url:
            data["target_url"] = self.target_url
        for sha in self.commit_shas:
            self._request("POST", self._project_path(f"statuses/{sha}"), data=data)

    def is_file_in_commit(self, path: str) -> bool:
        """Return True if any analyzed commit's diff touches ``path``."""
        for sha in self.commit_shas:
            for diff in self._commit_diffs(sha):
                if diff.get("new_path") == path:
                    return True
        return False

    def get_gitlab_url(self, revision: str | None, path: str | None, line: int | None) -> str:
        """Build a browsable URL. Pure string construction, no API call."""
        web_url = self._web_url()
        if path is None:
            return web_url
        ref = revision or self._default_ref()
        url = f"{web_url}/blob/{ref}/{path}"
        if line is not None:
            url += f"#L{line}"
        return url

    def create_review_comment(self, revision: str, path: str, line: int | None, body: str) -> None:
        """Post an inline comment. Callers are responsible for dedup."""
        data: dict[str, Any] = {"note": body, "path": path, "line_type": "new"}
        if line is not None:
            data["line"] = line
        self._request("POST", self._project_path(f"repository/commits/{revision}/comments"), data=data)

    def add_global_comment(self, body: str) -> None:
        """Post a summary note on the merge request, or on each analyzed commit."""
        if self.merge_request is not None:
            self._request("POST", self._merge_request_path("notes"), data={"body": body})
            return
        for sha in self.commit_shas:
            self._request("POST", self._project_path(f"repository/commits/{sha}/comments"), data={"note": body})

    # ------------------------------------------------------------------ #
    # Abstract — implement in each API version                            #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def has_file(self, path: str) -> bool:
        """Return True if ``path`` exists at the analyzed revision."""

    @abstractmethod
    def get_revision_for_line(self, input_file, path: str, line: int) -> str | None:
        """Return the commit responsible for ``line`` of ``path``, or None."""

    @abstractmethod
    def _resolve_merge_request(self, iid: int) -> dict:
        """Fetch the merge request with project-scoped ``iid``."""

    @abstractmethod
    def _merge_request_path(self, suffix: str) -> str:
        """API path for ``suffix`` under the resolved merge request."""

    # ------------------------------------------------------------------ #
    # Shared implementations                                               #
    # ------------------------------------------------------------------ #

    def _resolve_project(self, project_id: str) -> dict:
        if not project_id:
            raise ConfigurationError("No GitLab project configured. Set project_id.")

        try:
            return self._get(f"/projects/{quote(project_id, safe='')}")
        except GitLabApiError as e:
            if e.status_code != 404:
                raise
            logger.debug("Direct lookup of project %r missed, searching", project_id)

        search = project_id.rstrip("/").rsplit("/", 1)[-1]
        if search.endswith(".git"):
            search = search[: -len(".git")]
        candidates = self._get_paginated("/projects", params={"search": search})
        matches = [p for p in candidates if self._project_matches(p, project_id)]
        if not matches:
            raise ConfigurationError(f"Unable to find project {project_id!r} in GitLab.")
        if len(matches) > 1:
            raise ConfigurationError(f"Multiple GitLab projects match {project_id!r}; use the numeric project id.")
        return matches[0]

    @staticmethod
    def _project_matches(project: dict, project_id: str) -> bool:
        if str(project.get("id")) == project_id:
            return True
        return any(project.get(key) == project_id for key in _PROJECT_IDENTIFIERS)

    def _find_commit_author_email(self, revision: str) -> str | None:
        try:
            commit = self._get(self._project_path(f"repository/commits/{revision}"))
        except GitLabApiError as e:
            if e.status_code != 404:
                raise
            logger.debug("Commit %s not found; author unknown", revision)
            return None
        return commit.get("author_email") or None

    def _search_username(self, email: str) -> str | None:
        # GitLab ranks search results; the first one wins.
        users = self._get("/users", params={"search": email})
        if not users:
            logger.debug("No GitLab user found for %s", email)
            return None
        return users[0].get("username")

    def _commit_diffs(self, sha: str) -> list[dict]:
        return self._get_paginated(self._project_path(f"repository/commits/{sha}/diff"))

    def _default_ref(self) -> str:
        if self.commit_shas:
            return self.commit_shas[0]
        return self.ref_name or "HEAD"

    def _web_url(self) -> str:
        if self.project and self.project.get("web_url"):
            return self.project["web_url"].rstrip("/")
        return self.config["gitlab_url"].rstrip("/")

    def _project_path(self, suffix: str) -> str:
        if self.project is None:
            raise RuntimeError("GitLab wrapper used before init()")
        return f"/projects/{self.project['id']}/{suffix}"

    # ------------------------------------------------------------------ #
    # HTTP                                                                 #
    # ------------------------------------------------------------------ #

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise GitLabApiError(f"{method} {path} failed: {e}", endpoint=path) from e
        if not response.is_success:
            raise GitLabApiError(
                f"{method} {path} failed with HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
                endpoint=path,
            )
        return response

    def _get(self, path: str, params: dict | None = None) -> Any:
        return self._request("GET", path, params=params).json()

    def _get_paginated(self, path: str, params: dict | None = None) -> list:
        """Follow GitLab's ``X-Next-Page`` header until the last page."""
        results: list = []
        page: str | None = "1"
        while page:
            query = {**(params or {}), "page": page, "per_page": _PER_PAGE}
            response = self._request("GET", path, params=query)
            results.extend(response.json())
            page = response.headers.get("X-Next-Page") or None
        return results
