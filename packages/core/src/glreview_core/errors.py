"""Exceptions raised by glreview_core.

The CLI maps each of these to a readable click error. Anything else that
escapes the core is a bug and is left to propagate with its traceback.
"""

from __future__ import annotations


class ConfigurationError(ValueError):
    """The run cannot start: unsupported API version, unknown project, etc."""


class GitLabApiError(RuntimeError):
    """A GitLab API call failed.

    Never retried by the core: a failed write is surfaced so a repeated run
    cannot silently double-post comments.
    """

    def __init__(self, message: str, status_code: int | None = None, endpoint: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.endpoint = endpoint


class ReportConflictError(FileExistsError):
    """A report artifact with the same name already exists in the git root."""
