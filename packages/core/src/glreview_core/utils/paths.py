"""Git root discovery and repository-relative path computation.

GitLab addresses files by their path from the repository root, while the
analysis only knows absolute paths on the local checkout, possibly from a
subdirectory of it. Everything here is local filesystem work: no git
subprocess, no remote calls.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path, PurePath

logger = logging.getLogger(__name__)

GIT_MARKER = ".git"

# Parent chains always terminate; the cap only guards against pathological
# (or looping network-mounted) trees.
MAX_GIT_ROOT_DEPTH = 256


def find_git_root(start_dir: str | os.PathLike | None) -> Path | None:
    """Return the nearest directory at or above ``start_dir`` holding a ``.git`` marker.

    ``.git`` may be a directory or, for worktrees and submodules, a file.
    Returns None when no marker is found before the filesystem root or the
    depth cap; callers decide how to fall back.
    """
    if start_dir is None:
        return None

    current = Path(os.path.abspath(start_dir))
    for _ in range(MAX_GIT_ROOT_DEPTH):
        if (current / GIT_MARKER).exists():
            return current
        parent = current.parent
        if parent == current:
            return None
        current = parent

    logger.debug("Gave up looking for %s above %s after %d levels", GIT_MARKER, start_dir, MAX_GIT_ROOT_DEPTH)
    return None


def relative_repo_path(git_root: str | os.PathLike, file_path: str | os.PathLike) -> str:
    """Return ``file_path`` relative to ``git_root`` with forward slashes.

    A file outside the root yields a ``../``-style path rather than an error;
    GitLab lookups on such a path simply miss.
    """
    root = os.path.abspath(git_root)
    target = os.path.abspath(file_path)
    try:
        relative = os.path.relpath(target, root)
    except ValueError:
        # Different drives on Windows.
        logger.debug("%s is not under git root %s", target, root)
        return PurePath(target).as_posix()
    return PurePath(relative).as_posix()
