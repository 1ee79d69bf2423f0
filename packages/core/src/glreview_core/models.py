"""Analysis input models.

Components are what an analysis engine reports issues against. Only
InputPath subclasses map to a file in the repository; an InputProject is
an aggregate with no path, so path-based operations return None for it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

SEVERITIES = ("BLOCKER", "CRITICAL", "MAJOR", "MINOR", "INFO")


@dataclass(frozen=True)
class InputPath:
    """A path-bearing component. ``path`` is expected to be absolute."""

    path: Path


@dataclass(frozen=True)
class InputFile(InputPath):
    pass


@dataclass(frozen=True)
class InputDir(InputPath):
    pass


@dataclass(frozen=True)
class InputProject:
    key: str = ""


@dataclass
class Issue:
    """A single finding produced by the analysis engine."""

    rule_key: str
    severity: str  # BLOCKER|CRITICAL|MAJOR|MINOR|INFO
    message: str
    file: str | None = None  # absolute, or relative to the analysis base dir
    line: int | None = None


@dataclass
class PublishSummary:
    """Outcome of one publish run, rendered by the CLI."""

    severity_counts: dict[str, int] = field(default_factory=lambda: {s: 0 for s in SEVERITIES})
    inline_posted: int = 0
    inline_duplicates: int = 0
    global_comment_posted: bool = False
    status: str = ""
    status_description: str = ""
    report_path: str | None = None

    @property
    def total_issues(self) -> int:
        return sum(self.severity_counts.values())
