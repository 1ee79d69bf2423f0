"""Publish analysis issues to GitLab."""

from __future__ import annotations

import hashlib
import json
import logging
import os
from pathlib import Path

from rich.console import Console

from glreview_core.facade import CommitFacade
from glreview_core.models import SEVERITIES, InputFile, InputProject, Issue, PublishSummary

console = Console()
logger = logging.getLogger(__name__)

_SEVERITY_EMOJI = {
    "BLOCKER": ":no_entry:",
    "CRITICAL": ":no_entry_sign:",
    "MAJOR": ":warning:",
    "MINOR": ":arrow_down_small:",
    "INFO": ":information_source:",
}

_FAILING_SEVERITIES = ("BLOCKER", "CRITICAL")

_CODE_QUALITY_SEVERITY = {
    "BLOCKER": "blocker",
    "CRITICAL": "critical",
    "MAJOR": "major",
    "MINOR": "minor",
    "INFO": "info",
}


def load_issues(path: str | os.PathLike) -> list[Issue]:
    """Read issues from a JSON file: a list, or an object with an ``issues`` list."""
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("issues", [])
    return [
        Issue(
            rule_key=item["rule_key"],
            severity=_normalize_severity(item.get("severity")),
            message=item.get("message", ""),
            file=item.get("file"),
            line=_parse_line(item.get("line")),
        )
        for item in data
    ]


def _parse_line(value) -> int | None:
    # ValueError on a non-numeric line is reported by the caller.
    return None if value is None else int(value)


def _normalize_severity(severity: str | None) -> str:
    value = (severity or "").upper()
    return value if value in SEVERITIES else "MAJOR"


def _component_for(issue: Issue, base_dir: Path):
    if not issue.file:
        return InputProject()
    path = Path(issue.file)
    if not path.is_absolute():
        path = base_dir / path
    return InputFile(Path(os.path.abspath(path)))


def format_issue(facade: CommitFacade, issue: Issue, username: str | None = None) -> str:
    """Render one issue as a markdown line with a link to its rule."""
    emoji = _SEVERITY_EMOJI.get(issue.severity, ":warning:")
    text = f"{emoji} **[{issue.severity}]** {issue.message} [:blue_book:]({facade.get_rule_link(issue.rule_key)})"
    if username:
        text += f" @{username}"
    return text


def status_for(counts: dict[str, int]) -> tuple[str, str]:
    """Choose the build status and its description from severity counts."""
    total = sum(counts.values())
    if total == 0:
        return "success", "glreview reported no issues"
    failing = [f"{counts[s]} {s.lower()}" for s in _FAILING_SEVERITIES if counts.get(s)]
    if failing:
        return "failed", f"glreview reported {total} issue(s), with {' and '.join(failing)}"
    return "success", f"glreview reported {total} issue(s), none blocker or critical"


def build_global_comment(
    facade: CommitFacade,
    summary: PublishSummary,
    global_issues: list[tuple[Issue, object, str | None]],
    max_global_issues: int,
) -> str:
    """Build the summary note posted on the merge request or commit."""
    lines = ["## glreview analysis summary\n"]

    total = summary.total_issues
    if total == 0:
        lines.append("> No issues found. The changes look good.\n")
        return "\n".join(lines)

    parts = [f"{summary.severity_counts[s]} {s.lower()}" for s in SEVERITIES if summary.severity_counts.get(s)]
    lines.append(f"> glreview found {total} issue(s): {', '.join(parts)}.\n")

    lines.append("| Severity | Count |")
    lines.append("|----------|:-----:|")
    for s in SEVERITIES:
        if summary.severity_counts.get(s):
            lines.append(f"| {_SEVERITY_EMOJI[s]} {s.lower()} | {summary.severity_counts[s]} |")

    if global_issues:
        lines.append("\n**Issues not reported inline:**\n")
        for n, (issue, component, revision) in enumerate(global_issues[:max_global_issues], 1):
            entry = f"{n}. {format_issue(facade, issue)}"
            url = facade.get_gitlab_url(revision, component, issue.line)
            if url:
                entry += f" ([{facade.repo_path(component)}]({url}))"
            lines.append(entry)
        hidden = len(global_issues) - max_global_issues
        if hidden > 0:
            lines.append(f"\n_... and {hidden} more._")

    return "\n".join(lines)


def build_sast_report(facade: CommitFacade, reported: list[tuple[Issue, object, str | None]]) -> str:
    entries = []
    for issue, component, _ in reported:
        path = facade.repo_path(component) or ""
        entries.append(
            {
                "tool": "glreview",
                "fingerprint": _fingerprint(issue, path),
                "message": issue.message,
                "priority": issue.severity,
                "file": path,
                "line": issue.line,
                "url": facade.get_rule_link(issue.rule_key),
            }
        )
    return json.dumps(entries, indent=2)


def build_code_quality_report(facade: CommitFacade, reported: list[tuple[Issue, object, str | None]]) -> str:
    entries = []
    for issue, component, _ in reported:
        path = facade.repo_path(component) or ""
        entries.append(
            {
                "description": issue.message,
                "check_name": issue.rule_key,
                "fingerprint": _fingerprint(issue, path),
                "severity": _CODE_QUALITY_SEVERITY[issue.severity],
                "location": {"path": path, "lines": {"begin": issue.line or 1}},
            }
        )
    return json.dumps(entries, indent=2)


def _fingerprint(issue: Issue, path: str) -> str:
    raw = f"{issue.rule_key}|{path}|{issue.line}|{issue.message}"
    return hashlib.md5(raw.encode("utf-8")).hexdigest()


def run_publish(
    config: dict,
    issues: list[Issue],
    base_dir: str | os.PathLike,
    facade: CommitFacade | None = None,
) -> PublishSummary:
    """Publish ``issues`` to GitLab and return a PublishSummary.

    Raises ConfigurationError for an unusable configuration and
    GitLabApiError when a remote call fails. Nothing is retried.
    """
    owns_facade = facade is None
    if facade is None:
        facade = CommitFacade(config)
    try:
        facade.init(base_dir)
        return _publish(facade, config, issues, Path(os.path.abspath(base_dir)))
    finally:
        if owns_facade:
            facade.close()


def _publish(facade: CommitFacade, config: dict, issues: list[Issue], base_dir: Path) -> PublishSummary:
    summary = PublishSummary()
    commit_shas = set(config.get("commit_sha") or [])

    reported: list[tuple[Issue, object, str | None]] = []
    for issue in issues:
        issue.severity = _normalize_severity(issue.severity)
        component = _component_for(issue, base_dir)
        is_file = isinstance(component, InputFile)

        if config.get("only_issue_from_commit_file") and is_file and not facade.is_file_in_commit(component):
            logger.debug("Skipping issue on %s (file not in commit)", component.path)
            continue

        revision = facade.get_revision_for_line(component, issue.line) if is_file and issue.line else None
        if revision is None and is_file and issue.line:
            logger.debug("No revision found for %s:%d", component.path, issue.line)

        if config.get("only_issue_from_commit_line") and revision not in commit_shas:
            logger.debug("Skipping issue on %s:%s (line not in commit)", issue.file, issue.line)
            continue

        summary.severity_counts[issue.severity] += 1
        reported.append((issue, component, revision))

    inline_groups: dict[tuple, list[Issue]] = {}
    global_issues: list[tuple[Issue, object, str | None]] = []
    for issue, component, revision in reported:
        if config.get("disable_inline_comments") or revision is None or revision not in commit_shas:
            global_issues.append((issue, component, revision))
            continue
        key = (revision, component, issue.line)
        if not config.get("unique_issue_per_inline"):
            key += (len(inline_groups),)
        inline_groups.setdefault(key, []).append(issue)

    usernames: dict[str, str | None] = {}
    for key, group in inline_groups.items():
        revision, component, line = key[:3]
        username = None
        if config.get("ping_user"):
            if revision not in usernames:
                usernames[revision] = facade.get_username_for_revision(revision)
            username = usernames[revision]
        body = "\n".join(format_issue(facade, issue, username) for issue in group)

        if facade.has_same_comment_for_file(revision, component, line, body):
            logger.debug("Skipping duplicate comment on %s:%s", component.path, line)
            summary.inline_duplicates += 1
            continue
        facade.create_review_comment(revision, component, line, body)
        summary.inline_posted += 1

    if not config.get("disable_global_comment") and (reported or config.get("comment_no_issue")):
        body = build_global_comment(facade, summary, global_issues, int(config.get("max_global_issues") or 0))
        facade.add_global_comment(body)
        summary.global_comment_posted = True

    summary.status, summary.status_description = status_for(summary.severity_counts)
    if config.get("failure_notification_mode") == "commit-status":
        facade.set_build_status(summary.status, summary.status_description)

    json_mode = config.get("json_mode") or "none"
    if json_mode == "sast":
        summary.report_path = str(facade.write_sast_report(build_sast_report(facade, reported)))
    elif json_mode == "codeclimate":
        summary.report_path = str(facade.write_code_quality_report(build_code_quality_report(facade, reported)))

    console.print(
        f"[green]Published {summary.total_issues} issue(s): {summary.inline_posted} inline comment(s), "
        f"{summary.inline_duplicates} duplicate(s) skipped.[/green]"
    )
    return summary
