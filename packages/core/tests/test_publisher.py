"""Tests for the publish pipeline: filtering, inline dedup, summary, status and reports."""

import json
from unittest.mock import MagicMock

import pytest

from glreview_core.config import DEFAULT_CONFIG
from glreview_core.errors import GitLabApiError
from glreview_core.facade import CommitFacade
from glreview_core.gitlab.base import BaseGitLabWrapper
from glreview_core.models import Issue, PublishSummary
from glreview_core.publisher import build_global_comment, load_issues, run_publish, status_for

SHA = "abc123"


def _config(**overrides):
    config = {
        **DEFAULT_CONFIG,
        "gitlab_url": "https://gitlab.test",
        "gitlab_token": "tok",
        "project_id": "group/app",
        "commit_sha": [SHA],
        "server_url": "https://sonar.test/",
    }
    config.update(overrides)
    return config


@pytest.fixture
def base_dir(tmp_path):
    (tmp_path / ".git").mkdir()
    (tmp_path / "src").mkdir()
    return tmp_path


@pytest.fixture
def wrapper():
    w = MagicMock(spec=BaseGitLabWrapper)
    w.get_revision_for_line.return_value = SHA
    w.has_same_commit_comments_for_file.return_value = False
    w.is_file_in_commit.return_value = True
    w.get_username_for_revision.return_value = "dev"
    w.get_gitlab_url.side_effect = lambda rev, path, line: f"https://gitlab.test/blob/{rev}/{path}#L{line}"
    return w


def _publish(config, issues, base_dir, wrapper):
    facade = CommitFacade(config, wrapper=wrapper)
    return run_publish(config, issues, base_dir, facade=facade)


def _issue(severity="MAJOR", file="src/A.java", line=3, message="Fix this", rule_key="java:S100"):
    return Issue(rule_key=rule_key, severity=severity, message=message, file=file, line=line)


class TestInlineComments:
    def test_posts_inline_comment_on_analyzed_commit(self, base_dir, wrapper):
        summary = _publish(_config(), [_issue()], base_dir, wrapper)

        wrapper.create_review_comment.assert_called_once()
        revision, path, line, body = wrapper.create_review_comment.call_args.args
        assert (revision, path, line) == (SHA, "src/A.java", 3)
        assert "**[MAJOR]** Fix this" in body
        assert "https://sonar.test/coding_rules#rule_key=java%3AS100" in body
        assert summary.inline_posted == 1

    def test_checks_dedup_with_same_body_before_posting(self, base_dir, wrapper):
        _publish(_config(), [_issue()], base_dir, wrapper)

        check_args = wrapper.has_same_commit_comments_for_file.call_args.args
        post_args = wrapper.create_review_comment.call_args.args
        assert check_args == post_args

    def test_duplicate_is_skipped(self, base_dir, wrapper):
        wrapper.has_same_commit_comments_for_file.return_value = True

        summary = _publish(_config(), [_issue()], base_dir, wrapper)

        wrapper.create_review_comment.assert_not_called()
        assert summary.inline_duplicates == 1
        assert summary.inline_posted == 0

    def test_line_from_older_commit_goes_to_global_comment(self, base_dir, wrapper):
        wrapper.get_revision_for_line.return_value = "old999"

        summary = _publish(_config(), [_issue(message="Old problem")], base_dir, wrapper)

        wrapper.create_review_comment.assert_not_called()
        assert summary.global_comment_posted is True
        assert "Old problem" in wrapper.add_global_comment.call_args.args[0]

    def test_unknown_revision_goes_to_global_comment(self, base_dir, wrapper):
        wrapper.get_revision_for_line.return_value = None

        _publish(_config(), [_issue(message="No blame")], base_dir, wrapper)

        wrapper.create_review_comment.assert_not_called()
        assert "No blame" in wrapper.add_global_comment.call_args.args[0]

    def test_project_issue_goes_to_global_comment(self, base_dir, wrapper):
        _publish(_config(), [_issue(file=None, line=None, message="Project wide")], base_dir, wrapper)

        wrapper.get_revision_for_line.assert_not_called()
        assert "Project wide" in wrapper.add_global_comment.call_args.args[0]

    def test_disable_inline_comments(self, base_dir, wrapper):
        _publish(_config(disable_inline_comments=True), [_issue()], base_dir, wrapper)

        wrapper.create_review_comment.assert_not_called()
        assert "Fix this" in wrapper.add_global_comment.call_args.args[0]

    def test_ping_user_looks_up_author_once_per_revision(self, base_dir, wrapper):
        _publish(_config(ping_user=True), [_issue(line=3), _issue(line=4)], base_dir, wrapper)

        wrapper.get_username_for_revision.assert_called_once_with(SHA)
        assert all(c.args[3].endswith("@dev") for c in wrapper.create_review_comment.call_args_list)

    def test_ping_user_without_known_author(self, base_dir, wrapper):
        wrapper.get_username_for_revision.return_value = None

        _publish(_config(ping_user=True), [_issue()], base_dir, wrapper)

        assert "@" not in wrapper.create_review_comment.call_args.args[3]

    def test_one_comment_per_issue_by_default(self, base_dir, wrapper):
        issues = [_issue(message="first"), _issue(message="second")]
        _publish(_config(), issues, base_dir, wrapper)
        assert wrapper.create_review_comment.call_count == 2

    def test_unique_issue_per_inline_merges_same_line(self, base_dir, wrapper):
        issues = [_issue(message="first"), _issue(message="second"), _issue(line=9, message="third")]

        _publish(_config(unique_issue_per_inline=True), issues, base_dir, wrapper)

        assert wrapper.create_review_comment.call_count == 2
        body = wrapper.create_review_comment.call_args_list[0].args[3]
        assert "first" in body and "second" in body

    def test_remote_failure_propagates(self, base_dir, wrapper):
        wrapper.create_review_comment.side_effect = GitLabApiError("POST failed", status_code=500)

        with pytest.raises(GitLabApiError):
            _publish(_config(), [_issue()], base_dir, wrapper)

        wrapper.create_or_update_status.assert_not_called()


class TestFilters:
    def test_only_issue_from_commit_line(self, base_dir, wrapper):
        wrapper.get_revision_for_line.side_effect = lambda f, path, line: SHA if line == 3 else "old999"

        summary = _publish(
            _config(only_issue_from_commit_line=True), [_issue(line=3), _issue(line=10)], base_dir, wrapper
        )

        assert summary.total_issues == 1

    def test_only_issue_from_commit_line_drops_project_issues(self, base_dir, wrapper):
        summary = _publish(_config(only_issue_from_commit_line=True), [_issue(file=None, line=None)], base_dir, wrapper)
        assert summary.total_issues == 0

    def test_only_issue_from_commit_file(self, base_dir, wrapper):
        wrapper.is_file_in_commit.side_effect = lambda path: path == "src/A.java"

        summary = _publish(
            _config(only_issue_from_commit_file=True),
            [_issue(file="src/A.java"), _issue(file="src/B.java")],
            base_dir,
            wrapper,
        )

        assert summary.total_issues == 1

    def test_absolute_issue_path(self, base_dir, wrapper):
        _publish(_config(), [_issue(file=str(base_dir / "src" / "A.java"))], base_dir, wrapper)
        assert wrapper.create_review_comment.call_args.args[1] == "src/A.java"


class TestGlobalCommentAndStatus:
    def test_no_issues_posts_nothing_by_default(self, base_dir, wrapper):
        summary = _publish(_config(), [], base_dir, wrapper)

        wrapper.add_global_comment.assert_not_called()
        wrapper.create_or_update_status.assert_called_once_with("success", "glreview reported no issues")
        assert summary.status == "success"

    def test_comment_no_issue(self, base_dir, wrapper):
        _publish(_config(comment_no_issue=True), [], base_dir, wrapper)
        assert "No issues found" in wrapper.add_global_comment.call_args.args[0]

    def test_disable_global_comment(self, base_dir, wrapper):
        summary = _publish(_config(disable_global_comment=True), [_issue()], base_dir, wrapper)
        wrapper.add_global_comment.assert_not_called()
        assert summary.global_comment_posted is False

    def test_critical_issue_fails_status(self, base_dir, wrapper):
        issues = [_issue(severity="CRITICAL"), _issue(severity="MINOR", line=4)]

        summary = _publish(_config(), issues, base_dir, wrapper)

        wrapper.create_or_update_status.assert_called_once_with(
            "failed", "glreview reported 2 issue(s), with 1 critical"
        )
        assert summary.severity_counts["CRITICAL"] == 1

    def test_exit_code_mode_does_not_set_status(self, base_dir, wrapper):
        summary = _publish(_config(failure_notification_mode="exit-code"), [_issue(severity="BLOCKER")], base_dir, wrapper)

        wrapper.create_or_update_status.assert_not_called()
        assert summary.status == "failed"

    def test_global_comment_truncated_to_max_issues(self, base_dir, wrapper):
        wrapper.get_revision_for_line.return_value = None
        issues = [_issue(line=n, message=f"issue {n}") for n in range(1, 6)]

        _publish(_config(max_global_issues=2), issues, base_dir, wrapper)

        body = wrapper.add_global_comment.call_args.args[0]
        assert "issue 1" in body and "issue 2" in body
        assert "issue 3" not in body
        assert "... and 3 more" in body

    def test_global_comment_links_to_file(self, base_dir, wrapper):
        wrapper.get_revision_for_line.return_value = None

        _publish(_config(), [_issue(line=7)], base_dir, wrapper)

        assert "([src/A.java](https://gitlab.test/blob/None/src/A.java#L7))" in wrapper.add_global_comment.call_args.args[0]


class TestStatusFor:
    def test_no_issues(self):
        assert status_for({"BLOCKER": 0, "MAJOR": 0}) == ("success", "glreview reported no issues")

    def test_blocker_and_critical(self):
        state, description = status_for({"BLOCKER": 1, "CRITICAL": 2, "MAJOR": 1})
        assert state == "failed"
        assert description == "glreview reported 4 issue(s), with 1 blocker and 2 critical"

    def test_only_minor_issues(self):
        assert status_for({"MINOR": 2}) == ("success", "glreview reported 2 issue(s), none blocker or critical")


class TestReports:
    def test_sast_report_written(self, base_dir, wrapper):
        summary = _publish(_config(json_mode="sast"), [_issue()], base_dir, wrapper)

        report = json.loads((base_dir / "gl-sast-report.json").read_text())
        assert summary.report_path == str(base_dir / "gl-sast-report.json")
        assert report[0]["file"] == "src/A.java"
        assert report[0]["line"] == 3
        assert report[0]["priority"] == "MAJOR"

    def test_code_quality_report_written(self, base_dir, wrapper):
        _publish(_config(json_mode="codeclimate"), [_issue(severity="BLOCKER")], base_dir, wrapper)

        report = json.loads((base_dir / "gl-code-quality-report.json").read_text())
        assert report[0]["severity"] == "blocker"
        assert report[0]["location"] == {"path": "src/A.java", "lines": {"begin": 3}}

    def test_no_report_by_default(self, base_dir, wrapper):
        summary = _publish(_config(), [_issue()], base_dir, wrapper)
        assert summary.report_path is None
        assert not (base_dir / "gl-sast-report.json").exists()


class TestRunPublishLifecycle:
    def test_builds_and_closes_own_facade(self, base_dir, mocker):
        facade_cls = mocker.patch("glreview_core.publisher.CommitFacade")
        facade = facade_cls.return_value
        facade.get_revision_for_line.return_value = None
        facade.get_rule_link.return_value = "https://sonar.test/r"
        facade.get_gitlab_url.return_value = None

        run_publish(_config(), [], base_dir)

        facade.init.assert_called_once_with(base_dir)
        facade.close.assert_called_once()

    def test_does_not_close_injected_facade(self, base_dir, wrapper):
        _publish(_config(), [], base_dir, wrapper)
        wrapper.close.assert_not_called()


class TestLoadIssues:
    def test_list_format(self, tmp_path):
        path = tmp_path / "issues.json"
        path.write_text(json.dumps([{"rule_key": "java:S1", "severity": "minor", "message": "m", "file": "a", "line": 2}]))

        issues = load_issues(path)

        assert issues == [Issue(rule_key="java:S1", severity="MINOR", message="m", file="a", line=2)]

    def test_object_format_and_unknown_severity(self, tmp_path):
        path = tmp_path / "issues.json"
        path.write_text(json.dumps({"issues": [{"rule_key": "x", "severity": "weird"}]}))

        issues = load_issues(path)

        assert issues[0].severity == "MAJOR"
        assert issues[0].file is None

    def test_missing_rule_key_raises(self, tmp_path):
        path = tmp_path / "issues.json"
        path.write_text(json.dumps([{"severity": "MAJOR"}]))
        with pytest.raises(KeyError):
            load_issues(path)

    def test_numeric_string_line_is_converted(self, tmp_path):
        path = tmp_path / "issues.json"
        path.write_text(json.dumps([{"rule_key": "x", "severity": "MAJOR", "file": "a", "line": "12"}]))

        assert load_issues(path)[0].line == 12

    def test_non_numeric_line_raises_value_error(self, tmp_path):
        path = tmp_path / "issues.json"
        path.write_text(json.dumps([{"rule_key": "x", "severity": "MAJOR", "file": "a", "line": "twelve"}]))
        with pytest.raises(ValueError):
            load_issues(path)


def test_build_global_comment_counts(base_dir, wrapper):
    facade = CommitFacade(_config(), wrapper=wrapper)
    facade.init(base_dir)

    summary = PublishSummary()
    summary.severity_counts["MAJOR"] = 2
    body = build_global_comment(facade, summary, [], 10)

    assert "glreview found 2 issue(s): 2 major." in body
    assert "| :warning: major | 2 |" in body
