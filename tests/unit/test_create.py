"""
Unit tests for issue creation
"""

import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest

# Add parent directory to path to import ghpmu module
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from ghpmu.create import IssueCreator, build_create_patch
from ghpmu.exceptions import GitHubAPIError, PmuError, UnknownFieldError
from ghpmu.patch import parse_apply
from ghpmu.resolver import FieldResolver


@pytest.fixture
def writer(make_issue):
    writer = MagicMock()
    writer.create_issue.return_value = make_issue(7, title="New work")
    writer.add_to_project.return_value = "PVTI_7"
    return writer


class TestBuildCreatePatch:
    """Test build_create_patch()"""

    def test_defaults_only(self):
        """Should keep the defaults when nothing is given"""
        defaults = parse_apply("priority:p2,status:backlog,label:pm-tracked")

        assert str(build_create_patch(defaults)) == str(defaults)

    def test_status_overrides_default(self):
        """Should replace the default status and keep the default priority"""
        defaults = parse_apply("priority:p2,Status:backlog")

        patch = build_create_patch(defaults, status="ready")

        assert [(e.key, e.value) for e in patch.fields] == [
            ("priority", "p2"),
            ("status", "ready"),
        ]

    def test_default_labels_come_first(self):
        """Should add the given labels after the default ones"""
        defaults = parse_apply("label:pm-tracked")

        patch = build_create_patch(defaults, labels=["bug", " ", "ui"])

        assert list(patch.labels) == ["pm-tracked", "bug", "ui"]


class TestIssueCreator:
    """Test IssueCreator.run()"""

    def test_dry_run_reports_changes(self, writer, metadata, repository):
        """Should list the would-be changes without touching the writer"""
        creator = IssueCreator(writer, FieldResolver(metadata))

        result = creator.run(
            repository, "New work", patch=parse_apply("status:ready,label:bug"), dry_run=True
        )

        assert result.status == "dry-run"
        assert result.changes == ["Status → Ready", "+label bug"]
        assert result.issue is None
        assert writer.method_calls == []

    def test_creates_adds_and_applies(self, writer, metadata, repository):
        """Should create the issue, add it to the board, then set fields and labels"""
        creator = IssueCreator(writer, FieldResolver(metadata))

        result = creator.run(
            repository, "New work", body="Details", patch=parse_apply("priority:p1,label:bug")
        )

        assert result.status == "created"
        assert result.issue.number == 7
        writer.create_issue.assert_called_once_with(repository, "New work", body="Details")
        writer.add_to_project.assert_called_once()
        updated_issue, resolved = writer.update_field.call_args.args
        assert updated_issue.item_id == "PVTI_7"
        assert resolved.value == "opt_p1"
        assert writer.add_label.call_args.args[1] == "bug"

    def test_field_failure_keeps_issue(self, writer, metadata, repository):
        """Should collect a failed update and still report the created issue"""
        writer.update_field.side_effect = GitHubAPIError("boom", status_code=502)
        creator = IssueCreator(writer, FieldResolver(metadata))

        result = creator.run(repository, "New work", patch=parse_apply("status:done,label:bug"))

        assert result.status == "partially-failed"
        assert result.issue.number == 7
        assert [failure.action for failure in result.failures] == ["set Status"]
        writer.add_label.assert_called_once()

    def test_add_to_project_failure(self, writer, metadata, repository):
        """Should stop after the issue exists when it cannot join the board"""
        writer.add_to_project.side_effect = GitHubAPIError("no access", status_code=403)
        creator = IssueCreator(writer, FieldResolver(metadata))

        result = creator.run(repository, "New work", patch=parse_apply("status:done"))

        assert result.status == "partially-failed"
        assert result.failures[0].action == "add to project"
        writer.update_field.assert_not_called()

    def test_invalid_title(self, writer, metadata, repository):
        """Should surface a rejected title as a PmuError"""
        writer.create_issue.side_effect = ValueError("Title cannot be empty")
        creator = IssueCreator(writer, FieldResolver(metadata))

        with pytest.raises(PmuError, match="Title cannot be empty"):
            creator.run(repository, " ")

    def test_unknown_field_fails_before_create(self, writer, metadata, repository):
        """Should resolve the patch before creating anything"""
        creator = IssueCreator(writer, FieldResolver(metadata))

        with pytest.raises(UnknownFieldError):
            creator.run(repository, "New work", patch=parse_apply("severity:high"))

        writer.create_issue.assert_not_called()
