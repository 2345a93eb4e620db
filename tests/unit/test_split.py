"""
Unit tests for sub-issue creation
"""

import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest

# Add parent directory to path to import ghpmu module
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from ghpmu.exceptions import GitHubAPIError, PmuError
from ghpmu.models import Issue, IssueState, Repository
from ghpmu.split import SplitRunner, parse_issue_reference, tasks_from_source


@pytest.fixture
def parent(make_issue):
    return make_issue(
        42,
        title="Parent Epic",
        body="## Tasks\n- [ ] First\n- [x] Done already\n- [ ] Second\n",
    )


def _created(repository, title, body="", parent=None):
    return Issue(
        number=100 + len(title),
        title=title,
        state=IssueState.OPEN,
        url="",
        repository=repository,
        node_id=f"I_{title}",
    )


class TestTasksFromSource:
    """Test tasks_from_source()"""

    def test_explicit_titles(self, parent):
        """Should use command-line titles, dropping blanks"""
        assert tasks_from_source(parent, None, ["One", "  ", " Two "]) == ["One", "Two"]

    def test_from_body(self, parent):
        """Should parse the parent's checklist"""
        assert tasks_from_source(parent, "body", []) == ["First", "Second"]

    def test_from_file(self, parent, tmp_path):
        """Should parse a markdown file's checklist"""
        task_file = tmp_path / "tasks.md"
        task_file.write_text("- [ ] From file\n- [ ]\tTabbed\n")

        assert tasks_from_source(parent, str(task_file), []) == ["From file", "Tabbed"]

    def test_missing_file(self, parent, tmp_path):
        """Should raise PmuError for an unreadable file"""
        with pytest.raises(PmuError, match="Failed to read task file"):
            tasks_from_source(parent, str(tmp_path / "missing.md"), [])

    def test_source_and_titles_conflict(self, parent):
        """Should reject --from combined with explicit titles"""
        with pytest.raises(PmuError):
            tasks_from_source(parent, "body", ["One"])


class TestParseIssueReference:
    """Test parse_issue_reference()"""

    def test_number_uses_default_repository(self):
        """Should use the default repository for a bare number"""
        default = Repository("octo-org", "app")

        assert parse_issue_reference("12", default) == (default, 12)
        assert parse_issue_reference("#12", default) == (default, 12)

    def test_qualified_reference(self):
        """Should parse owner/name#N"""
        assert parse_issue_reference("octo/lib#7") == (Repository("octo", "lib"), 7)

    def test_url(self):
        """Should parse an issue URL"""
        repo, number = parse_issue_reference("https://github.com/octo/lib/issues/9")

        assert repo == Repository("octo", "lib")
        assert number == 9

    def test_bare_number_without_default(self):
        """Should raise when no repository can be determined"""
        with pytest.raises(PmuError):
            parse_issue_reference("12")

    def test_invalid(self):
        """Should raise for garbage"""
        with pytest.raises(PmuError):
            parse_issue_reference("not-an-issue")


class TestSplitRunner:
    """Test SplitRunner.run()"""

    def test_no_tasks(self, parent):
        """Should report no-tasks and create nothing"""
        writer = MagicMock()

        result = SplitRunner(writer).run(parent, [])

        assert result.status == "no-tasks"
        writer.create_issue.assert_not_called()

    def test_dry_run(self, parent):
        """Should report dry-run and create nothing"""
        writer = MagicMock()

        result = SplitRunner(writer).run(parent, ["A", "B"], dry_run=True)

        assert result.status == "dry-run"
        assert result.tasks == ["A", "B"]
        assert writer.method_calls == []

    def test_creates_linked_sub_issues(self, parent):
        """Should create each task in the parent's repository, linked and on the board"""
        writer = MagicMock()
        writer.create_issue.side_effect = _created

        result = SplitRunner(writer).run(parent, ["First", "Second"])

        assert result.status == "completed"
        assert [issue.title for issue in result.created] == ["First", "Second"]
        assert result.failed == []
        for call in writer.create_issue.call_args_list:
            assert call.args[0] == parent.repository
            assert call.kwargs["parent"] is parent
        assert writer.add_to_project.call_count == 2

    def test_failures_collected(self, parent):
        """Should collect failing titles and keep creating the rest"""
        writer = MagicMock()

        def create_issue(repository, title, body="", parent=None):
            if title == "Bad":
                raise GitHubAPIError("validation failed")
            return _created(repository, title)

        writer.create_issue.side_effect = create_issue

        result = SplitRunner(writer).run(parent, ["Good", "Bad", "Also good"])

        assert [issue.title for issue in result.created] == ["Good", "Also good"]
        assert result.failed == ["Bad"]
        assert result.failures[0].issue_ref == "Bad"
