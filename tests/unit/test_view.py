"""
Unit tests for issue rendering
"""

import dataclasses
import sys
from pathlib import Path

import pytest

# Add parent directory to path to import ghpmu module
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from ghpmu.models import IssueState, IssueSummary
from ghpmu.view import issue_document, render_issue


@pytest.fixture
def epic(make_issue, repository):
    def summary(number, state):
        return IssueSummary(
            number=number,
            title=f"Task {number}",
            state=state,
            url=f"https://github.com/octo-org/app/issues/{number}",
            repository=repository,
        )

    issue = make_issue(
        10,
        title="Epic",
        body="Ship it\n",
        labels=["epic"],
        field_values={"Status": "In progress", "Priority": "P1"},
    )
    return dataclasses.replace(
        issue,
        parent_issue=summary(1, IssueState.OPEN),
        sub_issues=(summary(11, IssueState.CLOSED), summary(12, IssueState.OPEN)),
    )


class TestRenderIssue:
    """Test render_issue()"""

    def test_sections(self, epic):
        """Should show state, fields, parent and sub-issue progress"""
        text = "\n".join(render_issue(epic))

        assert text.startswith("#10 Epic")
        assert "State: OPEN" in text
        assert "URL: https://github.com/octo-org/app/issues/10" in text
        assert "Labels: epic" in text
        assert "Project Fields:\n  Status: In progress\n  Priority: P1" in text
        assert "Parent Issue:\n  #1 Task 1" in text
        assert "  [x] #11 Task 11\n  [ ] #12 Task 12" in text
        assert "1 of 2 sub-issues complete" in text
        assert text.endswith("Ship it")

    def test_plain_issue(self, make_issue):
        """Should omit the sections an issue has nothing for"""
        text = "\n".join(render_issue(make_issue(3)))

        assert "Project Fields:" not in text
        assert "Parent Issue:" not in text
        assert "Sub-Issues:" not in text


class TestIssueDocument:
    """Test issue_document()"""

    def test_hierarchy(self, epic):
        """Should include the parent and sub-issue progress"""
        document = issue_document(epic)

        assert document["fieldValues"] == {"Status": "In progress", "Priority": "P1"}
        assert document["parentIssue"]["number"] == 1
        assert [sub["state"] for sub in document["subIssues"]] == ["CLOSED", "OPEN"]
        assert document["subProgress"] == {"total": 2, "completed": 1, "percentage": 50}

    def test_plain_issue(self, make_issue):
        """Should leave out parentIssue and subIssues when absent"""
        document = issue_document(make_issue(3, labels=["bug"]))

        assert document["labels"] == ["bug"]
        assert document["repository"] == "octo-org/app"
        assert "parentIssue" not in document
        assert "subIssues" not in document
        assert "subProgress" not in document
