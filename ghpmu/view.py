"""Render one issue with its project fields and sub-issue hierarchy."""

from __future__ import annotations

from typing import Any

from ghpmu.models import Issue, IssueState, IssueSummary


def _summary_json(summary: IssueSummary) -> dict[str, Any]:
    return {
        "number": summary.number,
        "title": summary.title,
        "state": summary.state.value,
        "url": summary.url,
        "repository": summary.repository.full_name,
    }


def issue_document(issue: Issue) -> dict[str, Any]:
    """JSON document for ``ghpmu view --json``

    ``parentIssue`` is present only for sub-issues, and ``subIssues`` /
    ``subProgress`` only for issues that have sub-issues.
    """
    document: dict[str, Any] = {
        "number": issue.number,
        "title": issue.title,
        "state": issue.state.value,
        "body": issue.body,
        "url": issue.url,
        "repository": issue.repository.full_name,
        "labels": list(issue.labels),
        "fieldValues": dict(issue.field_values),
    }
    if issue.parent_issue is not None:
        document["parentIssue"] = _summary_json(issue.parent_issue)
    if issue.sub_issues:
        completed, total = issue.sub_issue_progress()
        document["subIssues"] = [_summary_json(sub) for sub in issue.sub_issues]
        document["subProgress"] = {
            "total": total,
            "completed": completed,
            "percentage": completed * 100 // total,
        }
    return document


def render_issue(issue: Issue) -> list[str]:
    """Plain-text lines for ``ghpmu view``"""
    lines = [
        f"#{issue.number} {issue.title}",
        "",
        f"State: {issue.state.value}",
        f"URL: {issue.url}",
        f"Repository: {issue.repository}",
    ]
    if issue.labels:
        lines.append(f"Labels: {', '.join(issue.labels)}")

    if issue.field_values:
        lines.extend(["", "Project Fields:"])
        lines.extend(f"  {name}: {value}" for name, value in issue.field_values.items())

    if issue.parent_issue is not None:
        parent = issue.parent_issue
        lines.extend(["", "Parent Issue:", f"  #{parent.number} {parent.title}"])

    if issue.sub_issues:
        lines.extend(["", "Sub-Issues:"])
        for sub in issue.sub_issues:
            mark = "x" if sub.state is IssueState.CLOSED else " "
            lines.append(f"  [{mark}] #{sub.number} {sub.title}")
        completed, total = issue.sub_issue_progress()
        lines.append(f"  {completed} of {total} sub-issues complete")

    if issue.body:
        lines.extend(["", issue.body.rstrip()])
    return lines
