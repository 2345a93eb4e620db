"""Project board mutations (field updates, labels, board items, issue creation)."""

from __future__ import annotations

import logging
from typing import Any

from ghpmu.exceptions import GitHubAPIError, GitHubNotFoundError
from ghpmu.github_client import GitHubClient
from ghpmu.models import (
    FieldDataType,
    Issue,
    IssueState,
    Repository,
    ResolvedField,
)

logger = logging.getLogger(__name__)

ADD_ITEM_MUTATION = """
mutation($projectId: ID!, $contentId: ID!) {
  addProjectV2ItemById(input: {projectId: $projectId, contentId: $contentId}) {
    item { id }
  }
}
"""

UPDATE_FIELD_MUTATION = """
mutation($projectId: ID!, $itemId: ID!, $fieldId: ID!, $value: ProjectV2FieldValue!) {
  updateProjectV2ItemFieldValue(
    input: {projectId: $projectId, itemId: $itemId, fieldId: $fieldId, value: $value}
  ) {
    projectV2Item { id }
  }
}
"""

ADD_LABELS_MUTATION = """
mutation($labelableId: ID!, $labelIds: [ID!]!) {
  addLabelsToLabelable(input: {labelableId: $labelableId, labelIds: $labelIds}) {
    clientMutationId
  }
}
"""

CREATE_ISSUE_MUTATION = """
mutation($repositoryId: ID!, $title: String!, $body: String) {
  createIssue(input: {repositoryId: $repositoryId, title: $title, body: $body}) {
    issue { id number title state url repository { name owner { login } } }
  }
}
"""

ADD_SUB_ISSUE_MUTATION = """
mutation($issueId: ID!, $subIssueId: ID!) {
  addSubIssue(input: {issueId: $issueId, subIssueId: $subIssueId}) {
    issue { id }
  }
}
"""


def field_value_input(resolved: ResolvedField) -> dict[str, Any]:
    """Build the ``ProjectV2FieldValue`` input for a resolved field

    Raises:
        ValueError: If a NUMBER field's value is not numeric
    """
    if resolved.data_type is FieldDataType.SINGLE_SELECT:
        return {"singleSelectOptionId": resolved.value}
    if resolved.data_type is FieldDataType.ITERATION:
        return {"iterationId": resolved.value}
    if resolved.data_type is FieldDataType.NUMBER:
        try:
            return {"number": float(resolved.value)}
        except ValueError as e:
            raise ValueError(
                f"Field '{resolved.field_name}' expects a number, got '{resolved.value}'"
            ) from e
    if resolved.data_type is FieldDataType.DATE:
        return {"date": resolved.value}
    return {"text": resolved.value}


class BoardWriter:
    """Apply mutations to one project board through the GraphQL client.

    Implements the mutation service the triage, intake and split components
    call back into. Every method either succeeds or raises; callers decide
    whether a failure aborts or is accumulated.

    Example (dry-run mode):
        >>> writer = BoardWriter(client, "PVT_abc", dry_run=True)
        >>> writer.add_label(issue, "triaged")
        [DRY-RUN] Would add label 'triaged' to octo/app#12
    """

    def __init__(self, client: GitHubClient, project_id: str, dry_run: bool = False):
        self.client = client
        self.project_id = project_id
        self.dry_run = dry_run

        self._repository_ids: dict[str, str] = {}
        self._item_ids: dict[str, str] = {}
        self._label_ids: dict[tuple[str, str], str] = {}

        mode = " (dry-run mode)" if dry_run else ""
        logger.debug("BoardWriter initialized for project %s%s", project_id, mode)

    def add_to_project(self, issue: Issue) -> str:
        """Add an issue to the board and return its project item ID

        Adding an issue that is already on the board returns the existing item.
        """
        if self.dry_run:
            logger.info(f"[DRY-RUN] Would add {issue.key} to project")
            return "dryrun-item"

        if not issue.node_id:
            raise ValueError(f"Issue {issue.key} has no node ID")

        data = self.client.mutate(
            ADD_ITEM_MUTATION, {"projectId": self.project_id, "contentId": issue.node_id}
        )
        item_id = ((data.get("addProjectV2ItemById") or {}).get("item") or {}).get("id")
        if not item_id:
            raise GitHubAPIError(f"No project item returned when adding {issue.key}")

        self._item_ids[issue.key] = str(item_id)
        logger.debug("Added %s to project as %s", issue.key, item_id)
        return str(item_id)

    def update_field(self, issue: Issue, resolved: ResolvedField) -> None:
        """Set one project field on an issue, adding it to the board if needed"""
        value = field_value_input(resolved)

        if self.dry_run:
            logger.info(
                f"[DRY-RUN] Would set {resolved.field_name}={resolved.display_value} "
                f"on {issue.key}"
            )
            return

        item_id = issue.item_id or self._item_ids.get(issue.key)
        if not item_id:
            item_id = self.add_to_project(issue)
        self.client.mutate(
            UPDATE_FIELD_MUTATION,
            {
                "projectId": self.project_id,
                "itemId": item_id,
                "fieldId": resolved.field_id,
                "value": value,
            },
        )
        logger.debug("Set %s=%s on %s", resolved.field_name, resolved.display_value, issue.key)

    def add_label(self, issue: Issue, label: str) -> None:
        """Add an existing repository label to an issue

        Raises:
            ValueError: If the label is empty
            GitHubNotFoundError: If the repository has no such label
        """
        if not label or not label.strip():
            raise ValueError("Label cannot be empty")

        if self.dry_run:
            logger.info(f"[DRY-RUN] Would add label '{label}' to {issue.key}")
            return

        label_id = self._label_id(issue.repository, label)
        self.client.mutate(
            ADD_LABELS_MUTATION, {"labelableId": issue.node_id, "labelIds": [label_id]}
        )
        logger.debug("Added label %s to %s", label, issue.key)

    def create_issue(
        self,
        repository: Repository,
        title: str,
        body: str = "",
        parent: Issue | None = None,
    ) -> Issue:
        """Create an issue, optionally linked as a sub-issue of ``parent``

        Raises:
            ValueError: If the title is empty or too long
            GitHubAPIError: If creation or linking fails
        """
        if not title or not title.strip():
            raise ValueError("Title cannot be empty")
        if len(title) > 256:
            raise ValueError(f"Title too long ({len(title)} chars). Maximum 256 characters.")

        if self.dry_run:
            logger.info(f"[DRY-RUN] Would create issue in {repository}: {title}")
            return Issue(
                number=0,
                title=title,
                state=IssueState.OPEN,
                url="",
                repository=repository,
                body=body,
            )

        data = self.client.mutate(
            CREATE_ISSUE_MUTATION,
            {
                "repositoryId": self._repository_id(repository),
                "title": title.strip(),
                "body": body,
            },
        )
        node = (data.get("createIssue") or {}).get("issue")
        if not node:
            raise GitHubAPIError(f"No issue returned when creating '{title}' in {repository}")

        created = Issue(
            number=node["number"],
            title=node["title"],
            state=IssueState(node.get("state", "OPEN")),
            url=node.get("url", ""),
            repository=repository,
            body=body,
            node_id=node["id"],
        )
        logger.info(f"✅ Created {created.key}: {created.title}")

        if parent is not None:
            self.client.mutate(
                ADD_SUB_ISSUE_MUTATION,
                {"issueId": parent.node_id, "subIssueId": created.node_id},
            )
            logger.debug("Linked %s as sub-issue of %s", created.key, parent.key)

        return created

    def _repository_id(self, repository: Repository) -> str:
        key = repository.full_name.lower()
        if key not in self._repository_ids:
            self._repository_ids[key] = self.client.get_repository_id(repository)
        return self._repository_ids[key]

    def _label_id(self, repository: Repository, label: str) -> str:
        key = (repository.full_name.lower(), label.lower())
        if key not in self._label_ids:
            label_id = self.client.get_label_id(repository, label)
            if not label_id:
                raise GitHubNotFoundError(
                    f"Label '{label}' does not exist in {repository}", status_code=404
                )
            self._label_ids[key] = label_id
        return self._label_ids[key]
