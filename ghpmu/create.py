"""Create an issue, add it to the board and give it its initial fields."""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Iterable

from ghpmu.exceptions import GitHubAPIError, MutationFailedError, PmuError
from ghpmu.models import (
    CreateResult,
    Issue,
    IssueState,
    MutationService,
    PatchEntry,
    PatchKind,
    Repository,
    TriagePatch,
)
from ghpmu.patch import LABEL_KEY
from ghpmu.resolver import FieldResolver
from ghpmu.triage import apply_diff, diff_issue

logger = logging.getLogger(__name__)


def build_create_patch(
    defaults: TriagePatch,
    status: str | None = None,
    priority: str | None = None,
    labels: Iterable[str] = (),
) -> TriagePatch:
    """Config defaults overlaid with the values given on the command line.

    An explicit status or priority replaces the default for that key. Default
    labels come first, followed by the given labels.

    Example:
        >>> str(build_create_patch(parse_apply("status:backlog,label:pm-tracked"),
        ...                        status="ready", labels=["bug"]))
        'status:ready,label:pm-tracked,label:bug'
    """
    overrides = {"status": status, "priority": priority}
    given = {key for key, value in overrides.items() if value}

    entries = [entry for entry in defaults.fields if entry.key.lower() not in given]
    entries.extend(
        PatchEntry(PatchKind.FIELD, key, value) for key, value in overrides.items() if value
    )
    entries.extend(PatchEntry(PatchKind.LABEL, LABEL_KEY, label) for label in defaults.labels)
    entries.extend(
        PatchEntry(PatchKind.LABEL, LABEL_KEY, label.strip()) for label in labels if label.strip()
    )
    return TriagePatch(tuple(entries))


class IssueCreator:
    """Create one issue on the board with a patch applied"""

    def __init__(self, writer: MutationService, resolver: FieldResolver):
        self.writer = writer
        self.resolver = resolver

    def run(
        self,
        repository: Repository,
        title: str,
        body: str = "",
        patch: TriagePatch | None = None,
        dry_run: bool = False,
    ) -> CreateResult:
        """Create the issue, then add it to the board and apply ``patch``.

        Field updates and labels that fail after the issue exists are
        collected in ``failures``; the issue itself is kept.

        Raises:
            UnknownFieldError, UnknownOptionError: The patch cannot be resolved
            PmuError: The title is invalid
            GitHubAPIError: The issue could not be created
        """
        fields, labels = self.resolver.resolve_patch(patch or TriagePatch())
        result = CreateResult(repository=repository, title=title, dry_run=dry_run)

        draft = Issue(number=0, title=title, state=IssueState.OPEN, url="", repository=repository)
        result.changes = diff_issue(draft, fields, labels).describe()

        if dry_run:
            logger.info(f"[DRY RUN] Would create issue in {repository}: {title}")
            for change in result.changes:
                logger.info(f"  {change}")
            return result

        try:
            issue = self.writer.create_issue(repository, title, body=body)
        except ValueError as e:
            raise PmuError(str(e)) from e
        result.issue = issue

        try:
            item_id = self.writer.add_to_project(issue)
        except (GitHubAPIError, ValueError) as e:
            logger.warning("Failed to add %s to project: %s", issue.key, e)
            result.failures.append(MutationFailedError(issue.key, e, action="add to project"))
            return result

        tracked = dataclasses.replace(issue, item_id=item_id)
        result.failures.extend(apply_diff(self.writer, diff_issue(tracked, fields, labels)))
        return result
