"""Turn a parent issue's checklist into linked sub-issues."""

from __future__ import annotations

import logging
import re
from pathlib import Path

from ghpmu.checklist import parse_checklist
from ghpmu.exceptions import GitHubAPIError, MutationFailedError, PmuError
from ghpmu.models import Issue, MutationService, Repository, SplitResult

logger = logging.getLogger(__name__)

FROM_BODY = "body"

_ISSUE_URL = re.compile(r"^https?://github\.com/([^/]+)/([^/]+)/issues/(\d+)/?$")
_ISSUE_REF = re.compile(r"^(?:([^/\s#]+)/([^/\s#]+)#|#)?(\d+)$")


def parse_issue_reference(
    value: str, default_repository: Repository | None = None
) -> tuple[Repository, int]:
    """Parse ``123``, ``#123``, ``owner/name#123`` or an issue URL

    Raises:
        PmuError: If the reference cannot be parsed, or names no repository
            and there is no default
    """
    value = value.strip()
    match = _ISSUE_URL.match(value) or _ISSUE_REF.match(value)
    if not match:
        raise PmuError(f"Invalid issue reference: '{value}'")

    owner, name, number = match.groups()
    if owner and name:
        return Repository(owner=owner, name=name), int(number)
    if default_repository is None:
        raise PmuError(
            f"Issue reference '{value}' has no repository and none is configured"
        )
    return default_repository, int(number)


def tasks_from_source(parent: Issue, source: str | None, args: list[str]) -> list[str]:
    """Collect the task titles for a split.

    Args:
        parent: The issue being split
        source: ``"body"`` to read the parent's checklist, a markdown file
            path, or None to use ``args``
        args: Task titles given on the command line

    Raises:
        PmuError: If both a source and explicit tasks are given, or the
            file cannot be read
    """
    if source and args:
        raise PmuError("Cannot combine --from with explicit task titles. Use one or the other.")

    if not source:
        return [title.strip() for title in args if title.strip()]

    if source == FROM_BODY:
        return parse_checklist(parent.body)

    path = Path(source)
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise PmuError(f"Failed to read task file {path}: {e}") from e
    return parse_checklist(content)


class SplitRunner:
    """Create one sub-issue per task title under a parent issue"""

    def __init__(self, writer: MutationService):
        self.writer = writer

    def run(self, parent: Issue, titles: list[str], dry_run: bool = False) -> SplitResult:
        result = SplitResult(parent=parent, tasks=list(titles), dry_run=dry_run)

        if not titles:
            logger.info(f"⚠️  No tasks found for #{parent.number} {parent.title}")
            return result

        if dry_run:
            logger.info(f"[DRY RUN] Would create {len(titles)} sub-issue(s) of #{parent.number}:")
            for title in titles:
                logger.info(f"  - {title}")
            return result

        for title in titles:
            try:
                created = self.writer.create_issue(
                    parent.repository, title, body="", parent=parent
                )
                self.writer.add_to_project(created)
            except (GitHubAPIError, ValueError) as e:
                result.failed.append(title)
                result.failures.append(MutationFailedError(title, e, action="create sub-issue"))
                logger.warning("Failed to create sub-issue '%s': %s", title, e)
                continue
            result.created.append(created)

        logger.info(
            f"✅ Created {len(result.created)} sub-issue(s) of #{parent.number}"
            + (f", {len(result.failed)} failed" if result.failed else "")
        )
        return result
