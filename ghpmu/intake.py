"""Find issues in repository scope that are not yet on the project board."""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Iterable

from ghpmu.exceptions import GitHubAPIError, MutationFailedError
from ghpmu.models import Issue, IntakeResult, MutationService, Repository, TriagePatch
from ghpmu.resolver import FieldResolver
from ghpmu.triage import apply_diff, diff_issue, scoped_query

logger = logging.getLogger(__name__)


def scope_query(repository: Repository) -> str:
    """Search query for the open issues of one repository in scope"""
    return scoped_query(repository, "is:issue is:open")


def reconcile(scoped_issues: Iterable[Issue], tracked_keys: set[str]) -> list[Issue]:
    """Issues from ``scoped_issues`` whose key is not in ``tracked_keys``.

    Original order is preserved; an issue returned twice by overlapping
    scope queries is kept once, at its first position.

    Example:
        >>> [i.number for i in reconcile([issue1, issue2, issue3], {issue2.key})]
        [1, 3]
    """
    seen: set[str] = set()
    untracked: list[Issue] = []
    for issue in scoped_issues:
        if issue.key in tracked_keys or issue.key in seen:
            continue
        seen.add(issue.key)
        untracked.append(issue)
    return untracked


class IntakeReconciler:
    """Add untracked issues to the board and give them their initial fields"""

    def __init__(self, writer: MutationService, resolver: FieldResolver):
        self.writer = writer
        self.resolver = resolver

    def run(
        self,
        scoped_issues: list[Issue],
        tracked_keys: set[str],
        dry_run: bool = False,
        patch: TriagePatch | None = None,
    ) -> IntakeResult:
        """Reconcile scope against the board and, unless dry-run, add the difference.

        Args:
            scoped_issues: Every issue in the configured repositories
            tracked_keys: Keys of issues already on the board
            dry_run: Only report the untracked issues
            patch: Fields and labels to set on each newly added issue

        Returns:
            IntakeResult with the untracked issues, the added count and the
            identifiers of issues that could not be added or patched

        Raises:
            UnknownFieldError, UnknownOptionError: The patch cannot be resolved
        """
        result = IntakeResult(dry_run=dry_run)
        fields, labels = self.resolver.resolve_patch(patch or TriagePatch())

        result.untracked = reconcile(scoped_issues, tracked_keys)
        logger.info(
            f"📥 {len(result.untracked)} untracked issue(s) out of {len(scoped_issues)} in scope"
        )

        if dry_run:
            for issue in result.untracked:
                logger.info(f"[DRY RUN] Would add #{issue.number} {issue.title} ({issue.repository})")
            return result

        for issue in result.untracked:
            failures = self._add_issue(issue, fields, labels)
            if failures:
                result.failed.append(issue.key)
                result.failures.extend(failures)
            else:
                result.added_count += 1
                logger.info(f"✅ Added #{issue.number} {issue.title}")

        return result

    def _add_issue(self, issue: Issue, fields, labels) -> list[MutationFailedError]:
        try:
            item_id = self.writer.add_to_project(issue)
        except (GitHubAPIError, ValueError) as e:
            logger.warning("Failed to add %s to project: %s", issue.key, e)
            return [MutationFailedError(issue.key, e, action="add to project")]

        tracked = dataclasses.replace(issue, item_id=item_id)
        return apply_diff(self.writer, diff_issue(tracked, fields, labels))
