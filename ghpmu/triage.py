"""Rule-based triage: match issues by query, diff them against a patch, apply."""

from __future__ import annotations

import logging
import re
from typing import Protocol

from ghpmu.exceptions import (
    ConflictingMatchCriteriaError,
    GitHubAPIError,
    MutationFailedError,
    NoMatchCriteriaError,
)
from ghpmu.models import (
    Issue,
    IssueDiff,
    IssueSearcher,
    MutationService,
    Repository,
    ResolvedField,
    TriageConfig,
    TriagePatch,
    TriageResult,
    TriageState,
)
from ghpmu.patch import parse_apply
from ghpmu.resolver import FieldResolver

logger = logging.getLogger(__name__)

AD_HOC_RULE = "ad-hoc"

_SCOPE_QUALIFIER = re.compile(r"(?:^|\s)-?(?:repo|org|user):", re.IGNORECASE)


class TriageRuleProvider(Protocol):
    def triage_rule(self, name: str) -> TriageConfig: ...


def select_triage_source(
    config_name: str | None,
    query: str | None,
    apply: str | None,
    rules: TriageRuleProvider | None,
) -> TriageConfig:
    """Pick the query and patch for one triage run.

    Either a named rule or an ad-hoc ``--query`` (with optional ``--apply``)
    must be given, never both.

    Raises:
        NoMatchCriteriaError: Neither a rule name nor a query was given
        ConflictingMatchCriteriaError: A rule name was combined with --query/--apply
        ConfigNotFoundError: The named rule does not exist
        MalformedApplyTokenError: The apply string does not parse
    """
    if config_name and query:
        raise ConflictingMatchCriteriaError(config_name, f"--query '{query}'")
    if config_name and apply:
        raise ConflictingMatchCriteriaError(config_name, f"--apply '{apply}'")

    if config_name:
        if rules is None:
            raise NoMatchCriteriaError(
                f"Triage config '{config_name}' requested but no configuration is loaded"
            )
        return rules.triage_rule(config_name)

    if not query:
        raise NoMatchCriteriaError()

    return TriageConfig(name=AD_HOC_RULE, query=query, apply=parse_apply(apply))


def scoped_query(repository: Repository, query: str) -> str:
    """Prefix a search query with ``repo:owner/name``"""
    return f"repo:{repository.full_name} {query}".strip()


class ScopedSearcher:
    """Run one search per configured repository and merge the results.

    A query that already names its own ``repo:``, ``org:`` or ``user:``
    qualifier is sent once, unchanged. Issues matched by more than one
    repository search are kept once, at their first position.
    """

    def __init__(self, searcher: IssueSearcher, repositories: list[Repository]):
        self.searcher = searcher
        self.repositories = list(repositories)

    def search_issues(self, query: str) -> list[Issue]:
        if not self.repositories or _SCOPE_QUALIFIER.search(query):
            return self.searcher.search_issues(query)

        seen: set[str] = set()
        issues: list[Issue] = []
        for repository in self.repositories:
            for issue in self.searcher.search_issues(scoped_query(repository, query)):
                if issue.key in seen:
                    continue
                seen.add(issue.key)
                issues.append(issue)
        return issues


def diff_issue(issue: Issue, fields: list[ResolvedField], labels: list[str]) -> IssueDiff:
    """Changes still needed to bring an issue in line with a resolved patch.

    Field values are compared by name, case-insensitively, against the
    issue's current values, so an issue that already matches yields an
    empty diff and re-running a patch is a no-op.
    """
    diff = IssueDiff(issue=issue)
    for resolved in fields:
        current = issue.field_value(resolved.field_name)
        if current is not None and current.lower() == resolved.display_value.lower():
            continue
        diff.fields.append(resolved)

    for label in labels:
        if issue.has_label(label) or label.lower() in (l.lower() for l in diff.labels):
            continue
        diff.labels.append(label)
    return diff


class TriageEngine:
    """Match issues with a search query and bring them in line with a patch.

    The engine moves through Collecting → Matched → DryRunReported, or
    Matched → Applying → Applied / PartiallyFailed. Field resolution happens
    before the search so that an unsatisfiable patch fails without touching
    anything.
    """

    def __init__(
        self,
        searcher: IssueSearcher,
        writer: MutationService,
        resolver: FieldResolver,
    ):
        self.searcher = searcher
        self.writer = writer
        self.resolver = resolver

    def plan(self, issues: list[Issue], patch: TriagePatch) -> list[IssueDiff]:
        """Non-empty diffs for the given issues, in input order"""
        fields, labels = self.resolver.resolve_patch(patch)
        diffs = (diff_issue(issue, fields, labels) for issue in issues)
        return [diff for diff in diffs if not diff.is_empty]

    def run(self, query: str, patch: TriagePatch, dry_run: bool = False) -> TriageResult:
        """Search, diff and (unless dry-run) apply.

        Args:
            query: Search text, handed to the searcher unmodified
            patch: Field and label changes to apply
            dry_run: Report the diff without calling the mutation service

        Returns:
            TriageResult with the diffs, the updated count and the identifiers
            of issues whose mutations failed

        Raises:
            UnknownFieldError, UnknownOptionError: The patch cannot be resolved
        """
        result = TriageResult(dry_run=dry_run)
        fields, labels = self.resolver.resolve_patch(patch)

        result.matched = self.searcher.search_issues(query)
        result.state = TriageState.MATCHED
        logger.info(f"🔎 Matched {len(result.matched)} issue(s) for query: {query}")

        for issue in result.matched:
            diff = diff_issue(issue, fields, labels)
            if diff.is_empty:
                logger.debug("%s already up to date", issue.key)
                continue
            result.diffs.append(diff)

        if dry_run:
            result.state = TriageState.DRY_RUN_REPORTED
            for diff in result.diffs:
                logger.info(
                    f"[DRY RUN] Would update #{diff.issue.number} {diff.issue.title}: "
                    f"{', '.join(diff.describe())}"
                )
            return result

        result.state = TriageState.APPLYING
        for diff in result.diffs:
            failures = apply_diff(self.writer, diff)
            if failures:
                result.failed.append(diff.issue.key)
                result.failures.extend(failures)
            else:
                result.updated_count += 1
                logger.info(f"✅ Updated #{diff.issue.number}: {', '.join(diff.describe())}")

        result.state = TriageState.PARTIALLY_FAILED if result.failed else TriageState.APPLIED
        return result


def apply_diff(writer: MutationService, diff: IssueDiff) -> list[MutationFailedError]:
    """Attempt every mutation of one issue, returning the ones that failed"""
    failures: list[MutationFailedError] = []
    issue = diff.issue

    for resolved in diff.fields:
        try:
            writer.update_field(issue, resolved)
        except (GitHubAPIError, ValueError) as e:
            failures.append(MutationFailedError(issue.key, e, action=f"set {resolved.field_name}"))
            logger.warning("Failed to set %s on %s: %s", resolved.field_name, issue.key, e)

    for label in diff.labels:
        try:
            writer.add_label(issue, label)
        except (GitHubAPIError, ValueError) as e:
            failures.append(MutationFailedError(issue.key, e, action=f"add label {label}"))
            logger.warning("Failed to add label %s to %s: %s", label, issue.key, e)

    return failures
