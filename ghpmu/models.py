"""Data model for project boards, issues and triage patches."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from ghpmu.exceptions import MutationFailedError


class FieldDataType(str, Enum):
    """Project field data types as reported by the GraphQL API"""

    TEXT = "TEXT"
    NUMBER = "NUMBER"
    SINGLE_SELECT = "SINGLE_SELECT"
    DATE = "DATE"
    ITERATION = "ITERATION"

    @classmethod
    def parse(cls, value: str) -> FieldDataType:
        """Map an API or config data type name onto the enum.

        Unknown types (TITLE, ASSIGNEES, ...) are treated as TEXT so that
        they pass through resolution unchanged.
        """
        try:
            return cls(value.upper())
        except ValueError:
            return cls.TEXT


class IssueState(str, Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


@dataclass(frozen=True)
class OptionMetadata:
    id: str
    name: str


@dataclass(frozen=True)
class FieldMetadata:
    id: str
    name: str
    data_type: FieldDataType
    options: tuple[OptionMetadata, ...] = ()

    def option_names(self) -> list[str]:
        return [option.name for option in self.options]


@dataclass(frozen=True)
class ProjectMetadata:
    """Resolved field and option identifiers for one project board.

    Fetched once per invocation (or loaded from the config snapshot) and
    passed explicitly to every component that needs it.
    """

    project_id: str
    fields: tuple[FieldMetadata, ...] = ()

    def field_names(self) -> list[str]:
        return [f.name for f in self.fields]


@dataclass(frozen=True)
class Repository:
    owner: str
    name: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    @classmethod
    def parse(cls, value: str) -> Repository:
        """Parse ``owner/name`` into a Repository

        Raises:
            ValueError: If the value does not contain both parts
        """
        owner, _, name = value.strip().partition("/")
        if not owner or not name:
            raise ValueError(f"Invalid repository '{value}': expected owner/name")
        return cls(owner=owner, name=name)

    def __str__(self) -> str:
        return self.full_name


@dataclass(frozen=True)
class IssueSummary:
    """Read-only projection of an issue used for parent/sub-issue links"""

    number: int
    title: str
    state: IssueState
    url: str
    repository: Repository

    @property
    def key(self) -> str:
        return issue_key(self.repository, self.number)


@dataclass(frozen=True)
class Issue:
    number: int
    title: str
    state: IssueState
    url: str
    repository: Repository
    body: str = ""
    field_values: Mapping[str, str] = field(default_factory=dict)
    labels: tuple[str, ...] = ()
    node_id: str = ""
    item_id: str | None = None
    parent_issue: IssueSummary | None = None
    sub_issues: tuple[IssueSummary, ...] = ()

    @property
    def key(self) -> str:
        return issue_key(self.repository, self.number)

    def field_value(self, field_name: str) -> str | None:
        """Current value of a project field, looked up case-insensitively"""
        wanted = field_name.lower()
        for name, value in self.field_values.items():
            if name.lower() == wanted:
                return value
        return None

    def has_label(self, label: str) -> bool:
        wanted = label.lower()
        return any(existing.lower() == wanted for existing in self.labels)

    def sub_issue_progress(self) -> tuple[int, int]:
        """(closed, total) across the issue's sub-issues"""
        closed = sum(1 for sub in self.sub_issues if sub.state is IssueState.CLOSED)
        return closed, len(self.sub_issues)

    def summary(self) -> IssueSummary:
        return IssueSummary(
            number=self.number,
            title=self.title,
            state=self.state,
            url=self.url,
            repository=self.repository,
        )


def issue_key(repository: Repository, number: int) -> str:
    """Identifier used in tracked-key sets and failed lists: ``owner/name#N``"""
    return f"{repository.full_name}#{number}"


class PatchKind(str, Enum):
    FIELD = "FIELD"
    LABEL = "LABEL"


@dataclass(frozen=True)
class PatchEntry:
    kind: PatchKind
    key: str
    value: str

    def __str__(self) -> str:
        return f"{self.key}:{self.value}"


@dataclass(frozen=True)
class TriagePatch:
    """Ordered field/label changes parsed from an apply string or a rule"""

    entries: tuple[PatchEntry, ...] = ()

    @property
    def fields(self) -> list[PatchEntry]:
        return [e for e in self.entries if e.kind is PatchKind.FIELD]

    @property
    def labels(self) -> list[str]:
        return [e.value for e in self.entries if e.kind is PatchKind.LABEL]

    @property
    def is_empty(self) -> bool:
        return not self.entries

    def __str__(self) -> str:
        return ",".join(str(e) for e in self.entries)


@dataclass(frozen=True)
class TriageConfig:
    name: str
    query: str
    apply: TriagePatch = field(default_factory=TriagePatch)


@dataclass(frozen=True)
class ResolvedField:
    """A field change translated to platform identifiers.

    ``value`` is what the mutation sends (the option ID for single-select
    fields, the raw value otherwise). ``display_value`` is the human-readable
    name used to compare against an issue's current value.
    """

    field_id: str
    field_name: str
    data_type: FieldDataType
    value: str
    display_value: str


@dataclass
class IssueDiff:
    issue: Issue
    fields: list[ResolvedField] = field(default_factory=list)
    labels: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.fields and not self.labels

    def describe(self) -> list[str]:
        changes = [f"{f.field_name} → {f.display_value}" for f in self.fields]
        changes.extend(f"+label {label}" for label in self.labels)
        return changes


class TriageState(str, Enum):
    COLLECTING = "collecting"
    MATCHED = "matched"
    DRY_RUN_REPORTED = "dry-run"
    APPLYING = "applying"
    APPLIED = "applied"
    PARTIALLY_FAILED = "partially-failed"


@dataclass
class TriageResult:
    dry_run: bool
    state: TriageState = TriageState.COLLECTING
    matched: list[Issue] = field(default_factory=list)
    diffs: list[IssueDiff] = field(default_factory=list)
    updated_count: int = 0
    failed: list[str] = field(default_factory=list)
    failures: list[MutationFailedError] = field(default_factory=list)

    @property
    def unchanged_count(self) -> int:
        return len(self.matched) - len(self.diffs)

    @property
    def success(self) -> bool:
        return not self.failed


@dataclass
class IntakeResult:
    dry_run: bool
    untracked: list[Issue] = field(default_factory=list)
    added_count: int = 0
    failed: list[str] = field(default_factory=list)
    failures: list[MutationFailedError] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failed


@dataclass
class SplitResult:
    parent: Issue
    tasks: list[str]
    dry_run: bool
    created: list[Issue] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    failures: list[MutationFailedError] = field(default_factory=list)

    @property
    def status(self) -> str:
        if not self.tasks:
            return "no-tasks"
        if self.dry_run:
            return "dry-run"
        return "completed"


@dataclass
class CreateResult:
    repository: Repository
    title: str
    dry_run: bool
    changes: list[str] = field(default_factory=list)
    issue: Issue | None = None
    failures: list[MutationFailedError] = field(default_factory=list)

    @property
    def status(self) -> str:
        if self.dry_run:
            return "dry-run"
        return "partially-failed" if self.failures else "created"


class IssueSearcher(Protocol):
    def search_issues(self, query: str) -> list[Issue]: ...


class MetadataSource(Protocol):
    def fetch_project_metadata(self, owner: str, number: int) -> ProjectMetadata: ...


class MutationService(Protocol):
    def update_field(self, issue: Issue, resolved: ResolvedField) -> None: ...

    def add_label(self, issue: Issue, label: str) -> None: ...

    def add_to_project(self, issue: Issue) -> str: ...

    def create_issue(
        self,
        repository: Repository,
        title: str,
        body: str = "",
        parent: Issue | None = None,
    ) -> Issue: ...
