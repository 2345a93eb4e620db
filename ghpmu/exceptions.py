"""Custom exception classes for ghpmu.

This module defines the exception hierarchy for GitHub API errors and for
the request errors raised by the reconciliation components (field
resolution, apply-string parsing, triage rule lookup, mutation failures).
"""

from __future__ import annotations


class GitHubAPIError(Exception):
    """Base exception for GitHub API errors"""

    def __init__(
        self, message: str, status_code: int | None = None, response_text: str | None = None
    ):
        self.status_code = status_code
        self.response_text = response_text
        super().__init__(message)


class GitHubAuthenticationError(GitHubAPIError):
    """Raised when the token is missing, invalid or lacks scopes (401/403)"""

    pass


class GitHubNotFoundError(GitHubAPIError):
    """Raised when a project, repository or issue is not found (404 or NOT_FOUND)"""

    pass


class GitHubRateLimitError(GitHubAPIError):
    """Raised when rate limit is exceeded (429) after retries"""

    pass


class GitHubServerError(GitHubAPIError):
    """Raised when GitHub's servers return an error (500/502/503/504)"""

    pass


class GitHubGraphQLError(GitHubAPIError):
    """Raised when a GraphQL response carries an ``errors`` payload.

    Attributes:
        errors: The raw list of error objects returned by the API
    """

    def __init__(self, message: str, errors: list[dict] | None = None):
        self.errors = errors or []
        super().__init__(message, status_code=200, response_text=None)


class PmuError(Exception):
    """Base exception for requests that cannot be satisfied.

    Every subclass except MutationFailedError is fatal to the current
    operation and is raised before any mutation is attempted.
    """

    pass


class ConfigError(PmuError):
    """Raised when the project configuration file is missing or invalid.

    Attributes:
        path: The configuration file path involved (if known)
    """

    def __init__(self, message: str, path: str | None = None):
        self.path = path
        super().__init__(message)


class UnknownFieldError(PmuError):
    """Raised when a field name does not exist on the project board.

    Attributes:
        field: The field name as the caller supplied it
    """

    def __init__(self, field: str, available: list[str] | None = None):
        self.field = field
        self.available = available or []
        message = f"Unknown field: '{field}'"
        if self.available:
            message += f". Available fields: {', '.join(self.available)}"
        super().__init__(message)


class UnknownOptionError(PmuError):
    """Raised when a value is not one of a single-select field's options.

    Attributes:
        field: The field the value was resolved against
        value: The value as the caller supplied it
        valid: Option names accepted by the field
    """

    def __init__(self, field: str, value: str, valid: list[str] | None = None):
        self.field = field
        self.value = value
        self.valid = valid or []
        message = f"Unknown option '{value}' for field '{field}'"
        if self.valid:
            message += f". Valid options: {', '.join(self.valid)}"
        super().__init__(message)


class ConfigNotFoundError(PmuError):
    """Raised when a named triage rule is not defined in the configuration.

    Attributes:
        name: The requested rule name
        available: Rule names that are defined
    """

    def __init__(self, name: str, available: list[str] | None = None):
        self.name = name
        self.available = available or []
        message = f"Triage config '{name}' not found"
        if self.available:
            message += f". Available configs: {', '.join(self.available)}"
        super().__init__(message)


class NoMatchCriteriaError(PmuError):
    """Raised when triage is requested with neither a rule name nor a query"""

    def __init__(self, message: str | None = None):
        super().__init__(
            message or "Specify a triage config name or --query to select issues"
        )


class ConflictingMatchCriteriaError(PmuError):
    """Raised when triage is requested with both a rule name and a query"""

    def __init__(self, name: str, other: str):
        self.name = name
        self.other = other
        super().__init__(
            f"Cannot combine triage config '{name}' with {other}. Use one or the other."
        )


class MalformedApplyTokenError(PmuError):
    """Raised when an apply-string token is not of the form ``key:value``.

    Attributes:
        token: The offending token, whitespace trimmed
    """

    def __init__(self, token: str, reason: str = "expected key:value"):
        self.token = token
        super().__init__(f"Malformed apply token '{token}': {reason}")


class MutationFailedError(PmuError):
    """A single mutation against a single issue failed.

    Non-fatal to the batch: the engines accumulate these into their result's
    failure list and keep processing the remaining issues.

    Attributes:
        issue_ref: Identifier of the issue (``owner/name#number``) or task title
        cause: The underlying exception
        action: Short description of the attempted mutation
    """

    def __init__(self, issue_ref: str, cause: Exception, action: str = "mutation"):
        self.issue_ref = issue_ref
        self.cause = cause
        self.action = action
        super().__init__(f"{action} failed for {issue_ref}: {cause}")
