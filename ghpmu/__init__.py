"""Reconcile GitHub issues with a GitHub Projects board."""

from __future__ import annotations

__version__ = "0.1.0"

# Import board writer (mutation service)
from ghpmu.board_writer import BoardWriter

# Import checklist decomposer
from ghpmu.checklist import parse_checklist

# Import CLI
from ghpmu.cli import main

# Import configuration layer
from ghpmu.config import ProjectConfig, find_config, load_config, write_config

# Import issue creation
from ghpmu.create import IssueCreator

# Import exceptions
from ghpmu.exceptions import (
    ConfigError,
    ConfigNotFoundError,
    ConflictingMatchCriteriaError,
    GitHubAPIError,
    GitHubAuthenticationError,
    GitHubGraphQLError,
    GitHubNotFoundError,
    GitHubRateLimitError,
    GitHubServerError,
    MalformedApplyTokenError,
    MutationFailedError,
    NoMatchCriteriaError,
    PmuError,
    UnknownFieldError,
    UnknownOptionError,
)

# Import GitHub client
from ghpmu.github_client import GitHubClient, resolve_token

# Import intake reconciler
from ghpmu.intake import IntakeReconciler, reconcile

# Import logging configuration
from ghpmu.logging_config import setup_logging

# Import rate limiter
from ghpmu.rate_limiter import RateLimiter

# Import field resolver
from ghpmu.resolver import FieldResolver, resolve

# Import sub-issue creation
from ghpmu.split import SplitRunner

# Import triage engine
from ghpmu.triage import ScopedSearcher, TriageEngine

# Import issue view
from ghpmu.view import issue_document, render_issue

__all__ = [
    # Core components
    "resolve",
    "FieldResolver",
    "TriageEngine",
    "IntakeReconciler",
    "reconcile",
    "parse_checklist",
    "SplitRunner",
    "IssueCreator",
    "ScopedSearcher",
    "render_issue",
    "issue_document",
    # GitHub access
    "GitHubClient",
    "BoardWriter",
    "RateLimiter",
    "resolve_token",
    # Configuration
    "ProjectConfig",
    "find_config",
    "load_config",
    "write_config",
    "setup_logging",
    # Exceptions
    "PmuError",
    "ConfigError",
    "ConfigNotFoundError",
    "ConflictingMatchCriteriaError",
    "MalformedApplyTokenError",
    "MutationFailedError",
    "NoMatchCriteriaError",
    "UnknownFieldError",
    "UnknownOptionError",
    "GitHubAPIError",
    "GitHubAuthenticationError",
    "GitHubGraphQLError",
    "GitHubNotFoundError",
    "GitHubRateLimitError",
    "GitHubServerError",
    # CLI
    "main",
]
