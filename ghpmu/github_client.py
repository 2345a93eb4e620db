"""GitHub GraphQL client with rate limiting and retry logic."""

from __future__ import annotations

import logging
import os
import subprocess
import time
from collections.abc import Callable
from typing import Any, cast

import requests

from ghpmu.exceptions import (
    GitHubAPIError,
    GitHubAuthenticationError,
    GitHubGraphQLError,
    GitHubNotFoundError,
    GitHubRateLimitError,
    GitHubServerError,
)
from ghpmu.models import (
    FieldDataType,
    FieldMetadata,
    Issue,
    IssueState,
    IssueSummary,
    OptionMetadata,
    ProjectMetadata,
    Repository,
    issue_key,
)
from ghpmu.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

GITHUB_GRAPHQL_URL = "https://api.github.com/graphql"

_SUMMARY_FIELDS = "number title state url repository { name owner { login } }"

ISSUE_FIELDS = f"""
fragment IssueFields on Issue {{
  id
  {_SUMMARY_FIELDS}
  body
  labels(first: 50) {{ nodes {{ name }} }}
  parent {{ {_SUMMARY_FIELDS} }}
  subIssues(first: 50) {{ nodes {{ {_SUMMARY_FIELDS} }} }}
  projectItems(first: 20) {{
    nodes {{
      id
      project {{ id }}
      fieldValues(first: 50) {{
        nodes {{
          ... on ProjectV2ItemFieldSingleSelectValue {{
            name
            field {{ ... on ProjectV2FieldCommon {{ name }} }}
          }}
          ... on ProjectV2ItemFieldTextValue {{
            text
            field {{ ... on ProjectV2FieldCommon {{ name }} }}
          }}
          ... on ProjectV2ItemFieldNumberValue {{
            number
            field {{ ... on ProjectV2FieldCommon {{ name }} }}
          }}
          ... on ProjectV2ItemFieldDateValue {{
            date
            field {{ ... on ProjectV2FieldCommon {{ name }} }}
          }}
          ... on ProjectV2ItemFieldIterationValue {{
            title
            field {{ ... on ProjectV2FieldCommon {{ name }} }}
          }}
        }}
      }}
    }}
  }}
}}
"""

SEARCH_ISSUES_QUERY = (
    """
query($query: String!, $cursor: String) {
  search(query: $query, type: ISSUE, first: 50, after: $cursor) {
    pageInfo { hasNextPage endCursor }
    nodes { ... on Issue { ...IssueFields } }
  }
}
"""
    + ISSUE_FIELDS
)

GET_ISSUE_QUERY = (
    """
query($owner: String!, $name: String!, $number: Int!) {
  repository(owner: $owner, name: $name) {
    issue(number: $number) { ...IssueFields }
  }
}
"""
    + ISSUE_FIELDS
)

PROJECT_FIELDS = """
fragment ProjectFields on ProjectV2 {
  id
  title
  fields(first: 100) {
    nodes {
      ... on ProjectV2Field { id name dataType }
      ... on ProjectV2SingleSelectField { id name dataType options { id name } }
      ... on ProjectV2IterationField { id name dataType }
    }
  }
}
"""

ORG_PROJECT_QUERY = (
    """
query($owner: String!, $number: Int!) {
  organization(login: $owner) { projectV2(number: $number) { ...ProjectFields } }
}
"""
    + PROJECT_FIELDS
)

USER_PROJECT_QUERY = (
    """
query($owner: String!, $number: Int!) {
  user(login: $owner) { projectV2(number: $number) { ...ProjectFields } }
}
"""
    + PROJECT_FIELDS
)

PROJECT_ITEMS_QUERY = """
query($projectId: ID!, $cursor: String) {
  node(id: $projectId) {
    ... on ProjectV2 {
      items(first: 100, after: $cursor) {
        pageInfo { hasNextPage endCursor }
        nodes {
          content { ... on Issue { number repository { name owner { login } } } }
        }
      }
    }
  }
}
"""

REPOSITORY_QUERY = """
query($owner: String!, $name: String!) {
  repository(owner: $owner, name: $name) { id }
}
"""

LABEL_QUERY = """
query($owner: String!, $name: String!, $label: String!) {
  repository(owner: $owner, name: $name) { label(name: $label) { id } }
}
"""

VIEWER_QUERY = """
query { viewer { login } }
"""


def resolve_token() -> str | None:
    """Find a GitHub token: $GITHUB_TOKEN, $GH_TOKEN, then ``gh auth token``"""
    for var in ("GITHUB_TOKEN", "GH_TOKEN"):
        token = os.getenv(var)
        if token:
            return token.strip()

    try:
        result = subprocess.run(
            ["gh", "auth", "token"], capture_output=True, text=True, timeout=10
        )
    except (FileNotFoundError, subprocess.TimeoutExpired):
        logger.debug("gh CLI not available for token discovery")
        return None

    if result.returncode != 0:
        logger.debug("gh auth token failed: %s", result.stderr.strip())
        return None
    return result.stdout.strip() or None


class GitHubClient:
    """Read issues and project boards through the GitHub GraphQL API

    GitHub allows 5000 GraphQL points per hour plus secondary limits on bursts
    of requests. We use 5 req/sec with a burst allowance of 10 and also pause
    when the API reports the primary limit is exhausted.
    """

    def __init__(
        self,
        token: str,
        api_url: str = GITHUB_GRAPHQL_URL,
        project_id: str | None = None,
        verify_ssl: bool = True,
    ):
        self.token = token
        self.api_url = api_url
        self.verify_ssl = verify_ssl
        # Field values are read from this project's item on each issue
        self.project_id = project_id

        self.rate_limiter = RateLimiter(requests_per_second=5.0, burst_allowance=10)

    def _request(self, query: str, variables: dict | None = None) -> dict:
        """Execute a GraphQL document with rate limiting and retry logic"""
        if not self.rate_limiter.acquire(timeout=30.0):
            raise GitHubRateLimitError(
                "Rate limiter timeout - too many requests queued or the GitHub "
                "rate limit has not reset yet",
                status_code=None,
                response_text=None,
            )

        headers = {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/vnd.github+json",
            "GraphQL-Features": "sub_issues",
        }
        payload = {"query": query, "variables": variables or {}}

        # Retry logic with exponential backoff for transient failures
        max_retries = 3
        base_delay = 1.0
        retry_statuses = {429, 500, 502, 503, 504}

        last_exception: requests.RequestException | None = None
        for attempt in range(max_retries):
            try:
                response = requests.post(
                    self.api_url,
                    json=payload,
                    headers=headers,
                    timeout=30,
                    verify=self.verify_ssl,
                )
                self.rate_limiter.observe(response.headers)
                response.raise_for_status()
                return self._unwrap(cast(dict, response.json()))

            except requests.HTTPError as e:
                last_exception = e
                status_code = e.response.status_code if e.response is not None else 0
                response_text = e.response.text if e.response is not None else ""

                if status_code not in retry_statuses:
                    if status_code == 401:
                        raise GitHubAuthenticationError(
                            "Invalid GitHub token. Check GITHUB_TOKEN / GH_TOKEN or run "
                            "'gh auth login'.",
                            status_code=status_code,
                            response_text=response_text,
                        ) from e
                    elif status_code == 403:
                        raise GitHubAuthenticationError(
                            "Access forbidden. Your token may be missing the 'project' "
                            "or 'repo' scope (run 'gh auth refresh -s project').",
                            status_code=status_code,
                            response_text=response_text,
                        ) from e
                    elif status_code == 404:
                        raise GitHubNotFoundError(
                            f"GraphQL endpoint not found: {self.api_url}",
                            status_code=status_code,
                            response_text=response_text,
                        ) from e
                    else:
                        raise GitHubAPIError(
                            f"HTTP {status_code} error from GitHub: {response_text[:200]}",
                            status_code=status_code,
                            response_text=response_text,
                        ) from e

                if attempt < max_retries - 1:
                    delay = base_delay * (2**attempt)  # Exponential backoff: 1s, 2s
                    logger.debug("HTTP %d from GitHub, retrying in %.0fs", status_code, delay)
                    time.sleep(delay)

            except requests.RequestException as e:
                last_exception = e
                if attempt < max_retries - 1:
                    delay = base_delay * (2**attempt)
                    time.sleep(delay)
                else:
                    raise GitHubAPIError(
                        f"Network error after {max_retries} attempts: {str(e)}\n"
                        "Check your internet connection and try again.",
                        status_code=None,
                        response_text=None,
                    ) from e

        # All retries exhausted for transient HTTP errors
        if last_exception and isinstance(last_exception, requests.HTTPError):
            failed = last_exception.response
            status_code = failed.status_code if failed is not None else 0
            response_text = failed.text if failed is not None else ""

            if status_code == 429:
                raise GitHubRateLimitError(
                    f"Rate limit exceeded after {max_retries} retry attempts.\n"
                    "Wait a few minutes and try again.",
                    status_code=status_code,
                    response_text=response_text,
                ) from last_exception
            elif status_code in {500, 502, 503, 504}:
                raise GitHubServerError(
                    f"GitHub server error (HTTP {status_code}) persisted after "
                    f"{max_retries} retries. Try again later.",
                    status_code=status_code,
                    response_text=response_text,
                ) from last_exception

        if last_exception:
            raise GitHubAPIError(
                f"Request failed after {max_retries} retries: {str(last_exception)}",
                status_code=None,
                response_text=None,
            ) from last_exception

        raise RuntimeError("Request failed after retries")

    @staticmethod
    def _unwrap(body: dict) -> dict:
        """Return the ``data`` member, raising on a GraphQL ``errors`` payload"""
        errors = body.get("errors")
        if errors:
            messages = "; ".join(str(err.get("message", err)) for err in errors)
            if any(err.get("type") == "NOT_FOUND" for err in errors):
                raise GitHubNotFoundError(messages, status_code=200, response_text=str(errors))
            raise GitHubGraphQLError(f"GraphQL error: {messages}", errors=errors)
        return cast(dict, body.get("data") or {})

    def _paginate(
        self,
        query: str,
        variables: dict,
        connection: Callable[[dict], dict | None],
    ) -> list[dict]:
        """Follow ``pageInfo.endCursor`` until ``hasNextPage`` is false

        Args:
            query: GraphQL document taking a ``$cursor`` variable
            variables: Variables other than the cursor
            connection: Picks the connection object out of the response data

        Returns:
            All connection nodes across all pages
        """
        nodes: list[dict] = []
        cursor: str | None = None

        while True:
            data = self._request(query, {**variables, "cursor": cursor})
            page = connection(data)
            if not page:
                break

            nodes.extend(node for node in page.get("nodes") or [] if node)

            page_info = page.get("pageInfo") or {}
            if not page_info.get("hasNextPage") or not page_info.get("endCursor"):
                break
            cursor = page_info["endCursor"]

        return nodes

    def mutate(self, mutation: str, variables: dict | None = None) -> dict:
        """Execute a mutation and return its ``data``"""
        return self._request(mutation, variables)

    def search_issues(self, query: str) -> list[Issue]:
        """Run an issue search; the query text is passed through untouched"""
        nodes = self._paginate(
            SEARCH_ISSUES_QUERY, {"query": query}, lambda data: data.get("search")
        )
        issues = [self._parse_issue(node) for node in nodes if node.get("number") is not None]
        logger.debug("Search %r matched %d issues", query, len(issues))
        return issues

    def get_issue(self, repository: Repository, number: int) -> Issue:
        """Fetch one issue with body, labels, relationships and field values

        Raises:
            GitHubNotFoundError: If the repository or issue does not exist
        """
        data = self._request(
            GET_ISSUE_QUERY,
            {"owner": repository.owner, "name": repository.name, "number": number},
        )
        node = (data.get("repository") or {}).get("issue")
        if not node:
            raise GitHubNotFoundError(
                f"Issue {issue_key(repository, number)} not found", status_code=404
            )
        return self._parse_issue(node)

    def fetch_project_metadata(self, owner: str, number: int) -> ProjectMetadata:
        """Fetch field and option identifiers for a project board

        Tries the owner as an organization first, then as a user.

        Raises:
            GitHubNotFoundError: If neither owner kind has that project
        """
        variables = {"owner": owner, "number": number}
        project: dict | None = None
        for query, owner_kind in (
            (ORG_PROJECT_QUERY, "organization"),
            (USER_PROJECT_QUERY, "user"),
        ):
            try:
                data = self._request(query, variables)
            except GitHubNotFoundError:
                logger.debug("No %s project %s/%d", owner_kind, owner, number)
                continue
            project = (data.get(owner_kind) or {}).get("projectV2")
            if project:
                break

        if not project:
            raise GitHubNotFoundError(
                f"Project {owner}/{number} not found.\n"
                "Check the owner and project number, and that your token has the "
                "'project' scope.",
                status_code=404,
            )

        fields = []
        for node in (project.get("fields") or {}).get("nodes") or []:
            if not node or not node.get("id"):
                continue
            options = tuple(
                OptionMetadata(id=opt["id"], name=opt["name"])
                for opt in node.get("options") or []
            )
            fields.append(
                FieldMetadata(
                    id=node["id"],
                    name=node["name"],
                    data_type=FieldDataType.parse(node.get("dataType") or "TEXT"),
                    options=options,
                )
            )

        logger.debug("Project %s has %d fields", project["id"], len(fields))
        return ProjectMetadata(project_id=project["id"], fields=tuple(fields))

    def get_tracked_issue_keys(self, project_id: str) -> set[str]:
        """Identifiers (``owner/name#N``) of every issue already on the board"""
        nodes = self._paginate(
            PROJECT_ITEMS_QUERY,
            {"projectId": project_id},
            lambda data: (data.get("node") or {}).get("items"),
        )
        keys = set()
        for node in nodes:
            content = node.get("content") or {}
            if content.get("number") is None:
                # Draft issues and pull requests have no issue content
                continue
            keys.add(issue_key(_parse_repository(content["repository"]), content["number"]))
        return keys

    def get_repository_id(self, repository: Repository) -> str:
        data = self._request(
            REPOSITORY_QUERY, {"owner": repository.owner, "name": repository.name}
        )
        repo = data.get("repository")
        if not repo:
            raise GitHubNotFoundError(f"Repository {repository} not found", status_code=404)
        return cast(str, repo["id"])

    def get_viewer_login(self) -> str:
        """Login of the user the token belongs to"""
        data = self._request(VIEWER_QUERY)
        return cast(str, (data.get("viewer") or {}).get("login", ""))

    def get_label_id(self, repository: Repository, label: str) -> str | None:
        """Node ID of a repository label, or None if the label does not exist"""
        data = self._request(
            LABEL_QUERY,
            {"owner": repository.owner, "name": repository.name, "label": label},
        )
        found = (data.get("repository") or {}).get("label")
        return found["id"] if found else None

    def _parse_issue(self, node: dict) -> Issue:
        item_id, field_values = self._project_item(node)
        parent = node.get("parent")
        return Issue(
            number=node["number"],
            title=node.get("title", ""),
            state=IssueState(node.get("state", "OPEN")),
            url=node.get("url", ""),
            repository=_parse_repository(node["repository"]),
            body=node.get("body") or "",
            field_values=field_values,
            labels=tuple(
                label["name"] for label in (node.get("labels") or {}).get("nodes") or []
            ),
            node_id=node.get("id", ""),
            item_id=item_id,
            parent_issue=_parse_summary(parent) if parent else None,
            sub_issues=tuple(
                _parse_summary(sub) for sub in (node.get("subIssues") or {}).get("nodes") or []
            ),
        )

    def _project_item(self, node: dict) -> tuple[str | None, dict[str, str]]:
        """Pick this project's item from an issue and flatten its field values"""
        if not self.project_id:
            return None, {}

        for item in (node.get("projectItems") or {}).get("nodes") or []:
            if (item.get("project") or {}).get("id") != self.project_id:
                continue
            values: dict[str, str] = {}
            for value in (item.get("fieldValues") or {}).get("nodes") or []:
                field_name = ((value or {}).get("field") or {}).get("name")
                if not field_name:
                    continue
                text = _field_value_text(value)
                if text is not None:
                    values[field_name] = text
            return item["id"], values

        return None, {}


def _field_value_text(value: dict) -> str | None:
    for key in ("name", "text", "date", "title"):
        if value.get(key) is not None:
            return str(value[key])
    number = value.get("number")
    if number is not None:
        return str(int(number)) if float(number).is_integer() else str(number)
    return None


def _parse_repository(node: dict) -> Repository:
    return Repository(owner=node["owner"]["login"], name=node["name"])


def _parse_summary(node: dict) -> IssueSummary:
    return IssueSummary(
        number=node["number"],
        title=node.get("title", ""),
        state=IssueState(node.get("state", "OPEN")),
        url=node.get("url", ""),
        repository=_parse_repository(node["repository"]),
    )
