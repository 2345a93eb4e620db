"""CLI entry point for ghpmu."""

from __future__ import annotations

import argparse
import json
import logging
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ghpmu import __version__
from ghpmu.board_writer import BoardWriter
from ghpmu.config import (
    InitConfig,
    ProjectConfig,
    find_config,
    load_config,
    parse_git_remote,
    split_repository,
    write_config,
)
from ghpmu.create import IssueCreator, build_create_patch
from ghpmu.exceptions import ConfigError, GitHubAPIError, GitHubNotFoundError, PmuError
from ghpmu.github_client import GitHubClient, resolve_token
from ghpmu.intake import IntakeReconciler, scope_query
from ghpmu.logging_config import setup_logging
from ghpmu.metadata_cache import load_project_metadata
from ghpmu.models import Issue, ProjectMetadata, Repository
from ghpmu.patch import parse_apply
from ghpmu.resolver import FieldResolver
from ghpmu.split import SplitRunner, parse_issue_reference, tasks_from_source
from ghpmu.triage import ScopedSearcher, TriageEngine, select_triage_source
from ghpmu.view import issue_document, render_issue

logger = logging.getLogger("ghpmu.cli")

EPILOG = """
Examples:
    # Create .gh-pmu.yml for project #5 of the current repository's owner
    ghpmu init --number 5

    # Run a named triage rule, previewing first
    ghpmu triage tracked --dry-run
    ghpmu triage tracked

    # Ad-hoc triage
    ghpmu triage --query "is:issue is:open label:bug" --apply "priority:p1,label:triaged"

    # Issues in the configured repositories that are not on the board
    ghpmu intake
    ghpmu intake --apply "status:backlog"

    # Create sub-issues from the parent's checklist
    ghpmu split 42 --from body

    # New issue on the board, then inspect it
    ghpmu create --title "Fix login" --status ready --label bug
    ghpmu view 42

Authentication: $GITHUB_TOKEN, $GH_TOKEN, or the gh CLI ('gh auth login').
"""


@dataclass
class Context:
    """What every board command needs, loaded once per invocation"""

    config: ProjectConfig
    client: GitHubClient
    metadata: ProjectMetadata
    resolver: FieldResolver

    def writer(self, dry_run: bool) -> BoardWriter:
        return BoardWriter(self.client, self.metadata.project_id, dry_run=dry_run)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ghpmu",
        description="Keep GitHub issues and a GitHub Projects board in sync",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("-q", "--quiet", action="store_true", help="Errors only")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
        help="Explicit log level",
    )
    parser.add_argument("--log-file", help="Also write logs to this file")
    parser.add_argument("--config", help="Path to .gh-pmu.yml (default: search upwards)")
    parser.add_argument(
        "--no-verify-ssl", action="store_true", help="Disable TLS certificate verification"
    )

    subparsers = parser.add_subparsers(dest="command", metavar="<command>")
    subparsers.required = True

    init = subparsers.add_parser("init", help="Create .gh-pmu.yml for a project board")
    init.add_argument("--owner", help="Project owner (default: owner of the git remote)")
    init.add_argument("--number", type=int, help="Project number")
    init.add_argument(
        "--repo",
        action="append",
        dest="repos",
        metavar="OWNER/NAME",
        help="Repository in scope (repeatable; default: the git remote)",
    )
    init.add_argument("--name", default="", help="Project display name")
    init.add_argument("--dir", default=".", help="Directory to write the file into")
    init.set_defaults(handler=cmd_init)

    triage = subparsers.add_parser("triage", help="Apply a triage rule to matching issues")
    triage.add_argument("name", nargs="?", help="Triage rule from the config file")
    triage.add_argument("--query", help="Ad-hoc search query")
    triage.add_argument("--apply", help="Ad-hoc changes, e.g. 'status:backlog,label:triaged'")
    triage.add_argument("--list", action="store_true", help="List the configured rules")
    _add_run_flags(triage)
    triage.set_defaults(handler=cmd_triage)

    intake = subparsers.add_parser(
        "intake", aliases=["in"], help="Find issues that are not on the board yet"
    )
    intake.add_argument(
        "--apply",
        nargs="?",
        const="",
        default=None,
        help="Add the untracked issues, optionally setting fields (default: config defaults)",
    )
    _add_run_flags(intake)
    intake.set_defaults(handler=cmd_intake)

    split = subparsers.add_parser("split", help="Create sub-issues from a checklist")
    split.add_argument("issue", help="Parent issue: 123, owner/name#123 or URL")
    split.add_argument("tasks", nargs="*", help="Task titles")
    split.add_argument(
        "--from", dest="source", metavar="body|PATH", help="Read tasks from a checklist"
    )
    _add_run_flags(split)
    split.set_defaults(handler=cmd_split)

    create = subparsers.add_parser("create", help="Create an issue and add it to the board")
    create.add_argument("-t", "--title", help="Issue title")
    create.add_argument("-b", "--body", default="", help="Issue body")
    create.add_argument("-s", "--status", help="Status (default: config defaults)")
    create.add_argument("-p", "--priority", help="Priority (default: config defaults)")
    create.add_argument(
        "-l",
        "--label",
        action="append",
        dest="labels",
        default=[],
        help="Label to add after the config default labels (repeatable)",
    )
    create.add_argument(
        "--repo", metavar="OWNER/NAME", help="Repository (default: first configured)"
    )
    _add_run_flags(create)
    create.set_defaults(handler=cmd_create)

    view = subparsers.add_parser("view", help="Show an issue with its project fields")
    view.add_argument("issue", help="Issue: 123, #123, owner/name#123 or URL")
    view.add_argument("--json", action="store_true", help="Print a JSON document")
    view.add_argument(
        "--refresh", action="store_true", help="Refetch project metadata from GitHub"
    )
    view.set_defaults(handler=cmd_view)

    return parser


def _add_run_flags(subparser: argparse.ArgumentParser) -> None:
    subparser.add_argument("-n", "--dry-run", action="store_true", help="Preview only")
    subparser.add_argument("--json", action="store_true", help="Print a JSON document")
    subparser.add_argument(
        "--refresh", action="store_true", help="Refetch project metadata from GitHub"
    )


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    log_level = "INFO"
    if args.verbose:
        log_level = "DEBUG"
    elif args.quiet:
        log_level = "ERROR"
    elif args.log_level:
        log_level = args.log_level
    setup_logging(log_level, args.log_file)

    if args.no_verify_ssl:
        import urllib3

        urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
        logger.info("🔓 SSL verification disabled")

    try:
        return int(args.handler(args))
    except (PmuError, GitHubAPIError) as e:
        logger.error(f"❌ {e}")
        return 1
    except KeyboardInterrupt:
        logger.error("\n⚠️  Interrupted")
        return 130


def _client(args: argparse.Namespace) -> GitHubClient:
    token = resolve_token()
    if not token:
        raise PmuError(
            "No GitHub token found.\n"
            "Set GITHUB_TOKEN or GH_TOKEN, or authenticate with 'gh auth login'."
        )
    return GitHubClient(token, verify_ssl=not args.no_verify_ssl)


def _load_config(args: argparse.Namespace) -> ProjectConfig:
    path = Path(args.config) if args.config else find_config()
    if path is None:
        raise ConfigError("No .gh-pmu.yml found. Run 'ghpmu init' to create one.")
    return load_config(path)


def _context(args: argparse.Namespace, config: ProjectConfig | None = None) -> Context:
    config = config or _load_config(args)
    client = _client(args)
    metadata = load_project_metadata(config, client, refresh=args.refresh)
    client.project_id = metadata.project_id
    return Context(
        config=config,
        client=client,
        metadata=metadata,
        resolver=FieldResolver(metadata, config.aliases),
    )


def _print_json(document: dict[str, Any]) -> None:
    print(json.dumps(document, indent=2))


def _issue_json(issue: Issue) -> dict[str, Any]:
    return {
        "number": issue.number,
        "title": issue.title,
        "state": issue.state.value,
        "url": issue.url,
        "repository": issue.repository.full_name,
    }


def _log_failures(failures: list) -> None:
    for failure in failures:
        logger.error(f"   ❌ {failure}")


def _default_repository(config: ProjectConfig) -> Repository | None:
    return config.repositories[0] if config.repositories else None


def detect_repository() -> str:
    """``owner/name`` of the ``origin`` remote, or ``""`` outside a GitHub checkout"""
    try:
        result = subprocess.run(
            ["git", "remote", "get-url", "origin"],
            capture_output=True,
            text=True,
            timeout=10,
        )
    except (FileNotFoundError, subprocess.TimeoutExpired):
        return ""
    if result.returncode != 0:
        return ""
    return parse_git_remote(result.stdout)


def cmd_init(args: argparse.Namespace) -> int:
    repositories = list(args.repos or [])
    if not repositories:
        detected = detect_repository()
        if detected:
            logger.info(f"🔎 Detected repository: {detected}")
            repositories.append(detected)

    for repo in repositories:
        owner, name = split_repository(repo)
        if not owner or not name:
            raise ConfigError(f"Invalid repository '{repo}': expected owner/name")

    owner = args.owner or (split_repository(repositories[0])[0] if repositories else "")
    if not owner:
        raise ConfigError("Could not determine the project owner. Pass --owner.")
    if not args.number or args.number < 1:
        raise ConfigError("A positive project number is required. Pass --number.")

    client = _client(args)
    metadata = client.fetch_project_metadata(owner, args.number)
    logger.info(f"✅ Found project {owner}/{args.number} with {len(metadata.fields)} fields")

    init_config = InitConfig(
        project_name=args.name,
        project_owner=owner,
        project_number=args.number,
        repositories=repositories,
    )
    write_config(args.dir, init_config, metadata)
    return 0


def cmd_triage(args: argparse.Namespace) -> int:
    if args.list:
        config = _load_config(args)
        rules = config.triage_rules
        if args.json:
            _print_json(
                {
                    "rules": [
                        {"name": name, "query": rule.query, "apply": str(rule.apply)}
                        for name, rule in rules.items()
                    ]
                }
            )
            return 0
        if not rules:
            logger.info("No triage rules configured")
        for name, rule in rules.items():
            logger.info(f"{name}: {rule.query} -> {rule.apply or '(no changes)'}")
        return 0

    config = _load_config(args)
    source = select_triage_source(args.name, args.query, args.apply, config)
    ctx = _context(args, config)
    logger.info(f"🔎 Running triage '{source.name}'")

    searcher = ScopedSearcher(ctx.client, ctx.config.repositories)
    engine = TriageEngine(searcher, ctx.writer(args.dry_run), ctx.resolver)
    result = engine.run(source.query, source.apply, dry_run=args.dry_run)

    if args.json:
        _print_json(
            {
                "status": result.state.value,
                "count": len(result.diffs),
                "issues": [
                    {
                        "number": diff.issue.number,
                        "title": diff.issue.title,
                        "repository": diff.issue.repository.full_name,
                        "changes": diff.describe(),
                    }
                    for diff in result.diffs
                ],
                "updated": result.updated_count,
                "failed": result.failed,
            }
        )
    elif args.dry_run:
        logger.info(
            f"[DRY RUN] {len(result.diffs)} of {len(result.matched)} issue(s) would be updated"
        )
    else:
        logger.info(
            f"✅ Updated {result.updated_count} issue(s), "
            f"{result.unchanged_count} already up to date"
        )

    if result.failed:
        logger.error(f"❌ {len(result.failed)} issue(s) failed:")
        _log_failures(result.failures)
        return 1
    return 0


def cmd_intake(args: argparse.Namespace) -> int:
    ctx = _context(args)
    if not ctx.config.repositories:
        raise ConfigError("No repositories configured in .gh-pmu.yml", path=ctx.config.path)

    scoped: list[Issue] = []
    for repository in ctx.config.repositories:
        scoped.extend(ctx.client.search_issues(scope_query(repository)))
    tracked = ctx.client.get_tracked_issue_keys(ctx.metadata.project_id)

    adding = args.apply is not None
    dry_run = args.dry_run or not adding
    if args.apply:
        patch = parse_apply(args.apply)
    elif adding or args.dry_run:
        patch = ctx.config.defaults
    else:
        # list mode applies nothing
        patch = None

    reconciler = IntakeReconciler(ctx.writer(dry_run), ctx.resolver)
    result = reconciler.run(scoped, tracked, dry_run=dry_run, patch=patch)

    if args.dry_run:
        status = "dry-run"
    elif adding:
        status = "applied"
    else:
        status = "untracked"

    if args.json:
        document: dict[str, Any] = {
            "status": status,
            "count": len(result.untracked),
            "issues": [_issue_json(issue) for issue in result.untracked],
        }
        if status == "applied":
            document["added"] = result.added_count
            document["failed"] = result.failed
        _print_json(document)
    elif status == "untracked":
        logger.info(f"Found {len(result.untracked)} untracked issue(s):")
        for issue in result.untracked:
            logger.info(f"  #{issue.number} {issue.title} ({issue.repository})")
        if result.untracked:
            logger.info("Use --apply to add them to the project")
    elif status == "applied":
        logger.info(f"✅ Added {result.added_count} issue(s) to the project")

    if result.failed:
        logger.error(f"❌ {len(result.failed)} issue(s) failed:")
        _log_failures(result.failures)
        return 1
    return 0


def cmd_split(args: argparse.Namespace) -> int:
    ctx = _context(args)
    repository, number = parse_issue_reference(args.issue, _default_repository(ctx.config))

    parent = ctx.client.get_issue(repository, number)
    titles = tasks_from_source(parent, args.source, args.tasks)

    result = SplitRunner(ctx.writer(args.dry_run)).run(parent, titles, dry_run=args.dry_run)

    if args.json:
        parent_json = {"number": parent.number, "title": parent.title}
        if result.status == "completed":
            _print_json(
                {
                    "status": result.status,
                    "parent": parent_json,
                    "createdCount": len(result.created),
                    "failedCount": len(result.failed),
                    "created": [
                        {"number": issue.number, "title": issue.title, "url": issue.url}
                        for issue in result.created
                    ],
                    "failed": result.failed,
                }
            )
        else:
            _print_json(
                {
                    "status": result.status,
                    "parent": parent_json,
                    "taskCount": len(result.tasks),
                    "tasks": result.tasks,
                }
            )

    if result.failed:
        logger.error(f"❌ {len(result.failed)} sub-issue(s) could not be created:")
        _log_failures(result.failures)
        return 1
    return 0


def cmd_create(args: argparse.Namespace) -> int:
    title = (args.title or "").strip()
    if not title:
        raise PmuError("A title is required. Pass --title.")

    ctx = _context(args)
    if args.repo:
        try:
            repository = Repository.parse(args.repo)
        except ValueError as e:
            raise ConfigError(str(e)) from e
    else:
        repository = _default_repository(ctx.config)
        if repository is None:
            raise ConfigError(
                "No repositories configured in .gh-pmu.yml. Pass --repo.", path=ctx.config.path
            )

    patch = build_create_patch(ctx.config.defaults, args.status, args.priority, args.labels)
    creator = IssueCreator(ctx.writer(args.dry_run), ctx.resolver)
    result = creator.run(repository, title, body=args.body, patch=patch, dry_run=args.dry_run)

    if args.json:
        issue = result.issue
        _print_json(
            {
                "status": result.status,
                "repository": repository.full_name,
                "title": title,
                "changes": result.changes,
                "issue": (
                    {"number": issue.number, "title": issue.title, "url": issue.url}
                    if issue is not None
                    else None
                ),
                "failed": [str(failure) for failure in result.failures],
            }
        )
    elif result.issue is not None:
        logger.info(f"🔗 {result.issue.url}")

    if result.failures:
        logger.error(f"❌ Issue created but {len(result.failures)} change(s) failed:")
        _log_failures(result.failures)
        return 1
    return 0


def cmd_view(args: argparse.Namespace) -> int:
    ctx = _context(args)
    repository, number = parse_issue_reference(args.issue, _default_repository(ctx.config))

    try:
        issue = ctx.client.get_issue(repository, number)
    except GitHubNotFoundError as e:
        raise PmuError(f"Failed to get issue {args.issue}: {e}") from e

    if args.json:
        _print_json(issue_document(issue))
    else:
        print("\n".join(render_issue(issue)))
    return 0


if __name__ == "__main__":
    sys.exit(main())
