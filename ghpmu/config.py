"""Load, validate and write the ``.gh-pmu.yml`` project configuration.

The configuration file is the only state ghpmu persists. It holds the
project reference, the repositories in scope for intake, default values for
newly tracked issues, field/value aliases, named triage rules and a snapshot
of the board's field metadata so that most runs never refetch it.
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from ghpmu.exceptions import ConfigError, ConfigNotFoundError, MalformedApplyTokenError
from ghpmu.models import (
    FieldDataType,
    FieldMetadata,
    OptionMetadata,
    ProjectMetadata,
    Repository,
    TriageConfig,
    TriagePatch,
)
from ghpmu.patch import parse_apply, patch_from_mapping
from ghpmu.resolver import FieldAlias

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".gh-pmu.yml"
CONFIG_ENV_VAR = "GH_PMU_CONFIG"

DEFAULT_FIELDS: dict[str, dict[str, Any]] = {
    "priority": {
        "field": "Priority",
        "values": {"p0": "P0", "p1": "P1", "p2": "P2"},
    },
    "status": {
        "field": "Status",
        "values": {
            "backlog": "Backlog",
            "ready": "Ready",
            "in_progress": "In progress",
            "in_review": "In review",
            "done": "Done",
        },
    },
}

DEFAULT_DEFAULTS: dict[str, Any] = {
    "priority": "p2",
    "status": "backlog",
    "labels": ["pm-tracked"],
}

DEFAULT_TRIAGE: dict[str, dict[str, Any]] = {
    "estimate": {
        "query": "is:issue is:open -label:estimated",
        "apply": {"labels": ["needs-estimate"]},
    },
    "tracked": {
        "query": "is:issue is:open -label:pm-tracked",
        "apply": {"labels": ["pm-tracked"]},
    },
}


@dataclass
class InitConfig:
    """Answers collected by ``ghpmu init``"""

    project_name: str = ""
    project_owner: str = ""
    project_number: int = 0
    repositories: list[str] = field(default_factory=list)


@dataclass
class ProjectConfig:
    project_owner: str
    project_number: int
    project_name: str = ""
    repositories: list[Repository] = field(default_factory=list)
    defaults: TriagePatch = field(default_factory=TriagePatch)
    aliases: dict[str, FieldAlias] = field(default_factory=dict)
    triage_rules: dict[str, TriageConfig] = field(default_factory=dict)
    metadata: ProjectMetadata | None = None
    path: str | None = None

    def triage_rule(self, name: str) -> TriageConfig:
        """Look up a named triage rule (case-insensitive)

        Raises:
            ConfigNotFoundError: If no rule has that name
        """
        for rule_name, rule in self.triage_rules.items():
            if rule_name.lower() == name.strip().lower():
                return rule
        raise ConfigNotFoundError(name, available=sorted(self.triage_rules))


def find_config(start: str | Path | None = None) -> Path | None:
    """Locate the configuration file.

    Search order:
    1) $GH_PMU_CONFIG (explicit path)
    2) .gh-pmu.yml in the start directory or any of its parents
    """
    env_path = os.getenv(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)

    directory = Path(start) if start else Path.cwd()
    for candidate_dir in [directory, *directory.resolve().parents]:
        candidate = candidate_dir / CONFIG_FILENAME
        if candidate.exists():
            return candidate
    return None


def load_config(path: str | Path) -> ProjectConfig:
    """Load and validate a configuration file.

    Args:
        path: Path to the YAML configuration file

    Returns:
        Parsed ProjectConfig

    Raises:
        ConfigError: If the file is missing, is not valid YAML, or has a bad shape
    """
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigError(
            f"Configuration file not found: {config_path}\nRun 'ghpmu init' to create one.",
            path=str(config_path),
        )

    try:
        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}", path=str(config_path)) from e

    try:
        config = config_from_dict(data)
    except (ConfigError, MalformedApplyTokenError, ValueError) as e:
        raise ConfigError(f"Invalid configuration in {config_path}: {e}", path=str(config_path)) from e

    config.path = str(config_path)
    logger.debug(
        "Loaded config %s (project %s/%d, %d triage rules)",
        config_path,
        config.project_owner,
        config.project_number,
        len(config.triage_rules),
    )
    return config


def config_from_dict(data: Any) -> ProjectConfig:
    """Validate a parsed configuration mapping and build a ProjectConfig

    Raises:
        ConfigError: If a required section is missing or has the wrong type
    """
    if not isinstance(data, dict):
        raise ConfigError("Configuration must be a YAML mapping")

    project = data.get("project")
    if not isinstance(project, dict):
        raise ConfigError("Missing 'project' section")
    owner = project.get("owner")
    number = project.get("number")
    if not isinstance(owner, str) or not owner:
        raise ConfigError("'project.owner' must be a non-empty string")
    if not isinstance(number, int) or isinstance(number, bool) or number < 1:
        raise ConfigError("'project.number' must be a positive integer")

    repositories = data.get("repositories") or []
    if not isinstance(repositories, list):
        raise ConfigError("'repositories' must be a list of owner/name strings")

    defaults = data.get("defaults") or {}
    if not isinstance(defaults, dict):
        raise ConfigError("'defaults' must be a mapping")

    metadata = data.get("metadata")
    if metadata is not None and not isinstance(metadata, dict):
        raise ConfigError("'metadata' must be a mapping")

    return ProjectConfig(
        project_owner=owner,
        project_number=number,
        project_name=str(project.get("name") or ""),
        repositories=[Repository.parse(str(repo)) for repo in repositories],
        defaults=patch_from_mapping(defaults),
        aliases=_parse_aliases(data.get("fields") or {}),
        triage_rules=_parse_triage_rules(data.get("triage") or {}),
        metadata=metadata_from_dict(metadata) if metadata else None,
    )


def _parse_aliases(fields: Any) -> dict[str, FieldAlias]:
    if not isinstance(fields, dict):
        raise ConfigError("'fields' must be a mapping")

    aliases: dict[str, FieldAlias] = {}
    for key, entry in fields.items():
        if not isinstance(entry, dict) or not isinstance(entry.get("field"), str):
            raise ConfigError(f"Field alias '{key}' must have a 'field' name")
        values = entry.get("values") or {}
        if not isinstance(values, dict):
            raise ConfigError(f"'values' for field alias '{key}' must be a mapping")
        aliases[str(key)] = FieldAlias(
            field_name=entry["field"],
            values={str(alias): str(actual) for alias, actual in values.items()},
        )
    return aliases


def _parse_triage_rules(triage: Any) -> dict[str, TriageConfig]:
    if not isinstance(triage, dict):
        raise ConfigError("'triage' must be a mapping of rule name to rule")

    rules: dict[str, TriageConfig] = {}
    for name, rule in triage.items():
        if not isinstance(rule, dict):
            raise ConfigError(f"Triage rule '{name}' must be a mapping")
        query = rule.get("query")
        if not isinstance(query, str) or not query.strip():
            raise ConfigError(f"Triage rule '{name}' must have a 'query'")

        apply = rule.get("apply")
        if apply is None:
            patch = TriagePatch()
        elif isinstance(apply, str):
            patch = parse_apply(apply)
        elif isinstance(apply, dict):
            patch = patch_from_mapping(apply)
        else:
            raise ConfigError(f"'apply' for triage rule '{name}' must be a string or mapping")

        rules[str(name)] = TriageConfig(name=str(name), query=query, apply=patch)
    return rules


def metadata_from_dict(data: Mapping[str, Any]) -> ProjectMetadata:
    """Rebuild ProjectMetadata from the config snapshot

    Raises:
        ConfigError: If the snapshot is missing identifiers
    """
    project = data.get("project") or {}
    project_id = project.get("id") if isinstance(project, dict) else None
    if not project_id:
        raise ConfigError("'metadata.project.id' is required in the metadata snapshot")

    fields: list[FieldMetadata] = []
    for entry in data.get("fields") or []:
        if not isinstance(entry, dict) or not entry.get("id") or not entry.get("name"):
            raise ConfigError(f"Metadata field entry needs 'id' and 'name': {entry!r}")
        options = tuple(
            OptionMetadata(id=str(opt["id"]), name=str(opt["name"]))
            for opt in entry.get("options") or []
        )
        fields.append(
            FieldMetadata(
                id=str(entry["id"]),
                name=str(entry["name"]),
                data_type=FieldDataType.parse(str(entry.get("data_type", "TEXT"))),
                options=options,
            )
        )
    return ProjectMetadata(project_id=str(project_id), fields=tuple(fields))


def metadata_to_dict(metadata: ProjectMetadata) -> dict[str, Any]:
    fields = []
    for f in metadata.fields:
        entry: dict[str, Any] = {"name": f.name, "id": f.id, "data_type": f.data_type.value}
        if f.options:
            entry["options"] = [{"name": o.name, "id": o.id} for o in f.options]
        fields.append(entry)
    return {"project": {"id": metadata.project_id}, "fields": fields}


def build_config_dict(
    init_config: InitConfig, metadata: ProjectMetadata | None = None
) -> dict[str, Any]:
    data: dict[str, Any] = {
        "project": {
            "name": init_config.project_name,
            "owner": init_config.project_owner,
            "number": init_config.project_number,
        },
        "repositories": list(init_config.repositories),
        "defaults": dict(DEFAULT_DEFAULTS),
        "fields": DEFAULT_FIELDS,
        "triage": DEFAULT_TRIAGE,
    }
    if metadata is not None:
        data["metadata"] = metadata_to_dict(metadata)
    return data


def write_config(
    directory: str | Path, init_config: InitConfig, metadata: ProjectMetadata | None = None
) -> Path:
    """Write ``.gh-pmu.yml`` into a directory, replacing any existing file.

    Raises:
        ConfigError: If the file cannot be written
    """
    config_path = Path(directory) / CONFIG_FILENAME
    content = yaml.safe_dump(
        build_config_dict(init_config, metadata), sort_keys=False, allow_unicode=True
    )
    try:
        with open(config_path, "w", encoding="utf-8") as f:
            f.write(content)
    except OSError as e:
        raise ConfigError(f"failed to write config file: {e}", path=str(config_path)) from e

    logger.info(f"💾 Wrote configuration: {config_path}")
    return config_path


# github.com remotes only: https://github.com/o/r(.git) and git@github.com:o/r(.git)
_GIT_REMOTE_PATTERNS = [
    re.compile(r"^https?://github\.com/([^/\s]+)/([^/\s]+?)(?:\.git)?/?$"),
    re.compile(r"^git@github\.com:([^/\s]+)/([^/\s]+?)(?:\.git)?$"),
]


def parse_git_remote(remote: str) -> str:
    """Extract ``owner/repo`` from a GitHub remote URL, or ``""`` if unsupported"""
    remote = remote.strip()
    for pattern in _GIT_REMOTE_PATTERNS:
        match = pattern.match(remote)
        if match:
            return f"{match.group(1)}/{match.group(2)}"
    return ""


def split_repository(value: str) -> tuple[str, str]:
    """Split ``owner/name`` on the first slash; ``("", "")`` when there is none"""
    if "/" not in value:
        return "", ""
    owner, _, name = value.partition("/")
    return owner, name
