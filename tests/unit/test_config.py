"""
Unit tests for the .gh-pmu.yml configuration layer
"""

import sys
from pathlib import Path

import pytest
import yaml

# Add parent directory to path to import ghpmu module
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from ghpmu.config import (
    CONFIG_FILENAME,
    InitConfig,
    find_config,
    load_config,
    parse_git_remote,
    split_repository,
    write_config,
)
from ghpmu.exceptions import ConfigError, ConfigNotFoundError
from ghpmu.models import FieldDataType, PatchKind, Repository
from ghpmu.resolver import FieldResolver

EXAMPLE_CONFIG = """
project:
  name: Example
  owner: octo-org
  number: 5
repositories:
  - octo-org/app
  - octo-org/lib
defaults:
  priority: p2
  status: backlog
  labels: [pm-tracked]
fields:
  priority:
    field: Priority
    values: {p0: P0, p1: P1, p2: P2}
  status:
    field: Status
    values: {backlog: Backlog, in_progress: In progress, done: Done}
triage:
  tracked:
    query: "is:issue is:open -label:pm-tracked"
    apply:
      labels: [pm-tracked]
  urgent:
    query: "is:issue is:open label:urgent"
    apply: "priority:p0,label:hot"
metadata:
  project:
    id: PVT_x
  fields:
    - name: Status
      id: PVTSSF_status
      data_type: SINGLE_SELECT
      options:
        - {name: Backlog, id: opt_backlog}
        - {name: In progress, id: opt_progress}
    - name: Notes
      id: PVTF_notes
      data_type: TEXT
"""


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / CONFIG_FILENAME
    path.write_text(EXAMPLE_CONFIG)
    return path


class TestLoadConfig:
    """Test load_config()"""

    def test_loads_project_and_repositories(self, config_file):
        """Should parse the project reference and repositories"""
        config = load_config(config_file)

        assert config.project_owner == "octo-org"
        assert config.project_number == 5
        assert config.project_name == "Example"
        assert config.repositories == [Repository("octo-org", "app"), Repository("octo-org", "lib")]
        assert config.path == str(config_file)

    def test_defaults_become_a_patch(self, config_file):
        """Should turn defaults into field and label entries"""
        config = load_config(config_file)

        assert str(config.defaults) == "priority:p2,status:backlog,label:pm-tracked"

    def test_triage_rules_accept_mapping_and_string(self, config_file):
        """Should parse apply blocks given as a mapping or as an apply string"""
        config = load_config(config_file)

        assert config.triage_rule("tracked").apply.labels == ["pm-tracked"]
        urgent = config.triage_rule("URGENT")
        assert [e.kind for e in urgent.apply.entries] == [PatchKind.FIELD, PatchKind.LABEL]

    def test_unknown_rule(self, config_file):
        """Should raise ConfigNotFoundError listing the available rules"""
        config = load_config(config_file)

        with pytest.raises(ConfigNotFoundError) as exc_info:
            config.triage_rule("missing")

        assert exc_info.value.available == ["tracked", "urgent"]

    def test_metadata_snapshot(self, config_file):
        """Should rebuild the metadata snapshot"""
        metadata = load_config(config_file).metadata

        assert metadata.project_id == "PVT_x"
        assert metadata.fields[0].data_type is FieldDataType.SINGLE_SELECT
        assert metadata.fields[0].option_names() == ["Backlog", "In progress"]
        assert metadata.fields[1].options == ()

    def test_aliases_translate(self, config_file):
        """Should resolve status:in_progress through the aliases"""
        config = load_config(config_file)
        resolver = FieldResolver(config.metadata, config.aliases)

        resolved = resolver.resolve("status", "in_progress")

        assert resolved.field_name == "Status"
        assert resolved.value == "opt_progress"

    def test_missing_file(self, tmp_path):
        """Should raise ConfigError with the path"""
        with pytest.raises(ConfigError) as exc_info:
            load_config(tmp_path / "nope.yml")

        assert exc_info.value.path.endswith("nope.yml")

    def test_invalid_yaml(self, tmp_path):
        """Should wrap YAML syntax errors"""
        path = tmp_path / CONFIG_FILENAME
        path.write_text("project: [unclosed\n")

        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(path)

    @pytest.mark.parametrize(
        "content",
        [
            "- just a list\n",
            "repositories: []\n",
            "project: {owner: octo, number: zero}\n",
            "project: {owner: octo, number: 1}\nrepositories: [noslash]\n",
            "project: {owner: octo, number: 1}\ntriage: {broken: {apply: 'status:x'}}\n",
            "project: {owner: octo, number: 1}\ntriage: {bad: {query: q, apply: 'oops'}}\n",
        ],
    )
    def test_invalid_structure(self, tmp_path, content):
        """Should raise ConfigError for a badly shaped file"""
        path = tmp_path / CONFIG_FILENAME
        path.write_text(content)

        with pytest.raises(ConfigError):
            load_config(path)


class TestFindConfig:
    """Test find_config()"""

    def test_walks_up_from_start(self, tmp_path, monkeypatch):
        """Should find the file in a parent directory"""
        monkeypatch.delenv("GH_PMU_CONFIG", raising=False)
        (tmp_path / CONFIG_FILENAME).write_text(EXAMPLE_CONFIG)
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)

        assert find_config(nested) == tmp_path.resolve() / CONFIG_FILENAME

    def test_environment_override(self, tmp_path, monkeypatch):
        """Should prefer $GH_PMU_CONFIG"""
        monkeypatch.setenv("GH_PMU_CONFIG", str(tmp_path / "custom.yml"))

        assert find_config(tmp_path) == tmp_path / "custom.yml"


class TestWriteConfig:
    """Test write_config()"""

    def test_writes_loadable_config(self, tmp_path, metadata):
        """Should write a file that load_config() accepts"""
        init_config = InitConfig(
            project_name="Example",
            project_owner="octo-org",
            project_number=5,
            repositories=["octo-org/app"],
        )

        path = write_config(tmp_path, init_config, metadata)
        config = load_config(path)

        assert path == tmp_path / CONFIG_FILENAME
        assert config.project_number == 5
        assert config.metadata == metadata
        assert set(config.triage_rules) == {"estimate", "tracked"}
        assert config.aliases["status"].translate_value("in_progress") == "In progress"
        assert config.aliases["priority"].translate_value("p0") == "P0"

    def test_written_yaml_has_sections(self, tmp_path):
        """Should write project, repositories, defaults, fields and triage"""
        path = write_config(tmp_path, InitConfig("X", "octo", 1, ["octo/app"]))
        data = yaml.safe_load(path.read_text())

        assert data["project"] == {"name": "X", "owner": "octo", "number": 1}
        assert data["defaults"]["labels"] == ["pm-tracked"]
        assert "metadata" not in data

    def test_write_failure(self, tmp_path):
        """Should raise ConfigError when the directory does not exist"""
        with pytest.raises(ConfigError, match="failed to write config file"):
            write_config(tmp_path / "missing", InitConfig("X", "octo", 1, []))


class TestGitRemote:
    """Test parse_git_remote() and split_repository()"""

    @pytest.mark.parametrize(
        "remote,expected",
        [
            ("https://github.com/octo/app.git", "octo/app"),
            ("https://github.com/octo/app", "octo/app"),
            ("git@github.com:octo/app.git", "octo/app"),
            ("git@github.com:octo/app\n", "octo/app"),
            ("https://gitlab.com/octo/app.git", ""),
            ("not a url", ""),
        ],
    )
    def test_parse_git_remote(self, remote, expected):
        """Should accept github.com HTTPS and SSH remotes only"""
        assert parse_git_remote(remote) == expected

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("owner/repo", ("owner", "repo")),
            ("noslash", ("", "")),
            ("/", ("", "")),
            ("owner/", ("owner", "")),
            ("owner/repo/extra", ("owner", "repo/extra")),
        ],
    )
    def test_split_repository(self, value, expected):
        """Should split on the first slash"""
        assert split_repository(value) == expected
