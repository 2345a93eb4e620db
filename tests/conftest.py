"""
Shared pytest fixtures for ghpmu tests
"""

import logging
import sys
from pathlib import Path

import pytest

# Add parent directory to path to import ghpmu module
sys.path.insert(0, str(Path(__file__).parent.parent))

from ghpmu.models import (
    FieldDataType,
    FieldMetadata,
    Issue,
    IssueState,
    OptionMetadata,
    ProjectMetadata,
    Repository,
)


@pytest.fixture(autouse=True)
def reset_ghpmu_logger():
    """Undo setup_logging() between tests so caplog sees ghpmu records"""
    yield
    ghpmu_logger = logging.getLogger("ghpmu")
    ghpmu_logger.handlers.clear()
    ghpmu_logger.propagate = True
    ghpmu_logger.setLevel(logging.NOTSET)


@pytest.fixture
def repository():
    return Repository(owner="octo-org", name="app")


@pytest.fixture
def metadata():
    """Board with Status/Priority single-selects plus text, number and date fields"""
    return ProjectMetadata(
        project_id="PVT_project1",
        fields=(
            FieldMetadata(
                id="PVTSSF_status",
                name="Status",
                data_type=FieldDataType.SINGLE_SELECT,
                options=(
                    OptionMetadata(id="opt_backlog", name="Backlog"),
                    OptionMetadata(id="opt_ready", name="Ready"),
                    OptionMetadata(id="opt_progress", name="In progress"),
                    OptionMetadata(id="opt_done", name="Done"),
                ),
            ),
            FieldMetadata(
                id="PVTSSF_priority",
                name="Priority",
                data_type=FieldDataType.SINGLE_SELECT,
                options=(
                    OptionMetadata(id="opt_p0", name="P0"),
                    OptionMetadata(id="opt_p1", name="P1"),
                    OptionMetadata(id="opt_p2", name="P2"),
                ),
            ),
            FieldMetadata(id="PVTF_notes", name="Notes", data_type=FieldDataType.TEXT),
            FieldMetadata(id="PVTF_estimate", name="Estimate", data_type=FieldDataType.NUMBER),
            FieldMetadata(id="PVTF_due", name="Due", data_type=FieldDataType.DATE),
        ),
    )


@pytest.fixture
def make_issue(repository):
    """Factory for issues in octo-org/app"""

    def _make(number, title=None, field_values=None, labels=(), body="", item_id=None):
        return Issue(
            number=number,
            title=title or f"Issue {number}",
            state=IssueState.OPEN,
            url=f"https://github.com/octo-org/app/issues/{number}",
            repository=repository,
            body=body,
            field_values=field_values or {},
            labels=tuple(labels),
            node_id=f"I_node{number}",
            item_id=item_id,
        )

    return _make
