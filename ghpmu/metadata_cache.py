"""Load project metadata from the config snapshot or from the API."""

from __future__ import annotations

import logging

from ghpmu.config import ProjectConfig
from ghpmu.models import MetadataSource, ProjectMetadata

logger = logging.getLogger(__name__)


def load_project_metadata(
    config: ProjectConfig, source: MetadataSource, refresh: bool = False
) -> ProjectMetadata:
    """Return the board's field metadata for this invocation.

    The snapshot stored in ``.gh-pmu.yml`` is used when present, so a normal
    run costs no metadata request. ``refresh`` (or a config without a
    snapshot) fetches from the API instead. The result is never stored
    globally; callers pass it to every component that needs it.

    Args:
        config: Loaded project configuration
        source: Anything with ``fetch_project_metadata(owner, number)``
        refresh: Ignore the snapshot and fetch

    Returns:
        ProjectMetadata for the configured project
    """
    if config.metadata is not None and not refresh:
        logger.debug(
            "Using cached metadata for project %s (%d fields)",
            config.metadata.project_id,
            len(config.metadata.fields),
        )
        return config.metadata

    logger.info(
        f"🌐 Fetching project metadata for {config.project_owner}/{config.project_number}..."
    )
    metadata = source.fetch_project_metadata(config.project_owner, config.project_number)
    logger.debug("Fetched %d fields for project %s", len(metadata.fields), metadata.project_id)
    return metadata
