"""Translate human-readable field and option names into project identifiers."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field

from ghpmu.exceptions import UnknownFieldError, UnknownOptionError
from ghpmu.models import (
    FieldDataType,
    FieldMetadata,
    ProjectMetadata,
    ResolvedField,
    TriagePatch,
)

logger = logging.getLogger(__name__)


def find_field(metadata: ProjectMetadata, field_name: str) -> FieldMetadata:
    """Look up a field by name, case-insensitively

    Raises:
        UnknownFieldError: If no field on the board has that name
    """
    wanted = field_name.strip().lower()
    for candidate in metadata.fields:
        if candidate.name.lower() == wanted:
            return candidate
    raise UnknownFieldError(field_name, available=metadata.field_names())


def resolve(metadata: ProjectMetadata, field_name: str, raw_value: str) -> ResolvedField:
    """Resolve a ``(field name, value)`` pair to ``(field ID, value)``.

    Field names are matched case-insensitively. For single-select fields the
    value is matched case-insensitively against the option names and replaced
    by the option ID. Every other data type passes the value through
    unchanged; parsing numbers and dates is the mutation's concern.

    Args:
        metadata: Project metadata for the current invocation
        field_name: Field name as typed by the user or a rule
        raw_value: Desired value

    Returns:
        ResolvedField carrying both the identifier and the canonical name

    Raises:
        UnknownFieldError: If the field does not exist
        UnknownOptionError: If a single-select value matches no option

    Example:
        >>> resolve(meta, "STATUS", "done").value == resolve(meta, "status", "Done").value
        True
    """
    target = find_field(metadata, field_name)

    if target.data_type is not FieldDataType.SINGLE_SELECT:
        return ResolvedField(
            field_id=target.id,
            field_name=target.name,
            data_type=target.data_type,
            value=raw_value,
            display_value=raw_value,
        )

    wanted = raw_value.strip().lower()
    for option in target.options:
        if option.name.lower() == wanted:
            return ResolvedField(
                field_id=target.id,
                field_name=target.name,
                data_type=target.data_type,
                value=option.id,
                display_value=option.name,
            )

    raise UnknownOptionError(target.name, raw_value, valid=target.option_names())


@dataclass(frozen=True)
class FieldAlias:
    """Config shorthand for a field: ``status`` -> ``Status`` plus value aliases"""

    field_name: str
    values: Mapping[str, str] = field(default_factory=dict)

    def translate_value(self, value: str) -> str:
        wanted = value.strip().lower()
        for alias, actual in self.values.items():
            if alias.lower() == wanted:
                return actual
        return value


class FieldResolver:
    """Resolve patch entries against project metadata, honouring config aliases.

    Holds the metadata for one invocation so repeated lookups never refetch.
    """

    def __init__(
        self, metadata: ProjectMetadata, aliases: Mapping[str, FieldAlias] | None = None
    ):
        self.metadata = metadata
        self.aliases = {key.lower(): alias for key, alias in (aliases or {}).items()}

    def translate(self, key: str, value: str) -> tuple[str, str]:
        """Apply config aliases, returning the board's field name and option name"""
        alias = self.aliases.get(key.strip().lower())
        if alias is None:
            return key, value
        return alias.field_name, alias.translate_value(value)

    def resolve(self, key: str, value: str) -> ResolvedField:
        field_name, option_name = self.translate(key, value)
        resolved = resolve(self.metadata, field_name, option_name)
        logger.debug(
            "Resolved %s:%s → %s=%s", key, value, resolved.field_id, resolved.value
        )
        return resolved

    def resolve_patch(self, patch: TriagePatch) -> tuple[list[ResolvedField], list[str]]:
        """Resolve every field entry of a patch up-front.

        Returns:
            Tuple of (resolved fields in patch order, labels in patch order)

        Raises:
            UnknownFieldError, UnknownOptionError: On the first entry that fails
        """
        resolved = [self.resolve(entry.key, entry.value) for entry in patch.fields]
        return resolved, patch.labels
