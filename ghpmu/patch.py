"""Parse the ``key:value[,key:value...]`` apply grammar into a TriagePatch.

Values cannot contain commas and keys cannot contain colons: the grammar has
no escaping. The first colon separates key from value, so a value may itself
contain colons (``label:area:api`` adds the label ``area:api``).
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from ghpmu.exceptions import MalformedApplyTokenError
from ghpmu.models import PatchEntry, PatchKind, TriagePatch

LABEL_KEY = "label"


def parse_apply(apply: str | None) -> TriagePatch:
    """Parse an apply string.

    Args:
        apply: Comma-separated ``key:value`` tokens. ``label:<name>`` adds a
            label; any other key names a project field. ``None`` or an empty
            string yields an empty patch.

    Returns:
        TriagePatch with entries in the order given

    Raises:
        MalformedApplyTokenError: If a non-empty token has no colon, or an
            empty key or value

    Example:
        >>> str(parse_apply(" status:done , label:triaged,,"))
        'status:done,label:triaged'
    """
    if not apply:
        return TriagePatch()

    entries: list[PatchEntry] = []
    for raw_token in apply.split(","):
        token = raw_token.strip()
        if not token:
            continue
        entries.append(_parse_token(token))
    return TriagePatch(tuple(entries))


def _parse_token(token: str) -> PatchEntry:
    if ":" not in token:
        raise MalformedApplyTokenError(token)

    key, _, value = token.partition(":")
    key = key.strip()
    value = value.strip()
    if not key:
        raise MalformedApplyTokenError(token, "missing key")
    if not value:
        raise MalformedApplyTokenError(token, "missing value")

    if key.lower() == LABEL_KEY:
        return PatchEntry(PatchKind.LABEL, LABEL_KEY, value)
    return PatchEntry(PatchKind.FIELD, key, value)


def patch_from_mapping(data: Mapping[str, Any]) -> TriagePatch:
    """Build a patch from a config mapping such as a rule's ``apply`` block.

    ``labels`` (a list or a single string) becomes LABEL entries; every other
    key becomes a FIELD entry with its value stringified.

    Raises:
        MalformedApplyTokenError: If a value is empty
    """
    entries: list[PatchEntry] = []
    for key, value in data.items():
        key = str(key).strip()
        if key.lower() in ("labels", LABEL_KEY):
            labels = [value] if isinstance(value, str) else list(value or [])
            for label in labels:
                label = str(label).strip()
                if not label:
                    raise MalformedApplyTokenError(f"{key}:", "missing value")
                entries.append(PatchEntry(PatchKind.LABEL, LABEL_KEY, label))
            continue

        text = "" if value is None else str(value).strip()
        if not text:
            raise MalformedApplyTokenError(f"{key}:", "missing value")
        entries.append(PatchEntry(PatchKind.FIELD, key, text))
    return TriagePatch(tuple(entries))

