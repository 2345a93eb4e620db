"""Extract unchecked checklist items from Markdown issue bodies."""

from __future__ import annotations

import re
from collections.abc import Iterator

# "- [ ] title", "* [ ] title" or "+ [ ] title", indented or not, with a space
# or tab after the brackets. Checked items ("[x]") do not match.
CHECKLIST_ITEM = re.compile(r"^[ \t]*[-*+][ \t]+\[ \][ \t](.*)$")


def iter_checklist(body: str) -> Iterator[str]:
    """Lazily yield unchecked checklist titles, line by line.

    Only the checklist marker is recognised; headings, prose, checked items
    and nested bullets under an item are skipped, never joined onto a title.
    """
    for line in body.splitlines():
        match = CHECKLIST_ITEM.match(line)
        if not match:
            continue
        title = match.group(1).strip()
        if title:
            yield title


def parse_checklist(body: str | None) -> list[str]:
    """Return unchecked checklist titles in document order.

    Example:
        >>> parse_checklist("- [ ] Task one\\n- [x] Done task\\n- [ ] Task two\\n")
        ['Task one', 'Task two']
        >>> parse_checklist("no checklist here")
        []
    """
    if not body:
        return []
    return list(iter_checklist(body))
