"""Column-name parsing and grouping.

Passport exports flatten one header per (module, field) pair, e.g.::

    Patient Safety - Status
    Patient Safety - Completed Date
    CPNW: Tdap - Expiration - Date
    WA - Hepatitis B - Titer

Each header splits into a *base* (the thing being tracked) and a *detail*
(which field of it).  Columns that share a base form one group.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Collection, Iterable
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

CPNW_PREFIX = "CPNW: "
REGIONAL_PREFIXES: frozenset[str] = frozenset({"ND", "WA"})
DETAIL_SEPARATOR = " - "

_WHITESPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class ColumnSplit:
    base: str
    detail: str = ""


@dataclass
class ColumnGroup:
    """Columns sharing a base name, in sheet order."""

    base: str
    columns: list[str] = field(default_factory=list)
    labels: dict[str, str] = field(default_factory=dict)

    def add(self, column: str, detail: str) -> None:
        self.columns.append(column)
        if detail:
            self.labels[column] = detail

    def label_for(self, column: str) -> str:
        """Return the detail label for *column*, or the full column name."""
        return self.labels.get(column) or column


def split_column_name(name: str) -> ColumnSplit:
    """Split a raw header into base and detail."""
    if name.startswith(CPNW_PREFIX):
        base, *rest = name.split(DETAIL_SEPARATOR)
        return ColumnSplit(base.strip(), DETAIL_SEPARATOR.join(rest).strip())

    parts = name.split(DETAIL_SEPARATOR)
    if len(parts) >= 3 and parts[0] in REGIONAL_PREFIXES:
        return ColumnSplit(
            DETAIL_SEPARATOR.join(parts[:2]).strip(),
            DETAIL_SEPARATOR.join(parts[2:]).strip(),
        )
    if len(parts) >= 2:
        return ColumnSplit(parts[0].strip(), DETAIL_SEPARATOR.join(parts[1:]).strip())
    return ColumnSplit(name.strip())


def clean_base_name(base: str) -> str:
    """Return the display name for a group base."""
    if base.startswith(CPNW_PREFIX):
        return base.replace(CPNW_PREFIX, "", 1).strip()
    return _WHITESPACE_RE.sub(" ", base).strip()


def group_columns(
    columns: Iterable[str], skip: Collection[str] = ()
) -> dict[str, ColumnGroup]:
    """Group *columns* by base name, preserving first-seen order.

    Columns named in *skip* (the pass-through fields) are left out.
    """
    groups: dict[str, ColumnGroup] = {}
    for column in columns:
        if column in skip:
            continue
        split = split_column_name(column)
        group = groups.get(split.base)
        if group is None:
            group = groups[split.base] = ColumnGroup(split.base)
        group.add(column, split.detail)
    logger.debug("Grouped columns into %d bases", len(groups))
    return groups
