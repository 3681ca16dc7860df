"""Cleaning pipeline: pure functions, no side effects."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import pandas as pd

from passport_cleaner.columns import ColumnGroup, clean_base_name, group_columns
from passport_cleaner.models import CleanerConfig, QCReport
from passport_cleaner.values import format_value, is_blank

logger = logging.getLogger(__name__)

Row = Mapping[str, Any]


# ── Row helpers ──────────────────────────────────────────────────


def _labelled_values(row: Row, group: ColumnGroup, *, dayfirst: bool) -> list[str]:
    pieces: list[str] = []
    for column in group.columns:
        value = format_value(row.get(column), dayfirst=dayfirst)
        if not value:
            continue
        pieces.append(f"{group.label_for(column)}: {value}")
    return pieces


def summarize_group(row: Row, group: ColumnGroup, config: CleanerConfig | None = None) -> str:
    """Join the non-empty ``label: value`` pairs of *group* one per line."""
    config = config or CleanerConfig()
    return config.line_break.join(_labelled_values(row, group, dayfirst=config.dayfirst))


def build_module_cell(
    row: Row, groups: Mapping[str, ColumnGroup], config: CleanerConfig | None = None
) -> str:
    """Return one line per fixed module, in fixed order.

    A module without columns, or with only empty values, renders as its
    bare name.
    """
    config = config or CleanerConfig()
    lines: list[str] = []
    for module_base in config.module_bases:
        line = clean_base_name(module_base)
        group = groups.get(module_base)
        if group is not None:
            parts = _labelled_values(row, group, dayfirst=config.dayfirst)
            if parts:
                line += " - " + " - ".join(parts)
        lines.append(line)
    return config.line_break.join(lines)


def _is_empty_row(row: Row) -> bool:
    return all(is_blank(value) for value in row.values())


def _summary_columns(
    groups: Mapping[str, ColumnGroup], config: CleanerConfig
) -> tuple[dict[str, ColumnGroup], list[str]]:
    """Map destination column -> group for every non-module group.

    Destinations are compared case-insensitively, since Excel table
    headers must be unique ignoring case.  When two bases clean to the
    same destination the later group wins but keeps the first one's name
    and position; a base field is overwritten the same way.  Both are
    reported back as warnings.
    """
    module_set = set(config.module_bases)
    base_fields = {name.casefold(): name for name in config.base_fields}
    modules_key = config.modules_column.casefold()
    destinations: dict[str, ColumnGroup] = {}
    names: dict[str, str] = {}
    warnings: list[str] = []
    for base, group in groups.items():
        if base in module_set:
            continue
        dest = clean_base_name(base)
        key = dest.casefold()
        if key == modules_key:
            warnings.append(
                f"Column group {base!r} clashes with {config.modules_column!r}; dropped"
            )
            continue
        if key in base_fields:
            field_name = base_fields[key]
            warnings.append(
                f"Column group {base!r} overwrites base field {field_name!r}"
            )
            destinations[field_name] = group
            continue
        if key in names:
            warnings.append(
                f"Column {names[key]!r} is produced by more than one column group; "
                "kept the last one"
            )
        else:
            names[key] = dest
        destinations[names[key]] = group
    return destinations, warnings


def clean_row(
    row: Row,
    groups: Mapping[str, ColumnGroup],
    config: CleanerConfig | None = None,
) -> dict[str, Any]:
    """Reshape one raw row into the consolidated report layout."""
    config = config or CleanerConfig()
    out: dict[str, Any] = {}
    for field_name in config.base_fields:
        value = row.get(field_name)
        out[field_name] = "" if is_blank(value) else value

    destinations, _warnings = _summary_columns(groups, config)
    for dest, group in destinations.items():
        out[dest] = summarize_group(row, group, config)

    out[config.modules_column] = build_module_cell(row, groups, config)
    return out


# ── Main cleaning function ──────────────────────────────────────


def clean_dataframe(
    df: pd.DataFrame, config: CleanerConfig | None = None
) -> tuple[pd.DataFrame, QCReport]:
    """Clean *df* into the consolidated report layout.

    Returns ``(cleaned_df, qc_report)``.  Fully empty rows are skipped;
    every other input row yields exactly one output row.
    """
    config = config or CleanerConfig()
    qc = QCReport(rows_in=len(df), rows_out=len(df), dropped_rows=0)

    columns = [str(c) for c in df.columns]
    present = set(columns)
    groups = group_columns(columns, skip=config.base_fields)

    # 1. Schema checks (informational; output still has every column)
    missing = [name for name in config.base_fields if name not in present]
    if missing:
        qc.missing_columns = missing
        qc.warnings.append(f"Missing base columns: {', '.join(missing)}")
    missing_modules = [name for name in config.module_bases if name not in groups]
    if missing_modules:
        qc.missing_modules = missing_modules
        qc.warnings.append(f"No columns found for modules: {', '.join(missing_modules)}")

    destinations, collision_warnings = _summary_columns(groups, config)
    qc.warnings.extend(collision_warnings)

    # 2. Reshape rows
    records: list[dict[str, Any]] = []
    skipped = 0
    for raw in df.to_dict(orient="records"):
        row = {str(k): v for k, v in raw.items()}
        if _is_empty_row(row):
            skipped += 1
            continue
        records.append(clean_row(row, groups, config))
    if skipped:
        qc.warnings.append(f"Skipped {skipped} fully empty rows")
    logger.debug("Cleaned %d rows, skipped %d empty rows", len(records), skipped)

    summary_columns = [name for name in destinations if name not in config.base_fields]
    out_columns = [*config.base_fields, *summary_columns, config.modules_column]
    clean_df = pd.DataFrame.from_records(records, columns=out_columns)

    qc.rows_out = len(clean_df)
    qc.dropped_rows = qc.rows_in - qc.rows_out

    if clean_df.empty:
        qc.warnings.append("Cleaned dataset is empty: no non-empty rows remain")

    return clean_df, qc


# ── Summary helpers ─────────────────────────────────────────────


def compute_module_coverage(
    df: pd.DataFrame, config: CleanerConfig | None = None
) -> pd.DataFrame:
    """Count, per fixed module, the rows holding at least one value for it."""
    config = config or CleanerConfig()
    groups = group_columns([str(c) for c in df.columns], skip=config.base_fields)
    rows = [
        {str(k): v for k, v in raw.items()} for raw in df.to_dict(orient="records")
    ]
    rows = [row for row in rows if not _is_empty_row(row)]

    coverage: list[dict[str, Any]] = []
    for module_base in config.module_bases:
        group = groups.get(module_base)
        columns = group.columns if group is not None else []
        with_data = sum(
            1 for row in rows if any(not is_blank(row.get(col)) for col in columns)
        )
        coverage.append(
            {
                "module": clean_base_name(module_base),
                "columns": len(columns),
                "rows_with_data": with_data,
            }
        )
    return pd.DataFrame(coverage, columns=["module", "columns", "rows_with_data"])
