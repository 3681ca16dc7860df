"""Data models shared across the package."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from numbers import Integral
from typing import Any

from passport_cleaner import BASE_FIELDS, LINE_BREAK, MODULE_BASES, MODULES_COLUMN


def _to_non_negative_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, Integral):
        raise TypeError(f"{field_name} must be an integer")
    result = int(value)
    if result < 0:
        raise ValueError(f"{field_name} must be >= 0")
    return result


def _to_string_list(values: Sequence[Any] | None, field_name: str) -> list[str]:
    if values is None:
        return []
    if isinstance(values, str):
        raise TypeError(f"{field_name} must be a sequence of strings")
    normalized: list[str] = []
    for item in values:
        if not isinstance(item, str):
            raise TypeError(f"{field_name} items must be strings")
        normalized.append(item)
    return normalized


def _to_name_tuple(values: Sequence[Any], field_name: str) -> tuple[str, ...]:
    names = _to_string_list(values, field_name)
    stripped = [name.strip() for name in names]
    if any(not name for name in stripped):
        raise ValueError(f"{field_name} items must be non-empty")
    duplicates = sorted({name for name in stripped if stripped.count(name) > 1})
    if duplicates:
        raise ValueError(f"{field_name} has duplicates: {', '.join(duplicates)}")
    return tuple(stripped)


@dataclass(frozen=True)
class CleanerConfig:
    """Knobs for the cleaning pipeline; defaults match the passport export."""

    base_fields: tuple[str, ...] = tuple(BASE_FIELDS)
    module_bases: tuple[str, ...] = tuple(MODULE_BASES)
    modules_column: str = MODULES_COLUMN
    line_break: str = LINE_BREAK
    dayfirst: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "base_fields", _to_name_tuple(self.base_fields, "base_fields")
        )
        object.__setattr__(
            self, "module_bases", _to_name_tuple(self.module_bases, "module_bases")
        )
        if not isinstance(self.modules_column, str) or not self.modules_column.strip():
            raise ValueError("modules_column must be a non-empty string")
        if self.modules_column in self.base_fields:
            raise ValueError("modules_column must not repeat a base field")
        if not isinstance(self.line_break, str) or not self.line_break:
            raise ValueError("line_break must be a non-empty string")


@dataclass
class QCReport:
    """Quality-control report emitted alongside every run.

    Contract invariant: ``dropped_rows == rows_in - rows_out``.  Rows are
    only ever dropped for being completely empty.
    """

    rows_in: int = 0
    rows_out: int = 0
    dropped_rows: int = 0
    missing_columns: list[str] = field(default_factory=list)
    missing_modules: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.rows_in = _to_non_negative_int(self.rows_in, "rows_in")
        self.rows_out = _to_non_negative_int(self.rows_out, "rows_out")
        self.dropped_rows = _to_non_negative_int(self.dropped_rows, "dropped_rows")
        self.missing_columns = _to_string_list(self.missing_columns, "missing_columns")
        self.missing_modules = _to_string_list(self.missing_modules, "missing_modules")
        self.warnings = _to_string_list(self.warnings, "warnings")
        if self.rows_out > self.rows_in:
            raise ValueError("rows_out must be <= rows_in")
        expected_dropped = self.rows_in - self.rows_out
        if self.dropped_rows != expected_dropped:
            raise ValueError("dropped_rows must equal rows_in - rows_out")

    def to_dict(self) -> dict[str, Any]:
        return {
            "rows_in": self.rows_in,
            "rows_out": self.rows_out,
            "dropped_rows": self.dropped_rows,
            "missing_columns": list(self.missing_columns),
            "missing_modules": list(self.missing_modules),
            "warnings": list(self.warnings),
        }


@dataclass
class RunManifest:
    """Audit-trail manifest for a single CLI run."""

    tool: str = "passport-cleaner"
    version: str = ""
    run_id: str = ""
    input_path: str = ""
    sheet_name: str = ""
    output_path: str = ""
    created_at_utc: str = ""
    rows_in: int = 0
    rows_out: int = 0
    sha256: str = ""
    status: str = "success"
    error_code: int | None = None
    error_message: str = ""

    def __post_init__(self) -> None:
        self.rows_in = _to_non_negative_int(self.rows_in, "rows_in")
        self.rows_out = _to_non_negative_int(self.rows_out, "rows_out")
        if self.status not in {"success", "failed"}:
            raise ValueError(f"status must be 'success' or 'failed', got {self.status!r}")
        if self.error_code is not None:
            self.error_code = _to_non_negative_int(self.error_code, "error_code")

    def to_dict(self) -> dict[str, Any]:
        return {
            "tool": self.tool,
            "version": self.version,
            "run_id": self.run_id,
            "input_path": self.input_path,
            "sheet_name": self.sheet_name,
            "output_path": self.output_path,
            "created_at_utc": self.created_at_utc,
            "rows_in": self.rows_in,
            "rows_out": self.rows_out,
            "sha256": self.sha256,
            "status": self.status,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }
