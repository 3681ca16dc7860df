"""I/O helpers: load input files, write JSON/text artifacts, hashing."""

from __future__ import annotations

import hashlib
import json
import logging
import zipfile
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Literal

import pandas as pd
from openpyxl.utils.exceptions import InvalidFileException

from passport_cleaner import DEFAULT_OUTPUT_NAME, DEFAULT_SHEET

logger = logging.getLogger(__name__)

EXCEL_SUFFIXES = (".xlsx", ".xlsm", ".xltx", ".xltm")

# ── Loading ──────────────────────────────────────────────────────


def _header_name(raw: Any, position: int) -> str:
    """Stringify a header cell; blank ones get a positional ``colN`` name."""
    try:
        blank = raw is None or bool(pd.isna(raw))
    except (TypeError, ValueError):
        blank = False
    name = "" if blank else str(raw)
    return name if name.strip() else f"col{position}"


def _promote_header_row(raw: pd.DataFrame) -> pd.DataFrame:
    """Turn the first row of a header-less read into column names.

    Rows are keyed by header text, so a repeated header keeps the position
    of its first column and the values of its last one.
    """
    if raw.empty:
        return pd.DataFrame()
    names = [_header_name(value, position) for position, value in enumerate(raw.iloc[0], 1)]
    body = raw.iloc[1:].reset_index(drop=True)

    columns: dict[str, pd.Series] = {}
    for idx, name in enumerate(names):
        if name in columns:
            logger.debug("Header %r repeats at column %d; keeping the later values", name, idx + 1)
        columns[name] = body.iloc[:, idx]
    df = pd.DataFrame(columns, index=body.index)
    df.columns = pd.Index(list(columns), dtype=object)
    return df


def _read_csv(path: Path, delimiter: str | None) -> pd.DataFrame:
    last_exc: Exception | None = None
    sep = delimiter if delimiter else None
    engine: Literal["c", "python"] = "c" if delimiter else "python"
    for encoding in ("utf-8-sig", "utf-8", "latin-1"):
        try:
            return pd.read_csv(
                path,
                dtype="string",
                header=None,
                sep=sep,
                engine=engine,
                encoding=encoding,
                encoding_errors="strict",
                keep_default_na=False,
                na_values=[""],
            )
        except (UnicodeDecodeError, pd.errors.ParserError) as exc:
            logger.debug("CSV read with %s failed: %s", encoding, exc)
            last_exc = exc
        except pd.errors.EmptyDataError as exc:
            raise ValueError(f"The file is empty or could not be read: {path}") from exc
    raise ValueError(f"Could not read CSV {path} (decode or parse failed)") from last_exc


def _read_excel_sheet(path: Path, sheet_name: str) -> pd.DataFrame:
    try:
        with pd.ExcelFile(path, engine="openpyxl") as book:
            if sheet_name not in book.sheet_names:
                raise ValueError(f'Sheet "{sheet_name}" not found in the workbook.')
            # Keep native cell types: serial numbers and datetimes drive date rendering.
            return book.parse(
                sheet_name,
                dtype=object,
                header=None,
                keep_default_na=False,
                na_values=[""],
            )
    except (zipfile.BadZipFile, InvalidFileException, KeyError) as exc:
        raise ValueError(f"Could not read workbook {path}: {exc}") from exc


def load_table(
    path: Path,
    sheet_name: str = DEFAULT_SHEET,
    delimiter: str | None = None,
) -> pd.DataFrame:
    """Load one sheet of an Excel workbook (or a CSV file) as a raw DataFrame.

    Excel cells keep their native Python types; CSV cells are strings.

    Raises
    ------
    FileNotFoundError
        If *path* does not exist.
    ValueError
        If the extension is not supported, the sheet is missing, or the
        file cannot be decoded/parsed.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Input file not found: {path}")

    suffix = path.suffix.lower()
    if suffix == ".csv":
        raw = _read_csv(path, delimiter)
    elif suffix in EXCEL_SUFFIXES:
        raw = _read_excel_sheet(path, sheet_name)
    else:
        raise ValueError(f"Unsupported file type: {suffix!r}. Use .xlsx or .csv")

    df = _promote_header_row(raw)
    logger.debug("Loaded %d rows x %d columns from %s", len(df), len(df.columns), path)
    return df


def read_name_list(path: Path) -> list[str]:
    """Return non-blank, non-comment lines of a UTF-8 text file."""
    path = Path(path)
    if not path.exists():
        raise ValueError(f"File not found: {path}")
    if path.is_dir():
        raise ValueError(f"Expected a file, got a directory: {path}")
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ValueError(f"Cannot read {path}: {exc}") from exc

    lines: list[str] = []
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        lines.append(stripped)
    return lines


def normalize_output_name(name: str | None) -> str:
    """Return *name* trimmed, defaulted, and guaranteed to end in ``.xlsx``."""
    output = (name or "").strip() or DEFAULT_OUTPUT_NAME
    if not output.lower().endswith(".xlsx"):
        output += ".xlsx"
    return output


# ── Writing ──────────────────────────────────────────────────────


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Path):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    item = getattr(obj, "item", None)
    if callable(item):
        converted = item()
        if isinstance(converted, (str, int, float, bool)) or converted is None:
            return converted
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def write_text_artifact(path: Path, text: str) -> Path:
    """Write *text* to *path* atomically via a sibling temp file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(text, encoding="utf-8")
    tmp_path.replace(path)
    logger.debug("Wrote %s", path)
    return path


def write_json(path: Path, data: Any) -> Path:
    """Write *data* as pretty-printed JSON to *path* (atomic + deterministic)."""
    payload = json.dumps(
        data,
        indent=2,
        sort_keys=True,
        ensure_ascii=False,
        default=_json_default,
    ) + "\n"
    return write_text_artifact(path, payload)


# ── Misc ─────────────────────────────────────────────────────────


def sha256_file(path: Path) -> str:
    """Return the hex SHA-256 digest of *path*."""
    h = hashlib.sha256()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(8192), b""):
            h.update(chunk)
    return h.hexdigest()


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
