"""Cell value rendering, including date normalisation.

Dates come in three shapes in passport exports: native Excel dates,
bare serial numbers (days since 1899-12-30) and free text.  All of them
render as ``MM/DD/YYYY``.
"""

from __future__ import annotations

import logging
import re
from datetime import date, datetime, timedelta
from numbers import Real
from typing import Any

import pandas as pd

logger = logging.getLogger(__name__)

# Serial of 1970-01-01 in the 1900 date system.
UNIX_EPOCH_SERIAL = 25569
# Serials up to 59 fall before Excel's phantom 1900-02-29.
MIN_DATE_SERIAL = 59

_UNIX_EPOCH = datetime(1970, 1, 1)

_MONTH = r"(?:jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)[a-z]*\.?"
_ISO_DATE_RE = re.compile(r"^\d{4}-\d{1,2}-\d{1,2}(?:[ T]\S.*)?$")
_NUMERIC_DATE_RE = re.compile(
    r"^(?:\d{4}[/.\-]\d{1,2}[/.\-]\d{1,2}|\d{1,2}[/.\-]\d{1,2}[/.\-](?:\d{4}|\d{2}))"
    r"(?:[ T]\S.*)?$"
)
_TEXT_DATE_RE = re.compile(
    rf"^(?:[a-z]{{3,9}},?\s+)?{_MONTH}\s+\d{{1,2}}(?:st|nd|rd|th)?,?\s+\d{{4}}(?:\s.*)?$"
    rf"|^\d{{1,2}}\s+{_MONTH},?\s+\d{{4}}(?:\s.*)?$",
    re.IGNORECASE,
)


def is_blank(value: Any) -> bool:
    """Return True for ``None``, NaN/NA/NaT and whitespace-only text."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def format_date(value: date) -> str:
    return f"{value.month:02d}/{value.day:02d}/{value.year}"


def excel_serial_to_datetime(serial: float) -> datetime | None:
    """Convert an Excel serial day number to a datetime, if plausible.

    Only serials above 59 that land after the year 1900 count as dates.
    """
    if serial <= MIN_DATE_SERIAL:
        return None
    try:
        converted = _UNIX_EPOCH + timedelta(days=float(serial) - UNIX_EPOCH_SERIAL)
    except (OverflowError, ValueError):
        return None
    if converted.year > 1900:
        return converted
    return None


def looks_like_date(text: str) -> bool:
    return bool(_NUMERIC_DATE_RE.match(text) or _TEXT_DATE_RE.match(text))


def parse_date_text(text: str, *, dayfirst: bool = False) -> datetime | None:
    """Parse *text* as a calendar date, or return None.

    Only text shaped like a date is considered, so labels such as
    ``"Module 1"`` or ``"Complete"`` never turn into dates.
    """
    text = text.strip()
    if not looks_like_date(text):
        return None
    if _ISO_DATE_RE.match(text):
        dayfirst = False
    parsed = pd.to_datetime(text, errors="coerce", dayfirst=dayfirst)
    if pd.isna(parsed):
        logger.debug("Date-shaped text did not parse: %r", text)
        return None
    return parsed.to_pydatetime()


def _format_number(value: Real) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def format_value(value: Any, *, dayfirst: bool = False) -> str:
    """Render a raw cell value as report text (``""`` for empty cells)."""
    if is_blank(value):
        return ""

    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"

    if isinstance(value, (datetime, date)):
        return format_date(value)

    if isinstance(value, Real):
        serial_date = excel_serial_to_datetime(float(value))
        if serial_date is not None:
            return format_date(serial_date)
        return _format_number(value)

    text = str(value).strip()
    maybe_date = parse_date_text(text, dayfirst=dayfirst)
    if maybe_date is not None:
        return format_date(maybe_date)
    return text
