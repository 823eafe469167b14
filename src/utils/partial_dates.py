"""Lenient handling of MusicBrainz partial dates.

The catalog records dates at whatever precision is known: ``"1962"``,
``"1962-08"`` or ``"1962-08-15"``.  Parsing never fails on a short form;
missing month/day components default to 1.  Strings that do not start with a
four-digit year are treated as unknown rather than raising.
"""

from __future__ import annotations

import re
from typing import NamedTuple

_PARTIAL_DATE_RE = re.compile(r"^\s*(\d{4})(?:-(\d{1,2}))?(?:-(\d{1,2}))?")


class PartialDate(NamedTuple):
    """A date with optional month/day precision."""

    year: int
    month: int = 1
    day: int = 1
    precision: str = "year"  # "year" | "month" | "day"


def parse_partial_date(value: str | None) -> PartialDate | None:
    """Parse ``YYYY``, ``YYYY-MM`` or ``YYYY-MM-DD`` into a :class:`PartialDate`.

    Out-of-range month/day components are clamped to 1 instead of rejected,
    since MusicBrainz occasionally carries placeholder values like ``00``.
    """
    if not value:
        return None
    match = _PARTIAL_DATE_RE.match(value)
    if match is None:
        return None

    year = int(match.group(1))
    month_raw, day_raw = match.group(2), match.group(3)
    if month_raw is None:
        return PartialDate(year=year)

    month = int(month_raw)
    if not 1 <= month <= 12:
        return PartialDate(year=year)
    if day_raw is None:
        return PartialDate(year=year, month=month, precision="month")

    day = int(day_raw)
    if not 1 <= day <= 31:
        return PartialDate(year=year, month=month, precision="month")
    return PartialDate(year=year, month=month, day=day, precision="day")


def parse_year(value: str | None) -> int | None:
    """Return just the year of a partial date string, or ``None``."""
    parsed = parse_partial_date(value)
    return parsed.year if parsed else None


def format_partial_date(
    year: int | None, month: int | None = None, day: int | None = None
) -> str | None:
    """Render year/month/day columns back into the catalog string form."""
    if not year:
        return None
    if not month:
        return f"{year:04d}"
    if not day:
        return f"{year:04d}-{month:02d}"
    return f"{year:04d}-{month:02d}-{day:02d}"
