"""
Fiscal -- fiscal-year and compact period-code resolution.

Responsibility:
    Maps a calendar date onto the two scoping tokens embedded in issued
    identifiers: the April-March fiscal-year label (``FY26``) and the compact
    month code (``259``).

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Consumed by IdentifierFormatter callers and AllocationCoordinator.

Invariants enforced:
    - A fiscal year runs 1 April to 31 March and is labelled by the last two
      digits of the calendar year in which it ENDS.  1 April is the first day
      of the new label; 31 March is the last day of the old one.
    - Period codes are exactly three characters: two year digits then one
      month character (``1``-``9`` for January-September, ``A``/``B``/``C``
      for October-December).
    - Two-digit years never wrap: only dates between MIN_SUPPORTED_DATE and
      MAX_SUPPORTED_DATE are accepted.

Failure modes:
    - InvalidFiscalDateError for anything that is not a date, or a date
      outside the supported range.

Examples:
    >>> resolve_fiscal_year(date(2025, 6, 1))
    'FY26'
    >>> resolve_fiscal_year(date(2025, 3, 31))
    'FY25'
    >>> resolve_compact_period_code(date(2025, 9, 10))
    '259'
    >>> resolve_compact_period_code(date(2025, 12, 1))
    '25C'
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime

from numbering_kernel.exceptions import InvalidFiscalDateError

FISCAL_YEAR_START_MONTH = 4

MIN_SUPPORTED_DATE = date(2000, 1, 1)
MAX_SUPPORTED_DATE = date(2099, 3, 31)

# Index 0 is January.
_MONTH_CODES = "123456789ABC"

FISCAL_YEAR_LABEL_RE = re.compile(r"^FY(\d{2})$")
PERIOD_CODE_RE = re.compile(r"^(\d{2})([1-9ABC])$")


@dataclass(frozen=True)
class FiscalPeriod:
    """Both scoping tokens for one date, plus the fiscal year's bounds."""

    fiscal_year: str
    period_code: str
    fiscal_year_start: date
    fiscal_year_end: date


def coerce_request_date(value: object) -> date:
    """
    Validate and normalize a request date.

    ``datetime`` values are truncated to their calendar date.

    Raises:
        InvalidFiscalDateError: if ``value`` is not a date or falls outside
            the supported range.
    """
    if isinstance(value, datetime):
        value = value.date()
    if not isinstance(value, date):
        raise InvalidFiscalDateError(value, "expected a calendar date")
    if value < MIN_SUPPORTED_DATE or value > MAX_SUPPORTED_DATE:
        raise InvalidFiscalDateError(
            value,
            f"outside supported range {MIN_SUPPORTED_DATE.isoformat()}"
            f"..{MAX_SUPPORTED_DATE.isoformat()}",
        )
    return value


def _fiscal_end_year(d: date) -> int:
    return d.year + 1 if d.month >= FISCAL_YEAR_START_MONTH else d.year


def resolve_fiscal_year(value: date) -> str:
    """Return the ``FY<yy>`` label of the fiscal year containing ``value``."""
    d = coerce_request_date(value)
    return f"FY{_fiscal_end_year(d) % 100:02d}"


def resolve_compact_period_code(value: date) -> str:
    """Return the ``<yy><month-char>`` code for the calendar month of ``value``."""
    d = coerce_request_date(value)
    return f"{d.year % 100:02d}{_MONTH_CODES[d.month - 1]}"


def resolve_fiscal_period(value: date) -> FiscalPeriod:
    """Resolve every fiscal token for ``value`` in one call."""
    d = coerce_request_date(value)
    end_year = _fiscal_end_year(d)
    return FiscalPeriod(
        fiscal_year=f"FY{end_year % 100:02d}",
        period_code=f"{d.year % 100:02d}{_MONTH_CODES[d.month - 1]}",
        fiscal_year_start=date(end_year - 1, FISCAL_YEAR_START_MONTH, 1),
        fiscal_year_end=date(end_year, FISCAL_YEAR_START_MONTH - 1, 31),
    )


def month_from_period_code(period_code: str) -> tuple[int, int]:
    """
    Decode a compact period code into ``(two_digit_year, month)``.

    Raises:
        ValueError: if ``period_code`` is not a valid compact code.
    """
    match = PERIOD_CODE_RE.match(period_code or "")
    if match is None:
        raise ValueError(f"Invalid period code: {period_code!r}")
    return int(match.group(1)), _MONTH_CODES.index(match.group(2)) + 1
