"""Infer the date range a SQL query is interested in.

Used to pick which date partitions to bind when the caller gives no explicit
bounds. This is a textual scan of comparison predicates on known timestamp
columns, not a SQL parser.
"""

from __future__ import annotations

import logging
import re
from datetime import date, datetime
from typing import List, Optional, Pattern, Tuple

from ..dates import DEFAULT_END, DEFAULT_START, DateRange

logger = logging.getLogger(__name__)

DATE_COLUMNS: Tuple[str, ...] = (
    "created_at",
    "updated_at",
    "first_completed_at",
    "last_completed_at",
    "first_published_at",
    "last_published_at",
    "dropped_at",
    "withdrawn_at",
    "first_paid_at",
    "publish_last_requested_at",
    "last_graded_at",
    "updated_by_instructor_at",
)

_DATE = r"'(\d{4}-\d{2}-\d{2})'"


def _compile(column: str) -> Tuple[Pattern[str], Pattern[str], Pattern[str]]:
    col = re.escape(column)
    lower = re.compile(rf"{col}\s*>=?\s*{_DATE}", re.IGNORECASE)
    upper = re.compile(rf"{col}\s*<=?\s*{_DATE}", re.IGNORECASE)
    between = re.compile(rf"{col}\s+between\s+{_DATE}\s+and\s+{_DATE}", re.IGNORECASE)
    return lower, upper, between


_PATTERNS = [(c, *_compile(c)) for c in DATE_COLUMNS]


def _parse(literal: str) -> Optional[date]:
    try:
        return datetime.strptime(literal, "%Y-%m-%d").date()
    except ValueError:
        return None


def _candidates(sql: str) -> Tuple[List[date], List[date]]:
    lows: List[date] = []
    highs: List[date] = []
    for column, lower, upper, between in _PATTERNS:
        for m in lower.finditer(sql):
            d = _parse(m.group(1))
            if d:
                logger.debug("Found start date from %s: %s", column, d)
                lows.append(d)
        for m in upper.finditer(sql):
            d = _parse(m.group(1))
            if d:
                logger.debug("Found end date from %s: %s", column, d)
                highs.append(d)
        for m in between.finditer(sql):
            start, end = _parse(m.group(1)), _parse(m.group(2))
            if start:
                logger.debug("Found start date from %s BETWEEN: %s", column, start)
                lows.append(start)
            if end:
                logger.debug("Found end date from %s BETWEEN: %s", column, end)
                highs.append(end)
    return lows, highs


def extract_date_range(sql: str) -> DateRange:
    """Return the widest date range implied by predicates in ``sql``.

    The minimum of all lower-bound candidates and the maximum of all
    upper-bound candidates are kept. A missing bound falls back to the 2024
    window on its own. When a fallback would land on the wrong side of an
    extracted bound, it is moved to that bound's calendar year instead.

    Never raises.

    Examples:
        >>> r = extract_date_range(
        ...     "SELECT * FROM t WHERE created_at >= '2023-02-01' AND created_at <= '2024-11-30'"
        ... )
        >>> (r.start.isoformat(), r.end.isoformat())
        ('2023-02-01', '2024-11-30')
    """
    lows, highs = _candidates(sql or "")
    start = min(lows) if lows else None
    end = max(highs) if highs else None

    if start is None and end is None:
        logger.info("No date predicates found in SQL, using default range")
        return DateRange.default()

    if start is None:
        assert end is not None
        start = DEFAULT_START if DEFAULT_START <= end else date(end.year, 1, 1)
        logger.info("No start date found in SQL, using %s", start)
    elif end is None:
        end = DEFAULT_END if start <= DEFAULT_END else date(start.year, 12, 31)
        logger.info("No end date found in SQL, using %s", end)
    elif start > end:
        logger.warning("Extracted dates are inverted (%s > %s); swapping", start, end)
        start, end = end, start

    return DateRange(start, end)


__all__ = ["extract_date_range", "DATE_COLUMNS"]
