"""Predict whether a query will return a large result set.

Large queries are collected in bounded pages instead of a single fetch. The
rules are textual and case-insensitive:

- a ``LIMIT N`` with ``N`` at or below the threshold means small
- otherwise, no aggregation marker (count, sum, avg, max, min, group by)
  means large
- anything else is small

Known limitation: a large projection hidden behind an alias or subquery that
mentions an aggregation marker is classified as small.
"""

from __future__ import annotations

import re
from typing import Callable

from ..config import LIMIT_THRESHOLD

QueryClassifier = Callable[[str], bool]

_LIMIT_RE = re.compile(r"limit\s+(\d+)", re.IGNORECASE)
_AGGREGATION_RE = re.compile(r"count|sum|avg|max|min|group\s+by", re.IGNORECASE)


def first_limit(sql: str) -> int | None:
    """Return the first ``LIMIT`` value in the text, if any."""
    m = _LIMIT_RE.search(sql)
    return int(m.group(1)) if m else None


def has_aggregation(sql: str) -> bool:
    return _AGGREGATION_RE.search(sql) is not None


def is_large_query(sql: str, *, limit_threshold: int = LIMIT_THRESHOLD) -> bool:
    """Return True when ``sql`` is expected to produce a large result.

    Examples:
        >>> is_large_query("SELECT * FROM highlights")
        True
        >>> is_large_query("SELECT * FROM highlights LIMIT 1000")
        False
        >>> is_large_query("SELECT * FROM highlights LIMIT 5000000")
        True
        >>> is_large_query("SELECT book_id, AVG(length) FROM highlights GROUP BY book_id")
        False
    """
    limit = first_limit(sql)
    if limit is not None and limit <= limit_threshold:
        return False
    # a LIMIT above the threshold does not cap the result
    return not has_aggregation(sql)


def heuristic_classifier(limit_threshold: int = LIMIT_THRESHOLD) -> QueryClassifier:
    """Bind a threshold into a single-argument classifier."""

    def classify(sql: str) -> bool:
        return is_large_query(sql, limit_threshold=limit_threshold)

    return classify


__all__ = ["QueryClassifier", "is_large_query", "heuristic_classifier", "first_limit"]
