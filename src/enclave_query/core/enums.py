"""Core enumerations used across the package."""

from __future__ import annotations

from enum import Enum


class PartitionScheme(str, Enum):
    """How a dataset is laid out in object storage.

    Values are strings to ease YAML and CLI interchange.
    """

    NONE = "none"
    BY_YEAR = "by_year"
    BY_DAY = "by_day"
    WILDCARD = "wildcard"

    @property
    def is_date_partitioned(self) -> bool:
        return self in (PartitionScheme.BY_YEAR, PartitionScheme.BY_DAY)


__all__ = ["PartitionScheme"]
