"""Date range model shared by the extractor, the resolver and the engine."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterator, Union

from .errors import ConfigurationError

DateLike = Union[date, datetime, str]

DEFAULT_START = date(2024, 1, 1)
DEFAULT_END = date(2024, 12, 31)


def coerce_date(value: DateLike, *, label: str = "date") -> date:
    """Convert a date, datetime or ``YYYY-MM-DD`` string into a ``date``.

    Raises:
        ConfigurationError: If the value is not a date or a strict ISO date string.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return datetime.strptime(value.strip(), "%Y-%m-%d").date()
        except ValueError as e:
            raise ConfigurationError(
                f"Invalid {label} '{value}': expected YYYY-MM-DD"
            ) from e
    raise ConfigurationError(f"Invalid {label} {value!r}: expected a date or YYYY-MM-DD string")


@dataclass(frozen=True)
class DateRange:
    """Inclusive calendar date range with ``start <= end``."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ConfigurationError(
                f"Invalid date range: start {self.start} is after end {self.end}"
            )

    @classmethod
    def from_values(cls, start: DateLike, end: DateLike) -> "DateRange":
        return cls(coerce_date(start, label="start_date"), coerce_date(end, label="end_date"))

    @classmethod
    def default(cls) -> "DateRange":
        return cls(DEFAULT_START, DEFAULT_END)

    @property
    def years(self) -> range:
        return range(self.start.year, self.end.year + 1)

    @property
    def day_count(self) -> int:
        return (self.end - self.start).days + 1

    def days(self) -> Iterator[date]:
        for offset in range(self.day_count):
            yield self.start + timedelta(days=offset)

    def __str__(self) -> str:
        return f"{self.start.isoformat()} to {self.end.isoformat()}"


__all__ = ["DateRange", "DateLike", "coerce_date", "DEFAULT_START", "DEFAULT_END"]
