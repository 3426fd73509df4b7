"""Partition path resolution.

Turns a dataset descriptor and a date range into the list of remote object
paths (or glob patterns) covering that data. Pure and deterministic: no
storage access happens here.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from .catalog import DatasetDescriptor
from .dates import DateRange
from .enums import PartitionScheme
from .errors import ConfigurationError

logger = logging.getLogger(__name__)


def _render(descriptor: DatasetDescriptor, **values: object) -> str:
    try:
        tail = descriptor.path_template.format(**values)
    except (KeyError, IndexError) as e:
        raise ConfigurationError(
            f"Path template for dataset '{descriptor.dataset_id}' has an unsupported "
            f"placeholder {e} for partitioning '{descriptor.partitioning.value}'"
        ) from e
    return f"{descriptor.storage_location.rstrip('/')}/{tail}"


def _require_name(descriptor: DatasetDescriptor, name: Optional[str]) -> str:
    if not name or not str(name).strip():
        raise ConfigurationError(
            f"Dataset '{descriptor.dataset_id}' ({descriptor.partitioning.value}) "
            f"requires a table/event name"
        )
    return str(name).strip()


def resolve_paths(
    descriptor: DatasetDescriptor,
    date_range: Optional[DateRange] = None,
    *,
    name: Optional[str] = None,
) -> List[str]:
    """Return the remote paths covering ``date_range`` for a dataset.

    Args:
        descriptor: Dataset layout.
        date_range: Range to cover. Only used by date-partitioned layouts;
            defaults to the 2024 window when omitted for them.
        name: Table or event name substituted into wildcard and by-day layouts.

    Returns:
        Paths in ascending partition order. By-year layouts return one file
        per calendar year touched by the range (a superset of the rows asked
        for); by-day layouts return one glob per day, both ends inclusive.

    Raises:
        ConfigurationError: If a required name is missing or the template does
            not fit the partitioning scheme.

    Examples:
        >>> from enclave_query.core.catalog import get_dataset
        >>> resolve_paths(get_dataset("tutor"), DateRange.from_values("2023-06-01", "2024-02-01"))[0]
        's3://openstax-enclave-data/tutor/v1/openstax_tutor_2023-01-01__2023-12-31.parquet'
    """
    scheme = descriptor.partitioning
    if scheme.is_date_partitioned and date_range is None:
        date_range = DateRange.default()

    if scheme == PartitionScheme.NONE:
        paths = [_render(descriptor)]
    elif scheme == PartitionScheme.WILDCARD:
        paths = [_render(descriptor, name=_require_name(descriptor, name))]
    elif scheme == PartitionScheme.BY_YEAR:
        assert date_range is not None
        paths = [_render(descriptor, year=year) for year in date_range.years]
    elif scheme == PartitionScheme.BY_DAY:
        assert date_range is not None
        event = _require_name(descriptor, name)
        paths = [
            _render(
                descriptor,
                name=event,
                year=f"{d.year:04d}",
                month=f"{d.month:02d}",
                day=f"{d.day:02d}",
            )
            for d in date_range.days()
        ]
    else:  # pragma: no cover - enum is exhaustive
        raise ConfigurationError(f"Unsupported partitioning: {scheme}")

    logger.debug("Resolved %d path(s) for %s", len(paths), descriptor.dataset_id)
    return paths


def view_name_for(descriptor: DatasetDescriptor, name: Optional[str] = None) -> str:
    """View name queries against this dataset should reference."""
    if descriptor.view_name:
        return descriptor.view_name
    if name:
        return str(name).strip()
    return descriptor.dataset_id


__all__ = ["resolve_paths", "view_name_for"]
