"""Process memory monitoring.

Resident set size comes from ``psutil``. When psutil cannot report it (no
permission, unsupported platform) a coarse interpreter-level estimate is
logged instead and the reading is flagged as unavailable, so callers never
abort a collection on imprecise numbers.
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from typing import Optional

import psutil

from .config import ABORT_GB, WARNING_GB

logger = logging.getLogger(__name__)

_GB = 1024**3

# rough bytes per allocated interpreter block
_BLOCK_BYTES = 64


@dataclass(frozen=True)
class MemoryReading:
    """One memory sample.

    Attributes:
        stage: Label of the processing stage the sample was taken at.
        resident_gb: Resident memory in GB (a coarse estimate when not available).
        over_warning: Reading is above the warning threshold.
        over_abort: Reading is above the abort threshold.
        available: False when ``resident_gb`` is only an estimate; threshold
            flags are then always False.
    """

    stage: str
    resident_gb: float
    over_warning: bool = False
    over_abort: bool = False
    available: bool = True

    @property
    def should_abort(self) -> bool:
        return self.available and self.over_abort


def read_resident_bytes() -> Optional[int]:
    """Return the resident set size of this process in bytes, or None when unknown."""
    try:
        return int(psutil.Process().memory_info().rss)
    except (psutil.Error, OSError) as e:
        logger.debug("psutil could not report resident memory: %s", e)
        return None


def estimate_interpreter_mb() -> float:
    return sys.getallocatedblocks() * _BLOCK_BYTES / 1024 / 1024


def sample_memory(
    stage: str = "",
    *,
    warning_gb: float = WARNING_GB,
    abort_gb: float = ABORT_GB,
) -> MemoryReading:
    """Sample the current process memory and classify it against thresholds.

    Args:
        stage: Label used in log messages (e.g. "after chunk 3").
        warning_gb: Readings above this log a warning.
        abort_gb: Readings above this set ``over_abort``.

    Returns:
        MemoryReading. ``available`` is False when psutil could not report
        the resident size and the value is an interpreter-level estimate.
    """
    rss = read_resident_bytes()
    if rss is None:
        used_mb = estimate_interpreter_mb()
        logger.info("Process memory estimate %s: %.1f MB", stage, used_mb)
        return MemoryReading(stage=stage, resident_gb=round(used_mb / 1024, 2), available=False)

    resident_gb = round(rss / _GB, 2)
    logger.info("Process memory usage %s: %s GB", stage, resident_gb)
    over_warning = resident_gb > warning_gb
    if over_warning:
        logger.warning("High memory usage detected: %s GB", resident_gb)
    return MemoryReading(
        stage=stage,
        resident_gb=resident_gb,
        over_warning=over_warning,
        over_abort=resident_gb > abort_gb,
    )


def system_memory_available() -> Optional[str]:
    """Describe available system memory, e.g. ``"5.21 GB available of 7.75 GB"``."""
    try:
        memory = psutil.virtual_memory()
    except (psutil.Error, OSError) as e:
        logger.info("System memory status unavailable: %s", e)
        return None
    available_gb = round(memory.available / _GB, 2)
    total_gb = round(memory.total / _GB, 2)
    return f"{available_gb} GB available of {total_gb} GB"


__all__ = [
    "MemoryReading",
    "sample_memory",
    "read_resident_bytes",
    "system_memory_available",
]
