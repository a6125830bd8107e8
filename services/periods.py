"""Catalog of sample granularities and bucket-boundary arithmetic.

Buckets are identified by their closing boundary: a sample taken at ``t``
belongs to the bucket ``ceil(t / (p * 60)) * p * 60`` whose window is the
half-open interval ``(boundary - p * 60, boundary]``.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Tuple

from services.errors import InvalidPeriod


class PeriodType(IntEnum):
    """Granularities in minutes. ``MINUTE`` is the raw ingest granularity."""

    MINUTE = 1
    QUARTER_OF_HOUR = 15
    HALF_OF_HOUR = 30
    HOUR = 60
    QUARTER_OF_DAY = 360
    HALF_OF_DAY = 720
    DAY = 1440


RAW_PERIOD = int(PeriodType.MINUTE)

# Rollup targets, ascending.
ROLLUP_PERIODS: Tuple[int, ...] = (
    int(PeriodType.HALF_OF_HOUR),
    int(PeriodType.HOUR),
    int(PeriodType.QUARTER_OF_DAY),
    int(PeriodType.HALF_OF_DAY),
    int(PeriodType.DAY),
)


def period_seconds(period_minutes: int) -> int:
    if isinstance(period_minutes, bool) or not isinstance(period_minutes, int):
        raise InvalidPeriod(period_minutes, "period must be an integer number of minutes")
    if period_minutes <= 0:
        raise InvalidPeriod(period_minutes)
    return period_minutes * 60


def bucket_start(timestamp: int, period_minutes: int) -> int:
    """Return the closing boundary of the bucket containing ``timestamp``."""
    width = period_seconds(period_minutes)
    return -(-timestamp // width) * width


def closed_boundary(timestamp: int, period_minutes: int) -> int:
    """Return the latest boundary at or before ``timestamp``.

    Once a per-minute sample at ``timestamp`` exists, every bucket ending at
    or before this boundary can no longer receive newer samples.
    """
    width = period_seconds(period_minutes)
    return (timestamp // width) * width


def validate_rollup_period(period_minutes: int) -> int:
    period_seconds(period_minutes)
    if period_minutes not in ROLLUP_PERIODS:
        allowed = ", ".join(str(period) for period in ROLLUP_PERIODS)
        raise InvalidPeriod(period_minutes, f"rollup periods are {allowed}")
    return period_minutes
