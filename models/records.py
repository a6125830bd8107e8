"""Domain records shared across services."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, localcontext
from typing import Union

# Values are stored as DECIMAL(18, 14).
VALUE_PRECISION = 18
VALUE_SCALE = 14
_QUANTUM = Decimal(1).scaleb(-VALUE_SCALE)

Number = Union[Decimal, int, float, str]


def as_decimal(value: Number) -> Decimal:
    """Convert a measured value to ``Decimal`` without binary float artefacts."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise TypeError("Boolean is not a measured value.")
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(value)


def to_scale(value: Decimal) -> Decimal:
    """Round to the storage scale and drop insignificant trailing zeros."""
    with localcontext() as context:
        # quantize needs room for every integer digit plus the scale
        context.prec = max(context.prec, value.adjusted() + VALUE_SCALE + 2)
        rounded = value.quantize(_QUANTUM, rounding=ROUND_HALF_UP)
        if rounded == rounded.to_integral_value():
            return rounded.quantize(Decimal(1))
        return rounded.normalize()


@dataclass(slots=True, frozen=True)
class SensorSample:
    """One point of a sensor series at a given granularity."""

    sensor_id: str
    measuring_at: int
    value: Decimal
    period_type: int = 1


@dataclass(slots=True, frozen=True)
class BucketAverage:
    """Mean of the samples that fell into one bucket."""

    sensor_id: str
    bucket_start: int
    value: Decimal
    sample_count: int
