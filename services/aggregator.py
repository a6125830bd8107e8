"""Bucket averaging for sensor series."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from models.records import BucketAverage, SensorSample, to_scale
from services.periods import bucket_start, period_seconds


@dataclass
class _BucketTotal:
    total: Decimal = Decimal(0)
    count: int = 0


class BucketAggregator:
    """Pure averaging component that can be unit tested in isolation."""

    def aggregate(
        self,
        samples: Iterable[SensorSample],
        period: int,
        start_time: Optional[int] = None,
        end_time: Optional[int] = None,
    ) -> List[BucketAverage]:
        """Average ``samples`` into ``period``-minute buckets.

        Samples from several sensors may be mixed; results are ordered by
        sensor id, then bucket boundary. Buckets before
        ``bucket_start(start_time)`` or after ``bucket_start(end_time)`` are
        dropped, and empty buckets are never emitted.
        """
        period_seconds(period)
        lower = bucket_start(start_time, period) if start_time is not None else None
        upper = bucket_start(end_time, period) if end_time is not None else None

        buckets: Dict[Tuple[str, int], _BucketTotal] = {}
        for sample in samples:
            boundary = bucket_start(sample.measuring_at, period)
            if lower is not None and boundary < lower:
                continue
            if upper is not None and boundary > upper:
                continue
            bucket = buckets.setdefault((sample.sensor_id, boundary), _BucketTotal())
            bucket.total += sample.value
            bucket.count += 1

        return [
            BucketAverage(
                sensor_id=sensor_id,
                bucket_start=boundary,
                value=to_scale(bucket.total / bucket.count),
                sample_count=bucket.count,
            )
            for (sensor_id, boundary), bucket in sorted(buckets.items())
        ]
