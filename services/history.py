"""Read paths for sensor history at any granularity."""

from __future__ import annotations

from functools import lru_cache
from typing import Iterable, List, Optional

from app.schemas import SeriesPoint, SeriesResponse
from datastore.cursor_store import build_default_cursor_table
from datastore.interfaces import CursorStore, SeriesStore
from datastore.series_store import build_default_series_table
from models.records import BucketAverage, SensorSample
from services.aggregator import BucketAggregator
from services.periods import RAW_PERIOD, ROLLUP_PERIODS, bucket_start, period_seconds


class HistoryService:
    """Serves raw, rolled-up and ad-hoc grouped series."""

    def __init__(
        self,
        series: SeriesStore,
        cursors: CursorStore,
        aggregator: BucketAggregator,
    ) -> None:
        self.series_store = series
        self.cursors = cursors
        self.aggregator = aggregator

    def series(
        self,
        sensor_id: str,
        period: int = RAW_PERIOD,
        start: Optional[int] = None,
        end: Optional[int] = None,
    ) -> SeriesResponse:
        """History of one sensor.

        Rollup periods come from stored aggregates, the raw period from raw
        samples, and any other positive period is grouped on the fly.
        Raises ``KeyError`` for an unknown sensor.
        """
        period_seconds(period)
        self.cursors.get(sensor_id)

        if period == RAW_PERIOD:
            source = "raw"
            points = [
                _point(sample)
                for sample in self.series_store.read_raw(sensor_id, start, end)
            ]
        elif period in ROLLUP_PERIODS:
            source = "rollup"
            lower = bucket_start(start, period) if start is not None else None
            upper = bucket_start(end, period) if end is not None else None
            points = [
                _point(sample)
                for sample in self.series_store.read_aggregate(sensor_id, period, lower, upper)
            ]
        else:
            source = "grouped"
            points = [
                SeriesPoint(
                    sensor_id=bucket.sensor_id,
                    measuring_at=bucket.bucket_start,
                    value=bucket.value,
                )
                for bucket in self.grouped([sensor_id], period, start, end)
            ]

        return SeriesResponse(sensor_id=sensor_id, period=period, source=source, points=points)

    def raw(
        self, sensor_ids: Iterable[str], start: Optional[int] = None, end: Optional[int] = None
    ) -> List[SensorSample]:
        """Raw samples of several sensors, ordered by sensor id then time."""
        samples: List[SensorSample] = []
        for sensor_id in sorted(set(sensor_ids)):
            samples.extend(self.series_store.read_raw(sensor_id, start, end))
        return samples

    def grouped(
        self,
        sensor_ids: Iterable[str],
        period: int,
        start: Optional[int] = None,
        end: Optional[int] = None,
    ) -> List[BucketAverage]:
        """Average raw samples of several sensors into ``period`` buckets."""
        width = period_seconds(period)
        first = bucket_start(start, period) - width + 1 if start is not None else None
        last = bucket_start(end, period) if end is not None else None
        samples = self.raw(sensor_ids, first, last)
        return self.aggregator.aggregate(samples, period, start_time=start, end_time=end)

    def latest(self, sensor_id: str, start: Optional[int] = None) -> Optional[SensorSample]:
        return self.series_store.latest(sensor_id, RAW_PERIOD, start)

    def container_snapshot(self, container_id: str, measuring_at: int) -> List[SensorSample]:
        sensor_ids = [sensor.sensor_id for sensor in self.cursors.in_container(container_id)]
        return self.series_store.read_at(sensor_ids, measuring_at, RAW_PERIOD)


def _point(sample: SensorSample) -> SeriesPoint:
    return SeriesPoint(sensor_id=sample.sensor_id, measuring_at=sample.measuring_at, value=sample.value)


@lru_cache
def build_default_history() -> HistoryService:
    return HistoryService(
        series=build_default_series_table(),
        cursors=build_default_cursor_table(),
        aggregator=BucketAggregator(),
    )
