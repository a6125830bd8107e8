"""Raw sample recording."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Iterable, Optional

from app.schemas import RawSampleIn, SensorCursor
from datastore.cursor_store import build_default_cursor_table
from datastore.interfaces import CursorStore, SeriesStore
from datastore.series_store import build_default_series_table
from models.records import as_decimal
from services.periods import RAW_PERIOD

logger = logging.getLogger(__name__)


class SampleRecorder:
    """Writes raw per-minute samples and moves the sensor's ``last_update_at``.

    Samples are upserted before the cursor moves, so a sensor never looks
    due for data that has not been stored yet.
    """

    def __init__(self, series: SeriesStore, cursors: CursorStore) -> None:
        self.series = series
        self.cursors = cursors

    def record(
        self,
        sensor_id: str,
        samples: Iterable[RawSampleIn],
        container_id: Optional[str] = None,
    ) -> SensorCursor:
        points = [(sample.measuring_at, as_decimal(sample.value)) for sample in samples]
        if not points:
            return self.cursors.get(sensor_id)

        count = self.series.upsert_many(sensor_id, RAW_PERIOD, points)
        latest = max(measuring_at for measuring_at, _ in points)

        cursor = self.cursors.touch(sensor_id, latest, container_id=container_id)
        logger.debug(
            "Recorded %d raw samples",
            count,
            extra={"sensor_id": sensor_id, "container_id": container_id},
        )
        return cursor


@lru_cache
def build_default_recorder() -> SampleRecorder:
    return SampleRecorder(
        series=build_default_series_table(),
        cursors=build_default_cursor_table(),
    )
