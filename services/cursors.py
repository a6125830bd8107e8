"""Selection of sensors whose next rollup window has closed."""

from __future__ import annotations

import logging
from typing import List, Optional, Set

from app.schemas import SensorCursor
from datastore.interfaces import CursorStore
from services.periods import closed_boundary, period_seconds

logger = logging.getLogger(__name__)


class CursorTracker:
    """Reads and advances per-sensor rollup cursors."""

    def __init__(self, store: CursorStore) -> None:
        self.store = store

    def due_sensors(self, period: int, as_of: Optional[int] = None) -> List[SensorCursor]:
        """Sensors at cursor ``as_of`` whose next ``period`` boundary has closed.

        With ``as_of`` unset this selects sensors that were never rolled up
        for ``period``. A sensor whose current window is still filling is
        never returned.
        """
        period_seconds(period)
        due: List[SensorCursor] = []
        for sensor in self.store.scan():
            if sensor.last_update_at is None:
                continue
            cursor = sensor.cursor_for(period)
            if as_of is None:
                if cursor is not None:
                    continue
            elif cursor != as_of or sensor.last_update_at <= as_of:
                continue
            if as_of is not None and closed_boundary(sensor.last_update_at, period) <= as_of:
                continue
            due.append(sensor)
        return sorted(due, key=lambda sensor: sensor.sensor_id)

    def pending_cursors(self, period: int) -> List[Optional[int]]:
        """Distinct cursor values for ``period``, ``None`` (never rolled up) first."""
        values: Set[Optional[int]] = {sensor.cursor_for(period) for sensor in self.store.scan()}
        ordered: List[Optional[int]] = [None] if None in values else []
        ordered.extend(sorted(value for value in values if value is not None))
        return ordered

    def all_due_sensors(self, period: int) -> List[SensorCursor]:
        due: List[SensorCursor] = []
        for as_of in self.pending_cursors(period):
            due.extend(self.due_sensors(period, as_of))
        return sorted(due, key=lambda sensor: sensor.sensor_id)

    def advance(self, sensor_id: str, period: int, boundary: int) -> SensorCursor:
        """Persist ``boundary`` as the sensor's cursor for ``period``.

        Raises ``StoreUnavailable`` and keeps the previous cursor when the
        store cannot take the write.
        """
        updated = self.store.set(sensor_id, period, boundary)
        logger.debug(
            "Cursor advanced",
            extra={"sensor_id": sensor_id, "period": period, "cursor": boundary},
        )
        return updated
