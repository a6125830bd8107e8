from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Callable, Dict, List, Optional

from app.schemas import SensorCursor
from services.errors import StoreUnavailable
from settings import get_settings

logger = logging.getLogger(__name__)


class MockCursorTable:
    """Sensor cursors keyed by sensor id, with optional JSON persistence."""

    def __init__(self, name: str, persistence_path: Optional[Path] = None) -> None:
        self.name = name
        self._items: Dict[str, SensorCursor] = {}
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def get(self, sensor_id: str) -> SensorCursor:
        with self._lock:
            item = self._items.get(sensor_id)
            if item is None:
                raise KeyError(f"Sensor {sensor_id!r} not found.")
            return item.model_copy(deep=True)

    def touch(
        self, sensor_id: str, last_update_at: int, container_id: Optional[str] = None
    ) -> SensorCursor:
        """Register the sensor if needed and move ``last_update_at`` forward."""

        def apply(current: Optional[SensorCursor]) -> SensorCursor:
            cursor = current or SensorCursor(sensor_id=sensor_id)
            if container_id is not None:
                cursor.container_id = container_id
            if cursor.last_update_at is None or last_update_at > cursor.last_update_at:
                cursor.last_update_at = last_update_at
            return cursor

        return self._update(sensor_id, apply)

    def set(self, sensor_id: str, period: int, boundary: int) -> SensorCursor:
        """Store the rolled-up boundary for ``period``; never moves it backward."""

        def apply(current: Optional[SensorCursor]) -> SensorCursor:
            if current is None:
                raise KeyError(f"Sensor {sensor_id!r} not found.")
            previous = current.cursor_for(period)
            if previous is not None and boundary < previous:
                logger.warning(
                    "Ignoring backward cursor move",
                    extra={"sensor_id": sensor_id, "period": period, "cursor": previous},
                )
                return current
            current.last_update_periods_at[period] = boundary
            return current

        return self._update(sensor_id, apply)

    def scan(self) -> List[SensorCursor]:
        with self._lock:
            items = [item.model_copy(deep=True) for item in self._items.values()]
        return sorted(items, key=lambda item: item.sensor_id)

    def in_container(self, container_id: str) -> List[SensorCursor]:
        return [item for item in self.scan() if item.container_id == container_id]

    def _update(
        self, sensor_id: str, apply: Callable[[Optional[SensorCursor]], SensorCursor]
    ) -> SensorCursor:
        with self._lock:
            previous = self._items.get(sensor_id)
            working = previous.model_copy(deep=True) if previous is not None else None
            updated = apply(working)
            self._items[sensor_id] = updated
            try:
                self._persist()
            except OSError as exc:
                if previous is None:
                    del self._items[sensor_id]
                else:
                    self._items[sensor_id] = previous
                raise StoreUnavailable(f"Cursor table {self.name!r} is unavailable: {exc}") from exc
            return updated.model_copy(deep=True)

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        payload = {
            sensor_id: item.model_dump(mode="json") for sensor_id, item in self._items.items()
        }
        self.persistence_path.write_text(json.dumps(payload, indent=2, sort_keys=True))

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "{}"
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError):
            data = {}

        for sensor_id, payload in data.items():
            self._items[sensor_id] = SensorCursor.model_validate(payload)


@lru_cache
def build_default_cursor_table(
    name: Optional[str] = None,
    path: Optional[str] = None,
) -> MockCursorTable:
    settings = get_settings()
    table_name = settings.cursor_table_name if name is None else name
    table_path = settings.cursor_persistence_path if path is None else path
    persistence = Path(table_path) if table_path else None
    return MockCursorTable(name=table_name, persistence_path=persistence)
