from __future__ import annotations

import json
import logging
from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Dict, Iterable, List, Optional, Tuple

from app.schemas import StoredSample
from models.records import SensorSample
from services.errors import StoreUnavailable
from services.periods import RAW_PERIOD
from settings import get_settings

logger = logging.getLogger(__name__)


class MockSeriesTable:
    """In-memory series table with optional JSON persistence.

    One record per ``(sensor_id, period_type, measuring_at)``; writes to an
    existing key overwrite its value.
    """

    def __init__(self, name: str, persistence_path: Optional[Path] = None) -> None:
        self.name = name
        self._items: Dict[str, StoredSample] = {}
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def upsert_raw(self, sensor_id: str, measuring_at: int, value: Decimal) -> None:
        self.upsert_many(sensor_id, RAW_PERIOD, [(measuring_at, value)])

    def upsert_aggregate(
        self, sensor_id: str, period: int, bucket_start: int, value: Decimal
    ) -> None:
        self.upsert_many(sensor_id, period, [(bucket_start, value)])

    def upsert_many(
        self, sensor_id: str, period_type: int, points: Iterable[Tuple[int, Decimal]]
    ) -> int:
        """Upsert several points of one series and persist once.

        Either every point is stored or, when the write fails, none is.
        """
        items = [
            StoredSample(
                sensor_id=sensor_id,
                period_type=period_type,
                measuring_at=measuring_at,
                value=value,
            )
            for measuring_at, value in points
        ]
        if items:
            self._upsert(items)
        return len(items)

    def read_raw(
        self, sensor_id: str, start: Optional[int] = None, end: Optional[int] = None
    ) -> List[SensorSample]:
        return self._read(sensor_id, RAW_PERIOD, start, end)

    def read_aggregate(
        self,
        sensor_id: str,
        period: int,
        start: Optional[int] = None,
        end: Optional[int] = None,
    ) -> List[SensorSample]:
        return self._read(sensor_id, period, start, end)

    def latest(
        self, sensor_id: str, period_type: int = RAW_PERIOD, start: Optional[int] = None
    ) -> Optional[SensorSample]:
        samples = self._read(sensor_id, period_type, start, None)
        return samples[-1] if samples else None

    def read_at(
        self, sensor_ids: Iterable[str], measuring_at: int, period_type: int = RAW_PERIOD
    ) -> List[SensorSample]:
        with self._lock:
            found = [
                self._items.get(f"{sensor_id}|{period_type}|{measuring_at}")
                for sensor_id in sorted(set(sensor_ids))
            ]
        return [item.to_record() for item in found if item is not None]

    def scan(self) -> list[StoredSample]:
        """Return copies of every stored sample."""

        with self._lock:
            return [item.model_copy() for item in self._items.values()]

    def _upsert(self, items: List[StoredSample]) -> None:
        with self._lock:
            previous: Dict[str, Optional[StoredSample]] = {}
            for item in items:
                previous.setdefault(item.key, self._items.get(item.key))
                self._items[item.key] = item
            try:
                self._persist()
            except OSError as exc:
                for key, old in previous.items():
                    if old is None:
                        del self._items[key]
                    else:
                        self._items[key] = old
                logger.warning(
                    "Series table write failed",
                    extra={
                        "sensor_id": items[0].sensor_id,
                        "period": items[0].period_type,
                        "reason": str(exc),
                    },
                )
                raise StoreUnavailable(f"Series table {self.name!r} is unavailable: {exc}") from exc

    def _read(
        self,
        sensor_id: str,
        period_type: int,
        start: Optional[int],
        end: Optional[int],
    ) -> List[SensorSample]:
        with self._lock:
            matched = [
                item
                for item in self._items.values()
                if item.sensor_id == sensor_id
                and item.period_type == period_type
                and (start is None or item.measuring_at >= start)
                and (end is None or item.measuring_at <= end)
            ]
        matched.sort(key=lambda item: item.measuring_at)
        return [item.to_record() for item in matched]

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        payload = {key: item.model_dump(mode="json") for key, item in self._items.items()}
        self.persistence_path.write_text(json.dumps(payload, indent=2, sort_keys=True))

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "{}"
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError):
            data = {}

        for payload in data.values():
            item = StoredSample.model_validate(payload)
            self._items[item.key] = item


@lru_cache
def build_default_series_table(
    name: Optional[str] = None,
    path: Optional[str] = None,
) -> MockSeriesTable:
    settings = get_settings()
    table_name = settings.series_table_name if name is None else name
    table_path = settings.series_persistence_path if path is None else path
    persistence = Path(table_path) if table_path else None
    return MockSeriesTable(name=table_name, persistence_path=persistence)
