"""Persistence contracts consumed by the rollup services."""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable, List, Optional, Protocol, Tuple

from app.schemas import SensorCursor
from models.records import SensorSample


class SeriesStore(Protocol):
    """Raw and aggregated samples keyed by ``(sensor_id, period_type, measuring_at)``.

    Range bounds are inclusive and results are ordered by ``measuring_at``.
    Implementations raise ``StoreUnavailable`` when they cannot be reached.
    """

    def read_raw(
        self, sensor_id: str, start: Optional[int] = None, end: Optional[int] = None
    ) -> List[SensorSample]: ...

    def read_aggregate(
        self,
        sensor_id: str,
        period: int,
        start: Optional[int] = None,
        end: Optional[int] = None,
    ) -> List[SensorSample]: ...

    def upsert_raw(self, sensor_id: str, measuring_at: int, value: Decimal) -> None: ...

    def upsert_aggregate(
        self, sensor_id: str, period: int, bucket_start: int, value: Decimal
    ) -> None: ...

    def upsert_many(
        self, sensor_id: str, period_type: int, points: Iterable[Tuple[int, Decimal]]
    ) -> int: ...

    def latest(
        self, sensor_id: str, period_type: int = 1, start: Optional[int] = None
    ) -> Optional[SensorSample]: ...

    def read_at(
        self, sensor_ids: Iterable[str], measuring_at: int, period_type: int = 1
    ) -> List[SensorSample]: ...


class CursorStore(Protocol):
    """Per-sensor cursors. Raw ingest calls ``touch``; the rollup engine calls ``set``."""

    def get(self, sensor_id: str) -> SensorCursor: ...

    def set(self, sensor_id: str, period: int, boundary: int) -> SensorCursor: ...

    def touch(
        self, sensor_id: str, last_update_at: int, container_id: Optional[str] = None
    ) -> SensorCursor: ...

    def scan(self) -> List[SensorCursor]: ...

    def in_container(self, container_id: str) -> List[SensorCursor]: ...
