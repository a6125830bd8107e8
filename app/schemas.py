"""Pydantic schemas shared by the stores and the HTTP API layer."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from models.records import VALUE_PRECISION, VALUE_SCALE, SensorSample
from services.errors import PartialBatchFailure
from services.periods import ROLLUP_PERIODS


class StoredSample(BaseModel):
    """A persisted point keyed by ``(sensor_id, period_type, measuring_at)``."""

    sensor_id: str
    period_type: int = Field(..., ge=1)
    measuring_at: int
    value: Decimal

    @property
    def key(self) -> str:
        return f"{self.sensor_id}|{self.period_type}|{self.measuring_at}"

    def to_record(self) -> SensorSample:
        return SensorSample(
            sensor_id=self.sensor_id,
            measuring_at=self.measuring_at,
            value=self.value,
            period_type=self.period_type,
        )


class SensorCursor(BaseModel):
    """Per-sensor progress markers."""

    sensor_id: str
    container_id: Optional[str] = None
    last_update_at: Optional[int] = Field(
        default=None, description="Timestamp of the most recent raw sample."
    )
    last_update_periods_at: Dict[int, int] = Field(
        default_factory=dict,
        description="Last closed boundary rolled up, per period in minutes.",
    )

    def cursor_for(self, period: int) -> Optional[int]:
        return self.last_update_periods_at.get(period)

    @property
    def periods_complete_at(self) -> Optional[int]:
        """Boundary up to which every rollup period is known complete."""
        cursors = [self.last_update_periods_at.get(period) for period in ROLLUP_PERIODS]
        if any(cursor is None for cursor in cursors):
            return None
        return min(cursors)  # type: ignore[type-var]


class RollupStatus(str, Enum):
    """Outcome of a single rollup tick."""

    completed = "completed"
    partial = "partial"
    failed = "failed"


class SensorFailure(BaseModel):
    """Why a sensor's unit of work did not advance its cursor."""

    sensor_id: str
    reason: str


class RollupReport(BaseModel):
    """Summary of one ``run_rollup`` call, returned to the scheduler."""

    period: int
    status: RollupStatus = RollupStatus.completed
    processed: int = Field(default=0, ge=0)
    buckets_written: int = Field(default=0, ge=0)
    failed: List[str] = Field(default_factory=list)
    skipped: List[str] = Field(default_factory=list)
    errors: List[SensorFailure] = Field(default_factory=list)
    cancelled: bool = False
    started_at: datetime
    finished_at: Optional[datetime] = None
    processing_ms: Optional[int] = Field(
        default=None, description="Duration in milliseconds from selection to last cursor update."
    )

    def raise_for_failures(self) -> None:
        if self.failed:
            raise PartialBatchFailure(self)


class RawSampleIn(BaseModel):
    measuring_at: int
    value: Decimal = Field(..., max_digits=VALUE_PRECISION, decimal_places=VALUE_SCALE)


class RecordSamplesRequest(BaseModel):
    """Raw per-minute samples for one sensor."""

    container_id: Optional[str] = None
    samples: List[RawSampleIn] = Field(..., min_length=1)


class RecordSamplesResponse(BaseModel):
    sensor_id: str
    recorded: int
    last_update_at: Optional[int] = None


class SeriesPoint(BaseModel):
    sensor_id: str
    measuring_at: int
    value: Decimal


class SeriesResponse(BaseModel):
    """History of one sensor at one granularity."""

    sensor_id: str
    period: int
    source: str = Field(..., description="raw, rollup or grouped")
    points: List[SeriesPoint] = Field(default_factory=list)


class PeriodCatalogResponse(BaseModel):
    raw_period: int
    rollup_periods: List[int]
