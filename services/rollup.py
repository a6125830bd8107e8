"""Scheduler-facing rollup orchestration."""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from datetime import datetime, timezone
from functools import lru_cache
from threading import Event, Lock
from typing import Any, Callable, Dict, List, Optional, Set, Tuple, TypeVar

from app.schemas import RollupReport, RollupStatus, SensorCursor, SensorFailure
from datastore.cursor_store import build_default_cursor_table
from datastore.interfaces import SeriesStore
from datastore.series_store import build_default_series_table
from services.aggregator import BucketAggregator
from services.cursors import CursorTracker
from services.errors import StoreTimeout, StoreUnavailable
from services.periods import (
    ROLLUP_PERIODS,
    closed_boundary,
    period_seconds,
    validate_rollup_period,
)
from settings import get_settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RollupEngine:
    """Rolls raw samples up into every closed bucket of a period.

    ``run_rollup`` keeps no state between calls beyond what the stores
    persist, so it can be retried for the same period and called
    concurrently for different ones.
    """

    def __init__(
        self,
        series: SeriesStore,
        tracker: CursorTracker,
        aggregator: BucketAggregator,
        workers: int = 4,
        store_timeout: float = 5.0,
        max_buckets: int = 96,
    ) -> None:
        self.series = series
        self.tracker = tracker
        self.aggregator = aggregator
        self.store_timeout = store_timeout
        self.max_buckets = max_buckets
        self.executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="rollup")
        self._sensor_locks: Dict[Tuple[str, int], Lock] = {}
        self._sensor_locks_guard = Lock()
        self._active_runs: Set[Event] = set()
        self._active_runs_lock = Lock()

    def run_rollup(self, period: int) -> RollupReport:
        """Run one scheduler tick for ``period``.

        Raises ``InvalidPeriod`` for a period outside the catalog and
        ``StoreUnavailable`` when due sensors cannot be selected at all.
        Per-sensor failures are recorded in the returned report instead.
        """
        validate_rollup_period(period)
        start_time = time.perf_counter()
        report = RollupReport(period=period, started_at=datetime.now(timezone.utc))
        token = Event()
        with self._active_runs_lock:
            self._active_runs.add(token)

        try:
            try:
                due = self.tracker.all_due_sensors(period)
            except StoreUnavailable as exc:
                logger.error(
                    "Rollup tick aborted: cursor store unavailable",
                    extra={"period": period, "reason": str(exc)},
                )
                raise

            futures: Dict[Future[Optional[int]], str] = {
                self.executor.submit(self._roll_sensor, sensor, period, token): sensor.sensor_id
                for sensor in due
            }
            for future in as_completed(futures):
                self._record_outcome(report, futures[future], future)
        finally:
            with self._active_runs_lock:
                self._active_runs.discard(token)

        report.failed.sort()
        report.skipped.sort()
        report.errors.sort(key=lambda error: error.sensor_id)
        report.cancelled = token.is_set()
        if report.failed:
            report.status = RollupStatus.partial if report.processed else RollupStatus.failed
        report.finished_at = datetime.now(timezone.utc)
        report.processing_ms = int((time.perf_counter() - start_time) * 1000)

        logger.info(
            "Rollup tick finished",
            extra={
                "period": period,
                "status": report.status.value,
                "processed_count": report.processed,
                "failed_count": len(report.failed),
                "skipped_count": len(report.skipped),
                "bucket_count": report.buckets_written,
                "processing_ms": report.processing_ms,
            },
        )
        return report

    def run_all(self) -> List[RollupReport]:
        """Run every rollup period once, finest first."""
        return [self.run_rollup(period) for period in ROLLUP_PERIODS]

    def cancel(self) -> None:
        """Stop in-flight ticks from starting further sensors."""
        with self._active_runs_lock:
            for token in self._active_runs:
                token.set()

    def shutdown(self) -> None:
        """Clean up executor resources during application shutdown."""
        self.cancel()
        self.executor.shutdown(wait=False, cancel_futures=True)

    def _record_outcome(
        self, report: RollupReport, sensor_id: str, future: Future[Optional[int]]
    ) -> None:
        try:
            written = future.result()
        except StoreUnavailable as exc:
            logger.warning(
                "Sensor rollup failed; cursor left in place",
                extra={"sensor_id": sensor_id, "period": report.period, "reason": str(exc)},
            )
            report.failed.append(sensor_id)
            report.errors.append(SensorFailure(sensor_id=sensor_id, reason=str(exc)))
            return
        except Exception as exc:  # noqa: BLE001 - one sensor must not abort the tick
            logger.exception(
                "Unexpected sensor rollup failure",
                extra={"sensor_id": sensor_id, "period": report.period},
            )
            report.failed.append(sensor_id)
            report.errors.append(SensorFailure(sensor_id=sensor_id, reason=repr(exc)))
            return

        if written is None:
            report.skipped.append(sensor_id)
            return
        report.processed += 1
        report.buckets_written += written

    def _roll_sensor(self, sensor: SensorCursor, period: int, token: Event) -> Optional[int]:
        """Aggregate, persist and advance one sensor. ``None`` means skipped."""
        if token.is_set():
            return None

        lock = self._sensor_lock(sensor.sensor_id, period)
        if not lock.acquire(blocking=False):
            logger.info(
                "Sensor already being rolled up",
                extra={"sensor_id": sensor.sensor_id, "period": period},
            )
            return None

        try:
            sensor_id = sensor.sensor_id
            current = self._bounded(sensor_id, self.tracker.store.get, sensor_id)
            if current.last_update_at is None:
                return None
            cursor = current.cursor_for(period)
            boundary = closed_boundary(current.last_update_at, period)
            if cursor is not None and boundary <= cursor:
                return None

            # At most ``max_buckets`` windows per tick; the rest stay due.
            first = cursor + 1 if cursor is not None else None
            target = boundary
            if cursor is not None:
                target = min(boundary, cursor + self.max_buckets * period_seconds(period))

            samples = self._bounded(sensor_id, self.series.read_raw, sensor_id, first, target)
            buckets = self.aggregator.aggregate(samples, period, start_time=first, end_time=target)
            if len(buckets) > self.max_buckets:
                buckets = buckets[: self.max_buckets]
                target = buckets[-1].bucket_start

            self._bounded(
                sensor_id,
                self.series.upsert_many,
                sensor_id,
                period,
                [(bucket.bucket_start, bucket.value) for bucket in buckets],
            )
            self.tracker.advance(sensor_id, period, target)
            logger.debug(
                "Sensor rolled up",
                extra={
                    "sensor_id": sensor_id,
                    "period": period,
                    "cursor": target,
                    "bucket_count": len(buckets),
                },
            )
            return len(buckets)
        finally:
            lock.release()

    def _bounded(self, sensor_id: str, call: Callable[..., T], *args: Any) -> T:
        """Run one store call; a call slower than ``store_timeout`` fails the unit."""
        started = time.monotonic()
        result = call(*args)
        if time.monotonic() - started > self.store_timeout:
            raise StoreTimeout(
                f"Store call for sensor {sensor_id!r} exceeded {self.store_timeout}s store timeout."
            )
        return result

    def _sensor_lock(self, sensor_id: str, period: int) -> Lock:
        with self._sensor_locks_guard:
            return self._sensor_locks.setdefault((sensor_id, period), Lock())


@lru_cache
def build_default_engine(
    workers: Optional[int] = None,
) -> RollupEngine:
    """Factory that wires the engine with the default mock stores."""
    settings = get_settings()
    tracker = CursorTracker(build_default_cursor_table())
    return RollupEngine(
        series=build_default_series_table(),
        tracker=tracker,
        aggregator=BucketAggregator(),
        workers=workers or settings.rollup_workers,
        store_timeout=settings.store_timeout,
        max_buckets=settings.rollup_max_buckets,
    )
