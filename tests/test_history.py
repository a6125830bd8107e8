from __future__ import annotations

from decimal import Decimal

import pytest

from app.schemas import RawSampleIn
from datastore.cursor_store import MockCursorTable
from datastore.series_store import MockSeriesTable
from services.aggregator import BucketAggregator
from services.errors import InvalidPeriod
from services.history import HistoryService
from services.ingest import SampleRecorder


@pytest.fixture()
def history() -> HistoryService:
    series = MockSeriesTable(name="series")
    cursors = MockCursorTable(name="cursors")
    recorder = SampleRecorder(series=series, cursors=cursors)
    recorder.record(
        "sensor-a",
        [RawSampleIn(measuring_at=t, value=Decimal(v)) for t, v in [(60, "1"), (900, "3"), (960, "8")]],
        container_id="rack-1",
    )
    recorder.record(
        "sensor-b",
        [RawSampleIn(measuring_at=60, value=Decimal("5"))],
        container_id="rack-1",
    )
    recorder.record("sensor-c", [RawSampleIn(measuring_at=60, value=Decimal("9"))])
    series.upsert_aggregate("sensor-a", 60, 3600, Decimal("4"))
    series.upsert_aggregate("sensor-a", 60, 7200, Decimal("6"))
    return HistoryService(series=series, cursors=cursors, aggregator=BucketAggregator())


def test_series_reads_raw_samples_for_the_minute_period(history: HistoryService) -> None:
    response = history.series("sensor-a", 1, start=100)

    assert response.source == "raw"
    assert [(p.measuring_at, p.value) for p in response.points] == [
        (900, Decimal("3")),
        (960, Decimal("8")),
    ]


def test_series_reads_stored_rollups(history: HistoryService) -> None:
    response = history.series("sensor-a", 60, start=3601)

    assert response.source == "rollup"
    assert [(p.measuring_at, p.value) for p in response.points] == [(7200, Decimal("6"))]


def test_series_groups_other_periods_on_the_fly(history: HistoryService) -> None:
    response = history.series("sensor-a", 15)

    assert response.source == "grouped"
    assert [(p.measuring_at, p.value) for p in response.points] == [
        (900, Decimal("2")),
        (1800, Decimal("8")),
    ]


def test_series_for_unknown_sensor_raises_key_error(history: HistoryService) -> None:
    with pytest.raises(KeyError):
        history.series("missing", 60)


def test_series_rejects_non_positive_period(history: HistoryService) -> None:
    with pytest.raises(InvalidPeriod):
        history.series("sensor-a", 0)


def test_raw_and_grouped_cover_several_sensors(history: HistoryService) -> None:
    raw = history.raw(["sensor-b", "sensor-a"], end=900)
    assert [(s.sensor_id, s.measuring_at) for s in raw] == [
        ("sensor-a", 60),
        ("sensor-a", 900),
        ("sensor-b", 60),
    ]

    grouped = history.grouped(["sensor-a", "sensor-b"], 30, start=1, end=1800)
    assert [(b.sensor_id, b.bucket_start, b.value) for b in grouped] == [
        ("sensor-a", 1800, Decimal("4")),
        ("sensor-b", 1800, Decimal("5")),
    ]


def test_latest_and_container_snapshot(history: HistoryService) -> None:
    latest = history.latest("sensor-a")
    assert latest is not None and latest.measuring_at == 960
    assert history.latest("sensor-b", start=61) is None

    snapshot = history.container_snapshot("rack-1", 60)
    assert [(s.sensor_id, s.value) for s in snapshot] == [
        ("sensor-a", Decimal("1")),
        ("sensor-b", Decimal("5")),
    ]
