"""Unit tests for the mock series table."""

from __future__ import annotations

import json
from decimal import Decimal
from pathlib import Path

import pytest

from datastore.series_store import MockSeriesTable
from services.errors import StoreUnavailable


class _FlakyDiskTable(MockSeriesTable):
    broken = False

    def _persist(self) -> None:
        if self.broken:
            raise OSError("disk full")
        super()._persist()


def test_upsert_aggregate_overwrites_the_same_key() -> None:
    table = MockSeriesTable(name="series")

    table.upsert_aggregate("sensor-a", 60, 3600, Decimal("1.5"))
    table.upsert_aggregate("sensor-a", 60, 3600, Decimal("2.5"))

    stored = table.read_aggregate("sensor-a", 60)
    assert [(s.measuring_at, s.value) for s in stored] == [(3600, Decimal("2.5"))]
    assert len(table.scan()) == 1


def test_periods_are_separate_series() -> None:
    table = MockSeriesTable(name="series")

    table.upsert_raw("sensor-a", 3600, Decimal("4"))
    table.upsert_aggregate("sensor-a", 60, 3600, Decimal("3"))
    table.upsert_aggregate("sensor-a", 30, 3600, Decimal("2"))

    assert [s.value for s in table.read_raw("sensor-a")] == [Decimal("4")]
    assert [s.value for s in table.read_aggregate("sensor-a", 60)] == [Decimal("3")]
    assert [s.period_type for s in table.read_aggregate("sensor-a", 30)] == [30]


def test_read_raw_is_ordered_and_bounds_are_inclusive() -> None:
    table = MockSeriesTable(name="series")
    for measuring_at in (300, 60, 240, 120, 180):
        table.upsert_raw("sensor-a", measuring_at, Decimal(measuring_at))
    table.upsert_raw("sensor-b", 120, Decimal("9"))

    samples = table.read_raw("sensor-a", start=120, end=240)

    assert [s.measuring_at for s in samples] == [120, 180, 240]
    assert all(s.sensor_id == "sensor-a" for s in samples)


def test_latest_and_read_at() -> None:
    table = MockSeriesTable(name="series")
    table.upsert_raw("sensor-a", 60, Decimal("1"))
    table.upsert_raw("sensor-a", 120, Decimal("2"))
    table.upsert_raw("sensor-b", 120, Decimal("3"))

    latest = table.latest("sensor-a")
    assert latest is not None and latest.measuring_at == 120
    assert table.latest("sensor-a", start=121) is None
    assert table.latest("missing") is None

    snapshot = table.read_at(["sensor-b", "sensor-a", "sensor-c"], 120)
    assert [(s.sensor_id, s.value) for s in snapshot] == [
        ("sensor-a", Decimal("2")),
        ("sensor-b", Decimal("3")),
    ]


def test_upsert_persists_to_disk_and_reloads(tmp_path: Path) -> None:
    path = tmp_path / "series.json"
    table = MockSeriesTable(name="series", persistence_path=path)

    table.upsert_aggregate("sensor-a", 60, 3600, Decimal("2.5"))

    payload = json.loads(path.read_text())
    assert payload["sensor-a|60|3600"]["value"] == "2.5"

    reloaded = MockSeriesTable(name="series", persistence_path=path)
    [sample] = reloaded.read_aggregate("sensor-a", 60)
    assert sample.value == Decimal("2.5")
    assert sample.measuring_at == 3600


def test_failed_write_raises_store_unavailable_and_keeps_previous_value(tmp_path: Path) -> None:
    table = _FlakyDiskTable(name="series", persistence_path=tmp_path / "series.json")
    table.upsert_aggregate("sensor-a", 60, 3600, Decimal("1"))
    table.broken = True

    with pytest.raises(StoreUnavailable):
        table.upsert_aggregate("sensor-a", 60, 3600, Decimal("5"))
    with pytest.raises(StoreUnavailable):
        table.upsert_aggregate("sensor-a", 60, 7200, Decimal("6"))

    assert [(s.measuring_at, s.value) for s in table.read_aggregate("sensor-a", 60)] == [
        (3600, Decimal("1"))
    ]


class _CountingDiskTable(MockSeriesTable):
    writes = 0

    def _persist(self) -> None:
        self.writes += 1
        super()._persist()


def test_upsert_many_persists_once_per_call(tmp_path: Path) -> None:
    table = _CountingDiskTable(name="series", persistence_path=tmp_path / "series.json")

    written = table.upsert_many("sensor-a", 1, [(60, Decimal("1")), (120, Decimal("2")), (180, Decimal("3"))])

    assert written == 3
    assert table.writes == 1
    assert len(json.loads((tmp_path / "series.json").read_text())) == 3
    assert table.upsert_many("sensor-a", 1, []) == 0
    assert table.writes == 1


def test_failed_batch_rolls_back_every_point(tmp_path: Path) -> None:
    table = _FlakyDiskTable(name="series", persistence_path=tmp_path / "series.json")
    table.upsert_aggregate("sensor-a", 60, 3600, Decimal("1"))
    table.broken = True

    with pytest.raises(StoreUnavailable):
        table.upsert_many("sensor-a", 60, [(3600, Decimal("5")), (7200, Decimal("6")), (3600, Decimal("7"))])

    assert [(s.measuring_at, s.value) for s in table.read_aggregate("sensor-a", 60)] == [
        (3600, Decimal("1"))
    ]
