from __future__ import annotations

from typing import Any, Dict, List, Optional

import pytest
from typer.testing import CliRunner

from cli.app import app


def _report(period: int, failed: Optional[List[str]] = None) -> Dict[str, Any]:
    failed = failed or []
    return {
        "period": period,
        "status": "partial" if failed else "completed",
        "processed": 2,
        "buckets_written": 3,
        "failed": failed,
        "skipped": [],
        "errors": [{"sensor_id": sensor_id, "reason": "store offline"} for sensor_id in failed],
        "cancelled": False,
        "started_at": "2024-01-01T00:00:00Z",
        "finished_at": "2024-01-01T00:00:01Z",
        "processing_ms": 12,
    }


class StubClient:
    def __init__(self, config, failed: Optional[List[str]] = None) -> None:
        self.config = config
        self.failed = failed or []
        self.rollup_calls: List[int] = []
        self.series_calls: List[tuple] = []
        self.closed = False

    def list_periods(self) -> Dict[str, Any]:
        return {"raw_period": 1, "rollup_periods": [30, 60, 360, 720, 1440]}

    def run_rollup(self, period: int) -> Dict[str, Any]:
        self.rollup_calls.append(period)
        return _report(period, self.failed)

    def run_all(self) -> List[Dict[str, Any]]:
        return [_report(period, self.failed if period == 60 else None) for period in (30, 60)]

    def get_series(self, sensor_id: str, period: int, start=None, end=None) -> Dict[str, Any]:
        self.series_calls.append((sensor_id, period, start, end))
        return {
            "sensor_id": sensor_id,
            "period": period,
            "source": "rollup",
            "points": [{"sensor_id": sensor_id, "measuring_at": 3600, "value": "2.5"}],
        }

    def close(self) -> None:
        self.closed = True


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


def _install_stub(monkeypatch, stub: StubClient) -> None:
    def factory(config):
        stub.config = config
        return stub

    monkeypatch.setattr("cli.app.ApiClient", factory)


def test_periods_command(monkeypatch, runner: CliRunner) -> None:
    stub = StubClient(config=None)
    _install_stub(monkeypatch, stub)

    result = runner.invoke(app, ["periods"])

    assert result.exit_code == 0
    assert "rollup_periods: 30, 60, 360, 720, 1440" in result.stdout
    assert stub.closed is True


def test_run_command_renders_report(monkeypatch, runner: CliRunner) -> None:
    stub = StubClient(config=None)
    _install_stub(monkeypatch, stub)

    result = runner.invoke(app, ["--base-url", "http://rollup:9000/", "run", "60"])

    assert result.exit_code == 0
    assert "Rollup Report (period 60)" in result.stdout
    assert "status: completed" in result.stdout
    assert stub.rollup_calls == [60]
    assert stub.config.base_url == "http://rollup:9000"
    assert stub.closed is True


def test_run_command_exits_non_zero_on_failed_sensors(monkeypatch, runner: CliRunner) -> None:
    stub = StubClient(config=None, failed=["sensor-9"])
    _install_stub(monkeypatch, stub)

    result = runner.invoke(app, ["run", "60"])

    assert result.exit_code == 1
    assert "sensor-9: store offline" in result.stdout
    assert "failed for 1 sensor(s): sensor-9" in result.output


def test_run_all_command_checks_every_report(monkeypatch, runner: CliRunner) -> None:
    stub = StubClient(config=None, failed=["sensor-9"])
    _install_stub(monkeypatch, stub)

    result = runner.invoke(app, ["run-all"])

    assert result.exit_code == 1
    assert "Rollup Report (period 30)" in result.stdout
    assert "Rollup Report (period 60)" in result.stdout


def test_series_command(monkeypatch, runner: CliRunner) -> None:
    stub = StubClient(config=None)
    _install_stub(monkeypatch, stub)

    result = runner.invoke(app, ["series", "sensor-1", "--period", "60", "--start", "0"])

    assert result.exit_code == 0
    assert "Series sensor-1 (period 60)" in result.stdout
    assert "3600  2.5" in result.stdout
    assert stub.series_calls == [("sensor-1", 60, 0, None)]
