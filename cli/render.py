from __future__ import annotations

from typing import Any, Dict, Iterable

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_periods(payload: Dict[str, Any]) -> None:
    echo_heading("Periods")
    echo_key_values(
        [
            ("raw_period", payload.get("raw_period")),
            ("rollup_periods", ", ".join(str(p) for p in payload.get("rollup_periods") or [])),
        ]
    )


def render_report(payload: Dict[str, Any]) -> None:
    echo_heading(f"Rollup Report (period {payload.get('period')})")
    echo_key_values(
        [
            ("status", payload.get("status")),
            ("processed", payload.get("processed")),
            ("buckets_written", payload.get("buckets_written")),
            ("skipped", len(payload.get("skipped") or [])),
            ("cancelled", payload.get("cancelled")),
            ("started_at", payload.get("started_at")),
            ("finished_at", payload.get("finished_at")),
            ("processing_ms", payload.get("processing_ms")),
        ]
    )

    errors = payload.get("errors") or []
    if errors:
        typer.echo("failed:")
        for error in errors:
            typer.echo(f"  - {error.get('sensor_id')}: {error.get('reason')}")


def render_series(payload: Dict[str, Any]) -> None:
    echo_heading(f"Series {payload.get('sensor_id')} (period {payload.get('period')})")
    typer.echo(f"source: {payload.get('source')}")
    points = payload.get("points") or []
    if not points:
        typer.echo("No points available.")
        return
    for point in points:
        typer.echo(f"  {point.get('measuring_at')}  {point.get('value')}")
