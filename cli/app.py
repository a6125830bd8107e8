from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

import typer

from app.schemas import RollupReport
from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_periods, render_report, render_series
from services.errors import PartialBatchFailure


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for triggering and inspecting sensor rollups.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        typer.secho("CLI state is uninitialized.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    return state


def _check_report(payload: Dict[str, Any]) -> bool:
    report = RollupReport.model_validate(payload)
    try:
        report.raise_for_failures()
    except PartialBatchFailure as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        return False
    return True


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Rollup API base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Seconds to wait for each API request.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, request_timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("periods")
def periods_command(ctx: typer.Context) -> None:
    """Show the raw granularity and the rollup periods."""
    state = _get_state(ctx)
    render_periods(state.client.list_periods())


@app.command("run")
def run_command(
    ctx: typer.Context,
    period: int = typer.Argument(..., help="Rollup period in minutes."),
) -> None:
    """Run one rollup tick for a period; exits 1 if any sensor failed."""
    state = _get_state(ctx)
    payload = state.client.run_rollup(period)
    render_report(payload)
    if not _check_report(payload):
        raise typer.Exit(code=1)


@app.command("run-all")
def run_all_command(ctx: typer.Context) -> None:
    """Run one rollup tick for every period, finest first."""
    state = _get_state(ctx)
    reports = state.client.run_all()
    healthy = True
    for index, payload in enumerate(reports):
        if index:
            typer.echo()
        render_report(payload)
        healthy = _check_report(payload) and healthy
    if not healthy:
        raise typer.Exit(code=1)


@app.command("series")
def series_command(
    ctx: typer.Context,
    sensor_id: str = typer.Argument(..., help="Sensor identifier."),
    period: int = typer.Option(1, "--period", "-p", help="Granularity in minutes."),
    start: Optional[int] = typer.Option(None, "--start", help="Inclusive lower bound, epoch seconds."),
    end: Optional[int] = typer.Option(None, "--end", help="Inclusive upper bound, epoch seconds."),
) -> None:
    """Print a sensor's history at the given granularity."""
    state = _get_state(ctx)
    render_series(state.client.get_series(sensor_id, period, start=start, end=end))
