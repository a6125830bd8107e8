"""HTTP route definitions for the service."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.schemas import (
    PeriodCatalogResponse,
    RecordSamplesRequest,
    RecordSamplesResponse,
    RollupReport,
    SensorCursor,
    SeriesPoint,
    SeriesResponse,
)
from services.errors import InvalidPeriod, StoreUnavailable
from services.history import HistoryService, build_default_history
from services.ingest import SampleRecorder, build_default_recorder
from services.periods import RAW_PERIOD, ROLLUP_PERIODS
from services.rollup import RollupEngine, build_default_engine

router = APIRouter()


def get_engine() -> RollupEngine:
    return build_default_engine()


def get_history() -> HistoryService:
    return build_default_history()


def get_recorder() -> SampleRecorder:
    return build_default_recorder()


def _unavailable(exc: StoreUnavailable) -> HTTPException:
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))


@router.get(
    "/periods",
    response_model=PeriodCatalogResponse,
    summary="List the raw granularity and the rollup periods in minutes.",
)
async def list_periods() -> PeriodCatalogResponse:
    return PeriodCatalogResponse(raw_period=RAW_PERIOD, rollup_periods=list(ROLLUP_PERIODS))


@router.post(
    "/rollups/{period}",
    response_model=RollupReport,
    summary="Run one rollup tick for a period.",
)
def run_rollup(
    period: int,
    engine: RollupEngine = Depends(get_engine),
) -> RollupReport:
    try:
        return engine.run_rollup(period)
    except InvalidPeriod as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except StoreUnavailable as exc:
        raise _unavailable(exc) from exc


@router.post(
    "/rollups",
    response_model=List[RollupReport],
    summary="Run one rollup tick for every period, finest first.",
)
def run_all_rollups(engine: RollupEngine = Depends(get_engine)) -> List[RollupReport]:
    try:
        return engine.run_all()
    except StoreUnavailable as exc:
        raise _unavailable(exc) from exc


@router.post(
    "/sensors/{sensor_id}/samples",
    response_model=RecordSamplesResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record raw per-minute samples for a sensor.",
)
def record_samples(
    sensor_id: str,
    payload: RecordSamplesRequest,
    recorder: SampleRecorder = Depends(get_recorder),
) -> RecordSamplesResponse:
    try:
        cursor = recorder.record(sensor_id, payload.samples, container_id=payload.container_id)
    except StoreUnavailable as exc:
        raise _unavailable(exc) from exc
    return RecordSamplesResponse(
        sensor_id=sensor_id,
        recorded=len(payload.samples),
        last_update_at=cursor.last_update_at,
    )


@router.get(
    "/sensors/{sensor_id}",
    response_model=SensorCursor,
    summary="Fetch a sensor's ingest and rollup cursors.",
)
def get_sensor(
    sensor_id: str,
    history: HistoryService = Depends(get_history),
) -> SensorCursor:
    try:
        return history.cursors.get(sensor_id)
    except KeyError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc


@router.get(
    "/sensors/{sensor_id}/series",
    response_model=SeriesResponse,
    summary="Fetch a sensor's history at any granularity.",
)
def get_series(
    sensor_id: str,
    period: int = Query(RAW_PERIOD, description="Granularity in minutes."),
    start: Optional[int] = Query(None, description="Inclusive lower bound, epoch seconds."),
    end: Optional[int] = Query(None, description="Inclusive upper bound, epoch seconds."),
    history: HistoryService = Depends(get_history),
) -> SeriesResponse:
    try:
        return history.series(sensor_id, period, start, end)
    except InvalidPeriod as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except KeyError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except StoreUnavailable as exc:
        raise _unavailable(exc) from exc


@router.get(
    "/sensors/{sensor_id}/latest",
    response_model=SeriesPoint,
    summary="Fetch the most recent raw sample of a sensor.",
)
def get_latest(
    sensor_id: str,
    start: Optional[int] = Query(None, description="Only consider samples at or after this time."),
    history: HistoryService = Depends(get_history),
) -> SeriesPoint:
    sample = history.latest(sensor_id, start)
    if sample is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No samples recorded for sensor {sensor_id!r}.",
        )
    return SeriesPoint(sensor_id=sample.sensor_id, measuring_at=sample.measuring_at, value=sample.value)


@router.get(
    "/containers/{container_id}/samples",
    response_model=List[SeriesPoint],
    summary="Fetch every sensor's raw sample in a container at an exact time.",
)
def get_container_samples(
    container_id: str,
    measuring_at: int = Query(..., description="Exact sample timestamp, epoch seconds."),
    history: HistoryService = Depends(get_history),
) -> List[SeriesPoint]:
    return [
        SeriesPoint(sensor_id=sample.sensor_id, measuring_at=sample.measuring_at, value=sample.value)
        for sample in history.container_snapshot(container_id, measuring_at)
    ]


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}
