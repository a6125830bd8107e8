from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_SERIES_NAME_ENV = "ROLLUP_SERIES_TABLE_NAME"
_SERIES_PATH_ENV = "ROLLUP_SERIES_PERSISTENCE_PATH"
_CURSOR_NAME_ENV = "ROLLUP_CURSOR_TABLE_NAME"
_CURSOR_PATH_ENV = "ROLLUP_CURSOR_PERSISTENCE_PATH"
_WORKER_COUNT_ENV = "ROLLUP_WORKER_COUNT"
_STORE_TIMEOUT_ENV = "ROLLUP_STORE_TIMEOUT"
_MAX_BUCKETS_ENV = "ROLLUP_MAX_BUCKETS"
_LOG_LEVEL_ENV = "LOG_LEVEL"


@dataclass(frozen=True)
class Settings:
    series_table_name: str
    series_persistence_path: Optional[str]
    cursor_table_name: str
    cursor_persistence_path: Optional[str]
    rollup_workers: int
    store_timeout: float
    rollup_max_buckets: int
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_positive_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_store_timeout(default: float) -> float:
    value = os.getenv(_STORE_TIMEOUT_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        series_table_name=_read_str_env(_SERIES_NAME_ENV, "sensor_series"),
        series_persistence_path=_read_optional_env(_SERIES_PATH_ENV, "./tmp/series.json"),
        cursor_table_name=_read_str_env(_CURSOR_NAME_ENV, "sensor_cursors"),
        cursor_persistence_path=_read_optional_env(_CURSOR_PATH_ENV, "./tmp/cursors.json"),
        rollup_workers=_read_positive_int(_WORKER_COUNT_ENV, 4),
        store_timeout=_read_store_timeout(5.0),
        rollup_max_buckets=_read_positive_int(_MAX_BUCKETS_ENV, 96),
        log_level=_read_log_level("INFO"),
    )
