from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx
import typer

from cli.config import CLIConfig


class ApiClient:
    """Minimal HTTP client for the rollup service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=config.request_timeout)

    def close(self) -> None:
        self._client.close()

    def list_periods(self) -> Dict[str, Any]:
        return self._request("GET", "/periods")

    def run_rollup(self, period: int) -> Dict[str, Any]:
        return self._request("POST", f"/rollups/{period}")

    def run_all(self) -> List[Dict[str, Any]]:
        return self._request("POST", "/rollups")

    def get_series(
        self,
        sensor_id: str,
        period: int,
        start: Optional[int] = None,
        end: Optional[int] = None,
    ) -> Dict[str, Any]:
        params: Dict[str, int] = {"period": period}
        if start is not None:
            params["start"] = start
        if end is not None:
            params["end"] = end
        try:
            response = self._client.get(f"/sensors/{sensor_id}/series", params=params)
            if response.status_code == 404:
                raise typer.BadParameter(f"Sensor {sensor_id} was not found.")
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        return response.json()

    def _request(self, method: str, path: str) -> Any:
        try:
            response = self._client.request(method, path)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        return response.json()

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: str | None = None
        try:
            data = exc.response.json()
            detail = data.get("detail")
        except Exception:  # noqa: BLE001 - best effort parsing
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
