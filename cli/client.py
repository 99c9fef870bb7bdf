from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

import httpx
import typer

from cli.config import CLIConfig


class ApiClient:
    """Minimal HTTP client for the EdgeCME service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=config.request_timeout)

    def close(self) -> None:
        self._client.close()

    def send_sample(self, flux: float, bz: float, timestamp: Optional[str] = None) -> Dict[str, Any]:
        body: Dict[str, Any] = {"flux": flux, "bz": bz}
        if timestamp:
            body["timestamp"] = timestamp
        return self._request("POST", "/events", json=body)

    def simulate(self) -> Dict[str, Any]:
        return self._request("POST", "/events/simulate")

    def seed(self) -> List[Dict[str, Any]]:
        return self._request("POST", "/events/samples")

    def list_events(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        params = {"limit": limit} if limit else None
        return self._request("GET", "/events", params=params)

    def get_event(self, event_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/events/{event_id}", not_found=f"Event {event_id} was not found.")

    def acknowledge(self, event_id: str) -> Dict[str, Any]:
        return self._request(
            "POST", f"/events/{event_id}/ack", not_found=f"Event {event_id} was not found."
        )

    def trip_breaker(self, event_id: str) -> Dict[str, Any]:
        return self._request(
            "POST", f"/events/{event_id}/breaker", not_found=f"Event {event_id} was not found."
        )

    def summary(self) -> Dict[str, Any]:
        return self._request("GET", "/summary")

    def import_file(self, path: Path) -> Dict[str, Any]:
        if not path.exists():
            raise typer.BadParameter(f"File {path} does not exist.")
        if not path.is_file():
            raise typer.BadParameter(f"Path {path} is not a file.")

        content_type = "application/json" if path.suffix.lower() == ".json" else "text/csv"
        with path.open("rb") as handle:
            return self._request(
                "POST",
                "/events/import",
                files={"file": (path.name, handle, content_type)},
            )

    def stream_events(self) -> Iterator[Dict[str, Any]]:
        """Yield events from the server-sent event stream until it closes."""
        try:
            with self._client.stream("GET", "/events/stream", timeout=None) as response:
                response.raise_for_status()
                for line in response.iter_lines():
                    if line.startswith("data:"):
                        yield json.loads(line[len("data:"):].strip())
        except httpx.HTTPStatusError as exc:
            exc.response.read()
            self._handle_http_error(exc)

    def _request(self, method: str, path: str, not_found: Optional[str] = None, **kwargs: Any) -> Any:
        try:
            response = self._client.request(method, path, **kwargs)
            if not_found and response.status_code == 404:
                raise typer.BadParameter(not_found)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        except httpx.TransportError as exc:
            typer.secho(
                f"Could not reach {self._config.base_url}: {exc}", fg=typer.colors.RED, err=True
            )
            raise typer.Exit(code=1) from exc
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
