from __future__ import annotations

from typing import Any, Dict, Iterable, List

import typer

_SEVERITY_COLORS = {
    "Safe": typer.colors.GREEN,
    "Warning": typer.colors.YELLOW,
    "Critical": typer.colors.RED,
}


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def severity_label(severity: Any) -> str:
    label = str(severity)
    return typer.style(label, fg=_SEVERITY_COLORS.get(label), bold=label == "Critical")


def render_classification(severity: str, confidence: float) -> None:
    echo_heading("Classification")
    typer.echo(f"severity: {severity_label(severity)}")
    typer.echo(f"confidence: {confidence:.2f}")


def render_event(payload: Dict[str, Any]) -> None:
    echo_heading("Event")
    echo_key_values(
        [
            ("event_id", payload.get("event_id")),
            ("timestamp", payload.get("timestamp")),
            ("flux", payload.get("flux")),
            ("bz", payload.get("bz")),
        ]
    )
    typer.echo(f"severity: {severity_label(payload.get('severity'))}")
    echo_key_values(
        [
            ("confidence", payload.get("confidence")),
            ("source", payload.get("source")),
            ("acknowledged", payload.get("acknowledged")),
        ]
    )


def render_event_line(payload: Dict[str, Any]) -> None:
    confidence = payload.get("confidence") or 0.0
    typer.echo(
        f"{payload.get('timestamp')}  flux={payload.get('flux')}  bz={payload.get('bz')}  "
        f"{severity_label(payload.get('severity'))} ({confidence:.2f})  {payload.get('event_id')}"
    )


def render_events(events: List[Dict[str, Any]]) -> None:
    echo_heading("Recent Events")
    if not events:
        typer.echo("No events recorded.")
        return
    for event in events:
        render_event_line(event)


def render_action(payload: Dict[str, Any]) -> None:
    echo_heading("Breaker Action")
    echo_key_values(
        [
            ("action_id", payload.get("action_id")),
            ("event_id", payload.get("event_id")),
            ("trigger", payload.get("trigger")),
            ("status", payload.get("status")),
            ("detail", payload.get("detail")),
        ]
    )


def render_import(payload: Dict[str, Any]) -> None:
    echo_heading("Import Result")
    echo_key_values(
        [
            ("filename", payload.get("filename")),
            ("accepted", payload.get("accepted")),
        ]
    )
    errors = payload.get("errors") or []
    typer.echo()
    echo_heading("Errors")
    if errors:
        for error in errors:
            typer.echo(f"  - row {error.get('row_number')}: {error.get('reason')}")
    else:
        typer.echo("No errors recorded.")


def render_summary(payload: Dict[str, Any]) -> None:
    echo_heading("Summary")
    echo_key_values(
        [
            ("total", payload.get("total")),
            ("peak_flux", payload.get("peak_flux")),
            ("min_bz", payload.get("min_bz")),
            ("latest_severity", payload.get("latest_severity")),
            ("unacknowledged_critical", payload.get("unacknowledged_critical")),
        ]
    )
    per_severity = payload.get("per_severity") or {}
    if per_severity:
        typer.echo("per_severity:")
        for tier, count in per_severity.items():
            typer.echo(f"  - {severity_label(tier)}: {count}")
