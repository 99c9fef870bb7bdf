from __future__ import annotations

import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import (
    render_action,
    render_classification,
    render_event,
    render_event_line,
    render_events,
    render_import,
    render_summary,
)
from services.classifier import InvalidSample, Thresholds, classify


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for interacting with the EdgeCME monitoring service.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        typer.secho("CLI state is uninitialized.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Service base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Per-request timeout in seconds.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, request_timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("classify")
def classify_command(
    flux: float = typer.Option(..., "--flux", help="Particle flux reading."),
    bz: float = typer.Option(..., "--bz", help="IMF Bz in nT (negative is southward)."),
    flux_warning: float = typer.Option(3000.0, "--flux-warning", help="Warning flux threshold."),
    flux_critical: float = typer.Option(10000.0, "--flux-critical", help="Critical flux threshold."),
    bz_critical: float = typer.Option(-10.0, "--bz-critical", help="Critical Bz threshold."),
) -> None:
    """Classify a sample locally without contacting the service."""
    try:
        thresholds = Thresholds(
            flux_warning=flux_warning, flux_critical=flux_critical, bz_critical=bz_critical
        )
        severity, confidence = classify(flux, bz, thresholds)
    except InvalidSample as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    render_classification(severity.value, confidence)


@app.command("send")
def send_command(
    ctx: typer.Context,
    flux: float = typer.Option(..., "--flux", help="Particle flux reading."),
    bz: float = typer.Option(..., "--bz", help="IMF Bz in nT."),
    timestamp: Optional[str] = typer.Option(
        None, "--timestamp", help="ISO-8601 observation time (defaults to now)."
    ),
) -> None:
    """Send one sample to the service."""
    state = _get_state(ctx)
    render_event(state.client.send_sample(flux, bz, timestamp))


@app.command("simulate")
def simulate_command(
    ctx: typer.Context,
    count: int = typer.Option(1, "--count", "-n", min=1, help="Number of edge events to simulate."),
    interval: Optional[float] = typer.Option(
        None, "--interval", help="Seconds between simulated events."
    ),
) -> None:
    """Ask the service to ingest simulated edge-node events."""
    state = _get_state(ctx)
    pause = interval if interval is not None else state.config.simulate_interval
    for index in range(count):
        render_event_line(state.client.simulate())
        if index < count - 1:
            time.sleep(pause)


@app.command("seed")
def seed_command(ctx: typer.Context) -> None:
    """Load the bundled reference events."""
    state = _get_state(ctx)
    render_events(state.client.seed())


@app.command("events")
def events_command(
    ctx: typer.Context,
    limit: Optional[int] = typer.Option(None, "--limit", "-l", min=1, help="Maximum events to show."),
) -> None:
    """List recent events, newest first."""
    state = _get_state(ctx)
    render_events(state.client.list_events(limit))


@app.command("show")
def show_command(
    ctx: typer.Context,
    event_id: str = typer.Argument(..., help="Event identifier."),
) -> None:
    """Show a single event."""
    state = _get_state(ctx)
    render_event(state.client.get_event(event_id))


@app.command("ack")
def ack_command(
    ctx: typer.Context,
    event_id: str = typer.Argument(..., help="Event identifier."),
) -> None:
    """Acknowledge an alert."""
    state = _get_state(ctx)
    state.client.acknowledge(event_id)
    typer.secho(f"Event {event_id} acknowledged.", fg=typer.colors.GREEN)


@app.command("trip")
def trip_command(
    ctx: typer.Context,
    event_id: str = typer.Argument(..., help="Event identifier."),
) -> None:
    """Send a simulated breaker trip for an event."""
    state = _get_state(ctx)
    render_action(state.client.trip_breaker(event_id))


@app.command("import")
def import_command(
    ctx: typer.Context,
    file: Path = typer.Argument(
        ..., exists=True, dir_okay=False, readable=True, help="CSV or JSON file of samples."
    ),
) -> None:
    """Import samples from a file."""
    state = _get_state(ctx)
    typer.echo(f"Importing {file} to {state.config.base_url} ...")
    render_import(state.client.import_file(file))


@app.command("summary")
def summary_command(ctx: typer.Context) -> None:
    """Show the dashboard summary."""
    state = _get_state(ctx)
    render_summary(state.client.summary())


@app.command("watch")
def watch_command(
    ctx: typer.Context,
    count: Optional[int] = typer.Option(
        None, "--count", "-n", min=1, help="Stop after this many events."
    ),
) -> None:
    """Follow newly ingested events live."""
    state = _get_state(ctx)
    typer.echo(f"Watching {state.config.base_url}/events/stream (Ctrl+C to stop) ...")
    seen = 0
    for event in state.client.stream_events():
        render_event_line(event)
        seen += 1
        if count is not None and seen >= count:
            break
