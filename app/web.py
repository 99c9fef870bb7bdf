from __future__ import annotations

from pathlib import Path

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from models.records import Severity
from services.ingest import IngestService, build_default_ingest_service


templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent / "templates"))

_SEVERITY_STYLES = {
    Severity.safe: "badge-safe",
    Severity.warning: "badge-warning",
    Severity.critical: "badge-critical",
}
templates.env.globals["severity_class"] = lambda severity: _SEVERITY_STYLES.get(severity, "")


def get_ingest_service() -> IngestService:
    return build_default_ingest_service()


router = APIRouter(include_in_schema=False)


@router.get("/ui", name="ui_index", response_class=HTMLResponse)
async def ui_index(
    request: Request,
    service: IngestService = Depends(get_ingest_service),
) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "ui/index.html",
        {
            "events": service.list_events(),
            "summary": service.summarize(),
            "actions": service.list_actions()[:10],
        },
    )


@router.post("/ui/simulate", name="ui_simulate")
async def ui_simulate(
    request: Request,
    service: IngestService = Depends(get_ingest_service),
) -> RedirectResponse:
    service.simulate_edge_event()
    return RedirectResponse(request.url_for("ui_index"), status_code=status.HTTP_303_SEE_OTHER)


@router.get("/ui/events/{event_id}", name="ui_event_detail", response_class=HTMLResponse)
async def ui_event_detail(
    request: Request,
    event_id: str,
    service: IngestService = Depends(get_ingest_service),
) -> HTMLResponse:
    try:
        event = service.get_event(event_id)
    except KeyError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=exc.args[0],
        ) from exc

    actions = [action for action in service.list_actions() if action.event_id == event_id]
    return templates.TemplateResponse(
        request,
        "ui/detail.html",
        {
            "event": event,
            "actions": actions,
            "payload": event.model_dump_json(indent=2),
        },
    )


@router.post("/ui/events/{event_id}/breaker", name="ui_trigger_breaker")
async def ui_trigger_breaker(
    request: Request,
    event_id: str,
    service: IngestService = Depends(get_ingest_service),
) -> RedirectResponse:
    try:
        service.trigger_breaker(event_id)
    except KeyError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=exc.args[0],
        ) from exc
    return RedirectResponse(
        request.url_for("ui_event_detail", event_id=event_id),
        status_code=status.HTTP_303_SEE_OTHER,
    )
