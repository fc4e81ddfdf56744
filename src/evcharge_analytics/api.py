"""FastAPI backend serving the revenue & usage report."""
from __future__ import annotations

import asyncio
import logging
import os
from typing import Any, Dict, List, Optional

import requests
from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from .config import load_settings
from .logging_utils import setup_logging
from .loop import refresh_loop
from .report import ReportService, build_service
from .window import RANGE_KEYWORDS, ReportFilter

logger = logging.getLogger(__name__)

_INITIAL_SETTINGS = load_settings()

app = FastAPI(title="EV Charging Analytics API", version="1.0.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=_INITIAL_SETTINGS.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=False,
)


@app.on_event("startup")
async def on_startup() -> None:
    settings = load_settings()
    setup_logging(settings.debug)
    logger.debug("Loaded settings: %s", settings)
    app.state.settings = settings
    if settings.cors_origins != _INITIAL_SETTINGS.cors_origins:
        logger.warning(
            "CORS origin configuration changed to %s after startup; restart required for changes to apply.",
            settings.cors_origins,
        )
    app.state.service = build_service(settings)
    app.state.refresh_task = None
    if settings.auto_refresh:
        app.state.refresh_task = asyncio.create_task(
            refresh_loop(app.state.service, settings.refresh_interval)
        )


@app.on_event("shutdown")
async def on_shutdown() -> None:
    task: asyncio.Task | None = getattr(app.state, "refresh_task", None)
    if task is not None:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        finally:
            app.state.refresh_task = None


def _require_service() -> ReportService:
    service = getattr(app.state, "service", None)
    if service is None:  # pragma: no cover - startup should populate
        raise HTTPException(status_code=503, detail="Service not initialised")
    return service


@app.get("/healthz")
async def healthz() -> Dict[str, Any]:
    service = _require_service()
    current = service.current
    return {
        "status": "ok",
        "auto_refresh": app.state.settings.auto_refresh,
        "last_report": current.generated_at.isoformat() if current else None,
        "last_source": current.source if current else None,
    }


@app.get("/api/report")
async def report(
    range_keyword: str = Query("month", alias="range"),
    start: Optional[str] = Query(None),
    end: Optional[str] = Query(None),
    station_id: Optional[int] = Query(None, alias="stationId"),
    region: Optional[str] = Query(None),
) -> Dict[str, Any]:
    """Return the report for the requested filter.

    The service backs a single console: a filter different from the
    current report's becomes the active filter, and the periodic refresh
    loop keeps refreshing it from then on.
    """
    service = _require_service()
    if range_keyword.strip().lower() not in RANGE_KEYWORDS:
        raise HTTPException(status_code=422, detail="Unsupported range")
    report_filter = ReportFilter.from_params(range_keyword, start, end, station_id, region)
    current = service.current
    if current is not None and current.report_filter == report_filter:
        return current.as_dict()
    model = await service.refresh(report_filter)
    return model.as_dict()


@app.post("/api/refresh")
async def refresh() -> Dict[str, Any]:
    service = _require_service()
    model = await service.refresh()
    return {"status": "refreshed", "sequence": model.sequence, "source": model.source}


@app.post("/api/sync")
async def sync() -> Dict[str, Any]:
    service = _require_service()
    try:
        result = await service.trigger_sync()
    except (requests.RequestException, ValueError) as exc:
        logger.warning("Analytics sync trigger failed: %s", exc)
        raise HTTPException(status_code=502, detail="Analytics sync could not be triggered") from exc
    return {
        "success": result.success,
        "syncedCount": result.synced_count,
        "message": result.message,
    }


@app.get("/api/regions")
async def regions() -> Dict[str, List[Any]]:
    service = _require_service()
    grouped: Dict[str, List[Any]] = {}
    for station_id, region in service.region_map.items():
        grouped.setdefault(region, []).append(station_id)
    return grouped


if __name__ == "__main__":  # pragma: no cover - manual execution helper
    import uvicorn

    uvicorn.run(
        "evcharge_analytics.api:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
    )
