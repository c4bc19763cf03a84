from __future__ import annotations

import logging
import os
import platform
from datetime import date, datetime
from typing import List, Optional

import pytz

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from pydantic import BaseModel, Field
from sqlalchemy import text as sql_text
from sqlalchemy.orm import Session

from astrojournal.config import configure_logging, settings
from astrojournal.constants import MOOD_CATEGORIES, MoonPhase, Planet, ZodiacSign
from astrojournal.core.scheduler import get_poller, init_scheduler, shutdown_scheduler
from astrojournal.database import get_db, init_db
from astrojournal.exceptions import ComputationError
from astrojournal.monitoring.metrics import render_latest
from astrojournal.reports.planetary_hours_report import (
    generate_planetary_hours_report,
    get_report_metrics,
)
from astrojournal.services.astro_core import LocationHint
from astrojournal.services.enrichment_service import SnapshotService
from astrojournal.services.journal_service import JournalService, entry_to_dict
from astrojournal.services.planetary_events_service import (
    EventKind,
    PlanetaryEventsService,
    event_to_dict,
)
from astrojournal.services.planetary_hours_service import hour_slots
from astrojournal.utils.timezone import from_utc_naive, now_in

logger = logging.getLogger(__name__)

app = FastAPI(title=settings.APP_NAME, version=settings.APP_VERSION)

# ---------------------------------------------------------------
# Global startup time for uptime metrics
# ---------------------------------------------------------------
START_TIME_UTC = now_in("UTC")

# ---------------------------------------------------------------
# CORS
# ---------------------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------
# Dependencies & utility
# ---------------------------------------------------------------

_snapshot_service: Optional[SnapshotService] = None


def get_snapshot_service() -> SnapshotService:
    global _snapshot_service
    if _snapshot_service is None:
        _snapshot_service = SnapshotService()
    return _snapshot_service


def get_journal(
    db: Session = Depends(get_db),
    snapshots: SnapshotService = Depends(get_snapshot_service),
) -> JournalService:
    return JournalService(db, snapshots=snapshots)


def _parse_date_or_400(date_str: str) -> date:
    try:
        return datetime.strptime(date_str, "%Y-%m-%d").date()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid date format, use YYYY-MM-DD")


class EntryIn(BaseModel):
    text: str = Field(..., min_length=1)
    mood: str
    date: Optional[datetime] = None
    hashtags: List[str] = Field(default_factory=list)
    location: str = ""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    is_manual: bool = False


@app.exception_handler(ComputationError)
async def computation_error_handler(request: Request, exc: ComputationError):
    logger.error("Computation error on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": "Internal astro computation error"})


# ---------------------------------------------------------------
# Lifespan: init DB and poller on startup
# ---------------------------------------------------------------
@app.on_event("startup")
async def on_startup():
    configure_logging()
    init_db()
    if settings.SCHEDULER_ENABLED:
        init_scheduler()


@app.on_event("shutdown")
async def on_shutdown():
    shutdown_scheduler()
    get_snapshot_service().shutdown()


# ---------------------------------------------------------------
# Health / Metrics / System Info / Logs
# ---------------------------------------------------------------


@app.get("/version")
async def version():
    return {"app_name": settings.APP_NAME, "version": settings.APP_VERSION}


@app.get("/health")
async def health():
    now = now_in("UTC").isoformat()
    return {"status": "OK", "time": now}


@app.get("/metrics")
async def metrics():
    body, content_type = render_latest()
    return Response(content=body, media_type=content_type)


@app.get("/system/info")
def system_info(db: Session = Depends(get_db)):
    now = now_in("UTC")
    uptime = (now - START_TIME_UTC).total_seconds()

    db_ok = True
    db_error = None
    try:
        db.execute(sql_text("SELECT 1"))
    except Exception as exc:  # pragma: no cover
        db_ok = False
        db_error = str(exc)

    poller = get_poller()
    return {
        "app": {"name": settings.APP_NAME, "version": settings.APP_VERSION},
        "runtime": {
            "python_version": platform.python_version(),
            "platform": platform.platform(),
        },
        "database": {"ok": db_ok, "error": db_error},
        "ephemeris_provider": settings.EPHEMERIS_PROVIDER,
        "local_timezone": settings.LOCAL_TIMEZONE,
        "active_users": len(poller.active_users),
        "last_report": get_report_metrics(),
        "server_time_utc": now.isoformat(),
        "uptime_seconds": uptime,
    }


@app.get("/logs")
async def logs():
    log_path = settings.APP_LOG_PATH or "app.log"
    if not os.path.exists(log_path):
        return {
            "log_path": log_path,
            "exists": False,
            "message": "Log file not found. Configure APP_LOG_PATH.",
        }
    try:
        with open(log_path, "r", encoding="utf-8") as f:
            content = f.read()[-8000:]
        return PlainTextResponse(content)
    except OSError as exc:  # pragma: no cover
        raise HTTPException(status_code=500, detail=f"Error reading log file: {exc}")


# ---------------------------------------------------------------
# Astro snapshot & calendars
# Handlers that resolve snapshots or touch the database are plain `def`
# so FastAPI runs them in its threadpool, off the event loop.
# ---------------------------------------------------------------


@app.get("/astro/now")
def astro_now(
    location: str = Query("", description="Optional location label for enrichment"),
    snapshots: SnapshotService = Depends(get_snapshot_service),
):
    now = now_in(settings.LOCAL_TIMEZONE)
    hint = LocationHint(name=location) if location.strip() else None
    result = snapshots.resolve(now, hint)
    return {
        "timestamp": now.isoformat(),
        "snapshot": result.info.to_dict(),
        "advisory": result.advisory,
    }


@app.get("/astro/hours/{date_str}")
def astro_hours(date_str: str):
    d = _parse_date_or_400(date_str)
    return {"date": d.isoformat(), "hours": [s.to_dict() for s in hour_slots(d)]}


@app.get("/astro/transitions/{date_str}")
def astro_transitions(
    date_str: str,
    step_minutes: int = Query(5, ge=1, le=60),
):
    d = _parse_date_or_400(date_str)
    events = PlanetaryEventsService(step_minutes=step_minutes).scan_day(d)
    return {"date": d.isoformat(), "events": [event_to_dict(e) for e in events]}


@app.get("/api/reports/{date_str}")
def get_report(
    date_str: str,
    tz: Optional[str] = Query(None, description="IANA timezone, default LOCAL_TIMEZONE"),
):
    d = _parse_date_or_400(date_str)
    try:
        return generate_planetary_hours_report(d, timezone_str=tz)
    except pytz.UnknownTimeZoneError:
        raise HTTPException(status_code=400, detail=f"Unknown timezone '{tz}'")


@app.get("/api/moods")
async def moods():
    return MOOD_CATEGORIES


# ---------------------------------------------------------------
# Journal
# ---------------------------------------------------------------


@app.post("/api/users/{user_id}/entries", status_code=201)
def create_entry(
    user_id: str,
    body: EntryIn,
    journal: JournalService = Depends(get_journal),
):
    poller = get_poller()
    poller.activate(user_id)
    entry_date = body.date or now_in(settings.LOCAL_TIMEZONE)
    try:
        entry, events = journal.save_entry(
            user_id,
            text=body.text,
            mood=body.mood,
            entry_date=entry_date,
            hashtags=body.hashtags,
            location=body.location,
            latitude=body.latitude,
            longitude=body.longitude,
            is_manual=body.is_manual or body.date is not None,
            current_snapshot=poller.last_snapshot(user_id),
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return {"entry": entry_to_dict(entry), "events": [event_to_dict(e) for e in events]}


@app.get("/api/users/{user_id}/entries/{entry_id}")
def read_entry(user_id: str, entry_id: str, journal: JournalService = Depends(get_journal)):
    entry = journal.get_entry(user_id, entry_id)
    if entry is None:
        raise HTTPException(status_code=404, detail="Entry not found")
    return entry_to_dict(entry)


@app.put("/api/users/{user_id}/entries/{entry_id}")
def update_entry(
    user_id: str,
    entry_id: str,
    body: EntryIn,
    journal: JournalService = Depends(get_journal),
):
    existing = journal.get_entry(user_id, entry_id)
    if existing is None:
        raise HTTPException(status_code=404, detail="Entry not found")
    entry_date = body.date or from_utc_naive(existing.created_at, settings.LOCAL_TIMEZONE)
    try:
        entry = journal.update_entry(
            user_id,
            entry_id,
            text=body.text,
            mood=body.mood,
            entry_date=entry_date,
            hashtags=body.hashtags,
            location=body.location,
            latitude=body.latitude,
            longitude=body.longitude,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return entry_to_dict(entry)


@app.delete("/api/users/{user_id}/entries/{entry_id}", status_code=204)
def delete_entry(user_id: str, entry_id: str, journal: JournalService = Depends(get_journal)):
    if not journal.delete_entry(user_id, entry_id):
        raise HTTPException(status_code=404, detail="Entry not found")
    return Response(status_code=204)


@app.delete("/api/users/{user_id}/events/{event_id}", status_code=204)
def delete_event(user_id: str, event_id: str, journal: JournalService = Depends(get_journal)):
    if not journal.delete_event(user_id, event_id):
        raise HTTPException(status_code=404, detail="Event not found")
    return Response(status_code=204)


@app.get("/api/users/{user_id}/timeline")
def timeline(
    user_id: str,
    kinds: Optional[List[EventKind]] = Query(None, description="Event types to include"),
    journal: JournalService = Depends(get_journal),
):
    get_poller().activate(user_id)
    return {"user_id": user_id, "items": journal.timeline(user_id, kinds=kinds)}


@app.get("/api/users/{user_id}/search")
def search(
    user_id: str,
    keyword: str = "",
    hashtag: str = "",
    planetary_day: Optional[Planet] = None,
    planetary_hour: Optional[Planet] = None,
    sun_sign: Optional[ZodiacSign] = None,
    moon_sign: Optional[ZodiacSign] = None,
    moon_phase: Optional[MoonPhase] = None,
    journal: JournalService = Depends(get_journal),
):
    results = journal.search(
        user_id,
        keyword=keyword,
        hashtag=hashtag,
        planetary_day=planetary_day.value if planetary_day else None,
        planetary_hour=planetary_hour.value if planetary_hour else None,
        sun_sign=sun_sign.value if sun_sign else None,
        moon_sign=moon_sign.value if moon_sign else None,
        moon_phase=moon_phase.value if moon_phase else None,
    )
    return {"count": len(results), "entries": [entry_to_dict(e) for e in results]}


@app.get("/api/users/{user_id}/map")
def map_entries(user_id: str, journal: JournalService = Depends(get_journal)):
    return {"entries": [entry_to_dict(e) for e in journal.mapped_entries(user_id)]}


@app.delete("/api/users/{user_id}/session", status_code=204)
async def end_session(user_id: str):
    get_poller().deactivate(user_id)
    return Response(status_code=204)
