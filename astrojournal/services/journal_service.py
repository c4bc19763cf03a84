# astrojournal/services/journal_service.py

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from astrojournal.config import settings
from astrojournal.constants import COARSE_PHASES, MOODS, MoonPhase
from astrojournal.models import AstroEvent, JournalEntry
from astrojournal.monitoring.metrics import EVENTS_EMITTED
from astrojournal.services.astro_core import LocationHint, PlanetaryInfo
from astrojournal.services.enrichment_service import SnapshotService
from astrojournal.services.planetary_events_service import (
    ChangeEvent,
    EventKind,
    retrograde_event_for_entry,
)
from astrojournal.utils.timezone import to_utc

logger = logging.getLogger(__name__)


def _utc_naive(dt: datetime) -> datetime:
    return to_utc(dt, settings.LOCAL_TIMEZONE).replace(tzinfo=None)


def normalize_hashtags(tags: Optional[Iterable[str]]) -> List[str]:
    out: List[str] = []
    for tag in tags or []:
        t = tag.strip().lstrip("#").strip()
        if t and t not in out:
            out.append(t)
    return out


def entry_to_dict(entry: JournalEntry) -> Dict[str, Any]:
    coords = None
    if entry.latitude is not None and entry.longitude is not None:
        coords = {"lat": entry.latitude, "lng": entry.longitude}
    return {
        "id": entry.id,
        "type": "JournalEntry",
        "text": entry.text,
        "mood": entry.mood,
        "created_at": entry.created_at.isoformat(),
        "planetary_day": entry.planetary_day,
        "planetary_hour": entry.planetary_hour,
        "sun_sign": entry.sun_sign,
        "moon_sign": entry.moon_sign,
        "moon_phase": entry.moon_phase,
        "moon_phase_coarse": entry.moon_phase_coarse,
        "retrogrades": list(entry.retrogrades or []),
        "hashtags": list(entry.hashtags or []),
        "location": entry.location or "",
        "coords": coords,
    }


def stored_event_to_dict(event: AstroEvent) -> Dict[str, Any]:
    d = {
        "id": event.id,
        "type": event.kind,
        "created_at": event.created_at.isoformat(),
        "title": event.title,
        "description": event.description,
    }
    d.update(event.payload or {})
    return d


class JournalService:
    """
    Journal entries and timeline events for one database session.

    Entries are stamped with the planetary snapshot of their own date when
    saved or edited; saving on a date with retrograde planets also drops a
    Retrograde marker into the timeline.
    """

    def __init__(self, db: Session, snapshots: Optional[SnapshotService] = None) -> None:
        self.db = db
        self.snapshots = snapshots or SnapshotService()

    # --------------------------------------------------------------
    # Snapshot stamping
    # --------------------------------------------------------------
    def _stamp(
        self,
        entry: JournalEntry,
        info: PlanetaryInfo,
    ) -> None:
        entry.planetary_day = info.planetary_day.value
        entry.planetary_hour = info.planetary_hour.value
        entry.sun_sign = info.sun_sign.value
        entry.moon_sign = info.moon_sign.value
        entry.moon_phase = info.moon_phase.value
        entry.moon_phase_coarse = info.moon_phase.coarse().value
        entry.retrogrades = [p.value for p in info.retrogrades]
        entry.snapshot_source = info.source

    def _validate_mood(self, mood: str) -> None:
        if mood not in MOODS:
            raise ValueError(f"Unknown mood '{mood}'")

    # --------------------------------------------------------------
    # Entries
    # --------------------------------------------------------------
    def save_entry(
        self,
        user_id: str,
        text: str,
        mood: str,
        entry_date: datetime,
        hashtags: Optional[Iterable[str]] = None,
        location: str = "",
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        is_manual: bool = False,
        current_snapshot: Optional[PlanetaryInfo] = None,
    ) -> Tuple[JournalEntry, List[ChangeEvent]]:
        """
        Persist a new entry. An entry written "now" without a location
        reuses `current_snapshot` (the latest poll) when one is given;
        otherwise the snapshot is resolved for `entry_date`.
        Returns the entry and any timeline events it created.
        """
        self._validate_mood(mood)
        location = (location or "").strip()

        if not is_manual and not location and current_snapshot is not None:
            info = current_snapshot
        else:
            hint = LocationHint(name=location, latitude=latitude, longitude=longitude)
            info = self.snapshots.compute_snapshot(entry_date, None if hint.is_empty() else hint)

        entry = JournalEntry(
            id=uuid.uuid4().hex,
            user_id=user_id,
            text=text,
            mood=mood,
            created_at=_utc_naive(entry_date),
            hashtags=normalize_hashtags(hashtags),
            location=location or info.location_name or "",
            latitude=latitude,
            longitude=longitude,
        )
        self._stamp(entry, info)
        self.db.add(entry)

        new_events: List[ChangeEvent] = []
        retro = retrograde_event_for_entry(entry_date, info, self.existing_event_ids(user_id))
        if retro is not None:
            new_events = self.merge_events(user_id, [retro], commit=False)

        try:
            self.db.commit()
        except IntegrityError:
            if retro is None:
                raise
            # a concurrent save stored the same retrograde marker first
            self.db.rollback()
            logger.info("Retrograde event %s already stored for %s; saving entry alone", retro.id, user_id)
            new_events = []
            self.db.add(entry)
            self.db.commit()
        self.db.refresh(entry)
        logger.info("Saved entry %s for %s (%d new events)", entry.id, user_id, len(new_events))
        return entry, new_events

    def get_entry(self, user_id: str, entry_id: str) -> Optional[JournalEntry]:
        return (
            self.db.query(JournalEntry)
            .filter(JournalEntry.user_id == user_id, JournalEntry.id == entry_id)
            .one_or_none()
        )

    def update_entry(
        self,
        user_id: str,
        entry_id: str,
        text: str,
        mood: str,
        entry_date: datetime,
        hashtags: Optional[Iterable[str]] = None,
        location: str = "",
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
    ) -> Optional[JournalEntry]:
        """Edit an entry and re-stamp it for its (possibly new) date."""
        entry = self.get_entry(user_id, entry_id)
        if entry is None:
            return None
        self._validate_mood(mood)

        location = (location or "").strip()
        hint = LocationHint(name=location, latitude=latitude, longitude=longitude)
        info = self.snapshots.compute_snapshot(entry_date, None if hint.is_empty() else hint)

        entry.text = text
        entry.mood = mood
        entry.created_at = _utc_naive(entry_date)
        entry.hashtags = normalize_hashtags(hashtags)
        entry.location = location or info.location_name or ""
        entry.latitude = latitude
        entry.longitude = longitude
        self._stamp(entry, info)

        self.db.commit()
        self.db.refresh(entry)
        return entry

    def delete_entry(self, user_id: str, entry_id: str) -> bool:
        entry = self.get_entry(user_id, entry_id)
        if entry is None:
            return False
        self.db.delete(entry)
        self.db.commit()
        return True

    # --------------------------------------------------------------
    # Events
    # --------------------------------------------------------------
    def existing_event_ids(self, user_id: str) -> Set[str]:
        rows = self.db.query(AstroEvent.id).filter(AstroEvent.user_id == user_id).all()
        return {r[0] for r in rows}

    def merge_events(
        self, user_id: str, events: Iterable[ChangeEvent], commit: bool = True
    ) -> List[ChangeEvent]:
        """Store events whose id is not yet in the user's timeline; returns those stored."""
        existing = self.existing_event_ids(user_id)
        stored: List[ChangeEvent] = []

        for seq, event in enumerate(events):
            if event.id in existing:
                continue
            self.db.add(
                AstroEvent(
                    user_id=user_id,
                    id=event.id,
                    kind=event.kind.value,
                    created_at=_utc_naive(event.created_at),
                    title=event.title,
                    description=event.description,
                    payload=event.payload(),
                    seq=seq,
                )
            )
            existing.add(event.id)
            stored.append(event)
            EVENTS_EMITTED.labels(kind=event.kind.value).inc()

        if commit:
            self.db.commit()
        return stored

    def delete_event(self, user_id: str, event_id: str) -> bool:
        event = (
            self.db.query(AstroEvent)
            .filter(AstroEvent.user_id == user_id, AstroEvent.id == event_id)
            .one_or_none()
        )
        if event is None:
            return False
        self.db.delete(event)
        self.db.commit()
        return True

    # --------------------------------------------------------------
    # Read models
    # --------------------------------------------------------------
    def timeline(
        self, user_id: str, kinds: Optional[Iterable[EventKind]] = None
    ) -> List[Dict[str, Any]]:
        """
        Entries and events, newest first. `kinds` limits which event types
        are shown; journal entries are always included. Events created at
        the same instant keep their detection order.
        """
        entries = (
            self.db.query(JournalEntry)
            .filter(JournalEntry.user_id == user_id)
            .order_by(JournalEntry.created_at)
            .all()
        )
        q = self.db.query(AstroEvent).filter(AstroEvent.user_id == user_id)
        if kinds is not None:
            q = q.filter(AstroEvent.kind.in_([EventKind(k).value for k in kinds]))
        events = q.order_by(AstroEvent.created_at, AstroEvent.seq).all()

        rows = [(e.created_at, entry_to_dict(e)) for e in entries]
        rows += [(ev.created_at, stored_event_to_dict(ev)) for ev in events]
        rows.sort(key=lambda r: r[0], reverse=True)
        return [r[1] for r in rows]

    def search(
        self,
        user_id: str,
        keyword: str = "",
        hashtag: str = "",
        planetary_day: Optional[str] = None,
        planetary_hour: Optional[str] = None,
        sun_sign: Optional[str] = None,
        moon_sign: Optional[str] = None,
        moon_phase: Optional[str] = None,
    ) -> List[JournalEntry]:
        q = self.db.query(JournalEntry).filter(JournalEntry.user_id == user_id)
        if planetary_day:
            q = q.filter(JournalEntry.planetary_day == planetary_day)
        if planetary_hour:
            q = q.filter(JournalEntry.planetary_hour == planetary_hour)
        if sun_sign:
            q = q.filter(JournalEntry.sun_sign == sun_sign)
        if moon_sign:
            q = q.filter(JournalEntry.moon_sign == moon_sign)
        if moon_phase:
            # Waxing/Waning also matches entries stamped with a detailed phase
            if MoonPhase(moon_phase) in COARSE_PHASES:
                q = q.filter(JournalEntry.moon_phase_coarse == moon_phase)
            else:
                q = q.filter(JournalEntry.moon_phase == moon_phase)

        results = q.order_by(JournalEntry.created_at.desc()).all()

        # keyword/hashtag matching is case-insensitive and done in Python so
        # it behaves the same on every backend (hashtags live in a JSON column)
        keyword = keyword.strip().lower()
        tag = hashtag.replace("#", "").strip().lower()
        if keyword:
            results = [e for e in results if keyword in e.text.lower()]
        if tag:
            results = [e for e in results if tag in [h.lower() for h in (e.hashtags or [])]]
        return results

    def mapped_entries(self, user_id: str) -> List[JournalEntry]:
        return (
            self.db.query(JournalEntry)
            .filter(
                JournalEntry.user_id == user_id,
                JournalEntry.latitude.isnot(None),
                JournalEntry.longitude.isnot(None),
            )
            .order_by(JournalEntry.created_at.desc())
            .all()
        )
