# astrojournal/services/planetary_events_service.py

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Any, AbstractSet, Dict, List, Optional, Tuple, Union

from astrojournal.config import settings
from astrojournal.constants import MoonPhase, Planet, ZodiacSign
from astrojournal.exceptions import StaleComparison
from astrojournal.services.astro_core import AstroCore, PlanetaryInfo
from astrojournal.utils.timezone import to_utc

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    PLANETARY_DAY_CHANGE = "PlanetaryDayChange"
    PLANETARY_HOUR_CHANGE = "PlanetaryHourChange"
    SUN_SIGN_CHANGE = "SunSignChange"
    MOON_SIGN_CHANGE = "MoonSignChange"
    MOON_PHASE_CHANGE = "MoonPhaseChange"
    RETROGRADE = "Retrograde"


# ---------------------------------------------------------------------
# Event variants
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class DayChangeEvent:
    id: str
    created_at: datetime
    title: str
    description: str
    from_planet: Planet
    to_planet: Planet
    kind: EventKind = field(default=EventKind.PLANETARY_DAY_CHANGE, init=False)

    def payload(self) -> Dict[str, Any]:
        return {"from_planet": self.from_planet.value, "to_planet": self.to_planet.value}


@dataclass(frozen=True)
class HourChangeEvent:
    id: str
    created_at: datetime
    title: str
    description: str
    from_planet: Planet
    to_planet: Planet
    kind: EventKind = field(default=EventKind.PLANETARY_HOUR_CHANGE, init=False)

    def payload(self) -> Dict[str, Any]:
        return {"from_planet": self.from_planet.value, "to_planet": self.to_planet.value}


@dataclass(frozen=True)
class SunSignChangeEvent:
    id: str
    created_at: datetime
    title: str
    description: str
    from_sign: ZodiacSign
    to_sign: ZodiacSign
    kind: EventKind = field(default=EventKind.SUN_SIGN_CHANGE, init=False)

    def payload(self) -> Dict[str, Any]:
        return {"from_sign": self.from_sign.value, "to_sign": self.to_sign.value}


@dataclass(frozen=True)
class MoonSignChangeEvent:
    id: str
    created_at: datetime
    title: str
    description: str
    from_sign: ZodiacSign
    to_sign: ZodiacSign
    kind: EventKind = field(default=EventKind.MOON_SIGN_CHANGE, init=False)

    def payload(self) -> Dict[str, Any]:
        return {"from_sign": self.from_sign.value, "to_sign": self.to_sign.value}


@dataclass(frozen=True)
class MoonPhaseChangeEvent:
    id: str
    created_at: datetime
    title: str
    description: str
    from_phase: MoonPhase
    to_phase: MoonPhase
    kind: EventKind = field(default=EventKind.MOON_PHASE_CHANGE, init=False)

    def payload(self) -> Dict[str, Any]:
        return {"from_phase": self.from_phase.value, "to_phase": self.to_phase.value}


@dataclass(frozen=True)
class RetrogradeEvent:
    id: str
    created_at: datetime
    title: str
    description: str
    planets: Tuple[Planet, ...]
    kind: EventKind = field(default=EventKind.RETROGRADE, init=False)

    def payload(self) -> Dict[str, Any]:
        return {"planets": [p.value for p in self.planets]}


ChangeEvent = Union[
    DayChangeEvent,
    HourChangeEvent,
    SunSignChangeEvent,
    MoonSignChangeEvent,
    MoonPhaseChangeEvent,
    RetrogradeEvent,
]


def event_to_dict(event: ChangeEvent) -> Dict[str, Any]:
    d = {
        "id": event.id,
        "type": event.kind.value,
        "created_at": event.created_at.isoformat(),
        "title": event.title,
        "description": event.description,
    }
    d.update(event.payload())
    return d


# ---------------------------------------------------------------------
# Deterministic ids
# ---------------------------------------------------------------------

def iso_date(now: datetime) -> str:
    """UTC calendar date, YYYY-MM-DD."""
    return to_utc(now, settings.LOCAL_TIMEZONE).strftime("%Y-%m-%d")


def iso_date_hour(now: datetime) -> str:
    """UTC calendar date and hour, YYYY-MM-DDTHH."""
    return to_utc(now, settings.LOCAL_TIMEZONE).strftime("%Y-%m-%dT%H")


def day_change_id(now: datetime) -> str:
    return f"daychange-{iso_date(now)}"


def hour_change_id(now: datetime) -> str:
    return f"hourchange-{iso_date_hour(now)}"


def sun_sign_change_id(now: datetime) -> str:
    return f"sunsignchange-{iso_date(now)}"


def moon_sign_change_id(from_sign: ZodiacSign, to_sign: ZodiacSign, now: datetime) -> str:
    return f"moonsignchange-{from_sign.value}-to-{to_sign.value}-{iso_date(now)}"


def moon_phase_change_id(from_phase: MoonPhase, to_phase: MoonPhase, now: datetime) -> str:
    return f"moonphasechange-{from_phase.value}-to-{to_phase.value}-{iso_date(now)}"


def retrograde_id(entry_date: datetime) -> str:
    return f"retrograde-{iso_date(entry_date)}"


# ---------------------------------------------------------------------
# Detection
# ---------------------------------------------------------------------

def ensure_comparable_phases(previous: MoonPhase, new: MoonPhase) -> None:
    if previous.vocabulary != new.vocabulary:
        raise StaleComparison(
            f"Cannot compare moon phase {previous.value!r} ({previous.vocabulary}) "
            f"with {new.value!r} ({new.vocabulary})"
        )


def detect_changes(
    previous: PlanetaryInfo,
    new: PlanetaryInfo,
    now: datetime,
    existing_ids: AbstractSet[str],
) -> List[ChangeEvent]:
    """
    Diff two snapshots into timeline events, in the fixed order
    day -> hour -> sun sign -> moon sign -> moon phase.

    Events whose id is already in `existing_ids` are skipped. Pure: the
    caller persists the result and extends its id set.
    """
    events: List[ChangeEvent] = []

    if previous.planetary_day != new.planetary_day:
        event_id = day_change_id(now)
        if event_id not in existing_ids:
            events.append(
                DayChangeEvent(
                    id=event_id,
                    created_at=now,
                    title=f"Planetary Day: {new.planetary_day.value} Rules",
                    description=(
                        f"A new day dawns, ruled by the energies of {new.planetary_day.value}. "
                        "This influences the general mood and focus of the day."
                    ),
                    from_planet=previous.planetary_day,
                    to_planet=new.planetary_day,
                )
            )

    if previous.planetary_hour != new.planetary_hour:
        event_id = hour_change_id(now)
        if event_id not in existing_ids:
            events.append(
                HourChangeEvent(
                    id=event_id,
                    created_at=now,
                    title=f"Planetary Hour: {new.planetary_hour.value} Begins",
                    description=(
                        f"The cosmic influence shifts as the hour of {new.planetary_hour.value} "
                        "begins, lasting for approximately one hour."
                    ),
                    from_planet=previous.planetary_hour,
                    to_planet=new.planetary_hour,
                )
            )

    if previous.sun_sign != new.sun_sign:
        event_id = sun_sign_change_id(now)
        if event_id not in existing_ids:
            events.append(
                SunSignChangeEvent(
                    id=event_id,
                    created_at=now,
                    title=f"Sun Sign Shift: Welcome {new.sun_sign.value}",
                    description=(
                        f"The Sun has moved from {previous.sun_sign.value} to {new.sun_sign.value}, "
                        "shifting the collective focus."
                    ),
                    from_sign=previous.sun_sign,
                    to_sign=new.sun_sign,
                )
            )

    if previous.moon_sign != new.moon_sign:
        event_id = moon_sign_change_id(previous.moon_sign, new.moon_sign, now)
        if event_id not in existing_ids:
            events.append(
                MoonSignChangeEvent(
                    id=event_id,
                    created_at=now,
                    title=f"Lunar Shift: Moon in {new.moon_sign.value}",
                    description=(
                        f"The Moon enters {new.moon_sign.value} from {previous.moon_sign.value}, "
                        "influencing our emotional landscape and subconscious currents."
                    ),
                    from_sign=previous.moon_sign,
                    to_sign=new.moon_sign,
                )
            )

    if previous.moon_phase != new.moon_phase:
        try:
            ensure_comparable_phases(previous.moon_phase, new.moon_phase)
        except StaleComparison as exc:
            logger.debug("Skipping moon phase diff: %s", exc)
        else:
            event_id = moon_phase_change_id(previous.moon_phase, new.moon_phase, now)
            if event_id not in existing_ids:
                events.append(
                    MoonPhaseChangeEvent(
                        id=event_id,
                        created_at=now,
                        title=f"Lunar Phase: Now {new.moon_phase.value}",
                        description=(
                            f"The lunar cycle transitions. The Moon is now in its {new.moon_phase.value} "
                            "phase, affecting our energy for initiation and reflection."
                        ),
                        from_phase=previous.moon_phase,
                        to_phase=new.moon_phase,
                    )
                )

    return events


def retrograde_event_for_entry(
    entry_date: datetime,
    snapshot: PlanetaryInfo,
    existing_ids: AbstractSet[str],
) -> Optional[RetrogradeEvent]:
    """
    Retrograde marker for the date of a saved journal entry, or None when
    the snapshot has no retrogrades or the date already has one. Stamped at
    local midnight of the entry date.
    """
    if not snapshot.retrogrades:
        return None

    event_id = retrograde_id(entry_date)
    if event_id in existing_ids:
        return None

    return RetrogradeEvent(
        id=event_id,
        created_at=datetime.combine(entry_date.date(), time(0, 0), tzinfo=entry_date.tzinfo),
        title="Cosmic Shift: Retrograde in Effect",
        description=(
            "On this day, the cosmos presents a period of reflection and review as the following "
            "planets are in retrograde. This can influence communication, energy, and internal processes."
        ),
        planets=tuple(snapshot.retrogrades),
    )


# ---------------------------------------------------------------------
# Transition scan
# ---------------------------------------------------------------------

class PlanetaryEventsService:
    """
    Replay the detector over a time range to list the transitions that
    happened in it (day, hour, sign and phase changes).
    """

    def __init__(self, core: Optional[AstroCore] = None, step_minutes: int = 5):
        self.core = core or AstroCore()
        self.step_minutes = step_minutes

    def scan_range(self, start: datetime, end: datetime) -> List[ChangeEvent]:
        seen: set = set()
        events: List[ChangeEvent] = []

        prev: Optional[PlanetaryInfo] = None
        t = start
        while t < end:
            snapshot = self.core.compute_snapshot(t)
            if prev is not None:
                for event in detect_changes(prev, snapshot, t, seen):
                    seen.add(event.id)
                    events.append(event)
            prev = snapshot
            t += timedelta(minutes=self.step_minutes)

        return events

    def scan_day(self, target_date: date) -> List[ChangeEvent]:
        start = datetime.combine(target_date, time(0, 0))
        return self.scan_range(start, start + timedelta(days=1))
