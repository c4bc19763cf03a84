# tests/test_planetary_events_service.py

from dataclasses import replace
from datetime import date, datetime, timezone

from astrojournal.constants import MoonPhase, Planet, ZodiacSign
from astrojournal.services.astro_core import PlanetaryInfo
from astrojournal.services.planetary_events_service import (
    DayChangeEvent,
    EventKind,
    HourChangeEvent,
    MoonPhaseChangeEvent,
    MoonSignChangeEvent,
    PlanetaryEventsService,
    RetrogradeEvent,
    SunSignChangeEvent,
    detect_changes,
    event_to_dict,
    retrograde_event_for_entry,
)

NOW = datetime(2024, 8, 23, 14, 0, tzinfo=timezone.utc)

BASE = PlanetaryInfo(
    planetary_day=Planet.VENUS,
    planetary_hour=Planet.MARS,
    sun_sign=ZodiacSign.LEO,
    moon_sign=ZodiacSign.ARIES,
    moon_phase=MoonPhase.WANING,
)


def test_identical_snapshots_produce_nothing():
    assert detect_changes(BASE, BASE, NOW, set()) == []


def test_sun_sign_change():
    new = replace(BASE, sun_sign=ZodiacSign.VIRGO)
    events = detect_changes(BASE, new, NOW, set())

    assert len(events) == 1
    event = events[0]
    assert isinstance(event, SunSignChangeEvent)
    assert event.id == "sunsignchange-2024-08-23"
    assert event.kind == EventKind.SUN_SIGN_CHANGE
    assert event.title == "Sun Sign Shift: Welcome Virgo"
    assert event.from_sign == ZodiacSign.LEO
    assert event.to_sign == ZodiacSign.VIRGO
    assert event.created_at == NOW


def test_detection_is_idempotent():
    new = replace(BASE, sun_sign=ZodiacSign.VIRGO)
    first = detect_changes(BASE, new, NOW, set())
    again = detect_changes(BASE, new, NOW, {e.id for e in first})
    assert again == []


def test_all_changes_in_fixed_order():
    new = PlanetaryInfo(
        planetary_day=Planet.SATURN,
        planetary_hour=Planet.SATURN,
        sun_sign=ZodiacSign.VIRGO,
        moon_sign=ZodiacSign.TAURUS,
        moon_phase=MoonPhase.WAXING,
    )
    events = detect_changes(BASE, new, NOW, set())

    assert [type(e) for e in events] == [
        DayChangeEvent,
        HourChangeEvent,
        SunSignChangeEvent,
        MoonSignChangeEvent,
        MoonPhaseChangeEvent,
    ]
    assert [e.id for e in events] == [
        "daychange-2024-08-23",
        "hourchange-2024-08-23T14",
        "sunsignchange-2024-08-23",
        "moonsignchange-Aries-to-Taurus-2024-08-23",
        "moonphasechange-Waning-to-Waxing-2024-08-23",
    ]


def test_ids_use_the_utc_date():
    late_evening = datetime(2024, 8, 22, 23, 30, tzinfo=timezone.utc).astimezone()
    new = replace(BASE, planetary_hour=Planet.SUN)
    (event,) = detect_changes(BASE, new, late_evening, set())
    assert event.id == "hourchange-2024-08-22T23"


def test_mixed_phase_vocabularies_are_not_compared():
    new = replace(BASE, moon_phase=MoonPhase.WANING_GIBBOUS)
    assert detect_changes(BASE, new, NOW, set()) == []


def test_detailed_phase_change():
    prev = replace(BASE, moon_phase=MoonPhase.FULL_MOON)
    new = replace(BASE, moon_phase=MoonPhase.WANING_GIBBOUS)
    (event,) = detect_changes(prev, new, NOW, set())
    assert event.id == "moonphasechange-Full Moon-to-Waning Gibbous-2024-08-23"
    assert event.title == "Lunar Phase: Now Waning Gibbous"


def test_existing_id_suppresses_only_that_event():
    new = replace(BASE, planetary_hour=Planet.SUN, moon_sign=ZodiacSign.TAURUS)
    events = detect_changes(BASE, new, NOW, {"hourchange-2024-08-23T14"})
    assert [e.kind for e in events] == [EventKind.MOON_SIGN_CHANGE]


def test_event_to_dict():
    new = replace(BASE, planetary_day=Planet.SATURN)
    (event,) = detect_changes(BASE, new, NOW, set())
    d = event_to_dict(event)
    assert d["id"] == "daychange-2024-08-23"
    assert d["type"] == "PlanetaryDayChange"
    assert d["from_planet"] == "Venus"
    assert d["to_planet"] == "Saturn"
    assert d["created_at"] == NOW.isoformat()


# ---------------------------------------------------------------------
# Retrograde marker
# ---------------------------------------------------------------------

def test_retrograde_event_for_entry():
    snapshot = replace(BASE, retrogrades=(Planet.MERCURY, Planet.SATURN))
    entry_date = datetime(2024, 8, 23, 15, 45, tzinfo=timezone.utc)

    event = retrograde_event_for_entry(entry_date, snapshot, set())
    assert isinstance(event, RetrogradeEvent)
    assert event.id == "retrograde-2024-08-23"
    assert event.planets == (Planet.MERCURY, Planet.SATURN)
    assert event.created_at == datetime(2024, 8, 23, 0, 0, tzinfo=timezone.utc)
    assert event.title == "Cosmic Shift: Retrograde in Effect"
    assert event_to_dict(event)["planets"] == ["Mercury", "Saturn"]

    assert retrograde_event_for_entry(entry_date, snapshot, {event.id}) is None


def test_no_retrograde_event_without_retrogrades():
    assert retrograde_event_for_entry(NOW, BASE, set()) is None


# ---------------------------------------------------------------------
# Transition scan
# ---------------------------------------------------------------------

def test_scan_day_lists_every_hour_change():
    events = PlanetaryEventsService(step_minutes=5).scan_day(date(2024, 8, 21))
    hour_changes = [e for e in events if isinstance(e, HourChangeEvent)]

    # every boundary from 01:00 to 23:00 changes the ruler
    assert len(hour_changes) == 23
    assert len({e.id for e in events}) == len(events)
    assert not any(isinstance(e, DayChangeEvent) for e in events)
    assert hour_changes[0].created_at == datetime(2024, 8, 21, 1, 0)
