# astrojournal/services/planetary_hours_service.py
from __future__ import annotations

import logging
from dataclasses import dataclass, asdict
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Tuple

from astrojournal.constants import CHALDEAN_ORDER, PLANET_DAYS, Planet
from astrojournal.exceptions import ComputationError
from astrojournal.utils.timezone import wall_clock

logger = logging.getLogger(__name__)

# Fixed local clock sunrise/sunset. Not a solar computation: every day is
# 12h of daylight and 12h of night regardless of season or latitude.
SUNRISE = time(6, 0)
SUNSET = time(18, 0)

HOURS_PER_PERIOD = 12


@dataclass(frozen=True)
class HourSlot:
    """One planetary hour of a local calendar day."""
    start: datetime
    end: datetime
    is_day: bool
    hour_index: int      # 0..11 within its day or night period
    day_planet: Planet
    hour_planet: Planet

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["start"] = self.start.isoformat()
        d["end"] = self.end.isoformat()
        d["day_planet"] = self.day_planet.value
        d["hour_planet"] = self.hour_planet.value
        return d


def day_planet_for(local_dt: datetime) -> Planet:
    # Python weekday(): Monday=0..Sunday=6 -> Sunday=0..Saturday=6
    return PLANET_DAYS[(local_dt.weekday() + 1) % 7]


def _period_for(local_dt: datetime) -> Tuple[datetime, datetime, bool]:
    """(period_start, period_end, is_day) of the day/night period holding local_dt."""
    sunrise = datetime.combine(local_dt.date(), SUNRISE)
    sunset = datetime.combine(local_dt.date(), SUNSET)

    if sunrise <= local_dt < sunset:
        return sunrise, sunset, True
    if local_dt < sunrise:
        return sunset - timedelta(days=1), sunrise, False
    return sunset, sunrise + timedelta(days=1), False


def hour_index_for(local_dt: datetime) -> int:
    """
    0..11 position of local_dt within its day (sunrise→sunset) or night
    (sunset→sunrise) period.
    """
    start, end, _ = _period_for(local_dt)
    hour_length = (end - start) / HOURS_PER_PERIOD
    # timedelta // timedelta is exact integer division
    idx = (local_dt - start) // hour_length
    return min(max(idx, 0), HOURS_PER_PERIOD - 1)


def hour_planet_for(day_planet: Planet, hour_index: int) -> Planet:
    try:
        start_idx = CHALDEAN_ORDER.index(day_planet)
    except ValueError:
        raise ComputationError(f"Day planet {day_planet!r} is not in the Chaldean order")
    return CHALDEAN_ORDER[(start_idx + hour_index) % len(CHALDEAN_ORDER)]


def day_and_hour(instant: datetime) -> Tuple[Planet, Planet]:
    """
    Planetary day and hour rulers for the local wall-clock reading of
    `instant`.

    The day ruler follows the calendar date (so the hours before 06:00
    still belong to that date's ruler), and the hour ruler counts from the
    day ruler in Chaldean order from the start of the current day or night
    period.
    """
    local_dt = wall_clock(instant)
    day_planet = day_planet_for(local_dt)
    hour_index = hour_index_for(local_dt)
    return day_planet, hour_planet_for(day_planet, hour_index)


def hour_slots(target_date: date) -> List[HourSlot]:
    """
    The 24 planetary hours covering local midnight→midnight of
    `target_date`: the tail of the previous night (6 slots), the 12 day
    hours and the head of the following night (6 slots). Slots at the
    midnight edges are truncated to the calendar day.
    """
    midnight = datetime.combine(target_date, time(0, 0))
    next_midnight = midnight + timedelta(days=1)
    day_planet = day_planet_for(midnight)

    sunrise = datetime.combine(target_date, SUNRISE)
    sunset = datetime.combine(target_date, SUNSET)
    periods = [
        (sunset - timedelta(days=1), sunrise, False),
        (sunrise, sunset, True),
        (sunset, sunrise + timedelta(days=1), False),
    ]

    slots: List[HourSlot] = []
    for start, end, is_day in periods:
        hour_length = (end - start) / HOURS_PER_PERIOD
        for idx in range(HOURS_PER_PERIOD):
            slot_start = start + idx * hour_length
            slot_end = slot_start + hour_length
            if slot_end <= midnight or slot_start >= next_midnight:
                continue
            slots.append(
                HourSlot(
                    start=max(slot_start, midnight),
                    end=min(slot_end, next_midnight),
                    is_day=is_day,
                    hour_index=idx,
                    day_planet=day_planet,
                    hour_planet=hour_planet_for(day_planet, idx),
                )
            )

    logger.debug("Built %d hour slots for %s (%s day)", len(slots), target_date, day_planet.value)
    return slots
