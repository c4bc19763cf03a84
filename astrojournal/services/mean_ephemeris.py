# astrojournal/services/mean_ephemeris.py
"""
Mean-motion Sun/Moon longitudes.

This is a deliberately coarse approximation: both bodies advance at a
fixed mean daily motion from a J2000 reference epoch. There is no
equation of centre, nutation, perturbation or leap-second handling, so
results can be off by a couple of degrees for the Sun and several
degrees for the Moon. It is good enough to place a body in a 30° sign
most of the time; it is NOT an astronomical ephemeris. Use
`SwissEphemerisProvider` when real positions matter.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Tuple

from astrojournal.config import settings
from astrojournal.utils.timezone import to_utc

EPOCH = datetime(2000, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
MS_PER_DAY = 86_400_000

SUN_LONGITUDE_AT_EPOCH = 280.46
MOON_LONGITUDE_AT_EPOCH = 218.32

# degrees per day
SUN_MEAN_MOTION = 360.0 / 365.2422
MOON_MEAN_MOTION = 13.176396


def _normalize(lon: float) -> float:
    norm = lon % 360.0
    # float modulo of a tiny negative value can round up to exactly 360.0
    if norm >= 360.0:
        norm = 0.0
    return norm


def days_since_epoch(instant: datetime, assume_tz: str | None = None) -> float:
    """Real-valued days between J2000 and `instant` (millisecond resolution)."""
    utc = to_utc(instant, assume_tz or settings.LOCAL_TIMEZONE)
    delta = utc - EPOCH
    ms = (delta.days * 86_400 + delta.seconds) * 1000 + delta.microseconds // 1000
    return ms / MS_PER_DAY


def sun_longitude(instant: datetime, assume_tz: str | None = None) -> float:
    days = days_since_epoch(instant, assume_tz)
    return _normalize(SUN_LONGITUDE_AT_EPOCH + days * SUN_MEAN_MOTION)


def moon_longitude(instant: datetime, assume_tz: str | None = None) -> float:
    days = days_since_epoch(instant, assume_tz)
    return _normalize(MOON_LONGITUDE_AT_EPOCH + days * MOON_MEAN_MOTION)


def positions(instant: datetime, assume_tz: str | None = None) -> Tuple[float, float]:
    """
    Returns (sun_longitude, moon_longitude) in degrees, both in [0, 360).

    Naive instants are read as wall-clock time in `assume_tz`
    (default: settings.LOCAL_TIMEZONE).
    """
    return sun_longitude(instant, assume_tz), moon_longitude(instant, assume_tz)
