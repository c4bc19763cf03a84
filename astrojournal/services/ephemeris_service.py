# astrojournal/services/ephemeris_service.py

from datetime import datetime
from typing import Dict, Any, Optional, Tuple

import swisseph as swe

from astrojournal.config import settings
from astrojournal.constants import RETROGRADE_CANDIDATES, Planet
from astrojournal.exceptions import EnrichmentUnavailable
from astrojournal.services.astro_core import (
    LocationHint,
    PlanetaryInfo,
    detailed_phase_for,
    sign_for,
)
from astrojournal.services.planetary_hours_service import day_and_hour
from astrojournal.utils.timezone import to_utc


class EphemerisService:
    """
    Swiss Ephemeris wrapper for tropical (Western) geocentric positions.
    Falls back to the built-in Moshier model when no ephemeris files are
    found under settings.EPHE_PATH.
    """

    def __init__(self) -> None:
        swe.set_ephe_path(settings.EPHE_PATH)

        # Planet mapping (Swiss Ephemeris IDs)
        self.planets = {
            Planet.SUN: swe.SUN,
            Planet.MOON: swe.MOON,
            Planet.MERCURY: swe.MERCURY,
            Planet.VENUS: swe.VENUS,
            Planet.MARS: swe.MARS,
            Planet.JUPITER: swe.JUPITER,
            Planet.SATURN: swe.SATURN,
        }

    # ------------------------------------------------------------------
    # Core helpers
    # ------------------------------------------------------------------
    def get_julian_day(self, dt: datetime, assume_tz: Optional[str] = None) -> float:
        """
        Convert a datetime to Julian Day (UT).
        - If dt has tzinfo: convert to UTC.
        - If dt is naive: read it as wall-clock time in assume_tz.
        """
        dt = to_utc(dt, assume_tz or settings.LOCAL_TIMEZONE)
        hour_fraction = (
            dt.hour + dt.minute / 60.0 + dt.second / 3600.0 + dt.microsecond / 3_600_000_000.0
        )
        return swe.julday(dt.year, dt.month, dt.day, hour_fraction)

    def _calc_body(self, jd_ut: float, body: int) -> Tuple[float, float]:
        """
        Low-level wrapper for swe.calc_ut.
        Returns (longitude, speed_long).
        """
        flags = swe.FLG_SWIEPH | swe.FLG_SPEED
        xx, retflag = swe.calc_ut(jd_ut, body, flags)
        # xx: [lon, lat, dist, speed_lon, speed_lat, speed_dist]
        return xx[0] % 360.0, xx[3]

    def _is_retrograde(self, speed_long: float) -> bool:
        """Retrograde if longitudinal speed is negative."""
        return speed_long < 0.0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def get_planet_positions(self, when: datetime) -> Dict[Planet, Dict[str, Any]]:
        """
        Structure:
        {
          Planet.SUN: {"longitude": float, "speed_long": float, "retrograde": bool},
          ...
        }
        """
        jd_ut = self.get_julian_day(when)
        result: Dict[Planet, Dict[str, Any]] = {}

        for planet, body in self.planets.items():
            lon, sp_lon = self._calc_body(jd_ut, body)
            result[planet] = {
                "longitude": lon,
                "speed_long": sp_lon,
                "retrograde": self._is_retrograde(sp_lon),
            }

        return result


class SwissEphemerisProvider:
    """
    Enrichment provider backed by pyswisseph: real Sun/Moon signs,
    retrograde planets and the eight-phase moon. Planetary day/hour still
    use the fixed 06:00/18:00 model so both providers agree on rulers.
    """

    source = "swisseph"

    def __init__(self, ephemeris: Optional[EphemerisService] = None) -> None:
        self.ephemeris = ephemeris or EphemerisService()

    def compute_snapshot(
        self, instant: datetime, location_hint: Optional[LocationHint] = None
    ) -> PlanetaryInfo:
        try:
            positions = self.ephemeris.get_planet_positions(instant)
        except swe.Error as exc:
            raise EnrichmentUnavailable(f"Swiss Ephemeris failed: {exc}", reason="error")

        sun_long = positions[Planet.SUN]["longitude"]
        moon_long = positions[Planet.MOON]["longitude"]
        planetary_day, planetary_hour = day_and_hour(instant)

        return PlanetaryInfo(
            planetary_day=planetary_day,
            planetary_hour=planetary_hour,
            sun_sign=sign_for(sun_long),
            moon_sign=sign_for(moon_long),
            moon_phase=detailed_phase_for(sun_long, moon_long),
            retrogrades=tuple(
                p for p in RETROGRADE_CANDIDATES if positions[p]["retrograde"]
            ),
            location_name=location_hint.name.strip() if location_hint else "",
            source=self.source,
        )
