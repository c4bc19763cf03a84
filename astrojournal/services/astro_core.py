# astrojournal/services/astro_core.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, Optional, Tuple

from astrojournal.config import settings
from astrojournal.constants import (
    DETAILED_PHASES,
    RETROGRADE_CANDIDATES,
    ZODIAC_SIGNS,
    MoonPhase,
    Planet,
    ZodiacSign,
)
from astrojournal.exceptions import ComputationError, EnrichmentUnavailable
from astrojournal.services import mean_ephemeris
from astrojournal.services.planetary_hours_service import day_and_hour

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------
# Zodiac & moon phase
# ---------------------------------------------------------------------

def sign_for(longitude: float) -> ZodiacSign:
    """30° sign buckets from 0° Aries; callers pass a normalized longitude."""
    idx = int(longitude // 30.0) % 12
    return ZODIAC_SIGNS[idx]


def elongation(sun_long: float, moon_long: float) -> float:
    sep = (moon_long - sun_long) % 360.0
    if sep >= 360.0:
        sep = 0.0
    return sep


def phase_for(sun_long: float, moon_long: float) -> MoonPhase:
    """
    Two-state phase. Waxing only for 0 < separation < 180; conjunction (0)
    and opposition (180) are Waning.
    """
    sep = elongation(sun_long, moon_long)
    if sep == 0.0 or sep >= 180.0:
        return MoonPhase.WANING
    return MoonPhase.WAXING


def detailed_phase_for(sun_long: float, moon_long: float) -> MoonPhase:
    """Eight named phases, 45° bins centred on 0/45/90/.../315."""
    sep = elongation(sun_long, moon_long)
    idx = int(((sep + 22.5) % 360.0) // 45.0)
    return DETAILED_PHASES[idx]


# ---------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class LocationHint:
    """Optional caller location, forwarded to enrichment providers only."""
    name: str = ""
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    def is_empty(self) -> bool:
        return not self.name.strip() and self.latitude is None and self.longitude is None


@dataclass(frozen=True)
class PlanetaryInfo:
    planetary_day: Planet
    planetary_hour: Planet
    sun_sign: ZodiacSign
    moon_sign: ZodiacSign
    moon_phase: MoonPhase
    retrogrades: Tuple[Planet, ...] = ()
    location_name: str = ""
    source: str = "local"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "planetary_day": self.planetary_day.value,
            "planetary_hour": self.planetary_hour.value,
            "sun_sign": self.sun_sign.value,
            "moon_sign": self.moon_sign.value,
            "moon_phase": self.moon_phase.value,
            "retrogrades": [p.value for p in self.retrogrades],
            "location_name": self.location_name,
            "source": self.source,
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any], source: str = "remote") -> "PlanetaryInfo":
        """
        Build a snapshot from an enrichment payload. Accepts camelCase
        (planetaryDay, ...) or snake_case keys. Anything missing or outside
        the known vocabularies raises EnrichmentUnavailable.
        """
        if not isinstance(payload, dict):
            raise EnrichmentUnavailable("Enrichment payload is not an object", reason="malformed")

        def pick(snake: str, camel: str) -> Any:
            if snake in payload:
                return payload[snake]
            if camel in payload:
                return payload[camel]
            raise EnrichmentUnavailable(f"Enrichment payload missing '{camel}'", reason="malformed")

        try:
            retro_raw = payload.get("retrogrades", []) or []
            if isinstance(retro_raw, str) or not isinstance(retro_raw, Iterable):
                raise ValueError(f"retrogrades must be a list, got {retro_raw!r}")
            retrogrades = tuple(Planet(p) for p in retro_raw)
            for planet in retrogrades:
                if planet not in RETROGRADE_CANDIDATES:
                    raise ValueError(f"{planet.value} cannot be retrograde")
            return cls(
                planetary_day=Planet(pick("planetary_day", "planetaryDay")),
                planetary_hour=Planet(pick("planetary_hour", "planetaryHour")),
                sun_sign=ZodiacSign(pick("sun_sign", "sunSign")),
                moon_sign=ZodiacSign(pick("moon_sign", "moonSign")),
                moon_phase=MoonPhase(pick("moon_phase", "moonPhase")),
                retrogrades=retrogrades,
                location_name=str(payload.get("location_name", payload.get("locationName", "")) or ""),
                source=source,
            )
        except ValueError as exc:
            raise EnrichmentUnavailable(f"Enrichment payload has invalid values: {exc}", reason="malformed")


class AstroCore:
    """
    Deterministic snapshot assembler:
      - planetary day/hour from the local wall clock
      - Sun/Moon sign from mean-motion longitudes
      - coarse (waxing/waning) moon phase
    Retrogrades are never detected here; they come from enrichment.
    """

    source = "local"

    def __init__(self, assume_tz: Optional[str] = None) -> None:
        self.assume_tz = assume_tz or settings.LOCAL_TIMEZONE

    def get_positions(self, instant: datetime) -> Tuple[float, float]:
        return mean_ephemeris.positions(instant, self.assume_tz)

    def compute_snapshot(
        self, instant: datetime, location_hint: Optional[LocationHint] = None
    ) -> PlanetaryInfo:
        try:
            planetary_day, planetary_hour = day_and_hour(instant)
        except ComputationError:
            logger.exception("Planetary day/hour computation failed for %s", instant.isoformat())
            raise

        sun_long, moon_long = self.get_positions(instant)

        return PlanetaryInfo(
            planetary_day=planetary_day,
            planetary_hour=planetary_hour,
            sun_sign=sign_for(sun_long),
            moon_sign=sign_for(moon_long),
            moon_phase=phase_for(sun_long, moon_long),
            retrogrades=(),
            location_name="",
            source=self.source,
        )


def compute_snapshot(instant: datetime, location_hint: Optional[LocationHint] = None) -> PlanetaryInfo:
    """Deterministic snapshot for `instant`; the always-available path."""
    return AstroCore().compute_snapshot(instant, location_hint)
