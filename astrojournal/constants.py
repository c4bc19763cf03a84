# astrojournal/constants.py

from enum import Enum
from typing import Dict, List, Tuple


class Planet(str, Enum):
    SUN = "Sun"
    MOON = "Moon"
    MARS = "Mars"
    MERCURY = "Mercury"
    JUPITER = "Jupiter"
    VENUS = "Venus"
    SATURN = "Saturn"


class ZodiacSign(str, Enum):
    ARIES = "Aries"
    TAURUS = "Taurus"
    GEMINI = "Gemini"
    CANCER = "Cancer"
    LEO = "Leo"
    VIRGO = "Virgo"
    LIBRA = "Libra"
    SCORPIO = "Scorpio"
    SAGITTARIUS = "Sagittarius"
    CAPRICORN = "Capricorn"
    AQUARIUS = "Aquarius"
    PISCES = "Pisces"


class MoonPhase(str, Enum):
    NEW_MOON = "New Moon"
    WAXING_CRESCENT = "Waxing Crescent"
    FIRST_QUARTER = "First Quarter"
    WAXING_GIBBOUS = "Waxing Gibbous"
    FULL_MOON = "Full Moon"
    WANING_GIBBOUS = "Waning Gibbous"
    THIRD_QUARTER = "Third Quarter"
    WANING_CRESCENT = "Waning Crescent"
    # coarse two-state vocabulary used by the local calculator
    WAXING = "Waxing"
    WANING = "Waning"

    @property
    def vocabulary(self) -> str:
        return "coarse" if self in COARSE_PHASES else "detailed"

    def coarse(self) -> "MoonPhase":
        """Collapse a detailed phase onto Waxing/Waning."""
        if self in COARSE_PHASES:
            return self
        return MoonPhase.WAXING if self in WAXING_PHASES else MoonPhase.WANING


COARSE_PHASES = frozenset({MoonPhase.WAXING, MoonPhase.WANING})

# New Moon sits at elongation 0 and Full Moon at 180, neither of which is
# strictly waxing, matching the coarse rule.
WAXING_PHASES = frozenset(
    {MoonPhase.WAXING_CRESCENT, MoonPhase.FIRST_QUARTER, MoonPhase.WAXING_GIBBOUS}
)

# in elongation order, each bin 45° wide and centred on its principal angle
DETAILED_PHASES: Tuple[MoonPhase, ...] = (
    MoonPhase.NEW_MOON,
    MoonPhase.WAXING_CRESCENT,
    MoonPhase.FIRST_QUARTER,
    MoonPhase.WAXING_GIBBOUS,
    MoonPhase.FULL_MOON,
    MoonPhase.WANING_GIBBOUS,
    MoonPhase.THIRD_QUARTER,
    MoonPhase.WANING_CRESCENT,
)


# Weekday rulers, Sunday first (0=Sunday..6=Saturday)
PLANET_DAYS: List[Planet] = [
    Planet.SUN,      # Sunday
    Planet.MOON,     # Monday
    Planet.MARS,     # Tuesday
    Planet.MERCURY,  # Wednesday
    Planet.JUPITER,  # Thursday
    Planet.VENUS,    # Friday
    Planet.SATURN,   # Saturday
]

# Slowest to fastest
CHALDEAN_ORDER: List[Planet] = [
    Planet.SATURN,
    Planet.JUPITER,
    Planet.MARS,
    Planet.SUN,
    Planet.VENUS,
    Planet.MERCURY,
    Planet.MOON,
]

ZODIAC_SIGNS: List[ZodiacSign] = list(ZodiacSign)

# Bodies whose retrograde motion is reported
RETROGRADE_CANDIDATES: Tuple[Planet, ...] = (
    Planet.MARS,
    Planet.MERCURY,
    Planet.JUPITER,
    Planet.VENUS,
    Planet.SATURN,
)


# ----------------------------------------------------------------------
# Journal moods
# ----------------------------------------------------------------------
MOOD_CATEGORIES: Dict[str, List[str]] = {
    "Positive": ["Joyful", "Grateful", "Excited", "Proud", "Hopeful", "Creative", "Peaceful"],
    "Neutral": ["Content", "Calm", "Thoughtful", "Focused", "Indifferent", "Observant"],
    "Negative": ["Sad", "Anxious", "Angry", "Stressed", "Tired", "Frustrated", "Lonely"],
}

MOODS: Dict[str, str] = {
    mood: category for category, moods in MOOD_CATEGORIES.items() for mood in moods
}
