# astrojournal/models.py

from sqlalchemy import (
    Column,
    Integer,
    String,
    Float,
    DateTime,
    JSON,
    Text,
    Index,
)
from datetime import datetime

from astrojournal.database import Base


# ============================================================
#  JOURNAL ENTRY (user text stamped with its planetary snapshot)
# ============================================================
class JournalEntry(Base):
    __tablename__ = "journal_entries"

    id = Column(String(64), primary_key=True)
    user_id = Column(String(100), index=True, nullable=False)

    text = Column(Text, nullable=False)
    mood = Column(String(20), nullable=False)
    created_at = Column(DateTime, index=True, nullable=False)  # UTC

    # snapshot taken at save time
    planetary_day = Column(String(20), nullable=False)
    planetary_hour = Column(String(20), nullable=False)
    sun_sign = Column(String(20), nullable=False)
    moon_sign = Column(String(20), nullable=False)
    moon_phase = Column(String(20), nullable=False)
    # Waxing/Waning regardless of which vocabulary the provider used
    moon_phase_coarse = Column(String(10), index=True, nullable=False)
    retrogrades = Column(JSON, default=list)
    snapshot_source = Column(String(20), default="local")

    hashtags = Column(JSON, default=list)
    location = Column(String(200), default="")
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)

    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_entry_user_created", "user_id", "created_at"),
    )


# ============================================================
#  ASTRO EVENT (synthesized timeline markers)
# ============================================================
class AstroEvent(Base):
    __tablename__ = "astro_events"

    # deterministic ids are only unique per user
    user_id = Column(String(100), primary_key=True)
    id = Column(String(120), primary_key=True)

    kind = Column(String(30), index=True, nullable=False)
    created_at = Column(DateTime, index=True, nullable=False)  # UTC
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)

    # variant-specific fields: from/to planet, sign, phase or planets list
    payload = Column(JSON, nullable=False, default=dict)

    # order within the batch it was detected in; breaks created_at ties
    seq = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index("idx_event_user_created", "user_id", "created_at"),
    )
