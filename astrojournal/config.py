from __future__ import annotations

import logging
import os
import sys

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Global application configuration.

    NOTE:
    - Unknown environment variables are ignored (extra="ignore"), so
      older keys in your .env will not break the app.
    """

    # ------------------------------------------------------------------
    # App identity
    # ------------------------------------------------------------------
    APP_NAME: str = "astro-journal"
    APP_VERSION: str = "1.0.0"

    # ------------------------------------------------------------------
    # Database
    # ------------------------------------------------------------------
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./astrojournal.db")
    DB_POOL_SIZE: int = int(os.getenv("DB_POOL_SIZE", "10"))
    DB_MAX_OVERFLOW: int = int(os.getenv("DB_MAX_OVERFLOW", "20"))

    # ------------------------------------------------------------------
    # Clock & polling
    # ------------------------------------------------------------------
    # Naive datetimes are read as wall-clock time in this zone, and the
    # poller stamps "now" in it.
    LOCAL_TIMEZONE: str = os.getenv("LOCAL_TIMEZONE", "UTC")
    POLL_INTERVAL_SECONDS: int = int(os.getenv("POLL_INTERVAL_SECONDS", "60"))
    SCHEDULER_ENABLED: bool = os.getenv("SCHEDULER_ENABLED", "true").lower() in ("1", "true", "yes")

    # ------------------------------------------------------------------
    # Ephemeris providers
    # ------------------------------------------------------------------
    # local    -> deterministic mean-motion calculator (always available)
    # swisseph -> pyswisseph positions + retrogrades, local fallback
    # remote   -> HTTP enrichment service, local fallback
    EPHEMERIS_PROVIDER: str = os.getenv("EPHEMERIS_PROVIDER", "local")
    EPHE_PATH: str = os.getenv("EPHE_PATH", "/usr/share/ephe")

    ENRICHMENT_URL: str | None = os.getenv("ENRICHMENT_URL") or None
    ENRICHMENT_API_KEY: str | None = os.getenv("ENRICHMENT_API_KEY") or None
    ENRICHMENT_TIMEOUT_SECONDS: float = float(os.getenv("ENRICHMENT_TIMEOUT_SECONDS", "10"))

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------
    APP_LOG_PATH: str | None = os.getenv("APP_LOG_PATH") or None
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()


LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging() -> None:
    """
    Attach a stderr handler (and a file handler when APP_LOG_PATH is set)
    to the `astrojournal` logger. Safe to call more than once.
    """
    root = logging.getLogger("astrojournal")
    root.setLevel(settings.LOG_LEVEL.upper())
    if root.handlers:
        return

    formatter = logging.Formatter(LOG_FORMAT)

    stream = logging.StreamHandler(sys.stderr)
    stream.setFormatter(formatter)
    root.addHandler(stream)

    if settings.APP_LOG_PATH:
        file_handler = logging.FileHandler(settings.APP_LOG_PATH, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)
