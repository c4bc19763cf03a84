# tests/conftest.py

import os
import sys

# Resolve project root (one directory up from /tests)
ROOT_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

# Must be set before astrojournal.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOCAL_TIMEZONE", "UTC")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("EPHEMERIS_PROVIDER", "local")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from astrojournal import models  # noqa: F401
from astrojournal.database import Base


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()
