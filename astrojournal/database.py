# astrojournal/database.py
import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, scoped_session, declarative_base
from sqlalchemy.exc import SQLAlchemyError

from astrojournal.config import settings

logger = logging.getLogger(__name__)


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        # the poller writes from a scheduler thread
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_pre_ping": True,
        "pool_size": settings.DB_POOL_SIZE,
        "max_overflow": settings.DB_MAX_OVERFLOW,
    }


engine = create_engine(settings.DATABASE_URL, **_engine_kwargs(settings.DATABASE_URL))

SessionLocal = scoped_session(sessionmaker(autocommit=False, autoflush=False, bind=engine))

Base = declarative_base()

def init_db():
    from astrojournal import models  # noqa: F401  ensure models are imported
    try:
        Base.metadata.create_all(bind=engine)
        logger.info("Tables created successfully.")
    except SQLAlchemyError as e:
        logger.error("Error creating tables: %s", e)
        raise

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
