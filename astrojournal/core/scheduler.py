# astrojournal/core/scheduler.py
from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Callable, Dict, List, Optional, Set

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from astrojournal.config import settings
from astrojournal.database import SessionLocal
from astrojournal.exceptions import ComputationError
from astrojournal.monitoring.metrics import POLLS_SKIPPED
from astrojournal.services.astro_core import PlanetaryInfo
from astrojournal.services.enrichment_service import SnapshotResult, SnapshotService
from astrojournal.services.journal_service import JournalService
from astrojournal.services.planetary_events_service import ChangeEvent, detect_changes
from astrojournal.utils.timezone import now_in

logger = logging.getLogger(__name__)


class PlanetaryPoller:
    """
    Owns the last-known snapshot of every active user and turns each poll
    into timeline events.

    Polls never overlap: a poll that starts while another is still merging
    its events is skipped.
    """

    def __init__(
        self,
        snapshots: Optional[SnapshotService] = None,
        session_factory: Callable[[], Session] = SessionLocal,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.snapshots = snapshots or SnapshotService()
        self.session_factory = session_factory
        self.clock = clock or (lambda: now_in(settings.LOCAL_TIMEZONE))

        self._users: Set[str] = set()
        self._last: Dict[str, PlanetaryInfo] = {}
        self._last_advisory: Optional[str] = None
        self._lock = threading.Lock()

    # ----------------------------------------------------------
    # Session tracking
    # ----------------------------------------------------------
    def activate(self, user_id: str) -> None:
        self._users.add(user_id)

    def deactivate(self, user_id: str) -> None:
        self._users.discard(user_id)
        self._last.pop(user_id, None)

    @property
    def active_users(self) -> List[str]:
        return sorted(self._users)

    def last_snapshot(self, user_id: str) -> Optional[PlanetaryInfo]:
        return self._last.get(user_id)

    @property
    def last_advisory(self) -> Optional[str]:
        return self._last_advisory

    # ----------------------------------------------------------
    # Polling
    # ----------------------------------------------------------
    def _poll_user(self, db: Session, user_id: str, now: datetime, result: SnapshotResult) -> List[ChangeEvent]:
        """
        The stored snapshot only advances once the user's events are
        committed, so a failed merge is retried on the next poll.
        """
        previous = self._last.get(user_id)
        if previous is None:
            self._last[user_id] = result.info
            return []

        journal = JournalService(db, snapshots=self.snapshots)
        events = detect_changes(previous, result.info, now, journal.existing_event_ids(user_id))
        stored = journal.merge_events(user_id, events) if events else []
        self._last[user_id] = result.info

        for event in stored:
            logger.info("Timeline event %s for %s", event.id, user_id)
        return stored

    def poll(self, user_ids: Optional[List[str]] = None) -> Optional[Dict[str, List[ChangeEvent]]]:
        """
        Run one poll for `user_ids` (default: all active users). Returns the
        stored events per user, or None when skipped because another poll is
        in progress.
        """
        if not self._lock.acquire(blocking=False):
            POLLS_SKIPPED.inc()
            logger.debug("Previous poll still running; skipping")
            return None

        try:
            users = user_ids if user_ids is not None else self.active_users
            now = self.clock()
            try:
                result = self.snapshots.resolve(now)
            except ComputationError:
                logger.exception("Snapshot computation failed; aborting this poll")
                return {}
            self._last_advisory = result.advisory

            out: Dict[str, List[ChangeEvent]] = {}
            db = self.session_factory()
            try:
                for user_id in users:
                    try:
                        out[user_id] = self._poll_user(db, user_id, now, result)
                    except SQLAlchemyError:
                        db.rollback()
                        logger.exception("Storing events for %s failed; keeping previous snapshot", user_id)
                        out[user_id] = []
            finally:
                db.close()
            return out
        finally:
            self._lock.release()


scheduler: AsyncIOScheduler | None = None
poller: PlanetaryPoller | None = None


def get_poller() -> PlanetaryPoller:
    global poller
    if poller is None:
        poller = PlanetaryPoller()
    return poller


def _run_poll_job():
    get_poller().poll()


def init_scheduler():
    global scheduler
    if scheduler is not None:
        return scheduler

    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_job(
        _run_poll_job,
        IntervalTrigger(seconds=settings.POLL_INTERVAL_SECONDS),
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    return scheduler


def shutdown_scheduler():
    global scheduler
    if scheduler is not None:
        scheduler.shutdown(wait=False)
        scheduler = None
