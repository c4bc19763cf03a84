# tests/test_scheduler.py

from datetime import datetime, timezone

from sqlalchemy.exc import OperationalError

from astrojournal.core.scheduler import PlanetaryPoller
from astrojournal.services.enrichment_service import LocalEphemerisProvider, SnapshotService
from astrojournal.services.journal_service import JournalService
from astrojournal.services.planetary_events_service import EventKind


class ListClock:
    """Returns the queued instants one by one."""

    def __init__(self, *instants):
        self.instants = list(instants)

    def __call__(self):
        return self.instants.pop(0)


def _poller(session_factory, *instants):
    return PlanetaryPoller(
        snapshots=SnapshotService(provider=LocalEphemerisProvider()),
        session_factory=session_factory,
        clock=ListClock(*instants),
    )


def test_first_poll_only_records_snapshot(session_factory):
    poller = _poller(session_factory, datetime(2024, 8, 21, 9, 10, tzinfo=timezone.utc))
    poller.activate("alice")

    assert poller.poll() == {"alice": []}
    assert poller.last_snapshot("alice") is not None
    assert poller.last_advisory is None


def test_hour_boundary_produces_event(session_factory):
    poller = _poller(
        session_factory,
        datetime(2024, 8, 21, 9, 58, tzinfo=timezone.utc),
        datetime(2024, 8, 21, 10, 1, tzinfo=timezone.utc),
        datetime(2024, 8, 21, 10, 2, tzinfo=timezone.utc),
    )
    poller.activate("alice")

    poller.poll()
    out = poller.poll()
    hour_events = [e for e in out["alice"] if e.kind == EventKind.PLANETARY_HOUR_CHANGE]
    assert [e.id for e in hour_events] == ["hourchange-2024-08-21T10"]

    # nothing new two minutes later
    assert poller.poll() == {"alice": []}

    db = session_factory()
    try:
        ids = JournalService(db, snapshots=poller.snapshots).existing_event_ids("alice")
    finally:
        db.close()
    assert "hourchange-2024-08-21T10" in ids


def test_deactivate_forgets_user(session_factory):
    poller = _poller(session_factory, datetime(2024, 8, 21, 9, 0, tzinfo=timezone.utc))
    poller.activate("alice")
    poller.activate("bob")
    poller.deactivate("alice")

    assert poller.active_users == ["bob"]
    assert poller.poll() == {"bob": []}
    assert poller.last_snapshot("alice") is None


def test_overlapping_poll_is_skipped(session_factory):
    poller = _poller(session_factory, datetime(2024, 8, 21, 9, 0, tzinfo=timezone.utc))
    poller.activate("alice")

    poller._lock.acquire()
    try:
        assert poller.poll() is None
    finally:
        poller._lock.release()

    assert poller.poll() == {"alice": []}


class FlakySessions:
    """Session factory whose sessions fail the first `failures` commits."""

    def __init__(self, factory, failures=1):
        self.factory = factory
        self.failures = failures

    def __call__(self):
        session = self.factory()
        real_commit = session.commit

        def commit():
            if self.failures > 0:
                self.failures -= 1
                raise OperationalError("INSERT INTO astro_events", {}, Exception("disk I/O error"))
            real_commit()

        session.commit = commit
        return session


def _stored_ids(session_factory, user_id):
    db = session_factory()
    try:
        journal = JournalService(db, snapshots=SnapshotService(provider=LocalEphemerisProvider()))
        return journal.existing_event_ids(user_id)
    finally:
        db.close()


def test_failed_commit_keeps_previous_snapshot(session_factory):
    sessions = FlakySessions(session_factory, failures=0)
    poller = PlanetaryPoller(
        snapshots=SnapshotService(provider=LocalEphemerisProvider()),
        session_factory=sessions,
        clock=ListClock(
            datetime(2024, 8, 21, 9, 58, tzinfo=timezone.utc),
            datetime(2024, 8, 21, 10, 1, tzinfo=timezone.utc),
            datetime(2024, 8, 21, 10, 2, tzinfo=timezone.utc),
        ),
    )
    poller.activate("alice")

    poller.poll()
    before = poller.last_snapshot("alice")

    sessions.failures = 1
    assert poller.poll() == {"alice": []}
    assert poller.last_snapshot("alice") == before
    assert _stored_ids(session_factory, "alice") == set()

    out = poller.poll()
    assert "hourchange-2024-08-21T10" in [e.id for e in out["alice"]]
    assert "hourchange-2024-08-21T10" in _stored_ids(session_factory, "alice")


def test_one_users_failure_does_not_skip_others(session_factory):
    sessions = FlakySessions(session_factory, failures=0)
    poller = PlanetaryPoller(
        snapshots=SnapshotService(provider=LocalEphemerisProvider()),
        session_factory=sessions,
        clock=ListClock(
            datetime(2024, 8, 21, 9, 58, tzinfo=timezone.utc),
            datetime(2024, 8, 21, 10, 1, tzinfo=timezone.utc),
        ),
    )
    poller.activate("alice")
    poller.activate("bob")
    poller.poll()

    # alice is polled first and takes the failure
    sessions.failures = 1
    out = poller.poll()

    assert out["alice"] == []
    assert "hourchange-2024-08-21T10" in [e.id for e in out["bob"]]
    assert _stored_ids(session_factory, "alice") == set()
    assert "hourchange-2024-08-21T10" in _stored_ids(session_factory, "bob")
