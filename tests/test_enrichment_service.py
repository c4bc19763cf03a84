# tests/test_enrichment_service.py

import json
import time
from datetime import datetime, timezone

import pytest
import requests

from astrojournal.constants import MoonPhase, Planet, ZodiacSign
from astrojournal.exceptions import ComputationError, EnrichmentUnavailable
from astrojournal.services.astro_core import AstroCore, LocationHint, PlanetaryInfo
from astrojournal.services.enrichment_service import (
    LocalEphemerisProvider,
    RemoteEnrichmentProvider,
    SnapshotService,
    build_provider,
    extract_json,
)

INSTANT = datetime(2024, 8, 23, 12, 0, tzinfo=timezone.utc)

PAYLOAD = {
    "planetaryDay": "Venus",
    "planetaryHour": "Saturn",
    "sunSign": "Virgo",
    "moonSign": "Aries",
    "moonPhase": "Waning Gibbous",
    "retrogrades": ["Mercury", "Saturn"],
    "locationName": "Lisbon, Portugal",
}


# ---------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------

class FailingProvider:
    source = "remote"

    def __init__(self, exc):
        self.exc = exc

    def compute_snapshot(self, instant, location_hint=None):
        raise self.exc


class SlowProvider:
    source = "remote"

    def compute_snapshot(self, instant, location_hint=None):
        time.sleep(0.5)
        return PlanetaryInfo.from_payload(PAYLOAD)


class StaticProvider:
    source = "remote"

    def compute_snapshot(self, instant, location_hint=None):
        return PlanetaryInfo.from_payload(PAYLOAD)


class BrokenCore(AstroCore):
    def compute_snapshot(self, instant, location_hint=None):
        raise ComputationError("impossible state")


class FakeResponse:
    def __init__(self, status_code=200, text=""):
        self.status_code = status_code
        self.text = text


class FakeSession:
    def __init__(self, response=None, exc=None):
        self.response = response
        self.exc = exc
        self.calls = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.calls.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        if self.exc is not None:
            raise self.exc
        return self.response


# ---------------------------------------------------------------------
# extract_json
# ---------------------------------------------------------------------

def test_extract_json_plain():
    assert extract_json(json.dumps(PAYLOAD)) == PAYLOAD


def test_extract_json_fenced():
    raw = "Here you go:\n```json\n" + json.dumps(PAYLOAD) + "\n```\n"
    assert extract_json(raw) == PAYLOAD


def test_extract_json_surrounded_by_text():
    raw = "Result: " + json.dumps(PAYLOAD) + " -- end"
    assert extract_json(raw) == PAYLOAD


def test_extract_json_garbage():
    with pytest.raises(EnrichmentUnavailable) as exc_info:
        extract_json("the stars are silent today")
    assert exc_info.value.reason == "malformed"


# ---------------------------------------------------------------------
# RemoteEnrichmentProvider
# ---------------------------------------------------------------------

def test_remote_provider_parses_response():
    session = FakeSession(FakeResponse(200, json.dumps(PAYLOAD)))
    provider = RemoteEnrichmentProvider(
        url="http://enrichment.test/snapshot", api_key="secret", timeout=3, session=session
    )

    info = provider.compute_snapshot(INSTANT, LocationHint(name="Lisbon"))

    assert info.source == "remote"
    assert info.sun_sign == ZodiacSign.VIRGO
    assert info.retrogrades == (Planet.MERCURY, Planet.SATURN)
    call = session.calls[0]
    assert call["json"] == {"datetime": "2024-08-23T12:00:00+00:00", "location": "Lisbon"}
    assert call["headers"]["Authorization"] == "Bearer secret"
    assert call["timeout"] == 3


def test_remote_provider_sends_coordinates_without_name():
    session = FakeSession(FakeResponse(200, json.dumps(PAYLOAD)))
    provider = RemoteEnrichmentProvider(url="http://enrichment.test", session=session)
    provider.compute_snapshot(INSTANT, LocationHint(latitude=38.7, longitude=-9.1))
    body = session.calls[0]["json"]
    assert body["latitude"] == 38.7
    assert body["longitude"] == -9.1
    assert "location" not in body


@pytest.mark.parametrize(
    "session,reason",
    [
        (FakeSession(FakeResponse(429, "slow down")), "quota"),
        (FakeSession(FakeResponse(403, '{"error": "Quota exceeded"}')), "quota"),
        (FakeSession(FakeResponse(500, "boom")), "http"),
        (FakeSession(FakeResponse(200, "not json at all")), "malformed"),
        (FakeSession(exc=requests.Timeout("read timed out")), "timeout"),
        (FakeSession(exc=requests.ConnectionError("refused")), "transport"),
    ],
)
def test_remote_provider_failures(session, reason):
    provider = RemoteEnrichmentProvider(url="http://enrichment.test", session=session)
    with pytest.raises(EnrichmentUnavailable) as exc_info:
        provider.compute_snapshot(INSTANT)
    assert exc_info.value.reason == reason


def test_remote_provider_unconfigured(monkeypatch):
    from astrojournal.config import settings

    monkeypatch.setattr(settings, "ENRICHMENT_URL", None)
    provider = RemoteEnrichmentProvider(session=FakeSession())
    with pytest.raises(EnrichmentUnavailable) as exc_info:
        provider.compute_snapshot(INSTANT)
    assert exc_info.value.reason == "unconfigured"


# ---------------------------------------------------------------------
# SnapshotService
# ---------------------------------------------------------------------

def test_local_provider_needs_no_fallback():
    svc = SnapshotService(provider=LocalEphemerisProvider())
    result = svc.resolve(INSTANT)
    assert svc.is_local
    assert result.advisory is None
    assert result.info.source == "local"


def test_enrichment_success():
    svc = SnapshotService(provider=StaticProvider(), timeout=5)
    result = svc.resolve(INSTANT)
    svc.shutdown()
    assert not result.fell_back
    assert result.info.moon_phase == MoonPhase.WANING_GIBBOUS


@pytest.mark.parametrize(
    "exc",
    [
        EnrichmentUnavailable("quota", reason="quota"),
        RuntimeError("provider bug"),
    ],
)
def test_failure_falls_back_with_advisory(exc):
    svc = SnapshotService(provider=FailingProvider(exc), timeout=5)
    result = svc.resolve(INSTANT)
    svc.shutdown()

    assert result.fell_back
    assert "locally calculated" in result.advisory
    assert result.info == AstroCore().compute_snapshot(INSTANT)


def test_slow_provider_times_out_into_fallback():
    svc = SnapshotService(provider=SlowProvider(), timeout=0.05)
    result = svc.resolve(INSTANT)
    svc.shutdown()
    assert result.fell_back
    assert result.info.source == "local"


def test_computation_error_is_not_swallowed():
    svc = SnapshotService(
        provider=FailingProvider(EnrichmentUnavailable("down", reason="http")),
        fallback=BrokenCore(),
        timeout=5,
    )
    with pytest.raises(ComputationError):
        svc.resolve(INSTANT)
    svc.shutdown()


def test_build_provider():
    assert isinstance(build_provider("local"), LocalEphemerisProvider)
    assert isinstance(build_provider("remote"), RemoteEnrichmentProvider)
    with pytest.raises(ValueError):
        build_provider("astrolabe")
