# astrojournal/services/enrichment_service.py

from __future__ import annotations

import json
import logging
import re
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Protocol

import requests

from astrojournal.config import settings
from astrojournal.exceptions import EnrichmentUnavailable
from astrojournal.monitoring.metrics import ENRICHMENT_FALLBACKS, SNAPSHOTS_COMPUTED
from astrojournal.services.astro_core import AstroCore, LocationHint, PlanetaryInfo
from astrojournal.utils.timezone import to_utc

logger = logging.getLogger(__name__)

_FENCED_JSON = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")


class EphemerisProvider(Protocol):
    source: str

    def compute_snapshot(
        self, instant: datetime, location_hint: Optional[LocationHint] = None
    ) -> PlanetaryInfo:
        ...


class LocalEphemerisProvider(AstroCore):
    """The deterministic calculator exposed as a provider."""


def extract_json(raw_text: str) -> Dict[str, Any]:
    """
    Parse a JSON object out of a provider response body. Accepts a bare
    object, one wrapped in a ``` fenced block, or one surrounded by text.
    """
    text = raw_text.strip()
    try:
        return json.loads(text)
    except ValueError:
        pass

    match = _FENCED_JSON.search(text)
    if match:
        try:
            return json.loads(match.group(1))
        except ValueError:
            pass

    first, last = text.find("{"), text.rfind("}")
    if first != -1 and last > first:
        try:
            return json.loads(text[first:last + 1])
        except ValueError:
            pass

    raise EnrichmentUnavailable("Enrichment returned unparsable data", reason="malformed")


class RemoteEnrichmentProvider:
    """
    HTTP enrichment source. POSTs the instant (ISO, UTC) and the optional
    location and expects the PlanetaryInfo shape back:

      {"planetaryDay": "Mercury", "planetaryHour": "Saturn",
       "sunSign": "Capricorn", "moonSign": "Leo",
       "moonPhase": "Waning Gibbous", "retrogrades": ["Mercury"],
       "locationName": "Mountain View, CA"}
    """

    source = "remote"

    def __init__(
        self,
        url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.url = url or settings.ENRICHMENT_URL
        self.api_key = api_key or settings.ENRICHMENT_API_KEY
        self.timeout = timeout or settings.ENRICHMENT_TIMEOUT_SECONDS
        self.session = session or requests.Session()

    def _request_body(self, instant: datetime, location_hint: Optional[LocationHint]) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "datetime": to_utc(instant, settings.LOCAL_TIMEZONE).isoformat(),
        }
        if location_hint and location_hint.name.strip():
            body["location"] = location_hint.name.strip()
        elif location_hint and location_hint.latitude is not None and location_hint.longitude is not None:
            body["latitude"] = location_hint.latitude
            body["longitude"] = location_hint.longitude
        return body

    def compute_snapshot(
        self, instant: datetime, location_hint: Optional[LocationHint] = None
    ) -> PlanetaryInfo:
        if not self.url:
            raise EnrichmentUnavailable("ENRICHMENT_URL is not configured", reason="unconfigured")

        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            r = self.session.post(
                self.url,
                json=self._request_body(instant, location_hint),
                headers=headers,
                timeout=self.timeout,
            )
        except requests.Timeout as exc:
            raise EnrichmentUnavailable(f"Enrichment timed out: {exc}", reason="timeout")
        except requests.RequestException as exc:
            raise EnrichmentUnavailable(f"Enrichment request failed: {exc}", reason="transport")

        if r.status_code == 429 or (r.status_code >= 400 and "quota" in r.text[:500].lower()):
            raise EnrichmentUnavailable("Enrichment quota exceeded", reason="quota")
        if r.status_code >= 400:
            raise EnrichmentUnavailable(f"Enrichment returned HTTP {r.status_code}", reason="http")

        return PlanetaryInfo.from_payload(extract_json(r.text), source=self.source)


def build_provider(name: Optional[str] = None) -> EphemerisProvider:
    name = (name or settings.EPHEMERIS_PROVIDER).lower()
    if name == "local":
        return LocalEphemerisProvider()
    if name == "swisseph":
        from astrojournal.services.ephemeris_service import SwissEphemerisProvider
        return SwissEphemerisProvider()
    if name == "remote":
        return RemoteEnrichmentProvider()
    raise ValueError(f"Unknown ephemeris provider '{name}'")


@dataclass(frozen=True)
class SnapshotResult:
    info: PlanetaryInfo
    advisory: Optional[str] = None

    @property
    def fell_back(self) -> bool:
        return self.advisory is not None


class SnapshotService:
    """
    Resolve a snapshot through the configured provider, bounded by a
    timeout, and fall back to the deterministic calculator on any
    enrichment failure. Deterministic failures (ComputationError) are not
    swallowed.
    """

    def __init__(
        self,
        provider: Optional[EphemerisProvider] = None,
        fallback: Optional[AstroCore] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.provider = provider or build_provider()
        self.fallback = fallback or AstroCore()
        self.timeout = timeout if timeout is not None else settings.ENRICHMENT_TIMEOUT_SECONDS
        self._executor: Optional[ThreadPoolExecutor] = None

    @property
    def is_local(self) -> bool:
        return isinstance(self.provider, AstroCore)

    def _call_provider(self, instant: datetime, location_hint: Optional[LocationHint]) -> PlanetaryInfo:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="enrichment")
        future = self._executor.submit(self.provider.compute_snapshot, instant, location_hint)
        try:
            return future.result(timeout=self.timeout)
        except FuturesTimeout:
            future.cancel()
            raise EnrichmentUnavailable(
                f"{self.provider.source} provider exceeded {self.timeout}s", reason="timeout"
            )

    def resolve(self, instant: datetime, location_hint: Optional[LocationHint] = None) -> SnapshotResult:
        if self.is_local:
            info = self.provider.compute_snapshot(instant, location_hint)
            SNAPSHOTS_COMPUTED.labels(source=info.source).inc()
            return SnapshotResult(info=info)

        try:
            info = self._call_provider(instant, location_hint)
        except EnrichmentUnavailable as exc:
            reason = exc.reason
            logger.warning("Enrichment unavailable (%s), using local calculation: %s", reason, exc)
        except Exception as exc:
            reason = "error"
            logger.warning("Enrichment provider raised %r, using local calculation", exc)
        else:
            SNAPSHOTS_COMPUTED.labels(source=info.source).inc()
            return SnapshotResult(info=info)

        ENRICHMENT_FALLBACKS.labels(reason=reason).inc()
        info = self.fallback.compute_snapshot(instant, location_hint)
        SNAPSHOTS_COMPUTED.labels(source=info.source).inc()
        return SnapshotResult(
            info=info,
            advisory="Live ephemeris data is unavailable; showing locally calculated values.",
        )

    def compute_snapshot(
        self, instant: datetime, location_hint: Optional[LocationHint] = None
    ) -> PlanetaryInfo:
        return self.resolve(instant, location_hint).info

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None
