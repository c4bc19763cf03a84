# astrojournal/monitoring/metrics.py
from prometheus_client import Counter, Gauge, generate_latest, CONTENT_TYPE_LATEST

SNAPSHOTS_COMPUTED = Counter(
    "astro_snapshots_total",
    "Planetary snapshots computed",
    ["source"],
)

ENRICHMENT_FALLBACKS = Counter(
    "astro_enrichment_fallbacks_total",
    "Enrichment failures that fell back to the local calculator",
    ["reason"],
)

EVENTS_EMITTED = Counter(
    "astro_events_emitted_total",
    "Timeline events synthesized from snapshot changes",
    ["kind"],
)

POLLS_SKIPPED = Counter(
    "astro_polls_skipped_total",
    "Polls skipped because the previous poll was still running",
)

LAST_REPORT_ROWS = Gauge(
    "astro_last_report_rows",
    "Rows in last generated planetary hours report"
)


def render_latest() -> tuple:
    return generate_latest(), CONTENT_TYPE_LATEST
