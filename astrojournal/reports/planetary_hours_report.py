from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Optional

import pytz

from astrojournal.config import settings
from astrojournal.monitoring.metrics import LAST_REPORT_ROWS
from astrojournal.services.astro_core import AstroCore
from astrojournal.services.planetary_hours_service import hour_slots

# ---------------------------------------------------------------------------
# In-memory metrics for health / metrics endpoints
# ---------------------------------------------------------------------------

_REPORT_METRICS: Dict[str, Any] = {
    "last_report_generated": None,  # ISO string in UTC
    "last_report_date": None,
    "last_report_rows": 0,
}


def get_report_metrics() -> Dict[str, Any]:
    """
    Return a shallow copy of the last report metrics for diagnostics.
    """
    return dict(_REPORT_METRICS)


# ---------------------------------------------------------------------------
# Core report generator
# ---------------------------------------------------------------------------


def generate_planetary_hours_report(
    target_date: date,
    timezone_str: Optional[str] = None,
) -> Dict[str, Any]:
    """
    One row per planetary hour of `target_date` (local calendar day in
    `timezone_str`), each with the deterministic snapshot taken at the
    start of the slot.
    """
    tz_name = timezone_str or settings.LOCAL_TIMEZONE
    tz = pytz.timezone(tz_name)
    core = AstroCore(assume_tz=tz_name)

    rows: List[Dict[str, Any]] = []
    for slot in hour_slots(target_date):
        local_dt = tz.localize(slot.start)
        dt_utc = local_dt.astimezone(pytz.UTC)

        snapshot = core.compute_snapshot(slot.start)

        row: Dict[str, Any] = {
            "timestamp_local": local_dt.isoformat(),
            "time": slot.start.strftime("%H:%M"),
            "time_end": slot.end.strftime("%H:%M"),
            "time_utc": dt_utc.strftime("%H:%M"),
            "period": "day" if slot.is_day else "night",
            "hour_index": slot.hour_index,
        }
        row.update(snapshot.to_dict())
        rows.append(row)

    _REPORT_METRICS["last_report_generated"] = datetime.utcnow().isoformat()
    _REPORT_METRICS["last_report_date"] = target_date.isoformat()
    _REPORT_METRICS["last_report_rows"] = len(rows)
    LAST_REPORT_ROWS.set(len(rows))

    return {"date": target_date.isoformat(), "timezone": tz_name, "hours": rows}
