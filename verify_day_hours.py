# verify_day_hours.py

from datetime import datetime
from collections import Counter

from astrojournal.reports.planetary_hours_report import generate_planetary_hours_report


def main(s: str | None = None):
    if s:
        d = datetime.strptime(s, "%Y-%m-%d").date()
    else:
        d = datetime.utcnow().date()

    report = generate_planetary_hours_report(d)
    rows = report["hours"]

    print(f"Planetary hours for {d.isoformat()} ({report['timezone']})")
    print(f"Day ruler: {rows[0]['planetary_day']}")
    for row in rows:
        print(f"  {row['time']}-{row['time_end']} {row['period']:5} {row['planetary_hour']}")

    counts = Counter(row["planetary_hour"] for row in rows)
    print("\nHour ruler distribution:")
    for planet, n in counts.most_common():
        print(f"  {planet:8}: {n}")


if __name__ == "__main__":
    import sys

    arg = sys.argv[1] if len(sys.argv) > 1 else None
    main(arg)
