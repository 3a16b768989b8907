"""Derived fermentation metrics for brew records.

Nothing here is stored: day counts, percent progress and completion
estimates are recomputed from the record's timestamps and targets on every
call. Progress is split 5 / 50 / 45 across brewing, fermentation and
conditioning and is capped per stage, so it never exceeds 100.
"""

from datetime import datetime, timedelta
from typing import Optional

from brewmaestro.core import clock
from brewmaestro.db.models import BrewRecord

BREWING_PROGRESS = 5
FERMENTATION_SHARE = 50
CONDITIONING_SHARE = 45
ABV_FACTOR = 131.25


def days_between(start: Optional[str], end: Optional[str] = None) -> int:
    """Whole days elapsed from start to end (default now), never negative.

    Missing or unparseable timestamps count as zero days.
    """
    start_dt = clock.parse_iso(start)
    if start_dt is None:
        return 0
    end_dt = clock.parse_iso(end) if end else clock.now()
    if end_dt is None:
        return 0
    elapsed_ms = (end_dt - start_dt).total_seconds() * 1000
    return max(0, int(elapsed_ms // clock.MS_IN_DAY))


def calculate_abv(og: float, fg: float, digits: int = 1) -> float:
    """Standard ABV estimate, (OG - FG) x 131.25, rounded to digits."""
    return round((og - fg) * ABV_FACTOR, digits)


def get_fermentation_day(record: BrewRecord) -> int:
    """Day of fermentation the brew is on; 0 while still brewing."""
    if record.status == "brewing":
        return 0
    return days_between(record.fermentation_start or record.brew_date)


def get_brew_progress(record: BrewRecord) -> float:
    """Percent progress (0-100) through the whole brew lifecycle."""
    if record.status in ("completed", "archived"):
        return 100
    if record.status == "brewing":
        return BREWING_PROGRESS

    if record.status == "fermenting":
        target = record.target_fermentation_days or 1
        days = days_between(record.fermentation_start or record.brew_date)
        return BREWING_PROGRESS + min(FERMENTATION_SHARE, days / target * FERMENTATION_SHARE)

    if record.status == "conditioning":
        target = record.target_conditioning_days or 1
        days = days_between(record.conditioning_start)
        return (BREWING_PROGRESS + FERMENTATION_SHARE
                + min(CONDITIONING_SHARE, days / target * CONDITIONING_SHARE))

    return 0


def get_estimated_completion_date(record: BrewRecord) -> Optional[datetime]:
    """Planned finish: fermentation start plus both target durations.

    Based on the plan only; how far the brew has actually got is ignored.
    """
    start = clock.parse_iso(record.fermentation_start or record.brew_date)
    if start is None:
        return None
    return start + timedelta(
        days=record.target_fermentation_days + record.target_conditioning_days
    )
