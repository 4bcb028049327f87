"""Next-run computation for recurring summaries.

The same rule is used when a schedule is created and after every firing:
``daily`` fires at 09:00 local time on the next calendar day, ``weekly`` at
09:00 local time on the first Sunday after today. A schedule created at 08:00
therefore first fires 25 hours later, not one hour later.
"""

import time
from datetime import datetime, timedelta

from summary_bot.core.exceptions import ValidationError
from summary_bot.services.time_windows import get_zone

RUN_HOUR = 9
SUNDAY = 6  # datetime.weekday()

# schedule option -> (schedule_type, interval_hours)
SCHEDULE_OPTIONS = {
    "daily": ("daily", 24),
    "weekly": ("weekly", 168),
    "3days": ("custom", 72),
}


def next_run(
    schedule_type: str,
    timezone: str | None = "UTC",
    now: int | None = None,
    interval_hours: int | None = None,
) -> int:
    """Return the unix time of the next firing, strictly after ``now``."""
    if now is None:
        now = int(time.time())

    if schedule_type == "custom":
        if not interval_hours or interval_hours <= 0:
            raise ValidationError("Custom schedules need a positive interval")
        return now + interval_hours * 3600

    zone = get_zone(timezone)
    local_today = datetime.fromtimestamp(now, tz=zone).date()

    if schedule_type == "daily":
        run_date = local_today + timedelta(days=1)
    elif schedule_type == "weekly":
        days_ahead = (SUNDAY - local_today.weekday()) % 7 or 7
        run_date = local_today + timedelta(days=days_ahead)
    else:
        raise ValidationError(f"Unknown schedule type: {schedule_type}")

    run_at = datetime(run_date.year, run_date.month, run_date.day, RUN_HOUR, tzinfo=zone)
    return int(run_at.timestamp())


def schedule_period(schedule_type: str, interval_hours: int | None = None) -> str:
    """Period token summarized by a schedule of the given type."""
    if schedule_type == "daily":
        return "24h"
    if schedule_type == "weekly":
        return "1w"
    if interval_hours:
        return f"{interval_hours}h"
    return "24h"
