"""Period token -> absolute time window."""

import logging
import re
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

DEFAULT_PERIOD = "24h"

_PERIOD_RE = re.compile(r"^(\d+)([hdw])$")
_UNIT_SECONDS = {"h": 3600, "d": 86400, "w": 7 * 86400}


@dataclass(frozen=True)
class TimeWindow:
    start: int
    end: int
    # Display tag such as "Last 24h" or "Today"; localized by the caller
    description: str


def get_zone(tz_name: str | None) -> ZoneInfo:
    """Return the zone for ``tz_name``, falling back to UTC for unknown names."""
    try:
        return ZoneInfo(tz_name or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone {tz_name!r}, using UTC")
        return ZoneInfo("UTC")


def is_valid_zone(tz_name: str | None) -> bool:
    if not tz_name:
        return False
    try:
        ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


def resolve(period: str | None, now: int | None = None, tz: str | None = "UTC") -> TimeWindow:
    """
    Resolve a period token into a time window ending at ``now``.

    Supported tokens:
    - ``today``: midnight of the current day in ``tz`` up to now
    - ``yesterday``: the whole previous calendar day in ``tz``
    - ``<N>h``, ``<N>d``, ``<N>w``: the last N hours, days or weeks

    Anything else (including ``None``) resolves like ``24h``.

    Args:
        period: Period token as typed by the user
        now: Reference unix time, defaults to the current time
        tz: IANA zone used for calendar-day boundaries

    Returns:
        TimeWindow with unix-second bounds
    """
    if now is None:
        now = int(time.time())

    token = (period or DEFAULT_PERIOD).strip().lower()

    if token in ("today", "yesterday"):
        zone = get_zone(tz)
        midnight = datetime.fromtimestamp(now, tz=zone).replace(hour=0, minute=0, second=0, microsecond=0)

        if token == "today":
            return TimeWindow(start=_local_to_unix(midnight, zone), end=now, description="Today")

        day_before = (midnight - timedelta(days=1)).replace(tzinfo=None)
        start = _local_to_unix(day_before, zone)
        end = _local_to_unix(midnight.replace(tzinfo=None), zone) - 1
        return TimeWindow(start=start, end=end, description="Yesterday")

    match = _PERIOD_RE.match(token)
    if match and int(match.group(1)) > 0:
        amount = int(match.group(1))
        unit = match.group(2)
        return TimeWindow(
            start=now - amount * _UNIT_SECONDS[unit],
            end=now,
            description=f"Last {amount}{unit}",
        )

    return TimeWindow(start=now - 24 * 3600, end=now, description="Last 24h")


def _local_to_unix(value: datetime, zone: ZoneInfo) -> int:
    # Calendar arithmetic happens on naive wall-clock values; attach the zone last so DST offsets are right
    return int(value.replace(tzinfo=zone).timestamp())
