from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from summary_bot.services.time_windows import get_zone, is_valid_zone, resolve

# 2024-03-15 12:00:00 UTC, a Friday
NOW = int(datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc).timestamp())


@pytest.mark.parametrize(
    "token, seconds, description",
    [
        ("1h", 3600, "Last 1h"),
        ("6h", 6 * 3600, "Last 6h"),
        ("3d", 3 * 86400, "Last 3d"),
        ("2w", 14 * 86400, "Last 2w"),
        (" 12H ", 12 * 3600, "Last 12h"),
    ],
)
def test_relative_tokens(token, seconds, description):
    window = resolve(token, now=NOW)

    assert window.end == NOW
    assert window.end - window.start == seconds
    assert window.description == description


@pytest.mark.parametrize("token", [None, "", "0h", "abc", "5m", "-3h", "h", "3 d"])
def test_unparseable_tokens_fall_back_to_24h(token):
    window = resolve(token, now=NOW)

    assert window.end == NOW
    assert window.end - window.start == 24 * 3600
    assert window.description == "Last 24h"


def test_today_starts_at_local_midnight():
    window = resolve("today", now=NOW, tz="Europe/Kyiv")

    # 14:00 in Kyiv (UTC+2 in March before DST)
    start = datetime.fromtimestamp(window.start, tz=ZoneInfo("Europe/Kyiv"))
    assert (start.year, start.month, start.day, start.hour, start.minute) == (2024, 3, 15, 0, 0)
    assert window.end == NOW
    assert window.description == "Today"


def test_yesterday_covers_the_previous_calendar_day():
    window = resolve("yesterday", now=NOW)

    assert window.start == int(datetime(2024, 3, 14, tzinfo=timezone.utc).timestamp())
    assert window.end == int(datetime(2024, 3, 14, 23, 59, 59, tzinfo=timezone.utc).timestamp())
    assert window.start <= window.end < NOW
    assert window.description == "Yesterday"


def test_yesterday_across_dst_change_is_23_hours():
    # Europe/London springs forward on 2024-03-31
    now = int(datetime(2024, 4, 1, 12, 0, tzinfo=timezone.utc).timestamp())
    window = resolve("yesterday", now=now, tz="Europe/London")

    assert window.end - window.start + 1 == 23 * 3600


def test_unknown_timezone_falls_back_to_utc():
    assert get_zone("Mars/Olympus") == ZoneInfo("UTC")
    assert resolve("today", now=NOW, tz="Mars/Olympus") == resolve("today", now=NOW, tz="UTC")


def test_is_valid_zone():
    assert is_valid_zone("America/New_York")
    assert not is_valid_zone("Mars/Olympus")
    assert not is_valid_zone("")
