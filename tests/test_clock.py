from datetime import datetime, timedelta

import pytest

from clock import Clock, FixedClock, format_time_remaining, parse_clock_time, resolve_timezone
from errors import ConfigError


def test_now_is_in_reference_timezone():
    now = Clock("Asia/Karachi").now()
    assert now.tzinfo is not None
    assert now.utcoffset() == timedelta(hours=5)


def test_simulated_clock_starts_at_requested_time():
    clock = Clock.simulated("12:00:00", "Europe/London")
    assert clock.now().strftime("%H:%M") == "12:00"
    assert clock.to_wall(clock.now()) - datetime.now(clock.timezone) < timedelta(seconds=5)


def test_from_config_uses_test_mode_block():
    config = {
        "timezone": "Europe/London",
        "testMode": {"enabled": True, "startTime": "12:30", "timezone": "Europe/London"},
    }
    assert Clock.from_config(config).now().strftime("%H:%M") == "12:30"

    config["testMode"]["enabled"] = False
    assert Clock.from_config(config).offset == timedelta(0)


def test_fixed_clock_localizes_and_advances():
    clock = FixedClock(datetime(2025, 10, 26, 0, 30))
    assert clock.now().strftime("%Z") == "BST"
    clock.advance(timedelta(hours=3))
    assert clock.now().strftime("%H:%M %Z") == "02:30 GMT"
    assert clock.localize(clock.today(), "05:30").strftime("%H:%M %Z") == "05:30 GMT"


def test_unknown_timezone_is_a_config_error():
    with pytest.raises(ConfigError):
        resolve_timezone("Mars/Olympus")


def test_local_timezone_resolves():
    assert resolve_timezone("local") is not None


def test_parse_clock_time_formats():
    assert parse_clock_time("02:00:00").hour == 2
    assert parse_clock_time("23:15").minute == 15
    with pytest.raises(ConfigError):
        parse_clock_time("noon")


@pytest.mark.parametrize(
    "ms, expected",
    [
        (-1, "--:--:--"),
        (45_000, "45sec"),
        (90_000, "2min"),
        (5 * 60_000, "5min"),
        (3_900_000, "1h 5min"),
        (2 * 3_600_000 + 60_000, "2h 1min"),
    ],
)
def test_format_time_remaining(ms, expected):
    assert format_time_remaining(ms) == expected
