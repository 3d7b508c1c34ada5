"""Iqamah time calculation with prayer-specific rounding.

All times are ``HH:MM`` strings and all arithmetic is done in minutes since
midnight, wrapped into a single 24 hour cycle. Maghrib iqamah is the exact
azan + offset; every other prayer is rounded to the nearest quarter hour
using the boundaries below (the minute value before rounding):

    [0, 7.5)     -> :00
    [7.5, 22.5)  -> :15
    [22.5, 37.5) -> :30
    [37.5, 52.5) -> :45
    [52.5, 60)   -> :00 of the next hour
"""
from __future__ import annotations

import logging
import re
from typing import Any, Dict, Mapping, Optional, Union

from errors import ConfigError, InvalidTimeInput
from models import PrayerName

LOGGER = logging.getLogger(__name__)

MINUTES_PER_DAY = 1440
MAX_OFFSET_MINUTES = 120

_TIME_PATTERN = re.compile(r"^\s*(\d{1,2}):(\d{1,2})")


def _parse_minutes(time_str: Any) -> int:
    if not isinstance(time_str, str):
        raise InvalidTimeInput(time_str)
    match = _TIME_PATTERN.match(time_str)
    if not match:
        raise InvalidTimeInput(time_str)
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        raise InvalidTimeInput(time_str)
    return hours * 60 + minutes


def parse_time_to_minutes(time_str: Any) -> int:
    """Return minutes since midnight for ``HH:MM``; malformed input gives 0."""
    try:
        return _parse_minutes(time_str)
    except InvalidTimeInput:
        LOGGER.warning("Invalid time string received for parsing: %r. Using 00:00.", time_str)
        return 0


def format_minutes_to_time(total_minutes: int) -> str:
    total_minutes = total_minutes % MINUTES_PER_DAY
    hours, minutes = divmod(total_minutes, 60)
    return f"{hours:02d}:{minutes:02d}"


def round_minutes(total_minutes: int) -> int:
    """Round to a quarter hour; the result is wrapped into one day."""
    total_minutes = total_minutes % MINUTES_PER_DAY
    hours, minutes = divmod(total_minutes, 60)

    if minutes >= 52.5:
        minutes = 0
        hours = (hours + 1) % 24
    elif minutes >= 37.5:
        minutes = 45
    elif minutes >= 22.5:
        minutes = 30
    elif minutes >= 7.5:
        minutes = 15
    else:
        minutes = 0
    return hours * 60 + minutes


def _coerce_offset(offset_minutes: Any) -> int:
    try:
        return int(offset_minutes)
    except (TypeError, ValueError, OverflowError):
        LOGGER.warning("Invalid iqamah offset %r; using 0 minutes", offset_minutes)
        return 0


def calculate_iqamah_time(azan_time: Any, offset_minutes: Any, prayer: Union[PrayerName, str]) -> str:
    """Return the iqamah time for *prayer* given its azan time and offset.

    Never raises: an unparseable azan time counts as 00:00 and an unknown
    prayer name is rounded like the non-maghrib prayers.
    """
    raw = parse_time_to_minutes(azan_time) + _coerce_offset(offset_minutes)
    raw %= MINUTES_PER_DAY

    if str(getattr(prayer, "value", prayer)).strip().lower() == PrayerName.MAGHRIB.value:
        return format_minutes_to_time(raw)
    return format_minutes_to_time(round_minutes(raw))


def calculate_all_iqamah_times(
    start_times: Mapping[PrayerName, str],
    offsets: Mapping[PrayerName, int],
) -> Dict[PrayerName, str]:
    """Compute iqamah times for every scheduled prayer that has a start time."""
    result: Dict[PrayerName, str] = {}
    for prayer in PrayerName.scheduled():
        azan = start_times.get(prayer)
        if azan is None:
            continue
        result[prayer] = calculate_iqamah_time(azan, offsets.get(prayer, 0), prayer)
    return result


def clean_api_time(api_time: Optional[str]) -> str:
    """Strip timezone suffixes such as ``"05:12 (BST)"`` from API times."""
    if not api_time or not isinstance(api_time, str):
        return "00:00"
    return api_time.split(" ")[0]


def is_time_between(value: str, start: str, end: str) -> bool:
    """Inclusive range check that understands windows crossing midnight."""
    value_m = parse_time_to_minutes(value)
    start_m = parse_time_to_minutes(start)
    end_m = parse_time_to_minutes(end)
    if start_m <= end_m:
        return start_m <= value_m <= end_m
    return value_m >= start_m or value_m <= end_m


def validate_offsets(offsets: Mapping[str, Any]) -> Dict[PrayerName, int]:
    """Validate raw ``{"fajr": 20, ...}`` offsets; raises ConfigError."""
    validated: Dict[PrayerName, int] = {}
    for prayer in PrayerName.scheduled():
        field_name = f"iqamahOffsets.{prayer.value}"
        value = offsets.get(prayer.value)
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigError(field_name, "must be a whole number of minutes")
        if not 0 <= value <= MAX_OFFSET_MINUTES:
            raise ConfigError(field_name, f"must be between 0 and {MAX_OFFSET_MINUTES} minutes")
        validated[prayer] = value
    return validated
