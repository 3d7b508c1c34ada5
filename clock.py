"""Wall-clock access in the reference timezone, with an optional simulation offset."""
from __future__ import annotations

import logging
from datetime import date, datetime, time as time_module, timedelta
from typing import Any, Dict, Optional

import pytz
from tzlocal import get_localzone_name

from errors import ConfigError

LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "Europe/London"


def resolve_timezone(name: Optional[str]) -> pytz.BaseTzInfo:
    """Return a pytz zone for *name*; ``"local"`` means the host zone."""
    zone_name = name or DEFAULT_TIMEZONE
    if zone_name == "local":
        try:
            zone_name = get_localzone_name() or "UTC"
        except Exception:  # pragma: no cover - host dependent
            LOGGER.warning("Could not detect local timezone; falling back to UTC")
            zone_name = "UTC"
    try:
        return pytz.timezone(zone_name)
    except pytz.UnknownTimeZoneError as exc:
        raise ConfigError("timezone", f"unknown timezone '{zone_name}'") from exc


def parse_clock_time(value: str) -> time_module:
    """Parse ``HH:MM`` or ``HH:MM:SS`` into a time object."""
    for fmt in ("%H:%M:%S", "%H:%M"):
        try:
            return datetime.strptime(value.strip(), fmt).time()
        except (AttributeError, ValueError):
            continue
    raise ConfigError("time", f"expected HH:MM or HH:MM:SS, got {value!r}")


class Clock:
    """Supply the current time in a fixed timezone.

    ``offset`` is subtracted from the real time, so a simulated clock that
    started at 02:00 keeps ticking in real time from 02:00 onwards.
    """

    def __init__(self, timezone: str = DEFAULT_TIMEZONE, offset: Optional[timedelta] = None) -> None:
        self._tz = resolve_timezone(timezone)
        self.offset = offset or timedelta(0)

    @classmethod
    def simulated(cls, start_time: str, timezone: str = DEFAULT_TIMEZONE) -> "Clock":
        tz = resolve_timezone(timezone)
        real_now = datetime.now(tz)
        start = tz.localize(datetime.combine(real_now.date(), parse_clock_time(start_time)))
        clock = cls(timezone=timezone, offset=real_now - start)
        LOGGER.info("Test mode clock starting at %s (%s)", start.strftime("%H:%M:%S"), timezone)
        return clock

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "Clock":
        timezone = str(config.get("timezone") or DEFAULT_TIMEZONE)
        test_mode = config.get("testMode") or {}
        if isinstance(test_mode, dict) and test_mode.get("enabled"):
            return cls.simulated(
                str(test_mode.get("startTime", "00:00:00")),
                str(test_mode.get("timezone") or timezone),
            )
        return cls(timezone=timezone)

    @property
    def timezone(self) -> pytz.BaseTzInfo:
        return self._tz

    @property
    def timezone_name(self) -> str:
        return str(getattr(self._tz, "zone", None) or self._tz)

    def now(self) -> datetime:
        return self._tz.normalize(datetime.now(self._tz) - self.offset)

    def epoch_ms(self) -> int:
        return int(self.now().timestamp() * 1000)

    def today(self) -> date:
        return self.now().date()

    def localize(self, day: date, time_of_day: str) -> datetime:
        """Return an aware datetime for *time_of_day* (``HH:MM``) on *day*."""
        return self._tz.localize(datetime.combine(day, parse_clock_time(time_of_day)))

    def localize_naive(self, naive: datetime) -> datetime:
        return self._tz.localize(naive)

    def to_wall(self, instant: datetime) -> datetime:
        """Map a time on this clock to the real time at which it occurs."""
        return self._tz.normalize(instant + self.offset)


class FixedClock(Clock):
    """A clock frozen at a given instant; ``advance`` moves it forward."""

    def __init__(self, instant: datetime, timezone: str = DEFAULT_TIMEZONE) -> None:
        super().__init__(timezone=timezone)
        if instant.tzinfo is None:
            instant = self.timezone.localize(instant)
        self._instant = instant

    def now(self) -> datetime:
        return self._instant

    def set(self, instant: datetime) -> None:
        if instant.tzinfo is None:
            instant = self.timezone.localize(instant)
        self._instant = instant

    def advance(self, delta: timedelta) -> datetime:
        self._instant = self.timezone.normalize(self._instant + delta)
        return self._instant


def format_time_remaining(ms: float) -> str:
    """Format a countdown in milliseconds as ``"2h 5min"`` / ``"40sec"``."""
    if ms < 0:
        return "--:--:--"
    total_seconds = int(ms // 1000)
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)

    parts = []
    if hours >= 1:
        parts.append(f"{hours}h")
    if minutes > 0 or hours > 0:
        # partial minutes count as a whole minute left
        parts.append(f"{minutes + 1 if seconds > 0 else minutes}min")
    if seconds > 0 and minutes <= 0:
        parts.append(f"{seconds}sec")
    return " ".join(parts)
