"""Turn a day's prayer times and preferences into an ordered list of firing events."""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import List, Optional

from clock import Clock
from errors import ConfigError
from models import FeatureFlags, PrayerName, PrayerPreference, PrayerSettings, PrayerTimeSet

LOGGER = logging.getLogger(__name__)

ANNOUNCEMENT_LEAD = timedelta(minutes=15)
DEFAULT_ROLLOVER_TIME = "00:00"
ROLLOVER_KEY = "next_day"
ROLLOVER_DEBOUNCE_KEY = "next_day_update"


class EventKind(enum.Enum):
    AZAN = "azan"
    ANNOUNCEMENT = "announcement"
    NEXT_DAY_ROLLOVER = "next_day_rollover"


@dataclass(frozen=True)
class FiringEvent:
    key: str
    kind: EventKind
    prayer: Optional[PrayerName]
    time: str
    fire_at: datetime

    @property
    def action_key(self) -> str:
        """Debounce key for the action this event performs."""
        if self.kind is EventKind.NEXT_DAY_ROLLOVER:
            return ROLLOVER_DEBOUNCE_KEY
        return self.key


@dataclass(frozen=True)
class Enablement:
    azan: bool
    announcement: bool


def resolve_enablement(flags: FeatureFlags, preference: PrayerPreference) -> Enablement:
    """Single source of truth for whether azan/announcement may play.

    Announcements depend on azan being enabled, both globally and for the
    prayer itself.
    """
    azan = flags.azan_enabled and preference.azan_enabled
    announcement = azan and flags.announcement_enabled and preference.announcement_enabled
    return Enablement(azan=azan, announcement=announcement)


def azan_clock_time(prayer_times: PrayerTimeSet, prayer: PrayerName, preference: PrayerPreference) -> Optional[str]:
    if preference.azan_at_iqamah:
        return prayer_times.iqamah_time(prayer)
    return prayer_times.start_time(prayer)


def build_daily_schedule(
    prayer_times: PrayerTimeSet,
    settings: PrayerSettings,
    flags: FeatureFlags,
    now: datetime,
    clock: Clock,
    rollover_time: str = DEFAULT_ROLLOVER_TIME,
    day: Optional[date] = None,
) -> List[FiringEvent]:
    """Build today's events: azan then announcement per prayer, rollover last.

    Events at or before *now* are skipped, as is any prayer whose time
    cannot be parsed. The rollover event is always present and falls on the
    calendar day after *day* (default: today in the clock's zone).
    """
    day = day or now.astimezone(clock.timezone).date()
    events: List[FiringEvent] = []

    for prayer in PrayerName.scheduled():
        preference = settings.for_prayer(prayer)
        enabled = resolve_enablement(flags, preference)
        if not enabled.azan:
            LOGGER.debug("Azan disabled for %s", prayer.value)
            continue

        clock_time = azan_clock_time(prayer_times, prayer, preference)
        if not clock_time:
            LOGGER.warning("No %s time available for %s", "iqamah" if preference.azan_at_iqamah else "start", prayer.value)
            continue
        try:
            azan_at = clock.localize(day, clock_time)
        except ConfigError as exc:
            LOGGER.warning("Skipping %s: malformed time %r (%s)", prayer.value, clock_time, exc.message)
            continue

        if azan_at > now:
            events.append(FiringEvent(f"azan_{prayer.value}", EventKind.AZAN, prayer, clock_time, azan_at))
        else:
            LOGGER.info("%s prayer time %s has already passed", prayer.value.upper(), clock_time)

        if not enabled.announcement:
            continue
        announce_naive = datetime.combine(day, azan_at.time()) - ANNOUNCEMENT_LEAD
        announce_at = clock.localize_naive(announce_naive)
        announce_time = announce_naive.strftime("%H:%M")
        if announce_at > now:
            events.append(
                FiringEvent(f"announcement_{prayer.value}", EventKind.ANNOUNCEMENT, prayer, announce_time, announce_at)
            )
        else:
            LOGGER.info("%s announcement time %s has already passed", prayer.value.upper(), announce_time)

    try:
        rollover_at = clock.localize(day + timedelta(days=1), rollover_time)
    except ConfigError:
        LOGGER.warning("Invalid rollover time %r; using %s", rollover_time, DEFAULT_ROLLOVER_TIME)
        rollover_at = clock.localize(day + timedelta(days=1), DEFAULT_ROLLOVER_TIME)
    events.append(FiringEvent(ROLLOVER_KEY, EventKind.NEXT_DAY_ROLLOVER, None, rollover_at.strftime("%H:%M"), rollover_at))
    return events
