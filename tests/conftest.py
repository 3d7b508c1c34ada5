"""Shared fixtures: a frozen London clock, in-memory collaborators and an engine."""
from __future__ import annotations

from datetime import date, datetime
from typing import Dict, List, Optional

import pytest

from clock import FixedClock
from config import ConfigStore
from engine import PrayerScheduleEngine
from iqamah import calculate_all_iqamah_times
from models import PrayerName, PrayerTimeSet
from notifications import NotificationResult
from scheduler import ManualTimerFacility

START_TIMES = {
    PrayerName.FAJR: "05:30",
    PrayerName.SUNRISE: "06:45",
    PrayerName.ZUHR: "12:15",
    PrayerName.ASR: "15:30",
    PrayerName.MAGHRIB: "18:05",
    PrayerName.ISHA: "19:30",
}
OFFSETS = {
    PrayerName.FAJR: 20,
    PrayerName.ZUHR: 10,
    PrayerName.ASR: 10,
    PrayerName.MAGHRIB: 5,
    PrayerName.ISHA: 15,
}


def make_prayer_times(day: date, start_times: Optional[Dict[PrayerName, str]] = None) -> PrayerTimeSet:
    starts = dict(start_times or START_TIMES)
    return PrayerTimeSet(day=day, start_times=starts, iqamah_times=calculate_all_iqamah_times(starts, OFFSETS))


class StaticPrayerSource:
    """Returns the same timetable for any requested day (or nothing)."""

    name = "static"

    def __init__(self, available: bool = True) -> None:
        self.available = available
        self.requested: List[date] = []

    def get_prayer_time_set(self, day: date) -> Optional[PrayerTimeSet]:
        self.requested.append(day)
        if not self.available:
            return None
        return make_prayer_times(day)


class RecordingNotifier:
    def __init__(self, fail_on: Optional[set] = None) -> None:
        self.played: List[str] = []
        self.fail_on = fail_on or set()

    def trigger_notification(self, audio_file_name: str) -> NotificationResult:
        self.played.append(audio_file_name)
        if audio_file_name in self.fail_on:
            raise RuntimeError(f"speaker offline for {audio_file_name}")
        return NotificationResult(ok=True, audio_file=audio_file_name)


def london(year: int, month: int, day: int, hour: int = 0, minute: int = 0) -> datetime:
    return FixedClock(datetime(year, month, day, hour, minute)).now()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2025, 3, 10, 5, 0))


@pytest.fixture
def facility() -> ManualTimerFacility:
    return ManualTimerFacility()


@pytest.fixture
def store(tmp_path) -> ConfigStore:
    return ConfigStore(tmp_path / "config.json")


@pytest.fixture
def source() -> StaticPrayerSource:
    return StaticPrayerSource()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def engine(clock, store, source, notifier, facility) -> PrayerScheduleEngine:
    return PrayerScheduleEngine(
        clock=clock,
        config=store,
        prayer_source=source,
        notifier=notifier,
        timer_facility=facility,
    )


def advance(clock: FixedClock, facility: ManualTimerFacility, when: datetime) -> int:
    """Move the frozen clock and the manual timer queue forward together."""
    clock.set(when)
    return facility.advance_to(when)
