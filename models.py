"""Core data types for prayer times and per-prayer preferences."""
from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Any, Dict, Mapping, Optional, Tuple


class PrayerName(str, enum.Enum):
    FAJR = "fajr"
    SUNRISE = "sunrise"
    ZUHR = "zuhr"
    ASR = "asr"
    MAGHRIB = "maghrib"
    ISHA = "isha"

    @property
    def has_iqamah(self) -> bool:
        return self is not PrayerName.SUNRISE

    @classmethod
    def scheduled(cls) -> Tuple["PrayerName", ...]:
        """The prayers that get an iqamah, in daily order."""
        return (cls.FAJR, cls.ZUHR, cls.ASR, cls.MAGHRIB, cls.ISHA)

    @classmethod
    def parse(cls, value: Any) -> "PrayerName":
        if isinstance(value, cls):
            return value
        token = str(value).strip().lower()
        token = _ALIASES.get(token, token)
        return cls(token)

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.value


_ALIASES = {
    "dhuhr": "zuhr",
    "duhr": "zuhr",
    "zuhur": "zuhr",
    "shouruq": "sunrise",
    "shuruq": "sunrise",
}

DAILY_ORDER = (
    PrayerName.FAJR,
    PrayerName.SUNRISE,
    PrayerName.ZUHR,
    PrayerName.ASR,
    PrayerName.MAGHRIB,
    PrayerName.ISHA,
)


@dataclass(frozen=True)
class PrayerTimeSet:
    """One day's azan (start) and iqamah times as ``HH:MM`` strings."""

    day: date
    start_times: Mapping[PrayerName, str]
    iqamah_times: Mapping[PrayerName, str]

    def __post_init__(self) -> None:
        if PrayerName.SUNRISE in self.iqamah_times:
            iqamah = {name: value for name, value in self.iqamah_times.items() if name.has_iqamah}
            object.__setattr__(self, "iqamah_times", iqamah)

    def start_time(self, prayer: PrayerName) -> Optional[str]:
        return self.start_times.get(prayer)

    def iqamah_time(self, prayer: PrayerName) -> Optional[str]:
        return self.iqamah_times.get(prayer)

    def next_prayer(self, now: datetime) -> Optional[Tuple[PrayerName, str]]:
        """Return the first prayer whose start time is after *now* (same day)."""
        current = now.strftime("%H:%M")
        for prayer in DAILY_ORDER:
            value = self.start_times.get(prayer)
            if value and value > current:
                return prayer, value
        return None


@dataclass(frozen=True)
class PrayerPreference:
    azan_enabled: bool = True
    announcement_enabled: bool = True
    azan_at_iqamah: bool = False

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "PrayerPreference":
        return cls(
            azan_enabled=bool(payload.get("azanEnabled", True)),
            announcement_enabled=bool(payload.get("announcementEnabled", True)),
            azan_at_iqamah=bool(payload.get("azanAtIqamah", False)),
        )

    def to_dict(self) -> Dict[str, bool]:
        return {
            "azanEnabled": self.azan_enabled,
            "announcementEnabled": self.announcement_enabled,
            "azanAtIqamah": self.azan_at_iqamah,
        }


@dataclass(frozen=True)
class PrayerSettings:
    """Per-prayer preferences for the five scheduled prayers."""

    prayers: Mapping[PrayerName, PrayerPreference] = field(default_factory=dict)

    def for_prayer(self, prayer: PrayerName) -> PrayerPreference:
        return self.prayers.get(prayer, PrayerPreference())

    def with_prayer(self, prayer: PrayerName, **changes: bool) -> "PrayerSettings":
        updated = dict(self.prayers)
        updated[prayer] = replace(self.for_prayer(prayer), **changes)
        return PrayerSettings(prayers=updated)

    @classmethod
    def defaults(cls) -> "PrayerSettings":
        return cls(prayers={prayer: PrayerPreference() for prayer in PrayerName.scheduled()})

    @classmethod
    def from_dict(cls, payload: Optional[Mapping[str, Any]]) -> "PrayerSettings":
        prayers_cfg = (payload or {}).get("prayers", {}) if isinstance(payload, Mapping) else {}
        prayers: Dict[PrayerName, PrayerPreference] = {}
        for prayer in PrayerName.scheduled():
            entry = prayers_cfg.get(prayer.value) if isinstance(prayers_cfg, Mapping) else None
            prayers[prayer] = PrayerPreference.from_dict(entry) if isinstance(entry, Mapping) else PrayerPreference()
        return cls(prayers=prayers)

    def to_dict(self) -> Dict[str, Any]:
        return {"prayers": {prayer.value: self.for_prayer(prayer).to_dict() for prayer in PrayerName.scheduled()}}


@dataclass(frozen=True)
class FeatureFlags:
    azan_enabled: bool = True
    announcement_enabled: bool = True

    @classmethod
    def from_dict(cls, payload: Optional[Mapping[str, Any]]) -> "FeatureFlags":
        payload = payload or {}
        return cls(
            azan_enabled=bool(payload.get("azanEnabled", True)),
            announcement_enabled=bool(payload.get("announcementEnabled", True)),
        )

    def to_dict(self) -> Dict[str, bool]:
        return {"azanEnabled": self.azan_enabled, "announcementEnabled": self.announcement_enabled}

