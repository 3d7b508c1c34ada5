"""JSON-file configuration store with change listeners."""
from __future__ import annotations

import copy
import json
import logging
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

from clock import DEFAULT_TIMEZONE, parse_clock_time, resolve_timezone
from errors import ConfigError
from iqamah import validate_offsets
from models import FeatureFlags, PrayerName, PrayerSettings

LOGGER = logging.getLogger(__name__)

APP_ROOT = Path(__file__).parent
CONFIG_PATH = APP_ROOT / "config.json"

DEFAULT_IQAMAH_OFFSETS = {"fajr": 20, "zuhr": 10, "asr": 10, "maghrib": 5, "isha": 15}

DEFAULT_CONFIG: Dict[str, Any] = {
    "timezone": DEFAULT_TIMEZONE,
    "rollover_time": "00:00",
    "features": {"azanEnabled": True, "announcementEnabled": True},
    "prayerSettings": PrayerSettings.defaults().to_dict(),
    "prayerData": {
        "source": "aladhan",
        "city": "London",
        "country": "GB",
        "latitude": None,
        "longitude": None,
        "method": 15,
        "school": 0,
        "guidId": None,
        "iqamahOffsets": dict(DEFAULT_IQAMAH_OFFSETS),
    },
    "testMode": {"enabled": False, "startTime": "02:00:00", "timezone": DEFAULT_TIMEZONE},
    "voiceMonkey": {
        "device": "voice-monkey-speaker-1",
        "baseAudioUrl": "https://la-ilaha-illa-allah.netlify.app/mp3/",
    },
}


def _merge(base: Dict[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def validate_config(config: Mapping[str, Any]) -> None:
    """Raise ConfigError for values the scheduler cannot work with."""
    resolve_timezone(config.get("timezone"))
    parse_clock_time(str(config.get("rollover_time", "00:00")))

    prayer_data = config.get("prayerData") or {}
    source = prayer_data.get("source")
    if source not in ("aladhan", "mymasjid"):
        raise ConfigError("prayerData.source", f"unsupported prayer source {source!r}")
    if source == "mymasjid" and not prayer_data.get("guidId"):
        raise ConfigError("prayerData.guidId", "required for the mymasjid source")
    if source == "aladhan":
        validate_offsets(prayer_data.get("iqamahOffsets") or {})

    test_mode = config.get("testMode") or {}
    if test_mode.get("enabled"):
        parse_clock_time(str(test_mode.get("startTime", "")))
        resolve_timezone(test_mode.get("timezone") or config.get("timezone"))


class ConfigStore:
    """Load, update and persist the application config.

    Every successful update is written to disk and then announced to the
    registered listeners (the engine rebuilds its timers on each one).
    """

    def __init__(self, path: Path = CONFIG_PATH, data: Optional[Dict[str, Any]] = None) -> None:
        self.path = Path(path)
        self._lock = threading.RLock()
        self._listeners: List[Callable[[Dict[str, Any]], None]] = []
        self._data: Dict[str, Any] = _merge(DEFAULT_CONFIG, data) if data is not None else copy.deepcopy(DEFAULT_CONFIG)

    # -- persistence -------------------------------------------------------
    def load(self) -> Dict[str, Any]:
        raw = self._load_json(self.path, default={})
        LOGGER.debug("Loaded config keys: %s", list(raw.keys()))
        merged = _merge(DEFAULT_CONFIG, raw)
        validate_config(merged)
        with self._lock:
            self._data = merged
        return self.snapshot()

    @staticmethod
    def _load_json(path: Path, default: Dict[str, Any]) -> Dict[str, Any]:
        if not path.exists():
            return default
        with path.open("r", encoding="utf-8") as handle:
            try:
                return json.load(handle)
            except json.JSONDecodeError as exc:
                raise ConfigError(str(path), f"invalid JSON: {exc}") from exc

    @staticmethod
    def _save_json(path: Path, payload: Dict[str, Any]) -> None:
        with path.open("w", encoding="utf-8") as handle:
            json.dump(payload, handle, indent=2)

    # -- reads -------------------------------------------------------------
    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return copy.deepcopy(self._data)

    def get_feature_flags(self) -> FeatureFlags:
        with self._lock:
            return FeatureFlags.from_dict(self._data.get("features"))

    def get_prayer_settings(self) -> PrayerSettings:
        with self._lock:
            return PrayerSettings.from_dict(self._data.get("prayerSettings"))

    def get_iqamah_offsets(self) -> Dict[PrayerName, int]:
        with self._lock:
            offsets = (self._data.get("prayerData") or {}).get("iqamahOffsets") or {}
        return validate_offsets(offsets)

    @property
    def timezone(self) -> str:
        return str(self._data.get("timezone") or DEFAULT_TIMEZONE)

    @property
    def rollover_time(self) -> str:
        return str(self._data.get("rollover_time") or "00:00")

    # -- updates -----------------------------------------------------------
    def add_change_listener(self, listener: Callable[[Dict[str, Any]], None]) -> None:
        self._listeners.append(listener)

    def update_features(
        self,
        azan_enabled: Optional[bool] = None,
        announcement_enabled: Optional[bool] = None,
    ) -> FeatureFlags:
        changes: Dict[str, Any] = {}
        if isinstance(azan_enabled, bool):
            LOGGER.info("Updating azanEnabled to: %s", azan_enabled)
            changes["azanEnabled"] = azan_enabled
        if isinstance(announcement_enabled, bool):
            LOGGER.info("Updating announcementEnabled to: %s", announcement_enabled)
            changes["announcementEnabled"] = announcement_enabled
        self._apply({"features": changes})
        return self.get_feature_flags()

    def update_prayer_settings(self, settings: Mapping[str, Any]) -> PrayerSettings:
        """Merge ``{"prayers": {...}, "globalAzanEnabled": bool, ...}`` into the config."""
        if not isinstance(settings, Mapping) or not isinstance(settings.get("prayers", {}), Mapping):
            raise ConfigError("prayerSettings", "invalid settings format")

        prayers: Dict[str, Any] = {}
        for name, entry in (settings.get("prayers") or {}).items():
            prayer = PrayerName.parse(name)
            if not prayer.has_iqamah:
                raise ConfigError(f"prayerSettings.prayers.{name}", "sunrise has no azan settings")
            if not isinstance(entry, Mapping):
                raise ConfigError(f"prayerSettings.prayers.{name}", "expected an object")
            prayers[prayer.value] = {
                key: bool(value)
                for key, value in entry.items()
                if key in ("azanEnabled", "announcementEnabled", "azanAtIqamah")
            }

        changes: Dict[str, Any] = {"prayerSettings": {"prayers": prayers}}
        features: Dict[str, Any] = {}
        if isinstance(settings.get("globalAzanEnabled"), bool):
            features["azanEnabled"] = settings["globalAzanEnabled"]
            LOGGER.info("Global azan feature %s", "enabled" if features["azanEnabled"] else "disabled")
        if isinstance(settings.get("globalAnnouncementEnabled"), bool):
            features["announcementEnabled"] = settings["globalAnnouncementEnabled"]
            LOGGER.info("Global announcement feature %s", "enabled" if features["announcementEnabled"] else "disabled")
        if features:
            changes["features"] = features
        self._apply(changes)
        return self.get_prayer_settings()

    def update_test_mode(
        self,
        enabled: Optional[bool] = None,
        start_time: Optional[str] = None,
        timezone: Optional[str] = None,
    ) -> Dict[str, Any]:
        changes: Dict[str, Any] = {}
        if isinstance(enabled, bool):
            changes["enabled"] = enabled
        if start_time:
            changes["startTime"] = start_time
        if timezone:
            changes["timezone"] = timezone
        self._apply({"testMode": changes})
        return self.snapshot()["testMode"]

    def update_prayer_source(self, prayer_data: Mapping[str, Any]) -> Dict[str, Any]:
        self._apply({"prayerData": dict(prayer_data)})
        return self.snapshot()["prayerData"]

    def _apply(self, changes: Mapping[str, Any]) -> None:
        with self._lock:
            candidate = _merge(self._data, changes)
            validate_config(candidate)
            self._data = candidate
            self._save_json(self.path, self._data)
            snapshot = copy.deepcopy(self._data)
        self._notify(snapshot)

    def _notify(self, snapshot: Dict[str, Any]) -> None:
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                LOGGER.exception("Config change listener %s failed", getattr(listener, "__name__", listener))
