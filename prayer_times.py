"""Prayer time sources: AlAdhan (computed iqamah) and MyMasjid (published iqamah)."""
from __future__ import annotations

import logging
from datetime import date
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol

import requests

from errors import ConfigError, ConfigUnavailable
from iqamah import calculate_all_iqamah_times, clean_api_time
from models import DAILY_ORDER, PrayerName, PrayerTimeSet

LOGGER = logging.getLogger(__name__)

ALADHAN_TIMINGS_URL = "https://api.aladhan.com/v1/timings"
ALADHAN_TIMINGS_BY_CITY_URL = "https://api.aladhan.com/v1/timingsByCity"
MYMASJID_TIMINGS_URL = "https://time.my-masjid.com/api/TimingsInfoScreen/GetMasjidTimings"

ALADHAN_KEYS = {
    PrayerName.FAJR: "Fajr",
    PrayerName.SUNRISE: "Sunrise",
    PrayerName.ZUHR: "Dhuhr",
    PrayerName.ASR: "Asr",
    PrayerName.MAGHRIB: "Maghrib",
    PrayerName.ISHA: "Isha",
}

MYMASJID_START_KEYS = {
    PrayerName.FAJR: "fajr",
    PrayerName.SUNRISE: "shouruq",
    PrayerName.ZUHR: "zuhr",
    PrayerName.ASR: "asr",
    PrayerName.MAGHRIB: "maghrib",
    PrayerName.ISHA: "isha",
}

CACHE_DAYS = 3


class PrayerSource(Protocol):
    name: str

    def get_prayer_time_set(self, day: date) -> Optional[PrayerTimeSet]:
        ...


class _CachedSource:
    """Per-day cache plus the soft-failure policy shared by the sources.

    ``get_prayer_time_set`` returns ``None`` instead of raising when the
    upstream service is unreachable or returns something unusable.
    """

    name = "base"

    def __init__(self, timeout: int = 10, session: Optional[requests.Session] = None) -> None:
        self.timeout = timeout
        self._session = session or requests.Session()
        self._cache: Dict[date, Dict[PrayerName, str]] = {}

    def get_prayer_time_set(self, day: date) -> Optional[PrayerTimeSet]:
        try:
            start_times = self._cache.get(day)
            if start_times is None:
                start_times = self._fetch_start_times(day)
                self._remember(day, start_times)
            return PrayerTimeSet(day=day, start_times=start_times, iqamah_times=self._iqamah_times(day, start_times))
        except (requests.RequestException, ConfigUnavailable, ConfigError, ValueError, KeyError, TypeError) as exc:
            LOGGER.error("Could not load %s prayer times for %s: %s", self.name, day, exc)
            return None

    def invalidate(self) -> None:
        self._cache.clear()

    def _remember(self, day: date, start_times: Dict[PrayerName, str]) -> None:
        self._cache[day] = start_times
        for stale in sorted(self._cache)[:-CACHE_DAYS]:
            del self._cache[stale]

    def _fetch_start_times(self, day: date) -> Dict[PrayerName, str]:
        raise NotImplementedError

    def _iqamah_times(self, day: date, start_times: Mapping[PrayerName, str]) -> Dict[PrayerName, str]:
        raise NotImplementedError


class AladhanPrayerSource(_CachedSource):
    """Fetch start times from AlAdhan and derive iqamah from configured offsets."""

    name = "aladhan"

    def __init__(
        self,
        offsets: Callable[[], Mapping[PrayerName, int]],
        city: str = "",
        country: str = "",
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        method: int = 15,
        school: int = 0,
        timeout: int = 10,
        session: Optional[requests.Session] = None,
    ) -> None:
        super().__init__(timeout=timeout, session=session)
        self._offsets = offsets
        self.city = city
        self.country = country
        self.latitude = latitude
        self.longitude = longitude
        self.method = method
        self.school = school

    def _fetch_start_times(self, day: date) -> Dict[PrayerName, str]:
        use_city_lookup = self.latitude is None or self.longitude is None
        params: Dict[str, Any] = {
            "method": self.method,
            "school": self.school,
            "date": day.strftime("%d-%m-%Y"),
        }
        if use_city_lookup:
            params.update(city=self.city, country=self.country)
            url = ALADHAN_TIMINGS_BY_CITY_URL
        else:
            params.update(latitude=self.latitude, longitude=self.longitude)
            url = ALADHAN_TIMINGS_URL
        LOGGER.debug("Requesting prayer times from %s with params=%s", url, params)

        response = self._session.get(url, params=params, timeout=self.timeout)
        LOGGER.debug("Prayer times response status: %s", response.status_code)
        response.raise_for_status()

        payload = response.json()
        if payload.get("code") != 200:
            raise ConfigUnavailable(f"Invalid response from AlAdhan API: {payload.get('status')}")
        timings: Dict[str, str] = (payload.get("data") or {}).get("timings") or {}
        start_times = {prayer: clean_api_time(timings.get(key)) for prayer, key in ALADHAN_KEYS.items()}
        missing = [prayer.value for prayer in PrayerName.scheduled() if not timings.get(ALADHAN_KEYS[prayer])]
        if missing:
            raise ConfigUnavailable(f"AlAdhan response is missing timings for {', '.join(missing)}")
        return start_times

    def _iqamah_times(self, day: date, start_times: Mapping[PrayerName, str]) -> Dict[PrayerName, str]:
        return calculate_all_iqamah_times(start_times, self._offsets())


class MyMasjidPrayerSource(_CachedSource):
    """Read a masjid's published timetable (start and iqamah times) from MyMasjid.

    The API returns the whole year at once, so one request serves every day
    until ``invalidate`` is called.
    """

    name = "mymasjid"

    def __init__(self, guid_id: str, timeout: int = 10, session: Optional[requests.Session] = None) -> None:
        super().__init__(timeout=timeout, session=session)
        self.guid_id = guid_id
        self.masjid_name: Optional[str] = None
        self._timetable: Optional[List[Dict[str, Any]]] = None
        self._iqamah_cache: Dict[date, Dict[PrayerName, str]] = {}

    def invalidate(self) -> None:
        super().invalidate()
        self._timetable = None
        self._iqamah_cache.clear()

    def _remember(self, day: date, start_times: Dict[PrayerName, str]) -> None:
        super()._remember(day, start_times)
        for stale in set(self._iqamah_cache) - set(self._cache):
            del self._iqamah_cache[stale]

    def _load_timetable(self) -> List[Dict[str, Any]]:
        if self._timetable is not None:
            return self._timetable
        LOGGER.info("Fetching prayer timetable from MyMasjid for GuidId %s", self.guid_id)
        response = self._session.get(MYMASJID_TIMINGS_URL, params={"GuidId": self.guid_id}, timeout=self.timeout)
        response.raise_for_status()
        model = (response.json() or {}).get("model") or {}
        salah_timings = model.get("salahTimings")
        if not isinstance(salah_timings, list) or not salah_timings:
            raise ConfigUnavailable("Invalid salahTimings data structure from MyMasjid")
        self.masjid_name = (model.get("masjidDetails") or {}).get("name") or "Unknown Masjid"
        self._timetable = salah_timings
        return salah_timings

    def _row_for(self, day: date) -> Dict[str, Any]:
        for row in self._load_timetable():
            if row.get("day") == day.day and row.get("month") == day.month:
                return row
        raise ConfigUnavailable(f"No MyMasjid timings found for {day.isoformat()}")

    def _fetch_start_times(self, day: date) -> Dict[PrayerName, str]:
        row = self._row_for(day)
        start_times = {prayer: clean_api_time(row.get(key)) for prayer, key in MYMASJID_START_KEYS.items()}
        iqamah: Dict[PrayerName, str] = {}
        for prayer in PrayerName.scheduled():
            key = MYMASJID_START_KEYS[prayer]
            # the API mixes iqamah_Fajr and iqamah_fajr; maghrib often has none
            value = row.get(f"iqamah_{key.capitalize()}") or row.get(f"iqamah_{key}")
            if not value and prayer is PrayerName.MAGHRIB:
                value = row.get(key)
            if not value:
                raise ConfigUnavailable(f"MyMasjid row for {day.isoformat()} has no iqamah for {prayer.value}")
            iqamah[prayer] = clean_api_time(value)
        self._iqamah_cache[day] = iqamah
        return start_times

    def _iqamah_times(self, day: date, start_times: Mapping[PrayerName, str]) -> Dict[PrayerName, str]:
        return dict(self._iqamah_cache[day])


def build_prayer_source(config: Mapping[str, Any], offsets: Callable[[], Mapping[PrayerName, int]]) -> PrayerSource:
    """Create the source named by ``config["prayerData"]["source"]``."""
    prayer_data = config.get("prayerData") or {}
    source = prayer_data.get("source", "aladhan")
    if source == "mymasjid":
        return MyMasjidPrayerSource(guid_id=str(prayer_data.get("guidId")))
    if source == "aladhan":
        return AladhanPrayerSource(
            offsets=offsets,
            city=str(prayer_data.get("city") or ""),
            country=str(prayer_data.get("country") or ""),
            latitude=_safe_float(prayer_data.get("latitude")),
            longitude=_safe_float(prayer_data.get("longitude")),
            method=int(prayer_data.get("method", 15)),
            school=int(prayer_data.get("school", 0)),
        )
    raise ConfigError("prayerData.source", f"unsupported prayer source {source!r}")


def describe(prayer_times: PrayerTimeSet) -> List[str]:
    """One ``Prayer  start  iqamah`` line per prayer, for logging."""
    lines = []
    for prayer in DAILY_ORDER:
        start = prayer_times.start_time(prayer) or "--:--"
        iqamah = prayer_times.iqamah_time(prayer) or "--:--"
        lines.append(f"{prayer.value.capitalize():<8} {start}  {iqamah}")
    return lines


def _safe_float(value: Optional[object]) -> Optional[float]:
    try:
        if value in (None, ""):
            return None
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
