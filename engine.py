"""Cancel-then-rebuild orchestration of the daily azan and announcement timers."""
from __future__ import annotations

import logging
import threading
from functools import partial
from typing import Any, Callable, Dict, List, Optional

from clock import Clock, format_time_remaining
from config import ConfigStore
from debounce import DebounceGuard
from errors import AzanSchedulerError, ConfigUnavailable
from models import PrayerTimeSet
from notifications import Notifier, announcement_file_for, azan_file_for
from prayer_times import PrayerSource, describe
from schedule_builder import EventKind, FiringEvent, build_daily_schedule, resolve_enablement
from scheduler import TimerFacility, TimerRegistry

LOGGER = logging.getLogger(__name__)


def log_section(title: str) -> None:
    LOGGER.info("=" * 40)
    LOGGER.info("%s", title.upper())
    LOGGER.info("=" * 40)


class PrayerScheduleEngine:
    """Owns every live timer and rebuilds the whole day's set on demand.

    ``schedule_namaz_timers`` is the only way timers get created. It always
    cancels the previous set first, runs under one re-entrant lock (timer
    callbacks take the same lock) and never raises.
    """

    def __init__(
        self,
        clock: Clock,
        config: ConfigStore,
        prayer_source: PrayerSource,
        notifier: Notifier,
        timer_facility: TimerFacility,
        debounce: Optional[DebounceGuard] = None,
        source_factory: Optional[Callable[[Dict[str, Any]], PrayerSource]] = None,
        clock_factory: Optional[Callable[[Dict[str, Any]], Clock]] = None,
    ) -> None:
        self.clock = clock
        self.config = config
        self.prayer_source = prayer_source
        self.notifier = notifier
        self._lock = threading.RLock()
        self.registry = TimerRegistry(timer_facility, lock=self._lock)
        self.debounce = debounce or DebounceGuard(now_ms=lambda: self.clock.epoch_ms())
        self.prayer_times: Optional[PrayerTimeSet] = None
        self._events: Dict[str, FiringEvent] = {}
        self._source_factory = source_factory
        self._clock_factory = clock_factory
        self._last_snapshot: Dict[str, Any] = config.snapshot()

    # -- public entry points -------------------------------------------------
    def attach(self) -> None:
        """Rebuild whenever the configuration changes."""
        self.config.add_change_listener(self._on_config_changed)

    def schedule_namaz_timers(self) -> None:
        with self._lock:
            try:
                self._rebuild()
            except ConfigUnavailable as exc:
                LOGGER.error("Scheduling skipped: %s", exc)
            except Exception:
                LOGGER.exception("Failed to schedule prayer timers")

    def clear_existing_schedules(self) -> None:
        with self._lock:
            for key in self.registry.cancel_all():
                LOGGER.info("Cleared schedule for %s", key)
            self._events.clear()

    def live_events(self) -> List[FiringEvent]:
        with self._lock:
            return [event for key, event in self._events.items() if key in self.registry]

    def status(self) -> Dict[str, Any]:
        with self._lock:
            now = self.clock.now()
            status: Dict[str, Any] = {
                "current_time": now.strftime("%H:%M:%S"),
                "timezone": self.clock.timezone_name,
                "live_timers": sorted(self.registry.live_keys()),
                "next_prayer": None,
            }
            if self.prayer_times is not None:
                upcoming = self.prayer_times.next_prayer(now)
                if upcoming:
                    prayer, time_of_day = upcoming
                    at = self.clock.localize(self.prayer_times.day, time_of_day)
                    remaining = (at - now).total_seconds() * 1000
                    status["next_prayer"] = {
                        "name": prayer.value,
                        "time": time_of_day,
                        "countdown_ms": remaining,
                        "countdown": format_time_remaining(remaining),
                    }
            return status

    # -- rebuild -------------------------------------------------------------
    def _rebuild(self) -> None:
        self.clear_existing_schedules()
        self.prayer_times = None

        try:
            flags = self.config.get_feature_flags()
            settings = self.config.get_prayer_settings()
        except AzanSchedulerError as exc:
            raise ConfigUnavailable(f"prayer settings unavailable ({exc})") from exc

        now = self.clock.now()
        prayer_times = self.prayer_source.get_prayer_time_set(now.date())
        if prayer_times is None:
            raise ConfigUnavailable(f"no prayer times for {now.date().isoformat()} from {self.prayer_source.name}")
        self.prayer_times = prayer_times

        log_section("Today's Prayer Timings")
        for line in describe(prayer_times):
            LOGGER.info("%s", line)
        if not flags.azan_enabled:
            LOGGER.info("Azan timer is disabled")
        elif not flags.announcement_enabled:
            LOGGER.info("Announcements are disabled")

        events = build_daily_schedule(
            prayer_times,
            settings,
            flags,
            now=now,
            clock=self.clock,
            rollover_time=self.config.rollover_time,
        )
        for event in events:
            self._register(event)
        LOGGER.info("Scheduled %d timer(s): %s", len(events), ", ".join(e.key for e in events))

    def _register(self, event: FiringEvent) -> None:
        if event.kind is EventKind.NEXT_DAY_ROLLOVER:
            LOGGER.info("Next update: %s", event.fire_at.strftime("%H:%M:%S %d-%m-%Y"))
        elif event.kind is EventKind.ANNOUNCEMENT:
            LOGGER.info("Scheduling %s announcement at %s", event.prayer.value.upper(), event.time)
        else:
            LOGGER.info("Scheduling %s prayer at %s", event.prayer.value.upper(), event.time)
        # a late rollover still has to run, or no later day gets scheduled
        self.registry.register(
            event.key,
            self.clock.to_wall(event.fire_at),
            partial(self._fire, event),
            run_late=event.kind is EventKind.NEXT_DAY_ROLLOVER,
        )
        self._events[event.key] = event

    # -- firing --------------------------------------------------------------
    def _fire(self, event: FiringEvent) -> None:
        try:
            if event.kind is EventKind.NEXT_DAY_ROLLOVER:
                self._fire_rollover(event)
            else:
                self._fire_notification(event)
        except Exception:
            LOGGER.exception("Timer %s failed", event.key)

    def _claim(self, event: FiringEvent) -> bool:
        """Forget the fired event and apply the debounce; call with the lock held."""
        if self._events.get(event.key) is event:
            del self._events[event.key]
        return self.debounce.can_execute(event.action_key)

    def _fire_rollover(self, event: FiringEvent) -> None:
        with self._lock:
            if not self._claim(event):
                return
            LOGGER.info("Fetching next day's namaz timings")
            self.schedule_namaz_timers()

    def _fire_notification(self, event: FiringEvent) -> None:
        audio_file = self._select_audio(event)
        if audio_file is None:
            return
        # the POST can take seconds; rebuilds and status() must not wait for it
        result = self.notifier.trigger_notification(audio_file)
        if result.ok:
            LOGGER.info("%s delivered (%s)", event.key, audio_file)
        else:
            LOGGER.error("%s delivery failed: %s", event.key, result.error)

    def _select_audio(self, event: FiringEvent) -> Optional[str]:
        with self._lock:
            if not self._claim(event):
                return None
            prayer = event.prayer
            if prayer is None:
                LOGGER.warning("Event %s has no prayer; nothing to play", event.key)
                return None

            if event.kind is EventKind.ANNOUNCEMENT:
                preference = self.config.get_prayer_settings().for_prayer(prayer)
                enabled = resolve_enablement(self.config.get_feature_flags(), preference)
                if not enabled.announcement:
                    LOGGER.info("Announcement feature disabled; skipping %s", event.key)
                    return None
                LOGGER.info("%s announcement time", prayer.value.upper())
                return announcement_file_for(prayer)
            LOGGER.info("%s prayer time", prayer.value.upper())
            return azan_file_for(prayer)

    # -- configuration changes ----------------------------------------------
    def _on_config_changed(self, snapshot: Dict[str, Any]) -> None:
        with self._lock:
            previous, self._last_snapshot = self._last_snapshot, snapshot
            if self._clock_factory and (
                snapshot.get("testMode") != previous.get("testMode") or snapshot.get("timezone") != previous.get("timezone")
            ):
                self.clock = self._clock_factory(snapshot)
                LOGGER.info("Clock reconfigured (%s)", self.clock.timezone_name)
            if self._source_factory and snapshot.get("prayerData") != previous.get("prayerData"):
                self.prayer_source = self._source_factory(snapshot)
                LOGGER.info("Prayer source switched to %s", self.prayer_source.name)
            self.schedule_namaz_timers()
