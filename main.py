"""Entry point for the headless azan scheduler daemon."""
from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from clock import Clock, resolve_timezone
from config import CONFIG_PATH, ConfigStore
from engine import PrayerScheduleEngine
from errors import ConfigError
from notifications import VoiceMonkeyNotifier
from prayer_times import PrayerSource, build_prayer_source
from scheduler import APSchedulerTimerFacility

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
STATUS_INTERVAL_SECONDS = 60

LOGGER = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Play azan and prayer announcements on a schedule.")
    parser.add_argument("--config", type=Path, default=CONFIG_PATH, help="path to config.json")
    parser.add_argument("--log-level", default="INFO", help="logging level (default: INFO)")
    return parser.parse_args(argv)


def build_engine(store: ConfigStore, facility: APSchedulerTimerFacility) -> PrayerScheduleEngine:
    config = store.snapshot()

    def source_factory(snapshot: Dict[str, Any]) -> PrayerSource:
        return build_prayer_source(snapshot, store.get_iqamah_offsets)

    engine = PrayerScheduleEngine(
        clock=Clock.from_config(config),
        config=store,
        prayer_source=source_factory(config),
        notifier=VoiceMonkeyNotifier.from_config(config),
        timer_facility=facility,
        source_factory=source_factory,
        clock_factory=Clock.from_config,
    )
    engine.attach()
    return engine


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=getattr(logging, str(args.log_level).upper(), logging.INFO), format=LOG_FORMAT)

    store = ConfigStore(args.config)
    try:
        store.load()
    except ConfigError:
        LOGGER.exception("Invalid configuration in %s", args.config)
        return 1

    facility = APSchedulerTimerFacility(resolve_timezone(store.timezone))
    engine = build_engine(store, facility)
    stop = threading.Event()

    def _handle_signal(signum: int, _frame: Any) -> None:
        LOGGER.info("Received signal %s, shutting down", signum)
        stop.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    facility.start()
    engine.schedule_namaz_timers()
    try:
        while not stop.wait(STATUS_INTERVAL_SECONDS):
            status = engine.status()
            upcoming = status.get("next_prayer")
            if upcoming:
                LOGGER.info("Next prayer %s at %s (in %s)", upcoming["name"], upcoming["time"], upcoming["countdown"])
    finally:
        engine.clear_existing_schedules()
        facility.shutdown()
    return 0


if __name__ == "__main__":
    sys.exit(main())
