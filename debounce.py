"""Suppress repeated fires of the same action within a fixed window."""
from __future__ import annotations

import logging
import time
from typing import Callable, Dict, Optional

LOGGER = logging.getLogger(__name__)

DEBOUNCE_INTERVAL_MS = 60_000


def _wall_clock_ms() -> int:
    return int(time.time() * 1000)


class DebounceGuard:
    """Per-action-key debounce with a 60 second window."""

    def __init__(self, now_ms: Optional[Callable[[], int]] = None) -> None:
        self._now_ms = now_ms or _wall_clock_ms
        self._last_fired: Dict[str, int] = {}

    def can_execute(self, action_key: str) -> bool:
        now = self._now_ms()
        last = self._last_fired.get(action_key)
        if last is None or now - last >= DEBOUNCE_INTERVAL_MS:
            self._last_fired[action_key] = now
            return True
        LOGGER.info("Skipping %s - too soon after last execution (%d ms ago)", action_key, now - last)
        return False

    def last_fired(self, action_key: str) -> Optional[int]:
        return self._last_fired.get(action_key)

    def reset(self) -> None:
        self._last_fired.clear()
