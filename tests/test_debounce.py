import logging

from debounce import DEBOUNCE_INTERVAL_MS, DebounceGuard


class FakeTime:
    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.value = start

    def __call__(self) -> int:
        return self.value


def test_second_call_inside_window_is_suppressed(caplog):
    caplog.set_level(logging.INFO)
    now = FakeTime()
    guard = DebounceGuard(now_ms=now)

    assert guard.can_execute("azan_fajr")
    now.value += 30_000
    assert not guard.can_execute("azan_fajr")
    assert "Skipping azan_fajr" in caplog.text


def test_call_allowed_once_window_has_elapsed():
    now = FakeTime()
    guard = DebounceGuard(now_ms=now)
    assert guard.can_execute("next_day_update")

    now.value += DEBOUNCE_INTERVAL_MS - 1
    assert not guard.can_execute("next_day_update")

    now.value += 1
    assert guard.can_execute("next_day_update")
    assert guard.last_fired("next_day_update") == now.value


def test_suppressed_call_does_not_extend_window():
    now = FakeTime()
    guard = DebounceGuard(now_ms=now)
    guard.can_execute("announcement_asr")
    now.value += 59_000
    guard.can_execute("announcement_asr")
    now.value += 1_000
    assert guard.can_execute("announcement_asr")


def test_keys_are_independent():
    guard = DebounceGuard(now_ms=FakeTime())
    assert guard.can_execute("azan_fajr")
    assert guard.can_execute("announcement_fajr")
    assert not guard.can_execute("azan_fajr")


def test_reset_forgets_records():
    guard = DebounceGuard(now_ms=FakeTime())
    guard.can_execute("azan_isha")
    guard.reset()
    assert guard.last_fired("azan_isha") is None
    assert guard.can_execute("azan_isha")
