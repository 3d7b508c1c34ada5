import logging

import pytest

from errors import ConfigError
from iqamah import (
    calculate_all_iqamah_times,
    calculate_iqamah_time,
    clean_api_time,
    format_minutes_to_time,
    is_time_between,
    parse_time_to_minutes,
    round_minutes,
    validate_offsets,
)
from models import PrayerName


def test_minute_29_rounds_to_half_past():
    assert parse_time_to_minutes("07:29") == 449
    assert calculate_iqamah_time("07:29", 0, "fajr") == "07:30"


def test_isha_wraps_past_midnight_then_rounds():
    assert calculate_iqamah_time("23:50", 20, "isha") == "00:15"


def test_rounding_to_next_hour_wraps_at_midnight():
    assert calculate_iqamah_time("23:40", 15, PrayerName.ASR) == "00:00"


@pytest.mark.parametrize(
    "offset, expected",
    [
        (0, "05:00"),
        (7, "05:00"),
        (8, "05:15"),
        (22, "05:15"),
        (23, "05:30"),
        (37, "05:30"),
        (38, "05:45"),
        (52, "05:45"),
        (53, "06:00"),
        (59, "06:00"),
    ],
)
def test_quarter_hour_boundaries(offset, expected):
    assert calculate_iqamah_time("05:00", offset, "zuhr") == expected


def test_half_minute_boundaries_are_inclusive_on_the_upper_bucket():
    assert round_minutes(7.5) == 15
    assert round_minutes(7.4) == 0
    assert round_minutes(52.5) == 60


def test_maghrib_is_never_rounded():
    assert calculate_iqamah_time("18:12", 5, "maghrib") == "18:17"
    assert calculate_iqamah_time("18:12", 5, PrayerName.MAGHRIB) == "18:17"
    assert calculate_iqamah_time("23:58", 5, "Maghrib") == "00:03"


def test_non_maghrib_results_land_on_quarter_hours():
    for prayer in ("fajr", "zuhr", "asr", "isha"):
        for total in range(0, 1440, 7):
            result = calculate_iqamah_time(format_minutes_to_time(total), 13, prayer)
            assert int(result[3:]) in {0, 15, 30, 45}


def test_same_inputs_give_same_output():
    first = calculate_iqamah_time("13:07", 17, "asr")
    assert all(calculate_iqamah_time("13:07", 17, "asr") == first for _ in range(5))


@pytest.mark.parametrize("bad", ["garbage", "", None, "25:00", "12:75", 1230])
def test_malformed_azan_time_counts_as_midnight(bad, caplog):
    with caplog.at_level(logging.WARNING):
        assert calculate_iqamah_time(bad, 10, "fajr") == "00:15"
    assert "Invalid time string" in caplog.text


def test_malformed_offset_counts_as_zero():
    assert calculate_iqamah_time("05:30", "soon", "maghrib") == "05:30"
    assert calculate_iqamah_time("05:00", float("inf"), "fajr") == "05:00"
    assert calculate_iqamah_time("05:00", float("nan"), "fajr") == "05:00"


def test_calculate_all_skips_sunrise():
    starts = {
        PrayerName.FAJR: "05:10",
        PrayerName.SUNRISE: "06:40",
        PrayerName.ZUHR: "12:30",
        PrayerName.ASR: "15:45",
        PrayerName.MAGHRIB: "18:12",
        PrayerName.ISHA: "19:30",
    }
    offsets = {PrayerName.FAJR: 20, PrayerName.ZUHR: 10, PrayerName.ASR: 10, PrayerName.MAGHRIB: 5, PrayerName.ISHA: 15}
    result = calculate_all_iqamah_times(starts, offsets)
    assert PrayerName.SUNRISE not in result
    assert result == {
        PrayerName.FAJR: "05:30",
        PrayerName.ZUHR: "12:45",
        PrayerName.ASR: "16:00",
        PrayerName.MAGHRIB: "18:17",
        PrayerName.ISHA: "19:45",
    }


def test_clean_api_time_strips_zone_suffix():
    assert clean_api_time("05:12 (BST)") == "05:12"
    assert clean_api_time(None) == "00:00"


def test_is_time_between_handles_midnight_crossover():
    assert is_time_between("12:00", "11:00", "13:00")
    assert not is_time_between("14:00", "11:00", "13:00")
    assert is_time_between("23:30", "22:00", "01:00")
    assert is_time_between("00:30", "22:00", "01:00")
    assert not is_time_between("12:00", "22:00", "01:00")


def test_validate_offsets_range():
    good = {"fajr": 20, "zuhr": 0, "asr": 10, "maghrib": 5, "isha": 120}
    assert validate_offsets(good)[PrayerName.ISHA] == 120

    with pytest.raises(ConfigError) as excinfo:
        validate_offsets({**good, "isha": 121})
    assert excinfo.value.field_name == "iqamahOffsets.isha"

    with pytest.raises(ConfigError):
        validate_offsets({**good, "fajr": "20"})
