import json

import pytest

from config import ConfigStore
from errors import ConfigError
from models import FeatureFlags, PrayerName


def test_missing_file_loads_defaults(tmp_path):
    store = ConfigStore(tmp_path / "config.json")
    config = store.load()

    assert config["timezone"] == "Europe/London"
    assert store.get_feature_flags() == FeatureFlags(True, True)
    assert store.get_prayer_settings().for_prayer(PrayerName.FAJR).azan_at_iqamah is False
    assert store.get_iqamah_offsets()[PrayerName.FAJR] == 20


def test_file_values_merge_over_defaults(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "features": {"announcementEnabled": False},
                "prayerSettings": {"prayers": {"isha": {"azanAtIqamah": True}}},
                "prayerData": {"iqamahOffsets": {"fajr": 30, "zuhr": 10, "asr": 10, "maghrib": 0, "isha": 10}},
            }
        ),
        encoding="utf-8",
    )
    store = ConfigStore(path)
    store.load()

    assert store.get_feature_flags() == FeatureFlags(azan_enabled=True, announcement_enabled=False)
    isha = store.get_prayer_settings().for_prayer(PrayerName.ISHA)
    assert isha.azan_at_iqamah and isha.azan_enabled
    assert store.get_iqamah_offsets()[PrayerName.FAJR] == 30
    assert store.snapshot()["prayerData"]["city"] == "London"


@pytest.mark.parametrize(
    "payload, field",
    [
        ({"timezone": "Nowhere/Land"}, "timezone"),
        ({"prayerData": {"source": "calendar"}}, "prayerData.source"),
        ({"prayerData": {"source": "mymasjid"}}, "prayerData.guidId"),
        ({"prayerData": {"iqamahOffsets": {"fajr": 200}}}, "iqamahOffsets.fajr"),
    ],
)
def test_invalid_config_rejected(tmp_path, payload, field):
    path = tmp_path / "config.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    with pytest.raises(ConfigError) as excinfo:
        ConfigStore(path).load()
    assert excinfo.value.field_name == field


def test_update_features_persists_and_notifies(tmp_path):
    store = ConfigStore(tmp_path / "config.json")
    seen = []
    store.add_change_listener(seen.append)

    flags = store.update_features(azan_enabled=False)

    assert flags == FeatureFlags(azan_enabled=False, announcement_enabled=True)
    saved = json.loads((tmp_path / "config.json").read_text(encoding="utf-8"))
    assert saved["features"]["azanEnabled"] is False
    assert seen[0]["features"]["azanEnabled"] is False


def test_failing_listener_is_logged_not_raised(tmp_path, caplog):
    store = ConfigStore(tmp_path / "config.json")

    def broken(_snapshot):
        raise RuntimeError("boom")

    calls = []
    store.add_change_listener(broken)
    store.add_change_listener(calls.append)
    store.update_features(announcement_enabled=False)

    assert len(calls) == 1
    assert "listener" in caplog.text


def test_update_prayer_settings_merges_and_sets_globals(tmp_path):
    store = ConfigStore(tmp_path / "config.json")
    store.update_prayer_settings(
        {
            "prayers": {"Dhuhr": {"announcementEnabled": False}},
            "globalAzanEnabled": True,
            "globalAnnouncementEnabled": False,
        }
    )

    zuhr = store.get_prayer_settings().for_prayer(PrayerName.ZUHR)
    assert zuhr.azan_enabled is True
    assert zuhr.announcement_enabled is False
    assert store.get_feature_flags().announcement_enabled is False


def test_sunrise_settings_rejected(tmp_path):
    store = ConfigStore(tmp_path / "config.json")
    with pytest.raises(ConfigError):
        store.update_prayer_settings({"prayers": {"sunrise": {"azanEnabled": True}}})


def test_invalid_update_leaves_config_untouched(tmp_path):
    store = ConfigStore(tmp_path / "config.json")
    seen = []
    store.add_change_listener(seen.append)

    with pytest.raises(ConfigError):
        store.update_test_mode(enabled=True, start_time="not-a-time")

    assert store.snapshot()["testMode"]["enabled"] is False
    assert seen == []
