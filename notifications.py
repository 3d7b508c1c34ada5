"""Audio file selection and delivery through the Voice Monkey announcement API."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import requests

from errors import NotificationDeliveryFailure
from models import PrayerName

LOGGER = logging.getLogger(__name__)

VOICE_MONKEY_URL = "https://api-v2.voicemonkey.io/announcement"
DEFAULT_BASE_AUDIO_URL = "https://la-ilaha-illa-allah.netlify.app/mp3/"
DEFAULT_DEVICE = "voice-monkey-speaker-1"
TOKEN_ENV_VAR = "VOICEMONKEY_TOKEN"

AZAN_FILE = "azan.mp3"
FAJR_AZAN_FILE = "fajr-azan.mp3"
ANNOUNCEMENT_FILES = {
    PrayerName.FAJR: "t-minus-15-fajr.mp3",
    PrayerName.ZUHR: "t-minus-15-dhuhr.mp3",
    PrayerName.ASR: "t-minus-15-asr.mp3",
    PrayerName.MAGHRIB: "t-minus-15-maghrib.mp3",
    PrayerName.ISHA: "t-minus-15-isha.mp3",
}


def azan_file_for(prayer: PrayerName) -> str:
    return FAJR_AZAN_FILE if prayer is PrayerName.FAJR else AZAN_FILE


def announcement_file_for(prayer: PrayerName) -> str:
    try:
        return ANNOUNCEMENT_FILES[prayer]
    except KeyError:
        raise ValueError(f"No announcement audio for {prayer.value}") from None


@dataclass
class NotificationResult:
    ok: bool
    audio_file: str
    error: Optional[str] = None
    response: Optional[Dict[str, Any]] = None


class Notifier(Protocol):
    def trigger_notification(self, audio_file_name: str) -> NotificationResult:
        ...


class VoiceMonkeyNotifier:
    """Plays an audio file on a Voice Monkey speaker."""

    def __init__(
        self,
        token: Optional[str] = None,
        device: str = DEFAULT_DEVICE,
        base_audio_url: str = DEFAULT_BASE_AUDIO_URL,
        timeout: float = 10,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.token = token if token is not None else os.environ.get(TOKEN_ENV_VAR)
        self.device = device
        self.base_audio_url = base_audio_url if base_audio_url.endswith("/") else base_audio_url + "/"
        self.timeout = timeout
        self._session = session or requests.Session()

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "VoiceMonkeyNotifier":
        vm_cfg = config.get("voiceMonkey", {}) if isinstance(config, dict) else {}
        return cls(
            device=str(vm_cfg.get("device") or DEFAULT_DEVICE),
            base_audio_url=str(vm_cfg.get("baseAudioUrl") or DEFAULT_BASE_AUDIO_URL),
        )

    def trigger_notification(self, audio_file_name: str) -> NotificationResult:
        try:
            data = self._post(audio_file_name)
        except (NotificationDeliveryFailure, requests.RequestException, ValueError) as exc:
            LOGGER.error("Error triggering %s: %s", audio_file_name, exc)
            return NotificationResult(ok=False, audio_file=audio_file_name, error=str(exc))
        LOGGER.info("Triggered %s successfully: %s", audio_file_name, data)
        return NotificationResult(ok=True, audio_file=audio_file_name, response=data)

    def _post(self, audio_file_name: str) -> Dict[str, Any]:
        if not self.token:
            raise NotificationDeliveryFailure(f"Voice Monkey API token is missing ({TOKEN_ENV_VAR})")

        payload = {
            "token": self.token,
            "device": self.device,
            "audio": self.base_audio_url + audio_file_name,
        }
        LOGGER.debug("Posting announcement for device=%s audio=%s", self.device, payload["audio"])
        response = self._session.post(VOICE_MONKEY_URL, json=payload, timeout=self.timeout)
        LOGGER.debug("Voice Monkey response status: %s", response.status_code)
        if not response.ok:
            raise NotificationDeliveryFailure(f"HTTP error! Status: {response.status_code}", response.status_code)
        try:
            return response.json()
        except ValueError:
            return {"status": response.status_code}
