"""
Speech announcer.

Speech synthesis runs in the browser. The gate asks for announcements here and
the page polls GET /mirror/announcements, speaks them, and reports playback via
POST /mirror/speech. Requests are idempotent: repeating a message that is
still queued does not queue it twice, and cancelling when nothing plays is
harmless.

The playing flag is set as soon as a message is requested (as the browser
starts speaking on receipt) and expires after max_utterance_ms in case the
page never reports the end of playback.
"""

import itertools
import logging
import threading
import time
from typing import Callable, Dict, List, Optional

import config

logger = logging.getLogger(__name__)


def _monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class SpeechAnnouncer:
    """Queue of pending announcements plus the authoritative speech-playing flag."""

    def __init__(
        self,
        lang: Optional[str] = None,
        rate: Optional[float] = None,
        pitch: Optional[float] = None,
        volume: Optional[float] = None,
        max_utterance_ms: Optional[float] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.lang = lang or config.SPEECH_LANG
        self.rate = float(rate if rate is not None else config.SPEECH_RATE)
        self.pitch = float(pitch if pitch is not None else config.SPEECH_PITCH)
        self.volume = float(volume if volume is not None else config.SPEECH_VOLUME)
        self.max_utterance_ms = float(max_utterance_ms if max_utterance_ms is not None else config.SPEECH_MAX_UTTERANCE_MS)
        self.approval_rate = float(config.SPEECH_APPROVAL_RATE)
        self.approval_pitch = float(config.SPEECH_APPROVAL_PITCH)
        self._clock = clock or _monotonic_ms
        self._lock = threading.Lock()
        self._pending: List[Dict] = []
        self._ids = itertools.count(1)
        self._playing_since: Optional[float] = None
        self._cancel_reason: Optional[str] = None

    def speak(self, message: str, kind: str = "message") -> str:
        """Queue a message for playback; returns the message so callers can display it."""
        with self._lock:
            if not (self._pending and self._pending[-1]["text"] == message):
                self._pending.append({
                    "id": next(self._ids),
                    "kind": kind,
                    "text": message,
                    "lang": self.lang,
                    "rate": self.approval_rate if kind == "approval" else self.rate,
                    "pitch": self.approval_pitch if kind == "approval" else self.pitch,
                    "volume": self.volume,
                })
            self._playing_since = self._clock()
        logger.debug("Speech requested (%s): %s", kind, message)
        return message

    def cancel_speech(self, reason: str) -> None:
        """Drop queued messages and ask the page to stop the current utterance."""
        with self._lock:
            had_work = bool(self._pending) or self._playing_since is not None
            self._pending.clear()
            self._playing_since = None
            if had_work:
                self._cancel_reason = reason
        if had_work:
            logger.debug("Speech cancelled: %s", reason)

    def mark_playing(self, playing: bool) -> None:
        """Playback status reported by the page."""
        with self._lock:
            if playing:
                self._playing_since = self._clock()
            else:
                self._playing_since = None

    def is_playing(self) -> bool:
        with self._lock:
            if self._playing_since is None:
                return False
            if self._clock() - self._playing_since > self.max_utterance_ms:
                self._playing_since = None
                return False
            return True

    def get_pending(self) -> List[Dict]:
        with self._lock:
            return list(self._pending)

    def get_and_clear_pending(self) -> Dict:
        """Hand queued announcements (and any cancel request) to the page exactly once."""
        with self._lock:
            out = {"announcements": list(self._pending), "cancelReason": self._cancel_reason}
            self._pending.clear()
            self._cancel_reason = None
            return out

    def clear(self) -> None:
        with self._lock:
            self._pending.clear()
            self._playing_since = None
            self._cancel_reason = None
