"""
=============================================================================
CONFIGURATION FOR THE EMOTION MIRROR (config.py)
=============================================================================

WHAT THIS FILE DOES (in plain language):
----------------------------------------
This file holds ALL configurable settings for the mirror in one place. Other
files read from it. Every value can be overridden from the environment (your
.env file or system variables), so you can tune thresholds and timings for a
venue without changing code.

MAIN GROUPS OF SETTINGS:
------------------------
  1. Emotion gate  : Score thresholds, debounce windows, lock and popup timings.
  2. Messages      : What the mirror says when it denies, locks or approves.
  3. Speech        : Voice settings handed to the browser's speech synthesis.
  4. Face detection: MediaPipe confidence, init retries, frame size, cadence.
  5. Server        : Host, port, debug mode and log level.

HOW VALUES ARE CHOSEN:
---------------------
  - Environment variables (e.g. EMOTION_POSITIVE_THRESHOLD) override everything.
  - If an env var is not set, we use the default shown here.
  - Invalid numbers fall back to the default and print a warning at startup.
=============================================================================
"""

import os
import sys
from typing import Any, Dict, List

_invalid_env: List[str] = []


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        _invalid_env.append(name)
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        _invalid_env.append(name)
        return default


def _strip_quotes(s: str) -> str:
    if not s:
        return s
    s = s.strip()
    if (s.startswith('"') and s.endswith('"')) or (s.startswith("'") and s.endswith("'")):
        return s[1:-1].strip()
    return s


# ============================================================================
# EMOTION GATE (when the mirror approves, denies or locks)
# ============================================================================
# Scores are on the -100..100 scale: negative = angry/sad, positive = smiling.
#   score <= NEGATIVE  → DENIED, and LOCKED if it is not resolved in time
#   score >= POSITIVE  → APPROVED (+ approval popup)
#   anything between   → back to ANALYZING
# ----------------------------------------------------------------------------
EMOTION_NEGATIVE_THRESHOLD: float = _env_float("EMOTION_NEGATIVE_THRESHOLD", -10.0)
EMOTION_POSITIVE_THRESHOLD: float = _env_float("EMOTION_POSITIVE_THRESHOLD", 12.0)

# Minimum time between accepted scores. Positive scores react faster.
POSITIVE_DEBOUNCE_MS: float = _env_float("POSITIVE_DEBOUNCE_MS", 1000.0)
OTHER_DEBOUNCE_MS: float = _env_float("OTHER_DEBOUNCE_MS", 2000.0)

# After an accepted score, non-positive scores are ignored until this delay passes.
POSITIVE_RELEASE_MS: float = _env_float("POSITIVE_RELEASE_MS", 500.0)
OTHER_RELEASE_MS: float = _env_float("OTHER_RELEASE_MS", 1000.0)

# DENIED escalates to LOCKED after this long; LOCKED counts down in whole seconds.
DENIAL_TO_LOCK_MS: float = _env_float("DENIAL_TO_LOCK_MS", 3000.0)
LOCK_DURATION_SEC: int = _env_int("LOCK_DURATION_SEC", 5)

# Approval popup: at most one per cooldown; stays up for POPUP_DURATION_MS.
POPUP_COOLDOWN_MS: float = _env_float("POPUP_COOLDOWN_MS", 5000.0)
POPUP_DURATION_MS: float = _env_float("POPUP_DURATION_MS", 10500.0)

# ============================================================================
# MESSAGES (shown on screen and spoken)
# ============================================================================
DENIAL_MESSAGE: str = _strip_quotes(os.getenv("DENIAL_MESSAGE") or "") or (
    "감정이 불안정하신 것 같아요. 한김 식히고 오세요 :)"
)
LOCK_MESSAGE: str = _strip_quotes(os.getenv("LOCK_MESSAGE") or "") or (
    "공공안전을 위해 출입이 제한됩니다. 적절한 감정 상태로 조정 후 다시 시도해주세요."
)
APPROVAL_MESSAGE: str = _strip_quotes(os.getenv("APPROVAL_MESSAGE") or "") or (
    "완벽한 미소입니다! 아름다운 하루 되세요."
)

# ============================================================================
# SPEECH (spoken by the browser; these values travel with each announcement)
# ============================================================================
SPEECH_LANG: str = os.getenv("SPEECH_LANG", "ko-KR")
SPEECH_RATE: float = _env_float("SPEECH_RATE", 0.9)
SPEECH_PITCH: float = _env_float("SPEECH_PITCH", 0.8)
SPEECH_VOLUME: float = _env_float("SPEECH_VOLUME", 1.0)
# The approval message is spoken in a brighter voice.
SPEECH_APPROVAL_RATE: float = _env_float("SPEECH_APPROVAL_RATE", 0.9)
SPEECH_APPROVAL_PITCH: float = _env_float("SPEECH_APPROVAL_PITCH", 1.0)
# If the page never reports the end of an utterance, treat it as finished after this long.
SPEECH_MAX_UTTERANCE_MS: float = _env_float("SPEECH_MAX_UTTERANCE_MS", 8000.0)

# ============================================================================
# FACE DETECTION (MediaPipe Face Mesh on frames posted by the page)
# ============================================================================
# How often the page captures and posts a frame (ms).
DETECTION_INTERVAL_MS: int = _env_int("DETECTION_INTERVAL_MS", 200)

# Minimum confidence (0.01-0.99). Lower = more permissive in poor lighting.
DETECTOR_MIN_DETECTION_CONFIDENCE: float = _env_float("DETECTOR_MIN_DETECTION_CONFIDENCE", 0.5)
DETECTOR_MIN_TRACKING_CONFIDENCE: float = _env_float("DETECTOR_MIN_TRACKING_CONFIDENCE", 0.5)

# Model loading is retried with a fixed delay, then the detector is marked failed.
DETECTOR_INIT_MAX_ATTEMPTS: int = _env_int("DETECTOR_INIT_MAX_ATTEMPTS", 3)
DETECTOR_RETRY_DELAY_MS: float = _env_float("DETECTOR_RETRY_DELAY_MS", 5000.0)

# Frames wider than this are downscaled before detection.
MAX_FRAME_WIDTH: int = _env_int("MAX_FRAME_WIDTH", 640)

# ============================================================================
# Application Configuration
# ============================================================================
FLASK_PORT: int = _env_int("FLASK_PORT", 5000)
FLASK_DEBUG: bool = os.getenv("FLASK_DEBUG", "false").lower() == "true"
FLASK_HOST: str = os.getenv("FLASK_HOST", "0.0.0.0")
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

# ============================================================================
# Helper Functions
# ============================================================================

def warn_missing_config() -> None:
    """
    Print warnings for unusable configuration (bad numbers, inverted thresholds).
    Call from app startup (e.g. app.py) to help operators. Does not raise.
    """
    problems = []
    if _invalid_env:
        problems.append("not a number, default used: " + ", ".join(sorted(set(_invalid_env))))
    if EMOTION_NEGATIVE_THRESHOLD >= EMOTION_POSITIVE_THRESHOLD:
        problems.append("EMOTION_NEGATIVE_THRESHOLD should be below EMOTION_POSITIVE_THRESHOLD")
    if LOCK_DURATION_SEC < 1:
        problems.append("LOCK_DURATION_SEC < 1; a lock will end immediately")
    if problems:
        print("Config warning: " + "; ".join(problems), file=sys.stderr)


def get_gate_config() -> Dict[str, Any]:
    """
    Gate thresholds, timings and messages for the mirror page.

    Returns:
        dict: Configuration dictionary used by GET /config/gate
    """
    return {
        "thresholds": {
            "negative": EMOTION_NEGATIVE_THRESHOLD,
            "positive": EMOTION_POSITIVE_THRESHOLD,
        },
        "debounceMs": {
            "positive": POSITIVE_DEBOUNCE_MS,
            "other": OTHER_DEBOUNCE_MS,
        },
        "releaseMs": {
            "positive": POSITIVE_RELEASE_MS,
            "other": OTHER_RELEASE_MS,
        },
        "denialToLockMs": DENIAL_TO_LOCK_MS,
        "lockDurationSec": LOCK_DURATION_SEC,
        "popupCooldownMs": POPUP_COOLDOWN_MS,
        "popupDurationMs": POPUP_DURATION_MS,
        "messages": {
            "denial": DENIAL_MESSAGE,
            "lock": LOCK_MESSAGE,
            "approval": APPROVAL_MESSAGE,
        },
    }


def get_speech_config() -> Dict[str, Any]:
    return {
        "lang": SPEECH_LANG,
        "rate": SPEECH_RATE,
        "pitch": SPEECH_PITCH,
        "volume": SPEECH_VOLUME,
        "approvalRate": SPEECH_APPROVAL_RATE,
        "approvalPitch": SPEECH_APPROVAL_PITCH,
        "maxUtteranceMs": SPEECH_MAX_UTTERANCE_MS,
    }


def get_face_detection_config() -> Dict[str, Any]:
    """
    Face detection settings.

    Returns:
        dict: Configuration dictionary with detector tuning and retry policy
    """
    return {
        "method": "mediapipe",
        "detectionIntervalMs": DETECTION_INTERVAL_MS,
        "minDetectionConfidence": DETECTOR_MIN_DETECTION_CONFIDENCE,
        "minTrackingConfidence": DETECTOR_MIN_TRACKING_CONFIDENCE,
        "initMaxAttempts": DETECTOR_INIT_MAX_ATTEMPTS,
        "retryDelayMs": DETECTOR_RETRY_DELAY_MS,
        "maxFrameWidth": MAX_FRAME_WIDTH,
    }
