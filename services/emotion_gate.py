"""
Emotion Gate Controller.

Debounced, hysteretic state machine that turns the streaming composite score
(-100..100, pushed once per detection cycle) into gate states:

    ANALYZING  -- score <= NEGATIVE -->  DENIED  -- 3 s -->  LOCKED (5 s countdown)
    any        -- score >= POSITIVE -->  APPROVED (+ approval popup, 5 s cooldown)
    APPROVED/DENIED/LOCKED -- score in between --> ANALYZING
    LOCKED     -- countdown reaches 0 --> ANALYZING

All gate state lives in one GateContext and is only mutated inside ingest() or
the controller's own timer callbacks, under a single re-entrant lock. Speech,
effect and popup requests are fire-and-forget: a failing collaborator is logged
and never rolls back a transition.
"""

import logging
import math
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import config
from services.presentation_requests import EffectKind
from services.timer_scheduler import Scheduler, TimerHandle

logger = logging.getLogger(__name__)

SCORE_LIMIT: float = 100.0


class GateState(Enum):
    """Gate states shown by the mirror."""
    ANALYZING = "analyzing"
    APPROVED = "approved"
    DENIED = "denied"
    LOCKED = "locked"


_STATE_EFFECTS = {
    GateState.ANALYZING: (EffectKind.NONE, None),
    GateState.APPROVED: (EffectKind.BEAUTY, None),
    GateState.DENIED: (EffectKind.DISTORTION, 0.3),
    GateState.LOCKED: (EffectKind.DISTORTION, 0.6),
}


@dataclass(frozen=True)
class GateConfig:
    """Thresholds (on the -100..100 scale), timings in milliseconds, and messages."""
    negative_threshold: float = -10.0
    positive_threshold: float = 12.0
    positive_debounce_ms: float = 1000.0
    other_debounce_ms: float = 2000.0
    positive_release_ms: float = 500.0
    other_release_ms: float = 1000.0
    denial_to_lock_ms: float = 3000.0
    lock_duration_sec: int = 5
    lock_tick_ms: float = 1000.0
    popup_cooldown_ms: float = 5000.0
    popup_duration_ms: float = 10500.0
    denial_message: str = "감정이 불안정하신 것 같아요. 한김 식히고 오세요 :)"
    lock_message: str = "공공안전을 위해 출입이 제한됩니다. 적절한 감정 상태로 조정 후 다시 시도해주세요."
    approval_message: str = "완벽한 미소입니다! 아름다운 하루 되세요."

    @classmethod
    def from_config(cls) -> "GateConfig":
        """Build from config.py (environment overrides applied there)."""
        return cls(
            negative_threshold=config.EMOTION_NEGATIVE_THRESHOLD,
            positive_threshold=config.EMOTION_POSITIVE_THRESHOLD,
            positive_debounce_ms=config.POSITIVE_DEBOUNCE_MS,
            other_debounce_ms=config.OTHER_DEBOUNCE_MS,
            positive_release_ms=config.POSITIVE_RELEASE_MS,
            other_release_ms=config.OTHER_RELEASE_MS,
            denial_to_lock_ms=config.DENIAL_TO_LOCK_MS,
            lock_duration_sec=config.LOCK_DURATION_SEC,
            popup_cooldown_ms=config.POPUP_COOLDOWN_MS,
            popup_duration_ms=config.POPUP_DURATION_MS,
            denial_message=config.DENIAL_MESSAGE,
            lock_message=config.LOCK_MESSAGE,
            approval_message=config.APPROVAL_MESSAGE,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "thresholds": {"negative": self.negative_threshold, "positive": self.positive_threshold},
            "debounceMs": {"positive": self.positive_debounce_ms, "other": self.other_debounce_ms},
            "denialToLockMs": self.denial_to_lock_ms,
            "lockDurationSec": self.lock_duration_sec,
            "popupCooldownMs": self.popup_cooldown_ms,
            "popupDurationMs": self.popup_duration_ms,
            "messages": {
                "denial": self.denial_message,
                "lock": self.lock_message,
                "approval": self.approval_message,
            },
        }


@dataclass
class GateContext:
    """Mutable gate state; owned by one EmotionGateController."""
    state: GateState = GateState.ANALYZING
    lock_seconds_remaining: int = 0
    denial_message: str = ""
    last_score: float = 0.0
    last_transition_ms: Optional[float] = None
    last_change_ms: Optional[float] = None
    last_popup_ms: Optional[float] = None
    processing: bool = False
    popup_visible: bool = False
    speech_playing: bool = False
    escalation_timer: Optional[TimerHandle] = None
    lock_tick_timer: Optional[TimerHandle] = None
    popup_timer: Optional[TimerHandle] = None
    release_timer: Optional[TimerHandle] = None


@dataclass(frozen=True)
class GateSnapshot:
    """Read-only view for the presentation layer."""
    gate_state: GateState
    lock_seconds_remaining: int
    denial_message: str
    composite_score: float
    popup_visible: bool
    speech_playing: bool
    last_transition_ms: Optional[float]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "gateState": self.gate_state.value,
            "lockSecondsRemaining": self.lock_seconds_remaining,
            "denialMessage": self.denial_message,
            "compositeScore": round(self.composite_score, 2),
            "popupVisible": self.popup_visible,
            "speechPlaying": self.speech_playing,
            "lastTransitionMs": self.last_transition_ms,
        }


class EmotionGateController:
    """
    Consumes composite scores and drives the emotion gate.

    Usage:
        gate = EmotionGateController(scheduler, speech=announcer, presentation=requests)
        gate.ingest(result.display_score)
        snap = gate.snapshot()
        ...
        gate.close()

    Collaborators are duck-typed:
        speech: speak(message) -> str, cancel_speech(reason), is_playing() -> bool
        presentation: apply_effect(kind, intensity=None), show_approval_popup()
    """

    _TIMER_SLOTS = ("escalation_timer", "lock_tick_timer", "popup_timer", "release_timer")

    def __init__(
        self,
        scheduler: Scheduler,
        speech: Any = None,
        presentation: Any = None,
        gate_config: Optional[GateConfig] = None,
    ):
        self._scheduler = scheduler
        self._speech = speech
        self._presentation = presentation
        self.config = gate_config or GateConfig.from_config()
        self._ctx = GateContext()
        self._lock = threading.RLock()
        self._closed = False
        self._listeners: List[Callable[[GateSnapshot], None]] = []

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def state(self) -> GateState:
        with self._lock:
            return self._ctx.state

    @property
    def closed(self) -> bool:
        return self._closed

    def add_listener(self, listener: Callable[[GateSnapshot], None]) -> None:
        """Called with a fresh snapshot after each accepted ingest and each timer callback."""
        self._listeners.append(listener)

    def snapshot(self) -> GateSnapshot:
        with self._lock:
            return self._snapshot_locked()

    def ingest(self, score: float, now_ms: Optional[float] = None) -> bool:
        """
        Feed one composite score (-100..100).

        Args:
            score: Composite emotion score for the latest detection cycle
            now_ms: Timestamp in ms on the scheduler's clock (default: scheduler.now_ms())

        Returns:
            True if the score passed the debounce rules and was evaluated,
            False if it was dropped or rejected.
        """
        try:
            value = float(score)
        except (TypeError, ValueError):
            logger.warning("Ignoring non-numeric emotion score: %r", score)
            return False
        if math.isnan(value) or abs(value) > SCORE_LIMIT:
            logger.warning("Ignoring emotion score outside [-100, 100]: %r", score)
            return False

        cfg = self.config
        with self._lock:
            if self._closed:
                logger.debug("Gate closed; ignoring score %.1f", value)
                return False
            ctx = self._ctx
            now = float(now_ms) if now_ms is not None else self._scheduler.now_ms()
            if ctx.last_change_ms is not None and now < ctx.last_change_ms:
                # Clock went backwards: restart debounce and popup cooldown from now
                logger.info("Gate clock reset (%.0fms < %.0fms)", now, ctx.last_change_ms)
                ctx.last_change_ms = None
                ctx.last_popup_ms = None
            ctx.last_score = value
            ctx.speech_playing = self._speech_is_playing()
            positive = value >= cfg.positive_threshold

            if ctx.popup_visible:
                logger.debug("Approval popup visible; dropping score %.1f", value)
                return False
            if ctx.speech_playing and not positive:
                logger.debug("Speech playing; dropping non-positive score %.1f", value)
                return False
            if ctx.processing and not positive:
                logger.debug("Still processing; dropping non-positive score %.1f", value)
                return False
            window = cfg.positive_debounce_ms if positive else cfg.other_debounce_ms
            if ctx.last_change_ms is not None and now - ctx.last_change_ms < window:
                logger.debug("Debounced (%.0fms < %.0fms)", now - ctx.last_change_ms, window)
                return False

            ctx.processing = True
            ctx.last_change_ms = now
            self._evaluate(value, now)
            release = cfg.positive_release_ms if positive else cfg.other_release_ms
            self._arm("release_timer", release, self._on_release)
            snap = self._snapshot_locked()
        self._notify(snap)
        return True

    def close(self) -> None:
        """Cancel every pending timer; later ingests and stale timers become no-ops."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            for slot in self._TIMER_SLOTS:
                self._cancel(slot)
            self._ctx.processing = False
            self._ctx.popup_visible = False
        logger.info("Emotion gate closed")

    # ------------------------------------------------------------------
    # State evaluation
    # ------------------------------------------------------------------

    def _evaluate(self, value: float, now: float) -> None:
        cfg = self.config
        ctx = self._ctx
        if value <= cfg.negative_threshold:
            if ctx.state not in (GateState.DENIED, GateState.LOCKED):
                self._cancel("escalation_timer")
                self._transition(GateState.DENIED, now)
                ctx.denial_message = self._speak(cfg.denial_message, "denial")
                self._arm("escalation_timer", cfg.denial_to_lock_ms, self._on_escalation)
        elif value >= cfg.positive_threshold:
            if ctx.state != GateState.APPROVED:
                self._cancel("escalation_timer")
                self._cancel("lock_tick_timer")
                self._cancel_speech("emotion improved")
                self._transition(GateState.APPROVED, now)
                ctx.lock_seconds_remaining = 0
                ctx.denial_message = ""
            if ctx.last_popup_ms is None or now - ctx.last_popup_ms > cfg.popup_cooldown_ms:
                ctx.last_popup_ms = now
                ctx.popup_visible = True
                self._call("show_approval_popup", self._presentation, "show_approval_popup")
                self._arm("popup_timer", cfg.popup_duration_ms, self._on_popup_closed)
                self._speak(cfg.approval_message, "approval")
                logger.info("Approval popup shown (score %.1f)", value)
        elif ctx.state in (GateState.APPROVED, GateState.DENIED, GateState.LOCKED):
            self._cancel("escalation_timer")
            self._cancel("lock_tick_timer")
            self._cancel_speech("neutral expression")
            self._transition(GateState.ANALYZING, now)
            ctx.lock_seconds_remaining = 0
            ctx.denial_message = ""

    def _transition(self, new_state: GateState, now: float) -> None:
        old = self._ctx.state
        self._ctx.state = new_state
        self._ctx.last_transition_ms = now
        logger.info("Emotion gate %s -> %s", old.value, new_state.value)
        kind, intensity = _STATE_EFFECTS[new_state]
        self._call("apply_effect", self._presentation, "apply_effect", kind, intensity)

    # ------------------------------------------------------------------
    # Timer callbacks (run under the controller lock via _arm)
    # ------------------------------------------------------------------

    def _on_escalation(self) -> None:
        ctx = self._ctx
        duration = int(self.config.lock_duration_sec)
        if duration <= 0:
            # No lock configured: the denial simply expires
            ctx.lock_seconds_remaining = 0
            ctx.denial_message = ""
            self._transition(GateState.ANALYZING, self._scheduler.now_ms())
            return
        ctx.denial_message = self._speak(self.config.lock_message, "lock")
        self._transition(GateState.LOCKED, self._scheduler.now_ms())
        ctx.lock_seconds_remaining = duration
        self._arm("lock_tick_timer", self.config.lock_tick_ms, self._on_lock_tick)

    def _on_lock_tick(self) -> None:
        ctx = self._ctx
        if ctx.state != GateState.LOCKED or ctx.lock_seconds_remaining <= 0:
            return
        ctx.lock_seconds_remaining -= 1
        if ctx.lock_seconds_remaining <= 0:
            ctx.lock_seconds_remaining = 0
            ctx.denial_message = ""
            logger.info("Lock expired")
            self._transition(GateState.ANALYZING, self._scheduler.now_ms())
        else:
            self._arm("lock_tick_timer", self.config.lock_tick_ms, self._on_lock_tick)

    def _on_popup_closed(self) -> None:
        self._ctx.popup_visible = False

    def _on_release(self) -> None:
        self._ctx.processing = False

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _arm(self, slot: str, delay_ms: float, action: Callable[[], None]) -> None:
        """Replace the timer in `slot`; the callback is ignored once superseded or closed."""
        self._cancel(slot)
        holder: Dict[str, TimerHandle] = {}

        def fire() -> None:
            with self._lock:
                handle = holder.get("handle")
                if self._closed or handle is None or getattr(self._ctx, slot) is not handle:
                    return
                setattr(self._ctx, slot, None)
                action()
                snap = self._snapshot_locked()
            self._notify(snap)

        handle = self._scheduler.call_later(delay_ms, fire)
        holder["handle"] = handle
        setattr(self._ctx, slot, handle)

    def _cancel(self, slot: str) -> None:
        handle = getattr(self._ctx, slot)
        if handle is not None:
            handle.cancel()
            setattr(self._ctx, slot, None)

    def _speak(self, message: str, kind: str) -> str:
        if self._speech is None:
            return message
        try:
            shown = self._speech.speak(message, kind)
        except Exception as e:
            logger.warning("Speech request failed: %s", e)
            return message
        return shown if isinstance(shown, str) and shown else message

    def _cancel_speech(self, reason: str) -> None:
        self._call("cancel_speech", self._speech, "cancel_speech", reason)

    def _speech_is_playing(self) -> bool:
        if self._speech is None:
            return False
        try:
            return bool(self._speech.is_playing())
        except Exception as e:
            logger.warning("Speech status unavailable: %s", e)
            return False

    @staticmethod
    def _call(what: str, target: Any, method: str, *args: Any) -> None:
        if target is None:
            return
        try:
            getattr(target, method)(*args)
        except Exception as e:
            logger.warning("%s request failed: %s", what, e)

    def _snapshot_locked(self) -> GateSnapshot:
        ctx = self._ctx
        return GateSnapshot(
            gate_state=ctx.state,
            lock_seconds_remaining=ctx.lock_seconds_remaining,
            denial_message=ctx.denial_message,
            composite_score=ctx.last_score,
            popup_visible=ctx.popup_visible,
            speech_playing=ctx.speech_playing,
            last_transition_ms=ctx.last_transition_ms,
        )

    def _notify(self, snap: GateSnapshot) -> None:
        for listener in list(self._listeners):
            try:
                listener(snap)
            except Exception as e:
                logger.warning("Gate listener failed: %s", e)
