"""
Visual effect and popup requests published to the mirror page.

The gate requests an effect for each state (distortion while denied/locked,
beauty filter when approved) and an approval popup. The page renders them; this
module only keeps the latest request so repeated identical requests are
harmless.
"""

import threading
from enum import Enum
from typing import Dict, Optional


class EffectKind(Enum):
    """Overlay effects understood by the mirror page."""
    NONE = "none"
    BEAUTY = "beauty"
    DISTORTION = "distortion"


class PresentationRequests:
    """Latest effect request and approval-popup counter."""

    def __init__(self):
        self._lock = threading.Lock()
        self._effect: EffectKind = EffectKind.NONE
        self._intensity: Optional[float] = None
        self._effect_seq: int = 0
        self._popup_seq: int = 0

    def apply_effect(self, kind: EffectKind, intensity: Optional[float] = None) -> None:
        with self._lock:
            if kind == self._effect and intensity == self._intensity:
                return
            self._effect = kind
            self._intensity = intensity
            self._effect_seq += 1

    def show_approval_popup(self) -> None:
        with self._lock:
            self._popup_seq += 1

    @property
    def popup_count(self) -> int:
        with self._lock:
            return self._popup_seq

    def current_effect(self) -> Dict:
        with self._lock:
            return {
                "kind": self._effect.value,
                "intensity": self._intensity,
                "sequence": self._effect_seq,
            }

    def reset(self) -> None:
        with self._lock:
            self._effect = EffectKind.NONE
            self._intensity = None
            self._effect_seq = 0
            self._popup_seq = 0
