"""
Intervention Detector.

A small state machine deciding when a pedagogical intervention fires. Every
tick it checks, in fixed priority order (first match wins):

  1. low_attention      attention below threshold for attention_duration_ms
  2. prolonged_silence  audio silence > 60 s
  3. high_confusion     confusion > 0.7
  4. fatigue            fatigue > 0.8
  5. tab_switch         lesson tab hidden

After a fire the detector cools down for a fixed 10 s during which nothing
fires. The low-attention timer keeps tracking (and resetting on recovery)
during cooldown. Time is injected by the caller, so the machine can be
tested without real timers.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from utils.audio_signals import AudioSignals
from utils.behavioral_signals import BehavioralSignals
from utils.state_vector import StateVector

logger = logging.getLogger(__name__)

PROLONGED_SILENCE_MS = 60000.0
HIGH_CONFUSION_THRESHOLD = 0.7
FATIGUE_THRESHOLD = 0.8
DEFAULT_COOLDOWN_MS = 10000.0


class InterventionPhase(Enum):
    IDLE = "idle"
    LOW_ATTENTION_PENDING = "low_attention_pending"
    TRIGGERED = "triggered"
    COOLDOWN = "cooldown"


class InterventionType(Enum):
    LOW_ATTENTION = "low_attention"
    PROLONGED_SILENCE = "prolonged_silence"
    HIGH_CONFUSION = "high_confusion"
    FATIGUE = "fatigue"
    TAB_SWITCH = "tab_switch"


class SuggestedAction(Enum):
    PAUSE_VIDEO = "pause_video"
    ASK_QUESTION = "ask_question"
    SIMPLIFY_CONTENT = "simplify_content"
    TAKE_BREAK = "take_break"
    NONE = "none"


SUGGESTED_ACTIONS = {
    InterventionType.LOW_ATTENTION: SuggestedAction.PAUSE_VIDEO,
    InterventionType.PROLONGED_SILENCE: SuggestedAction.ASK_QUESTION,
    InterventionType.HIGH_CONFUSION: SuggestedAction.SIMPLIFY_CONTENT,
    InterventionType.FATIGUE: SuggestedAction.TAKE_BREAK,
    InterventionType.TAB_SWITCH: SuggestedAction.PAUSE_VIDEO,
}

# Stock messages shown to the tutor/agent; {seconds} is the low-attention dwell time.
MESSAGES = {
    "pt": {
        InterventionType.LOW_ATTENTION: "Atenção baixa detectada por mais de {seconds} segundos",
        InterventionType.PROLONGED_SILENCE: "Silêncio prolongado detectado",
        InterventionType.HIGH_CONFUSION: "Indicadores de confusão detectados",
        InterventionType.FATIGUE: "Sinais de fadiga detectados",
        InterventionType.TAB_SWITCH: "Aluno saiu da aba",
    },
    "en": {
        InterventionType.LOW_ATTENTION: "Low attention detected for more than {seconds} seconds",
        InterventionType.PROLONGED_SILENCE: "Prolonged silence detected",
        InterventionType.HIGH_CONFUSION: "Confusion indicators detected",
        InterventionType.FATIGUE: "Signs of fatigue detected",
        InterventionType.TAB_SWITCH: "Learner left the lesson tab",
    },
}


@dataclass(frozen=True)
class InterventionReason:
    """Why an intervention fired, with the State Vector that triggered it."""
    type: InterventionType
    message: str
    state_vector: StateVector
    suggested_action: SuggestedAction
    timestamp: float = 0.0

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "message": self.message,
            "stateVector": self.state_vector.to_dict(),
            "suggestedAction": self.suggested_action.value,
            "timestamp": self.timestamp,
        }


class InterventionDetector:
    """
    Hysteresis + cooldown state machine over successive State Vectors.

    Usage:
        detector = InterventionDetector(on_intervention=handle)
        reason = detector.evaluate(vector, audio.signals, behavioral.signals, now)
    """

    def __init__(
        self,
        attention_threshold: float = 0.4,
        attention_duration_ms: float = 4000.0,
        cooldown_ms: float = DEFAULT_COOLDOWN_MS,
        on_intervention: Optional[Callable[[InterventionReason], None]] = None,
        language: str = "pt",
    ):
        self.attention_threshold = float(attention_threshold)
        self.attention_duration_ms = float(attention_duration_ms)
        self.cooldown_ms = float(cooldown_ms)
        self.on_intervention = on_intervention
        self.language = language if language in MESSAGES else "pt"
        self.phase = InterventionPhase.IDLE
        self._low_attention_start: Optional[float] = None
        self._fired_at: Optional[float] = None

    @property
    def is_intervention_triggered(self) -> bool:
        """True from the firing tick until the cooldown has elapsed."""
        return self.phase in (InterventionPhase.TRIGGERED, InterventionPhase.COOLDOWN)

    @property
    def low_attention_since(self) -> Optional[float]:
        return self._low_attention_start

    def reset(self) -> None:
        self.phase = InterventionPhase.IDLE
        self._low_attention_start = None
        self._fired_at = None

    def _message(self, kind: InterventionType) -> str:
        template = MESSAGES[self.language][kind]
        return template.format(seconds=int(round(self.attention_duration_ms / 1000.0)))

    def _reason(self, kind: InterventionType, vector: StateVector, now: float) -> InterventionReason:
        return InterventionReason(
            type=kind,
            message=self._message(kind),
            state_vector=vector,
            suggested_action=SUGGESTED_ACTIONS.get(kind, SuggestedAction.NONE),
            timestamp=now,
        )

    def _check_conditions(
        self,
        vector: StateVector,
        audio: AudioSignals,
        behavioral: BehavioralSignals,
        now: float,
    ) -> Optional[InterventionReason]:
        """First matching condition, in priority order. Always updates the low-attention timer."""
        if vector.attention is not None and vector.attention < self.attention_threshold:
            if self._low_attention_start is None:
                self._low_attention_start = now
            if now - self._low_attention_start >= self.attention_duration_ms:
                return self._reason(InterventionType.LOW_ATTENTION, vector, now)
        else:
            self._low_attention_start = None

        if audio.silence_duration_ms > PROLONGED_SILENCE_MS:
            return self._reason(InterventionType.PROLONGED_SILENCE, vector, now)
        if vector.confusion is not None and vector.confusion > HIGH_CONFUSION_THRESHOLD:
            return self._reason(InterventionType.HIGH_CONFUSION, vector, now)
        if vector.fatigue is not None and vector.fatigue > FATIGUE_THRESHOLD:
            return self._reason(InterventionType.FATIGUE, vector, now)
        if not behavioral.is_tab_visible:
            return self._reason(InterventionType.TAB_SWITCH, vector, now)
        return None

    def evaluate(
        self,
        vector: StateVector,
        audio: AudioSignals,
        behavioral: BehavioralSignals,
        now: float,
    ) -> Optional[InterventionReason]:
        """
        Advance the state machine by one tick.

        Returns:
            The InterventionReason when one fires on this tick, else None.
        """
        if self._fired_at is not None and now - self._fired_at >= self.cooldown_ms:
            self._fired_at = None

        reason = self._check_conditions(vector, audio, behavioral, now)

        if self._fired_at is not None:
            self.phase = InterventionPhase.COOLDOWN
            return None
        if reason is None:
            self.phase = (
                InterventionPhase.LOW_ATTENTION_PENDING
                if self._low_attention_start is not None
                else InterventionPhase.IDLE
            )
            return None

        self._fired_at = now
        self.phase = InterventionPhase.TRIGGERED
        if self.on_intervention:
            try:
                self.on_intervention(reason)
            except Exception as e:
                logger.warning("Intervention callback failed: %s", e)
        return reason
