"""
Audio Signal Producer.

Turns conversational events from the voice channel (agent finished speaking,
learner started speaking, voice activity, transcribed utterances) into an
AudioSignals snapshot: response latency, silence, voice energy, speech rate
and keyword-cue counters. Speech recognition and voice activity detection are
external; this module only receives their results.
"""

import logging
import threading
from dataclasses import dataclass, replace
from typing import Callable, Optional

import config
from utils.signal_math import Clock, clamp, finite_or, non_negative, now_ms
from utils.transcript_cues import analyze_utterance

logger = logging.getLogger(__name__)

VALID_ROLES = ("user", "assistant")


@dataclass(frozen=True)
class AudioSignals:
    """Immutable snapshot of the audio channel."""
    response_latency_ms: Optional[float] = None  # agent speech end -> learner speech start
    silence_duration_ms: float = 0.0  # since the learner last spoke
    voice_energy_level: float = 0.0  # 0-1
    speech_rate: Optional[float] = None  # words per minute
    hesitation_count: int = 0
    questions_asked_count: int = 0
    affirmative_count: int = 0
    confusion_indicator_count: int = 0

    def to_dict(self) -> dict:
        return {
            "responseLatencyMs": self.response_latency_ms,
            "silenceDurationMs": self.silence_duration_ms,
            "voiceEnergyLevel": self.voice_energy_level,
            "speechRate": self.speech_rate,
            "hesitationCount": self.hesitation_count,
            "questionsAskedCount": self.questions_asked_count,
            "affirmativeCount": self.affirmative_count,
            "confusionIndicatorCount": self.confusion_indicator_count,
        }


class AudioSignalProducer:
    """
    Owns the audio snapshot and the timestamps needed to derive it.

    Usage:
        audio = AudioSignalProducer()
        audio.on_agent_speech_end()
        audio.on_user_speech_start()      # response latency measured here
        audio.analyze_transcript("não entendi", "user")
        audio.refresh()                   # once per second: silence duration
        snapshot = audio.signals
    """

    def __init__(
        self,
        clock: Optional[Clock] = None,
        language: Optional[str] = None,
        on_signals_update: Optional[Callable[[AudioSignals], None]] = None,
    ):
        self._clock = clock or now_ms
        self.language = (language or config.get_transcript_language()).lower()
        self.on_signals_update = on_signals_update
        self.lock = threading.Lock()
        self._signals = AudioSignals()
        self._agent_speech_end: Optional[float] = None
        self._user_speech_start: Optional[float] = None
        self._last_user_speech: float = self._clock()

    @property
    def signals(self) -> AudioSignals:
        with self.lock:
            return self._signals

    def _publish(self, **changes) -> AudioSignals:
        with self.lock:
            self._signals = replace(self._signals, **changes)
            snap = self._signals
        self._notify(snap)
        return snap

    def _notify(self, snap: AudioSignals) -> None:
        if self.on_signals_update:
            try:
                self.on_signals_update(snap)
            except Exception as e:
                logger.warning("Audio signals callback failed: %s", e)

    def on_agent_speech_end(self) -> None:
        """Mark the moment the agent stopped talking (start of the response-latency window)."""
        with self.lock:
            self._agent_speech_end = self._clock()

    def on_user_speech_start(self) -> None:
        """Learner began speaking. Measures response latency when the agent just spoke."""
        now = self._clock()
        latency = None
        with self.lock:
            self._last_user_speech = now
            self._user_speech_start = now
            if self._agent_speech_end is not None:
                latency = max(0.0, now - self._agent_speech_end)
                self._agent_speech_end = None
        if latency is not None:
            self._publish(response_latency_ms=latency, silence_duration_ms=0.0)
        else:
            self._publish(silence_duration_ms=0.0)

    def on_voice_detected(self, energy_level: float) -> None:
        """Voice activity with a 0-1 energy estimate."""
        now = self._clock()
        with self.lock:
            self._last_user_speech = now
        self._publish(voice_energy_level=clamp(finite_or(energy_level, 0.0)), silence_duration_ms=0.0)

    def analyze_transcript(self, text: str, role: str) -> None:
        """
        Process one transcribed utterance.

        role == "assistant" only marks the end of agent speech. User utterances
        are scanned for confusion, affirmative, question and hesitation cues
        and the counters accumulate.
        """
        if role not in VALID_ROLES:
            raise ValueError("role must be 'user' or 'assistant'")
        if role == "assistant":
            self.on_agent_speech_end()
            return
        cues = analyze_utterance(text or "", self.language)
        now = self._clock()
        with self.lock:
            self._last_user_speech = now
            start = self._user_speech_start
            prev = self._signals
            speech_rate = prev.speech_rate
            if start is not None and cues.word_count > 0 and now > start:
                speech_rate = cues.word_count / ((now - start) / 60000.0)
            self._signals = replace(
                prev,
                confusion_indicator_count=prev.confusion_indicator_count + cues.confusion,
                affirmative_count=prev.affirmative_count + cues.affirmative,
                questions_asked_count=prev.questions_asked_count + cues.questions,
                hesitation_count=prev.hesitation_count + cues.hesitations,
                speech_rate=speech_rate,
                silence_duration_ms=0.0,
            )
            snap = self._signals
        self._notify(snap)

    def refresh(self) -> AudioSignals:
        """Periodic update: silence = time since the learner last spoke."""
        now = self._clock()
        with self.lock:
            silence = non_negative(now - self._last_user_speech)
            self._signals = replace(self._signals, silence_duration_ms=silence)
            return self._signals

    def reset_signals(self) -> None:
        """Back to a fresh snapshot; the silence reference restarts now."""
        with self.lock:
            self._signals = AudioSignals()
            self._agent_speech_end = None
            self._user_speech_start = None
            self._last_user_speech = self._clock()
