"""
Fusion Engine.

Combines the three producer snapshots into a State Vector using fixed,
auditable linear blends:

  1. Decide which sources are available this tick.
  2. Score each dimension per available source (normalized raw signals).
  3. Re-weight across sources:
       attention    audio 0.35 / behavioral 0.35 / vision 0.30, renormalized
       engagement   audio 0.5 / behavioral 0.5
       frustration  audio 0.5 / behavioral 0.5
       confusion    audio only
       fatigue      behavioral 0.6 / vision 0.4
  4. Confidence = (available / 3) x data quality; confusion confidence is
     0.8 with audio, else 0.3; overall = attention confidence.

A dimension with no contributing source is None. Non-finite intermediate
values fall back to neutral defaults.
"""

from typing import Dict, FrozenSet, Iterable, Optional

from utils.audio_signals import AudioSignals
from utils.behavioral_signals import BehavioralSignals
from utils.signal_math import clamp, finite_or, normalize
from utils.state_vector import DimensionConfidence, SignalSource, StateVector
from utils.vision_signals import VisionSignals

AUDIO = SignalSource.AUDIO
BEHAVIORAL = SignalSource.BEHAVIORAL
VISION = SignalSource.VISION

# Base source weights for attention (renormalized over available sources).
ATTENTION_WEIGHTS: Dict[SignalSource, float] = {AUDIO: 0.35, BEHAVIORAL: 0.35, VISION: 0.30}
ENGAGEMENT_WEIGHTS: Dict[SignalSource, float] = {AUDIO: 0.5, BEHAVIORAL: 0.5}
FRUSTRATION_WEIGHTS: Dict[SignalSource, float] = {AUDIO: 0.5, BEHAVIORAL: 0.5}
FATIGUE_WEIGHTS: Dict[SignalSource, float] = {BEHAVIORAL: 0.6, VISION: 0.4}

# Normalization ranges
SILENCE_MAX_MS = 60000.0
LATENCY_MAX_MS = 10000.0
IDLE_ATTENTION_MAX_MS = 30000.0
FOCUS_CHANGES_MAX = 10.0
AUDIO_INTERACTIONS_MAX = 10.0
SCROLL_RATE_MAX = 30.0
CONFUSION_KEYWORDS_MAX = 5.0
HESITATIONS_MAX = 10.0
FRUSTRATION_LATENCY_MIN_MS = 5000.0
FRUSTRATION_LATENCY_MAX_MS = 15000.0
QUICK_DISMISSAL_MS = 3000.0
TIME_ON_PAGE_MAX_SEC = 3600.0
IDLE_FATIGUE_MAX_MS = 60000.0
BLINK_RATE_MIN = 15.0
BLINK_RATE_MAX = 30.0

# Data-quality thresholds
BEHAVIORAL_MIN_TIME_ON_PAGE_SEC = 60.0
CONFUSION_CONFIDENCE_WITH_AUDIO = 0.8
CONFUSION_CONFIDENCE_WITHOUT_AUDIO = 0.3

NEUTRAL_SCORE = 0.5


# ----------------------------------------------------------------------------
# Source availability and weights
# ----------------------------------------------------------------------------
def available_sources(
    audio: AudioSignals,
    behavioral: BehavioralSignals,
    vision: VisionSignals,
) -> FrozenSet[SignalSource]:
    """Sources that can contribute this tick."""
    sources = set()
    if audio.response_latency_ms is not None or finite_or(audio.silence_duration_ms, 0.0) > 0:
        sources.add(AUDIO)
    if finite_or(behavioral.time_on_page, 0.0) > 0:
        sources.add(BEHAVIORAL)
    if vision.enabled and vision.face_detected:
        sources.add(VISION)
    return frozenset(sources)


def renormalized_weights(
    base: Dict[SignalSource, float],
    available: Iterable[SignalSource],
) -> Dict[SignalSource, float]:
    """
    Base weights restricted to available sources and scaled to sum to 1.
    A zero total falls back to a denominator of 1.
    """
    avail = set(available)
    present = {s: w for s, w in base.items() if s in avail}
    total = sum(present.values()) or 1.0
    return {s: w / total for s, w in present.items()}


def attention_weights(available: Iterable[SignalSource]) -> Dict[SignalSource, float]:
    """Applied attention weights; they sum to 1 whenever any source is available."""
    return renormalized_weights(ATTENTION_WEIGHTS, available)


def _blend(scores: Dict[SignalSource, float], base: Dict[SignalSource, float]) -> Optional[float]:
    weights = renormalized_weights(base, scores.keys())
    if not weights:
        return None
    value = sum(scores[s] * w for s, w in weights.items())
    return clamp(finite_or(value, NEUTRAL_SCORE))


# ----------------------------------------------------------------------------
# Per-source sub-scores
# ----------------------------------------------------------------------------
def _latency_score(audio: AudioSignals) -> float:
    if audio.response_latency_ms is None:
        return NEUTRAL_SCORE
    return 1.0 - normalize(audio.response_latency_ms, 0.0, LATENCY_MAX_MS)


def attention_from_audio(audio: AudioSignals) -> float:
    silence_score = 1.0 - normalize(audio.silence_duration_ms, 0.0, SILENCE_MAX_MS)
    return 0.6 * silence_score + 0.4 * _latency_score(audio)


def attention_from_behavioral(behavioral: BehavioralSignals) -> float:
    visibility = 1.0 if behavioral.is_tab_visible else 0.0
    interaction = 1.0 - normalize(behavioral.time_since_last_interaction, 0.0, IDLE_ATTENTION_MAX_MS)
    focus = 1.0 - normalize(behavioral.focus_change_count, 0.0, FOCUS_CHANGES_MAX)
    return 0.4 * visibility + 0.35 * interaction + 0.25 * focus


def attention_from_vision(vision: VisionSignals) -> float:
    gaze = clamp(finite_or(vision.gaze_on_video_ratio, 0.0))
    looking = 1.0 if vision.is_looking_at_screen else 0.0
    return 0.6 * gaze + 0.4 * looking


def engagement_from_audio(audio: AudioSignals) -> float:
    interactions = normalize(audio.questions_asked_count + audio.affirmative_count, 0.0, AUDIO_INTERACTIONS_MAX)
    energy = normalize(audio.voice_energy_level, 0.0, 1.0)
    return 0.6 * interactions + 0.4 * energy


def engagement_from_behavioral(behavioral: BehavioralSignals) -> float:
    play = clamp(finite_or(behavioral.video_play_ratio, 0.0))
    scroll = normalize(behavioral.scroll_activity_rate, 0.0, SCROLL_RATE_MAX)
    return 0.7 * play + 0.3 * scroll


def confusion_from_audio(audio: AudioSignals) -> float:
    keywords = normalize(audio.confusion_indicator_count, 0.0, CONFUSION_KEYWORDS_MAX)
    hesitations = normalize(audio.hesitation_count, 0.0, HESITATIONS_MAX)
    return 0.7 * keywords + 0.3 * hesitations


def frustration_from_audio(audio: AudioSignals) -> float:
    latency = audio.response_latency_ms
    if latency is None or finite_or(latency, 0.0) <= FRUSTRATION_LATENCY_MIN_MS:
        return 0.0
    return normalize(latency, FRUSTRATION_LATENCY_MIN_MS, FRUSTRATION_LATENCY_MAX_MS)


def frustration_from_behavioral(behavioral: BehavioralSignals) -> float:
    accuracy = behavioral.quiz_accuracy
    accuracy_term = 1.0 - clamp(finite_or(accuracy, 1.0)) if accuracy is not None else 0.0
    dismissal = behavioral.moment_dismissal_time_ms
    dismissal_term = 0.5 if dismissal is not None and finite_or(dismissal, QUICK_DISMISSAL_MS) < QUICK_DISMISSAL_MS else 0.0
    return 0.7 * accuracy_term + 0.3 * dismissal_term


def fatigue_from_behavioral(behavioral: BehavioralSignals) -> float:
    time_score = normalize(behavioral.time_on_page, 0.0, TIME_ON_PAGE_MAX_SEC)
    idle_score = normalize(behavioral.time_since_last_interaction, 0.0, IDLE_FATIGUE_MAX_MS)
    return 0.4 * time_score + 0.6 * idle_score


def fatigue_from_vision(vision: VisionSignals) -> float:
    return normalize(vision.blink_rate, BLINK_RATE_MIN, BLINK_RATE_MAX)


# ----------------------------------------------------------------------------
# Confidence
# ----------------------------------------------------------------------------
def data_quality(
    available: FrozenSet[SignalSource],
    audio: AudioSignals,
    behavioral: BehavioralSignals,
    vision: VisionSignals,
) -> float:
    """Minimum over available sources of 1.0 (enough data) or 0.5; 0 with no sources."""
    indicators = []
    if AUDIO in available:
        indicators.append(1.0 if audio.response_latency_ms is not None else 0.5)
    if BEHAVIORAL in available:
        indicators.append(1.0 if behavioral.time_on_page > BEHAVIORAL_MIN_TIME_ON_PAGE_SEC else 0.5)
    if VISION in available:
        indicators.append(1.0 if vision.face_detected else 0.5)
    return min(indicators) if indicators else 0.0


class FusionEngine:
    """
    Stateless fusion of producer snapshots into an immutable StateVector.

    Usage:
        engine = FusionEngine()
        vector = engine.compute(audio.signals, behavioral.signals, vision.signals, now)
    """

    def compute(
        self,
        audio: AudioSignals,
        behavioral: BehavioralSignals,
        vision: VisionSignals,
        timestamp: float,
    ) -> StateVector:
        available = available_sources(audio, behavioral, vision)
        if not available:
            return StateVector.empty(timestamp)

        attention_scores: Dict[SignalSource, float] = {}
        engagement_scores: Dict[SignalSource, float] = {}
        frustration_scores: Dict[SignalSource, float] = {}
        fatigue_scores: Dict[SignalSource, float] = {}
        confusion: Optional[float] = None

        if AUDIO in available:
            attention_scores[AUDIO] = attention_from_audio(audio)
            engagement_scores[AUDIO] = engagement_from_audio(audio)
            frustration_scores[AUDIO] = frustration_from_audio(audio)
            confusion = clamp(finite_or(confusion_from_audio(audio), 0.0))
        if BEHAVIORAL in available:
            attention_scores[BEHAVIORAL] = attention_from_behavioral(behavioral)
            engagement_scores[BEHAVIORAL] = engagement_from_behavioral(behavioral)
            frustration_scores[BEHAVIORAL] = frustration_from_behavioral(behavioral)
            fatigue_scores[BEHAVIORAL] = fatigue_from_behavioral(behavioral)
        if VISION in available:
            attention_scores[VISION] = attention_from_vision(vision)
            fatigue_scores[VISION] = fatigue_from_vision(vision)

        attention = _blend(attention_scores, ATTENTION_WEIGHTS)
        engagement = _blend(engagement_scores, ENGAGEMENT_WEIGHTS)
        frustration = _blend(frustration_scores, FRUSTRATION_WEIGHTS)
        fatigue = _blend(fatigue_scores, FATIGUE_WEIGHTS)

        general = clamp(finite_or((len(available) / 3.0) * data_quality(available, audio, behavioral, vision), 0.0))

        def conf(value: Optional[float]) -> float:
            return general if value is not None else 0.0

        confidence = DimensionConfidence(
            attention=conf(attention),
            engagement=conf(engagement),
            confusion=CONFUSION_CONFIDENCE_WITH_AUDIO if AUDIO in available else CONFUSION_CONFIDENCE_WITHOUT_AUDIO,
            frustration=conf(frustration),
            fatigue=conf(fatigue),
            overall=conf(attention),
        )
        return StateVector(
            attention=attention,
            engagement=engagement,
            confusion=confusion,
            frustration=frustration,
            fatigue=fatigue,
            confidence=confidence,
            timestamp=timestamp,
            sources=available,
        )
