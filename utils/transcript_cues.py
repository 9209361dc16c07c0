"""
Keyword and pattern cues in learner speech.

Classifies a single user utterance into counts of confusion markers,
affirmative markers, questions and hesitations. Keyword lists exist for
Portuguese (the product's default language) and English; matching is
case-insensitive and respects word boundaries so "oi" does not fire inside
"oito".
"""

import re
from dataclasses import dataclass
from typing import Dict, List, Pattern

# Each keyword counts at most once per utterance.
CONFUSION_KEYWORDS: Dict[str, List[str]] = {
    "pt": [
        "não entendi", "como assim", "não sei", "confuso", "perdido",
        "pode repetir", "repete", "hã", "oi", "o que", "não entendo",
        "como é", "não consegui", "difícil", "complicado",
    ],
    "en": [
        "i don't understand", "i don't get it", "what do you mean", "i'm confused",
        "confusing", "lost", "can you repeat", "repeat that", "huh", "what",
        "not following", "hard", "complicated", "unclear",
    ],
}

AFFIRMATIVE_KEYWORDS: Dict[str, List[str]] = {
    "pt": [
        "sim", "entendi", "ok", "certo", "legal", "beleza", "blz", "verdade",
        "exato", "isso", "faz sentido", "claro", "uhum", "aham", "tá",
        "tô entendendo", "compreendi",
    ],
    "en": [
        "yes", "yeah", "got it", "ok", "okay", "right", "sure", "cool",
        "exactly", "makes sense", "of course", "uh-huh", "i see", "understood",
    ],
}

# An utterance counts as one question if any pattern matches.
QUESTION_PATTERNS: Dict[str, List[str]] = {
    "pt": [
        r"\?\s*$",
        r"^\s*(o que|como|por que|quando|onde|qual|quem|quanto)\b",
        r"^\s*(me explica|pode explicar|não entendi)\b",
    ],
    "en": [
        r"\?\s*$",
        r"^\s*(what|how|why|when|where|which|who|how much)\b",
        r"^\s*(can you explain|could you explain|explain)\b",
    ],
}

# Every match counts.
HESITATION_PATTERNS: Dict[str, List[str]] = {
    "pt": [r"\b(ã+|é+|hm+|uhm+|eh+)\b", r"\.{3,}"],
    "en": [r"\b(uh+|um+|hm+|uhm+|er+|erm)\b", r"\.{3,}"],
}


@dataclass(frozen=True)
class TranscriptCues:
    """Cue counts found in one utterance."""
    confusion: int = 0
    affirmative: int = 0
    questions: int = 0
    hesitations: int = 0
    word_count: int = 0


def _keyword_patterns(keywords: List[str]) -> List[Pattern]:
    return [re.compile(r"(?<!\w)" + re.escape(kw) + r"(?!\w)", re.IGNORECASE) for kw in keywords]


_compiled: Dict[str, Dict[str, List[Pattern]]] = {}


def _patterns_for(language: str) -> Dict[str, List[Pattern]]:
    lang = language if language in CONFUSION_KEYWORDS else "pt"
    if lang not in _compiled:
        _compiled[lang] = {
            "confusion": _keyword_patterns(CONFUSION_KEYWORDS[lang]),
            "affirmative": _keyword_patterns(AFFIRMATIVE_KEYWORDS[lang]),
            "question": [re.compile(p, re.IGNORECASE) for p in QUESTION_PATTERNS[lang]],
            "hesitation": [re.compile(p, re.IGNORECASE) for p in HESITATION_PATTERNS[lang]],
        }
    return _compiled[lang]


def analyze_utterance(text: str, language: str = "pt") -> TranscriptCues:
    """
    Count cues in one learner utterance.

    Args:
        text: Transcribed utterance (any case).
        language: "pt" or "en"; unknown values fall back to "pt".

    Returns:
        TranscriptCues with per-category counts and the utterance word count.
    """
    if not text or not text.strip():
        return TranscriptCues()
    pats = _patterns_for(language)
    confusion = sum(1 for p in pats["confusion"] if p.search(text))
    affirmative = sum(1 for p in pats["affirmative"] if p.search(text))
    questions = 1 if any(p.search(text) for p in pats["question"]) else 0
    hesitations = sum(len(p.findall(text)) for p in pats["hesitation"])
    return TranscriptCues(
        confusion=confusion,
        affirmative=affirmative,
        questions=questions,
        hesitations=hesitations,
        word_count=len(text.split()),
    )
