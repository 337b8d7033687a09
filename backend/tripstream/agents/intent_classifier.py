# backend/tripstream/agents/intent_classifier.py

import re
from typing import Optional, Protocol, Sequence, Union

from tripstream.core.logger import get_logger
from tripstream.models.trip_models import ChatMode, ConversationTurn


log = get_logger("classifier")


# ----------------------------------------------------------
# MODE STRATEGIES
# ----------------------------------------------------------
class ModeStrategy(Protocol):
    def infer(self, message: str) -> ChatMode:
        ...


ITINERARY_MARKERS = [
    re.compile(r"\bday\s*\d+\b", re.I),
    re.compile(r"\b\d+\s*(day|days|night|nights)\b", re.I),
    re.compile(r"\b(itinerary|schedule|day[- ]by[- ]day)\b", re.I),
    re.compile(r"\bplan\b", re.I),
    re.compile(r"\b(put together|create|make|build)\s+(a|an|my|the)?\s*(trip|plan|itinerary)\b", re.I),
]

RESEARCH_MARKERS = [
    re.compile(r"\b(find|search|look up|lookup|compare)\b", re.I),
    re.compile(r"\b(hotels?|hostels?|restaurants?|cafes?|bars?|attractions?)\b", re.I),
    re.compile(r"\b(weather|forecast|videos?)\b", re.I),
    re.compile(r"\b(show me|looking for|where to stay|where to eat)\b", re.I),
]


class KeywordModeStrategy:
    """
    Structural markers first: an itinerary marker beats a research marker,
    so "plan 3 days and find hotels" is an itinerary turn. No marker -> ask.
    """

    def infer(self, message: str) -> ChatMode:
        text = (message or "").strip()
        if not text:
            return ChatMode.ASK
        if any(p.search(text) for p in ITINERARY_MARKERS):
            return ChatMode.ITINERARY
        if any(p.search(text) for p in RESEARCH_MARKERS):
            return ChatMode.RESEARCH
        return ChatMode.ASK


# ----------------------------------------------------------
# CLASSIFIER
# ----------------------------------------------------------
class IntentClassifier:
    def __init__(self, strategy: Optional[ModeStrategy] = None):
        self.strategy = strategy or KeywordModeStrategy()

    def classify(
        self,
        latest_message: str,
        explicit_mode: Union[ChatMode, str, None] = None
    ) -> ChatMode:
        """Explicit mode always wins; otherwise the strategy decides."""
        if explicit_mode:
            try:
                return ChatMode(explicit_mode)
            except ValueError:
                log.warning(f"Ignoring unknown chat mode: {explicit_mode!r}")

        mode = self.strategy.infer(latest_message)
        log.debug(f"Inferred mode {mode.value} for: {latest_message[:60]!r}")
        return mode


# ----------------------------------------------------------
# PLANNING vs EXPLORATION (reported to the client in ``done``)
# ----------------------------------------------------------
DAYS_RE = re.compile(r"\b(\d+)\s*(day|days|night|nights)\b", re.I)
DAY_REFERENCE_RE = re.compile(r"\bday\s*[1-9]\b", re.I)
PLANNING_RE = re.compile(r"\b(plan|itinerary|schedule|organize|arrange|structure|map out|layout)\b", re.I)
TIMING_RE = re.compile(r"\b(morning|afternoon|evening|night|am|pm|breakfast|lunch|dinner|sunrise|sunset)\b", re.I)
ORDER_RE = re.compile(r"\b(first|then|after|before|next|followed by|start with|end with|begin|finish)\b", re.I)
ORGANIZING_RE = re.compile(
    r"\b(put together|create|make|build|set up)\s*(a|an|my|the)?\s*(plan|itinerary|schedule|trip)\b", re.I
)
MODIFY_RE = re.compile(r"\b(change|swap|replace|add|remove|adjust|make it|more|less|slower|faster)\b", re.I)

PLAN_PHRASES = ("day 1", "day 2", "itinerary", "here's a plan", "i'll organize")


def _recent_plan_in(history: Sequence[ConversationTurn]) -> bool:
    for turn in list(history)[-5:]:
        if turn.role == "assistant":
            text = turn.text.lower()
            if any(phrase in text for phrase in PLAN_PHRASES):
                return True
    return False


def detect_intent(
    message: str,
    saved_places_count: int = 0,
    history: Sequence[ConversationTurn] = ()
) -> str:
    """Return ``"planning"`` or ``"exploration"`` (the default)."""
    text = (message or "").strip()

    if DAYS_RE.search(text) or DAY_REFERENCE_RE.search(text):
        return "planning"

    organizing = bool(ORGANIZING_RE.search(text))
    if PLANNING_RE.search(text) or organizing:
        return "planning"

    ordering = bool(ORDER_RE.search(text))
    if ordering and TIMING_RE.search(text):
        return "planning"

    if saved_places_count >= 3 and (ordering or organizing):
        return "planning"

    if _recent_plan_in(history) and MODIFY_RE.search(text):
        return "planning"

    return "exploration"
