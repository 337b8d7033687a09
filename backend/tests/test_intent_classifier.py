import pytest

from tripstream.agents.intent_classifier import IntentClassifier, KeywordModeStrategy, detect_intent
from tripstream.models.trip_models import ChatMode, ConversationTurn


@pytest.fixture
def classifier():
    return IntentClassifier()


@pytest.mark.parametrize("message, expected", [
    ("Plan 3 days in Kyoto for a couple", ChatMode.ITINERARY),
    ("What should we do on day 2?", ChatMode.ITINERARY),
    ("Can you build an itinerary around our saved places", ChatMode.ITINERARY),
    ("find me hotels in Tokyo for next week", ChatMode.RESEARCH),
    ("what's the weather like in Lisbon in May", ChatMode.RESEARCH),
    ("show me ramen videos", ChatMode.RESEARCH),
    ("is Osaka worth visiting?", ChatMode.ASK),
    ("thanks!", ChatMode.ASK),
])
def test_keyword_strategy(classifier, message, expected):
    assert classifier.classify(message) is expected


def test_explicit_mode_always_wins(classifier):
    assert classifier.classify("Plan 5 days in Rome", "ask") is ChatMode.ASK
    assert classifier.classify("hello", ChatMode.ITINERARY) is ChatMode.ITINERARY


def test_unknown_explicit_mode_falls_back_to_strategy(classifier):
    assert classifier.classify("find hotels in Rome", "shopping") is ChatMode.RESEARCH


def test_empty_input_is_ask(classifier):
    assert classifier.classify("") is ChatMode.ASK
    assert classifier.classify("   ") is ChatMode.ASK


def test_classification_is_idempotent(classifier):
    first = [classifier.classify("best ramen in Shibuya", "research") for _ in range(5)]
    assert set(first) == {ChatMode.RESEARCH}
    inferred = {classifier.classify("find cafes near Ueno") for _ in range(5)}
    assert inferred == {ChatMode.RESEARCH}


def test_strategy_is_pluggable():
    class AlwaysItinerary:
        def infer(self, message):
            return ChatMode.ITINERARY

    assert IntentClassifier(AlwaysItinerary()).classify("hi") is ChatMode.ITINERARY
    assert isinstance(IntentClassifier().strategy, KeywordModeStrategy)


# ----------------------------------------------------------
# planning vs exploration
# ----------------------------------------------------------
def test_detect_intent_planning_signals():
    assert detect_intent("4 nights in Hanoi") == "planning"
    assert detect_intent("let's organize the trip") == "planning"
    assert detect_intent("what first, then dinner?") == "planning"


def test_detect_intent_defaults_to_exploration():
    assert detect_intent("best coffee in Melbourne?") == "exploration"


def test_detect_intent_saved_places_with_ordering():
    assert detect_intent("which one should we see first", saved_places_count=3) == "planning"
    assert detect_intent("which one should we see first", saved_places_count=1) == "exploration"


def test_detect_intent_follow_up_to_plan():
    history = [
        ConversationTurn(role="user", text="help with Tokyo"),
        ConversationTurn(role="assistant", text="Here's a plan. Day 1: Asakusa..."),
    ]
    assert detect_intent("swap the museum for a market", history=history) == "planning"
    assert detect_intent("swap the museum for a market") == "exploration"
