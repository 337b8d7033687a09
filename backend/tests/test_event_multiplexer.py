import pytest

from tripstream.agents.event_multiplexer import EventMultiplexer
from tripstream.models.card_models import ItineraryResponse, TripSummary
from tripstream.models.lifecycle_models import (
    ItineraryParsed,
    RoundCompleted,
    TokenGenerated,
    ToolsIssued,
    ToolsResolved,
    TurnFailed,
    TurnFinished,
)
from tripstream.models.stream_models import is_terminal
from tripstream.models.tool_models import Citation, ToolInvocation, ToolResult
from tripstream.models.trip_models import ChatMode

from conftest import HOTELS


def settled(tool_name, result, **arguments):
    return ToolInvocation(id=f"call_{tool_name}", tool_name=tool_name, arguments=arguments).settle(result)


def types_of(events):
    return [e.type for e in events]


@pytest.fixture
def mux():
    return EventMultiplexer()


def test_issue_and_round_markers_are_silent(mux):
    inv = ToolInvocation(id="c1", tool_name="search_places")
    assert mux.map(ToolsIssued(round=1, invocations=(inv,))) == []
    assert mux.map(RoundCompleted(round=1, requested_tools=1)) == []


def test_resolved_places_emit_tool_calls_then_cards(mux):
    inv = settled("search_hotels", ToolResult.ok(HOTELS), location="Tokyo")
    events = mux.map(ToolsResolved(round=1, invocations=(inv,)))

    assert types_of(events) == ["toolCalls", "cards"]
    assert events[0].tool_calls[0].tool == "search_hotels"
    assert [c.name for c in events[1].cards] == ["Hotel Gracery Shinjuku", "The Okura Tokyo"]
    assert {c.type for c in events[1].cards} == {"hotel"}


def test_failed_tool_emits_tool_calls_only(mux):
    inv = settled("search_places", ToolResult.failure("quota exceeded"), query="ramen")
    events = mux.map(ToolsResolved(round=1, invocations=(inv,)))

    assert types_of(events) == ["toolCalls"]
    assert events[0].tool_calls[0].result == {"failed": True, "message": "quota exceeded"}


def test_video_results_are_emitted(mux):
    video = {"videoId": "abc123", "title": "Tokyo street food", "thumbnailUrl": "https://i.ytimg.com/x.jpg"}
    inv = settled("search_videos", ToolResult.ok([video]), query="street food", location="Tokyo")
    events = mux.map(ToolsResolved(round=1, invocations=(inv,)))

    assert types_of(events) == ["toolCalls", "videos"]
    assert events[1].videos[0].video_id == "abc123"


def test_video_analysis_and_guides(mux):
    analysis = {"videoId": "abc123", "summary": "Night food tour", "highlights": ["Yakitori alley"]}
    guides = {"searchTitles": ["Tokyo where to stay"], "videos": [{"videoId": "v1", "title": "Where to stay"}]}
    events = mux.map(ToolsResolved(round=2, invocations=(
        settled("analyze_video", ToolResult.ok(analysis), video_id="abc123"),
        settled("find_video_guides", ToolResult.ok(guides), location="Tokyo"),
    )))
    assert types_of(events) == ["toolCalls", "videoAnalysis", "smartVideoResult"]
    assert len(events[0].tool_calls) == 2


def test_token_maps_to_exactly_that_text(mux):
    events = mux.map(TokenGenerated(text=" Shibuya"))
    assert len(events) == 1
    assert events[0].content == " Shibuya"


def test_itinerary_event(mux):
    itinerary = ItineraryResponse(trip_summary=TripSummary(destination="Kyoto", days=2))
    events = mux.map(ItineraryParsed(itinerary=itinerary))
    assert types_of(events) == ["itinerary"]


def test_done_carries_citations_and_mode(mux):
    citation = Citation(url="https://open-meteo.com", title="Open-Meteo")
    events = mux.map(TurnFinished(mode=ChatMode.RESEARCH, citations=(citation,), intent="exploration"))

    assert types_of(events) == ["done"]
    wire = events[0].model_dump(by_alias=True)
    assert wire["chatMode"] == "research"
    assert wire["intent"] == "exploration"
    assert wire["citations"][0]["url"] == "https://open-meteo.com"


def test_nothing_after_terminal_event(mux):
    assert types_of(mux.map(TurnFailed(message="boom"))) == ["error"]
    assert mux.map(TurnFinished(mode=ChatMode.ASK)) == []
    assert mux.map(TokenGenerated(text="late")) == []


def test_done_latches_and_content_does_not(mux):
    mux.map(TokenGenerated(text="Hi"))
    assert not mux.terminated
    done = mux.map(TurnFinished(mode=ChatMode.ASK))
    assert is_terminal(done[0])
    assert mux.terminated


def test_unknown_lifecycle_event_raises(mux):
    with pytest.raises(TypeError):
        mux.map(object())
