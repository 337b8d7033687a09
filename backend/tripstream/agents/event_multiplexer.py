# backend/tripstream/agents/event_multiplexer.py

from functools import singledispatchmethod
from typing import List

from tripstream.core.logger import get_logger
from tripstream.models.lifecycle_models import (
    ItineraryParsed,
    RoundCompleted,
    TokenGenerated,
    ToolsIssued,
    ToolsResolved,
    TurnFailed,
    TurnFinished,
)
from tripstream.models.stream_models import (
    CardsEvent,
    ContentEvent,
    DoneEvent,
    ErrorEvent,
    ItineraryEvent,
    SmartVideoResultEvent,
    StreamEvent,
    ToolCallsEvent,
    VideoAnalysisEvent,
    VideosEvent,
    is_terminal,
)
from tripstream.utils.card_extractor import (
    extract_cards,
    extract_smart_video_results,
    extract_video_analyses,
    extract_videos,
)


log = get_logger("multiplexer")


class EventMultiplexer:
    """
    Translates orchestrator lifecycle events into wire StreamEvents.

    One instance per turn. ``map`` is synchronous and keeps no state except
    the terminal latch: after ``done`` or ``error`` has been produced every
    further call returns an empty list.
    """

    def __init__(self):
        self.terminated = False

    def map(self, event) -> List[StreamEvent]:
        if self.terminated:
            log.warning(f"Dropping {type(event).__name__} after terminal event")
            return []
        out = self._translate(event)
        if any(is_terminal(e) for e in out):
            self.terminated = True
        return out

    @singledispatchmethod
    def _translate(self, event) -> List[StreamEvent]:
        raise TypeError(f"Unknown lifecycle event: {type(event).__name__}")

    @_translate.register
    def _(self, event: ToolsIssued) -> List[StreamEvent]:
        names = ", ".join(inv.tool_name for inv in event.invocations)
        log.info(f"Round {event.round}: tools issued [{names}]")
        return []

    @_translate.register
    def _(self, event: ToolsResolved) -> List[StreamEvent]:
        invocations = event.invocations
        out: List[StreamEvent] = [
            ToolCallsEvent(tool_calls=[inv.to_tool_call() for inv in invocations])
        ]

        # Result payloads go out before any later content that talks about them
        cards = extract_cards(invocations)
        if cards:
            out.append(CardsEvent(cards=cards))

        videos = extract_videos(invocations)
        if videos:
            out.append(VideosEvent(videos=videos))

        for analysis in extract_video_analyses(invocations):
            out.append(VideoAnalysisEvent(video_analysis=analysis))

        for smart in extract_smart_video_results(invocations):
            out.append(SmartVideoResultEvent(smart_video_result=smart))

        return out

    @_translate.register
    def _(self, event: TokenGenerated) -> List[StreamEvent]:
        return [ContentEvent(content=event.text)]

    @_translate.register
    def _(self, event: RoundCompleted) -> List[StreamEvent]:
        log.debug(f"Round {event.round} completed ({event.requested_tools} tools)")
        return []

    @_translate.register
    def _(self, event: ItineraryParsed) -> List[StreamEvent]:
        return [ItineraryEvent(itinerary=event.itinerary)]

    @_translate.register
    def _(self, event: TurnFinished) -> List[StreamEvent]:
        return [DoneEvent(
            citations=list(event.citations),
            intent=event.intent,
            chat_mode=event.mode.value,
        )]

    @_translate.register
    def _(self, event: TurnFailed) -> List[StreamEvent]:
        return [ErrorEvent(error=event.message)]
