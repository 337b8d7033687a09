# backend/tripstream/models/stream_models.py

from typing import Annotated, List, Literal, Optional, Union

from pydantic import Field

from tripstream.models.card_models import (
    CamelModel,
    ItineraryResponse,
    PlaceCard,
    SmartVideoResult,
    VideoAnalysis,
    VideoResult,
)
from tripstream.models.tool_models import Citation, ToolCall


# ----------------------------------------------------------
# STREAM EVENTS
# Each event carries its full payload; the ``type`` tag is the wire
# discriminator read by the client.
# ----------------------------------------------------------
class ToolCallsEvent(CamelModel):
    type: Literal["toolCalls"] = "toolCalls"
    tool_calls: List[ToolCall]


class CardsEvent(CamelModel):
    type: Literal["cards"] = "cards"
    cards: List[PlaceCard]


class VideosEvent(CamelModel):
    type: Literal["videos"] = "videos"
    videos: List[VideoResult]


class VideoAnalysisEvent(CamelModel):
    type: Literal["videoAnalysis"] = "videoAnalysis"
    video_analysis: VideoAnalysis


class SmartVideoResultEvent(CamelModel):
    type: Literal["smartVideoResult"] = "smartVideoResult"
    smart_video_result: SmartVideoResult


class ContentEvent(CamelModel):
    type: Literal["content"] = "content"
    content: str


class ItineraryEvent(CamelModel):
    type: Literal["itinerary"] = "itinerary"
    itinerary: ItineraryResponse


class DoneEvent(CamelModel):
    type: Literal["done"] = "done"
    citations: List[Citation] = Field(default_factory=list)
    intent: Optional[str] = None
    chat_mode: Optional[str] = None


class ErrorEvent(CamelModel):
    type: Literal["error"] = "error"
    error: str


StreamEvent = Annotated[
    Union[
        ToolCallsEvent,
        CardsEvent,
        VideosEvent,
        VideoAnalysisEvent,
        SmartVideoResultEvent,
        ContentEvent,
        ItineraryEvent,
        DoneEvent,
        ErrorEvent,
    ],
    Field(discriminator="type"),
]

TERMINAL_EVENTS = (DoneEvent, ErrorEvent)


def is_terminal(event) -> bool:
    return isinstance(event, TERMINAL_EVENTS)
