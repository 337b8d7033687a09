# backend/tripstream/models/trip_models.py

from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from tripstream.models.card_models import ItineraryResponse, PlaceCard, VideoResult
from tripstream.models.tool_models import Citation, ToolCall, utc_now_iso


class ChatMode(str, Enum):
    ASK = "ask"
    RESEARCH = "research"
    ITINERARY = "itinerary"


# ----------------------------------------------------------
# CONVERSATION TURN
# ----------------------------------------------------------
class ConversationTurn(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"]
    text: str
    created_at: str = Field(default_factory=utc_now_iso)


# ----------------------------------------------------------
# TRIP CONTEXT (read-only snapshot injected per turn)
# ----------------------------------------------------------
class DateRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: str
    end: str


class TripContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    destination: Optional[str] = None
    date_range: Optional[DateRange] = None
    budget_range: Optional[Tuple[float, float]] = None
    preferences: Dict[str, Any] = Field(default_factory=dict)
    saved_places_count: int = 0

    def as_prompt(self) -> str:
        lines = ["Trip Context:", f"- Title: {self.title}"]
        if self.destination and self.destination != self.title:
            lines.append(f"- Destination: {self.destination}")
        if self.date_range:
            lines.append(f"- Dates: {self.date_range.start} to {self.date_range.end}")
        if self.budget_range:
            low, high = self.budget_range
            lines.append(f"- Budget: ${low:g}-{high:g}/night")
        if self.preferences:
            prefs = ", ".join(f"{k}: {v}" for k, v in self.preferences.items())
            lines.append(f"- Preferences: {prefs}")
        if self.saved_places_count:
            lines.append(f"- Saved places: {self.saved_places_count}")
        return "\n".join(lines)


# ----------------------------------------------------------
# ASSISTANT MESSAGE (durable record of one turn)
# ----------------------------------------------------------
class AssistantMessage(BaseModel):
    text: str = ""
    chat_mode: Optional[ChatMode] = None
    tool_calls: List[ToolCall] = Field(default_factory=list)
    citations: List[Citation] = Field(default_factory=list)
    cards: List[PlaceCard] = Field(default_factory=list)
    videos: List[VideoResult] = Field(default_factory=list)
    itinerary: Optional[ItineraryResponse] = None
