# backend/tripstream/models/lifecycle_models.py

from dataclasses import dataclass, field
from typing import Optional, Tuple

from tripstream.models.card_models import ItineraryResponse
from tripstream.models.tool_models import Citation, ToolInvocation
from tripstream.models.trip_models import ChatMode


# ----------------------------------------------------------
# ORCHESTRATOR LIFECYCLE
# Internal events, in strict emission order. The multiplexer turns them
# into wire StreamEvents.
# ----------------------------------------------------------
@dataclass(frozen=True)
class ToolsIssued:
    round: int
    invocations: Tuple[ToolInvocation, ...]


@dataclass(frozen=True)
class ToolsResolved:
    round: int
    invocations: Tuple[ToolInvocation, ...]


@dataclass(frozen=True)
class TokenGenerated:
    text: str


@dataclass(frozen=True)
class RoundCompleted:
    round: int
    requested_tools: int


@dataclass(frozen=True)
class ItineraryParsed:
    itinerary: ItineraryResponse


@dataclass(frozen=True)
class TurnFinished:
    mode: ChatMode
    citations: Tuple[Citation, ...] = field(default_factory=tuple)
    intent: Optional[str] = None
    forced: bool = False


@dataclass(frozen=True)
class TurnFailed:
    message: str
