# backend/tripstream/api/routes_chat_stream.py

import asyncio
import re
from typing import AsyncIterator, List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from fastapi.responses import StreamingResponse
from pydantic import ValidationError
from starlette.background import BackgroundTask

from tripstream.agents.chat_orchestrator import GENERIC_FAILURE, ChatOrchestrator
from tripstream.agents.event_multiplexer import EventMultiplexer
from tripstream.core.config_loader import settings
from tripstream.core.logger import get_logger
from tripstream.core.security import user_id_from_header
from tripstream.db.sqlite_memory import SQLiteMemory
from tripstream.models.chat_models import ChatStreamRequest, ClientContext
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
)
from tripstream.models.trip_models import (
    AssistantMessage,
    ChatMode,
    ConversationTurn,
    DateRange,
    TripContext,
)


log = get_logger("chat_stream")

router = APIRouter(prefix="/chat", tags=["chat"])

UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.I)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


# -----------------------------
# Dependencies (built in the app lifespan)
# -----------------------------
def get_orchestrator(request: Request) -> ChatOrchestrator:
    return request.app.state.orchestrator


def get_memory(request: Request) -> Optional[SQLiteMemory]:
    return getattr(request.app.state, "memory", None)


# -----------------------------
# SSE framing
# -----------------------------
def encode_frame(event: StreamEvent) -> str:
    match event:
        case (
            ToolCallsEvent() | CardsEvent() | VideosEvent() | VideoAnalysisEvent()
            | SmartVideoResultEvent() | ContentEvent() | ItineraryEvent()
            | DoneEvent() | ErrorEvent()
        ):
            payload = event.model_dump_json(by_alias=True, exclude_none=True)
        case _:
            raise TypeError(f"Unsupported stream event: {type(event).__name__}")
    return f"data: {payload}\n\n"


# -----------------------------
# Assistant message accumulation
# -----------------------------
class AssistantMessageAccumulator:
    """Folds every frame actually handed to the client into the durable record."""

    def __init__(self):
        self.parts: List[str] = []
        self.message = AssistantMessage()
        self.completed = False
        self.failed = False

    def fold(self, event: StreamEvent) -> None:
        match event:
            case ContentEvent():
                self.parts.append(event.content)
            case ToolCallsEvent():
                self.message.tool_calls.extend(event.tool_calls)
            case CardsEvent():
                self.message.cards.extend(event.cards)
            case VideosEvent():
                self.message.videos.extend(event.videos)
            case ItineraryEvent():
                self.message.itinerary = event.itinerary
            case VideoAnalysisEvent() | SmartVideoResultEvent():
                pass
            case DoneEvent():
                self.message.citations = list(event.citations)
                if event.chat_mode:
                    self.message.chat_mode = ChatMode(event.chat_mode)
                self.completed = True
            case ErrorEvent():
                self.failed = True
            case _:
                raise TypeError(f"Unsupported stream event: {type(event).__name__}")

    @property
    def text(self) -> str:
        return "".join(self.parts)

    def build(self) -> AssistantMessage:
        return self.message.model_copy(update={"text": self.text})


# -----------------------------
# Producer task + bounded queue
# -----------------------------
_END = object()


class TurnStream:
    """
    One turn on the wire.

    A producer task runs orchestrator -> multiplexer and pushes StreamEvents
    onto a bounded queue; ``frames()`` drains it. A full queue blocks the
    producer, so the model never runs ahead of what the connection flushed.
    Closing ``frames()`` (client gone) cancels the producer.
    """

    def __init__(
        self,
        orchestrator: ChatOrchestrator,
        history: List[ConversationTurn],
        message: str,
        mode: Optional[ChatMode],
        trip_context: Optional[TripContext],
        queue_size: int = settings.stream_queue_size
    ):
        self.orchestrator = orchestrator
        self.history = history
        self.message = message
        self.mode = mode
        self.trip_context = trip_context
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self.accumulator = AssistantMessageAccumulator()
        self.producer: Optional[asyncio.Task] = None

    async def _produce(self) -> None:
        multiplexer = EventMultiplexer()
        try:
            async for lifecycle in self.orchestrator.run(
                self.history, self.message, self.mode, self.trip_context
            ):
                for event in multiplexer.map(lifecycle):
                    await self.queue.put(event)
                if multiplexer.terminated:
                    break
        except Exception as e:
            log.exception(f"Chat stream error: {e}")

        if not multiplexer.terminated:
            await self.queue.put(ErrorEvent(error=GENERIC_FAILURE))
        await self.queue.put(_END)

    async def frames(self) -> AsyncIterator[str]:
        self.producer = asyncio.create_task(self._produce())
        try:
            while True:
                event = await self.queue.get()
                if event is _END:
                    break
                frame = encode_frame(event)
                log.debug(f"-> {frame.strip()[:120]}")
                yield frame
                # Only frames the client pulled past count toward the record
                self.accumulator.fold(event)
        finally:
            if not self.producer.done():
                log.info("Client disconnected; cancelling turn")
                self.producer.cancel()


# -----------------------------
# Persistence (runs after the response body closed)
# -----------------------------
def persist_assistant_message(
    memory: SQLiteMemory,
    trip_id: str,
    conversation_id: Optional[str],
    accumulator: AssistantMessageAccumulator
):
    if not accumulator.completed:
        log.info(f"Turn for trip {trip_id} did not complete; nothing persisted")
        return

    message = accumulator.build()
    if not message.text.strip():
        return

    try:
        memory.create_message(
            trip_id,
            "assistant",
            message.text,
            conversation_id=conversation_id,
            tool_calls=[c.model_dump(exclude_none=True) for c in message.tool_calls],
            citations=[c.model_dump(exclude_none=True) for c in message.citations],
            cards=[c.model_dump(exclude_none=True) for c in message.cards],
            videos=[v.model_dump(by_alias=True, exclude_none=True) for v in message.videos],
            itinerary=message.itinerary.model_dump(by_alias=True) if message.itinerary else None,
            chat_mode=message.chat_mode.value if message.chat_mode else None,
        )
        if conversation_id:
            memory.touch_conversation(conversation_id)
        log.info(f"Persisted assistant message for trip {trip_id} ({len(message.text)} chars)")
    except Exception as e:
        log.exception(f"Failed to persist assistant message for trip {trip_id}: {e}")


# -----------------------------
# Helpers: trip context
# -----------------------------
def trip_context_from_row(trip: dict, context: Optional[ClientContext]) -> TripContext:
    context = context or ClientContext()
    preferences = dict(trip.get("preferences") or {})
    if context.country:
        preferences["country"] = context.country

    date_range = None
    if trip.get("start_date") and trip.get("end_date"):
        date_range = DateRange(start=trip["start_date"], end=trip["end_date"])

    budget_range = None
    if trip.get("budget_min") is not None and trip.get("budget_max") is not None:
        budget_range = (trip["budget_min"], trip["budget_max"])

    title = trip.get("title") or trip.get("destination") or "Trip"
    return TripContext(
        title=title,
        destination=context.destination or trip.get("destination") or title,
        date_range=date_range,
        budget_range=budget_range,
        preferences=preferences,
        saved_places_count=(
            context.savedPlacesCount
            if context.savedPlacesCount is not None
            else trip.get("saved_places_count") or 0
        ),
    )


def trip_context_from_client(context: Optional[ClientContext]) -> Optional[TripContext]:
    if context is None or not context.destination:
        return None
    return TripContext(
        title=context.destination,
        destination=context.destination,
        preferences={"country": context.country} if context.country else {},
        saved_places_count=context.savedPlacesCount or 0,
    )


def _parse_body(body) -> ChatStreamRequest:
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON body")

    message = body.get("message")
    if not isinstance(message, str) or not message.strip():
        raise HTTPException(status_code=400, detail="message is required")

    try:
        return ChatStreamRequest.model_validate(body)
    except ValidationError as e:
        if any(err["loc"] and err["loc"][0] == "chatMode" for err in e.errors()):
            modes = ", ".join(m.value for m in ChatMode)
            raise HTTPException(status_code=400, detail=f"chatMode must be one of: {modes}")
        raise HTTPException(status_code=400, detail="Invalid request body")


# -----------------------------
# POST /chat/stream
# -----------------------------
@router.post("/stream", summary="Stream an assistant turn as Server-Sent Events")
async def chat_stream(
    request: Request,
    authorization: Optional[str] = Header(None),
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
    memory: Optional[SQLiteMemory] = Depends(get_memory),
):
    try:
        body = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON body")

    req = _parse_body(body)
    message = req.message.strip()

    trip_id = None
    trip = None
    if req.trip_id and UUID_RE.match(req.trip_id) and memory is not None:
        user_id = user_id_from_header(authorization)
        if not user_id:
            raise HTTPException(status_code=401, detail="Authentication required")

        trip = memory.get_trip(req.trip_id)
        if trip is not None:
            if str(trip["user_id"]) != str(user_id):
                raise HTTPException(status_code=403, detail="Access denied to this trip")
            trip_id = req.trip_id

    if trip_id:
        saved_id = memory.create_message(trip_id, "user", message, conversation_id=req.conversation_id)
        history = [
            ConversationTurn(role=m["role"], text=m["content"], created_at=m["created_at"])
            for m in memory.get_trip_messages(trip_id)
            if m["id"] != saved_id and m["content"] and m["role"] in ("user", "assistant")
        ]
        trip_context = trip_context_from_row(trip, req.context)
    else:
        if req.trip_id:
            log.info(f"Ignoring trip_id {req.trip_id!r}; using client context")
        history = req.client_history()
        trip_context = trip_context_from_client(req.context)

    stream = TurnStream(
        orchestrator,
        history,
        message,
        req.chatMode,
        trip_context,
        queue_size=settings.stream_queue_size,
    )

    background = None
    if trip_id:
        background = BackgroundTask(
            persist_assistant_message, memory, trip_id, req.conversation_id, stream.accumulator
        )

    return StreamingResponse(
        stream.frames(),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
        background=background,
    )


# -----------------------------
# GET /chat/messages
# -----------------------------
@router.get("/messages", summary="List the stored chat messages of a trip")
def list_messages(
    trip_id: Optional[str] = None,
    authorization: Optional[str] = Header(None),
    memory: Optional[SQLiteMemory] = Depends(get_memory),
):
    if not trip_id:
        raise HTTPException(status_code=400, detail="trip_id is required")

    user_id = user_id_from_header(authorization)
    if not user_id:
        raise HTTPException(status_code=401, detail="Authentication required")

    if memory is None:
        raise HTTPException(status_code=503, detail="Message store unavailable")

    trip = memory.get_trip(trip_id)
    if trip is None:
        raise HTTPException(status_code=404, detail="Trip not found")
    if str(trip["user_id"]) != str(user_id):
        raise HTTPException(status_code=403, detail="Access denied to this trip")

    messages = [
        {
            "id": m["id"],
            "role": m["role"],
            "content": m["content"],
            "conversationId": m["conversation_id"],
            "toolCalls": m["tool_calls"] or [],
            "citations": m["citations"] or [],
            "cards": m["cards"] or [],
            "videos": m["videos"] or [],
            "itinerary": m["itinerary"],
            "chatMode": m["chat_mode"],
            "createdAt": m["created_at"],
        }
        for m in memory.get_trip_messages(trip_id)
    ]
    return {"trip_id": trip_id, "messages": messages}
