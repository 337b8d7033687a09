# backend/tripstream/core/llm.py

from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol, Tuple

from openai import AsyncOpenAI

from tripstream.core.config_loader import settings
from tripstream.core.logger import get_logger


log = get_logger("llm")

Messages = List[Dict[str, Any]]


# ---------------------------------------------------------------------------
# STREAM DELTAS
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class ToolCallFragment:
    """Partial tool call from a streamed chunk; fragments with the same index belong together."""
    index: int
    id: Optional[str] = None
    name: Optional[str] = None
    arguments: str = ""


@dataclass(frozen=True)
class ModelDelta:
    text: Optional[str] = None
    tool_calls: Tuple[ToolCallFragment, ...] = ()


@dataclass
class RequestedToolCall:
    id: str
    name: str
    arguments: str = ""

    def as_message_entry(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }


@dataclass
class ToolCallAccumulator:
    """Rebuilds complete tool calls from streamed fragments, in index order."""
    _calls: Dict[int, RequestedToolCall] = field(default_factory=dict)

    def add(self, fragment: ToolCallFragment) -> None:
        call = self._calls.get(fragment.index)
        if call is None:
            call = RequestedToolCall(id=fragment.id or f"call_{fragment.index}", name=fragment.name or "")
            self._calls[fragment.index] = call
        else:
            if fragment.id:
                call.id = fragment.id
            if fragment.name:
                call.name = fragment.name
        call.arguments += fragment.arguments

    def calls(self) -> List[RequestedToolCall]:
        return [self._calls[i] for i in sorted(self._calls)]

    def __bool__(self) -> bool:
        return bool(self._calls)


# ---------------------------------------------------------------------------
# CHAT MODEL CONTRACT
# ---------------------------------------------------------------------------
class ChatModel(Protocol):
    def stream(
        self, messages: Messages, tools: Optional[List[Dict[str, Any]]] = None
    ) -> AsyncIterator[ModelDelta]:
        ...

    async def complete(self, messages: Messages, max_tokens: int = 500) -> str:
        ...


# ---------------------------------------------------------------------------
# OPENAI IMPLEMENTATION
# ---------------------------------------------------------------------------
class OpenAIChatModel:
    """
    Chat Completions client used by the orchestrator.

    Model: settings.chat_model (gpt-4o-mini by default). The SDK client is
    created on first use so the app can boot without OPENAI_API_KEY; a turn
    then fails with an ``error`` frame instead of crashing at import.
    """

    def __init__(self, model: Optional[str] = None, temperature: Optional[float] = None):
        self.model = model or settings.chat_model
        self.temperature = settings.chat_temperature if temperature is None else temperature
        self._client: Optional[AsyncOpenAI] = None

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(api_key=settings.OPENAI_API_KEY or None)
        return self._client

    async def stream(
        self, messages: Messages, tools: Optional[List[Dict[str, Any]]] = None
    ) -> AsyncIterator[ModelDelta]:
        kwargs: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature,
            "stream": True,
        }
        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = "auto"

        log.debug(f"Streaming {self.model}: {len(messages)} messages, {len(tools or [])} tools")
        response = await self.client.chat.completions.create(**kwargs)

        async for chunk in response:
            if not chunk.choices:
                continue
            delta = chunk.choices[0].delta
            fragments = tuple(
                ToolCallFragment(
                    index=tc.index,
                    id=tc.id,
                    name=tc.function.name if tc.function else None,
                    arguments=(tc.function.arguments or "") if tc.function else "",
                )
                for tc in (delta.tool_calls or [])
            )
            if delta.content or fragments:
                yield ModelDelta(text=delta.content or None, tool_calls=fragments)

    async def complete(self, messages: Messages, max_tokens: int = 500) -> str:
        completion = await self.client.chat.completions.create(
            model=self.model,
            messages=messages,
            max_tokens=max_tokens,
            temperature=0.3,
        )
        return (completion.choices[0].message.content or "").strip()
