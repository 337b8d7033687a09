# backend/tripstream/agents/chat_orchestrator.py

import asyncio
import json
from typing import AsyncIterator, List, Optional, Sequence, Tuple, Union

from tripstream.agents.intent_classifier import IntentClassifier, detect_intent
from tripstream.agents.prompts import INCOMPLETE_SEARCH_NOTE, system_prompt
from tripstream.core.config_loader import Settings, settings
from tripstream.core.errors import OrchestrationError
from tripstream.core.llm import ChatModel, Messages, RequestedToolCall, ToolCallAccumulator
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
from tripstream.models.tool_models import Citation, ToolInvocation
from tripstream.models.trip_models import ChatMode, ConversationTurn, TripContext
from tripstream.tools.registry import ToolRegistry, parse_arguments
from tripstream.utils.itinerary_parser import parse_itinerary


log = get_logger("orchestrator")

GENERIC_FAILURE = "Failed to generate response"

LifecycleEvent = Union[
    ToolsIssued, ToolsResolved, TokenGenerated, RoundCompleted,
    ItineraryParsed, TurnFinished, TurnFailed,
]


class ChatOrchestrator:
    """
    Drives one chat turn: prompt -> model -> tools -> model ... -> answer.

    ``ask`` turns are a single streamed completion without tools. ``research``
    and ``itinerary`` turns get up to ``max_tool_rounds`` rounds with the
    registry's schemas attached; all calls requested in a round run as one
    batch before the model resumes. Text from a tool-capable round is only
    released once that round turns out to be the answer; text that comes
    with tool requests goes back to the model but never to the client. When the budget runs out while the model
    still wants tools, one last tool-less call forces an answer from what
    was gathered.

    The orchestrator only yields lifecycle events. It never persists and it
    never raises out of ``run``: failures become exactly one ``TurnFailed``.
    """

    def __init__(
        self,
        model: ChatModel,
        registry: ToolRegistry,
        classifier: Optional[IntentClassifier] = None,
        config: Settings = settings,
    ):
        self.model = model
        self.registry = registry
        self.classifier = classifier or IntentClassifier()
        self.max_rounds = config.max_tool_rounds
        self.history_window = config.history_window

    # -----------------------------------------------------------
    # Prompt
    # -----------------------------------------------------------
    def build_messages(
        self,
        history: Sequence[ConversationTurn],
        new_message: str,
        mode: ChatMode,
        trip: Optional[TripContext] = None
    ) -> Messages:
        messages: Messages = [{"role": "system", "content": system_prompt(mode, trip)}]
        if trip is not None:
            messages.append({"role": "system", "content": trip.as_prompt()})

        window = list(history)[-self.history_window:] if self.history_window > 0 else []
        messages.extend({"role": turn.role, "content": turn.text} for turn in window)
        messages.append({"role": "user", "content": new_message})
        return messages

    # -----------------------------------------------------------
    # Public entry point
    # -----------------------------------------------------------
    async def run(
        self,
        history: Sequence[ConversationTurn],
        new_message: str,
        mode: Union[ChatMode, str, None] = None,
        trip_context: Optional[TripContext] = None
    ) -> AsyncIterator[LifecycleEvent]:
        try:
            async for event in self._run_turn(history, new_message, mode, trip_context):
                yield event
        except OrchestrationError as e:
            log.error(f"Turn failed: {e}")
            yield TurnFailed(message=str(e))
        except Exception as e:
            log.exception(f"Chat orchestration error: {e}")
            yield TurnFailed(message=GENERIC_FAILURE)

    async def _run_turn(
        self,
        history: Sequence[ConversationTurn],
        new_message: str,
        explicit_mode: Union[ChatMode, str, None],
        trip: Optional[TripContext]
    ) -> AsyncIterator[LifecycleEvent]:
        mode = self.classifier.classify(new_message, explicit_mode)
        intent = detect_intent(
            new_message,
            trip.saved_places_count if trip else 0,
            history,
        )
        log.info(f"Turn started: mode={mode.value} intent={intent} history={len(history)}")

        messages = self.build_messages(history, new_message, mode, trip)
        answer: List[str] = []
        citations: List[Citation] = []
        forced = False

        if mode is ChatMode.ASK:
            async for event in self._stream(messages, None, answer):
                yield event
            yield RoundCompleted(round=1, requested_tools=0)
        else:
            tools = self.registry.schemas()
            for round_no in range(1, self.max_rounds + 1):
                calls = ToolCallAccumulator()
                round_text: List[str] = []
                # Held back until the round is known to request no tools,
                # so a turn's content never precedes its toolCalls and cards
                async for _ in self._stream(messages, tools, round_text, calls):
                    pass

                if not calls:
                    answer.extend(round_text)
                    for chunk in round_text:
                        yield TokenGenerated(text=chunk)
                    yield RoundCompleted(round=round_no, requested_tools=0)
                    break

                if round_text:
                    log.debug(f"Round {round_no} preamble withheld ({len(''.join(round_text))} chars)")

                requested = calls.calls()
                invocations = tuple(self._invocation_for(call) for call in requested)
                yield ToolsIssued(round=round_no, invocations=invocations)

                await self._execute_batch(invocations, requested)
                yield ToolsResolved(round=round_no, invocations=invocations)

                for inv in invocations:
                    if inv.succeeded:
                        citations.extend(inv.result.sources)
                self._append_round(messages, round_text, requested, invocations)
                yield RoundCompleted(round=round_no, requested_tools=len(invocations))
            else:
                forced = True
                log.warning(f"Tool round budget ({self.max_rounds}) exhausted; forcing final answer")
                messages.append({"role": "system", "content": INCOMPLETE_SEARCH_NOTE.strip()})
                async for event in self._stream(messages, None, answer):
                    yield event

        full_text = "".join(answer)
        if not full_text.strip():
            raise OrchestrationError("The assistant returned an empty response")

        if mode is ChatMode.ITINERARY:
            itinerary = parse_itinerary(full_text)
            if itinerary is not None:
                yield ItineraryParsed(itinerary=itinerary)

        yield TurnFinished(
            mode=mode,
            citations=tuple(_dedupe(citations)),
            intent=intent,
            forced=forced,
        )
        log.info(f"Turn finished: {len(full_text)} chars, {len(citations)} citations, forced={forced}")

    # -----------------------------------------------------------
    # Model streaming
    # -----------------------------------------------------------
    async def _stream(
        self,
        messages: Messages,
        tools: Optional[list],
        text: List[str],
        calls: Optional[ToolCallAccumulator] = None
    ) -> AsyncIterator[TokenGenerated]:
        async for delta in self.model.stream(messages, tools=tools):
            if delta.text:
                text.append(delta.text)
                yield TokenGenerated(text=delta.text)
            if calls is not None:
                for fragment in delta.tool_calls:
                    calls.add(fragment)

    # -----------------------------------------------------------
    # Tools
    # -----------------------------------------------------------
    @staticmethod
    def _invocation_for(call: RequestedToolCall) -> ToolInvocation:
        try:
            arguments = parse_arguments(call.arguments)
        except ValueError:
            arguments = {}
        return ToolInvocation(id=call.id, tool_name=call.name, arguments=arguments)

    async def _execute_batch(
        self,
        invocations: Tuple[ToolInvocation, ...],
        requested: List[RequestedToolCall]
    ) -> None:
        # Shielded: on client disconnect the running lookups finish and are dropped
        batch = asyncio.gather(*(
            self.registry.execute(call.name, call.arguments) for call in requested
        ))
        results = await asyncio.shield(batch)
        for inv, result in zip(invocations, results):
            inv.settle(result)
            if result.failed:
                log.warning(f"Tool {inv.tool_name} failed: {result.message}")

    @staticmethod
    def _append_round(
        messages: Messages,
        round_text: List[str],
        requested: List[RequestedToolCall],
        invocations: Tuple[ToolInvocation, ...]
    ) -> None:
        messages.append({
            "role": "assistant",
            "content": "".join(round_text) or None,
            "tool_calls": [call.as_message_entry() for call in requested],
        })
        for inv in invocations:
            messages.append({
                "role": "tool",
                "tool_call_id": inv.id,
                "content": json.dumps(inv.result.for_model(), default=str),
            })


def _dedupe(citations: List[Citation]) -> List[Citation]:
    seen = set()
    unique = []
    for citation in citations:
        if citation.url in seen:
            continue
        seen.add(citation.url)
        unique.append(citation)
    return unique
