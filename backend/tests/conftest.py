import asyncio
import copy
import json
from typing import List, Optional

import pytest
from fastapi import FastAPI
from pydantic import BaseModel

from tripstream.agents.chat_orchestrator import ChatOrchestrator
from tripstream.api.routes_chat_stream import router as chat_stream_router
from tripstream.core.config_loader import Settings
from tripstream.core.llm import ModelDelta, ToolCallFragment
from tripstream.db.sqlite_memory import SQLiteMemory
from tripstream.models.tool_models import Citation, ToolResult
from tripstream.tools.registry import Tool, ToolContext, ToolRegistry
from tripstream.tools.result_cache import ResultCache


# ----------------------------------------------------------
# Scripted model
# ----------------------------------------------------------
def text_round(*chunks: str) -> List[ModelDelta]:
    return [ModelDelta(text=c) for c in chunks]


def tool_round(*calls, preamble: Optional[str] = None) -> List[ModelDelta]:
    """Deltas requesting ``calls`` ((name, args) pairs); arguments arrive split in two fragments."""
    deltas = [ModelDelta(text=preamble)] if preamble else []
    for index, (name, args) in enumerate(calls):
        raw = json.dumps(args)
        half = len(raw) // 2
        deltas.append(ModelDelta(tool_calls=(
            ToolCallFragment(index=index, id=f"call_{index}_{name}", name=name, arguments=raw[:half]),
        )))
        deltas.append(ModelDelta(tool_calls=(ToolCallFragment(index=index, arguments=raw[half:]),)))
    return deltas


class ScriptedChatModel:
    """Plays one scripted round per ``stream`` call; records what it was sent."""

    def __init__(self, rounds=(), repeat_last=False, fail_with: Optional[Exception] = None):
        self.rounds = list(rounds)
        self.repeat_last = repeat_last
        self.fail_with = fail_with
        self.calls = []
        self.completion = "{}"

    async def stream(self, messages, tools=None):
        self.calls.append({"messages": copy.deepcopy(messages), "tools": tools})
        if self.fail_with is not None:
            raise self.fail_with

        if self.repeat_last and len(self.rounds) == 1:
            script = self.rounds[0]
        else:
            script = self.rounds.pop(0) if self.rounds else []
        for delta in script:
            yield delta

    async def complete(self, messages, max_tokens=500):
        self.calls.append({"messages": copy.deepcopy(messages), "tools": None})
        return self.completion


# ----------------------------------------------------------
# Fake tools
# ----------------------------------------------------------
HOTELS = [
    {
        "place_id": "hotel-gracery",
        "name": "Hotel Gracery Shinjuku",
        "address": "1-19-1 Kabukicho, Shinjuku",
        "coordinates": {"lat": 35.6951, "lng": 139.7020},
        "rating": 4.3,
        "review_count": 8200,
        "price": 180.0,
        "types": ["lodging"],
        "photos": [],
        "url": "https://example.com/gracery",
    },
    {
        "place_id": "hotel-okura",
        "name": "The Okura Tokyo",
        "address": "2-10-4 Toranomon, Minato",
        "coordinates": {"lat": 35.6672, "lng": 139.7432},
        "rating": 4.7,
        "price": 520.0,
        "types": ["lodging"],
        "photos": ["https://example.com/okura.jpg"],
        "url": "https://example.com/okura",
    },
]


class LocationArgs(BaseModel):
    location: str


class WeatherArgs(BaseModel):
    location: str


async def fake_search_hotels(args: LocationArgs, ctx: ToolContext) -> ToolResult:
    sources = [Citation(url=h["url"], title=h["name"], confidence=0.9) for h in HOTELS]
    return ToolResult.ok(HOTELS, sources)


async def broken_weather(args: WeatherArgs, ctx: ToolContext) -> ToolResult:
    raise RuntimeError("weather provider down")


def make_registry(*extra_tools: Tool, timeout: float = 2.0) -> ToolRegistry:
    registry = ToolRegistry(ToolContext(cache=ResultCache(ttl_seconds=60, max_entries=10)), timeout)
    registry.register(Tool("search_hotels", "Find hotels", LocationArgs, fake_search_hotels))
    registry.register(Tool("get_weather", "Weather forecast", WeatherArgs, broken_weather))
    for tool in extra_tools:
        registry.register(tool)
    return registry


# ----------------------------------------------------------
# Helpers
# ----------------------------------------------------------
def run(coro):
    return asyncio.run(coro)


async def collect(agen) -> list:
    return [item async for item in agen]


def parse_frames(body: str) -> List[dict]:
    frames = []
    for chunk in body.split("\n\n"):
        if chunk.startswith("data: "):
            frames.append(json.loads(chunk[len("data: "):]))
    return frames


# ----------------------------------------------------------
# Fixtures
# ----------------------------------------------------------
@pytest.fixture
def test_settings():
    return Settings(_env_file=None, max_tool_rounds=3, history_window=10, stream_queue_size=4)


@pytest.fixture
def memory(tmp_path):
    store = SQLiteMemory(str(tmp_path / "chat.sqlite3"))
    yield store
    store.close()


@pytest.fixture
def build_app(test_settings):
    def _build(model, memory=None, registry=None):
        app = FastAPI()
        app.include_router(chat_stream_router)
        app.state.orchestrator = ChatOrchestrator(model, registry or make_registry(), config=test_settings)
        app.state.memory = memory
        return app
    return _build
