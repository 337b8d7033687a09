from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tripstream.agents.chat_orchestrator import ChatOrchestrator
from tripstream.agents.intent_classifier import IntentClassifier
from tripstream.api.routes_chat_stream import router as chat_stream_router
from tripstream.core.config_loader import settings
from tripstream.core.llm import OpenAIChatModel
from tripstream.core.logger import logger
from tripstream.db.sqlite_memory import SQLiteMemory
from tripstream.tools.travel_tools import build_tool_context, build_tool_registry


# -------------------------------------------------------------
# LIFESPAN: process-wide collaborators live on app.state
# -------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    model = OpenAIChatModel()
    context = build_tool_context(settings, model)
    registry = build_tool_registry(context, settings)

    app.state.tool_cache = context.cache
    app.state.registry = registry
    app.state.chat_model = model
    app.state.orchestrator = ChatOrchestrator(model, registry, IntentClassifier(), settings)
    app.state.memory = SQLiteMemory(settings.db_path)

    logger.info(f"Trip chat backend ready ({len(registry.names())} tools, model={model.model})")
    yield

    app.state.memory.close()
    context.cache.clear()
    logger.info("Trip chat backend stopped")


app = FastAPI(
    title="Trip Chat Stream",
    description="AI trip-planning chat: tool-calling orchestration streamed over Server-Sent Events",
    version="1.0.0",
    lifespan=lifespan,
)

# -------------------------------------------------------------
# CORS
# -------------------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # update to frontend domain in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# -------------------------------------------------------------
# ROUTES
# -------------------------------------------------------------
app.include_router(chat_stream_router)


# -------------------------------------------------------------
# ROOT ENDPOINT
# -------------------------------------------------------------
@app.get("/")
def root():
    return {
        "status": "ok",
        "message": "Trip chat backend is running",
        "env": settings.environment
    }


# -------------------------------------------------------------
# RUN LOCAL
# -------------------------------------------------------------
if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=True
    )
