# backend/tripstream/core/config_loader.py

from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict


BACKEND_DIR = Path(__file__).resolve().parents[2]


class Settings(BaseSettings):
    OPENAI_API_KEY: str = ""
    GOOGLE_MAPS_API_KEY: str = ""
    SERPAPI_KEY: str = ""
    YOUTUBE_API_KEY: str = ""
    GOOGLE_SEARCH_API_KEY: str = ""
    GOOGLE_SEARCH_ENGINE_ID: str = ""
    JWT_SECRET_KEY: str = "supersecret"

    chat_model: str = "gpt-4o-mini"
    chat_temperature: float = 0.7
    access_token_expire_minutes: int = 1440

    # orchestration limits
    max_tool_rounds: int = 3
    tool_timeout_seconds: float = 15.0
    history_window: int = 10
    stream_queue_size: int = 16

    # shared tool result cache
    tool_cache_ttl_seconds: int = 3600
    tool_cache_max_entries: int = 500

    db_path: str = str(BACKEND_DIR / "data.sqlite3")
    environment: str = "development"

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )


settings = Settings()
