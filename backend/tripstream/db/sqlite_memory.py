# backend/tripstream/db/sqlite_memory.py

import json
import sqlite3
import time
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional

from tripstream.core.config_loader import settings
from tripstream.core.logger import get_logger
from tripstream.models.tool_models import utc_now_iso


log = get_logger("db")

# Retry configuration
MAX_RETRIES = 5
RETRY_DELAY = 0.1  # 100ms

# Columns stored as JSON text; decoded on read without the ``_json`` suffix
JSON_COLUMNS = ("tool_calls_json", "citations_json", "cards_json", "videos_json", "itinerary_json")


class SQLiteMemory:
    """Trips, conversations and chat messages. One connection shared across threads."""

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path or settings.db_path
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self.conn = sqlite3.connect(
            self.db_path,
            check_same_thread=False,
            timeout=30.0
        )
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.execute("PRAGMA synchronous=NORMAL")
        self.conn.execute("PRAGMA busy_timeout=30000")
        self._init_tables()

    def _execute_with_retry(self, operation, *args, **kwargs):
        """Execute database operation with retry logic for handling locked database"""
        for attempt in range(MAX_RETRIES):
            try:
                return operation(*args, **kwargs)
            except sqlite3.OperationalError as e:
                if "locked" in str(e).lower() and attempt < MAX_RETRIES - 1:
                    log.warning(f"Database locked, retry {attempt + 1}/{MAX_RETRIES}")
                    time.sleep(RETRY_DELAY * (attempt + 1))
                    continue
                raise

    def close(self):
        self.conn.close()

    # ----------------------------------------------------------------------
    # CREATE TABLES
    # ----------------------------------------------------------------------
    def _init_tables(self):
        cur = self.conn.cursor()

        cur.execute("""
        CREATE TABLE IF NOT EXISTS trips (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            title TEXT,
            destination TEXT,
            start_date TEXT,
            end_date TEXT,
            budget_min REAL,
            budget_max REAL,
            preferences_json TEXT,
            saved_places_count INTEGER DEFAULT 0,
            created_at TEXT
        );
        """)

        cur.execute("""
        CREATE TABLE IF NOT EXISTS conversations (
            id TEXT PRIMARY KEY,
            trip_id TEXT,
            title TEXT,
            created_at TEXT,
            updated_at TEXT,
            FOREIGN KEY (trip_id) REFERENCES trips(id) ON DELETE CASCADE
        );
        """)

        cur.execute("""
        CREATE TABLE IF NOT EXISTS messages (
            id TEXT PRIMARY KEY,
            trip_id TEXT NOT NULL,
            conversation_id TEXT,
            role TEXT,
            content TEXT,
            tool_calls_json TEXT,
            citations_json TEXT,
            cards_json TEXT,
            videos_json TEXT,
            itinerary_json TEXT,
            chat_mode TEXT,
            created_at TEXT,
            FOREIGN KEY (trip_id) REFERENCES trips(id) ON DELETE CASCADE
        );
        """)

        cur.execute("CREATE INDEX IF NOT EXISTS idx_trip_user ON trips(user_id);")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_msg_trip ON messages(trip_id);")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_conv_trip ON conversations(trip_id);")

        self.conn.commit()

    # ----------------------------------------------------------------------
    # TRIPS
    # ----------------------------------------------------------------------
    def create_trip(
        self, user_id: str, title: str,
        destination: Optional[str] = None,
        start_date: Optional[str] = None, end_date: Optional[str] = None,
        budget_min: Optional[float] = None, budget_max: Optional[float] = None,
        preferences: Optional[Dict[str, Any]] = None,
        saved_places_count: int = 0,
        trip_id: Optional[str] = None
    ) -> str:
        trip_id = trip_id or str(uuid.uuid4())

        def _create_trip():
            cur = self.conn.cursor()
            cur.execute("""
            INSERT INTO trips (id, user_id, title, destination, start_date, end_date,
                               budget_min, budget_max, preferences_json, saved_places_count, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                trip_id, str(user_id), title, destination,
                start_date, end_date,
                budget_min, budget_max,
                json.dumps(preferences or {}),
                saved_places_count,
                utc_now_iso(),
            ))
            self.conn.commit()
            return trip_id

        return self._execute_with_retry(_create_trip)

    def get_trip(self, trip_id: str) -> Optional[Dict[str, Any]]:
        cur = self.conn.cursor()
        cur.execute("SELECT * FROM trips WHERE id = ?", (trip_id,))
        row = cur.fetchone()
        if not row:
            return None
        trip = dict(row)
        trip["preferences"] = json.loads(trip.pop("preferences_json") or "{}")
        return trip

    # ----------------------------------------------------------------------
    # CONVERSATIONS
    # ----------------------------------------------------------------------
    def create_conversation(self, trip_id: str, title: str = "New conversation",
                            conversation_id: Optional[str] = None) -> str:
        conversation_id = conversation_id or str(uuid.uuid4())

        def _create_conversation():
            now = utc_now_iso()
            cur = self.conn.cursor()
            cur.execute("""
            INSERT INTO conversations (id, trip_id, title, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?)
            """, (conversation_id, trip_id, title, now, now))
            self.conn.commit()
            return conversation_id

        return self._execute_with_retry(_create_conversation)

    def get_conversation(self, conversation_id: str) -> Optional[Dict[str, Any]]:
        cur = self.conn.cursor()
        cur.execute("SELECT * FROM conversations WHERE id = ?", (conversation_id,))
        row = cur.fetchone()
        return dict(row) if row else None

    def touch_conversation(self, conversation_id: str):
        def _touch():
            cur = self.conn.cursor()
            cur.execute(
                "UPDATE conversations SET updated_at=? WHERE id = ?",
                (utc_now_iso(), conversation_id)
            )
            self.conn.commit()

        self._execute_with_retry(_touch)

    # ----------------------------------------------------------------------
    # MESSAGES
    # ----------------------------------------------------------------------
    def create_message(
        self, trip_id: str, role: str, content: str,
        conversation_id: Optional[str] = None,
        tool_calls: Optional[List[dict]] = None,
        citations: Optional[List[dict]] = None,
        cards: Optional[List[dict]] = None,
        videos: Optional[List[dict]] = None,
        itinerary: Optional[dict] = None,
        chat_mode: Optional[str] = None
    ) -> str:
        message_id = str(uuid.uuid4())

        def _dump(value):
            return json.dumps(value) if value else None

        def _create_message():
            cur = self.conn.cursor()
            cur.execute("""
            INSERT INTO messages (id, trip_id, conversation_id, role, content,
                                  tool_calls_json, citations_json, cards_json, videos_json,
                                  itinerary_json, chat_mode, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                message_id, trip_id, conversation_id, role, content,
                _dump(tool_calls), _dump(citations), _dump(cards), _dump(videos),
                _dump(itinerary), chat_mode,
                utc_now_iso(),
            ))
            self.conn.commit()
            return message_id

        return self._execute_with_retry(_create_message)

    def get_trip_messages(self, trip_id: str, limit: int = 1000) -> List[Dict[str, Any]]:
        cur = self.conn.cursor()
        cur.execute("""
        SELECT * FROM messages
        WHERE trip_id = ?
        ORDER BY created_at ASC, rowid ASC
        LIMIT ?
        """, (trip_id, limit))

        messages = []
        for r in cur.fetchall():
            item = dict(r)
            for column in JSON_COLUMNS:
                raw = item.pop(column)
                item[column[:-len("_json")]] = json.loads(raw) if raw else None
            messages.append(item)

        return messages
