# backend/tripstream/tools/result_cache.py

import math
import time
from typing import Any, Callable, Dict, Hashable, Optional, Tuple

from tripstream.core.logger import get_logger


log = get_logger("cache")


class ResultCache:
    """
    In-memory TTL cache for tool results, keyed by query.

    One instance is built per process (see ``main.lifespan``) and handed to
    tool executors through ``ToolContext``. Concurrent requests may race to
    fill the same key; the loser simply overwrites with an equivalent value.
    """

    def __init__(
        self,
        ttl_seconds: float,
        max_entries: int,
        name: str = "tools",
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self.name = name
        self._clock = clock
        self._entries: Dict[Hashable, Tuple[float, Any]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: Hashable) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None

        stored_at, value = entry
        if self._clock() - stored_at > self.ttl_seconds:
            self._entries.pop(key, None)
            return None
        return value

    def set(self, key: Hashable, value: Any) -> None:
        if key not in self._entries and len(self._entries) >= self.max_entries:
            self._evict_oldest(math.ceil(self.max_entries * 0.1))
        self._entries[key] = (self._clock(), value)

    def clear(self) -> None:
        self._entries.clear()

    def _evict_oldest(self, count: int) -> None:
        oldest = sorted(self._entries.items(), key=lambda item: item[1][0])[:count]
        for key, _ in oldest:
            self._entries.pop(key, None)
        log.debug(f"[{self.name}] evicted {len(oldest)} entries")
