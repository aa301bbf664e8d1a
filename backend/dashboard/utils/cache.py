"""In-process TTL cache shared by the mail module and the OpenRouter model list."""

import asyncio
import copy
import fnmatch
import time
from typing import Any, Dict, Optional, Tuple

from dashboard.utils.logger import get_logger

logger = get_logger("cache")


class TTLCache:
    """Key/value cache with per-entry expiry.

    Attributes:
        max_size: Maximum number of entries (0 = unlimited). The oldest entry
            is evicted first once the limit is reached.
        default_ttl: Expiry used when ``set`` is called without a ttl.
    """

    def __init__(self, max_size: int = 0, default_ttl: float = 300) -> None:
        self._entries: Dict[str, Tuple[float, Any]] = {}
        self._max_size = max_size
        self._default_ttl = default_ttl
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[Any]:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at <= time.monotonic():
                del self._entries[key]
                return None
            return copy.deepcopy(value)

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> bool:
        ttl = self._default_ttl if ttl is None else ttl
        async with self._lock:
            if key not in self._entries and self._max_size > 0 and len(self._entries) >= self._max_size:
                oldest_key = next(iter(self._entries))
                self._entries.pop(oldest_key)
            self._entries[key] = (time.monotonic() + ttl, copy.deepcopy(value))
        return True

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self._entries.pop(key, None) is not None

    async def delete_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob pattern such as ``mail:messages:1:*``."""
        async with self._lock:
            keys = [k for k in self._entries if fnmatch.fnmatchcase(k, pattern)]
            for key in keys:
                del self._entries[key]
        if keys:
            logger.debug(f"Invalidated {len(keys)} cache keys for pattern {pattern}")
        return len(keys)

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()

    def size(self) -> int:
        return len(self._entries)


cache = TTLCache(max_size=10000)
