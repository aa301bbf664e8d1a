import time
from typing import Dict, List, Tuple

from dashboard.utils.logger import get_logger

logger = get_logger("mail.rate_limiter")

MAX_REQUESTS = 30
WINDOW_SECONDS = 60
MAX_ENTRIES = 10000


class RateLimiter:
    """Sliding-window limiter keyed by ``mail:{operation}:{user}:{account}``."""

    def __init__(self, max_requests: int = MAX_REQUESTS, window_seconds: float = WINDOW_SECONDS,
                 max_entries: int = MAX_ENTRIES):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.max_entries = max_entries
        self._requests: Dict[str, List[float]] = {}

    def check(self, key: str) -> Tuple[bool, int]:
        """Records a request for key. Returns (allowed, remaining)."""
        now = time.monotonic()
        window_start = now - self.window_seconds

        timestamps = [t for t in self._requests.get(key, []) if t > window_start]
        if len(timestamps) >= self.max_requests:
            self._requests[key] = timestamps
            return False, 0

        timestamps.append(now)
        self._requests[key] = timestamps

        if len(self._requests) > self.max_entries:
            self.cleanup()

        return True, self.max_requests - len(timestamps)

    def reset(self, key: str) -> None:
        self._requests.pop(key, None)

    def cleanup(self) -> int:
        """Drops keys with no requests inside the window."""
        window_start = time.monotonic() - self.window_seconds
        stale = [k for k, ts in self._requests.items() if not ts or ts[-1] <= window_start]
        for key in stale:
            del self._requests[key]
        if stale:
            logger.debug(f"Removed {len(stale)} stale rate limit keys")
        return len(stale)

    def size(self) -> int:
        return len(self._requests)


def rate_limit_key(operation: str, user_id: int, account_id: int) -> str:
    return f"mail:{operation}:{user_id}:{account_id}"


rate_limiter = RateLimiter()
