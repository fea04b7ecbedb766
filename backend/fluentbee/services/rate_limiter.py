"""Per-identity daily request quota.

Counters are keyed by ``identity:YYYY-MM-DD`` (UTC day), so a new
calendar day starts from zero without any reset job. The map is bounded:
once it holds ``max_keys`` entries, the oldest inserted key is evicted
before a new one is added. Under the ``anon`` fallback identity, callers
without a user id or address share one quota.
"""

import logging
import threading
from collections import OrderedDict
from collections.abc import Callable
from datetime import datetime, time, timedelta, timezone

from fluentbee.errors import RateLimitExceeded

logger = logging.getLogger(__name__)

DEFAULT_DAILY_LIMIT = 200
DEFAULT_MAX_KEYS = 1000
FALLBACK_IDENTITY = "anon"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def resolve_identity(
    user_id: str | None,
    forwarded_for: str | None = None,
    client_host: str | None = None,
) -> str:
    """Authenticated user id, else caller address, else the shared fallback."""
    if user_id:
        return f"uid:{user_id}"
    ip = ""
    if forwarded_for:
        ip = forwarded_for.split(",")[0].strip()
    if not ip and client_host:
        ip = client_host.strip()
    if ip:
        return f"ip:{ip}"
    return FALLBACK_IDENTITY


class RateLimiter:
    def __init__(
        self,
        limit: int = DEFAULT_DAILY_LIMIT,
        max_keys: int = DEFAULT_MAX_KEYS,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if limit < 1 or max_keys < 1:
            raise ValueError("limit and max_keys must be positive")
        self.limit = limit
        self.max_keys = max_keys
        self._clock = clock or _utcnow
        self._counts: OrderedDict[str, int] = OrderedDict()
        self._lock = threading.Lock()

    def _now(self) -> datetime:
        now = self._clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return now.astimezone(timezone.utc)

    def _key(self, identity: str, now: datetime) -> str:
        return f"{identity}:{now.date().isoformat()}"

    def allow(self, identity: str) -> bool:
        """Count one request; False (and no mutation) once the ceiling is hit."""
        key = self._key(identity, self._now())
        with self._lock:
            count = self._counts.get(key, 0)
            if count >= self.limit:
                return False
            if key not in self._counts and len(self._counts) >= self.max_keys:
                self._counts.popitem(last=False)
            self._counts[key] = count + 1
            return True

    def check(self, identity: str) -> None:
        """Like allow(), but raises RateLimitExceeded with the reset boundary."""
        if not self.allow(identity):
            reset_at = self.reset_at()
            logger.info("Rate limit hit for %s (limit %d)", identity, self.limit)
            raise RateLimitExceeded(identity, self.limit, reset_at)

    def reset_at(self) -> datetime:
        """Start of the next UTC calendar day."""
        tomorrow = self._now().date() + timedelta(days=1)
        return datetime.combine(tomorrow, time.min, tzinfo=timezone.utc)

    def count(self, identity: str) -> int:
        key = self._key(identity, self._now())
        with self._lock:
            return self._counts.get(key, 0)

    def __len__(self) -> int:
        with self._lock:
            return len(self._counts)
