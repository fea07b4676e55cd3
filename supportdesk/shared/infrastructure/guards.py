"""
Request Guards
==============

Rate limiting and duplicate suppression over an injected key-value store.

Two store implementations share one interface:
- InMemoryGuardStore: lock-guarded dicts, process-local, injectable clock
- RedisGuardStore: shared state across workers via redis.asyncio

The guards only ever talk to `IGuardStore`, so the same logic runs in tests
against a fake clock and in production against Redis.
"""

import hashlib
import json
import math
import re
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

import redis.asyncio as redis

from supportdesk.config import Settings, settings as default_settings
from supportdesk.core import DuplicateSubmissionException, RateLimitedException
from supportdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class WindowState:
    """Counter state of a fixed window after an increment."""
    count: int
    reset_in: float  # seconds until the window closes


class IGuardStore(ABC):
    """Key-value operations the guards need."""

    @abstractmethod
    async def increment_window(self, key: str, window_seconds: float) -> WindowState:
        """Count one hit in the key's active window, opening a new one if expired."""

    @abstractmethod
    async def add_if_absent(self, key: str, ttl_seconds: float) -> bool:
        """Mark the key for `ttl_seconds`; False if an unexpired mark exists."""

    @abstractmethod
    async def discard(self, key: str) -> None:
        """Drop the key's mark, if any."""

    async def close(self) -> None:
        """Release resources."""


class InMemoryGuardStore(IGuardStore):
    """
    Process-local store.

    Both maps are guarded by one lock and never awaited under it. Expired
    entries are evicted once a map grows past `prune_threshold`.
    """

    def __init__(
        self,
        prune_threshold: int = 1000,
        clock: Callable[[], float] = time.monotonic
    ):
        self._prune_threshold = prune_threshold
        self._clock = clock
        self._lock = threading.Lock()
        self._windows: Dict[str, Tuple[int, float]] = {}
        self._marks: Dict[str, float] = {}

    async def increment_window(self, key: str, window_seconds: float) -> WindowState:
        now = self._clock()
        with self._lock:
            count, reset_at = self._windows.get(key, (0, 0.0))
            if reset_at <= now:
                count, reset_at = 0, now + window_seconds
            count += 1
            self._windows[key] = (count, reset_at)

            if len(self._windows) > self._prune_threshold:
                self._windows = {k: v for k, v in self._windows.items() if v[1] > now}

        return WindowState(count=count, reset_in=reset_at - now)

    async def add_if_absent(self, key: str, ttl_seconds: float) -> bool:
        now = self._clock()
        with self._lock:
            expires_at = self._marks.get(key)
            if expires_at is not None and expires_at > now:
                return False

            self._marks[key] = now + ttl_seconds

            if len(self._marks) > self._prune_threshold:
                self._marks = {k: v for k, v in self._marks.items() if v > now}

        return True

    async def discard(self, key: str) -> None:
        with self._lock:
            self._marks.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows) + len(self._marks)


class RedisGuardStore(IGuardStore):
    """
    Redis-backed store shared by every worker.

    Windows use INCR + EXPIRE; marks use SET NX PX.
    """

    def __init__(self, client: "redis.Redis"):
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisGuardStore":
        client = redis.from_url(url, encoding="utf-8", decode_responses=True)
        logger.info("Guard store using Redis")
        return cls(client)

    async def increment_window(self, key: str, window_seconds: float) -> WindowState:
        window_ms = max(1, int(window_seconds * 1000))
        count = await self._client.incr(key)
        if count == 1:
            await self._client.pexpire(key, window_ms)

        ttl_ms = await self._client.pttl(key)
        if ttl_ms < 0:
            # Key lost its expiry (e.g. crash between INCR and PEXPIRE)
            await self._client.pexpire(key, window_ms)
            ttl_ms = window_ms

        return WindowState(count=int(count), reset_in=ttl_ms / 1000)

    async def add_if_absent(self, key: str, ttl_seconds: float) -> bool:
        added = await self._client.set(key, "1", nx=True, px=max(1, int(ttl_seconds * 1000)))
        return bool(added)

    async def discard(self, key: str) -> None:
        await self._client.delete(key)

    async def close(self) -> None:
        await self._client.aclose()


def build_guard_store(config: Optional[Settings] = None) -> IGuardStore:
    """Redis when `redis_url` is set, otherwise a process-local store."""
    config = config or default_settings
    if config.redis_url:
        return RedisGuardStore.from_url(config.redis_url)
    return InMemoryGuardStore(prune_threshold=config.dedupe_prune_threshold)


# ========== Guards ==========

@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a rate limit check."""
    allowed: bool
    remaining: int
    retry_after: int  # whole seconds until the window resets, >= 1 when rejected


class RateLimiter:
    """
    Fixed-window rate limiter.

    A request is allowed while the window's count stays within
    `max_requests`; the window reopens once its reset time passes.
    """

    def __init__(
        self,
        store: IGuardStore,
        max_requests: int,
        window_seconds: float,
        enabled: bool = True
    ):
        self._store = store
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.enabled = enabled

    async def check(self, key: str) -> RateLimitDecision:
        if not self.enabled:
            return RateLimitDecision(allowed=True, remaining=self.max_requests, retry_after=0)

        state = await self._store.increment_window(key, self.window_seconds)
        allowed = state.count <= self.max_requests
        return RateLimitDecision(
            allowed=allowed,
            remaining=max(0, self.max_requests - state.count),
            retry_after=0 if allowed else max(1, math.ceil(state.reset_in)),
        )

    async def enforce(self, key: str) -> RateLimitDecision:
        """Check and raise RateLimitedException when over the limit."""
        decision = await self.check(key)
        if not decision.allowed:
            logger.info("Rate limit exceeded", extra={"limit_key": key, "retry_after": decision.retry_after})
            raise RateLimitedException(decision.retry_after)
        return decision

    @staticmethod
    def ticket_key(client_ip: Optional[str]) -> str:
        return f"ticket:{client_ip or 'global'}"

    @staticmethod
    def telemetry_key(client_ip: Optional[str], session_id: Optional[str]) -> str:
        return f"telemetry:{client_ip or 'anon'}:{session_id or 'no-session'}"


class DuplicateGuard:
    """
    Rejects a repeat of the same key inside `ttl_seconds`.

    The first-seen mark is only written when the key is not a duplicate,
    so a stream of repeats cannot extend the window.
    """

    def __init__(self, store: IGuardStore, ttl_seconds: float):
        self._store = store
        self.ttl_seconds = ttl_seconds

    async def is_duplicate(self, key: str) -> bool:
        return not await self._store.add_if_absent(key, self.ttl_seconds)

    async def enforce(self, key: str) -> None:
        if await self.is_duplicate(key):
            logger.info("Duplicate submission rejected", extra={"dedupe_key": key[:60]})
            raise DuplicateSubmissionException()

    async def release(self, key: str) -> None:
        """Forget a key whose submission was not stored."""
        await self._store.discard(key)

    @staticmethod
    def ticket_key(app_slug: str, client_ip: Optional[str], message: str) -> str:
        prefix = _WHITESPACE.sub("", message[:100].lower())
        return f"dedupe:{app_slug}:{client_ip or 'anon'}:{prefix}"

    @staticmethod
    def telemetry_key(
        app_slug: str,
        event_type: str,
        event_data: Any,
        client_ip: Optional[str],
        session_id: Optional[str]
    ) -> str:
        payload = json.dumps(
            [app_slug, event_type, event_data, client_ip or "", session_id or ""],
            sort_keys=True,
            default=str,
        )
        return "telem:" + hashlib.sha1(payload.encode("utf-8")).hexdigest()[:20]
