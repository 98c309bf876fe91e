"""
Per-process response cache

TTL-keyed memoization plus in-flight request collapsing for the aggregate
endpoints. While a computation for a key is running, concurrent callers for
the same key await that computation instead of starting their own.

The cache is owned by the service root and passed to whoever needs it;
there is no module-level instance.
"""
import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Union

from traderpro.logger import logger


TtlSpec = Union[float, Callable[[Any], float]]


def build_cache_key(prefix: str, **parts: Any) -> str:
    """Stable key from every input that affects the result.

    Parts are sorted by name; booleans render as 0/1 and ``None`` as empty.
    """
    rendered = []
    for name in sorted(parts):
        value = parts[name]
        if isinstance(value, bool):
            value = int(value)
        elif value is None:
            value = ""
        rendered.append(f"{name}={value}")
    return f"{prefix}:" + ":".join(rendered)


class ResponseCache:
    """TTL cache with in-flight collapsing (single event loop)."""

    def __init__(self, name: str, default_ttl_seconds: float = 60.0, max_entries: int = 512,
                 clock: Callable[[], float] = time.monotonic):
        self.name = name
        self.default_ttl = default_ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: Dict[str, Tuple[float, Any]] = {}
        self._in_flight: Dict[str, asyncio.Task] = {}
        self.hits = 0
        self.misses = 0
        self.collapsed = 0

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        ttl = self.default_ttl if ttl_seconds is None else ttl_seconds
        if ttl <= 0:
            return
        if len(self._entries) >= self.max_entries:
            self._evict()
        self._entries[key] = (self._clock() + ttl, value)

    def _evict(self) -> None:
        now = self._clock()
        for key in [k for k, (exp, _) in self._entries.items() if exp <= now]:
            del self._entries[key]
        while len(self._entries) >= self.max_entries:
            # Oldest insertion first
            del self._entries[next(iter(self._entries))]

    def invalidate(self, key: Optional[str] = None) -> None:
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    async def get_or_compute(
        self,
        key: str,
        compute: Callable[[], Awaitable[Any]],
        ttl: Optional[TtlSpec] = None,
    ) -> Any:
        """
        Return the cached value for ``key``, or compute it once.

        Args:
            key: Cache key (see ``build_cache_key``)
            compute: Zero-arg coroutine factory
            ttl: Seconds, or a callable mapping the computed value to seconds

        Exceptions from ``compute`` propagate to every waiter and are not cached.
        """
        cached = self.get(key)
        if cached is not None:
            self.hits += 1
            return cached

        task = self._in_flight.get(key)
        if task is not None:
            self.collapsed += 1
            logger.debug(f"[{self.name}] joining in-flight computation for {key}")
            # Shield so one waiter's cancellation does not cancel the shared work
            return await asyncio.shield(task)

        self.misses += 1
        task = asyncio.ensure_future(compute())
        self._in_flight[key] = task

        def _finished(done: asyncio.Task):
            self._in_flight.pop(key, None)
            if done.cancelled() or done.exception() is not None:
                return
            value = done.result()
            seconds = ttl(value) if callable(ttl) else ttl
            self.set(key, value, seconds)

        task.add_done_callback(_finished)
        return await asyncio.shield(task)

    def stats(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "entries": len(self._entries),
            "inFlight": len(self._in_flight),
            "hits": self.hits,
            "misses": self.misses,
            "collapsed": self.collapsed,
        }
