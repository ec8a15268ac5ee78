"""In-memory TTL cache for upstream GitHub data.

Keyed store with per-category expiry. Keys are built from a namespace and an
ordered argument tuple:

    enriched_repos:octocat:false:true
    repo_details:octocat:hello-world

An entry is present while ``now - timestamp < ttl``. Expired entries are
treated as absent and evicted on the read that finds them; a background task
also sweeps them periodically, which only bounds memory.

Concurrent misses on the same key are not de-duplicated: both callers compute
and both write, the later write wins. Under a single event loop no reader ever
sees a half-written entry.

Usage:
    cache = TTLCache()
    async with cache:  # starts/stops the sweeper
        cache.set("repo_details", TTLCategory.REPO_DETAILS, details, "octocat", "hello")
        cache.get("repo_details", "octocat", "hello")
"""

import asyncio
import contextlib
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

SWEEP_INTERVAL = 10 * 60  # seconds

_MINUTE = 60
_HOUR = 60 * _MINUTE


class TTLCategory(Enum):
    """Kinds of cached data; each maps to a fixed lifetime."""

    REPOS = "repos"
    REPO_DETAILS = "repo_details"
    COMMITS = "commits"
    ACTIVITY = "activity"
    CODE_FREQUENCY = "code_frequency"
    TREE = "tree"
    FILE_CONTENT = "file_content"
    ISSUES = "issues"
    PRS = "prs"
    RELEASES = "releases"
    LANGUAGES = "languages"


# Lifetimes in seconds. Stats endpoints are expensive upstream, so longest.
TTL_SECONDS: dict[TTLCategory, float] = {
    TTLCategory.REPOS: 1 * _HOUR,
    TTLCategory.REPO_DETAILS: 30 * _MINUTE,
    TTLCategory.COMMITS: 30 * _MINUTE,
    TTLCategory.ACTIVITY: 2 * _HOUR,
    TTLCategory.CODE_FREQUENCY: 2 * _HOUR,
    TTLCategory.TREE: 1 * _HOUR,
    TTLCategory.FILE_CONTENT: 30 * _MINUTE,
    TTLCategory.ISSUES: 15 * _MINUTE,
    TTLCategory.PRS: 15 * _MINUTE,
    TTLCategory.RELEASES: 1 * _HOUR,
    TTLCategory.LANGUAGES: 1 * _HOUR,
}


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    """One stored value. Replaced wholesale on every write."""

    data: T
    timestamp: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now - self.timestamp >= self.ttl


@dataclass(frozen=True)
class CacheEntryStats:
    key: str
    age: float
    ttl: float
    expired: bool


@dataclass
class CacheStats:
    size: int
    entries: list[CacheEntryStats] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "size": self.size,
            "entries": [
                {"key": e.key, "age": e.age, "ttl": e.ttl, "expired": e.expired}
                for e in self.entries
            ],
        }


def _format_arg(arg: Any) -> str:
    if isinstance(arg, bool):
        return "true" if arg else "false"
    return str(arg)


class TTLCache:
    """Memory-resident cache with per-category TTL.

    Owned by the service lifetime and injected where needed; there is no
    module-level instance.

    Args:
        sweep_interval: Seconds between background sweeps (default: 600)
        clock: Monotonic time source in seconds (injectable for tests)
    """

    def __init__(
        self,
        sweep_interval: float = SWEEP_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._entries: dict[str, CacheEntry[Any]] = {}
        self._sweeper: asyncio.Task | None = None

    @staticmethod
    def make_key(namespace: str, *args: Any) -> str:
        """Build ``namespace:arg1:arg2...``."""
        return f"{namespace}:{':'.join(_format_arg(a) for a in args)}"

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, namespace: str, *args: Any) -> Any | None:
        """Return the stored value, or None if absent or expired.

        An expired entry is evicted by this call.
        """
        key = self.make_key(namespace, *args)
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            del self._entries[key]
            logger.debug("Cache expired: %s", key)
            return None
        logger.debug("Cache hit: %s", key)
        return entry.data

    def set(self, namespace: str, category: TTLCategory, data: Any, *args: Any) -> None:
        """Store ``data`` under the key, replacing any previous entry."""
        key = self.make_key(namespace, *args)
        self._entries[key] = CacheEntry(
            data=data,
            timestamp=self._clock(),
            ttl=TTL_SECONDS[category],
        )
        logger.debug("Cache set: %s (ttl=%ss)", key, TTL_SECONDS[category])

    def invalidate(self, namespace: str, *args: Any) -> None:
        """Drop a single entry if present."""
        self._entries.pop(self.make_key(namespace, *args), None)

    def invalidate_pattern(self, prefix: str) -> int:
        """Drop every entry whose key starts with ``prefix``.

        Returns:
            Number of entries removed
        """
        doomed = [key for key in self._entries if key.startswith(prefix)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def clear(self) -> None:
        self._entries.clear()

    def sweep(self) -> int:
        """Remove all expired entries.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.info("Cleaned up %d expired cache entries", len(expired))
        return len(expired)

    def stats(self) -> CacheStats:
        """Snapshot of the cache contents (for debugging)."""
        now = self._clock()
        return CacheStats(
            size=len(self._entries),
            entries=[
                CacheEntryStats(
                    key=key,
                    age=now - entry.timestamp,
                    ttl=entry.ttl,
                    expired=entry.is_expired(now),
                )
                for key, entry in self._entries.items()
            ],
        )

    # --- Background sweeper ---

    @property
    def sweeping(self) -> bool:
        return self._sweeper is not None and not self._sweeper.done()

    def start(self) -> None:
        """Start the periodic sweep on the running event loop."""
        if self.sweeping:
            return
        self._sweeper = asyncio.get_running_loop().create_task(self._sweep_loop())

    async def close(self) -> None:
        """Stop the periodic sweep."""
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._sweeper
        self._sweeper = None

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            self.sweep()

    async def __aenter__(self) -> "TTLCache":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
