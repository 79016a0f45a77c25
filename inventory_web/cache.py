"""
Keyed read cache for the client session.

Keys are tuples: ITEMS_KEY for the item list and movements_key(item_id)
for one item's history. Concurrent reads of a key share one fetch, and
mutations invalidate the keys they affect once the server accepted them.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Hashable, Tuple
import asyncio
import logging
import time

from . import config
from .errors import ApiError, ErrorKind

logger = logging.getLogger(__name__)

QueryKey = Tuple[Hashable, ...]
Fetcher = Callable[[], Awaitable[Any]]

ITEMS_KEY: QueryKey = ("items",)
MOVEMENTS_KEY: QueryKey = ("movements",)


def movements_key(item_id: int) -> QueryKey:
    return MOVEMENTS_KEY + (item_id,)


class FetchStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class QueryState:
    data: Any = None
    status: FetchStatus = FetchStatus.IDLE
    error: Exception | None = None
    updated_at: float | None = None # Clock reading of the last successful fetch
    invalidated: bool = False
    generation: int = 0 # Bumped on every invalidation

    @property
    def has_data(self) -> bool:
        return self.updated_at is not None


def retry_any_error(exc: Exception) -> bool:
    return True


def retry_transport_only(exc: Exception) -> bool:
    return isinstance(exc, ApiError) and exc.kind == ErrorKind.TRANSPORT


class QueryCache:
    def __init__(
        self,
        stale_seconds: float = config.CACHE_STALE_SECONDS,
        retry: int = config.CACHE_RETRY_COUNT,
        retry_delay: float = config.CACHE_RETRY_DELAY_SECONDS,
        should_retry: Callable[[Exception], bool] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.stale_seconds = stale_seconds
        self.retry = retry
        self.retry_delay = retry_delay
        if should_retry is None:
            should_retry = retry_transport_only if config.CACHE_RETRY_TRANSPORT_ONLY else retry_any_error
        self.should_retry = should_retry
        self._clock = clock
        self._entries: Dict[QueryKey, QueryState] = {}
        self._inflight: Dict[QueryKey, asyncio.Task] = {}

    def peek(self, key: QueryKey) -> QueryState:
        """Current state of a key without triggering a fetch. Never hand out the live entry."""
        entry = self._entries.get(key)
        if entry is None:
            return QueryState()
        return QueryState(**entry.__dict__)

    def is_fresh(self, key: QueryKey) -> bool:
        entry = self._entries.get(key)
        if entry is None or entry.status != FetchStatus.SUCCESS or entry.invalidated:
            return False
        return self._clock() - entry.updated_at < self.stale_seconds

    async def get(self, key: QueryKey, fetcher: Fetcher) -> Any:
        """
        Returns fresh cached data, or joins/starts the single in-flight fetch for key.
        Every caller waiting on the same fetch sees the same result or the same error.
        """
        if self.is_fresh(key):
            logger.debug(f"Cache hit for {key}")
            return self._entries[key].data

        task = self._inflight.get(key)
        if task is None:
            entry = self._entries.setdefault(key, QueryState())
            entry.status = FetchStatus.LOADING
            task = asyncio.get_running_loop().create_task(self._fetch(key, fetcher, entry.generation))
            self._inflight[key] = task
        else:
            logger.debug(f"Joining in-flight fetch for {key}")
        # A caller that stops waiting must not cancel the fetch for everyone else
        return await asyncio.shield(task)

    async def _fetch(self, key: QueryKey, fetcher: Fetcher, generation: int) -> Any:
        attempt = 0
        try:
            while True:
                try:
                    logger.info(f"Fetching {key} (attempt {attempt + 1})")
                    data = await fetcher()
                    break
                except Exception as e:
                    if attempt < self.retry and self.should_retry(e):
                        attempt += 1
                        logger.warning(f"Fetch for {key} failed ({e}); retrying in {self.retry_delay}s")
                        await asyncio.sleep(self.retry_delay)
                        continue
                    logger.error(f"Fetch for {key} failed after {attempt + 1} attempt(s): {e}")
                    entry = self._entries.get(key)
                    if entry is not None and entry.generation == generation:
                        # Prior data stays readable, flagged by the error
                        entry.status = FetchStatus.ERROR
                        entry.error = e
                    raise
        finally:
            if self._inflight.get(key) is asyncio.current_task():
                del self._inflight[key]

        entry = self._entries.get(key)
        if entry is not None and entry.generation == generation:
            entry.data = data
            entry.status = FetchStatus.SUCCESS
            entry.error = None
            entry.updated_at = self._clock()
            entry.invalidated = False
        else:
            logger.debug(f"Discarding result for {key}; it was invalidated while in flight")
        return data

    def invalidate(self, *keys: QueryKey) -> int:
        """
        Marks every entry whose key starts with one of keys as stale.
        The next get() for those entries refetches. Returns how many matched.
        """
        matched = 0
        for entry_key, entry in self._entries.items():
            if any(entry_key[:len(k)] == k for k in keys):
                entry.invalidated = True
                entry.generation += 1
                # A fetch started before the mutation may carry old data; later readers start anew
                self._inflight.pop(entry_key, None)
                matched += 1
        logger.info(f"Invalidated {matched} cache entr{'y' if matched == 1 else 'ies'} for {list(keys)}")
        return matched

    async def clear(self):
        """Drops every entry and cancels outstanding fetches. Called when the session ends."""
        tasks = list(self._inflight.values())
        self._inflight.clear()
        self._entries.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)


# --- Mutation observers ---

def invalidate_after_item_created(cache: QueryCache, item) -> None:
    cache.invalidate(ITEMS_KEY)


def invalidate_after_movement_created(cache: QueryCache, movement) -> None:
    # Stock of the item changed as well as its history
    cache.invalidate(ITEMS_KEY, movements_key(movement.item_id))
