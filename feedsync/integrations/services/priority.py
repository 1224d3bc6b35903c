import dataclasses
import logging
import threading
import time
import typing

from common import utils as common_utils
from feedsync import constants as feedsync_constants
from feedsync import messages as feedsync_messages

logger = logging.getLogger(__name__)

_LOG_PREFIX = '[SOURCE-PRIORITY]'


class SourcePriorityTable(typing.Protocol):
    def priority_of(self, source_name: str) -> typing.Optional[int]:
        ...


@dataclasses.dataclass
class _CacheEntry:
    priority: int
    cached_at: float


class PriorityResolver(object):
    """
    Resolves a source name to its record priority. Lower numbers win.

    Lookups are cached per key (trimmed, lower-cased name) for ``ttl_seconds``.
    Unknown sources, and sources without a valid priority, resolve to
    ``DEFAULT_PRIORITY`` so they never overwrite a recognized source.
    """

    def __init__(
        self,
        table: SourcePriorityTable,
        ttl_seconds: float = 300.0,
        clock: typing.Callable[[], float] = time.monotonic,
    ):
        self.table = table
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._cache: typing.Dict[str, _CacheEntry] = {}
        self._lock = threading.Lock()

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    def invalidate(self, source_name: typing.Optional[str]) -> bool:
        """Drops one cached priority. Returns whether an entry was cached."""
        cache_key = self._cache_key(source_name)
        if cache_key is None:
            return False

        with self._lock:
            removed = self._cache.pop(cache_key, None) is not None
        logger.info('{} Invalidated cached priority for "{}" (cached: {}).'.format(
            _LOG_PREFIX, source_name, removed
        ))
        return removed

    def preload(self, source_names: typing.Iterable[str]) -> None:
        for source_name in source_names:
            self.priority_of(source_name)

    def cleanup(self) -> int:
        """Removes expired entries and returns how many were dropped."""
        now = self.clock()
        with self._lock:
            expired = [key for key, entry in self._cache.items() if (now - entry.cached_at) >= self.ttl_seconds]
            for key in expired:
                del self._cache[key]

        if expired:
            logger.info('{} Removed {} expired cache entries.'.format(_LOG_PREFIX, len(expired)))
        return len(expired)

    def cache_stats(self) -> feedsync_messages.PriorityCacheStats:
        now = self.clock()
        with self._lock:
            entries = [
                feedsync_messages.PriorityCacheEntry(
                    source=key, priority=entry.priority, age_seconds=round(now - entry.cached_at, 3)
                )
                for key, entry in sorted(self._cache.items())
            ]
        return feedsync_messages.PriorityCacheStats(size=len(entries), entries=entries)

    def priority_of(self, source_name: typing.Optional[str]) -> int:
        cache_key = self._cache_key(source_name)
        if cache_key is None:
            return feedsync_constants.DEFAULT_PRIORITY

        now = self.clock()

        with self._lock:
            cached = self._cache.get(cache_key)
        if cached and (now - cached.cached_at) < self.ttl_seconds:
            return cached.priority

        try:
            raw_priority = self.table.priority_of(source_name.strip())
        except Exception as e:
            logger.error('{} Lookup failed for "{}". Error: {}'.format(
                _LOG_PREFIX, source_name, common_utils.get_exception_message(e)
            ))
            if cached:
                logger.warning('{} Using stale cached priority {} for "{}".'.format(
                    _LOG_PREFIX, cached.priority, source_name
                ))
                return cached.priority
            return feedsync_constants.DEFAULT_PRIORITY

        priority = self._validate(source_name, raw_priority)
        with self._lock:
            self._cache[cache_key] = _CacheEntry(priority=priority, cached_at=now)
        return priority

    @staticmethod
    def _cache_key(source_name: typing.Optional[str]) -> typing.Optional[str]:
        if not source_name or not isinstance(source_name, str) or not source_name.strip():
            return None
        return source_name.strip().lower()

    @staticmethod
    def _validate(source_name: str, raw_priority: typing.Optional[int]) -> int:
        if raw_priority is None:
            logger.info('{} No priority configured for "{}", using default {}.'.format(
                _LOG_PREFIX, source_name, feedsync_constants.DEFAULT_PRIORITY
            ))
            return feedsync_constants.DEFAULT_PRIORITY

        if isinstance(raw_priority, bool) or not isinstance(raw_priority, int) or raw_priority < feedsync_constants.MIN_PRIORITY:
            logger.warning('{} Invalid priority {} for "{}", using default {}.'.format(
                _LOG_PREFIX, raw_priority, source_name, feedsync_constants.DEFAULT_PRIORITY
            ))
            return feedsync_constants.DEFAULT_PRIORITY

        return raw_priority
