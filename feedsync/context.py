import contextlib
import dataclasses
import logging
import threading
import typing

from django.conf import settings

from feedsync import constants as feedsync_constants
from feedsync import enums as feedsync_enums
from feedsync import stores as feedsync_stores
from feedsync.integrations.services import fetcher as fetcher_services
from feedsync.integrations.services import priority as priority_services

logger = logging.getLogger(__name__)

_LOG_PREFIX = '[SYNC-CONTEXT]'


class JobSlots(object):
    """
    Process-wide running flags shared by every per-source scheduler.

    A (source, job) pair never runs twice at once. Inventory runs of any
    source defer to a catalog run in progress, and catalog runs of different
    sources take turns on a single catalog slot so the priority checks of one
    run never interleave with the writes of another.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._running = set()
        self._catalog_slot = threading.Lock()

    def claim(self, source_slug: str, job_type: feedsync_enums.JobType) -> bool:
        with self._lock:
            if (source_slug, job_type) in self._running:
                return False
            if job_type == feedsync_enums.JobType.INVENTORY and self._catalog_claimed():
                return False
            self._running.add((source_slug, job_type))
            return True

    def release(self, source_slug: str, job_type: feedsync_enums.JobType) -> None:
        with self._lock:
            self._running.discard((source_slug, job_type))

    def is_running(self, source_slug: str, job_type: feedsync_enums.JobType) -> bool:
        with self._lock:
            return (source_slug, job_type) in self._running

    @contextlib.contextmanager
    def catalog_slot(self, source_slug: str) -> typing.Iterator[None]:
        if not self._catalog_slot.acquire(blocking=False):
            logger.info('{} Catalog sync for {} waiting for another catalog sync to finish.'.format(
                _LOG_PREFIX, source_slug
            ))
            self._catalog_slot.acquire()
        try:
            yield
        finally:
            self._catalog_slot.release()

    def _catalog_claimed(self) -> bool:
        return any(job_type == feedsync_enums.JobType.CATALOG for _, job_type in self._running)


@dataclasses.dataclass
class SyncContext:
    """Everything a sync run needs, built once at process start and passed along."""

    sources: feedsync_stores.SourceDirectory
    config_provider: feedsync_stores.RemoteConfigProvider
    catalog_store: feedsync_stores.CatalogStore
    inventory_store: feedsync_stores.InventoryStore
    snapshot_store: feedsync_stores.SnapshotStore
    state_store: feedsync_stores.JobStateStore
    priority_resolver: priority_services.PriorityResolver
    fetcher: fetcher_services.FeedFetcher
    default_catalog_sync_time: str = feedsync_constants.DEFAULT_CATALOG_SYNC_TIME
    default_inventory_interval_minutes: int = feedsync_constants.DEFAULT_INVENTORY_INTERVAL_MINUTES
    timezone: str = 'UTC'
    slots: JobSlots = dataclasses.field(default_factory=JobSlots)


def build_snapshot_store() -> feedsync_stores.SnapshotStore:
    backend = feedsync_enums.SnapshotBackend(settings.FEEDSYNC_SNAPSHOT_BACKEND)
    if backend == feedsync_enums.SnapshotBackend.DATABASE:
        return feedsync_stores.DjangoSnapshotStore()
    return feedsync_stores.FileSnapshotStore(settings.FEEDSYNC_SNAPSHOT_DIR)


def build_default_context() -> SyncContext:
    logger.info('{} Building sync context (snapshot backend: {}).'.format(
        _LOG_PREFIX, settings.FEEDSYNC_SNAPSHOT_BACKEND
    ))
    return SyncContext(
        sources=feedsync_stores.DjangoSourceDirectory(),
        config_provider=feedsync_stores.DjangoRemoteConfigProvider(),
        catalog_store=feedsync_stores.DjangoCatalogStore(),
        inventory_store=feedsync_stores.DjangoInventoryStore(),
        snapshot_store=build_snapshot_store(),
        state_store=feedsync_stores.DjangoJobStateStore(),
        priority_resolver=priority_services.PriorityResolver(
            feedsync_stores.DjangoSourcePriorityTable(),
            ttl_seconds=settings.FEEDSYNC_PRIORITY_CACHE_TTL,
        ),
        fetcher=fetcher_services.FeedFetcher(
            max_attempts=settings.FEEDSYNC_FETCH_MAX_ATTEMPTS,
            backoff_base_seconds=settings.FEEDSYNC_FETCH_BACKOFF_BASE,
            timeout=settings.FEEDSYNC_FETCH_TIMEOUT,
            downloads_dir=settings.FEEDSYNC_DOWNLOADS_DIR,
        ),
        default_catalog_sync_time=settings.FEEDSYNC_DEFAULT_CATALOG_SYNC_TIME,
        default_inventory_interval_minutes=settings.FEEDSYNC_DEFAULT_INVENTORY_INTERVAL_MINUTES,
        timezone=settings.TIME_ZONE,
    )
