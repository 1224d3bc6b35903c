import pytest

from feedsync import enums as feedsync_enums
from feedsync import messages as feedsync_messages
from feedsync.context import SyncContext
from feedsync.integrations.services import fetcher as fetcher_services
from feedsync.integrations.services import priority as priority_services
from tests import fakes


@pytest.fixture()
def source() -> feedsync_messages.SourceInfo:
    return feedsync_messages.SourceInfo(id=1, slug='acme', name='Acme')


@pytest.fixture()
def feed_client() -> fakes.FakeFeedClient:
    return fakes.FakeFeedClient({})


@pytest.fixture()
def sync_context(source, feed_client) -> SyncContext:
    return SyncContext(
        sources=fakes.FakeSourceDirectory([source]),
        config_provider=fakes.FakeRemoteConfigProvider({
            (source.slug, feedsync_enums.JobType.CATALOG): fakes.make_remote_config('catalog.csv'),
            (source.slug, feedsync_enums.JobType.INVENTORY): fakes.make_remote_config('inventory.csv'),
        }),
        catalog_store=fakes.FakeCatalogStore(),
        inventory_store=fakes.FakeInventoryStore(),
        snapshot_store=fakes.FakeSnapshotStore(),
        state_store=fakes.FakeJobStateStore(),
        priority_resolver=priority_services.PriorityResolver(fakes.FakePriorityTable({'Acme': 5})),
        fetcher=fetcher_services.FeedFetcher(
            max_attempts=3,
            backoff_base_seconds=0,
            client_factory=fakes.FakeClientFactory(feed_client),
            sleep=lambda seconds: None,
        ),
    )
