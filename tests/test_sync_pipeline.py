import pytest

from feedsync import enums as feedsync_enums
from feedsync import exceptions as feedsync_exceptions
from feedsync import messages as feedsync_messages
from feedsync import stores as feedsync_stores
from feedsync.integrations.clients.feeds import exceptions as feeds_exceptions
from feedsync.integrations.services import parser
from feedsync.integrations.services import sync
from tests import fakes

CATALOG_HEADER = 'universal_product_code,short_description,product_name,long_description,category_description'
INVENTORY_HEADER = 'Product,UPC,Qty Avail'

CATALOG_KEY = feedsync_stores.snapshot_key('acme', feedsync_enums.JobType.CATALOG)
INVENTORY_KEY = feedsync_stores.snapshot_key('acme', feedsync_enums.JobType.INVENTORY)


def test_first_catalog_run_processes_every_record(sync_context, source, feed_client) -> None:
    document = '\n'.join([
        CATALOG_HEADER,
        '111,Brake Pad,Brembo P1,Pads,Brakes',
        '222,Filter,Bosch F2,Filters,Filters',
    ])
    feed_client.responses['catalog.csv'] = document

    outcome = sync.SyncPipeline(sync_context, source).run_catalog()

    assert outcome.result.success is True
    assert outcome.result.stats == feedsync_messages.SyncStats(total_records=2, records_added=2)
    assert outcome.document == document
    assert sync_context.catalog_store.records['111'].source == 'Acme'
    # the caller advances the snapshot
    assert sync_context.snapshot_store.writes == []


def test_unchanged_document_skips_processing(sync_context, source, feed_client) -> None:
    document = '\n'.join([CATALOG_HEADER, '111,Brake Pad,Brembo P1,Pads,Brakes'])
    feed_client.responses['catalog.csv'] = document
    sync_context.snapshot_store.snapshots[CATALOG_KEY] = document

    outcome = sync.SyncPipeline(sync_context, source).run_catalog()

    assert outcome.result.success is True
    assert outcome.result.message == 'No changes detected - skipped processing 1 records'
    assert outcome.result.stats == feedsync_messages.SyncStats(total_records=1, records_skipped=1)
    assert sync_context.catalog_store.inserts == []


def test_only_changed_lines_are_reconciled(sync_context, source, feed_client) -> None:
    previous = '\n'.join([
        CATALOG_HEADER,
        '111,Brake Pad,Brembo P1,Pads,Brakes',
        '222,Filter,Bosch F2,Filters,Filters',
    ])
    for record in parser.parse_catalog_document(previous).records:
        sync_context.catalog_store.insert(feedsync_messages.CatalogRecord(
            upc=record.upc,
            name=record.name,
            brand=record.brand,
            category=record.category,
            description=record.description,
            manufacturer_part_number=record.manufacturer_part_number,
            source='Acme',
        ))
    sync_context.snapshot_store.snapshots[CATALOG_KEY] = previous
    feed_client.responses['catalog.csv'] = '\n'.join([
        CATALOG_HEADER,
        '111,Brake Pad,Brembo P1,Pads,Brakes',
        '222,Oil Filter,Bosch F2,Filters,Filters',
        '333,Wiper,Bosch W3,Wipers,Wipers',
    ])

    outcome = sync.SyncPipeline(sync_context, source).run_catalog()

    assert outcome.result.stats == feedsync_messages.SyncStats(
        total_records=3, records_updated=1, records_added=1
    )
    assert sync_context.catalog_store.records['222'].name == 'Oil Filter'


def test_catalog_run_clears_priority_cache(sync_context, source, feed_client) -> None:
    table = fakes.FakePriorityTable({'Acme': 5, 'Other': 3})
    sync_context.priority_resolver.table = table
    assert sync_context.priority_resolver.priority_of('Acme') == 5
    table.priorities['acme'] = 1

    sync_context.catalog_store.insert(feedsync_messages.CatalogRecord(upc='111', name='Old', source='Other'))
    feed_client.responses['catalog.csv'] = CATALOG_HEADER + '\n111,New,Brand P1,Desc,Cat'

    outcome = sync.SyncPipeline(sync_context, source).run_catalog()

    assert outcome.result.stats.records_updated == 1
    assert sync_context.catalog_store.records['111'].source == 'Acme'


def test_inventory_run_counts_row_problems(sync_context, source, feed_client) -> None:
    feed_client.responses['inventory.csv'] = '\n'.join([
        INVENTORY_HEADER,
        'SKU1,111,5',
        ',222,3',
        'SKU3,333,1,unexpected',
        'SKU4,444,0',
    ])

    outcome = sync.SyncPipeline(sync_context, source).run_inventory()

    assert outcome.result.success is True
    assert outcome.result.stats == feedsync_messages.SyncStats(
        total_records=4, records_added=2, records_skipped=1, records_errors=1
    )
    assert sync_context.inventory_store.quantity_of(source.id, 'SKU1') == 5


def test_inventory_uses_source_column_map(sync_context, source, feed_client) -> None:
    source.inventory_column_map = {'vendor_sku': 'Item', 'quantity': 'OnHand', 'upc': None}
    feed_client.responses['inventory.csv'] = 'Item,OnHand\nABC,12'

    sync.SyncPipeline(sync_context, source).run_inventory()

    assert sync_context.inventory_store.quantity_of(source.id, 'ABC') == 12


def test_missing_remote_config_raises(sync_context, source) -> None:
    sync_context.config_provider.configs.clear()

    with pytest.raises(feedsync_exceptions.SyncConfigurationError):
        sync.SyncPipeline(sync_context, source).run_inventory()


def test_fetch_failure_raises_and_keeps_partial_stats(sync_context, source, feed_client) -> None:
    feed_client.responses['inventory.csv'] = [feeds_exceptions.FeedConnectionError('reset')]
    stats = feedsync_messages.SyncStats()

    with pytest.raises(feeds_exceptions.FeedFetchError):
        sync.SyncPipeline(sync_context, source).run(feedsync_enums.JobType.INVENTORY, stats)

    assert stats == feedsync_messages.SyncStats()


def test_inventory_write_failure_raises(sync_context, source, feed_client) -> None:
    sync_context.inventory_store.fail_on_write = True
    feed_client.responses['inventory.csv'] = INVENTORY_HEADER + '\nSKU1,111,5'
    stats = feedsync_messages.SyncStats()

    with pytest.raises(RuntimeError):
        sync.SyncPipeline(sync_context, source).run(feedsync_enums.JobType.INVENTORY, stats)

    assert stats.total_records == 1


@pytest.mark.parametrize('document', ['', '\n', ' \r\n\r\n'])
def test_empty_document_raises_before_anything_is_written(sync_context, source, feed_client, document) -> None:
    feed_client.responses['inventory.csv'] = document
    sync_context.snapshot_store.snapshots[INVENTORY_KEY] = '\n'.join([INVENTORY_HEADER, 'SKU1,111,5'])

    with pytest.raises(feedsync_exceptions.FeedParseError):
        sync.SyncPipeline(sync_context, source).run_inventory()

    assert sync_context.inventory_store.bulk_insert_calls == []
    assert sync_context.snapshot_store.writes == []


def test_header_only_document_is_not_empty(sync_context, source, feed_client) -> None:
    feed_client.responses['inventory.csv'] = INVENTORY_HEADER

    outcome = sync.SyncPipeline(sync_context, source).run_inventory()

    assert outcome.result.success is True
    assert outcome.result.stats.total_records == 0
