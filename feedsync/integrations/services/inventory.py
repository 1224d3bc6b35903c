import logging
import typing

from django.utils import timezone

from feedsync import messages as feedsync_messages
from feedsync import stores as feedsync_stores

logger = logging.getLogger(__name__)

_LOG_PREFIX = '[INVENTORY-RECONCILER]'


class InventoryReconciler(object):
    """
    Bulk-diffs quantity records for one source against what is stored.

    Existing rows are loaded in one query; unseen SKUs become one bulk insert
    and changed quantities are written in one transaction. Unchanged
    quantities cause no write at all.
    """

    def __init__(
        self,
        source_id: int,
        store: feedsync_stores.InventoryStore,
        clock: typing.Callable = timezone.now,
    ):
        self.source_id = source_id
        self.store = store
        self.clock = clock

    def reconcile_bulk(
        self,
        records: typing.Iterable[feedsync_messages.InventoryRecord],
        stats: typing.Optional[feedsync_messages.SyncStats] = None,
    ) -> feedsync_messages.SyncStats:
        stats = stats if stats is not None else feedsync_messages.SyncStats()

        existing_by_sku = {
            existing.vendor_sku: existing for existing in self.store.list_by_source(self.source_id)
        }
        logger.info('{} Loaded {} existing inventory records for source {}.'.format(
            _LOG_PREFIX, len(existing_by_sku), self.source_id
        ))

        now = self.clock()
        inserts: typing.Dict[str, feedsync_messages.InventoryRecord] = {}
        updates: typing.Dict[str, feedsync_messages.InventoryQuantityUpdate] = {}

        for record in records:
            vendor_sku = (record.vendor_sku or '').strip()
            if not vendor_sku:
                stats.records_skipped += 1
                continue

            existing = existing_by_sku.get(vendor_sku)
            if existing is None:
                if vendor_sku in inserts:
                    stats.records_skipped += 1
                inserts[vendor_sku] = feedsync_messages.InventoryRecord(
                    source_id=self.source_id,
                    vendor_sku=vendor_sku,
                    upc=record.upc,
                    quantity_available=record.quantity_available,
                    last_updated=now,
                )
            elif existing.quantity_available != record.quantity_available:
                if vendor_sku in updates:
                    stats.records_skipped += 1
                updates[vendor_sku] = feedsync_messages.InventoryQuantityUpdate(
                    id=existing.id,
                    quantity_available=record.quantity_available,
                    last_updated=now,
                )
            else:
                if vendor_sku in updates:
                    # a later line restored the stored quantity
                    del updates[vendor_sku]
                    stats.records_skipped += 1
                stats.records_skipped += 1

        if inserts:
            self.store.bulk_insert(list(inserts.values()))
            stats.records_added += len(inserts)

        if updates:
            self.store.bulk_update_quantity(list(updates.values()))
            stats.records_updated += len(updates)

        logger.info('{} Source {}: {} added, {} updated, {} skipped.'.format(
            _LOG_PREFIX, self.source_id, stats.records_added, stats.records_updated, stats.records_skipped
        ))
        return stats
