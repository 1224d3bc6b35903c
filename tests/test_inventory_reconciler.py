import datetime

import pytest

from feedsync import messages as feedsync_messages
from feedsync.integrations.services import inventory
from tests import fakes

NOW = datetime.datetime(2024, 5, 1, 12, 0, tzinfo=datetime.timezone.utc)
EARLIER = datetime.datetime(2024, 4, 1, 12, 0, tzinfo=datetime.timezone.utc)


def stored(vendor_sku, quantity, source_id=1) -> feedsync_messages.InventoryRecord:
    return feedsync_messages.InventoryRecord(
        vendor_sku=vendor_sku, quantity_available=quantity, source_id=source_id, last_updated=EARLIER
    )


def incoming(vendor_sku, quantity) -> feedsync_messages.InventoryRecord:
    return feedsync_messages.InventoryRecord(vendor_sku=vendor_sku, quantity_available=quantity)


def make_reconciler(store, source_id=1) -> inventory.InventoryReconciler:
    return inventory.InventoryReconciler(source_id, store, clock=lambda: NOW)


def test_new_changed_and_unchanged_records() -> None:
    store = fakes.FakeInventoryStore([stored('SKU1', 5), stored('SKU2', 3)])

    stats = make_reconciler(store).reconcile_bulk([
        incoming('SKU1', 5),
        incoming('SKU2', 0),
        incoming('SKU3', 8),
    ])

    assert stats.records_added == 1
    assert stats.records_updated == 1
    assert stats.records_skipped == 1
    assert store.quantity_of(1, 'SKU2') == 0
    assert store.quantity_of(1, 'SKU3') == 8
    assert len(store.bulk_insert_calls) == 1
    assert len(store.bulk_update_calls) == 1
    assert store.bulk_update_calls[0][0].last_updated == NOW


def test_unchanged_batch_does_not_write() -> None:
    store = fakes.FakeInventoryStore([stored('SKU1', 5)])

    stats = make_reconciler(store).reconcile_bulk([incoming('SKU1', 5)])

    assert stats.records_skipped == 1
    assert store.bulk_insert_calls == []
    assert store.bulk_update_calls == []


def test_records_without_sku_are_skipped() -> None:
    store = fakes.FakeInventoryStore()

    stats = make_reconciler(store).reconcile_bulk([incoming('', 4), incoming('  ', 1)])

    assert stats.records_skipped == 2
    assert store.bulk_insert_calls == []


def test_other_sources_are_not_touched() -> None:
    store = fakes.FakeInventoryStore([stored('SKU1', 5, source_id=2)])

    stats = make_reconciler(store, source_id=1).reconcile_bulk([incoming('SKU1', 9)])

    assert stats.records_added == 1
    assert store.quantity_of(2, 'SKU1') == 5
    assert store.quantity_of(1, 'SKU1') == 9


def test_duplicate_sku_last_occurrence_wins() -> None:
    store = fakes.FakeInventoryStore([stored('SKU1', 5)])

    stats = make_reconciler(store).reconcile_bulk([
        incoming('SKU1', 6),
        incoming('SKU1', 7),
        incoming('SKU9', 1),
        incoming('SKU9', 2),
    ])

    assert store.quantity_of(1, 'SKU1') == 7
    assert store.quantity_of(1, 'SKU9') == 2
    assert stats.records_updated == 1
    assert stats.records_added == 1
    assert stats.records_skipped == 2


def test_duplicate_restoring_stored_quantity_cancels_update() -> None:
    store = fakes.FakeInventoryStore([stored('SKU1', 5)])

    stats = make_reconciler(store).reconcile_bulk([incoming('SKU1', 6), incoming('SKU1', 5)])

    assert store.bulk_update_calls == []
    assert stats.records_skipped == 2
    assert store.quantity_of(1, 'SKU1') == 5


def test_write_failure_propagates() -> None:
    store = fakes.FakeInventoryStore()
    store.fail_on_write = True

    with pytest.raises(RuntimeError):
        make_reconciler(store).reconcile_bulk([incoming('SKU1', 1)])
