import enum
import logging
import typing

from common import utils as common_utils
from feedsync import constants as feedsync_constants
from feedsync import messages as feedsync_messages
from feedsync import stores as feedsync_stores
from feedsync.integrations.services import priority as priority_services

logger = logging.getLogger(__name__)

_LOG_PREFIX = '[CATALOG-RECONCILER]'


class CatalogOutcome(enum.Enum):
    ADDED = 'added'
    UPDATED = 'updated'
    SKIPPED_NO_CODE = 'skipped_no_code'
    SKIPPED_PRIORITY = 'skipped_priority'
    SKIPPED_NO_OP = 'skipped_no_op'


def _normalize(value: typing.Any) -> str:
    return '' if value is None else str(value)


def mapped_fields(record: feedsync_messages.CatalogRecord, source_name: str) -> typing.Dict[str, str]:
    return {
        'name': record.name,
        'brand': record.brand,
        'manufacturer_part_number': record.manufacturer_part_number,
        'category': record.category,
        'description': record.description,
        'source': source_name,
    }


def are_fields_identical(existing: feedsync_messages.CatalogRecord, fields: typing.Dict[str, str]) -> bool:
    return all(
        _normalize(getattr(existing, field_name)) == _normalize(fields.get(field_name))
        for field_name in feedsync_constants.CATALOG_MAPPED_FIELDS
    )


class CatalogReconciler(object):
    def __init__(
        self,
        source_name: str,
        store: feedsync_stores.CatalogStore,
        priority_resolver: priority_services.PriorityResolver,
    ):
        self.source_name = source_name
        self.store = store
        self.priority_resolver = priority_resolver

    def reconcile(
        self,
        records: typing.Iterable[feedsync_messages.CatalogRecord],
        stats: typing.Optional[feedsync_messages.SyncStats] = None,
    ) -> feedsync_messages.SyncStats:
        stats = stats if stats is not None else feedsync_messages.SyncStats()

        for record in records:
            try:
                outcome = self.reconcile_record(record)
            except Exception as e:
                stats.records_errors += 1
                logger.error('{} Error reconciling product {}: {}'.format(
                    _LOG_PREFIX, record.upc, common_utils.get_exception_message(e)
                ))
                continue

            if outcome == CatalogOutcome.ADDED:
                stats.records_added += 1
            elif outcome == CatalogOutcome.UPDATED:
                stats.records_updated += 1
            else:
                stats.records_skipped += 1

        logger.info('{} {}: {} added, {} updated, {} skipped, {} errors.'.format(
            _LOG_PREFIX, self.source_name, stats.records_added, stats.records_updated,
            stats.records_skipped, stats.records_errors,
        ))
        return stats

    def reconcile_record(self, record: feedsync_messages.CatalogRecord) -> CatalogOutcome:
        upc = (record.upc or '').strip()
        if not upc or upc in feedsync_constants.NO_CODE_SENTINELS:
            return CatalogOutcome.SKIPPED_NO_CODE

        fields = mapped_fields(record, self.source_name)

        existing = self.store.find_by_key(upc)
        if existing is None:
            self.store.insert(feedsync_messages.CatalogRecord(upc=upc, **fields))
            return CatalogOutcome.ADDED

        if not self.may_overwrite(existing.source):
            return CatalogOutcome.SKIPPED_PRIORITY

        if are_fields_identical(existing, fields):
            return CatalogOutcome.SKIPPED_NO_OP

        self.store.update(existing.id, fields)
        return CatalogOutcome.UPDATED

    def may_overwrite(self, current_source: typing.Optional[str]) -> bool:
        """
        The incumbent source keeps the record unless this source ranks
        strictly better. A source may always refresh its own records.
        """
        if _normalize(current_source).strip().lower() == self.source_name.strip().lower():
            return True

        own_priority = self.priority_resolver.priority_of(self.source_name)
        current_priority = self.priority_resolver.priority_of(current_source)
        return own_priority < current_priority
