import dataclasses
import logging
import typing

from feedsync import enums as feedsync_enums
from feedsync import exceptions as feedsync_exceptions
from feedsync import messages as feedsync_messages
from feedsync import stores as feedsync_stores
from feedsync.integrations.services import catalog as catalog_services
from feedsync.integrations.services import differ as differ_services
from feedsync.integrations.services import inventory as inventory_services
from feedsync.integrations.services import parser as parser_services

if typing.TYPE_CHECKING:
    from feedsync.context import SyncContext

logger = logging.getLogger(__name__)

_LOG_PREFIX = '[SYNC-PIPELINE]'


@dataclasses.dataclass
class SyncOutcome:
    result: feedsync_messages.SyncResult
    document: typing.Optional[str] = None


class SyncPipeline(object):
    """
    Fetch -> diff -> parse -> reconcile for one job of one source.

    Job-level failures (configuration, fetch, parse, store) are raised to the
    caller. Counters accumulate into the ``stats`` object handed in, so partial
    progress is visible even when a run fails. The snapshot is only read here;
    advancing it is left to the caller once the run has fully succeeded.
    """

    def __init__(self, context: 'SyncContext', source: feedsync_messages.SourceInfo):
        self.context = context
        self.source = source

    def run(
        self,
        job_type: feedsync_enums.JobType,
        stats: typing.Optional[feedsync_messages.SyncStats] = None,
    ) -> SyncOutcome:
        if job_type == feedsync_enums.JobType.CATALOG:
            return self.run_catalog(stats)
        return self.run_inventory(stats)

    def run_catalog(self, stats: typing.Optional[feedsync_messages.SyncStats] = None) -> SyncOutcome:
        stats = stats if stats is not None else feedsync_messages.SyncStats()
        self.context.priority_resolver.clear()

        document, diff = self._fetch_and_diff(feedsync_enums.JobType.CATALOG, stats)
        if not diff.has_changes:
            return self._no_changes(document, stats)

        parsed = parser_services.parse_catalog_document(
            '\n'.join(diff.changed_lines), self.source.catalog_column_map
        )
        self._count_row_errors(parsed, stats)

        reconciler = catalog_services.CatalogReconciler(
            source_name=self.source.name,
            store=self.context.catalog_store,
            priority_resolver=self.context.priority_resolver,
        )
        reconciler.reconcile(parsed.records, stats)

        return SyncOutcome(result=self._success('Catalog sync completed', stats), document=document)

    def run_inventory(self, stats: typing.Optional[feedsync_messages.SyncStats] = None) -> SyncOutcome:
        stats = stats if stats is not None else feedsync_messages.SyncStats()

        document, diff = self._fetch_and_diff(feedsync_enums.JobType.INVENTORY, stats)
        if not diff.has_changes:
            return self._no_changes(document, stats)

        parsed = parser_services.parse_inventory_document(
            '\n'.join(diff.changed_lines), self.source.inventory_column_map
        )
        self._count_row_errors(parsed, stats)

        reconciler = inventory_services.InventoryReconciler(
            source_id=self.source.id,
            store=self.context.inventory_store,
        )
        reconciler.reconcile_bulk(parsed.records, stats)

        return SyncOutcome(result=self._success('Inventory sync completed', stats), document=document)

    def _fetch_and_diff(
        self, job_type: feedsync_enums.JobType, stats: feedsync_messages.SyncStats
    ) -> typing.Tuple[str, feedsync_messages.DiffResult]:
        remote_config = self.context.config_provider.get_remote_config(self.source.slug, job_type)
        if remote_config is None:
            raise feedsync_exceptions.SyncConfigurationError(
                'Remote feed not configured for {} {} sync'.format(self.source.name, job_type.value)
            )

        logger.info('{} {} {} sync: downloading {}.'.format(
            _LOG_PREFIX, self.source.name, job_type.value, remote_config.remote_path
        ))
        document = self.context.fetcher.fetch(remote_config)
        if not differ_services.split_lines(document):
            raise feedsync_exceptions.FeedParseError(
                'Downloaded {} document for {} is empty'.format(job_type.value, self.source.name)
            )

        previous = self.context.snapshot_store.read(feedsync_stores.snapshot_key(self.source.slug, job_type))
        diff = differ_services.diff_lines(document, previous)
        stats.total_records = max(diff.stats.total_lines - 1, 0)

        if diff.has_changes:
            logger.info('{} {} {} sync: processing {} changed records instead of {}.'.format(
                _LOG_PREFIX, self.source.name, job_type.value, diff.stats.changed_lines, stats.total_records
            ))
        return document, diff

    @staticmethod
    def _count_row_errors(parsed: feedsync_messages.ParseResult, stats: feedsync_messages.SyncStats) -> None:
        stats.records_skipped += parsed.missing_required_count
        stats.records_errors += parsed.malformed_count

    @staticmethod
    def _no_changes(document: str, stats: feedsync_messages.SyncStats) -> SyncOutcome:
        stats.records_skipped = stats.total_records
        message = 'No changes detected - skipped processing {} records'.format(stats.total_records)
        logger.info('{} {}.'.format(_LOG_PREFIX, message))
        return SyncOutcome(
            result=feedsync_messages.SyncResult(success=True, message=message, stats=stats),
            document=document,
        )

    @staticmethod
    def _success(prefix: str, stats: feedsync_messages.SyncStats) -> feedsync_messages.SyncResult:
        message = '{}: {} updated, {} added, {} skipped, {} errors'.format(
            prefix, stats.records_updated, stats.records_added, stats.records_skipped, stats.records_errors
        )
        logger.info('{} {}.'.format(_LOG_PREFIX, message))
        return feedsync_messages.SyncResult(success=True, message=message, stats=stats)
