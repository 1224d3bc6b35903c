import logging
import os
import re
import tempfile
import typing

import pgbulk
from django.db import connection, transaction
from django.db.models import Q
from django.utils import timezone

from common import exceptions as common_exceptions
from common import utils as common_utils
from feedsync import enums as feedsync_enums
from feedsync import messages as feedsync_messages
from feedsync import models as feedsync_models
from feedsync import schemas as feedsync_schemas

logger = logging.getLogger(__name__)

_LOG_PREFIX = '[FEEDSYNC-STORES]'


class CatalogStore(typing.Protocol):
    def find_by_key(self, upc: str) -> typing.Optional[feedsync_messages.CatalogRecord]:
        ...

    def insert(self, record: feedsync_messages.CatalogRecord) -> None:
        ...

    def update(self, record_id: int, fields: typing.Dict[str, str]) -> None:
        ...


class InventoryStore(typing.Protocol):
    def list_by_source(self, source_id: int) -> typing.List[feedsync_messages.InventoryRecord]:
        ...

    def bulk_insert(self, records: typing.List[feedsync_messages.InventoryRecord]) -> None:
        ...

    def bulk_update_quantity(self, updates: typing.List[feedsync_messages.InventoryQuantityUpdate]) -> None:
        ...


class SnapshotStore(typing.Protocol):
    def read(self, key: str) -> typing.Optional[str]:
        ...

    def write(self, key: str, content: str) -> None:
        ...


class RemoteConfigProvider(typing.Protocol):
    def get_remote_config(
        self, source_slug: str, job_type: feedsync_enums.JobType
    ) -> typing.Optional[feedsync_messages.RemoteConfig]:
        ...


class JobStateStore(typing.Protocol):
    def load(self, source_slug: str, job_type: feedsync_enums.JobType) -> feedsync_messages.JobRunState:
        ...

    def save(self, source_slug: str, state: feedsync_messages.JobRunState) -> None:
        ...


class SourceDirectory(typing.Protocol):
    def get_source(self, source_slug: str) -> typing.Optional[feedsync_messages.SourceInfo]:
        ...

    def list_active_slugs(self) -> typing.List[str]:
        ...


def snapshot_key(source_slug: str, job_type: feedsync_enums.JobType) -> str:
    return '{}:{}'.format(source_slug, job_type.value)


class DjangoCatalogStore(object):
    def find_by_key(self, upc: str) -> typing.Optional[feedsync_messages.CatalogRecord]:
        product = feedsync_models.CatalogProduct.objects.filter(upc=upc).first()
        if not product:
            return None

        return feedsync_messages.CatalogRecord(
            id=product.id,
            upc=product.upc,
            name=product.name,
            brand=product.brand,
            category=product.category,
            description=product.description,
            manufacturer_part_number=product.manufacturer_part_number,
            source=product.source,
        )

    def insert(self, record: feedsync_messages.CatalogRecord) -> None:
        feedsync_models.CatalogProduct.objects.create(
            upc=record.upc,
            name=record.name,
            brand=record.brand,
            category=record.category,
            description=record.description,
            manufacturer_part_number=record.manufacturer_part_number,
            source=record.source,
        )

    def update(self, record_id: int, fields: typing.Dict[str, str]) -> None:
        feedsync_models.CatalogProduct.objects.filter(id=record_id).update(
            updated_at=timezone.now(), **fields
        )


class DjangoInventoryStore(object):
    """
    Inventory rows of one source. On PostgreSQL writes go through pgbulk in a
    single statement; other backends use the ORM.
    """

    def list_by_source(self, source_id: int) -> typing.List[feedsync_messages.InventoryRecord]:
        return [
            feedsync_messages.InventoryRecord(
                id=row.id,
                source_id=row.source_id,
                vendor_sku=row.vendor_sku,
                upc=row.upc or '',
                quantity_available=row.quantity_available,
                last_updated=row.last_updated,
            )
            for row in feedsync_models.SourceInventory.objects.filter(source_id=source_id)
        ]

    def bulk_insert(self, records: typing.List[feedsync_messages.InventoryRecord]) -> None:
        now = timezone.now()
        instances = [
            feedsync_models.SourceInventory(
                source_id=record.source_id,
                vendor_sku=record.vendor_sku,
                upc=record.upc or None,
                quantity_available=record.quantity_available,
                last_updated=record.last_updated or now,
            )
            for record in records
        ]

        if connection.vendor == 'postgresql':
            pgbulk.upsert(
                feedsync_models.SourceInventory,
                instances,
                unique_fields=['source', 'vendor_sku'],
                update_fields=['upc', 'quantity_available', 'last_updated'],
            )
        else:
            feedsync_models.SourceInventory.objects.bulk_create(instances)
        logger.debug('{} Inserted {} inventory records.'.format(_LOG_PREFIX, len(instances)))

    def bulk_update_quantity(self, updates: typing.List[feedsync_messages.InventoryQuantityUpdate]) -> None:
        if connection.vendor == 'postgresql':
            pgbulk.update(
                feedsync_models.SourceInventory,
                [
                    feedsync_models.SourceInventory(
                        id=update.id,
                        quantity_available=update.quantity_available,
                        last_updated=update.last_updated,
                    )
                    for update in updates
                ],
                update_fields=['quantity_available', 'last_updated'],
            )
        else:
            with transaction.atomic():
                for update in updates:
                    feedsync_models.SourceInventory.objects.filter(id=update.id).update(
                        quantity_available=update.quantity_available,
                        last_updated=update.last_updated,
                    )
        logger.debug('{} Updated {} inventory quantities.'.format(_LOG_PREFIX, len(updates)))


class DjangoSourcePriorityTable(object):
    def priority_of(self, source_name: str) -> typing.Optional[int]:
        source = feedsync_models.Source.objects.filter(
            Q(slug__iexact=source_name.strip()) | Q(name__iexact=source_name.strip())
        ).only('priority').first()
        return source.priority if source else None


class DjangoSourceDirectory(object):
    def get_source(self, source_slug: str) -> typing.Optional[feedsync_messages.SourceInfo]:
        source = feedsync_models.Source.objects.filter(slug=source_slug).first()
        if not source:
            return None

        return feedsync_messages.SourceInfo(
            id=source.id,
            slug=source.slug,
            name=source.name,
            catalog_column_map=source.catalog_column_map,
            inventory_column_map=source.inventory_column_map,
            schedule=feedsync_messages.ScheduleSettings(
                catalog_sync_enabled=source.catalog_sync_enabled,
                catalog_sync_time=source.catalog_sync_time,
                inventory_sync_enabled=source.inventory_sync_enabled,
                inventory_sync_interval_minutes=source.inventory_sync_interval_minutes,
            ),
        )

    def list_active_slugs(self) -> typing.List[str]:
        return list(
            feedsync_models.Source.objects.filter(
                status=feedsync_enums.SourceStatus.ACTIVE.value
            ).order_by('id').values_list('slug', flat=True)
        )


class DjangoRemoteConfigProvider(object):
    def get_remote_config(
        self, source_slug: str, job_type: feedsync_enums.JobType
    ) -> typing.Optional[feedsync_messages.RemoteConfig]:
        source = feedsync_models.Source.objects.filter(slug=source_slug).first()
        if not source:
            logger.warning('{} Source {} not found.'.format(_LOG_PREFIX, source_slug))
            return None

        if not source.credentials:
            logger.warning('{} No credentials configured for source {}.'.format(_LOG_PREFIX, source_slug))
            return None

        try:
            return feedsync_schemas.build_remote_config(source.credentials, job_type)
        except common_exceptions.ValidationSchemaException as e:
            logger.warning('{} Invalid credentials for source {}: {}'.format(
                _LOG_PREFIX, source_slug, common_utils.get_exception_message(e)
            ))
            return None


class DjangoJobStateStore(object):
    def load(self, source_slug: str, job_type: feedsync_enums.JobType) -> feedsync_messages.JobRunState:
        row = feedsync_models.SyncJobRun.objects.filter(
            source__slug=source_slug, job_type=job_type.value
        ).first()
        if not row:
            return feedsync_messages.JobRunState(job_type=job_type)

        return feedsync_messages.JobRunState(
            job_type=job_type,
            status=feedsync_enums.JobStatus(row.status),
            last_run_at=row.last_run_at,
            stats=feedsync_messages.SyncStats(
                total_records=row.total_records,
                records_updated=row.records_updated,
                records_added=row.records_added,
                records_skipped=row.records_skipped,
                records_errors=row.records_errors,
            ),
            last_error=row.last_error,
        )

    def save(self, source_slug: str, state: feedsync_messages.JobRunState) -> None:
        source = feedsync_models.Source.objects.get(slug=source_slug)
        feedsync_models.SyncJobRun.objects.update_or_create(
            source=source,
            job_type=state.job_type.value,
            defaults={
                'status': state.status.value,
                'last_run_at': state.last_run_at,
                'total_records': state.stats.total_records,
                'records_updated': state.stats.records_updated,
                'records_added': state.stats.records_added,
                'records_skipped': state.stats.records_skipped,
                'records_errors': state.stats.records_errors,
                'last_error': state.last_error,
            },
        )


class FileSnapshotStore(object):
    """Keeps one snapshot file per key, replaced atomically on write."""

    _UNSAFE_CHARS = re.compile(r'[^A-Za-z0-9_.-]+')

    def __init__(self, directory: str):
        self.directory = directory

    def _path(self, key: str) -> str:
        source_slug, _, job_name = key.partition(':')
        source_dir = self._UNSAFE_CHARS.sub('_', source_slug) or 'default'
        file_name = 'previous_{}.csv'.format(self._UNSAFE_CHARS.sub('_', job_name or 'document'))
        return os.path.join(self.directory, source_dir, file_name)

    def read(self, key: str) -> typing.Optional[str]:
        path = self._path(key)
        if not os.path.exists(path):
            return None
        with open(path, 'r', encoding='utf-8', newline='') as file_obj:
            return file_obj.read()

    def write(self, key: str, content: str) -> None:
        path = self._path(key)
        directory = os.path.dirname(path)
        os.makedirs(directory, exist_ok=True)

        fd, temp_path = tempfile.mkstemp(dir=directory, prefix='.snapshot_')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8', newline='') as file_obj:
                file_obj.write(content)
            os.replace(temp_path, path)
        except Exception:
            if os.path.exists(temp_path):
                os.remove(temp_path)
            raise
        logger.debug('{} Stored snapshot {} ({} characters).'.format(_LOG_PREFIX, key, len(content)))


class DjangoSnapshotStore(object):
    def read(self, key: str) -> typing.Optional[str]:
        snapshot = feedsync_models.SyncSnapshot.objects.filter(key=key).only('content').first()
        return snapshot.content if snapshot else None

    def write(self, key: str, content: str) -> None:
        feedsync_models.SyncSnapshot.objects.update_or_create(key=key, defaults={'content': content})
