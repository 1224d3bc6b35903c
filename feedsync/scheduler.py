import dataclasses
import logging
import re
import threading
import typing

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from django.db import close_old_connections
from django.utils import timezone

from common import utils as common_utils
from feedsync import constants as feedsync_constants
from feedsync import enums as feedsync_enums
from feedsync import exceptions as feedsync_exceptions
from feedsync import messages as feedsync_messages
from feedsync import stores as feedsync_stores
from feedsync.context import SyncContext
from feedsync.integrations.services import sync as sync_services

logger = logging.getLogger(__name__)

_LOG_PREFIX = '[FEED-SCHEDULER]'

_STATUS_KEYS = {
    feedsync_enums.JobType.CATALOG: 'catalog_sync',
    feedsync_enums.JobType.INVENTORY: 'inventory_sync',
}


def parse_sync_time(value: typing.Optional[str]) -> typing.Optional[typing.Tuple[int, int]]:
    """Returns (hour, minute) for a valid "HH:MM" value, None otherwise."""
    if not value:
        return None

    match = re.match(feedsync_constants.CATALOG_SYNC_TIME_PATTERN, value.strip())
    if not match:
        return None

    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        return None
    return hour, minute


def build_catalog_trigger(
    sync_time: typing.Optional[str],
    default_sync_time: str = feedsync_constants.DEFAULT_CATALOG_SYNC_TIME,
    tz: str = 'UTC',
) -> CronTrigger:
    parsed = parse_sync_time(sync_time)
    if parsed is None:
        if sync_time:
            logger.warning('{} Invalid catalog sync time {!r}, using {}.'.format(
                _LOG_PREFIX, sync_time, default_sync_time
            ))
        parsed = parse_sync_time(default_sync_time) or parse_sync_time(feedsync_constants.DEFAULT_CATALOG_SYNC_TIME)

    hour, minute = parsed
    return CronTrigger(hour=hour, minute=minute, timezone=tz)


def build_inventory_trigger(
    interval_minutes: typing.Optional[int],
    default_interval_minutes: int = feedsync_constants.DEFAULT_INVENTORY_INTERVAL_MINUTES,
    tz: str = 'UTC',
) -> IntervalTrigger:
    minutes = interval_minutes
    if not isinstance(minutes, int) or isinstance(minutes, bool) or minutes <= 0:
        if minutes is not None:
            logger.warning('{} Invalid inventory sync interval {!r}, using {} minutes.'.format(
                _LOG_PREFIX, interval_minutes, default_interval_minutes
            ))
        minutes = default_interval_minutes
        if minutes <= 0:
            minutes = feedsync_constants.DEFAULT_INVENTORY_INTERVAL_MINUTES
    return IntervalTrigger(minutes=minutes, timezone=tz)


class ScheduledTask(object):
    """One recurring job on a shared APScheduler scheduler."""

    def __init__(self, scheduler: BackgroundScheduler, job_id: str, name: str, func: typing.Callable):
        self.scheduler = scheduler
        self.job_id = job_id
        self.name = name
        self.func = func
        self.job = None

    @property
    def is_scheduled(self) -> bool:
        return self.job is not None

    def start(self, trigger: BaseTrigger) -> None:
        if self.job is not None:
            self.reschedule(trigger)
            return

        self.job = self.scheduler.add_job(
            self.func,
            trigger=trigger,
            id=self.job_id,
            name=self.name,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        logger.info('{} Scheduled {} ({}).'.format(_LOG_PREFIX, self.name, trigger))

    def stop(self) -> None:
        if self.job is None:
            return

        try:
            self.scheduler.remove_job(self.job_id)
        except JobLookupError:
            logger.warning('{} Job {} was already removed.'.format(_LOG_PREFIX, self.job_id))
        self.job = None
        logger.info('{} Stopped {}.'.format(_LOG_PREFIX, self.name))

    def reschedule(self, trigger: BaseTrigger) -> None:
        if self.job is None:
            self.start(trigger)
            return

        self.job = self.scheduler.reschedule_job(self.job_id, trigger=trigger)
        logger.info('{} Rescheduled {} ({}).'.format(_LOG_PREFIX, self.name, trigger))


class FeedSyncScheduler(object):
    """
    Runs the catalog and inventory jobs of one source on their own cadences.

    The catalog job runs daily at a configured time, the inventory job every
    N minutes. Running flags live in the context slots shared by all sources,
    so a job never overlaps with itself and inventory jobs wait out any catalog
    run. Catalog jobs of different sources take turns. Nothing
    raised by a run escapes this class: failures are recorded in the job
    state and returned as an unsuccessful SyncResult.
    """

    def __init__(
        self,
        context: SyncContext,
        source_slug: str,
        scheduler: typing.Optional[BackgroundScheduler] = None,
        clock: typing.Callable = timezone.now,
    ):
        self.context = context
        self.source_slug = source_slug
        self.clock = clock

        self._owns_scheduler = scheduler is None
        self.scheduler = scheduler if scheduler is not None else BackgroundScheduler(timezone=context.timezone)

        self._lock = threading.Lock()
        self._states = {
            job_type: feedsync_messages.JobRunState(job_type=job_type) for job_type in feedsync_enums.JobType
        }
        self._tasks = {
            job_type: ScheduledTask(
                scheduler=self.scheduler,
                job_id='feedsync:{}:{}'.format(source_slug, job_type.value),
                name='{} {} sync'.format(source_slug, job_type.value),
                func=self._make_job(job_type),
            )
            for job_type in feedsync_enums.JobType
        }

    def initialize(self) -> None:
        try:
            self._restore_states()
            self._setup_jobs()
            if self._owns_scheduler and not self.scheduler.running:
                self.scheduler.start()
        except Exception as e:
            logger.exception('{} Failed to initialize scheduler for {}: {}'.format(
                _LOG_PREFIX, self.source_slug, common_utils.get_exception_message(e)
            ))

    def update_schedule(self) -> None:
        try:
            for task in self._tasks.values():
                task.stop()
            self._setup_jobs()
        except Exception as e:
            logger.exception('{} Failed to update schedule for {}: {}'.format(
                _LOG_PREFIX, self.source_slug, common_utils.get_exception_message(e)
            ))

    def get_status(self) -> typing.Dict[str, feedsync_messages.JobRunState]:
        with self._lock:
            return {
                _STATUS_KEYS[job_type]: dataclasses.replace(
                    state, stats=dataclasses.replace(state.stats)
                )
                for job_type, state in self._states.items()
            }

    def is_scheduled(self, job_type: feedsync_enums.JobType) -> bool:
        return self._tasks[job_type].is_scheduled

    def trigger_manually(self, job_type: feedsync_enums.JobType) -> feedsync_messages.SyncResult:
        try:
            source = self.context.sources.get_source(self.source_slug)
        except Exception as e:
            message = common_utils.get_exception_message(e)
            logger.exception('{} Failed to load source {}: {}'.format(_LOG_PREFIX, self.source_slug, message))
            return feedsync_messages.SyncResult(success=False, message=message, error=message)

        if source is not None and not self._is_enabled(source, job_type):
            message = '{} sync is disabled for {}'.format(job_type.value.capitalize(), self.source_slug)
            logger.info('{} {}.'.format(_LOG_PREFIX, message))
            return feedsync_messages.SyncResult(success=False, message=message)

        return self._execute(job_type)

    def shutdown(self) -> None:
        for task in self._tasks.values():
            try:
                task.stop()
            except Exception as e:
                logger.exception('{} Failed to stop {}: {}'.format(
                    _LOG_PREFIX, task.name, common_utils.get_exception_message(e)
                ))

        if self._owns_scheduler and self.scheduler.running:
            self.scheduler.shutdown()
        logger.info('{} Scheduler for {} shut down.'.format(_LOG_PREFIX, self.source_slug))

    def _make_job(self, job_type: feedsync_enums.JobType) -> typing.Callable[[], None]:
        def job() -> None:
            close_old_connections()
            try:
                self._run_scheduled(job_type)
            finally:
                close_old_connections()
        return job

    def _run_scheduled(self, job_type: feedsync_enums.JobType) -> None:
        result = self._execute(job_type)
        logger.info('{} Scheduled {} sync for {} finished: {}'.format(
            _LOG_PREFIX, job_type.value, self.source_slug, result.message
        ))

    def _restore_states(self) -> None:
        for job_type in feedsync_enums.JobType:
            state = self.context.state_store.load(self.source_slug, job_type)
            if state.status == feedsync_enums.JobStatus.RUNNING:
                logger.warning('{} {} sync for {} was interrupted, marking it failed.'.format(
                    _LOG_PREFIX, job_type.value, self.source_slug
                ))
                state.status = feedsync_enums.JobStatus.FAILED
                state.last_error = 'interrupted'
                self.context.state_store.save(self.source_slug, state)
            with self._lock:
                self._states[job_type] = state

    def _setup_jobs(self) -> None:
        source = self.context.sources.get_source(self.source_slug)
        if source is None:
            logger.error('{} Source {} not found, nothing scheduled.'.format(_LOG_PREFIX, self.source_slug))
            return

        for job_type, task in self._tasks.items():
            if not self._is_enabled(source, job_type):
                logger.info('{} {} sync is disabled for {}.'.format(
                    _LOG_PREFIX, job_type.value, self.source_slug
                ))
                task.stop()
                continue

            if self.context.config_provider.get_remote_config(self.source_slug, job_type) is None:
                logger.warning('{} No remote feed configured for {} {} sync, not scheduling.'.format(
                    _LOG_PREFIX, self.source_slug, job_type.value
                ))
                task.stop()
                continue

            task.start(self._build_trigger(source, job_type))

    def _build_trigger(self, source: feedsync_messages.SourceInfo, job_type: feedsync_enums.JobType) -> BaseTrigger:
        if job_type == feedsync_enums.JobType.CATALOG:
            return build_catalog_trigger(
                source.schedule.catalog_sync_time,
                self.context.default_catalog_sync_time,
                self.context.timezone,
            )
        return build_inventory_trigger(
            source.schedule.inventory_sync_interval_minutes,
            self.context.default_inventory_interval_minutes,
            self.context.timezone,
        )

    @staticmethod
    def _is_enabled(source: feedsync_messages.SourceInfo, job_type: feedsync_enums.JobType) -> bool:
        if job_type == feedsync_enums.JobType.CATALOG:
            return source.schedule.catalog_sync_enabled
        return source.schedule.inventory_sync_enabled

    def _execute(self, job_type: feedsync_enums.JobType) -> feedsync_messages.SyncResult:
        if not self.context.slots.claim(self.source_slug, job_type):
            message = '{} sync for {} skipped: another sync is running'.format(
                job_type.value.capitalize(), self.source_slug
            )
            logger.info('{} {}.'.format(_LOG_PREFIX, message))
            return feedsync_messages.SyncResult(success=False, message=message)

        started_at = self.clock()
        stats = feedsync_messages.SyncStats()
        try:
            self._save_state(job_type, feedsync_enums.JobStatus.RUNNING, started_at, stats)

            source = self.context.sources.get_source(self.source_slug)
            if source is None:
                raise feedsync_exceptions.SyncConfigurationError('Source {} not found'.format(self.source_slug))

            outcome = self._run_pipeline(source, job_type, stats)

            self._save_state(job_type, feedsync_enums.JobStatus.SUCCEEDED, started_at, stats)
            if outcome.document is not None:
                self.context.snapshot_store.write(
                    feedsync_stores.snapshot_key(self.source_slug, job_type), outcome.document
                )
            return outcome.result
        except Exception as e:
            message = common_utils.get_exception_message(e)
            logger.exception('{} {} sync for {} failed: {}'.format(
                _LOG_PREFIX, job_type.value.capitalize(), self.source_slug, message
            ))
            self._save_state(job_type, feedsync_enums.JobStatus.FAILED, started_at, stats, last_error=message)
            return feedsync_messages.SyncResult(
                success=False,
                message='{} sync failed: {}'.format(job_type.value.capitalize(), message),
                stats=stats,
                error=message,
            )
        finally:
            self.context.slots.release(self.source_slug, job_type)

    def _save_state(
        self,
        job_type: feedsync_enums.JobType,
        status: feedsync_enums.JobStatus,
        last_run_at,
        stats: feedsync_messages.SyncStats,
        last_error: typing.Optional[str] = None,
    ) -> None:
        state = feedsync_messages.JobRunState(
            job_type=job_type,
            status=status,
            last_run_at=last_run_at,
            stats=dataclasses.replace(stats),
            last_error=last_error,
        )
        with self._lock:
            self._states[job_type] = state

        try:
            self.context.state_store.save(self.source_slug, state)
        except Exception as e:
            # in-memory state stays authoritative for get_status
            logger.exception('{} Could not persist {} state for {}: {}'.format(
                _LOG_PREFIX, job_type.value, self.source_slug, common_utils.get_exception_message(e)
            ))

    def _run_pipeline(
        self,
        source: feedsync_messages.SourceInfo,
        job_type: feedsync_enums.JobType,
        stats: feedsync_messages.SyncStats,
    ) -> sync_services.SyncOutcome:
        pipeline = sync_services.SyncPipeline(self.context, source)
        if job_type != feedsync_enums.JobType.CATALOG:
            return pipeline.run(job_type, stats)

        with self.context.slots.catalog_slot(self.source_slug):
            return pipeline.run(job_type, stats)
