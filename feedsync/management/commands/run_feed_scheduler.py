import logging
import signal
import threading

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from django.core.management.base import BaseCommand

from feedsync import context as feedsync_context
from feedsync import scheduler as feedsync_scheduler

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = 'Start catalog and inventory sync schedules for every active source and block'

    def add_arguments(self, parser):
        parser.add_argument(
            '--source',
            action='append',
            dest='sources',
            help='Only schedule this source slug (repeatable)',
        )

    def handle(self, *args, **options):
        context = feedsync_context.build_default_context()
        source_slugs = options.get('sources') or context.sources.list_active_slugs()

        if not source_slugs:
            logger.warning('No active sources to schedule')
            self.stdout.write(self.style.ERROR('No active sources to schedule.'))
            return

        background_scheduler = BackgroundScheduler(timezone=context.timezone)
        schedulers = []
        for source_slug in source_slugs:
            scheduler = feedsync_scheduler.FeedSyncScheduler(context, source_slug, scheduler=background_scheduler)
            scheduler.initialize()
            schedulers.append(scheduler)
            self.stdout.write(f'Scheduled feed sync for {source_slug}')

        context.priority_resolver.preload(source_slugs)
        background_scheduler.add_job(
            context.priority_resolver.cleanup,
            trigger=IntervalTrigger(seconds=max(int(context.priority_resolver.ttl_seconds), 60)),
            id='feedsync:priority-cache-cleanup',
            name='priority cache cleanup',
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )

        stop_event = threading.Event()
        signal.signal(signal.SIGTERM, lambda *_: stop_event.set())
        signal.signal(signal.SIGINT, lambda *_: stop_event.set())

        background_scheduler.start()
        self.stdout.write(self.style.SUCCESS(f'Feed scheduler running for {len(schedulers)} source(s).'))

        try:
            stop_event.wait()
        finally:
            for scheduler in schedulers:
                scheduler.shutdown()
            background_scheduler.shutdown()
            self.stdout.write('Feed scheduler stopped.')
