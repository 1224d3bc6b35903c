from django.core.management.base import BaseCommand, CommandError

from feedsync import context as feedsync_context
from feedsync import enums as feedsync_enums
from feedsync import scheduler as feedsync_scheduler


class Command(BaseCommand):
    help = 'Run the inventory sync of one source now'

    def add_arguments(self, parser):
        parser.add_argument('source_slug', type=str)

    def handle(self, *args, **options):
        source_slug = options['source_slug']
        self.stdout.write(f'Starting inventory sync for {source_slug}...')

        scheduler = feedsync_scheduler.FeedSyncScheduler(feedsync_context.build_default_context(), source_slug)
        result = scheduler.trigger_manually(feedsync_enums.JobType.INVENTORY)

        if not result.success:
            self.stdout.write(self.style.ERROR(f'Error: {result.message}'))
            raise CommandError(result.message)

        self.stdout.write(self.style.SUCCESS(result.message))
