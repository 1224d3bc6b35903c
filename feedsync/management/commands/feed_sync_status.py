import simplejson
from django.core.management.base import BaseCommand

from common import utils as common_utils
from feedsync import context as feedsync_context
from feedsync import enums as feedsync_enums


class Command(BaseCommand):
    help = 'Print the last catalog and inventory sync state of sources as JSON'

    def add_arguments(self, parser):
        parser.add_argument('source_slug', nargs='?', type=str)

    def handle(self, *args, **options):
        context = feedsync_context.build_default_context()
        source_slugs = [options['source_slug']] if options.get('source_slug') else context.sources.list_active_slugs()

        status = {}
        for source_slug in source_slugs:
            status[source_slug] = {
                '{}_sync'.format(job_type.value): common_utils.dataclass_to_dict(
                    context.state_store.load(source_slug, job_type)
                )
                for job_type in feedsync_enums.JobType
            }

        self.stdout.write(simplejson.dumps(status, indent=2, sort_keys=True))
