import simplejson
from django.core.management.base import BaseCommand

from common import utils as common_utils
from feedsync.integrations.services import source_priorities as source_priority_services


class Command(BaseCommand):
    help = 'Check that source priorities run 1..N without duplicates, optionally renumbering them'

    def add_arguments(self, parser):
        parser.add_argument('--fix', action='store_true', help='Renumber source priorities 1..N')

    def handle(self, *args, **options):
        report = source_priority_services.check_priority_consistency()
        output = {'report': common_utils.dataclass_to_dict(report)}

        if options.get('fix') and not report.is_valid:
            fix_result = source_priority_services.fix_priority_consistency()
            output['fix'] = common_utils.dataclass_to_dict(fix_result)
            output['report_after_fix'] = common_utils.dataclass_to_dict(
                source_priority_services.check_priority_consistency()
            )

        self.stdout.write(simplejson.dumps(output, indent=2, sort_keys=True))

        if report.is_valid:
            self.stdout.write(self.style.SUCCESS('Source priorities are consistent.'))
        elif 'fix' in output:
            self.stdout.write(self.style.SUCCESS(output['fix']['message']))
        else:
            self.stdout.write(self.style.ERROR('Source priorities are inconsistent.'))
