import collections
import logging
import typing

from django.db import transaction

from feedsync import constants as feedsync_constants
from feedsync import messages as feedsync_messages
from feedsync import models as feedsync_models
from feedsync.integrations.services import priority as priority_services

logger = logging.getLogger(__name__)

_LOG_PREFIX = '[SOURCE-PRIORITIES]'

_FIX_HINT = 'Run "manage.py check_source_priorities --fix" to renumber priorities 1..N'


def find_priority_issues(
    priorities: typing.Sequence[typing.Tuple[str, typing.Optional[int]]],
) -> feedsync_messages.PriorityConsistencyReport:
    """
    Checks that (source name, priority) pairs form the sequence 1..N with
    every source holding its own number.
    """
    total = len(priorities)
    issues = []
    recommendations = []

    unset = [name for name, value in priorities if value is None]
    if unset:
        issues.append('{} source(s) have no priority: {}'.format(len(unset), ', '.join(unset)))
        recommendations.append('Assign a priority to every source')

    invalid = [
        '{} ({})'.format(name, value) for name, value in priorities
        if value is not None and value < feedsync_constants.MIN_PRIORITY
    ]
    if invalid:
        issues.append('Invalid priorities below {}: {}'.format(feedsync_constants.MIN_PRIORITY, ', '.join(invalid)))
        recommendations.append('Priorities must be positive integers starting at 1')

    by_priority = collections.defaultdict(list)
    for name, value in priorities:
        if value is not None:
            by_priority[value].append(name)

    duplicates = {value: names for value, names in sorted(by_priority.items()) if len(names) > 1}
    for value, names in duplicates.items():
        issues.append('Priority {} is shared by: {}'.format(value, ', '.join(names)))
    if duplicates:
        recommendations.append('Give every source a unique priority')

    missing = [number for number in range(1, total + 1) if number not in by_priority]
    if missing:
        issues.append('Missing priorities in sequence 1..{}: {}'.format(total, ', '.join(str(n) for n in missing)))
        recommendations.append('Priorities should run from 1 to {} without gaps'.format(total))

    too_high = ['{} ({})'.format(name, value) for name, value in priorities if value is not None and value > total]
    if too_high:
        issues.append('Priorities above {}: {}'.format(total, ', '.join(too_high)))
        recommendations.append('No priority should exceed the number of sources ({})'.format(total))

    if issues:
        recommendations.append(_FIX_HINT)

    return feedsync_messages.PriorityConsistencyReport(
        is_valid=not issues,
        total_sources=total,
        issues=issues,
        recommendations=recommendations,
    )


def check_priority_consistency() -> feedsync_messages.PriorityConsistencyReport:
    priorities = list(feedsync_models.Source.objects.order_by('id').values_list('name', 'priority'))
    report = find_priority_issues(priorities)

    if report.is_valid:
        logger.info('{} Priorities of {} sources are consistent.'.format(_LOG_PREFIX, report.total_sources))
    else:
        logger.warning('{} Found {} priority issues across {} sources.'.format(
            _LOG_PREFIX, len(report.issues), report.total_sources
        ))
    return report


def fix_priority_consistency(
    resolver: typing.Optional[priority_services.PriorityResolver] = None,
) -> feedsync_messages.PriorityFixResult:
    """
    Renumbers every source 1..N in current priority order, unset priorities
    last and ties broken by creation order. Cached priorities of renumbered
    sources are invalidated on ``resolver``.
    """
    with transaction.atomic():
        sources = list(feedsync_models.Source.objects.select_for_update().order_by('id'))
        sources.sort(key=lambda source: (source.priority is None, source.priority or 0, source.id))

        changed = []
        for number, source in enumerate(sources, start=1):
            if source.priority != number:
                logger.info('{} {}: priority {} -> {}.'.format(_LOG_PREFIX, source.name, source.priority, number))
                source.priority = number
                changed.append(source)

        if changed:
            feedsync_models.Source.objects.bulk_update(changed, ['priority'])

    if resolver is not None:
        for source in changed:
            resolver.invalidate(source.name)
            resolver.invalidate(source.slug)

    if not changed:
        message = 'All {} source priorities are already sequential'.format(len(sources))
    else:
        message = 'Renumbered {} of {} sources to priorities 1..{}'.format(len(changed), len(sources), len(sources))
    logger.info('{} {}.'.format(_LOG_PREFIX, message))

    return feedsync_messages.PriorityFixResult(success=True, message=message, sources_updated=len(changed))
