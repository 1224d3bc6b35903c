import logging
import typing

from feedsync import messages as feedsync_messages

logger = logging.getLogger(__name__)

_LOG_PREFIX = '[LINE-DIFFER]'


def split_lines(document: typing.Optional[str]) -> typing.List[str]:
    if not document:
        return []
    lines = (line.rstrip('\r') for line in document.split('\n'))
    return [line for line in lines if line.strip()]


def diff_lines(new_document: str, previous_snapshot: typing.Optional[str]) -> feedsync_messages.DiffResult:
    """
    Reduce a header-first document to the lines that are not present
    verbatim in the previous snapshot.

    A modified record shows up as a new line. The header line is always the
    first changed line so the result can be parsed on its own. Without a
    previous snapshot every line is changed.
    """
    new_lines = split_lines(new_document)
    if not new_lines:
        return feedsync_messages.DiffResult(
            changed_lines=[], has_changes=False, stats=feedsync_messages.DiffStats()
        )

    header, data_lines = new_lines[0], new_lines[1:]

    if previous_snapshot is None:
        logger.info('{} No previous snapshot found, processing all {} records.'.format(
            _LOG_PREFIX, len(data_lines)
        ))
        return feedsync_messages.DiffResult(
            changed_lines=list(new_lines),
            has_changes=bool(data_lines),
            stats=feedsync_messages.DiffStats(
                total_lines=len(new_lines),
                changed_lines=len(data_lines),
                added_lines=len(data_lines),
                removed_lines=0,
            ),
        )

    previous_lines = split_lines(previous_snapshot)
    previous_set = set(previous_lines)
    new_set = set(new_lines)

    changed_data_lines = [line for line in data_lines if line not in previous_set]
    removed_lines = sum(1 for line in previous_lines[1:] if line not in new_set)

    stats = feedsync_messages.DiffStats(
        total_lines=len(new_lines),
        changed_lines=len(changed_data_lines),
        added_lines=len(changed_data_lines),
        removed_lines=removed_lines,
    )

    if changed_data_lines:
        logger.info('{} Found {} changed lines out of {} (added: {}, removed: {}).'.format(
            _LOG_PREFIX, stats.changed_lines, len(data_lines), stats.added_lines, stats.removed_lines
        ))
    else:
        logger.info('{} No changes detected.'.format(_LOG_PREFIX))

    return feedsync_messages.DiffResult(
        changed_lines=[header] + changed_data_lines,
        has_changes=bool(changed_data_lines),
        stats=stats,
    )
