import csv
import decimal
import io
import logging
import typing

import pandas as pd

from feedsync import constants as feedsync_constants
from feedsync import enums as feedsync_enums
from feedsync import exceptions as feedsync_exceptions
from feedsync import messages as feedsync_messages

logger = logging.getLogger(__name__)

_LOG_PREFIX = '[TABULAR-PARSER]'


def repair_header(text: str) -> str:
    for broken, fixed in feedsync_constants.HEADER_REPAIRS:
        text = text.replace(broken, fixed)
    return text


def _is_blank(fields: typing.List[str]) -> bool:
    return not fields or (len(fields) == 1 and not fields[0].strip())


def _row_line_numbers(text: str) -> typing.Tuple[typing.List[int], typing.List[int]]:
    """
    First physical line of every data row, split into rows that parse and
    rows with more fields than the header. The header is line 1.
    """
    reader = csv.reader(io.StringIO(text))
    header_width = None
    kept, malformed = [], []
    last_line = 0
    for fields in reader:
        first_line, last_line = last_line + 1, reader.line_num
        if _is_blank(fields):
            continue
        if header_width is None:
            header_width = len(fields)
            continue
        if len(fields) > header_width:
            malformed.append(first_line)
        else:
            kept.append(first_line)
    return kept, malformed


def _read_rows(
    text: str,
) -> typing.Tuple[typing.List[typing.Tuple[int, typing.Dict]], typing.List[feedsync_messages.RowError]]:
    """Returns (line_number, row) pairs for the parsed rows and a RowError per malformed row."""
    bad_rows = []
    text = repair_header(text)

    try:
        kept_lines, malformed_lines = _row_line_numbers(text)
    except csv.Error as e:
        raise feedsync_exceptions.FeedParseError('Failed to parse document: {}'.format(str(e)))

    def on_bad_line(fields: typing.List[str]) -> None:
        index = len(bad_rows)
        bad_rows.append(feedsync_messages.RowError(
            line_number=malformed_lines[index] if index < len(malformed_lines) else 0,
            reason=feedsync_enums.RowErrorReason.MALFORMED,
            values=list(fields),
        ))
        return None

    try:
        df = pd.read_csv(
            io.StringIO(text),
            sep=',',
            header=0,
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            engine='python',
            on_bad_lines=on_bad_line,
        )
    except (pd.errors.EmptyDataError, pd.errors.ParserError, csv.Error, ValueError) as e:
        raise feedsync_exceptions.FeedParseError('Failed to parse document: {}'.format(str(e)))

    if len(df.columns) == 0:
        raise feedsync_exceptions.FeedParseError('Failed to parse document: no header columns found')

    df = df.rename(columns=lambda column: str(column).strip())
    rows = df.to_dict('records')
    if len(kept_lines) != len(rows):
        kept_lines = [index + 2 for index in range(len(rows))]
    return list(zip(kept_lines, rows)), bad_rows


def _get_value(row: typing.Dict, column: typing.Optional[str]) -> str:
    """Column lookup tolerant to case and surrounding whitespace."""
    if not column:
        return ''

    value = row.get(column)
    if value is None:
        wanted = column.strip().lower()
        for key, candidate in row.items():
            if str(key).strip().lower() == wanted:
                value = candidate
                break

    if value is None or (isinstance(value, float) and value != value):
        return ''
    return str(value).strip()


def _merge_column_map(defaults: typing.Dict, overrides: typing.Optional[typing.Dict]) -> typing.Dict:
    column_map = dict(defaults)
    if overrides:
        column_map.update(overrides)
    return column_map


def extract_brand(product_name: str) -> str:
    parts = product_name.split()
    return parts[0] if parts else ''


def extract_part_number(product_name: str) -> str:
    parts = product_name.split()
    return ' '.join(parts[1:]) if len(parts) > 1 else product_name.strip()


def parse_quantity(value: str) -> int:
    try:
        return int(decimal.Decimal(value))
    except (decimal.InvalidOperation, ValueError, OverflowError):
        return 0


def parse_catalog_document(text: str, column_map: typing.Optional[typing.Dict] = None) -> feedsync_messages.ParseResult:
    columns = _merge_column_map(feedsync_constants.DEFAULT_CATALOG_COLUMN_MAP, column_map)
    rows, errors = _read_rows(text)
    result = feedsync_messages.ParseResult(errors=errors)

    for line_number, row in rows:
        upc = _get_value(row, columns.get('upc'))
        if not upc:
            result.errors.append(feedsync_messages.RowError(
                line_number=line_number,
                reason=feedsync_enums.RowErrorReason.MISSING_REQUIRED,
                values=[_get_value(row, column) for column in row.keys()],
            ))
            continue

        product_name = _get_value(row, columns.get('product_name'))
        name = _get_value(row, columns.get('name')) or product_name
        description = _get_value(row, columns.get('description')) or _get_value(row, columns.get('name'))
        brand = _get_value(row, columns.get('brand')) or extract_brand(product_name)
        part_number = _get_value(row, columns.get('manufacturer_part_number')) or extract_part_number(product_name)

        result.records.append(feedsync_messages.CatalogRecord(
            upc=upc,
            name=name,
            brand=brand,
            category=_get_value(row, columns.get('category')),
            description=description,
            manufacturer_part_number=part_number,
        ))

    logger.info('{} Parsed {} catalog records ({} malformed, {} missing {}).'.format(
        _LOG_PREFIX, len(result.records), result.malformed_count, result.missing_required_count,
        feedsync_constants.CATALOG_REQUIRED_FIELD,
    ))
    return result


def parse_inventory_document(text: str, column_map: typing.Optional[typing.Dict] = None) -> feedsync_messages.ParseResult:
    columns = _merge_column_map(feedsync_constants.DEFAULT_INVENTORY_COLUMN_MAP, column_map)
    rows, errors = _read_rows(text)
    result = feedsync_messages.ParseResult(errors=errors)

    for line_number, row in rows:
        vendor_sku = _get_value(row, columns.get('vendor_sku'))
        if not vendor_sku:
            result.errors.append(feedsync_messages.RowError(
                line_number=line_number,
                reason=feedsync_enums.RowErrorReason.MISSING_REQUIRED,
                values=[_get_value(row, column) for column in row.keys()],
            ))
            continue

        result.records.append(feedsync_messages.InventoryRecord(
            vendor_sku=vendor_sku,
            upc=_get_value(row, columns.get('upc')),
            quantity_available=parse_quantity(_get_value(row, columns.get('quantity'))),
        ))

    logger.info('{} Parsed {} inventory records ({} malformed, {} missing {}).'.format(
        _LOG_PREFIX, len(result.records), result.malformed_count, result.missing_required_count,
        feedsync_constants.INVENTORY_REQUIRED_FIELD,
    ))
    return result
