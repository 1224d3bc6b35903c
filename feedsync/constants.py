# Priority used for sources that are unknown or have no valid priority configured.
# Lower numbers win, so unknown sources never overwrite recognized ones.
DEFAULT_PRIORITY = 999
MIN_PRIORITY = 1

# UPC values that mean "this product has no code" in vendor feeds
NO_CODE_SENTINELS = frozenset({'0'})

DEFAULT_CATALOG_SYNC_TIME = '02:00'
DEFAULT_INVENTORY_INTERVAL_MINUTES = 60

CATALOG_SYNC_TIME_PATTERN = r'^(\d{1,2}):(\d{1,2})$'

# One header variant ships with an unbalanced quote before the last column
HEADER_REPAIRS = (
    (',MFG_product"', ',"MFG_product"'),
)

# Catalog column map: record field -> document column.
# Fields mapped to None are derived:
#   name                    <- product_name when the name column is empty
#   description             <- name when the description column is empty
#   brand                   <- first token of product_name
#   manufacturer_part_number <- remaining tokens of product_name
DEFAULT_CATALOG_COLUMN_MAP = {
    'upc': 'universal_product_code',
    'name': 'short_description',
    'product_name': 'product_name',
    'description': 'long_description',
    'category': 'category_description',
    'brand': None,
    'manufacturer_part_number': None,
}

DEFAULT_INVENTORY_COLUMN_MAP = {
    'vendor_sku': 'Product',
    'upc': 'UPC',
    'quantity': 'Qty Avail',
}

CATALOG_REQUIRED_FIELD = 'upc'
INVENTORY_REQUIRED_FIELD = 'vendor_sku'

# Fields compared for no-op detection and written on catalog update
CATALOG_MAPPED_FIELDS = (
    'name',
    'brand',
    'manufacturer_part_number',
    'category',
    'description',
    'source',
)
