"""
Feed Normalizer.

Turns loosely structured distributor rows (column names vary across feed
versions and vendors) into CatalogRecord objects. Every canonical field is
resolved through an ordered alias table: the first alias present with a
non-blank value wins.

Normalization never raises. A malformed field becomes empty/zero so a bad
row cannot abort a feed load of tens of thousands of rows.
"""

import logging
from decimal import Decimal, InvalidOperation, ROUND_FLOOR
from typing import Any, Dict, Iterable, Iterator, Mapping, Optional, Tuple

from .models import CatalogRecord

logger = logging.getLogger(__name__)


# Ordered alias table per canonical field
FIELD_ALIASES: Dict[str, Tuple[str, ...]] = {
    "raw_id": ("Upc", "UPC", "upc", "UPC Code", "Barcode"),
    "part_number": ("Premier Part Number", "Premier Part #", "Part Number"),
    "manufacturer_part_number": (
        "Mfg Part Number",
        "Manufacturer Part Number",
        "Mfg Part #",
    ),
    "map_price": ("MAP", "Map", "map", "MAP Price", "MAP Price (USD)"),
    "jobber_price": ("Jobber", "Jobber Price", "Jobber Price (USD)", "jobber"),
    "retail_price": ("Retail", "Retail Price", "Retail Price (USD)", "MSRP", "retail"),
    "cost": ("Customer Price", "Customer Price (USD)", "Cost", "cost", "COST"),
    "availability": (
        "USA Item Availability",
        "Total Availability",
        "Inventory",
        "inventory",
    ),
}

# Longest digit strings expanded or parsed; anything larger is malformed
MAX_UPC_DIGITS = 20
MAX_QUANTITY_DIGITS = 12

# Warehouse location -> accepted column names
WAREHOUSE_ALIASES: Dict[str, Tuple[str, ...]] = {
    "NV": ("NV whse", "NV Whse"),
    "KY": ("KY whse", "KY Whse"),
    "MFG": ("MFG Invt", "MFG Invt."),
    "WA": ("WA whse", "WA Whse"),
}


def resolve_field(row: Mapping[Any, Any], aliases: Iterable[str]) -> str:
    """Return the first non-blank value among `aliases`, stripped, or ""."""
    for alias in aliases:
        value = row.get(alias)
        if value is None or isinstance(value, (list, tuple)):
            continue
        text = str(value).strip()
        if text:
            return text
    return ""


def parse_quantity(value: Any) -> Optional[int]:
    """Parse a stock quantity. Returns None when absent or not numeric."""
    if value is None:
        return None
    text = str(value).replace(",", "").strip()
    if not text:
        return None
    try:
        number = Decimal(text)
    except InvalidOperation:
        return None
    if not number.is_finite() or number.adjusted() > MAX_QUANTITY_DIGITS:
        return None
    return int(number.to_integral_value(rounding=ROUND_FLOOR))


def normalize_upc(value: str) -> str:
    """Normalize a feed identifier.

    Spreadsheet exports turn long UPCs into scientific notation
    (``8.34532E+11``); those are expanded back to their digit string.
    """
    upc = (value or "").strip()
    if "e+" in upc.lower() or "e-" in upc.lower():
        try:
            number = Decimal(upc)
            if number.is_finite() and number.adjusted() < MAX_UPC_DIGITS:
                upc = format(number.to_integral_value(), "f")
        except InvalidOperation:
            pass
    return upc


class FeedNormalizer:
    """Converts raw feed rows to CatalogRecord using an alias table."""

    def __init__(
        self,
        aliases: Optional[Dict[str, Tuple[str, ...]]] = None,
        warehouses: Optional[Dict[str, Tuple[str, ...]]] = None,
    ):
        self.aliases = dict(FIELD_ALIASES)
        if aliases:
            self.aliases.update(aliases)
        self.warehouses = dict(warehouses or WAREHOUSE_ALIASES)

    def field(self, row: Mapping[Any, Any], name: str) -> str:
        return resolve_field(row, self.aliases.get(name, ()))

    def locations(self, row: Mapping[Any, Any]) -> Dict[str, int]:
        """Per-warehouse quantities for the warehouse columns present in `row`."""
        quantities: Dict[str, int] = {}
        for location, aliases in self.warehouses.items():
            qty = parse_quantity(resolve_field(row, aliases))
            if qty is not None:
                quantities[location] = qty
        return quantities

    def normalize(self, row: Mapping[Any, Any]) -> CatalogRecord:
        return CatalogRecord(
            raw_id=normalize_upc(self.field(row, "raw_id")),
            part_number=self.field(row, "part_number"),
            manufacturer_part_number=self.field(row, "manufacturer_part_number"),
            map_price=self.field(row, "map_price"),
            jobber_price=self.field(row, "jobber_price"),
            retail_price=self.field(row, "retail_price"),
            cost=self.field(row, "cost"),
            locations=self.locations(row),
            availability=parse_quantity(self.field(row, "availability")) or 0,
        )

    def normalize_all(self, rows: Iterable[Mapping[Any, Any]]) -> Iterator[CatalogRecord]:
        count = 0
        for row in rows:
            if not isinstance(row, Mapping):
                logger.debug(f"Skipping non-mapping feed row: {row!r}")
                continue
            count += 1
            yield self.normalize(row)
        logger.info(f"Normalized {count} feed rows")


default_normalizer = FeedNormalizer()


def normalize_row(row: Mapping[Any, Any]) -> CatalogRecord:
    """Normalize one row with the default alias table."""
    return default_normalizer.normalize(row)
