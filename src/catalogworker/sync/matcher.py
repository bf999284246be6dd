"""
Variant Matcher - resolves one internal variant to a feed record.

Strategies are tried in a fixed order and the first hit wins. The order
decides which strategy is reported, so it must not change between runs:

1. Exact raw barcode
2. Barcode with leading zeros stripped
3. Stripped barcode zero-padded to 12, 13, then 14 digits
4. Exact SKU
5. Stripped barcode, then padded to 11/12/13/14 digits
6. Trailing SKU fragments (last 3, 2, 1), direct key then part-number containment
7. SKU remainder after dropping its first token, same checks as 6
"""

import logging
import re
from typing import Callable, List, Optional, Sequence, Tuple

from .index import INDEX_PAD_WIDTHS, CatalogIndex
from .models import CatalogRecord, InternalVariant, MatchResult, MatchStrategy

logger = logging.getLogger(__name__)

WIDE_PAD_WIDTHS = (11, 12, 13, 14)

_TOKEN = re.compile(r"[^\-_\s]+")
_ALPHA_PREFIX = re.compile(r"^([A-Za-z]+)(\d[\w]*)$")

Hit = Optional[Tuple[CatalogRecord, str]]


def sku_tokens(sku: str) -> List[Tuple[str, int]]:
    """Split a SKU on '-', '_' and whitespace. Returns (token, start offset) pairs."""
    return [(m.group(0), m.start()) for m in _TOKEN.finditer(sku)]


class VariantMatcher:
    """Cascading multi-strategy matcher."""

    def __init__(
        self,
        max_fragments: int = 3,
        pad_widths: Sequence[int] = INDEX_PAD_WIDTHS,
        wide_widths: Sequence[int] = WIDE_PAD_WIDTHS,
    ):
        self.max_fragments = max_fragments
        self.pad_widths = tuple(pad_widths)
        self.wide_widths = tuple(wide_widths)

        self.strategies: List[Tuple[MatchStrategy, Callable[[InternalVariant, CatalogIndex], Hit]]] = [
            (MatchStrategy.RAW_BARCODE, self._raw_barcode),
            (MatchStrategy.STRIPPED_BARCODE, self._stripped_barcode),
            (MatchStrategy.PADDED_BARCODE, self._padded_barcode),
            (MatchStrategy.EXACT_SKU, self._exact_sku),
            (MatchStrategy.WIDE_BARCODE, self._wide_barcode),
            (MatchStrategy.SKU_FRAGMENT, self._sku_fragments),
            (MatchStrategy.SKU_SUFFIX, self._sku_suffix),
        ]

    def match(self, variant: InternalVariant, index: CatalogIndex) -> MatchResult:
        if not (variant.barcode or "").strip() and not (variant.sku or "").strip():
            return MatchResult(variant=variant)

        for strategy, attempt in self.strategies:
            hit = attempt(variant, index)
            if hit is not None:
                record, key = hit
                return MatchResult(variant=variant, record=record, strategy=strategy, key=key)

        logger.debug(f"No feed match for {variant.label}")
        return MatchResult(variant=variant)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _first(index: CatalogIndex, keys: Sequence[str]) -> Hit:
        for key in keys:
            record = index.get(key)
            if record is not None:
                return record, key
        return None

    @staticmethod
    def _barcode(variant: InternalVariant) -> str:
        return (variant.barcode or "").strip()

    @classmethod
    def _stripped(cls, variant: InternalVariant) -> str:
        return cls._barcode(variant).lstrip("0")

    def _related(self, index: CatalogIndex, candidate: str, tokens: Sequence[str]) -> Hit:
        """Direct key hit for a SKU piece, then part-number containment."""
        hit = self._first(index, [candidate, "".join(tokens)])
        if hit is not None:
            return hit

        record = index.find_part(candidate)
        if record is not None:
            return record, candidate
        return None

    # -------------------------------------------------------------------------
    # Strategies
    # -------------------------------------------------------------------------

    def _raw_barcode(self, variant, index):
        # Only keys registered verbatim; derived zero forms belong to strategies 2-3
        barcode = self._barcode(variant)
        hit = self._first(index, [barcode])
        if hit is None:
            return None
        record = hit[0]
        if barcode in (record.raw_id.strip(), record.part_number.strip()):
            return hit
        return None

    def _stripped_barcode(self, variant, index):
        return self._first(index, [self._stripped(variant)])

    def _padded_barcode(self, variant, index):
        stripped = self._stripped(variant)
        if not stripped:
            return None
        return self._first(index, [stripped.rjust(w, "0") for w in self.pad_widths])

    def _exact_sku(self, variant, index):
        return self._first(index, [(variant.sku or "").strip()])

    def _wide_barcode(self, variant, index):
        stripped = self._stripped(variant)
        if not stripped:
            return None
        keys = [stripped] + [stripped.rjust(w, "0") for w in self.wide_widths]
        return self._first(index, keys)

    def _sku_fragments(self, variant, index):
        sku = (variant.sku or "").strip()
        tokens = sku_tokens(sku)
        if len(tokens) < 2:
            return None

        longest = min(self.max_fragments, len(tokens) - 1)
        for size in range(longest, 0, -1):
            trailing = tokens[-size:]
            candidate = sku[trailing[0][1]:]
            hit = self._related(index, candidate, [t for t, _ in trailing])
            if hit is not None:
                return hit
        return None

    def _sku_suffix(self, variant, index):
        sku = (variant.sku or "").strip()
        tokens = sku_tokens(sku)

        if len(tokens) >= 2:
            remainder = sku[tokens[1][1]:]
            pieces = [t for t, _ in tokens[1:]]
        elif tokens:
            # Single token: drop an alphabetic vendor prefix (WRN100971 -> 100971)
            match = _ALPHA_PREFIX.match(tokens[0][0])
            if not match:
                return None
            remainder = match.group(2)
            pieces = [remainder]
        else:
            return None

        return self._related(index, remainder, pieces)
