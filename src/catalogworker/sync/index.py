"""
Catalog Index - multi-key lookup over normalized feed records.

Each record is registered under every identifier variant (raw, leading zeros
stripped, zero-padded to 12/13/14 digits) and under its part number. The
first record to claim a key keeps it; later duplicates are dropped.

Fuzzy part-number containment (used by the matcher's SKU-fragment
strategies) sits behind PartNumberLookup so the O(n) reference scan can be
swapped for a reverse index without changing any match outcome.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Protocol, Sequence

from ..errors import FeedUnavailable
from .feeds import FeedSource
from .models import CatalogRecord
from .normalizer import FeedNormalizer

logger = logging.getLogger(__name__)

INDEX_PAD_WIDTHS = (12, 13, 14)

_DELIMITERS = re.compile(r"[\s\-_./]+")


def strip_zeros(value: str) -> str:
    return value.strip().lstrip("0")


def identifier_keys(value: str, widths: Sequence[int] = INDEX_PAD_WIDTHS) -> List[str]:
    """Raw, zero-stripped and zero-padded forms of an identifier, deduplicated.

    An all-zero identifier yields only its raw form.
    """
    raw = (value or "").strip()
    if not raw:
        return []

    keys = [raw]
    stripped = raw.lstrip("0")
    if stripped:
        keys.append(stripped)
        keys.extend(stripped.rjust(width, "0") for width in widths)

    seen = set()
    return [k for k in keys if not (k in seen or seen.add(k))]


def compact(value: str) -> str:
    """Delimiter- and case-insensitive form of a part number or SKU fragment."""
    return _DELIMITERS.sub("", value or "").lower()


# =============================================================================
# Part-number lookups
# =============================================================================


class PartNumberLookup(Protocol):
    """Finds the first record (feed order) whose part number relates to a fragment.

    A record matches when the compacted fragment is a substring of its
    compacted part number or manufacturer part number, or when one of those
    (at least `min_length` long) is a suffix of the fragment.
    """

    def find(self, fragment: str) -> Optional[CatalogRecord]: ...


def _record_parts(record: CatalogRecord) -> List[str]:
    parts = []
    for value in (record.part_number, record.manufacturer_part_number):
        part = compact(value)
        if part:
            parts.append(part)
    return parts


class LinearScanLookup:
    """Reference implementation: scans every record."""

    def __init__(self, records: Sequence[CatalogRecord], min_length: int = 3):
        self.records = list(records)
        self.min_length = min_length

    def find(self, fragment: str) -> Optional[CatalogRecord]:
        fragment = compact(fragment)
        if len(fragment) < self.min_length:
            return None

        for record in self.records:
            for part in _record_parts(record):
                if fragment in part:
                    return record
                if len(part) >= self.min_length and fragment.endswith(part):
                    return record
        return None


class NgramLookup:
    """Trigram reverse index plus an exact-part map.

    Same outcomes as LinearScanLookup: both return the lowest record ordinal
    satisfying either the substring or the suffix condition.
    """

    def __init__(self, records: Sequence[CatalogRecord], min_length: int = 3, n: int = 3):
        self.records = list(records)
        self.min_length = min_length
        self.n = n
        self._grams: Dict[str, List[int]] = {}
        self._exact: Dict[str, int] = {}
        self._parts: List[List[str]] = []

        for ordinal, record in enumerate(self.records):
            parts = _record_parts(record)
            self._parts.append(parts)
            for part in parts:
                if len(part) >= self.min_length and part not in self._exact:
                    self._exact[part] = ordinal
                for gram in self._ngrams(part):
                    postings = self._grams.setdefault(gram, [])
                    if not postings or postings[-1] != ordinal:
                        postings.append(ordinal)

    def _ngrams(self, text: str) -> set:
        return {text[i : i + self.n] for i in range(len(text) - self.n + 1)}

    def _first_containing(self, fragment: str) -> Optional[int]:
        if len(fragment) < self.n:
            # Too short for the gram index
            for ordinal, parts in enumerate(self._parts):
                if any(fragment in part for part in parts):
                    return ordinal
            return None

        postings = sorted(
            (self._grams.get(gram, []) for gram in self._ngrams(fragment)), key=len
        )
        if not postings or not postings[0]:
            return None

        candidates = set(postings[0])
        for other in postings[1:]:
            candidates.intersection_update(other)
            if not candidates:
                return None

        for ordinal in sorted(candidates):
            if any(fragment in part for part in self._parts[ordinal]):
                return ordinal
        return None

    def _first_suffix(self, fragment: str) -> Optional[int]:
        best = None
        for start in range(len(fragment) - self.min_length + 1):
            ordinal = self._exact.get(fragment[start:])
            if ordinal is not None and (best is None or ordinal < best):
                best = ordinal
        return best

    def find(self, fragment: str) -> Optional[CatalogRecord]:
        fragment = compact(fragment)
        if len(fragment) < self.min_length:
            return None

        hits = [
            o
            for o in (self._first_containing(fragment), self._first_suffix(fragment))
            if o is not None
        ]
        if not hits:
            return None
        return self.records[min(hits)]


# =============================================================================
# Index
# =============================================================================


class CatalogIndex:
    """Immutable key -> record mapping. Replaced wholesale, never mutated."""

    def __init__(
        self,
        keys: Dict[str, CatalogRecord],
        records: List[CatalogRecord],
        lookup: PartNumberLookup,
        built_at: Optional[datetime] = None,
    ):
        self._keys = keys
        self._records = records
        self.lookup = lookup
        self.built_at = built_at or datetime.now(timezone.utc)

    def get(self, key: str) -> Optional[CatalogRecord]:
        if not key:
            return None
        return self._keys.get(key)

    def __contains__(self, key: str) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)

    @property
    def records(self) -> List[CatalogRecord]:
        return list(self._records)

    @property
    def record_count(self) -> int:
        return len(self._records)

    def find_part(self, fragment: str) -> Optional[CatalogRecord]:
        return self.lookup.find(fragment)


def build_index(
    records: Iterable[CatalogRecord],
    reverse_index: bool = True,
    fragment_min_length: int = 3,
) -> CatalogIndex:
    """Build a CatalogIndex from normalized records.

    Args:
        records: Normalized feed records, in feed order
        reverse_index: Use the trigram lookup instead of a linear scan
        fragment_min_length: Shortest SKU fragment considered for containment

    Returns:
        CatalogIndex with identifier and part-number keys
    """
    keys: Dict[str, CatalogRecord] = {}
    indexed: List[CatalogRecord] = []
    dropped = 0

    for record in records:
        indexed.append(record)

        candidates = identifier_keys(record.raw_id)
        if record.part_number:
            candidates.append(record.part_number.strip())

        for key in candidates:
            if not key:
                continue
            if key in keys:
                dropped += 1
                continue
            keys[key] = record

    lookup_cls = NgramLookup if reverse_index else LinearScanLookup
    lookup = lookup_cls(indexed, min_length=fragment_min_length)

    logger.info(
        f"Catalog index built with {len(keys)} keys from {len(indexed)} records "
        f"({dropped} duplicate keys dropped)"
    )
    return CatalogIndex(keys, indexed, lookup)


class CatalogIndexCache:
    """Time-bounded cache of the CatalogIndex for one feed source."""

    def __init__(
        self,
        source: FeedSource,
        normalizer: Optional[FeedNormalizer] = None,
        ttl_seconds: float = 3600,
        reverse_index: bool = True,
        fragment_min_length: int = 3,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.source = source
        self.normalizer = normalizer or FeedNormalizer()
        self.ttl_seconds = ttl_seconds
        self.reverse_index = reverse_index
        self.fragment_min_length = fragment_min_length
        self._clock = clock
        self._index: Optional[CatalogIndex] = None
        self._built_at: Optional[float] = None
        self._lock = asyncio.Lock()

    @property
    def is_fresh(self) -> bool:
        if self._index is None or self._built_at is None:
            return False
        return (self._clock() - self._built_at) < self.ttl_seconds

    @property
    def loaded_at(self) -> Optional[datetime]:
        return self._index.built_at if self._index else None

    def invalidate(self) -> None:
        """Drop the cached index unconditionally."""
        self._index = None
        self._built_at = None
        logger.info("Catalog index cache cleared")

    async def fetch_or_build(self) -> CatalogIndex:
        async with self._lock:
            if self.is_fresh:
                logger.debug("Using cached catalog index")
                return self._index

            index = await self._build()
            self._index = index
            self._built_at = self._clock()
            return index

    async def _build(self) -> CatalogIndex:
        logger.info(f"Building catalog index from {self.source.name}")
        try:
            rows = await self.source.load_rows()
        except FeedUnavailable:
            raise
        except Exception as e:
            raise FeedUnavailable(f"Feed source {self.source.name} failed: {e}") from e

        records = list(self.normalizer.normalize_all(rows))
        if not records:
            raise FeedUnavailable(f"Feed source {self.source.name} yielded no records")

        return build_index(
            records,
            reverse_index=self.reverse_index,
            fragment_min_length=self.fragment_min_length,
        )
