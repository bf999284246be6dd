"""Tests for the cascading variant matcher."""

import pytest

from catalogworker.sync.index import build_index, strip_zeros
from catalogworker.sync.matcher import VariantMatcher, sku_tokens
from catalogworker.sync.models import CatalogRecord, InternalVariant, MatchStrategy


def variant(barcode="", sku=""):
    return InternalVariant(id="v1", product_id="p1", sku=sku, barcode=barcode)


@pytest.fixture
def matcher():
    return VariantMatcher()


class TestSkuTokens:
    def test_split_with_offsets(self):
        assert sku_tokens("BCSQ-100_971 X") == [("BCSQ", 0), ("100", 5), ("971", 9), ("X", 13)]

    def test_empty(self):
        assert sku_tokens("") == []


class TestStrategyOrder:
    """Each strategy is reported when the earlier ones miss."""

    def test_raw_barcode(self, matcher):
        rec = CatalogRecord(raw_id="00012748802600")
        result = matcher.match(variant(barcode="00012748802600"), build_index([rec]))

        assert result.record is rec
        assert result.strategy == MatchStrategy.RAW_BARCODE

    def test_stripped_barcode(self, matcher):
        rec = CatalogRecord(raw_id="00012748802600")
        result = matcher.match(variant(barcode="12748802600"), build_index([rec]))

        assert result.record is rec
        assert result.strategy == MatchStrategy.STRIPPED_BARCODE
        assert result.key == "12748802600"

    def test_padded_barcode(self, matcher):
        rec = CatalogRecord(part_number="000000012345")
        result = matcher.match(variant(barcode="12345"), build_index([rec]))

        assert result.record is rec
        assert result.strategy == MatchStrategy.PADDED_BARCODE

    def test_exact_sku(self, matcher):
        rec = CatalogRecord(raw_id="999", part_number="BCSQ-100971")
        result = matcher.match(variant(sku="BCSQ-100971"), build_index([rec]))

        assert result.record is rec
        assert result.strategy == MatchStrategy.EXACT_SKU

    def test_wide_barcode(self, matcher):
        rec = CatalogRecord(part_number="00012345678")
        result = matcher.match(variant(barcode="12345678"), build_index([rec]))

        assert result.record is rec
        assert result.strategy == MatchStrategy.WIDE_BARCODE
        assert result.key == "00012345678"

    def test_sku_fragment_direct_key(self, matcher):
        rec = CatalogRecord(raw_id="1", part_number="BCSQ-100971")
        result = matcher.match(variant(sku="XYZ-BCSQ-100971"), build_index([rec]))

        assert result.record is rec
        assert result.strategy == MatchStrategy.SKU_FRAGMENT
        assert result.key == "BCSQ-100971"

    def test_sku_fragment_part_containment(self, matcher):
        rec = CatalogRecord(raw_id="1", part_number="BCSQ-100971")
        result = matcher.match(variant(sku="ACME-100971"), build_index([rec]))

        assert result.record is rec
        assert result.strategy == MatchStrategy.SKU_FRAGMENT

    def test_sku_fragment_uses_manufacturer_part(self, matcher):
        rec = CatalogRecord(raw_id="1", part_number="P1", manufacturer_part_number="kn 33-2304")
        result = matcher.match(variant(sku="FILTER-KN-33-2304"), build_index([rec]))

        assert result.record is rec
        assert result.strategy == MatchStrategy.SKU_FRAGMENT

    def test_sku_suffix_after_prefix_removal(self, matcher):
        rec = CatalogRecord(raw_id="1", part_number="100971")
        result = matcher.match(variant(sku="WRN100971"), build_index([rec]))

        assert result.record is rec
        assert result.strategy == MatchStrategy.SKU_SUFFIX

    def test_barcode_beats_sku(self, matcher):
        by_barcode = CatalogRecord(raw_id="555")
        by_sku = CatalogRecord(raw_id="1", part_number="SKU-1")
        result = matcher.match(variant(barcode="555", sku="SKU-1"), build_index([by_barcode, by_sku]))

        assert result.record is by_barcode

    def test_no_match(self, matcher):
        result = matcher.match(variant(barcode="42", sku="NOPE-77"), build_index([CatalogRecord(raw_id="1")]))

        assert not result.matched
        assert result.strategy == MatchStrategy.NONE

    def test_no_identifiers(self, matcher):
        result = matcher.match(variant(), build_index([CatalogRecord(raw_id="1")]))
        assert not result.matched


FEED_IDS = ["00012748802600", "012748802600", "12748802600", "0000123456789"]


class TestZeroInsensitivity:
    """Raw, stripped and padded barcode forms resolve to the same record."""

    @pytest.mark.parametrize("feed_id", FEED_IDS)
    @pytest.mark.parametrize("width", [None, 0, 12, 13, 14])
    def test_every_form_resolves_same_record(self, matcher, feed_id, width):
        rec = CatalogRecord(raw_id=feed_id)
        index = build_index([CatalogRecord(raw_id="777"), rec])

        stripped = strip_zeros(feed_id)
        if width is None:
            barcode = feed_id
        elif width == 0:
            barcode = stripped
        else:
            barcode = stripped.rjust(width, "0")

        assert matcher.match(variant(barcode=barcode), index).record is rec


class TestIdempotence:
    @pytest.mark.parametrize(
        "barcode,sku",
        [("12748802600", ""), ("", "ACME-100971"), ("", "WRN100971"), ("404", "NONE-1")],
    )
    def test_same_result_twice(self, matcher, barcode, sku):
        index = build_index(
            [
                CatalogRecord(raw_id="00012748802600"),
                CatalogRecord(raw_id="2", part_number="100971"),
            ]
        )
        v = variant(barcode=barcode, sku=sku)

        assert matcher.match(v, index) == matcher.match(v, index)


class TestFragmentLimits:
    def test_whole_sku_not_a_fragment(self, matcher):
        # Fragments stop short of the full SKU; the full SKU is strategy 4's job
        rec = CatalogRecord(raw_id="1", part_number="AB-CD")
        index = build_index([rec])
        assert matcher._sku_fragments(variant(sku="AB-CD"), index) is None

    def test_max_fragments(self):
        rec = CatalogRecord(raw_id="1", part_number="B-C-D-E")
        index = build_index([rec])

        assert VariantMatcher(max_fragments=3).match(variant(sku="A-B-C-D-E"), index).matched is True
        shallow = VariantMatcher(max_fragments=2).match(variant(sku="A-B-C-D-E"), index)
        assert shallow.strategy == MatchStrategy.SKU_SUFFIX
