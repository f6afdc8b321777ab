"""
Tests for Quantity Normalization

Tests unit detection, feet/inch arithmetic and graceful degradation.
"""

import math

import pytest

from bom_tools.quantity import Qty, QtyUnit, normalize_qty, parse_numeric_prefix


class TestFeetAndInches:
    """Compound and single-mark imperial lengths."""

    def test_feet_dash_inches(self):
        qty = normalize_qty("43'-4\"")
        assert qty.unit == QtyUnit.FEET
        assert qty.value == pytest.approx(43 + 4 / 12)
        assert qty.raw == "43'-4\""

    def test_feet_space_inches(self):
        qty = normalize_qty("5' 6\"")
        assert qty.unit == QtyUnit.FEET
        assert qty.value == pytest.approx(5.5)

    def test_inches_only_compound(self):
        """Feet component may be absent: '6" is half a foot."""
        qty = normalize_qty("'6\"")
        assert qty.unit == QtyUnit.FEET
        assert qty.value == pytest.approx(0.5)

    def test_feet_only(self):
        assert normalize_qty("12'") == Qty(raw="12'", unit=QtyUnit.FEET, value=12.0)
        assert normalize_qty("12.5'").value == pytest.approx(12.5)

    def test_inches_only(self):
        qty = normalize_qty("12\"")
        assert qty.unit == QtyUnit.INCHES
        assert qty.value == 12.0

    def test_typographic_primes(self):
        qty = normalize_qty("43′-4″")
        assert qty.unit == QtyUnit.FEET
        assert qty.value == pytest.approx(43 + 4 / 12)
        assert qty.raw == "43′-4″"


class TestMetersAndNumbers:
    """Metric lengths and plain counts."""

    def test_meters(self):
        qty = normalize_qty("3.5m")
        assert qty.unit == QtyUnit.METERS
        assert qty.value == 3.5

    def test_meters_uppercase_with_space(self):
        qty = normalize_qty("12 M")
        assert qty.unit == QtyUnit.METERS
        assert qty.value == 12.0

    def test_plain_number_has_no_unit(self):
        qty = normalize_qty("7")
        assert qty.unit == QtyUnit.UNKNOWN
        assert qty.value == 7.0

    def test_decimal_number(self):
        assert normalize_qty(" 2.5 ").value == 2.5

    def test_numeric_input_is_stringified(self):
        qty = normalize_qty(4)
        assert qty.raw == "4"
        assert qty.value == 4.0


class TestUnparsable:
    """Input that cannot be read never raises."""

    @pytest.mark.parametrize("raw", ["", "   ", "abc", "AS REQ'D", "m", "DN50", "approx"])
    def test_unknown(self, raw):
        qty = normalize_qty(raw)
        assert qty.value is None
        assert qty.unit == QtyUnit.UNKNOWN
        assert qty.raw == raw

    def test_none_becomes_empty(self):
        qty = normalize_qty(None)
        assert qty == Qty(raw="", unit=QtyUnit.UNKNOWN, value=None)
        assert not qty.is_parsed

    def test_overflow_is_not_a_value(self):
        qty = normalize_qty("1e999")
        assert qty.value is None

    def test_value_is_never_nan(self):
        for raw in ["nan", "NaN m", "inf", "-inf\"", "1e999'"]:
            value = normalize_qty(raw).value
            assert value is None or math.isfinite(value)


class TestNumericPrefix:
    """parse_numeric_prefix reads a leading number only."""

    def test_prefix(self):
        assert parse_numeric_prefix("43 approx") == 43.0
        assert parse_numeric_prefix("3.5m") == 3.5
        assert parse_numeric_prefix("-2") == -2.0

    def test_no_prefix(self):
        assert parse_numeric_prefix("abc") is None
        assert parse_numeric_prefix("") is None


class TestQtySerialization:
    def test_to_dict(self):
        assert normalize_qty("3.5m").to_dict() == {"raw": "3.5m", "unit": "m", "value": 3.5}

    def test_from_dict_defaults(self):
        assert Qty.from_dict({}) == Qty(raw="")
