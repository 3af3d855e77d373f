"""
Tests for money helpers
"""

from decimal import Decimal

import pytest

from marketcart.errors import UnknownCurrencyError
from marketcart.money import (
    format_money,
    minor_unit_exponent,
    normalize_currency,
    quantum,
    round_money,
    to_decimal,
    zero,
)


class TestCurrency:
    """Currency code handling"""

    def test_normalize_lowercase_code(self):
        assert normalize_currency(" usd ") == "USD"

    def test_unknown_currency_raises(self):
        with pytest.raises(UnknownCurrencyError):
            normalize_currency("XYZ")

    def test_minor_units(self):
        assert minor_unit_exponent("USD") == 2
        assert minor_unit_exponent("JPY") == 0
        assert minor_unit_exponent("KWD") == 3

    def test_quantum(self):
        assert quantum("USD") == Decimal("0.01")
        assert quantum("JPY") == Decimal("1")
        assert quantum("KWD") == Decimal("0.001")


class TestRounding:
    """Banker's rounding to the minor unit"""

    def test_half_even_rounds_to_even_cent(self):
        assert round_money(Decimal("0.125"), "USD") == Decimal("0.12")
        assert round_money(Decimal("0.135"), "USD") == Decimal("0.14")

    def test_zero_decimal_currency(self):
        assert round_money(Decimal("102.5"), "JPY") == Decimal("102")
        assert round_money(Decimal("103.5"), "JPY") == Decimal("104")

    def test_float_goes_through_string(self):
        assert to_decimal(0.1) == Decimal("0.1")

    def test_invalid_amount(self):
        with pytest.raises(ValueError):
            to_decimal("ten dollars")

    def test_zero_has_currency_precision(self):
        assert str(zero("USD")) == "0.00"
        assert str(zero("JPY")) == "0"

    def test_format_money(self):
        assert format_money(Decimal("63"), "usd") == "63.00 USD"
