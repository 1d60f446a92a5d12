"""
Test suite for the Money type

All amounts are Decimal and rounded half-up to the currency precision.
"""

import pytest
from decimal import Decimal

from dealer_finance.currency import Money, Currency, round_to_currency, to_decimal


class TestMoney:
    """Test Money arithmetic and rounding"""

    def test_rounds_half_up_on_construction(self):
        assert Money(Decimal('10.005')).amount == Decimal('10.01')
        assert Money(Decimal('10.004')).amount == Decimal('10.00')
        assert Money(Decimal('-10.005')).amount == Decimal('-10.01')

    def test_float_input_goes_through_string(self):
        assert to_decimal(0.1) == Decimal('0.1')
        assert Money(0.1).amount == Decimal('0.10')

    def test_arithmetic(self):
        a = Money(Decimal('100.00'))
        b = Money(Decimal('33.33'))

        assert a + b == Money(Decimal('133.33'))
        assert a - b == Money(Decimal('66.67'))
        assert a * Decimal('0.08') == Money(Decimal('8.00'))
        assert a / 3 == Money(Decimal('33.33'))
        assert -b == Money(Decimal('-33.33'))
        assert abs(-b) == b

    def test_comparisons(self):
        assert Money(Decimal('1.00')) < Money(Decimal('1.01'))
        assert Money(Decimal('1.00')) <= Money(Decimal('1'))
        assert max(Money(Decimal('5')), Money(Decimal('7'))) == Money(Decimal('7'))
        assert Money(Decimal('1')) != Decimal('1')

    def test_mixed_currency_rejected(self):
        with pytest.raises(ValueError, match="Cannot add USD and CAD"):
            Money(Decimal('1'), Currency.USD) + Money(Decimal('1'), Currency.CAD)

    def test_sum(self):
        values = [Money(Decimal('0.10')), Money(Decimal('0.20')), Money(Decimal('0.30'))]
        assert Money.sum(values) == Money(Decimal('0.60'))
        assert Money.sum([]) == Money.zero()

    def test_predicates(self):
        assert Money.zero().is_zero()
        assert Money(Decimal('0.01')).is_positive()
        assert Money(Decimal('-0.01')).is_negative()

    def test_formatting(self):
        assert Money(Decimal('669.6')).to_plain() == "669.60"
        assert Money(Decimal('1234.5')).to_string() == "USD 1,234.50"

    def test_to_decimal_rejects_invalid_values(self):
        for value in ("abc", "", "NaN", "Infinity", Decimal("-Infinity"), None):
            with pytest.raises(ValueError, match="Invalid numeric value"):
                to_decimal(value)

    def test_money_rejects_non_numeric_amount(self):
        with pytest.raises(ValueError):
            Money("12.5O")

    def test_round_to_currency(self):
        assert round_to_currency(Decimal('2.675'), Currency.CAD) == Decimal('2.68')
