"""
Test suite for currency module

Naira amounts on Decimal, kobo conversion for the payment gateway and
display formatting.
"""

import pytest
from decimal import Decimal

from investnaija.currency import (
    Money, Currency, naira, zero, to_kobo, from_kobo, format_naira,
    decimal_from_string
)


class TestMoney:
    """Test Money class operations"""

    def test_rounds_to_kobo(self):
        assert Money(Decimal('100.555')).amount == Decimal('100.56')
        assert Money(Decimal('100.554')).amount == Decimal('100.55')
        assert naira("0.005").amount == Decimal('0.01')

    def test_defaults_to_naira(self):
        assert Money(Decimal('1')).currency == Currency.NGN
        assert naira(5) == Money(Decimal('5.00'), Currency.NGN)

    def test_arithmetic(self):
        a = naira("100.50")
        b = naira("50.25")
        assert (a + b).amount == Decimal('150.75')
        assert (a - b).amount == Decimal('50.25')
        assert (a * 2).amount == Decimal('201.00')
        assert (a / 2).amount == Decimal('50.25')
        assert (-a).amount == Decimal('-100.50')

    def test_sum_with_zero_start(self):
        total = sum([naira(1), naira(2), naira("3.50")], zero())
        assert total == naira("6.50")

    def test_comparisons(self):
        assert naira(10) > naira(5)
        assert naira(5) <= naira(5)
        assert naira(1) != naira(2)

    def test_currency_mismatch(self):
        with pytest.raises(ValueError, match="Cannot add NGN and USD"):
            naira(1) + Money(Decimal('1'), Currency.USD)
        with pytest.raises(ValueError):
            naira(1) < Money(Decimal('1'), Currency.USD)

    def test_adding_non_money(self):
        with pytest.raises(TypeError):
            naira(1) + Decimal('1')

    def test_predicates(self):
        assert zero().is_zero()
        assert naira(1).is_positive()
        assert naira(-1).is_negative()

    def test_to_string(self):
        assert naira("1234.5").to_string() == "₦1,234.50"
        assert naira("-20").to_string() == "-₦20.00"
        assert Money(Decimal('3'), Currency.USD).to_string() == "$3.00"


class TestKobo:
    def test_to_kobo(self):
        assert to_kobo(naira("1500.75")) == 150075
        assert to_kobo(naira(100)) == 10000

    def test_from_kobo(self):
        assert from_kobo(150075) == naira("1500.75")
        assert from_kobo(1) == naira("0.01")


class TestFormatting:
    def test_format_naira_accepts_plain_values(self):
        assert format_naira(Decimal('2500')) == "₦2,500.00"
        assert format_naira("10") == "₦10.00"
        assert format_naira(naira(7)) == "₦7.00"

    def test_decimal_from_string(self):
        assert decimal_from_string("₦1,250.50") == Decimal('1250.50')
        assert decimal_from_string("1250") == Decimal('1250')

    def test_decimal_from_string_rejects_garbage(self):
        with pytest.raises(ValueError):
            decimal_from_string("")
        with pytest.raises(ValueError):
            decimal_from_string("abc")
