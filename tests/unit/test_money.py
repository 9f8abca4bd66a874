"""
Unit tests for money token parsing.
"""

from decimal import Decimal

import pytest

from utils.money import parse_money, parse_quantity


# ===================
# AMOUNTS + CURRENCIES
# ===================

class TestParseMoney:
    """Test parse_money on the cell shapes suppliers actually send."""

    @pytest.mark.parametrize("text,amount,currency", [
        ("$1,234.50", "1234.50", "USD"),
        ("US$ 99", "99", "USD"),
        ("1.234,50 €", "1234.50", "EUR"),
        ("£12", "12", "GBP"),
        ("ZAR 99", "99", "ZAR"),
        ("R12.50", "12.50", "ZAR"),
        ("12.50 EUR", "12.50", "EUR"),
        ("12.50", "12.50", None),
    ])
    def test_amount_and_currency(self, text, amount, currency):
        money = parse_money(text)

        assert money is not None
        assert money.amount == Decimal(amount)
        assert money.currency == currency

    def test_lone_comma_with_three_digits_is_thousands(self):
        assert parse_money("12,500").amount == Decimal("12500")

    def test_lone_comma_otherwise_is_decimal(self):
        assert parse_money("12,5").amount == Decimal("12.5")
        assert parse_money("0,99").amount == Decimal("0.99")

    def test_repeated_separators_are_grouping(self):
        assert parse_money("1.234.567").amount == Decimal("1234567")
        assert parse_money("12,345,678").amount == Decimal("12345678")

    def test_space_and_apostrophe_grouping(self):
        assert parse_money("1 234,56").amount == Decimal("1234.56")
        assert parse_money("1'234.50").amount == Decimal("1234.50")

    def test_parentheses_mean_negative(self):
        assert parse_money("(12.50)").amount == Decimal("-12.50")

    def test_minus_sign(self):
        assert parse_money("-5").amount == Decimal("-5")
        assert parse_money("$-3.25").amount == Decimal("-3.25")

    def test_leading_decimal_point(self):
        assert parse_money(".5").amount == Decimal("0.5")


# ===================
# NOT AMOUNTS
# ===================

class TestNotMoney:

    @pytest.mark.parametrize("text", [
        None,
        "",
        "   ",
        "abc",
        "N/A",
        "$",
        "SKU1",
        "Rand",
        "12,34,5",
        "XYZ 12",
    ])
    def test_returns_none(self, text):
        assert parse_money(text) is None


# ===================
# QUANTITIES
# ===================

class TestParseQuantity:

    @pytest.mark.parametrize("text,expected", [
        ("12", 12),
        ("1,000", 1000),
        ("5.0", 5),
        (" 3 ", 3),
    ])
    def test_whole_positive_quantities(self, text, expected):
        assert parse_quantity(text) == expected

    @pytest.mark.parametrize("text", ["2.5", "0", "-3", "$5", "ten", "", None])
    def test_rejects_everything_else(self, text):
        assert parse_quantity(text) is None
