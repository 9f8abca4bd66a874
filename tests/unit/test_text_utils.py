"""
Unit tests for header and cell normalization helpers.
"""

import pytest

from utils.text_utils import (
    clean_cell,
    compact_key,
    make_unique_headers,
    normalize_header,
    split_camel_case,
    strip_accents,
    truncate,
)


class TestNormalizeHeader:

    @pytest.mark.parametrize("header,expected", [
        ("Price (USD)", ("price", "USD")),
        ("Cost [EUR]", ("cost", "EUR")),
        ("Precio €", ("precio", "EUR")),
        ("Price USD", ("price", "USD")),
        ("unitPrice", ("unit price", None)),
        ("UNIT_PRICE", ("unit price", None)),
        ("Descripción", ("descripcion", None)),
        ("Item #", ("item no", None)),
        ("  Item   Code ", ("item code", None)),
    ])
    def test_normalizes(self, header, expected):
        assert normalize_header(header) == expected

    def test_non_currency_parentheses_are_kept_as_words(self):
        assert normalize_header("Price (incl. VAT)") == ("price incl vat", None)

    def test_header_that_is_only_a_currency(self):
        assert normalize_header("USD") == ("usd", "USD")

    def test_empty(self):
        assert normalize_header("") == ("", None)
        assert normalize_header(None) == ("", None)


class TestSmallHelpers:

    def test_strip_accents(self):
        assert strip_accents("Código") == "Codigo"

    def test_split_camel_case(self):
        assert split_camel_case("unitPrice") == "unit Price"
        assert split_camel_case("SKUCode") == "SKU Code"

    def test_compact_key(self):
        assert compact_key("unit price") == compact_key("unit_price") == "unitprice"

    def test_truncate(self):
        assert truncate("abcdef", 3) == "abc"
        assert truncate("ab", 3) == "ab"


class TestMakeUniqueHeaders:

    def test_duplicates_and_blanks(self):
        assert make_unique_headers(["Price", "Price", "", " SKU "]) == [
            "Price", "Price (2)", "Column 3", "SKU"
        ]

    def test_suffix_skips_names_already_taken(self):
        assert make_unique_headers(["A", "A (2)", "A"]) == ["A", "A (2)", "A (3)"]


class TestCleanCell:

    @pytest.mark.parametrize("value,expected", [
        (None, ""),
        (float("nan"), ""),
        (12.0, "12"),
        (12.5, "12.5"),
        (" x ", "x"),
        ("nan", ""),
        ("NULL", ""),
        (7, "7"),
    ])
    def test_clean(self, value, expected):
        assert clean_cell(value) == expected
