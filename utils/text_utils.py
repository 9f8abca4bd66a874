"""
Text utilities for header and cell normalization.

Supplier files mix languages, casing styles and currency annotations in
their headers. These helpers reduce a header to a comparable form.
"""

import re
import unicodedata
from typing import Optional

from config.business_rules import CURRENCY_SYMBOLS, KNOWN_CURRENCIES

_CAMEL_LOWER_UPPER = re.compile(r"([a-z0-9])([A-Z])")
_CAMEL_ACRONYM = re.compile(r"([A-Z]+)([A-Z][a-z])")
_PARENTHESIZED = re.compile(r"[(\[]([^)\]]*)[)\]]")
_NON_ALNUM = re.compile(r"[^a-z0-9]+")

# "R" is too ambiguous to treat as a bare header marker
_HEADER_SYMBOLS = {s: c for s, c in CURRENCY_SYMBOLS.items() if s != "R"}


def strip_accents(text: str) -> str:
    """
    Remove accent marks.

    - "Descripción" → "Descripcion"
    - "Código" → "Codigo"
    """
    # NFD decomposition separates base chars from accents
    normalized = unicodedata.normalize('NFD', text)
    return ''.join(c for c in normalized if unicodedata.category(c) != 'Mn')


def split_camel_case(text: str) -> str:
    """
    Insert spaces at camelCase boundaries.

    - "unitPrice" → "unit Price"
    - "SKUCode" → "SKU Code"
    - "UNITPRICE" → "UNITPRICE" (no boundary to split on)
    """
    text = _CAMEL_ACRONYM.sub(r"\1 \2", text)
    return _CAMEL_LOWER_UPPER.sub(r"\1 \2", text)


def currency_from_marker(marker: str) -> Optional[str]:
    """Return the ISO code a header marker like 'USD' or '€' stands for."""
    marker = marker.strip()
    if not marker:
        return None
    if marker.upper() in KNOWN_CURRENCIES:
        return marker.upper()
    if marker in CURRENCY_SYMBOLS:
        return CURRENCY_SYMBOLS[marker]
    return None


def normalize_header(header: Optional[str]) -> tuple[str, Optional[str]]:
    """
    Normalize a header for matching.

    Splits camelCase, lowercases, strips accents and removes currency
    markers (parenthesized or bare).

    - "Price (USD)" → ("price", "USD")
    - "unitPrice" → ("unit price", None)
    - "Precio €" → ("precio", "EUR")

    Returns:
        (normalized header, currency found in the header or None)
    """
    if not header:
        return "", None

    text = strip_accents(str(header).strip())
    currency = None

    def _replace_parenthesized(match: re.Match) -> str:
        nonlocal currency
        found = currency_from_marker(match.group(1))
        if found:
            currency = currency or found
            return " "
        return f" {match.group(1)} "

    text = _PARENTHESIZED.sub(_replace_parenthesized, text)

    # Bare markers: "Price USD", "Price $", "US$ Price"
    tokens = []
    for token in text.replace("#", " no ").split():
        found = None
        if token.upper() in KNOWN_CURRENCIES:
            found = token.upper()
        elif token in _HEADER_SYMBOLS:
            found = _HEADER_SYMBOLS[token]
        if found:
            currency = currency or found
            continue
        tokens.append(token)

    if not tokens:
        # Header was nothing but a currency marker; keep it as text
        tokens = [text]

    text = split_camel_case(" ".join(tokens)).lower()
    text = _NON_ALNUM.sub(" ", text)
    return " ".join(text.split()), currency


def compact_key(normalized: str) -> str:
    """
    Remove separators so 'unit price', 'unit_price' and 'unitprice' compare equal.
    """
    return normalized.replace(" ", "").replace("_", "")


def make_unique_headers(headers: list) -> list[str]:
    """
    Make header strings unique and non-empty.

    - blank header at position 3 → "Column 3"
    - ["Price", "Price"] → ["Price", "Price (2)"]
    """
    result = []
    seen: dict[str, int] = {}
    for index, raw in enumerate(headers, start=1):
        header = clean_cell(raw) or f"Column {index}"
        if header in seen:
            seen[header] += 1
            candidate = f"{header} ({seen[header]})"
            while candidate in seen:
                seen[header] += 1
                candidate = f"{header} ({seen[header]})"
            header = candidate
        seen.setdefault(header, 1)
        result.append(header)
    return result


def clean_cell(value) -> str:
    """
    Convert a raw cell value to trimmed text.

    None and NaN become "". Floats that are whole numbers lose their
    trailing ".0" so SKUs read from spreadsheets stay intact.
    """
    if value is None:
        return ""
    if isinstance(value, float):
        if value != value:  # NaN
            return ""
        if value.is_integer():
            return str(int(value))
    text = str(value).replace("\u00a0", " ").strip()
    if text.lower() in ("nan", "none", "null"):
        return ""
    return text


def truncate(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[:max_length]
