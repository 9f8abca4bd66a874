"""
Money token parsing.

Turns cell text like "$1,234.50", "1.234,50 €", "(12.50)" or "ZAR 99"
into a MoneyValue. Returns None for anything that is not an amount.

Separator rules:
    - both "." and "," present: the right-most one is the decimal separator
    - lone "," followed by exactly three digits: thousands separator
      ("12,500" → 12500), otherwise decimal ("12,5" → 12.5)
    - repeated "." or ",": thousands separators
    - spaces and apostrophes: group separators ("1 234", "1'234")
"""

import re
from decimal import Decimal, InvalidOperation
from typing import Optional

from config.business_rules import CURRENCY_SYMBOLS, KNOWN_CURRENCIES
from models.parsed_file import MoneyValue

_NUMBER_BODY = re.compile(r"^(?:\d[\d.,' \u00a0\u202f]*|[.,]\d+)$")
_ISO_PREFIX = re.compile(r"^([A-Za-z]{3})\s*(.+)$")
_ISO_SUFFIX = re.compile(r"^(.+?)\s*([A-Za-z]{3})$")
_GROUP_CHARS = re.compile(r"[ '\u00a0\u202f]")

# Longest symbols first so "US$" wins over "$"
_SYMBOLS = sorted(CURRENCY_SYMBOLS, key=len, reverse=True)


def _split_sign(text: str) -> tuple[bool, str]:
    text = text.strip()
    if text.startswith("-"):
        return True, text[1:].strip()
    if text.startswith("+"):
        return False, text[1:].strip()
    return False, text


def _split_currency(text: str) -> tuple[Optional[str], str]:
    """Remove a leading/trailing currency symbol or ISO code."""
    for symbol in _SYMBOLS:
        if symbol == "R":
            # "R12.50" / "R 12.50" only; a bare trailing R is not a currency
            if re.match(r"^R\s?[\d.,]", text):
                return "ZAR", text[1:].strip()
            continue
        if text.startswith(symbol):
            return CURRENCY_SYMBOLS[symbol], text[len(symbol):].strip()
        if text.endswith(symbol):
            return CURRENCY_SYMBOLS[symbol], text[:-len(symbol)].strip()

    match = _ISO_PREFIX.match(text)
    if match and match.group(1).upper() in KNOWN_CURRENCIES:
        return match.group(1).upper(), match.group(2).strip()

    match = _ISO_SUFFIX.match(text)
    if match and match.group(2).upper() in KNOWN_CURRENCIES:
        return match.group(2).upper(), match.group(1).strip()

    return None, text


def _normalize_separators(body: str) -> Optional[str]:
    body = _GROUP_CHARS.sub("", body)
    has_dot = "." in body
    has_comma = "," in body

    if has_dot and has_comma:
        decimal_sep = "." if body.rfind(".") > body.rfind(",") else ","
        group_sep = "," if decimal_sep == "." else "."
        if body.count(decimal_sep) > 1:
            return None
        return body.replace(group_sep, "").replace(decimal_sep, ".")

    for sep in (",", "."):
        count = body.count(sep)
        if count == 0:
            continue
        if count > 1:
            groups = body.split(sep)
            if any(len(g) != 3 for g in groups[1:]):
                return None
            return body.replace(sep, "")
        if sep == ",":
            whole, fraction = body.split(",")
            if len(fraction) == 3 and whole:
                return whole + fraction
            return body.replace(",", ".")

    return body


def parse_money(text: Optional[str]) -> Optional[MoneyValue]:
    """
    Parse a cell into a MoneyValue.

    Args:
        text: Raw cell text

    Returns:
        MoneyValue with the signed amount and the currency found in the
        cell (None if no symbol or code), or None if the cell is not a
        number or currency amount.
    """
    if text is None:
        return None
    text = str(text).strip()
    if not text:
        return None

    negative = False
    if text.startswith("(") and text.endswith(")"):
        negative = True
        text = text[1:-1].strip()

    sign, text = _split_sign(text)
    negative = negative or sign

    currency, text = _split_currency(text)

    # "$-12.50", "USD -5"
    sign, text = _split_sign(text)
    negative = negative or sign

    if not text or not _NUMBER_BODY.match(text):
        return None

    normalized = _normalize_separators(text)
    if normalized is None:
        return None

    try:
        amount = Decimal(normalized)
    except InvalidOperation:
        return None

    if negative:
        amount = -amount

    return MoneyValue(amount=amount, currency=currency)


def parse_quantity(text: Optional[str]) -> Optional[int]:
    """
    Parse a whole, positive quantity ("12", "1,000", "5.0").

    Returns None for anything else.
    """
    value = parse_money(text)
    if value is None or value.currency is not None:
        return None
    if value.amount <= 0 or value.amount != value.amount.to_integral_value():
        return None
    return int(value.amount)
