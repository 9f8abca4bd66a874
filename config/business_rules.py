"""
Business constants for price-list validation and pricing.

Values that do not change per environment. Tunable limits live in
config.settings instead.
"""

import re

# =============================================================================
# CURRENCIES
# =============================================================================

# Symbols recognised in price cells and headers.
# "$" alone is read as USD; suppliers quoting CAD/AUD must say so explicitly.
CURRENCY_SYMBOLS = {
    "$": "USD",
    "US$": "USD",
    "€": "EUR",
    "£": "GBP",
    "¥": "JPY",
    "₹": "INR",
    "R": "ZAR",
}

# ISO codes accepted without warning
KNOWN_CURRENCIES = {
    "USD", "EUR", "GBP", "ZAR", "CAD", "AUD", "JPY", "CNY",
    "INR", "CHF", "SEK", "NOK", "DKK", "NZD", "MXN", "BRL",
}

# Decimal places used when rounding a price after a rule applies
CURRENCY_DECIMALS = {
    "JPY": 0,
}
DEFAULT_CURRENCY_DECIMALS = 2

# =============================================================================
# SKU RULES
# =============================================================================

SKU_PATTERN = re.compile(r"^[A-Z0-9][A-Z0-9\-_./]*$", re.IGNORECASE)
SKU_MAX_LENGTH = 50

# Prefixes that usually mean test data slipped into a price list
RESERVED_SKU_PREFIXES = ("SYS-", "TEMP-", "TEST-")

# =============================================================================
# UNITS OF MEASURE
# =============================================================================

SUPPORTED_UOM = {
    "EA", "EACH", "PC", "PCS", "PIECE", "BOX", "CASE", "CTN", "PKG", "PACK",
    "PLT", "SET", "PAIR", "DOZ", "ROLL",
    "LB", "KG", "OZ", "G", "TON", "MT",
    "FT", "M", "IN", "CM", "YD", "MM",
    "GAL", "L", "QT", "ML",
    "M2", "SQ FT", "SQ M",
}

# =============================================================================
# PRICE RULES
# =============================================================================

# Markups above this percentage are flagged when rules are validated
MAX_RECOMMENDED_MARKUP_PERCENT = 1000

# =============================================================================
# PREVIEW
# =============================================================================

PREVIEW_SAMPLE_SIZE = 10

# Upper bounds of price distribution buckets (last bucket is open-ended)
PRICE_DISTRIBUTION_BUCKETS = (10, 50, 100, 500, 1000)
