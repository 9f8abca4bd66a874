"""
Column mapping schemas.

A ColumnMapping ties canonical item fields to header positions in a parsed
file, with a confidence and method per field.
"""

from enum import Enum
from typing import Optional

from pydantic import Field

from models.base import BaseSchema, FrozenSchema
from models.parsed_file import MoneyValue


class CanonicalField(str, Enum):
    """Fixed target attributes of a price-list item."""
    SKU = "sku"
    DESCRIPTION = "description"
    UNIT_PRICE = "unit_price"
    CURRENCY = "currency"
    MINIMUM_ORDER_QUANTITY = "minimum_order_quantity"
    UNIT_OF_MEASURE = "unit_of_measure"
    CATEGORY = "category"


REQUIRED_FIELDS = (CanonicalField.SKU, CanonicalField.UNIT_PRICE)


class MappingMethod(str, Enum):
    """How a header was matched to a field."""
    EXACT = "exact"
    LEARNED = "learned"
    FUZZY = "fuzzy"
    PATTERN = "pattern"
    MANUAL = "manual"


# Lower value wins when two candidates tie on score
METHOD_PRIORITY = {
    MappingMethod.MANUAL: 0,
    MappingMethod.EXACT: 1,
    MappingMethod.LEARNED: 2,
    MappingMethod.FUZZY: 3,
    MappingMethod.PATTERN: 4,
}


class FeedbackCounts(BaseSchema):
    """Confirmations and rejections recorded for one header/field pair."""

    confirmed: int = Field(default=0, ge=0)
    rejected: int = Field(default=0, ge=0)

    @property
    def total(self) -> int:
        return self.confirmed + self.rejected

    @property
    def confirmed_ratio(self) -> float:
        if self.total == 0:
            return 0.0
        return self.confirmed / self.total

    @property
    def is_excluded(self) -> bool:
        """True if reviewers rejected this pairing more often than they confirmed it."""
        return self.rejected > self.confirmed


class MappingSuggestion(BaseSchema):
    """Ranked candidate offered when a mapping needs review."""

    header: str
    field: CanonicalField
    score: float = Field(..., ge=0, le=1)
    method: MappingMethod


class ColumnMapping(BaseSchema):
    """
    Header to field assignment for one file.

    fields maps each assigned canonical field to its header index.
    confidence is the reported confidence (already scaled by the parser's
    extraction confidence).
    """

    headers: list[str] = Field(default_factory=list)
    fields: dict[CanonicalField, int] = Field(default_factory=dict)
    confidence: dict[CanonicalField, float] = Field(default_factory=dict)
    methods: dict[CanonicalField, MappingMethod] = Field(default_factory=dict)
    unmapped_headers: list[str] = Field(default_factory=list)
    suggestions: list[MappingSuggestion] = Field(default_factory=list)
    inferred_currency: Optional[str] = Field(
        None,
        description="Currency found in the mapped price header, e.g. 'Price (USD)'"
    )

    def header_for(self, field: CanonicalField) -> Optional[str]:
        index = self.fields.get(field)
        if index is None:
            return None
        return self.headers[index]

    def field_for(self, header: str) -> Optional[CanonicalField]:
        for field, index in self.fields.items():
            if self.headers[index] == header:
                return field
        return None

    @property
    def missing_required(self) -> list[CanonicalField]:
        return [f for f in REQUIRED_FIELDS if f not in self.fields]

    @property
    def mean_confidence(self) -> float:
        """Average confidence across mapped fields (0 when nothing mapped)."""
        if not self.confidence:
            return 0.0
        return sum(self.confidence.values()) / len(self.confidence)

    def is_exact(self, field: CanonicalField) -> bool:
        """True if the field was matched exactly or set by hand."""
        return self.methods.get(field) in (MappingMethod.EXACT, MappingMethod.MANUAL)


class MappingResult(BaseSchema):
    """Outcome of mapping a header list."""

    mapping: ColumnMapping
    missing_fields: list[CanonicalField] = Field(default_factory=list)

    @property
    def success(self) -> bool:
        """True if every required field is mapped."""
        return len(self.missing_fields) == 0

    @property
    def unmapped_headers(self) -> list[str]:
        return self.mapping.unmapped_headers

    @property
    def suggestions(self) -> list[MappingSuggestion]:
        return self.mapping.suggestions


class MappedRow(FrozenSchema):
    """
    Parsed row re-keyed by canonical field.

    Unmapped headers keep their original header text in extensions.
    """

    row_number: int = Field(..., ge=1)
    values: dict[CanonicalField, str] = Field(default_factory=dict)
    amounts: dict[CanonicalField, MoneyValue] = Field(default_factory=dict)
    extensions: dict[str, str] = Field(default_factory=dict)

    def get(self, field: CanonicalField) -> Optional[str]:
        value = self.values.get(field)
        if value is None:
            return None
        value = value.strip()
        return value or None
