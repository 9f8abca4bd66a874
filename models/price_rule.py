"""
Price rule schemas.

Rules arrive in the upload options bag (camelCase from JSON clients) and
are applied in ascending order to every in-scope item.
"""

from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import Field, model_validator

from models.base import BaseSchema, CamelSchema
from models.price_list_item import ValidatedItem


class PriceRuleType(str, Enum):
    MARKUP = "markup"
    DISCOUNT = "discount"
    TIER_PRICING = "tier_pricing"


class ValueType(str, Enum):
    PERCENT = "percent"
    FIXED = "fixed"


class RuleScope(str, Enum):
    ALL = "all"
    CATEGORIES = "categories"
    SKUS = "skus"


class TierBracket(CamelSchema):
    """
    Quantity bracket of a tier rule.

    A bracket sets either a fixed price or a percentage discount.
    """

    min_quantity: int = Field(..., ge=1)
    price: Optional[Decimal] = None
    discount_percent: Optional[Decimal] = None

    @model_validator(mode="after")
    def check_price_or_discount(self) -> "TierBracket":
        if (self.price is None) == (self.discount_percent is None):
            raise ValueError("Tier bracket needs exactly one of price or discount_percent")
        return self


class PriceRule(CamelSchema):
    """Single pricing transformation."""

    name: str = Field(..., min_length=1)
    type: PriceRuleType
    scope: RuleScope = RuleScope.ALL
    categories: list[str] = Field(default_factory=list)
    skus: list[str] = Field(default_factory=list)
    value: Decimal = Decimal("0")
    value_type: ValueType = ValueType.PERCENT
    currency: Optional[str] = Field(
        None,
        description="Required for fixed amounts and fixed tier prices"
    )
    tiers: list[TierBracket] = Field(default_factory=list)
    order: int = 0

    def applies_to(self, item: ValidatedItem) -> bool:
        if self.scope == RuleScope.CATEGORIES:
            wanted = {c.strip().lower() for c in self.categories}
            return bool(item.category) and item.category.strip().lower() in wanted
        if self.scope == RuleScope.SKUS:
            wanted = {s.strip().upper() for s in self.skus}
            return item.sku.upper() in wanted
        return True


class PriceAuditEntry(BaseSchema):
    """One applied rule in an item's pricing trail."""

    rule_name: str
    rule_type: Optional[PriceRuleType] = Field(None, description="None for manual overrides")
    rule_order: Optional[int] = None
    price_before: Decimal
    price_after: Decimal
    detail: str = ""


class PricedItem(ValidatedItem):
    """Validated item with its final price and the rules that produced it."""

    final_unit_price: Decimal = Field(..., gt=0)
    audit: list[PriceAuditEntry] = Field(default_factory=list)
    price_overridden: bool = False


class PricingResult(BaseSchema):
    """Outcome of applying a rule list."""

    success: bool = True
    items: list[PricedItem] = Field(default_factory=list)
    summary: dict = Field(default_factory=dict)
    errors: list[str] = Field(default_factory=list)
