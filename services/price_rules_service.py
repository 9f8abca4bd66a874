"""
Price rules engine.

Applies an ordered list of markup, discount and tier rules to validated
items. Each rule consumes the price produced by the previous one and the
result is rounded per currency after every step. Currency is never changed.
"""

from collections import Counter
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

import structlog

from config.business_rules import (
    CURRENCY_DECIMALS,
    DEFAULT_CURRENCY_DECIMALS,
    MAX_RECOMMENDED_MARKUP_PERCENT,
)
from config.settings import settings
from exceptions import PricingError
from models.price_list_item import ValidatedItem
from models.price_rule import (
    PriceAuditEntry,
    PricedItem,
    PriceRule,
    PriceRuleType,
    PricingResult,
    TierBracket,
    ValueType,
)

logger = structlog.get_logger(__name__)

HUNDRED = Decimal("100")


def round_price(value: Decimal, currency: str) -> Decimal:
    """Round half-up to the currency's minor unit (JPY 0, others 2)."""
    places = CURRENCY_DECIMALS.get(currency, DEFAULT_CURRENCY_DECIMALS)
    return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def build_summary(items: list[PricedItem]) -> dict:
    """Totals over priced items. Per-rule counts come from the audit trails."""
    prices = [item.final_unit_price for item in items]
    total_value = sum(prices, Decimal("0"))
    rule_counts = Counter(
        entry.rule_name
        for item in items
        for entry in item.audit
    )
    new_items = sum(1 for item in items if item.existing_item_id is None)
    average = Decimal("0")
    if items:
        average = (total_value / len(items)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

    return {
        "total_items": len(items),
        "total_value": float(total_value),
        "average_price": float(average),
        "new_items": new_items,
        "updated_items": len(items) - new_items,
        "rules_applied": dict(rule_counts),
        "price_overrides": sum(1 for item in items if item.price_overridden),
        "currencies": sorted({item.currency for item in items}),
        "min_price": float(min(prices)) if prices else None,
        "max_price": float(max(prices)) if prices else None,
    }


class PriceRulesService:
    """Applies pricing transformations in rule order."""

    def __init__(self, min_price: Optional[Decimal] = None):
        self.min_price = min_price if min_price is not None else settings.min_unit_price

    # ===================
    # RULE CHECKS
    # ===================

    def validate_rules(self, rules: list[PriceRule]) -> dict:
        """
        Check a rule list for configuration problems.

        Returns:
            {"valid": bool, "errors": [...], "warnings": [...]}
        """
        errors: list[str] = []
        warnings: list[str] = []

        for rule in rules:
            label = f"Rule '{rule.name}'"

            if rule.value < 0:
                errors.append(f"{label}: value cannot be negative")

            if rule.type == PriceRuleType.TIER_PRICING:
                if not rule.tiers:
                    errors.append(f"{label}: tier pricing needs at least one bracket")
                for tier in rule.tiers:
                    if tier.price is not None and tier.price <= 0:
                        errors.append(f"{label}: tier price for {tier.min_quantity}+ must be positive")
                    if tier.discount_percent is not None and not 0 <= tier.discount_percent <= 100:
                        errors.append(f"{label}: tier discount for {tier.min_quantity}+ must be 0-100%")
                if any(t.price is not None for t in rule.tiers) and not rule.currency:
                    errors.append(f"{label}: fixed tier prices need a currency")
                continue

            if rule.value_type == ValueType.FIXED and not rule.currency:
                errors.append(f"{label}: fixed amounts need a currency")

            if rule.type == PriceRuleType.MARKUP and rule.value_type == ValueType.PERCENT:
                if rule.value > MAX_RECOMMENDED_MARKUP_PERCENT:
                    warnings.append(f"{label}: markup above {MAX_RECOMMENDED_MARKUP_PERCENT}%")

            if rule.type == PriceRuleType.DISCOUNT and rule.value_type == ValueType.PERCENT:
                if rule.value >= 100:
                    warnings.append(f"{label}: discount of {rule.value}% clamps every price to the minimum")

        return {
            "valid": not errors,
            "errors": errors,
            "warnings": warnings,
        }

    # ===================
    # APPLICATION
    # ===================

    def apply(
        self,
        items: list[ValidatedItem],
        rules: list[PriceRule]
    ) -> PricingResult:
        """
        Price every item.

        Args:
            items: Validated (and duplicate-resolved) items
            rules: Rule list; applied in ascending order, ties keep list order

        Returns:
            PricingResult. On a configuration error or currency mismatch
            success is False and errors explains why; no items are returned.
        """
        check = self.validate_rules(rules)
        if not check["valid"]:
            logger.warning("price_rules_invalid", errors=check["errors"])
            return PricingResult(success=False, errors=check["errors"])

        ordered = sorted(rules, key=lambda r: r.order)

        try:
            priced = [self._price_item(item, ordered) for item in items]
        except PricingError as e:
            logger.warning("pricing_failed", error=e.message, **e.details)
            return PricingResult(success=False, errors=[e.message])

        result = PricingResult(
            success=True,
            items=priced,
            summary=build_summary(priced),
            errors=[]
        )

        logger.info(
            "price_rules_applied",
            items=len(priced),
            rules=len(ordered),
            warnings=len(check["warnings"])
        )
        return result

    def apply_price_overrides(
        self,
        items: list[PricedItem],
        overrides: dict[str, Decimal]
    ) -> list[PricedItem]:
        """
        Replace final prices for the given SKUs.

        SKUs are matched case-insensitively. Overrides for SKUs not in the
        list are logged and ignored.

        Raises:
            PricingError: If an override price is not positive
        """
        if not overrides:
            return items

        wanted = {sku.upper(): Decimal(str(price)) for sku, price in overrides.items()}
        for sku, price in wanted.items():
            if price <= 0:
                raise PricingError(
                    f"Override price for {sku} must be positive",
                    details={"sku": sku, "price": str(price)}
                )

        patched = []
        matched = set()
        for item in items:
            price = wanted.get(item.sku.upper())
            if price is None:
                patched.append(item)
                continue

            matched.add(item.sku.upper())
            new_price = round_price(price, item.currency)
            entry = PriceAuditEntry(
                rule_name="manual_override",
                price_before=item.final_unit_price,
                price_after=new_price,
                detail="Price set during approval"
            )
            patched.append(item.model_copy(update={
                "final_unit_price": new_price,
                "audit": [*item.audit, entry],
                "price_overridden": True,
            }))

        unknown = sorted(set(wanted) - matched)
        if unknown:
            logger.warning("price_override_unknown_skus", skus=unknown)

        logger.info("price_overrides_applied", count=len(matched))
        return patched

    # ===================
    # PER ITEM
    # ===================

    def _price_item(self, item: ValidatedItem, rules: list[PriceRule]) -> PricedItem:
        price = item.unit_price
        audit: list[PriceAuditEntry] = []

        for rule in rules:
            if not rule.applies_to(item):
                continue

            outcome = self._apply_rule(rule, item, price)
            if outcome is None:
                continue

            new_price, detail = outcome
            new_price = round_price(new_price, item.currency)
            audit.append(PriceAuditEntry(
                rule_name=rule.name,
                rule_type=rule.type,
                rule_order=rule.order,
                price_before=price,
                price_after=new_price,
                detail=detail
            ))
            price = new_price

        return PricedItem(
            **item.model_dump(),
            final_unit_price=price,
            audit=audit
        )

    def _apply_rule(
        self,
        rule: PriceRule,
        item: ValidatedItem,
        price: Decimal
    ) -> Optional[tuple[Decimal, str]]:
        """New price and audit detail, or None if the rule does not change this item."""
        if rule.type == PriceRuleType.TIER_PRICING:
            return self._apply_tier(rule, item, price)

        if rule.value_type == ValueType.FIXED:
            self._check_currency(rule, item)

        if rule.type == PriceRuleType.MARKUP:
            if rule.value_type == ValueType.PERCENT:
                return price * (1 + rule.value / HUNDRED), f"+{rule.value}%"
            return price + rule.value, f"+{rule.value} {rule.currency}"

        if rule.value_type == ValueType.PERCENT:
            new_price, detail = price * (1 - rule.value / HUNDRED), f"-{rule.value}%"
        else:
            new_price, detail = price - rule.value, f"-{rule.value} {rule.currency}"
        return self._clamp(new_price, detail)

    def _apply_tier(
        self,
        rule: PriceRule,
        item: ValidatedItem,
        price: Decimal
    ) -> Optional[tuple[Decimal, str]]:
        bracket = self._select_bracket(rule.tiers, item.minimum_order_quantity)
        if bracket is None:
            return None

        if bracket.price is not None:
            self._check_currency(rule, item)
            return bracket.price, f"tier {bracket.min_quantity}+ price {bracket.price}"

        new_price = price * (1 - bracket.discount_percent / HUNDRED)
        return self._clamp(new_price, f"tier {bracket.min_quantity}+ -{bracket.discount_percent}%")

    @staticmethod
    def _select_bracket(tiers: list[TierBracket], quantity: int) -> Optional[TierBracket]:
        """Bracket with the largest min_quantity not above the quantity."""
        eligible = [t for t in tiers if t.min_quantity <= quantity]
        if not eligible:
            return None
        return max(eligible, key=lambda t: t.min_quantity)

    def _clamp(self, price: Decimal, detail: str) -> tuple[Decimal, str]:
        if price < self.min_price:
            return self.min_price, f"{detail} (clamped to minimum {self.min_price})"
        return price, detail

    @staticmethod
    def _check_currency(rule: PriceRule, item: ValidatedItem) -> None:
        if rule.currency != item.currency:
            raise PricingError(
                f"Rule '{rule.name}' is in {rule.currency} but item {item.sku} is priced in {item.currency}",
                details={
                    "rule": rule.name,
                    "sku": item.sku,
                    "rule_currency": rule.currency,
                    "item_currency": item.currency,
                }
            )


# Singleton instance
_price_rules_service: Optional[PriceRulesService] = None


def get_price_rules_service() -> PriceRulesService:
    """Get or create PriceRulesService instance."""
    global _price_rules_service
    if _price_rules_service is None:
        _price_rules_service = PriceRulesService()
    return _price_rules_service
