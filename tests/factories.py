"""
Test data factories.

Uses factory pattern to generate consistent test data.
"""

from decimal import Decimal
from typing import Optional
from uuid import uuid4

from models.column_mapping import CanonicalField, MappedRow
from models.parsed_file import ParsedRow
from models.price_list_item import ExistingItem, ValidatedItem
from models.price_rule import PriceRule, PricedItem
from utils.money import parse_money


class ValidatedItemFactory:
    """
    Factory for creating ValidatedItems.

    Usage:
        # Create with defaults
        item = ValidatedItemFactory.create()

        # Create with overrides
        item = ValidatedItemFactory.create(sku="TILE-1", unit_price="9.99")

        # Create multiple
        items = ValidatedItemFactory.create_batch(5)
    """

    _counter = 0

    @classmethod
    def _next_counter(cls) -> int:
        cls._counter += 1
        return cls._counter

    @classmethod
    def create(
        cls,
        sku: Optional[str] = None,
        description: Optional[str] = "Porcelain tile",
        unit_price="10.00",
        currency: str = "USD",
        minimum_order_quantity: int = 1,
        unit_of_measure: str = "EA",
        category: Optional[str] = None,
        row_number: Optional[int] = None,
        provided_fields: Optional[list[CanonicalField]] = None,
        existing_item_id: Optional[str] = None,
        extensions: Optional[dict] = None
    ) -> ValidatedItem:
        counter = cls._next_counter()
        if provided_fields is None:
            provided_fields = [CanonicalField.SKU, CanonicalField.UNIT_PRICE]
            if description is not None:
                provided_fields.append(CanonicalField.DESCRIPTION)

        return ValidatedItem(
            sku=sku or f"SKU-{counter}",
            description=description,
            unit_price=Decimal(str(unit_price)),
            currency=currency,
            minimum_order_quantity=minimum_order_quantity,
            unit_of_measure=unit_of_measure,
            category=category,
            row_number=row_number or counter,
            provided_fields=provided_fields,
            existing_item_id=existing_item_id,
            extensions=extensions or {}
        )

    @classmethod
    def create_batch(cls, count: int, **overrides) -> list[ValidatedItem]:
        return [cls.create(**overrides) for _ in range(count)]

    @classmethod
    def reset_counter(cls):
        """Reset the counter (call in test setup if needed)."""
        cls._counter = 0


class PricedItemFactory:
    """Factory for PricedItems (validated item + final price, no audit)."""

    @classmethod
    def create(cls, final_unit_price=None, **overrides) -> PricedItem:
        item = ValidatedItemFactory.create(**overrides)
        return PricedItem(
            **item.model_dump(),
            final_unit_price=Decimal(str(final_unit_price)) if final_unit_price else item.unit_price
        )

    @classmethod
    def create_batch(cls, count: int, **overrides) -> list[PricedItem]:
        return [cls.create(**overrides) for _ in range(count)]


class ExistingItemFactory:
    """Factory for catalog items already stored for a supplier."""

    @classmethod
    def create(
        cls,
        sku: str = "SKU1",
        supplier_id: str = "sup-1",
        id: Optional[str] = None,
        description: Optional[str] = "Old",
        unit_price="10.00",
        currency: str = "USD",
        minimum_order_quantity: Optional[int] = 1,
        unit_of_measure: Optional[str] = "EA",
        category: Optional[str] = None,
        is_active: bool = True,
        extensions: Optional[dict] = None
    ) -> ExistingItem:
        return ExistingItem(
            id=id or str(uuid4()),
            supplier_id=supplier_id,
            sku=sku,
            description=description,
            unit_price=Decimal(str(unit_price)) if unit_price is not None else None,
            currency=currency,
            minimum_order_quantity=minimum_order_quantity,
            unit_of_measure=unit_of_measure,
            category=category,
            is_active=is_active,
            extensions=extensions or {}
        )


class PriceRuleFactory:
    """Factory for price rules."""

    @classmethod
    def markup(cls, value="10", name: str = "markup", order: int = 0, **overrides) -> PriceRule:
        return PriceRule(name=name, type="markup", value=Decimal(str(value)), order=order, **overrides)

    @classmethod
    def discount(cls, value="10", name: str = "discount", order: int = 0, **overrides) -> PriceRule:
        return PriceRule(name=name, type="discount", value=Decimal(str(value)), order=order, **overrides)

    @classmethod
    def tiers(cls, brackets: list[dict], name: str = "volume", order: int = 0, **overrides) -> PriceRule:
        return PriceRule(name=name, type="tier_pricing", tiers=brackets, order=order, **overrides)


class MappedRowFactory:
    """Factory for rows already keyed by canonical field."""

    _counter = 0

    @classmethod
    def create(cls, row_number: Optional[int] = None, extensions: Optional[dict] = None, **values) -> MappedRow:
        """
        Keyword names are canonical field values:

            MappedRowFactory.create(sku="A1", unit_price="$12.50")
        """
        cls._counter += 1
        fields = {CanonicalField(name): str(value) for name, value in values.items()}
        amounts = {}
        for field, value in fields.items():
            money = parse_money(value)
            if money is not None:
                amounts[field] = money
        return MappedRow(
            row_number=row_number or cls._counter,
            values=fields,
            amounts=amounts,
            extensions=extensions or {}
        )


def parsed_rows(headers: list[str], rows: list[list[str]]) -> list[ParsedRow]:
    """ParsedRows as a parser would produce them."""
    result = []
    for number, cells in enumerate(rows, start=1):
        values = dict(zip(headers, cells))
        amounts = {h: m for h, m in ((h, parse_money(v)) for h, v in values.items()) if m is not None}
        result.append(ParsedRow(row_number=number, values=values, amounts=amounts))
    return result


def csv_bytes(headers: list[str], rows: list[list[str]], delimiter: str = ",") -> bytes:
    """Build a small CSV file in memory."""
    lines = [delimiter.join(headers)]
    lines.extend(delimiter.join(row) for row in rows)
    return ("\n".join(lines) + "\n").encode("utf-8")
