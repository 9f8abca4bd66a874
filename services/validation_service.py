"""
Price-list row validation.

Normalizes mapped rows into ValidatedItems and collects row-level issues.
Strict mode turns format problems (SKU pattern, currency, MOQ, description
length, repeated SKUs) into critical errors; lenient mode downgrades them
to warnings and applies defaults.
"""

from decimal import Decimal
from typing import Optional

import structlog

from config.business_rules import (
    KNOWN_CURRENCIES,
    RESERVED_SKU_PREFIXES,
    SKU_MAX_LENGTH,
    SKU_PATTERN,
    SUPPORTED_UOM,
)
from config.settings import settings
from models.column_mapping import CanonicalField, MappedRow
from models.price_list_item import (
    IssueSeverity,
    ValidatedItem,
    ValidationIssue,
    ValidationResult,
)
from utils.money import parse_money, parse_quantity
from utils.text_utils import truncate

logger = structlog.get_logger(__name__)

F = CanonicalField


class _RowCheck:
    """Issues for one row; severity of soft problems depends on the mode."""

    def __init__(self, row: MappedRow, strict: bool):
        self.row = row
        self.strict = strict
        self.critical: list[ValidationIssue] = []
        self.warnings: list[ValidationIssue] = []

    def error(self, field: Optional[CanonicalField], code: str, message: str, value: Optional[str] = None):
        self.critical.append(ValidationIssue(
            row_number=self.row.row_number,
            field=field,
            code=code,
            message=message,
            value=value,
            severity=IssueSeverity.CRITICAL
        ))

    def warn(self, field: Optional[CanonicalField], code: str, message: str, value: Optional[str] = None):
        self.warnings.append(ValidationIssue(
            row_number=self.row.row_number,
            field=field,
            code=code,
            message=message,
            value=value,
            severity=IssueSeverity.WARNING
        ))

    def soft(self, field: CanonicalField, code: str, message: str, value: Optional[str] = None):
        """Critical in strict mode, warning otherwise."""
        if self.strict:
            self.error(field, code, message, value)
        else:
            self.warn(field, code, message, value)


class ValidationService:
    """
    Validates mapped rows against business rules.

    Limits default to config.settings; pass overrides for tests or
    per-supplier rules.
    """

    def __init__(
        self,
        min_price: Optional[Decimal] = None,
        max_price: Optional[Decimal] = None,
        description_max_length: Optional[int] = None,
        default_currency: Optional[str] = None,
        default_unit_of_measure: Optional[str] = None
    ):
        self.min_price = min_price if min_price is not None else settings.min_unit_price
        self.max_price = max_price if max_price is not None else settings.max_unit_price
        self.description_max_length = description_max_length or settings.description_max_length
        self.default_currency = default_currency or settings.default_currency
        self.default_unit_of_measure = default_unit_of_measure or settings.default_unit_of_measure

    def validate(
        self,
        rows: list[MappedRow],
        strict: bool = False,
        max_errors: Optional[int] = None,
        inferred_currency: Optional[str] = None,
        default_currency: Optional[str] = None
    ) -> ValidationResult:
        """
        Validate mapped rows.

        Args:
            rows: Output of ColumnMapperService.apply_mapping
            strict: Strict mode (format problems are critical)
            max_errors: Stop after this many critical errors
            inferred_currency: Currency found in the price header
            default_currency: Currency for rows that specify none
                (defaults to the configured default)

        Returns:
            ValidationResult. critical_errors never exceeds max_errors.
        """
        max_errors = max_errors or settings.default_max_errors
        fallback_currency = default_currency or self.default_currency
        result = ValidationResult(total_rows=len(rows))
        seen_skus: dict[str, int] = {}

        for row in rows:
            check = _RowCheck(row, strict)
            item = self._validate_row(check, inferred_currency, fallback_currency)

            if item is not None:
                key = item.sku.upper()
                if key in seen_skus:
                    check.soft(
                        F.SKU,
                        "DUPLICATE_SKU_IN_FILE",
                        f"SKU also appears in row {seen_skus[key]}; first occurrence kept",
                        item.sku
                    )
                    item = None
                else:
                    seen_skus[key] = row.row_number

            result.rows_scanned += 1
            result.warnings.extend(check.warnings)

            if check.critical:
                result.critical_errors.extend(check.critical)
                if len(result.critical_errors) >= max_errors:
                    if len(result.critical_errors) > max_errors or result.rows_scanned < len(rows):
                        result.truncated = True
                    result.critical_errors = result.critical_errors[:max_errors]
                    logger.warning(
                        "validation_error_cap_reached",
                        max_errors=max_errors,
                        rows_scanned=result.rows_scanned,
                        total_rows=len(rows)
                    )
                    break
            elif item is not None:
                result.valid_items.append(item)

        logger.info(
            "rows_validated",
            strict=strict,
            **result.summary()
        )
        return result

    def _validate_row(
        self,
        check: _RowCheck,
        inferred_currency: Optional[str],
        fallback_currency: str
    ) -> Optional[ValidatedItem]:
        row = check.row

        sku = self._check_sku(check)
        unit_price, cell_currency = self._check_price(check)
        description = self._check_description(check)
        currency = self._check_currency(check, cell_currency, inferred_currency, fallback_currency)
        moq = self._check_moq(check)
        uom = self._check_uom(check)
        category = row.get(F.CATEGORY)

        if check.critical or sku is None or unit_price is None:
            return None

        return ValidatedItem(
            sku=sku,
            description=description,
            unit_price=unit_price,
            currency=currency,
            minimum_order_quantity=moq,
            unit_of_measure=uom,
            category=category,
            row_number=row.row_number,
            extensions=dict(row.extensions),
            provided_fields=[f for f in CanonicalField if row.get(f) is not None]
        )

    # ===================
    # FIELD CHECKS
    # ===================

    def _check_sku(self, check: _RowCheck) -> Optional[str]:
        sku = check.row.get(F.SKU)
        if sku is None:
            check.error(F.SKU, "MISSING_SKU", "SKU is required")
            return None

        if len(sku) > SKU_MAX_LENGTH:
            check.soft(F.SKU, "SKU_TOO_LONG", f"SKU longer than {SKU_MAX_LENGTH} characters", sku)
        elif not SKU_PATTERN.match(sku):
            check.soft(
                F.SKU,
                "INVALID_SKU_FORMAT",
                "SKU may only contain letters, digits and - _ . /",
                sku
            )

        if sku.upper().startswith(RESERVED_SKU_PREFIXES):
            check.warn(F.SKU, "RESERVED_SKU_PREFIX", "SKU uses a reserved prefix", sku)

        return sku

    def _check_price(self, check: _RowCheck) -> tuple[Optional[Decimal], Optional[str]]:
        row = check.row
        raw = row.get(F.UNIT_PRICE)
        if raw is None:
            check.error(F.UNIT_PRICE, "MISSING_PRICE", "Unit price is required")
            return None, None

        money = row.amounts.get(F.UNIT_PRICE) or parse_money(raw)
        if money is None:
            check.error(F.UNIT_PRICE, "INVALID_PRICE", "Unit price is not a number", raw)
            return None, None

        amount = money.amount
        if amount <= 0:
            check.error(F.UNIT_PRICE, "NON_POSITIVE_PRICE", "Unit price must be greater than zero", raw)
            return None, money.currency
        if amount < self.min_price:
            check.error(
                F.UNIT_PRICE,
                "PRICE_BELOW_MINIMUM",
                f"Unit price is below the minimum of {self.min_price}",
                raw
            )
            return None, money.currency
        if amount > self.max_price:
            check.warn(
                F.UNIT_PRICE,
                "PRICE_ABOVE_MAXIMUM",
                f"Unit price is above {self.max_price}; please confirm",
                raw
            )
        return amount, money.currency

    def _check_description(self, check: _RowCheck) -> Optional[str]:
        description = check.row.get(F.DESCRIPTION)
        if description is None or len(description) <= self.description_max_length:
            return description

        if check.strict:
            check.error(
                F.DESCRIPTION,
                "DESCRIPTION_TOO_LONG",
                f"Description longer than {self.description_max_length} characters",
                description[:50]
            )
            return None

        check.warn(
            F.DESCRIPTION,
            "DESCRIPTION_TRUNCATED",
            f"Description truncated to {self.description_max_length} characters",
            description[:50]
        )
        return truncate(description, self.description_max_length)

    def _check_currency(
        self,
        check: _RowCheck,
        cell_currency: Optional[str],
        inferred_currency: Optional[str],
        fallback_currency: str
    ) -> str:
        """Column value, then price-cell symbol, then header marker, then default."""
        raw = check.row.get(F.CURRENCY)
        if raw is None:
            return cell_currency or inferred_currency or fallback_currency

        currency = raw.upper()
        if len(currency) != 3 or not currency.isalpha():
            check.soft(
                F.CURRENCY,
                "INVALID_CURRENCY",
                f"Currency must be a three-letter code; using {fallback_currency}",
                raw
            )
            return fallback_currency

        if currency not in KNOWN_CURRENCIES:
            check.warn(F.CURRENCY, "UNKNOWN_CURRENCY", "Currency code is not commonly used", raw)
        if cell_currency and cell_currency != currency:
            check.warn(
                F.CURRENCY,
                "CURRENCY_MISMATCH",
                f"Price cell shows {cell_currency} but currency column says {currency}",
                raw
            )
        return currency

    def _check_moq(self, check: _RowCheck) -> int:
        raw = check.row.get(F.MINIMUM_ORDER_QUANTITY)
        if raw is None:
            return 1

        quantity = parse_quantity(raw)
        if quantity is None:
            check.soft(
                F.MINIMUM_ORDER_QUANTITY,
                "INVALID_MOQ",
                "Minimum order quantity must be a positive whole number; using 1",
                raw
            )
            return 1
        return quantity

    def _check_uom(self, check: _RowCheck) -> str:
        raw = check.row.get(F.UNIT_OF_MEASURE)
        if raw is None:
            return self.default_unit_of_measure

        unit = " ".join(raw.upper().split())
        if unit not in SUPPORTED_UOM:
            check.warn(F.UNIT_OF_MEASURE, "UNKNOWN_UNIT", "Unit of measure not recognized", raw)
        return unit


# Singleton instance
_validation_service: Optional[ValidationService] = None


def get_validation_service() -> ValidationService:
    """Get or create ValidationService instance."""
    global _validation_service
    if _validation_service is None:
        _validation_service = ValidationService()
    return _validation_service
