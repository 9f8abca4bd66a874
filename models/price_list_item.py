"""
Price-list item schemas.

Covers validated items, row-level validation issues and duplicate
resolution against a supplier's existing catalog.
"""

from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import Field

from models.base import BaseSchema
from models.column_mapping import CanonicalField


# ===================
# VALIDATION
# ===================

class IssueSeverity(str, Enum):
    """Row-level issue severity. Warnings never halt a job."""
    WARNING = "warning"
    CRITICAL = "critical"


class ValidationIssue(BaseSchema):
    """Single row-level diagnostic."""

    row_number: int
    field: Optional[CanonicalField] = None
    code: str = Field(..., description="Stable issue code, e.g. INVALID_PRICE")
    message: str
    value: Optional[str] = None
    severity: IssueSeverity = IssueSeverity.CRITICAL

    def to_dict(self) -> dict:
        return self.model_dump(mode="json")


class ValidatedItem(BaseSchema):
    """
    Normalized item that passed validation.

    provided_fields lists the canonical fields the source file actually
    supplied; duplicate merging keeps existing values for the others.
    """

    sku: str = Field(..., min_length=1)
    description: Optional[str] = None
    unit_price: Decimal = Field(..., gt=0)
    currency: str = Field(..., pattern="^[A-Z]{3}$")
    minimum_order_quantity: int = Field(default=1, ge=1)
    unit_of_measure: str = "EA"
    category: Optional[str] = None
    row_number: int = Field(..., ge=1)
    extensions: dict[str, Any] = Field(default_factory=dict)
    provided_fields: list[CanonicalField] = Field(default_factory=list)
    existing_item_id: Optional[str] = Field(
        None,
        description="Set when this item replaces an existing catalog record"
    )


class ValidationResult(BaseSchema):
    """Outcome of validating all mapped rows of a file."""

    valid_items: list[ValidatedItem] = Field(default_factory=list)
    warnings: list[ValidationIssue] = Field(default_factory=list)
    critical_errors: list[ValidationIssue] = Field(default_factory=list)
    rows_scanned: int = 0
    total_rows: int = 0
    truncated: bool = Field(False, description="True if scanning stopped at max_errors")

    @property
    def success(self) -> bool:
        return len(self.critical_errors) == 0

    def summary(self) -> dict:
        return {
            "total_rows": self.total_rows,
            "rows_scanned": self.rows_scanned,
            "valid_items": len(self.valid_items),
            "warnings": len(self.warnings),
            "critical_errors": len(self.critical_errors),
            "truncated": self.truncated,
        }


# ===================
# DUPLICATES
# ===================

class ExistingItem(BaseSchema):
    """Active catalog item already stored for a supplier."""

    id: str
    supplier_id: str
    sku: str
    description: Optional[str] = None
    unit_price: Optional[Decimal] = None
    currency: Optional[str] = None
    minimum_order_quantity: Optional[int] = None
    unit_of_measure: Optional[str] = None
    category: Optional[str] = None
    extensions: dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True


class DuplicatePolicy(str, Enum):
    """How SKUs already in the catalog are handled."""
    SKIP = "skip"
    OVERWRITE = "overwrite"
    WARN = "warn"
    MERGE = "merge"


class DuplicateAction(str, Enum):
    """Resolution applied to one duplicate SKU."""
    SKIP = "skip"
    OVERWRITE = "overwrite"
    MERGE = "merge"


RESOLUTION_OPTIONS = [DuplicateAction.SKIP, DuplicateAction.OVERWRITE, DuplicateAction.MERGE]


class DuplicateRecord(BaseSchema):
    """A validated item whose SKU already exists."""

    sku: str
    row_number: int
    existing_item: ExistingItem
    new_item: ValidatedItem
    resolution_action: Optional[DuplicateAction] = Field(
        None,
        description="None while awaiting a decision"
    )


class DuplicateResolution(BaseSchema):
    """Outcome of duplicate checking."""

    requires_decision: bool = False
    items: list[ValidatedItem] = Field(default_factory=list)
    duplicates: list[DuplicateRecord] = Field(default_factory=list)
    options: list[DuplicateAction] = Field(default_factory=list)

    def summary(self) -> dict:
        actions = [d.resolution_action for d in self.duplicates]
        return {
            "items": len(self.items),
            "duplicates": len(self.duplicates),
            "skipped": actions.count(DuplicateAction.SKIP),
            "overwritten": actions.count(DuplicateAction.OVERWRITE),
            "merged": actions.count(DuplicateAction.MERGE),
            "pending": actions.count(None),
        }
