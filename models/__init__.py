"""
Pydantic models for validation and serialization.
"""

from models.base import (
    BaseSchema,
    FrozenSchema,
    CamelSchema,
)
from models.parsed_file import (
    FileFormat,
    MoneyValue,
    ParsedRow,
    ParseOptions,
    FileMetadata,
)
from models.column_mapping import (
    CanonicalField,
    REQUIRED_FIELDS,
    MappingMethod,
    FeedbackCounts,
    MappingSuggestion,
    ColumnMapping,
    MappingResult,
    MappedRow,
)
from models.price_list_item import (
    IssueSeverity,
    ValidationIssue,
    ValidatedItem,
    ValidationResult,
    ExistingItem,
    DuplicatePolicy,
    DuplicateAction,
    DuplicateRecord,
    DuplicateResolution,
)
from models.price_rule import (
    PriceRuleType,
    ValueType,
    RuleScope,
    TierBracket,
    PriceRule,
    PriceAuditEntry,
    PricedItem,
    PricingResult,
)
from models.upload_job import (
    UploadStatus,
    TERMINAL_STATUSES,
    SUSPEND_STATUSES,
    is_valid_status_transition,
    UploadOptions,
    UploadOverrides,
    Supplier,
    PriceListMeta,
    PriceListRecord,
    UploadJob,
    UploadCheckpoint,
    UploadResult,
    UploadEvent,
    UploadStats,
)

__all__ = [
    # Base
    "BaseSchema",
    "FrozenSchema",
    "CamelSchema",

    # Parsed files
    "FileFormat",
    "MoneyValue",
    "ParsedRow",
    "ParseOptions",
    "FileMetadata",

    # Column mapping
    "CanonicalField",
    "REQUIRED_FIELDS",
    "MappingMethod",
    "FeedbackCounts",
    "MappingSuggestion",
    "ColumnMapping",
    "MappingResult",
    "MappedRow",

    # Items
    "IssueSeverity",
    "ValidationIssue",
    "ValidatedItem",
    "ValidationResult",
    "ExistingItem",
    "DuplicatePolicy",
    "DuplicateAction",
    "DuplicateRecord",
    "DuplicateResolution",

    # Price rules
    "PriceRuleType",
    "ValueType",
    "RuleScope",
    "TierBracket",
    "PriceRule",
    "PriceAuditEntry",
    "PricedItem",
    "PricingResult",

    # Upload jobs
    "UploadStatus",
    "TERMINAL_STATUSES",
    "SUSPEND_STATUSES",
    "is_valid_status_transition",
    "UploadOptions",
    "UploadOverrides",
    "Supplier",
    "PriceListMeta",
    "PriceListRecord",
    "UploadJob",
    "UploadCheckpoint",
    "UploadResult",
    "UploadEvent",
    "UploadStats",
]
