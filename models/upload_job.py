"""
Upload job schemas.

An UploadJob moves through the pipeline states below. Everything needed to
resume a suspended job lives in its UploadCheckpoint.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import Field

from config.settings import settings
from models.base import BaseSchema, CamelSchema
from models.column_mapping import CanonicalField, ColumnMapping
from models.parsed_file import FileMetadata, ParsedRow
from models.price_list_item import (
    DuplicateAction,
    DuplicatePolicy,
    DuplicateResolution,
    ValidationResult,
)
from models.price_rule import PriceRule, PricedItem, PricingResult


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ===================
# STATUS
# ===================

class UploadStatus(str, Enum):
    """Upload job states."""
    CREATED = "created"
    VALIDATING_SUPPLIER = "validating_supplier"
    PARSING_FILE = "parsing_file"
    MAPPING_COLUMNS = "mapping_columns"
    VALIDATING_DATA = "validating_data"
    CHECKING_DUPLICATES = "checking_duplicates"
    APPLYING_PRICE_RULES = "applying_price_rules"
    WAITING_FOR_APPROVAL = "waiting_for_approval"
    NEEDS_REVIEW = "needs_review"
    IMPORTING_ITEMS = "importing_items"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({
    UploadStatus.COMPLETED,
    UploadStatus.FAILED,
    UploadStatus.CANCELLED,
})

SUSPEND_STATUSES = frozenset({
    UploadStatus.WAITING_FOR_APPROVAL,
    UploadStatus.NEEDS_REVIEW,
})

# Statuses a resumed job can restart from
_RESUME_TARGETS = {
    UploadStatus.MAPPING_COLUMNS,
    UploadStatus.CHECKING_DUPLICATES,
    UploadStatus.APPLYING_PRICE_RULES,
    UploadStatus.IMPORTING_ITEMS,
    UploadStatus.FAILED,
    UploadStatus.CANCELLED,
}

VALID_TRANSITIONS: dict[UploadStatus, set[UploadStatus]] = {
    UploadStatus.CREATED: {
        UploadStatus.VALIDATING_SUPPLIER,
        UploadStatus.FAILED,
        UploadStatus.CANCELLED,
    },
    UploadStatus.VALIDATING_SUPPLIER: {
        UploadStatus.PARSING_FILE,
        UploadStatus.FAILED,
        UploadStatus.CANCELLED,
    },
    UploadStatus.PARSING_FILE: {
        UploadStatus.MAPPING_COLUMNS,
        UploadStatus.FAILED,
        UploadStatus.CANCELLED,
    },
    UploadStatus.MAPPING_COLUMNS: {
        UploadStatus.VALIDATING_DATA,
        UploadStatus.NEEDS_REVIEW,
        UploadStatus.FAILED,
        UploadStatus.CANCELLED,
    },
    UploadStatus.VALIDATING_DATA: {
        UploadStatus.CHECKING_DUPLICATES,
        UploadStatus.NEEDS_REVIEW,
        UploadStatus.FAILED,
        UploadStatus.CANCELLED,
    },
    UploadStatus.CHECKING_DUPLICATES: {
        UploadStatus.APPLYING_PRICE_RULES,
        UploadStatus.NEEDS_REVIEW,
        UploadStatus.FAILED,
        UploadStatus.CANCELLED,
    },
    UploadStatus.APPLYING_PRICE_RULES: {
        UploadStatus.WAITING_FOR_APPROVAL,
        UploadStatus.IMPORTING_ITEMS,
        UploadStatus.NEEDS_REVIEW,
        UploadStatus.FAILED,
        UploadStatus.CANCELLED,
    },
    UploadStatus.WAITING_FOR_APPROVAL: set(_RESUME_TARGETS),
    UploadStatus.NEEDS_REVIEW: set(_RESUME_TARGETS),
    UploadStatus.IMPORTING_ITEMS: {
        UploadStatus.COMPLETED,
        UploadStatus.FAILED,
        UploadStatus.CANCELLED,
    },
    UploadStatus.COMPLETED: set(),
    UploadStatus.FAILED: set(),
    UploadStatus.CANCELLED: set(),
}


def is_valid_status_transition(current: UploadStatus, new: UploadStatus) -> bool:
    """
    Check if status transition is valid.

    Rules:
    - Stages advance in pipeline order
    - Any non-terminal state can fail or be cancelled
    - Suspended states resume at mapping, duplicates, pricing or import
    - COMPLETED, FAILED and CANCELLED are terminal
    """
    return new in VALID_TRANSITIONS.get(current, set())


# ===================
# OPTIONS
# ===================

class UploadOptions(CamelSchema):
    """
    Options bag for one upload.

    Accepts snake_case or camelCase keys (requirePreview, batchSize, ...).
    """

    intelligent_parsing: bool = True
    strict_validation: bool = False
    duplicate_handling: DuplicatePolicy = DuplicatePolicy.WARN
    price_rules_config: list[PriceRule] = Field(default_factory=list)
    require_preview: bool = False
    require_approval: bool = False
    auto_activate: bool = False
    notify_supplier: bool = False
    notify_approvers: bool = False
    create_new_version: bool = False
    batch_size: int = Field(default_factory=lambda: settings.default_batch_size, gt=0)
    max_errors: int = Field(default_factory=lambda: settings.default_max_errors, gt=0)
    price_list_name: Optional[str] = Field(None, max_length=200)
    currency: Optional[str] = Field(None, pattern="^[A-Z]{3}$")
    effective_date: Optional[date] = None
    uploaded_by: Optional[str] = None


class UploadOverrides(CamelSchema):
    """Corrections supplied when a suspended job is approved."""

    column_mapping: dict[str, CanonicalField] = Field(
        default_factory=dict,
        description="Header text to canonical field"
    )
    duplicate_resolutions: dict[str, DuplicateAction] = Field(
        default_factory=dict,
        description="SKU to resolution action"
    )
    price_rules: Optional[list[PriceRule]] = Field(
        None,
        description="Replacement rule list"
    )
    price_overrides: dict[str, Decimal] = Field(
        default_factory=dict,
        description="SKU to final unit price"
    )
    comments: Optional[str] = None
    approved_by: Optional[str] = None


# ===================
# COLLABORATOR RECORDS
# ===================

class Supplier(BaseSchema):
    """Supplier as returned by the supplier directory."""

    id: str
    name: str
    is_active: bool = True
    email: Optional[str] = None
    default_currency: Optional[str] = None


class PriceListMeta(BaseSchema):
    """Header record for a new price list."""

    supplier_id: str
    upload_id: str
    name: str
    currency: str
    effective_date: Optional[date] = None
    is_active: bool = False
    uploaded_by: Optional[str] = None


class PriceListRecord(BaseSchema):
    """Stored price list."""

    id: str
    supplier_id: str
    name: str
    currency: str
    upload_id: Optional[str] = None
    effective_date: Optional[date] = None
    is_active: bool = False
    item_count: int = 0
    created_at: Optional[datetime] = None


class PriceListVersion(BaseSchema):
    """Version record written after a committed upload when requested."""

    id: str
    price_list_id: str
    upload_id: str
    supplier_id: Optional[str] = None
    version_number: Optional[int] = None
    summary: dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None


# ===================
# JOB + CHECKPOINT
# ===================

class UploadJob(BaseSchema):
    """State of one upload. Mutated only by the orchestrator."""

    id: str
    supplier_id: str
    file_metadata: FileMetadata
    status: UploadStatus = UploadStatus.CREATED
    options: UploadOptions = Field(default_factory=UploadOptions)
    errors: list[dict[str, Any]] = Field(default_factory=list)
    warnings: list[dict[str, Any]] = Field(default_factory=list)
    progress: int = Field(default=0, ge=0, le=100)
    message: str = ""
    price_list_id: Optional[str] = None
    items_processed: int = 0
    items_committed: int = 0
    batches_committed: int = 0
    comments: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    last_updated: datetime = Field(default_factory=utc_now)
    completed_at: Optional[datetime] = None
    archived: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_suspended(self) -> bool:
        return self.status in SUSPEND_STATUSES

    @property
    def processing_seconds(self) -> Optional[float]:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.created_at).total_seconds()


class UploadCheckpoint(BaseSchema):
    """
    Durable snapshot of one job.

    Holds the parsed rows and every stage output so a suspended job can
    resume after a restart. Artifacts are stripped once the job is terminal.
    """

    job: UploadJob
    supplier: Optional[Supplier] = None
    headers: list[str] = Field(default_factory=list)
    rows: list[ParsedRow] = Field(default_factory=list)
    extraction_confidence: float = Field(default=1.0, ge=0, le=1)
    parse_metadata: dict[str, Any] = Field(default_factory=dict)
    mapping: Optional[ColumnMapping] = None
    manual_mapping: dict[str, CanonicalField] = Field(default_factory=dict)
    validation: Optional[ValidationResult] = None
    duplicates: Optional[DuplicateResolution] = None
    duplicate_resolutions: dict[str, DuplicateAction] = Field(default_factory=dict)
    pricing: Optional[PricingResult] = None
    price_overrides: dict[str, Decimal] = Field(default_factory=dict)
    approved: bool = Field(False, description="Set once a reviewer approved; no further preview stop")
    suspended_stage: Optional[UploadStatus] = None
    review_reason: Optional[str] = None
    preview: Optional[dict[str, Any]] = None

    @property
    def upload_id(self) -> str:
        return self.job.id

    @property
    def priced_items(self) -> list[PricedItem]:
        return self.pricing.items if self.pricing else []

    def strip_artifacts(self) -> None:
        """Drop stage artifacts, keeping the job record for status lookups."""
        self.rows = []
        self.mapping = None
        self.validation = None
        self.duplicates = None
        self.pricing = None
        self.preview = None
        self.suspended_stage = None
        self.job.archived = True


# ===================
# RESULTS + EVENTS
# ===================

class UploadResult(CamelSchema):
    """
    Caller-facing outcome of process/approve/cancel.

    to_dict() renders camelCase keys and omits empty sections.
    """

    success: bool
    upload_id: str
    status: UploadStatus
    message: Optional[str] = None
    price_list_id: Optional[str] = None
    items_processed: Optional[int] = None
    items_committed: Optional[int] = None
    summary: Optional[dict[str, Any]] = None
    preview: Optional[dict[str, Any]] = None
    mapping_options: Optional[dict[str, Any]] = None
    duplicates: Optional[list[dict[str, Any]]] = None
    resolution_options: Optional[list[str]] = None
    errors: list[dict[str, Any]] = Field(default_factory=list)
    warnings: list[dict[str, Any]] = Field(default_factory=list)

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class UploadEvent(BaseSchema):
    """Progress event published on every status change."""

    sequence: int
    upload_id: str
    status: UploadStatus
    progress: int = 0
    message: str = ""
    detail: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utc_now)


class UploadStats(BaseSchema):
    """Counters across all uploads handled by one orchestrator."""

    total_uploads: int = 0
    completed: int = 0
    failed: int = 0
    cancelled: int = 0
    needs_review: int = 0
    waiting_for_approval: int = 0
    total_processing_seconds: float = 0.0
    by_format: dict[str, int] = Field(default_factory=dict)

    @property
    def success_rate(self) -> float:
        finished = self.completed + self.failed
        if finished == 0:
            return 0.0
        return round(self.completed / finished * 100, 1)

    @property
    def average_processing_seconds(self) -> float:
        if self.completed == 0:
            return 0.0
        return round(self.total_processing_seconds / self.completed, 3)

    def to_dict(self) -> dict:
        data = self.model_dump(mode="json")
        data["success_rate"] = self.success_rate
        data["average_processing_seconds"] = self.average_processing_seconds
        return data
