"""
Upload orchestrator.

Drives one price-list upload through the pipeline:

    created → validating_supplier → parsing_file → mapping_columns →
    validating_data → checking_duplicates → applying_price_rules →
    (waiting_for_approval) → importing_items → completed

with the side branch needs_review and the terminal states failed and
cancelled. Every transition is written to the CheckpointStore, mirrored to
the StatusStore and published on the event bus.

The orchestrator keeps no per-job state between calls: a suspended job is
resumed from its checkpoint by approve(), which re-runs only the stages
the reviewer's overrides affect.
"""

import re
import threading
import uuid
from collections import Counter
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Callable, Optional, Union

import structlog

from config.business_rules import PREVIEW_SAMPLE_SIZE, PRICE_DISTRIBUTION_BUCKETS
from config.settings import settings
from exceptions import (
    AppError,
    InvalidStatusTransitionError,
    MappingUnresolvedError,
    PipelineSystemError,
    PricingError,
    SupplierInactiveError,
    SupplierNotFoundError,
    UploadNotFoundError,
)
from models.column_mapping import CanonicalField, ColumnMapping
from models.parsed_file import FileMetadata, ParseOptions
from models.price_list_item import IssueSeverity
from models.price_rule import PricedItem, PricingResult
from models.upload_job import (
    SUSPEND_STATUSES,
    TERMINAL_STATUSES,
    PriceListMeta,
    Supplier,
    UploadCheckpoint,
    UploadJob,
    UploadOptions,
    UploadOverrides,
    UploadResult,
    UploadStats,
    UploadStatus,
    is_valid_status_transition,
    utc_now,
)
from parsers import default_registry
from parsers.base import ParserRegistry
from services.checkpoint_store import InMemoryCheckpointStore
from services.column_mapper_service import ColumnMapperService
from services.duplicate_service import DuplicateService
from services.interfaces import (
    CheckpointStore,
    ExistingItemsLookup,
    NotificationDispatcher,
    PriceListPersistence,
    StatusStore,
    SupplierDirectory,
)
from services.price_rules_service import PriceRulesService, build_summary
from services.upload_events import UploadEventBus
from services.validation_service import ValidationService

logger = structlog.get_logger(__name__)

S = UploadStatus

# Stages approve() can restart from, in pipeline order
RESTART_ORDER = [
    S.MAPPING_COLUMNS,
    S.CHECKING_DUPLICATES,
    S.APPLYING_PRICE_RULES,
    S.IMPORTING_ITEMS,
]

# Restart point when a reviewer approves without overrides, by review reason
_APPROVAL_RESTART = {
    "mapping": S.MAPPING_COLUMNS,
    "validation": S.CHECKING_DUPLICATES,
    "duplicates": S.CHECKING_DUPLICATES,
    "pricing": S.APPLYING_PRICE_RULES,
    "approval": S.IMPORTING_ITEMS,
}


class UploadCancelled(Exception):
    """Raised inside a running pipeline once the job was cancelled elsewhere."""


def error_entry(error: AppError) -> dict[str, Any]:
    return {
        "code": error.code,
        "message": error.message,
        "details": error.details,
    }


def price_distribution(items: list[PricedItem]) -> dict[str, int]:
    """Count final prices per bucket: 0-10, 10-50, ..., 1000+."""
    labels = []
    lower = 0
    for upper in PRICE_DISTRIBUTION_BUCKETS:
        labels.append((f"{lower}-{upper}", Decimal(upper)))
        lower = upper
    distribution = {label: 0 for label, _ in labels}
    overflow = f"{PRICE_DISTRIBUTION_BUCKETS[-1]}+"
    distribution[overflow] = 0

    for item in items:
        for label, upper in labels:
            if item.final_unit_price < upper:
                distribution[label] += 1
                break
        else:
            distribution[overflow] += 1
    return distribution


def build_preview(checkpoint: UploadCheckpoint) -> dict[str, Any]:
    """Import preview shown while a job waits for approval."""
    items = checkpoint.priced_items
    supplier = checkpoint.supplier
    estimated_value = sum(
        (item.final_unit_price * item.minimum_order_quantity for item in items),
        Decimal("0")
    )

    return {
        "supplier": {
            "id": supplier.id if supplier else checkpoint.job.supplier_id,
            "name": supplier.name if supplier else None,
        },
        "file": checkpoint.job.file_metadata.model_dump(mode="json"),
        "total_items": len(items),
        "estimated_value": float(estimated_value),
        "currencies": sorted({item.currency for item in items}),
        "categories": sorted({item.category for item in items if item.category}),
        "sample_items": [
            {
                "sku": item.sku,
                "description": item.description,
                "unit_price": float(item.unit_price),
                "final_unit_price": float(item.final_unit_price),
                "currency": item.currency,
                "minimum_order_quantity": item.minimum_order_quantity,
                "unit_of_measure": item.unit_of_measure,
                "category": item.category,
            }
            for item in items[:PREVIEW_SAMPLE_SIZE]
        ],
        "price_distribution": price_distribution(items),
        "validation_summary": checkpoint.validation.summary() if checkpoint.validation else {},
        "duplicate_summary": checkpoint.duplicates.summary() if checkpoint.duplicates else {},
    }


def mapping_options(mapping: ColumnMapping, missing: list[CanonicalField]) -> dict[str, Any]:
    """What a reviewer needs to fix a mapping."""
    return {
        "headers": mapping.headers,
        "current_mapping": {
            field.value: mapping.headers[index] for field, index in mapping.fields.items()
        },
        "confidence": {field.value: score for field, score in mapping.confidence.items()},
        "methods": {field.value: method.value for field, method in mapping.methods.items()},
        "missing_fields": [f.value for f in missing],
        "unmapped_headers": mapping.unmapped_headers,
        "suggestions": [s.model_dump(mode="json") for s in mapping.suggestions],
        "available_fields": [f.value for f in CanonicalField],
    }


class UploadOrchestrator:
    """
    Coordinates parsing, mapping, validation, duplicate checks, pricing
    and persistence for supplier price-list uploads.
    """

    def __init__(
        self,
        suppliers: SupplierDirectory,
        existing_items: ExistingItemsLookup,
        persistence: PriceListPersistence,
        checkpoints: Optional[CheckpointStore] = None,
        status_store: Optional[StatusStore] = None,
        notifier: Optional[NotificationDispatcher] = None,
        events: Optional[UploadEventBus] = None,
        registry: Optional[ParserRegistry] = None,
        column_mapper: Optional[ColumnMapperService] = None,
        validator: Optional[ValidationService] = None,
        duplicate_service: Optional[DuplicateService] = None,
        price_rules: Optional[PriceRulesService] = None
    ):
        self.suppliers = suppliers
        self.existing_items = existing_items
        self.persistence = persistence
        self.checkpoints = checkpoints or InMemoryCheckpointStore()
        self.status_store = status_store
        self.notifier = notifier
        self.events = events or UploadEventBus()
        self.registry = registry or default_registry
        self.column_mapper = column_mapper or ColumnMapperService()
        self.validator = validator or ValidationService()
        self.duplicate_service = duplicate_service or DuplicateService()
        self.price_rules = price_rules or PriceRulesService()

        self._stats = UploadStats()
        self._stats_lock = threading.Lock()

        self._stage_runners: dict[UploadStatus, Callable[[UploadCheckpoint], Optional[UploadResult]]] = {
            S.MAPPING_COLUMNS: self._run_mapping,
            S.VALIDATING_DATA: self._run_validation,
            S.CHECKING_DUPLICATES: self._run_duplicates,
            S.APPLYING_PRICE_RULES: self._run_pricing,
            S.IMPORTING_ITEMS: self._run_import,
        }

    # ===================
    # PUBLIC OPERATIONS
    # ===================

    def process_upload(
        self,
        content: bytes,
        filename: str,
        supplier_id: str,
        options: Optional[Union[UploadOptions, dict]] = None,
        mime_type: Optional[str] = None,
        upload_id: Optional[str] = None
    ) -> UploadResult:
        """
        Run a new upload until it completes, fails or suspends.

        Args:
            content: Raw file bytes
            filename: Original file name (drives format detection)
            supplier_id: Supplier the price list belongs to
            options: UploadOptions or a dict with snake_case/camelCase keys
            mime_type: Declared MIME type
            upload_id: Caller-chosen id (generated when omitted)

        Returns:
            UploadResult
        """
        if not isinstance(options, UploadOptions):
            options = UploadOptions.model_validate(options or {})

        job = UploadJob(
            id=upload_id or str(uuid.uuid4()),
            supplier_id=supplier_id,
            file_metadata=FileMetadata(
                filename=filename,
                mime_type=mime_type,
                size_bytes=len(content)
            ),
            options=options,
            message="Upload received"
        )
        checkpoint = UploadCheckpoint(job=job)

        with self._stats_lock:
            self._stats.total_uploads += 1

        logger.info(
            "upload_started",
            upload_id=job.id,
            supplier_id=supplier_id,
            filename=filename,
            size_bytes=len(content)
        )

        self.checkpoints.save(checkpoint)
        self._publish(checkpoint)

        return self._guarded(checkpoint, lambda: self._run_from_start(checkpoint, content))

    def approve(
        self,
        upload_id: str,
        overrides: Optional[Union[UploadOverrides, dict]] = None
    ) -> UploadResult:
        """
        Resume a job suspended in needs_review or waiting_for_approval.

        Only the stages affected by the overrides re-run: a column remap
        restarts at mapping, duplicate resolutions at duplicate checking,
        replacement rules at pricing. Price overrides patch priced items.

        Raises:
            UploadNotFoundError: Unknown upload id
            InvalidStatusTransitionError: Job is not suspended
        """
        checkpoint = self._load(upload_id)
        job = checkpoint.job
        if job.status not in SUSPEND_STATUSES:
            raise InvalidStatusTransitionError(job.status.value, "approved")

        if not isinstance(overrides, UploadOverrides):
            overrides = UploadOverrides.model_validate(overrides or {})

        restart = self._restart_stage(checkpoint, overrides)
        self._apply_overrides(checkpoint, overrides)
        if job.status == S.WAITING_FOR_APPROVAL:
            checkpoint.approved = True
        checkpoint.suspended_stage = None

        logger.info(
            "upload_approved",
            upload_id=upload_id,
            restart_stage=restart.value,
            approved_by=overrides.approved_by,
            remapped=len(overrides.column_mapping),
            duplicate_resolutions=len(overrides.duplicate_resolutions),
            price_overrides=len(overrides.price_overrides)
        )

        return self._guarded(checkpoint, lambda: self._run_pipeline(checkpoint, restart))

    def cancel(self, upload_id: str, reason: Optional[str] = None) -> UploadResult:
        """
        Cancel a job in any non-terminal state and discard its artifacts.

        A pipeline running in another thread stops at its next stage or
        batch boundary.

        Raises:
            UploadNotFoundError: Unknown upload id
            InvalidStatusTransitionError: Job already finished
        """
        checkpoint = self._load(upload_id)
        job = checkpoint.job
        if job.status in TERMINAL_STATUSES:
            raise InvalidStatusTransitionError(job.status.value, S.CANCELLED.value)

        message = reason or "Upload cancelled"
        if reason:
            job.comments.append(reason)
        checkpoint.strip_artifacts()
        self._transition(checkpoint, S.CANCELLED, message=message, check_cancel=False)

        with self._stats_lock:
            self._stats.cancelled += 1

        logger.info("upload_cancelled", upload_id=upload_id, reason=reason)

        return UploadResult(
            success=True,
            upload_id=upload_id,
            status=S.CANCELLED,
            message=message,
            items_committed=job.items_committed,
            price_list_id=job.price_list_id
        )

    def get_upload_status(self, upload_id: str) -> UploadJob:
        """
        Raises:
            UploadNotFoundError: Unknown or purged upload id
        """
        return self._load(upload_id).job

    def get_upload_preview(self, upload_id: str) -> Optional[dict[str, Any]]:
        """
        Preview of the items a job would import.

        Returns None once the job's artifacts are gone (finished jobs) or
        before pricing has run.
        """
        checkpoint = self._load(upload_id)
        if checkpoint.preview is not None:
            return checkpoint.preview
        if checkpoint.pricing is None or not checkpoint.pricing.success:
            return None
        return build_preview(checkpoint)

    def bulk_upload(self, uploads: list[dict[str, Any]]) -> dict[str, Any]:
        """
        Process several uploads one after another with the preview stop disabled.

        Each entry needs content, filename and supplier_id; options and
        mime_type are optional.
        """
        batch_id = f"bulk_{uuid.uuid4().hex[:12]}"
        results = []

        logger.info("bulk_upload_started", batch_id=batch_id, count=len(uploads))

        for index, upload in enumerate(uploads):
            filename = upload.get("filename")
            try:
                options = UploadOptions.model_validate(upload.get("options") or {})
                options.require_preview = False
                result = self.process_upload(
                    content=upload["content"],
                    filename=filename,
                    supplier_id=upload["supplier_id"],
                    options=options,
                    mime_type=upload.get("mime_type")
                )
                results.append({
                    "index": index,
                    "filename": filename,
                    "success": result.success and result.status == S.COMPLETED,
                    "upload_id": result.upload_id,
                    "status": result.status.value,
                    "price_list_id": result.price_list_id,
                    "errors": result.errors,
                })
            except (KeyError, ValueError) as e:
                # Malformed entry: missing keys or invalid options
                logger.warning("bulk_upload_entry_invalid", batch_id=batch_id, index=index, error=str(e))
                results.append({
                    "index": index,
                    "filename": filename,
                    "success": False,
                    "error": str(e),
                })

        successful = sum(1 for r in results if r["success"])
        summary = {
            "batch_id": batch_id,
            "total": len(uploads),
            "successful": successful,
            "failed": len(uploads) - successful,
        }

        logger.info("bulk_upload_completed", **summary)
        return {"summary": summary, "results": results}

    def get_stats(self) -> UploadStats:
        with self._stats_lock:
            return self._stats.model_copy(deep=True)

    def purge_expired(self, now: Optional[datetime] = None) -> list[str]:
        """
        Delete checkpoints untouched for checkpoint_retention_days.

        Suspended jobs past the window are cancelled before deletion.

        Returns:
            Purged upload ids
        """
        cutoff = (now or utc_now()) - timedelta(days=settings.checkpoint_retention_days)
        purged = []

        for upload_id in self.checkpoints.list_expired(cutoff):
            checkpoint = self.checkpoints.load(upload_id)
            if checkpoint is not None and not checkpoint.job.is_terminal:
                self.cancel(upload_id, reason="Expired before approval")
            self.checkpoints.delete(upload_id)
            purged.append(upload_id)

        logger.info("expired_uploads_purged", count=len(purged), cutoff=cutoff.isoformat())
        return purged

    # ===================
    # PIPELINE
    # ===================

    def _guarded(self, checkpoint: UploadCheckpoint, run: Callable[[], UploadResult]) -> UploadResult:
        """Turn stage errors into a failed job. Unexpected faults become PipelineSystemError."""
        try:
            return run()
        except UploadCancelled:
            logger.info("upload_stopped_after_cancel", upload_id=checkpoint.upload_id)
            return self._stopped_result(checkpoint, S.CANCELLED, "Upload cancelled")
        except AppError as e:
            logger.warning(
                "upload_stage_failed",
                upload_id=checkpoint.upload_id,
                stage=checkpoint.job.status.value,
                code=e.code,
                error=e.message
            )
            return self._fail(checkpoint, [error_entry(e)], e.message)
        except Exception as e:
            logger.error(
                "upload_system_error",
                upload_id=checkpoint.upload_id,
                stage=checkpoint.job.status.value,
                error=str(e),
                error_type=type(e).__name__
            )
            error = PipelineSystemError(checkpoint.job.status.value, e)
            return self._fail(checkpoint, [error_entry(error)], error.message)

    def _run_from_start(self, checkpoint: UploadCheckpoint, content: bytes) -> UploadResult:
        job = checkpoint.job

        self._transition(checkpoint, S.VALIDATING_SUPPLIER, 5, "Validating supplier")
        supplier = self.suppliers.get(job.supplier_id)
        if supplier is None:
            raise SupplierNotFoundError(job.supplier_id)
        if not supplier.is_active:
            raise SupplierInactiveError(job.supplier_id)
        checkpoint.supplier = supplier

        self._transition(checkpoint, S.PARSING_FILE, 15, f"Parsing {job.file_metadata.filename}")
        result = self.registry.parse(
            content,
            job.file_metadata.filename,
            job.file_metadata.mime_type,
            ParseOptions()
        )
        if result.format is not None:
            job.file_metadata.detected_format = result.format
            with self._stats_lock:
                self._stats.by_format[result.format.value] = self._stats.by_format.get(result.format.value, 0) + 1
        if not result.success:
            raise result.error

        checkpoint.headers = result.headers
        checkpoint.rows = result.rows
        checkpoint.extraction_confidence = result.extraction_confidence
        checkpoint.parse_metadata = result.metadata
        job.warnings.extend(
            {"stage": S.PARSING_FILE.value, "message": warning} for warning in result.warnings
        )

        return self._run_pipeline(checkpoint, S.MAPPING_COLUMNS)

    def _run_pipeline(self, checkpoint: UploadCheckpoint, start: UploadStatus) -> UploadResult:
        """Run the stages from start onward; stop at the first that suspends or fails."""
        stages = list(self._stage_runners)
        for stage in stages[stages.index(start):]:
            outcome = self._stage_runners[stage](checkpoint)
            if outcome is not None:
                return outcome
        return self._complete(checkpoint)

    def _run_mapping(self, checkpoint: UploadCheckpoint) -> Optional[UploadResult]:
        self._transition(checkpoint, S.MAPPING_COLUMNS, 30, "Mapping columns")
        options = checkpoint.job.options

        result = self.column_mapper.map_headers(
            checkpoint.headers,
            overrides=checkpoint.manual_mapping,
            extraction_confidence=checkpoint.extraction_confidence,
            intelligent=options.intelligent_parsing
        )
        mapping = result.mapping
        checkpoint.mapping = mapping

        if not result.success:
            error = MappingUnresolvedError(
                [f.value for f in result.missing_fields],
                mapping.unmapped_headers
            )
            return self._suspend(
                checkpoint,
                "mapping",
                error.message,
                errors=[error_entry(error)],
                mapping_options=mapping_options(mapping, result.missing_fields)
            )

        if mapping.mean_confidence < settings.mapping_review_threshold:
            return self._suspend(
                checkpoint,
                "mapping",
                f"Column mapping confidence {mapping.mean_confidence:.2f} needs review",
                mapping_options=mapping_options(mapping, [])
            )
        return None

    def _run_validation(self, checkpoint: UploadCheckpoint) -> Optional[UploadResult]:
        self._transition(checkpoint, S.VALIDATING_DATA, 45, "Validating rows")
        job = checkpoint.job
        options = job.options
        mapping = checkpoint.mapping

        rows = self.column_mapper.apply_mapping(checkpoint.rows, mapping)
        supplier_currency = checkpoint.supplier.default_currency if checkpoint.supplier else None
        validation = self.validator.validate(
            rows,
            strict=options.strict_validation,
            max_errors=options.max_errors,
            inferred_currency=mapping.inferred_currency,
            default_currency=options.currency or self._file_currency(checkpoint) or supplier_currency
        )
        checkpoint.validation = validation

        job.warnings = [w for w in job.warnings if w.get("stage") == S.PARSING_FILE.value]
        job.warnings.extend(issue.to_dict() for issue in validation.warnings)

        if validation.success:
            return None

        errors = [issue.to_dict() for issue in validation.critical_errors]
        if self._remap_could_fix(validation.critical_errors, mapping):
            return self._suspend(
                checkpoint,
                "validation",
                f"{len(errors)} row error(s) in columns that were not matched exactly",
                errors=errors,
                mapping_options=mapping_options(mapping, [])
            )

        return self._fail(
            checkpoint,
            errors,
            f"Validation failed with {len(errors)} critical error(s)"
        )

    @staticmethod
    def _remap_could_fix(issues, mapping: ColumnMapping) -> bool:
        """True if most critical errors sit in fields that were matched inexactly."""
        inexact = sum(
            1 for issue in issues
            if issue.severity == IssueSeverity.CRITICAL
            and issue.field is not None
            and issue.field in mapping.fields
            and not mapping.is_exact(issue.field)
        )
        return inexact * 2 > len(issues)

    def _run_duplicates(self, checkpoint: UploadCheckpoint) -> Optional[UploadResult]:
        self._transition(checkpoint, S.CHECKING_DUPLICATES, 60, "Checking for duplicate SKUs")
        job = checkpoint.job

        existing = self.existing_items.get_active_items(job.supplier_id)
        resolution = self.duplicate_service.resolve(
            checkpoint.validation.valid_items,
            existing,
            policy=job.options.duplicate_handling,
            resolutions=checkpoint.duplicate_resolutions
        )
        checkpoint.duplicates = resolution

        if resolution.requires_decision:
            pending = [d for d in resolution.duplicates if d.resolution_action is None]
            return self._suspend(
                checkpoint,
                "duplicates",
                f"{len(pending)} SKU(s) already exist for this supplier",
                duplicates=[
                    {
                        "sku": d.sku,
                        "row_number": d.row_number,
                        "existing_item": d.existing_item.model_dump(mode="json"),
                        "new_item": d.new_item.model_dump(mode="json", exclude={"provided_fields"}),
                    }
                    for d in pending
                ],
                resolution_options=[option.value for option in resolution.options]
            )
        return None

    def _run_pricing(self, checkpoint: UploadCheckpoint) -> Optional[UploadResult]:
        self._transition(checkpoint, S.APPLYING_PRICE_RULES, 75, "Applying price rules")
        options = checkpoint.job.options

        pricing = self.price_rules.apply(checkpoint.duplicates.items, options.price_rules_config)
        if pricing.success and checkpoint.price_overrides:
            try:
                pricing.items = self.price_rules.apply_price_overrides(pricing.items, checkpoint.price_overrides)
                pricing.summary = build_summary(pricing.items)
            except PricingError as e:
                pricing = PricingResult(success=False, errors=[e.message])
        checkpoint.pricing = pricing

        if not pricing.success:
            return self._suspend(
                checkpoint,
                "pricing",
                "Price rules could not be applied",
                errors=[{"code": "PRICING_ERROR", "message": message} for message in pricing.errors]
            )

        if (options.require_preview or options.require_approval) and not checkpoint.approved:
            checkpoint.preview = build_preview(checkpoint)
            return self._suspend(
                checkpoint,
                "approval",
                f"{len(pricing.items)} item(s) ready for approval",
                status=S.WAITING_FOR_APPROVAL,
                preview=checkpoint.preview,
                summary=self._summary(checkpoint)
            )
        return None

    def _run_import(self, checkpoint: UploadCheckpoint) -> Optional[UploadResult]:
        self._transition(checkpoint, S.IMPORTING_ITEMS, 85, "Importing items")
        job = checkpoint.job
        options = job.options
        items = checkpoint.priced_items
        job.items_processed = len(items)

        try:
            record = self.persistence.create_price_list(PriceListMeta(
                supplier_id=job.supplier_id,
                upload_id=job.id,
                name=(
                    options.price_list_name
                    or self._file_list_name(checkpoint)
                    or self._default_list_name(checkpoint.supplier)
                ),
                currency=options.currency or self._primary_currency(items, checkpoint.supplier),
                effective_date=options.effective_date or self._file_effective_date(checkpoint),
                is_active=options.auto_activate,
                uploaded_by=options.uploaded_by
            ))
            job.price_list_id = record.id
            self._check_cancelled(job.id)
            self.checkpoints.save(checkpoint)

            for start in range(0, len(items), options.batch_size):
                self._check_cancelled(job.id)
                batch = items[start:start + options.batch_size]
                job.items_committed += self.persistence.create_items(record.id, job.supplier_id, batch)
                job.batches_committed += 1
                self._transition(
                    checkpoint,
                    S.IMPORTING_ITEMS,
                    85 + int(14 * job.items_committed / len(items)),
                    f"Imported {job.items_committed}/{len(items)} items",
                    same_status=True
                )
        except AppError as e:
            logger.error(
                "import_failed",
                upload_id=job.id,
                price_list_id=job.price_list_id,
                items_committed=job.items_committed,
                batches_committed=job.batches_committed,
                code=e.code,
                error=e.message
            )
            return self._fail(
                checkpoint,
                [error_entry(e)],
                f"Import stopped after {job.items_committed} item(s): {e.message}"
            )
        return None

    def _complete(self, checkpoint: UploadCheckpoint) -> UploadResult:
        job = checkpoint.job
        summary = self._summary(checkpoint)
        if job.options.create_new_version:
            self._record_version(checkpoint, summary)
        warnings = list(job.warnings)

        checkpoint.strip_artifacts()
        self._transition(checkpoint, S.COMPLETED, 100, f"Imported {job.items_committed} item(s)")

        with self._stats_lock:
            self._stats.completed += 1
            self._stats.total_processing_seconds += job.processing_seconds or 0.0

        logger.info(
            "upload_completed",
            upload_id=job.id,
            price_list_id=job.price_list_id,
            items_committed=job.items_committed,
            processing_seconds=job.processing_seconds
        )

        self._notify(checkpoint, "price_list_uploaded", summary=summary)

        return UploadResult(
            success=True,
            upload_id=job.id,
            status=S.COMPLETED,
            message=job.message,
            price_list_id=job.price_list_id,
            items_processed=job.items_processed,
            items_committed=job.items_committed,
            summary=summary,
            warnings=warnings
        )

    def _record_version(self, checkpoint: UploadCheckpoint, summary: dict[str, Any]) -> None:
        """
        Write a version record for the committed price list.

        The items are already committed, so a failure here is a warning on
        the job, not a failed upload.
        """
        job = checkpoint.job
        try:
            version = self.persistence.create_version(job.price_list_id, job.id, summary)
        except Exception as e:
            logger.error(
                "price_list_version_failed",
                upload_id=job.id,
                price_list_id=job.price_list_id,
                error=str(e)
            )
            job.warnings.append({
                "stage": S.IMPORTING_ITEMS.value,
                "message": f"Price list version not recorded: {e}",
            })
            return

        summary["version"] = {"id": version.id, "number": version.version_number}

    # ===================
    # SUSPEND / FAIL
    # ===================

    def _suspend(
        self,
        checkpoint: UploadCheckpoint,
        reason: str,
        message: str,
        status: UploadStatus = S.NEEDS_REVIEW,
        errors: Optional[list[dict[str, Any]]] = None,
        **result_fields
    ) -> UploadResult:
        job = checkpoint.job
        checkpoint.suspended_stage = job.status
        checkpoint.review_reason = reason
        job.errors = list(errors or [])
        self._transition(checkpoint, status, message=message, detail={"reason": reason})

        with self._stats_lock:
            if status == S.NEEDS_REVIEW:
                self._stats.needs_review += 1
            else:
                self._stats.waiting_for_approval += 1

        logger.info(
            "upload_suspended",
            upload_id=job.id,
            status=status.value,
            reason=reason,
            stage=checkpoint.suspended_stage.value
        )
        if status == S.NEEDS_REVIEW:
            self._notify(checkpoint, "upload_needs_review", reason=message)
        elif job.options.notify_approvers:
            self._notify(checkpoint, "upload_awaiting_approval", reason=message)

        return UploadResult(
            success=True,
            upload_id=job.id,
            status=status,
            message=message,
            errors=job.errors,
            warnings=job.warnings,
            **result_fields
        )

    def _fail(
        self,
        checkpoint: UploadCheckpoint,
        errors: list[dict[str, Any]],
        message: str
    ) -> UploadResult:
        job = checkpoint.job
        stored = self.checkpoints.load(job.id)
        if stored is not None and stored.job.status in TERMINAL_STATUSES:
            # Another caller already finished the job
            logger.info(
                "upload_failure_after_finish",
                upload_id=job.id,
                stored_status=stored.job.status.value,
                error=message
            )
            return self._stopped_result(checkpoint, stored.job.status, stored.job.message, errors)

        job.errors = list(errors)
        warnings = list(job.warnings)

        checkpoint.strip_artifacts()
        self._transition(checkpoint, S.FAILED, message=message, check_cancel=False)

        with self._stats_lock:
            self._stats.failed += 1

        logger.warning(
            "upload_failed",
            upload_id=job.id,
            errors=len(errors),
            items_committed=job.items_committed
        )
        self._notify(checkpoint, "upload_failed", error=message)

        return UploadResult(
            success=False,
            upload_id=job.id,
            status=S.FAILED,
            message=message,
            price_list_id=job.price_list_id,
            items_processed=job.items_processed or None,
            items_committed=job.items_committed,
            errors=job.errors,
            warnings=warnings
        )

    @staticmethod
    def _stopped_result(
        checkpoint: UploadCheckpoint,
        status: UploadStatus,
        message: str,
        errors: Optional[list[dict[str, Any]]] = None
    ) -> UploadResult:
        """Result for a running pipeline that found its job finished by another caller."""
        return UploadResult(
            success=False,
            upload_id=checkpoint.upload_id,
            status=status,
            message=message,
            items_committed=checkpoint.job.items_committed,
            price_list_id=checkpoint.job.price_list_id,
            errors=list(errors or [])
        )

    # ===================
    # APPROVAL HELPERS
    # ===================

    @staticmethod
    def _restart_stage(checkpoint: UploadCheckpoint, overrides: UploadOverrides) -> UploadStatus:
        """Earliest stage affected by the overrides or by the review itself."""
        candidates = [_APPROVAL_RESTART.get(checkpoint.review_reason or "approval", S.IMPORTING_ITEMS)]
        if overrides.column_mapping:
            candidates.append(S.MAPPING_COLUMNS)
        if overrides.duplicate_resolutions:
            candidates.append(S.CHECKING_DUPLICATES)
        if overrides.price_rules is not None or overrides.price_overrides:
            candidates.append(S.APPLYING_PRICE_RULES)
        return min(candidates, key=RESTART_ORDER.index)

    def _apply_overrides(self, checkpoint: UploadCheckpoint, overrides: UploadOverrides) -> None:
        job = checkpoint.job

        if overrides.column_mapping:
            self._learn_remap(checkpoint.mapping, overrides.column_mapping)
            checkpoint.manual_mapping.update(overrides.column_mapping)
        elif checkpoint.review_reason == "mapping" and checkpoint.mapping is not None:
            # Approving without changes confirms the automatic mapping
            accepted = {
                checkpoint.mapping.headers[index]: field
                for field, index in checkpoint.mapping.fields.items()
            }
            for header, field in accepted.items():
                self.column_mapper.learn_from_feedback(header, field, True)
            checkpoint.manual_mapping.update(accepted)

        if overrides.duplicate_resolutions:
            checkpoint.duplicate_resolutions.update(overrides.duplicate_resolutions)
        if overrides.price_rules is not None:
            job.options.price_rules_config = overrides.price_rules
        if overrides.price_overrides:
            checkpoint.price_overrides.update(overrides.price_overrides)
        if overrides.comments:
            job.comments.append(overrides.comments)

    def _learn_remap(
        self,
        previous: Optional[ColumnMapping],
        remap: dict[str, CanonicalField]
    ) -> None:
        """Confirm the reviewer's pairings and reject the automatic ones they replace."""
        for header, field in remap.items():
            self.column_mapper.learn_from_feedback(header, field, True)
            if previous is None:
                continue
            old_field = previous.field_for(header)
            if old_field is not None and old_field != field:
                self.column_mapper.learn_from_feedback(header, old_field, False)
            old_header = previous.header_for(field)
            if old_header is not None and old_header != header:
                self.column_mapper.learn_from_feedback(old_header, field, False)

    # ===================
    # STATE + SIDE EFFECTS
    # ===================

    def _load(self, upload_id: str) -> UploadCheckpoint:
        checkpoint = self.checkpoints.load(upload_id)
        if checkpoint is None:
            raise UploadNotFoundError(upload_id)
        return checkpoint

    def _check_cancelled(self, upload_id: str) -> None:
        stored = self.checkpoints.load(upload_id)
        if stored is not None and stored.job.status == S.CANCELLED:
            raise UploadCancelled(upload_id)

    def _transition(
        self,
        checkpoint: UploadCheckpoint,
        status: UploadStatus,
        progress: Optional[int] = None,
        message: str = "",
        detail: Optional[dict[str, Any]] = None,
        check_cancel: bool = True,
        same_status: bool = False
    ) -> None:
        """
        Move the job to status, then persist, mirror and publish.

        Raises:
            UploadCancelled: The stored job was cancelled by another caller
            InvalidStatusTransitionError: Illegal move
        """
        job = checkpoint.job
        if check_cancel:
            self._check_cancelled(job.id)
        if not same_status and not is_valid_status_transition(job.status, status):
            raise InvalidStatusTransitionError(job.status.value, status.value)

        job.status = status
        if progress is not None:
            job.progress = progress
        job.message = message
        job.last_updated = utc_now()
        if status in TERMINAL_STATUSES:
            job.completed_at = job.last_updated

        self.checkpoints.save(checkpoint)
        self._publish(checkpoint, detail)

    def _publish(self, checkpoint: UploadCheckpoint, detail: Optional[dict[str, Any]] = None) -> None:
        job = checkpoint.job
        detail = {
            "progress": job.progress,
            "message": job.message,
            "items_committed": job.items_committed,
            **(detail or {}),
        }

        if self.status_store is not None:
            try:
                self.status_store.update(job.id, job.status, detail)
            except Exception as e:
                # Status mirror is best-effort
                logger.warning("status_store_update_failed", upload_id=job.id, error=str(e))

        self.events.publish(
            job.id,
            job.status,
            progress=job.progress,
            message=job.message,
            detail=detail
        )

    def _notify(self, checkpoint: UploadCheckpoint, event: str, **extra) -> None:
        """Fire-and-forget notification when the upload asked for one."""
        job = checkpoint.job
        options = job.options
        if not (options.notify_supplier or options.notify_approvers):
            return
        if self.notifier is None:
            logger.info("upload_notification_skipped", upload_id=job.id, reason="no_dispatcher")
            return

        supplier = checkpoint.supplier
        payload = {
            "event": event,
            "upload_id": job.id,
            "status": job.status.value,
            "supplier_id": job.supplier_id,
            "supplier_name": supplier.name if supplier else None,
            "supplier_email": supplier.email if supplier else None,
            "price_list_id": job.price_list_id,
            "filename": job.file_metadata.filename,
            "items_committed": job.items_committed,
            "notify_supplier": options.notify_supplier,
            "notify_approvers": options.notify_approvers,
            **extra,
        }
        try:
            self.notifier.notify(payload)
        except Exception as e:
            logger.error("upload_notification_failed", upload_id=job.id, error=str(e))

    def _summary(self, checkpoint: UploadCheckpoint) -> dict[str, Any]:
        return {
            "validation": checkpoint.validation.summary() if checkpoint.validation else {},
            "duplicates": checkpoint.duplicates.summary() if checkpoint.duplicates else {},
            "pricing": checkpoint.pricing.summary if checkpoint.pricing else {},
        }

    @staticmethod
    def _default_list_name(supplier: Optional[Supplier]) -> str:
        name = supplier.name if supplier else "Supplier"
        return f"{name} price list {date.today().isoformat()}"

    @staticmethod
    def _primary_currency(items: list[PricedItem], supplier: Optional[Supplier]) -> str:
        """Most common item currency, else the supplier's, else the default."""
        if items:
            return Counter(item.currency for item in items).most_common(1)[0][0]
        if supplier and supplier.default_currency:
            return supplier.default_currency
        return settings.default_currency

    @staticmethod
    def _file_currency(checkpoint: UploadCheckpoint) -> Optional[str]:
        """Currency declared in the file's own metadata (JSON, XML, email attachments)."""
        value = str(checkpoint.parse_metadata.get("currency") or "").strip().upper()
        return value if re.fullmatch(r"[A-Z]{3}", value) else None

    @staticmethod
    def _file_list_name(checkpoint: UploadCheckpoint) -> Optional[str]:
        value = str(checkpoint.parse_metadata.get("price_list_name") or "").strip()
        return value[:200] or None

    @staticmethod
    def _file_effective_date(checkpoint: UploadCheckpoint) -> Optional[date]:
        value = checkpoint.parse_metadata.get("effective_date")
        if not value:
            return None
        try:
            return date.fromisoformat(str(value).strip()[:10])
        except ValueError:
            logger.warning(
                "file_effective_date_ignored",
                upload_id=checkpoint.upload_id,
                value=str(value)
            )
            return None


# Singleton instance
_upload_orchestrator: Optional[UploadOrchestrator] = None


def get_upload_orchestrator() -> UploadOrchestrator:
    """
    Get or create the Supabase-backed UploadOrchestrator.

    Raises:
        ConnectionError: If Supabase is not configured
    """
    global _upload_orchestrator
    if _upload_orchestrator is None:
        from config.logging import configure_logging
        from integrations.telegram import TelegramNotificationDispatcher
        from services.checkpoint_store import SupabaseCheckpointStore
        from services.learning_store import SupabaseLearningStore
        from services.supabase_gateways import (
            SupabaseExistingItems,
            SupabasePriceListPersistence,
            SupabaseStatusStore,
            SupabaseSupplierDirectory,
        )

        configure_logging()

        _upload_orchestrator = UploadOrchestrator(
            suppliers=SupabaseSupplierDirectory(),
            existing_items=SupabaseExistingItems(),
            persistence=SupabasePriceListPersistence(),
            checkpoints=SupabaseCheckpointStore(),
            status_store=SupabaseStatusStore(),
            notifier=TelegramNotificationDispatcher(),
            column_mapper=ColumnMapperService(SupabaseLearningStore())
        )
    return _upload_orchestrator
