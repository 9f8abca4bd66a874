"""
Custom exception classes for the price-list ingestion pipeline.

Every error carries a stable code, a human-readable message and a details
dict so failed uploads keep enough context for a targeted correction.
"""

from typing import Optional, Any
from datetime import datetime, timezone


class AppError(Exception):
    """
    Base exception for all application errors.

    All custom exceptions inherit from this.

    Attributes:
        code: Error code (e.g., "UNSUPPORTED_FORMAT")
        message: Human-readable message
        status_code: HTTP-style status code for callers that expose one
        details: Additional context
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp
            }
        }


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(
        self,
        resource: str,
        identifier: str,
        code: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{resource.upper()}_NOT_FOUND",
            message=f"{resource} not found",
            status_code=404,
            details={"id": identifier}
        )


class ValidationError(AppError):
    """Validation failed (422)."""

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=422,
            details=details
        )


class ConflictError(AppError):
    """Conflict with existing resource (409)."""

    def __init__(
        self,
        message: str,
        code: str = "CONFLICT",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details
        )


class ExternalServiceError(AppError):
    """External service failure (503)."""

    def __init__(
        self,
        service: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code=f"{service.upper()}_ERROR",
            message=message,
            status_code=503,
            details={"service": service, **(details or {})}
        )


# ===================
# FILE PARSING ERRORS
# ===================

class UnsupportedFormatError(ValidationError):
    """File type could not be matched to a registered parser."""

    def __init__(self, filename: str, mime_type: Optional[str]):
        super().__init__(
            code="UNSUPPORTED_FORMAT",
            message=f"Unsupported file type: {filename}",
            details={"filename": filename, "mime_type": mime_type}
        )


class ParseError(ValidationError):
    """File could not be decoded into rows and headers."""

    def __init__(
        self,
        message: str,
        file_format: Optional[str] = None,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="PARSE_ERROR",
            message=message,
            details={"format": file_format, **(details or {})}
        )


class FileTooLargeError(ParseError):
    """File exceeds the size or row cap."""

    def __init__(self, limit_name: str, limit: int, actual: int, file_format: Optional[str] = None):
        super().__init__(
            message=f"File exceeds {limit_name} limit ({actual} > {limit})",
            file_format=file_format,
            details={"limit": limit_name, "max": limit, "actual": actual}
        )
        self.code = "FILE_TOO_LARGE"


class ExtractionTimeoutError(AppError):
    """Unstructured extraction ran past its time bound."""

    def __init__(self, file_format: str, timeout_seconds: float):
        super().__init__(
            code="EXTRACTION_TIMEOUT",
            message=f"{file_format} extraction exceeded {timeout_seconds}s",
            status_code=504,
            details={"format": file_format, "timeout_seconds": timeout_seconds}
        )


# ===================
# PIPELINE STAGE ERRORS
# ===================

class MappingUnresolvedError(ValidationError):
    """Required canonical fields have no header mapped to them."""

    def __init__(self, missing_fields: list[str], unmapped_headers: list[str]):
        super().__init__(
            code="MAPPING_UNRESOLVED",
            message=f"Required columns not found: {', '.join(missing_fields)}",
            details={"missing_fields": missing_fields, "unmapped_headers": unmapped_headers}
        )


class DuplicateConflictError(ConflictError):
    """SKU was written by another upload after the duplicate snapshot was taken."""

    def __init__(self, supplier_id: str, skus: list[str]):
        super().__init__(
            code="DUPLICATE_CONFLICT",
            message=f"{len(skus)} SKU(s) already exist for supplier",
            details={"supplier_id": supplier_id, "skus": skus}
        )


class PricingError(ValidationError):
    """Price rule could not be applied (currency mismatch, bad configuration)."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            code="PRICING_ERROR",
            message=message,
            details=details
        )


class PersistenceError(AppError):
    """Price list or item write failed."""

    def __init__(self, operation: str, message: str, details: Optional[dict] = None):
        super().__init__(
            code="PERSISTENCE_ERROR",
            message=f"Persistence {operation} failed: {message}",
            status_code=500,
            details={"operation": operation, **(details or {})}
        )


class PipelineSystemError(AppError):
    """Unexpected internal fault converted at the orchestrator boundary."""

    def __init__(self, stage: str, original: Exception):
        super().__init__(
            code="SYSTEM_ERROR",
            message=f"Unexpected error during {stage}: {original}",
            status_code=500,
            details={"stage": stage, "error_type": type(original).__name__}
        )


# ===================
# UPLOAD JOB ERRORS
# ===================

class UploadNotFoundError(NotFoundError):
    """Upload job (or its checkpoint) not found."""

    def __init__(self, upload_id: str):
        super().__init__(
            resource="Upload",
            identifier=upload_id,
            code="UPLOAD_NOT_FOUND"
        )


class InvalidStatusTransitionError(ValidationError):
    """Invalid upload status transition."""

    def __init__(self, current_status: str, new_status: str):
        super().__init__(
            code="INVALID_STATUS_TRANSITION",
            message=f"Cannot transition from {current_status} to {new_status}",
            details={
                "current_status": current_status,
                "new_status": new_status,
            }
        )


class SupplierNotFoundError(NotFoundError):
    """Supplier not found."""

    def __init__(self, supplier_id: str):
        super().__init__(
            resource="Supplier",
            identifier=supplier_id,
            code="SUPPLIER_NOT_FOUND"
        )


class SupplierInactiveError(ValidationError):
    """Supplier exists but cannot receive price lists."""

    def __init__(self, supplier_id: str):
        super().__init__(
            code="SUPPLIER_INACTIVE",
            message="Supplier is inactive",
            details={"id": supplier_id}
        )


# ===================
# NOTIFICATION ERRORS
# ===================

class TelegramError(ExternalServiceError):
    """Telegram API error."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(service="telegram", message=message, details=details)
