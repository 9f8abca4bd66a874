"""
Custom exceptions module.

Error codes are stable; callers match on `code`, not on message text.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    ConflictError,
    ExternalServiceError,

    # File parsing
    UnsupportedFormatError,
    ParseError,
    FileTooLargeError,
    ExtractionTimeoutError,

    # Pipeline stages
    MappingUnresolvedError,
    DuplicateConflictError,
    PricingError,
    PersistenceError,
    PipelineSystemError,

    # Upload jobs
    UploadNotFoundError,
    InvalidStatusTransitionError,
    SupplierNotFoundError,
    SupplierInactiveError,

    # Notifications
    TelegramError,
)

__all__ = [
    # Base
    "AppError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "ExternalServiceError",

    # File parsing
    "UnsupportedFormatError",
    "ParseError",
    "FileTooLargeError",
    "ExtractionTimeoutError",

    # Pipeline stages
    "MappingUnresolvedError",
    "DuplicateConflictError",
    "PricingError",
    "PersistenceError",
    "PipelineSystemError",

    # Upload jobs
    "UploadNotFoundError",
    "InvalidStatusTransitionError",
    "SupplierNotFoundError",
    "SupplierInactiveError",

    # Notifications
    "TelegramError",
]
