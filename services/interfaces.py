"""
Collaborator contracts for the upload pipeline.

Structural typing: any object with these methods can be injected into the
orchestrator. Supabase implementations live in services/supabase_gateways.py,
in-process ones next to the services that use them.
"""

from datetime import datetime
from typing import Any, Optional, Protocol, runtime_checkable

from models.column_mapping import CanonicalField, FeedbackCounts
from models.price_list_item import ExistingItem
from models.price_rule import PricedItem
from models.upload_job import (
    PriceListMeta,
    PriceListRecord,
    PriceListVersion,
    Supplier,
    UploadCheckpoint,
    UploadStatus,
)


# ===================
# SUPPLIERS + CATALOG
# ===================

@runtime_checkable
class SupplierDirectory(Protocol):
    """Supplier lookup."""

    def get(self, supplier_id: str) -> Optional[Supplier]: ...


@runtime_checkable
class ExistingItemsLookup(Protocol):
    """Snapshot of a supplier's active catalog items."""

    def get_active_items(self, supplier_id: str) -> list[ExistingItem]: ...


@runtime_checkable
class PriceListPersistence(Protocol):
    """
    Price list writes.

    create_items must re-check SKU uniqueness at write time and raise
    DuplicateConflictError for new items whose SKU already exists.
    """

    def create_price_list(self, meta: PriceListMeta) -> PriceListRecord: ...

    def create_items(self, price_list_id: str, supplier_id: str, batch: list[PricedItem]) -> int: ...

    def create_version(self, price_list_id: str, upload_id: str, summary: dict[str, Any]) -> PriceListVersion: ...


# ===================
# JOB STATE
# ===================

@runtime_checkable
class StatusStore(Protocol):
    """Best-effort status mirror for dashboards. Failures never fail a job."""

    def update(self, upload_id: str, status: UploadStatus, detail: dict[str, Any]) -> None: ...


@runtime_checkable
class CheckpointStore(Protocol):
    """Durable job snapshots."""

    def save(self, checkpoint: UploadCheckpoint) -> None: ...

    def load(self, upload_id: str) -> Optional[UploadCheckpoint]: ...

    def delete(self, upload_id: str) -> None: ...

    def list_expired(self, older_than: datetime) -> list[str]: ...


# ===================
# NOTIFICATIONS + LEARNING
# ===================

@runtime_checkable
class NotificationDispatcher(Protocol):
    """Fire-and-forget notifications."""

    def notify(self, payload: dict[str, Any]) -> None: ...


@runtime_checkable
class LearningStore(Protocol):
    """Header to field feedback counts."""

    def get(self, header: str) -> dict[CanonicalField, FeedbackCounts]: ...

    def record(self, header: str, field: CanonicalField, is_correct: bool) -> None: ...

    def export(self) -> dict[str, Any]: ...

    def import_data(self, data: dict[str, Any]) -> int: ...
