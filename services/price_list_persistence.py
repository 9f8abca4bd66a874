"""
In-process collaborators for the upload pipeline.

Used by tests, local runs and bulk tooling where no Supabase project is
configured. The price-list store doubles as the existing-items lookup so
committed items become visible to later uploads.
"""

import threading
import uuid
from typing import Any, Optional

import structlog

from exceptions import DuplicateConflictError, PersistenceError
from models.price_list_item import ExistingItem
from models.price_rule import PricedItem
from models.upload_job import (
    PriceListMeta,
    PriceListRecord,
    PriceListVersion,
    Supplier,
    UploadStatus,
    utc_now,
)

logger = structlog.get_logger(__name__)


class InMemorySupplierDirectory:
    """Suppliers held in a dict keyed by id."""

    def __init__(self, suppliers: Optional[list[Supplier]] = None):
        self._suppliers = {s.id: s for s in suppliers or []}

    def add(self, supplier: Supplier) -> None:
        self._suppliers[supplier.id] = supplier

    def get(self, supplier_id: str) -> Optional[Supplier]:
        return self._suppliers.get(supplier_id)


class InMemoryPriceListStore:
    """
    Price lists and catalog items in process memory.

    create_items checks SKU uniqueness under a lock at write time, so two
    jobs that both saw a SKU as new cannot both insert it. A batch is
    written completely or not at all.
    """

    def __init__(self, existing_items: Optional[list[ExistingItem]] = None):
        self._lock = threading.Lock()
        self.price_lists: dict[str, PriceListRecord] = {}
        self.price_list_items: dict[str, list[PricedItem]] = {}
        self.catalog: dict[str, ExistingItem] = {}
        self.versions: list[PriceListVersion] = []
        self.create_price_list_calls = 0
        self.create_items_calls = 0
        self.create_version_calls = 0
        for item in existing_items or []:
            self.catalog[item.id] = item

    @property
    def persistence_calls(self) -> int:
        return self.create_price_list_calls + self.create_items_calls

    # ===================
    # EXISTING ITEMS
    # ===================

    def get_active_items(self, supplier_id: str) -> list[ExistingItem]:
        with self._lock:
            return [
                item.model_copy()
                for item in self.catalog.values()
                if item.supplier_id == supplier_id and item.is_active
            ]

    # ===================
    # PERSISTENCE
    # ===================

    def create_price_list(self, meta: PriceListMeta) -> PriceListRecord:
        with self._lock:
            self.create_price_list_calls += 1
            record = PriceListRecord(
                id=str(uuid.uuid4()),
                supplier_id=meta.supplier_id,
                name=meta.name,
                currency=meta.currency,
                upload_id=meta.upload_id,
                effective_date=meta.effective_date,
                is_active=meta.is_active,
                item_count=0,
                created_at=utc_now()
            )
            self.price_lists[record.id] = record
            self.price_list_items[record.id] = []

        logger.info(
            "price_list_created",
            price_list_id=record.id,
            supplier_id=meta.supplier_id,
            upload_id=meta.upload_id
        )
        return record

    def create_items(self, price_list_id: str, supplier_id: str, batch: list[PricedItem]) -> int:
        """
        Write one batch.

        Raises:
            DuplicateConflictError: A new item's SKU is already active
            PersistenceError: Unknown price list
        """
        with self._lock:
            self.create_items_calls += 1
            if price_list_id not in self.price_lists:
                raise PersistenceError("create_items", f"Price list {price_list_id} not found")

            active = {
                item.sku.upper(): item
                for item in self.catalog.values()
                if item.supplier_id == supplier_id and item.is_active
            }
            conflicts = [
                item.sku for item in batch
                if item.existing_item_id is None and item.sku.upper() in active
            ]
            if conflicts:
                raise DuplicateConflictError(supplier_id, conflicts)

            for item in batch:
                item_id = item.existing_item_id or str(uuid.uuid4())
                self.catalog[item_id] = ExistingItem(
                    id=item_id,
                    supplier_id=supplier_id,
                    sku=item.sku,
                    description=item.description,
                    unit_price=item.final_unit_price,
                    currency=item.currency,
                    minimum_order_quantity=item.minimum_order_quantity,
                    unit_of_measure=item.unit_of_measure,
                    category=item.category,
                    extensions=dict(item.extensions)
                )
            self.price_list_items[price_list_id].extend(batch)
            self.price_lists[price_list_id].item_count += len(batch)

        logger.info(
            "price_list_items_created",
            price_list_id=price_list_id,
            count=len(batch)
        )
        return len(batch)

    def create_version(self, price_list_id: str, upload_id: str, summary: dict[str, Any]) -> PriceListVersion:
        """Record a numbered version of a committed price list."""
        with self._lock:
            self.create_version_calls += 1
            record = self.price_lists.get(price_list_id)
            if record is None:
                raise PersistenceError("create_version", f"Price list {price_list_id} not found")

            number = 1 + sum(1 for v in self.versions if v.supplier_id == record.supplier_id)
            version = PriceListVersion(
                id=str(uuid.uuid4()),
                price_list_id=price_list_id,
                upload_id=upload_id,
                supplier_id=record.supplier_id,
                version_number=number,
                summary=dict(summary),
                created_at=utc_now()
            )
            self.versions.append(version)

        logger.info(
            "price_list_version_created",
            price_list_id=price_list_id,
            version_number=number
        )
        return version


class InMemoryStatusStore:
    """Keeps every status update in order."""

    def __init__(self):
        self.history: list[dict[str, Any]] = []

    def update(self, upload_id: str, status: UploadStatus, detail: dict[str, Any]) -> None:
        self.history.append({
            "upload_id": upload_id,
            "status": status,
            "detail": dict(detail),
        })

    def statuses(self, upload_id: str) -> list[UploadStatus]:
        return [entry["status"] for entry in self.history if entry["upload_id"] == upload_id]
