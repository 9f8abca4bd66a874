"""
Supabase-backed collaborators for the upload pipeline.

Tables:
- suppliers: supplier directory
- supplier_items: active catalog items per supplier
- price_lists / price_list_items: one price list per committed upload
- price_list_versions: optional version record per committed upload
- upload_status: status mirror for dashboards (best-effort)
"""

import json
from typing import Any, Optional

import structlog

from config import get_supabase_client
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


class SupabaseSupplierDirectory:
    def __init__(self):
        self.db = get_supabase_client()
        self.table = "suppliers"

    def get(self, supplier_id: str) -> Optional[Supplier]:
        logger.debug("getting_supplier", supplier_id=supplier_id)
        try:
            result = (
                self.db.table(self.table)
                .select("id, name, is_active, email, default_currency")
                .eq("id", supplier_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error("get_supplier_failed", supplier_id=supplier_id, error=str(e))
            raise PersistenceError("select", str(e), {"table": self.table})

        if not result.data:
            return None
        return Supplier(**result.data[0])


class SupabaseExistingItems:
    def __init__(self):
        self.db = get_supabase_client()
        self.table = "supplier_items"

    def get_active_items(self, supplier_id: str) -> list[ExistingItem]:
        """Snapshot of the supplier's active catalog."""
        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("supplier_id", supplier_id)
                .eq("is_active", True)
                .order("id")
                .execute()
            )
        except Exception as e:
            logger.error("get_supplier_items_failed", supplier_id=supplier_id, error=str(e))
            raise PersistenceError("select", str(e), {"table": self.table})

        items = [ExistingItem(**row) for row in result.data or []]
        logger.info("supplier_items_loaded", supplier_id=supplier_id, count=len(items))
        return items


class SupabasePriceListPersistence:
    """
    Writes price lists and their items.

    Each batch goes through the commit_price_list_batch database function
    (sql/commit_price_list_batch.sql), which runs in one transaction: it
    re-checks the supplier's active SKUs case-insensitively, then writes the
    catalog rows and the price-list lines. A SKU committed by a concurrent
    upload comes back as a conflict and nothing from the batch is written.
    """

    def __init__(self):
        self.db = get_supabase_client()
        self.price_lists_table = "price_lists"
        self.versions_table = "price_list_versions"
        self.commit_function = "commit_price_list_batch"

    def create_price_list(self, meta: PriceListMeta) -> PriceListRecord:
        logger.info("creating_price_list", supplier_id=meta.supplier_id, upload_id=meta.upload_id)
        try:
            result = (
                self.db.table(self.price_lists_table)
                .insert(meta.model_dump(mode="json"))
                .execute()
            )
        except Exception as e:
            logger.error("create_price_list_failed", upload_id=meta.upload_id, error=str(e))
            raise PersistenceError("create_price_list", str(e))

        record = PriceListRecord(**result.data[0])
        logger.info("price_list_created", price_list_id=record.id, upload_id=meta.upload_id)
        return record

    def create_items(self, price_list_id: str, supplier_id: str, batch: list[PricedItem]) -> int:
        """
        Commit one batch atomically.

        Raises:
            DuplicateConflictError: A new SKU is already active for the supplier
            PersistenceError: The batch was rejected; nothing was written
        """
        params = {
            "p_price_list_id": price_list_id,
            "p_supplier_id": supplier_id,
            "p_catalog_rows": [self._catalog_row(supplier_id, item) for item in batch],
            "p_line_rows": [self._line_row(price_list_id, supplier_id, item) for item in batch],
        }
        try:
            result = self.db.rpc(self.commit_function, params).execute()
        except Exception as e:
            logger.error(
                "create_price_list_items_failed",
                price_list_id=price_list_id,
                count=len(batch),
                error=str(e)
            )
            raise PersistenceError("create_items", str(e), {"price_list_id": price_list_id})

        outcome = result.data or {}
        conflicts = outcome.get("conflicts") or []
        if conflicts:
            logger.warning("sku_conflict_at_write", supplier_id=supplier_id, skus=conflicts)
            raise DuplicateConflictError(supplier_id, conflicts)

        written = int(outcome.get("written", 0))
        logger.info("price_list_items_created", price_list_id=price_list_id, count=written)
        return written

    def create_version(self, price_list_id: str, upload_id: str, summary: dict[str, Any]) -> PriceListVersion:
        """Insert a price_list_versions row; the database numbers it per supplier."""
        try:
            result = (
                self.db.table(self.versions_table)
                .insert({
                    "price_list_id": price_list_id,
                    "upload_id": upload_id,
                    "summary": json.loads(json.dumps(summary, default=str)),
                })
                .execute()
            )
        except Exception as e:
            logger.error("create_price_list_version_failed", price_list_id=price_list_id, error=str(e))
            raise PersistenceError("create_version", str(e), {"price_list_id": price_list_id})

        version = PriceListVersion(**result.data[0])
        logger.info(
            "price_list_version_created",
            price_list_id=price_list_id,
            version_number=version.version_number
        )
        return version

    @staticmethod
    def _catalog_row(supplier_id: str, item: PricedItem) -> dict[str, Any]:
        return {
            "id": item.existing_item_id,
            "supplier_id": supplier_id,
            "sku": item.sku,
            "description": item.description,
            "unit_price": str(item.final_unit_price),
            "currency": item.currency,
            "minimum_order_quantity": item.minimum_order_quantity,
            "unit_of_measure": item.unit_of_measure,
            "category": item.category,
            "extensions": item.extensions,
            "is_active": True,
        }

    @staticmethod
    def _line_row(price_list_id: str, supplier_id: str, item: PricedItem) -> dict[str, Any]:
        return {
            "price_list_id": price_list_id,
            "supplier_id": supplier_id,
            "sku": item.sku,
            "description": item.description,
            "base_unit_price": str(item.unit_price),
            "unit_price": str(item.final_unit_price),
            "currency": item.currency,
            "minimum_order_quantity": item.minimum_order_quantity,
            "unit_of_measure": item.unit_of_measure,
            "category": item.category,
            "extensions": item.extensions,
            "price_audit": [entry.model_dump(mode="json") for entry in item.audit],
            "source_row": item.row_number,
        }


class SupabaseStatusStore:
    """Mirrors job status into upload_status. Write failures are logged only."""

    def __init__(self):
        self.db = get_supabase_client()
        self.table = "upload_status"

    def update(self, upload_id: str, status: UploadStatus, detail: dict[str, Any]) -> None:
        try:
            self.db.table(self.table).upsert(
                {
                    "upload_id": upload_id,
                    "status": status.value,
                    "progress": detail.get("progress", 0),
                    "message": (detail.get("message") or "")[:2000],
                    "detail": json.loads(json.dumps(detail, default=str)),
                    "updated_at": utc_now().isoformat(),
                },
                on_conflict="upload_id",
            ).execute()
        except Exception as log_err:
            # Never let the status mirror break the pipeline
            logger.warning(
                "upload_status_write_failed",
                upload_id=upload_id,
                status=status.value,
                log_error=str(log_err)
            )
