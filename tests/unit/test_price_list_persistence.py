"""
Unit tests for the in-process pipeline collaborators.
"""

from decimal import Decimal

import pytest

from exceptions import DuplicateConflictError, PersistenceError
from models.upload_job import PriceListMeta, Supplier, UploadStatus
from services.price_list_persistence import (
    InMemoryPriceListStore,
    InMemoryStatusStore,
    InMemorySupplierDirectory,
)
from tests.factories import ExistingItemFactory, PricedItemFactory


def new_price_list(store: InMemoryPriceListStore, supplier_id: str = "sup-1"):
    return store.create_price_list(PriceListMeta(
        supplier_id=supplier_id,
        upload_id="up-1",
        name="Spring prices",
        currency="USD"
    ))


class TestSupplierDirectory:

    def test_get_and_add(self):
        directory = InMemorySupplierDirectory([Supplier(id="sup-1", name="Acme")])
        directory.add(Supplier(id="sup-2", name="Other", is_active=False))

        assert directory.get("sup-1").name == "Acme"
        assert not directory.get("sup-2").is_active
        assert directory.get("sup-3") is None


class TestInMemoryPriceListStore:

    def test_items_become_visible_as_existing(self):
        store = InMemoryPriceListStore()
        record = new_price_list(store)

        written = store.create_items(record.id, "sup-1", [
            PricedItemFactory.create(sku="A1", final_unit_price="13.75"),
        ])

        assert written == 1
        assert store.price_lists[record.id].item_count == 1
        active = store.get_active_items("sup-1")
        assert [(i.sku, i.unit_price) for i in active] == [("A1", Decimal("13.75"))]
        assert store.get_active_items("sup-2") == []

    def test_new_item_with_active_sku_conflicts(self):
        store = InMemoryPriceListStore([ExistingItemFactory.create(sku="A1")])
        record = new_price_list(store)
        batch = [
            PricedItemFactory.create(sku="B1"),
            PricedItemFactory.create(sku="a1"),
        ]

        with pytest.raises(DuplicateConflictError) as exc_info:
            store.create_items(record.id, "sup-1", batch)

        assert exc_info.value.code == "DUPLICATE_CONFLICT"
        assert exc_info.value.details["skus"] == ["a1"]
        assert len(store.catalog) == 1
        assert store.price_lists[record.id].item_count == 0

    def test_replacement_updates_existing_record(self):
        existing = ExistingItemFactory.create(sku="A1", id="item-1", unit_price="10")
        store = InMemoryPriceListStore([existing])
        record = new_price_list(store)

        store.create_items(record.id, "sup-1", [
            PricedItemFactory.create(sku="A1", final_unit_price="12", existing_item_id="item-1"),
        ])

        assert list(store.catalog) == ["item-1"]
        assert store.catalog["item-1"].unit_price == Decimal("12")

    def test_same_sku_for_other_supplier_is_fine(self):
        store = InMemoryPriceListStore([ExistingItemFactory.create(sku="A1", supplier_id="sup-2")])
        record = new_price_list(store)

        assert store.create_items(record.id, "sup-1", [PricedItemFactory.create(sku="A1")]) == 1

    def test_unknown_price_list(self):
        with pytest.raises(PersistenceError):
            InMemoryPriceListStore().create_items("missing", "sup-1", [PricedItemFactory.create()])

    def test_call_counters(self):
        store = InMemoryPriceListStore()
        record = new_price_list(store)
        store.create_items(record.id, "sup-1", [PricedItemFactory.create()])

        assert store.create_price_list_calls == 1
        assert store.create_items_calls == 1
        assert store.persistence_calls == 2

    def test_versions_numbered_per_supplier(self):
        store = InMemoryPriceListStore()
        first = new_price_list(store)
        other = new_price_list(store, supplier_id="sup-2")
        second = new_price_list(store)

        numbers = [
            store.create_version(record.id, "up-1", {}).version_number
            for record in (first, other, second)
        ]

        assert numbers == [1, 1, 2]
        assert store.versions[2].supplier_id == "sup-1"
        assert store.create_version_calls == 3

    def test_version_for_unknown_price_list(self):
        with pytest.raises(PersistenceError):
            InMemoryPriceListStore().create_version("missing", "up-1", {})

    def test_lowercase_sku_conflicts_with_uppercase(self):
        store = InMemoryPriceListStore()
        record = new_price_list(store)
        store.create_items(record.id, "sup-1", [PricedItemFactory.create(sku="DUP1")])

        with pytest.raises(DuplicateConflictError):
            store.create_items(record.id, "sup-1", [PricedItemFactory.create(sku="dup1")])


class TestInMemoryStatusStore:

    def test_history_per_upload(self):
        store = InMemoryStatusStore()
        store.update("up-1", UploadStatus.CREATED, {"progress": 0})
        store.update("up-2", UploadStatus.CREATED, {})
        store.update("up-1", UploadStatus.FAILED, {})

        assert store.statuses("up-1") == [UploadStatus.CREATED, UploadStatus.FAILED]
        assert store.history[0]["detail"] == {"progress": 0}
