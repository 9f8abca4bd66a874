"""
Unit tests for the checkpoint stores.
"""

from datetime import timedelta

import pytest

from models.parsed_file import FileMetadata, ParsedRow
from models.upload_job import UploadCheckpoint, UploadJob, UploadStatus, utc_now
from services.checkpoint_store import (
    FileCheckpointStore,
    InMemoryCheckpointStore,
    SupabaseCheckpointStore,
)


def make_checkpoint(upload_id: str = "up-1", age_days: int = 0) -> UploadCheckpoint:
    job = UploadJob(
        id=upload_id,
        supplier_id="sup-1",
        file_metadata=FileMetadata(filename="prices.csv"),
        status=UploadStatus.WAITING_FOR_APPROVAL,
        last_updated=utc_now() - timedelta(days=age_days)
    )
    return UploadCheckpoint(
        job=job,
        headers=["SKU", "Price"],
        rows=[ParsedRow(row_number=1, values={"SKU": "A1", "Price": "5"})]
    )


@pytest.fixture(params=["memory", "file"])
def store(request, tmp_path):
    if request.param == "memory":
        return InMemoryCheckpointStore()
    return FileCheckpointStore(str(tmp_path / "checkpoints"))


class TestLocalStores:

    def test_save_and_load(self, store):
        checkpoint = make_checkpoint()

        store.save(checkpoint)
        loaded = store.load("up-1")

        assert loaded == checkpoint
        assert loaded is not checkpoint

    def test_loaded_copy_is_independent(self, store):
        store.save(make_checkpoint())

        loaded = store.load("up-1")
        loaded.job.status = UploadStatus.CANCELLED

        assert store.load("up-1").job.status == UploadStatus.WAITING_FOR_APPROVAL

    def test_missing(self, store):
        assert store.load("nope") is None

    def test_delete(self, store):
        store.save(make_checkpoint())

        store.delete("up-1")
        store.delete("up-1")

        assert store.load("up-1") is None

    def test_list_expired(self, store):
        store.save(make_checkpoint("old", age_days=40))
        store.save(make_checkpoint("new", age_days=1))

        expired = store.list_expired(utc_now() - timedelta(days=30))

        assert expired == ["old"]


class TestFileCheckpointStore:

    def test_survives_new_instance(self, tmp_path):
        directory = str(tmp_path / "checkpoints")
        FileCheckpointStore(directory).save(make_checkpoint())

        loaded = FileCheckpointStore(directory).load("up-1")

        assert loaded.headers == ["SKU", "Price"]

    def test_unreadable_file_skipped_when_listing(self, tmp_path):
        store = FileCheckpointStore(str(tmp_path))
        store.save(make_checkpoint("old", age_days=40))
        (tmp_path / "broken.json").write_text("{", encoding="utf-8")

        assert store.list_expired(utc_now()) == ["old"]


class TestSupabaseCheckpointStore:

    def test_save_upserts_payload(self, mock_db, mock_supabase):
        SupabaseCheckpointStore().save(make_checkpoint())

        written = mock_supabase.writes_to("upload_checkpoints", "upsert")
        assert len(written) == 1
        assert written[0]["upload_id"] == "up-1"
        assert written[0]["status"] == "waiting_for_approval"
        assert written[0]["payload"]["headers"] == ["SKU", "Price"]

    def test_load(self, mock_db, mock_supabase):
        checkpoint = make_checkpoint()
        mock_supabase.set_table_data("upload_checkpoints", [
            {"payload": checkpoint.model_dump(mode="json")}
        ])

        loaded = SupabaseCheckpointStore().load("up-1")

        assert loaded == checkpoint

    def test_load_missing(self, mock_db, mock_supabase):
        assert SupabaseCheckpointStore().load("up-1") is None

    def test_list_expired(self, mock_db, mock_supabase):
        mock_supabase.set_table_data("upload_checkpoints", [{"upload_id": "old"}])

        assert SupabaseCheckpointStore().list_expired(utc_now()) == ["old"]
