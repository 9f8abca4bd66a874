"""
Durable upload checkpoints.

A checkpoint holds everything a suspended job needs to resume: the job
record, parsed rows and every stage output. Three backends:
- InMemoryCheckpointStore: tests and single-process runs
- FileCheckpointStore: one JSON file per upload, survives a restart
- SupabaseCheckpointStore: upload_checkpoints table
"""

import os
import threading
from datetime import datetime
from pathlib import Path
from typing import Optional

import structlog

from config import get_supabase_client, settings
from models.upload_job import UploadCheckpoint

logger = structlog.get_logger(__name__)


class InMemoryCheckpointStore:
    """Checkpoints kept in a dict. Lost on restart."""

    def __init__(self):
        self._checkpoints: dict[str, str] = {}
        self._lock = threading.Lock()

    def save(self, checkpoint: UploadCheckpoint) -> None:
        # Stored serialized so callers never share mutable state with the store
        data = checkpoint.model_dump_json()
        with self._lock:
            self._checkpoints[checkpoint.upload_id] = data

    def load(self, upload_id: str) -> Optional[UploadCheckpoint]:
        with self._lock:
            data = self._checkpoints.get(upload_id)
        if data is None:
            return None
        return UploadCheckpoint.model_validate_json(data)

    def delete(self, upload_id: str) -> None:
        with self._lock:
            self._checkpoints.pop(upload_id, None)

    def list_expired(self, older_than: datetime) -> list[str]:
        """Upload ids whose job was last touched before older_than."""
        with self._lock:
            items = list(self._checkpoints.items())
        expired = []
        for upload_id, data in items:
            checkpoint = UploadCheckpoint.model_validate_json(data)
            if checkpoint.job.last_updated < older_than:
                expired.append(upload_id)
        return sorted(expired)


class FileCheckpointStore:
    """One <upload_id>.json file per checkpoint under checkpoint_dir."""

    def __init__(self, directory: Optional[str] = None):
        self.directory = Path(directory or settings.checkpoint_dir)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, upload_id: str) -> Path:
        return self.directory / f"{upload_id}.json"

    def save(self, checkpoint: UploadCheckpoint) -> None:
        path = self._path(checkpoint.upload_id)
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_text(checkpoint.model_dump_json(), encoding="utf-8")
        os.replace(tmp_path, path)

    def load(self, upload_id: str) -> Optional[UploadCheckpoint]:
        path = self._path(upload_id)
        if not path.exists():
            return None
        return UploadCheckpoint.model_validate_json(path.read_text(encoding="utf-8"))

    def delete(self, upload_id: str) -> None:
        self._path(upload_id).unlink(missing_ok=True)

    def list_expired(self, older_than: datetime) -> list[str]:
        expired = []
        for path in sorted(self.directory.glob("*.json")):
            try:
                checkpoint = UploadCheckpoint.model_validate_json(path.read_text(encoding="utf-8"))
            except ValueError as e:
                logger.warning("checkpoint_unreadable", path=str(path), error=str(e))
                continue
            if checkpoint.job.last_updated < older_than:
                expired.append(checkpoint.upload_id)
        return expired


class SupabaseCheckpointStore:
    """Checkpoints in the upload_checkpoints table (payload column is JSON)."""

    def __init__(self):
        self.db = get_supabase_client()
        self.table = "upload_checkpoints"

    def save(self, checkpoint: UploadCheckpoint) -> None:
        self.db.table(self.table).upsert(
            {
                "upload_id": checkpoint.upload_id,
                "status": checkpoint.job.status.value,
                "last_updated": checkpoint.job.last_updated.isoformat(),
                "payload": checkpoint.model_dump(mode="json"),
            },
            on_conflict="upload_id",
        ).execute()

    def load(self, upload_id: str) -> Optional[UploadCheckpoint]:
        result = (
            self.db.table(self.table)
            .select("payload")
            .eq("upload_id", upload_id)
            .limit(1)
            .execute()
        )
        if not result.data:
            return None
        return UploadCheckpoint.model_validate(result.data[0]["payload"])

    def delete(self, upload_id: str) -> None:
        self.db.table(self.table).delete().eq("upload_id", upload_id).execute()

    def list_expired(self, older_than: datetime) -> list[str]:
        result = (
            self.db.table(self.table)
            .select("upload_id")
            .lt("last_updated", older_than.isoformat())
            .order("upload_id")
            .execute()
        )
        return [row["upload_id"] for row in result.data or []]
