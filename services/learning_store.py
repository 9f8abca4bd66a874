"""
Learned column-mapping feedback.

Each store counts how often reviewers confirmed or rejected a header/field
pairing. Headers are keyed case-insensitively on their trimmed text.
"""

import json
import os
import threading
from pathlib import Path
from typing import Any, Optional

import structlog

from config import get_supabase_client, settings
from models.column_mapping import CanonicalField, FeedbackCounts

logger = structlog.get_logger(__name__)

EXPORT_VERSION = 1


def feedback_key(header: str) -> str:
    return " ".join(str(header).split()).lower()


def _parse_export(data: dict[str, Any]) -> dict[str, dict[CanonicalField, FeedbackCounts]]:
    """
    Read an export payload.

    Unknown fields are skipped so an export from a newer field set still loads.
    """
    parsed: dict[str, dict[CanonicalField, FeedbackCounts]] = {}
    for header, fields in (data.get("feedback") or {}).items():
        for field_name, counts in (fields or {}).items():
            try:
                field = CanonicalField(field_name)
            except ValueError:
                logger.warning("learning_import_unknown_field", header=header, field=field_name)
                continue
            parsed.setdefault(feedback_key(header), {})[field] = FeedbackCounts(**counts)
    return parsed


class InMemoryLearningStore:
    """Process-local store. Used in tests and as the base of the file store."""

    def __init__(self):
        self._feedback: dict[str, dict[CanonicalField, FeedbackCounts]] = {}
        self._lock = threading.Lock()

    def get(self, header: str) -> dict[CanonicalField, FeedbackCounts]:
        with self._lock:
            entries = self._feedback.get(feedback_key(header), {})
            return {field: counts.model_copy() for field, counts in entries.items()}

    def record(self, header: str, field: CanonicalField, is_correct: bool) -> None:
        with self._lock:
            entry = self._feedback.setdefault(feedback_key(header), {})
            counts = entry.setdefault(field, FeedbackCounts())
            if is_correct:
                counts.confirmed += 1
            else:
                counts.rejected += 1
            self._after_change()

        logger.info(
            "mapping_feedback_recorded",
            header=header,
            field=field.value,
            is_correct=is_correct
        )

    def export(self) -> dict[str, Any]:
        with self._lock:
            return self._payload()

    def import_data(self, data: dict[str, Any]) -> int:
        """
        Merge an export into this store (counts are added).

        Returns:
            Number of header/field pairs imported
        """
        parsed = _parse_export(data)
        imported = 0
        with self._lock:
            for header, fields in parsed.items():
                entry = self._feedback.setdefault(header, {})
                for field, counts in fields.items():
                    current = entry.setdefault(field, FeedbackCounts())
                    current.confirmed += counts.confirmed
                    current.rejected += counts.rejected
                    imported += 1
            self._after_change()

        logger.info("mapping_feedback_imported", pairs=imported)
        return imported

    def _payload(self) -> dict[str, Any]:
        return {
            "version": EXPORT_VERSION,
            "feedback": {
                header: {field.value: counts.model_dump() for field, counts in fields.items()}
                for header, fields in self._feedback.items()
            },
        }

    def _after_change(self) -> None:
        """Hook called with the lock held after every change."""


class JsonFileLearningStore(InMemoryLearningStore):
    """
    Feedback persisted to a JSON file.

    Loaded once at construction, rewritten after each change.
    """

    def __init__(self, path: Optional[str] = None):
        super().__init__()
        self.path = Path(path or settings.learning_store_path)
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.error("learning_store_load_failed", path=str(self.path), error=str(e))
            return
        self._feedback = _parse_export(data)
        logger.info("learning_store_loaded", path=str(self.path), headers=len(self._feedback))

    def _after_change(self) -> None:
        payload = self._payload()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        os.replace(tmp_path, self.path)


class SupabaseLearningStore:
    """Feedback stored in the column_mapping_feedback table."""

    def __init__(self):
        self.db = get_supabase_client()
        self.table = "column_mapping_feedback"

    def get(self, header: str) -> dict[CanonicalField, FeedbackCounts]:
        result = (
            self.db.table(self.table)
            .select("field, confirmed, rejected")
            .eq("header_key", feedback_key(header))
            .execute()
        )
        feedback = {}
        for row in result.data or []:
            try:
                field = CanonicalField(row["field"])
            except ValueError:
                continue
            feedback[field] = FeedbackCounts(confirmed=row["confirmed"], rejected=row["rejected"])
        return feedback

    def record(self, header: str, field: CanonicalField, is_correct: bool) -> None:
        key = feedback_key(header)
        counts = self.get(header).get(field, FeedbackCounts())
        if is_correct:
            counts.confirmed += 1
        else:
            counts.rejected += 1

        self.db.table(self.table).upsert(
            {
                "header_key": key,
                "field": field.value,
                "confirmed": counts.confirmed,
                "rejected": counts.rejected,
            },
            on_conflict="header_key,field",
        ).execute()

        logger.info(
            "mapping_feedback_recorded",
            header=header,
            field=field.value,
            is_correct=is_correct
        )

    def export(self) -> dict[str, Any]:
        result = self.db.table(self.table).select("header_key, field, confirmed, rejected").execute()
        feedback: dict[str, dict] = {}
        for row in result.data or []:
            feedback.setdefault(row["header_key"], {})[row["field"]] = {
                "confirmed": row["confirmed"],
                "rejected": row["rejected"],
            }
        return {"version": EXPORT_VERSION, "feedback": feedback}

    def import_data(self, data: dict[str, Any]) -> int:
        parsed = _parse_export(data)
        imported = 0
        for header, fields in parsed.items():
            existing = self.get(header)
            for field, counts in fields.items():
                current = existing.get(field, FeedbackCounts())
                self.db.table(self.table).upsert(
                    {
                        "header_key": header,
                        "field": field.value,
                        "confirmed": current.confirmed + counts.confirmed,
                        "rejected": current.rejected + counts.rejected,
                    },
                    on_conflict="header_key,field",
                ).execute()
                imported += 1

        logger.info("mapping_feedback_imported", pairs=imported)
        return imported
