"""
Unit tests for upload job schemas.
"""

from decimal import Decimal

import pytest

from models.parsed_file import FileMetadata
from models.price_list_item import DuplicateAction, DuplicatePolicy
from models.upload_job import (
    UploadCheckpoint,
    UploadJob,
    UploadOptions,
    UploadOverrides,
    UploadResult,
    UploadStats,
    UploadStatus,
    is_valid_status_transition,
)

S = UploadStatus


class TestStatusTransitions:

    @pytest.mark.parametrize("current,new", [
        (S.CREATED, S.VALIDATING_SUPPLIER),
        (S.PARSING_FILE, S.MAPPING_COLUMNS),
        (S.MAPPING_COLUMNS, S.NEEDS_REVIEW),
        (S.APPLYING_PRICE_RULES, S.WAITING_FOR_APPROVAL),
        (S.APPLYING_PRICE_RULES, S.IMPORTING_ITEMS),
        (S.WAITING_FOR_APPROVAL, S.IMPORTING_ITEMS),
        (S.NEEDS_REVIEW, S.MAPPING_COLUMNS),
        (S.NEEDS_REVIEW, S.CHECKING_DUPLICATES),
        (S.IMPORTING_ITEMS, S.COMPLETED),
        (S.VALIDATING_DATA, S.CANCELLED),
    ])
    def test_valid(self, current, new):
        assert is_valid_status_transition(current, new)

    @pytest.mark.parametrize("current,new", [
        (S.CREATED, S.IMPORTING_ITEMS),
        (S.MAPPING_COLUMNS, S.PARSING_FILE),
        (S.WAITING_FOR_APPROVAL, S.COMPLETED),
        (S.COMPLETED, S.FAILED),
        (S.CANCELLED, S.IMPORTING_ITEMS),
        (S.FAILED, S.CANCELLED),
    ])
    def test_invalid(self, current, new):
        assert not is_valid_status_transition(current, new)


class TestUploadOptions:

    def test_defaults(self):
        options = UploadOptions()

        assert options.intelligent_parsing
        assert not options.strict_validation
        assert options.duplicate_handling == DuplicatePolicy.WARN
        assert options.batch_size == 100
        assert options.max_errors == 50

    def test_camel_case_keys(self):
        options = UploadOptions.model_validate({
            "requirePreview": True,
            "duplicateHandling": "merge",
            "batchSize": 10,
            "priceRulesConfig": [{"name": "m", "type": "markup", "value": 10}],
        })

        assert options.require_preview
        assert options.duplicate_handling == DuplicatePolicy.MERGE
        assert options.batch_size == 10
        assert options.price_rules_config[0].value == Decimal("10")

    def test_rejects_bad_batch_size(self):
        with pytest.raises(ValueError):
            UploadOptions(batch_size=0)


class TestUploadOverrides:

    def test_camel_case_keys(self):
        overrides = UploadOverrides.model_validate({
            "columnMapping": {"Kosten": "unit_price"},
            "duplicateResolutions": {"SKU1": "merge"},
            "priceOverrides": {"SKU1": "9.50"},
        })

        assert overrides.column_mapping["Kosten"].value == "unit_price"
        assert overrides.duplicate_resolutions == {"SKU1": DuplicateAction.MERGE}
        assert overrides.price_overrides == {"SKU1": Decimal("9.50")}
        assert overrides.price_rules is None


class TestUploadResult:

    def test_to_dict_is_camel_case_without_empty_sections(self):
        result = UploadResult(
            success=True,
            upload_id="up-1",
            status=S.COMPLETED,
            price_list_id="pl-1",
            items_committed=3
        )

        assert result.to_dict() == {
            "success": True,
            "uploadId": "up-1",
            "status": "completed",
            "priceListId": "pl-1",
            "itemsCommitted": 3,
            "errors": [],
            "warnings": [],
        }


class TestUploadCheckpoint:

    def test_strip_artifacts_keeps_job(self):
        job = UploadJob(id="up-1", supplier_id="sup-1", file_metadata=FileMetadata(filename="p.csv"))
        checkpoint = UploadCheckpoint(job=job, headers=["SKU"], preview={"total_items": 1})

        checkpoint.strip_artifacts()

        assert checkpoint.upload_id == "up-1"
        assert checkpoint.preview is None
        assert checkpoint.rows == []
        assert checkpoint.job.archived


class TestUploadStats:

    def test_success_rate(self):
        stats = UploadStats(completed=3, failed=1, total_processing_seconds=6.0)

        data = stats.to_dict()

        assert data["success_rate"] == 75.0
        assert data["average_processing_seconds"] == 2.0

    def test_empty(self):
        assert UploadStats().success_rate == 0.0
