"""
Unit tests for ColumnMapperService.

Covers exact, fuzzy, pattern, learned and manual matching, global
assignment and the feedback loop.
"""

import pytest

from models.column_mapping import CanonicalField, MappingMethod
from services.column_mapper_service import ColumnMapperService
from services.learning_store import InMemoryLearningStore
from tests.factories import parsed_rows

F = CanonicalField


@pytest.fixture
def mapper(learning_store) -> ColumnMapperService:
    return ColumnMapperService(learning_store=learning_store)


# ===================
# AUTOMATIC MATCHING
# ===================

class TestExactMatching:

    def test_common_headers(self, mapper):
        result = mapper.map_headers(["Item Code", "Desc", "Price (USD)"])

        mapping = result.mapping
        assert result.success
        assert mapping.fields == {F.SKU: 0, F.DESCRIPTION: 1, F.UNIT_PRICE: 2}
        assert all(m == MappingMethod.EXACT for m in mapping.methods.values())
        assert mapping.mean_confidence == 1.0
        assert mapping.inferred_currency == "USD"
        assert mapping.unmapped_headers == []

    def test_camel_case_and_snake_case(self, mapper):
        result = mapper.map_headers(["productCode", "unit_price", "currencyCode", "MOQ", "UOM"])

        assert result.mapping.fields == {
            F.SKU: 0,
            F.UNIT_PRICE: 1,
            F.CURRENCY: 2,
            F.MINIMUM_ORDER_QUANTITY: 3,
            F.UNIT_OF_MEASURE: 4,
        }

    def test_spanish_headers(self, mapper):
        result = mapper.map_headers(["Código", "Descripción", "Precio"])

        assert result.mapping.fields == {F.SKU: 0, F.DESCRIPTION: 1, F.UNIT_PRICE: 2}

    def test_each_header_used_once(self, mapper):
        result = mapper.map_headers(["SKU", "Price", "Cost"])

        mapping = result.mapping
        assert mapping.fields[F.UNIT_PRICE] == 1
        assert "Cost" in mapping.unmapped_headers
        assert len(set(mapping.fields.values())) == len(mapping.fields)


class TestInexactMatching:

    def test_fuzzy_typo(self, mapper):
        result = mapper.map_headers(["SKU", "Descripton", "Price"])

        mapping = result.mapping
        assert mapping.fields[F.DESCRIPTION] == 1
        assert mapping.methods[F.DESCRIPTION] == MappingMethod.FUZZY
        assert 0.7 <= mapping.confidence[F.DESCRIPTION] < 1.0

    def test_pattern_keyword(self, mapper):
        result = mapper.map_headers(["Code", "Tarif HT"])

        mapping = result.mapping
        assert mapping.fields[F.UNIT_PRICE] == 1
        assert mapping.methods[F.UNIT_PRICE] == MappingMethod.PATTERN
        assert mapping.confidence[F.UNIT_PRICE] == pytest.approx(0.7)
        assert mapping.mean_confidence == pytest.approx(0.85)

    def test_exact_only_when_not_intelligent(self, mapper):
        result = mapper.map_headers(["SKU", "Descripton", "Price"], intelligent=False)

        assert F.DESCRIPTION not in result.mapping.fields
        assert result.mapping.unmapped_headers == ["Descripton"]

    def test_exact_matches_stay_certain_for_unstructured_files(self, mapper):
        result = mapper.map_headers(["SKU", "Description", "Unit Price"], extraction_confidence=0.6)

        assert result.mapping.confidence == {
            F.SKU: 1.0,
            F.DESCRIPTION: 1.0,
            F.UNIT_PRICE: 1.0,
        }
        assert result.mapping.methods[F.SKU] == MappingMethod.EXACT

    def test_extraction_confidence_scales_inexact_matches(self, mapper):
        headers = ["SKU", "Descripton", "Price"]
        full = mapper.map_headers(headers).mapping
        scaled = mapper.map_headers(headers, extraction_confidence=0.6).mapping

        assert scaled.methods[F.DESCRIPTION] == MappingMethod.FUZZY
        assert scaled.confidence[F.DESCRIPTION] == pytest.approx(full.confidence[F.DESCRIPTION] * 0.6, abs=1e-4)
        assert scaled.confidence[F.UNIT_PRICE] == 1.0


class TestMissingFields:

    def test_missing_required_fields(self, mapper):
        result = mapper.map_headers(["Description", "Colour"])

        assert not result.success
        assert result.missing_fields == [F.SKU, F.UNIT_PRICE]
        assert "Colour" in result.unmapped_headers

    def test_suggestions_are_sorted_and_bounded(self, mapper):
        result = mapper.map_headers(["Description", "Product Ref Number", "Cst"])

        scores = [s.score for s in result.suggestions]
        assert scores == sorted(scores, reverse=True)
        assert all(s.score > 0.3 for s in result.suggestions)


# ===================
# MANUAL OVERRIDES
# ===================

class TestOverrides:

    def test_header_to_field(self, mapper):
        result = mapper.map_headers(
            ["Ref", "Cost Each"],
            overrides={"Cost Each": F.UNIT_PRICE}
        )

        mapping = result.mapping
        assert mapping.fields[F.UNIT_PRICE] == 1
        assert mapping.methods[F.UNIT_PRICE] == MappingMethod.MANUAL
        assert mapping.confidence[F.UNIT_PRICE] == 1.0

    def test_field_to_header(self, mapper):
        result = mapper.map_headers(["Artikel", "Price"], overrides={"sku": "Artikel"})

        assert result.mapping.fields[F.SKU] == 0
        assert result.mapping.methods[F.SKU] == MappingMethod.MANUAL

    def test_override_takes_header_from_automatic_match(self, mapper):
        result = mapper.map_headers(["Price", "Net"], overrides={"Price": F.DESCRIPTION})

        assert result.mapping.fields[F.DESCRIPTION] == 0
        assert result.mapping.fields.get(F.UNIT_PRICE) != 0

    def test_unknown_override_ignored(self, mapper):
        result = mapper.map_headers(["SKU", "Price"], overrides={"Nope": F.CATEGORY})

        assert F.CATEGORY not in result.mapping.fields
        assert result.success


# ===================
# LEARNING
# ===================

class TestLearning:

    def test_confirmed_mapping_is_learned(self, mapper):
        before = mapper.map_headers(["Nummer", "Price"])
        assert F.SKU not in before.mapping.fields

        mapper.learn_from_feedback("Nummer", F.SKU, True)
        mapper.learn_from_feedback("nummer ", F.SKU, True)
        after = mapper.map_headers(["Nummer", "Price"])

        assert after.mapping.fields[F.SKU] == 0
        assert after.mapping.methods[F.SKU] == MappingMethod.LEARNED
        assert after.mapping.confidence[F.SKU] == 1.0

    def test_rejected_pairing_is_excluded(self, mapper):
        mapper.learn_from_feedback("Item Code", F.SKU, False)

        result = mapper.map_headers(["Item Code", "Price"])

        assert F.SKU not in result.mapping.fields
        assert F.SKU in result.missing_fields

    def test_mixed_feedback_below_threshold(self, mapper):
        mapper.learn_from_feedback("Nummer", F.SKU, True)
        mapper.learn_from_feedback("Nummer", F.SKU, False)

        result = mapper.map_headers(["Nummer", "Price"])

        assert F.SKU not in result.mapping.fields

    def test_export_and_import(self, mapper):
        mapper.learn_from_feedback("Nummer", F.SKU, True)
        exported = mapper.export_learnings()

        other = ColumnMapperService(learning_store=InMemoryLearningStore())
        imported = other.import_learnings(exported)

        assert imported == 1
        assert other.learning_store.get("Nummer")[F.SKU].confirmed == 1


# ===================
# APPLY
# ===================

class TestApplyMapping:

    def test_rows_rekeyed_by_field(self, mapper):
        headers = ["Item Code", "Price (USD)", "Colour", "Notes"]
        rows = parsed_rows(headers, [["A1", "$12.50", "Grey", ""]])
        mapping = mapper.map_headers(headers).mapping

        mapped = mapper.apply_mapping(rows, mapping)

        assert len(mapped) == 1
        row = mapped[0]
        assert row.row_number == 1
        assert row.get(F.SKU) == "A1"
        assert row.get(F.UNIT_PRICE) == "$12.50"
        assert row.amounts[F.UNIT_PRICE].currency == "USD"
        assert row.extensions == {"Colour": "Grey"}
