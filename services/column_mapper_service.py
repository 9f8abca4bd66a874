"""
Column mapping service.

Maps arbitrary supplier headers to canonical item fields.

Candidates per (header, field), best method wins:
    exact    normalized header equals an alias            score 1.0
    learned  reviewers confirmed this header/field        score = confirmed ratio
    fuzzy    rapidfuzz token_sort_ratio against aliases   score = similarity
    pattern  header contains a price/code/qty/unit word   score 0.7

Assignment is global: all candidates are ranked and taken greedily so each
field gets its best header and no header is used twice.
"""

import re
from dataclasses import dataclass
from typing import Optional

import structlog
from rapidfuzz import fuzz

from config.settings import settings
from models.column_mapping import (
    CanonicalField,
    ColumnMapping,
    FeedbackCounts,
    MappedRow,
    MappingMethod,
    MappingResult,
    MappingSuggestion,
    METHOD_PRIORITY,
)
from models.parsed_file import ParsedRow
from services.interfaces import LearningStore
from services.learning_store import InMemoryLearningStore, JsonFileLearningStore
from utils.text_utils import compact_key, normalize_header

logger = structlog.get_logger(__name__)


# ===================
# ALIASES + PATTERNS
# ===================

FIELD_ALIASES: dict[CanonicalField, tuple[str, ...]] = {
    CanonicalField.SKU: (
        "sku", "item code", "product code", "item no", "item number", "item id",
        "part number", "part no", "product id", "code", "catalog no", "catalog number",
        "ref", "reference", "article", "article number", "material", "stock code",
        "supplier sku", "codigo", "referencia",
    ),
    CanonicalField.DESCRIPTION: (
        "description", "desc", "product description", "item description", "name",
        "product name", "item name", "details", "product", "item", "designation",
        "title", "specification", "descripcion",
    ),
    CanonicalField.UNIT_PRICE: (
        "unit price", "price", "cost", "unit cost", "list price", "price per unit",
        "rate", "amount", "value", "unit rate", "selling price", "wholesale price",
        "net price", "base price", "precio", "precio unitario",
    ),
    CanonicalField.CURRENCY: (
        "currency", "currency code", "curr", "ccy", "cur", "iso code", "price currency",
        "moneda",
    ),
    CanonicalField.MINIMUM_ORDER_QUANTITY: (
        "minimum order quantity", "moq", "min order qty", "min qty", "minimum",
        "min quantity", "minimum qty", "min order", "minimum quantity", "order minimum",
        "min purchase", "cantidad minima",
    ),
    CanonicalField.UNIT_OF_MEASURE: (
        "unit of measure", "uom", "unit", "units", "measure", "sales unit", "base unit",
        "measurement unit", "packaging", "unidad",
    ),
    CanonicalField.CATEGORY: (
        "category", "product category", "product group", "group", "family",
        "product family", "class", "segment", "categoria",
    ),
}

FIELD_PATTERNS: dict[CanonicalField, re.Pattern] = {
    CanonicalField.UNIT_PRICE: re.compile(r"\b(price|cost|rate|amount|precio|prix|preis|tarif)\b"),
    CanonicalField.SKU: re.compile(r"\b(sku|code|ref|part|article|item (no|num|number|id)|catalog)\b"),
    CanonicalField.MINIMUM_ORDER_QUANTITY: re.compile(r"\b(moq|min|minimum)\b"),
    CanonicalField.UNIT_OF_MEASURE: re.compile(r"\b(uom|unit|units|measure|pack|packaging)\b"),
    CanonicalField.CURRENCY: re.compile(r"\b(currency|curr|ccy)\b"),
    CanonicalField.DESCRIPTION: re.compile(r"\b(desc|description|name|title|details)\b"),
    CanonicalField.CATEGORY: re.compile(r"\b(category|group|family|class)\b"),
}

PATTERN_SCORE = 0.7
SUGGESTION_MIN_SCORE = 0.3
SUGGESTION_LIMIT = 5

FIELD_ORDER = {field: index for index, field in enumerate(CanonicalField)}

_COMPACT_ALIASES = {
    field: {compact_key(normalize_header(alias)[0]) for alias in aliases}
    for field, aliases in FIELD_ALIASES.items()
}


@dataclass
class _Candidate:
    header_index: int
    field: CanonicalField
    score: float
    method: MappingMethod

    def rank(self) -> tuple:
        return (-self.score, METHOD_PRIORITY[self.method], self.header_index, FIELD_ORDER[self.field])


def _best(candidates: list[_Candidate]) -> _Candidate:
    return min(candidates, key=_Candidate.rank)


class ColumnMapperService:
    """
    Maps headers to canonical fields.

    Learned feedback comes from the injected LearningStore.
    """

    def __init__(
        self,
        learning_store: Optional[LearningStore] = None,
        fuzzy_threshold: Optional[float] = None,
        learned_threshold: Optional[float] = None
    ):
        self.learning_store = learning_store or InMemoryLearningStore()
        self.fuzzy_threshold = fuzzy_threshold if fuzzy_threshold is not None else settings.fuzzy_match_threshold
        self.learned_threshold = (
            learned_threshold if learned_threshold is not None else settings.learned_mapping_threshold
        )

    # ===================
    # MAPPING
    # ===================

    def map_headers(
        self,
        headers: list[str],
        overrides: Optional[dict[str, CanonicalField]] = None,
        extraction_confidence: float = 1.0,
        intelligent: bool = True
    ) -> MappingResult:
        """
        Map a header list to canonical fields.

        Args:
            headers: Header strings in file order
            overrides: Manual header → field assignments (confidence 1.0)
            extraction_confidence: Parser confidence (scales inexact matches only)
            intelligent: False restricts automatic matching to exact aliases

        Returns:
            MappingResult; success is False when a required field is unmapped
        """
        mapping = ColumnMapping(headers=list(headers))
        used_headers: set[int] = set()

        for header, field in self._resolve_overrides(headers, overrides or {}).items():
            index = headers.index(header)
            mapping.fields[field] = index
            mapping.confidence[field] = 1.0
            mapping.methods[field] = MappingMethod.MANUAL
            used_headers.add(index)

        feedback = [self.learning_store.get(h) for h in headers]
        options = self._score_options(headers, feedback, intelligent)
        scores = {key: _best(opts) for key, opts in options.items()}

        candidates = []
        for opts in options.values():
            passing = [c for c in opts if self._passes_threshold(c)]
            if passing:
                candidates.append(_best(passing))

        for candidate in sorted(candidates, key=_Candidate.rank):
            if candidate.field in mapping.fields or candidate.header_index in used_headers:
                continue
            mapping.fields[candidate.field] = candidate.header_index
            score = candidate.score
            if candidate.method != MappingMethod.EXACT:
                # Exact header matches stay certain whatever the parser's confidence
                score *= extraction_confidence
            mapping.confidence[candidate.field] = round(score, 4)
            mapping.methods[candidate.field] = candidate.method
            used_headers.add(candidate.header_index)

        mapping.unmapped_headers = [h for i, h in enumerate(headers) if i not in used_headers]

        price_header = mapping.header_for(CanonicalField.UNIT_PRICE)
        if price_header is not None:
            mapping.inferred_currency = normalize_header(price_header)[1]

        missing = mapping.missing_required
        if missing or mapping.unmapped_headers:
            mapping.suggestions = self._suggestions(headers, scores, mapping, missing)

        logger.info(
            "columns_mapped",
            headers=len(headers),
            mapped=len(mapping.fields),
            missing_required=[f.value for f in missing],
            mean_confidence=round(mapping.mean_confidence, 3),
            inferred_currency=mapping.inferred_currency
        )

        return MappingResult(mapping=mapping, missing_fields=missing)

    def _resolve_overrides(
        self,
        headers: list[str],
        overrides: dict[str, CanonicalField]
    ) -> dict[str, CanonicalField]:
        """
        Accept header → field or field → header entries.

        Later entries win when two name the same field.
        """
        resolved: dict[str, CanonicalField] = {}
        for key, value in overrides.items():
            if key in headers:
                header, field = key, CanonicalField(value)
            elif str(value) in headers and key in {f.value for f in CanonicalField}:
                header, field = str(value), CanonicalField(key)
            else:
                logger.warning("mapping_override_ignored", key=key, value=str(value))
                continue
            resolved = {h: f for h, f in resolved.items() if f != field and h != header}
            resolved[header] = field
        return resolved

    def _score_options(
        self,
        headers: list[str],
        feedback: list[dict[CanonicalField, FeedbackCounts]],
        intelligent: bool
    ) -> dict[tuple[int, CanonicalField], list[_Candidate]]:
        """Every method's score per (header, field), excluding rejected pairings."""
        scores: dict[tuple[int, CanonicalField], list[_Candidate]] = {}

        for index, header in enumerate(headers):
            normalized, _ = normalize_header(header)
            compact = compact_key(normalized)

            for field in CanonicalField:
                counts = feedback[index].get(field)
                if counts is not None and counts.is_excluded:
                    continue

                options: list[_Candidate] = []
                if compact and compact in _COMPACT_ALIASES[field]:
                    options.append(_Candidate(index, field, 1.0, MappingMethod.EXACT))

                if intelligent:
                    if counts is not None and counts.total > 0:
                        options.append(_Candidate(index, field, round(counts.confirmed_ratio, 4), MappingMethod.LEARNED))
                    if normalized:
                        similarity = max(
                            fuzz.token_sort_ratio(normalized, alias) for alias in FIELD_ALIASES[field]
                        ) / 100
                        options.append(_Candidate(index, field, round(similarity, 4), MappingMethod.FUZZY))
                        if FIELD_PATTERNS[field].search(normalized):
                            options.append(_Candidate(index, field, PATTERN_SCORE, MappingMethod.PATTERN))

                if options:
                    scores[(index, field)] = options

        return scores

    def _passes_threshold(self, candidate: _Candidate) -> bool:
        if candidate.method == MappingMethod.LEARNED:
            return candidate.score >= self.learned_threshold
        if candidate.method == MappingMethod.FUZZY:
            return candidate.score >= self.fuzzy_threshold
        return True

    @staticmethod
    def _suggestions(
        headers: list[str],
        scores: dict[tuple[int, CanonicalField], _Candidate],
        mapping: ColumnMapping,
        missing: list[CanonicalField]
    ) -> list[MappingSuggestion]:
        """Top candidates for each unmapped header and each missing required field."""
        picked: dict[tuple[int, CanonicalField], _Candidate] = {}
        unmapped = {i for i, h in enumerate(headers) if h in mapping.unmapped_headers}

        for index in unmapped:
            ranked = sorted(
                (c for (i, _), c in scores.items() if i == index and c.score > SUGGESTION_MIN_SCORE),
                key=_Candidate.rank
            )
            for candidate in ranked[:SUGGESTION_LIMIT]:
                picked[(candidate.header_index, candidate.field)] = candidate

        for field in missing:
            ranked = sorted(
                (c for (_, f), c in scores.items() if f == field and c.score > SUGGESTION_MIN_SCORE),
                key=_Candidate.rank
            )
            for candidate in ranked[:SUGGESTION_LIMIT]:
                picked[(candidate.header_index, candidate.field)] = candidate

        return [
            MappingSuggestion(
                header=headers[c.header_index],
                field=c.field,
                score=c.score,
                method=c.method
            )
            for c in sorted(picked.values(), key=_Candidate.rank)
        ]

    # ===================
    # APPLY + LEARN
    # ===================

    def apply_mapping(self, rows: list[ParsedRow], mapping: ColumnMapping) -> list[MappedRow]:
        """
        Re-key parsed rows by canonical field.

        Values under unmapped headers go to extensions keyed by header text.
        """
        field_headers = {field: mapping.headers[index] for field, index in mapping.fields.items()}
        mapped_headers = set(field_headers.values())
        extension_headers = [h for h in mapping.headers if h not in mapped_headers]

        mapped_rows = []
        for row in rows:
            values = {}
            amounts = {}
            for field, header in field_headers.items():
                values[field] = row.values.get(header, "")
                if header in row.amounts:
                    amounts[field] = row.amounts[header]
            extensions = {
                header: row.values[header]
                for header in extension_headers
                if row.values.get(header)
            }
            mapped_rows.append(MappedRow(
                row_number=row.row_number,
                values=values,
                amounts=amounts,
                extensions=extensions
            ))
        return mapped_rows

    def learn_from_feedback(self, header: str, field: CanonicalField, is_correct: bool) -> None:
        """Record a reviewer's confirmation or rejection of a header/field pairing."""
        self.learning_store.record(header, field, is_correct)

    def export_learnings(self) -> dict:
        return self.learning_store.export()

    def import_learnings(self, data: dict) -> int:
        return self.learning_store.import_data(data)


# Singleton instance
_column_mapper_service: Optional[ColumnMapperService] = None


def get_column_mapper_service() -> ColumnMapperService:
    """Get or create ColumnMapperService instance (JSON-file backed learning)."""
    global _column_mapper_service
    if _column_mapper_service is None:
        _column_mapper_service = ColumnMapperService(learning_store=JsonFileLearningStore())
    return _column_mapper_service
