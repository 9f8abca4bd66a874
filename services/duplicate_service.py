"""
Duplicate SKU resolution against a supplier's existing catalog.

Pure function of (validated items, existing snapshot, policy, per-SKU
resolutions): the same inputs always give the same output, and running
the resolver again on its own output changes nothing.
"""

from typing import Optional

import structlog

from models.column_mapping import CanonicalField
from models.price_list_item import (
    DuplicateAction,
    DuplicatePolicy,
    DuplicateRecord,
    DuplicateResolution,
    ExistingItem,
    RESOLUTION_OPTIONS,
    ValidatedItem,
)

logger = structlog.get_logger(__name__)

# Canonical fields copied from the existing item when the upload leaves them empty.
# Currency travels with the price, which always comes from the upload.
MERGEABLE_FIELDS = (
    CanonicalField.DESCRIPTION,
    CanonicalField.MINIMUM_ORDER_QUANTITY,
    CanonicalField.UNIT_OF_MEASURE,
    CanonicalField.CATEGORY,
)

_POLICY_ACTION = {
    DuplicatePolicy.SKIP: DuplicateAction.SKIP,
    DuplicatePolicy.OVERWRITE: DuplicateAction.OVERWRITE,
    DuplicatePolicy.MERGE: DuplicateAction.MERGE,
}


def index_existing(existing: list[ExistingItem]) -> dict[str, ExistingItem]:
    """
    Index the snapshot by upper-cased SKU.

    When a SKU appears twice the item with the smallest id wins.
    """
    index: dict[str, ExistingItem] = {}
    for item in sorted(existing, key=lambda e: e.id):
        index.setdefault(item.sku.upper(), item)
    return index


def merge_item(new: ValidatedItem, existing: ExistingItem) -> ValidatedItem:
    """
    Field-level merge.

    A provided, non-empty new value wins; otherwise the existing value is
    kept. Price always comes from the new item. Extensions are combined
    with new keys winning.
    """
    updates = {}
    for field in MERGEABLE_FIELDS:
        new_value = getattr(new, field.value)
        provided = field in new.provided_fields and new_value not in (None, "")
        existing_value = getattr(existing, field.value)
        if not provided and existing_value not in (None, ""):
            updates[field.value] = existing_value

    updates["extensions"] = {**existing.extensions, **new.extensions}
    updates["existing_item_id"] = existing.id
    return new.model_copy(update=updates)


class DuplicateService:
    """Compares validated items to existing catalog items per policy."""

    def resolve(
        self,
        items: list[ValidatedItem],
        existing: list[ExistingItem],
        policy: DuplicatePolicy = DuplicatePolicy.WARN,
        resolutions: Optional[dict[str, DuplicateAction]] = None
    ) -> DuplicateResolution:
        """
        Resolve duplicate SKUs.

        Args:
            items: Validated items in file order
            existing: Snapshot of the supplier's active items
            policy: skip | overwrite | merge | warn
            resolutions: Per-SKU actions that override the policy

        Returns:
            DuplicateResolution. requires_decision is True when duplicates
            remain undecided under the warn policy; items then holds only
            the non-duplicates.
        """
        index = index_existing(existing)
        per_sku = {sku.upper(): DuplicateAction(action) for sku, action in (resolutions or {}).items()}

        resolved: list[ValidatedItem] = []
        duplicates: list[DuplicateRecord] = []

        for item in items:
            match = index.get(item.sku.upper())
            if match is None or item.existing_item_id == match.id:
                # New SKU, or already resolved against this record
                resolved.append(item)
                continue

            action = per_sku.get(item.sku.upper(), _POLICY_ACTION.get(policy))
            duplicates.append(DuplicateRecord(
                sku=item.sku,
                row_number=item.row_number,
                existing_item=match,
                new_item=item,
                resolution_action=action
            ))

            if action == DuplicateAction.OVERWRITE:
                resolved.append(item.model_copy(update={"existing_item_id": match.id}))
            elif action == DuplicateAction.MERGE:
                resolved.append(merge_item(item, match))
            # SKIP and undecided drop the item

        duplicates.sort(key=lambda d: (d.sku.upper(), d.row_number))
        pending = [d for d in duplicates if d.resolution_action is None]

        resolution = DuplicateResolution(
            requires_decision=bool(pending),
            items=resolved,
            duplicates=duplicates,
            options=list(RESOLUTION_OPTIONS) if pending else []
        )

        logger.info(
            "duplicates_resolved",
            policy=policy.value,
            **resolution.summary()
        )
        return resolution


# Singleton instance
_duplicate_service: Optional[DuplicateService] = None


def get_duplicate_service() -> DuplicateService:
    """Get or create DuplicateService instance."""
    global _duplicate_service
    if _duplicate_service is None:
        _duplicate_service = DuplicateService()
    return _duplicate_service
