"""
Version Derivation Engine - builds a child version's items from a source

Chained derivation: each generation's adjusted amounts become the next
generation's original amounts. A source without materialized items (a
version created straight from the fiscal year) falls back to the fiscal
year's raw budget lines.

The engine is pure with respect to storage: it reads the registry and the
catalog and returns new items. The caller turns them into events, appends
them together with the recomputed total in one batch, and guarantees that
the new version has no items yet.
"""

from datetime import datetime
from decimal import Decimal

from budget_versioning.catalog import BudgetCatalog
from budget_versioning.kernel.errors import VersionNotFound
from budget_versioning.kernel.ids import generate_id
from budget_versioning.kernel.metrics import derived_items_total, versions_derived_total
from budget_versioning.versions.adjustments import (
    compute_adjusted_amount,
    factor_to_percentage,
)
from budget_versioning.versions.models import AdjustmentType, BudgetVersionItem
from budget_versioning.versions.projections import VersionRegistry


def derive_items(
    new_version_id: str,
    source_version_id: str,
    registry: VersionRegistry,
    catalog: BudgetCatalog,
    now: datetime,
    adjustment_factor: Decimal = Decimal("1"),
) -> list[BudgetVersionItem]:
    """
    Derive the item set of a new version from a source version

    Derived lines always come from the source's fiscal year, also when the
    new version belongs to another year of the same company. The child keeps
    those lines, but add_version_item on the child only accepts lines of the
    child's own fiscal year, so a derived foreign line cannot be re-added
    once deleted.

    Args:
        new_version_id: Version that will own the derived items
        source_version_id: Version to derive from
        registry: Current version state
        catalog: Budget lines of the fiscal year (fallback source)
        now: Timestamp for created_at/updated_at
        adjustment_factor: Uniform multiplier, applied as a percentage adjustment

    Returns:
        One item per distinct budget line of the source

    Raises:
        VersionNotFound: If the source version does not exist
        AdjustmentBelowFloor: If the factor is negative (below -100%)
    """
    source = registry.get(source_version_id)
    if source is None:
        raise VersionNotFound(source_version_id)

    source_items = registry.items_for(source_version_id)
    if source_items:
        originals = [(item.budget_item_id, item.adjusted_amount) for item in source_items]
        source_kind = "parent_items"
    else:
        originals = [
            (budget_item.budget_item_id, budget_item.budgeted_amount)
            for budget_item in catalog.list_budget_items(source.fiscal_year_id)
        ]
        source_kind = "fiscal_year"

    adjustment_value = factor_to_percentage(adjustment_factor)

    derived: list[BudgetVersionItem] = []
    seen: set[str] = set()
    for budget_item_id, original_amount in originals:
        if budget_item_id in seen:
            continue
        seen.add(budget_item_id)

        derived.append(
            BudgetVersionItem(
                item_id=generate_id(),
                version_id=new_version_id,
                budget_item_id=budget_item_id,
                original_amount=original_amount,
                adjusted_amount=compute_adjusted_amount(
                    original_amount, AdjustmentType.PERCENTAGE, adjustment_value
                ),
                adjustment_type=AdjustmentType.PERCENTAGE,
                adjustment_value=adjustment_value,
                created_at=now,
                updated_at=now,
            )
        )

    versions_derived_total.labels(source=source_kind).inc()
    derived_items_total.inc(len(derived))
    return derived
