"""
Comparison Engine - line-by-line and aggregate diff of two versions

Zero-base convention for percentages: when the A side is zero, a B amount
counts as a 100% increase (the line appeared), and zero on both sides is 0%.
"""

from collections.abc import Iterable
from decimal import Decimal

from pydantic import BaseModel

from budget_versioning.kernel.metrics import version_comparisons_total
from budget_versioning.versions.models import BudgetVersionItem

ZERO = Decimal("0")
HUNDRED = Decimal("100")


class ItemComparison(BaseModel):
    """Diff of a single budget line (missing side counts as zero)"""

    budget_item_id: str
    amount_a: Decimal
    amount_b: Decimal
    difference: Decimal
    percentage_difference: Decimal


class VersionComparison(BaseModel):
    """
    Structured diff between version A and version B

    Attributes:
        version_a_id: Left-hand version
        version_b_id: Right-hand version
        items: One entry per budget line present in either version
        total_a: Sum of A's own items
        total_b: Sum of B's own items
        total_difference: total_b - total_a
        total_percentage_difference: Same zero-base convention as the items
    """

    version_a_id: str | None = None
    version_b_id: str | None = None
    items: list[ItemComparison]
    total_a: Decimal
    total_b: Decimal
    total_difference: Decimal
    total_percentage_difference: Decimal


def percentage_difference(amount_a: Decimal, amount_b: Decimal) -> Decimal:
    """
    Relative change from amount_a to amount_b, in percent

    Returns difference / amount_a * 100 when amount_a > 0, else 100 when
    amount_b > 0, else 0.
    """
    if amount_a > ZERO:
        return (amount_b - amount_a) / amount_a * HUNDRED
    if amount_b > ZERO:
        return HUNDRED
    return ZERO


def compare_versions(
    items_a: Iterable[BudgetVersionItem],
    items_b: Iterable[BudgetVersionItem],
    version_a_id: str | None = None,
    version_b_id: str | None = None,
) -> VersionComparison:
    """
    Compare the item sets of two versions

    Pure and read-only. Item entries are ordered by budget_item_id so the
    result is deterministic; callers may re-sort.

    Args:
        items_a: Items of version A
        items_b: Items of version B
        version_a_id: Optional id of A, echoed in the result
        version_b_id: Optional id of B, echoed in the result

    Returns:
        VersionComparison with per-line and total differences
    """
    amounts_a = {item.budget_item_id: item.adjusted_amount for item in items_a}
    amounts_b = {item.budget_item_id: item.adjusted_amount for item in items_b}

    comparisons: list[ItemComparison] = []
    for budget_item_id in sorted(amounts_a.keys() | amounts_b.keys()):
        amount_a = amounts_a.get(budget_item_id, ZERO)
        amount_b = amounts_b.get(budget_item_id, ZERO)
        comparisons.append(
            ItemComparison(
                budget_item_id=budget_item_id,
                amount_a=amount_a,
                amount_b=amount_b,
                difference=amount_b - amount_a,
                percentage_difference=percentage_difference(amount_a, amount_b),
            )
        )

    total_a = sum(amounts_a.values(), ZERO)
    total_b = sum(amounts_b.values(), ZERO)
    version_comparisons_total.inc()

    return VersionComparison(
        version_a_id=version_a_id,
        version_b_id=version_b_id,
        items=comparisons,
        total_a=total_a,
        total_b=total_b,
        total_difference=total_b - total_a,
        total_percentage_difference=percentage_difference(total_a, total_b),
    )
