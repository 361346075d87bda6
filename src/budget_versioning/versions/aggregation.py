"""
Total Aggregator - the single source of a version's total_budget

Handlers never compute totals inline. After every item mutation they hand the
post-mutation item set to recompute_total and emit the result as a
VersionTotalRecomputed event; applying that event is the only place the
registry writes total_budget.
"""

from collections.abc import Iterable
from datetime import datetime
from decimal import Decimal

from budget_versioning.versions.events import VersionTotalRecomputed
from budget_versioning.versions.models import BudgetVersionItem


def recompute_total(version_id: str, items: Iterable[BudgetVersionItem]) -> Decimal:
    """
    Sum adjusted amounts over the items owned by version_id

    Items of other versions in the iterable are ignored.
    """
    return sum(
        (item.adjusted_amount for item in items if item.version_id == version_id),
        Decimal("0"),
    )


def total_recomputed(
    version_id: str, items: Iterable[BudgetVersionItem], recomputed_at: datetime
) -> VersionTotalRecomputed:
    """Build the event payload carrying a freshly recomputed total"""
    return VersionTotalRecomputed(
        version_id=version_id,
        total_budget=recompute_total(version_id, items),
        recomputed_at=recomputed_at,
    )
