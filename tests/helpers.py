"""
Test Helper Functions - Builders for catalogs, items and versions

Keeps the arithmetic of the test scenarios in one place: the 2024 baseline
holds salaries (500000) and rent (120000) for a total of 620000, and travel
(80000) is left out so tests can add it.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from budget_versioning.catalog import (
    BudgetItem,
    BudgetItemType,
    CostCenter,
    FiscalYear,
    InMemoryBudgetCatalog,
)
from budget_versioning.service import BudgetVersioning
from budget_versioning.versions.models import (
    AdjustmentType,
    BudgetVersion,
    BudgetVersionItem,
)

FIXED_TIME = datetime(2024, 1, 10, 9, 0, 0, tzinfo=timezone.utc)


def catalog_document() -> dict[str, Any]:
    """The standard catalog as a plain JSON-compatible document"""
    return {
        "fiscal_years": [
            {"fiscal_year_id": "fy-2024", "company_id": "acme", "year": 2024, "name": "FY 2024"},
            {"fiscal_year_id": "fy-2025", "company_id": "acme", "year": 2025, "name": "FY 2025"},
            {"fiscal_year_id": "fy-globex", "company_id": "globex", "year": 2024},
        ],
        "budget_items": [
            {
                "budget_item_id": "bi-salaries",
                "fiscal_year_id": "fy-2024",
                "name": "Salaries",
                "budgeted_amount": "500000",
                "cost_center_id": "cc-ops",
            },
            {
                "budget_item_id": "bi-rent",
                "fiscal_year_id": "fy-2024",
                "name": "Rent",
                "budgeted_amount": "120000",
            },
            {
                "budget_item_id": "bi-travel",
                "fiscal_year_id": "fy-2024",
                "name": "Travel",
                "budgeted_amount": "80000",
            },
            {
                "budget_item_id": "bi-salaries-2025",
                "fiscal_year_id": "fy-2025",
                "name": "Salaries",
                "budgeted_amount": "520000",
            },
            {
                "budget_item_id": "bi-globex",
                "fiscal_year_id": "fy-globex",
                "budgeted_amount": "10000",
                "item_type": "revenue",
            },
        ],
        "cost_centers": [
            {"cost_center_id": "cc-ops", "name": "Operations"},
            {"cost_center_id": "cc-sales", "name": "Sales"},
        ],
    }


def build_catalog() -> InMemoryBudgetCatalog:
    return InMemoryBudgetCatalog.from_dict(catalog_document())


def empty_fiscal_year_catalog() -> InMemoryBudgetCatalog:
    """A catalog whose only fiscal year has no budget lines"""
    return InMemoryBudgetCatalog(
        fiscal_years=[FiscalYear(fiscal_year_id="fy-empty", company_id="acme", year=2026)],
        budget_items=[],
        cost_centers=[CostCenter(cost_center_id="cc-ops")],
    )


def make_item(
    budget_item_id: str,
    adjusted_amount: str | Decimal,
    version_id: str = "v-1",
    original_amount: str | Decimal | None = None,
    adjustment_type: AdjustmentType = AdjustmentType.PERCENTAGE,
    adjustment_value: str | Decimal = "0",
) -> BudgetVersionItem:
    """
    Builder for a version item with explicit amounts

    original_amount defaults to adjusted_amount (an unadjusted line).
    """
    adjusted = Decimal(adjusted_amount)
    return BudgetVersionItem(
        item_id=f"{version_id}-{budget_item_id}",
        version_id=version_id,
        budget_item_id=budget_item_id,
        original_amount=Decimal(original_amount) if original_amount is not None else adjusted,
        adjusted_amount=adjusted,
        adjustment_type=adjustment_type,
        adjustment_value=Decimal(adjustment_value),
        created_at=FIXED_TIME,
        updated_at=FIXED_TIME,
    )


def make_budget_item(
    budget_item_id: str, fiscal_year_id: str, amount: str
) -> BudgetItem:
    return BudgetItem(
        budget_item_id=budget_item_id,
        fiscal_year_id=fiscal_year_id,
        budgeted_amount=Decimal(amount),
        item_type=BudgetItemType.EXPENSE,
    )


def create_baseline(engine: BudgetVersioning, **overrides: Any) -> BudgetVersion:
    """
    Create the 2024 baseline with salaries and rent at 0% adjustment

    Resulting total: 620000.
    """
    options: dict[str, Any] = {
        "name": "Baseline 2024",
        "fiscal_year_id": "fy-2024",
        "company_id": "acme",
        "is_baseline": True,
        "actor_id": "maria",
    }
    options.update(overrides)
    baseline = engine.create_version(
        options.pop("name"),
        options.pop("fiscal_year_id"),
        options.pop("company_id"),
        **options,
    )
    engine.add_version_item(baseline.version_id, "bi-salaries")
    engine.add_version_item(baseline.version_id, "bi-rent")
    return engine.get_version(baseline.version_id)


def amounts_by_line(items: list[BudgetVersionItem]) -> dict[str, Decimal]:
    return {item.budget_item_id: item.adjusted_amount for item in items}
