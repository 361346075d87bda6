"""
Budget Catalog - Read-only access to the entities budget versions refer to

Fiscal years, budget lines and cost centers are owned by the surrounding
planning application. The versioning engine only reads them by id, through
the BudgetCatalog protocol. InMemoryBudgetCatalog is the bundled
implementation, used by tests and by the CLI (loaded from a JSON document).
"""

import json
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any, Protocol

from pydantic import BaseModel, Field


class FiscalYearStatus(str, Enum):
    PLANNING = "planning"
    ACTIVE = "active"
    CLOSED = "closed"
    ARCHIVED = "archived"


class BudgetItemType(str, Enum):
    REVENUE = "revenue"
    EXPENSE = "expense"


class FiscalYear(BaseModel):
    """Time-bounded period that scopes a family of budget versions"""

    fiscal_year_id: str
    company_id: str
    year: int = Field(ge=1900, le=2200)
    name: str = ""
    status: FiscalYearStatus = FiscalYearStatus.PLANNING
    total_budget: Decimal | None = None  # Placeholder kept by the planning app


class BudgetItem(BaseModel):
    """
    A raw budget line of a fiscal year

    budgeted_amount is the value a root version snapshots as the original
    amount of its version items.
    """

    budget_item_id: str
    fiscal_year_id: str
    name: str = ""
    budgeted_amount: Decimal = Field(ge=0)
    item_type: BudgetItemType = BudgetItemType.EXPENSE
    cost_center_id: str | None = None


class CostCenter(BaseModel):
    cost_center_id: str
    name: str = ""


class BudgetCatalog(Protocol):
    """Read-only lookups the engine needs from the planning application"""

    def get_fiscal_year(self, fiscal_year_id: str) -> FiscalYear | None:
        ...

    def get_budget_item(self, budget_item_id: str) -> BudgetItem | None:
        ...

    def list_budget_items(self, fiscal_year_id: str) -> list[BudgetItem]:
        ...

    def get_cost_center(self, cost_center_id: str) -> CostCenter | None:
        ...


class InMemoryBudgetCatalog:
    """
    Dictionary-backed catalog

    Budget items are returned in insertion order, which keeps derivation
    output deterministic.
    """

    def __init__(
        self,
        fiscal_years: list[FiscalYear] | None = None,
        budget_items: list[BudgetItem] | None = None,
        cost_centers: list[CostCenter] | None = None,
    ) -> None:
        self.fiscal_years: dict[str, FiscalYear] = {}
        self.budget_items: dict[str, BudgetItem] = {}
        self.cost_centers: dict[str, CostCenter] = {}

        for fiscal_year in fiscal_years or []:
            self.add_fiscal_year(fiscal_year)
        for budget_item in budget_items or []:
            self.add_budget_item(budget_item)
        for cost_center in cost_centers or []:
            self.add_cost_center(cost_center)

    def add_fiscal_year(self, fiscal_year: FiscalYear) -> None:
        self.fiscal_years[fiscal_year.fiscal_year_id] = fiscal_year

    def add_budget_item(self, budget_item: BudgetItem) -> None:
        self.budget_items[budget_item.budget_item_id] = budget_item

    def add_cost_center(self, cost_center: CostCenter) -> None:
        self.cost_centers[cost_center.cost_center_id] = cost_center

    def get_fiscal_year(self, fiscal_year_id: str) -> FiscalYear | None:
        return self.fiscal_years.get(fiscal_year_id)

    def get_budget_item(self, budget_item_id: str) -> BudgetItem | None:
        return self.budget_items.get(budget_item_id)

    def list_budget_items(self, fiscal_year_id: str) -> list[BudgetItem]:
        return [
            item
            for item in self.budget_items.values()
            if item.fiscal_year_id == fiscal_year_id
        ]

    def get_cost_center(self, cost_center_id: str) -> CostCenter | None:
        return self.cost_centers.get(cost_center_id)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "InMemoryBudgetCatalog":
        """
        Build a catalog from a plain document

        Expected shape:
            {
                "fiscal_years": [{"fiscal_year_id": ..., "company_id": ..., "year": ...}],
                "budget_items": [{"budget_item_id": ..., "fiscal_year_id": ..., "budgeted_amount": ...}],
                "cost_centers": [{"cost_center_id": ...}]
            }
        """
        return cls(
            fiscal_years=[FiscalYear(**fy) for fy in data.get("fiscal_years", [])],
            budget_items=[BudgetItem(**bi) for bi in data.get("budget_items", [])],
            cost_centers=[CostCenter(**cc) for cc in data.get("cost_centers", [])],
        )

    @classmethod
    def from_json(cls, path: str | Path) -> "InMemoryBudgetCatalog":
        """Load a catalog document from a JSON file"""
        with Path(path).open(encoding="utf-8") as f:
            return cls.from_dict(json.load(f))
