"""
Budget Version Domain Models - Versions, version items and their metadata

A budget version is one scenario for a fiscal year. Each version owns a set of
version items: per-budget-line adjustment records that snapshot an original
amount and derive an adjusted amount from it.

Key concepts:
- Baseline: the single official version of a (company, fiscal year)
- Derivation: a child version copies its parent's adjusted amounts as its own
  original amounts, then applies a uniform adjustment factor
- Lifecycle: draft/simulation → approved → active → archived
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field, field_validator


class VersionStatus(str, Enum):
    """
    Budget version lifecycle states

    DRAFT / SIMULATION --approve--> APPROVED --activate--> ACTIVE
    ACTIVE --(another version of the fiscal year activated)--> ARCHIVED

    Only DRAFT and SIMULATION versions may be created or deleted.
    ARCHIVED is terminal.
    """

    DRAFT = "draft"
    SIMULATION = "simulation"
    APPROVED = "approved"
    ACTIVE = "active"
    ARCHIVED = "archived"


# Statuses a version may be created in (and deleted from)
INITIAL_STATUSES = frozenset({VersionStatus.DRAFT, VersionStatus.SIMULATION})


class AdjustmentType(str, Enum):
    """
    How a version item's adjustment_value is interpreted

    PERCENTAGE: adjusted = original * (1 + value / 100)
    ABSOLUTE: adjusted = original + value
    """

    PERCENTAGE = "percentage"
    ABSOLUTE = "absolute"


class ScenarioType(str, Enum):
    OPTIMISTIC = "optimistic"
    REALISTIC = "realistic"
    PESSIMISTIC = "pessimistic"


# Values allowed in the metadata extension point
ExtensionValue = str | int | float | bool


class VersionMetadata(BaseModel):
    """
    Typed scenario metadata

    Known fields cover what planners record about a scenario; anything else
    goes into `extensions`, a flat map of scalar values whose size is bounded
    by VersioningPolicy.max_metadata_extensions.

    Attributes:
        assumptions: Free-text assumptions behind the scenario
        scenario_type: Optimistic / realistic / pessimistic classification
        adjustment_factor: Multiplier applied uniformly when deriving
        tags: Labels for grouping scenarios
        extensions: Additional scalar key/value pairs
    """

    assumptions: list[str] = Field(default_factory=list)
    scenario_type: ScenarioType | None = None
    adjustment_factor: Decimal = Field(default=Decimal("1"), gt=0)
    tags: list[str] = Field(default_factory=list)
    extensions: dict[str, ExtensionValue] = Field(default_factory=dict)

    @field_validator("extensions")
    @classmethod
    def _keys_are_short_identifiers(
        cls, value: dict[str, ExtensionValue]
    ) -> dict[str, ExtensionValue]:
        for key in value:
            if not key or len(key) > 64:
                raise ValueError(f"extension key {key!r} must be 1-64 characters")
        return value


class BudgetVersion(BaseModel):
    """
    One budget scenario for a fiscal year

    Invariants enforced by the lifecycle handlers:
    - version_number is unique and never reused within the fiscal year
    - at most one baseline per (company_id, fiscal_year_id)
    - at most one ACTIVE version per fiscal_year_id
    - total_budget equals the sum of the items' adjusted amounts after any
      item mutation (written only by the total aggregator)

    Attributes:
        version_id: Unique identifier
        name: Human-readable name
        description: Optional longer description
        fiscal_year_id: Fiscal year this version belongs to
        cost_center_id: Optional cost center scope (None = whole company)
        version_number: Sequential number within the fiscal year
        status: Current lifecycle state
        is_baseline: Whether this is the official version (permanent once set)
        parent_version_id: Version this one was derived from
        total_budget: Cached sum of item adjusted amounts
        metadata: Scenario metadata
        company_id: Owning company
        created_by: Actor who created the version
        created_at: Creation timestamp
        updated_at: Last modification timestamp
    """

    version_id: str
    name: str
    description: str | None = None
    fiscal_year_id: str
    cost_center_id: str | None = None
    version_number: int = Field(ge=1)
    status: VersionStatus = VersionStatus.DRAFT
    is_baseline: bool = False
    parent_version_id: str | None = None
    total_budget: Decimal = Decimal("0")
    metadata: VersionMetadata = Field(default_factory=VersionMetadata)
    company_id: str
    created_by: str | None = None
    created_at: datetime
    updated_at: datetime

    def is_deletable(self) -> bool:
        """Check if the version may be removed"""
        return self.status in INITIAL_STATUSES and not self.is_baseline

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "version_id": "v-2",
                    "name": "Simulation - 10% cut",
                    "description": "Cut non-essential spending by 10%",
                    "fiscal_year_id": "fy-2024",
                    "cost_center_id": None,
                    "version_number": 2,
                    "status": "simulation",
                    "is_baseline": False,
                    "parent_version_id": "v-1",
                    "total_budget": "558000",
                    "metadata": {
                        "assumptions": ["10% cut in non-essential spending"],
                        "scenario_type": "pessimistic",
                        "adjustment_factor": "0.9",
                        "tags": ["contingency"],
                        "extensions": {},
                    },
                    "company_id": "acme",
                    "created_by": "maria",
                    "created_at": "2024-01-10T09:00:00Z",
                    "updated_at": "2024-01-10T09:00:00Z",
                }
            ]
        }
    }


class BudgetVersionItem(BaseModel):
    """
    Per-budget-line adjustment record owned by exactly one version

    original_amount is a snapshot fixed at creation; adjusted_amount is
    always recomputed from (original_amount, adjustment_type,
    adjustment_value) and never set directly.
    """

    item_id: str
    version_id: str
    budget_item_id: str
    original_amount: Decimal = Field(ge=0)
    adjusted_amount: Decimal = Field(ge=0)
    adjustment_type: AdjustmentType
    adjustment_value: Decimal
    notes: str | None = None
    created_at: datetime
    updated_at: datetime
