"""
Budget Version Commands - Intentions to change version state

Commands are validated against the lifecycle invariants and turned into
events by the handlers. Field-level validation (lengths, enum membership,
the -100% floor) happens here, before any state is read.
"""

from decimal import Decimal

from pydantic import BaseModel, Field, model_validator

from budget_versioning.versions.adjustments import validate_adjustment
from budget_versioning.versions.models import (
    AdjustmentType,
    VersionMetadata,
    VersionStatus,
)


class CreateVersion(BaseModel):
    """
    Create a new budget version for a fiscal year

    Requirements:
    - Fiscal year (and cost center, if given) must exist
    - Only one baseline per (company, fiscal year)
    - Status must be draft or simulation
    - When parent_version_id is given, items are derived from the parent
      using metadata.adjustment_factor
    """

    name: str = Field(..., min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=2000)
    fiscal_year_id: str = Field(..., min_length=1)
    company_id: str = Field(..., min_length=1)
    cost_center_id: str | None = None
    status: VersionStatus = VersionStatus.DRAFT
    is_baseline: bool = False
    parent_version_id: str | None = None
    metadata: VersionMetadata = Field(default_factory=VersionMetadata)


class UpdateVersion(BaseModel):
    """
    Update descriptive fields of a version

    Fields left as None are not touched. cost_center_id is the exception:
    when set explicitly to None it clears the scope back to the whole
    company. The lifecycle status, fiscal year and parent pointer are not
    updatable; is_baseline can only be raised.
    """

    version_id: str
    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=2000)
    cost_center_id: str | None = None
    is_baseline: bool | None = None
    metadata: VersionMetadata | None = None


class DeleteVersion(BaseModel):
    """Delete a draft/simulation version that is not the baseline"""

    version_id: str


class ApproveVersion(BaseModel):
    """Approve a version (DRAFT | SIMULATION → APPROVED)"""

    version_id: str


class ActivateVersion(BaseModel):
    """
    Activate a version (APPROVED → ACTIVE)

    The fiscal year's currently active version, if any, is archived in the
    same batch.
    """

    version_id: str


class AddVersionItem(BaseModel):
    """
    Add a budget line to a version with an adjustment

    The original amount is snapshotted from the parent version's adjusted
    amount for that line when available, else from the budget line itself.
    """

    version_id: str
    budget_item_id: str = Field(..., min_length=1)
    adjustment_type: AdjustmentType = AdjustmentType.PERCENTAGE
    adjustment_value: Decimal = Decimal("0")
    notes: str | None = Field(default=None, max_length=2000)

    @model_validator(mode="after")
    def _check_floor(self) -> "AddVersionItem":
        validate_adjustment(self.adjustment_type, self.adjustment_value)
        return self


class UpdateVersionItem(BaseModel):
    """
    Change a version item's adjustment and/or notes

    When only adjustment_type changes, the current value is converted to the
    new representation so the adjusted amount stays the same.
    """

    version_id: str
    item_id: str
    adjustment_type: AdjustmentType | None = None
    adjustment_value: Decimal | None = None
    notes: str | None = Field(default=None, max_length=2000)


class DeleteVersionItem(BaseModel):
    version_id: str
    item_id: str
