"""
Budget Version Events - Domain events for the version lifecycle

Every change to a version or its items is captured as an event on the
version's stream. One command produces one batch of events that is appended
atomically, e.g. deriving a version yields VersionCreated, one
VersionItemAdded per budget line and a closing VersionTotalRecomputed.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel

from budget_versioning.versions.models import (
    AdjustmentType,
    BudgetVersionItem,
    VersionMetadata,
    VersionStatus,
)

STREAM_TYPE = "budget_version"


class VersionCreated(BaseModel):
    """
    A new version was created in DRAFT or SIMULATION status

    total_budget is the initial projection: the parent's total times the
    adjustment factor, or the fiscal year's raw sum for a root version.
    """

    version_id: str
    name: str
    description: str | None
    fiscal_year_id: str
    cost_center_id: str | None
    version_number: int
    status: VersionStatus
    is_baseline: bool
    parent_version_id: str | None
    total_budget: Decimal
    metadata: VersionMetadata
    company_id: str
    created_by: str | None
    created_at: datetime


class VersionUpdated(BaseModel):
    """
    Descriptive fields of a version changed

    Only the fields listed in `changes` were touched.
    """

    version_id: str
    changes: dict
    updated_at: datetime
    updated_by: str | None


class VersionApproved(BaseModel):
    version_id: str
    previous_status: VersionStatus
    approved_at: datetime
    approved_by: str | None


class VersionActivated(BaseModel):
    """
    An APPROVED version became the fiscal year's ACTIVE version

    Always appended in the same batch as the VersionArchived of the version
    it replaced, if there was one.
    """

    version_id: str
    fiscal_year_id: str
    replaced_version_id: str | None
    activated_at: datetime
    activated_by: str | None


class VersionArchived(BaseModel):
    version_id: str
    archived_at: datetime
    superseded_by: str


class VersionDeleted(BaseModel):
    """A draft/simulation version was removed together with its items"""

    version_id: str
    deleted_at: datetime
    deleted_by: str | None


class VersionItemAdded(BaseModel):
    item: BudgetVersionItem


class VersionItemUpdated(BaseModel):
    """
    A version item's adjustment or notes changed

    Carries the full post-update state so replay never recomputes amounts.
    """

    version_id: str
    item_id: str
    adjustment_type: AdjustmentType
    adjustment_value: Decimal
    adjusted_amount: Decimal
    notes: str | None
    updated_at: datetime


class VersionItemRemoved(BaseModel):
    version_id: str
    item_id: str
    budget_item_id: str
    removed_at: datetime


class VersionTotalRecomputed(BaseModel):
    """The total aggregator recomputed a version's total_budget"""

    version_id: str
    total_budget: Decimal
    recomputed_at: datetime
