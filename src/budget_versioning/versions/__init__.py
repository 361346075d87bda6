"""
Versions Module - Budget version lifecycle, derivation and comparison

This module implements the scenario-planning mechanics:
- Parallel versions of a fiscal year's budget (draft, simulation, approved...)
- Per-line adjustments, percentage or absolute, never below zero
- Chained derivation: a child starts from its parent's adjusted amounts
- Line-by-line comparison of any two versions

Fun fact: deriving with an adjustment factor of exactly 1 is a cheap way to
snapshot a scenario before experimenting on the copy.
"""

from budget_versioning.versions.comparison import ItemComparison, VersionComparison
from budget_versioning.versions.models import (
    AdjustmentType,
    BudgetVersion,
    BudgetVersionItem,
    ScenarioType,
    VersionMetadata,
    VersionStatus,
)

__all__ = [
    "BudgetVersion",
    "BudgetVersionItem",
    "VersionMetadata",
    "VersionStatus",
    "AdjustmentType",
    "ScenarioType",
    "VersionComparison",
    "ItemComparison",
]
