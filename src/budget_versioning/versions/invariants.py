"""
Budget Version Invariants - pure checks behind every lifecycle decision

Each function reads state (registry, catalog, policy) and either returns the
entity it validated or raises a typed error. Nothing here writes state, so a
handler can run all of them before producing a single event.
"""

from budget_versioning.catalog import BudgetCatalog, BudgetItem, CostCenter, FiscalYear
from budget_versioning.kernel.errors import (
    BaselineAlreadyExists,
    BaselineFlagPermanent,
    BudgetItemNotFound,
    BudgetItemOutsideFiscalYear,
    CostCenterNotFound,
    CrossCompanyDerivation,
    DerivationCycleDetected,
    DerivationDepthExceeded,
    DuplicateVersionItem,
    DuplicateVersionNumber,
    FiscalYearNotFound,
    IllegalStatusTransition,
    InvalidInitialStatus,
    ProtectedVersionDeletion,
    ValidationError,
    VersionItemNotFound,
    VersionNotFound,
)
from budget_versioning.kernel.policy import VersioningPolicy
from budget_versioning.versions.models import (
    INITIAL_STATUSES,
    BudgetVersion,
    BudgetVersionItem,
    VersionMetadata,
    VersionStatus,
)
from budget_versioning.versions.projections import VersionRegistry


def validate_fiscal_year_exists(
    fiscal_year_id: str, catalog: BudgetCatalog
) -> FiscalYear:
    fiscal_year = catalog.get_fiscal_year(fiscal_year_id)
    if fiscal_year is None:
        raise FiscalYearNotFound(fiscal_year_id)
    return fiscal_year


def validate_cost_center_exists(
    cost_center_id: str, catalog: BudgetCatalog
) -> CostCenter:
    cost_center = catalog.get_cost_center(cost_center_id)
    if cost_center is None:
        raise CostCenterNotFound(cost_center_id)
    return cost_center


def validate_version_exists(version_id: str, registry: VersionRegistry) -> BudgetVersion:
    version = registry.get(version_id)
    if version is None:
        raise VersionNotFound(version_id)
    return version


def validate_version_item_exists(
    version_id: str, item_id: str, registry: VersionRegistry
) -> BudgetVersionItem:
    """
    Ensure an item exists and belongs to the given version

    Raises:
        VersionNotFound: If the version does not exist
        VersionItemNotFound: If the item is unknown or owned by another version
    """
    validate_version_exists(version_id, registry)
    item = registry.get_item(version_id, item_id)
    if item is None:
        raise VersionItemNotFound(version_id, item_id)
    return item


def validate_initial_status(status: VersionStatus) -> None:
    """
    Versions are born as draft or simulation

    Raises:
        InvalidInitialStatus: For approved, active or archived
    """
    if status not in INITIAL_STATUSES:
        raise InvalidInitialStatus(status.value)


def validate_parent(
    parent_version_id: str,
    company_id: str,
    registry: VersionRegistry,
    policy: VersioningPolicy,
) -> BudgetVersion:
    """
    Validate the parent of a version about to be created

    Walks the parent chain upward. The chain length counts the new version,
    so a root parent gives depth 2. Ancestors that were deleted end the walk.

    Args:
        parent_version_id: Requested parent
        company_id: Company of the new version
        registry: Current version state
        policy: Supplies max_derivation_depth

    Returns:
        The parent version

    Raises:
        VersionNotFound: If the parent does not exist
        CrossCompanyDerivation: If the parent belongs to another company
        DerivationCycleDetected: If the parent's chain loops
        DerivationDepthExceeded: If the new chain would exceed the policy limit
    """
    parent = validate_version_exists(parent_version_id, registry)
    if parent.company_id != company_id:
        raise CrossCompanyDerivation(parent.version_id, parent.company_id, company_id)

    depth = 1
    seen: set[str] = set()
    current: BudgetVersion | None = parent
    while current is not None:
        if current.version_id in seen:
            raise DerivationCycleDetected(parent_version_id)
        seen.add(current.version_id)
        depth += 1
        if depth > policy.max_derivation_depth:
            raise DerivationDepthExceeded(
                parent_version_id, depth, policy.max_derivation_depth
            )
        if current.parent_version_id is None:
            break
        current = registry.get(current.parent_version_id)

    return parent


def validate_baseline_unique(
    company_id: str,
    fiscal_year_id: str,
    registry: VersionRegistry,
    exclude_version_id: str | None = None,
) -> None:
    """
    At most one baseline per (company, fiscal year)

    Raises:
        BaselineAlreadyExists: If another version already holds the flag
    """
    existing = registry.find_baseline(fiscal_year_id, company_id)
    if existing is not None and existing.version_id != exclude_version_id:
        raise BaselineAlreadyExists(company_id, fiscal_year_id, existing.version_id)


def validate_baseline_not_cleared(version: BudgetVersion, is_baseline: bool) -> None:
    if version.is_baseline and not is_baseline:
        raise BaselineFlagPermanent(version.version_id)


def validate_version_number_free(
    fiscal_year_id: str, version_number: int, registry: VersionRegistry
) -> None:
    if registry.is_number_taken(fiscal_year_id, version_number):
        raise DuplicateVersionNumber(fiscal_year_id, version_number)


def validate_can_approve(version: BudgetVersion) -> None:
    """
    Approval is only possible from draft or simulation

    Raises:
        IllegalStatusTransition: For approved, active or archived versions
    """
    if version.status not in INITIAL_STATUSES:
        raise IllegalStatusTransition(
            version.version_id, version.status.value, VersionStatus.APPROVED.value
        )


def validate_can_activate(version: BudgetVersion) -> None:
    """
    Activation is only possible from approved

    Raises:
        IllegalStatusTransition: For any other status
    """
    if version.status != VersionStatus.APPROVED:
        raise IllegalStatusTransition(
            version.version_id, version.status.value, VersionStatus.ACTIVE.value
        )


def validate_deletable(version: BudgetVersion) -> None:
    """
    Baselines, active versions and anything past draft/simulation are kept

    Raises:
        ProtectedVersionDeletion: With the reason the version is protected
    """
    if version.is_baseline:
        raise ProtectedVersionDeletion(version.version_id, "it is the baseline")
    if version.status == VersionStatus.ACTIVE:
        raise ProtectedVersionDeletion(version.version_id, "it is the active version")
    if not version.is_deletable():
        raise ProtectedVersionDeletion(
            version.version_id, f"status is {version.status.value}"
        )


def validate_budget_item_for_version(
    budget_item_id: str, version: BudgetVersion, catalog: BudgetCatalog
) -> BudgetItem:
    """
    The budget line must exist and belong to the version's fiscal year

    Raises:
        BudgetItemNotFound: If the budget line is unknown
        BudgetItemOutsideFiscalYear: If it belongs to another fiscal year
    """
    budget_item = catalog.get_budget_item(budget_item_id)
    if budget_item is None:
        raise BudgetItemNotFound(budget_item_id)
    if budget_item.fiscal_year_id != version.fiscal_year_id:
        raise BudgetItemOutsideFiscalYear(
            budget_item_id, budget_item.fiscal_year_id, version.fiscal_year_id
        )
    return budget_item


def validate_no_duplicate_item(
    version_id: str, budget_item_id: str, registry: VersionRegistry
) -> None:
    for item in registry.items_for(version_id):
        if item.budget_item_id == budget_item_id:
            raise DuplicateVersionItem(version_id, budget_item_id)


def validate_metadata_limits(metadata: VersionMetadata, policy: VersioningPolicy) -> None:
    """
    Keep free-form metadata within the policy bounds

    Raises:
        ValidationError: If tags, assumptions or extensions exceed their limit
    """
    if len(metadata.tags) > policy.max_tags:
        raise ValidationError(
            f"Version has {len(metadata.tags)} tags, maximum is {policy.max_tags}"
        )
    if len(metadata.assumptions) > policy.max_assumptions:
        raise ValidationError(
            f"Version has {len(metadata.assumptions)} assumptions, "
            f"maximum is {policy.max_assumptions}"
        )
    if len(metadata.extensions) > policy.max_metadata_extensions:
        raise ValidationError(
            f"Version has {len(metadata.extensions)} metadata extensions, "
            f"maximum is {policy.max_metadata_extensions}"
        )
