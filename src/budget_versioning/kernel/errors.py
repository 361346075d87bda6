"""
Custom exceptions for Budget Versioning

A small, stable taxonomy: every failure raised by the engine is one of
ValidationError, ConflictError, NotFoundError or BusinessRuleError (or a
storage error from the event store). Callers can catch the family they care
about and still read the identifying fields from the concrete subclass.
"""


class BudgetVersioningError(Exception):
    """Base exception for all Budget Versioning errors"""

    pass


# Storage errors


class EventStoreError(BudgetVersioningError):
    """Base class for event store errors"""

    pass


class StreamVersionConflict(EventStoreError):
    """
    Raised when stream version doesn't match expected (optimistic locking)

    Indicates a concurrent write on the same version stream - caller should
    reload and retry.
    """

    def __init__(
        self, stream_id: str, expected_version: int, actual_version: int
    ) -> None:
        self.stream_id = stream_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Stream {stream_id} version mismatch: "
            f"expected {expected_version}, got {actual_version}"
        )


# Error families


class ValidationError(BudgetVersioningError):
    """Malformed or out-of-range input"""

    pass


class ConflictError(BudgetVersioningError):
    """Uniqueness violation"""

    pass


class NotFoundError(BudgetVersioningError):
    """Unknown id reference to a version, item or required external entity"""

    pass


class BusinessRuleError(BudgetVersioningError):
    """Illegal lifecycle transition or operation on a protected version"""

    pass


# Validation errors


class AdjustmentBelowFloor(ValidationError):
    """Raised when a percentage adjustment goes below -100%"""

    def __init__(self, value: object) -> None:
        self.value = value
        super().__init__(
            f"Percentage adjustment {value} is below -100% - "
            "a full cut already drives the amount to zero"
        )


class InvalidInitialStatus(ValidationError):
    """Raised when a version is created in a status other than draft/simulation"""

    def __init__(self, status: str) -> None:
        self.status = status
        super().__init__(
            f"Versions must be created as draft or simulation, not {status}"
        )


class BudgetItemOutsideFiscalYear(ValidationError):
    """Raised when a budget line from another fiscal year is added to a version"""

    def __init__(
        self, budget_item_id: str, item_fiscal_year_id: str, version_fiscal_year_id: str
    ) -> None:
        self.budget_item_id = budget_item_id
        self.item_fiscal_year_id = item_fiscal_year_id
        self.version_fiscal_year_id = version_fiscal_year_id
        super().__init__(
            f"Budget item {budget_item_id} belongs to fiscal year "
            f"{item_fiscal_year_id}, version is scoped to {version_fiscal_year_id}"
        )


class DerivationDepthExceeded(ValidationError):
    """Raised when a derivation chain would grow beyond the policy limit"""

    def __init__(self, parent_version_id: str, depth: int, max_depth: int) -> None:
        self.parent_version_id = parent_version_id
        self.depth = depth
        self.max_depth = max_depth
        super().__init__(
            f"Deriving from {parent_version_id} would create a chain of depth "
            f"{depth}, maximum is {max_depth}"
        )


# Conflict errors


class BaselineAlreadyExists(ConflictError):
    """Raised when a second baseline is requested for a company/fiscal year"""

    def __init__(
        self, company_id: str, fiscal_year_id: str, existing_version_id: str
    ) -> None:
        self.company_id = company_id
        self.fiscal_year_id = fiscal_year_id
        self.existing_version_id = existing_version_id
        super().__init__(
            f"Fiscal year {fiscal_year_id} of company {company_id} already has "
            f"baseline version {existing_version_id}"
        )


class DuplicateVersionItem(ConflictError):
    """Raised when a budget line is added twice to the same version"""

    def __init__(self, version_id: str, budget_item_id: str) -> None:
        self.version_id = version_id
        self.budget_item_id = budget_item_id
        super().__init__(
            f"Budget item {budget_item_id} already exists in version {version_id}"
        )


class DuplicateVersionNumber(ConflictError):
    """Raised when a version number is already taken within a fiscal year"""

    def __init__(self, fiscal_year_id: str, version_number: int) -> None:
        self.fiscal_year_id = fiscal_year_id
        self.version_number = version_number
        super().__init__(
            f"Version number {version_number} is already used in fiscal year "
            f"{fiscal_year_id}"
        )


# Not-found errors


class VersionNotFound(NotFoundError):
    """Raised when budget version does not exist"""

    def __init__(self, version_id: str) -> None:
        self.version_id = version_id
        super().__init__(f"Budget version {version_id} not found")


class VersionItemNotFound(NotFoundError):
    """Raised when version item does not exist in the given version"""

    def __init__(self, version_id: str, item_id: str) -> None:
        self.version_id = version_id
        self.item_id = item_id
        super().__init__(f"Item {item_id} not found in version {version_id}")


class FiscalYearNotFound(NotFoundError):
    """Raised when fiscal year does not exist"""

    def __init__(self, fiscal_year_id: str) -> None:
        self.fiscal_year_id = fiscal_year_id
        super().__init__(f"Fiscal year {fiscal_year_id} not found")


class BudgetItemNotFound(NotFoundError):
    """Raised when budget item does not exist"""

    def __init__(self, budget_item_id: str) -> None:
        self.budget_item_id = budget_item_id
        super().__init__(f"Budget item {budget_item_id} not found")


class CostCenterNotFound(NotFoundError):
    """Raised when cost center does not exist"""

    def __init__(self, cost_center_id: str) -> None:
        self.cost_center_id = cost_center_id
        super().__init__(f"Cost center {cost_center_id} not found")


# Business rule errors


class IllegalStatusTransition(BusinessRuleError):
    """Raised when a lifecycle transition is not allowed from the current status"""

    def __init__(
        self, version_id: str, current_status: str, target_status: str
    ) -> None:
        self.version_id = version_id
        self.current_status = current_status
        self.target_status = target_status
        super().__init__(
            f"Version {version_id} is {current_status}, cannot move to {target_status}"
        )


class ProtectedVersionDeletion(BusinessRuleError):
    """Raised when deleting a baseline, active or otherwise protected version"""

    def __init__(self, version_id: str, reason: str) -> None:
        self.version_id = version_id
        self.reason = reason
        super().__init__(f"Version {version_id} cannot be deleted: {reason}")


class BaselineFlagPermanent(BusinessRuleError):
    """Raised when trying to clear the baseline flag"""

    def __init__(self, version_id: str) -> None:
        self.version_id = version_id
        super().__init__(
            f"Version {version_id} is the baseline - the flag cannot be cleared"
        )


class DerivationCycleDetected(BusinessRuleError):
    """Raised when the parent chain of a version loops back on itself"""

    def __init__(self, version_id: str) -> None:
        self.version_id = version_id
        super().__init__(
            f"Parent chain starting at version {version_id} contains a cycle"
        )


class CrossCompanyDerivation(BusinessRuleError):
    """Raised when deriving from a version owned by another company"""

    def __init__(
        self, parent_version_id: str, parent_company_id: str, company_id: str
    ) -> None:
        self.parent_version_id = parent_version_id
        self.parent_company_id = parent_company_id
        self.company_id = company_id
        super().__init__(
            f"Version {parent_version_id} belongs to company {parent_company_id}, "
            f"cannot derive a version for company {company_id}"
        )
