"""
BudgetVersioning - Main façade class

This is the primary interface to the versioning engine. It hides event
sourcing behind plain method calls: every mutation builds a command, lets the
handlers turn it into one event batch, appends the batch atomically and only
then applies it to the read model.

Example:
    >>> from budget_versioning import BudgetVersioning
    >>> from budget_versioning.catalog import InMemoryBudgetCatalog
    >>> catalog = InMemoryBudgetCatalog.from_json("catalog.json")
    >>> bv = BudgetVersioning("versions.db", catalog)
    >>> base = bv.create_version("Baseline", "fy-2024", "acme", is_baseline=True)
    >>> sim = bv.create_version(
    ...     "10% cut", "fy-2024", "acme",
    ...     parent_version_id=base.version_id,
    ...     metadata={"adjustment_factor": "0.9"},
    ... )
    >>> bv.compare_versions(base.version_id, sim.version_id).total_difference
"""

import threading
from decimal import Decimal
from pathlib import Path
from typing import Any

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from budget_versioning.catalog import BudgetCatalog
from budget_versioning.kernel.errors import ValidationError, VersionNotFound
from budget_versioning.kernel.event_store import SQLiteEventStore
from budget_versioning.kernel.events import Event
from budget_versioning.kernel.ids import generate_id
from budget_versioning.kernel.logging import LogOperation, get_logger
from budget_versioning.kernel.metrics import track_command_duration
from budget_versioning.kernel.policy import VersioningPolicy, default_policy
from budget_versioning.kernel.retry import retry_projection_rebuild
from budget_versioning.kernel.time import RealTimeProvider, TimeProvider
from budget_versioning.versions.commands import (
    ActivateVersion,
    AddVersionItem,
    ApproveVersion,
    CreateVersion,
    DeleteVersion,
    DeleteVersionItem,
    UpdateVersion,
    UpdateVersionItem,
)
from budget_versioning.versions.comparison import VersionComparison, compare_versions
from budget_versioning.versions.handlers import VersionCommandHandlers
from budget_versioning.versions.models import (
    AdjustmentType,
    BudgetVersion,
    BudgetVersionItem,
    VersionMetadata,
    VersionStatus,
)
from budget_versioning.versions.projections import VersionRegistry

logger = get_logger(__name__)

# Marks a keyword argument the caller did not pass
UNCHANGED: Any = object()


def _build_command(command_cls: type[BaseModel], **fields: Any) -> Any:
    """Instantiate a command, surfacing malformed input as ValidationError"""
    try:
        return command_cls(**fields)
    except PydanticValidationError as exc:
        raise ValidationError(
            f"Invalid {command_cls.__name__}: {exc.errors(include_url=False)}"
        ) from exc


class BudgetVersioning:
    """
    Budget versioning main façade

    Provides a unified API for:
    - Version lifecycle (create, update, approve, activate, delete)
    - Version items and their adjustments
    - Derivation of versions from a parent
    - Comparison of any two versions
    - Queries over the versions of a fiscal year

    Writes to the same fiscal year are serialized; reads see whole batches
    only.
    """

    def __init__(
        self,
        sqlite_path: str | Path,
        catalog: BudgetCatalog,
        policy: VersioningPolicy | None = None,
        time_provider: TimeProvider | None = None,
    ) -> None:
        """
        Initialize the engine

        Args:
            sqlite_path: Path to SQLite database
            catalog: Read-only fiscal years, budget lines and cost centers
            policy: Engine limits (uses defaults if None)
            time_provider: Time provider (uses real time if None)
        """
        self.sqlite_path = Path(sqlite_path)
        self.catalog = catalog
        self.policy = policy or default_policy
        self.time_provider = time_provider or RealTimeProvider()

        self.event_store = SQLiteEventStore(self.sqlite_path)
        self.handlers = VersionCommandHandlers(self.time_provider, self.policy)
        self.registry = VersionRegistry()

        self._fiscal_year_locks: dict[str, threading.Lock] = {}
        self._fiscal_year_locks_guard = threading.Lock()

        self._rebuild_projections()

    @retry_projection_rebuild()
    def _rebuild_projections(self) -> None:
        """Rebuild the read model from the event store"""
        registry = VersionRegistry()
        events = self.event_store.load_all_events()
        registry.apply_events(events)
        self.registry = registry
        logger.info(
            "Read model rebuilt",
            events=len(events),
            versions=len(registry.versions),
        )

    def _fiscal_year_lock(self, fiscal_year_id: str) -> threading.Lock:
        with self._fiscal_year_locks_guard:
            lock = self._fiscal_year_locks.get(fiscal_year_id)
            if lock is None:
                lock = threading.Lock()
                self._fiscal_year_locks[fiscal_year_id] = lock
            return lock

    def _fiscal_year_of(self, version_id: str) -> str:
        version = self.registry.get(version_id)
        if version is None:
            raise VersionNotFound(version_id)
        return version.fiscal_year_id

    def _commit(self, events: list[Event]) -> None:
        """Append a batch atomically, then apply it to the read model"""
        if not events:
            return
        self.event_store.append_batch(events)
        self.registry.apply_events(events)

    # ========== Version lifecycle ==========

    @track_command_duration("create_version")
    def create_version(
        self,
        name: str,
        fiscal_year_id: str,
        company_id: str,
        *,
        description: str | None = None,
        cost_center_id: str | None = None,
        status: VersionStatus | str = VersionStatus.DRAFT,
        is_baseline: bool = False,
        parent_version_id: str | None = None,
        metadata: VersionMetadata | dict[str, Any] | None = None,
        actor_id: str | None = None,
    ) -> BudgetVersion:
        """
        Create a version, deriving its items when a parent is given

        Args:
            name: Version name
            fiscal_year_id: Fiscal year the version belongs to
            company_id: Owning company
            description: Optional description
            cost_center_id: Optional cost center scope
            status: draft or simulation
            is_baseline: Mark as the official version of the fiscal year
            parent_version_id: Version to derive items from
            metadata: Scenario metadata (adjustment_factor drives derivation)
            actor_id: Who is creating the version

        Returns:
            The created version

        Raises:
            ValidationError: Malformed input, non-initial status, depth limit
            NotFoundError: Unknown fiscal year, cost center or parent
            ConflictError: Baseline already exists
            BusinessRuleError: Cross-company derivation or cyclic parent chain
        """
        command = _build_command(
            CreateVersion,
            name=name,
            description=description,
            fiscal_year_id=fiscal_year_id,
            company_id=company_id,
            cost_center_id=cost_center_id,
            status=status,
            is_baseline=is_baseline,
            parent_version_id=parent_version_id,
            metadata=metadata if metadata is not None else VersionMetadata(),
        )

        with LogOperation(
            logger,
            "create_version",
            fiscal_year_id=fiscal_year_id,
            company_id=company_id,
            parent_version_id=parent_version_id,
            actor_id=actor_id,
        ):
            with self._fiscal_year_lock(command.fiscal_year_id):
                events = self.handlers.handle_create_version(
                    command, generate_id(), actor_id, self.registry, self.catalog
                )
                self._commit(events)

        return self.registry.get(events[0].stream_id)

    @track_command_duration("update_version")
    def update_version(
        self,
        version_id: str,
        *,
        name: str | None = None,
        description: str | None = None,
        cost_center_id: str | None = UNCHANGED,
        is_baseline: bool | None = None,
        metadata: VersionMetadata | dict[str, Any] | None = None,
        actor_id: str | None = None,
    ) -> BudgetVersion:
        """
        Update descriptive fields of a version

        Arguments left as None are not touched, except cost_center_id: it is
        only touched when passed, and passing None clears the scope back to
        the whole company.

        Raises:
            NotFoundError: Unknown version or cost center
            ConflictError: Another version already is the baseline
            BusinessRuleError: Clearing the baseline flag
        """
        fields: dict[str, Any] = {
            "version_id": version_id,
            "name": name,
            "description": description,
            "is_baseline": is_baseline,
            "metadata": metadata,
        }
        if cost_center_id is not UNCHANGED:
            fields["cost_center_id"] = cost_center_id
        command = _build_command(UpdateVersion, **fields)

        with LogOperation(logger, "update_version", version_id=version_id, actor_id=actor_id):
            with self._fiscal_year_lock(self._fiscal_year_of(version_id)):
                events = self.handlers.handle_update_version(
                    command, generate_id(), actor_id, self.registry, self.catalog
                )
                self._commit(events)

        return self.registry.get(version_id)

    @track_command_duration("delete_version")
    def delete_version(self, version_id: str, actor_id: str | None = None) -> None:
        """
        Delete a draft or simulation version and its items

        Raises:
            NotFoundError: Unknown version
            BusinessRuleError: Baseline, active or past draft/simulation
        """
        command = DeleteVersion(version_id=version_id)

        with LogOperation(logger, "delete_version", version_id=version_id, actor_id=actor_id):
            with self._fiscal_year_lock(self._fiscal_year_of(version_id)):
                events = self.handlers.handle_delete_version(
                    command, generate_id(), actor_id, self.registry
                )
                self._commit(events)

    @track_command_duration("approve_version")
    def approve_version(self, version_id: str, actor_id: str | None = None) -> BudgetVersion:
        """
        Approve a version (DRAFT | SIMULATION → APPROVED)

        Raises:
            NotFoundError: Unknown version
            BusinessRuleError: Version is not draft or simulation
        """
        command = ApproveVersion(version_id=version_id)

        with LogOperation(logger, "approve_version", version_id=version_id, actor_id=actor_id):
            with self._fiscal_year_lock(self._fiscal_year_of(version_id)):
                events = self.handlers.handle_approve_version(
                    command, generate_id(), actor_id, self.registry
                )
                self._commit(events)

        return self.registry.get(version_id)

    @track_command_duration("activate_version")
    def activate_version(self, version_id: str, actor_id: str | None = None) -> BudgetVersion:
        """
        Activate a version (APPROVED → ACTIVE), archiving the previous one

        Raises:
            NotFoundError: Unknown version
            BusinessRuleError: Version is not approved
        """
        command = ActivateVersion(version_id=version_id)

        with LogOperation(logger, "activate_version", version_id=version_id, actor_id=actor_id):
            with self._fiscal_year_lock(self._fiscal_year_of(version_id)):
                events = self.handlers.handle_activate_version(
                    command, generate_id(), actor_id, self.registry
                )
                self._commit(events)

        return self.registry.get(version_id)

    # ========== Version items ==========

    @track_command_duration("add_version_item")
    def add_version_item(
        self,
        version_id: str,
        budget_item_id: str,
        adjustment_type: AdjustmentType | str = AdjustmentType.PERCENTAGE,
        adjustment_value: Decimal | str | int = Decimal("0"),
        notes: str | None = None,
        actor_id: str | None = None,
    ) -> BudgetVersionItem:
        """
        Add a budget line to a version and recompute its total

        Returns:
            The created item

        Raises:
            ValidationError: Percentage below -100 or line of another fiscal year
            NotFoundError: Unknown version or budget line
            ConflictError: The version already holds the line
        """
        command = _build_command(
            AddVersionItem,
            version_id=version_id,
            budget_item_id=budget_item_id,
            adjustment_type=adjustment_type,
            adjustment_value=adjustment_value,
            notes=notes,
        )

        with LogOperation(
            logger,
            "add_version_item",
            version_id=version_id,
            budget_item_id=budget_item_id,
            actor_id=actor_id,
        ):
            with self._fiscal_year_lock(self._fiscal_year_of(version_id)):
                events = self.handlers.handle_add_version_item(
                    command, generate_id(), actor_id, self.registry, self.catalog
                )
                self._commit(events)

        item_id = events[0].payload["item"]["item_id"]
        return self.registry.get_item(version_id, item_id)

    @track_command_duration("update_version_item")
    def update_version_item(
        self,
        version_id: str,
        item_id: str,
        adjustment_type: AdjustmentType | str | None = None,
        adjustment_value: Decimal | str | int | None = None,
        notes: str | None = None,
        actor_id: str | None = None,
    ) -> BudgetVersionItem:
        """
        Change an item's adjustment and/or notes, then recompute the total

        Arguments left as None are not touched. Switching the type without a
        value converts the current value.

        Raises:
            ValidationError: Percentage below -100
            NotFoundError: Unknown item
        """
        fields: dict[str, Any] = {"version_id": version_id, "item_id": item_id}
        if adjustment_type is not None:
            fields["adjustment_type"] = adjustment_type
        if adjustment_value is not None:
            fields["adjustment_value"] = adjustment_value
        if notes is not None:
            fields["notes"] = notes
        command = _build_command(UpdateVersionItem, **fields)

        with LogOperation(
            logger, "update_version_item", version_id=version_id, item_id=item_id, actor_id=actor_id
        ):
            with self._fiscal_year_lock(self._fiscal_year_of(version_id)):
                events = self.handlers.handle_update_version_item(
                    command, generate_id(), actor_id, self.registry
                )
                self._commit(events)

        return self.registry.get_item(version_id, item_id)

    @track_command_duration("delete_version_item")
    def delete_version_item(
        self, version_id: str, item_id: str, actor_id: str | None = None
    ) -> None:
        """
        Remove an item from a version and recompute its total

        Raises:
            NotFoundError: Unknown item
        """
        command = DeleteVersionItem(version_id=version_id, item_id=item_id)

        with LogOperation(
            logger, "delete_version_item", version_id=version_id, item_id=item_id, actor_id=actor_id
        ):
            with self._fiscal_year_lock(self._fiscal_year_of(version_id)):
                events = self.handlers.handle_delete_version_item(
                    command, generate_id(), actor_id, self.registry
                )
                self._commit(events)

    # ========== Queries ==========

    def compare_versions(self, version_a_id: str, version_b_id: str) -> VersionComparison:
        """
        Compare two versions line by line

        Both item sets are read under the registry lock so the comparison
        reflects a single point in time.

        Raises:
            NotFoundError: Unknown version
        """
        with LogOperation(
            logger, "compare_versions", version_a_id=version_a_id, version_b_id=version_b_id
        ):
            with self.registry.lock:
                for version_id in (version_a_id, version_b_id):
                    if self.registry.get(version_id) is None:
                        raise VersionNotFound(version_id)
                items_a = self.registry.items_for(version_a_id)
                items_b = self.registry.items_for(version_b_id)

            return compare_versions(items_a, items_b, version_a_id, version_b_id)

    def get_version(self, version_id: str) -> BudgetVersion | None:
        return self.registry.get(version_id)

    def get_version_items(self, version_id: str) -> list[BudgetVersionItem]:
        """
        Items of a version in creation order

        Raises:
            NotFoundError: Unknown version
        """
        with self.registry.lock:
            if self.registry.get(version_id) is None:
                raise VersionNotFound(version_id)
            return self.registry.items_for(version_id)

    def list_versions_by_fiscal_year(
        self, fiscal_year_id: str, company_id: str | None = None
    ) -> list[BudgetVersion]:
        """Versions of a fiscal year ordered by version number"""
        return self.registry.list_by_fiscal_year(fiscal_year_id, company_id)

    def get_baseline_version(
        self, fiscal_year_id: str, company_id: str | None = None
    ) -> BudgetVersion | None:
        return self.registry.find_baseline(fiscal_year_id, company_id)

    def filter_versions(
        self,
        fiscal_year_id: str | None = None,
        status: VersionStatus | str | None = None,
        search: str = "",
        company_id: str | None = None,
    ) -> list[BudgetVersion]:
        """
        Filter versions for listing screens

        Args:
            fiscal_year_id: Only this fiscal year (None = all)
            status: Only this status (None = all)
            search: Case-insensitive match on name or description
            company_id: Only this company (None = all)

        Returns:
            Matching versions sorted by fiscal year, baseline first, then
            version number
        """
        wanted_status = None
        if status is not None:
            try:
                wanted_status = VersionStatus(status)
            except ValueError as exc:
                raise ValidationError(f"Unknown version status: {status}") from exc
        term = search.lower()

        versions = [
            version
            for version in self.registry.list_all()
            if (fiscal_year_id is None or version.fiscal_year_id == fiscal_year_id)
            and (wanted_status is None or version.status == wanted_status)
            and (company_id is None or version.company_id == company_id)
            and (
                not term
                or term in version.name.lower()
                or (version.description is not None and term in version.description.lower())
            )
        ]
        return sorted(
            versions,
            key=lambda v: (v.fiscal_year_id, not v.is_baseline, v.version_number),
        )
