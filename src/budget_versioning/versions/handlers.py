"""
Budget Version Handlers - Command→Event transformation

Handlers are the decision-making layer. They:
1. Load current state (from the version registry and the catalog)
2. Validate invariants
3. Build the complete event batch for the command
4. Return the batch for one atomic append

A handler either returns every event the command needs or raises before any
of them exists, so a failed command never leaves partial state behind. Any
batch that touches items ends with a VersionTotalRecomputed built by the
total aggregator.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel

from budget_versioning.catalog import BudgetCatalog
from budget_versioning.kernel.events import Event
from budget_versioning.kernel.ids import generate_id
from budget_versioning.kernel.policy import VersioningPolicy
from budget_versioning.kernel.time import TimeProvider
from budget_versioning.versions.adjustments import (
    PERCENTAGE_FLOOR,
    compute_adjusted_amount,
    convert_adjustment_type,
)
from budget_versioning.versions.aggregation import total_recomputed
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
from budget_versioning.versions.derivation import derive_items
from budget_versioning.versions.events import (
    STREAM_TYPE,
    VersionActivated,
    VersionApproved,
    VersionArchived,
    VersionCreated,
    VersionDeleted,
    VersionItemAdded,
    VersionItemRemoved,
    VersionItemUpdated,
    VersionUpdated,
)
from budget_versioning.versions.invariants import (
    validate_baseline_not_cleared,
    validate_baseline_unique,
    validate_budget_item_for_version,
    validate_can_activate,
    validate_can_approve,
    validate_cost_center_exists,
    validate_deletable,
    validate_fiscal_year_exists,
    validate_initial_status,
    validate_metadata_limits,
    validate_no_duplicate_item,
    validate_parent,
    validate_version_exists,
    validate_version_item_exists,
    validate_version_number_free,
)
from budget_versioning.versions.models import AdjustmentType, BudgetVersionItem
from budget_versioning.versions.projections import VersionRegistry


class EventBatch:
    """
    Events produced by one command

    Tracks the next revision of every stream it writes to, starting from the
    registry's current revision, so a batch can append several events to the
    same version stream (and to more than one stream) consecutively.
    """

    def __init__(
        self,
        registry: VersionRegistry,
        command_id: str,
        actor_id: str | None,
        occurred_at: datetime,
    ) -> None:
        self.registry = registry
        self.command_id = command_id
        self.actor_id = actor_id
        self.occurred_at = occurred_at
        self.events: list[Event] = []
        self._next_revision: dict[str, int] = {}

    def emit(self, stream_id: str, event_type: str, payload: BaseModel) -> Event:
        revision = self._next_revision.get(stream_id)
        if revision is None:
            revision = self.registry.revision(stream_id) + 1
        self._next_revision[stream_id] = revision + 1

        event = Event(
            event_id=generate_id(),
            stream_id=stream_id,
            stream_type=STREAM_TYPE,
            event_type=event_type,
            occurred_at=self.occurred_at,
            command_id=self.command_id,
            actor_id=self.actor_id,
            payload=payload.model_dump(mode="json"),
            version=revision,
        )
        self.events.append(event)
        return event

    def emit_total(self, version_id: str, items: list[BudgetVersionItem]) -> None:
        self.emit(
            version_id,
            "VersionTotalRecomputed",
            total_recomputed(version_id, items, self.occurred_at),
        )


class VersionCommandHandlers:
    """
    Command handlers for the budget version module

    Handlers convert commands into event batches, enforcing the lifecycle
    invariants. They read current state from the registry and the catalog
    passed in on every call and never mutate either.
    """

    def __init__(
        self,
        time_provider: TimeProvider,
        policy: VersioningPolicy,
    ) -> None:
        """
        Initialize handlers with dependencies

        Args:
            time_provider: For timestamps (injectable for testing)
            policy: Engine limits
        """
        self.time_provider = time_provider
        self.policy = policy

    def handle_create_version(
        self,
        command: CreateVersion,
        command_id: str,
        actor_id: str | None,
        registry: VersionRegistry,
        catalog: BudgetCatalog,
    ) -> list[Event]:
        """
        Handle CreateVersion command

        Validates:
        - Fiscal year and cost center exist
        - Initial status is draft or simulation
        - Metadata stays within policy limits
        - Parent exists, same company, chain acyclic and within depth
        - Baseline is unique for (company, fiscal year)

        With a parent, the batch also carries the derived items and the
        recomputed total.

        Args:
            command: CreateVersion command
            command_id: Idempotency key
            actor_id: Who issued the command
            registry: Current versions
            catalog: Fiscal years, budget lines and cost centers

        Returns:
            List of events to append
        """
        now = self.time_provider.now()

        validate_fiscal_year_exists(command.fiscal_year_id, catalog)
        if command.cost_center_id is not None:
            validate_cost_center_exists(command.cost_center_id, catalog)
        validate_initial_status(command.status)
        validate_metadata_limits(command.metadata, self.policy)

        parent = None
        if command.parent_version_id is not None:
            parent = validate_parent(
                command.parent_version_id, command.company_id, registry, self.policy
            )

        if command.is_baseline:
            validate_baseline_unique(command.company_id, command.fiscal_year_id, registry)

        version_number = registry.next_version_number(command.fiscal_year_id)
        validate_version_number_free(command.fiscal_year_id, version_number, registry)

        factor = command.metadata.adjustment_factor
        if parent is not None:
            initial_total = parent.total_budget * factor
        else:
            initial_total = sum(
                (
                    budget_item.budgeted_amount
                    for budget_item in catalog.list_budget_items(command.fiscal_year_id)
                ),
                Decimal("0"),
            )

        version_id = generate_id()
        batch = EventBatch(registry, command_id, actor_id, now)
        batch.emit(
            version_id,
            "VersionCreated",
            VersionCreated(
                version_id=version_id,
                name=command.name,
                description=command.description,
                fiscal_year_id=command.fiscal_year_id,
                cost_center_id=command.cost_center_id,
                version_number=version_number,
                status=command.status,
                is_baseline=command.is_baseline,
                parent_version_id=command.parent_version_id,
                total_budget=initial_total,
                metadata=command.metadata,
                company_id=command.company_id,
                created_by=actor_id,
                created_at=now,
            ),
        )

        if parent is not None:
            derived = derive_items(
                version_id, parent.version_id, registry, catalog, now, factor
            )
            for item in derived:
                batch.emit(version_id, "VersionItemAdded", VersionItemAdded(item=item))
            batch.emit_total(version_id, derived)

        return batch.events

    def handle_update_version(
        self,
        command: UpdateVersion,
        command_id: str,
        actor_id: str | None,
        registry: VersionRegistry,
        catalog: BudgetCatalog,
    ) -> list[Event]:
        """
        Handle UpdateVersion command

        Only fields set on the command and different from the current value
        end up in the event. An update that changes nothing yields no events.

        Raises:
            VersionNotFound: If the version doesn't exist
            BaselineFlagPermanent: If the command clears the baseline flag
            BaselineAlreadyExists: If another version already is the baseline
        """
        now = self.time_provider.now()
        version = validate_version_exists(command.version_id, registry)

        changes: dict = {}
        if command.name is not None and command.name != version.name:
            changes["name"] = command.name
        if command.description is not None and command.description != version.description:
            changes["description"] = command.description
        # An explicit None returns the version to whole-company scope
        if (
            "cost_center_id" in command.model_fields_set
            and command.cost_center_id != version.cost_center_id
        ):
            if command.cost_center_id is not None:
                validate_cost_center_exists(command.cost_center_id, catalog)
            changes["cost_center_id"] = command.cost_center_id
        if command.metadata is not None and command.metadata != version.metadata:
            validate_metadata_limits(command.metadata, self.policy)
            changes["metadata"] = command.metadata.model_dump(mode="json")
        if command.is_baseline is not None:
            validate_baseline_not_cleared(version, command.is_baseline)
            if command.is_baseline and not version.is_baseline:
                validate_baseline_unique(
                    version.company_id,
                    version.fiscal_year_id,
                    registry,
                    exclude_version_id=version.version_id,
                )
                changes["is_baseline"] = True

        if not changes:
            return []

        batch = EventBatch(registry, command_id, actor_id, now)
        batch.emit(
            version.version_id,
            "VersionUpdated",
            VersionUpdated(
                version_id=version.version_id,
                changes=changes,
                updated_at=now,
                updated_by=actor_id,
            ),
        )
        return batch.events

    def handle_delete_version(
        self,
        command: DeleteVersion,
        command_id: str,
        actor_id: str | None,
        registry: VersionRegistry,
    ) -> list[Event]:
        """
        Handle DeleteVersion command

        Raises:
            VersionNotFound: If the version doesn't exist
            ProtectedVersionDeletion: If baseline, active or past draft/simulation
        """
        now = self.time_provider.now()
        version = validate_version_exists(command.version_id, registry)
        validate_deletable(version)

        batch = EventBatch(registry, command_id, actor_id, now)
        batch.emit(
            version.version_id,
            "VersionDeleted",
            VersionDeleted(version_id=version.version_id, deleted_at=now, deleted_by=actor_id),
        )
        return batch.events

    def handle_approve_version(
        self,
        command: ApproveVersion,
        command_id: str,
        actor_id: str | None,
        registry: VersionRegistry,
    ) -> list[Event]:
        """
        Handle ApproveVersion command (DRAFT | SIMULATION → APPROVED)

        Raises:
            VersionNotFound: If the version doesn't exist
            IllegalStatusTransition: If not draft or simulation
        """
        now = self.time_provider.now()
        version = validate_version_exists(command.version_id, registry)
        validate_can_approve(version)

        batch = EventBatch(registry, command_id, actor_id, now)
        batch.emit(
            version.version_id,
            "VersionApproved",
            VersionApproved(
                version_id=version.version_id,
                previous_status=version.status,
                approved_at=now,
                approved_by=actor_id,
            ),
        )
        return batch.events

    def handle_activate_version(
        self,
        command: ActivateVersion,
        command_id: str,
        actor_id: str | None,
        registry: VersionRegistry,
    ) -> list[Event]:
        """
        Handle ActivateVersion command (APPROVED → ACTIVE)

        The fiscal year's current active version is archived in the same
        batch, so the fiscal year never has two active versions.

        Raises:
            VersionNotFound: If the version doesn't exist
            IllegalStatusTransition: If not approved
        """
        now = self.time_provider.now()
        version = validate_version_exists(command.version_id, registry)
        validate_can_activate(version)

        batch = EventBatch(registry, command_id, actor_id, now)

        current_active = registry.find_active(version.fiscal_year_id)
        replaced_version_id = None
        if current_active is not None and current_active.version_id != version.version_id:
            replaced_version_id = current_active.version_id
            batch.emit(
                current_active.version_id,
                "VersionArchived",
                VersionArchived(
                    version_id=current_active.version_id,
                    archived_at=now,
                    superseded_by=version.version_id,
                ),
            )

        batch.emit(
            version.version_id,
            "VersionActivated",
            VersionActivated(
                version_id=version.version_id,
                fiscal_year_id=version.fiscal_year_id,
                replaced_version_id=replaced_version_id,
                activated_at=now,
                activated_by=actor_id,
            ),
        )
        return batch.events

    def handle_add_version_item(
        self,
        command: AddVersionItem,
        command_id: str,
        actor_id: str | None,
        registry: VersionRegistry,
        catalog: BudgetCatalog,
    ) -> list[Event]:
        """
        Handle AddVersionItem command

        The original amount is the parent's adjusted amount for the same
        budget line when the parent holds it, else the line's budgeted amount.

        Raises:
            VersionNotFound: If the version doesn't exist
            BudgetItemNotFound: If the budget line doesn't exist
            BudgetItemOutsideFiscalYear: If the line belongs to another fiscal year
            DuplicateVersionItem: If the version already holds the line
        """
        now = self.time_provider.now()
        version = validate_version_exists(command.version_id, registry)
        budget_item = validate_budget_item_for_version(
            command.budget_item_id, version, catalog
        )
        validate_no_duplicate_item(version.version_id, budget_item.budget_item_id, registry)

        original_amount = budget_item.budgeted_amount
        if version.parent_version_id is not None:
            for parent_item in registry.items_for(version.parent_version_id):
                if parent_item.budget_item_id == budget_item.budget_item_id:
                    original_amount = parent_item.adjusted_amount
                    break

        item = BudgetVersionItem(
            item_id=generate_id(),
            version_id=version.version_id,
            budget_item_id=budget_item.budget_item_id,
            original_amount=original_amount,
            adjusted_amount=compute_adjusted_amount(
                original_amount, command.adjustment_type, command.adjustment_value
            ),
            adjustment_type=command.adjustment_type,
            adjustment_value=command.adjustment_value,
            notes=command.notes,
            created_at=now,
            updated_at=now,
        )

        batch = EventBatch(registry, command_id, actor_id, now)
        batch.emit(version.version_id, "VersionItemAdded", VersionItemAdded(item=item))
        batch.emit_total(version.version_id, registry.items_for(version.version_id) + [item])
        return batch.events

    def handle_update_version_item(
        self,
        command: UpdateVersionItem,
        command_id: str,
        actor_id: str | None,
        registry: VersionRegistry,
    ) -> list[Event]:
        """
        Handle UpdateVersionItem command

        A type switch without a new value converts the current value, so the
        adjusted amount stays put. A converted percentage is held at -100,
        which yields the same zero amount as the clamped absolute adjustment
        it came from. Notes are only touched when set on the command.

        Raises:
            VersionItemNotFound: If the item doesn't exist in the version
            AdjustmentBelowFloor: If the resulting percentage is below -100
        """
        now = self.time_provider.now()
        item = validate_version_item_exists(command.version_id, command.item_id, registry)

        adjustment_type = command.adjustment_type or item.adjustment_type
        if command.adjustment_value is not None:
            adjustment_value = command.adjustment_value
        elif adjustment_type != item.adjustment_type:
            adjustment_value = convert_adjustment_type(
                item.original_amount,
                item.adjustment_type,
                adjustment_type,
                item.adjustment_value,
            )
            if adjustment_type == AdjustmentType.PERCENTAGE:
                adjustment_value = max(PERCENTAGE_FLOOR, adjustment_value)
        else:
            adjustment_value = item.adjustment_value

        adjusted_amount = compute_adjusted_amount(
            item.original_amount, adjustment_type, adjustment_value
        )
        notes = command.notes if "notes" in command.model_fields_set else item.notes

        updated = item.model_copy(
            update={
                "adjustment_type": adjustment_type,
                "adjustment_value": adjustment_value,
                "adjusted_amount": adjusted_amount,
                "notes": notes,
                "updated_at": now,
            }
        )
        remaining = [
            other
            for other in registry.items_for(item.version_id)
            if other.item_id != item.item_id
        ]

        batch = EventBatch(registry, command_id, actor_id, now)
        batch.emit(
            item.version_id,
            "VersionItemUpdated",
            VersionItemUpdated(
                version_id=item.version_id,
                item_id=item.item_id,
                adjustment_type=adjustment_type,
                adjustment_value=adjustment_value,
                adjusted_amount=adjusted_amount,
                notes=notes,
                updated_at=now,
            ),
        )
        batch.emit_total(item.version_id, remaining + [updated])
        return batch.events

    def handle_delete_version_item(
        self,
        command: DeleteVersionItem,
        command_id: str,
        actor_id: str | None,
        registry: VersionRegistry,
    ) -> list[Event]:
        """
        Handle DeleteVersionItem command

        Raises:
            VersionItemNotFound: If the item doesn't exist in the version
        """
        now = self.time_provider.now()
        item = validate_version_item_exists(command.version_id, command.item_id, registry)

        remaining = [
            other
            for other in registry.items_for(item.version_id)
            if other.item_id != item.item_id
        ]

        batch = EventBatch(registry, command_id, actor_id, now)
        batch.emit(
            item.version_id,
            "VersionItemRemoved",
            VersionItemRemoved(
                version_id=item.version_id,
                item_id=item.item_id,
                budget_item_id=item.budget_item_id,
                removed_at=now,
            ),
        )
        batch.emit_total(item.version_id, remaining)
        return batch.events
