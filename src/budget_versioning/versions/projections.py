"""
Budget Version Projections - the read model and repository of the engine

VersionRegistry holds the current state of every version and version item,
built by applying events from the log. Handlers read from it to make
decisions; the façade reads from it to answer queries.

All access goes through a re-entrant lock and query methods return copies,
so a reader never sees a batch half-applied and callers can't mutate
registry state behind its back.
"""

import threading
from datetime import datetime

from budget_versioning.kernel.events import Event
from budget_versioning.versions.events import (
    VersionActivated,
    VersionApproved,
    VersionArchived,
    VersionCreated,
    VersionDeleted,
    VersionItemAdded,
    VersionItemRemoved,
    VersionItemUpdated,
    VersionTotalRecomputed,
    VersionUpdated,
)
from budget_versioning.versions.models import (
    BudgetVersion,
    BudgetVersionItem,
    VersionMetadata,
    VersionStatus,
)


class VersionRegistry:
    """
    Main projection - current state of all budget versions and their items

    Built from events: VersionCreated, VersionUpdated, VersionApproved,
    VersionActivated, VersionArchived, VersionDeleted, VersionItemAdded,
    VersionItemUpdated, VersionItemRemoved, VersionTotalRecomputed

    Query methods: get, get_item, list_all, list_by_fiscal_year,
    items_for, find_baseline, find_active, next_version_number
    """

    def __init__(self) -> None:
        self.versions: dict[str, BudgetVersion] = {}
        # version_id -> item_id -> item
        self.items: dict[str, dict[str, BudgetVersionItem]] = {}
        # stream revision per version, for optimistic locking
        self.revisions: dict[str, int] = {}
        # highest number ever assigned per fiscal year (deleted versions included)
        self.highest_version_number: dict[str, int] = {}
        self._lock = threading.RLock()

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    def apply_events(self, events: list[Event]) -> None:
        """Apply a committed batch as one unit"""
        with self._lock:
            for event in events:
                self.apply_event(event)

    def apply_event(self, event: Event) -> None:
        """
        Apply an event to update the projection

        Args:
            event: Event to apply
        """
        handler = {
            "VersionCreated": self._apply_version_created,
            "VersionUpdated": self._apply_version_updated,
            "VersionApproved": self._apply_version_approved,
            "VersionActivated": self._apply_version_activated,
            "VersionArchived": self._apply_version_archived,
            "VersionDeleted": self._apply_version_deleted,
            "VersionItemAdded": self._apply_item_added,
            "VersionItemUpdated": self._apply_item_updated,
            "VersionItemRemoved": self._apply_item_removed,
            "VersionTotalRecomputed": self._apply_total_recomputed,
        }.get(event.event_type)

        if handler is None:
            return

        with self._lock:
            handler(event)
            if event.stream_id in self.versions:
                self.revisions[event.stream_id] = event.version

    def _apply_version_created(self, event: Event) -> None:
        payload = VersionCreated(**event.payload)

        self.versions[payload.version_id] = BudgetVersion(
            version_id=payload.version_id,
            name=payload.name,
            description=payload.description,
            fiscal_year_id=payload.fiscal_year_id,
            cost_center_id=payload.cost_center_id,
            version_number=payload.version_number,
            status=payload.status,
            is_baseline=payload.is_baseline,
            parent_version_id=payload.parent_version_id,
            total_budget=payload.total_budget,
            metadata=payload.metadata,
            company_id=payload.company_id,
            created_by=payload.created_by,
            created_at=payload.created_at,
            updated_at=payload.created_at,
        )
        self.items[payload.version_id] = {}

        highest = self.highest_version_number.get(payload.fiscal_year_id, 0)
        self.highest_version_number[payload.fiscal_year_id] = max(
            highest, payload.version_number
        )

    def _apply_version_updated(self, event: Event) -> None:
        payload = VersionUpdated(**event.payload)
        version = self.versions.get(payload.version_id)
        if version is None:
            return

        changes = dict(payload.changes)
        if "metadata" in changes:
            changes["metadata"] = VersionMetadata(**changes["metadata"])

        self.versions[payload.version_id] = version.model_copy(
            update={**changes, "updated_at": payload.updated_at}
        )

    def _apply_version_approved(self, event: Event) -> None:
        payload = VersionApproved(**event.payload)
        self._set_status(payload.version_id, VersionStatus.APPROVED, payload.approved_at)

    def _apply_version_activated(self, event: Event) -> None:
        payload = VersionActivated(**event.payload)
        self._set_status(payload.version_id, VersionStatus.ACTIVE, payload.activated_at)

    def _apply_version_archived(self, event: Event) -> None:
        payload = VersionArchived(**event.payload)
        self._set_status(payload.version_id, VersionStatus.ARCHIVED, payload.archived_at)

    def _apply_version_deleted(self, event: Event) -> None:
        payload = VersionDeleted(**event.payload)
        self.versions.pop(payload.version_id, None)
        self.items.pop(payload.version_id, None)
        self.revisions.pop(payload.version_id, None)

    def _apply_item_added(self, event: Event) -> None:
        payload = VersionItemAdded(**event.payload)
        item = payload.item
        if item.version_id in self.items:
            self.items[item.version_id][item.item_id] = item

    def _apply_item_updated(self, event: Event) -> None:
        payload = VersionItemUpdated(**event.payload)
        version_items = self.items.get(payload.version_id, {})
        item = version_items.get(payload.item_id)
        if item is None:
            return

        version_items[payload.item_id] = item.model_copy(
            update={
                "adjustment_type": payload.adjustment_type,
                "adjustment_value": payload.adjustment_value,
                "adjusted_amount": payload.adjusted_amount,
                "notes": payload.notes,
                "updated_at": payload.updated_at,
            }
        )

    def _apply_item_removed(self, event: Event) -> None:
        payload = VersionItemRemoved(**event.payload)
        self.items.get(payload.version_id, {}).pop(payload.item_id, None)

    def _apply_total_recomputed(self, event: Event) -> None:
        payload = VersionTotalRecomputed(**event.payload)
        version = self.versions.get(payload.version_id)
        if version is None:
            return

        self.versions[payload.version_id] = version.model_copy(
            update={
                "total_budget": payload.total_budget,
                "updated_at": payload.recomputed_at,
            }
        )

    def _set_status(
        self, version_id: str, status: VersionStatus, at: datetime
    ) -> None:
        version = self.versions.get(version_id)
        if version is not None:
            self.versions[version_id] = version.model_copy(
                update={"status": status, "updated_at": at}
            )

    # ========== Query Methods ==========

    def get(self, version_id: str) -> BudgetVersion | None:
        with self._lock:
            version = self.versions.get(version_id)
            return version.model_copy(deep=True) if version else None

    def get_item(self, version_id: str, item_id: str) -> BudgetVersionItem | None:
        with self._lock:
            item = self.items.get(version_id, {}).get(item_id)
            return item.model_copy() if item else None

    def revision(self, version_id: str) -> int:
        """Current stream revision of a version (0 if unknown)"""
        with self._lock:
            return self.revisions.get(version_id, 0)

    def list_all(self) -> list[BudgetVersion]:
        with self._lock:
            return [v.model_copy(deep=True) for v in self.versions.values()]

    def list_by_fiscal_year(
        self, fiscal_year_id: str, company_id: str | None = None
    ) -> list[BudgetVersion]:
        """
        List versions of a fiscal year ordered by version number

        Args:
            fiscal_year_id: Fiscal year ID
            company_id: Restrict to one company (None = all companies)
        """
        with self._lock:
            versions = [
                v.model_copy(deep=True)
                for v in self.versions.values()
                if v.fiscal_year_id == fiscal_year_id
                and (company_id is None or v.company_id == company_id)
            ]
        return sorted(versions, key=lambda v: v.version_number)

    def items_for(self, version_id: str) -> list[BudgetVersionItem]:
        """Snapshot of a version's items in creation order"""
        with self._lock:
            return [item.model_copy() for item in self.items.get(version_id, {}).values()]

    def find_baseline(
        self, fiscal_year_id: str, company_id: str | None = None
    ) -> BudgetVersion | None:
        with self._lock:
            for version in self.versions.values():
                if (
                    version.is_baseline
                    and version.fiscal_year_id == fiscal_year_id
                    and (company_id is None or version.company_id == company_id)
                ):
                    return version.model_copy(deep=True)
        return None

    def find_active(self, fiscal_year_id: str) -> BudgetVersion | None:
        with self._lock:
            for version in self.versions.values():
                if (
                    version.fiscal_year_id == fiscal_year_id
                    and version.status == VersionStatus.ACTIVE
                ):
                    return version.model_copy(deep=True)
        return None

    def next_version_number(self, fiscal_year_id: str) -> int:
        with self._lock:
            return self.highest_version_number.get(fiscal_year_id, 0) + 1

    def is_number_taken(self, fiscal_year_id: str, version_number: int) -> bool:
        with self._lock:
            return any(
                v.fiscal_year_id == fiscal_year_id and v.version_number == version_number
                for v in self.versions.values()
            )

