"""
End-to-end tests for the BudgetVersioning façade

Runs the planning scenarios against a real SQLite event store: baseline,
derived simulation, item adjustments, comparison, lifecycle and recovery
from the log.
"""

import threading
from decimal import Decimal
from pathlib import Path

import pytest

from budget_versioning import BudgetVersioning
from budget_versioning.catalog import InMemoryBudgetCatalog
from budget_versioning.kernel.errors import (
    BaselineAlreadyExists,
    BudgetItemNotFound,
    BudgetItemOutsideFiscalYear,
    BusinessRuleError,
    ConflictError,
    CostCenterNotFound,
    CrossCompanyDerivation,
    DerivationDepthExceeded,
    IllegalStatusTransition,
    NotFoundError,
    ProtectedVersionDeletion,
    ValidationError,
    VersionNotFound,
)
from budget_versioning.kernel.policy import VersioningPolicy, default_policy
from budget_versioning.kernel.time import ManualTimeProvider
from budget_versioning.versions.models import AdjustmentType, VersionStatus
from tests.helpers import amounts_by_line, create_baseline, empty_fiscal_year_catalog


def _derive(engine: BudgetVersioning, parent_id: str, factor: str = "0.9", **kwargs):
    return engine.create_version(
        kwargs.pop("name", f"Derived x{factor}"),
        "fy-2024",
        "acme",
        parent_version_id=parent_id,
        metadata={"adjustment_factor": factor},
        **kwargs,
    )


def _assert_total_matches_items(engine: BudgetVersioning, version_id: str) -> None:
    items = engine.get_version_items(version_id)
    total = sum((item.adjusted_amount for item in items), Decimal("0"))
    assert engine.get_version(version_id).total_budget == total


class TestPlanningScenario:
    def test_baseline_total(self, engine: BudgetVersioning) -> None:
        baseline = create_baseline(engine)

        assert baseline.total_budget == Decimal("620000")
        assert baseline.is_baseline
        assert baseline.version_number == 1
        assert baseline.created_by == "maria"

    def test_derived_simulation(self, engine: BudgetVersioning) -> None:
        baseline = create_baseline(engine)

        child = _derive(engine, baseline.version_id, status="simulation")

        assert child.status == VersionStatus.SIMULATION
        assert child.parent_version_id == baseline.version_id
        assert child.version_number == 2
        assert child.total_budget == Decimal("558000")
        assert amounts_by_line(engine.get_version_items(child.version_id)) == {
            "bi-salaries": Decimal("450000"),
            "bi-rent": Decimal("108000"),
        }

    def test_add_item_with_percentage_cut(self, engine: BudgetVersioning) -> None:
        baseline = create_baseline(engine)

        item = engine.add_version_item(
            baseline.version_id, "bi-travel", AdjustmentType.PERCENTAGE, Decimal("-10")
        )

        assert item.original_amount == Decimal("80000")
        assert item.adjusted_amount == Decimal("72000")
        assert engine.get_version(baseline.version_id).total_budget == Decimal("692000")

    def test_compare_parent_and_child(self, engine: BudgetVersioning) -> None:
        baseline = create_baseline(engine)
        child = _derive(engine, baseline.version_id)

        comparison = engine.compare_versions(baseline.version_id, child.version_id)

        assert comparison.total_difference == Decimal("-62000")
        assert comparison.total_percentage_difference == Decimal("-10")
        reverse = engine.compare_versions(child.version_id, baseline.version_id)
        assert reverse.total_difference == Decimal("62000")

    def test_factor_one_copies_parent(self, engine: BudgetVersioning) -> None:
        baseline = create_baseline(engine)

        copy = _derive(engine, baseline.version_id, factor="1")

        assert amounts_by_line(engine.get_version_items(copy.version_id)) == amounts_by_line(
            engine.get_version_items(baseline.version_id)
        )
        assert copy.total_budget == baseline.total_budget

    def test_derived_item_added_later_snapshots_parent_amount(
        self, engine: BudgetVersioning
    ) -> None:
        baseline = create_baseline(engine)
        engine.add_version_item(baseline.version_id, "bi-travel", "absolute", "5000")
        child = engine.create_version("Child", "fy-2024", "acme", parent_version_id=baseline.version_id)
        travel = next(
            i for i in engine.get_version_items(child.version_id) if i.budget_item_id == "bi-travel"
        )
        engine.delete_version_item(child.version_id, travel.item_id)

        readded = engine.add_version_item(child.version_id, "bi-travel")

        assert readded.original_amount == Decimal("85000")


class TestTotalsInvariant:
    def test_total_follows_every_item_mutation(self, engine: BudgetVersioning) -> None:
        baseline = create_baseline(engine)
        version_id = baseline.version_id

        item = engine.add_version_item(version_id, "bi-travel", "absolute", "-1000")
        _assert_total_matches_items(engine, version_id)

        engine.update_version_item(version_id, item.item_id, adjustment_value="2500")
        _assert_total_matches_items(engine, version_id)

        engine.update_version_item(version_id, item.item_id, adjustment_type="percentage")
        _assert_total_matches_items(engine, version_id)

        engine.delete_version_item(version_id, item.item_id)
        _assert_total_matches_items(engine, version_id)
        assert engine.get_version(version_id).total_budget == Decimal("620000")

    def test_root_version_starts_at_fiscal_year_sum(self, engine: BudgetVersioning) -> None:
        version = engine.create_version("Plan", "fy-2024", "acme")

        assert version.total_budget == Decimal("700000")
        assert engine.get_version_items(version.version_id) == []

    def test_root_version_of_empty_fiscal_year(self, temp_db: Path, test_time) -> None:
        engine = BudgetVersioning(temp_db, empty_fiscal_year_catalog(), time_provider=test_time)

        version = engine.create_version("Plan", "fy-empty", "acme")

        assert version.total_budget == Decimal("0")

    def test_derive_from_itemless_root_uses_fiscal_year(self, engine: BudgetVersioning) -> None:
        root = engine.create_version("Plan", "fy-2024", "acme")

        child = _derive(engine, root.version_id, factor="1")

        assert child.total_budget == Decimal("700000")
        assert len(engine.get_version_items(child.version_id)) == 3


class TestItemRules:
    def test_type_switch_keeps_adjusted_amount(self, engine: BudgetVersioning) -> None:
        baseline = create_baseline(engine)
        item = engine.add_version_item(baseline.version_id, "bi-travel", "percentage", "-10")

        switched = engine.update_version_item(
            baseline.version_id, item.item_id, adjustment_type="absolute"
        )

        assert switched.adjustment_type == AdjustmentType.ABSOLUTE
        assert switched.adjustment_value == Decimal("-8000")
        assert switched.adjusted_amount == Decimal("72000")

    def test_notes_updated_alone(self, engine: BudgetVersioning) -> None:
        baseline = create_baseline(engine)
        item = engine.add_version_item(baseline.version_id, "bi-travel", "percentage", "-10")

        updated = engine.update_version_item(baseline.version_id, item.item_id, notes="Fewer trips")

        assert updated.notes == "Fewer trips"
        assert updated.adjusted_amount == Decimal("72000")

    def test_absolute_cut_clamped_at_zero(self, engine: BudgetVersioning) -> None:
        baseline = create_baseline(engine)

        item = engine.add_version_item(baseline.version_id, "bi-travel", "absolute", "-100000")

        assert item.adjusted_amount == Decimal("0")

    def test_percentage_below_floor(self, engine: BudgetVersioning) -> None:
        baseline = create_baseline(engine)

        with pytest.raises(ValidationError):
            engine.add_version_item(baseline.version_id, "bi-travel", "percentage", "-101")

        assert len(engine.get_version_items(baseline.version_id)) == 2

    def test_unknown_adjustment_type(self, engine: BudgetVersioning) -> None:
        baseline = create_baseline(engine)

        with pytest.raises(ValidationError):
            engine.add_version_item(baseline.version_id, "bi-travel", "multiplier", "2")

    def test_duplicate_line(self, engine: BudgetVersioning) -> None:
        baseline = create_baseline(engine)

        with pytest.raises(ConflictError):
            engine.add_version_item(baseline.version_id, "bi-rent")

    def test_unknown_budget_item(self, engine: BudgetVersioning) -> None:
        baseline = create_baseline(engine)

        with pytest.raises(BudgetItemNotFound):
            engine.add_version_item(baseline.version_id, "bi-nope")

    def test_budget_item_from_other_fiscal_year(self, engine: BudgetVersioning) -> None:
        baseline = create_baseline(engine)

        with pytest.raises(BudgetItemOutsideFiscalYear):
            engine.add_version_item(baseline.version_id, "bi-salaries-2025")

    def test_item_of_unknown_version(self, engine: BudgetVersioning) -> None:
        with pytest.raises(VersionNotFound):
            engine.add_version_item("missing", "bi-rent")

    def test_unknown_item(self, engine: BudgetVersioning) -> None:
        baseline = create_baseline(engine)

        with pytest.raises(NotFoundError):
            engine.update_version_item(baseline.version_id, "nope", adjustment_value="5")
        with pytest.raises(NotFoundError):
            engine.delete_version_item(baseline.version_id, "nope")


class TestLifecycle:
    def test_delete_baseline_rejected(self, engine: BudgetVersioning) -> None:
        baseline = create_baseline(engine)

        with pytest.raises(BusinessRuleError):
            engine.delete_version(baseline.version_id)

        assert engine.get_version(baseline.version_id) is not None

    def test_activate_draft_rejected(self, engine: BudgetVersioning) -> None:
        baseline = create_baseline(engine)

        with pytest.raises(IllegalStatusTransition):
            engine.activate_version(baseline.version_id)

    def test_full_lifecycle(self, engine: BudgetVersioning, test_time: ManualTimeProvider) -> None:
        baseline = create_baseline(engine)
        child = _derive(engine, baseline.version_id)

        engine.approve_version(baseline.version_id)
        engine.activate_version(baseline.version_id)
        test_time.advance(days=30)
        engine.approve_version(child.version_id)
        activated = engine.activate_version(child.version_id)

        assert activated.status == VersionStatus.ACTIVE
        assert activated.updated_at == test_time.now()
        assert engine.get_version(baseline.version_id).status == VersionStatus.ARCHIVED
        active = [
            v for v in engine.list_versions_by_fiscal_year("fy-2024") if v.status == VersionStatus.ACTIVE
        ]
        assert [v.version_id for v in active] == [child.version_id]

    def test_archived_is_terminal(self, engine: BudgetVersioning) -> None:
        a = engine.create_version("A", "fy-2024", "acme")
        b = engine.create_version("B", "fy-2024", "acme")
        for version in (a, b):
            engine.approve_version(version.version_id)
            engine.activate_version(version.version_id)

        with pytest.raises(BusinessRuleError):
            engine.approve_version(a.version_id)
        with pytest.raises(BusinessRuleError):
            engine.activate_version(a.version_id)
        with pytest.raises(ProtectedVersionDeletion):
            engine.delete_version(a.version_id)

    def test_delete_active_rejected(self, engine: BudgetVersioning) -> None:
        version = engine.create_version("A", "fy-2024", "acme")
        engine.approve_version(version.version_id)
        engine.activate_version(version.version_id)

        with pytest.raises(ProtectedVersionDeletion):
            engine.delete_version(version.version_id)

    def test_delete_draft_removes_items(self, engine: BudgetVersioning) -> None:
        baseline = create_baseline(engine)
        child = _derive(engine, baseline.version_id)

        engine.delete_version(child.version_id)

        assert engine.get_version(child.version_id) is None
        with pytest.raises(VersionNotFound):
            engine.get_version_items(child.version_id)
        assert engine.create_version("Next", "fy-2024", "acme").version_number == 3

    def test_invalid_initial_status(self, engine: BudgetVersioning) -> None:
        with pytest.raises(ValidationError):
            engine.create_version("X", "fy-2024", "acme", status="active")
        with pytest.raises(ValidationError):
            engine.create_version("X", "fy-2024", "acme", status="bogus")


class TestBaselineAndUpdates:
    def test_one_baseline_per_company_and_year(self, engine: BudgetVersioning) -> None:
        create_baseline(engine)

        with pytest.raises(BaselineAlreadyExists):
            engine.create_version("Second", "fy-2024", "acme", is_baseline=True)

        other_year = engine.create_version("2025", "fy-2025", "acme", is_baseline=True)
        assert other_year.is_baseline

    def test_promote_to_baseline(self, engine: BudgetVersioning) -> None:
        version = engine.create_version("Plan", "fy-2024", "acme")

        promoted = engine.update_version(version.version_id, is_baseline=True)

        assert promoted.is_baseline
        assert engine.get_baseline_version("fy-2024").version_id == version.version_id

    def test_promote_conflicts_with_existing_baseline(self, engine: BudgetVersioning) -> None:
        create_baseline(engine)
        version = engine.create_version("Plan", "fy-2024", "acme")

        with pytest.raises(ConflictError):
            engine.update_version(version.version_id, is_baseline=True)

    def test_clear_baseline_rejected(self, engine: BudgetVersioning) -> None:
        baseline = create_baseline(engine)

        with pytest.raises(BusinessRuleError):
            engine.update_version(baseline.version_id, is_baseline=False)

    def test_update_descriptive_fields(
        self, engine: BudgetVersioning, test_time: ManualTimeProvider
    ) -> None:
        version = engine.create_version("Plan", "fy-2024", "acme")
        test_time.advance(seconds=60)

        updated = engine.update_version(
            version.version_id,
            name="Plan B",
            description="Hiring freeze",
            cost_center_id="cc-sales",
            metadata={"scenario_type": "pessimistic", "extensions": {"region": "north"}},
        )

        assert updated.name == "Plan B"
        assert updated.description == "Hiring freeze"
        assert updated.cost_center_id == "cc-sales"
        assert updated.metadata.scenario_type.value == "pessimistic"
        assert updated.metadata.extensions == {"region": "north"}
        assert updated.updated_at == test_time.now()
        assert updated.fiscal_year_id == "fy-2024"

    def test_clear_cost_center_to_whole_company(
        self, temp_db: Path, catalog: InMemoryBudgetCatalog, test_time
    ) -> None:
        engine = BudgetVersioning(temp_db, catalog, time_provider=test_time)
        version = engine.create_version("Ops plan", "fy-2024", "acme", cost_center_id="cc-ops")

        renamed = engine.update_version(version.version_id, name="Ops plan v2")
        assert renamed.cost_center_id == "cc-ops"

        cleared = engine.update_version(version.version_id, cost_center_id=None)
        assert cleared.cost_center_id is None
        assert cleared.name == "Ops plan v2"

        reopened = BudgetVersioning(temp_db, catalog, time_provider=test_time)
        assert reopened.get_version(version.version_id).cost_center_id is None

    def test_clear_cost_center_when_already_unscoped(self, engine: BudgetVersioning) -> None:
        version = engine.create_version("Plan", "fy-2024", "acme")
        count = engine.event_store.count_events()

        engine.update_version(version.version_id, cost_center_id=None)

        assert engine.event_store.count_events() == count

    def test_update_unknown_cost_center(self, engine: BudgetVersioning) -> None:
        version = engine.create_version("Plan", "fy-2024", "acme")

        with pytest.raises(CostCenterNotFound):
            engine.update_version(version.version_id, cost_center_id="cc-nope")

    def test_update_unknown_version(self, engine: BudgetVersioning) -> None:
        with pytest.raises(VersionNotFound):
            engine.update_version("missing", name="X")

    def test_empty_name_rejected(self, engine: BudgetVersioning) -> None:
        with pytest.raises(ValidationError):
            engine.create_version("", "fy-2024", "acme")


class TestDerivationRules:
    def test_cross_company_parent(self, engine: BudgetVersioning) -> None:
        baseline = create_baseline(engine)

        with pytest.raises(CrossCompanyDerivation):
            engine.create_version(
                "Globex copy", "fy-globex", "globex", parent_version_id=baseline.version_id
            )

    def test_itemless_parent_in_other_fiscal_year(self, engine: BudgetVersioning) -> None:
        root = engine.create_version("Plan 2025", "fy-2025", "acme")

        child = _derive(engine, root.version_id, factor="1")

        items = engine.get_version_items(child.version_id)
        assert [item.budget_item_id for item in items] == ["bi-salaries-2025"]
        assert child.total_budget == Decimal("520000")

        engine.delete_version_item(child.version_id, items[0].item_id)
        with pytest.raises(BudgetItemOutsideFiscalYear):
            engine.add_version_item(child.version_id, "bi-salaries-2025")

    def test_unknown_parent(self, engine: BudgetVersioning) -> None:
        with pytest.raises(VersionNotFound):
            engine.create_version("X", "fy-2024", "acme", parent_version_id="missing")

    def test_depth_limit(self, temp_db: Path, catalog: InMemoryBudgetCatalog, test_time) -> None:
        engine = BudgetVersioning(
            temp_db, catalog, policy=VersioningPolicy(max_derivation_depth=3), time_provider=test_time
        )
        root = create_baseline(engine)
        child = _derive(engine, root.version_id, factor="1")
        grandchild = _derive(engine, child.version_id, factor="1")

        with pytest.raises(DerivationDepthExceeded):
            _derive(engine, grandchild.version_id, factor="1")

        assert len(engine.list_versions_by_fiscal_year("fy-2024")) == 3

    def test_non_positive_factor_rejected(self, engine: BudgetVersioning) -> None:
        baseline = create_baseline(engine)

        with pytest.raises(ValidationError):
            _derive(engine, baseline.version_id, factor="0")

    def test_metadata_over_policy_limit(self, temp_db: Path, catalog, test_time) -> None:
        engine = BudgetVersioning(
            temp_db, catalog, policy=VersioningPolicy(max_tags=1), time_provider=test_time
        )

        with pytest.raises(ValidationError):
            engine.create_version("X", "fy-2024", "acme", metadata={"tags": ["a", "b"]})

        assert engine.list_versions_by_fiscal_year("fy-2024") == []

    def test_default_policy_when_none_given(self, temp_db: Path, catalog, test_time) -> None:
        engine = BudgetVersioning(temp_db, catalog, time_provider=test_time)

        assert engine.policy is default_policy
        assert engine.policy.max_derivation_depth == VersioningPolicy().max_derivation_depth


class TestQueries:
    def test_filter_and_sort(self, engine: BudgetVersioning) -> None:
        engine.create_version("Optimistic", "fy-2024", "acme", description="Growth case")
        baseline = create_baseline(engine)
        engine.create_version("Budget 2025", "fy-2025", "acme")

        ordered = engine.filter_versions()
        assert [(v.fiscal_year_id, v.is_baseline) for v in ordered] == [
            ("fy-2024", True),
            ("fy-2024", False),
            ("fy-2025", False),
        ]
        assert ordered[0].version_id == baseline.version_id

        assert [v.name for v in engine.filter_versions(search="GROWTH")] == ["Optimistic"]
        assert len(engine.filter_versions(fiscal_year_id="fy-2025")) == 1
        assert engine.filter_versions(status="approved") == []
        assert engine.filter_versions(company_id="globex") == []

    def test_filter_unknown_status(self, engine: BudgetVersioning) -> None:
        with pytest.raises(ValidationError):
            engine.filter_versions(status="pending")

    def test_baseline_lookup_by_company(self, engine: BudgetVersioning) -> None:
        baseline = create_baseline(engine)

        assert engine.get_baseline_version("fy-2024", "acme").version_id == baseline.version_id
        assert engine.get_baseline_version("fy-2024", "globex") is None
        assert engine.get_baseline_version("fy-2025") is None

    def test_compare_unknown_version(self, engine: BudgetVersioning) -> None:
        baseline = create_baseline(engine)

        with pytest.raises(VersionNotFound):
            engine.compare_versions(baseline.version_id, "missing")


class TestPersistence:
    def test_state_rebuilt_from_log(
        self, temp_db: Path, catalog: InMemoryBudgetCatalog, test_time: ManualTimeProvider
    ) -> None:
        engine = BudgetVersioning(temp_db, catalog, time_provider=test_time)
        baseline = create_baseline(engine)
        child = _derive(engine, baseline.version_id)
        engine.approve_version(child.version_id)
        engine.activate_version(child.version_id)
        scratch = engine.create_version("Scratch", "fy-2024", "acme")
        engine.delete_version(scratch.version_id)

        reopened = BudgetVersioning(temp_db, catalog, time_provider=test_time)

        assert reopened.get_version(child.version_id) == engine.get_version(child.version_id)
        assert reopened.get_version_items(child.version_id) == engine.get_version_items(
            child.version_id
        )
        assert reopened.get_version(scratch.version_id) is None
        assert reopened.create_version("Next", "fy-2024", "acme").version_number == 4

    def test_failed_command_leaves_no_trace(self, engine: BudgetVersioning) -> None:
        baseline = create_baseline(engine)
        count = engine.event_store.count_events()

        with pytest.raises(ConflictError):
            engine.create_version(
                "Dup", "fy-2024", "acme", is_baseline=True, parent_version_id=baseline.version_id
            )

        assert engine.event_store.count_events() == count


class TestConcurrency:
    def test_concurrent_activations_leave_one_active(self, engine: BudgetVersioning) -> None:
        versions = [engine.create_version(f"V{i}", "fy-2024", "acme") for i in range(6)]
        for version in versions:
            engine.approve_version(version.version_id)

        barrier = threading.Barrier(len(versions))
        errors: list[Exception] = []

        def activate(version_id: str) -> None:
            barrier.wait()
            try:
                engine.activate_version(version_id)
            except Exception as exc:
                errors.append(exc)

        threads = [
            threading.Thread(target=activate, args=(v.version_id,)) for v in versions
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        statuses = [v.status for v in engine.list_versions_by_fiscal_year("fy-2024")]
        assert statuses.count(VersionStatus.ACTIVE) == 1
        assert statuses.count(VersionStatus.ARCHIVED) == len(versions) - 1

    def test_concurrent_item_adds_keep_total(self, engine: BudgetVersioning) -> None:
        version = engine.create_version("Plan", "fy-2024", "acme")
        budget_item_ids = ["bi-salaries", "bi-rent", "bi-travel"]

        threads = [
            threading.Thread(
                target=engine.add_version_item, args=(version.version_id, budget_item_id)
            )
            for budget_item_id in budget_item_ids
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(engine.get_version_items(version.version_id)) == 3
        assert engine.get_version(version.version_id).total_budget == Decimal("700000")
