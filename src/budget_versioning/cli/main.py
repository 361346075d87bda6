"""
Budget Versioning CLI

Command-line interface for the budget versioning engine.
Fiscal years, budget lines and cost centers come from a JSON catalog document.

Usage:
    budget-versions init --db versions.db
    budget-versions version create --name Baseline --fiscal-year fy-2024 --company acme --baseline --catalog catalog.json
    budget-versions version create --name "10% cut" --fiscal-year fy-2024 --company acme --parent <id> --factor 0.9 --catalog catalog.json
    budget-versions version compare --a <id> --b <id>
    budget-versions item add --version <id> --budget-item bi-1 --type percentage --value -10 --catalog catalog.json
"""

import json
import os
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, List, Optional

import typer
from typing_extensions import Annotated

from budget_versioning.catalog import InMemoryBudgetCatalog
from budget_versioning.kernel.errors import BudgetVersioningError
from budget_versioning.kernel.logging import configure_logging, is_production
from budget_versioning.service import BudgetVersioning
from budget_versioning.versions.models import BudgetVersion

# Logs go to stderr (keeps stdout clean for JSON output)
configure_logging(
    json_output=is_production(),
    log_level=os.getenv("BUDGET_VERSIONING_LOG_LEVEL", "INFO"),
)

app = typer.Typer(
    name="budget-versions",
    help="Budget Versioning - scenario planning for fiscal-year budgets",
    add_completion=False,
)

# Sub-apps
version_app = typer.Typer(help="Budget version lifecycle commands")
item_app = typer.Typer(help="Version item commands")

app.add_typer(version_app, name="version")
app.add_typer(item_app, name="item")

DEFAULT_DB = Path(".budget_versions.db")

DbOption = Annotated[Optional[Path], typer.Option("--db", help="Database path")]
CatalogOption = Annotated[
    Optional[Path],
    typer.Option("--catalog", help="JSON catalog of fiscal years, budget items and cost centers"),
]
ActorOption = Annotated[Optional[str], typer.Option("--actor", help="Acting user")]


def get_engine(db_path: Optional[Path] = None, catalog_path: Optional[Path] = None) -> BudgetVersioning:
    """Get a BudgetVersioning instance"""
    db = db_path or DEFAULT_DB
    if not db.exists():
        typer.echo(f"Error: Database not found: {db}", err=True)
        typer.echo(f"Run 'budget-versions init --db {db}' to initialize", err=True)
        raise typer.Exit(1)

    if catalog_path is None:
        catalog = InMemoryBudgetCatalog()
    elif not catalog_path.exists():
        typer.echo(f"Error: Catalog not found: {catalog_path}", err=True)
        raise typer.Exit(1)
    else:
        catalog = InMemoryBudgetCatalog.from_json(catalog_path)

    return BudgetVersioning(db, catalog)


@contextmanager
def reported_errors() -> Iterator[None]:
    """Turn engine errors into a message on stderr and exit code 1"""
    try:
        yield
    except BudgetVersioningError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1) from exc


def _metadata(
    factor: Optional[str],
    scenario: Optional[str],
    tags: Optional[List[str]],
    assumptions: Optional[List[str]],
) -> dict[str, Any] | None:
    metadata: dict[str, Any] = {}
    if factor is not None:
        metadata["adjustment_factor"] = factor
    if scenario is not None:
        metadata["scenario_type"] = scenario
    if tags:
        metadata["tags"] = tags
    if assumptions:
        metadata["assumptions"] = assumptions
    return metadata or None


def _echo_version(version: BudgetVersion) -> None:
    baseline = " (baseline)" if version.is_baseline else ""
    typer.echo(f"  Number: {version.version_number}{baseline}")
    typer.echo(f"  Fiscal Year: {version.fiscal_year_id}")
    typer.echo(f"  Status: {version.status.value}")
    typer.echo(f"  Total: {version.total_budget}")
    if version.parent_version_id:
        typer.echo(f"  Parent: {version.parent_version_id}")


# Initialization command


@app.command()
def init(
    db: Annotated[
        Path,
        typer.Option(help="Database path"),
    ] = DEFAULT_DB,
) -> None:
    """Initialize a new budget versioning database"""
    if db.exists():
        typer.echo(f"Error: Database already exists: {db}", err=True)
        raise typer.Exit(1)

    BudgetVersioning(db, InMemoryBudgetCatalog())
    typer.echo(f"✓ Initialized budget versioning database: {db}")


# Version commands


@version_app.command("create")
def version_create(
    name: Annotated[str, typer.Option("--name", help="Version name")],
    fiscal_year_id: Annotated[str, typer.Option("--fiscal-year", help="Fiscal year ID")],
    company_id: Annotated[str, typer.Option("--company", help="Company ID")],
    description: Annotated[
        Optional[str], typer.Option("--description", help="Description")
    ] = None,
    cost_center_id: Annotated[
        Optional[str], typer.Option("--cost-center", help="Cost center ID")
    ] = None,
    status: Annotated[
        str, typer.Option("--status", help="Initial status (draft, simulation)")
    ] = "draft",
    baseline: Annotated[
        bool, typer.Option("--baseline", help="Mark as the fiscal year's baseline")
    ] = False,
    parent_version_id: Annotated[
        Optional[str], typer.Option("--parent", help="Derive items from this version")
    ] = None,
    factor: Annotated[
        Optional[str], typer.Option("--factor", help="Adjustment factor, e.g. 0.9")
    ] = None,
    scenario: Annotated[
        Optional[str],
        typer.Option("--scenario", help="Scenario type (optimistic, realistic, pessimistic)"),
    ] = None,
    tags: Annotated[Optional[List[str]], typer.Option("--tag", help="Tag (repeatable)")] = None,
    assumptions: Annotated[
        Optional[List[str]], typer.Option("--assumption", help="Assumption (repeatable)")
    ] = None,
    actor_id: ActorOption = None,
    db: DbOption = None,
    catalog: CatalogOption = None,
) -> None:
    """Create a budget version (derived from --parent when given)"""
    engine = get_engine(db, catalog)

    with reported_errors():
        version = engine.create_version(
            name,
            fiscal_year_id,
            company_id,
            description=description,
            cost_center_id=cost_center_id,
            status=status,
            is_baseline=baseline,
            parent_version_id=parent_version_id,
            metadata=_metadata(factor, scenario, tags, assumptions),
            actor_id=actor_id,
        )

    typer.echo(f"✓ Created version: {version.version_id}")
    _echo_version(version)
    items = engine.get_version_items(version.version_id)
    if items:
        typer.echo(f"  Items: {len(items)}")


@version_app.command("list")
def version_list(
    fiscal_year_id: Annotated[
        Optional[str], typer.Option("--fiscal-year", help="Filter by fiscal year")
    ] = None,
    status: Annotated[Optional[str], typer.Option("--status", help="Filter by status")] = None,
    search: Annotated[str, typer.Option("--search", help="Search name and description")] = "",
    company_id: Annotated[Optional[str], typer.Option("--company", help="Filter by company")] = None,
    db: DbOption = None,
    catalog: CatalogOption = None,
) -> None:
    """List budget versions"""
    engine = get_engine(db, catalog)

    with reported_errors():
        versions = engine.filter_versions(
            fiscal_year_id=fiscal_year_id,
            status=status,
            search=search,
            company_id=company_id,
        )

    if not versions:
        typer.echo("No versions found")
        return

    typer.echo(f"Versions ({len(versions)}):")
    for version in versions:
        baseline = " *baseline*" if version.is_baseline else ""
        typer.echo(
            f"  {version.version_id}: {version.fiscal_year_id} #{version.version_number} "
            f"{version.name} [{version.status.value}]{baseline} - {version.total_budget}"
        )


@version_app.command("show")
def version_show(
    version_id: Annotated[str, typer.Option("--id", help="Version ID")],
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
    db: DbOption = None,
    catalog: CatalogOption = None,
) -> None:
    """Show a version and its items"""
    engine = get_engine(db, catalog)

    version = engine.get_version(version_id)
    if version is None:
        typer.echo(f"Error: Version not found: {version_id}", err=True)
        raise typer.Exit(1)
    items = engine.get_version_items(version_id)

    if json_output:
        document = {
            "version": version.model_dump(mode="json"),
            "items": [item.model_dump(mode="json") for item in items],
        }
        typer.echo(json.dumps(document, indent=2))
        return

    typer.echo(f"\nVersion: {version.version_id} - {version.name}")
    _echo_version(version)
    if version.description:
        typer.echo(f"  Description: {version.description}")

    typer.echo(f"\n  Items ({len(items)}):")
    for item in items:
        typer.echo(
            f"    {item.item_id} {item.budget_item_id}: {item.original_amount} → "
            f"{item.adjusted_amount} ({item.adjustment_type.value} {item.adjustment_value})"
        )


@version_app.command("update")
def version_update(
    version_id: Annotated[str, typer.Option("--id", help="Version ID")],
    name: Annotated[Optional[str], typer.Option("--name", help="New name")] = None,
    description: Annotated[
        Optional[str], typer.Option("--description", help="New description")
    ] = None,
    cost_center_id: Annotated[
        Optional[str], typer.Option("--cost-center", help="New cost center ID")
    ] = None,
    whole_company: Annotated[
        bool, typer.Option("--whole-company", help="Clear the cost center scope")
    ] = False,
    baseline: Annotated[
        bool, typer.Option("--baseline", help="Mark as the fiscal year's baseline")
    ] = False,
    actor_id: ActorOption = None,
    db: DbOption = None,
    catalog: CatalogOption = None,
) -> None:
    """Update a version's descriptive fields"""
    if whole_company and cost_center_id is not None:
        typer.echo("Error: --whole-company and --cost-center are exclusive", err=True)
        raise typer.Exit(1)

    engine = get_engine(db, catalog)

    scope: dict[str, Any] = {}
    if whole_company:
        scope["cost_center_id"] = None
    elif cost_center_id is not None:
        scope["cost_center_id"] = cost_center_id

    with reported_errors():
        version = engine.update_version(
            version_id,
            name=name,
            description=description,
            is_baseline=True if baseline else None,
            actor_id=actor_id,
            **scope,
        )

    typer.echo(f"✓ Updated version: {version.version_id}")
    _echo_version(version)


@version_app.command("approve")
def version_approve(
    version_id: Annotated[str, typer.Option("--id", help="Version ID")],
    actor_id: ActorOption = None,
    db: DbOption = None,
    catalog: CatalogOption = None,
) -> None:
    """Approve a version (draft/simulation → approved)"""
    engine = get_engine(db, catalog)

    with reported_errors():
        version = engine.approve_version(version_id, actor_id=actor_id)

    typer.echo(f"✓ Approved version: {version.version_id}")
    typer.echo(f"  Status: {version.status.value}")


@version_app.command("activate")
def version_activate(
    version_id: Annotated[str, typer.Option("--id", help="Version ID")],
    actor_id: ActorOption = None,
    db: DbOption = None,
    catalog: CatalogOption = None,
) -> None:
    """Activate an approved version (archives the current active one)"""
    engine = get_engine(db, catalog)

    with reported_errors():
        version = engine.activate_version(version_id, actor_id=actor_id)

    typer.echo(f"✓ Activated version: {version.version_id}")
    typer.echo(f"  Status: {version.status.value}")


@version_app.command("delete")
def version_delete(
    version_id: Annotated[str, typer.Option("--id", help="Version ID")],
    actor_id: ActorOption = None,
    db: DbOption = None,
    catalog: CatalogOption = None,
) -> None:
    """Delete a draft or simulation version"""
    engine = get_engine(db, catalog)

    with reported_errors():
        engine.delete_version(version_id, actor_id=actor_id)

    typer.echo(f"✓ Deleted version: {version_id}")


@version_app.command("compare")
def version_compare(
    version_a_id: Annotated[str, typer.Option("--a", help="Version A ID")],
    version_b_id: Annotated[str, typer.Option("--b", help="Version B ID")],
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
    db: DbOption = None,
    catalog: CatalogOption = None,
) -> None:
    """Compare two versions line by line"""
    engine = get_engine(db, catalog)

    with reported_errors():
        comparison = engine.compare_versions(version_a_id, version_b_id)

    if json_output:
        typer.echo(comparison.model_dump_json(indent=2))
        return

    typer.echo(f"Comparison {version_a_id} → {version_b_id}")
    for line in comparison.items:
        typer.echo(
            f"  {line.budget_item_id}: {line.amount_a} → {line.amount_b} "
            f"({line.difference:+} / {line.percentage_difference:.2f}%)"
        )
    typer.echo(f"  Total A: {comparison.total_a}")
    typer.echo(f"  Total B: {comparison.total_b}")
    typer.echo(
        f"  Difference: {comparison.total_difference} "
        f"({comparison.total_percentage_difference:.2f}%)"
    )


# Item commands


@item_app.command("add")
def item_add(
    version_id: Annotated[str, typer.Option("--version", help="Version ID")],
    budget_item_id: Annotated[str, typer.Option("--budget-item", help="Budget item ID")],
    adjustment_type: Annotated[
        str, typer.Option("--type", help="Adjustment type (percentage, absolute)")
    ] = "percentage",
    adjustment_value: Annotated[str, typer.Option("--value", help="Adjustment value")] = "0",
    notes: Annotated[Optional[str], typer.Option("--notes", help="Notes")] = None,
    actor_id: ActorOption = None,
    db: DbOption = None,
    catalog: CatalogOption = None,
) -> None:
    """Add a budget item to a version"""
    engine = get_engine(db, catalog)

    with reported_errors():
        item = engine.add_version_item(
            version_id,
            budget_item_id,
            adjustment_type=adjustment_type,
            adjustment_value=adjustment_value,
            notes=notes,
            actor_id=actor_id,
        )
        version = engine.get_version(version_id)

    typer.echo(f"✓ Added item: {item.item_id}")
    typer.echo(f"  Original: {item.original_amount}")
    typer.echo(f"  Adjusted: {item.adjusted_amount}")
    typer.echo(f"  Version total: {version.total_budget}")


@item_app.command("update")
def item_update(
    version_id: Annotated[str, typer.Option("--version", help="Version ID")],
    item_id: Annotated[str, typer.Option("--id", help="Version item ID")],
    adjustment_type: Annotated[
        Optional[str], typer.Option("--type", help="Adjustment type (percentage, absolute)")
    ] = None,
    adjustment_value: Annotated[
        Optional[str], typer.Option("--value", help="Adjustment value")
    ] = None,
    notes: Annotated[Optional[str], typer.Option("--notes", help="Notes")] = None,
    actor_id: ActorOption = None,
    db: DbOption = None,
    catalog: CatalogOption = None,
) -> None:
    """Change a version item's adjustment"""
    engine = get_engine(db, catalog)

    with reported_errors():
        item = engine.update_version_item(
            version_id,
            item_id,
            adjustment_type=adjustment_type,
            adjustment_value=adjustment_value,
            notes=notes,
            actor_id=actor_id,
        )

    typer.echo(f"✓ Updated item: {item.item_id}")
    typer.echo(f"  Adjustment: {item.adjustment_type.value} {item.adjustment_value}")
    typer.echo(f"  Adjusted: {item.adjusted_amount}")


@item_app.command("remove")
def item_remove(
    version_id: Annotated[str, typer.Option("--version", help="Version ID")],
    item_id: Annotated[str, typer.Option("--id", help="Version item ID")],
    actor_id: ActorOption = None,
    db: DbOption = None,
    catalog: CatalogOption = None,
) -> None:
    """Remove an item from a version"""
    engine = get_engine(db, catalog)

    with reported_errors():
        engine.delete_version_item(version_id, item_id, actor_id=actor_id)

    typer.echo(f"✓ Removed item: {item_id}")


if __name__ == "__main__":
    app()
