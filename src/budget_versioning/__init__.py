"""
Budget Versioning - Scenario planning engine for fiscal-year budgets

Keeps parallel versions of a budget, derives new scenarios from existing ones
with uniform or per-line adjustments, moves versions through an approval
lifecycle and diffs any two of them line by line. Every change is an event in
an append-only log.

Fun fact: the "what if we cut 10%" scenario is old enough that spreadsheet
vendors shipped goal-seek features for it decades ago.
"""

from budget_versioning.service import BudgetVersioning

__version__ = "0.1.0"
__all__ = ["BudgetVersioning", "__version__"]
