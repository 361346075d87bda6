"""
Kernel - Event sourcing and cross-cutting infrastructure

Event store, event envelope, ids, time, errors, logging, metrics, retry and
the engine policy. The versions module builds on these.
"""

from budget_versioning.kernel.errors import (
    BudgetVersioningError,
    BusinessRuleError,
    ConflictError,
    EventStoreError,
    NotFoundError,
    StreamVersionConflict,
    ValidationError,
)
from budget_versioning.kernel.events import Event
from budget_versioning.kernel.ids import generate_id
from budget_versioning.kernel.policy import VersioningPolicy
from budget_versioning.kernel.time import ManualTimeProvider, RealTimeProvider, TimeProvider

__all__ = [
    # IDs
    "generate_id",
    # Time
    "TimeProvider",
    "RealTimeProvider",
    "ManualTimeProvider",
    # Events
    "Event",
    # Policy
    "VersioningPolicy",
    # Errors
    "BudgetVersioningError",
    "ValidationError",
    "ConflictError",
    "NotFoundError",
    "BusinessRuleError",
    "EventStoreError",
    "StreamVersionConflict",
]
