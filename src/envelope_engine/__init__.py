# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation

"""
envelope-engine: allocation and suggestion engine for envelope budgets.

Quick start::

    from envelope_engine import EnvelopeDraft, EnvelopeEngine, SessionContext

    engine = EnvelopeEngine()
    session = SessionContext(user_id="user-1")

    power = engine.create_envelope(session, EnvelopeDraft(name="Power Bill", target_amount="300"))
    outcome = engine.suggest_allocation(session, power.id, income_frequency="fortnightly")
    engine.lock_allocation(session, power.id)

    engine.register_default_suggestions(session)
    for suggestion in engine.active_suggestions(session):
        print(suggestion.name, suggestion.target_amount)
"""

from envelope_engine.allocation import (
    AllocationCalculator,
    AllocationOutcome,
    compute_per_pay,
    cycles_per_year,
    ideal_per_pay,
    normalize_to_pay_cycle,
    pay_periods_per_bill_cycle,
    pay_periods_until,
)
from envelope_engine.bill_cycle import (
    compute_gap,
    gap_amount,
    infer_cycle_length,
    next_due_date,
    pays_until_due,
)
from envelope_engine.classification import (
    CLASSIFICATION_VERSION,
    Explicit,
    Inferred,
    SubtypeAssignment,
    backfill_subtypes,
    classify_subtype,
    resolve_subtype,
)
from envelope_engine.config import EngineConfig
from envelope_engine.engine import EnvelopeEngine
from envelope_engine.errors import (
    AccessDeniedError,
    AllocationNotFoundError,
    AlreadyLockedError,
    DuplicateSuggestionError,
    EnvelopeEngineError,
    EnvelopeNotFoundError,
    InvalidTransitionError,
    NotASuggestionError,
    NotLockedError,
    ValidationError,
)
from envelope_engine.events import EngineEvent, EventSink, MemoryEventSink, NullEventSink
from envelope_engine.identity import SessionContext
from envelope_engine.lifecycle import SuggestionLifecycleManager, suggestion_state
from envelope_engine.registry import (
    EnvelopeRegistry,
    evaluate_target,
    monthly_essential_spend,
    suggestion_catalogue,
)
from envelope_engine.storage import EnvelopeStorage, MemoryStorage
from envelope_engine.types import (
    Envelope,
    EnvelopeDraft,
    EssentialMultipleTarget,
    FixedTarget,
    GapAnalysis,
    GapResult,
    GapUnknown,
    IncomeAllocation,
    PaysUntilDue,
    ScheduledAllocation,
    SuggestionTemplate,
    TargetRule,
)

__all__ = [
    # Core class
    "EnvelopeEngine",
    "EngineConfig",
    "SessionContext",
    # Components
    "EnvelopeRegistry",
    "AllocationCalculator",
    "SuggestionLifecycleManager",
    # Types
    "Envelope",
    "EnvelopeDraft",
    "IncomeAllocation",
    "AllocationOutcome",
    "GapAnalysis",
    "GapResult",
    "GapUnknown",
    "PaysUntilDue",
    "ScheduledAllocation",
    "SuggestionTemplate",
    "TargetRule",
    "FixedTarget",
    "EssentialMultipleTarget",
    "Explicit",
    "Inferred",
    "SubtypeAssignment",
    # Events
    "EngineEvent",
    "EventSink",
    "MemoryEventSink",
    "NullEventSink",
    # Storage
    "EnvelopeStorage",
    "MemoryStorage",
    # Errors
    "EnvelopeEngineError",
    "ValidationError",
    "DuplicateSuggestionError",
    "AlreadyLockedError",
    "NotLockedError",
    "EnvelopeNotFoundError",
    "AllocationNotFoundError",
    "NotASuggestionError",
    "InvalidTransitionError",
    "AccessDeniedError",
    # Utilities
    "CLASSIFICATION_VERSION",
    "classify_subtype",
    "resolve_subtype",
    "backfill_subtypes",
    "compute_gap",
    "gap_amount",
    "infer_cycle_length",
    "next_due_date",
    "pays_until_due",
    "compute_per_pay",
    "cycles_per_year",
    "ideal_per_pay",
    "normalize_to_pay_cycle",
    "pay_periods_per_bill_cycle",
    "pay_periods_until",
    "suggestion_state",
    "suggestion_catalogue",
    "evaluate_target",
    "monthly_essential_spend",
]
