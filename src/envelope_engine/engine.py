# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Iterable, Sequence

from pydantic import ValidationError as PydanticValidationError

from envelope_engine.allocation import AllocationCalculator, AllocationOutcome
from envelope_engine.bill_cycle import compute_gap
from envelope_engine.config import EngineConfig
from envelope_engine.errors import (
    AccessDeniedError,
    AllocationNotFoundError,
    EnvelopeNotFoundError,
    ValidationError,
)
from envelope_engine.events import EventEmitter, EventSink
from envelope_engine.identity import SessionContext, require_read, require_write, visible_to
from envelope_engine.lifecycle import SuggestionLifecycleManager
from envelope_engine.registry import EnvelopeRegistry
from envelope_engine.storage.interface import EnvelopeStorage
from envelope_engine.storage.memory import MemoryStorage
from envelope_engine.types import (
    Envelope,
    EnvelopeDraft,
    GapAnalysis,
    IncomeAllocation,
    PayCycle,
    ScheduledAllocation,
    Subtype,
    SuggestionType,
    TargetRule,
)

logger = logging.getLogger("envelope_engine.engine")

# Fields a user may edit directly. Subtype goes through assign_subtype and
# suggestion fields through the lifecycle manager.
EDITABLE_FIELDS = frozenset(
    {
        "name",
        "target_amount",
        "current_amount",
        "frequency",
        "priority",
        "bill_cycle_start_date",
        "description",
        "icon",
        "show_in_parent_budget",
    }
)


class EnvelopeEngine:
    """
    Entry point for an application layer.

    Design contract
    ---------------
    - Every call takes the authenticated ``SessionContext``. Writes always
      target ``session.user_id``; a caller cannot name another owner.
    - Reads of another owner's data are allowed only for owners the identity
      layer listed in ``session.viewable_owner_ids``, and only for envelopes
      flagged ``show_in_parent_budget``. Those reads never grant writes.
    - Each operation is one unit of work against storage. Rejected input
      raises before anything is written.

    Usage
    -----
    ::

        engine = EnvelopeEngine()
        session = SessionContext(user_id="user-1")
        power = engine.create_envelope(session, EnvelopeDraft(name="Power Bill", target_amount="300"))
        outcome = engine.suggest_allocation(session, power.id, income_frequency="fortnightly")
        engine.lock_allocation(session, power.id)
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        storage: EnvelopeStorage | None = None,
        event_sink: EventSink | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._config = EngineConfig.model_validate(config.model_dump() if config else {})
        self._storage: EnvelopeStorage = storage if storage is not None else MemoryStorage()
        self._clock = clock if clock is not None else (lambda: datetime.now(tz=timezone.utc))
        self._emitter = EventEmitter(event_sink)

        self.registry = EnvelopeRegistry(self._storage, self._config, self._emitter, self._clock)
        self.calculator = AllocationCalculator(self._storage, self._emitter, self._clock)
        self.lifecycle = SuggestionLifecycleManager(
            self._storage, self.calculator, self._config, self._emitter, self._clock
        )

    @property
    def config(self) -> EngineConfig:
        return self._config

    # ─── Envelopes ────────────────────────────────────────────────────────────

    def create_envelope(self, session: SessionContext, draft: EnvelopeDraft | dict[str, Any]) -> Envelope:
        """Create an envelope for the session user. Dicts are validated as EnvelopeDraft."""
        if isinstance(draft, dict):
            draft = _validate_draft(draft)
        return self.registry.create_envelope(session.user_id, draft)

    def update_envelope(self, session: SessionContext, envelope_id: str, **changes: Any) -> Envelope:
        """
        Edit user-facing envelope fields.

        Renaming does not reclassify; classification runs once at creation
        and during backfills only.

        Raises:
            ValidationError: If a field is not editable or a value is invalid.
        """
        blocked = set(changes) - EDITABLE_FIELDS
        if blocked:
            raise ValidationError(f"Fields not editable: {sorted(blocked)}", field=sorted(blocked)[0])
        owner_id = require_write(session, session.user_id)
        self._require_envelope(owner_id, envelope_id)
        return self._storage.update_envelope(owner_id, envelope_id, changes)

    def get_envelope(
        self,
        session: SessionContext,
        envelope_id: str,
        owner_id: str | None = None,
    ) -> Envelope:
        owner = require_read(session, owner_id or session.user_id)
        envelope = self._require_envelope(owner, envelope_id)
        if not visible_to(session, envelope):
            raise AccessDeniedError(session.user_id, owner, "read")
        return envelope

    def list_envelopes(self, session: SessionContext, owner_id: str | None = None) -> list[Envelope]:
        """List envelopes of the session user, or the visible ones of a linked owner."""
        owner = require_read(session, owner_id or session.user_id)
        return [
            envelope
            for envelope in self._storage.list_envelopes(owner)
            if visible_to(session, envelope)
        ]

    def assign_subtype(self, session: SessionContext, envelope_id: str, subtype: Subtype) -> Envelope:
        return self.registry.assign_subtype(session.user_id, envelope_id, subtype)

    def backfill_subtypes(self, session: SessionContext) -> list[Envelope]:
        return self.registry.backfill(session.user_id)

    # ─── Suggestions ──────────────────────────────────────────────────────────

    def register_suggested_envelope(
        self,
        session: SessionContext,
        suggestion_type: SuggestionType,
        target_rule: TargetRule | None = None,
    ) -> Envelope:
        return self.registry.register_suggested_envelope(session.user_id, suggestion_type, target_rule)

    def register_default_suggestions(self, session: SessionContext) -> list[Envelope]:
        return self.registry.register_default_suggestions(session.user_id)

    def dismiss(self, session: SessionContext, envelope_id: str) -> Envelope:
        return self.lifecycle.dismiss(session.user_id, envelope_id)

    def reinstate(self, session: SessionContext, envelope_id: str) -> Envelope:
        return self.lifecycle.reinstate(session.user_id, envelope_id)

    def snooze(self, session: SessionContext, envelope_id: str, until: datetime) -> Envelope:
        return self.lifecycle.snooze(session.user_id, envelope_id, until)

    def snooze_for_days(self, session: SessionContext, envelope_id: str, days: int) -> Envelope:
        return self.lifecycle.snooze_for_days(session.user_id, envelope_id, days)

    def unsnooze(self, session: SessionContext, envelope_id: str) -> Envelope:
        return self.lifecycle.unsnooze(session.user_id, envelope_id)

    def accept(self, session: SessionContext, envelope_id: str) -> Envelope:
        return self.lifecycle.accept(session.user_id, envelope_id)

    def active_suggestions(self, session: SessionContext, now: datetime | None = None) -> list[Envelope]:
        return self.lifecycle.active_suggestions(session.user_id, now)

    def dismissed_suggestions(self, session: SessionContext) -> list[Envelope]:
        return self.lifecycle.dismissed_suggestions(session.user_id)

    def hidden_suggestions(self, session: SessionContext, now: datetime | None = None) -> list[Envelope]:
        return self.lifecycle.hidden_suggestions(session.user_id, now)

    def recalculate_if_auto(
        self,
        session: SessionContext,
        envelope_id: str,
        income_frequency: PayCycle | None = None,
    ) -> AllocationOutcome | None:
        return self.lifecycle.recalculate_if_auto(session.user_id, envelope_id, income_frequency)

    def recalculate_all(
        self,
        session: SessionContext,
        income_frequency: PayCycle | None = None,
    ) -> list[AllocationOutcome]:
        return self.lifecycle.recalculate_all(session.user_id, income_frequency)

    def sweep_expired_snoozes(self, session: SessionContext, now: datetime | None = None) -> list[Envelope]:
        return self.lifecycle.sweep_expired_snoozes(session.user_id, now)

    # ─── Bill cycle ───────────────────────────────────────────────────────────

    def compute_gap(
        self,
        session: SessionContext,
        envelope_id: str,
        as_of: date | None = None,
        current_balance: Decimal | None = None,
        cycle_days: int | None = None,
        bill_history: Sequence[date] | None = None,
        scheduled: Iterable[ScheduledAllocation] = (),
        owner_id: str | None = None,
    ) -> GapAnalysis:
        """Bill-cycle gap for an envelope, readable by linked viewers too."""
        envelope = self.get_envelope(session, envelope_id, owner_id)
        return compute_gap(
            envelope,
            current_balance,
            as_of or self._clock().date(),
            cycle_days=cycle_days,
            bill_history=bill_history,
            scheduled=scheduled,
            default_cycle_days=self._config.default_cycle_days,
        )

    # ─── Allocations ──────────────────────────────────────────────────────────

    def suggest_allocation(
        self,
        session: SessionContext,
        envelope_id: str,
        income_frequency: PayCycle | None = None,
        target: Decimal | None = None,
        as_of: date | None = None,
        current_balance: Decimal | None = None,
        pay_periods: Decimal | int | None = None,
        cycle_days: int | None = None,
        bill_history: Sequence[date] | None = None,
        scheduled: Iterable[ScheduledAllocation] = (),
    ) -> AllocationOutcome:
        """
        Analyse the bill cycle and store the per-pay suggestion for an envelope.

        Envelopes without a bill-cycle start date get no gap adjustment.
        A locked allocation is left untouched.

        The gap is added on top of the target, and the gap itself is the
        target less the balance and scheduled amounts. An under-funded bill
        therefore counts its shortfall twice: a $300 bill holding $50 asks
        for (300 + 250 - 50) = $500 over the pays left. Callers that want
        the plain target spread over the pays should use
        ``calculator.suggest_allocation`` without a gap.
        """
        owner_id = require_write(session, session.user_id)
        envelope = self._require_envelope(owner_id, envelope_id)
        scheduled = list(scheduled)
        gap = compute_gap(
            envelope,
            current_balance,
            as_of or self._clock().date(),
            cycle_days=cycle_days,
            bill_history=bill_history,
            scheduled=scheduled,
            default_cycle_days=self._config.default_cycle_days,
        )
        return self.calculator.suggest_allocation(
            envelope,
            income_frequency or self._config.default_pay_cycle,
            target=target,
            gap=gap,
            current_balance=current_balance,
            pay_periods=pay_periods,
        )

    def get_allocation(
        self,
        session: SessionContext,
        envelope_id: str,
        owner_id: str | None = None,
    ) -> IncomeAllocation:
        envelope = self.get_envelope(session, envelope_id, owner_id)
        allocation = self._storage.get_allocation(envelope.owner_id, envelope_id)
        if allocation is None:
            raise AllocationNotFoundError(envelope.owner_id, envelope_id)
        return allocation

    def list_allocations(self, session: SessionContext) -> list[IncomeAllocation]:
        return self._storage.list_allocations(session.user_id)

    def lock_allocation(self, session: SessionContext, envelope_id: str) -> IncomeAllocation:
        return self.calculator.lock_allocation(self._require_own_allocation(session, envelope_id))

    def unlock_allocation(self, session: SessionContext, envelope_id: str) -> IncomeAllocation:
        return self.calculator.unlock_allocation(self._require_own_allocation(session, envelope_id))

    # ─── Private helpers ──────────────────────────────────────────────────────

    def _require_envelope(self, owner_id: str, envelope_id: str) -> Envelope:
        envelope = self._storage.get_envelope(owner_id, envelope_id)
        if envelope is None:
            raise EnvelopeNotFoundError(owner_id, envelope_id)
        return envelope

    def _require_own_allocation(self, session: SessionContext, envelope_id: str) -> IncomeAllocation:
        owner_id = require_write(session, session.user_id)
        allocation = self._storage.get_allocation(owner_id, envelope_id)
        if allocation is None:
            raise AllocationNotFoundError(owner_id, envelope_id)
        return allocation


def _validate_draft(data: dict[str, Any]) -> EnvelopeDraft:
    try:
        return EnvelopeDraft.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError(str(exc)) from exc
