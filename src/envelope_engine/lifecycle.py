# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation

"""
Lifecycle of system-suggested envelopes.

States are derived from stored fields rather than stored themselves:

- ``dismissed``: ``is_dismissed`` is set. Terminal until reinstated.
- ``accepted``: ``accepted_at`` is set. The envelope keeps ``is_suggested``
  for provenance and is funded like any other envelope.
- ``snoozed``: ``snoozed_until`` lies in the future. Once that moment
  passes the suggestion is ``active`` again with no write needed.
- ``active``: everything else.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable

from envelope_engine.allocation import AllocationCalculator, AllocationOutcome
from envelope_engine.config import EngineConfig
from envelope_engine.errors import (
    EnvelopeNotFoundError,
    InvalidTransitionError,
    NotASuggestionError,
    ValidationError,
)
from envelope_engine.events import EventEmitter
from envelope_engine.registry import describe_safety_net, evaluate_target, monthly_essential_spend
from envelope_engine.storage.interface import EnvelopeStorage
from envelope_engine.types import (
    Envelope,
    EssentialMultipleTarget,
    PayCycle,
    SuggestionState,
)

logger = logging.getLogger("envelope_engine.lifecycle")


def _aware(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def suggestion_state(envelope: Envelope, now: datetime) -> SuggestionState:
    """Derive the lifecycle state of a suggested envelope at ``now``."""
    if envelope.is_dismissed:
        return "dismissed"
    if envelope.accepted_at is not None:
        return "accepted"
    if envelope.snoozed_until is not None and _aware(now) < _aware(envelope.snoozed_until):
        return "snoozed"
    return "active"


class SuggestionLifecycleManager:
    """
    Dismiss, snooze, accept and reinstate suggested envelopes, and keep
    auto-calculated targets current.

    Every transition is one atomic storage update. Reinstating goes through
    the same uniqueness guard as creation, so at most one suggestion of each
    type is ever live per owner.
    """

    def __init__(
        self,
        storage: EnvelopeStorage,
        calculator: AllocationCalculator,
        config: EngineConfig | None = None,
        emitter: EventEmitter | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._storage = storage
        self._calculator = calculator
        self._config = config or EngineConfig()
        self._emitter = emitter if emitter is not None else EventEmitter()
        self._clock = clock if clock is not None else (lambda: datetime.now(tz=timezone.utc))

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def dismiss(self, owner_id: str, envelope_id: str) -> Envelope:
        """Dismiss a suggestion. Dismissing twice is a no-op."""
        envelope = self._require_suggestion(owner_id, envelope_id)
        if envelope.is_dismissed:
            return envelope
        updated = self._storage.update_envelope(owner_id, envelope_id, {"is_dismissed": True})
        self._record("suggestion_dismissed", updated)
        return updated

    def reinstate(self, owner_id: str, envelope_id: str) -> Envelope:
        """
        Bring a dismissed suggestion back. No-op if it is not dismissed.

        Raises:
            DuplicateSuggestionError: If another suggestion of the same type
                became active in the meantime.
        """
        envelope = self._require_suggestion(owner_id, envelope_id)
        if not envelope.is_dismissed:
            return envelope
        updated = self._storage.update_envelope(owner_id, envelope_id, {"is_dismissed": False})
        self._record("suggestion_reinstated", updated)
        return updated

    def snooze(self, owner_id: str, envelope_id: str, until: datetime) -> Envelope:
        """
        Hide a suggestion until ``until``.

        Raises:
            ValidationError: If ``until`` is not in the future.
            InvalidTransitionError: If the suggestion is dismissed or accepted.
        """
        now = self._clock()
        until = _aware(until)
        if until <= _aware(now):
            raise ValidationError(
                f"snooze must end in the future; got {until.isoformat()}", field="until"
            )
        envelope = self._require_suggestion(owner_id, envelope_id)
        state = suggestion_state(envelope, now)
        if state in ("dismissed", "accepted"):
            raise InvalidTransitionError(envelope_id, state, "snooze")
        updated = self._storage.update_envelope(owner_id, envelope_id, {"snoozed_until": until})
        self._record("suggestion_snoozed", updated, snoozed_until=until.isoformat())
        return updated

    def snooze_for_days(self, owner_id: str, envelope_id: str, days: int) -> Envelope:
        """Snooze for a whole number of days from now."""
        if days <= 0:
            raise ValidationError(f"days must be positive, got {days}", field="days")
        return self.snooze(owner_id, envelope_id, _aware(self._clock()) + timedelta(days=days))

    def unsnooze(self, owner_id: str, envelope_id: str) -> Envelope:
        """Clear a snooze early. Visibility never depends on calling this."""
        envelope = self._require_suggestion(owner_id, envelope_id)
        if envelope.snoozed_until is None:
            return envelope
        return self._storage.update_envelope(owner_id, envelope_id, {"snoozed_until": None})

    def accept(self, owner_id: str, envelope_id: str) -> Envelope:
        """
        Accept an active suggestion so it is funded like a normal envelope.

        Raises:
            InvalidTransitionError: Unless the suggestion is active.
        """
        now = self._clock()
        envelope = self._require_suggestion(owner_id, envelope_id)
        state = suggestion_state(envelope, now)
        if state != "active":
            raise InvalidTransitionError(envelope_id, state, "accept")
        updated = self._storage.update_envelope(
            owner_id, envelope_id, {"accepted_at": now, "snoozed_until": None}
        )
        self._record("suggestion_accepted", updated)
        return updated

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def active_suggestions(self, owner_id: str, now: datetime | None = None) -> list[Envelope]:
        """Suggestions to show: not dismissed, not accepted, not snoozed at ``now``."""
        moment = now or self._clock()
        return [
            envelope
            for envelope in self._storage.list_envelopes(owner_id)
            if envelope.is_suggested and suggestion_state(envelope, moment) == "active"
        ]

    def dismissed_suggestions(self, owner_id: str) -> list[Envelope]:
        return [
            envelope
            for envelope in self._storage.list_envelopes(owner_id)
            if envelope.is_suggested and envelope.is_dismissed
        ]

    def hidden_suggestions(self, owner_id: str, now: datetime | None = None) -> list[Envelope]:
        """Suggestions the owner has put away, either dismissed or currently snoozed."""
        moment = now or self._clock()
        return [
            envelope
            for envelope in self._storage.list_envelopes(owner_id)
            if envelope.is_suggested and suggestion_state(envelope, moment) in ("dismissed", "snoozed")
        ]

    # ------------------------------------------------------------------
    # Auto-calculated targets
    # ------------------------------------------------------------------

    def recalculate_if_auto(
        self,
        owner_id: str,
        envelope_id: str,
        income_frequency: PayCycle | None = None,
    ) -> AllocationOutcome | None:
        """
        Recompute a dynamic target and forward it to the calculator.

        Returns None, and writes nothing, when the envelope does not
        auto-calculate or has been dismissed. Running twice with the same
        inputs stores the same ``suggested_amount`` and never touches the
        allocation lock.
        """
        envelope = self._storage.get_envelope(owner_id, envelope_id)
        if envelope is None:
            raise EnvelopeNotFoundError(owner_id, envelope_id)
        if not envelope.auto_calculate_target or envelope.is_dismissed:
            logger.debug(
                "recalculate_skipped",
                extra={"owner_id": owner_id, "envelope_id": envelope_id},
            )
            return None

        siblings = self._storage.list_envelopes(owner_id)
        rule = EssentialMultipleTarget(
            months=envelope.target_months or self._config.safety_net_months
        )
        target = evaluate_target(rule, siblings)
        description = describe_safety_net(monthly_essential_spend(siblings), rule.months)

        if target != envelope.target_amount or description != envelope.description:
            envelope = self._storage.update_envelope(
                owner_id, envelope_id, {"target_amount": target, "description": description}
            )
            logger.info(
                "auto_target_updated",
                extra={"owner_id": owner_id, "envelope_id": envelope_id, "target": str(target)},
            )

        return self._calculator.suggest_allocation(
            envelope, income_frequency or self._config.default_pay_cycle, target=target
        )

    def recalculate_all(
        self,
        owner_id: str,
        income_frequency: PayCycle | None = None,
    ) -> list[AllocationOutcome]:
        """Run ``recalculate_if_auto`` for every auto-calculating envelope of the owner."""
        outcomes: list[AllocationOutcome] = []
        for envelope in self._storage.list_envelopes(owner_id):
            if not envelope.auto_calculate_target:
                continue
            outcome = self.recalculate_if_auto(owner_id, envelope.id, income_frequency)
            if outcome is not None:
                outcomes.append(outcome)
        return outcomes

    def sweep_expired_snoozes(self, owner_id: str, now: datetime | None = None) -> list[Envelope]:
        """
        Clear snoozes that have run out and announce the resurfaced suggestions.

        Purely a notification job: expired snoozes are already visible
        whether or not this runs. Dismissed and accepted suggestions never
        resurface, so their snooze is left as it is.
        """
        moment = _aware(now or self._clock())
        resurfaced: list[Envelope] = []
        for envelope in self._storage.list_envelopes(owner_id):
            if not envelope.is_suggested or envelope.snoozed_until is None:
                continue
            if envelope.is_dismissed or envelope.accepted_at is not None:
                continue
            if _aware(envelope.snoozed_until) > moment:
                continue
            updated = self._storage.update_envelope(owner_id, envelope.id, {"snoozed_until": None})
            self._record("suggestion_resurfaced", updated)
            resurfaced.append(updated)
        return resurfaced

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _require_suggestion(self, owner_id: str, envelope_id: str) -> Envelope:
        envelope = self._storage.get_envelope(owner_id, envelope_id)
        if envelope is None:
            raise EnvelopeNotFoundError(owner_id, envelope_id)
        if not envelope.is_suggested:
            raise NotASuggestionError(envelope_id)
        return envelope

    def _record(self, kind: str, envelope: Envelope, **payload: object) -> None:
        logger.info(
            kind,
            extra={"owner_id": envelope.owner_id, "envelope_id": envelope.id},
        )
        self._emitter.emit(
            kind,  # type: ignore[arg-type]
            envelope.owner_id,
            occurred_at=self._clock(),
            envelope_id=envelope.id,
            suggestion_type=envelope.suggestion_type,
            **payload,
        )
