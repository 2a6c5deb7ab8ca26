# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation

"""
Envelope registry.

Owns envelope identity and classification, and registers the system
suggested envelopes (Starter Stash, CC Holding, Safety Net).
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Iterable

from pydantic import ValidationError as PydanticValidationError

from envelope_engine.classification import (
    Explicit,
    Inferred,
    backfill_subtypes,
    resolve_subtype,
)
from envelope_engine.config import EngineConfig
from envelope_engine.errors import (
    DuplicateSuggestionError,
    EnvelopeNotFoundError,
    ValidationError,
)
from envelope_engine.events import EventEmitter
from envelope_engine.money import ZERO, quantize, to_money
from envelope_engine.storage.interface import EnvelopeStorage
from envelope_engine.types import (
    CYCLES_PER_YEAR,
    Envelope,
    EnvelopeDraft,
    EssentialMultipleTarget,
    FixedTarget,
    Subtype,
    SuggestionTemplate,
    SuggestionType,
    TargetRule,
)

logger = logging.getLogger("envelope_engine.registry")

SAFETY_NET_PENDING_DESCRIPTION = (
    "No worries about this one yet! Once your budget's sorted, "
    "we'll look at building your full emergency fund."
)


def suggestion_catalogue(config: EngineConfig) -> dict[SuggestionType, SuggestionTemplate]:
    """The suggested envelopes offered to every owner, in display order."""
    return {
        "starter-stash": SuggestionTemplate(
            suggestion_type="starter-stash",
            name="Starter Stash",
            subtype="savings",
            target_rule=FixedTarget(amount=config.starter_stash_target),
            description=(
                f"Your first ${config.starter_stash_target:,.0f} emergency buffer. "
                "A safety cushion for life's little surprises."
            ),
            icon="🌱",
        ),
        "cc-holding": SuggestionTemplate(
            suggestion_type="cc-holding",
            name="CC Holding",
            subtype="tracking",
            target_rule=FixedTarget(amount=ZERO),
            description="Tracks money set aside for credit card payments. Spend on CC, transfer here.",
            icon="💳",
        ),
        "safety-net": SuggestionTemplate(
            suggestion_type="safety-net",
            name="Safety Net",
            subtype="savings",
            target_rule=EssentialMultipleTarget(months=config.safety_net_months),
            description=SAFETY_NET_PENDING_DESCRIPTION,
            icon="🛡️",
        ),
    }


# ─── Target rules ─────────────────────────────────────────────────────────────


def monthly_essential_spend(envelopes: Iterable[Envelope]) -> Decimal:
    """
    Sum the monthly-equivalent targets of the owner's essential envelopes.

    Suggested and dismissed envelopes are left out so the Safety Net never
    counts itself.
    """
    total = ZERO
    for envelope in envelopes:
        if envelope.is_suggested or envelope.is_dismissed:
            continue
        if envelope.priority != "essential" or envelope.envelope_type != "expense":
            continue
        total += envelope.target_amount * CYCLES_PER_YEAR[envelope.frequency] / 12
    return quantize(total)


def evaluate_target(rule: TargetRule, envelopes: Iterable[Envelope]) -> Decimal:
    """Resolve a target rule to an amount; essential multiples round to whole dollars."""
    if isinstance(rule, FixedTarget):
        return rule.amount
    monthly = monthly_essential_spend(envelopes)
    return to_money((monthly * rule.months).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def describe_safety_net(monthly_essential: Decimal, months: int) -> str:
    if monthly_essential <= 0:
        return SAFETY_NET_PENDING_DESCRIPTION
    rounded = monthly_essential.quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return (
        f"Your full emergency fund goal: {months} months of essentials "
        f"(${rounded:,}/mo × {months})"
    )


# ─── Registry ─────────────────────────────────────────────────────────────────


class EnvelopeRegistry:
    """
    Creates and classifies envelopes for a single owner at a time.

    Subtypes set explicitly are authoritative. Only envelopes whose subtype
    was inferred are touched by ``backfill``.

    Example::

        registry = EnvelopeRegistry(MemoryStorage())
        groceries = registry.create_envelope("user-1", EnvelopeDraft(name="Groceries"))
        assert groceries.subtype == "spending"
    """

    def __init__(
        self,
        storage: EnvelopeStorage,
        config: EngineConfig | None = None,
        emitter: EventEmitter | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._storage = storage
        self._config = config or EngineConfig()
        self._emitter = emitter if emitter is not None else EventEmitter()
        self._clock = clock if clock is not None else (lambda: datetime.now(tz=timezone.utc))
        self._catalogue = suggestion_catalogue(self._config)

    @property
    def catalogue(self) -> dict[SuggestionType, SuggestionTemplate]:
        return dict(self._catalogue)

    # ------------------------------------------------------------------
    # User envelopes
    # ------------------------------------------------------------------

    def create_envelope(self, owner_id: str, draft: EnvelopeDraft) -> Envelope:
        """
        Create a user envelope. The subtype is explicit when the draft names
        one, otherwise it is inferred from the name.
        """
        assignment = Explicit(subtype=draft.subtype) if draft.subtype is not None else Inferred()
        subtype, source = resolve_subtype(assignment, draft.name, draft.envelope_type)
        fields = draft.model_dump(exclude={"subtype"})
        try:
            envelope = Envelope(
                owner_id=owner_id,
                subtype=subtype,
                subtype_source=source,
                created_at=self._clock(),
                **fields,
            )
        except PydanticValidationError as exc:
            raise ValidationError(str(exc)) from exc
        self._storage.save_envelope(envelope)
        logger.info(
            "envelope_created",
            extra={"owner_id": owner_id, "envelope_id": envelope.id, "subtype": subtype, "source": source},
        )
        return envelope

    def assign_subtype(self, owner_id: str, envelope_id: str, subtype: Subtype) -> Envelope:
        """Set a subtype explicitly. Later backfills will not change it."""
        self._require_envelope(owner_id, envelope_id)
        return self._storage.update_envelope(
            owner_id, envelope_id, {"subtype": subtype, "subtype_source": "explicit"}
        )

    def backfill(self, owner_id: str) -> list[Envelope]:
        """
        Reclassify the owner's inferred envelopes against the current lexicon.

        Idempotent: a second run changes nothing. Returns the envelopes that
        changed.
        """
        changed = backfill_subtypes(self._storage.list_envelopes(owner_id))
        updated = [
            self._storage.update_envelope(owner_id, envelope.id, {"subtype": envelope.subtype})
            for envelope in changed
        ]
        if updated:
            logger.info("subtype_backfill", extra={"owner_id": owner_id, "changed": len(updated)})
        return updated

    # ------------------------------------------------------------------
    # Suggested envelopes
    # ------------------------------------------------------------------

    def register_suggested_envelope(
        self,
        owner_id: str,
        suggestion_type: SuggestionType,
        target_rule: TargetRule | None = None,
    ) -> Envelope:
        """
        Create a suggested envelope of ``suggestion_type`` for the owner.

        ``auto_calculate_target`` is set when the target rule is dynamic.

        Raises:
            DuplicateSuggestionError: If an active suggestion of this type
                already exists for the owner.
        """
        template = self._catalogue[suggestion_type]
        rule = target_rule if target_rule is not None else template.target_rule

        existing = self._storage.find_active_suggestion(owner_id, suggestion_type)
        if existing is not None:
            raise DuplicateSuggestionError(owner_id, suggestion_type, existing_id=existing.id)

        description = template.description
        siblings = self._storage.list_envelopes(owner_id)
        target = evaluate_target(rule, siblings)
        if isinstance(rule, EssentialMultipleTarget):
            description = describe_safety_net(monthly_essential_spend(siblings), rule.months)

        envelope = Envelope(
            owner_id=owner_id,
            name=template.name,
            envelope_type="expense",
            subtype=template.subtype,
            subtype_source="explicit",
            target_amount=target,
            priority=template.priority,
            is_suggested=True,
            suggestion_type=suggestion_type,
            is_cc_holding=suggestion_type == "cc-holding",
            auto_calculate_target=isinstance(rule, EssentialMultipleTarget),
            target_months=rule.months if isinstance(rule, EssentialMultipleTarget) else None,
            category=self._config.suggestion_category,
            description=description,
            icon=template.icon,
            created_at=self._clock(),
        )
        # The storage guard catches a concurrent insert that passed the check above.
        self._storage.save_envelope(envelope)

        logger.info(
            "suggestion_created",
            extra={"owner_id": owner_id, "envelope_id": envelope.id, "suggestion_type": suggestion_type},
        )
        self._emitter.emit(
            "suggestion_created",
            owner_id,
            occurred_at=envelope.created_at,
            envelope_id=envelope.id,
            suggestion_type=suggestion_type,
            target_amount=str(target),
        )
        return envelope

    def register_default_suggestions(self, owner_id: str) -> list[Envelope]:
        """
        Register every catalogue suggestion the owner does not already have.

        Returns only the envelopes created by this call.
        """
        created: list[Envelope] = []
        for suggestion_type in self._catalogue:
            try:
                created.append(self.register_suggested_envelope(owner_id, suggestion_type))
            except DuplicateSuggestionError:
                logger.debug(
                    "suggestion_exists",
                    extra={"owner_id": owner_id, "suggestion_type": suggestion_type},
                )
        return created

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _require_envelope(self, owner_id: str, envelope_id: str) -> Envelope:
        envelope = self._storage.get_envelope(owner_id, envelope_id)
        if envelope is None:
            raise EnvelopeNotFoundError(owner_id, envelope_id)
        return envelope
