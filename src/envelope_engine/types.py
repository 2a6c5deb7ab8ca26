# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Literal, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator, model_validator

from envelope_engine.money import to_money

# ─── Vocabularies ─────────────────────────────────────────────────────────────

EnvelopeType = Literal["income", "expense"]

Subtype = Literal["bill", "spending", "savings", "goal", "tracking", "debt"]

SubtypeSource = Literal["explicit", "inferred"]

SuggestionType = Literal["starter-stash", "cc-holding", "safety-net"]

BillFrequency = Literal["weekly", "fortnightly", "monthly", "quarterly", "annual", "once"]

PayCycle = Literal["weekly", "fortnightly", "twice_monthly", "monthly"]

Priority = Literal["essential", "important", "discretionary"]

SuggestionState = Literal["active", "snoozed", "dismissed", "accepted"]

ICON_MAX_LENGTH = 50

CYCLES_PER_YEAR: dict[str, int] = {
    "weekly": 52,
    "fortnightly": 26,
    "twice_monthly": 24,
    "monthly": 12,
    "quarterly": 4,
    "annual": 1,
    "once": 1,
}

# Spacing used to count pay days; monthly is approximated.
PAY_CYCLE_DAYS: dict[str, int] = {
    "weekly": 7,
    "fortnightly": 14,
    "twice_monthly": 15,
    "monthly": 30,
}


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


# ─── Envelope ─────────────────────────────────────────────────────────────────


class EnvelopeDraft(BaseModel):
    """Input model for a user-created envelope."""

    name: str = Field(..., min_length=1)
    envelope_type: EnvelopeType = "expense"
    subtype: Optional[Subtype] = Field(
        None, description="Explicit subtype. When omitted the name lexicon decides."
    )
    target_amount: Decimal = Field(Decimal("0.00"), ge=0)
    current_amount: Decimal = Decimal("0.00")
    frequency: BillFrequency = "monthly"
    priority: Optional[Priority] = None
    bill_cycle_start_date: Optional[date] = None
    description: str = ""
    icon: str = Field("", max_length=ICON_MAX_LENGTH)
    show_in_parent_budget: bool = False

    @field_validator("target_amount", "current_amount", mode="before")
    @classmethod
    def quantize_amounts(cls, value: Any) -> Decimal:
        return to_money(value)


class Envelope(BaseModel):
    """
    A named budget bucket owned by exactly one user.

    ``suggestion_type`` may only be set on system-suggested envelopes.
    ``subtype_source`` records whether the subtype was assigned explicitly
    or inferred from the name lexicon; backfills only touch inferred ones.
    ``target_months`` keeps the multiple an auto-calculated target was
    registered with so recalculation reuses it.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    owner_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    envelope_type: EnvelopeType = "expense"
    subtype: Subtype = "bill"
    subtype_source: SubtypeSource = "inferred"
    target_amount: Decimal = Field(Decimal("0.00"), ge=0)
    current_amount: Decimal = Decimal("0.00")
    frequency: BillFrequency = "monthly"
    priority: Optional[Priority] = None
    is_suggested: bool = False
    suggestion_type: Optional[SuggestionType] = None
    is_dismissed: bool = False
    is_cc_holding: bool = False
    auto_calculate_target: bool = False
    target_months: Optional[int] = Field(
        None, gt=0, description="Months of essential spend an auto-calculated target holds."
    )
    category: str = ""
    snoozed_until: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    bill_cycle_start_date: Optional[date] = None
    description: str = ""
    icon: str = Field("", max_length=ICON_MAX_LENGTH)
    show_in_parent_budget: bool = False
    created_at: datetime = Field(default_factory=_utcnow)

    model_config = {"validate_assignment": True}

    @field_validator("target_amount", "current_amount", mode="before")
    @classmethod
    def quantize_amounts(cls, value: Any) -> Decimal:
        return to_money(value)

    @model_validator(mode="after")
    def suggestion_type_requires_suggested(self) -> "Envelope":
        if self.suggestion_type is not None and not self.is_suggested:
            raise ValueError("suggestion_type may only be set when is_suggested is true")
        return self

    @property
    def is_active_suggestion(self) -> bool:
        """True for suggested envelopes that still hold their uniqueness slot."""
        return self.is_suggested and not self.is_dismissed


# ─── Income allocation ────────────────────────────────────────────────────────


class IncomeAllocation(BaseModel):
    """
    The per-pay amount suggested for one envelope.

    While ``allocation_locked`` is true, automatic recomputation leaves
    ``suggested_amount`` untouched.
    """

    owner_id: str
    envelope_id: str
    suggested_amount: Optional[Decimal] = None
    allocation_locked: bool = False
    locked_at: Optional[datetime] = None
    updated_at: datetime = Field(default_factory=_utcnow)

    @field_validator("suggested_amount", mode="before")
    @classmethod
    def quantize_suggested(cls, value: Any) -> Optional[Decimal]:
        if value is None:
            return None
        return to_money(value)

    @model_validator(mode="after")
    def lock_fields_agree(self) -> "IncomeAllocation":
        if self.allocation_locked != (self.locked_at is not None):
            raise ValueError("locked_at must be set if and only if allocation_locked is true")
        return self


# ─── Bill cycle ───────────────────────────────────────────────────────────────

CycleSource = Literal["explicit", "history", "default"]


class ScheduledAllocation(BaseModel, frozen=True):
    """A future allocation already planned into an envelope."""

    on: date
    amount: Decimal

    @field_validator("amount", mode="before")
    @classmethod
    def quantize_amount(cls, value: Any) -> Decimal:
        return to_money(value)


class GapResult(BaseModel, frozen=True):
    """Bill-cycle analysis for an envelope with a known cycle start."""

    envelope_id: str
    start_date: date
    cycle_days: int
    cycle_source: CycleSource
    as_of: date
    next_due_date: date
    days_until_due: int
    required_balance: Decimal
    current_balance: Decimal
    scheduled_before_due: Decimal
    gap: Decimal

    @property
    def at_risk(self) -> bool:
        return self.gap > 0


class GapUnknown(BaseModel, frozen=True):
    """Sentinel returned when there is not enough bill-cycle data to analyse."""

    envelope_id: str
    reason: str


GapAnalysis = Union[GapResult, GapUnknown]


PayUrgency = Literal["overdue", "high", "medium", "low", "none"]


class PaysUntilDue(BaseModel, frozen=True):
    """How many pay days remain before a bill falls due."""

    pays: int = Field(..., description="-1 when overdue, 0 when due on or before the next pay")
    days_until_due: int
    urgency: PayUrgency


# ─── Target rules ─────────────────────────────────────────────────────────────


class FixedTarget(BaseModel, frozen=True):
    """A target that never changes unless the user edits it."""

    kind: Literal["fixed"] = "fixed"
    amount: Decimal = Field(Decimal("0.00"), ge=0)

    @field_validator("amount", mode="before")
    @classmethod
    def quantize_amount(cls, value: Any) -> Decimal:
        return to_money(value)


class EssentialMultipleTarget(BaseModel, frozen=True):
    """A target recomputed as ``months`` times the monthly essential spend."""

    kind: Literal["essential-multiple"] = "essential-multiple"
    months: int = Field(3, gt=0)


TargetRule = Union[FixedTarget, EssentialMultipleTarget]


class SuggestionTemplate(BaseModel, frozen=True):
    """Catalogue entry describing one system-suggested envelope."""

    suggestion_type: SuggestionType
    name: str
    subtype: Subtype
    target_rule: TargetRule
    description: str
    icon: str = Field("", max_length=ICON_MAX_LENGTH)
    priority: Optional[Priority] = "essential"
