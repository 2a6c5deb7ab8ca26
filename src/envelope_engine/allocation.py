# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation

"""
Ideal allocation calculator.

Derives how much of each pay should go into an envelope so that it reaches
its target in time, and lets the owner lock that figure against automatic
recomputation.
"""

from __future__ import annotations

import logging
import math
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Callable

from pydantic import BaseModel

from envelope_engine.bill_cycle import gap_amount
from envelope_engine.errors import (
    AllocationNotFoundError,
    AlreadyLockedError,
    NotLockedError,
    ValidationError,
)
from envelope_engine.events import EventEmitter
from envelope_engine.money import ZERO, quantize, to_decimal, to_money
from envelope_engine.storage.interface import EnvelopeStorage
from envelope_engine.types import (
    CYCLES_PER_YEAR,
    PAY_CYCLE_DAYS,
    Envelope,
    GapAnalysis,
    GapResult,
    IncomeAllocation,
    PayCycle,
)

logger = logging.getLogger("envelope_engine.allocation")


# ─── Frequency arithmetic ─────────────────────────────────────────────────────


def cycles_per_year(frequency: str) -> int:
    """Occurrences per year for a pay cycle or bill frequency. Unknown values count as monthly."""
    return CYCLES_PER_YEAR.get(frequency, 12)


def normalize_to_pay_cycle(amount: Decimal, source_frequency: str, pay_cycle: str) -> Decimal:
    """
    Convert an amount paid at ``source_frequency`` to the equivalent per
    ``pay_cycle`` amount, e.g. $3,000 monthly is $1,384.62 fortnightly.
    """
    annual = to_decimal(amount) * cycles_per_year(source_frequency)
    return quantize(annual / cycles_per_year(pay_cycle))


def ideal_per_pay(target: Decimal, frequency: str, pay_cycle: str) -> Decimal:
    """
    Steady-state per-pay allocation for a recurring bill.

    Depends only on the bill amount, its frequency and the pay cycle, never
    on balances or due dates: a $200 monthly bill paid from a fortnightly
    income needs $92.31 a pay.
    """
    return normalize_to_pay_cycle(target, frequency, pay_cycle)


def pay_periods_per_bill_cycle(bill_frequency: str, pay_cycle: str) -> Decimal:
    """How many pays fall inside one bill cycle, possibly fractional."""
    return Decimal(cycles_per_year(pay_cycle)) / Decimal(cycles_per_year(bill_frequency))


def pay_periods_until(as_of: date, due_date: date, pay_cycle: str) -> int:
    """Whole pays between ``as_of`` and ``due_date``, never fewer than one."""
    days = (due_date - as_of).days
    if days <= 0:
        return 1
    return max(1, math.ceil(days / PAY_CYCLE_DAYS.get(pay_cycle, 30)))


def compute_per_pay(
    target: Decimal,
    gap: Decimal,
    current_balance: Decimal,
    pay_periods: Decimal,
) -> Decimal:
    """
    ``max(0, (target + max(gap, 0) - current_balance) / pay_periods)``,
    rounded half-up to cents.
    """
    if target < 0:
        raise ValidationError(f"target must be >= 0, got {target}", field="target")
    if pay_periods <= 0:
        raise ValidationError(
            f"pay_periods must be positive, got {pay_periods}", field="pay_periods"
        )
    needed = target + max(gap, ZERO) - current_balance
    return max(ZERO, quantize(needed / pay_periods))


# ─── Calculator ───────────────────────────────────────────────────────────────


class AllocationOutcome(BaseModel, frozen=True):
    """
    Result of a suggestion run.

    Attributes:
        computed_amount: What the calculator arrived at this run.
        written: False when the row was locked and left untouched.
        allocation: The stored row after the run.
    """

    computed_amount: Decimal
    written: bool
    allocation: IncomeAllocation


class AllocationCalculator:
    """
    Computes suggested per-pay allocations and manages allocation locks.

    Design contract
    ---------------
    - A locked allocation is never overwritten by a recompute. The check and
      the write happen inside one conditional storage update, so a recompute
      racing a lock cannot clobber the locked value.
    - ``lock_allocation`` and ``unlock_allocation`` are compare-and-set on
      ``allocation_locked``.
    - ``GapUnknown`` is treated as "no gap adjustment".
    """

    def __init__(
        self,
        storage: EnvelopeStorage,
        emitter: EventEmitter | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._storage = storage
        self._emitter = emitter if emitter is not None else EventEmitter()
        self._clock = clock if clock is not None else (lambda: datetime.now(tz=timezone.utc))

    # ─── Suggest ──────────────────────────────────────────────────────────────

    def suggest_allocation(
        self,
        envelope: Envelope,
        income_frequency: PayCycle,
        target: Decimal | None = None,
        gap: GapAnalysis | None = None,
        current_balance: Decimal | None = None,
        pay_periods: Decimal | int | None = None,
    ) -> AllocationOutcome:
        """
        Compute and store the per-pay suggestion for ``envelope``.

        Args:
            envelope: The envelope being funded.
            income_frequency: The owner's pay cycle.
            target: Target balance. None uses ``envelope.target_amount``.
            gap: Bill-cycle analysis. None or GapUnknown adds nothing.
            current_balance: Balance now. None uses ``envelope.current_amount``.
            pay_periods: Pays left to reach the target. When omitted, a known
                gap uses the pays until its due date; otherwise the number of
                pays in one bill cycle of the envelope's frequency.

        Returns:
            An AllocationOutcome. ``written`` is False if the row was locked.

        Raises:
            ValidationError: If the target is negative or pay_periods is not
                positive. Nothing is written.
        """
        resolved_target = to_money(envelope.target_amount if target is None else target)
        balance = to_money(envelope.current_amount if current_balance is None else current_balance)
        periods = self._resolve_pay_periods(envelope, income_frequency, gap, pay_periods)
        amount = compute_per_pay(
            resolved_target,
            gap_amount(gap) if gap is not None else ZERO,
            balance,
            periods,
        )

        written = self._storage.write_suggested_amount(
            envelope.owner_id, envelope.id, amount, self._clock()
        )
        if written is not None:
            logger.debug(
                "allocation_suggested",
                extra={"envelope_id": envelope.id, "owner_id": envelope.owner_id, "amount": str(amount)},
            )
            return AllocationOutcome(computed_amount=amount, written=True, allocation=written)

        logger.debug(
            "allocation_locked_skip",
            extra={"envelope_id": envelope.id, "owner_id": envelope.owner_id},
        )
        current = self._storage.get_allocation(envelope.owner_id, envelope.id)
        if current is None:
            raise AllocationNotFoundError(envelope.owner_id, envelope.id)
        return AllocationOutcome(computed_amount=amount, written=False, allocation=current)

    # ─── Lock / Unlock ────────────────────────────────────────────────────────

    def lock_allocation(self, allocation: IncomeAllocation) -> IncomeAllocation:
        """
        Freeze ``suggested_amount`` against recomputation.

        Raises:
            AlreadyLockedError: If the stored row is already locked.
            AllocationNotFoundError: If the row does not exist.
        """
        now = self._clock()
        updated = self._storage.compare_and_set_lock(
            allocation.owner_id, allocation.envelope_id, expected_locked=False, locked=True, now=now
        )
        if updated is None:
            raise AlreadyLockedError(allocation.envelope_id)
        logger.info(
            "allocation_locked",
            extra={"envelope_id": allocation.envelope_id, "owner_id": allocation.owner_id},
        )
        self._emitter.emit(
            "allocation_locked",
            allocation.owner_id,
            occurred_at=now,
            envelope_id=allocation.envelope_id,
            suggested_amount=str(updated.suggested_amount),
        )
        return updated

    def unlock_allocation(self, allocation: IncomeAllocation) -> IncomeAllocation:
        """
        Clear the lock so later recomputes overwrite ``suggested_amount`` again.

        Raises:
            NotLockedError: If the stored row is not locked.
            AllocationNotFoundError: If the row does not exist.
        """
        now = self._clock()
        updated = self._storage.compare_and_set_lock(
            allocation.owner_id, allocation.envelope_id, expected_locked=True, locked=False, now=now
        )
        if updated is None:
            raise NotLockedError(allocation.envelope_id)
        logger.info(
            "allocation_unlocked",
            extra={"envelope_id": allocation.envelope_id, "owner_id": allocation.owner_id},
        )
        self._emitter.emit(
            "allocation_unlocked",
            allocation.owner_id,
            occurred_at=now,
            envelope_id=allocation.envelope_id,
        )
        return updated

    # ─── Private helpers ──────────────────────────────────────────────────────

    def _resolve_pay_periods(
        self,
        envelope: Envelope,
        income_frequency: PayCycle,
        gap: GapAnalysis | None,
        pay_periods: Decimal | int | None,
    ) -> Decimal:
        if pay_periods is not None:
            return to_decimal(pay_periods)
        if isinstance(gap, GapResult):
            return Decimal(pay_periods_until(gap.as_of, gap.next_due_date, income_frequency))
        return pay_periods_per_bill_cycle(envelope.frequency, income_frequency)
