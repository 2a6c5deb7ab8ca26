# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation

"""
Bill-cycle gap analysis.

Given an envelope's bill-cycle start date, project the next due date and
work out whether the envelope will hold enough by then. A positive gap means
the envelope is under-funded for the coming bill.
"""

from __future__ import annotations

import calendar
import statistics
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Sequence

from envelope_engine.errors import ValidationError
from envelope_engine.money import ZERO, to_money
from envelope_engine.types import (
    PAY_CYCLE_DAYS,
    CycleSource,
    Envelope,
    GapAnalysis,
    GapResult,
    GapUnknown,
    PayCycle,
    PaysUntilDue,
    PayUrgency,
    ScheduledAllocation,
)

DEFAULT_CYCLE_DAYS = 30


def infer_cycle_length(bill_dates: Iterable[date]) -> int | None:
    """
    Infer a bill cycle length in days from past bill dates.

    Uses the lower median of the intervals between distinct sorted dates so
    one late bill does not skew the estimate. Returns None with fewer than
    two distinct dates.
    """
    ordered = sorted(set(bill_dates))
    if len(ordered) < 2:
        return None
    intervals = [(later - earlier).days for earlier, later in zip(ordered, ordered[1:])]
    return statistics.median_low(intervals)


def next_due_date(start: date, as_of: date, cycle_days: int) -> date:
    """Smallest date on or after ``as_of`` that is a whole number of cycles from ``start``."""
    if cycle_days <= 0:
        raise ValidationError(f"cycle_days must be positive, got {cycle_days}", field="cycle_days")
    offset = (start - as_of).days % cycle_days
    return as_of + timedelta(days=offset)


def resolve_cycle_length(
    cycle_days: int | None,
    bill_history: Sequence[date] | None,
    default_cycle_days: int,
) -> tuple[int, CycleSource]:
    if cycle_days is not None:
        if cycle_days <= 0:
            raise ValidationError(
                f"cycle_days must be positive, got {cycle_days}", field="cycle_days"
            )
        return cycle_days, "explicit"
    if bill_history:
        inferred = infer_cycle_length(bill_history)
        if inferred is not None and inferred > 0:
            return inferred, "history"
    return default_cycle_days, "default"


def compute_gap(
    envelope: Envelope,
    current_balance: Decimal | None,
    as_of: date,
    cycle_days: int | None = None,
    bill_history: Sequence[date] | None = None,
    scheduled: Iterable[ScheduledAllocation] = (),
    default_cycle_days: int = DEFAULT_CYCLE_DAYS,
) -> GapAnalysis:
    """
    Compute the funding gap for an envelope's next bill.

    gap = target at due date - current balance - allocations scheduled in
    ``[as_of, due_date)``. An allocation landing on the due date itself is
    treated as too late for the bill.

    Args:
        envelope: The envelope to analyse. Its ``target_amount`` is the
            balance required when the bill falls due.
        current_balance: Balance now. None uses ``envelope.current_amount``.
        as_of: The date the analysis is made on.
        cycle_days: Explicit cycle length, overriding history and default.
        bill_history: Past bill dates used to infer the cycle length.
        scheduled: Allocations already planned into this envelope.
        default_cycle_days: Length used when nothing else is known.

    Returns:
        A GapResult, or GapUnknown when the envelope has no bill-cycle
        start date.
    """
    if envelope.bill_cycle_start_date is None:
        return GapUnknown(envelope_id=envelope.id, reason="bill_cycle_start_date is not set")

    length, source = resolve_cycle_length(cycle_days, bill_history, default_cycle_days)
    due = next_due_date(envelope.bill_cycle_start_date, as_of, length)

    balance = to_money(envelope.current_amount if current_balance is None else current_balance)
    required = envelope.target_amount
    before_due = sum(
        (item.amount for item in scheduled if as_of <= item.on < due),
        ZERO,
    )

    return GapResult(
        envelope_id=envelope.id,
        start_date=envelope.bill_cycle_start_date,
        cycle_days=length,
        cycle_source=source,
        as_of=as_of,
        next_due_date=due,
        days_until_due=(due - as_of).days,
        required_balance=required,
        current_balance=balance,
        scheduled_before_due=to_money(before_due),
        gap=to_money(required - balance - before_due),
    )


def gap_amount(analysis: GapAnalysis) -> Decimal:
    """The gap to add to a target; GapUnknown and surpluses count as zero."""
    if isinstance(analysis, GapUnknown):
        return ZERO
    return max(analysis.gap, ZERO)


# ─── Pays until due ───────────────────────────────────────────────────────────


def _add_month(day: date) -> date:
    year = day.year + (1 if day.month == 12 else 0)
    month = 1 if day.month == 12 else day.month + 1
    return day.replace(year=year, month=month, day=min(day.day, calendar.monthrange(year, month)[1]))


def roll_pay_date_forward(pay_date: date, pay_cycle: PayCycle, as_of: date) -> date:
    """Advance a stored pay date by whole pay cycles until it is on or after ``as_of``."""
    current = pay_date
    while current < as_of:
        if pay_cycle == "monthly":
            current = _add_month(current)
        else:
            current += timedelta(days=PAY_CYCLE_DAYS[pay_cycle])
    return current


def pays_until_due(
    due_date: date,
    next_pay_date: date,
    pay_cycle: PayCycle,
    as_of: date,
    is_funded: bool = False,
) -> PaysUntilDue:
    """
    Count the pay days left to fund a bill.

    ``pays`` is -1 when the bill is overdue, 0 when it falls due on or
    before the next pay day, otherwise one more than the whole pay cycles
    between the next pay day and the due date. Funded bills carry no
    urgency.
    """
    next_pay = roll_pay_date_forward(next_pay_date, pay_cycle, as_of)
    days_until_due = (due_date - as_of).days
    days_until_pay = (next_pay - as_of).days

    if days_until_due < 0:
        pays = -1
    elif days_until_due <= days_until_pay:
        pays = 0
    else:
        pays = 1 + (days_until_due - days_until_pay) // PAY_CYCLE_DAYS[pay_cycle]

    urgency: PayUrgency
    if is_funded:
        urgency = "none"
    elif pays < 0:
        urgency = "overdue"
    elif pays <= 1:
        urgency = "high"
    elif pays == 2:
        urgency = "medium"
    elif pays <= 4:
        urgency = "low"
    else:
        urgency = "none"

    return PaysUntilDue(pays=pays, days_until_due=days_until_due, urgency=urgency)
