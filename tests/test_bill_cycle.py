# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation
"""Tests for bill-cycle gap analysis and pays-until-due."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from envelope_engine.bill_cycle import (
    compute_gap,
    gap_amount,
    infer_cycle_length,
    next_due_date,
    pays_until_due,
)
from envelope_engine.errors import ValidationError
from envelope_engine.types import Envelope, GapResult, GapUnknown, ScheduledAllocation


def _power_bill(**overrides: object) -> Envelope:
    fields: dict[str, object] = {
        "owner_id": "user-001",
        "name": "Power Bill",
        "target_amount": "300",
        "current_amount": "50",
        "bill_cycle_start_date": date(2024, 1, 1),
    }
    fields.update(overrides)
    return Envelope(**fields)


# ---------------------------------------------------------------------------
# TestNextDueDate
# ---------------------------------------------------------------------------


class TestNextDueDate:
    def test_projects_forward_by_whole_cycles(self) -> None:
        assert next_due_date(date(2024, 1, 1), date(2024, 1, 20), 30) == date(2024, 1, 31)

    def test_due_today_counts(self) -> None:
        assert next_due_date(date(2024, 1, 1), date(2024, 1, 31), 30) == date(2024, 1, 31)

    def test_start_in_future_uses_congruent_earlier_date(self) -> None:
        # 2024-03-01 minus 30 days is 2024-01-31, still on or after as_of.
        assert next_due_date(date(2024, 3, 1), date(2024, 1, 20), 30) == date(2024, 1, 31)

    def test_rejects_non_positive_cycle(self) -> None:
        with pytest.raises(ValidationError):
            next_due_date(date(2024, 1, 1), date(2024, 1, 20), 0)


class TestInferCycleLength:
    def test_median_interval(self) -> None:
        history = [date(2024, 1, 1), date(2024, 1, 29), date(2024, 2, 26), date(2024, 4, 1)]
        # Intervals 28, 28, 35 -> lower median 28
        assert infer_cycle_length(history) == 28

    def test_needs_two_distinct_dates(self) -> None:
        assert infer_cycle_length([date(2024, 1, 1), date(2024, 1, 1)]) is None
        assert infer_cycle_length([]) is None


# ---------------------------------------------------------------------------
# TestComputeGap
# ---------------------------------------------------------------------------


class TestComputeGap:
    def test_reference_gap(self) -> None:
        result = compute_gap(_power_bill(), Decimal("50"), date(2024, 1, 20), cycle_days=30)
        assert isinstance(result, GapResult)
        assert result.next_due_date == date(2024, 1, 31)
        assert result.days_until_due == 11
        assert result.gap == Decimal("250.00")
        assert result.at_risk is True

    def test_default_cycle_is_thirty_days(self) -> None:
        result = compute_gap(_power_bill(), None, date(2024, 1, 20))
        assert isinstance(result, GapResult)
        assert result.cycle_days == 30
        assert result.cycle_source == "default"
        assert result.current_balance == Decimal("50.00")

    def test_missing_start_date_is_unknown(self) -> None:
        result = compute_gap(_power_bill(bill_cycle_start_date=None), Decimal("50"), date(2024, 1, 20))
        assert isinstance(result, GapUnknown)
        assert gap_amount(result) == Decimal("0.00")

    def test_scheduled_allocations_before_due_reduce_gap(self) -> None:
        scheduled = [
            ScheduledAllocation(on=date(2024, 1, 24), amount="100"),
            ScheduledAllocation(on=date(2024, 1, 31), amount="100"),  # on the due date: too late
            ScheduledAllocation(on=date(2024, 1, 10), amount="100"),  # already past
        ]
        result = compute_gap(_power_bill(), Decimal("50"), date(2024, 1, 20), scheduled=scheduled)
        assert isinstance(result, GapResult)
        assert result.scheduled_before_due == Decimal("100.00")
        assert result.gap == Decimal("150.00")

    def test_overfunded_gap_is_negative_and_clamped(self) -> None:
        result = compute_gap(_power_bill(), Decimal("400"), date(2024, 1, 20))
        assert isinstance(result, GapResult)
        assert result.gap == Decimal("-100.00")
        assert result.at_risk is False
        assert gap_amount(result) == Decimal("0.00")

    def test_history_drives_cycle_length(self) -> None:
        history = [date(2023, 12, 4), date(2023, 12, 18), date(2024, 1, 1)]
        result = compute_gap(_power_bill(), Decimal("50"), date(2024, 1, 20), bill_history=history)
        assert isinstance(result, GapResult)
        assert result.cycle_days == 14
        assert result.cycle_source == "history"
        assert result.next_due_date == date(2024, 1, 29)

    def test_explicit_cycle_beats_history(self) -> None:
        history = [date(2023, 12, 18), date(2024, 1, 1)]
        result = compute_gap(
            _power_bill(), Decimal("50"), date(2024, 1, 20), cycle_days=30, bill_history=history
        )
        assert isinstance(result, GapResult)
        assert result.cycle_source == "explicit"


# ---------------------------------------------------------------------------
# TestPaysUntilDue
# ---------------------------------------------------------------------------


class TestPaysUntilDue:
    def test_overdue(self) -> None:
        result = pays_until_due(date(2024, 1, 10), date(2024, 1, 25), "fortnightly", date(2024, 1, 20))
        assert result.pays == -1
        assert result.urgency == "overdue"

    def test_due_before_next_pay(self) -> None:
        result = pays_until_due(date(2024, 1, 22), date(2024, 1, 25), "fortnightly", date(2024, 1, 20))
        assert result.pays == 0
        assert result.urgency == "high"

    def test_counts_pays_after_next_pay(self) -> None:
        # Next pay 25th, then 8 Feb, 22 Feb; due 1 March
        result = pays_until_due(date(2024, 3, 1), date(2024, 1, 25), "fortnightly", date(2024, 1, 20))
        assert result.pays == 3
        assert result.urgency == "low"

    def test_stale_pay_date_rolls_forward(self) -> None:
        # Stored pay date 2024-01-04 rolls to 2024-01-18, then 2024-02-01.
        result = pays_until_due(date(2024, 1, 31), date(2024, 1, 4), "fortnightly", date(2024, 1, 20))
        assert result.pays == 0

    def test_funded_bills_have_no_urgency(self) -> None:
        result = pays_until_due(
            date(2024, 1, 22), date(2024, 1, 25), "fortnightly", date(2024, 1, 20), is_funded=True
        )
        assert result.urgency == "none"

    def test_monthly_pay_rolls_by_calendar_month(self) -> None:
        result = pays_until_due(date(2024, 3, 15), date(2023, 12, 31), "monthly", date(2024, 2, 1))
        # 2023-12-31 -> 2024-01-31 -> 2024-02-29 (clamped); due 15 days after that pay.
        assert result.pays == 1
        assert result.days_until_due == 43
