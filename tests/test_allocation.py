# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation
"""Tests for the ideal allocation calculator and allocation locking."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from envelope_engine.allocation import (
    AllocationCalculator,
    compute_per_pay,
    ideal_per_pay,
    normalize_to_pay_cycle,
    pay_periods_per_bill_cycle,
    pay_periods_until,
)
from envelope_engine.bill_cycle import compute_gap
from envelope_engine.errors import (
    AllocationNotFoundError,
    AlreadyLockedError,
    NotLockedError,
    ValidationError,
)
from envelope_engine.events import MemoryEventSink
from envelope_engine.storage.memory import MemoryStorage
from envelope_engine.types import Envelope, GapUnknown

from conftest import FixedClock


def _envelope(**overrides: object) -> Envelope:
    fields: dict[str, object] = {
        "owner_id": "user-001",
        "name": "Power Bill",
        "target_amount": "200",
        "frequency": "monthly",
    }
    fields.update(overrides)
    return Envelope(**fields)


# ---------------------------------------------------------------------------
# TestFrequencyArithmetic
# ---------------------------------------------------------------------------


class TestFrequencyArithmetic:
    def test_monthly_bill_fortnightly_pay(self) -> None:
        assert ideal_per_pay(Decimal("200"), "monthly", "fortnightly") == Decimal("92.31")

    def test_annual_bill_fortnightly_pay(self) -> None:
        assert ideal_per_pay(Decimal("1000"), "annual", "fortnightly") == Decimal("38.46")

    def test_normalize_monthly_income_to_fortnightly(self) -> None:
        assert normalize_to_pay_cycle(Decimal("3000"), "monthly", "fortnightly") == Decimal("1384.62")

    def test_normalize_weekly_income_to_fortnightly(self) -> None:
        assert normalize_to_pay_cycle(Decimal("1000"), "weekly", "fortnightly") == Decimal("2000.00")

    def test_pay_periods_until_rounds_up(self) -> None:
        assert pay_periods_until(date(2024, 1, 20), date(2024, 1, 31), "weekly") == 2

    def test_pay_periods_until_is_at_least_one(self) -> None:
        assert pay_periods_until(date(2024, 1, 20), date(2024, 1, 20), "weekly") == 1

    def test_pay_periods_per_bill_cycle(self) -> None:
        assert pay_periods_per_bill_cycle("quarterly", "monthly") == Decimal("3")


class TestComputePerPay:
    def test_formula(self) -> None:
        amount = compute_per_pay(Decimal("300"), Decimal("0"), Decimal("50"), Decimal("2"))
        assert amount == Decimal("125.00")

    def test_negative_gap_is_ignored(self) -> None:
        amount = compute_per_pay(Decimal("300"), Decimal("-80"), Decimal("0"), Decimal("3"))
        assert amount == Decimal("100.00")

    def test_never_negative(self) -> None:
        assert compute_per_pay(Decimal("100"), Decimal("0"), Decimal("500"), Decimal("1")) == Decimal("0.00")

    def test_rounds_half_up(self) -> None:
        # 0.125 rounds to 0.13, not banker's 0.12
        assert compute_per_pay(Decimal("0.25"), Decimal("0"), Decimal("0"), Decimal("2")) == Decimal("0.13")

    def test_negative_target_rejected(self) -> None:
        with pytest.raises(ValidationError):
            compute_per_pay(Decimal("-1"), Decimal("0"), Decimal("0"), Decimal("1"))

    def test_zero_pay_periods_rejected(self) -> None:
        with pytest.raises(ValidationError):
            compute_per_pay(Decimal("10"), Decimal("0"), Decimal("0"), Decimal("0"))


# ---------------------------------------------------------------------------
# TestAllocationCalculator
# ---------------------------------------------------------------------------


class TestAllocationCalculator:
    def test_suggest_writes_allocation(
        self, calculator: AllocationCalculator, storage: MemoryStorage
    ) -> None:
        envelope = _envelope()
        outcome = calculator.suggest_allocation(envelope, "fortnightly")
        assert outcome.written is True
        assert outcome.computed_amount == Decimal("92.31")
        stored = storage.get_allocation("user-001", envelope.id)
        assert stored is not None
        assert stored.suggested_amount == Decimal("92.31")
        assert stored.allocation_locked is False
        assert stored.locked_at is None

    def test_gap_unknown_means_no_adjustment(self, calculator: AllocationCalculator) -> None:
        envelope = _envelope()
        unknown = GapUnknown(envelope_id=envelope.id, reason="no start date")
        outcome = calculator.suggest_allocation(envelope, "fortnightly", gap=unknown)
        assert outcome.computed_amount == Decimal("92.31")

    def test_known_gap_inflates_suggestion(self, calculator: AllocationCalculator) -> None:
        envelope = _envelope(
            target_amount="300", current_amount="50", bill_cycle_start_date=date(2024, 1, 1)
        )
        gap = compute_gap(envelope, None, date(2024, 1, 20))
        outcome = calculator.suggest_allocation(envelope, "weekly", gap=gap)
        # (300 + 250 - 50) over the 2 weekly pays before 2024-01-31
        assert outcome.computed_amount == Decimal("250.00")

    def test_explicit_pay_periods(self, calculator: AllocationCalculator) -> None:
        outcome = calculator.suggest_allocation(
            _envelope(), "fortnightly", target=Decimal("1000"), current_balance=Decimal("100"), pay_periods=4
        )
        assert outcome.computed_amount == Decimal("225.00")

    def test_locked_allocation_is_immune_to_recompute(
        self, calculator: AllocationCalculator, storage: MemoryStorage
    ) -> None:
        envelope = _envelope(target_amount="100")
        first = calculator.suggest_allocation(envelope, "monthly", pay_periods=2)
        assert first.allocation.suggested_amount == Decimal("50.00")
        calculator.lock_allocation(first.allocation)

        raised = calculator.suggest_allocation(envelope, "monthly", target=Decimal("500"), pay_periods=2)
        assert raised.written is False
        assert raised.computed_amount == Decimal("250.00")
        assert raised.allocation.suggested_amount == Decimal("50.00")

        calculator.unlock_allocation(raised.allocation)
        resumed = calculator.suggest_allocation(envelope, "monthly", target=Decimal("500"), pay_periods=2)
        assert resumed.written is True
        assert resumed.allocation.suggested_amount == Decimal("250.00")

    def test_lock_sets_both_fields(self, calculator: AllocationCalculator, clock: FixedClock) -> None:
        outcome = calculator.suggest_allocation(_envelope(), "fortnightly")
        locked = calculator.lock_allocation(outcome.allocation)
        assert locked.allocation_locked is True
        assert locked.locked_at == clock.now

    def test_lock_twice_raises(self, calculator: AllocationCalculator) -> None:
        outcome = calculator.suggest_allocation(_envelope(), "fortnightly")
        calculator.lock_allocation(outcome.allocation)
        with pytest.raises(AlreadyLockedError):
            calculator.lock_allocation(outcome.allocation)

    def test_unlock_unlocked_raises(self, calculator: AllocationCalculator) -> None:
        outcome = calculator.suggest_allocation(_envelope(), "fortnightly")
        with pytest.raises(NotLockedError):
            calculator.unlock_allocation(outcome.allocation)

    def test_unlock_clears_both_fields(self, calculator: AllocationCalculator) -> None:
        outcome = calculator.suggest_allocation(_envelope(), "fortnightly")
        calculator.lock_allocation(outcome.allocation)
        unlocked = calculator.unlock_allocation(outcome.allocation)
        assert unlocked.allocation_locked is False
        assert unlocked.locked_at is None
        assert unlocked.suggested_amount == Decimal("92.31")

    def test_lock_without_row_raises(self, calculator: AllocationCalculator) -> None:
        outcome = calculator.suggest_allocation(_envelope(), "fortnightly")
        orphan = outcome.allocation.model_copy(update={"envelope_id": "missing"})
        with pytest.raises(AllocationNotFoundError):
            calculator.lock_allocation(orphan)

    def test_lock_and_unlock_emit_events(
        self, calculator: AllocationCalculator, sink: MemoryEventSink
    ) -> None:
        outcome = calculator.suggest_allocation(_envelope(), "fortnightly")
        calculator.lock_allocation(outcome.allocation)
        calculator.unlock_allocation(outcome.allocation)
        assert sink.kinds() == ["allocation_locked", "allocation_unlocked"]
        assert sink.events[0].payload["suggested_amount"] == "92.31"

    def test_skipped_write_without_row_raises(self, clock: FixedClock) -> None:
        class RowlessStorage(MemoryStorage):
            def write_suggested_amount(self, owner_id, envelope_id, amount, now):  # type: ignore[override]
                return None

        calculator = AllocationCalculator(RowlessStorage(), clock=clock)
        with pytest.raises(AllocationNotFoundError):
            calculator.suggest_allocation(_envelope(), "fortnightly")

    def test_invalid_input_writes_nothing(
        self, calculator: AllocationCalculator, storage: MemoryStorage
    ) -> None:
        envelope = _envelope()
        with pytest.raises(ValidationError):
            calculator.suggest_allocation(envelope, "fortnightly", target=Decimal("-10"))
        assert storage.get_allocation("user-001", envelope.id) is None
