# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Any

from envelope_engine.types import Envelope, IncomeAllocation


class EnvelopeStorage(ABC):
    """
    Persistence contract for the envelope engine.

    Every record is keyed by ``(owner_id, id)``. Implementations must provide
    two guarantees that a relational backend would express as constraints:

    - At most one non-dismissed suggested envelope per
      ``(owner_id, suggestion_type)``. ``save_envelope`` and
      ``update_envelope`` raise DuplicateSuggestionError instead of writing
      a row that would break this (a partial unique index in SQL).
    - ``write_suggested_amount`` and ``compare_and_set_lock`` are single
      conditional updates on ``allocation_locked``, never read-then-write
      from the caller's side.

    The default MemoryStorage is suitable for single-process use and
    testing only; state is lost when the process exits.
    """

    # ─── Envelopes ────────────────────────────────────────────────────────────

    @abstractmethod
    def get_envelope(self, owner_id: str, envelope_id: str) -> Envelope | None:
        ...

    @abstractmethod
    def save_envelope(self, envelope: Envelope) -> None:
        """Insert or replace an envelope, enforcing suggestion uniqueness."""

    @abstractmethod
    def update_envelope(self, owner_id: str, envelope_id: str, changes: dict[str, Any]) -> Envelope:
        """
        Atomically apply ``changes`` to a stored envelope and return the result.

        Raises EnvelopeNotFoundError if the envelope does not exist and
        DuplicateSuggestionError if the patched row would break uniqueness.
        """

    @abstractmethod
    def list_envelopes(self, owner_id: str) -> list[Envelope]:
        ...

    @abstractmethod
    def find_active_suggestion(self, owner_id: str, suggestion_type: str) -> Envelope | None:
        ...

    # ─── Income allocations ───────────────────────────────────────────────────

    @abstractmethod
    def get_allocation(self, owner_id: str, envelope_id: str) -> IncomeAllocation | None:
        ...

    @abstractmethod
    def list_allocations(self, owner_id: str) -> list[IncomeAllocation]:
        ...

    @abstractmethod
    def write_suggested_amount(
        self,
        owner_id: str,
        envelope_id: str,
        amount: Decimal,
        now: datetime,
    ) -> IncomeAllocation | None:
        """
        Set ``suggested_amount`` only if the row is unlocked.

        Creates an unlocked row when none exists. Returns the written row,
        or None when the row was locked and therefore left untouched.
        """

    @abstractmethod
    def compare_and_set_lock(
        self,
        owner_id: str,
        envelope_id: str,
        expected_locked: bool,
        locked: bool,
        now: datetime,
    ) -> IncomeAllocation | None:
        """
        Flip the lock fields only if ``allocation_locked == expected_locked``.

        ``locked_at`` is set to ``now`` when locking and cleared when
        unlocking. Returns the updated row, or None when the expectation did
        not hold. Raises AllocationNotFoundError if there is no row.
        """
