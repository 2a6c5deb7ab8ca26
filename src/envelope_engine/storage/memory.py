# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation

from __future__ import annotations

import threading
from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from envelope_engine.errors import (
    AllocationNotFoundError,
    DuplicateSuggestionError,
    EnvelopeNotFoundError,
    ValidationError,
)
from envelope_engine.storage.interface import EnvelopeStorage
from envelope_engine.types import Envelope, IncomeAllocation

_Key = tuple[str, str]


class MemoryStorage(EnvelopeStorage):
    """
    In-process memory store, suitable for single-process apps and testing.

    A single lock serialises every write so the uniqueness guard and the
    conditional allocation updates behave like their database counterparts.
    All state is lost when the process exits.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._envelopes: dict[_Key, Envelope] = {}
        self._allocations: dict[_Key, IncomeAllocation] = {}

    # ─── Envelopes ────────────────────────────────────────────────────────────

    def get_envelope(self, owner_id: str, envelope_id: str) -> Envelope | None:
        envelope = self._envelopes.get((owner_id, envelope_id))
        return envelope.model_copy(deep=True) if envelope is not None else None

    def save_envelope(self, envelope: Envelope) -> None:
        with self._lock:
            self._check_unique_suggestion(envelope)
            self._envelopes[(envelope.owner_id, envelope.id)] = envelope.model_copy(deep=True)

    def update_envelope(self, owner_id: str, envelope_id: str, changes: dict[str, Any]) -> Envelope:
        if "id" in changes or "owner_id" in changes:
            raise ValidationError("Envelope identity cannot be changed", field="id")
        with self._lock:
            current = self._envelopes.get((owner_id, envelope_id))
            if current is None:
                raise EnvelopeNotFoundError(owner_id, envelope_id)
            try:
                updated = Envelope.model_validate({**current.model_dump(), **changes})
            except PydanticValidationError as exc:
                raise ValidationError(str(exc)) from exc
            self._check_unique_suggestion(updated)
            self._envelopes[(owner_id, envelope_id)] = updated
            return updated.model_copy(deep=True)

    def list_envelopes(self, owner_id: str) -> list[Envelope]:
        return [
            envelope.model_copy(deep=True)
            for (owner, _), envelope in self._envelopes.items()
            if owner == owner_id
        ]

    def find_active_suggestion(self, owner_id: str, suggestion_type: str) -> Envelope | None:
        for (owner, _), envelope in self._envelopes.items():
            if (
                owner == owner_id
                and envelope.is_active_suggestion
                and envelope.suggestion_type == suggestion_type
            ):
                return envelope.model_copy(deep=True)
        return None

    # ─── Income allocations ───────────────────────────────────────────────────

    def get_allocation(self, owner_id: str, envelope_id: str) -> IncomeAllocation | None:
        allocation = self._allocations.get((owner_id, envelope_id))
        return allocation.model_copy(deep=True) if allocation is not None else None

    def list_allocations(self, owner_id: str) -> list[IncomeAllocation]:
        return [
            allocation.model_copy(deep=True)
            for (owner, _), allocation in self._allocations.items()
            if owner == owner_id
        ]

    def write_suggested_amount(
        self,
        owner_id: str,
        envelope_id: str,
        amount: Decimal,
        now: datetime,
    ) -> IncomeAllocation | None:
        key = (owner_id, envelope_id)
        with self._lock:
            current = self._allocations.get(key)
            if current is not None and current.allocation_locked:
                return None
            updated = IncomeAllocation(
                owner_id=owner_id,
                envelope_id=envelope_id,
                suggested_amount=amount,
                allocation_locked=False,
                locked_at=None,
                updated_at=now,
            )
            self._allocations[key] = updated
            return updated.model_copy(deep=True)

    def compare_and_set_lock(
        self,
        owner_id: str,
        envelope_id: str,
        expected_locked: bool,
        locked: bool,
        now: datetime,
    ) -> IncomeAllocation | None:
        key = (owner_id, envelope_id)
        with self._lock:
            current = self._allocations.get(key)
            if current is None:
                raise AllocationNotFoundError(owner_id, envelope_id)
            if current.allocation_locked != expected_locked:
                return None
            # Both lock fields change together in one validated model.
            updated = IncomeAllocation(
                owner_id=owner_id,
                envelope_id=envelope_id,
                suggested_amount=current.suggested_amount,
                allocation_locked=locked,
                locked_at=now if locked else None,
                updated_at=now,
            )
            self._allocations[key] = updated
            return updated.model_copy(deep=True)

    # ─── Private helpers ──────────────────────────────────────────────────────

    def _check_unique_suggestion(self, envelope: Envelope) -> None:
        """Caller must hold ``self._lock``."""
        if not envelope.is_active_suggestion or envelope.suggestion_type is None:
            return
        for (owner, envelope_id), other in self._envelopes.items():
            if (
                owner == envelope.owner_id
                and envelope_id != envelope.id
                and other.is_active_suggestion
                and other.suggestion_type == envelope.suggestion_type
            ):
                raise DuplicateSuggestionError(
                    envelope.owner_id, envelope.suggestion_type, existing_id=envelope_id
                )
