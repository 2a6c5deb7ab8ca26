# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation
from __future__ import annotations

from decimal import Decimal
from typing import Annotated, Any

from pydantic import BaseModel, Field, field_validator

from envelope_engine.money import to_money
from envelope_engine.types import PayCycle


class EngineConfig(BaseModel, frozen=True):
    """
    Configuration for the EnvelopeEngine.

    Pass an instance of this to EnvelopeEngine at construction time.
    All fields are optional.

    Attributes:
        default_cycle_days: Bill cycle length used when neither an explicit
            length nor enough bill history is available.
        safety_net_months: Months of essential spend the Safety Net
            suggestion aims to hold.
        starter_stash_target: Fixed target of the Starter Stash suggestion.
        default_pay_cycle: Pay cycle assumed when the caller does not give one.
        suggestion_category: Display category that suggested envelopes are
            grouped under.

    Example::

        config = EngineConfig(default_cycle_days=28, safety_net_months=6)
        engine = EnvelopeEngine(config=config)
    """

    default_cycle_days: Annotated[int, Field(gt=0)] = 30
    safety_net_months: Annotated[int, Field(gt=0)] = 3
    starter_stash_target: Decimal = Decimal("1000.00")
    default_pay_cycle: PayCycle = "fortnightly"
    suggestion_category: str = "The My Budget Way"

    @field_validator("starter_stash_target", mode="before")
    @classmethod
    def quantize_target(cls, value: Any) -> Decimal:
        amount = to_money(value)
        if amount < 0:
            raise ValueError("starter_stash_target must be >= 0")
        return amount
