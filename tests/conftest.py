# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation
"""Shared fixtures for envelope-engine tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from envelope_engine.allocation import AllocationCalculator
from envelope_engine.engine import EnvelopeEngine
from envelope_engine.events import EventEmitter, MemoryEventSink
from envelope_engine.identity import SessionContext
from envelope_engine.lifecycle import SuggestionLifecycleManager
from envelope_engine.registry import EnvelopeRegistry
from envelope_engine.storage.memory import MemoryStorage


class FixedClock:
    """A controllable clock; call it to read the time."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2024, 1, 20, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def sink() -> MemoryEventSink:
    return MemoryEventSink()


@pytest.fixture
def emitter(sink: MemoryEventSink) -> EventEmitter:
    return EventEmitter(sink)


@pytest.fixture
def registry(storage: MemoryStorage, emitter: EventEmitter, clock: FixedClock) -> EnvelopeRegistry:
    return EnvelopeRegistry(storage, emitter=emitter, clock=clock)


@pytest.fixture
def calculator(storage: MemoryStorage, emitter: EventEmitter, clock: FixedClock) -> AllocationCalculator:
    return AllocationCalculator(storage, emitter=emitter, clock=clock)


@pytest.fixture
def lifecycle(
    storage: MemoryStorage,
    calculator: AllocationCalculator,
    emitter: EventEmitter,
    clock: FixedClock,
) -> SuggestionLifecycleManager:
    return SuggestionLifecycleManager(storage, calculator, emitter=emitter, clock=clock)


@pytest.fixture
def engine(storage: MemoryStorage, sink: MemoryEventSink, clock: FixedClock) -> EnvelopeEngine:
    """An engine sharing the test storage, event sink and clock."""
    return EnvelopeEngine(storage=storage, event_sink=sink, clock=clock)


@pytest.fixture
def session() -> SessionContext:
    return SessionContext(user_id="user-001")
