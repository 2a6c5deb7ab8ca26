# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation

"""
Domain events emitted by the envelope engine.

The engine only builds and hands over events. Delivery, formatting and
retries belong to whichever EventSink the application injects.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Literal, Protocol

from pydantic import BaseModel, Field

logger = logging.getLogger("envelope_engine.events")


# ---------------------------------------------------------------------------
# Event model
# ---------------------------------------------------------------------------

EventKind = Literal[
    "suggestion_created",
    "suggestion_dismissed",
    "suggestion_reinstated",
    "suggestion_snoozed",
    "suggestion_resurfaced",
    "suggestion_accepted",
    "allocation_locked",
    "allocation_unlocked",
]


class EngineEvent(BaseModel, frozen=True):
    """A single domain event addressed to one owner."""

    kind: EventKind
    owner_id: str = Field(..., min_length=1)
    payload: dict[str, Any] = Field(default_factory=dict)
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(tz=timezone.utc))


# ---------------------------------------------------------------------------
# Sink protocol
# ---------------------------------------------------------------------------


class EventSink(Protocol):
    """Protocol for the notification collaborator. Injected for testability."""

    def publish(self, event: EngineEvent) -> None:
        """Hand an event over for delivery."""
        ...


class NullEventSink:
    """Drops every event. Used when no sink is configured."""

    def publish(self, event: EngineEvent) -> None:
        return None


class MemoryEventSink:
    """Collects events in order. Suitable for tests and local inspection."""

    def __init__(self) -> None:
        self.events: list[EngineEvent] = []

    def publish(self, event: EngineEvent) -> None:
        self.events.append(event)

    def kinds(self) -> list[str]:
        return [event.kind for event in self.events]

    def clear(self) -> None:
        self.events.clear()


class EventEmitter:
    """
    Builds events and forwards them to a sink.

    A sink failure is logged and swallowed here: the domain write that
    produced the event has already committed and must stay committed.
    """

    def __init__(self, sink: EventSink | None = None) -> None:
        self._sink: EventSink = sink if sink is not None else NullEventSink()

    def emit(
        self,
        kind: EventKind,
        owner_id: str,
        occurred_at: datetime | None = None,
        **payload: Any,
    ) -> EngineEvent:
        event = EngineEvent(
            kind=kind,
            owner_id=owner_id,
            payload=payload,
            occurred_at=occurred_at or datetime.now(tz=timezone.utc),
        )
        try:
            self._sink.publish(event)
        except Exception:
            logger.warning(
                "event_publish_failed",
                exc_info=True,
                extra={"kind": kind, "owner_id": owner_id},
            )
        return event
