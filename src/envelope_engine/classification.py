# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation

"""
Subtype classification rules for envelopes.

Classification is a keyword lexicon applied once, when an envelope is
created without an explicit subtype, and by the idempotent backfill. A
subtype that was set explicitly is authoritative: the lexicon never
overwrites it.

``tracking`` and ``debt`` are never inferred. They are only reachable
through an explicit assignment.
"""

from __future__ import annotations

from typing import Iterable, Union

from pydantic import BaseModel

from envelope_engine.types import Envelope, EnvelopeType, Subtype

# Bump when either lexicon changes so stored inferences can be audited.
CLASSIFICATION_VERSION = 1

SAVINGS_KEYWORDS: tuple[str, ...] = (
    "surplus",
    "emergency",
    "savings",
    "investment",
    "property",
    "giving",
    "goal",
)

SPENDING_KEYWORDS: tuple[str, ...] = (
    "groceries",
    "takeaway",
    "entertainment",
    "fun",
    "dining",
    "miscellaneous",
    "lifestyle",
)

# Evaluated in order; first lexicon with a hit wins.
LEXICONS: tuple[tuple[Subtype, tuple[str, ...]], ...] = (
    ("savings", SAVINGS_KEYWORDS),
    ("spending", SPENDING_KEYWORDS),
)

DEFAULT_SUBTYPE: Subtype = "bill"


class Explicit(BaseModel, frozen=True):
    """A subtype chosen by the user or by a system path that knows better."""

    subtype: Subtype


class Inferred(BaseModel, frozen=True):
    """No explicit subtype; the lexicon decides."""


SubtypeAssignment = Union[Explicit, Inferred]


def classify_subtype(name: str, envelope_type: EnvelopeType) -> Subtype:
    """
    Classify an envelope name against the curated lexicons.

    Matching is case-insensitive on substrings, so "Emergency Fund" hits
    "emergency". Income and expense envelopes share the lexicon;
    ``envelope_type`` is part of the signature so a later lexicon version
    can branch on it.
    """
    lowered = name.lower()
    for subtype, keywords in LEXICONS:
        if any(keyword in lowered for keyword in keywords):
            return subtype
    return DEFAULT_SUBTYPE


def resolve_subtype(
    assignment: SubtypeAssignment,
    name: str,
    envelope_type: EnvelopeType,
) -> tuple[Subtype, str]:
    """Return ``(subtype, subtype_source)`` for the given assignment."""
    if isinstance(assignment, Explicit):
        return assignment.subtype, "explicit"
    return classify_subtype(name, envelope_type), "inferred"


def needs_backfill(envelope: Envelope) -> bool:
    """True when the backfill may change this envelope's subtype."""
    if envelope.subtype_source == "explicit":
        return False
    return classify_subtype(envelope.name, envelope.envelope_type) != envelope.subtype


def backfill_subtypes(envelopes: Iterable[Envelope]) -> list[Envelope]:
    """
    Reclassify inferred envelopes whose stored subtype disagrees with the
    current lexicon.

    Returns updated copies of only the envelopes that changed. Running the
    backfill twice yields an empty list the second time.
    """
    changed: list[Envelope] = []
    for envelope in envelopes:
        if not needs_backfill(envelope):
            continue
        changed.append(
            envelope.model_copy(
                update={"subtype": classify_subtype(envelope.name, envelope.envelope_type)}
            )
        )
    return changed
