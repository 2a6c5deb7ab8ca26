# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation
from __future__ import annotations


class EnvelopeEngineError(Exception):
    """Base class for all envelope-engine errors."""

    def __init__(self, message: str, code: str = "ENGINE_ERROR") -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


class ValidationError(EnvelopeEngineError, ValueError):
    """
    Raised when input is malformed, e.g. a negative target or a snooze that
    ends in the past. Nothing is written when this is raised.

    Attributes:
        field: The offending field, when one can be named.
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message, code="VALIDATION_ERROR")
        self.field = field


class DuplicateSuggestionError(EnvelopeEngineError):
    """
    Raised when an owner already has an active suggestion of the same type.

    Callers should treat this as "already exists" rather than as a failure.
    """

    def __init__(self, owner_id: str, suggestion_type: str, existing_id: str | None = None) -> None:
        super().__init__(
            f"Owner '{owner_id}' already has an active '{suggestion_type}' suggestion.",
            code="DUPLICATE_SUGGESTION",
        )
        self.owner_id = owner_id
        self.suggestion_type = suggestion_type
        self.existing_id = existing_id


class AlreadyLockedError(EnvelopeEngineError):
    """Raised when locking an allocation that is already locked."""

    def __init__(self, envelope_id: str) -> None:
        super().__init__(
            f"Allocation for envelope '{envelope_id}' is already locked.",
            code="ALREADY_LOCKED",
        )
        self.envelope_id = envelope_id


class NotLockedError(EnvelopeEngineError):
    """Raised when unlocking an allocation that is not locked."""

    def __init__(self, envelope_id: str) -> None:
        super().__init__(
            f"Allocation for envelope '{envelope_id}' is not locked.",
            code="NOT_LOCKED",
        )
        self.envelope_id = envelope_id


class EnvelopeNotFoundError(EnvelopeEngineError, KeyError):
    """Raised when an envelope id does not exist for the owner."""

    def __init__(self, owner_id: str, envelope_id: str) -> None:
        super().__init__(
            f"Envelope '{envelope_id}' does not exist for owner '{owner_id}'.",
            code="ENVELOPE_NOT_FOUND",
        )
        self.owner_id = owner_id
        self.envelope_id = envelope_id

    def __str__(self) -> str:
        return self.message


class AllocationNotFoundError(EnvelopeEngineError, KeyError):
    """Raised when an envelope has no income allocation row yet."""

    def __init__(self, owner_id: str, envelope_id: str) -> None:
        super().__init__(
            f"No income allocation for envelope '{envelope_id}' (owner '{owner_id}').",
            code="ALLOCATION_NOT_FOUND",
        )
        self.owner_id = owner_id
        self.envelope_id = envelope_id

    def __str__(self) -> str:
        return self.message


class NotASuggestionError(EnvelopeEngineError):
    """Raised when a suggestion lifecycle action targets a user envelope."""

    def __init__(self, envelope_id: str) -> None:
        super().__init__(
            f"Envelope '{envelope_id}' is not a suggested envelope.",
            code="NOT_A_SUGGESTION",
        )
        self.envelope_id = envelope_id


class InvalidTransitionError(EnvelopeEngineError):
    """
    Raised when a suggestion cannot move from its current state to the
    requested one, e.g. accepting a dismissed suggestion.
    """

    def __init__(self, envelope_id: str, state: str, action: str) -> None:
        super().__init__(
            f"Cannot {action} suggestion '{envelope_id}' while it is {state}.",
            code="INVALID_TRANSITION",
        )
        self.envelope_id = envelope_id
        self.state = state
        self.action = action


class AccessDeniedError(EnvelopeEngineError):
    """Raised when the session may not read or write another owner's data."""

    def __init__(self, user_id: str, owner_id: str, action: str) -> None:
        super().__init__(
            f"User '{user_id}' may not {action} data owned by '{owner_id}'.",
            code="ACCESS_DENIED",
        )
        self.user_id = user_id
        self.owner_id = owner_id
        self.action = action
