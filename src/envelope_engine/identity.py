# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation
from __future__ import annotations

from pydantic import BaseModel, Field

from envelope_engine.errors import AccessDeniedError
from envelope_engine.types import Envelope


class SessionContext(BaseModel, frozen=True):
    """
    The authenticated caller, as resolved by the identity layer.

    Attributes:
        user_id: The authenticated user. Every write targets this owner.
        viewable_owner_ids: Owners of linked child/teen accounts whose
            ``show_in_parent_budget`` envelopes this user may read. The
            identity layer resolves these; the engine never widens them.
    """

    user_id: str = Field(..., min_length=1)
    viewable_owner_ids: frozenset[str] = frozenset()


def require_write(session: SessionContext, owner_id: str) -> str:
    """Return ``owner_id`` if the session may write it, else raise."""
    if owner_id != session.user_id:
        raise AccessDeniedError(session.user_id, owner_id, "write")
    return owner_id


def require_read(session: SessionContext, owner_id: str) -> str:
    """Return ``owner_id`` if the session may read at least part of it."""
    if owner_id == session.user_id or owner_id in session.viewable_owner_ids:
        return owner_id
    raise AccessDeniedError(session.user_id, owner_id, "read")


def visible_to(session: SessionContext, envelope: Envelope) -> bool:
    """
    True when the session may see this envelope.

    Own envelopes are always visible. A linked account's envelope is visible
    only when its owner opted it into the parent budget.
    """
    if envelope.owner_id == session.user_id:
        return True
    return envelope.owner_id in session.viewable_owner_ids and envelope.show_in_parent_budget
