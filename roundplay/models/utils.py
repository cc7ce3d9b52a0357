"""Utility helpers for the models package."""

from __future__ import annotations

import secrets
import string
from typing import Optional
from sqlalchemy.orm import Session

BASE62_ALPHABET = string.digits + string.ascii_uppercase + string.ascii_lowercase


def generate_session_token(
    session: Optional[Session] = None,
    length: int = 16,
    max_attempts: int = 32,
) -> str:
    """Return an opaque base62 identifier for a new game session.

    When a database session is provided, the helper retries if the generated
    value is already present (or pending) in ``GameSession.id``.
    """

    from sqlalchemy import select
    from .session import GameSession

    for _ in range(max_attempts):
        candidate = "".join(secrets.choice(BASE62_ALPHABET) for _ in range(length))
        if session is None:
            return candidate

        pending = any(
            isinstance(obj, GameSession) and obj.id == candidate for obj in session.new
        )
        if pending:
            continue
        exists = session.scalar(select(GameSession.id).where(GameSession.id == candidate))
        if exists is None:
            return candidate

    raise RuntimeError("Unable to generate a unique session token after multiple attempts")
