"""Allocation registry: exclusive number claims for NumberPick sessions.

The ``claims`` table is the source of truth. Exclusivity comes from the
unique constraint on ``(session_id, exclusive_number)``: the insert itself is
the conditional write, and losing a race surfaces as an ``IntegrityError``
that is mapped to :attr:`ReserveStatus.ALREADY_CLAIMED`. The cache only
accelerates :meth:`AllocationRegistry.available_numbers`.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .cache import AVAILABLE
from .models import Claim, Enrollment, GameSession
from .session_config import NumberPickConfig

if TYPE_CHECKING:
    from .repository import GameRepository

logger = logging.getLogger(__name__)


class ReserveStatus(str, Enum):
    OK = "ok"
    ALREADY_CLAIMED = "already_claimed"
    OUT_OF_RANGE = "out_of_range"
    DUPLICATE_NOT_ALLOWED = "duplicate_not_allowed"
    """The participant already holds a claim in this session."""


def compute_available(db: Session, game: GameSession) -> Optional[frozenset[int]]:
    """Return the numbers still open for ``game``, straight from the store.

    ``None`` for sessions that are not NumberPick rounds.
    """

    settings = game.settings
    if not isinstance(settings, NumberPickConfig):
        return None
    numbers = set(range(settings.range_min, settings.range_max + 1))
    numbers.difference_update(settings.reserved_numbers)
    if not settings.allow_duplicate_claims:
        numbers.difference_update(Claim.claimed_numbers(db, game.id))
    return frozenset(numbers)


class AllocationRegistry:
    """Reserve numbers and answer which ones are still available."""

    def __init__(self, repository: "GameRepository") -> None:
        self._repository = repository

    def reserve(
        self,
        db: Session,
        game: GameSession,
        number: int,
        participant_id: int,
        *,
        now: Optional[datetime] = None,
    ) -> ReserveStatus:
        """Atomically claim ``number`` for ``participant_id``.

        Parameters
        ----------
        db : Session
            Session of the caller's open transaction. The claim is inserted in
            a savepoint, so a lost race leaves the outer transaction usable.
        game : GameSession
            The NumberPick session.
        number : int
            Requested number.
        participant_id : int
            Claiming participant; must already be enrolled.

        Returns
        -------
        ReserveStatus
            ``OK`` on success, otherwise why the claim was refused.
        """

        settings = game.settings
        if not isinstance(settings, NumberPickConfig):
            raise TypeError(f"Session {game.id} is not a NumberPick session")
        if not settings.in_range(number):
            return ReserveStatus.OUT_OF_RANGE
        if number in settings.reserved_numbers:
            return ReserveStatus.ALREADY_CLAIMED

        existing = db.scalar(
            select(Claim.id).where(
                Claim.session_id == game.id, Claim.participant_id == participant_id
            )
        )
        if existing is not None:
            return ReserveStatus.DUPLICATE_NOT_ALLOWED

        claimed_at = now or datetime.now(timezone.utc)
        claim = Claim(
            session_id=game.id,
            participant_id=participant_id,
            number=number,
            exclusive=not settings.allow_duplicate_claims,
            claimed_at=claimed_at,
        )
        try:
            with db.begin_nested():
                db.add(claim)
                db.flush()
        except IntegrityError:
            # Either another participant took the number or this participant
            # raced themselves; the second lookup tells which.
            mine = db.scalar(
                select(Claim.id).where(
                    Claim.session_id == game.id, Claim.participant_id == participant_id
                )
            )
            if mine is not None:
                return ReserveStatus.DUPLICATE_NOT_ALLOWED
            logger.debug(f"Session {game.id}: number {number} lost to a concurrent claim")
            return ReserveStatus.ALREADY_CLAIMED

        enrollment = Enrollment.get_for(db, game.id, participant_id)
        if enrollment is not None:
            enrollment.claim_number = number
            enrollment.claimed_at = claimed_at
        self._repository.mark_dirty(db, game.id)
        return ReserveStatus.OK

    def available_numbers(self, session_id: str) -> Optional[frozenset[int]]:
        """Return the unclaimed numbers for a session, reading through the cache."""

        def _load() -> Optional[frozenset[int]]:
            with self._repository.read() as db:
                game = GameSession.get(db, session_id)
                if game is None:
                    return None
                return compute_available(db, game)

        return self._repository.cache.get_or_set(AVAILABLE, session_id, _load)

    def materialize(self, db: Session, game: GameSession) -> Optional[frozenset[int]]:
        """Seed the cache with the session's full range minus reserved numbers."""

        available = compute_available(db, game)
        if available is not None:
            self._repository.cache.set(AVAILABLE, game.id, available)
            logger.debug(f"Session {game.id}: registry materialized with {len(available)} numbers")
        return available

    def release(self, db: Session, session_id: str) -> int:
        """Drop every reservation held in ``session_id``.

        Returns the number of claims removed.
        """

        result = db.execute(delete(Claim).where(Claim.session_id == session_id))
        self._repository.mark_dirty(db, session_id)
        released = result.rowcount or 0
        if released:
            logger.info(f"Session {session_id}: released {released} claim(s)")
        return released


__all__ = ["AllocationRegistry", "ReserveStatus", "compute_available"]
