"""Cache-backed repository facade over the SQLAlchemy store."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterator, Optional

from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from .cache import SNAPSHOT, SessionCache
from .db.utils import dt_iso
from .errors import StoreUnavailableError
from .models import GameSession
from .registry import compute_available

logger = logging.getLogger(__name__)

_DIRTY_KEY = "roundplay.dirty_sessions"


@dataclass(frozen=True)
class SessionSnapshot:
    """Immutable view of a session handed to callers and cached.

    Attributes
    ----------
    session : dict
        ``GameSession.to_json()`` of the session row.
    participants : tuple[dict, ...]
        Enrollment summaries in join order.
    winners : tuple[dict, ...]
        Winning enrollments in prize-position order.
    available_numbers : Optional[tuple[int, ...]]
        Sorted open numbers for active NumberPick sessions, else ``None``.
    current_question : Optional[dict]
        Open quiz question without its answer, while a quiz is active.
    """

    session: dict[str, Any]
    participants: tuple[dict[str, Any], ...] = ()
    winners: tuple[dict[str, Any], ...] = ()
    available_numbers: Optional[tuple[int, ...]] = None
    current_question: Optional[dict[str, Any]] = None
    taken_at: Optional[str] = field(default=None, compare=False)

    @property
    def id(self) -> str:
        return self.session["id"]

    @property
    def phase(self) -> str:
        return self.session["phase"]

    @property
    def participant_count(self) -> int:
        return self.session["participant_count"]

    @property
    def phase_deadline(self) -> Optional[str]:
        return self.session["phase_deadline"]

    def to_dict(self) -> dict[str, Any]:
        return {
            "session": dict(self.session),
            "participants": [dict(p) for p in self.participants],
            "winners": [dict(w) for w in self.winners],
            "available_numbers": (
                list(self.available_numbers) if self.available_numbers is not None else None
            ),
            "current_question": self.current_question,
        }


def build_snapshot(db: Session, game: GameSession, now: Optional[datetime] = None) -> SessionSnapshot:
    """Assemble a :class:`SessionSnapshot` from loaded ORM state."""

    participants = tuple(e.to_json() for e in game.enrollments)
    winners = tuple(
        sorted(
            (p for p in participants if p["is_winner"]),
            key=lambda p: p["prize_position"] or 0,
        )
    )
    available = None
    question = None
    if game.phase == "active":
        if game.is_number_pick:
            numbers = compute_available(db, game)
            available = tuple(sorted(numbers)) if numbers is not None else None
        elif game.current_question is not None:
            for q in game.questions:
                if q.position == game.current_question:
                    question = q.to_json()
                    break
    return SessionSnapshot(
        session=game.to_json(),
        participants=participants,
        winners=winners,
        available_numbers=available,
        current_question=question,
        taken_at=dt_iso(now),
    )


class GameRepository:
    """Unit-of-work and read-through access to session state.

    Parameters
    ----------
    session_factory : sessionmaker
        Factory for SQLAlchemy sessions bound to the game database.
    cache : Optional[SessionCache], default: None
        Snapshot and available-number cache; a default-sized one is created
        when omitted.
    """

    def __init__(self, session_factory: sessionmaker, cache: Optional[SessionCache] = None) -> None:
        self._session_factory = session_factory
        self.cache = cache or SessionCache()

    @staticmethod
    def mark_dirty(db: Session, session_id: str) -> None:
        """Record that ``session_id`` changed in ``db``'s transaction.

        Cached entries for every dirty session are dropped right after the
        transaction commits.
        """
        db.info.setdefault(_DIRTY_KEY, set()).add(session_id)

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Open a session, commit on success and roll back on error.

        Raises
        ------
        StoreUnavailableError
            When the database cannot be reached or is locked beyond the busy
            timeout. The caller may retry.
        """

        db = self._session_factory()
        try:
            yield db
            db.commit()
        except (OperationalError, InterfaceError) as exc:
            db.rollback()
            logger.error(f"Store unavailable: {exc}")
            raise StoreUnavailableError(str(exc)) from exc
        except Exception:
            db.rollback()
            raise
        else:
            for session_id in db.info.pop(_DIRTY_KEY, set()):
                self.cache.invalidate_session(session_id)
        finally:
            db.info.pop(_DIRTY_KEY, None)
            db.close()

    @contextmanager
    def read(self) -> Iterator[Session]:
        """Open a session for reads only; nothing is committed."""

        db = self._session_factory()
        try:
            yield db
        except (OperationalError, InterfaceError) as exc:
            logger.error(f"Store unavailable: {exc}")
            raise StoreUnavailableError(str(exc)) from exc
        finally:
            db.rollback()
            db.close()

    def dispose(self) -> None:
        """Close pooled connections of the engine the factory is bound to."""
        bind = self._session_factory.kw.get("bind")
        if bind is not None:
            bind.dispose()

    def get_snapshot(self, session_id: str) -> Optional[SessionSnapshot]:
        """Return the session's snapshot, served from cache within the TTL."""

        def _load() -> Optional[SessionSnapshot]:
            with self.read() as db:
                game = GameSession.get(db, session_id)
                if game is None:
                    return None
                return build_snapshot(db, game)

        return self.cache.get_or_set(SNAPSHOT, session_id, _load)

    def due_session_ids(self, now: datetime) -> list[str]:
        """Ids of lobby/active sessions whose phase deadline has passed."""

        with self.read() as db:
            return [game.id for game in GameSession.due_for_deadline(db, now)]


__all__ = ["GameRepository", "SessionSnapshot", "build_snapshot"]
