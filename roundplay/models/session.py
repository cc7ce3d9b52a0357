"""The game session aggregate: one run of a NumberPick or Quiz round."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    select,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from ..db.utils import as_utc, dt_iso
from ..session_config import NUMBER_PICK, QUIZ, config_from_stored
from .base import Base

if TYPE_CHECKING:
    from .claim import Claim
    from .enrollment import Enrollment
    from .event import OutcomeEvent
    from .quiz import QuizAnswer, QuizQuestion


class SessionPhase(str, Enum):
    CREATED = "created"
    LOBBY = "lobby"
    ACTIVE = "active"
    RESOLVING = "resolving"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionPhase.COMPLETED, SessionPhase.CANCELLED)


# Allowed forward moves; anything else is rejected by the phase guard.
PHASE_TRANSITIONS: dict[SessionPhase, tuple[SessionPhase, ...]] = {
    SessionPhase.CREATED: (SessionPhase.LOBBY, SessionPhase.CANCELLED),
    SessionPhase.LOBBY: (SessionPhase.ACTIVE, SessionPhase.CANCELLED),
    SessionPhase.ACTIVE: (SessionPhase.RESOLVING, SessionPhase.CANCELLED),
    SessionPhase.RESOLVING: (SessionPhase.COMPLETED, SessionPhase.CANCELLED),
    SessionPhase.COMPLETED: (),
    SessionPhase.CANCELLED: (),
}


class GameSession(Base):
    """A single round played by a group of participants in one chat scope."""

    __tablename__ = "game_sessions"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    """Opaque base62 token."""

    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    """``number_pick`` or ``quiz``."""

    phase: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SessionPhase.CREATED.value
    )
    """Current :class:`SessionPhase` value."""

    title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_by: Mapped[str] = mapped_column(String(64), nullable=False)
    """External id of the admin (or system) that created the round."""

    scope: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    """Chat or channel identifier the round belongs to."""

    config: Mapped[dict] = mapped_column(JSON, nullable=False)
    """Kind-specific configuration as produced by :mod:`roundplay.session_config`."""

    participant_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    min_participants: Mapped[int] = mapped_column(Integer, nullable=False)
    max_participants: Mapped[int] = mapped_column(Integer, nullable=False)

    current_question: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    """Zero-based index of the open quiz question while the session is active."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    started_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    phase_deadline: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    resolved_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    cancel_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    enrollments: Mapped[list["Enrollment"]] = relationship(
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="Enrollment.joined_at",
    )
    claims: Mapped[list["Claim"]] = relationship(
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="Claim.claimed_at",
    )
    questions: Mapped[list["QuizQuestion"]] = relationship(
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="QuizQuestion.position",
    )
    answers: Mapped[list["QuizAnswer"]] = relationship(
        back_populates="session", cascade="all, delete-orphan"
    )
    events: Mapped[list["OutcomeEvent"]] = relationship(
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="OutcomeEvent.id",
    )

    __table_args__ = (
        CheckConstraint("kind IN ('number_pick','quiz')", name="kind_enum"),
        CheckConstraint(
            "phase IN ('created','lobby','active','resolving','completed','cancelled')",
            name="phase_enum",
        ),
        CheckConstraint("participant_count <= max_participants", name="capacity"),
        CheckConstraint("min_participants <= max_participants", name="capacity_bounds"),
        Index("ix_game_sessions_phase_deadline", "phase", "phase_deadline"),
    )

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return (
            f"<GameSession(id={self.id}, kind={self.kind}, phase={self.phase}, "
            f"participants={self.participant_count}/{self.max_participants})>"
        )

    @classmethod
    def get(cls, session: Session, session_id: str) -> Optional["GameSession"]:
        return session.get(cls, session_id)

    @classmethod
    def due_for_deadline(cls, session: Session, now: datetime) -> list["GameSession"]:
        """Return lobby/active sessions whose deadline has passed."""

        stmt = (
            select(cls)
            .where(
                cls.phase.in_((SessionPhase.LOBBY.value, SessionPhase.ACTIVE.value)),
                cls.phase_deadline.isnot(None),
                cls.phase_deadline <= now,
            )
            .order_by(cls.phase_deadline.asc())
        )
        return list(session.scalars(stmt).all())

    @property
    def phase_enum(self) -> SessionPhase:
        return SessionPhase(self.phase)

    @property
    def is_number_pick(self) -> bool:
        return self.kind == NUMBER_PICK

    @property
    def is_quiz(self) -> bool:
        return self.kind == QUIZ

    @property
    def settings(self):
        """Typed configuration (:class:`NumberPickConfig` or :class:`QuizConfig`)."""
        return config_from_stored(self.kind, self.config)

    @property
    def lobby_status(self) -> Optional[str]:
        """``waiting_for_minimum`` or ``accepting_joins`` while in the lobby."""
        if self.phase != SessionPhase.LOBBY.value:
            return None
        if self.participant_count < self.min_participants:
            return "waiting_for_minimum"
        return "accepting_joins"

    def deadline_passed(self, now: datetime, slack: timedelta = timedelta(0)) -> bool:
        deadline = as_utc(self.phase_deadline)
        return deadline is not None and as_utc(now) + slack >= deadline

    def to_json(self) -> dict[str, Any]:
        """Return a JSON-serializable summary used in snapshots and webhooks."""
        return {
            "id": self.id,
            "kind": self.kind,
            "phase": self.phase,
            "lobby_status": self.lobby_status,
            "title": self.title,
            "created_by": self.created_by,
            "scope": self.scope,
            "configuration": dict(self.config),
            "participant_count": self.participant_count,
            "capacity": {"min": self.min_participants, "max": self.max_participants},
            "current_question": self.current_question,
            "created_at": dt_iso(self.created_at),
            "started_at": dt_iso(self.started_at),
            "phase_deadline": dt_iso(self.phase_deadline),
            "resolved_at": dt_iso(self.resolved_at),
            "cancel_reason": self.cancel_reason,
        }


__all__ = ["GameSession", "PHASE_TRANSITIONS", "SessionPhase"]
