from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    func,
    select,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from ..db.utils import dt_iso
from .base import Base
from .id_type import ID_TYPE

if TYPE_CHECKING:
    from .participant import Participant
    from .session import GameSession


class Enrollment(Base):
    """Join-time link between a participant and a session.

    For NumberPick rounds ``claim_number`` mirrors the participant's claim; for
    Quiz rounds the score accumulators are updated on every answer.
    """

    __tablename__ = "enrollments"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("game_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    participant_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("participants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    claim_number: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    claimed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    correct_answers: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    answered_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_response_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_answered_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    is_winner: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    prize_position: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    prize_share: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    """Percentage of the prize pool (0-100)."""
    payout: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    eliminated_at_draw: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    """Reverse mode: 1-based draw that eliminated this participant."""

    session: Mapped["GameSession"] = relationship(back_populates="enrollments")
    participant: Mapped["Participant"] = relationship(back_populates="enrollments")

    __table_args__ = (
        UniqueConstraint("session_id", "participant_id", name="uq_enrollment_per_session"),
    )

    def __init__(
        self,
        *,
        session_id: Optional[str] = None,
        participant_id: Optional[int] = None,
        session: Optional["GameSession"] = None,
        participant: Optional["Participant"] = None,
        joined_at: Optional[datetime] = None,
    ) -> None:
        if session is not None:
            self.session = session
        if session_id is not None:
            self.session_id = session_id
        if participant is not None:
            self.participant = participant
        if participant_id is not None:
            self.participant_id = participant_id
        if joined_at is not None:
            self.joined_at = joined_at
        self.score = 0
        self.correct_answers = 0
        self.answered_count = 0
        self.total_response_ms = 0
        self.is_winner = False

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return (
            f"<Enrollment(session_id={self.session_id}, participant_id={self.participant_id}, "
            f"claim={self.claim_number}, score={self.score}, winner={self.is_winner})>"
        )

    @classmethod
    def get_for(cls, session: Session, session_id: str, participant_id: int) -> Optional["Enrollment"]:
        return session.scalar(
            select(cls).where(cls.session_id == session_id, cls.participant_id == participant_id)
        )

    @classmethod
    def count_without_claim(cls, session: Session, session_id: str) -> int:
        """Number of enrolled participants that have not claimed a number yet."""

        return session.scalar(
            select(func.count(cls.id)).where(
                cls.session_id == session_id, cls.claim_number.is_(None)
            )
        ) or 0

    def to_json(self) -> dict[str, Any]:
        participant = self.participant
        return {
            "participant_id": self.participant_id,
            "external_id": participant.external_id if participant is not None else None,
            "display_name": participant.display_name if participant is not None else None,
            "joined_at": dt_iso(self.joined_at),
            "claim": self.claim_number,
            "claimed_at": dt_iso(self.claimed_at),
            "score": self.score,
            "correct_answers": self.correct_answers,
            "answered_count": self.answered_count,
            "is_winner": self.is_winner,
            "prize_position": self.prize_position,
            "prize_share": self.prize_share,
            "payout": self.payout,
            "eliminated_at_draw": self.eliminated_at_draw,
        }
