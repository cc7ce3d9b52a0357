from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, UniqueConstraint, select
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from .base import Base
from .id_type import ID_TYPE

if TYPE_CHECKING:
    from .participant import Participant
    from .session import GameSession


class Claim(Base):
    """A number taken by a participant in a NumberPick session.

    ``exclusive_number`` carries the number only when the session forbids
    duplicate claims. The unique constraint on ``(session_id,
    exclusive_number)`` then makes the insert itself the atomic
    "claim if free" operation; NULLs never collide, so sessions that allow
    duplicates are unaffected.
    """

    __tablename__ = "claims"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("game_sessions.id", ondelete="CASCADE"), nullable=False
    )
    participant_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("participants.id", ondelete="CASCADE"), nullable=False
    )
    number: Mapped[int] = mapped_column(Integer, nullable=False)
    exclusive_number: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    claimed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    session: Mapped["GameSession"] = relationship(back_populates="claims")
    participant: Mapped["Participant"] = relationship()

    __table_args__ = (
        UniqueConstraint("session_id", "exclusive_number", name="uq_claim_exclusive_number"),
        UniqueConstraint("session_id", "participant_id", name="uq_claim_per_participant"),
        Index("ix_claims_session_number", "session_id", "number"),
    )

    def __init__(
        self,
        *,
        session_id: str,
        participant_id: int,
        number: int,
        exclusive: bool,
        claimed_at: Optional[datetime] = None,
    ) -> None:
        self.session_id = session_id
        self.participant_id = participant_id
        self.number = number
        self.exclusive_number = number if exclusive else None
        if claimed_at is not None:
            self.claimed_at = claimed_at

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return (
            f"<Claim(session_id={self.session_id}, number={self.number}, "
            f"participant_id={self.participant_id})>"
        )

    @classmethod
    def for_session(cls, session: Session, session_id: str) -> list["Claim"]:
        stmt = (
            select(cls)
            .where(cls.session_id == session_id)
            .order_by(cls.claimed_at.asc(), cls.id.asc())
        )
        return list(session.scalars(stmt).all())

    @classmethod
    def claimed_numbers(cls, session: Session, session_id: str) -> set[int]:
        return set(session.scalars(select(cls.number).where(cls.session_id == session_id)).all())
