"""Quiz questions and the answers submitted to them."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    select,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from .base import Base
from .id_type import ID_TYPE

if TYPE_CHECKING:
    from .session import GameSession


class QuizQuestion(Base):
    """One multiple-choice question fixed at session creation."""

    __tablename__ = "quiz_questions"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("game_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    """Zero-based order within the session."""

    prompt: Mapped[str] = mapped_column(Text, nullable=False)
    options: Mapped[list] = mapped_column(JSON, nullable=False)
    correct_index: Mapped[int] = mapped_column(Integer, nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    opened_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    """Set when the question becomes the current one; response times are measured from it."""

    session: Mapped["GameSession"] = relationship(back_populates="questions")
    answers: Mapped[list["QuizAnswer"]] = relationship(
        back_populates="question", cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint("session_id", "position", name="uq_quiz_question_position"),
    )

    @classmethod
    def at_position(cls, session: Session, session_id: str, position: int) -> Optional["QuizQuestion"]:
        return session.scalar(
            select(cls).where(cls.session_id == session_id, cls.position == position)
        )

    def to_json(self, include_answer: bool = False) -> dict[str, Any]:
        data = {
            "position": self.position,
            "prompt": self.prompt,
            "options": list(self.options),
            "category": self.category,
        }
        if include_answer:
            data["correct_index"] = self.correct_index
        return data


class QuizAnswer(Base):
    """A participant's single answer to a quiz question."""

    __tablename__ = "quiz_answers"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("game_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    question_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("quiz_questions.id", ondelete="CASCADE"), nullable=False
    )
    participant_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("participants.id", ondelete="CASCADE"), nullable=False
    )
    answer_index: Mapped[int] = mapped_column(Integer, nullable=False)
    is_correct: Mapped[bool] = mapped_column(Boolean, nullable=False)
    response_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    answered_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    session: Mapped["GameSession"] = relationship(back_populates="answers")
    question: Mapped["QuizQuestion"] = relationship(back_populates="answers")

    __table_args__ = (
        UniqueConstraint("question_id", "participant_id", name="uq_quiz_answer_once"),
    )
