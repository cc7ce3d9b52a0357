"""Append-only outcome log for game sessions."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, event
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..db.utils import dt_iso
from ..errors import InvariantViolation
from .base import Base
from .id_type import ID_TYPE

if TYPE_CHECKING:
    from .session import GameSession


class OutcomeEvent(Base):
    """Immutable record of something that happened in a session.

    ``kind`` is one of ``created``, ``joined``, ``claimed``, ``answered``,
    ``started``, ``question_advanced``, ``resolved`` or ``cancelled``.
    """

    __tablename__ = "outcome_events"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("game_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    kind: Mapped[str] = mapped_column(String(32), nullable=False)
    participant_id: Mapped[Optional[int]] = mapped_column(ID_TYPE, nullable=True)
    number: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    details: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    session: Mapped["GameSession"] = relationship(back_populates="events")

    def to_json(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "participant_id": self.participant_id,
            "number": self.number,
            "details": self.details,
            "created_at": dt_iso(self.created_at),
        }


@event.listens_for(OutcomeEvent, "before_update")
def _reject_event_update(mapper, connection, target: OutcomeEvent) -> None:
    raise InvariantViolation(
        f"Outcome event {target.id} of session {target.session_id} is append-only"
    )
