from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import DateTime, Integer, String, select
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from ..db.utils import dt_iso
from .base import Base
from .id_type import ID_TYPE

if TYPE_CHECKING:
    from .enrollment import Enrollment


class Participant(Base):
    """A durable player identity shared by every session the player joins."""

    __tablename__ = "participants"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    external_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    sessions_played: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    sessions_won: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    enrollments: Mapped[list["Enrollment"]] = relationship(back_populates="participant")

    def __init__(
        self,
        external_id: str,
        display_name: Optional[str] = None,
        sessions_played: int = 0,
        sessions_won: int = 0,
        created_at: Optional[datetime] = None,
    ):
        self.external_id = external_id
        self.display_name = display_name or f"User{external_id}"
        self.sessions_played = sessions_played
        self.sessions_won = sessions_won
        if created_at is not None:
            self.created_at = created_at

    def __repr__(self) -> str:
        return (
            f"<Participant(id={self.id}, external_id='{self.external_id}', "
            f"display_name='{self.display_name}')>"
        )

    @classmethod
    def get_by_external_id(cls, session: Session, external_id: str) -> Optional["Participant"]:
        """Retrieve a participant by their chat-platform id."""

        return session.scalar(select(cls).where(cls.external_id == external_id))

    def to_json(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "external_id": self.external_id,
            "display_name": self.display_name,
            "sessions_played": self.sessions_played,
            "sessions_won": self.sessions_won,
            "created_at": dt_iso(self.created_at),
        }
