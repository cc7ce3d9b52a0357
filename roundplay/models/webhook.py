"""Persistence for outbound webhook deliveries and their attempt history."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
    select,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from ..db.utils import dt_iso
from .base import Base
from .id_type import ID_TYPE


class DeliveryStatus(str, Enum):
    PENDING = "pending"
    RETRYING = "retrying"
    SUCCESS = "success"
    FAILED = "failed"


class WebhookDelivery(Base):
    """One outbound event and its delivery state."""

    __tablename__ = "webhook_deliveries"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    event_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    event_type: Mapped[str] = mapped_column(String(50), nullable=False)
    session_id: Mapped[Optional[str]] = mapped_column(String(32), nullable=True, index=True)
    """Not a foreign key: the audit trail outlives purged sessions."""

    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    """The full signed envelope exactly as posted."""

    target_url: Mapped[str] = mapped_column(String(500), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=DeliveryStatus.PENDING.value
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    """Lifetime number of HTTP attempts across dispatches and sweeps."""

    last_attempt_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    response_status: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    response_body: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    attempt_log: Mapped[list["WebhookAttempt"]] = relationship(
        back_populates="delivery",
        cascade="all, delete-orphan",
        order_by="WebhookAttempt.attempt_number",
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending','retrying','success','failed')", name="status_enum"
        ),
        Index("ix_webhook_deliveries_status_created", "status", "created_at"),
    )

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return (
            f"<WebhookDelivery(event_id={self.event_id}, type={self.event_type}, "
            f"status={self.status}, attempts={self.attempts})>"
        )

    @classmethod
    def get_by_event_id(cls, session: Session, event_id: str) -> Optional["WebhookDelivery"]:
        return session.scalar(select(cls).where(cls.event_id == event_id))

    @classmethod
    def count_by_status(cls, session: Session) -> dict[str, int]:
        rows = session.execute(
            select(cls.status, func.count(cls.id)).group_by(cls.status)
        ).all()
        counts = {status.value: 0 for status in DeliveryStatus}
        counts.update({status: count for status, count in rows})
        return counts

    def to_json(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type,
            "session_id": self.session_id,
            "target_url": self.target_url,
            "status": self.status,
            "attempts": self.attempts,
            "last_attempt_at": dt_iso(self.last_attempt_at),
            "response_status": self.response_status,
            "error_message": self.error_message,
            "created_at": dt_iso(self.created_at),
        }


class WebhookAttempt(Base):
    """Audit row for a single HTTP attempt."""

    __tablename__ = "webhook_attempts"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    delivery_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("webhook_deliveries.id", ondelete="CASCADE"), nullable=False, index=True
    )
    attempt_number: Mapped[int] = mapped_column(Integer, nullable=False)
    attempted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    response_status: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    duration_ms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    delivery: Mapped["WebhookDelivery"] = relationship(back_populates="attempt_log")
