"""
IdempotencyRecord model - stored responses for client-keyed retries.
"""
from datetime import datetime
from uuid import uuid4, UUID

from sqlalchemy import String, Integer, DateTime, ForeignKey, JSON, Uuid, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from skillconnect.lib.db import Base, utcnow


class IdempotencyRecord(Base):
    """
    One record per (user, Idempotency-Key).
    A replayed key returns the stored response instead of re-running the operation.
    """
    __tablename__ = "idempotency_records"

    id: Mapped[UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid4,
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    key: Mapped[str] = mapped_column(String(255), nullable=False)

    # e.g. "accept-offer:<request id>"
    operation: Mapped[str] = mapped_column(String(255), nullable=False)
    status_code: Mapped[int] = mapped_column(Integer, nullable=False)
    response_body: Mapped[dict] = mapped_column(JSON, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    __table_args__ = (
        UniqueConstraint("user_id", "key", name="idempotency_key_per_user"),
    )

    def __repr__(self) -> str:
        return f"<IdempotencyRecord(user_id={self.user_id}, key={self.key}, operation={self.operation})>"
