"""
Shaadi Mantrana — Connection and ToastAck models.

A Connection is the undirected record of a mutual match.  The pair is stored
sorted (``user_low_id`` < ``user_high_id`` by string form) under a unique
constraint, and the primary key is a UUIDv5 of that sorted pair, so every
writer derives the same identity for the same two users.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    String,
    UniqueConstraint,
    Uuid,
    false,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from mantrana.database import Base

CONNECTION_STATUSES = ("pending", "accepted", "declined", "blocked", "expired")
CONNECTION_TYPES = ("like", "super_like", "interest", "match")

_CONNECTION_NAMESPACE = uuid.UUID("6f1c2a43-5d0e-4d8b-9a55-3c0f7b2e9d11")


def sorted_pair(
    user_a_id: uuid.UUID, user_b_id: uuid.UUID
) -> tuple[uuid.UUID, uuid.UUID]:
    """Order two user ids canonically (by string form)."""
    if str(user_a_id) <= str(user_b_id):
        return user_a_id, user_b_id
    return user_b_id, user_a_id


def connection_id_for(user_a_id: uuid.UUID, user_b_id: uuid.UUID) -> uuid.UUID:
    """Deterministic connection id for an unordered user pair."""
    low, high = sorted_pair(user_a_id, user_b_id)
    return uuid.uuid5(_CONNECTION_NAMESPACE, f"{low}:{high}")


class Connection(Base):
    __tablename__ = "connections"
    __table_args__ = (
        UniqueConstraint("user_low_id", "user_high_id", name="uq_connection_pair"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    user_low_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )
    user_high_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )
    status: Mapped[str] = mapped_column(
        String, nullable=False, comment="pending / accepted / declined / blocked / expired"
    )
    type: Mapped[str] = mapped_column(
        String, nullable=False, comment="like / super_like / interest / match"
    )
    initiated_by: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    initiated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    responded_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_activity_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    compatibility_score: Mapped[float | None] = mapped_column(Float, nullable=True)

    # Per-side "It's a match!" toast state.
    toast_seen_low: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=false(), nullable=False
    )
    toast_seen_high: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=false(), nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    # ── Relationships ──────────────────────────────────────────────
    user_low: Mapped["User"] = relationship(
        "User", foreign_keys=[user_low_id], lazy="selectin"
    )
    user_high: Mapped["User"] = relationship(
        "User", foreign_keys=[user_high_id], lazy="selectin"
    )

    @property
    def user_ids(self) -> tuple[uuid.UUID, uuid.UUID]:
        return self.user_low_id, self.user_high_id

    def has_participant(self, user_id: uuid.UUID) -> bool:
        return user_id in (self.user_low_id, self.user_high_id)

    def other_user_id(self, user_id: uuid.UUID) -> uuid.UUID:
        return self.user_high_id if user_id == self.user_low_id else self.user_low_id

    def other_user(self, user_id: uuid.UUID) -> "User":
        return self.user_high if user_id == self.user_low_id else self.user_low

    def toast_seen_by(self, user_id: uuid.UUID) -> bool:
        if user_id == self.user_low_id:
            return self.toast_seen_low
        return self.toast_seen_high

    def __repr__(self) -> str:
        return (
            f"<Connection {self.user_low_id} <-> {self.user_high_id} "
            f"status={self.status!r}>"
        )


class ToastAck(Base):
    """Toast acknowledgement received before its connection row existed."""

    __tablename__ = "toast_acks"
    __table_args__ = (
        UniqueConstraint("connection_id", "user_id", name="uq_toast_ack"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    connection_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<ToastAck connection={self.connection_id} user={self.user_id}>"
