"""
Shaadi Mantrana — DailyLike model (directed swipe edge).
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
    Uuid,
    false,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from mantrana.database import Base

LIKE_TYPES = ("like", "super_like")
SWIPE_TYPES = LIKE_TYPES + ("pass",)


class DailyLike(Base):
    __tablename__ = "daily_likes"
    __table_args__ = (
        UniqueConstraint("user_id", "liked_user_id", name="uq_daily_like_pair"),
        Index("ix_daily_likes_user_date", "user_id", "like_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    liked_user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    type: Mapped[str] = mapped_column(
        String, nullable=False, comment="like / super_like / pass"
    )
    like_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    is_mutual_match: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=false(), nullable=False
    )
    connection_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("connections.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=func.now(), nullable=True
    )

    # ── Relationships ──────────────────────────────────────────────
    liked_user: Mapped["User"] = relationship(
        "User", foreign_keys=[liked_user_id], lazy="selectin"
    )
    user: Mapped["User"] = relationship(
        "User", foreign_keys=[user_id], lazy="selectin"
    )

    @property
    def is_like(self) -> bool:
        return self.type in LIKE_TYPES

    def __repr__(self) -> str:
        return (
            f"<DailyLike {self.user_id} -> {self.liked_user_id} "
            f"type={self.type!r} mutual={self.is_mutual_match}>"
        )
