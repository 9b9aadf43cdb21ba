"""
Shaadi Mantrana — Match model (directed record of a mutual match).
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


class Match(Base):
    __tablename__ = "matches"
    __table_args__ = (
        UniqueConstraint("user_id", "liked_user_id", name="uq_match_direction"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )
    liked_user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    connection_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("connections.id", ondelete="CASCADE"), nullable=True
    )
    action: Mapped[str] = mapped_column(
        String, nullable=False, comment="like / super_like"
    )
    is_match: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=false(), nullable=False
    )
    matched_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    compatibility_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    # ── Relationships ──────────────────────────────────────────────
    liked_user: Mapped["User"] = relationship(
        "User", foreign_keys=[liked_user_id], lazy="selectin"
    )

    def __repr__(self) -> str:
        return (
            f"<Match {self.user_id} -> {self.liked_user_id} "
            f"is_match={self.is_match}>"
        )
