"""
Shaadi Mantrana — User model.
"""

import uuid
from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, Integer, String, Uuid, false, func
from sqlalchemy.orm import Mapped, mapped_column

from mantrana.database import Base, JSONDocument

USER_ROLES = ("user", "admin")
USER_STATUSES = ("invited", "active", "paused")


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    email: Mapped[str] = mapped_column(
        String, unique=True, index=True, nullable=False
    )
    role: Mapped[str] = mapped_column(
        String, default="user", server_default="user", nullable=False,
        comment="user / admin",
    )
    status: Mapped[str] = mapped_column(
        String, default="invited", server_default="invited", nullable=False,
        comment="invited / active / paused",
    )
    is_approved: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=false(), nullable=False
    )
    gender: Mapped[str | None] = mapped_column(String, nullable=True)
    birth_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    profile: Mapped[dict | None] = mapped_column(
        JSONDocument, nullable=True, comment="Validated ProfileData document"
    )
    profile_completeness: Mapped[int] = mapped_column(
        Integer, default=0, server_default="0", nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=func.now(), nullable=True
    )
    last_login_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    @property
    def display_name(self) -> str:
        return (self.profile or {}).get("name") or "Unknown"

    @property
    def age(self) -> int | None:
        """Age from ``birth_date`` when known, else the self-reported one."""
        if self.birth_date is not None:
            today = date.today()
            born = self.birth_date
            return today.year - born.year - (
                (today.month, today.day) < (born.month, born.day)
            )
        return (self.profile or {}).get("age")

    @property
    def is_discoverable(self) -> bool:
        return self.status == "active" and self.is_approved

    def __repr__(self) -> str:
        return f"<User {self.email!r} id={self.id} status={self.status!r}>"
