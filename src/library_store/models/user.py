from sqlalchemy import String, DateTime, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func
from datetime import datetime
from enum import Enum as PyEnum

from library_store.database.base import (
    Base,
    allowed_values_check,
    max_length_check,
)
from library_store.database.triggers import install_updated_at_trigger

USERNAME_MAX_LENGTH = 50
EMAIL_MAX_LENGTH = 100


class UserRole(str, PyEnum):
    """Roles a user account may hold."""
    MEMBER = "member"
    ADMIN = "admin"
    LIBRARIAN = "librarian"


class UserStatus(str, PyEnum):
    """Lifecycle state of a user account."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


class User(Base):
    """
    SQLAlchemy model for a library user account.

    `role` and `status` are plain strings guarded by CHECK constraints rather
    than a native enum type, so an out-of-range value is rejected by the store
    as a check violation that names the column.
    """
    __tablename__ = "users"

    __table_args__ = (
        UniqueConstraint("username", name="uq_users_username"),
        UniqueConstraint("email", name="uq_users_email"),
        max_length_check("username", USERNAME_MAX_LENGTH),
        max_length_check("email", EMAIL_MAX_LENGTH),
        allowed_values_check("role", tuple(r.value for r in UserRole)),
        allowed_values_check("status", tuple(s.value for s in UserStatus)),
        # Deleted ids are never handed out again.
        {"sqlite_autoincrement": True},
    )

    # Store-assigned identity
    user_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Login name (unique via uq_users_username)
    username: Mapped[str] = mapped_column(
        String(USERNAME_MAX_LENGTH),
        nullable=False
    )

    # Email address (unique via uq_users_email)
    email: Mapped[str] = mapped_column(
        String(EMAIL_MAX_LENGTH),
        nullable=False
    )

    full_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(30), nullable=True)

    role: Mapped[str] = mapped_column(
        String(20),
        server_default=UserRole.MEMBER.value,
        nullable=False
    )

    status: Mapped[str] = mapped_column(
        String(20),
        server_default=UserStatus.ACTIVE.value,
        nullable=False
    )

    last_login: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Both timestamps are stamped by the repository clock; the server default
    # only covers rows inserted outside the repositories.
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<User(user_id={self.user_id!r}, username={self.username!r}, role={self.role!r})>"


install_updated_at_trigger(User.__table__)
