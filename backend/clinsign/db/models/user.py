"""
User model backing the default identity and credential stores.

Roles are a fixed enum set enforced at the application layer and stored
as a string for schema portability across SQLite and PostgreSQL.
"""

from __future__ import annotations

from enum import StrEnum

from sqlalchemy import Boolean, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from clinsign.db.base import Base, SoftDeleteMixin, TimestampMixin, UUIDPrimaryKeyMixin


class RoleEnum(StrEnum):
    """Study-team role definitions."""

    ADMIN = "admin"
    PRINCIPAL_INVESTIGATOR = "principal_investigator"
    COORDINATOR = "coordinator"
    IRB_REVIEWER = "irb_reviewer"
    MONITOR = "monitor"


class User(Base, UUIDPrimaryKeyMixin, TimestampMixin, SoftDeleteMixin):
    """User entity with hashed password and role."""

    __tablename__ = "users"
    __table_args__ = (UniqueConstraint("username", name="uq_users_username"),)

    username: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    email: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(
        String(50), nullable=False, default=RoleEnum.COORDINATOR.value
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<User {self.username}>"
