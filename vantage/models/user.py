"""
UserProfile ORM model.
"""

from __future__ import annotations

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from vantage.models.base import Base, TimestampMixin, UUIDMixin


class UserProfile(Base, UUIDMixin, TimestampMixin):
    """
    One row per authenticated principal, independent of tenancy.

    ``user_sub`` is the identity provider's subject and never changes.
    """

    __tablename__ = "user_profiles"

    user_sub: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)

    def __repr__(self) -> str:
        return f"<UserProfile user_sub={self.user_sub!r} email={self.email!r}>"
