"""
Invite ORM model.
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from vantage.models.base import (
    Base,
    TimestampMixin,
    UTCDateTime,
    UUIDMixin,
    VersionMixin,
    enum_type,
)
from vantage.models.member import MemberRole

if TYPE_CHECKING:
    from vantage.models.organization import Organization


class InviteStatus(str, enum.Enum):
    pending = "Pending"
    accepted = "Accepted"
    expired = "Expired"


class Invite(Base, UUIDMixin, TimestampMixin, VersionMixin):
    """Single-use, time-limited invitation to join an organization."""

    __tablename__ = "invites"

    org_id: Mapped[UUID] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    role: Mapped[MemberRole] = mapped_column(
        enum_type(MemberRole, "member_role"), nullable=False
    )
    token: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    invited_by_sub: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[InviteStatus] = mapped_column(
        enum_type(InviteStatus, "invite_status"),
        nullable=False,
        default=InviteStatus.pending,
    )
    accepted_by_sub: Mapped[str | None] = mapped_column(String(255), nullable=True)
    accepted_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    # Relationships
    organization: Mapped[Organization] = relationship(
        "Organization", back_populates="invites"
    )

    def is_past_expiry(self, now: datetime) -> bool:
        return now > self.expires_at

    def __repr__(self) -> str:
        return f"<Invite id={self.id} org_id={self.org_id} status={self.status}>"
