"""
Membership ORM model.
"""

from __future__ import annotations

import enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from vantage.models.base import Base, TimestampMixin, UUIDMixin, enum_type

if TYPE_CHECKING:
    from vantage.models.organization import Organization


class MemberRole(str, enum.Enum):
    """
    Flat organization roles.

    There is no hierarchy beyond Owner implicitly holding every role.
    """

    owner = "Owner"
    admin = "Admin"
    member = "Member"
    billing_admin = "BillingAdmin"


class MembershipStatus(str, enum.Enum):
    active = "Active"
    suspended = "Suspended"


class Membership(Base, UUIDMixin, TimestampMixin):
    """Join table linking principals to organizations with a role."""

    __tablename__ = "memberships"
    __table_args__ = (
        UniqueConstraint("org_id", "user_sub", name="uq_memberships_org_user"),
    )

    org_id: Mapped[UUID] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_sub: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    role: Mapped[MemberRole] = mapped_column(
        enum_type(MemberRole, "member_role"), nullable=False
    )
    status: Mapped[MembershipStatus] = mapped_column(
        enum_type(MembershipStatus, "membership_status"),
        nullable=False,
        default=MembershipStatus.active,
    )

    # Relationships
    organization: Mapped[Organization] = relationship(
        "Organization", back_populates="members"
    )

    @property
    def is_active(self) -> bool:
        return self.status == MembershipStatus.active

    def __repr__(self) -> str:
        return f"<Membership org_id={self.org_id} user_sub={self.user_sub!r} role={self.role}>"
