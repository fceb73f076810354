"""
Organization ORM model.
"""

from __future__ import annotations

import enum
from typing import TYPE_CHECKING

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from vantage.models.base import Base, TimestampMixin, UUIDMixin, VersionMixin, enum_type

if TYPE_CHECKING:
    from vantage.models.invitation import Invite
    from vantage.models.member import Membership


class SubscriptionTier(str, enum.Enum):
    """Plan the organization is billed on."""

    free = "Free"
    pro = "Pro"
    enterprise = "Enterprise"


class OrganizationStatus(str, enum.Enum):
    active = "Active"
    suspended = "Suspended"


class Organization(Base, UUIDMixin, TimestampMixin, VersionMixin):
    """
    Represents a tenant organization.

    ``version`` is bumped whenever the set of active Owners changes so that
    concurrent demotions cannot leave the organization without one.
    """

    __tablename__ = "organizations"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    subscription_tier: Mapped[SubscriptionTier] = mapped_column(
        enum_type(SubscriptionTier, "subscription_tier"),
        nullable=False,
        default=SubscriptionTier.free,
    )
    status: Mapped[OrganizationStatus] = mapped_column(
        enum_type(OrganizationStatus, "organization_status"),
        nullable=False,
        default=OrganizationStatus.active,
    )
    # Set only on the organization created by onboarding; unique so that
    # concurrent onboarding calls cannot create two default organizations.
    default_owner_sub: Mapped[str | None] = mapped_column(
        String(255), nullable=True, unique=True
    )

    # Relationships
    members: Mapped[list[Membership]] = relationship(
        "Membership", back_populates="organization", cascade="all, delete-orphan"
    )
    invites: Mapped[list[Invite]] = relationship(
        "Invite", back_populates="organization", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Organization id={self.id} name={self.name!r}>"
