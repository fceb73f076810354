"""
SQLAlchemy ORM models.

All models imported here to ensure they are registered with Base.metadata.
Import order matters: base models before dependent models.
"""

from vantage.models.base import Base, TimestampMixin, UUIDMixin, VersionMixin
from vantage.models.organization import Organization, OrganizationStatus, SubscriptionTier
from vantage.models.user import UserProfile
from vantage.models.member import MemberRole, Membership, MembershipStatus
from vantage.models.invitation import Invite, InviteStatus
from vantage.models.objective import (
    ConfidenceTrend,
    Health,
    Initiative,
    KeyResult,
    LifecycleStatus,
    Outcome,
    StrategicObjective,
    StrategicValue,
)
from vantage.models.heartbeat import Confidence, Heartbeat, HealthSignal, NodeType

__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDMixin",
    "VersionMixin",
    "Organization",
    "OrganizationStatus",
    "SubscriptionTier",
    "UserProfile",
    "Membership",
    "MemberRole",
    "MembershipStatus",
    "Invite",
    "InviteStatus",
    "StrategicObjective",
    "Outcome",
    "KeyResult",
    "Initiative",
    "LifecycleStatus",
    "StrategicValue",
    "Health",
    "ConfidenceTrend",
    "Heartbeat",
    "HealthSignal",
    "Confidence",
    "NodeType",
]
