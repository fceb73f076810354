"""
Objective tree ORM models.

StrategicObjective -> Outcome -> KeyResult -> Initiative. Every node below
the objective carries a copy of the objective's ``org_id`` so tenant-scoped
queries never need a join; it is written once at creation and never updated.
"""

from __future__ import annotations

import enum
from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, CheckConstraint, Date, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from vantage.models.base import Base, TimestampMixin, UUIDMixin, VersionMixin, enum_type


class LifecycleStatus(str, enum.Enum):
    """Status of objectives and initiatives."""

    draft = "Draft"
    active = "Active"
    paused = "Paused"
    completed = "Completed"
    cancelled = "Cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (LifecycleStatus.completed, LifecycleStatus.cancelled)


class StrategicValue(str, enum.Enum):
    high = "High"
    medium = "Medium"
    low = "Low"


class Health(str, enum.Enum):
    red = "Red"
    amber = "Amber"
    green = "Green"


class ConfidenceTrend(str, enum.Enum):
    improving = "Improving"
    stable = "Stable"
    declining = "Declining"


class DerivedStateMixin(VersionMixin):
    """
    Roll-up output written only by the heartbeat engine.

    ``version`` serializes concurrent roll-ups of the same node.
    """

    current_health: Mapped[Health] = mapped_column(
        enum_type(Health, "health"), nullable=False, default=Health.green
    )
    risk_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    confidence_trend: Mapped[ConfidenceTrend] = mapped_column(
        enum_type(ConfidenceTrend, "confidence_trend"),
        nullable=False,
        default=ConfidenceTrend.stable,
    )
    last_heartbeat_on: Mapped[date | None] = mapped_column(Date, nullable=True)


class StrategicObjective(Base, UUIDMixin, TimestampMixin, DerivedStateMixin):
    """Root of the containment tree."""

    __tablename__ = "objectives"
    __table_args__ = (
        CheckConstraint("risk_score >= 0 AND risk_score <= 100", name="ck_objectives_risk_range"),
    )

    org_id: Mapped[UUID] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    owner_id: Mapped[str] = mapped_column(String(255), nullable=False)
    strategic_value: Mapped[StrategicValue] = mapped_column(
        enum_type(StrategicValue, "strategic_value"), nullable=False
    )
    target_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[LifecycleStatus] = mapped_column(
        enum_type(LifecycleStatus, "lifecycle_status"),
        nullable=False,
        default=LifecycleStatus.draft,
    )

    def __repr__(self) -> str:
        return f"<StrategicObjective id={self.id} name={self.name!r} status={self.status}>"


class Outcome(Base, UUIDMixin, TimestampMixin, DerivedStateMixin):
    __tablename__ = "outcomes"

    org_id: Mapped[UUID] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    objective_id: Mapped[UUID] = mapped_column(
        ForeignKey("objectives.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    goal: Mapped[str] = mapped_column(String(500), nullable=False)
    benefit: Mapped[str | None] = mapped_column(Text, nullable=True)
    owner_id: Mapped[str] = mapped_column(String(255), nullable=False)
    heartbeat_cadence: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    def __repr__(self) -> str:
        return f"<Outcome id={self.id} objective_id={self.objective_id}>"


class KeyResult(Base, UUIDMixin, TimestampMixin, DerivedStateMixin):
    __tablename__ = "key_results"

    org_id: Mapped[UUID] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    outcome_id: Mapped[UUID] = mapped_column(
        ForeignKey("outcomes.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    owner_id: Mapped[str] = mapped_column(String(255), nullable=False)
    heartbeat_cadence: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    def __repr__(self) -> str:
        return f"<KeyResult id={self.id} outcome_id={self.outcome_id}>"


class Initiative(Base, UUIDMixin, TimestampMixin, DerivedStateMixin):
    """Leaf of the containment tree."""

    __tablename__ = "initiatives"

    org_id: Mapped[UUID] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    key_result_id: Mapped[UUID] = mapped_column(
        ForeignKey("key_results.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    owner_id: Mapped[str] = mapped_column(String(255), nullable=False)
    link: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    status: Mapped[LifecycleStatus] = mapped_column(
        enum_type(LifecycleStatus, "lifecycle_status"),
        nullable=False,
        default=LifecycleStatus.active,
    )
    heartbeat_cadence: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    def __repr__(self) -> str:
        return f"<Initiative id={self.id} key_result_id={self.key_result_id}>"
