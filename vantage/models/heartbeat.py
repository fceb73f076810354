"""
Heartbeat ORM model.

Heartbeats are append-only: no update path exists, and rows only disappear
together with their node under an explicit cascade delete.
"""

from __future__ import annotations

import enum
from datetime import date, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, CheckConstraint, Date, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from vantage.models.base import Base, UTCDateTime, UUIDMixin, enum_type, utcnow


class HealthSignal(str, enum.Enum):
    green = "green"
    yellow = "yellow"
    red = "red"


class Confidence(str, enum.Enum):
    high = "High"
    medium = "Medium"
    low = "Low"


class NodeType(str, enum.Enum):
    """Tree nodes that can receive heartbeats."""

    objective = "objective"
    key_result = "key_result"
    initiative = "initiative"


class Heartbeat(Base, UUIDMixin):
    __tablename__ = "heartbeats"
    __table_args__ = (
        CheckConstraint(
            "(CASE WHEN objective_id IS NULL THEN 0 ELSE 1 END)"
            " + (CASE WHEN key_result_id IS NULL THEN 0 ELSE 1 END)"
            " + (CASE WHEN initiative_id IS NULL THEN 0 ELSE 1 END) = 1",
            name="ck_heartbeats_single_target",
        ),
        CheckConstraint("period_start <= period_end", name="ck_heartbeats_period"),
    )

    org_id: Mapped[UUID] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    objective_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("objectives.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    key_result_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("key_results.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    initiative_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("initiatives.id", ondelete="RESTRICT"), nullable=True, index=True
    )

    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    health_signal: Mapped[HealthSignal] = mapped_column(
        enum_type(HealthSignal, "health_signal"), nullable=False
    )
    confidence: Mapped[Confidence] = mapped_column(
        enum_type(Confidence, "confidence"), nullable=False
    )
    narrative: Mapped[str] = mapped_column(Text, nullable=False)
    confidence_to_expected_impact: Mapped[float | None] = mapped_column(Float, nullable=True)

    leading_indicators: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    evidence: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    risks: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    owner_attestation: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    # Key result heartbeats only; stored verbatim.
    confidence_assessment: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    author_sub: Mapped[str] = mapped_column(String(255), nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)

    @property
    def node_type(self) -> NodeType:
        if self.objective_id is not None:
            return NodeType.objective
        if self.key_result_id is not None:
            return NodeType.key_result
        return NodeType.initiative

    @property
    def node_id(self) -> UUID:
        return self.objective_id or self.key_result_id or self.initiative_id  # type: ignore[return-value]

    def __repr__(self) -> str:
        return f"<Heartbeat id={self.id} {self.node_type.value}={self.node_id} signal={self.health_signal}>"
