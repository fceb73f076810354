"""
Heartbeat schemas.

Shapes only; business validation (period order, narrative, impact range)
lives in the heartbeat service so that every caller gets the same errors.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field

from vantage.models.heartbeat import Confidence, HealthSignal, NodeType
from vantage.models.objective import ConfidenceTrend


class LeadingIndicator(BaseModel):
    name: str
    value: float | str
    previous_value: float | str | None = None
    trend: Literal["up", "down", "flat"] | None = None


class Evidence(BaseModel):
    type: str
    description: str
    source_link: str | None = None


class RiskItem(BaseModel):
    description: str
    severity: Literal["Critical", "High", "Medium", "Low"]
    mitigation: str | None = None


class OwnerAttestation(BaseModel):
    attested_by: str
    attested_on: datetime


class InitiativeLink(BaseModel):
    initiative_id: UUID
    influence_level: Literal["Primary", "Supporting"] = "Primary"


class ConfidenceAssessment(BaseModel):
    """Structured confidence statement carried by key result heartbeats."""

    overall_confidence: Confidence
    confidence_trend: ConfidenceTrend
    primary_initiatives: list[InitiativeLink] = Field(default_factory=list)
    confidence_drivers: list[str] = Field(default_factory=list)
    risk_drivers: list[str] = Field(default_factory=list)
    known_unknowns: list[str] = Field(default_factory=list)
    information_gaps: list[str] = Field(default_factory=list)
    confidence_limitations: str | None = None
    summary: str | None = None


class HeartbeatCreate(BaseModel):
    """Request body for POST .../{node_type}/{node_id}/heartbeats."""

    period_start: date
    period_end: date
    health_signal: HealthSignal
    confidence: Confidence
    narrative: str
    confidence_to_expected_impact: float | None = None
    leading_indicators: list[LeadingIndicator] = Field(default_factory=list)
    evidence: list[Evidence] = Field(default_factory=list)
    risks: list[RiskItem] = Field(default_factory=list)
    owner_attestation: OwnerAttestation | None = None
    confidence_assessment: ConfidenceAssessment | None = None


class HeartbeatResponse(BaseModel):
    id: UUID
    org_id: UUID
    node_type: NodeType
    node_id: UUID
    period_start: date
    period_end: date
    health_signal: HealthSignal
    confidence: Confidence
    narrative: str
    confidence_to_expected_impact: float | None
    leading_indicators: list[LeadingIndicator]
    evidence: list[Evidence]
    risks: list[RiskItem]
    owner_attestation: OwnerAttestation | None
    confidence_assessment: ConfidenceAssessment | None
    author_sub: str
    created_at: datetime

    model_config = {"from_attributes": True}


class HeartbeatListResponse(BaseModel):
    heartbeats: list[HeartbeatResponse]
    total: int


# ---------------------------------------------------------------------------
# Reminders
# ---------------------------------------------------------------------------

class DueHeartbeatResponse(BaseModel):
    node_type: NodeType
    node_id: UUID
    name: str
    owner_id: str
    last_period_end: date | None
    due_since: date


class DueHeartbeatsListResponse(BaseModel):
    due: list[DueHeartbeatResponse]
    total: int


class ReminderReportResponse(BaseModel):
    sent: int
    failed: int
    skipped: int
