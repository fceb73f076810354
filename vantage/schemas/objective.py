"""
Objective tree schemas.

Request/response models for objectives, outcomes, key results and
initiatives. Derived fields (health, risk, trend) appear only in responses.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field

from vantage.models.objective import ConfidenceTrend, Health, LifecycleStatus, StrategicValue


class HeartbeatCadence(BaseModel):
    """How often an owner is expected to report."""

    frequency: Literal["weekly", "biweekly", "monthly", "quarterly"] = "weekly"
    due_day: str | None = Field(default=None, max_length=20)
    due_time: str | None = Field(default=None, pattern=r"^\d{2}:\d{2}$")


# ---------------------------------------------------------------------------
# Create requests
# ---------------------------------------------------------------------------

class InitiativeCreateRequest(BaseModel):
    """Request body for POST /key-results/{key_result_id}/initiatives."""

    name: str = Field(min_length=1, max_length=200)
    owner_id: str = Field(min_length=1, max_length=255)
    link: str | None = Field(default=None, max_length=1000)
    status: LifecycleStatus = LifecycleStatus.active
    heartbeat_cadence: HeartbeatCadence | None = None


class KeyResultCreateRequest(BaseModel):
    """Request body for POST /outcomes/{outcome_id}/key-results."""

    description: str = Field(min_length=1, max_length=500)
    owner_id: str = Field(min_length=1, max_length=255)
    heartbeat_cadence: HeartbeatCadence | None = None


class OutcomeCreateRequest(BaseModel):
    """Request body for POST /objectives/{objective_id}/outcomes."""

    goal: str = Field(min_length=1, max_length=500)
    benefit: str | None = None
    owner_id: str = Field(min_length=1, max_length=255)
    heartbeat_cadence: HeartbeatCadence | None = None


# ---------------------------------------------------------------------------
# Seeding
#
# Seed items are keyed by name under their parent (outcome goal, key result
# description, initiative name) so a partially failed seed can be replayed.
# ---------------------------------------------------------------------------

class KeyResultSeed(KeyResultCreateRequest):
    initiatives: list[InitiativeCreateRequest] = Field(default_factory=list)


class OutcomeSeed(OutcomeCreateRequest):
    key_results: list[KeyResultSeed] = Field(default_factory=list)


class ObjectiveCreateRequest(BaseModel):
    """Request body for POST /organizations/{org_id}/objectives."""

    name: str = Field(min_length=1, max_length=200)
    owner_id: str = Field(min_length=1, max_length=255)
    strategic_value: StrategicValue = StrategicValue.medium
    target_date: date
    outcomes: list[OutcomeSeed] = Field(default_factory=list)


class ObjectiveSeedRequest(BaseModel):
    """Request body for POST /objectives/{objective_id}/seed (idempotent replay)."""

    outcomes: list[OutcomeSeed] = Field(min_length=1)


# ---------------------------------------------------------------------------
# Update requests
#
# org_id and parent ids are immutable; unknown fields are rejected.
# ---------------------------------------------------------------------------

class ObjectiveUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    owner_id: str | None = Field(default=None, min_length=1, max_length=255)
    strategic_value: StrategicValue | None = None
    target_date: date | None = None

    model_config = {"extra": "forbid"}


class ObjectiveStatusRequest(BaseModel):
    status: LifecycleStatus


class OutcomeUpdateRequest(BaseModel):
    goal: str | None = Field(default=None, min_length=1, max_length=500)
    benefit: str | None = None
    owner_id: str | None = Field(default=None, min_length=1, max_length=255)
    heartbeat_cadence: HeartbeatCadence | None = None

    model_config = {"extra": "forbid"}


class KeyResultUpdateRequest(BaseModel):
    description: str | None = Field(default=None, min_length=1, max_length=500)
    owner_id: str | None = Field(default=None, min_length=1, max_length=255)
    heartbeat_cadence: HeartbeatCadence | None = None

    model_config = {"extra": "forbid"}


class InitiativeUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    owner_id: str | None = Field(default=None, min_length=1, max_length=255)
    link: str | None = Field(default=None, max_length=1000)
    status: LifecycleStatus | None = None
    heartbeat_cadence: HeartbeatCadence | None = None

    model_config = {"extra": "forbid"}


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class DerivedStateResponse(BaseModel):
    id: UUID
    org_id: UUID
    current_health: Health
    risk_score: int
    confidence_trend: ConfidenceTrend
    last_heartbeat_on: date | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ObjectiveResponse(DerivedStateResponse):
    name: str
    owner_id: str
    strategic_value: StrategicValue
    target_date: date
    status: LifecycleStatus


class OutcomeResponse(DerivedStateResponse):
    objective_id: UUID
    goal: str
    benefit: str | None
    owner_id: str
    heartbeat_cadence: HeartbeatCadence | None


class KeyResultResponse(DerivedStateResponse):
    outcome_id: UUID
    description: str
    owner_id: str
    heartbeat_cadence: HeartbeatCadence | None


class InitiativeResponse(DerivedStateResponse):
    key_result_id: UUID
    name: str
    owner_id: str
    link: str | None
    status: LifecycleStatus
    heartbeat_cadence: HeartbeatCadence | None


class KeyResultNodeResponse(KeyResultResponse):
    initiatives: list[InitiativeResponse]


class OutcomeNodeResponse(OutcomeResponse):
    key_results: list[KeyResultNodeResponse]


class ObjectiveTreeResponse(ObjectiveResponse):
    outcomes: list[OutcomeNodeResponse]


class SoftCapResponse(BaseModel):
    """Advisory plan limit; exceeding it never blocks creation."""

    limit: int | None
    active_count: int
    exceeded: bool


class SeedFailureResponse(BaseModel):
    kind: Literal["outcome", "key_result", "initiative"]
    name: str
    parent_id: UUID
    code: str
    message: str


class ObjectiveSeedResponse(BaseModel):
    objective: ObjectiveTreeResponse
    created: int
    failures: list[SeedFailureResponse]
    soft_cap: SoftCapResponse


class ObjectiveListResponse(BaseModel):
    objectives: list[ObjectiveResponse]
    total: int
    soft_cap: SoftCapResponse
