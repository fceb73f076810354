"""
Heartbeat endpoints.

Record and list heartbeats on objectives, key results and initiatives;
inspect overdue nodes and trigger reminder emails.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status

from vantage.core.dependencies import (
    get_current_principal,
    get_heartbeat_service,
    get_reminder_service,
    get_tenancy_service,
)
from vantage.core.security import Principal
from vantage.models.heartbeat import NodeType
from vantage.models.member import MemberRole
from vantage.schemas.heartbeat import (
    DueHeartbeatResponse,
    DueHeartbeatsListResponse,
    HeartbeatCreate,
    HeartbeatListResponse,
    HeartbeatResponse,
    ReminderReportResponse,
)
from vantage.services.heartbeat_service import HeartbeatService
from vantage.services.organization_service import TenancyService
from vantage.services.reminder_service import ReminderService

router = APIRouter()


# ---------------------------------------------------------------------------
# Due / Reminders
# ---------------------------------------------------------------------------

@router.get(
    "/organizations/{org_id}/heartbeats/due",
    response_model=DueHeartbeatsListResponse,
    summary="List nodes with an overdue heartbeat",
)
async def list_due_heartbeats(
    org_id: UUID,
    principal: Principal = Depends(get_current_principal),
    tenancy: TenancyService = Depends(get_tenancy_service),
    reminders: ReminderService = Depends(get_reminder_service),
) -> DueHeartbeatsListResponse:
    await tenancy.check_membership(principal.sub, org_id)
    due = await reminders.due_heartbeats(org_id)
    items = [
        DueHeartbeatResponse(
            node_type=d.node_type,
            node_id=d.node_id,
            name=d.name,
            owner_id=d.owner_id,
            last_period_end=d.last_period_end,
            due_since=d.due_since,
        )
        for d in due
    ]
    return DueHeartbeatsListResponse(due=items, total=len(items))


@router.post(
    "/organizations/{org_id}/heartbeats/reminders",
    response_model=ReminderReportResponse,
    summary="Email owners of overdue nodes",
)
async def send_reminders(
    org_id: UUID,
    principal: Principal = Depends(get_current_principal),
    tenancy: TenancyService = Depends(get_tenancy_service),
    reminders: ReminderService = Depends(get_reminder_service),
) -> ReminderReportResponse:
    """Requires Admin role. Delivery failures are counted, not raised."""
    await tenancy.check_membership(principal.sub, org_id, MemberRole.admin)
    report = await reminders.send_reminders(org_id)
    return ReminderReportResponse(sent=report.sent, failed=report.failed, skipped=report.skipped)


# ---------------------------------------------------------------------------
# Record / List Heartbeats
# ---------------------------------------------------------------------------

@router.post(
    "/organizations/{org_id}/heartbeats/{node_type}/{node_id}",
    response_model=HeartbeatResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record a heartbeat",
)
async def record_heartbeat(
    org_id: UUID,
    node_type: NodeType,
    node_id: UUID,
    data: HeartbeatCreate,
    principal: Principal = Depends(get_current_principal),
    service: HeartbeatService = Depends(get_heartbeat_service),
) -> HeartbeatResponse:
    """
    Append a heartbeat to an objective, key result or initiative.

    - Heartbeats are immutable once recorded
    - Derived health, risk and trend of the node and its ancestors are
      updated before the response is returned
    """
    heartbeat = await service.record_heartbeat(principal.sub, org_id, node_type, node_id, data)
    return HeartbeatResponse.model_validate(heartbeat)


@router.get(
    "/organizations/{org_id}/heartbeats/{node_type}/{node_id}",
    response_model=HeartbeatListResponse,
    summary="Heartbeat history of a node",
)
async def list_heartbeats(
    org_id: UUID,
    node_type: NodeType,
    node_id: UUID,
    principal: Principal = Depends(get_current_principal),
    service: HeartbeatService = Depends(get_heartbeat_service),
) -> HeartbeatListResponse:
    """Newest first."""
    heartbeats = await service.list_heartbeats(principal.sub, org_id, node_type, node_id)
    return HeartbeatListResponse(
        heartbeats=[HeartbeatResponse.model_validate(h) for h in heartbeats],
        total=len(heartbeats),
    )
