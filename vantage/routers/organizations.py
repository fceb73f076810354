"""
Organization management endpoints.

Create, update, status, member management, invitations.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status

from vantage.core.dependencies import get_current_principal, get_tenancy_service
from vantage.core.exceptions import ValidationError
from vantage.core.security import Principal
from vantage.models.member import Membership
from vantage.models.user import UserProfile
from vantage.schemas.organization import (
    InvitationIssuedResponse,
    InvitationResponse,
    InvitationsListResponse,
    InviteRequest,
    MemberResponse,
    MembersListResponse,
    MemberUpdateRequest,
    OrganizationCreateRequest,
    OrganizationResponse,
    OrganizationStatusRequest,
    OrganizationUpdateRequest,
)
from vantage.services.organization_service import TenancyService

router = APIRouter()


def _member_response(membership: Membership, profile: UserProfile | None) -> MemberResponse:
    return MemberResponse(
        id=membership.id,
        org_id=membership.org_id,
        user_sub=membership.user_sub,
        role=membership.role,
        status=membership.status,
        created_at=membership.created_at,
        updated_at=membership.updated_at,
        email=profile.email if profile else None,
        display_name=profile.display_name if profile else None,
    )


# ---------------------------------------------------------------------------
# Create Organization
# ---------------------------------------------------------------------------

@router.post(
    "",
    response_model=OrganizationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new organization",
)
async def create_organization(
    data: OrganizationCreateRequest,
    principal: Principal = Depends(get_current_principal),
    service: TenancyService = Depends(get_tenancy_service),
) -> OrganizationResponse:
    """
    Create a new organization.

    - Creator is automatically assigned Owner role
    - Starts on the Free tier, Active
    """
    await service.ensure_user_profile(principal.sub, principal.email, principal.display_name)
    org = await service.create_organization(principal.sub, data.name)
    return OrganizationResponse.model_validate(org)


# ---------------------------------------------------------------------------
# Get Organization
# ---------------------------------------------------------------------------

@router.get(
    "/{org_id}",
    response_model=OrganizationResponse,
    summary="Get organization",
)
async def get_organization(
    org_id: UUID,
    principal: Principal = Depends(get_current_principal),
    service: TenancyService = Depends(get_tenancy_service),
) -> OrganizationResponse:
    """Get organization details. Must be a member."""
    org = await service.get_organization(principal.sub, org_id)
    return OrganizationResponse.model_validate(org)


# ---------------------------------------------------------------------------
# Update Organization
# ---------------------------------------------------------------------------

@router.patch(
    "/{org_id}",
    response_model=OrganizationResponse,
    summary="Update organization name or plan",
)
async def update_organization(
    org_id: UUID,
    data: OrganizationUpdateRequest,
    principal: Principal = Depends(get_current_principal),
    service: TenancyService = Depends(get_tenancy_service),
) -> OrganizationResponse:
    """Rename requires Admin; changing the plan requires BillingAdmin. Owner may do both."""
    org = await service.update_organization(
        principal.sub,
        org_id,
        name=data.name,
        subscription_tier=data.subscription_tier,
    )
    return OrganizationResponse.model_validate(org)


@router.put(
    "/{org_id}/status",
    response_model=OrganizationResponse,
    summary="Suspend or reactivate an organization",
)
async def set_organization_status(
    org_id: UUID,
    data: OrganizationStatusRequest,
    principal: Principal = Depends(get_current_principal),
    service: TenancyService = Depends(get_tenancy_service),
) -> OrganizationResponse:
    """Suspended organizations are read-only. Requires Owner role."""
    org = await service.set_organization_status(principal.sub, org_id, data.status)
    return OrganizationResponse.model_validate(org)


# ---------------------------------------------------------------------------
# List Members
# ---------------------------------------------------------------------------

@router.get(
    "/{org_id}/members",
    response_model=MembersListResponse,
    summary="List organization members",
)
async def list_members(
    org_id: UUID,
    principal: Principal = Depends(get_current_principal),
    service: TenancyService = Depends(get_tenancy_service),
) -> MembersListResponse:
    """List all members of the organization."""
    members = await service.list_members(principal.sub, org_id)
    items = [_member_response(m, p) for m, p in members]
    return MembersListResponse(members=items, total=len(items))


# ---------------------------------------------------------------------------
# Invite Member
# ---------------------------------------------------------------------------

@router.post(
    "/{org_id}/invite",
    response_model=InvitationIssuedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Invite a new member",
)
async def invite_member(
    org_id: UUID,
    data: InviteRequest,
    principal: Principal = Depends(get_current_principal),
    service: TenancyService = Depends(get_tenancy_service),
) -> InvitationIssuedResponse:
    """
    Invite a user to the organization by email.

    - Requires Admin role; only an Owner can invite Owners or Admins
    - Sends the redemption link by email via Celery
    - The invitation is kept even when the email could not be queued
    - Token expires in 7 days and is never returned here
    """
    dispatch = await service.invite_user(principal.sub, org_id, data.email, data.role)
    return InvitationIssuedResponse(
        **InvitationResponse.model_validate(dispatch.invite).model_dump(),
        email_delivered=dispatch.email_delivered,
        delivery_error=dispatch.delivery_error,
    )


# ---------------------------------------------------------------------------
# Invitations
# ---------------------------------------------------------------------------

@router.get(
    "/{org_id}/invitations",
    response_model=InvitationsListResponse,
    summary="List invitations",
)
async def list_invitations(
    org_id: UUID,
    principal: Principal = Depends(get_current_principal),
    service: TenancyService = Depends(get_tenancy_service),
) -> InvitationsListResponse:
    """List invitations, newest first. Requires Admin role."""
    invites = await service.list_invites(principal.sub, org_id)
    items = [InvitationResponse.model_validate(i) for i in invites]
    return InvitationsListResponse(invitations=items, total=len(items))


@router.get(
    "/{org_id}/invitations/{invitation_id}",
    response_model=InvitationResponse,
    summary="Get an invitation",
)
async def get_invitation(
    org_id: UUID,
    invitation_id: UUID,
    principal: Principal = Depends(get_current_principal),
    service: TenancyService = Depends(get_tenancy_service),
) -> InvitationResponse:
    invite = await service.get_invite(principal.sub, org_id, invitation_id)
    return InvitationResponse.model_validate(invite)


@router.delete(
    "/{org_id}/invitations/{invitation_id}",
    response_model=InvitationResponse,
    summary="Revoke a pending invitation",
)
async def revoke_invitation(
    org_id: UUID,
    invitation_id: UUID,
    principal: Principal = Depends(get_current_principal),
    service: TenancyService = Depends(get_tenancy_service),
) -> InvitationResponse:
    """Revoke a pending invitation. Requires Admin role."""
    invite = await service.revoke_invite(principal.sub, org_id, invitation_id)
    return InvitationResponse.model_validate(invite)


# ---------------------------------------------------------------------------
# Update Member
# ---------------------------------------------------------------------------

@router.patch(
    "/{org_id}/members/{user_sub}",
    response_model=MemberResponse,
    summary="Update a member's role or status",
)
async def update_member(
    org_id: UUID,
    user_sub: str,
    data: MemberUpdateRequest,
    principal: Principal = Depends(get_current_principal),
    service: TenancyService = Depends(get_tenancy_service),
) -> MemberResponse:
    """
    Change a member's role and / or status.

    - Owner can change anyone
    - Admin cannot modify Admins or Owners, nor grant Admin / Owner
    - The last active Owner cannot be demoted or suspended
    """
    membership = None
    if data.role is not None:
        membership = await service.update_user_role(principal.sub, org_id, user_sub, data.role)
    if data.status is not None:
        membership = await service.set_member_status(principal.sub, org_id, user_sub, data.status)
    if membership is None:
        raise ValidationError("Provide a role or a status")

    return _member_response(membership, await service.get_profile(user_sub))


# ---------------------------------------------------------------------------
# Remove Member
# ---------------------------------------------------------------------------

@router.delete(
    "/{org_id}/members/{user_sub}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove a member from the organization",
)
async def remove_member(
    org_id: UUID,
    user_sub: str,
    principal: Principal = Depends(get_current_principal),
    service: TenancyService = Depends(get_tenancy_service),
) -> None:
    """
    Remove a member from the organization.

    - Admin cannot remove Admins or Owners
    - The last active Owner cannot be removed
    """
    await service.remove_user(principal.sub, org_id, user_sub)
