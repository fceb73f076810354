"""
Organization schemas.

Request/response models for onboarding, organization, member and invitation
endpoints.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from vantage.models.invitation import InviteStatus
from vantage.models.member import MemberRole, MembershipStatus
from vantage.models.organization import OrganizationStatus, SubscriptionTier


# ---------------------------------------------------------------------------
# Profiles / onboarding
# ---------------------------------------------------------------------------

class ProfileResponse(BaseModel):
    """The caller's profile."""

    id: UUID
    user_sub: str
    email: str
    display_name: str
    created_at: datetime

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# Organization
# ---------------------------------------------------------------------------

class OrganizationCreateRequest(BaseModel):
    """Request body for POST /organizations."""

    name: str = Field(min_length=2, max_length=100)


class OrganizationUpdateRequest(BaseModel):
    """Request body for PATCH /organizations/{org_id}."""

    name: str | None = Field(default=None, min_length=2, max_length=100)
    subscription_tier: SubscriptionTier | None = None


class OrganizationStatusRequest(BaseModel):
    """Request body for PUT /organizations/{org_id}/status."""

    status: OrganizationStatus


class OrganizationResponse(BaseModel):
    """Organization detail response."""

    id: UUID
    name: str
    subscription_tier: SubscriptionTier
    status: OrganizationStatus
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class UserOrganizationResponse(BaseModel):
    """An organization the caller belongs to, with the caller's role."""

    organization: OrganizationResponse
    role: MemberRole


class UserOrganizationsListResponse(BaseModel):
    organizations: list[UserOrganizationResponse]
    total: int


class OnboardingResponse(BaseModel):
    """Response for POST /users/me/onboard."""

    profile: ProfileResponse
    organization: OrganizationResponse


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------

class MembershipResponse(BaseModel):
    """A membership without profile details."""

    id: UUID
    org_id: UUID
    user_sub: str
    role: MemberRole
    status: MembershipStatus
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class MemberResponse(MembershipResponse):
    """Single org member with profile info and role."""

    email: str | None = None
    display_name: str | None = None


class MemberUpdateRequest(BaseModel):
    """Request body for PATCH /organizations/{org_id}/members/{user_sub}."""

    role: MemberRole | None = None
    status: MembershipStatus | None = None


class MembersListResponse(BaseModel):
    """Response for GET /organizations/{org_id}/members."""

    members: list[MemberResponse]
    total: int


# ---------------------------------------------------------------------------
# Invitations
# ---------------------------------------------------------------------------

class InviteRequest(BaseModel):
    """Request body for POST /organizations/{org_id}/invite."""

    email: EmailStr
    role: MemberRole = MemberRole.member


class InvitationResponse(BaseModel):
    """
    Invitation detail response.

    The token is deliberately absent: it only travels in the invitation email.
    """

    id: UUID
    org_id: UUID
    email: str
    role: MemberRole
    status: InviteStatus
    invited_by_sub: str
    expires_at: datetime
    created_at: datetime

    model_config = {"from_attributes": True}


class InvitationIssuedResponse(InvitationResponse):
    """Response for POST /organizations/{org_id}/invite."""

    email_delivered: bool
    delivery_error: str | None = None


class InvitationsListResponse(BaseModel):
    """Response for listing invitations."""

    invitations: list[InvitationResponse]
    total: int


class InvitationAcceptRequest(BaseModel):
    """Request body for POST /invitations/accept."""

    token: str = Field(min_length=16, max_length=255)
