"""
Caller profile and onboarding endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from vantage.core.dependencies import get_current_principal, get_tenancy_service
from vantage.core.security import Principal
from vantage.schemas.organization import (
    OnboardingResponse,
    OrganizationResponse,
    ProfileResponse,
    UserOrganizationResponse,
    UserOrganizationsListResponse,
)
from vantage.services.organization_service import TenancyService

router = APIRouter()


# ---------------------------------------------------------------------------
# Onboard
# ---------------------------------------------------------------------------

@router.post(
    "/me/onboard",
    response_model=OnboardingResponse,
    summary="Create profile and default organization",
)
async def onboard(
    principal: Principal = Depends(get_current_principal),
    service: TenancyService = Depends(get_tenancy_service),
) -> OnboardingResponse:
    """
    Explicit onboarding step, called once by the client after first sign-in.

    - Upserts the caller's profile from the identity token claims
    - Creates the caller's default organization (Owner) unless it exists
    - Safe to call repeatedly
    """
    profile = await service.ensure_user_profile(
        principal.sub, principal.email, principal.display_name
    )
    org = await service.ensure_default_organization(principal.sub)
    return OnboardingResponse(
        profile=ProfileResponse.model_validate(profile),
        organization=OrganizationResponse.model_validate(org),
    )


# ---------------------------------------------------------------------------
# My Organizations
# ---------------------------------------------------------------------------

@router.get(
    "/me/organizations",
    response_model=UserOrganizationsListResponse,
    summary="List organizations the caller belongs to",
)
async def list_my_organizations(
    principal: Principal = Depends(get_current_principal),
    service: TenancyService = Depends(get_tenancy_service),
) -> UserOrganizationsListResponse:
    pairs = await service.list_organizations_for_user(principal.sub)
    items = [
        UserOrganizationResponse(
            organization=OrganizationResponse.model_validate(org), role=membership.role
        )
        for org, membership in pairs
    ]
    return UserOrganizationsListResponse(organizations=items, total=len(items))
