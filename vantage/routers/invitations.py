"""
Invitation redemption endpoint.

Lives outside the organization routes: the invitee is not a member yet and
only knows the token from the email link.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from vantage.core.dependencies import get_current_principal, get_tenancy_service
from vantage.core.security import Principal
from vantage.schemas.organization import InvitationAcceptRequest, MembershipResponse
from vantage.services.organization_service import TenancyService

router = APIRouter()


@router.post(
    "/accept",
    response_model=MembershipResponse,
    summary="Accept an invitation",
)
async def accept_invitation(
    data: InvitationAcceptRequest,
    principal: Principal = Depends(get_current_principal),
    service: TenancyService = Depends(get_tenancy_service),
) -> MembershipResponse:
    """
    Accept an organization invitation.

    - User must be signed in with the email the invitation was sent to
    - Token must not be expired or already used
    """
    await service.ensure_user_profile(principal.sub, principal.email, principal.display_name)
    membership = await service.accept_invite(principal.sub, principal.email, data.token)
    return MembershipResponse.model_validate(membership)
