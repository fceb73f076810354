"""
Invitation lifecycle tests.

Verifies that:
- Only the addressed email can redeem an invitation
- Invitation tokens cannot be reused
- Expiry is enforced lazily and persisted
- A new invitation supersedes older pending ones
- Email delivery failures never lose the invitation
- Only Owners can use invitations to restore or change Owners and Admins
- Suspended organizations freeze invitations
"""

import pytest

from conftest import OWNER_SUB
from vantage.core.exceptions import (
    ConcurrencyConflict,
    EmailMismatch,
    InsufficientPermission,
    InviteAlreadyUsed,
    InviteExpired,
    InviteNotFound,
    OrganizationSuspended,
    ValidationError,
)
from vantage.models import (
    Invite,
    InviteStatus,
    MemberRole,
    Membership,
    MembershipStatus,
    OrganizationStatus,
)
from vantage.services.organization_service import TenancyService

BOB_SUB = "idp|bob"
BOB_EMAIL = "bob@acme.test"


class AcceptanceRace:
    """Store wrapper where another request always redeems the invite first."""

    def __init__(self, inner):
        self.inner = inner

    def __getattr__(self, name):
        return getattr(self.inner, name)

    async def update(self, model, entity_id, *, expected_version=None, **fields):
        if model is Invite and expected_version is not None:
            raise ConcurrencyConflict("Invite was modified concurrently")
        return await self.inner.update(
            model, entity_id, expected_version=expected_version, **fields
        )


# ---------------------------------------------------------------------------
# 1. Issue
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_invite_emails_redemption_link(tenancy, org, notifier):
    dispatch = await tenancy.invite_user(OWNER_SUB, org.id, "Bob@Acme.test", MemberRole.member)

    assert dispatch.email_delivered is True
    assert dispatch.invite.email == BOB_EMAIL
    assert dispatch.invite.status == InviteStatus.pending
    assert len(notifier.sent) == 1
    assert notifier.sent[0]["to"] == BOB_EMAIL
    assert dispatch.invite.token in notifier.sent[0]["text"]


@pytest.mark.asyncio
async def test_email_failure_keeps_invite(tenancy, org, notifier):
    notifier.fail = True

    dispatch = await tenancy.invite_user(OWNER_SUB, org.id, BOB_EMAIL, MemberRole.member)

    assert dispatch.email_delivered is False
    assert dispatch.delivery_error == "Email queue is unavailable"
    stored = await tenancy.get_invite(OWNER_SUB, org.id, dispatch.invite.id)
    assert stored.status == InviteStatus.pending


@pytest.mark.asyncio
async def test_new_invite_supersedes_pending_one(tenancy, org):
    first = await tenancy.invite_user(OWNER_SUB, org.id, BOB_EMAIL, MemberRole.member)
    second = await tenancy.invite_user(OWNER_SUB, org.id, BOB_EMAIL, MemberRole.admin)

    old = await tenancy.get_invite(OWNER_SUB, org.id, first.invite.id)
    assert old.status == InviteStatus.expired
    assert second.invite.status == InviteStatus.pending

    with pytest.raises(InviteExpired):
        await tenancy.accept_invite(BOB_SUB, BOB_EMAIL, first.invite.token)


@pytest.mark.asyncio
async def test_admin_cannot_invite_elevated_roles(tenancy, org, add_member):
    await add_member(org.id, "idp|ada", MemberRole.admin)

    with pytest.raises(InsufficientPermission):
        await tenancy.invite_user("idp|ada", org.id, BOB_EMAIL, MemberRole.admin)

    dispatch = await tenancy.invite_user("idp|ada", org.id, BOB_EMAIL, MemberRole.billing_admin)
    assert dispatch.invite.role == MemberRole.billing_admin


@pytest.mark.asyncio
async def test_member_cannot_invite(tenancy, org, add_member):
    await add_member(org.id, "idp|carol", MemberRole.member)

    with pytest.raises(InsufficientPermission):
        await tenancy.invite_user("idp|carol", org.id, BOB_EMAIL, MemberRole.member)


@pytest.mark.asyncio
async def test_cannot_invite_existing_member(tenancy, org, add_member):
    await add_member(org.id, BOB_SUB, MemberRole.member)

    with pytest.raises(ValidationError):
        await tenancy.invite_user(OWNER_SUB, org.id, BOB_EMAIL, MemberRole.member)


# ---------------------------------------------------------------------------
# 2. Accept
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_accept_creates_membership_with_invited_role(tenancy, org):
    dispatch = await tenancy.invite_user(OWNER_SUB, org.id, BOB_EMAIL, MemberRole.billing_admin)

    membership = await tenancy.accept_invite(BOB_SUB, BOB_EMAIL, dispatch.invite.token)

    assert membership.org_id == org.id
    assert membership.role == MemberRole.billing_admin
    invite = await tenancy.get_invite(OWNER_SUB, org.id, dispatch.invite.id)
    assert invite.status == InviteStatus.accepted
    assert invite.accepted_by_sub == BOB_SUB


@pytest.mark.asyncio
async def test_other_recipient_cannot_accept(tenancy, org):
    dispatch = await tenancy.invite_user(OWNER_SUB, org.id, BOB_EMAIL, MemberRole.member)

    with pytest.raises(EmailMismatch):
        await tenancy.accept_invite("idp|carol", "carol@acme.test", dispatch.invite.token)

    invite = await tenancy.get_invite(OWNER_SUB, org.id, dispatch.invite.id)
    assert invite.status == InviteStatus.pending


@pytest.mark.asyncio
async def test_replayed_token_is_rejected(tenancy, org, store):
    dispatch = await tenancy.invite_user(OWNER_SUB, org.id, BOB_EMAIL, MemberRole.member)
    await tenancy.accept_invite(BOB_SUB, BOB_EMAIL, dispatch.invite.token)

    with pytest.raises(InviteAlreadyUsed):
        await tenancy.accept_invite(BOB_SUB, BOB_EMAIL, dispatch.invite.token)

    assert await store.count(Membership, org_id=org.id, user_sub=BOB_SUB) == 1


@pytest.mark.asyncio
async def test_unknown_token(tenancy, org):
    with pytest.raises(InviteNotFound):
        await tenancy.accept_invite(BOB_SUB, BOB_EMAIL, "not-a-real-token-value")


@pytest.mark.asyncio
async def test_expired_invite_is_marked_on_accept(tenancy, org, clock):
    dispatch = await tenancy.invite_user(OWNER_SUB, org.id, BOB_EMAIL, MemberRole.member)
    clock.advance(days=8)

    with pytest.raises(InviteExpired):
        await tenancy.accept_invite(BOB_SUB, BOB_EMAIL, dispatch.invite.token)

    invite = await tenancy.get_invite(OWNER_SUB, org.id, dispatch.invite.id)
    assert invite.status == InviteStatus.expired


@pytest.mark.asyncio
async def test_listing_expires_overdue_invites(tenancy, org, clock):
    await tenancy.invite_user(OWNER_SUB, org.id, BOB_EMAIL, MemberRole.member)
    clock.advance(days=8)

    invites = await tenancy.list_invites(OWNER_SUB, org.id)

    assert [i.status for i in invites] == [InviteStatus.expired]


@pytest.mark.asyncio
async def test_revoked_invite_cannot_be_accepted(tenancy, org):
    dispatch = await tenancy.invite_user(OWNER_SUB, org.id, BOB_EMAIL, MemberRole.member)

    revoked = await tenancy.revoke_invite(OWNER_SUB, org.id, dispatch.invite.id)
    assert revoked.status == InviteStatus.expired

    with pytest.raises(InviteExpired):
        await tenancy.accept_invite(BOB_SUB, BOB_EMAIL, dispatch.invite.token)


@pytest.mark.asyncio
async def test_accepted_invite_cannot_be_revoked(tenancy, org):
    dispatch = await tenancy.invite_user(OWNER_SUB, org.id, BOB_EMAIL, MemberRole.member)
    await tenancy.accept_invite(BOB_SUB, BOB_EMAIL, dispatch.invite.token)

    with pytest.raises(InviteAlreadyUsed):
        await tenancy.revoke_invite(OWNER_SUB, org.id, dispatch.invite.id)


@pytest.mark.asyncio
async def test_invite_reactivates_suspended_member(tenancy, org, add_member):
    await add_member(org.id, BOB_SUB, MemberRole.member, MembershipStatus.suspended)
    dispatch = await tenancy.invite_user(OWNER_SUB, org.id, BOB_EMAIL, MemberRole.admin)

    membership = await tenancy.accept_invite(BOB_SUB, BOB_EMAIL, dispatch.invite.token)

    assert membership.status == MembershipStatus.active
    assert membership.role == MemberRole.admin


@pytest.mark.asyncio
async def test_admin_cannot_reinvite_suspended_owner_or_admin(tenancy, org, add_member, store):
    await add_member(org.id, "idp|dave", MemberRole.admin)
    await add_member(org.id, "idp|carol", MemberRole.owner, MembershipStatus.suspended)
    await add_member(org.id, "idp|erin", MemberRole.admin, MembershipStatus.suspended)

    for email in ("carol@acme.test", "erin@acme.test"):
        with pytest.raises(InsufficientPermission):
            await tenancy.invite_user("idp|dave", org.id, email, MemberRole.member)

    carol = await store.get_by(Membership, org_id=org.id, user_sub="idp|carol")
    erin = await store.get_by(Membership, org_id=org.id, user_sub="idp|erin")
    assert (carol.role, carol.status) == (MemberRole.owner, MembershipStatus.suspended)
    assert (erin.role, erin.status) == (MemberRole.admin, MembershipStatus.suspended)


@pytest.mark.asyncio
async def test_owner_can_reinvite_suspended_owner(tenancy, org, add_member):
    await add_member(org.id, "idp|carol", MemberRole.owner, MembershipStatus.suspended)
    dispatch = await tenancy.invite_user(OWNER_SUB, org.id, "carol@acme.test", MemberRole.member)

    membership = await tenancy.accept_invite("idp|carol", "carol@acme.test", dispatch.invite.token)

    assert membership.role == MemberRole.owner
    assert membership.status == MembershipStatus.active


@pytest.mark.asyncio
async def test_admin_invite_cannot_change_elevated_membership(tenancy, org, add_member, store):
    await add_member(org.id, "idp|dave", MemberRole.admin)
    dispatch = await tenancy.invite_user("idp|dave", org.id, "erin@acme.test", MemberRole.member)
    # Erin became a suspended Admin after the invitation went out.
    await add_member(org.id, "idp|erin", MemberRole.admin, MembershipStatus.suspended)

    with pytest.raises(InsufficientPermission):
        await tenancy.accept_invite("idp|erin", "erin@acme.test", dispatch.invite.token)

    erin = await store.get_by(Membership, org_id=org.id, user_sub="idp|erin")
    assert (erin.role, erin.status) == (MemberRole.admin, MembershipStatus.suspended)
    invite = await tenancy.get_invite(OWNER_SUB, org.id, dispatch.invite.id)
    assert invite.status == InviteStatus.pending


@pytest.mark.asyncio
async def test_suspended_organization_freezes_invites(tenancy, org):
    dispatch = await tenancy.invite_user(OWNER_SUB, org.id, BOB_EMAIL, MemberRole.member)
    await tenancy.set_organization_status(OWNER_SUB, org.id, OrganizationStatus.suspended)

    with pytest.raises(OrganizationSuspended):
        await tenancy.invite_user(OWNER_SUB, org.id, "zed@acme.test", MemberRole.member)
    with pytest.raises(OrganizationSuspended):
        await tenancy.accept_invite(BOB_SUB, BOB_EMAIL, dispatch.invite.token)
    with pytest.raises(OrganizationSuspended):
        await tenancy.revoke_invite(OWNER_SUB, org.id, dispatch.invite.id)

    invite = await tenancy.get_invite(OWNER_SUB, org.id, dispatch.invite.id)
    assert invite.status == InviteStatus.pending


@pytest.mark.asyncio
async def test_lost_race_undoes_membership(store, notifier, clock, tenancy, org):
    dispatch = await tenancy.invite_user(OWNER_SUB, org.id, BOB_EMAIL, MemberRole.member)
    racing = TenancyService(AcceptanceRace(store), notifier, clock)

    with pytest.raises(InviteAlreadyUsed):
        await racing.accept_invite(BOB_SUB, BOB_EMAIL, dispatch.invite.token)

    assert await store.count(Membership, org_id=org.id, user_sub=BOB_SUB) == 0


@pytest.mark.asyncio
async def test_lost_race_restores_previous_membership(store, notifier, clock, tenancy, org, add_member):
    await add_member(org.id, BOB_SUB, MemberRole.member, MembershipStatus.suspended)
    dispatch = await tenancy.invite_user(OWNER_SUB, org.id, BOB_EMAIL, MemberRole.admin)
    racing = TenancyService(AcceptanceRace(store), notifier, clock)

    with pytest.raises(InviteAlreadyUsed):
        await racing.accept_invite(BOB_SUB, BOB_EMAIL, dispatch.invite.token)

    membership = await store.get_by(Membership, org_id=org.id, user_sub=BOB_SUB)
    assert membership.role == MemberRole.member
    assert membership.status == MembershipStatus.suspended
