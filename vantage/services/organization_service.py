"""
Organization business logic.

Handles organization creation, membership and role checks, and the invite
lifecycle. All queries scoped by org_id; every authorization decision
re-reads the membership row.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from vantage.core.config import settings
from vantage.core.exceptions import (
    ConcurrencyConflict,
    DependencyUnavailable,
    DomainError,
    EmailMismatch,
    InsufficientPermission,
    InviteAlreadyUsed,
    InviteExpired,
    InviteNotFound,
    NotAMember,
    NotFound,
    OrganizationSuspended,
    ValidationError,
)
from vantage.core.notifications import NotificationDispatcher
from vantage.core.security import build_invite_link, generate_invite_token, tokens_match
from vantage.core.store import EntityStore
from vantage.models.base import Base, utcnow
from vantage.models.invitation import Invite, InviteStatus
from vantage.models.member import MemberRole, Membership, MembershipStatus
from vantage.models.organization import Organization, OrganizationStatus, SubscriptionTier
from vantage.models.user import UserProfile

logger = logging.getLogger(__name__)

ELEVATED_ROLES = (MemberRole.owner, MemberRole.admin)


@dataclass(frozen=True)
class InviteDispatch:
    """Outcome of ``invite_user``: the persisted invite plus email delivery."""

    invite: Invite
    email_delivered: bool
    delivery_error: str | None = None


class TenancyService:
    """Handles all organization, membership and invitation operations."""

    def __init__(
        self,
        store: EntityStore,
        notifier: NotificationDispatcher,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.clock = clock

    # -----------------------------------------------------------------------
    # Profiles and onboarding
    # -----------------------------------------------------------------------

    async def ensure_user_profile(
        self, user_sub: str, email: str, display_name: str | None = None
    ) -> UserProfile:
        """Create the caller's profile, or refresh email / name on an existing one."""
        email = email.strip().lower()
        display_name = display_name or email.split("@")[0]

        profile = await self.store.get_by(UserProfile, user_sub=user_sub)
        if profile is None:
            return await self.store.create(
                UserProfile, user_sub=user_sub, email=email, display_name=display_name
            )

        changes: dict[str, Any] = {}
        if profile.email != email:
            changes["email"] = email
        if profile.display_name != display_name:
            changes["display_name"] = display_name
        if changes:
            profile = await self.store.update(UserProfile, profile.id, **changes)
        return profile

    async def get_profile(self, user_sub: str) -> UserProfile | None:
        return await self.store.get_by(UserProfile, user_sub=user_sub)

    async def ensure_default_organization(self, user_sub: str) -> Organization:
        """
        Idempotent onboarding step.

        Returns the principal's default organization, creating it with an
        Owner membership the first time. A concurrent duplicate trips the
        unique ``default_owner_sub`` column; the losing insert is rolled back
        to a savepoint and the winner's row is returned instead.
        """
        existing = await self.store.get_by(Organization, default_owner_sub=user_sub)
        if existing is not None:
            return existing

        profile = await self.store.get_by(UserProfile, user_sub=user_sub)
        name = f"{profile.display_name}'s Organization" if profile else "My Organization"
        try:
            async with self.store.savepoint():
                return await self.create_organization(
                    user_sub, name[:100], default_owner_sub=user_sub
                )
        except ConcurrencyConflict:
            winner = await self.store.get_by(Organization, default_owner_sub=user_sub)
            if winner is None:
                raise
            logger.info("Default organization of %s created concurrently: %s", user_sub, winner.id)
            return winner

    # -----------------------------------------------------------------------
    # Create Organization
    # -----------------------------------------------------------------------

    async def create_organization(
        self,
        creator_sub: str,
        name: str,
        *,
        default_owner_sub: str | None = None,
    ) -> Organization:
        """
        Create a new organization.

        - Creates organization record (Free tier, Active)
        - Assigns creator as Owner
        - Deletes the organization again if the Owner membership cannot be written
        """
        org = await self.store.create(
            Organization,
            name=name,
            subscription_tier=SubscriptionTier.free,
            status=OrganizationStatus.active,
            default_owner_sub=default_owner_sub,
        )

        try:
            await self.store.create(
                Membership,
                org_id=org.id,
                user_sub=creator_sub,
                role=MemberRole.owner,
                status=MembershipStatus.active,
            )
        except DomainError:
            await self._compensate(Organization, org.id)
            raise

        logger.info("Organization %s created by %s", org.id, creator_sub)
        return org

    # -----------------------------------------------------------------------
    # Get / Update Organization
    # -----------------------------------------------------------------------

    async def get_organization(self, actor_sub: str, org_id: UUID) -> Organization:
        await self.check_membership(actor_sub, org_id)
        return await self._load_org(org_id)

    async def list_organizations_for_user(
        self, user_sub: str
    ) -> list[tuple[Organization, Membership]]:
        memberships = await self.store.query(
            Membership, user_sub=user_sub, status=MembershipStatus.active
        )
        if not memberships:
            return []
        orgs = {
            org.id: org
            for org in await self.store.query(
                Organization, id=[m.org_id for m in memberships], order_by=["created_at"]
            )
        }
        return [(orgs[m.org_id], m) for m in memberships if m.org_id in orgs]

    async def update_organization(
        self,
        actor_sub: str,
        org_id: UUID,
        *,
        name: str | None = None,
        subscription_tier: SubscriptionTier | None = None,
    ) -> Organization:
        """
        Rename (Admin) and / or change plan (BillingAdmin). Owner may do both.
        """
        changes: dict[str, Any] = {}
        if name is not None:
            await self.check_membership(actor_sub, org_id, MemberRole.admin)
            changes["name"] = name
        if subscription_tier is not None:
            await self.check_membership(actor_sub, org_id, MemberRole.billing_admin)
            changes["subscription_tier"] = SubscriptionTier(subscription_tier)

        if not changes:
            return await self.get_organization(actor_sub, org_id)

        org = await self.store.update(Organization, org_id, **changes)
        logger.info("Organization %s updated by %s: %s", org_id, actor_sub, sorted(changes))
        return org

    async def set_organization_status(
        self, actor_sub: str, org_id: UUID, status: OrganizationStatus
    ) -> Organization:
        """Suspend (read-only) or reactivate an organization. Owner only."""
        await self.check_membership(actor_sub, org_id, MemberRole.owner)
        org = await self.store.update(Organization, org_id, status=OrganizationStatus(status))
        logger.info("Organization %s set to %s by %s", org_id, org.status.value, actor_sub)
        return org

    async def require_writable(self, org_id: UUID) -> Organization:
        """Tenant data of suspended organizations is read-only."""
        org = await self._load_org(org_id)
        if org.status != OrganizationStatus.active:
            raise OrganizationSuspended()
        return org

    # -----------------------------------------------------------------------
    # Membership checks
    # -----------------------------------------------------------------------

    async def check_membership(
        self,
        user_sub: str,
        org_id: UUID,
        required_role: MemberRole | str | None = None,
    ) -> Membership:
        """
        Return the caller's active membership.

        ``required_role`` is an exact match; Owner satisfies every role.
        """
        membership = await self.store.get_by(Membership, org_id=org_id, user_sub=user_sub)
        if membership is None or not membership.is_active:
            logger.debug("Denied %s on org %s: no active membership", user_sub, org_id)
            raise NotAMember()

        if required_role is not None:
            required = MemberRole(required_role)
            if membership.role not in (required, MemberRole.owner):
                logger.debug(
                    "Denied %s on org %s: role %s, required %s",
                    user_sub, org_id, membership.role.value, required.value,
                )
                raise InsufficientPermission(f"Required role: {required.value}")

        return membership

    # -----------------------------------------------------------------------
    # List Members
    # -----------------------------------------------------------------------

    async def list_members(
        self, actor_sub: str, org_id: UUID
    ) -> list[tuple[Membership, UserProfile | None]]:
        """List all members of an organization with profile details."""
        await self.check_membership(actor_sub, org_id)
        memberships = await self.store.query(Membership, org_id=org_id, order_by=["created_at"])
        profiles = {
            p.user_sub: p
            for p in await self.store.query(
                UserProfile, user_sub=[m.user_sub for m in memberships]
            )
        } if memberships else {}
        return [(m, profiles.get(m.user_sub)) for m in memberships]

    # -----------------------------------------------------------------------
    # Invite Member
    # -----------------------------------------------------------------------

    async def invite_user(
        self,
        sender_sub: str,
        org_id: UUID,
        email: str,
        role: MemberRole | str,
    ) -> InviteDispatch:
        """
        Create an invitation for a new member.

        - Sender must be Admin (or Owner); only Owners hand out Owner / Admin
          or re-invite a suspended Owner / Admin
        - Supersedes earlier pending invitations for the same email
        - Persists the invitation, then emails the redemption link
        - An email failure is reported, never rolled back
        """
        sender = await self.check_membership(sender_sub, org_id, MemberRole.admin)
        role = MemberRole(role)
        if role in ELEVATED_ROLES and sender.role != MemberRole.owner:
            raise InsufficientPermission("Only an Owner can invite Owners or Admins")

        org = await self.require_writable(org_id)
        email = email.strip().lower()
        await self._ensure_invitable(sender, org_id, email)

        for stale in await self.store.query(
            Invite, org_id=org_id, email=email, status=InviteStatus.pending
        ):
            await self.store.update(Invite, stale.id, status=InviteStatus.expired)

        now = self.clock()
        invite = await self.store.create(
            Invite,
            org_id=org_id,
            email=email,
            role=role,
            token=generate_invite_token(),
            expires_at=now + timedelta(days=settings.INVITE_EXPIRE_DAYS),
            invited_by_sub=sender_sub,
            status=InviteStatus.pending,
        )
        logger.info("Invite %s issued for org %s by %s", invite.id, org_id, sender_sub)

        delivered, error = await self._send_invite_email(org, invite)
        return InviteDispatch(invite=invite, email_delivered=delivered, delivery_error=error)

    async def _ensure_invitable(self, sender: Membership, org_id: UUID, email: str) -> None:
        """
        Refuse active members, and Admins re-inviting a suspended Owner or Admin
        (accepting would reactivate or demote a membership they cannot manage).
        """
        profiles = await self.store.query(UserProfile, email=email)
        if not profiles:
            return
        memberships = await self.store.query(
            Membership, org_id=org_id, user_sub=[p.user_sub for p in profiles]
        )
        if any(m.is_active for m in memberships):
            raise ValidationError("User is already a member of this organization")
        if sender.role != MemberRole.owner and any(
            m.role in ELEVATED_ROLES for m in memberships
        ):
            raise InsufficientPermission("Only an Owner can re-invite an Owner or Admin")

    async def _send_invite_email(
        self, org: Organization, invite: Invite
    ) -> tuple[bool, str | None]:
        link = build_invite_link(invite.token)
        subject = f"You've been invited to join {org.name} on Vantage"
        text_body = (
            f"You have been invited to join {org.name} as {invite.role.value}.\n\n"
            f"Accept the invitation: {link}\n\n"
            f"This invitation expires in {settings.INVITE_EXPIRE_DAYS} days."
        )
        html_body = f"""
            <h2>You've been invited to Vantage</h2>
            <p>You have been invited to join <strong>{org.name}</strong>
            as <strong>{invite.role.value}</strong>.</p>
            <p><a href="{link}">Accept Invitation</a></p>
            <p>This invitation expires in {settings.INVITE_EXPIRE_DAYS} days.</p>
        """
        try:
            await self.notifier.send_email(invite.email, subject, text_body, html_body)
        except DependencyUnavailable as exc:
            logger.warning("Invite %s email not delivered: %s", invite.id, exc.message)
            return False, exc.message
        return True, None

    # -----------------------------------------------------------------------
    # List / Get / Revoke Invitations
    # -----------------------------------------------------------------------

    async def list_invites(self, actor_sub: str, org_id: UUID) -> list[Invite]:
        await self.check_membership(actor_sub, org_id, MemberRole.admin)
        invites = await self.store.query(Invite, org_id=org_id, order_by=["-created_at"])
        return [await self._expire_if_due(invite) for invite in invites]

    async def get_invite(self, actor_sub: str, org_id: UUID, invite_id: UUID) -> Invite:
        await self.check_membership(actor_sub, org_id, MemberRole.admin)
        invite = await self.store.get(Invite, invite_id)
        if invite is None or invite.org_id != org_id:
            raise InviteNotFound()
        return await self._expire_if_due(invite)

    async def revoke_invite(self, actor_sub: str, org_id: UUID, invite_id: UUID) -> Invite:
        """Expire a pending invitation immediately."""
        invite = await self.get_invite(actor_sub, org_id, invite_id)
        await self.require_writable(org_id)
        if invite.status == InviteStatus.accepted:
            raise InviteAlreadyUsed()
        if invite.status == InviteStatus.expired:
            return invite
        invite = await self.store.update(
            Invite, invite.id, status=InviteStatus.expired, expires_at=self.clock()
        )
        logger.info("Invite %s revoked by %s", invite.id, actor_sub)
        return invite

    async def _expire_if_due(self, invite: Invite) -> Invite:
        if invite.status == InviteStatus.pending and invite.is_past_expiry(self.clock()):
            return await self.store.update(Invite, invite.id, status=InviteStatus.expired)
        return invite

    # -----------------------------------------------------------------------
    # Accept Invitation
    # -----------------------------------------------------------------------

    async def accept_invite(self, user_sub: str, user_email: str, token: str) -> Membership:
        """
        Redeem an invitation.

        - Looks the token up through its unique index
        - Refuses replays, expired invitations and other recipients
        - Suspended organizations accept nobody; an existing Owner or Admin
          membership only changes on an invitation sent by a current Owner
        - Creates (or reactivates) the membership, then flips the invitation
          Pending -> Accepted with a version check; losing that race undoes
          the membership write
        """
        invite = await self.store.get_by(Invite, token=token)
        if invite is None or not tokens_match(invite.token, token):
            raise InviteNotFound()

        if invite.status == InviteStatus.accepted:
            raise InviteAlreadyUsed()

        now = self.clock()
        if invite.status == InviteStatus.expired or invite.is_past_expiry(now):
            if invite.status != InviteStatus.expired:
                await self.store.update(Invite, invite.id, status=InviteStatus.expired)
            raise InviteExpired()

        if invite.email.lower() != user_email.strip().lower():
            raise EmailMismatch()

        await self.require_writable(invite.org_id)

        existing = await self.store.get_by(Membership, org_id=invite.org_id, user_sub=user_sub)
        if existing is not None and existing.role in ELEVATED_ROLES:
            if not await self._is_active_owner(invite.org_id, invite.invited_by_sub):
                raise InsufficientPermission(
                    "Only an Owner's invitation can change an Owner or Admin membership"
                )

        # Captured up front: store writes refresh ``existing`` in place.
        prior = (existing.role, existing.status) if existing is not None else None
        if existing is None:
            membership = await self.store.create(
                Membership,
                org_id=invite.org_id,
                user_sub=user_sub,
                role=invite.role,
                status=MembershipStatus.active,
            )
        else:
            # An Owner accepting a lesser invite keeps Owner.
            role = existing.role if existing.role == MemberRole.owner else invite.role
            membership = await self.store.update(
                Membership, existing.id, role=role, status=MembershipStatus.active
            )

        try:
            await self.store.update(
                Invite,
                invite.id,
                expected_version=invite.version,
                status=InviteStatus.accepted,
                accepted_by_sub=user_sub,
                accepted_at=now,
            )
        except ConcurrencyConflict:
            if prior is None:
                await self._compensate(Membership, membership.id)
            else:
                await self._restore(Membership, membership.id, role=prior[0], status=prior[1])
            raise InviteAlreadyUsed()

        logger.info("Invite %s accepted by %s", invite.id, user_sub)
        return membership

    # -----------------------------------------------------------------------
    # Update Member Role / Status
    # -----------------------------------------------------------------------

    async def update_user_role(
        self,
        actor_sub: str,
        org_id: UUID,
        target_user_sub: str,
        new_role: MemberRole | str,
    ) -> Membership:
        """
        Change a member's role.

        - Owner can change any role
        - Admin cannot touch other Admins / Owners nor grant Admin / Owner
        - The last active Owner cannot be demoted
        """
        new_role = MemberRole(new_role)
        actor = await self.check_membership(actor_sub, org_id, MemberRole.admin)
        await self.require_writable(org_id)
        target = await self._load_member(org_id, target_user_sub)
        self._check_admin_scope(actor, target, new_role)

        if target.role == new_role:
            return target

        if target.role == MemberRole.owner and target.is_active:
            return await self._change_owner_set(
                org_id, target, role=new_role, log=f"role -> {new_role.value}"
            )

        membership = await self.store.update(Membership, target.id, role=new_role)
        logger.info(
            "Member %s of org %s set to %s by %s", target_user_sub, org_id, new_role.value, actor_sub
        )
        return membership

    async def set_member_status(
        self,
        actor_sub: str,
        org_id: UUID,
        target_user_sub: str,
        status: MembershipStatus | str,
    ) -> Membership:
        """Suspend or reactivate a membership without deleting its history."""
        status = MembershipStatus(status)
        actor = await self.check_membership(actor_sub, org_id, MemberRole.admin)
        await self.require_writable(org_id)
        target = await self._load_member(org_id, target_user_sub)
        self._check_admin_scope(actor, target)

        if target.status == status:
            return target

        if (
            status == MembershipStatus.suspended
            and target.role == MemberRole.owner
            and target.is_active
        ):
            return await self._change_owner_set(
                org_id, target, status=status, log="suspended"
            )

        membership = await self.store.update(Membership, target.id, status=status)
        logger.info(
            "Member %s of org %s %s by %s", target_user_sub, org_id, status.value, actor_sub
        )
        return membership

    # -----------------------------------------------------------------------
    # Remove Member
    # -----------------------------------------------------------------------

    async def remove_user(self, actor_sub: str, org_id: UUID, target_user_sub: str) -> None:
        """
        Remove a member from the organization.

        - Admin cannot remove other Admins / Owners
        - The last active Owner cannot be removed
        """
        actor = await self.check_membership(actor_sub, org_id, MemberRole.admin)
        await self.require_writable(org_id)
        target = await self._load_member(org_id, target_user_sub)
        self._check_admin_scope(actor, target)

        if target.role == MemberRole.owner and target.is_active:
            org = await self._load_org(org_id)
            await self._ensure_other_owner(org_id)
            await self.store.delete(Membership, target.id)
            await self.store.update(Organization, org_id, expected_version=org.version)
        else:
            await self.store.delete(Membership, target.id)

        logger.info("Member %s removed from org %s by %s", target_user_sub, org_id, actor_sub)

    # -----------------------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------------------

    @staticmethod
    def _check_admin_scope(
        actor: Membership, target: Membership, new_role: MemberRole | None = None
    ) -> None:
        """Only Owners manage Admins and Owners; Admins may still step down themselves."""
        if actor.role == MemberRole.owner:
            return
        if target.role in ELEVATED_ROLES and target.user_sub != actor.user_sub:
            raise InsufficientPermission("Admins cannot modify other Admins or Owners")
        if new_role in ELEVATED_ROLES and new_role != target.role:
            raise InsufficientPermission("Only an Owner can grant Owner or Admin")

    async def _change_owner_set(
        self, org_id: UUID, target: Membership, *, log: str, **changes: Any
    ) -> Membership:
        """
        Apply a change that removes an active Owner.

        The organization's version is bumped under a conditional write so two
        concurrent demotions cannot both pass the last-owner check.
        """
        org = await self._load_org(org_id)
        await self._ensure_other_owner(org_id)
        membership = await self.store.update(Membership, target.id, **changes)
        await self.store.update(Organization, org_id, expected_version=org.version)
        logger.info("Owner %s of org %s %s", target.user_sub, org_id, log)
        return membership

    async def _ensure_other_owner(self, org_id: UUID) -> None:
        owners = await self.store.count(
            Membership,
            org_id=org_id,
            role=MemberRole.owner,
            status=MembershipStatus.active,
        )
        if owners <= 1:
            raise ValidationError("Organization must keep at least one active Owner")

    async def _load_org(self, org_id: UUID) -> Organization:
        org = await self.store.get(Organization, org_id)
        if org is None:
            raise NotFound("Organization not found")
        return org

    async def _load_member(self, org_id: UUID, user_sub: str) -> Membership:
        membership = await self.store.get_by(Membership, org_id=org_id, user_sub=user_sub)
        if membership is None:
            raise NotFound("Member not found")
        return membership

    async def _compensate(self, model: type[Base], entity_id: UUID) -> None:
        """Best-effort undo of a create; the failing request rolls back regardless."""
        try:
            await self.store.delete(model, entity_id)
        except DomainError as exc:
            logger.error(
                "Compensating delete of %s %s failed: %s", model.__name__, entity_id, exc.message
            )

    async def _restore(self, model: type[Base], entity_id: UUID, **fields: Any) -> None:
        try:
            await self.store.update(model, entity_id, **fields)
        except DomainError as exc:
            logger.error(
                "Compensating update of %s %s failed: %s", model.__name__, entity_id, exc.message
            )

    async def _is_active_owner(self, org_id: UUID, user_sub: str) -> bool:
        membership = await self.store.get_by(Membership, org_id=org_id, user_sub=user_sub)
        return (
            membership is not None
            and membership.is_active
            and membership.role == MemberRole.owner
        )
