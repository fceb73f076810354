"""
Objective hierarchy business logic.

Handles the Objective -> Outcome -> KeyResult -> Initiative tree: seeding,
CRUD, lifecycle transitions and explicit cascade deletes.
All queries scoped by org_id; children copy their objective's org_id at
creation and never change it or their parent afterwards.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel

from vantage.core.exceptions import (
    DomainError,
    HasDependents,
    InsufficientPermission,
    NotFound,
    OrphanedReference,
    ValidationError,
)
from vantage.core.store import EntityStore
from vantage.models.base import Base, utcnow
from vantage.models.heartbeat import Heartbeat
from vantage.models.member import MemberRole, Membership, MembershipStatus
from vantage.models.objective import (
    Initiative,
    KeyResult,
    LifecycleStatus,
    Outcome,
    StrategicObjective,
)
from vantage.models.organization import Organization, SubscriptionTier
from vantage.schemas.objective import (
    InitiativeCreateRequest,
    InitiativeUpdateRequest,
    KeyResultCreateRequest,
    KeyResultUpdateRequest,
    ObjectiveCreateRequest,
    ObjectiveUpdateRequest,
    OutcomeCreateRequest,
    OutcomeSeed,
    OutcomeUpdateRequest,
)
from vantage.services.heartbeat_service import HeartbeatService
from vantage.services.organization_service import TenancyService
from vantage.services.tree import ObjectiveTree, load_objective_tree

logger = logging.getLogger(__name__)

# None means unlimited.
PLAN_OBJECTIVE_LIMITS: dict[SubscriptionTier, int | None] = {
    SubscriptionTier.free: 2,
    SubscriptionTier.pro: None,
    SubscriptionTier.enterprise: None,
}

OPEN_STATUSES = [LifecycleStatus.draft, LifecycleStatus.active, LifecycleStatus.paused]

TRANSITIONS: dict[LifecycleStatus, set[LifecycleStatus]] = {
    LifecycleStatus.draft: {LifecycleStatus.active, LifecycleStatus.cancelled},
    LifecycleStatus.active: {
        LifecycleStatus.paused,
        LifecycleStatus.completed,
        LifecycleStatus.cancelled,
    },
    LifecycleStatus.paused: {
        LifecycleStatus.active,
        LifecycleStatus.completed,
        LifecycleStatus.cancelled,
    },
    LifecycleStatus.completed: set(),
    LifecycleStatus.cancelled: set(),
}

# Optional columns a PATCH may clear with an explicit null.
CLEARABLE_FIELDS = frozenset({"benefit", "link", "heartbeat_cadence"})


@dataclass(frozen=True)
class SoftCap:
    limit: int | None
    active_count: int

    @property
    def exceeded(self) -> bool:
        return self.limit is not None and self.active_count > self.limit


@dataclass(frozen=True)
class SeedFailure:
    kind: str
    name: str
    parent_id: UUID
    code: str
    message: str


@dataclass
class ObjectiveSeedResult:
    objective: ObjectiveTree
    created: int
    failures: list[SeedFailure] = field(default_factory=list)
    soft_cap: SoftCap | None = None


def _changes(data: BaseModel) -> dict[str, Any]:
    """Fields the caller actually sent; nulls only clear optional columns."""
    return {
        name: value
        for name, value in data.model_dump(exclude_unset=True).items()
        if value is not None or name in CLEARABLE_FIELDS
    }


def _cadence(data: BaseModel) -> dict[str, Any] | None:
    cadence = getattr(data, "heartbeat_cadence", None)
    return cadence.model_dump() if cadence is not None else None


class ObjectiveService:
    """Handles all objective tree operations."""

    def __init__(
        self,
        store: EntityStore,
        tenancy: TenancyService,
        heartbeats: HeartbeatService | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.tenancy = tenancy
        self.heartbeats = heartbeats or HeartbeatService(store, tenancy, clock)
        self.clock = clock

    # -----------------------------------------------------------------------
    # Create Objective / Seed
    # -----------------------------------------------------------------------

    async def create_objective(
        self, actor_sub: str, org_id: UUID, data: ObjectiveCreateRequest
    ) -> ObjectiveSeedResult:
        """
        Create an objective in Draft, then seed its subtree in dependency order.

        A seed item that fails is reported and its own children are skipped;
        everything else is kept so the caller can replay the remainder with
        ``seed_objective``.
        """
        await self._authorize_write(actor_sub, org_id)
        await self._require_owner(org_id, data.owner_id)

        objective = await self.store.create(
            StrategicObjective,
            org_id=org_id,
            name=data.name,
            owner_id=data.owner_id,
            strategic_value=data.strategic_value,
            target_date=data.target_date,
            status=LifecycleStatus.draft,
        )
        logger.info("Objective %s created in org %s by %s", objective.id, org_id, actor_sub)

        created, failures = await self._seed(objective, data.outcomes)
        soft_cap = await self.soft_cap_status(org_id)
        if soft_cap.exceeded:
            logger.info(
                "Org %s is over its plan limit (%d/%s open objectives)",
                org_id, soft_cap.active_count, soft_cap.limit,
            )

        tree = await load_objective_tree(self.store, org_id, objective.id)
        return ObjectiveSeedResult(tree, created, failures, soft_cap)

    async def seed_objective(
        self,
        actor_sub: str,
        org_id: UUID,
        objective_id: UUID,
        outcomes: list[OutcomeSeed],
    ) -> ObjectiveSeedResult:
        """Replay seed items; ones that already exist under their parent are reused."""
        await self._authorize_write(actor_sub, org_id)
        objective = await self._node(StrategicObjective, objective_id, org_id)

        created, failures = await self._seed(objective, outcomes)
        tree = await load_objective_tree(self.store, org_id, objective.id)
        return ObjectiveSeedResult(tree, created, failures, await self.soft_cap_status(org_id))

    async def _seed(
        self, objective: StrategicObjective, outcomes: list[OutcomeSeed]
    ) -> tuple[int, list[SeedFailure]]:
        created = 0
        failures: list[SeedFailure] = []

        for outcome_item in outcomes:
            outcome = await self._find(
                Outcome, objective_id=objective.id, goal=outcome_item.goal
            )
            if outcome is None:
                try:
                    outcome = await self._add_outcome(objective, outcome_item)
                except DomainError as exc:
                    failures.append(_seed_failure("outcome", outcome_item.goal, objective.id, exc))
                    continue
                created += 1

            for kr_item in outcome_item.key_results:
                kr = await self._find(
                    KeyResult, outcome_id=outcome.id, description=kr_item.description
                )
                if kr is None:
                    try:
                        kr = await self._add_key_result(objective, outcome, kr_item)
                    except DomainError as exc:
                        failures.append(
                            _seed_failure("key_result", kr_item.description, outcome.id, exc)
                        )
                        continue
                    created += 1

                for initiative_item in kr_item.initiatives:
                    if await self._find(
                        Initiative, key_result_id=kr.id, name=initiative_item.name
                    ) is not None:
                        continue
                    try:
                        await self._add_initiative(objective, kr, initiative_item)
                    except DomainError as exc:
                        failures.append(
                            _seed_failure("initiative", initiative_item.name, kr.id, exc)
                        )
                        continue
                    created += 1

        if failures:
            logger.info(
                "Seeding objective %s: %d created, %d failed", objective.id, created, len(failures)
            )
        return created, failures

    async def _find(self, model: type[Base], **filters: Any) -> Any:
        matches = await self.store.query(model, order_by=["created_at"], **filters)
        return matches[0] if matches else None

    # -----------------------------------------------------------------------
    # Read
    # -----------------------------------------------------------------------

    async def list_objectives(
        self,
        actor_sub: str,
        org_id: UUID,
        status: LifecycleStatus | None = None,
    ) -> tuple[list[StrategicObjective], SoftCap]:
        await self.tenancy.check_membership(actor_sub, org_id)
        filters: dict[str, Any] = {"org_id": org_id}
        if status is not None:
            filters["status"] = LifecycleStatus(status)
        objectives = await self.store.query(
            StrategicObjective, order_by=["-created_at"], **filters
        )
        return objectives, await self.soft_cap_status(org_id)

    async def get_objective(
        self, actor_sub: str, org_id: UUID, objective_id: UUID
    ) -> StrategicObjective:
        await self.tenancy.check_membership(actor_sub, org_id)
        return await self._node(StrategicObjective, objective_id, org_id)

    async def get_objective_tree(
        self, actor_sub: str, org_id: UUID, objective_id: UUID
    ) -> ObjectiveTree:
        await self.tenancy.check_membership(actor_sub, org_id)
        return await self.load_objective_tree(org_id, objective_id)

    async def load_objective_tree(self, org_id: UUID, objective_id: UUID) -> ObjectiveTree:
        """Objective with all descendants in four queries."""
        return await load_objective_tree(self.store, org_id, objective_id)

    async def get_outcome(self, actor_sub: str, org_id: UUID, outcome_id: UUID) -> Outcome:
        await self.tenancy.check_membership(actor_sub, org_id)
        return await self._node(Outcome, outcome_id, org_id)

    async def get_key_result(self, actor_sub: str, org_id: UUID, key_result_id: UUID) -> KeyResult:
        await self.tenancy.check_membership(actor_sub, org_id)
        return await self._node(KeyResult, key_result_id, org_id)

    async def get_initiative(
        self, actor_sub: str, org_id: UUID, initiative_id: UUID
    ) -> Initiative:
        await self.tenancy.check_membership(actor_sub, org_id)
        return await self._node(Initiative, initiative_id, org_id)

    async def soft_cap_status(self, org_id: UUID) -> SoftCap:
        """Advisory plan limit on open objectives. Never blocks creation."""
        org = await self.store.get(Organization, org_id)
        if org is None:
            raise NotFound("Organization not found")
        active = await self.store.count(StrategicObjective, org_id=org_id, status=OPEN_STATUSES)
        return SoftCap(limit=PLAN_OBJECTIVE_LIMITS[org.subscription_tier], active_count=active)

    # -----------------------------------------------------------------------
    # Update Objective / Transition
    # -----------------------------------------------------------------------

    async def update_objective(
        self, actor_sub: str, org_id: UUID, objective_id: UUID, data: ObjectiveUpdateRequest
    ) -> StrategicObjective:
        await self._authorize_write(actor_sub, org_id)
        objective = await self._node(StrategicObjective, objective_id, org_id)
        changes = _changes(data)
        if not changes:
            return objective
        if "owner_id" in changes:
            await self._require_owner(org_id, changes["owner_id"])
        return await self.store.update(StrategicObjective, objective.id, **changes)

    async def transition_objective(
        self,
        actor_sub: str,
        org_id: UUID,
        objective_id: UUID,
        status: LifecycleStatus | str,
    ) -> StrategicObjective:
        """Move an objective through Draft / Active / Paused / Completed / Cancelled."""
        status = LifecycleStatus(status)
        await self._authorize_write(actor_sub, org_id)
        objective = await self._node(StrategicObjective, objective_id, org_id)

        if status == objective.status:
            return objective
        if status not in TRANSITIONS[objective.status]:
            raise ValidationError(
                f"Cannot move objective from {objective.status.value} to {status.value}"
            )

        objective = await self.store.update(
            StrategicObjective, objective.id, expected_version=objective.version, status=status
        )
        logger.info("Objective %s -> %s by %s", objective.id, status.value, actor_sub)
        return objective

    # -----------------------------------------------------------------------
    # Outcomes
    # -----------------------------------------------------------------------

    async def create_outcome(
        self, actor_sub: str, org_id: UUID, objective_id: UUID, data: OutcomeCreateRequest
    ) -> Outcome:
        await self._authorize_write(actor_sub, org_id)
        objective = await self._parent(StrategicObjective, objective_id, org_id)
        return await self._add_outcome(objective, data)

    async def update_outcome(
        self, actor_sub: str, org_id: UUID, outcome_id: UUID, data: OutcomeUpdateRequest
    ) -> Outcome:
        await self._authorize_write(actor_sub, org_id)
        outcome = await self._node(Outcome, outcome_id, org_id)
        return await self._apply_update(Outcome, outcome, data)

    async def delete_outcome(
        self, actor_sub: str, org_id: UUID, outcome_id: UUID, *, cascade: bool = False
    ) -> None:
        await self._authorize_delete(actor_sub, org_id)
        outcome = await self._node(Outcome, outcome_id, org_id)

        key_results = await self.store.query(KeyResult, org_id=org_id, outcome_id=outcome.id)
        if key_results and not cascade:
            raise HasDependents(key_results=len(key_results))

        for kr in key_results:
            await self._purge_key_result(org_id, kr.id)
        await self.store.delete(Outcome, outcome.id)
        logger.info("Outcome %s deleted by %s (cascade=%s)", outcome.id, actor_sub, cascade)

        await self.heartbeats.recompute_objective(org_id, outcome.objective_id)

    async def _add_outcome(
        self, objective: StrategicObjective, data: OutcomeCreateRequest
    ) -> Outcome:
        self._ensure_open(objective)
        await self._require_owner(objective.org_id, data.owner_id)

        outcome = await self.store.create(
            Outcome,
            org_id=objective.org_id,
            objective_id=objective.id,
            goal=data.goal,
            benefit=data.benefit,
            owner_id=data.owner_id,
            heartbeat_cadence=_cadence(data),
        )

        if objective.status == LifecycleStatus.draft:
            # The store refreshes ``objective`` in place.
            await self.store.update(
                StrategicObjective, objective.id, status=LifecycleStatus.active
            )
            logger.info("Objective %s activated by its first outcome", objective.id)
        return outcome

    # -----------------------------------------------------------------------
    # Key Results
    # -----------------------------------------------------------------------

    async def create_key_result(
        self, actor_sub: str, org_id: UUID, outcome_id: UUID, data: KeyResultCreateRequest
    ) -> KeyResult:
        await self._authorize_write(actor_sub, org_id)
        outcome = await self._parent(Outcome, outcome_id, org_id)
        objective = await self._node(StrategicObjective, outcome.objective_id, org_id)
        return await self._add_key_result(objective, outcome, data)

    async def update_key_result(
        self, actor_sub: str, org_id: UUID, key_result_id: UUID, data: KeyResultUpdateRequest
    ) -> KeyResult:
        await self._authorize_write(actor_sub, org_id)
        kr = await self._node(KeyResult, key_result_id, org_id)
        updated = await self._apply_update(KeyResult, kr, data)
        if "heartbeat_cadence" in data.model_fields_set:
            await self.heartbeats.recompute_objective(org_id, await self._objective_of_kr(kr))
        return updated

    async def delete_key_result(
        self, actor_sub: str, org_id: UUID, key_result_id: UUID, *, cascade: bool = False
    ) -> None:
        await self._authorize_delete(actor_sub, org_id)
        kr = await self._node(KeyResult, key_result_id, org_id)
        objective_id = await self._objective_of_kr(kr)

        initiatives = await self.store.count(Initiative, org_id=org_id, key_result_id=kr.id)
        heartbeats = await self.store.count(Heartbeat, key_result_id=kr.id)
        if (initiatives or heartbeats) and not cascade:
            raise HasDependents(initiatives=initiatives, heartbeats=heartbeats)

        await self._purge_key_result(org_id, kr.id)
        logger.info("Key result %s deleted by %s (cascade=%s)", kr.id, actor_sub, cascade)

        await self.heartbeats.recompute_objective(org_id, objective_id)

    async def _add_key_result(
        self, objective: StrategicObjective, outcome: Outcome, data: KeyResultCreateRequest
    ) -> KeyResult:
        self._ensure_open(objective)
        await self._require_owner(objective.org_id, data.owner_id)
        return await self.store.create(
            KeyResult,
            org_id=objective.org_id,
            outcome_id=outcome.id,
            description=data.description,
            owner_id=data.owner_id,
            heartbeat_cadence=_cadence(data),
        )

    async def _purge_key_result(self, org_id: UUID, key_result_id: UUID) -> None:
        for initiative in await self.store.query(
            Initiative, org_id=org_id, key_result_id=key_result_id
        ):
            await self._purge(Initiative, initiative.id, "initiative_id")
        await self._purge(KeyResult, key_result_id, "key_result_id")

    async def _objective_of_kr(self, kr: KeyResult) -> UUID:
        outcome = await self.store.get(Outcome, kr.outcome_id)
        if outcome is None:
            raise NotFound("Outcome not found")
        return outcome.objective_id

    # -----------------------------------------------------------------------
    # Initiatives
    # -----------------------------------------------------------------------

    async def create_initiative(
        self, actor_sub: str, org_id: UUID, key_result_id: UUID, data: InitiativeCreateRequest
    ) -> Initiative:
        await self._authorize_write(actor_sub, org_id)
        kr = await self._parent(KeyResult, key_result_id, org_id)
        objective = await self._node(StrategicObjective, await self._objective_of_kr(kr), org_id)
        return await self._add_initiative(objective, kr, data)

    async def update_initiative(
        self,
        actor_sub: str,
        org_id: UUID,
        initiative_id: UUID,
        data: InitiativeUpdateRequest,
    ) -> Initiative:
        await self._authorize_write(actor_sub, org_id)
        initiative = await self._node(Initiative, initiative_id, org_id)
        updated = await self._apply_update(Initiative, initiative, data)
        if "heartbeat_cadence" in data.model_fields_set:
            kr = await self._node(KeyResult, initiative.key_result_id, org_id)
            await self.heartbeats.recompute_objective(org_id, await self._objective_of_kr(kr))
        return updated

    async def delete_initiative(
        self, actor_sub: str, org_id: UUID, initiative_id: UUID, *, cascade: bool = False
    ) -> None:
        await self._authorize_delete(actor_sub, org_id)
        initiative = await self._node(Initiative, initiative_id, org_id)
        kr = await self._node(KeyResult, initiative.key_result_id, org_id)
        objective_id = await self._objective_of_kr(kr)

        heartbeats = await self.store.count(Heartbeat, initiative_id=initiative.id)
        if heartbeats and not cascade:
            raise HasDependents(heartbeats=heartbeats)

        await self._purge(Initiative, initiative.id, "initiative_id")
        logger.info("Initiative %s deleted by %s (cascade=%s)", initiative.id, actor_sub, cascade)

        await self.heartbeats.recompute_objective(org_id, objective_id)

    async def _add_initiative(
        self, objective: StrategicObjective, kr: KeyResult, data: InitiativeCreateRequest
    ) -> Initiative:
        self._ensure_open(objective)
        await self._require_owner(objective.org_id, data.owner_id)
        return await self.store.create(
            Initiative,
            org_id=objective.org_id,
            key_result_id=kr.id,
            name=data.name,
            owner_id=data.owner_id,
            link=data.link,
            status=data.status,
            heartbeat_cadence=_cadence(data),
        )

    # -----------------------------------------------------------------------
    # Delete Objective
    # -----------------------------------------------------------------------

    async def delete_objective(
        self, actor_sub: str, org_id: UUID, objective_id: UUID, *, cascade: bool = False
    ) -> None:
        """Delete an objective; its outcomes and heartbeats only with ``cascade``."""
        await self._authorize_delete(actor_sub, org_id)
        tree = await load_objective_tree(self.store, org_id, objective_id)

        heartbeats = await self.store.count(Heartbeat, objective_id=objective_id)
        if (tree.outcomes or heartbeats) and not cascade:
            raise HasDependents(outcomes=len(tree.outcomes), heartbeats=heartbeats)

        for outcome_node in tree.outcomes:
            for kr_node in outcome_node.key_results:
                await self._purge_key_result(org_id, kr_node.key_result.id)
            await self.store.delete(Outcome, outcome_node.outcome.id)
        await self._purge(StrategicObjective, objective_id, "objective_id")

        logger.info(
            "Objective %s deleted by %s (%d nodes)", objective_id, actor_sub, tree.node_count()
        )

    # -----------------------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------------------

    async def _authorize_write(self, actor_sub: str, org_id: UUID) -> Membership:
        """Tree writes: any active member except BillingAdmin, on a writable org."""
        membership = await self.tenancy.check_membership(actor_sub, org_id)
        if membership.role == MemberRole.billing_admin:
            raise InsufficientPermission("Billing admins cannot modify objectives")
        await self.tenancy.require_writable(org_id)
        return membership

    async def _authorize_delete(self, actor_sub: str, org_id: UUID) -> Membership:
        membership = await self.tenancy.check_membership(actor_sub, org_id, MemberRole.admin)
        await self.tenancy.require_writable(org_id)
        return membership

    async def _require_owner(self, org_id: UUID, owner_id: str) -> None:
        """Node owners are user subs holding an active membership in the org."""
        membership = await self.store.get_by(Membership, org_id=org_id, user_sub=owner_id)
        if membership is None or membership.status != MembershipStatus.active:
            raise ValidationError(
                "owner_id must be an active member of the organization", owner_id=owner_id
            )

    async def _node(self, model: type[Base], entity_id: UUID, org_id: UUID) -> Any:
        entity = await self.store.get(model, entity_id)
        if entity is None or entity.org_id != org_id:  # type: ignore[attr-defined]
            raise NotFound(f"{_label(model)} not found")
        return entity

    async def _parent(self, model: type[Base], entity_id: UUID, org_id: UUID) -> Any:
        entity = await self.store.get(model, entity_id)
        if entity is None or entity.org_id != org_id:  # type: ignore[attr-defined]
            raise OrphanedReference(f"{_label(model)} does not exist in this organization")
        return entity

    @staticmethod
    def _ensure_open(objective: StrategicObjective) -> None:
        if objective.status.is_terminal:
            raise ValidationError(
                f"Objective is {objective.status.value}; children cannot be added"
            )

    async def _apply_update(self, model: type[Base], node: Any, data: BaseModel) -> Any:
        changes = _changes(data)
        if not changes:
            return node
        if "owner_id" in changes:
            await self._require_owner(node.org_id, changes["owner_id"])
        return await self.store.update(model, node.id, **changes)

    async def _purge(self, model: type[Base], entity_id: UUID, column: str) -> None:
        """Delete one node together with its heartbeat history."""
        for heartbeat in await self.store.query(Heartbeat, **{column: entity_id}):
            await self.store.delete(Heartbeat, heartbeat.id)
        await self.store.delete(model, entity_id)


def _label(model: type[Base]) -> str:
    return {
        StrategicObjective: "Objective",
        Outcome: "Outcome",
        KeyResult: "Key result",
        Initiative: "Initiative",
    }.get(model, model.__name__)


def _seed_failure(kind: str, name: str, parent_id: UUID, exc: DomainError) -> SeedFailure:
    # Infrastructure failures abort the whole request instead of being reported.
    if not exc.preserve_writes:
        raise exc
    return SeedFailure(kind=kind, name=name, parent_id=parent_id, code=exc.code, message=exc.message)
