"""
Heartbeat recording and roll-up.

Heartbeats are appended to one node of an objective tree; the node and its
ancestors get their derived health, risk and confidence trend recomputed in
the same request. Derived writes are version-checked per node and the whole
roll-up is retried from a fresh read when another writer got there first.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Collection
from datetime import datetime
from typing import Any
from uuid import UUID

from vantage.core.config import settings
from vantage.core.exceptions import (
    ConcurrencyConflict,
    InsufficientPermission,
    NotFound,
    ValidationError,
)
from vantage.core.store import EntityStore
from vantage.models.base import Base, utcnow
from vantage.models.heartbeat import Heartbeat, NodeType
from vantage.models.member import MemberRole
from vantage.models.objective import (
    ConfidenceTrend,
    Health,
    Initiative,
    KeyResult,
    Outcome,
    StrategicObjective,
)
from vantage.schemas.heartbeat import HeartbeatCreate
from vantage.services import scoring
from vantage.services.organization_service import TenancyService
from vantage.services.tree import ObjectiveTree, load_heartbeats, load_objective_tree

logger = logging.getLogger(__name__)

NODE_MODELS: dict[NodeType, type[Base]] = {
    NodeType.objective: StrategicObjective,
    NodeType.key_result: KeyResult,
    NodeType.initiative: Initiative,
}

NODE_COLUMNS: dict[NodeType, str] = {
    NodeType.objective: "objective_id",
    NodeType.key_result: "key_result_id",
    NodeType.initiative: "initiative_id",
}

INITIAL_STATE: dict[str, Any] = {
    "current_health": Health.green,
    "risk_score": 0,
    "confidence_trend": ConfidenceTrend.stable,
    "last_heartbeat_on": None,
}


class HeartbeatService:
    """Records heartbeats and keeps derived tree state current."""

    def __init__(
        self,
        store: EntityStore,
        tenancy: TenancyService,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.tenancy = tenancy
        self.clock = clock

    # -----------------------------------------------------------------------
    # Record Heartbeat
    # -----------------------------------------------------------------------

    async def record_heartbeat(
        self,
        actor_sub: str,
        org_id: UUID,
        node_type: NodeType | str,
        node_id: UUID,
        data: HeartbeatCreate,
    ) -> Heartbeat:
        """
        Append a heartbeat to a node and roll it up.

        - Any active member except BillingAdmin may report
        - The organization must be writable
        - The node and its ancestors are recomputed before returning
        """
        node_type = NodeType(node_type)
        membership = await self.tenancy.check_membership(actor_sub, org_id)
        if membership.role == MemberRole.billing_admin:
            raise InsufficientPermission("Billing admins cannot report heartbeats")
        await self.tenancy.require_writable(org_id)

        node = await self.store.get(NODE_MODELS[node_type], node_id)
        if node is None or node.org_id != org_id:  # type: ignore[attr-defined]
            raise NotFound(f"{node_type.value.replace('_', ' ').capitalize()} not found")

        self._validate(data)
        assessment = await self._validate_assessment(node_type, node_id, org_id, data)

        column = NODE_COLUMNS[node_type]
        previous = await self.store.query(Heartbeat, order_by=["-sequence"], **{column: node_id})
        sequence = previous[0].sequence + 1 if previous else 1

        heartbeat = await self.store.create(
            Heartbeat,
            org_id=org_id,
            period_start=data.period_start,
            period_end=data.period_end,
            health_signal=data.health_signal,
            confidence=data.confidence,
            narrative=data.narrative.strip(),
            confidence_to_expected_impact=data.confidence_to_expected_impact,
            leading_indicators=[i.model_dump(mode="json") for i in data.leading_indicators],
            evidence=[e.model_dump(mode="json") for e in data.evidence],
            risks=[r.model_dump(mode="json") for r in data.risks],
            owner_attestation=(
                data.owner_attestation.model_dump(mode="json") if data.owner_attestation else None
            ),
            confidence_assessment=assessment,
            author_sub=actor_sub,
            sequence=sequence,
            **{column: node_id},
        )
        logger.info(
            "Heartbeat %s recorded on %s %s (%s)",
            heartbeat.id, node_type.value, node_id, data.health_signal.value,
        )

        objective_id, path = await self._ancestry(node_type, node)
        await self._rollup(org_id, objective_id, scope=path)
        return heartbeat

    @staticmethod
    def _validate(data: HeartbeatCreate) -> None:
        if data.period_start > data.period_end:
            raise ValidationError("period_start must not be after period_end")
        if not data.narrative.strip():
            raise ValidationError("narrative must not be empty")
        impact = data.confidence_to_expected_impact
        if impact is not None and not 0.0 <= impact <= 1.0:
            raise ValidationError("confidence_to_expected_impact must be between 0 and 1")

    async def _validate_assessment(
        self,
        node_type: NodeType,
        node_id: UUID,
        org_id: UUID,
        data: HeartbeatCreate,
    ) -> dict[str, Any] | None:
        assessment = data.confidence_assessment
        if assessment is None:
            return None
        if node_type != NodeType.key_result:
            raise ValidationError("confidence_assessment is only accepted on key results")

        linked = {link.initiative_id for link in assessment.primary_initiatives}
        if linked:
            owned = await self.store.query(
                Initiative, org_id=org_id, key_result_id=node_id, id=list(linked)
            )
            if len(owned) != len(linked):
                raise ValidationError(
                    "primary_initiatives must belong to the key result being reported"
                )
        return assessment.model_dump(mode="json")

    async def _ancestry(self, node_type: NodeType, node: Base) -> tuple[UUID, set[UUID]]:
        """Objective id plus the ids on the path from ``node`` up to it."""
        path = {node.id}  # type: ignore[attr-defined]
        if node_type == NodeType.objective:
            return node.id, path  # type: ignore[attr-defined]

        if node_type == NodeType.initiative:
            key_result = await self.store.get(KeyResult, node.key_result_id)  # type: ignore[attr-defined]
            if key_result is None:
                raise NotFound("Key result not found")
            path.add(key_result.id)
        else:
            key_result = node  # type: ignore[assignment]

        outcome = await self.store.get(Outcome, key_result.outcome_id)
        if outcome is None:
            raise NotFound("Outcome not found")
        path.update((outcome.id, outcome.objective_id))
        return outcome.objective_id, path

    # -----------------------------------------------------------------------
    # List Heartbeats
    # -----------------------------------------------------------------------

    async def list_heartbeats(
        self,
        actor_sub: str,
        org_id: UUID,
        node_type: NodeType | str,
        node_id: UUID,
    ) -> list[Heartbeat]:
        """Heartbeat history of one node, newest first."""
        node_type = NodeType(node_type)
        await self.tenancy.check_membership(actor_sub, org_id)

        node = await self.store.get(NODE_MODELS[node_type], node_id)
        if node is None or node.org_id != org_id:  # type: ignore[attr-defined]
            raise NotFound(f"{node_type.value.replace('_', ' ').capitalize()} not found")

        history = await self.store.query(
            Heartbeat, org_id=org_id, **{NODE_COLUMNS[node_type]: node_id}
        )
        return list(reversed(scoring.ordered(history)))

    # -----------------------------------------------------------------------
    # Roll-up
    # -----------------------------------------------------------------------

    async def recompute_objective(self, org_id: UUID, objective_id: UUID) -> ObjectiveTree:
        """
        Recompute every node of one objective.

        System operation without an actor: used after cascade deletes and by
        the reminder worker to refresh overdue penalties.
        """
        return await self._rollup(org_id, objective_id, scope=None)

    async def _rollup(
        self,
        org_id: UUID,
        objective_id: UUID,
        scope: Collection[UUID] | None,
    ) -> ObjectiveTree:
        attempts = settings.ROLLUP_MAX_RETRIES
        for attempt in range(1, attempts + 1):
            tree = await load_objective_tree(self.store, org_id, objective_id)
            history = await load_heartbeats(self.store, tree)
            try:
                await self._write_derived(tree, history, scope)
            except ConcurrencyConflict:
                logger.info(
                    "Roll-up of objective %s lost a race (attempt %d/%d)",
                    objective_id, attempt, attempts,
                )
                continue
            return tree

        logger.warning("Roll-up of objective %s gave up after %d attempts", objective_id, attempts)
        raise ConcurrencyConflict(
            "Derived state could not be updated; retry the request", attempts=attempts
        )

    async def _write_derived(
        self,
        tree: ObjectiveTree,
        history: dict[UUID, list[Heartbeat]],
        scope: Collection[UUID] | None,
    ) -> None:
        """Write derived state bottom-up; only nodes in ``scope`` when given."""
        today = self.clock().date()
        default_frequency = settings.DEFAULT_HEARTBEAT_FREQUENCY

        def own_signal(node_id: UUID, cadence: dict[str, Any] | None) -> list[scoring.NodeSignal]:
            signal = scoring.node_signal(
                history.get(node_id, []),
                scoring.cadence_days(cadence, default_frequency),
            )
            return [signal] if signal else []

        outcome_states: list[scoring.DerivedState | None] = []
        for outcome_node in tree.outcomes:
            kr_states: list[scoring.DerivedState | None] = []
            for kr_node in outcome_node.key_results:
                kr = kr_node.key_result
                initiative_states = []
                for initiative in kr_node.initiatives:
                    state = scoring.derive(
                        own_signal(initiative.id, initiative.heartbeat_cadence), today
                    )
                    await self._apply(Initiative, initiative, state, scope)
                    initiative_states.append(state)
                state = scoring.derive(
                    own_signal(kr.id, kr.heartbeat_cadence), today, initiative_states
                )
                await self._apply(KeyResult, kr, state, scope)
                kr_states.append(state)
            state = scoring.derive([], today, kr_states)
            await self._apply(Outcome, outcome_node.outcome, state, scope)
            outcome_states.append(state)

        objective = tree.objective
        state = scoring.derive(own_signal(objective.id, None), today, outcome_states)
        await self._apply(StrategicObjective, objective, state, scope)

    async def _apply(
        self,
        model: type[Base],
        node: Any,
        state: scoring.DerivedState | None,
        scope: Collection[UUID] | None,
    ) -> None:
        if scope is not None and node.id not in scope:
            return

        if state is None:
            values = dict(INITIAL_STATE)
        else:
            values = {
                "current_health": state.health,
                "risk_score": state.risk_score,
                "confidence_trend": state.trend,
                "last_heartbeat_on": state.last_heartbeat_on,
            }

        if all(getattr(node, name) == value for name, value in values.items()):
            return
        await self.store.update(model, node.id, expected_version=node.version, **values)
