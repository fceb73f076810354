"""
Typed objective tree loading.

An objective and everything below it are read with a fixed set of queries
(one per level) and returned as plain dataclasses; heartbeats for the whole
tree are read with one query per heartbeat-bearing level.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterator
from dataclasses import dataclass, field
from uuid import UUID

from vantage.core.exceptions import NotFound
from vantage.core.store import EntityStore
from vantage.models.heartbeat import Heartbeat
from vantage.models.objective import Initiative, KeyResult, Outcome, StrategicObjective


@dataclass
class KeyResultNode:
    key_result: KeyResult
    initiatives: list[Initiative] = field(default_factory=list)


@dataclass
class OutcomeNode:
    outcome: Outcome
    key_results: list[KeyResultNode] = field(default_factory=list)


@dataclass
class ObjectiveTree:
    objective: StrategicObjective
    outcomes: list[OutcomeNode] = field(default_factory=list)

    def key_results(self) -> Iterator[KeyResult]:
        for outcome in self.outcomes:
            for node in outcome.key_results:
                yield node.key_result

    def initiatives(self) -> Iterator[Initiative]:
        for outcome in self.outcomes:
            for node in outcome.key_results:
                yield from node.initiatives

    def node_count(self) -> int:
        return 1 + sum(
            1 + sum(1 + len(kr.initiatives) for kr in o.key_results) for o in self.outcomes
        )


async def load_objective_tree(
    store: EntityStore, org_id: UUID, objective_id: UUID
) -> ObjectiveTree:
    """Load one objective with all descendants, scoped to ``org_id``."""
    objective = await store.get(StrategicObjective, objective_id)
    if objective is None or objective.org_id != org_id:
        raise NotFound("Objective not found")

    outcomes = await store.query(
        Outcome, org_id=org_id, objective_id=objective.id, order_by=["created_at"]
    )
    key_results = (
        await store.query(
            KeyResult,
            org_id=org_id,
            outcome_id=[o.id for o in outcomes],
            order_by=["created_at"],
        )
        if outcomes
        else []
    )
    initiatives = (
        await store.query(
            Initiative,
            org_id=org_id,
            key_result_id=[kr.id for kr in key_results],
            order_by=["created_at"],
        )
        if key_results
        else []
    )

    initiatives_by_kr: dict[UUID, list[Initiative]] = defaultdict(list)
    for initiative in initiatives:
        initiatives_by_kr[initiative.key_result_id].append(initiative)

    krs_by_outcome: dict[UUID, list[KeyResultNode]] = defaultdict(list)
    for kr in key_results:
        krs_by_outcome[kr.outcome_id].append(KeyResultNode(kr, initiatives_by_kr[kr.id]))

    return ObjectiveTree(
        objective=objective,
        outcomes=[OutcomeNode(o, krs_by_outcome[o.id]) for o in outcomes],
    )


async def load_heartbeats(store: EntityStore, tree: ObjectiveTree) -> dict[UUID, list[Heartbeat]]:
    """Heartbeat history of every node in the tree, keyed by node id."""
    history: dict[UUID, list[Heartbeat]] = defaultdict(list)
    org_id = tree.objective.org_id

    for hb in await store.query(Heartbeat, org_id=org_id, objective_id=tree.objective.id):
        history[hb.objective_id].append(hb)  # type: ignore[index]

    kr_ids = [kr.id for kr in tree.key_results()]
    if kr_ids:
        for hb in await store.query(Heartbeat, org_id=org_id, key_result_id=kr_ids):
            history[hb.key_result_id].append(hb)  # type: ignore[index]

    initiative_ids = [i.id for i in tree.initiatives()]
    if initiative_ids:
        for hb in await store.query(Heartbeat, org_id=org_id, initiative_id=initiative_ids):
            history[hb.initiative_id].append(hb)  # type: ignore[index]

    return history
