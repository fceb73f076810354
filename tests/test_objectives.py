"""
Objective tree tests.

Verifies that:
- Objectives are seeded with their subtree in one call
- Seed failures are reported per item and can be replayed
- Parents must exist in the caller's organization
- Deleting a node with dependents requires an explicit cascade
- Lifecycle transitions follow the allowed graph
- Plan limits are advisory only
"""

from datetime import date

import pytest

from conftest import OWNER_SUB, heartbeat_request, objective_request
from vantage.core.exceptions import (
    HasDependents,
    InsufficientPermission,
    NotFound,
    OrganizationSuspended,
    OrphanedReference,
    ValidationError,
)
from vantage.models import (
    Heartbeat,
    Initiative,
    KeyResult,
    LifecycleStatus,
    MemberRole,
    NodeType,
    OrganizationStatus,
    Outcome,
)
from vantage.models.heartbeat import HealthSignal
from vantage.models.objective import Health
from vantage.schemas.objective import (
    InitiativeCreateRequest,
    KeyResultCreateRequest,
    KeyResultSeed,
    ObjectiveUpdateRequest,
    OutcomeCreateRequest,
    OutcomeSeed,
    OutcomeUpdateRequest,
)


# ---------------------------------------------------------------------------
# 1. Create and seed
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_seeds_whole_tree(objectives, org):
    result = await objectives.create_objective(OWNER_SUB, org.id, objective_request())

    tree = result.objective
    assert result.created == 4
    assert result.failures == []
    assert tree.node_count() == 5
    assert tree.objective.status == LifecycleStatus.active
    assert [i.name for i in tree.initiatives()] == ["Outbound campaign", "Partner program"]
    assert all(i.org_id == org.id for i in tree.initiatives())


@pytest.mark.asyncio
async def test_objective_without_outcomes_stays_draft(objectives, org):
    result = await objectives.create_objective(OWNER_SUB, org.id, objective_request(outcomes=[]))
    objective_id = result.objective.objective.id
    assert result.objective.objective.status == LifecycleStatus.draft

    await objectives.create_outcome(
        OWNER_SUB, org.id, objective_id, OutcomeCreateRequest(goal="Retention", owner_id=OWNER_SUB)
    )

    objective = await objectives.get_objective(OWNER_SUB, org.id, objective_id)
    assert objective.status == LifecycleStatus.active


@pytest.mark.asyncio
async def test_failed_seed_item_is_reported_and_replayable(objectives, org, add_member):
    outcomes = [
        OutcomeSeed(
            goal="Enterprise adoption",
            owner_id=OWNER_SUB,
            key_results=[
                KeyResultSeed(
                    description="Sign 10 enterprise customers",
                    owner_id=OWNER_SUB,
                    initiatives=[
                        InitiativeCreateRequest(name="Outbound campaign", owner_id=OWNER_SUB),
                        InitiativeCreateRequest(name="Partner program", owner_id="idp|ghost"),
                    ],
                )
            ],
        )
    ]
    result = await objectives.create_objective(
        OWNER_SUB, org.id, objective_request(outcomes=outcomes)
    )

    assert result.created == 3
    assert len(result.failures) == 1
    failure = result.failures[0]
    assert failure.kind == "initiative"
    assert failure.name == "Partner program"
    assert failure.code == "VALIDATION_ERROR"

    await add_member(org.id, "idp|ghost", MemberRole.member)
    objective_id = result.objective.objective.id
    replay = await objectives.seed_objective(OWNER_SUB, org.id, objective_id, outcomes)

    assert replay.created == 1
    assert replay.failures == []
    assert replay.objective.node_count() == 5


@pytest.mark.asyncio
async def test_failed_parent_skips_its_children(objectives, org):
    outcomes = [
        OutcomeSeed(
            goal="Unowned",
            owner_id="idp|ghost",
            key_results=[KeyResultSeed(description="Never created", owner_id=OWNER_SUB)],
        )
    ]
    result = await objectives.create_objective(
        OWNER_SUB, org.id, objective_request(outcomes=outcomes)
    )

    assert result.created == 0
    assert [f.kind for f in result.failures] == ["outcome"]
    assert result.objective.outcomes == []


@pytest.mark.asyncio
async def test_owner_must_be_active_member(objectives, org):
    with pytest.raises(ValidationError):
        await objectives.create_objective(OWNER_SUB, org.id, objective_request(owner_id="idp|ghost"))


@pytest.mark.asyncio
async def test_billing_admin_cannot_create(objectives, org, add_member):
    await add_member(org.id, "idp|bill", MemberRole.billing_admin)

    with pytest.raises(InsufficientPermission):
        await objectives.create_objective("idp|bill", org.id, objective_request())


@pytest.mark.asyncio
async def test_suspended_org_blocks_writes_not_reads(objectives, tenancy, org, make_objective):
    tree = await make_objective()
    await tenancy.set_organization_status(OWNER_SUB, org.id, OrganizationStatus.suspended)

    with pytest.raises(OrganizationSuspended):
        await objectives.create_objective(OWNER_SUB, org.id, objective_request())

    fetched = await objectives.get_objective_tree(OWNER_SUB, org.id, tree.objective.id)
    assert fetched.node_count() == 5


# ---------------------------------------------------------------------------
# 2. Parents and tenancy
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_parent_from_other_org_is_orphaned(objectives, tenancy, org, make_objective):
    tree = await make_objective()
    outcome_id = tree.outcomes[0].outcome.id
    other = await tenancy.create_organization(OWNER_SUB, "Globex")

    with pytest.raises(OrphanedReference):
        await objectives.create_key_result(
            OWNER_SUB,
            other.id,
            outcome_id,
            KeyResultCreateRequest(description="Leak", owner_id=OWNER_SUB),
        )


@pytest.mark.asyncio
async def test_missing_parent_is_orphaned(objectives, org, make_objective):
    tree = await make_objective()
    initiative_id = tree.outcomes[0].key_results[0].initiatives[0].id

    with pytest.raises(OrphanedReference):
        await objectives.create_initiative(
            OWNER_SUB,
            org.id,
            initiative_id,
            InitiativeCreateRequest(name="Wrong parent", owner_id=OWNER_SUB),
        )


@pytest.mark.asyncio
async def test_nodes_of_other_org_are_not_found(objectives, tenancy, org, make_objective):
    tree = await make_objective()
    other = await tenancy.create_organization(OWNER_SUB, "Globex")

    with pytest.raises(NotFound):
        await objectives.get_outcome(OWNER_SUB, other.id, tree.outcomes[0].outcome.id)
    with pytest.raises(NotFound):
        await objectives.get_objective_tree(OWNER_SUB, other.id, tree.objective.id)


# ---------------------------------------------------------------------------
# 3. Update
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_update_applies_only_sent_fields(objectives, org, make_objective):
    tree = await make_objective()

    updated = await objectives.update_objective(
        OWNER_SUB, org.id, tree.objective.id, ObjectiveUpdateRequest(target_date=date(2028, 6, 30))
    )

    assert updated.target_date == date(2028, 6, 30)
    assert updated.name == "Grow revenue"


@pytest.mark.asyncio
async def test_update_can_clear_optional_fields(objectives, org, make_objective):
    tree = await make_objective()
    outcome = tree.outcomes[0].outcome
    await objectives.update_outcome(
        OWNER_SUB, org.id, outcome.id, OutcomeUpdateRequest(benefit="More revenue")
    )

    cleared = await objectives.update_outcome(
        OWNER_SUB, org.id, outcome.id, OutcomeUpdateRequest(benefit=None)
    )

    assert cleared.benefit is None
    assert cleared.goal == "Enterprise adoption"


@pytest.mark.asyncio
async def test_update_rejects_unknown_owner(objectives, org, make_objective):
    tree = await make_objective()

    with pytest.raises(ValidationError):
        await objectives.update_objective(
            OWNER_SUB, org.id, tree.objective.id, ObjectiveUpdateRequest(owner_id="idp|ghost")
        )


# ---------------------------------------------------------------------------
# 4. Lifecycle
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_allowed_and_forbidden_transitions(objectives, org, make_objective):
    tree = await make_objective()
    objective_id = tree.objective.id

    paused = await objectives.transition_objective(OWNER_SUB, org.id, objective_id, LifecycleStatus.paused)
    assert paused.status == LifecycleStatus.paused

    completed = await objectives.transition_objective(
        OWNER_SUB, org.id, objective_id, LifecycleStatus.completed
    )
    assert completed.status == LifecycleStatus.completed

    with pytest.raises(ValidationError):
        await objectives.transition_objective(OWNER_SUB, org.id, objective_id, LifecycleStatus.active)


@pytest.mark.asyncio
async def test_draft_cannot_jump_to_completed(objectives, org):
    result = await objectives.create_objective(OWNER_SUB, org.id, objective_request(outcomes=[]))

    with pytest.raises(ValidationError):
        await objectives.transition_objective(
            OWNER_SUB, org.id, result.objective.objective.id, LifecycleStatus.completed
        )


@pytest.mark.asyncio
async def test_terminal_objective_accepts_no_children(objectives, org, make_objective):
    tree = await make_objective()
    await objectives.transition_objective(OWNER_SUB, org.id, tree.objective.id, LifecycleStatus.cancelled)

    with pytest.raises(ValidationError):
        await objectives.create_outcome(
            OWNER_SUB,
            org.id,
            tree.objective.id,
            OutcomeCreateRequest(goal="Too late", owner_id=OWNER_SUB),
        )


# ---------------------------------------------------------------------------
# 5. Delete
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_delete_with_dependents_requires_cascade(objectives, org, make_objective, store):
    tree = await make_objective()
    outcome_id = tree.outcomes[0].outcome.id

    with pytest.raises(HasDependents) as excinfo:
        await objectives.delete_outcome(OWNER_SUB, org.id, outcome_id)
    assert excinfo.value.context == {"key_results": 1}

    await objectives.delete_outcome(OWNER_SUB, org.id, outcome_id, cascade=True)

    assert await store.count(Outcome, org_id=org.id) == 0
    assert await store.count(KeyResult, org_id=org.id) == 0
    assert await store.count(Initiative, org_id=org.id) == 0


@pytest.mark.asyncio
async def test_cascade_removes_heartbeats_and_recomputes(
    objectives, heartbeats, org, make_objective, store, clock
):
    tree = await make_objective()
    kr_node = tree.outcomes[0].key_results[0]
    initiative = kr_node.initiatives[0]
    await heartbeats.record_heartbeat(
        OWNER_SUB, org.id, NodeType.initiative, initiative.id,
        heartbeat_request(clock.today(), HealthSignal.red),
    )

    with pytest.raises(HasDependents):
        await objectives.delete_initiative(OWNER_SUB, org.id, initiative.id)

    await objectives.delete_initiative(OWNER_SUB, org.id, initiative.id, cascade=True)

    assert await store.count(Heartbeat, org_id=org.id) == 0
    kr = await objectives.get_key_result(OWNER_SUB, org.id, kr_node.key_result.id)
    assert kr.current_health == Health.green
    assert kr.risk_score == 0
    assert kr.last_heartbeat_on is None


@pytest.mark.asyncio
async def test_member_cannot_delete(objectives, org, make_objective, add_member):
    tree = await make_objective()
    await add_member(org.id, "idp|bob", MemberRole.member)

    with pytest.raises(InsufficientPermission):
        await objectives.delete_objective("idp|bob", org.id, tree.objective.id, cascade=True)


@pytest.mark.asyncio
async def test_delete_objective_cascade(objectives, org, make_objective, store):
    tree = await make_objective()

    with pytest.raises(HasDependents):
        await objectives.delete_objective(OWNER_SUB, org.id, tree.objective.id)

    await objectives.delete_objective(OWNER_SUB, org.id, tree.objective.id, cascade=True)

    with pytest.raises(NotFound):
        await objectives.get_objective(OWNER_SUB, org.id, tree.objective.id)
    assert await store.count(KeyResult, org_id=org.id) == 0


# ---------------------------------------------------------------------------
# 6. Plan soft cap
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_soft_cap_is_reported_not_enforced(objectives, org):
    for name in ("One", "Two"):
        result = await objectives.create_objective(OWNER_SUB, org.id, objective_request(name=name))
        assert result.soft_cap.exceeded is False

    third = await objectives.create_objective(OWNER_SUB, org.id, objective_request(name="Three"))

    assert third.soft_cap.limit == 2
    assert third.soft_cap.active_count == 3
    assert third.soft_cap.exceeded is True

    listed, cap = await objectives.list_objectives(OWNER_SUB, org.id)
    assert len(listed) == 3
    assert cap.exceeded is True


@pytest.mark.asyncio
async def test_closed_objectives_do_not_count(objectives, org, make_objective):
    tree = await make_objective()
    await objectives.transition_objective(OWNER_SUB, org.id, tree.objective.id, LifecycleStatus.completed)

    cap = await objectives.soft_cap_status(org.id)

    assert cap.active_count == 0
