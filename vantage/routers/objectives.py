"""
Objective tree endpoints.

Objectives, outcomes, key results and initiatives of one organization.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status

from vantage.core.dependencies import get_current_principal, get_objective_service
from vantage.core.security import Principal
from vantage.models.objective import LifecycleStatus
from vantage.schemas.objective import (
    InitiativeCreateRequest,
    InitiativeResponse,
    InitiativeUpdateRequest,
    KeyResultCreateRequest,
    KeyResultNodeResponse,
    KeyResultResponse,
    KeyResultUpdateRequest,
    ObjectiveCreateRequest,
    ObjectiveListResponse,
    ObjectiveResponse,
    ObjectiveSeedRequest,
    ObjectiveSeedResponse,
    ObjectiveStatusRequest,
    ObjectiveTreeResponse,
    ObjectiveUpdateRequest,
    OutcomeCreateRequest,
    OutcomeNodeResponse,
    OutcomeResponse,
    OutcomeUpdateRequest,
    SeedFailureResponse,
    SoftCapResponse,
)
from vantage.services.objective_service import ObjectiveSeedResult, ObjectiveService, SoftCap
from vantage.services.tree import ObjectiveTree

router = APIRouter()


def _tree_response(tree: ObjectiveTree) -> ObjectiveTreeResponse:
    outcomes = []
    for outcome_node in tree.outcomes:
        key_results = [
            KeyResultNodeResponse(
                **KeyResultResponse.model_validate(kr_node.key_result).model_dump(),
                initiatives=[InitiativeResponse.model_validate(i) for i in kr_node.initiatives],
            )
            for kr_node in outcome_node.key_results
        ]
        outcomes.append(
            OutcomeNodeResponse(
                **OutcomeResponse.model_validate(outcome_node.outcome).model_dump(),
                key_results=key_results,
            )
        )
    return ObjectiveTreeResponse(
        **ObjectiveResponse.model_validate(tree.objective).model_dump(),
        outcomes=outcomes,
    )


def _soft_cap_response(cap: SoftCap) -> SoftCapResponse:
    return SoftCapResponse(limit=cap.limit, active_count=cap.active_count, exceeded=cap.exceeded)


def _seed_response(result: ObjectiveSeedResult) -> ObjectiveSeedResponse:
    return ObjectiveSeedResponse(
        objective=_tree_response(result.objective),
        created=result.created,
        failures=[
            SeedFailureResponse(
                kind=f.kind, name=f.name, parent_id=f.parent_id, code=f.code, message=f.message
            )
            for f in result.failures
        ],
        soft_cap=_soft_cap_response(result.soft_cap),  # type: ignore[arg-type]
    )


# ---------------------------------------------------------------------------
# Objectives
# ---------------------------------------------------------------------------

@router.post(
    "/organizations/{org_id}/objectives",
    response_model=ObjectiveSeedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an objective with an optional seeded subtree",
)
async def create_objective(
    org_id: UUID,
    data: ObjectiveCreateRequest,
    principal: Principal = Depends(get_current_principal),
    service: ObjectiveService = Depends(get_objective_service),
) -> ObjectiveSeedResponse:
    """
    Create a Draft objective and seed outcomes / key results / initiatives.

    - Seed items that fail are listed in ``failures``; replay them via /seed
    - The plan soft cap is reported, never enforced
    """
    result = await service.create_objective(principal.sub, org_id, data)
    return _seed_response(result)


@router.get(
    "/organizations/{org_id}/objectives",
    response_model=ObjectiveListResponse,
    summary="List objectives",
)
async def list_objectives(
    org_id: UUID,
    status_filter: LifecycleStatus | None = Query(default=None, alias="status"),
    principal: Principal = Depends(get_current_principal),
    service: ObjectiveService = Depends(get_objective_service),
) -> ObjectiveListResponse:
    objectives, cap = await service.list_objectives(principal.sub, org_id, status_filter)
    return ObjectiveListResponse(
        objectives=[ObjectiveResponse.model_validate(o) for o in objectives],
        total=len(objectives),
        soft_cap=_soft_cap_response(cap),
    )


@router.get(
    "/organizations/{org_id}/objectives/{objective_id}",
    response_model=ObjectiveTreeResponse,
    summary="Get an objective with its full tree",
)
async def get_objective(
    org_id: UUID,
    objective_id: UUID,
    principal: Principal = Depends(get_current_principal),
    service: ObjectiveService = Depends(get_objective_service),
) -> ObjectiveTreeResponse:
    tree = await service.get_objective_tree(principal.sub, org_id, objective_id)
    return _tree_response(tree)


@router.patch(
    "/organizations/{org_id}/objectives/{objective_id}",
    response_model=ObjectiveResponse,
    summary="Update an objective",
)
async def update_objective(
    org_id: UUID,
    objective_id: UUID,
    data: ObjectiveUpdateRequest,
    principal: Principal = Depends(get_current_principal),
    service: ObjectiveService = Depends(get_objective_service),
) -> ObjectiveResponse:
    objective = await service.update_objective(principal.sub, org_id, objective_id, data)
    return ObjectiveResponse.model_validate(objective)


@router.put(
    "/organizations/{org_id}/objectives/{objective_id}/status",
    response_model=ObjectiveResponse,
    summary="Move an objective through its lifecycle",
)
async def transition_objective(
    org_id: UUID,
    objective_id: UUID,
    data: ObjectiveStatusRequest,
    principal: Principal = Depends(get_current_principal),
    service: ObjectiveService = Depends(get_objective_service),
) -> ObjectiveResponse:
    """Draft -> Active / Cancelled; Active <-> Paused; Active / Paused -> Completed / Cancelled."""
    objective = await service.transition_objective(principal.sub, org_id, objective_id, data.status)
    return ObjectiveResponse.model_validate(objective)


@router.post(
    "/organizations/{org_id}/objectives/{objective_id}/seed",
    response_model=ObjectiveSeedResponse,
    summary="Replay seed items idempotently",
)
async def seed_objective(
    org_id: UUID,
    objective_id: UUID,
    data: ObjectiveSeedRequest,
    principal: Principal = Depends(get_current_principal),
    service: ObjectiveService = Depends(get_objective_service),
) -> ObjectiveSeedResponse:
    """Items already present under the same parent (matched by name) are reused."""
    result = await service.seed_objective(principal.sub, org_id, objective_id, data.outcomes)
    return _seed_response(result)


@router.delete(
    "/organizations/{org_id}/objectives/{objective_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an objective",
)
async def delete_objective(
    org_id: UUID,
    objective_id: UUID,
    cascade: bool = Query(default=False),
    principal: Principal = Depends(get_current_principal),
    service: ObjectiveService = Depends(get_objective_service),
) -> Response:
    """Requires Admin. Fails with HAS_DEPENDENTS unless ``cascade=true``."""
    await service.delete_objective(principal.sub, org_id, objective_id, cascade=cascade)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------

@router.post(
    "/organizations/{org_id}/objectives/{objective_id}/outcomes",
    response_model=OutcomeResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add an outcome",
)
async def create_outcome(
    org_id: UUID,
    objective_id: UUID,
    data: OutcomeCreateRequest,
    principal: Principal = Depends(get_current_principal),
    service: ObjectiveService = Depends(get_objective_service),
) -> OutcomeResponse:
    """The first outcome activates a Draft objective."""
    outcome = await service.create_outcome(principal.sub, org_id, objective_id, data)
    return OutcomeResponse.model_validate(outcome)


@router.get(
    "/organizations/{org_id}/outcomes/{outcome_id}",
    response_model=OutcomeResponse,
    summary="Get an outcome",
)
async def get_outcome(
    org_id: UUID,
    outcome_id: UUID,
    principal: Principal = Depends(get_current_principal),
    service: ObjectiveService = Depends(get_objective_service),
) -> OutcomeResponse:
    outcome = await service.get_outcome(principal.sub, org_id, outcome_id)
    return OutcomeResponse.model_validate(outcome)


@router.patch(
    "/organizations/{org_id}/outcomes/{outcome_id}",
    response_model=OutcomeResponse,
    summary="Update an outcome",
)
async def update_outcome(
    org_id: UUID,
    outcome_id: UUID,
    data: OutcomeUpdateRequest,
    principal: Principal = Depends(get_current_principal),
    service: ObjectiveService = Depends(get_objective_service),
) -> OutcomeResponse:
    outcome = await service.update_outcome(principal.sub, org_id, outcome_id, data)
    return OutcomeResponse.model_validate(outcome)


@router.delete(
    "/organizations/{org_id}/outcomes/{outcome_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an outcome",
)
async def delete_outcome(
    org_id: UUID,
    outcome_id: UUID,
    cascade: bool = Query(default=False),
    principal: Principal = Depends(get_current_principal),
    service: ObjectiveService = Depends(get_objective_service),
) -> Response:
    await service.delete_outcome(principal.sub, org_id, outcome_id, cascade=cascade)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# Key Results
# ---------------------------------------------------------------------------

@router.post(
    "/organizations/{org_id}/outcomes/{outcome_id}/key-results",
    response_model=KeyResultResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a key result",
)
async def create_key_result(
    org_id: UUID,
    outcome_id: UUID,
    data: KeyResultCreateRequest,
    principal: Principal = Depends(get_current_principal),
    service: ObjectiveService = Depends(get_objective_service),
) -> KeyResultResponse:
    kr = await service.create_key_result(principal.sub, org_id, outcome_id, data)
    return KeyResultResponse.model_validate(kr)


@router.get(
    "/organizations/{org_id}/key-results/{key_result_id}",
    response_model=KeyResultResponse,
    summary="Get a key result",
)
async def get_key_result(
    org_id: UUID,
    key_result_id: UUID,
    principal: Principal = Depends(get_current_principal),
    service: ObjectiveService = Depends(get_objective_service),
) -> KeyResultResponse:
    kr = await service.get_key_result(principal.sub, org_id, key_result_id)
    return KeyResultResponse.model_validate(kr)


@router.patch(
    "/organizations/{org_id}/key-results/{key_result_id}",
    response_model=KeyResultResponse,
    summary="Update a key result",
)
async def update_key_result(
    org_id: UUID,
    key_result_id: UUID,
    data: KeyResultUpdateRequest,
    principal: Principal = Depends(get_current_principal),
    service: ObjectiveService = Depends(get_objective_service),
) -> KeyResultResponse:
    kr = await service.update_key_result(principal.sub, org_id, key_result_id, data)
    return KeyResultResponse.model_validate(kr)


@router.delete(
    "/organizations/{org_id}/key-results/{key_result_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a key result",
)
async def delete_key_result(
    org_id: UUID,
    key_result_id: UUID,
    cascade: bool = Query(default=False),
    principal: Principal = Depends(get_current_principal),
    service: ObjectiveService = Depends(get_objective_service),
) -> Response:
    await service.delete_key_result(principal.sub, org_id, key_result_id, cascade=cascade)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# Initiatives
# ---------------------------------------------------------------------------

@router.post(
    "/organizations/{org_id}/key-results/{key_result_id}/initiatives",
    response_model=InitiativeResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add an initiative",
)
async def create_initiative(
    org_id: UUID,
    key_result_id: UUID,
    data: InitiativeCreateRequest,
    principal: Principal = Depends(get_current_principal),
    service: ObjectiveService = Depends(get_objective_service),
) -> InitiativeResponse:
    initiative = await service.create_initiative(principal.sub, org_id, key_result_id, data)
    return InitiativeResponse.model_validate(initiative)


@router.get(
    "/organizations/{org_id}/initiatives/{initiative_id}",
    response_model=InitiativeResponse,
    summary="Get an initiative",
)
async def get_initiative(
    org_id: UUID,
    initiative_id: UUID,
    principal: Principal = Depends(get_current_principal),
    service: ObjectiveService = Depends(get_objective_service),
) -> InitiativeResponse:
    initiative = await service.get_initiative(principal.sub, org_id, initiative_id)
    return InitiativeResponse.model_validate(initiative)


@router.patch(
    "/organizations/{org_id}/initiatives/{initiative_id}",
    response_model=InitiativeResponse,
    summary="Update an initiative",
)
async def update_initiative(
    org_id: UUID,
    initiative_id: UUID,
    data: InitiativeUpdateRequest,
    principal: Principal = Depends(get_current_principal),
    service: ObjectiveService = Depends(get_objective_service),
) -> InitiativeResponse:
    initiative = await service.update_initiative(principal.sub, org_id, initiative_id, data)
    return InitiativeResponse.model_validate(initiative)


@router.delete(
    "/organizations/{org_id}/initiatives/{initiative_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an initiative",
)
async def delete_initiative(
    org_id: UUID,
    initiative_id: UUID,
    cascade: bool = Query(default=False),
    principal: Principal = Depends(get_current_principal),
    service: ObjectiveService = Depends(get_objective_service),
) -> Response:
    await service.delete_initiative(principal.sub, org_id, initiative_id, cascade=cascade)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
