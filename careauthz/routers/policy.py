from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from careauthz.dependencies import get_authz_service
from careauthz.policy.decision import EvaluationFailure
from careauthz.policy.errors import InvalidRequestError, RuleSetError
from careauthz.policy.service import AuthorizationService
from careauthz.schemas.policy import DecisionOut, ReloadOut, SimulationRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/dev/policy", tags=["development"])


@router.post("/simulate", response_model=DecisionOut)
def simulate(body: SimulationRequest, service: AuthorizationService = Depends(get_authz_service)) -> DecisionOut:
    """
    Simulate an authorization decision with a full evaluation trace.

    Denies are normal 200 responses with ``decision: "deny"``; only an engine
    that cannot decide (configuration or internal failure) answers 500.
    """

    try:
        result = service.simulate(
            body.subject.to_subject(),
            body.object.to_object(),
            body.action,
            body.context.to_context(),
        )
    except InvalidRequestError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "INVALID_REQUEST", "field": e.field, "message": e.message},
        ) from e

    if isinstance(result, EvaluationFailure):
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "code": "SIMULATION_ERROR",
                "message": "Policy simulation failed",
                "reason": result.message,
                "correlation_id": result.correlation_id,
            },
        )

    logger.info(
        "Policy simulation completed decision=%s correlation_id=%s",
        result.decision.value,
        result.correlation_id,
    )
    return DecisionOut.model_validate(result.to_dict())


@router.post("/reload", response_model=ReloadOut)
def reload_policies(service: AuthorizationService = Depends(get_authz_service)) -> ReloadOut:
    try:
        rule_set = service.reload()
    except RuleSetError as e:
        logger.error("Policy reload failed: %s", e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "code": "RELOAD_ERROR",
                "message": "Policy reload failed",
                "reason": str(e),
                "policy_version": service.current_policy_version(),
            },
        ) from e

    return ReloadOut(success=True, message="Policies reloaded successfully", policy_version=rule_set.policy_version)
