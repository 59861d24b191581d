from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status

from careauthz.dependencies import get_authz_service
from careauthz.policy.service import AuthorizationService
from careauthz.schemas.policy import HealthOut

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthOut)
def health(response: Response, service: AuthorizationService = Depends(get_authz_service)) -> HealthOut:
    version = service.current_policy_version()
    if version is None:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthOut(status="unavailable", policy_version=None)
    return HealthOut(status="ok", policy_version=version)
