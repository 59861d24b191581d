from __future__ import annotations

from fastapi import Request

from careauthz.policy.service import AuthorizationService


def get_authz_service(request: Request) -> AuthorizationService:
    service = getattr(request.app.state, "authz_service", None)
    if service is None:
        raise RuntimeError("Authorization service not initialised. Did app startup run?")
    return service
