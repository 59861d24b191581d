from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from careauthz.policy.context import (
    AuthorizationContext,
    ConsentScope,
    ProgramAccessLevel,
    Purpose,
    ResourceObject,
    Subject,
)


class SubjectIn(BaseModel):
    role: str
    user_id: str = "simulation_user"

    def to_subject(self) -> Subject:
        return Subject(role=self.role, user_id=self.user_id)


class ObjectIn(BaseModel):
    type: str
    id: str
    tenant_root_id: str | None = None

    def to_object(self) -> ResourceObject:
        return ResourceObject(type=self.type, id=self.id, tenant_root_id=self.tenant_root_id)


class DatasetIn(BaseModel):
    deidentified: bool


class ServiceIn(BaseModel):
    claimed: bool


class ContextIn(BaseModel):
    """
    Partially specified authorization context.

    Accepts the platform's wire names (``bg``, ``bg_expires_at``, nested
    ``dataset`` / ``service``) as well as the flat field names.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    purpose: Purpose | None = None
    legal_basis: bool | None = None
    dataset: DatasetIn | None = None
    dataset_deidentified: bool | None = None
    identified_ok: bool | None = None
    contains_phi: bool | None = None
    org_scope: bool | None = None
    same_org: bool | None = None
    same_location: bool | None = None
    in_network: bool | None = None
    tenant_root_id: str | None = None
    delegated_fields: list[str] | None = None
    field: str | None = None
    service: ServiceIn | None = None
    service_claimed: bool | None = None
    assigned_to_user: bool | None = None
    shares_program: bool | None = None
    program_access_level: ProgramAccessLevel | None = None
    consent_ok: bool | None = None
    consent_id: str | None = None
    consent_scope: ConsentScope | None = None
    consent_scope_id: str | None = None
    self_scope: bool | None = None
    affiliated: bool | None = None
    temp_grant: bool | None = None
    two_person_rule: bool | None = None
    break_glass_active: bool | None = Field(default=None, alias="bg")
    break_glass_expires_at: datetime | None = Field(default=None, alias="bg_expires_at")
    policy_version: str | None = None
    correlation_id: str | None = None

    def to_context(self) -> AuthorizationContext:
        data = self.model_dump(exclude={"dataset", "service"})
        if data["dataset_deidentified"] is None and self.dataset is not None:
            data["dataset_deidentified"] = self.dataset.deidentified
        if data["service_claimed"] is None and self.service is not None:
            data["service_claimed"] = self.service.claimed
        return AuthorizationContext(**data)


class SimulationRequest(BaseModel):
    subject: SubjectIn
    object: ObjectIn
    action: str
    context: ContextIn = Field(default_factory=ContextIn)


class DecisionOut(BaseModel):
    decision: str
    subject: dict[str, Any]
    object: dict[str, Any]
    action: str
    context: dict[str, Any]
    matched_policy: str | None
    reasoning: str
    policy_version: str | None
    timestamp: datetime
    correlation_id: str | None
    context_snapshot: dict[str, Any] | None = None
    evaluation_steps: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class ReloadOut(BaseModel):
    success: bool
    message: str
    policy_version: str | None


class HealthOut(BaseModel):
    status: str
    policy_version: str | None
