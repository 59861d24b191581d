"""Authorization context, subject and object.

Every context field is optional; ``None`` means "absent" and is distinct from
``False``. That distinction matters: ``consent_ok=None`` on a PHI request is a
validation error, ``consent_ok=False`` is a resolved consent check.
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from datetime import datetime
from enum import Enum
from typing import Any

from .clock import ensure_aware


class Purpose(str, Enum):
    """Purpose of use."""

    CARE = "care"
    BILLING = "billing"
    QA = "QA"
    OVERSIGHT = "oversight"
    RESEARCH = "research"


class ProgramAccessLevel(str, Enum):
    VIEW = "view"
    WRITE = "write"
    FULL = "full"
    NONE = "none"


class ConsentScope(str, Enum):
    """Level a consent grant applies to; platform consent underlies all others."""

    PLATFORM = "platform"
    ORGANIZATION = "organization"
    LOCATION = "location"
    HELPER = "helper"
    COMPANY = "company"


@dataclass(frozen=True)
class Subject:
    """Already-authenticated caller."""

    role: str
    user_id: str

    def to_dict(self) -> dict[str, object]:
        return {"role": self.role, "user_id": self.user_id}


@dataclass(frozen=True)
class ResourceObject:
    """Protected resource. ``tenant_root_id`` is the fallback tenant anchor."""

    type: str
    id: str
    tenant_root_id: str | None = None

    def to_dict(self) -> dict[str, object]:
        out: dict[str, object] = {"type": self.type, "id": self.id}
        if self.tenant_root_id is not None:
            out["tenant_root_id"] = self.tenant_root_id
        return out


@dataclass(frozen=True)
class AuthorizationContext:
    """
    Situational facts for one decision.

    Owned by a single in-flight decision. Enrichment steps never mutate it;
    they return a copy via ``with_updates``.
    """

    # Purpose and legal basis
    purpose: Purpose | None = None
    legal_basis: bool | None = None

    # Dataset and PHI classification
    dataset_deidentified: bool | None = None
    identified_ok: bool | None = None
    contains_phi: bool | None = None

    # Organizational scope
    org_scope: bool | None = None
    same_org: bool | None = None
    same_location: bool | None = None
    in_network: bool | None = None
    tenant_root_id: str | None = None
    """Tenant isolation boundary; required for every real decision."""

    # Delegation and field-level access
    delegated_fields: frozenset[str] | None = None
    field: str | None = None

    service_claimed: bool | None = None

    # Assignment and program
    assigned_to_user: bool | None = None
    shares_program: bool | None = None
    program_access_level: ProgramAccessLevel | None = None

    # Consent
    consent_ok: bool | None = None
    consent_id: str | None = None
    consent_scope: ConsentScope | None = None
    """Scope the access needs consent for, beyond platform consent."""
    consent_scope_id: str | None = None

    self_scope: bool | None = None
    affiliated: bool | None = None

    temp_grant: bool | None = None
    two_person_rule: bool | None = None

    # Break-glass
    break_glass_active: bool | None = None
    break_glass_expires_at: datetime | None = None

    # Audit
    policy_version: str | None = None
    correlation_id: str | None = None

    def __post_init__(self) -> None:
        # Accept plain strings / iterables from callers and normalize them.
        if self.purpose is not None and not isinstance(self.purpose, Purpose):
            object.__setattr__(self, "purpose", Purpose(self.purpose))
        if self.program_access_level is not None and not isinstance(self.program_access_level, ProgramAccessLevel):
            object.__setattr__(self, "program_access_level", ProgramAccessLevel(self.program_access_level))
        if self.consent_scope is not None and not isinstance(self.consent_scope, ConsentScope):
            object.__setattr__(self, "consent_scope", ConsentScope(self.consent_scope))
        if self.delegated_fields is not None and not isinstance(self.delegated_fields, frozenset):
            object.__setattr__(self, "delegated_fields", frozenset(self.delegated_fields))
        if self.break_glass_expires_at is not None:
            object.__setattr__(self, "break_glass_expires_at", ensure_aware(self.break_glass_expires_at))

    @classmethod
    def field_names(cls) -> frozenset[str]:
        return _FIELD_NAMES

    def is_set(self, name: str) -> bool:
        return getattr(self, name) is not None

    def with_updates(self, **changes: Any) -> AuthorizationContext:
        return replace(self, **changes)

    def to_dict(self) -> dict[str, object]:
        """JSON-safe dict of the fields that are present."""
        out: dict[str, object] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            if isinstance(value, Enum):
                value = value.value
            elif isinstance(value, frozenset):
                value = sorted(value)
            elif isinstance(value, datetime):
                value = value.isoformat()
            out[f.name] = value
        return out


_FIELD_NAMES = frozenset(f.name for f in fields(AuthorizationContext))

# Annotations are strings under postponed evaluation.
BOOLEAN_FIELDS = frozenset(f.name for f in fields(AuthorizationContext) if f.type == "bool | None")
COLLECTION_FIELDS = frozenset({"delegated_fields"})
ENUM_FIELDS = {"purpose": Purpose, "program_access_level": ProgramAccessLevel, "consent_scope": ConsentScope}


def plain(value: object) -> object:
    """Unwrap enum members so they compare and hash like their values."""
    if isinstance(value, Enum):
        return value.value
    return value


__all__ = [
    "BOOLEAN_FIELDS",
    "COLLECTION_FIELDS",
    "ENUM_FIELDS",
    "AuthorizationContext",
    "ConsentScope",
    "ProgramAccessLevel",
    "Purpose",
    "ResourceObject",
    "Subject",
    "plain",
]
