"""
Structural and consistency checks on an authorization context.

Issues are returned, never raised: an ``error`` forces the decision to deny
(fail closed), a ``warning`` is surfaced on the record but does not block.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable

from .clock import Clock, SystemClock
from .context import AuthorizationContext


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class ValidationIssue:
    severity: Severity
    message: str
    field: str | None = None

    @property
    def is_error(self) -> bool:
        return self.severity is Severity.ERROR


TENANT_REQUIRED = "tenant_root_id is required for all authorization contexts"
CONSENT_REQUIRED_FOR_PHI = "consent_ok must be evaluated when contains_phi is true"
PURPOSE_REQUIRED_FOR_PHI = "purpose is required for PHI access"
BREAK_GLASS_EXPIRY_REQUIRED = "bg_expires_at is required when break-glass is active"
BREAK_GLASS_EXPIRED = "break-glass access has expired"
CONSENT_ID_MISSING = "consent_id should be provided when consent_ok is true"


class ContextValidator:
    """
    Validate an ``AuthorizationContext``.

    Tenant fallback to ``object.tenant_root_id`` is the caller's job and must
    happen before ``validate`` is called.
    """

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()

    def validate(self, context: AuthorizationContext, *, now: datetime | None = None) -> list[ValidationIssue]:
        """Validate as of ``now``; expiry checks read the clock when it is omitted."""

        issues: list[ValidationIssue] = []

        if not context.tenant_root_id:
            issues.append(_error(TENANT_REQUIRED, "tenant_root_id"))

        if context.contains_phi is True:
            if context.consent_ok is None:
                issues.append(_error(CONSENT_REQUIRED_FOR_PHI, "consent_ok"))
            if context.purpose is None:
                issues.append(_error(PURPOSE_REQUIRED_FOR_PHI, "purpose"))

        if context.break_glass_active is True:
            expires_at = context.break_glass_expires_at
            if expires_at is None:
                issues.append(_error(BREAK_GLASS_EXPIRY_REQUIRED, "break_glass_expires_at"))
            elif expires_at <= (now if now is not None else self._clock.now()):
                issues.append(_error(BREAK_GLASS_EXPIRED, "break_glass_expires_at"))

        if context.consent_ok is True and not context.consent_id:
            issues.append(ValidationIssue(Severity.WARNING, CONSENT_ID_MISSING, "consent_id"))

        return issues


def errors(issues: Iterable[ValidationIssue]) -> list[ValidationIssue]:
    return [i for i in issues if i.severity is Severity.ERROR]


def warnings(issues: Iterable[ValidationIssue]) -> list[ValidationIssue]:
    return [i for i in issues if i.severity is Severity.WARNING]


def _error(message: str, field: str) -> ValidationIssue:
    return ValidationIssue(Severity.ERROR, message, field)
