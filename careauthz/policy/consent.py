"""
Consent evaluation for PHI access.

Consent is computed fresh for every decision from records supplied by a
``ConsentRecordSource``; nothing is cached because consent can be granted or
revoked between two requests.

Consent is layered:

1. Platform consent (consent to store the client's data at all) is always
   required.
2. When the context names a narrower ``consent_scope`` (organization,
   location, helper, company), a consent for that scope is required too. A
   record with no ``scope_id`` covers every id of its scope.

Within one level, a record counts when it is active, covers the purpose (an
empty purpose list means unrestricted) and is unexpired. Failing that, a
record that expired recently enough to still be inside its grace window
counts as grace-period access, so the decision record carries a warning.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Mapping, Protocol, Sequence

from .clock import Clock, SystemClock, ensure_aware
from .context import AuthorizationContext, ConsentScope, Purpose, plain

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConsentRecord:
    """
    One consent grant as stored by the consent system.

    ``active`` is False once the grant has been revoked.
    """

    id: str
    active: bool
    expires_at: datetime | None
    allowed_purposes: frozenset[str]
    scope_type: ConsentScope
    scope_id: str | None = None
    grace_window: timedelta | None = None
    """Per-record grace window; falls back to the evaluator's configured one."""

    def __post_init__(self) -> None:
        if not isinstance(self.allowed_purposes, frozenset):
            object.__setattr__(self, "allowed_purposes", frozenset(str(plain(p)) for p in self.allowed_purposes))
        if not isinstance(self.scope_type, ConsentScope):
            object.__setattr__(self, "scope_type", ConsentScope(self.scope_type))

    def covers(self, purpose: Purpose | None) -> bool:
        if not self.allowed_purposes:
            return True
        return purpose is not None and plain(purpose) in self.allowed_purposes

    def applies_to(self, scope_type: ConsentScope, scope_id: str | None) -> bool:
        return self.scope_type is scope_type and (self.scope_id is None or self.scope_id == scope_id)


@dataclass(frozen=True)
class ConsentResult:
    consent_ok: bool
    reason: str
    consent_id: str | None = None
    grace_period_active: bool = False
    expires_at: datetime | None = None
    scope_type: ConsentScope | None = None
    allowed_purposes: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, object]:
        return {
            "consent_ok": self.consent_ok,
            "consent_id": self.consent_id,
            "reason": self.reason,
            "grace_period_active": self.grace_period_active,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "scope_type": self.scope_type.value if self.scope_type else None,
            "allowed_purposes": list(self.allowed_purposes),
        }


class ConsentRecordSource(Protocol):
    def lookup(self, user_id: str, object_id: str) -> Sequence[ConsentRecord]: ...


class InMemoryConsentSource:
    """Consent records keyed by object id (the client the consent is about)."""

    def __init__(self, records: Mapping[str, Iterable[ConsentRecord]] | None = None) -> None:
        self._records: dict[str, tuple[ConsentRecord, ...]] = {
            object_id: tuple(recs) for object_id, recs in (records or {}).items()
        }

    def lookup(self, user_id: str, object_id: str) -> Sequence[ConsentRecord]:
        return self._records.get(object_id, ())


@dataclass(frozen=True)
class _LevelMatch:
    record: ConsentRecord
    grace_expiry: datetime | None = None


class ConsentEvaluator:
    """
    Resolve whether PHI access is consented at a given instant.

    ``grace_period`` is the configured grace window used for records that do
    not carry their own. Zero disables grace for those records.
    """

    def __init__(
        self,
        source: ConsentRecordSource,
        grace_period: timedelta,
        clock: Clock | None = None,
    ) -> None:
        self._source = source
        self._grace_period = grace_period
        self._clock = clock or SystemClock()

    def evaluate(
        self,
        subject_user_id: str,
        object_id: str,
        context: AuthorizationContext,
        *,
        now: datetime | None = None,
    ) -> ConsentResult:
        """Evaluate consent as of ``now`` (the clock's time when omitted)."""

        now = now if now is not None else self._clock.now()
        try:
            records = list(self._source.lookup(subject_user_id, object_id))
        except Exception as e:
            logger.warning("Consent lookup failed object_id=%s error=%s", object_id, type(e).__name__)
            return ConsentResult(consent_ok=False, reason=f"Consent evaluation failed: {e}")

        purpose = context.purpose
        purpose_label = plain(purpose) if purpose is not None else "unspecified"
        scope = context.consent_scope or ConsentScope.PLATFORM

        platform = self._match(records, ConsentScope.PLATFORM, None, purpose, now)
        if platform is None:
            return ConsentResult(
                consent_ok=False,
                reason="Platform-level consent required for data storage",
                scope_type=ConsentScope.PLATFORM,
            )
        if scope is ConsentScope.PLATFORM:
            return self._granted(
                platform, scope, f"Valid platform consent found for {purpose_label} purpose", object_id
            )

        scoped = self._match(records, scope, context.consent_scope_id, purpose, now)
        if scoped is None:
            return ConsentResult(
                consent_ok=False,
                reason=f"{scope.value.capitalize()}-level consent required for {purpose_label} purpose",
                scope_type=scope,
            )
        return self._granted(
            scoped, scope, f"Valid consent found for {scope.value} scope and {purpose_label} purpose", object_id
        )

    def _match(
        self,
        records: list[ConsentRecord],
        scope: ConsentScope,
        scope_id: str | None,
        purpose: Purpose | None,
        now: datetime,
    ) -> _LevelMatch | None:
        candidates = [r for r in records if r.active and r.applies_to(scope, scope_id) and r.covers(purpose)]

        for record in candidates:
            if record.expires_at is None or ensure_aware(record.expires_at) > now:
                return _LevelMatch(record)

        for record in candidates:
            window = record.grace_window if record.grace_window is not None else self._grace_period
            if window <= timedelta(0):
                continue
            grace_expiry = ensure_aware(record.expires_at) + window
            if now <= grace_expiry:
                return _LevelMatch(record, grace_expiry)

        return None

    def _granted(self, match: _LevelMatch, scope: ConsentScope, reason: str, object_id: str) -> ConsentResult:
        record = match.record
        if match.grace_expiry is None:
            return ConsentResult(
                consent_ok=True,
                consent_id=record.id,
                reason=reason,
                expires_at=record.expires_at,
                scope_type=scope,
                allowed_purposes=tuple(sorted(record.allowed_purposes)),
            )

        logger.info("Consent grace period used consent_id=%s object_id=%s", record.id, object_id)
        return ConsentResult(
            consent_ok=True,
            consent_id=record.id,
            reason=f"Access granted within grace period for {scope.value} scope",
            grace_period_active=True,
            expires_at=match.grace_expiry,
            scope_type=scope,
            allowed_purposes=tuple(sorted(record.allowed_purposes)),
        )


def merge_into(context: AuthorizationContext, result: ConsentResult) -> AuthorizationContext:
    """
    Fill consent fields the context leaves unset.

    Explicit values supplied by a trusted caller always win.
    """

    changes: dict[str, object] = {}
    if context.consent_ok is None:
        changes["consent_ok"] = result.consent_ok
        if context.consent_id is None and result.consent_ok and result.consent_id:
            changes["consent_id"] = result.consent_id
    if not changes:
        return context
    return context.with_updates(**changes)


__all__ = [
    "ConsentEvaluator",
    "ConsentRecord",
    "ConsentRecordSource",
    "ConsentResult",
    "ConsentScope",
    "InMemoryConsentSource",
    "merge_into",
]
