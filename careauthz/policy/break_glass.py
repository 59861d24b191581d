"""
Break-glass: time-boxed emergency access to PHI.

A grant is only admitted when the request touches PHI and the ordinary
consent/assignment checks failed. The window is always capped at the
configured maximum; callers cannot extend it by asking for a later expiry.

The manager does not persist grants. ``BreakGlassDecision`` carries who,
what, when and until-when so the calling layer can store it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from .clock import Clock, SystemClock, ensure_aware
from .context import AuthorizationContext, ResourceObject, Subject

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BreakGlassDecision:
    active: bool
    expires_at: datetime | None
    reason: str

    # Audit facts for the caller's separate grant record.
    user_id: str
    role: str
    object_type: str
    object_id: str
    requested_at: datetime

    def apply(self, context: AuthorizationContext) -> AuthorizationContext:
        """Return ``context`` with break-glass fields reflecting this decision."""
        if not self.active:
            return context.with_updates(break_glass_active=False, break_glass_expires_at=None)
        return context.with_updates(break_glass_active=True, break_glass_expires_at=self.expires_at)

    def to_dict(self) -> dict[str, object]:
        return {
            "active": self.active,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "reason": self.reason,
            "user_id": self.user_id,
            "role": self.role,
            "object_type": self.object_type,
            "object_id": self.object_id,
            "requested_at": self.requested_at.isoformat(),
        }


class BreakGlassManager:
    def __init__(self, max_duration: timedelta, clock: Clock | None = None) -> None:
        if max_duration <= timedelta(0):
            raise ValueError("max_duration must be positive")
        self._max_duration = max_duration
        self._clock = clock or SystemClock()

    @property
    def max_duration(self) -> timedelta:
        return self._max_duration

    def admit(
        self,
        subject: Subject,
        obj: ResourceObject,
        requested_expiry: datetime | None,
        context: AuthorizationContext,
    ) -> BreakGlassDecision:
        now = self._clock.now()

        def refuse(reason: str) -> BreakGlassDecision:
            logger.info(
                "Break-glass refused user=%s role=%s object=%s:%s reason=%s",
                subject.user_id,
                subject.role,
                obj.type,
                obj.id,
                reason,
            )
            return BreakGlassDecision(
                active=False,
                expires_at=None,
                reason=reason,
                user_id=subject.user_id,
                role=subject.role,
                object_type=obj.type,
                object_id=obj.id,
                requested_at=now,
            )

        if context.contains_phi is not True:
            return refuse("break-glass only applies to PHI access")

        if context.consent_ok is True and context.assigned_to_user is True:
            return refuse("ordinary consent and assignment checks already pass")

        ceiling = now + self._max_duration
        if requested_expiry is None:
            expires_at = ceiling
        else:
            requested_expiry = ensure_aware(requested_expiry)
            if requested_expiry <= now:
                return refuse("requested break-glass expiry is not in the future")
            expires_at = min(requested_expiry, ceiling)

        clamped = requested_expiry is not None and requested_expiry > ceiling
        reason = "break-glass admitted"
        if clamped:
            reason += f" (expiry clamped to maximum of {self._max_duration})"

        logger.warning(
            "Break-glass admitted user=%s role=%s object=%s:%s at=%s until=%s tenant=%s",
            subject.user_id,
            subject.role,
            obj.type,
            obj.id,
            now.isoformat(),
            expires_at.isoformat(),
            context.tenant_root_id,
        )
        return BreakGlassDecision(
            active=True,
            expires_at=expires_at,
            reason=reason,
            user_id=subject.user_id,
            role=subject.role,
            object_type=obj.type,
            object_id=obj.id,
            requested_at=now,
        )

    def normalize(
        self, context: AuthorizationContext, now: datetime | None = None
    ) -> tuple[AuthorizationContext, str | None]:
        now = now if now is not None else self._clock.now()
        return normalize_break_glass(context, now, self._max_duration)


def normalize_break_glass(
    context: AuthorizationContext,
    now: datetime,
    max_duration: timedelta | None = None,
) -> tuple[AuthorizationContext, str | None]:
    """
    Downgrade break-glass with a missing or past expiry to inactive.

    With ``max_duration``, a caller-supplied expiry beyond ``now +
    max_duration`` is clamped to that ceiling. Returns the (possibly
    unchanged) context and a note explaining the change, or ``None`` when
    nothing changed.
    """

    if context.break_glass_active is not True:
        return context, None

    expires_at = context.break_glass_expires_at
    if expires_at is None:
        note = "break-glass requested without expiry; treated as inactive"
    elif expires_at <= now:
        note = f"break-glass expired at {expires_at.isoformat()}; treated as inactive"
    elif max_duration is not None and expires_at > now + max_duration:
        ceiling = now + max_duration
        note = (
            f"break-glass window exceeds maximum of {max_duration}; "
            f"expiry clamped to {ceiling.isoformat()}"
        )
        return context.with_updates(break_glass_expires_at=ceiling), note
    else:
        return context, None

    return context.with_updates(break_glass_active=False, break_glass_expires_at=None), note
