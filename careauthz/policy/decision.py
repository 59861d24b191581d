"""Immutable decision records returned to callers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from .context import AuthorizationContext, ResourceObject, Subject
from .rules import Effect


@dataclass(frozen=True)
class AuthorizationDecision:
    decision: Effect
    subject: Subject
    object: ResourceObject
    action: str
    context: AuthorizationContext
    reasoning: str
    policy_version: str | None
    timestamp: datetime
    correlation_id: str | None
    matched_policy: str | None = None

    @property
    def allowed(self) -> bool:
        return self.decision is Effect.ALLOW

    def to_dict(self) -> dict[str, object]:
        return {
            "decision": self.decision.value,
            "subject": self.subject.to_dict(),
            "object": self.object.to_dict(),
            "action": self.action,
            "context": self.context.to_dict(),
            "matched_policy": self.matched_policy,
            "reasoning": self.reasoning,
            "policy_version": self.policy_version,
            "timestamp": self.timestamp.isoformat(),
            "correlation_id": self.correlation_id,
        }


@dataclass(frozen=True)
class PolicySimulationResult(AuthorizationDecision):
    """Decision plus the fully resolved context and the evaluation trace."""

    context_snapshot: AuthorizationContext | None = None
    evaluation_steps: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, object]:
        out = super().to_dict()
        out["context_snapshot"] = self.context_snapshot.to_dict() if self.context_snapshot else None
        out["evaluation_steps"] = list(self.evaluation_steps)
        out["warnings"] = list(self.warnings)
        return out


@dataclass(frozen=True)
class EvaluationFailure:
    """
    The engine could not produce a decision.

    Distinct from a deny: ``kind`` is ``"configuration"`` when the rule set is
    missing or broken, ``"internal"`` for an unexpected fault. ``allowed`` is
    always False so a caller that only checks that flag still fails closed.
    """

    kind: str
    message: str
    correlation_id: str
    timestamp: datetime

    @property
    def allowed(self) -> bool:
        return False

    def to_dict(self) -> dict[str, object]:
        return {
            "kind": self.kind,
            "message": self.message,
            "correlation_id": self.correlation_id,
            "timestamp": self.timestamp.isoformat(),
        }


class EvaluationTrace:
    """Ordered evaluation steps and warnings gathered while deciding."""

    def __init__(self) -> None:
        self._steps: list[str] = []
        self._warnings: list[str] = []

    def step(self, text: str) -> None:
        self._steps.append(text)

    def warn(self, text: str) -> None:
        self._warnings.append(text)

    @property
    def steps(self) -> tuple[str, ...]:
        return tuple(self._steps)

    @property
    def warnings(self) -> tuple[str, ...]:
        return tuple(self._warnings)
