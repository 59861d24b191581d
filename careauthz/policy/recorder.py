"""Packages an engine decision into the immutable record handed to callers."""

from __future__ import annotations

from dataclasses import replace
from typing import Iterable
import uuid

from .context import AuthorizationContext
from .decision import AuthorizationDecision, PolicySimulationResult


def new_correlation_id() -> str:
    return str(uuid.uuid4())


class DecisionRecorder:
    """
    Build the final decision record.

    ``policy_version`` and ``correlation_id`` are stamped onto both the record
    and its context when absent: caller-supplied values win, otherwise the
    loaded rule set's version and a fresh UUID are used.
    """

    def record(
        self,
        decision: AuthorizationDecision,
        context: AuthorizationContext,
        steps: Iterable[str],
        correlation_id: str | None,
        *,
        warnings: Iterable[str] = (),
        simulation: bool = False,
        policy_version: str | None = None,
    ) -> AuthorizationDecision:
        correlation_id = correlation_id or decision.correlation_id or context.correlation_id or new_correlation_id()
        policy_version = decision.policy_version or policy_version or context.policy_version

        stamped = context
        if stamped.correlation_id is None:
            stamped = stamped.with_updates(correlation_id=correlation_id)
        if stamped.policy_version is None and policy_version is not None:
            stamped = stamped.with_updates(policy_version=policy_version)

        base = replace(
            decision,
            context=stamped,
            correlation_id=correlation_id,
            policy_version=policy_version,
        )
        if not simulation:
            return base

        return PolicySimulationResult(
            decision=base.decision,
            subject=base.subject,
            object=base.object,
            action=base.action,
            context=base.context,
            matched_policy=base.matched_policy,
            reasoning=base.reasoning,
            policy_version=base.policy_version,
            timestamp=base.timestamp,
            correlation_id=base.correlation_id,
            context_snapshot=stamped,
            evaluation_steps=tuple(steps),
            warnings=tuple(warnings),
        )
