"""
Policy decision engine.

Evaluates one (subject, object, action, context) against a rule-set snapshot.
Pure: no I/O and no shared mutable state. Expiry checks and the timestamp
share one instant, passed in or read once from the injected ``Clock``.
All enrichment (tenant fallback, consent, break-glass) must already be
applied to the context; see ``service.AuthorizationService`` for the full pipeline.

Algorithm:
1. Validate the context. Any error -> deny with the error messages.
2. Tenant isolation. ``object.tenant_root_id`` present and different from
   ``context.tenant_root_id`` -> deny. No rule can override this.
3. Walk matching rules in priority order; the first whose guard holds decides.
4. No rule -> deny. There is no implicit allow.
"""

from __future__ import annotations

import logging
from datetime import datetime

from .clock import Clock, SystemClock
from .context import AuthorizationContext, ResourceObject, Subject
from .decision import AuthorizationDecision, EvaluationTrace
from .rules import Effect, RuleSet
from .store import RuleSetStore
from .validator import ContextValidator, Severity

logger = logging.getLogger(__name__)


class PolicyDecisionEngine:
    def __init__(
        self,
        store: RuleSetStore,
        validator: ContextValidator | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._store = store
        self._clock = clock or SystemClock()
        self._validator = validator or ContextValidator(self._clock)

    @property
    def store(self) -> RuleSetStore:
        return self._store

    def decide(
        self,
        subject: Subject,
        obj: ResourceObject,
        action: str,
        context: AuthorizationContext,
        *,
        rule_set: RuleSet | None = None,
        trace: EvaluationTrace | None = None,
        now: datetime | None = None,
    ) -> AuthorizationDecision:
        """
        Decide access for one request.

        ``rule_set`` pins the snapshot to evaluate against; when omitted the
        store's current snapshot is read once. ``now`` is the instant every
        expiry check and the decision timestamp use; the clock is read once
        when it is omitted. Raises RuleSetNotLoadedError if no rule set has
        been loaded.
        """

        snapshot = rule_set if rule_set is not None else self._store.current()
        trace = trace if trace is not None else EvaluationTrace()
        now = now if now is not None else self._clock.now()

        def result(effect: Effect, reasoning: str, matched: str | None = None) -> AuthorizationDecision:
            trace.step(f"Result: {effect.value.upper()}")
            return AuthorizationDecision(
                decision=effect,
                subject=subject,
                object=obj,
                action=action,
                context=context,
                matched_policy=matched,
                reasoning=reasoning,
                policy_version=snapshot.policy_version,
                timestamp=now,
                correlation_id=context.correlation_id,
            )

        # 1) Validation
        issues = self._validator.validate(context, now=now)
        failures: list[str] = []
        for issue in issues:
            if issue.severity is Severity.ERROR:
                failures.append(issue.message)
                trace.step(f"Validation error: {issue.message}")
            else:
                trace.step(f"Validation warning: {issue.message}")
                trace.warn(issue.message)
        if failures:
            logger.debug("Context validation failed errors=%s", failures)
            return result(Effect.DENY, "; ".join(failures))
        if not issues:
            trace.step("Validation: ok")

        # 2) Tenant isolation
        if obj.tenant_root_id is not None and obj.tenant_root_id != context.tenant_root_id:
            trace.step(f"Tenant check: mismatch (object={obj.tenant_root_id} context={context.tenant_root_id})")
            return result(
                Effect.DENY,
                f"tenant isolation: object tenant {obj.tenant_root_id} does not match context tenant "
                f"{context.tenant_root_id}",
            )
        trace.step(f"Tenant check: match ({context.tenant_root_id})")

        # 3) Rules
        considered = 0
        for rule in snapshot.candidates(subject.role, obj.type, action):
            considered += 1
            if not rule.guard.evaluate(context):
                trace.step(f"Rule {rule.rule_id}: guard not satisfied ({rule.guard.describe()})")
                continue

            trace.step(f"Matched rule: {rule.rule_id} ({rule.effect.value})")
            logger.debug(
                "Rule matched id=%s effect=%s role=%s object=%s action=%s",
                rule.rule_id,
                rule.effect.value,
                subject.role,
                obj.type,
                action,
            )
            if rule.effect is Effect.ALLOW:
                return result(Effect.ALLOW, f"rule {rule.rule_id} allowed: {rule.guard.explain(context)}", rule.rule_id)
            return result(Effect.DENY, f"rule {rule.rule_id} denied: {rule.guard.explain(context)}", rule.rule_id)

        # 4) Default deny
        if considered:
            trace.step(f"No rule guard satisfied ({considered} candidate rules)")
            reasoning = f"no rule guard satisfied for {subject.role} {action} {obj.type}; default deny"
        else:
            trace.step("No rule matches subject/object/action")
            reasoning = f"no rule for {subject.role} {action} {obj.type}; default deny"
        return result(Effect.DENY, reasoning)
