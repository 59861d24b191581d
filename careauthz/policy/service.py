"""
Authorization service: the operations exposed to the HTTP layer.

    decide(subject, obj, action, context)   request-time enforcement
    simulate(subject, obj, action, context) same evaluation, full trace
    current_policy_version()                health reporting
    reload()                                swap in a new rule-set snapshot

Pipeline for one request:

    input check -> rule-set snapshot -> tenant fallback -> PHI classification
    -> break-glass normalization -> consent fill -> engine -> recorder

The clock is read once per request; every expiry check and the decision
timestamp use that instant.

Every exposed call returns a structured value. Validation problems become a
deny with reasoning; a missing or broken rule set and any unexpected fault
become an ``EvaluationFailure`` (never an allow). Only input errors (missing
subject/object/action fields) raise, as ``InvalidRequestError``.
"""

from __future__ import annotations

import logging
from datetime import datetime

from .break_glass import BreakGlassDecision, BreakGlassManager, normalize_break_glass
from .clock import Clock, SystemClock
from .consent import ConsentEvaluator, merge_into
from .context import AuthorizationContext, ResourceObject, Subject
from .decision import AuthorizationDecision, EvaluationFailure, EvaluationTrace, PolicySimulationResult
from .engine import PolicyDecisionEngine
from .errors import ConfigurationError, InvalidRequestError
from .recorder import DecisionRecorder, new_correlation_id
from .rules import RuleSet
from .store import RuleSetStore
from .validator import ContextValidator

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("careauthz.audit")


class AuthorizationService:
    def __init__(
        self,
        store: RuleSetStore,
        *,
        consent_evaluator: ConsentEvaluator | None = None,
        break_glass: BreakGlassManager | None = None,
        clock: Clock | None = None,
        recorder: DecisionRecorder | None = None,
    ) -> None:
        self._store = store
        self._clock = clock or SystemClock()
        self._consent = consent_evaluator
        self._break_glass = break_glass
        self._recorder = recorder or DecisionRecorder()
        self._engine = PolicyDecisionEngine(store, ContextValidator(self._clock), self._clock)

    @property
    def engine(self) -> PolicyDecisionEngine:
        return self._engine

    # ---- Exposed operations ---------------------------------------------------------

    def decide(
        self,
        subject: Subject,
        obj: ResourceObject,
        action: str,
        context: AuthorizationContext | None = None,
    ) -> AuthorizationDecision | EvaluationFailure:
        return self._evaluate(subject, obj, action, context, simulation=False)

    def simulate(
        self,
        subject: Subject,
        obj: ResourceObject,
        action: str,
        context: AuthorizationContext | None = None,
    ) -> PolicySimulationResult | EvaluationFailure:
        return self._evaluate(subject, obj, action, context, simulation=True)

    def admit_break_glass(
        self,
        subject: Subject,
        obj: ResourceObject,
        requested_expiry: datetime | None,
        context: AuthorizationContext,
    ) -> BreakGlassDecision:
        if self._break_glass is None:
            raise ConfigurationError("break-glass is not configured")
        return self._break_glass.admit(subject, obj, requested_expiry, context)

    def current_policy_version(self) -> str | None:
        return self._store.current_policy_version()

    def reload(self) -> RuleSet:
        return self._store.reload()

    # ---- Pipeline -------------------------------------------------------------------

    def _evaluate(
        self,
        subject: Subject,
        obj: ResourceObject,
        action: str,
        context: AuthorizationContext | None,
        *,
        simulation: bool,
    ):
        _check_request(subject, obj, action)
        context = context or AuthorizationContext()
        correlation_id = context.correlation_id or new_correlation_id()
        now = self._clock.now()

        try:
            snapshot = self._store.current()
        except ConfigurationError as e:
            logger.error("Authorization unavailable correlation_id=%s error=%s", correlation_id, e)
            return EvaluationFailure("configuration", str(e), correlation_id, now)

        try:
            trace = EvaluationTrace()
            context = self._enrich(subject, obj, action, context, snapshot, trace, now)
            decision = self._engine.decide(subject, obj, action, context, rule_set=snapshot, trace=trace, now=now)
            record = self._recorder.record(
                decision,
                context,
                trace.steps,
                correlation_id,
                warnings=trace.warnings,
                simulation=simulation,
                policy_version=snapshot.policy_version,
            )
        except Exception as e:
            logger.exception("Authorization evaluation failed correlation_id=%s", correlation_id)
            return EvaluationFailure("internal", f"{type(e).__name__}: {e}", correlation_id, now)

        _audit(record, simulation)
        return record

    def _enrich(
        self,
        subject: Subject,
        obj: ResourceObject,
        action: str,
        context: AuthorizationContext,
        snapshot: RuleSet,
        trace: EvaluationTrace,
        now: datetime,
    ) -> AuthorizationContext:
        trace.step(f"Evaluated subject: {subject.role}")
        trace.step(f"Against object: {obj.type}:{obj.id}")
        trace.step(f"For action: {action}")

        if not context.tenant_root_id and obj.tenant_root_id:
            context = context.with_updates(tenant_root_id=obj.tenant_root_id)
            trace.step(f"Tenant anchor: fallback to object tenant {obj.tenant_root_id}")

        if context.contains_phi is None and snapshot.is_phi_type(obj.type):
            context = context.with_updates(contains_phi=True)
            trace.step(f"PHI classification: {obj.type} is PHI-bearing")

        max_duration = self._break_glass.max_duration if self._break_glass is not None else None
        context, note = normalize_break_glass(context, now, max_duration)
        if note:
            trace.step(f"Break-glass: {note}")
            trace.warn(note)
        if context.break_glass_active is True:
            trace.step(
                f"Break-glass: invoked by {subject.user_id} ({subject.role}) on {obj.type}:{obj.id} "
                f"until {context.break_glass_expires_at.isoformat()}"
            )

        if context.contains_phi is True:
            context = self._fill_consent(subject, obj, context, trace, now)
        return context

    def _fill_consent(
        self,
        subject: Subject,
        obj: ResourceObject,
        context: AuthorizationContext,
        trace: EvaluationTrace,
        now: datetime,
    ) -> AuthorizationContext:
        if context.consent_ok is not None:
            state = "ok" if context.consent_ok else "not ok"
            trace.step(f"Consent check: {state} (supplied by caller)")
            return context
        if self._consent is None:
            trace.step("Consent check: unresolved (no consent source configured)")
            return context

        result = self._consent.evaluate(subject.user_id, obj.id, context, now=now)
        if result.grace_period_active:
            trace.step("Consent check: ok (grace period)")
            trace.warn(f"consent {result.consent_id} used within grace period: {result.reason}")
        elif result.consent_ok:
            trace.step(f"Consent check: ok ({result.reason})")
        else:
            trace.step(f"Consent check: not ok ({result.reason})")
        return merge_into(context, result)


def _check_request(subject: Subject, obj: ResourceObject, action: str) -> None:
    if subject is None or not subject.role:
        raise InvalidRequestError("subject.role", "role is required")
    if subject.user_id is None:
        raise InvalidRequestError("subject.user_id", "user_id is required")
    if obj is None or not obj.type:
        raise InvalidRequestError("object.type", "object type is required")
    if not obj.id:
        raise InvalidRequestError("object.id", "object id is required")
    if not action:
        raise InvalidRequestError("action", "action is required")


def _audit(record: AuthorizationDecision, simulation: bool) -> None:
    audit_logger.info(
        "decision=%s simulation=%s role=%s user=%s object=%s:%s action=%s matched=%s tenant=%s "
        "policy_version=%s correlation_id=%s reasoning=%s",
        record.decision.value,
        simulation,
        record.subject.role,
        record.subject.user_id,
        record.object.type,
        record.object.id,
        record.action,
        record.matched_policy,
        record.context.tenant_root_id,
        record.policy_version,
        record.correlation_id,
        record.reasoning,
    )
