"""
Authorization decision core.

Pure Python; no FastAPI or database dependency. The application shell
(``careauthz.main``) wires it to settings, the consent table and HTTP.

Typical use:

    store = RuleSetStore(YamlRuleSetLoader(Path("config/policy_rules.yaml")))
    store.load()
    service = AuthorizationService(store, consent_evaluator=..., break_glass=...)
    record = service.decide(subject, obj, "read", context)
    if not record.allowed:
        ...
"""

from .break_glass import BreakGlassDecision, BreakGlassManager
from .clock import Clock, FixedClock, SystemClock
from .config import PolicyConfig
from .consent import (
    ConsentEvaluator,
    ConsentRecord,
    ConsentRecordSource,
    ConsentResult,
    ConsentScope,
    InMemoryConsentSource,
)
from .context import AuthorizationContext, ProgramAccessLevel, Purpose, ResourceObject, Subject
from .decision import AuthorizationDecision, EvaluationFailure, PolicySimulationResult
from .engine import PolicyDecisionEngine
from .errors import (
    AuthzError,
    ConfigurationError,
    InvalidRequestError,
    RuleSetError,
    RuleSetNotLoadedError,
)
from .recorder import DecisionRecorder
from .rules import Effect, PolicyRule, RuleSet, load_rule_set, parse_rule_set
from .service import AuthorizationService
from .store import RuleSetStore, StaticRuleSetLoader, YamlRuleSetLoader
from .validator import ContextValidator, Severity, ValidationIssue

__all__ = [
    "AuthorizationContext",
    "AuthorizationDecision",
    "AuthorizationService",
    "AuthzError",
    "BreakGlassDecision",
    "BreakGlassManager",
    "Clock",
    "ConfigurationError",
    "ConsentEvaluator",
    "ConsentRecord",
    "ConsentRecordSource",
    "ConsentResult",
    "ConsentScope",
    "ContextValidator",
    "DecisionRecorder",
    "Effect",
    "EvaluationFailure",
    "FixedClock",
    "InMemoryConsentSource",
    "InvalidRequestError",
    "PolicyConfig",
    "PolicyDecisionEngine",
    "PolicyRule",
    "PolicySimulationResult",
    "ProgramAccessLevel",
    "Purpose",
    "ResourceObject",
    "RuleSet",
    "RuleSetError",
    "RuleSetNotLoadedError",
    "RuleSetStore",
    "Severity",
    "StaticRuleSetLoader",
    "Subject",
    "SystemClock",
    "ValidationIssue",
    "YamlRuleSetLoader",
    "load_rule_set",
    "parse_rule_set",
]
