"""
Rule set model and YAML loader.

The engine never parses rule syntax. This module turns a YAML document into
an immutable ``RuleSet`` of already-parsed guard predicates, and rejects
anything malformed with ``RuleSetError`` so a broken file is an operator
alert rather than a silent deny-all.

Expected shape:

    policy_version: "2024.06"          # optional; content digest otherwise
    phi_object_types: [Client, Note]   # object types that always carry PHI
    rules:
      - id: case_manager_read_client
        role: CaseManager              # exact name or "*"
        object: Client                 # exact type or "*"
        action: read                   # exact action or "*"
        effect: allow                  # allow | deny
        description: Assigned case managers read their clients
        when:                          # list = all of; omitted = always
          - flag: same_org
          - flag: assigned_to_user
          - eq: {field: purpose, value: care}
          - any:
              - flag: consent_ok
              - flag: break_glass_active

Guard forms: ``flag: <field>`` or ``flag: {field, is}``, ``eq: {field,
value}``, ``in: {field, values}`` or ``in: {field, values_from}``,
``all: [...]``, ``any: [...]``, ``always: true``.

Rules are ordered once at load time: most specific first (number of
non-wildcard patterns), ties broken by declaration order. Two engines loaded
with the same document therefore always agree.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import hashlib
from pathlib import Path
from typing import Any, Iterator, Union

import yaml

from .context import BOOLEAN_FIELDS, COLLECTION_FIELDS, ENUM_FIELDS, AuthorizationContext, plain
from .errors import RuleSetError

WILDCARD = "*"


class Effect(str, Enum):
    ALLOW = "allow"
    DENY = "deny"


# ---- Guard predicates ----------------------------------------------------------------


@dataclass(frozen=True)
class Always:
    def evaluate(self, context: AuthorizationContext) -> bool:
        return True

    def describe(self) -> str:
        return "always"

    def explain(self, context: AuthorizationContext) -> str:
        return "unconditional"


@dataclass(frozen=True)
class Flag:
    """Boolean context field equals ``expected``. An absent field never matches."""

    field: str
    expected: bool = True

    def evaluate(self, context: AuthorizationContext) -> bool:
        value = getattr(context, self.field)
        return value is not None and value is self.expected

    def describe(self) -> str:
        return f"{self.field} is {str(self.expected).lower()}"

    def explain(self, context: AuthorizationContext) -> str:
        return self.describe()


@dataclass(frozen=True)
class Equals:
    field: str
    value: object

    def evaluate(self, context: AuthorizationContext) -> bool:
        actual = getattr(context, self.field)
        return actual is not None and plain(actual) == self.value

    def describe(self) -> str:
        return f"{self.field} == {self.value}"

    def explain(self, context: AuthorizationContext) -> str:
        return self.describe()


@dataclass(frozen=True)
class Membership:
    """
    Context field is one of ``values``, or a member of the collection held
    by another context field (``values_from``, e.g. ``delegated_fields``).
    """

    field: str
    values: frozenset[object] = frozenset()
    values_from: str | None = None

    def evaluate(self, context: AuthorizationContext) -> bool:
        actual = getattr(context, self.field)
        if actual is None:
            return False
        if self.values_from is not None:
            pool = getattr(context, self.values_from)
            return pool is not None and plain(actual) in pool
        return plain(actual) in self.values

    def describe(self) -> str:
        if self.values_from is not None:
            return f"{self.field} in {self.values_from}"
        return f"{self.field} in [{', '.join(sorted(str(v) for v in self.values))}]"

    def explain(self, context: AuthorizationContext) -> str:
        return f"{self.describe()} ({self.field}={plain(getattr(context, self.field))})"


@dataclass(frozen=True)
class AllOf:
    guards: tuple[Guard, ...]

    def evaluate(self, context: AuthorizationContext) -> bool:
        return all(g.evaluate(context) for g in self.guards)

    def describe(self) -> str:
        return " AND ".join(_wrap(g.describe(), g) for g in self.guards)

    def explain(self, context: AuthorizationContext) -> str:
        return " AND ".join(_wrap(g.explain(context), g) for g in self.guards)


@dataclass(frozen=True)
class AnyOf:
    guards: tuple[Guard, ...]

    def evaluate(self, context: AuthorizationContext) -> bool:
        return any(g.evaluate(context) for g in self.guards)

    def describe(self) -> str:
        return " OR ".join(_wrap(g.describe(), g) for g in self.guards)

    def explain(self, context: AuthorizationContext) -> str:
        for g in self.guards:
            if g.evaluate(context):
                return g.explain(context)
        return self.describe()


Guard = Union[Always, Flag, Equals, Membership, AllOf, AnyOf]


def _wrap(text: str, guard: Guard) -> str:
    if isinstance(guard, (AllOf, AnyOf)) and len(guard.guards) > 1:
        return f"({text})"
    return text


# ---- Rules ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PolicyRule:
    rule_id: str
    role: str
    object_type: str
    action: str
    effect: Effect
    guard: Guard = Always()
    description: str | None = None

    @property
    def specificity(self) -> int:
        return sum(1 for p in (self.role, self.object_type, self.action) if p != WILDCARD)

    def matches(self, role: str, object_type: str, action: str) -> bool:
        return (
            _pattern_matches(self.role, role)
            and _pattern_matches(self.object_type, object_type)
            and _pattern_matches(self.action, action)
        )


@dataclass(frozen=True)
class RuleSet:
    """Immutable, versioned, priority-ordered collection of rules."""

    policy_version: str
    rules: tuple[PolicyRule, ...]
    phi_object_types: frozenset[str]
    digest: str
    source: str | None = None

    def candidates(self, role: str, object_type: str, action: str) -> Iterator[PolicyRule]:
        """Rules whose patterns match, in evaluation order."""
        for rule in self.rules:
            if rule.matches(role, object_type, action):
                yield rule

    def is_phi_type(self, object_type: str) -> bool:
        return object_type in self.phi_object_types

    def __len__(self) -> int:
        return len(self.rules)


def _pattern_matches(pattern: str, value: str) -> bool:
    return pattern == WILDCARD or pattern == value


def order_rules(rules: list[PolicyRule]) -> tuple[PolicyRule, ...]:
    # sorted() is stable, so equal specificity keeps declaration order.
    return tuple(sorted(rules, key=lambda r: -r.specificity))


# ---- Loader --------------------------------------------------------------------------


def load_rule_set(path: Path) -> RuleSet:
    """Load and validate a YAML rule set from disk."""

    try:
        raw_text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise RuleSetError(f"cannot read rule set {str(path)!r}: {e}") from e
    return parse_rule_set_text(raw_text, source=str(path))


def parse_rule_set_text(raw_text: str, source: str | None = None) -> RuleSet:
    try:
        raw = yaml.safe_load(raw_text)
    except yaml.YAMLError as e:
        raise RuleSetError(f"rule set is not valid YAML: {e}") from e
    digest = "sha256-" + hashlib.sha256(raw_text.encode("utf-8")).hexdigest()[:12]
    return parse_rule_set(raw, source=source, digest=digest)


def parse_rule_set(raw: Any, source: str | None = None, digest: str | None = None) -> RuleSet:
    """Build a ``RuleSet`` from an already-decoded document."""

    if raw is None:
        raise RuleSetError("rule set is empty")
    if not isinstance(raw, dict):
        raise RuleSetError("rule set must be a mapping")

    rules_raw = raw.get("rules")
    if not rules_raw:
        raise RuleSetError("rule set defines no rules")
    if not isinstance(rules_raw, list):
        raise RuleSetError("rules must be a list")

    phi_raw = raw.get("phi_object_types") or []
    if not isinstance(phi_raw, list):
        raise RuleSetError("phi_object_types must be a list when present")

    rules: list[PolicyRule] = []
    seen: set[str] = set()
    for index, entry in enumerate(rules_raw):
        rule = _parse_rule(entry, index)
        if rule.rule_id in seen:
            raise RuleSetError(f"duplicate rule id {rule.rule_id!r}")
        seen.add(rule.rule_id)
        rules.append(rule)

    if digest is None:
        digest = "sha256-" + hashlib.sha256(repr(raw).encode("utf-8")).hexdigest()[:12]

    declared_version = raw.get("policy_version")
    policy_version = str(declared_version).strip() if declared_version is not None else ""

    return RuleSet(
        policy_version=policy_version or digest,
        rules=order_rules(rules),
        phi_object_types=frozenset(str(t) for t in phi_raw),
        digest=digest,
        source=source,
    )


def _parse_rule(entry: Any, index: int) -> PolicyRule:
    if not isinstance(entry, dict):
        raise RuleSetError(f"rules[{index}] must be a mapping")

    rule_id = _text(entry, "id")
    if not rule_id:
        raise RuleSetError(f"rules[{index}] requires a non-empty id")

    patterns: dict[str, str] = {}
    for key in ("role", "object", "action"):
        value = _text(entry, key)
        if not value:
            raise RuleSetError(f"rule {rule_id!r} requires non-empty {key}")
        patterns[key] = value

    effect_raw = _text(entry, "effect").lower()
    try:
        effect = Effect(effect_raw)
    except ValueError:
        raise RuleSetError(f"rule {rule_id!r} effect must be allow or deny, got {effect_raw!r}") from None

    when = entry.get("when")
    if when is None:
        guard: Guard = Always()
    elif isinstance(when, list):
        guard = _all_of([_parse_guard(g, rule_id) for g in when], rule_id)
    else:
        guard = _parse_guard(when, rule_id)

    description = entry.get("description")
    return PolicyRule(
        rule_id=rule_id,
        role=patterns["role"],
        object_type=patterns["object"],
        action=patterns["action"],
        effect=effect,
        guard=guard,
        description=str(description) if description is not None else None,
    )


def _text(entry: dict, key: str) -> str:
    """String value of ``key``; a missing key and YAML null both read as empty."""
    value = entry.get(key)
    return str(value).strip() if value is not None else ""


def _parse_guard(raw: Any, rule_id: str) -> Guard:
    if not isinstance(raw, dict) or len(raw) != 1:
        raise RuleSetError(f"rule {rule_id!r}: each guard must be a single-key mapping, got {raw!r}")

    (kind, body), = raw.items()

    if kind == "always":
        if body is not True:
            raise RuleSetError(f"rule {rule_id!r}: always guard must be 'always: true'")
        return Always()

    if kind == "flag":
        if isinstance(body, str):
            return Flag(field=_bool_field(body, rule_id))
        if isinstance(body, dict):
            expected = body.get("is", True)
            if not isinstance(expected, bool):
                raise RuleSetError(f"rule {rule_id!r}: flag 'is' must be a boolean")
            return Flag(field=_bool_field(body.get("field"), rule_id), expected=expected)
        raise RuleSetError(f"rule {rule_id!r}: flag guard must be a field name or mapping")

    if kind == "eq":
        if not isinstance(body, dict) or "field" not in body or "value" not in body:
            raise RuleSetError(f"rule {rule_id!r}: eq guard requires field and value")
        field_name = _known_field(body["field"], rule_id)
        return Equals(field=field_name, value=_literal(field_name, body["value"], rule_id))

    if kind == "in":
        if not isinstance(body, dict) or "field" not in body:
            raise RuleSetError(f"rule {rule_id!r}: in guard requires field")
        field_name = _known_field(body["field"], rule_id)
        if "values_from" in body:
            source = _known_field(body["values_from"], rule_id)
            if source not in COLLECTION_FIELDS:
                raise RuleSetError(f"rule {rule_id!r}: values_from must name a collection field, got {source!r}")
            return Membership(field=field_name, values_from=source)
        values = body.get("values")
        if not isinstance(values, list) or not values:
            raise RuleSetError(f"rule {rule_id!r}: in guard requires a non-empty values list or values_from")
        return Membership(field=field_name, values=frozenset(_literal(field_name, v, rule_id) for v in values))

    if kind in ("all", "any"):
        if not isinstance(body, list) or not body:
            raise RuleSetError(f"rule {rule_id!r}: {kind} guard requires a non-empty list")
        children = [_parse_guard(g, rule_id) for g in body]
        if kind == "all":
            return _all_of(children, rule_id)
        return children[0] if len(children) == 1 else AnyOf(guards=tuple(children))

    raise RuleSetError(f"rule {rule_id!r}: unknown guard type {kind!r}")


def _all_of(children: list[Guard], rule_id: str) -> Guard:
    if not children:
        raise RuleSetError(f"rule {rule_id!r}: when list must not be empty")
    return children[0] if len(children) == 1 else AllOf(guards=tuple(children))


def _known_field(name: Any, rule_id: str) -> str:
    name = str(name or "").strip()
    if name not in AuthorizationContext.field_names():
        raise RuleSetError(f"rule {rule_id!r}: unknown context field {name!r}")
    return name


def _bool_field(name: Any, rule_id: str) -> str:
    name = _known_field(name, rule_id)
    if name not in BOOLEAN_FIELDS:
        raise RuleSetError(f"rule {rule_id!r}: flag guard requires a boolean field, got {name!r}")
    return name


def _literal(field_name: str, value: Any, rule_id: str) -> object:
    enum_cls = ENUM_FIELDS.get(field_name)
    if enum_cls is None:
        return value
    try:
        return enum_cls(str(value)).value
    except ValueError:
        raise RuleSetError(f"rule {rule_id!r}: {value!r} is not a valid {field_name}") from None

