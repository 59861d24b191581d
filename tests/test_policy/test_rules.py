"""Tests for rule-set parsing, guard predicates and rule ordering."""

import pytest

from careauthz.policy.context import AuthorizationContext
from careauthz.policy.errors import RuleSetError
from careauthz.policy.rules import (
    AllOf,
    Always,
    AnyOf,
    Effect,
    Equals,
    Flag,
    Membership,
    load_rule_set,
    parse_rule_set,
    parse_rule_set_text,
)

BASIC_RULES = """
policy_version: "v1"
phi_object_types: [Client]
rules:
  - id: wildcard_read
    role: "*"
    object: "*"
    action: read
    effect: deny
  - id: manager_read_client
    role: CaseManager
    object: Client
    action: read
    effect: allow
    when:
      - flag: same_org
      - eq: {field: purpose, value: care}
  - id: any_role_read_client
    role: "*"
    object: Client
    action: read
    effect: allow
"""


def _rules(entries, **extra):
    return parse_rule_set({"rules": entries, **extra})


def _rule(**overrides):
    entry = {"id": "r1", "role": "CaseManager", "object": "Client", "action": "read", "effect": "allow"}
    entry.update(overrides)
    return entry


def test_parse_basic_rule_set():
    rule_set = parse_rule_set_text(BASIC_RULES, source="inline")
    assert rule_set.policy_version == "v1"
    assert rule_set.source == "inline"
    assert rule_set.is_phi_type("Client")
    assert not rule_set.is_phi_type("Report")
    assert len(rule_set) == 3
    assert rule_set.digest.startswith("sha256-")


def test_rules_ordered_by_specificity_then_declaration():
    rule_set = parse_rule_set_text(BASIC_RULES)
    ids = [r.rule_id for r in rule_set.candidates("CaseManager", "Client", "read")]
    assert ids == ["manager_read_client", "any_role_read_client", "wildcard_read"]


def test_equal_specificity_keeps_declaration_order():
    rule_set = _rules([
        _rule(id="first", role="*"),
        _rule(id="second", object="*"),
    ])
    assert [r.rule_id for r in rule_set.rules] == ["first", "second"]


def test_candidates_filter_by_patterns():
    rule_set = parse_rule_set_text(BASIC_RULES)
    ids = [r.rule_id for r in rule_set.candidates("BasicAccount", "Note", "read")]
    assert ids == ["wildcard_read"]
    assert list(rule_set.candidates("BasicAccount", "Note", "delete")) == []


def test_version_falls_back_to_digest():
    text = BASIC_RULES.replace('policy_version: "v1"\n', "")
    rule_set = parse_rule_set_text(text)
    assert rule_set.policy_version == rule_set.digest


def test_same_text_same_digest():
    assert parse_rule_set_text(BASIC_RULES).digest == parse_rule_set_text(BASIC_RULES).digest
    assert parse_rule_set_text(BASIC_RULES).digest != parse_rule_set_text(BASIC_RULES + "\n# edit\n").digest


def test_guard_list_is_all_of():
    rule_set = parse_rule_set_text(BASIC_RULES)
    rule = next(r for r in rule_set.rules if r.rule_id == "manager_read_client")
    assert rule.guard == AllOf(guards=(Flag("same_org"), Equals("purpose", "care")))
    assert rule.guard.describe() == "same_org is true AND purpose == care"


def test_rule_without_when_is_unconditional():
    rule_set = _rules([_rule()])
    assert rule_set.rules[0].guard == Always()
    assert rule_set.rules[0].effect is Effect.ALLOW


def test_single_guard_list_collapses():
    rule_set = _rules([_rule(when=[{"flag": "same_org"}])])
    assert rule_set.rules[0].guard == Flag("same_org")


def test_flag_with_expected_false():
    rule_set = _rules([_rule(when={"flag": {"field": "dataset_deidentified", "is": False}})])
    guard = rule_set.rules[0].guard
    assert guard == Flag("dataset_deidentified", expected=False)
    assert guard.evaluate(AuthorizationContext(dataset_deidentified=False))
    assert not guard.evaluate(AuthorizationContext())


def test_flag_absent_never_matches():
    guard = Flag("same_org")
    assert not guard.evaluate(AuthorizationContext())
    assert not guard.evaluate(AuthorizationContext(same_org=False))
    assert guard.evaluate(AuthorizationContext(same_org=True))


def test_membership_values_normalizes_enums():
    rule_set = _rules([_rule(when={"in": {"field": "program_access_level", "values": ["write", "full"]}})])
    guard = rule_set.rules[0].guard
    assert guard.evaluate(AuthorizationContext(program_access_level="full"))
    assert not guard.evaluate(AuthorizationContext(program_access_level="view"))
    assert guard.describe() == "program_access_level in [full, write]"


def test_membership_values_from_collection():
    guard = Membership(field="field", values_from="delegated_fields")
    assert guard.evaluate(AuthorizationContext(field="dob", delegated_fields=["dob"]))
    assert not guard.evaluate(AuthorizationContext(field="ssn", delegated_fields=["dob"]))
    assert not guard.evaluate(AuthorizationContext(field="dob"))
    assert guard.explain(AuthorizationContext(field="dob")) == "field in delegated_fields (field=dob)"


def test_any_of_explains_first_satisfied_branch():
    guard = AnyOf(guards=(Flag("consent_ok"), Flag("break_glass_active")))
    ctx = AuthorizationContext(break_glass_active=True)
    assert guard.evaluate(ctx)
    assert guard.explain(ctx) == "break_glass_active is true"
    assert guard.describe() == "consent_ok is true OR break_glass_active is true"


def test_nested_composites_are_parenthesized():
    guard = AllOf(guards=(Flag("same_org"), AnyOf(guards=(Flag("consent_ok"), Flag("temp_grant")))))
    assert guard.describe() == "same_org is true AND (consent_ok is true OR temp_grant is true)"


def test_load_rule_set_missing_file(tmp_path):
    with pytest.raises(RuleSetError, match="cannot read rule set"):
        load_rule_set(tmp_path / "missing.yaml")


def test_shipped_rule_file_loads(rule_set):
    assert rule_set.policy_version
    assert rule_set.is_phi_type("Client")


@pytest.mark.parametrize(
    "text, message",
    [
        ("", "rule set is empty"),
        ("- just\n- a list\n", "must be a mapping"),
        ("policy_version: v1\n", "defines no rules"),
        ("rules: {a: 1}\n", "rules must be a list"),
        ("rules: [\n", "not valid YAML"),
    ],
)
def test_malformed_documents(text, message):
    with pytest.raises(RuleSetError, match=message):
        parse_rule_set_text(text)


@pytest.mark.parametrize(
    "entry, message",
    [
        (_rule(id=""), "non-empty id"),
        (_rule(role=""), "non-empty role"),
        (_rule(id=None), "non-empty id"),
        (_rule(role=None), "non-empty role"),
        (_rule(object=None), "non-empty object"),
        (_rule(action=None), "non-empty action"),
        (_rule(effect=None), "effect must be allow or deny, got ''"),
        (_rule(effect="permit"), "effect must be allow or deny"),
        (_rule(when={"flag": "purpose"}), "requires a boolean field"),
        (_rule(when={"flag": "no_such_field"}), "unknown context field"),
        (_rule(when={"eq": {"field": "purpose", "value": "marketing"}}), "not a valid purpose"),
        (_rule(when={"in": {"field": "field", "values_from": "purpose"}}), "collection field"),
        (_rule(when={"in": {"field": "purpose", "values": []}}), "non-empty values"),
        (_rule(when={"any": []}), "non-empty list"),
        (_rule(when={"xor": []}), "unknown guard type"),
        (_rule(when={"flag": "same_org", "eq": {}}), "single-key mapping"),
        (_rule(when=[]), "must not be empty"),
        (_rule(when={"always": "yes"}), "always: true"),
    ],
)
def test_malformed_rules(entry, message):
    with pytest.raises(RuleSetError, match=message):
        _rules([entry])


def test_duplicate_rule_ids_rejected():
    with pytest.raises(RuleSetError, match="duplicate rule id"):
        _rules([_rule(), _rule(action="update")])


def test_phi_object_types_must_be_list():
    with pytest.raises(RuleSetError, match="phi_object_types"):
        _rules([_rule()], phi_object_types="Client")


def test_null_role_in_yaml_is_rejected():
    text = """
rules:
  - id: r1
    role: null
    object: Client
    action: read
    effect: allow
"""
    with pytest.raises(RuleSetError, match="non-empty role"):
        parse_rule_set_text(text, source="inline")
