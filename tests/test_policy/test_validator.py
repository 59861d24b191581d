"""Tests for context validation rules."""

from datetime import timedelta

from careauthz.policy.context import AuthorizationContext
from careauthz.policy.validator import (
    BREAK_GLASS_EXPIRED,
    BREAK_GLASS_EXPIRY_REQUIRED,
    CONSENT_ID_MISSING,
    CONSENT_REQUIRED_FOR_PHI,
    PURPOSE_REQUIRED_FOR_PHI,
    TENANT_REQUIRED,
    ContextValidator,
    Severity,
    errors,
    warnings,
)


def _messages(issues):
    return [i.message for i in issues]


def test_valid_context_has_no_issues(clock, care_context):
    assert ContextValidator(clock).validate(care_context) == []


def test_tenant_is_required(clock):
    issues = ContextValidator(clock).validate(AuthorizationContext())
    assert _messages(errors(issues)) == [TENANT_REQUIRED]
    assert issues[0].field == "tenant_root_id"


def test_empty_tenant_string_is_missing(clock):
    issues = ContextValidator(clock).validate(AuthorizationContext(tenant_root_id=""))
    assert TENANT_REQUIRED in _messages(issues)


def test_phi_requires_consent_and_purpose(clock):
    ctx = AuthorizationContext(tenant_root_id="org_1", contains_phi=True)
    issues = ContextValidator(clock).validate(ctx)
    assert _messages(errors(issues)) == [CONSENT_REQUIRED_FOR_PHI, PURPOSE_REQUIRED_FOR_PHI]


def test_resolved_consent_false_is_not_a_validation_error(clock):
    ctx = AuthorizationContext(tenant_root_id="org_1", contains_phi=True, consent_ok=False, purpose="care")
    assert ContextValidator(clock).validate(ctx) == []


def test_non_phi_context_does_not_need_consent(clock):
    ctx = AuthorizationContext(tenant_root_id="org_1", contains_phi=False)
    assert ContextValidator(clock).validate(ctx) == []


def test_break_glass_requires_expiry(clock):
    ctx = AuthorizationContext(tenant_root_id="org_1", break_glass_active=True)
    issues = ContextValidator(clock).validate(ctx)
    assert _messages(errors(issues)) == [BREAK_GLASS_EXPIRY_REQUIRED]


def test_break_glass_expired(clock):
    ctx = AuthorizationContext(
        tenant_root_id="org_1",
        break_glass_active=True,
        break_glass_expires_at=clock.now() - timedelta(minutes=1),
    )
    assert _messages(ContextValidator(clock).validate(ctx)) == [BREAK_GLASS_EXPIRED]


def test_break_glass_expiry_at_now_counts_as_expired(clock):
    ctx = AuthorizationContext(
        tenant_root_id="org_1",
        break_glass_active=True,
        break_glass_expires_at=clock.now(),
    )
    assert _messages(ContextValidator(clock).validate(ctx)) == [BREAK_GLASS_EXPIRED]


def test_inactive_break_glass_ignores_expiry(clock):
    ctx = AuthorizationContext(
        tenant_root_id="org_1",
        break_glass_active=False,
        break_glass_expires_at=clock.now() - timedelta(days=1),
    )
    assert ContextValidator(clock).validate(ctx) == []


def test_missing_consent_id_is_a_warning(clock, care_context):
    ctx = care_context.with_updates(consent_id=None)
    issues = ContextValidator(clock).validate(ctx)
    assert errors(issues) == []
    assert _messages(warnings(issues)) == [CONSENT_ID_MISSING]
    assert issues[0].severity is Severity.WARNING
    assert not issues[0].is_error


def test_break_glass_lapses_as_clock_advances(clock):
    ctx = AuthorizationContext(
        tenant_root_id="org_1",
        break_glass_active=True,
        break_glass_expires_at=clock.now() + timedelta(minutes=30),
    )
    validator = ContextValidator(clock)
    assert validator.validate(ctx) == []

    clock.advance(timedelta(minutes=31))
    assert _messages(validator.validate(ctx)) == [BREAK_GLASS_EXPIRED]


def test_explicit_now_is_used_for_expiry(clock):
    ctx = AuthorizationContext(
        tenant_root_id="org_1",
        break_glass_active=True,
        break_glass_expires_at=clock.now() + timedelta(seconds=1),
    )
    validator = ContextValidator(clock)
    assert validator.validate(ctx, now=clock.now()) == []
    assert _messages(validator.validate(ctx, now=clock.now() + timedelta(seconds=2))) == [BREAK_GLASS_EXPIRED]
