"""
Pytest fixtures for the test suite.

Policy tests run against a FixedClock and the repo's default rule file, so
expiry checks and rule ordering are deterministic. Data-layer tests use an
in-memory SQLite engine and a session that rolls back after each test, so
tests do not affect each other.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from careauthz.policy import (
    AuthorizationContext,
    AuthorizationService,
    BreakGlassManager,
    ConsentEvaluator,
    FixedClock,
    InMemoryConsentSource,
    ResourceObject,
    RuleSetStore,
    StaticRuleSetLoader,
    Subject,
    load_rule_set,
)


TEST_DB_URL = "sqlite:///:memory:"

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
GRACE_PERIOD = timedelta(hours=24)
BREAK_GLASS_MAX = timedelta(hours=4)

RULES_PATH = Path(__file__).resolve().parents[1] / "config" / "policy_rules.yaml"


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def rule_set():
    """The shipped default rule file, parsed."""
    return load_rule_set(RULES_PATH)


@pytest.fixture
def store(rule_set):
    store = RuleSetStore(StaticRuleSetLoader(rule_set))
    store.load()
    return store


@pytest.fixture
def consent_source():
    return InMemoryConsentSource()


@pytest.fixture
def service(store, consent_source, clock):
    return AuthorizationService(
        store,
        consent_evaluator=ConsentEvaluator(consent_source, GRACE_PERIOD, clock),
        break_glass=BreakGlassManager(BREAK_GLASS_MAX, clock),
        clock=clock,
    )


@pytest.fixture
def case_manager():
    return Subject(role="CaseManager", user_id="user_789")


@pytest.fixture
def client_object():
    return ResourceObject(type="Client", id="client_123", tenant_root_id="org_456")


@pytest.fixture
def care_context():
    """Context under which an assigned case manager may read a client."""
    return AuthorizationContext(
        purpose="care",
        consent_ok=True,
        consent_id="consent_1",
        contains_phi=True,
        same_org=True,
        assigned_to_user=True,
        tenant_root_id="org_456",
    )


@pytest.fixture
def engine():
    """Create a fresh in-memory SQLite engine for each test."""
    return create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        echo=False,
    )


@pytest.fixture
def tables(engine):
    """Create all ORM tables on the test engine."""
    from careauthz.db.base import Base
    from careauthz.models import consent  # noqa: F401
    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture
def db_session(tables):
    """
    Provide a Session bound to the test DB; roll back after each test.

    The transaction is rolled back so the next test gets a clean state.
    """
    connection = tables.connect()
    transaction = connection.begin()
    TestSession = sessionmaker(
        bind=connection,
        autocommit=False,
        autoflush=False,
        class_=Session,
    )
    session = TestSession()
    yield session
    session.close()
    transaction.rollback()
    connection.close()
