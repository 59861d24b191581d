from __future__ import annotations

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI

from careauthz.db.consent_source import SqlConsentRecordSource
from careauthz.db.session import build_engine, build_session_factory, init_db
from careauthz.logging_config import configure_app_logging
from careauthz.policy import (
    AuthorizationService,
    BreakGlassManager,
    Clock,
    ConsentEvaluator,
    RuleSetStore,
    SystemClock,
    YamlRuleSetLoader,
)
from careauthz.routers import health, policy
from careauthz.settings import Settings, get_settings


def build_service(settings: Settings, clock: Clock | None = None) -> AuthorizationService:
    """
    Wire the authorization core from settings.

    Raises ConfigurationError when the grace period / break-glass maximum are
    unset, and RuleSetError when the rule file cannot be loaded: both stop
    startup instead of running a silent deny-all engine.
    """

    clock = clock or SystemClock()
    policy_config = settings.policy_config()

    store = RuleSetStore(YamlRuleSetLoader(settings.resolved_rules_path()))
    store.load()

    engine = build_engine(settings.resolved_db_url())
    init_db(engine)
    consent_source = SqlConsentRecordSource(build_session_factory(engine))

    return AuthorizationService(
        store,
        consent_evaluator=ConsentEvaluator(consent_source, policy_config.consent_grace_period, clock),
        break_glass=BreakGlassManager(policy_config.break_glass_max_duration, clock),
        clock=clock,
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        resolved = settings or get_settings()
        configure_app_logging(resolved.log_level)

        logger = logging.getLogger(__name__)
        logger.info("App startup beginning environment=%s", resolved.environment)

        app.state.authz_service = build_service(resolved)
        logger.info(
            "Loaded rule set: %s version=%s",
            resolved.resolved_rules_path(),
            app.state.authz_service.current_policy_version(),
        )

        yield
        # Shutdown (nothing to clean up)

    app = FastAPI(lifespan=lifespan)

    app.include_router(health.router)
    if (settings or get_settings()).dev_routes_enabled:
        app.include_router(policy.router)

    return app


app = create_app()
